"""Core data models — persisted records, inputs, and read-side views.

Every piece of player state that survives a restart is one of the record
models below, and every value the host UI reads is one of the view models.
They are the shared vocabulary between the engine, the storage adapters,
and the HTTP layer.

Records are deliberately forgiving. Stored JSON may come from an older app
version, a half-written file, or a hand-edited export, so every numeric
field passes through a BeforeValidator that turns None, NaN, infinities,
wrong types and out-of-range values into the field default or the nearest
legal value. Unknown keys are ignored (pydantic's default). Validation of a
record therefore only fails on structurally hopeless input, and the record
codec (``focusflow.engine.records``) falls back to defaults for those.

This is a Tier 1 leaf module: it imports only from pydantic, the stdlib,
and focusflow.constants (also Tier 1).

Usage:
    from focusflow.schemas import ChallengeResult, ProgressionSnapshot, ApiResponse
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from focusflow.constants import MAX_HEARTS, PASS_THRESHOLD, PERFECT_THRESHOLD, SKILL_MAX, SKILL_MIN

NodeStatus = Literal["locked", "available", "completed", "perfect"]
NodeType = Literal["exercise", "test"]
SkillPath = Literal["focus", "impulse_control", "distraction_resistance"]
Rarity = Literal["common", "uncommon", "rare", "epic", "legendary"]
HeartPhase = Literal["full", "depleting", "empty", "regenerating"]
HeartLossReason = Literal[
    "exercise_fail",
    "test_fail",
    "focus_break",
    "wrong_tap",
    "distraction_fail",
    "early_quit",
]

NODE_STATUSES: tuple[str, ...] = ("locked", "available", "completed", "perfect")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NODE_ID_RE = re.compile(r"^(\d+)-(\d+)$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Sanitizers: untrusted input to legal values
# ---------------------------------------------------------------------------


def sanitize_number(value: Any, default: float = 0.0) -> float:
    """Coerces an untrusted value to a finite float.

    Accepts ints, floats and numeric strings. Booleans, None, NaN,
    infinities and anything unparseable become ``default``.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return default
    except (ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _clamped(
    default: float,
    lo: float | None = None,
    hi: float | None = None,
    integer: bool = False,
) -> BeforeValidator:
    """Builds a BeforeValidator that sanitizes and clamps a numeric field."""

    def coerce(value: Any) -> float | int:
        number = sanitize_number(value, default)
        if lo is not None:
            number = max(lo, number)
        if hi is not None:
            number = min(hi, number)
        return int(number) if integer else number

    return BeforeValidator(coerce)


def coerce_datetime(value: Any) -> datetime | None:
    """Parses a stored timestamp. Naive values are taken as UTC.

    Accepts datetime objects, ISO-8601 strings and epoch milliseconds
    (the format older app versions wrote). Returns None when unparseable.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _coerce_timestamp(value: Any) -> datetime:
    return coerce_datetime(value) or _utcnow()


def _coerce_day(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    parsed = coerce_datetime(value)
    return parsed.date() if parsed else None


def _coerce_flag(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def _coerce_text(default: str) -> BeforeValidator:
    def coerce(value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    return BeforeValidator(coerce)


def _coerce_id(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return uuid4().hex


def _coerce_position(value: Any) -> int | None:
    if value is None:
        return None
    number = sanitize_number(value, -1)
    return int(number) if number >= 0 else None


def _coerce_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _coerce_node_status(value: Any) -> str:
    return value if value in NODE_STATUSES else "locked"


def _coerce_node_id(value: Any) -> str | None:
    return value if isinstance(value, str) and parse_node_id(value) else None


Count = Annotated[int, _clamped(0, lo=0, integer=True)]
Level = Annotated[int, _clamped(1, lo=1, integer=True)]
Score = Annotated[float, _clamped(0.0, lo=0.0, hi=100.0)]
SkillValue = Annotated[float, _clamped(SKILL_MIN, lo=SKILL_MIN, hi=SKILL_MAX)]
Stars = Annotated[int, _clamped(0, lo=0, hi=3, integer=True)]
Flag = Annotated[bool, BeforeValidator(_coerce_flag)]
OptionalTimestamp = Annotated[datetime | None, BeforeValidator(coerce_datetime)]
Timestamp = Annotated[datetime, BeforeValidator(_coerce_timestamp)]
OptionalDay = Annotated[date | None, BeforeValidator(_coerce_day)]
StrList = Annotated[list[str], BeforeValidator(_coerce_str_list)]
OptionalNodeId = Annotated[str | None, BeforeValidator(_coerce_node_id)]


# ---------------------------------------------------------------------------
# Node identity
# ---------------------------------------------------------------------------


def node_id(level: int, position: int) -> str:
    """Builds the canonical node key, e.g. ``node_id(5, 1) == "5-1"``."""
    return f"{level}-{position}"


def parse_node_id(value: str) -> tuple[int, int] | None:
    """Splits a node key into (level, position). None if malformed."""
    match = _NODE_ID_RE.match(value)
    if match is None:
        return None
    level, position = int(match.group(1)), int(match.group(2))
    if level < 1:
        return None
    return level, position


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class UserProgress(BaseModel):
    """Experience, level and streak bookkeeping for one player.

    ``xp`` is progress inside the current level; ``total_xp`` never
    decreases. Rollover against XP_PER_LEVEL is the ledger's job, not
    the model's, because the per-level cost is configurable.
    """

    level: Level = 1
    xp: Count = 0
    total_xp: Count = 0
    streak: Count = 0
    longest_streak: Count = 0
    total_sessions_completed: Count = 0
    total_challenges_completed: Count = 0
    last_active_day: OptionalDay = None
    is_premium: Flag = False

    @model_validator(mode="after")
    def _longest_covers_current(self) -> "UserProgress":
        if self.longest_streak < self.streak:
            self.longest_streak = self.streak
        return self


class HeartState(BaseModel):
    """Lives pool with a regeneration anchor.

    ``next_regen_at`` is the instant the next heart comes back; it is None
    while the pool is full. Hearts are never regenerated by a timer, only
    by ``HeartEconomy.tick`` on read.
    """

    current_hearts: Annotated[int, _clamped(MAX_HEARTS, lo=0, integer=True)] = MAX_HEARTS
    max_hearts: Annotated[int, _clamped(MAX_HEARTS, lo=1, integer=True)] = MAX_HEARTS
    last_lost_at: OptionalTimestamp = None
    next_regen_at: OptionalTimestamp = None
    last_regen_at: OptionalTimestamp = None
    perfect_streak_count: Count = 0
    total_hearts_lost: Count = 0
    total_hearts_gained: Count = 0
    charged_result_ids: StrList = Field(default_factory=list)

    @model_validator(mode="after")
    def _within_capacity(self) -> "HeartState":
        if self.current_hearts > self.max_hearts:
            self.current_hearts = self.max_hearts
        return self


class SkillTree(BaseModel):
    """The three persisted skill percentages. Composites are never stored."""

    focus: SkillValue = 0.0
    impulse_control: SkillValue = 0.0
    distraction_resistance: SkillValue = 0.0


class UnlockedBadge(BaseModel):
    """One earned badge. Frozen — unlock time never changes."""

    model_config = ConfigDict(frozen=True)

    type: str
    unlocked_at: datetime


def _coerce_unlocked(value: Any) -> list[UnlockedBadge]:
    """Repairs a stored unlock list: drops junk, keeps the earliest per type."""
    if not isinstance(value, list):
        return []
    earliest: dict[str, datetime] = {}
    for entry in value:
        if isinstance(entry, UnlockedBadge):
            badge_type, unlocked_at = entry.type, entry.unlocked_at
        elif isinstance(entry, dict) and isinstance(entry.get("type"), str) and entry["type"]:
            badge_type = entry["type"]
            raw_time = entry.get("unlocked_at", entry.get("unlockedAt"))
            unlocked_at = coerce_datetime(raw_time) or _EPOCH
        else:
            continue
        if badge_type not in earliest or unlocked_at < earliest[badge_type]:
            earliest[badge_type] = unlocked_at
    return [UnlockedBadge(type=t, unlocked_at=at) for t, at in earliest.items()]


class BadgeProgress(BaseModel):
    """The monotonic set of earned badges."""

    unlocked: Annotated[list[UnlockedBadge], BeforeValidator(_coerce_unlocked)] = Field(
        default_factory=list
    )

    def unlocked_types(self) -> set[str]:
        return {badge.type for badge in self.unlocked}

    def unlocked_at(self, badge_type: str) -> datetime | None:
        for badge in self.unlocked:
            if badge.type == badge_type:
                return badge.unlocked_at
        return None


class NodeRecord(BaseModel):
    """Persisted status of one touched node. Content is never stored."""

    status: Annotated[NodeStatus, BeforeValidator(_coerce_node_status)] = "locked"
    stars_earned: Stars = 0
    best_score: Score = 0.0
    completed_at: OptionalTimestamp = None


def _coerce_node_map(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {
        key: entry
        for key, entry in value.items()
        if isinstance(key, str)
        and parse_node_id(key) is not None
        and isinstance(entry, (dict, NodeRecord))
    }


class ProgressTreeState(BaseModel):
    """Node statuses keyed by ``"level-position"``, plus cursor fields."""

    nodes: Annotated[dict[str, NodeRecord], BeforeValidator(_coerce_node_map)] = Field(
        default_factory=dict
    )
    current_node_id: OptionalNodeId = None
    last_completed_node_id: OptionalNodeId = None


class ChallengeResult(BaseModel):
    """One finished challenge. Immutable once recorded.

    ``is_perfect`` is always derived from the sanitized score; a caller's
    own flag is ignored so the two can never disagree. ``xp_earned`` is
    filled in by the engine when the result is recorded.
    """

    model_config = ConfigDict(frozen=True)

    id: Annotated[str, BeforeValidator(_coerce_id)] = Field(default_factory=lambda: uuid4().hex)
    user_id: Annotated[str, _coerce_text("local")] = "local"
    type: Annotated[str, _coerce_text("unknown")] = "unknown"
    level: Level = 1
    position: Annotated[int | None, BeforeValidator(_coerce_position)] = None
    score: Score = 0.0
    duration_ms: Count = 0
    is_perfect: bool = False
    xp_earned: Count = 0
    timestamp: Timestamp = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _derive_perfect(cls, data: Any) -> Any:
        if isinstance(data, dict):
            score = min(100.0, max(0.0, sanitize_number(data.get("score"))))
            data = {**data, "is_perfect": score >= PERFECT_THRESHOLD}
        return data

    @property
    def passed(self) -> bool:
        return self.score >= PASS_THRESHOLD


class ProgressionSnapshot(BaseModel):
    """Everything the engine knows about one player, as one value.

    The engine never mutates a snapshot in place; every operation returns
    a new one, which is what makes the commit step all-or-nothing.
    """

    user_id: str = "local"
    progress: UserProgress = Field(default_factory=UserProgress)
    hearts: HeartState = Field(default_factory=HeartState)
    skills: SkillTree = Field(default_factory=SkillTree)
    badges: BadgeProgress = Field(default_factory=BadgeProgress)
    tree: ProgressTreeState = Field(default_factory=ProgressTreeState)
    results: list[ChallengeResult] = Field(default_factory=list)

    def result_ids(self) -> set[str]:
        return {result.id for result in self.results}


# ---------------------------------------------------------------------------
# Read-side views (recomputed on read, never persisted)
# ---------------------------------------------------------------------------


class StartCheck(BaseModel):
    """Answer to "may the player start this challenge now?"."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    message: str | None = None


class HeartDisplayState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_hearts: int
    max_hearts: int
    next_regen_at: datetime | None
    is_premium: bool
    phase: HeartPhase


class ProgressSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int
    xp: int
    xp_per_level: int
    xp_to_next: int
    total_xp: int
    streak: int
    longest_streak: int
    bracket: str
    total_sessions_completed: int
    total_challenges_completed: int


class SkillSummary(BaseModel):
    """Base skills plus the read-time composites."""

    model_config = ConfigDict(frozen=True)

    focus: float
    impulse_control: float
    distraction_resistance: float
    memory: float
    breathing: float


class NodeView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    level: int
    position: int
    node_type: NodeType
    challenge_type: str
    status: NodeStatus
    stars_earned: int = 0
    best_score: float = 0.0
    pass_score: int
    xp_reward: int
    test_sequence: list[str] | None = None


class ProgressTreeView(BaseModel):
    model_config = ConfigDict(frozen=True)

    nodes: list[NodeView]
    current_node_id: str | None


class BadgeView(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    name: str
    description: str
    rarity: Rarity
    unlocked: bool
    unlocked_at: datetime | None = None
    current: float
    target: float
    progress_percent: int


class ApplyOutcome(BaseModel):
    """What one ``apply_challenge_result`` call did, for the host UI."""

    model_config = ConfigDict(frozen=True)

    result_id: str
    committed: bool
    duplicate: bool = False
    passed: bool = False
    perfect: bool = False
    xp_awarded: int = 0
    levels_gained: int = 0
    level: int = 1
    heart_lost: bool = False
    heart_gained: bool = False
    hearts_remaining: int = 0
    node_id: str | None = None
    node_status: NodeStatus | None = None
    stars_earned: int = 0
    unlocked_node_ids: list[str] = Field(default_factory=list)
    new_badges: list[str] = Field(default_factory=list)
    session_completed: bool = False


# ---------------------------------------------------------------------------
# API envelope
# ---------------------------------------------------------------------------


class ApiError(BaseModel):
    """Error detail inside ApiResponse.error.

    code is an uppercase string like "VALIDATION_ERROR", "NODE_LOCKED".
    Not an enum — error codes grow with the API.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ApiResponse(BaseModel):
    """Universal response envelope — every API endpoint returns this shape."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: Any | None = None
    error: ApiError | None = None
