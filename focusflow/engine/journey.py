"""Journey level generator — deterministic content for levels 1..250.

The journey is split into ten realms of REALM_SIZE levels each. A realm owns
a themed pool of activities; a level draws a rotating window from its
realm's pool and scales duration and XP by how deep into the journey it
sits. Every ``test_every`` levels the player also faces an endurance test
that strings together the activity types met since the previous test.

Generation is a pure function of (level, player level, test cadence). The
progress tree persists node *status* only and asks this module for content,
so tuning a pool never invalidates saved progress.

Tier 2 engine module: imports from focusflow.constants only.

Usage:
    from focusflow.engine.journey import JourneyLevelGenerator

    generator = JourneyLevelGenerator(test_every=25)
    level = generator.level_for(30, user_current_level=42)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from focusflow.constants import (
    CATCH_UP_FLOOR,
    CATCH_UP_STEP,
    DEFAULT_TEST_EVERY,
    MAX_JOURNEY_LEVEL,
    PASS_THRESHOLD,
    REALM_SIZE,
    TEST_DURATION_FACTOR,
    TEST_SEQUENCE_MAX,
    TEST_SEQUENCE_MIN,
    TEST_XP_FACTOR,
)

ActivityCategory = Literal["challenge", "exercise"]


# ---------------------------------------------------------------------------
# Static content
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActivityTemplate:
    """Unscaled activity definition inside a realm pool."""

    type: str
    name: str
    category: ActivityCategory
    base_duration: int  # seconds
    base_xp: int


@dataclass(frozen=True)
class Realm:
    id: str
    name: str
    description: str
    activity_count: int
    pool: tuple[ActivityTemplate, ...]


def _a(type_: str, name: str, category: ActivityCategory, duration: int, xp: int) -> ActivityTemplate:
    return ActivityTemplate(type_, name, category, duration, xp)


REALMS: tuple[Realm, ...] = (
    Realm("awakening", "Awakening", "Learn to notice where your attention goes.", 2, (
        _a("gaze_hold", "Gaze Hold", "challenge", 15, 10),
        _a("focus_hold", "Focus Hold", "challenge", 15, 10),
        _a("slow_breathing", "Slow Breathing", "exercise", 20, 12),
    )),
    Realm("breath", "Breath", "Anchor attention to the breath.", 2, (
        _a("breath_pacing", "Breath Pacing", "exercise", 20, 12),
        _a("box_breathing", "Box Breathing", "exercise", 25, 15),
        _a("controlled_breathing", "Controlled Breathing", "exercise", 25, 15),
        _a("rhythm_tap", "Rhythm Tap", "challenge", 20, 12),
    )),
    Realm("stillness", "Stillness", "Hold still while the urge to move passes.", 2, (
        _a("stillness_test", "Stillness Test", "challenge", 25, 15),
        _a("finger_hold", "Finger Hold", "challenge", 20, 12),
        _a("body_scan", "Body Scan", "exercise", 30, 18),
        _a("slow_tracking", "Slow Tracking", "challenge", 25, 15),
    )),
    Realm("clarity", "Clarity", "Sharpen selective attention.", 3, (
        _a("tap_only_correct", "Tap Correct", "challenge", 25, 15),
        _a("memory_flash", "Memory Flash", "challenge", 30, 18),
        _a("multi_object_tracking", "Track Objects", "challenge", 30, 18),
        _a("five_senses", "Five Senses", "exercise", 35, 20),
    )),
    Realm("flow", "Flow", "Stay with a moving target.", 3, (
        _a("finger_tracing", "Finger Tracing", "challenge", 30, 18),
        _a("moving_target", "Moving Target", "challenge", 30, 18),
        _a("calm_visual", "Calm Visual", "exercise", 35, 20),
        _a("slow_tracking", "Precision Track", "challenge", 35, 20),
    )),
    Realm("discipline", "Discipline", "Delay the reach for the phone.", 4, (
        _a("reaction_inhibition", "Stop Signal", "challenge", 30, 20),
        _a("delay_unlock", "Delay Unlock", "challenge", 35, 22),
        _a("urge_surfing", "Urge Surfing", "exercise", 40, 25),
        _a("impulse_delay", "Impulse Delay", "challenge", 35, 22),
    )),
    Realm("resilience", "Resilience", "Ignore what pings for attention.", 4, (
        _a("fake_notifications", "Ignore Alerts", "challenge", 35, 22),
        _a("popup_ignore", "Popup Ignore", "challenge", 35, 22),
        _a("distraction_log", "Distraction Log", "exercise", 40, 25),
        _a("focus_hold", "Deep Focus", "challenge", 40, 25),
    )),
    Realm("insight", "Insight", "Watch thoughts without following them.", 5, (
        _a("memory_flash", "Memory Master", "challenge", 40, 25),
        _a("tap_pattern", "Tap Pattern", "challenge", 40, 25),
        _a("thought_reframe", "Thought Reframe", "exercise", 45, 28),
        _a("self_inquiry", "Self Inquiry", "exercise", 45, 28),
        _a("multi_object_tracking", "Advanced Track", "challenge", 45, 28),
    )),
    Realm("ascension", "Ascension", "Hold focus under pressure.", 5, (
        _a("multi_task_tap", "Multi Task", "challenge", 45, 30),
        _a("impulse_spike_test", "Impulse Spike", "challenge", 45, 30),
        _a("focus_sprint", "Focus Sprint", "exercise", 50, 32),
        _a("reaction_inhibition", "Fast Stop", "challenge", 45, 30),
        _a("memory_flash", "Speed Memory", "challenge", 50, 32),
    )),
    Realm("absolute", "Absolute", "Everything at once, calmly.", 6, (
        _a("multi_task_tap", "Multi Mastery", "challenge", 50, 35),
        _a("impulse_spike_test", "Impulse Master", "challenge", 50, 35),
        _a("mental_reset", "Mental Reset", "exercise", 55, 38),
        _a("intent_setting", "Intent Setting", "exercise", 55, 38),
        _a("tap_pattern", "Pattern Master", "challenge", 55, 38),
        _a("stillness_test", "Ultimate Still", "challenge", 60, 40),
    )),
)


def _index_templates() -> dict[str, ActivityTemplate]:
    """Realm-independent lookup by type; the first definition of a type wins."""
    index: dict[str, ActivityTemplate] = {}
    for realm in REALMS:
        for template in realm.pool:
            index.setdefault(template.type, template)
    return index


_TEMPLATES_BY_TYPE = _index_templates()

MAX_ACTIVITIES_PER_LEVEL = 6
LATE_REALM_BONUS_FROM = 20


# ---------------------------------------------------------------------------
# Generated content
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JourneyActivity:
    type: str
    name: str
    category: ActivityCategory
    duration_seconds: int
    xp_reward: int
    difficulty: int


@dataclass(frozen=True)
class JourneyTest:
    """Endurance test closing a band of levels."""

    level: int
    name: str
    sequence: tuple[str, ...]
    activities: tuple[JourneyActivity, ...]
    pass_score: int
    duration_seconds: int
    xp_reward: int


@dataclass(frozen=True)
class JourneyLevel:
    level: int
    realm_index: int
    realm_id: str
    realm_name: str
    level_in_realm: int
    difficulty: int
    catch_up_factor: float
    activities: tuple[JourneyActivity, ...]
    test: JourneyTest | None
    duration_seconds: int
    xp_reward: int


class JourneyLevelGenerator:
    """Pure generator of per-level journey content.

    Args:
        test_every: Test cadence in levels (1 = a test on every level).
        max_level: Last level of the journey; requests beyond it clamp.
        realm_size: Levels per realm.
    """

    def __init__(
        self,
        test_every: int = DEFAULT_TEST_EVERY,
        max_level: int = MAX_JOURNEY_LEVEL,
        realm_size: int = REALM_SIZE,
    ) -> None:
        self.test_every = max(1, test_every)
        self.max_level = max_level
        self.realm_size = realm_size

    # -- Level arithmetic --------------------------------------------------

    def clamp_level(self, level: int) -> int:
        return min(self.max_level, max(1, level))

    def realm_index(self, level: int) -> int:
        return min(len(REALMS) - 1, (self.clamp_level(level) - 1) // self.realm_size)

    def level_in_realm(self, level: int) -> int:
        return (self.clamp_level(level) - 1) % self.realm_size + 1

    def is_test_level(self, level: int) -> bool:
        return level % self.test_every == 0

    def difficulty(self, level: int) -> int:
        """1..10; rises with the realm and every ten levels inside it."""
        steps = self.level_in_realm(level) // 5
        return min(10, self.realm_index(level) + 1 + steps // 2)

    def scale(self, level: int) -> float:
        """Duration/XP multiplier: +10% per realm, up to +40% across a realm."""
        return 1.0 + self.realm_index(level) * 0.1 + (self.level_in_realm(level) / self.realm_size) * 0.4

    @staticmethod
    def catch_up_factor(level: int, user_current_level: int | None) -> float:
        """Shrinks levels the player has already outgrown."""
        if user_current_level is None or user_current_level <= level:
            return 1.0
        return max(CATCH_UP_FLOOR, 1.0 - CATCH_UP_STEP * (user_current_level - level))

    def pass_score(self, level: int) -> int:
        """Test pass mark: 70 + 2 per realm, never below the normal pass line."""
        return max(PASS_THRESHOLD, 70 + 2 * self.realm_index(level))

    # -- Generation --------------------------------------------------------

    def level_for(self, level_number: int, user_current_level: int | None = None) -> JourneyLevel:
        """Builds the content of one level.

        Args:
            level_number: Journey level; clamped to [1, max_level].
            user_current_level: The player's own level, for catch-up scaling.
                None disables catch-up.

        Returns:
            A frozen JourneyLevel. Equal inputs always give equal output.
        """
        level = self.clamp_level(level_number)
        realm = REALMS[self.realm_index(level)]
        factor = self.catch_up_factor(level, user_current_level)

        activities = self._activities(level, factor)
        test = self._test(level, factor) if self.is_test_level(level) else None

        duration = sum(a.duration_seconds for a in activities)
        xp = sum(a.xp_reward for a in activities)
        if test is not None:
            duration += test.duration_seconds
            xp += test.xp_reward

        return JourneyLevel(
            level=level,
            realm_index=self.realm_index(level),
            realm_id=realm.id,
            realm_name=realm.name,
            level_in_realm=self.level_in_realm(level),
            difficulty=self.difficulty(level),
            catch_up_factor=factor,
            activities=activities,
            test=test,
            duration_seconds=duration,
            xp_reward=xp,
        )

    def activity_types(self, level: int) -> tuple[str, ...]:
        """Exercise types of a level in node order (content only, no scaling)."""
        return tuple(template.type for template in self._templates(self.clamp_level(level)))

    def _templates(self, level: int) -> list[ActivityTemplate]:
        realm = REALMS[self.realm_index(level)]
        in_realm = self.level_in_realm(level)
        count = realm.activity_count + (1 if in_realm >= LATE_REALM_BONUS_FROM else 0)
        count = min(MAX_ACTIVITIES_PER_LEVEL, count)
        pool = realm.pool
        return [pool[(in_realm - 1 + i) % len(pool)] for i in range(count)]

    def _activities(self, level: int, factor: float) -> tuple[JourneyActivity, ...]:
        scale = self.scale(level) * factor
        difficulty = self.difficulty(level)
        return tuple(
            JourneyActivity(
                type=template.type,
                name=template.name,
                category=template.category,
                duration_seconds=max(1, round(template.base_duration * scale)),
                xp_reward=max(1, round(template.base_xp * scale)),
                difficulty=difficulty,
            )
            for template in self._templates(level)
        )

    def test_sequence(self, level: int) -> tuple[str, ...]:
        """Distinct activity types met in the band this test closes.

        Keeps the most recent TEST_SEQUENCE_MAX types; pads short bands
        from the realm pool, then by cycling, up to TEST_SEQUENCE_MIN.
        """
        level = self.clamp_level(level)
        first = max(1, level - self.test_every + 1)
        seen: list[str] = []
        for band_level in range(first, level + 1):
            for type_ in self.activity_types(band_level):
                if type_ in seen:
                    seen.remove(type_)
                seen.append(type_)
        sequence = seen[-TEST_SEQUENCE_MAX:]

        for template in REALMS[self.realm_index(level)].pool:
            if len(sequence) >= TEST_SEQUENCE_MIN:
                break
            if template.type not in sequence:
                sequence.append(template.type)
        cycle_from = list(sequence)
        i = 0
        while len(sequence) < TEST_SEQUENCE_MIN:
            sequence.append(cycle_from[i % len(cycle_from)])
            i += 1
        return tuple(sequence)

    def _test(self, level: int, factor: float) -> JourneyTest:
        realm = REALMS[self.realm_index(level)]
        pool_by_type = {template.type: template for template in realm.pool}
        scale = self.scale(level) * factor
        difficulty = self.difficulty(level)

        activities = []
        for type_ in self.test_sequence(level):
            template = pool_by_type.get(type_) or _TEMPLATES_BY_TYPE[type_]
            activities.append(
                JourneyActivity(
                    type=template.type,
                    name=template.name,
                    category=template.category,
                    duration_seconds=max(1, round(template.base_duration * TEST_DURATION_FACTOR * scale)),
                    xp_reward=max(1, round(template.base_xp * TEST_XP_FACTOR * scale)),
                    difficulty=difficulty,
                )
            )

        return JourneyTest(
            level=level,
            name=f"{realm.name} Endurance Test",
            sequence=tuple(a.type for a in activities),
            activities=tuple(activities),
            pass_score=self.pass_score(level),
            duration_seconds=sum(a.duration_seconds for a in activities),
            xp_reward=sum(a.xp_reward for a in activities),
        )
