"""Shared progression test fixtures.

Factory-pattern fixtures that return callables accepting **overrides, so
each test states only the fields it cares about.

Fixtures:
    now: Fixed, timezone-aware wall-clock instant
    engine: ProgressionEngine with default rules (UTC, tests every 25 levels)
    make_result: Factory for ChallengeResult instances
    make_snapshot: Factory for repaired ProgressionSnapshot instances
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from focusflow.engine.progression import ProgressionEngine
from focusflow.schemas import (
    BadgeProgress,
    ChallengeResult,
    HeartState,
    ProgressionSnapshot,
    ProgressTreeState,
    SkillTree,
    UserProgress,
)


@pytest.fixture
def now() -> datetime:
    """Tuesday 10 March 2026, noon UTC."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine() -> ProgressionEngine:
    return ProgressionEngine()


# ---------------------------------------------------------------------------
# ChallengeResult factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_result(now):
    """Returns a factory for ChallengeResult instances.

    Defaults describe a passing (85) attempt at node 1-0 with a unique id,
    timestamped at ``now``.
    """

    def _make(**overrides) -> ChallengeResult:
        defaults = {
            "id": f"result-{uuid4().hex[:8]}",
            "user_id": "player-1",
            "type": "gaze_hold",
            "level": 1,
            "position": 0,
            "score": 85,
            "duration_ms": 20_000,
            "timestamp": now,
        }
        defaults.update(overrides)
        return ChallengeResult(**defaults)

    return _make


# ---------------------------------------------------------------------------
# ProgressionSnapshot factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_snapshot(engine):
    """Returns a factory for snapshots, repaired the way a load would be.

    Record overrides may be models or plain dicts:
        make_snapshot(progress={"level": 3, "xp": 95})
    """

    models = {
        "progress": UserProgress,
        "hearts": HeartState,
        "skills": SkillTree,
        "badges": BadgeProgress,
        "tree": ProgressTreeState,
    }

    def _make(**overrides) -> ProgressionSnapshot:
        fields = {"user_id": overrides.pop("user_id", "player-1")}
        for name, model in models.items():
            value = overrides.pop(name, None)
            if isinstance(value, dict):
                value = model.model_validate(value)
            if value is not None:
                fields[name] = value
        fields.update(overrides)
        return engine.repair(ProgressionSnapshot(**fields))

    return _make
