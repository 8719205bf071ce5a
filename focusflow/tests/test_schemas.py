"""Tests for focusflow.schemas — record repair, derived fields, node ids."""

import math
from datetime import date, datetime, timezone

import pytest

from focusflow.constants import MAX_HEARTS
from focusflow.schemas import (
    ApiError,
    ApiResponse,
    BadgeProgress,
    ChallengeResult,
    HeartState,
    NodeRecord,
    ProgressTreeState,
    SkillTree,
    UserProgress,
    coerce_datetime,
    node_id,
    parse_node_id,
    sanitize_number,
)


class TestSanitizeNumber:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (7, 7.0),
            (2.5, 2.5),
            ("12.5", 12.5),
            (" 3 ", 3.0),
            (None, 0.0),
            (True, 0.0),
            (float("nan"), 0.0),
            (float("inf"), 0.0),
            ("fast", 0.0),
            ([1], 0.0),
        ],
    )
    def test_values(self, value, expected) -> None:
        assert sanitize_number(value) == expected

    def test_custom_default(self) -> None:
        assert sanitize_number(None, 5) == 5


class TestCoerceDatetime:
    def test_naive_iso_is_utc(self) -> None:
        assert coerce_datetime("2026-03-10T08:30:00") == datetime(2026, 3, 10, 8, 30, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self) -> None:
        assert coerce_datetime(1_700_000_000_000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "yesterday", float("nan"), {"at": 1}])
    def test_unparseable_is_none(self, value) -> None:
        assert coerce_datetime(value) is None


class TestUserProgress:
    def test_garbage_fields_fall_back_to_defaults(self) -> None:
        progress = UserProgress.model_validate(
            {"level": "abc", "xp": -5, "streak": None, "total_xp": math.nan, "is_premium": "yes"}
        )
        assert progress.level == 1
        assert progress.xp == 0
        assert progress.streak == 0
        assert progress.total_xp == 0
        assert progress.is_premium is False

    def test_numeric_strings_are_accepted(self) -> None:
        assert UserProgress.model_validate({"level": "4", "xp": "12"}).level == 4

    def test_longest_streak_covers_current(self) -> None:
        assert UserProgress(streak=5, longest_streak=2).longest_streak == 5

    def test_last_active_day_from_datetime_string(self) -> None:
        progress = UserProgress.model_validate({"last_active_day": "2026-03-09T23:10:00Z"})
        assert progress.last_active_day == date(2026, 3, 9)

    def test_unknown_keys_are_ignored(self) -> None:
        assert UserProgress.model_validate({"level": 2, "legacyField": 1}).level == 2


class TestHeartState:
    def test_defaults_to_full(self) -> None:
        state = HeartState()
        assert state.current_hearts == MAX_HEARTS
        assert state.next_regen_at is None

    @pytest.mark.parametrize(("value", "expected"), [(99, MAX_HEARTS), (-3, 0), ("lots", MAX_HEARTS)])
    def test_current_hearts_clamped(self, value, expected) -> None:
        assert HeartState.model_validate({"current_hearts": value}).current_hearts == expected

    def test_charged_ids_keep_strings_only(self) -> None:
        state = HeartState.model_validate({"charged_result_ids": ["a", 3, None, "", "b"]})
        assert state.charged_result_ids == ["a", "b"]


class TestSkillTree:
    def test_values_clamped_to_percent(self) -> None:
        skills = SkillTree.model_validate({"focus": 140, "impulse_control": -2, "distraction_resistance": "x"})
        assert skills.focus == 100.0
        assert skills.impulse_control == 0.0
        assert skills.distraction_resistance == 0.0


class TestChallengeResult:
    def test_perfect_is_derived_from_score(self) -> None:
        assert ChallengeResult(score=96, is_perfect=False).is_perfect is True
        assert ChallengeResult(score=94.9, is_perfect=True).is_perfect is False

    def test_score_is_clamped(self) -> None:
        result = ChallengeResult(score=150)
        assert result.score == 100.0
        assert result.is_perfect is True

    def test_nan_score_is_zero(self) -> None:
        result = ChallengeResult(score=float("nan"))
        assert result.score == 0.0
        assert result.passed is False

    @pytest.mark.parametrize(("score", "passed"), [(79.99, False), (80, True), (100, True)])
    def test_passed_threshold(self, score, passed) -> None:
        assert ChallengeResult(score=score).passed is passed

    def test_missing_id_gets_generated(self) -> None:
        first, second = ChallengeResult(id=None), ChallengeResult(id="  ")
        assert first.id and second.id
        assert first.id != second.id

    def test_negative_position_means_unspecified(self) -> None:
        assert ChallengeResult(position=-1).position is None

    def test_results_are_frozen(self) -> None:
        result = ChallengeResult(score=80)
        with pytest.raises(Exception):
            result.score = 10


class TestNodeIds:
    def test_round_trip(self) -> None:
        assert node_id(5, 1) == "5-1"
        assert parse_node_id("5-1") == (5, 1)

    @pytest.mark.parametrize("value", ["0-1", "x", "5-", "-1-0", "5-1-2"])
    def test_malformed(self, value) -> None:
        assert parse_node_id(value) is None


class TestBadgeProgress:
    def test_repair_keeps_earliest_per_type_and_drops_junk(self) -> None:
        badges = BadgeProgress.model_validate(
            {
                "unlocked": [
                    {"type": "first_focus", "unlockedAt": "2026-01-02T00:00:00Z"},
                    {"type": "first_focus", "unlocked_at": "2026-01-01T00:00:00+00:00"},
                    "junk",
                    {"no": "type"},
                    {"type": "level_2", "unlocked_at": "not a time"},
                ]
            }
        )
        assert badges.unlocked_types() == {"first_focus", "level_2"}
        assert badges.unlocked_at("first_focus") == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert badges.unlocked_at("level_2") == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_non_list_becomes_empty(self) -> None:
        assert BadgeProgress.model_validate({"unlocked": "all"}).unlocked == []


class TestProgressTreeState:
    def test_bad_keys_and_entries_are_dropped(self) -> None:
        tree = ProgressTreeState.model_validate(
            {
                "nodes": {"1-0": {"status": "bogus"}, "bad": {"status": "completed"}, "2-0": 5},
                "current_node_id": "nowhere",
            }
        )
        assert list(tree.nodes) == ["1-0"]
        assert tree.nodes["1-0"] == NodeRecord(status="locked")
        assert tree.current_node_id is None

    def test_stars_clamped(self) -> None:
        assert NodeRecord.model_validate({"status": "completed", "stars_earned": 7}).stars_earned == 3


class TestApiResponse:
    def test_error_envelope(self) -> None:
        response = ApiResponse(ok=False, error=ApiError(code="NODE_LOCKED", message="Locked."))
        assert response.model_dump() == {
            "ok": False,
            "data": None,
            "error": {"code": "NODE_LOCKED", "message": "Locked."},
        }
