"""Tests for focusflow.engine.hearts — losses, lazy regeneration, start gate."""

import logging
from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest

from focusflow.constants import OUT_OF_HEARTS_MESSAGE
from focusflow.engine.hearts import HeartEconomy
from focusflow.schemas import HeartState

HOUR = timedelta(hours=1)
MINUTE = timedelta(minutes=1)


@pytest.fixture
def economy() -> HeartEconomy:
    return HeartEconomy()


def _drained(economy, now, count):
    state = HeartState()
    for i in range(count):
        state, _ = economy.lose_heart(state, now, reason="exercise_fail", result_id=f"r{i}")
    return state


class TestLoseHeart:
    def test_first_loss_starts_regen_clock(self, economy, now) -> None:
        state, lost = economy.lose_heart(HeartState(), now, reason="exercise_fail", result_id="r1")
        assert lost is True
        assert state.current_hearts == 4
        assert state.last_lost_at == now
        assert state.next_regen_at == now + 4 * HOUR
        assert state.total_hearts_lost == 1

    def test_later_loss_keeps_existing_anchor(self, economy, now) -> None:
        state, _ = economy.lose_heart(HeartState(), now, reason="exercise_fail")
        state, _ = economy.lose_heart(state, now + HOUR, reason="test_fail")
        assert state.current_hearts == 3
        assert state.next_regen_at == now + 4 * HOUR

    def test_same_result_id_charged_once(self, economy, now) -> None:
        state, first = economy.lose_heart(HeartState(), now, reason="exercise_fail", result_id="r1")
        state, second = economy.lose_heart(state, now, reason="exercise_fail", result_id="r1")
        assert (first, second) == (True, False)
        assert state.current_hearts == 4

    def test_loss_at_zero_is_noop(self, economy, now) -> None:
        empty = _drained(economy, now, 5)
        assert empty.current_hearts == 0
        state, lost = economy.lose_heart(empty, now, reason="exercise_fail", result_id="extra")
        assert lost is False
        assert state.current_hearts == 0

    def test_premium_is_never_charged(self, economy, now) -> None:
        state, lost = economy.lose_heart(
            HeartState(), now, reason="exercise_fail", result_id="r1", is_premium=True
        )
        assert lost is False
        assert state.current_hearts == 5

    def test_loss_resets_perfect_streak(self, economy, now) -> None:
        state = HeartState(perfect_streak_count=2)
        state, _ = economy.lose_heart(state, now, reason="wrong_tap")
        assert state.perfect_streak_count == 0

    def test_charged_ids_are_bounded(self, economy, now) -> None:
        state = HeartState(charged_result_ids=[f"old-{i}" for i in range(50)])
        state, _ = economy.lose_heart(state, now, reason="exercise_fail", result_id="new")
        assert len(state.charged_result_ids) == 50
        assert state.charged_result_ids[-1] == "new"
        assert "old-0" not in state.charged_result_ids


class TestTick:
    def test_full_pool_unchanged(self, economy, now) -> None:
        state = HeartState()
        assert economy.tick(state, now + 100 * HOUR) is state

    def test_before_anchor_nothing_regenerates(self, economy, now) -> None:
        state = _drained(economy, now, 1)
        assert economy.tick(state, now + 3 * HOUR + timedelta(minutes=59)).current_hearts == 4

    def test_one_interval_refills_one_heart(self, economy, now) -> None:
        state = economy.tick(_drained(economy, now, 1), now + 4 * HOUR)
        assert state.current_hearts == 5
        assert state.next_regen_at is None
        assert state.total_hearts_gained == 1

    def test_multiple_intervals_keep_partial_progress(self, economy, now) -> None:
        state = economy.tick(_drained(economy, now, 3), now + 9 * HOUR)
        assert state.current_hearts == 4
        assert state.next_regen_at == now + 12 * HOUR

    def test_never_exceeds_capacity(self, economy, now) -> None:
        state = economy.tick(_drained(economy, now, 5), now + 1000 * HOUR)
        assert state.current_hearts == 5

    def test_tick_is_idempotent_for_same_instant(self, economy, now) -> None:
        later = now + 9 * HOUR
        once = economy.tick(_drained(economy, now, 3), later)
        assert economy.tick(once, later) == once

    def test_missing_anchor_counts_from_last_loss(self, economy, now) -> None:
        state = HeartState(current_hearts=2, last_lost_at=now - 9 * HOUR)
        ticked = economy.tick(state, now)
        assert ticked.current_hearts == 4
        assert economy.tick(ticked, now) == ticked


class TestMidnightRefill:
    def test_next_local_day_refills_the_pool(self, economy, now) -> None:
        # Drained at noon; by 00:30 interval regeneration alone gives back 3.
        state = economy.tick(_drained(economy, now, 5), now + 12 * HOUR + 30 * MINUTE)
        assert state.current_hearts == 5
        assert state.next_regen_at is None
        assert state.total_hearts_gained == 5

    def test_same_day_only_regenerates(self, economy, now) -> None:
        state = economy.tick(_drained(economy, now, 5), now + 11 * HOUR + 59 * MINUTE)
        assert state.current_hearts == 2

    def test_refill_is_idempotent(self, economy, now) -> None:
        later = now + 13 * HOUR
        once = economy.tick(_drained(economy, now, 5), later)
        assert economy.tick(once, later) is once

    def test_loss_after_refill_waits_for_the_next_midnight(self, economy, now) -> None:
        tomorrow = now + 24 * HOUR
        state = economy.tick(_drained(economy, now, 5), tomorrow)
        state, _ = economy.lose_heart(state, tomorrow, reason="exercise_fail", result_id="late")
        assert economy.tick(state, tomorrow + 2 * HOUR).current_hearts == 4

    def test_midnight_follows_the_economy_timezone(self, now) -> None:
        # 02:00 UTC on the 11th is still 22:00 on the 10th in New York.
        instant = now + 14 * HOUR
        utc = HeartEconomy()
        new_york = HeartEconomy(tz=ZoneInfo("America/New_York"))
        assert utc.tick(_drained(utc, now, 5), instant).current_hearts == 5
        assert new_york.tick(_drained(new_york, now, 5), instant).current_hearts == 3

    def test_unknown_loss_time_is_not_refilled(self, economy, now) -> None:
        state = HeartState(current_hearts=2, next_regen_at=now + 20 * HOUR)
        assert economy.tick(state, now + 13 * HOUR).current_hearts == 2

    def test_can_be_switched_off(self, now) -> None:
        economy = HeartEconomy(midnight_refill=False)
        state = economy.tick(_drained(economy, now, 5), now + 12 * HOUR + 30 * MINUTE)
        assert state.current_hearts == 3


class TestCanStart:
    def test_no_hearts_blocks_start(self, economy, now) -> None:
        check = economy.can_start(HeartState(current_hearts=0), now)
        assert check.allowed is False
        assert check.reason == "no_hearts"
        assert check.message == OUT_OF_HEARTS_MESSAGE

    def test_tests_report_their_own_reason(self, economy, now) -> None:
        check = economy.can_start(HeartState(current_hearts=0), now, is_test=True)
        assert (check.allowed, check.reason) == (False, "test_no_hearts")

    def test_premium_always_allowed(self, economy, now) -> None:
        assert economy.can_start(HeartState(current_hearts=0), now, is_premium=True).allowed is True

    def test_regenerated_heart_allows_start(self, economy, now) -> None:
        empty = _drained(economy, now, 5)
        assert economy.can_start(empty, now).allowed is False
        assert economy.can_start(empty, now + 4 * HOUR).allowed is True


class TestPerfectStreak:
    def test_third_perfect_in_a_row_earns_a_heart(self, economy, now) -> None:
        state = _drained(economy, now, 1)
        gains = []
        for _ in range(3):
            state, gained = economy.record_outcome(state, now, perfect=True)
            gains.append(gained)
        assert gains == [False, False, True]
        assert state.current_hearts == 5
        assert state.perfect_streak_count == 0

    def test_non_perfect_pass_resets_counter(self, economy, now) -> None:
        state, _ = economy.record_outcome(HeartState(), now, perfect=True)
        state, _ = economy.record_outcome(state, now, perfect=False)
        assert state.perfect_streak_count == 0

    def test_full_pool_gains_nothing(self, economy, now) -> None:
        state = HeartState(perfect_streak_count=2)
        state, gained = economy.record_outcome(state, now, perfect=True)
        assert gained is False
        assert state.current_hearts == 5

    def test_premium_gains_nothing(self, economy, now) -> None:
        state = _drained(economy, now, 1).model_copy(update={"perfect_streak_count": 2})
        state, gained = economy.record_outcome(state, now, perfect=True, is_premium=True)
        assert gained is False
        assert state.current_hearts == 4


class TestDisplay:
    def test_phases(self, economy, now) -> None:
        assert economy.phase(HeartState()) == "full"
        assert economy.phase(_drained(economy, now, 2)) == "depleting"
        assert economy.phase(_drained(economy, now, 5)) == "empty"
        regenerating = economy.tick(_drained(economy, now, 2), now + 4 * HOUR)
        assert economy.phase(regenerating) == "regenerating"

    def test_display_applies_regeneration(self, economy, now) -> None:
        view = economy.display(_drained(economy, now, 2), now + 4 * HOUR, is_premium=True)
        assert view.current_hearts == 4
        assert view.max_hearts == 5
        assert view.next_regen_at == now + 8 * HOUR
        assert view.is_premium is True

    def test_normalize_shrinks_to_configured_capacity(self, now) -> None:
        small = HeartEconomy(max_hearts=3)
        state = small.normalize(HeartState())
        assert (state.current_hearts, state.max_hearts) == (3, 3)

    def test_duplicate_charge_is_logged(self, economy, now, caplog) -> None:
        state, _ = economy.lose_heart(HeartState(), now, reason="exercise_fail", result_id="r1")
        with caplog.at_level(logging.INFO, logger="focusflow.engine.hearts"):
            economy.lose_heart(state, now, reason="exercise_fail", result_id="r1")
        assert any("r1" in r.message for r in caplog.records)
