"""Heart economy — the lives pool, its losses, and lazy regeneration.

Hearts regenerate as a pure function of wall-clock time. Nothing schedules
a timer: ``tick(state, now)`` folds every whole regen interval that has
elapsed since the ``next_regen_at`` anchor into the pool, and every other
operation ticks first. Calling ``tick`` twice with the same ``now`` is a
no-op the second time.

The pool also refills completely at local midnight: a pool that is still
short on the first tick of a later calendar day (in the economy's
timezone) than its last loss is topped up to capacity.

Lifecycle of a non-premium pool::

    full ──lose──▶ depleting ──lose──▶ empty (blocks start)
      ▲                                   │
      └──────── regenerating ◀── tick ────┘

Premium players always pass ``can_start``; their pool is shown but never
charged.

Tier 2 engine module: imports from focusflow.schemas and focusflow.constants.

Usage:
    from focusflow.engine.hearts import HeartEconomy

    economy = HeartEconomy()
    state, lost = economy.lose_heart(state, now, reason="test_fail", result_id=r.id)
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone, tzinfo

from focusflow.constants import (
    CHARGED_RESULT_MEMORY,
    MAX_HEARTS,
    OUT_OF_HEARTS_MESSAGE,
    PERFECT_STREAK_FOR_HEART,
    REGEN_INTERVAL,
)
from focusflow.schemas import HeartDisplayState, HeartLossReason, HeartPhase, HeartState, StartCheck

logger = logging.getLogger("focusflow.engine.hearts")


class HeartEconomy:
    """Applies heart rules to immutable HeartState values.

    Every method returns a new HeartState (or a view); inputs are never
    mutated.
    """

    def __init__(
        self,
        max_hearts: int = MAX_HEARTS,
        regen_interval: timedelta = REGEN_INTERVAL,
        perfect_streak_for_heart: int = PERFECT_STREAK_FOR_HEART,
        tz: tzinfo = timezone.utc,
        midnight_refill: bool = True,
    ) -> None:
        self.max_hearts = max_hearts
        self.regen_interval = regen_interval
        self.perfect_streak_for_heart = perfect_streak_for_heart
        self.tz = tz
        self.midnight_refill = midnight_refill

    # -- Regeneration ------------------------------------------------------

    def normalize(self, state: HeartState) -> HeartState:
        """Aligns a loaded state with the configured capacity."""
        if state.max_hearts == self.max_hearts and state.current_hearts <= self.max_hearts:
            return state
        current = min(state.current_hearts, self.max_hearts)
        return state.model_copy(
            update={
                "max_hearts": self.max_hearts,
                "current_hearts": current,
                "next_regen_at": None if current >= self.max_hearts else state.next_regen_at,
            }
        )

    def tick(self, state: HeartState, now: datetime) -> HeartState:
        """Folds elapsed regeneration into the pool.

        Equivalent to ``min(max, current + floor((now - last_lost_at) /
        interval))``, computed from an anchor that advances by whole
        intervals so partial progress toward the next heart is kept.

        Args:
            state: Current heart state.
            now: Wall-clock instant (timezone-aware).

        Returns:
            The state as of ``now``. Same object if nothing changed.
        """
        state = self._refill_at_midnight(state, now)
        if state.current_hearts >= state.max_hearts:
            if state.next_regen_at is None:
                return state
            return state.model_copy(update={"next_regen_at": None})

        anchor = state.next_regen_at
        if anchor is None:
            # Below capacity with no anchor (repaired or legacy record):
            # start the clock from the last loss, or from now.
            anchor = (state.last_lost_at or now) + self.regen_interval
            state = state.model_copy(update={"next_regen_at": anchor})

        if now < anchor:
            return state

        earned = 1 + (now - anchor) // self.regen_interval
        hearts = min(state.max_hearts, state.current_hearts + earned)
        gained = hearts - state.current_hearts
        next_regen_at = None if hearts >= state.max_hearts else anchor + earned * self.regen_interval

        return state.model_copy(
            update={
                "current_hearts": hearts,
                "next_regen_at": next_regen_at,
                "last_regen_at": anchor + (earned - 1) * self.regen_interval,
                "total_hearts_gained": state.total_hearts_gained + gained,
            }
        )

    def _refill_at_midnight(self, state: HeartState, now: datetime) -> HeartState:
        """Tops the pool up if a local midnight passed since the last loss.

        A pool with no recorded loss is left to interval regeneration.
        """
        if not self.midnight_refill or state.last_lost_at is None:
            return state
        if state.current_hearts >= state.max_hearts:
            return state

        today = now.astimezone(self.tz).date()
        if state.last_lost_at.astimezone(self.tz).date() >= today:
            return state

        refilled = state.max_hearts - state.current_hearts
        logger.debug("Midnight refill: +%d hearts", refilled)
        return state.model_copy(
            update={
                "current_hearts": state.max_hearts,
                "next_regen_at": None,
                "last_regen_at": datetime.combine(today, time.min, tzinfo=self.tz),
                "total_hearts_gained": state.total_hearts_gained + refilled,
            }
        )

    # -- Start gate --------------------------------------------------------

    def can_start(
        self,
        state: HeartState,
        now: datetime,
        *,
        is_test: bool = False,
        is_premium: bool = False,
    ) -> StartCheck:
        """Decides whether a challenge (or test) may begin.

        Tests are gated by the same rule as exercises; ``is_test`` only
        changes the reason reported.
        """
        if is_premium:
            return StartCheck(allowed=True)

        current = self.tick(state, now)
        if current.current_hearts > 0:
            return StartCheck(allowed=True)

        return StartCheck(
            allowed=False,
            reason="test_no_hearts" if is_test else "no_hearts",
            message=OUT_OF_HEARTS_MESSAGE,
        )

    # -- Loss and gain -----------------------------------------------------

    def lose_heart(
        self,
        state: HeartState,
        now: datetime,
        *,
        reason: HeartLossReason,
        result_id: str | None = None,
        is_premium: bool = False,
    ) -> tuple[HeartState, bool]:
        """Charges one heart.

        No-op at zero hearts, for premium players, and for a result id that
        was already charged.

        Returns:
            (new state, whether a heart was actually removed).
        """
        state = self.tick(state, now)

        if result_id is not None and result_id in state.charged_result_ids:
            logger.info("Heart already charged for result %s, skipping", result_id)
            return state, False

        if is_premium or state.current_hearts <= 0:
            return state, False

        charged = list(state.charged_result_ids)
        if result_id is not None:
            charged = (charged + [result_id])[-CHARGED_RESULT_MEMORY:]

        logger.debug("Heart lost (%s), %d left", reason, state.current_hearts - 1)
        return (
            state.model_copy(
                update={
                    "current_hearts": state.current_hearts - 1,
                    "last_lost_at": now,
                    "next_regen_at": state.next_regen_at or now + self.regen_interval,
                    "perfect_streak_count": 0,
                    "total_hearts_lost": state.total_hearts_lost + 1,
                    "charged_result_ids": charged,
                }
            ),
            True,
        )

    def gain_heart(self, state: HeartState, now: datetime) -> tuple[HeartState, bool]:
        """Adds one heart, capped at capacity."""
        state = self.tick(state, now)
        if state.current_hearts >= state.max_hearts:
            return state, False

        hearts = state.current_hearts + 1
        return (
            state.model_copy(
                update={
                    "current_hearts": hearts,
                    "next_regen_at": None if hearts >= state.max_hearts else state.next_regen_at,
                    "total_hearts_gained": state.total_hearts_gained + 1,
                }
            ),
            True,
        )

    def record_outcome(
        self,
        state: HeartState,
        now: datetime,
        *,
        perfect: bool,
        is_premium: bool = False,
    ) -> tuple[HeartState, bool]:
        """Tracks consecutive perfect results for a passed challenge.

        Every ``perfect_streak_for_heart`` perfect results in a row earn a
        heart (premium players and full pools just reset the counter).

        Returns:
            (new state, whether a heart was gained).
        """
        if not perfect:
            if state.perfect_streak_count == 0:
                return state, False
            return state.model_copy(update={"perfect_streak_count": 0}), False

        count = state.perfect_streak_count + 1
        if count < self.perfect_streak_for_heart:
            return state.model_copy(update={"perfect_streak_count": count}), False

        state = state.model_copy(update={"perfect_streak_count": 0})
        if is_premium:
            return state, False
        return self.gain_heart(state, now)

    # -- Views -------------------------------------------------------------

    def phase(self, state: HeartState) -> HeartPhase:
        """Names where the pool sits in its lifecycle."""
        if state.current_hearts >= state.max_hearts:
            return "full"
        if state.current_hearts <= 0:
            return "empty"
        if (
            state.last_regen_at is not None
            and state.last_lost_at is not None
            and state.last_regen_at > state.last_lost_at
        ):
            return "regenerating"
        return "depleting"

    def display(self, state: HeartState, now: datetime, *, is_premium: bool = False) -> HeartDisplayState:
        current = self.tick(state, now)
        return HeartDisplayState(
            current_hearts=current.current_hearts,
            max_hearts=current.max_hearts,
            next_regen_at=current.next_regen_at,
            is_premium=is_premium,
            phase=self.phase(current),
        )
