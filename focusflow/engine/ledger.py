"""Progression ledger — XP, levels, brackets and daily streaks.

Tier 2 engine module: imports from focusflow.schemas and focusflow.constants.
"""

from __future__ import annotations

import logging
import math
from datetime import date

from focusflow.constants import (
    LEVEL_BRACKETS,
    PERFECT_FOCUS_BONUS,
    STREAK_MULTIPLIER_STEP,
    STREAK_MULTIPLIER_THRESHOLD,
    XP_PER_LEVEL,
)
from focusflow.schemas import ProgressSummary, UserProgress, sanitize_number

logger = logging.getLogger("focusflow.engine.ledger")


def get_level_bracket(level: int) -> str:
    """Names the bracket a level falls in ("foundation", "intermediate", "advanced")."""
    for first, last, name in LEVEL_BRACKETS:
        if level >= first and (last is None or level <= last):
            return name
    # Below the first bracket only happens with a corrupt level; treat as entry tier.
    return LEVEL_BRACKETS[0][2]


def streak_multiplier(streak: int) -> float:
    """XP multiplier for the current day streak.

    1.0 below STREAK_MULTIPLIER_THRESHOLD days, then +10% per day from the
    threshold on (4 days → 1.1, 5 days → 1.2, ...).
    """
    if streak < STREAK_MULTIPLIER_THRESHOLD:
        return 1.0
    return 1.0 + (streak - STREAK_MULTIPLIER_THRESHOLD + 1) * STREAK_MULTIPLIER_STEP


class ProgressionLedger:
    """Pure XP/streak arithmetic over UserProgress values."""

    def __init__(self, xp_per_level: int = XP_PER_LEVEL) -> None:
        self.xp_per_level = xp_per_level

    def add_xp(self, progress: UserProgress, amount: float) -> tuple[UserProgress, int]:
        """Credits XP and rolls over as many levels as it covers.

        Args:
            progress: Current progress.
            amount: XP to add. Negative, NaN or non-numeric amounts count as 0.

        Returns:
            (new progress, number of levels gained).
        """
        credit = max(0, int(sanitize_number(amount)))
        if credit == 0 and progress.xp < self.xp_per_level:
            return progress, 0

        levels, xp = divmod(progress.xp + credit, self.xp_per_level)
        return (
            progress.model_copy(
                update={
                    "level": progress.level + levels,
                    "xp": xp,
                    "total_xp": progress.total_xp + credit,
                }
            ),
            levels,
        )

    def normalize(self, progress: UserProgress) -> UserProgress:
        """Folds overflowing in-level XP from a loaded record into levels."""
        if progress.xp < self.xp_per_level:
            return progress
        logger.warning("Loaded xp %d exceeds level size, rolling over", progress.xp)
        updated, _ = self.add_xp(progress, 0)
        return updated

    def record_challenge(self, progress: UserProgress) -> UserProgress:
        return progress.model_copy(
            update={"total_challenges_completed": progress.total_challenges_completed + 1}
        )

    def record_session_completion(self, progress: UserProgress, day: date) -> UserProgress:
        """Counts a finished daily session and updates the day streak.

        Same calendar day keeps the streak, the next day extends it, and any
        longer gap resets it to 0 before counting today as day 1. A day
        earlier than the last active day (clock moved backwards) leaves the
        streak alone.
        """
        last = progress.last_active_day
        streak = progress.streak

        if last is None:
            streak = 1
        elif day > last:
            gap = (day - last).days
            if gap == 1:
                streak += 1
            else:
                # Missed at least one day: reset, then today counts.
                streak = 1
        elif streak == 0:
            streak = 1

        return progress.model_copy(
            update={
                "streak": streak,
                "longest_streak": max(progress.longest_streak, streak),
                "last_active_day": day if last is None else max(last, day),
                "total_sessions_completed": progress.total_sessions_completed + 1,
            }
        )

    def xp_for_result(self, base_xp: int, *, perfect: bool, streak: int) -> int:
        """XP earned by one result: (base + perfect bonus) × streak multiplier, floored."""
        raw = base_xp + (PERFECT_FOCUS_BONUS if perfect else 0)
        return math.floor(round(raw * streak_multiplier(streak), 6))

    def summary(self, progress: UserProgress) -> ProgressSummary:
        return ProgressSummary(
            level=progress.level,
            xp=progress.xp,
            xp_per_level=self.xp_per_level,
            xp_to_next=self.xp_per_level - progress.xp,
            total_xp=progress.total_xp,
            streak=progress.streak,
            longest_streak=progress.longest_streak,
            bracket=get_level_bracket(progress.level),
            total_sessions_completed=progress.total_sessions_completed,
            total_challenges_completed=progress.total_challenges_completed,
        )
