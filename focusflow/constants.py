"""Rule constants — single source of truth for progression tuning.

Every threshold, interval and table the engine applies lives here. The
rest of the codebase imports named constants from this module, never raw
numbers. Values that an operator may want to tune per deployment (heart
cap, regen interval, XP per level, test cadence) are also exposed through
``focusflow.config.Settings``; the values below are their defaults.

Tier 1 leaf module: stdlib only, no project imports.
"""

from datetime import timedelta

# ---------------------------------------------------------------------------
# Score thresholds
# ---------------------------------------------------------------------------

PASS_THRESHOLD: int = 80
GOOD_THRESHOLD: int = 90
PERFECT_THRESHOLD: int = 95

# Score → stars, checked top-down. Below PASS_THRESHOLD earns nothing.
STAR_TABLE: tuple[tuple[int, int], ...] = (
    (PERFECT_THRESHOLD, 3),
    (GOOD_THRESHOLD, 2),
    (PASS_THRESHOLD, 1),
)


# ---------------------------------------------------------------------------
# Experience & levels
# ---------------------------------------------------------------------------

XP_PER_LEVEL: int = 200
XP_PER_CHALLENGE: int = 10
PERFECT_FOCUS_BONUS: int = 10

# Streak multiplier kicks in at this many consecutive days (+10% per day).
STREAK_MULTIPLIER_THRESHOLD: int = 4
STREAK_MULTIPLIER_STEP: float = 0.1

# (first level, last level or None for open-ended, bracket name)
LEVEL_BRACKETS: tuple[tuple[int, int | None, str], ...] = (
    (1, 10, "foundation"),
    (11, 20, "intermediate"),
    (21, None, "advanced"),
)

# A daily session is this many recorded results within one calendar day.
CHALLENGES_PER_SESSION: int = 3


# ---------------------------------------------------------------------------
# Hearts
# ---------------------------------------------------------------------------

MAX_HEARTS: int = 5
REGEN_INTERVAL: timedelta = timedelta(hours=4)
PERFECT_STREAK_FOR_HEART: int = 3

# Bounded memory of result ids that already cost a heart.
CHARGED_RESULT_MEMORY: int = 50

OUT_OF_HEARTS_MESSAGE: str = "You lost focus today. Come back when your mind resets."


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------

LEARNING_RATE: float = 0.2
SKILL_MIN: float = 0.0
SKILL_MAX: float = 100.0
# A step landing closer than this to the score lands on the score.
SKILL_SNAP: float = 0.5


# ---------------------------------------------------------------------------
# Journey
# ---------------------------------------------------------------------------

MAX_JOURNEY_LEVEL: int = 250
REALM_SIZE: int = 25
DEFAULT_TEST_EVERY: int = 25

TEST_SEQUENCE_MIN: int = 3
TEST_SEQUENCE_MAX: int = 6
TEST_DURATION_FACTOR: float = 1.5
TEST_XP_FACTOR: float = 2.0

# Replaying a level below the player's own level shrinks it by this much per
# level of gap, never below the floor.
CATCH_UP_STEP: float = 0.05
CATCH_UP_FLOOR: float = 0.5


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

RARITY_ORDER: tuple[str, ...] = ("legendary", "epic", "rare", "uncommon", "common")
