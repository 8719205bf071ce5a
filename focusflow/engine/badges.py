"""Badge engine — static registry, unlock measures, and display ordering.

Every badge is data: a BadgeDefinition with a ``measure`` that maps the
player's state to ``(current, target)``. A badge unlocks when
``current >= target``; the same pair drives the partial-progress bar, so a
badge can never show 100% without being unlockable and vice versa.

The engine re-evaluates the whole registry on every commit and only ever
adds to the unlocked set. Measures see a read-only BadgeContext; a measure
that raises (or finds data missing) counts as zero progress and is logged.

Tier 2 engine module: imports from focusflow.schemas and focusflow.constants.

Usage:
    from focusflow.engine.badges import BadgeContext, BadgeEngine

    engine = BadgeEngine()
    ctx = BadgeContext(progress, skills, results, hearts)
    badges, new_types = engine.evaluate(badges, ctx, now)
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import cached_property

from focusflow.constants import CHALLENGES_PER_SESSION, GOOD_THRESHOLD, PASS_THRESHOLD, RARITY_ORDER
from focusflow.schemas import (
    BadgeProgress,
    BadgeView,
    ChallengeResult,
    HeartState,
    Rarity,
    SkillTree,
    UnlockedBadge,
    UserProgress,
)

logger = logging.getLogger("focusflow.engine.badges")

Measure = Callable[["BadgeContext"], tuple[float, float]]

BREATHING_TYPES = frozenset({"breath_pacing", "controlled_breathing", "box_breathing", "slow_breathing"})
TRACKING_TYPES = frozenset({"slow_tracking", "multi_object_tracking", "finger_tracing"})
TAP_TYPES = frozenset({"tap_only_correct", "rhythm_tap", "multi_task_tap"})
STILLNESS_TYPES = frozenset({"stillness_test", "finger_hold", "focus_hold"})
NOTIFICATION_TYPES = frozenset({"fake_notifications", "popup_ignore"})

QUICK_MS = 10_000
FAST_MS = 15_000


# ---------------------------------------------------------------------------
# Context: derived aggregates over the player's state
# ---------------------------------------------------------------------------


class BadgeContext:
    """Read-only view of everything badge measures may look at.

    Aggregates over the results log are computed lazily and cached, so a
    full registry pass walks the log a handful of times, not once per badge.
    A missing log is treated as empty.
    """

    def __init__(
        self,
        progress: UserProgress,
        skills: SkillTree,
        results: Sequence[ChallengeResult] | None = None,
        hearts: HeartState | None = None,
        tz: tzinfo = timezone.utc,
        challenges_per_session: int = CHALLENGES_PER_SESSION,
    ) -> None:
        self.progress = progress
        self.skills = skills
        self.results: Sequence[ChallengeResult] = results or ()
        self.hearts = hearts
        self.tz = tz
        self.challenges_per_session = challenges_per_session

    @cached_property
    def local_times(self) -> list[datetime]:
        return [result.timestamp.astimezone(self.tz) for result in self.results]

    @cached_property
    def by_day(self) -> dict[date, list[ChallengeResult]]:
        days: dict[date, list[ChallengeResult]] = {}
        for result, local in zip(self.results, self.local_times):
            days.setdefault(local.date(), []).append(result)
        return days

    @cached_property
    def type_counts(self) -> Counter[str]:
        return Counter(result.type for result in self.results)

    @cached_property
    def perfect_count(self) -> int:
        return sum(1 for result in self.results if result.is_perfect)

    @cached_property
    def best_perfect_run(self) -> int:
        return _longest_run(result.is_perfect for result in self.results)

    @cached_property
    def best_passing_run(self) -> int:
        return _longest_run(result.score >= PASS_THRESHOLD for result in self.results)

    @cached_property
    def total_score(self) -> float:
        return sum(result.score for result in self.results)

    @property
    def best_streak(self) -> int:
        return max(self.progress.streak, self.progress.longest_streak)

    def count_types(self, types: Iterable[str]) -> int:
        return sum(self.type_counts[type_] for type_ in types)

    def count_where(self, predicate: Callable[[ChallengeResult], bool]) -> int:
        return sum(1 for result in self.results if predicate(result))

    def count_hours(self, predicate: Callable[[int], bool]) -> int:
        return sum(1 for local in self.local_times if predicate(local.hour))

    @cached_property
    def weekend_days_practised(self) -> int:
        weekdays = {local.weekday() for local in self.local_times}
        return len(weekdays & {5, 6})

    @cached_property
    def most_types_in_a_day(self) -> int:
        return max((len({r.type for r in day}) for day in self.by_day.values()), default=0)

    @cached_property
    def most_sessions_in_a_day(self) -> int:
        return max(
            (len(day) // self.challenges_per_session for day in self.by_day.values()),
            default=0,
        )

    @cached_property
    def clean_sessions(self) -> int:
        """Sessions (per-day chunks of results) in which every result passed."""
        size = self.challenges_per_session
        clean = 0
        for day in self.by_day.values():
            for start in range(0, len(day) - size + 1, size):
                if all(r.score >= PASS_THRESHOLD for r in day[start:start + size]):
                    clean += 1
        return clean

    @cached_property
    def personal_bests_beaten(self) -> int:
        best: dict[str, float] = {}
        beaten = 0
        for result in self.results:
            previous = best.get(result.type)
            if previous is not None and result.score > previous:
                beaten += 1
            best[result.type] = max(result.score, previous or 0.0)
        return beaten

    @cached_property
    def best_flawless_days(self) -> int:
        """Longest run of consecutive calendar days with only perfect results."""
        flawless = sorted(
            day for day, results in self.by_day.items() if all(r.is_perfect for r in results)
        )
        best = run = 0
        previous: date | None = None
        for day in flawless:
            run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
            best = max(best, run)
            previous = day
        return best


def _longest_run(flags: Iterable[bool]) -> int:
    best = run = 0
    for flag in flags:
        run = run + 1 if flag else 0
        best = max(best, run)
    return best


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BadgeDefinition:
    type: str
    name: str
    description: str
    rarity: Rarity
    measure: Measure


def _at_least(metric: Callable[[BadgeContext], float], target: float) -> Measure:
    return lambda ctx: (float(metric(ctx)), float(target))


def _all_of(*measures: Measure) -> Measure:
    """Compound badge: mean of capped component ratios, target 1."""

    def measure(ctx: BadgeContext) -> tuple[float, float]:
        ratios = []
        for component in measures:
            current, target = component(ctx)
            ratios.append(min(1.0, current / target) if target > 0 else 1.0)
        return sum(ratios) / len(ratios), 1.0

    return measure


def _challenges(ctx: BadgeContext) -> float:
    return ctx.progress.total_challenges_completed


def _perfects(ctx: BadgeContext) -> float:
    return ctx.perfect_count


def _streak(ctx: BadgeContext) -> float:
    return ctx.best_streak


def _hot_streak(ctx: BadgeContext) -> float:
    return ctx.best_perfect_run


def _level(ctx: BadgeContext) -> float:
    return ctx.progress.level


def _total_xp(ctx: BadgeContext) -> float:
    return ctx.progress.total_xp


def _sessions(ctx: BadgeContext) -> float:
    return ctx.progress.total_sessions_completed


def _skill(path: str) -> Callable[[BadgeContext], float]:
    return lambda ctx: getattr(ctx.skills, path)


def _of_types(types: frozenset[str]) -> Callable[[BadgeContext], float]:
    return lambda ctx: ctx.count_types(types)


def _hours(predicate: Callable[[int], bool]) -> Callable[[BadgeContext], float]:
    return lambda ctx: ctx.count_hours(predicate)


def _hearts_gained(ctx: BadgeContext) -> float:
    return ctx.hearts.total_hearts_gained if ctx.hearts is not None else 0


def _series(
    prefix: str,
    metric: Callable[[BadgeContext], float],
    tiers: Sequence[tuple[int, str, str, Rarity]],
) -> list[BadgeDefinition]:
    return [
        BadgeDefinition(f"{prefix}_{target}", name, description, rarity, _at_least(metric, target))
        for target, name, description, rarity in tiers
    ]


def _skill_series(prefix: str, path: str, title: str, label: str) -> list[BadgeDefinition]:
    tiers: tuple[tuple[str, int, Rarity], ...] = (
        ("apprentice", 25, "common"),
        ("journeyman", 50, "uncommon"),
        ("expert", 75, "rare"),
        ("master", 100, "epic"),
    )
    return [
        BadgeDefinition(
            f"{prefix}_{tier}",
            f"{title} {tier.capitalize()}",
            f"{label} reaches {target}",
            rarity,
            _at_least(_skill(path), target),
        )
        for tier, target, rarity in tiers
    ]


def _build_registry() -> tuple[BadgeDefinition, ...]:
    registry: list[BadgeDefinition] = [
        # Getting started
        BadgeDefinition("first_focus", "First Steps", "Complete your first challenge", "common",
                        _at_least(_challenges, 1)),
        BadgeDefinition("first_perfect", "Nailed It", "Get your first perfect score", "common",
                        _at_least(_perfects, 1)),
        BadgeDefinition("first_session", "Day One", "Complete your first daily session", "common",
                        _at_least(_sessions, 1)),
        BadgeDefinition("first_streak", "Keep Going", "Maintain a 2-day streak", "common",
                        _at_least(_streak, 2)),
    ]

    registry += _series("challenges", _challenges, (
        (10, "Getting Warmed Up", "Complete 10 challenges", "common"),
        (25, "Building Momentum", "Complete 25 challenges", "common"),
        (50, "Half Century", "Complete 50 challenges", "uncommon"),
        (100, "Century Club", "Complete 100 challenges", "uncommon"),
        (250, "Dedicated Trainer", "Complete 250 challenges", "rare"),
        (500, "Focus Veteran", "Complete 500 challenges", "epic"),
        (1000, "Legendary Focus", "Complete 1,000 challenges", "legendary"),
    ))
    registry += _series("perfect", _perfects, (
        (5, "Sharp Mind", "Get 5 perfect scores", "common"),
        (10, "Precision Player", "Get 10 perfect scores", "common"),
        (25, "Quality Focused", "Get 25 perfect scores", "uncommon"),
        (50, "Excellence Seeker", "Get 50 perfect scores", "uncommon"),
        (100, "Perfectionist", "Get 100 perfect scores", "rare"),
        (250, "Flawless Execution", "Get 250 perfect scores", "epic"),
        (500, "Perfect Legend", "Get 500 perfect scores", "legendary"),
    ))
    registry += _series("streak", _streak, (
        (3, "Three-Peat", "Maintain a 3-day streak", "common"),
        (7, "Week Warrior", "Maintain a 7-day streak", "uncommon"),
        (14, "Fortnight Focus", "Maintain a 14-day streak", "uncommon"),
        (30, "Monthly Master", "Maintain a 30-day streak", "rare"),
        (60, "Two Month Titan", "Maintain a 60-day streak", "rare"),
        (90, "Quarter Champion", "Maintain a 90-day streak", "epic"),
        (180, "Half Year Hero", "Maintain a 180-day streak", "epic"),
        (365, "Year of Focus", "Maintain a 365-day streak", "legendary"),
    ))
    registry += _series("hot_streak", _hot_streak, (
        (3, "Heating Up", "3 perfect scores in a row", "common"),
        (5, "On Fire", "5 perfect scores in a row", "uncommon"),
        (10, "Unstoppable", "10 perfect scores in a row", "rare"),
        (20, "Blazing", "20 perfect scores in a row", "epic"),
        (50, "Supernova", "50 perfect scores in a row", "legendary"),
    ))
    registry += _series("level", _level, (
        (2, "Level Up!", "Reach level 2", "common"),
        (5, "Rising Star", "Reach level 5", "common"),
        (10, "Double Digits", "Reach level 10", "uncommon"),
        (15, "Halfway There", "Reach level 15", "uncommon"),
        (20, "Expert Territory", "Reach level 20", "rare"),
        (25, "Almost Master", "Reach level 25", "epic"),
        (30, "Seasoned Mind", "Reach level 30", "legendary"),
    ))
    registry += _series("xp", _total_xp, (
        (100, "XP Starter", "Earn 100 XP", "common"),
        (500, "XP Collector", "Earn 500 XP", "common"),
        (1000, "XP Thousand", "Earn 1,000 XP", "uncommon"),
        (5000, "XP Hoarder", "Earn 5,000 XP", "uncommon"),
        (10000, "XP Master", "Earn 10,000 XP", "rare"),
        (25000, "XP Legend", "Earn 25,000 XP", "epic"),
        (50000, "XP God", "Earn 50,000 XP", "legendary"),
    ))

    # Skill mastery
    registry += _skill_series("focus", "focus", "Focus", "Focus skill")
    registry += _skill_series("impulse", "impulse_control", "Impulse", "Impulse control")
    registry += _skill_series("distraction", "distraction_resistance", "Shield", "Distraction resistance")
    registry.append(BadgeDefinition(
        "triple_master", "Triple Threat", "All three skills at 100", "legendary",
        _all_of(
            _at_least(_skill("focus"), 100),
            _at_least(_skill("impulse_control"), 100),
            _at_least(_skill("distraction_resistance"), 100),
        ),
    ))

    # Challenge-type specialists
    registry += [
        BadgeDefinition("breath_beginner", "Deep Breather", "Complete 5 breathing exercises", "common",
                        _at_least(_of_types(BREATHING_TYPES), 5)),
        BadgeDefinition("breath_master", "Zen Master", "Complete 25 breathing exercises", "uncommon",
                        _at_least(_of_types(BREATHING_TYPES), 25)),
        BadgeDefinition("tracking_beginner", "Eagle Eye", "Complete 5 tracking exercises", "common",
                        _at_least(_of_types(TRACKING_TYPES), 5)),
        BadgeDefinition("tracking_master", "Hawk Vision", "Complete 25 tracking exercises", "uncommon",
                        _at_least(_of_types(TRACKING_TYPES), 25)),
        BadgeDefinition("tap_beginner", "Quick Fingers", "Complete 5 tap exercises", "common",
                        _at_least(_of_types(TAP_TYPES), 5)),
        BadgeDefinition("tap_master", "Tap Virtuoso", "Complete 25 tap exercises", "uncommon",
                        _at_least(_of_types(TAP_TYPES), 25)),
        BadgeDefinition("stillness_beginner", "Calm Mind", "Complete 5 stillness exercises", "common",
                        _at_least(_of_types(STILLNESS_TYPES), 5)),
        BadgeDefinition("stillness_master", "Stone Buddha", "Complete 25 stillness exercises", "uncommon",
                        _at_least(_of_types(STILLNESS_TYPES), 25)),
        BadgeDefinition("notification_blocker", "Notification Blocker",
                        "Complete 10 notification exercises", "common",
                        _at_least(_of_types(NOTIFICATION_TYPES), 10)),
        BadgeDefinition("notification_immune", "Notification Immune",
                        "Complete 50 notification exercises", "rare",
                        _at_least(_of_types(NOTIFICATION_TYPES), 50)),
    ]

    # Time of day (player's local calendar)
    registry += [
        BadgeDefinition("early_bird", "Early Bird", "Complete a challenge before 7 AM", "uncommon",
                        _at_least(_hours(lambda h: h < 7), 1)),
        BadgeDefinition("morning_person", "Morning Person", "Complete 10 challenges before 9 AM", "rare",
                        _at_least(_hours(lambda h: h < 9), 10)),
        BadgeDefinition("night_owl", "Night Owl", "Complete a challenge after 10 PM", "uncommon",
                        _at_least(_hours(lambda h: h >= 22), 1)),
        BadgeDefinition("midnight_warrior", "Midnight Warrior", "Complete a challenge after midnight",
                        "rare", _at_least(_hours(lambda h: h < 4), 1)),
        BadgeDefinition("weekend_warrior", "Weekend Warrior", "Practice on both Saturday and Sunday",
                        "uncommon", _at_least(lambda ctx: ctx.weekend_days_practised, 2)),
    ]

    registry += _series("daily", _sessions, (
        (3, "Getting Started", "Complete 3 daily sessions", "common"),
        (7, "One Week Done", "Complete 7 daily sessions", "uncommon"),
        (30, "Monthly Warrior", "Complete 30 daily sessions", "rare"),
        (100, "Session Centurion", "Complete 100 daily sessions", "epic"),
    ))

    def quick(r: ChallengeResult) -> bool:
        return r.duration_ms < QUICK_MS and r.score >= GOOD_THRESHOLD

    def fast_perfect(r: ChallengeResult) -> bool:
        return r.duration_ms < FAST_MS and r.is_perfect

    registry += [
        # Speed
        BadgeDefinition("quick_reflexes", "Quick Reflexes", "Complete a challenge in under 10s with 90+",
                        "uncommon", _at_least(lambda ctx: ctx.count_where(quick), 1)),
        BadgeDefinition("speed_demon", "Speed Demon", "5 challenges in under 10s with 90+", "rare",
                        _at_least(lambda ctx: ctx.count_where(quick), 5)),
        BadgeDefinition("lightning_fast", "Lightning Fast", "10 fast challenges with a perfect score",
                        "epic", _at_least(lambda ctx: ctx.count_where(fast_perfect), 10)),
        # Score
        BadgeDefinition("high_scorer", "High Scorer", "Score 90+ on any challenge", "common",
                        _at_least(lambda ctx: ctx.count_where(lambda r: r.score >= GOOD_THRESHOLD), 1)),
        BadgeDefinition("consistent_90", "Consistently Great", "10 challenges with 90+", "uncommon",
                        _at_least(lambda ctx: ctx.count_where(lambda r: r.score >= GOOD_THRESHOLD), 10)),
        BadgeDefinition("never_below_80", "Above Average", "20 challenges in a row at 80+", "rare",
                        _at_least(lambda ctx: ctx.best_passing_run, 20)),
        BadgeDefinition("score_collector", "Score Collector", "Total score reaches 10,000", "rare",
                        _at_least(lambda ctx: ctx.total_score, 10000)),
        # Hearts
        BadgeDefinition("heart_saver", "Heart Saver", "Complete a session without losing a heart",
                        "uncommon", _at_least(lambda ctx: ctx.clean_sessions, 1)),
        BadgeDefinition("heart_collector", "Heart Collector", "Gain 10 hearts in total", "uncommon",
                        _at_least(_hearts_gained, 10)),
        # Variety
        BadgeDefinition("explorer", "Explorer", "Try 15 different challenge types", "rare",
                        _at_least(lambda ctx: len(ctx.type_counts), 15)),
        BadgeDefinition("variety_seeker", "Variety Seeker", "5 different challenge types in one day",
                        "uncommon", _at_least(lambda ctx: ctx.most_types_in_a_day, 5)),
        BadgeDefinition("specialist", "Specialist", "Same challenge type 50 times", "rare",
                        _at_least(lambda ctx: max(ctx.type_counts.values(), default=0), 50)),
        BadgeDefinition("improvement", "Personal Best", "Beat your personal best score", "common",
                        _at_least(lambda ctx: ctx.personal_bests_beaten, 1)),
        BadgeDefinition("double_up", "Double Up", "Complete 2 sessions in one day", "uncommon",
                        _at_least(lambda ctx: ctx.most_sessions_in_a_day, 2)),
        BadgeDefinition("triple_threat", "Triple Session", "Complete 3 sessions in one day", "rare",
                        _at_least(lambda ctx: ctx.most_sessions_in_a_day, 3)),
        # Legendary
        BadgeDefinition("flawless_week", "Flawless Week", "7 days in a row of only perfect scores",
                        "epic", _at_least(lambda ctx: ctx.best_flawless_days, 7)),
        BadgeDefinition("flawless_month", "Flawless Month", "30 days in a row of only perfect scores",
                        "legendary", _at_least(lambda ctx: ctx.best_flawless_days, 30)),
        BadgeDefinition("centurion", "Centurion", "100 perfect scores in a row", "legendary",
                        _at_least(_hot_streak, 100)),
        BadgeDefinition("true_master", "True Master", "Level 30, all skills 100, 365-day streak",
                        "legendary", _all_of(
                            _at_least(_level, 30),
                            _at_least(_skill("focus"), 100),
                            _at_least(_skill("impulse_control"), 100),
                            _at_least(_skill("distraction_resistance"), 100),
                            _at_least(lambda ctx: ctx.progress.longest_streak, 365),
                        )),
        BadgeDefinition("unscroll_legend", "Unscroll Legend", "1,000 challenges, 500 perfect, level 30",
                        "legendary", _all_of(
                            _at_least(_challenges, 1000),
                            _at_least(_perfects, 500),
                            _at_least(_level, 30),
                        )),
    ]
    return tuple(registry)


BADGE_REGISTRY: tuple[BadgeDefinition, ...] = _build_registry()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class BadgeEngine:
    """Evaluates the registry and orders badges for display.

    Args:
        registry: Badge definitions; registry order is the "registry"
            tie-break order.
        tie_break: How to order badges whose primary sort keys are equal:
            "type" (badge type name) or "registry" (definition order).
    """

    def __init__(
        self,
        registry: Sequence[BadgeDefinition] = BADGE_REGISTRY,
        tie_break: str = "type",
    ) -> None:
        self.registry = tuple(registry)
        self.tie_break = tie_break
        self._order = {definition.type: index for index, definition in enumerate(self.registry)}

    def measure(self, definition: BadgeDefinition, ctx: BadgeContext) -> tuple[float, float]:
        """Runs one measure. Failures count as zero progress."""
        try:
            current, target = definition.measure(ctx)
        except Exception:
            logger.exception("Badge measure %s failed, treating as no progress", definition.type)
            return 0.0, 1.0
        return max(0.0, current), target

    def evaluate(
        self,
        badges: BadgeProgress,
        ctx: BadgeContext,
        now: datetime,
    ) -> tuple[BadgeProgress, list[str]]:
        """Unions newly earned badges into the unlocked set.

        Args:
            badges: Current unlocked set. Never shrinks.
            ctx: The committed state to measure against.
            now: Unlock time stamped on new badges.

        Returns:
            (new BadgeProgress, newly unlocked types in registry order).
        """
        owned = badges.unlocked_types()
        new_types = []
        for definition in self.registry:
            if definition.type in owned:
                continue
            current, target = self.measure(definition, ctx)
            if current >= target:
                new_types.append(definition.type)

        if not new_types:
            return badges, []

        logger.info("Badges unlocked: %s", ", ".join(new_types))
        unlocked = [*badges.unlocked, *(UnlockedBadge(type=t, unlocked_at=now) for t in new_types)]
        return badges.model_copy(update={"unlocked": unlocked}), new_types

    @staticmethod
    def progress_percent(current: float, target: float) -> int:
        """Percent toward ``target``; 100 only once the badge can unlock."""
        if target <= 0 or current >= target:
            return 100
        return min(99, round(current / target * 100))

    def _tie(self, badge_type: str) -> str | int:
        if self.tie_break == "registry":
            return self._order.get(badge_type, len(self._order))
        return badge_type

    def list_view(self, badges: BadgeProgress, ctx: BadgeContext) -> list[BadgeView]:
        """All registry badges, unlocked first (newest first), then locked by rarity."""
        unlocked_views: list[BadgeView] = []
        locked_views: list[BadgeView] = []

        for definition in self.registry:
            unlocked_at = badges.unlocked_at(definition.type)
            current, target = self.measure(definition, ctx)
            view = BadgeView(
                type=definition.type,
                name=definition.name,
                description=definition.description,
                rarity=definition.rarity,
                unlocked=unlocked_at is not None,
                unlocked_at=unlocked_at,
                current=round(current, 2),
                target=target,
                progress_percent=100 if unlocked_at is not None else self.progress_percent(current, target),
            )
            (unlocked_views if unlocked_at is not None else locked_views).append(view)

        unlocked_views.sort(key=lambda v: (-v.unlocked_at.timestamp(), self._tie(v.type)))
        locked_views.sort(key=lambda v: (RARITY_ORDER.index(v.rarity), self._tie(v.type)))
        return unlocked_views + locked_views
