"""Progression engine — one challenge result in, one consistent snapshot out.

``ProgressionEngine.apply`` is the only write path for gameplay. It takes
the current ProgressionSnapshot and a ChallengeResult and computes the
complete next snapshot in memory:

    tick hearts → node transition → XP/level → skills → hearts
      → append result → daily session/streak → badges (against the new state)

Nothing is mutated along the way, so the caller either commits the whole
returned snapshot or keeps the old one. Applying a result id that is
already in the log returns the input snapshot unchanged.

Tier 2 engine module: composes the other engine modules; imports config
(Tier 2) only for ``from_settings``.

Usage:
    from focusflow.engine.progression import ProgressionEngine

    engine = ProgressionEngine.from_settings(get_settings())
    snapshot, outcome = engine.apply(snapshot, result, now)
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from focusflow.config import Settings
from focusflow.constants import CHALLENGES_PER_SESSION, XP_PER_CHALLENGE
from focusflow.engine.badges import BadgeContext, BadgeEngine
from focusflow.engine.hearts import HeartEconomy
from focusflow.engine.journey import JourneyLevelGenerator
from focusflow.engine.ledger import ProgressionLedger
from focusflow.engine.skills import SkillAggregator
from focusflow.engine.tree import NodeSpec, ProgressTree
from focusflow.schemas import (
    ApplyOutcome,
    BadgeView,
    ChallengeResult,
    HeartDisplayState,
    ProgressionSnapshot,
    ProgressSummary,
    ProgressTreeView,
    SkillSummary,
    StartCheck,
)

logger = logging.getLogger("focusflow.engine.progression")


class ProgressionEngine:
    """Stateless rule set composing the five progression subsystems.

    All collaborators are injectable; defaults use the constants in
    ``focusflow.constants``.
    """

    def __init__(
        self,
        *,
        hearts: HeartEconomy | None = None,
        ledger: ProgressionLedger | None = None,
        skills: SkillAggregator | None = None,
        badges: BadgeEngine | None = None,
        tree: ProgressTree | None = None,
        tz: tzinfo = timezone.utc,
        challenges_per_session: int = CHALLENGES_PER_SESSION,
    ) -> None:
        self.hearts = hearts or HeartEconomy(tz=tz)
        self.ledger = ledger or ProgressionLedger()
        self.skills = skills or SkillAggregator()
        self.badges = badges or BadgeEngine()
        self.tree = tree or ProgressTree(JourneyLevelGenerator())
        self.tz = tz
        self.challenges_per_session = challenges_per_session

    @classmethod
    def from_settings(cls, settings: Settings) -> ProgressionEngine:
        """Builds an engine with the deployment's tuning knobs applied."""
        tz = ZoneInfo(settings.timezone)
        return cls(
            hearts=HeartEconomy(
                max_hearts=settings.max_hearts,
                regen_interval=timedelta(minutes=settings.heart_regen_minutes),
                tz=tz,
            ),
            ledger=ProgressionLedger(xp_per_level=settings.xp_per_level),
            badges=BadgeEngine(tie_break=settings.badge_tie_break),
            tree=ProgressTree(JourneyLevelGenerator(test_every=settings.test_every_levels)),
            tz=tz,
        )

    @property
    def generator(self) -> JourneyLevelGenerator:
        return self.tree.generator

    # -- Snapshot lifecycle ------------------------------------------------

    def new_snapshot(self, user_id: str) -> ProgressionSnapshot:
        """Fresh player: level 1, full hearts, zero skills, node 1-0 open."""
        snapshot = ProgressionSnapshot(user_id=user_id)
        return self.repair(snapshot)

    def repair(self, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        """Re-establishes cross-record invariants after a load."""
        return snapshot.model_copy(
            update={
                "progress": self.ledger.normalize(snapshot.progress),
                "hearts": self.hearts.normalize(snapshot.hearts),
                "tree": self.tree.normalize(snapshot.tree),
            }
        )

    def reset(self, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        logger.info("Resetting progression for user %s", snapshot.user_id)
        return self.new_snapshot(snapshot.user_id)

    def set_premium(self, snapshot: ProgressionSnapshot, is_premium: bool) -> ProgressionSnapshot:
        if snapshot.progress.is_premium == is_premium:
            return snapshot
        return snapshot.model_copy(
            update={"progress": snapshot.progress.model_copy(update={"is_premium": is_premium})}
        )

    def local_day(self, moment: datetime) -> date:
        return moment.astimezone(self.tz).date()

    # -- The transaction ---------------------------------------------------

    def apply(
        self,
        snapshot: ProgressionSnapshot,
        result: ChallengeResult,
        now: datetime,
    ) -> tuple[ProgressionSnapshot, ApplyOutcome]:
        """Computes the snapshot after one challenge result.

        Args:
            snapshot: Committed state before the result.
            result: The finished challenge. Its id makes this idempotent.
            now: Wall-clock time of application (hearts, unlock stamps).

        Returns:
            (next snapshot, outcome). For a duplicate id the snapshot is
            returned unchanged and ``outcome.duplicate`` is True.
        """
        if result.id in snapshot.result_ids():
            logger.info("Duplicate result %s for user %s ignored", result.id, snapshot.user_id)
            return snapshot, ApplyOutcome(
                result_id=result.id,
                committed=False,
                duplicate=True,
                level=snapshot.progress.level,
                hearts_remaining=self.hearts.tick(snapshot.hearts, now).current_hearts,
            )

        is_premium = snapshot.progress.is_premium
        hearts = self.hearts.tick(snapshot.hearts, now)

        # Node transition
        position = result.position
        if position is None:
            position = self.tree.resolve_position(snapshot.tree, result.level)
        transition = self.tree.complete_node(snapshot.tree, result.level, position, result.score, now)
        node = transition.node if transition.applied else None

        if node is not None:
            passed = transition.passed
            base_xp = self._node_xp(node, snapshot.progress.level) if passed else XP_PER_CHALLENGE
        else:
            passed = result.passed
            base_xp = XP_PER_CHALLENGE
        perfect = passed and result.is_perfect

        # XP, level, skills
        xp_awarded = self.ledger.xp_for_result(base_xp, perfect=perfect, streak=snapshot.progress.streak)
        progress, levels_gained = self.ledger.add_xp(snapshot.progress, xp_awarded)
        progress = self.ledger.record_challenge(progress)
        skills = self.skills.apply_result(snapshot.skills, result.type, result.score)

        # Hearts
        heart_lost = heart_gained = False
        if not passed:
            reason = "test_fail" if node is not None and node.node_type == "test" else "exercise_fail"
            hearts, heart_lost = self.hearts.lose_heart(
                hearts, now, reason=reason, result_id=result.id, is_premium=is_premium
            )
        else:
            hearts, heart_gained = self.hearts.record_outcome(
                hearts, now, perfect=perfect, is_premium=is_premium
            )

        # Result log and daily session
        recorded = result.model_copy(update={"xp_earned": xp_awarded, "user_id": snapshot.user_id})
        results = [*snapshot.results, recorded]
        day = self.local_day(recorded.timestamp)
        same_day = sum(1 for r in results if self.local_day(r.timestamp) == day)
        session_completed = same_day % self.challenges_per_session == 0
        if session_completed:
            progress = self.ledger.record_session_completion(progress, day)

        draft = snapshot.model_copy(
            update={
                "progress": progress,
                "hearts": hearts,
                "skills": skills,
                "tree": transition.state,
                "results": results,
            }
        )

        # Badges see the state they are being committed with.
        badges, new_badges = self.badges.evaluate(snapshot.badges, self.badge_context(draft), now)
        committed = draft.model_copy(update={"badges": badges})

        outcome = ApplyOutcome(
            result_id=result.id,
            committed=True,
            passed=passed,
            perfect=perfect,
            xp_awarded=xp_awarded,
            levels_gained=levels_gained,
            level=progress.level,
            heart_lost=heart_lost,
            heart_gained=heart_gained,
            hearts_remaining=hearts.current_hearts,
            node_id=node.id if node is not None else None,
            node_status=transition.status if node is not None else None,
            stars_earned=transition.stars_earned if node is not None else 0,
            unlocked_node_ids=list(transition.unlocked_node_ids),
            new_badges=new_badges,
            session_completed=session_completed,
        )
        return committed, outcome

    def _node_xp(self, node: NodeSpec, user_level: int) -> int:
        factor = self.generator.catch_up_factor(node.level, user_level)
        return max(1, round(node.xp_reward * factor))

    # -- Start gates -------------------------------------------------------

    def can_start(self, snapshot: ProgressionSnapshot, now: datetime, *, is_test: bool = False) -> StartCheck:
        return self.hearts.can_start(
            snapshot.hearts, now, is_test=is_test, is_premium=snapshot.progress.is_premium
        )

    def can_start_node(
        self,
        snapshot: ProgressionSnapshot,
        level: int,
        position: int,
        now: datetime,
    ) -> StartCheck:
        """Node must be open, and the heart gate must pass."""
        node = self.tree.node(level, position)
        if node is None:
            return StartCheck(allowed=False, reason="unknown_node", message="That step does not exist.")
        if not self.tree.is_playable(snapshot.tree, level, position):
            return StartCheck(
                allowed=False, reason="node_locked", message="Finish the previous step first."
            )
        return self.can_start(snapshot, now, is_test=node.node_type == "test")

    # -- Views -------------------------------------------------------------

    def badge_context(self, snapshot: ProgressionSnapshot) -> BadgeContext:
        return BadgeContext(
            snapshot.progress,
            snapshot.skills,
            snapshot.results,
            snapshot.hearts,
            tz=self.tz,
            challenges_per_session=self.challenges_per_session,
        )

    def heart_display(self, snapshot: ProgressionSnapshot, now: datetime) -> HeartDisplayState:
        return self.hearts.display(snapshot.hearts, now, is_premium=snapshot.progress.is_premium)

    def progress_summary(self, snapshot: ProgressionSnapshot) -> ProgressSummary:
        return self.ledger.summary(snapshot.progress)

    def skill_summary(self, snapshot: ProgressionSnapshot) -> SkillSummary:
        return self.skills.summary(snapshot.skills)

    def tree_view(
        self,
        snapshot: ProgressionSnapshot,
        from_level: int = 1,
        to_level: int | None = None,
    ) -> ProgressTreeView:
        return self.tree.view(snapshot.tree, from_level, to_level)

    def badge_list(self, snapshot: ProgressionSnapshot) -> list[BadgeView]:
        return self.badges.list_view(snapshot.badges, self.badge_context(snapshot))
