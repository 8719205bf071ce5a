"""Progression state — one player's snapshot bound to a store.

ProgressionState is what a host holds on to. It owns the committed
snapshot for one player and wraps every change in ``transaction()``: the
body works on a draft, and only if it finishes without raising is the
draft written to the store (once, all records together) and swapped in.
An exception anywhere, including a failed write, leaves both the store
and the in-memory snapshot exactly as they were.

Tier 2 service module: imports from focusflow.engine.* (Tier 2),
focusflow.hooks.interfaces (Tier 1), focusflow.schemas (Tier 1).

Usage:
    from focusflow.engine.state import ProgressionState

    state = ProgressionState("user-1", store, engine)
    await state.load()
    outcome = await state.apply_challenge_result(result)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from focusflow.engine.progression import ProgressionEngine
from focusflow.engine.records import RecordWarning, dump_records, load_snapshot
from focusflow.hooks.interfaces import PersistenceError, StateStore
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

logger = logging.getLogger("focusflow.engine.state")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Draft:
    """Working copy handed to a transaction body. Replace ``snapshot`` to change it."""

    snapshot: ProgressionSnapshot


class ProgressionState:
    """Committed progression state for one player.

    Args:
        user_id: The player.
        store: Where record sets are loaded from and saved to.
        engine: The rule set.
        clock: Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        user_id: str,
        store: StateStore,
        engine: ProgressionEngine,
        clock: Clock = utc_now,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._engine = engine
        self._clock = clock
        self._snapshot: ProgressionSnapshot | None = None
        self.load_warnings: list[RecordWarning] = []

    @property
    def engine(self) -> ProgressionEngine:
        return self._engine

    # -- Persistence boundary ----------------------------------------------

    async def load(self) -> ProgressionSnapshot:
        """(Re)reads the player's records, repairing whatever is damaged.

        A store that cannot be read at all yields a fresh default snapshot
        (logged); the next successful save then replaces what was there.
        """
        try:
            raw = await self._store.load_records(self.user_id)
        except PersistenceError:
            logger.exception("Could not load records for user %s, using defaults", self.user_id)
            raw = None

        snapshot, warnings = load_snapshot(self.user_id, raw)
        self.load_warnings = warnings
        self._snapshot = self._engine.repair(snapshot)
        return self._snapshot

    async def snapshot(self) -> ProgressionSnapshot:
        """The committed snapshot, loading it on first access."""
        if self._snapshot is None:
            return await self.load()
        return self._snapshot

    async def save(self) -> None:
        """Writes the committed snapshot as-is.

        Raises:
            PersistenceError: If the store rejects the write.
        """
        await self._store.save_records(self.user_id, dump_records(await self.snapshot()))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Draft]:
        """Scoped, all-or-nothing change to the snapshot.

        Yields:
            A Draft whose ``snapshot`` the body may replace.

        Raises:
            PersistenceError: If the commit write fails (nothing changes).
            Any exception raised by the body (nothing changes).
        """
        base = await self.snapshot()
        draft = Draft(base)
        yield draft
        if draft.snapshot is base:
            return
        await self._store.save_records(self.user_id, dump_records(draft.snapshot))
        self._snapshot = draft.snapshot

    # -- Writes ------------------------------------------------------------

    async def apply_challenge_result(self, result: ChallengeResult) -> ApplyOutcome:
        """Applies one result atomically and idempotently.

        A storage failure is logged and reported as ``committed=False``;
        the caller may retry with the same result id.
        """
        next_snapshot, outcome = self._engine.apply(await self.snapshot(), result, self._clock())
        try:
            async with self.transaction() as draft:
                draft.snapshot = next_snapshot
        except PersistenceError:
            logger.exception("Could not commit result %s for user %s", result.id, self.user_id)
            return outcome.model_copy(update={"committed": False})
        return outcome

    async def reset(self) -> ProgressionSnapshot:
        """Admin action: back to a brand-new player (result log included)."""
        async with self.transaction() as draft:
            draft.snapshot = self._engine.reset(draft.snapshot)
        return await self.snapshot()

    async def set_premium(self, is_premium: bool) -> ProgressionSnapshot:
        """Admin action: toggles the premium flag."""
        async with self.transaction() as draft:
            draft.snapshot = self._engine.set_premium(draft.snapshot, is_premium)
        return await self.snapshot()

    # -- Reads (recomputed on every call) ----------------------------------

    async def can_start(self, *, is_test: bool = False) -> StartCheck:
        return self._engine.can_start(await self.snapshot(), self._clock(), is_test=is_test)

    async def can_start_node(self, level: int, position: int) -> StartCheck:
        return self._engine.can_start_node(await self.snapshot(), level, position, self._clock())

    async def heart_display(self) -> HeartDisplayState:
        return self._engine.heart_display(await self.snapshot(), self._clock())

    async def progress_summary(self) -> ProgressSummary:
        return self._engine.progress_summary(await self.snapshot())

    async def skill_summary(self) -> SkillSummary:
        return self._engine.skill_summary(await self.snapshot())

    async def tree_view(self, from_level: int = 1, to_level: int | None = None) -> ProgressTreeView:
        return self._engine.tree_view(await self.snapshot(), from_level, to_level)

    async def badge_list(self) -> list[BadgeView]:
        return self._engine.badge_list(await self.snapshot())

    async def recent_results(self, limit: int = 20) -> list[ChallengeResult]:
        """Newest first."""
        results = (await self.snapshot()).results
        return list(reversed(results[-limit:])) if limit > 0 else []
