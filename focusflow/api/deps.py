"""Shared FastAPI dependencies — store, engine, and per-user progression state.

Module-level singletons for the storage hook and the rule set. Route
handlers access them via FastAPI's Depends() system and never construct
stores or engines themselves. Swapping storage means changing the
assignment here (or letting main.py pick from settings).

TEAM: To back progression with your own StateStore, replace the class on
the right side of ``_store`` below. The get_* functions and all route
handlers stay unchanged.

Tier 2 service module: imports from hooks/* (Tier 2), hooks/interfaces
(Tier 1), engine/* (Tier 2), schemas (Tier 1).

Usage:
    from focusflow.api.deps import get_progression_state

    @router.get("/users/{user_id}/hearts")
    async def hearts(state: ProgressionState = Depends(get_progression_state)): ...
"""

import logging

from fastapi import Depends, HTTPException

from focusflow.engine.progression import ProgressionEngine
from focusflow.engine.state import ProgressionState
from focusflow.hooks.database import InMemoryStore
from focusflow.hooks.interfaces import StateStore
from focusflow.hooks.storage import USER_ID_RE
from focusflow.schemas import ApiError, ApiResponse

logger = logging.getLogger("focusflow.api")

# ---------------------------------------------------------------------------
# Service singletons (the swap point)
# ---------------------------------------------------------------------------

# TEAM: Replace with your real implementation here. main.py overrides this
# at startup according to STORAGE_BACKEND.
_store: StateStore = InMemoryStore()

# Set by _init_progression() in main.py at startup
_engine: ProgressionEngine | None = None

# One ProgressionState per player, created on first request
_states: dict[str, ProgressionState] = {}


# ---------------------------------------------------------------------------
# Dependency providers
# ---------------------------------------------------------------------------


def get_store() -> StateStore:
    """Returns the state store singleton."""
    return _store


def get_engine() -> ProgressionEngine:
    """Returns the progression engine singleton.

    Raises HTTPException(503) if the engine hasn't been built yet
    (startup not complete).
    """
    if _engine is None:
        raise HTTPException(
            status_code=503,
            detail=ApiResponse(
                ok=False,
                error=ApiError(
                    code="SERVICE_UNAVAILABLE",
                    message="Progression engine is not yet available. Server is starting up.",
                ),
            ).model_dump(),
        )
    return _engine


async def get_progression_state(
    user_id: str,
    store: StateStore = Depends(get_store),
    engine: ProgressionEngine = Depends(get_engine),
) -> ProgressionState:
    """Returns the loaded ProgressionState for the path's user_id.

    Raises:
        HTTPException: 422 with ApiResponse envelope if the id is not a
            safe identifier (letters, digits, ``-`` and ``_``, max 64).
    """
    if not USER_ID_RE.match(user_id):
        raise HTTPException(
            status_code=422,
            detail=ApiResponse(
                ok=False,
                error=ApiError(code="INVALID_USER_ID", message="User id must be 1-64 letters, digits, '-' or '_'."),
            ).model_dump(),
        )

    state = _states.get(user_id)
    if state is None:
        state = ProgressionState(user_id, store, engine)
        await state.load()
        if state.load_warnings:
            logger.info("Loaded user %s with %d repaired record(s)", user_id, len(state.load_warnings))
        _states[user_id] = state
    return state
