"""Progression API routes — results in, progress views out.

Endpoints a host UI calls around a challenge:
- Transaction: submit a finished challenge result
- Gates: heart display and "may I start?" checks
- Views: summary, skills, tree, badges, recent results
- Admin: reset a player, toggle premium
- Content: generated journey level data

Every rule lives in the engine; handlers only translate HTTP to
ProgressionState calls. All responses use the ApiResponse envelope.

Tier 3 orchestration module: imports from deps (Tier 2), engine/* (Tier 2),
hooks/interfaces (Tier 1), schemas (Tier 1).
"""

import dataclasses
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from focusflow.api.deps import get_engine, get_progression_state
from focusflow.engine.progression import ProgressionEngine
from focusflow.engine.state import ProgressionState
from focusflow.hooks.interfaces import PersistenceError
from focusflow.schemas import ApiError, ApiResponse, ChallengeResult

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies (API-boundary types, local to this module)
# ---------------------------------------------------------------------------


class ChallengeSubmission(BaseModel):
    """Request body for POST /users/{user_id}/results.

    ``id`` is the idempotency key: resubmitting the same id is a no-op.
    Clients that omit it get a fresh one (and lose retry safety).
    """

    id: str | None = Field(default=None, min_length=1, max_length=128)
    type: str = Field(min_length=1, max_length=64)
    level: int = Field(ge=1)
    position: int | None = Field(default=None, ge=0)
    score: float = Field(ge=0, le=100)
    duration_ms: int = Field(default=0, ge=0)
    timestamp: datetime | None = None


class PremiumRequest(BaseModel):
    """Request body for POST /users/{user_id}/admin/premium."""

    is_premium: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _storage_unavailable(user_id: str) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail=ApiResponse(
            ok=False,
            error=ApiError(
                code="STORAGE_UNAVAILABLE",
                message=f"Progress for {user_id} could not be saved. Retry with the same result id.",
            ),
        ).model_dump(),
    )


def _ok(data: object) -> dict:
    return ApiResponse(ok=True, data=data).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


@router.post("/users/{user_id}/results")
async def submit_result(
    user_id: str,
    body: ChallengeSubmission,
    state: ProgressionState = Depends(get_progression_state),
) -> dict:
    """Applies one finished challenge and returns what it changed.

    A duplicate id returns 200 with ``duplicate: true`` and changes nothing.
    A storage failure returns 503; nothing was committed.
    """
    payload = body.model_dump(exclude_none=True)
    payload["user_id"] = user_id
    result = ChallengeResult.model_validate(payload)

    try:
        outcome = await state.apply_challenge_result(result)
    except PersistenceError:
        raise _storage_unavailable(user_id) from None

    if not outcome.committed and not outcome.duplicate:
        raise _storage_unavailable(user_id)
    return _ok(outcome.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/hearts")
async def hearts(state: ProgressionState = Depends(get_progression_state)) -> dict:
    """Returns the heart display with regeneration applied as of now."""
    return _ok((await state.heart_display()).model_dump(mode="json"))


@router.get("/users/{user_id}/hearts/can-start")
async def can_start(
    is_test: bool = False,
    level: int | None = Query(default=None, ge=1),
    position: int | None = Query(default=None, ge=0),
    state: ProgressionState = Depends(get_progression_state),
) -> dict:
    """Answers whether a challenge may start now.

    With ``level`` and ``position`` the node itself is checked as well
    (must exist and be open); otherwise only the heart gate applies.
    """
    if level is not None and position is not None:
        check = await state.can_start_node(level, position)
    else:
        check = await state.can_start(is_test=is_test)
    return _ok(check.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/summary")
async def summary(state: ProgressionState = Depends(get_progression_state)) -> dict:
    return _ok((await state.progress_summary()).model_dump(mode="json"))


@router.get("/users/{user_id}/skills")
async def skills(state: ProgressionState = Depends(get_progression_state)) -> dict:
    return _ok((await state.skill_summary()).model_dump(mode="json"))


@router.get("/users/{user_id}/tree")
async def tree(
    from_level: int = Query(default=1, ge=1),
    to_level: int | None = Query(default=None, ge=1),
    state: ProgressionState = Depends(get_progression_state),
) -> dict:
    """Returns tree nodes from ``from_level`` up to the frontier (or ``to_level``)."""
    view = await state.tree_view(from_level, to_level)
    return _ok(view.model_dump(mode="json"))


@router.get("/users/{user_id}/badges")
async def badges(state: ProgressionState = Depends(get_progression_state)) -> dict:
    """Returns every badge, unlocked first (newest first), then locked by rarity."""
    views = await state.badge_list()
    return _ok([view.model_dump(mode="json") for view in views])


@router.get("/users/{user_id}/results")
async def results(
    limit: int = Query(default=20, ge=0, le=500),
    state: ProgressionState = Depends(get_progression_state),
) -> dict:
    """Returns the most recent results, newest first."""
    recent = await state.recent_results(limit)
    return _ok([result.model_dump(mode="json") for result in recent])


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.post("/users/{user_id}/admin/reset")
async def reset(
    user_id: str,
    state: ProgressionState = Depends(get_progression_state),
) -> dict:
    """Wipes the player's progression back to a brand-new profile."""
    try:
        await state.reset()
    except PersistenceError:
        logger.exception("Reset failed for user %s", user_id)
        raise _storage_unavailable(user_id) from None
    return _ok((await state.progress_summary()).model_dump(mode="json"))


@router.post("/users/{user_id}/admin/premium")
async def set_premium(
    user_id: str,
    body: PremiumRequest,
    state: ProgressionState = Depends(get_progression_state),
) -> dict:
    try:
        await state.set_premium(body.is_premium)
    except PersistenceError:
        logger.exception("Premium toggle failed for user %s", user_id)
        raise _storage_unavailable(user_id) from None
    return _ok((await state.heart_display()).model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Journey content
# ---------------------------------------------------------------------------


@router.get("/journey/levels/{level}")
async def journey_level(
    level: int,
    user_level: int | None = Query(default=None, ge=1),
    engine: ProgressionEngine = Depends(get_engine),
) -> dict:
    """Returns generated content for one journey level.

    ``user_level`` applies the catch-up XP reduction for replaying an
    older level.
    """
    generator = engine.generator
    if level < 1 or level > generator.max_level:
        raise HTTPException(
            status_code=404,
            detail=ApiResponse(
                ok=False,
                error=ApiError(
                    code="LEVEL_NOT_FOUND",
                    message=f"Journey levels run from 1 to {generator.max_level}.",
                ),
            ).model_dump(),
        )
    return _ok(dataclasses.asdict(generator.level_for(level, user_level)))
