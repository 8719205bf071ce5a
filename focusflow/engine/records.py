"""Record codec — versioned envelopes in, ProgressionSnapshot out (and back).

Player state is persisted as six independent records, each wrapped in an
envelope ``{"version": 1, "data": ...}``. Storage adapters move these
envelopes around as plain JSON-compatible dicts; this module is the only
place that knows how to turn them into models.

Decoding never raises. A missing, null, unparseable or wrong-shaped record
becomes its default, a bad challenge result is dropped from the log, and
each repair is reported as a RecordWarning (and logged) so the caller can
tell a clean load from a salvaged one. Records written before envelopes
existed (bare data dicts/lists) are accepted as version 0.

Tier 2 engine module: imports from focusflow.schemas (Tier 1) + stdlib.

Usage:
    from focusflow.engine.records import dump_records, load_snapshot

    raw = dump_records(snapshot)                    # dict[str, dict]
    snapshot, warnings = load_snapshot("u1", raw)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from focusflow.schemas import (
    BadgeProgress,
    ChallengeResult,
    HeartState,
    ProgressionSnapshot,
    ProgressTreeState,
    SkillTree,
    UserProgress,
)

logger = logging.getLogger("focusflow.engine.records")

SCHEMA_VERSION = 1

USER_PROGRESS = "user_progress"
HEART_STATE = "heart_state"
SKILL_TREE = "skill_tree"
BADGE_PROGRESS = "badge_progress"
PROGRESS_TREE = "progress_tree"
CHALLENGE_RESULTS = "challenge_results"

RECORD_KEYS: tuple[str, ...] = (
    USER_PROGRESS,
    HEART_STATE,
    SKILL_TREE,
    BADGE_PROGRESS,
    PROGRESS_TREE,
    CHALLENGE_RESULTS,
)

_MODEL_RECORDS: dict[str, tuple[str, type[BaseModel]]] = {
    USER_PROGRESS: ("progress", UserProgress),
    HEART_STATE: ("hearts", HeartState),
    SKILL_TREE: ("skills", SkillTree),
    BADGE_PROGRESS: ("badges", BadgeProgress),
    PROGRESS_TREE: ("tree", ProgressTreeState),
}

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class RecordWarning:
    """Non-fatal repair made while decoding a record.

    Attributes:
        key: The record key (e.g. ``"heart_state"``).
        warning_type: One of ``"missing"``, ``"malformed"``, ``"invalid"``,
            ``"dropped_result"``, ``"duplicate_result"``, ``"newer_version"``.
        message: Human-readable description.
    """

    key: str
    warning_type: str
    message: str


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _envelope(data: Any) -> dict[str, Any]:
    return {"version": SCHEMA_VERSION, "data": data}


def dump_records(snapshot: ProgressionSnapshot) -> dict[str, dict[str, Any]]:
    """Encodes a snapshot as one JSON-ready envelope per record key."""
    records = {
        key: _envelope(getattr(snapshot, attr).model_dump(mode="json"))
        for key, (attr, _model) in _MODEL_RECORDS.items()
    }
    records[CHALLENGE_RESULTS] = _envelope(
        [result.model_dump(mode="json") for result in snapshot.results]
    )
    return records


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _unwrap(key: str, raw: Any, warnings: list[RecordWarning]) -> Any:
    """Strips the envelope. Returns None when there is nothing usable."""
    if raw is None:
        warnings.append(RecordWarning(key, "missing", f"No stored {key}, using defaults."))
        return None

    if isinstance(raw, dict) and "data" in raw and "version" in raw:
        version = raw.get("version")
        if isinstance(version, int) and version > SCHEMA_VERSION:
            warnings.append(
                RecordWarning(
                    key,
                    "newer_version",
                    f"{key} has version {version}, newer than {SCHEMA_VERSION}; "
                    "reading known fields only.",
                )
            )
        return raw["data"]

    # Pre-envelope record: the value is the data itself.
    return raw


def _decode_model(key: str, raw: Any, model: type[ModelT], warnings: list[RecordWarning]) -> ModelT:
    data = _unwrap(key, raw, warnings)
    if data is None:
        return model()
    if not isinstance(data, dict):
        warnings.append(
            RecordWarning(key, "malformed", f"{key} is {type(data).__name__}, expected an object.")
        )
        return model()
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        warnings.append(
            RecordWarning(key, "invalid", f"{key} failed validation ({exc.error_count()} errors).")
        )
        return model()


def _decode_results(raw: Any, warnings: list[RecordWarning]) -> list[ChallengeResult]:
    data = _unwrap(CHALLENGE_RESULTS, raw, warnings)
    if data is None:
        return []
    if not isinstance(data, list):
        warnings.append(
            RecordWarning(
                CHALLENGE_RESULTS, "malformed", f"Result log is {type(data).__name__}, expected a list."
            )
        )
        return []

    results: list[ChallengeResult] = []
    seen: set[str] = set()
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            warnings.append(
                RecordWarning(CHALLENGE_RESULTS, "dropped_result", f"Entry {index} is not an object.")
            )
            continue
        try:
            result = ChallengeResult.model_validate(entry)
        except ValidationError:
            warnings.append(
                RecordWarning(CHALLENGE_RESULTS, "dropped_result", f"Entry {index} failed validation.")
            )
            continue
        if result.id in seen:
            warnings.append(
                RecordWarning(CHALLENGE_RESULTS, "duplicate_result", f"Result {result.id} appears twice.")
            )
            continue
        seen.add(result.id)
        results.append(result)
    return results


def load_snapshot(
    user_id: str,
    raw: Mapping[str, Any] | None,
) -> tuple[ProgressionSnapshot, list[RecordWarning]]:
    """Decodes stored envelopes into a snapshot, filling defaults as needed.

    Args:
        user_id: Owner of the records.
        raw: Mapping of record key → stored envelope (or None / partial).

    Returns:
        (snapshot, warnings). Never raises for bad data.
    """
    source: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    warnings: list[RecordWarning] = []

    fields: dict[str, Any] = {
        attr: _decode_model(key, source.get(key), model, warnings)
        for key, (attr, model) in _MODEL_RECORDS.items()
    }
    fields["results"] = _decode_results(source.get(CHALLENGE_RESULTS), warnings)

    for warning in warnings:
        if warning.warning_type != "missing":
            logger.warning("Record repair for user %s [%s]: %s", user_id, warning.key, warning.message)

    return ProgressionSnapshot(user_id=user_id, **fields), warnings
