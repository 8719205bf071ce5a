"""Skill aggregation — challenge outcomes feed three persisted skill paths.

Each challenge type maps to exactly one path through SKILL_PATHS. A result
moves its path a fixed fraction of the way toward the score, but never
down: a bad day does not erase mastery. The two composite skills shown in
the UI are averages computed on read and never stored.

Tier 2 engine module: imports from focusflow.schemas and focusflow.constants.
"""

from __future__ import annotations

import logging

from focusflow.constants import LEARNING_RATE, SKILL_MAX, SKILL_MIN, SKILL_SNAP
from focusflow.schemas import SkillPath, SkillSummary, SkillTree, sanitize_number

logger = logging.getLogger("focusflow.engine.skills")

SKILL_PATHS: dict[str, SkillPath] = {
    # Sustained attention
    "focus_hold": "focus",
    "finger_hold": "focus",
    "gaze_hold": "focus",
    "stability_hold": "focus",
    "slow_tracking": "focus",
    "multi_object_tracking": "focus",
    "finger_tracing": "focus",
    "moving_target": "focus",
    "memory_flash": "focus",
    "rhythm_tap": "focus",
    "breath_pacing": "focus",
    "controlled_breathing": "focus",
    "slow_breathing": "focus",
    "box_breathing": "focus",
    "body_scan": "focus",
    "five_senses": "focus",
    "calm_visual": "focus",
    "focus_sprint": "focus",
    "mental_reset": "focus",
    "reset": "focus",
    # Impulse control
    "tap_only_correct": "impulse_control",
    "look_away": "impulse_control",
    "delay_unlock": "impulse_control",
    "anti_scroll_swipe": "impulse_control",
    "reaction_inhibition": "impulse_control",
    "stillness_test": "impulse_control",
    "multi_task_tap": "impulse_control",
    "impulse_delay": "impulse_control",
    "tap_pattern": "impulse_control",
    "urge_surfing": "impulse_control",
    "intent_setting": "impulse_control",
    # Distraction resistance
    "fake_notifications": "distraction_resistance",
    "popup_ignore": "distraction_resistance",
    "impulse_spike_test": "distraction_resistance",
    "distraction_resistance": "distraction_resistance",
    "audio_focus": "distraction_resistance",
    "distraction_log": "distraction_resistance",
    "thought_reframe": "distraction_resistance",
    "self_inquiry": "distraction_resistance",
}

_FALLBACK_PATH: SkillPath = "focus"


class SkillAggregator:
    """Moves skill values toward observed scores with diminishing growth."""

    def __init__(self, learning_rate: float = LEARNING_RATE) -> None:
        self.learning_rate = learning_rate

    def path_for(self, challenge_type: str) -> SkillPath:
        path = SKILL_PATHS.get(challenge_type)
        if path is None:
            logger.warning("No skill path for challenge type %r, crediting focus", challenge_type)
            return _FALLBACK_PATH
        return path

    def apply_result(self, skills: SkillTree, challenge_type: str, score: float) -> SkillTree:
        """Folds one score into the matching skill path.

        ``skill += (score - skill) * learning_rate``, clamped to [0, 100],
        and kept only if it is an improvement. A step that lands within
        SKILL_SNAP of the score lands on it, so a path fed perfect scores
        reaches exactly 100 instead of creeping toward it forever.
        """
        path = self.path_for(challenge_type)
        current = getattr(skills, path)
        target = min(SKILL_MAX, max(SKILL_MIN, sanitize_number(score)))
        updated = min(SKILL_MAX, max(SKILL_MIN, current + (target - current) * self.learning_rate))
        if target > current and target - updated < SKILL_SNAP:
            updated = target
        if updated <= current:
            return skills
        return skills.model_copy(update={path: updated})

    def summary(self, skills: SkillTree) -> SkillSummary:
        """Base skills plus the memory and breathing composites."""
        return SkillSummary(
            focus=round(skills.focus, 2),
            impulse_control=round(skills.impulse_control, 2),
            distraction_resistance=round(skills.distraction_resistance, 2),
            memory=round((skills.focus + skills.impulse_control) / 2, 2),
            breathing=round((skills.focus + skills.distraction_resistance) / 2, 2),
        )
