"""Tests for focusflow.engine.skills — path mapping, growth, composites."""

import logging

import pytest

from focusflow.engine.badges import BadgeContext, BadgeEngine
from focusflow.engine.journey import REALMS
from focusflow.engine.skills import SKILL_PATHS, SkillAggregator
from focusflow.schemas import BadgeProgress, SkillTree, UserProgress


@pytest.fixture
def aggregator() -> SkillAggregator:
    return SkillAggregator()


class TestPaths:
    def test_every_journey_activity_has_a_path(self) -> None:
        journey_types = {template.type for realm in REALMS for template in realm.pool}
        assert journey_types <= set(SKILL_PATHS)

    @pytest.mark.parametrize(
        ("challenge_type", "path"),
        [("focus_hold", "focus"), ("tap_only_correct", "impulse_control"),
         ("fake_notifications", "distraction_resistance")],
    )
    def test_known_types(self, aggregator, challenge_type, path) -> None:
        assert aggregator.path_for(challenge_type) == path

    def test_unknown_type_credits_focus_and_warns(self, aggregator, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="focusflow.engine.skills"):
            assert aggregator.path_for("juggling") == "focus"
        assert any("juggling" in r.message for r in caplog.records)


class TestApplyResult:
    def test_moves_a_fifth_of_the_way(self, aggregator) -> None:
        skills = aggregator.apply_result(SkillTree(), "focus_hold", 100)
        assert skills.focus == pytest.approx(20.0)
        assert skills.impulse_control == 0.0

    def test_only_matching_path_changes(self, aggregator) -> None:
        skills = aggregator.apply_result(SkillTree(focus=30), "tap_only_correct", 50)
        assert skills.impulse_control == pytest.approx(10.0)
        assert skills.focus == 30.0

    def test_lower_score_never_decreases(self, aggregator) -> None:
        start = SkillTree(focus=50)
        assert aggregator.apply_result(start, "focus_hold", 10) is start

    def test_out_of_range_score_is_clamped(self, aggregator) -> None:
        skills = aggregator.apply_result(SkillTree(focus=90), "focus_hold", 400)
        assert skills.focus == pytest.approx(92.0)

    def test_garbage_score_changes_nothing(self, aggregator) -> None:
        start = SkillTree(focus=10)
        assert aggregator.apply_result(start, "focus_hold", "great") is start

    def test_repeated_perfects_reach_exactly_100(self, aggregator) -> None:
        skills = SkillTree()
        for _ in range(200):
            skills = aggregator.apply_result(skills, "popup_ignore", 100)
        assert skills.distraction_resistance == 100.0

    def test_close_step_snaps_to_score(self, aggregator) -> None:
        skills = aggregator.apply_result(SkillTree(focus=99.5), "focus_hold", 100)
        assert skills.focus == 100.0

    def test_mastery_badges_are_reachable(self, aggregator, now) -> None:
        skills = SkillTree()
        for _ in range(100):
            skills = aggregator.apply_result(skills, "focus_hold", 100)
        ctx = BadgeContext(UserProgress(), skills)
        _, new = BadgeEngine().evaluate(BadgeProgress(), ctx, now)
        assert "focus_master" in new


class TestSummary:
    def test_composites_are_averages(self, aggregator) -> None:
        summary = aggregator.summary(SkillTree(focus=40, impulse_control=20, distraction_resistance=10))
        assert summary.memory == 30.0
        assert summary.breathing == 25.0

    def test_values_rounded(self, aggregator) -> None:
        summary = aggregator.summary(SkillTree(focus=33.3333))
        assert summary.focus == 33.33
