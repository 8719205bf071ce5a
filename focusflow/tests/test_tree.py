"""Tests for focusflow.engine.tree — gating, completion, monotonic status."""

import pytest

from focusflow.engine.journey import JourneyLevelGenerator
from focusflow.engine.tree import ProgressTree, stars_for_score
from focusflow.schemas import NodeRecord, ProgressTreeState


@pytest.fixture
def tree() -> ProgressTree:
    return ProgressTree(JourneyLevelGenerator())


def _state(**statuses: str) -> ProgressTreeState:
    """``_state(**{"5-0": "available"})`` → tree state with those statuses."""
    return ProgressTreeState(nodes={key: NodeRecord(status=status) for key, status in statuses.items()})


class TestLayout:
    def test_exercise_level(self, tree) -> None:
        layout = tree.layout(1)
        assert [spec.id for spec in layout] == ["1-0", "1-1"]
        assert {spec.node_type for spec in layout} == {"exercise"}
        assert layout[0].challenge_type == "gaze_hold"

    def test_test_level_ends_with_test_node(self, tree) -> None:
        layout = tree.layout(25)
        assert layout[-1].node_type == "test"
        assert layout[-1].position == len(layout) - 1
        assert layout[-1].test_sequence

    def test_unknown_nodes(self, tree) -> None:
        assert tree.node(1, 2) is None
        assert tree.node(0, 0) is None
        assert tree.node(251, 0) is None


class TestStars:
    @pytest.mark.parametrize(("score", "stars"), [(79, 0), (80, 1), (89.9, 1), (90, 2), (95, 3), (100, 3)])
    def test_star_table(self, score, stars) -> None:
        assert stars_for_score(score) == stars


class TestNormalize:
    def test_fresh_tree_opens_first_node(self, tree) -> None:
        state = tree.normalize(ProgressTreeState())
        assert tree.status_of(state, "1-0") == "available"
        assert tree.status_of(state, "1-1") == "locked"
        assert state.current_node_id == "1-0"

    def test_normalize_is_stable(self, tree) -> None:
        once = tree.normalize(ProgressTreeState())
        assert tree.normalize(once) is once

    def test_never_lowers_a_persisted_status(self, tree) -> None:
        state = tree.normalize(_state(**{"3-1": "perfect"}))
        assert tree.status_of(state, "3-1") == "perfect"

    def test_cleared_levels_open_the_next(self, tree) -> None:
        state = tree.normalize(_state(**{"1-0": "completed", "1-1": "perfect"}))
        assert tree.status_of(state, "2-0") == "available"
        assert state.current_node_id == "2-0"

    def test_test_opens_after_all_exercises(self, tree) -> None:
        exercises = {spec.id: "completed" for spec in tree.layout(25) if spec.node_type == "exercise"}
        test_id = tree.layout(25)[-1].id
        state = tree.normalize(_state(**exercises))
        assert tree.status_of(state, test_id) == "available"
        assert tree.status_of(state, "26-0") == "locked"


class TestCompleteNode:
    def test_pass_completes_and_unlocks_next(self, tree, now) -> None:
        state = tree.normalize(ProgressTreeState())
        transition = tree.complete_node(state, 1, 0, 85, now)
        assert transition.applied and transition.passed
        assert transition.status == "completed"
        assert transition.stars_earned == 1
        assert transition.unlocked_node_ids == ("1-1",)
        record = transition.state.nodes["1-0"]
        assert record.best_score == 85
        assert record.completed_at == now
        assert transition.state.last_completed_node_id == "1-0"

    def test_mid_journey_node_unlocks_sibling(self, tree, now) -> None:
        transition = tree.complete_node(_state(**{"5-0": "available"}), 5, 0, 88, now)
        assert transition.status == "completed"
        assert tree.status_of(transition.state, "5-1") == "available"
        assert transition.unlocked_node_ids == ("5-1",)

    def test_perfect_score(self, tree, now) -> None:
        transition = tree.complete_node(tree.normalize(ProgressTreeState()), 1, 0, 96, now)
        assert transition.status == "perfect"
        assert transition.stars_earned == 3

    def test_fail_leaves_tree_untouched(self, tree, now) -> None:
        state = tree.normalize(ProgressTreeState())
        transition = tree.complete_node(state, 1, 0, 70, now)
        assert transition.applied is True
        assert transition.passed is False
        assert transition.status == "available"
        assert transition.state == state
        assert transition.state.nodes["1-0"].best_score == 0.0

    def test_status_never_regresses(self, tree, now) -> None:
        state = tree.complete_node(tree.normalize(ProgressTreeState()), 1, 0, 97, now).state
        transition = tree.complete_node(state, 1, 0, 82, now)
        assert transition.status == "perfect"
        assert transition.state.nodes["1-0"].stars_earned == 3
        assert transition.state.nodes["1-0"].best_score == 97

    def test_replay_keeps_first_completion_time(self, tree, now) -> None:
        from datetime import timedelta

        state = tree.complete_node(tree.normalize(ProgressTreeState()), 1, 0, 85, now).state
        later = tree.complete_node(state, 1, 0, 92, now + timedelta(days=1))
        assert later.state.nodes["1-0"].completed_at == now
        assert later.state.nodes["1-0"].stars_earned == 2
        assert later.unlocked_node_ids == ()

    def test_locked_node_rejected(self, tree, now) -> None:
        state = tree.normalize(ProgressTreeState())
        transition = tree.complete_node(state, 1, 1, 90, now)
        assert transition.applied is False
        assert transition.rejection == "locked"

    def test_unknown_node_rejected(self, tree, now) -> None:
        transition = tree.complete_node(ProgressTreeState(), 1, 7, 90, now)
        assert transition.applied is False
        assert transition.rejection == "unknown_node"
        assert transition.node is None

    def test_level_clears_into_next(self, tree, now) -> None:
        state = tree.normalize(ProgressTreeState())
        state = tree.complete_node(state, 1, 0, 85, now).state
        transition = tree.complete_node(state, 1, 1, 85, now)
        assert transition.unlocked_node_ids == ("2-0",)
        assert transition.state.current_node_id == "2-0"

    def test_test_node_uses_its_pass_score(self, now) -> None:
        tree = ProgressTree(JourneyLevelGenerator(test_every=1))
        state = _state(**{"1-0": "completed", "1-1": "completed"})
        state = tree.normalize(state)
        test = tree.layout(1)[-1]
        assert tree.status_of(state, test.id) == "available"

        failed = tree.complete_node(state, 1, test.position, test.pass_score - 1, now)
        assert failed.passed is False
        passed = tree.complete_node(state, 1, test.position, test.pass_score, now)
        assert passed.passed is True
        assert "2-0" in passed.unlocked_node_ids


class TestQueries:
    def test_resolve_position_prefers_available(self, tree, now) -> None:
        state = tree.normalize(ProgressTreeState())
        assert tree.resolve_position(state, 1) == 0
        state = tree.complete_node(state, 1, 0, 85, now).state
        assert tree.resolve_position(state, 1) == 1

    def test_resolve_position_falls_back_to_replay(self, tree) -> None:
        state = tree.normalize(_state(**{"1-0": "completed", "1-1": "completed"}))
        assert tree.resolve_position(state, 1) == 0

    def test_is_playable(self, tree) -> None:
        state = tree.normalize(ProgressTreeState())
        assert tree.is_playable(state, 1, 0) is True
        assert tree.is_playable(state, 1, 1) is False
        assert tree.is_playable(state, 1, 9) is False

    def test_view_runs_to_frontier(self, tree) -> None:
        view = tree.view(tree.normalize(ProgressTreeState()))
        assert [node.id for node in view.nodes] == ["1-0", "1-1"]
        assert [node.status for node in view.nodes] == ["available", "locked"]
        assert view.current_node_id == "1-0"

    def test_view_explicit_range(self, tree) -> None:
        view = tree.view(ProgressTreeState(), 24, 25)
        levels = {node.level for node in view.nodes}
        assert levels == {24, 25}
        assert view.nodes[-1].node_type == "test"
        assert view.nodes[-1].test_sequence
