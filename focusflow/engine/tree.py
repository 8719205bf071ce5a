"""Progress tree — node gating, completion, and unlock rules.

Nodes are identified by ``"level-position"``. Positions 0..n-1 of a level
are its exercises (one per generated activity); a test level has one more
node at position n, the endurance test. Only node *status* is persisted
(``ProgressTreeState``); everything else comes from the journey generator.

Gating:
- exercise i of a level opens when exercise i-1 is completed or perfect;
- the test opens when every exercise of its level is completed or perfect;
- node 0 of level L+1 opens when the test of L is passed, or, on levels
  without a test, when all of L's exercises are done.

``normalize`` re-derives those rules over persisted status with a single
walk from level 1, and only ever *raises* a status. It runs on load and
after every completion, so a record written by an older version (or
hand-edited) converges to a consistent tree without losing anything.

Tier 2 engine module: imports from focusflow.engine.journey (Tier 2),
focusflow.schemas and focusflow.constants (Tier 1).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from focusflow.constants import PASS_THRESHOLD, PERFECT_THRESHOLD, STAR_TABLE
from focusflow.engine.journey import JourneyLevelGenerator
from focusflow.schemas import (
    NODE_STATUSES,
    NodeRecord,
    NodeStatus,
    NodeType,
    NodeView,
    ProgressTreeState,
    ProgressTreeView,
    node_id,
    parse_node_id,
)

logger = logging.getLogger("focusflow.engine.tree")

STATUS_RANK: dict[str, int] = {status: rank for rank, status in enumerate(NODE_STATUSES)}


def is_done(status: str) -> bool:
    return status in ("completed", "perfect")


def stars_for_score(score: float) -> int:
    for threshold, stars in STAR_TABLE:
        if score >= threshold:
            return stars
    return 0


@dataclass(frozen=True)
class NodeSpec:
    """Content-side description of one node (never persisted)."""

    id: str
    level: int
    position: int
    node_type: NodeType
    challenge_type: str
    pass_score: int
    xp_reward: int
    test_sequence: tuple[str, ...] | None = None


@dataclass(frozen=True)
class NodeTransition:
    """Result of submitting a score against a node."""

    state: ProgressTreeState
    node: NodeSpec | None
    applied: bool
    passed: bool = False
    previous_status: NodeStatus = "locked"
    status: NodeStatus = "locked"
    stars_earned: int = 0
    unlocked_node_ids: tuple[str, ...] = field(default_factory=tuple)
    rejection: str | None = None


class ProgressTree:
    """Applies gating rules to ProgressTreeState values.

    Args:
        generator: Source of per-level content; its test cadence decides
            which levels carry a test node.
    """

    def __init__(self, generator: JourneyLevelGenerator) -> None:
        self.generator = generator
        self._layouts: dict[int, tuple[NodeSpec, ...]] = {}

    # -- Layout ------------------------------------------------------------

    def layout(self, level: int) -> tuple[NodeSpec, ...]:
        """Node specs of one level, exercises first, then the test if any."""
        cached = self._layouts.get(level)
        if cached is not None:
            return cached

        content = self.generator.level_for(level)
        specs = [
            NodeSpec(
                id=node_id(level, position),
                level=level,
                position=position,
                node_type="exercise",
                challenge_type=activity.type,
                pass_score=PASS_THRESHOLD,
                xp_reward=activity.xp_reward,
            )
            for position, activity in enumerate(content.activities)
        ]
        if content.test is not None:
            specs.append(
                NodeSpec(
                    id=node_id(level, len(specs)),
                    level=level,
                    position=len(specs),
                    node_type="test",
                    challenge_type=content.test.sequence[0],
                    pass_score=content.test.pass_score,
                    xp_reward=content.test.xp_reward,
                    test_sequence=content.test.sequence,
                )
            )

        layout = tuple(specs)
        self._layouts[level] = layout
        return layout

    def node(self, level: int, position: int) -> NodeSpec | None:
        if level < 1 or level > self.generator.max_level:
            return None
        layout = self.layout(level)
        if 0 <= position < len(layout):
            return layout[position]
        return None

    # -- Status ------------------------------------------------------------

    @staticmethod
    def status_of(state: ProgressTreeState, key: str) -> NodeStatus:
        record = state.nodes.get(key)
        return record.status if record is not None else "locked"

    def is_playable(self, state: ProgressTreeState, level: int, position: int) -> bool:
        spec = self.node(level, position)
        return spec is not None and self.status_of(state, spec.id) != "locked"

    def normalize(self, state: ProgressTreeState) -> ProgressTreeState:
        """Opens every node the gating rules allow and recomputes the cursor.

        Statuses only move forward; a persisted status above what the rules
        derive is kept.
        """
        nodes = dict(state.nodes)
        touched = max((parse_node_id(key)[0] for key in nodes), default=0)
        current: str | None = None
        previous_cleared = True

        for level in range(1, self.generator.max_level + 1):
            if not previous_cleared and level > touched:
                break

            gate = previous_cleared
            all_exercises_done = True
            cleared = False
            for spec in self.layout(level):
                if spec.node_type == "test":
                    gate = all_exercises_done
                status = self._open(nodes, spec.id, gate)
                if status == "available" and current is None:
                    current = spec.id
                gate = is_done(status)
                if spec.node_type == "exercise":
                    all_exercises_done = all_exercises_done and gate
                else:
                    cleared = gate
            if not self.generator.is_test_level(level):
                cleared = all_exercises_done
            previous_cleared = cleared

        if nodes == state.nodes and current == state.current_node_id:
            return state
        return state.model_copy(update={"nodes": nodes, "current_node_id": current})

    @staticmethod
    def _open(nodes: dict[str, NodeRecord], key: str, gate: bool) -> NodeStatus:
        record = nodes.get(key)
        status: NodeStatus = record.status if record is not None else "locked"
        if gate and status == "locked":
            nodes[key] = (record or NodeRecord()).model_copy(update={"status": "available"})
            return "available"
        return status

    def resolve_position(self, state: ProgressTreeState, level: int) -> int:
        """Picks the node a result without a position refers to.

        The first available node of the level; failing that, the first done
        node (a replay); failing that, position 0.
        """
        layout = self.layout(level)
        for spec in layout:
            if self.status_of(state, spec.id) == "available":
                return spec.position
        for spec in layout:
            if is_done(self.status_of(state, spec.id)):
                return spec.position
        return 0

    # -- Completion --------------------------------------------------------

    def complete_node(
        self,
        state: ProgressTreeState,
        level: int,
        position: int,
        score: float,
        now: datetime,
    ) -> NodeTransition:
        """Submits a score against one node.

        A pass moves the node to completed (or perfect), raises its stars
        and opens whatever the gating rules now allow. A fail leaves the
        tree untouched; the caller is responsible for the heart.

        Args:
            state: Current tree state.
            level: Node level.
            position: Node position within the level.
            score: Sanitized 0..100 score.
            now: Completion time, stored on first completion.

        Returns:
            A NodeTransition. ``applied`` is False for unknown or locked
            nodes, with ``rejection`` saying which.
        """
        spec = self.node(level, position)
        if spec is None:
            logger.warning("Result for unknown node %s", node_id(level, position))
            return NodeTransition(state=state, node=None, applied=False, rejection="unknown_node")

        state = self.normalize(state)
        previous = self.status_of(state, spec.id)
        record = state.nodes.get(spec.id) or NodeRecord()

        if previous == "locked":
            logger.warning("Result for locked node %s ignored by the tree", spec.id)
            return NodeTransition(state=state, node=spec, applied=False, rejection="locked")

        if score < spec.pass_score:
            return NodeTransition(
                state=state,
                node=spec,
                applied=True,
                passed=False,
                previous_status=previous,
                status=previous,
                stars_earned=record.stars_earned,
            )

        earned: NodeStatus = "perfect" if score >= PERFECT_THRESHOLD else "completed"
        status = earned if STATUS_RANK[earned] > STATUS_RANK[previous] else previous
        updated = NodeRecord(
            status=status,
            stars_earned=max(record.stars_earned, stars_for_score(score)),
            best_score=max(record.best_score, score),
            completed_at=record.completed_at or now,
        )

        before = {key for key, rec in state.nodes.items() if rec.status != "locked"}
        new_state = self.normalize(
            state.model_copy(
                update={
                    "nodes": {**state.nodes, spec.id: updated},
                    "last_completed_node_id": spec.id,
                }
            )
        )
        unlocked = tuple(
            key
            for key, rec in new_state.nodes.items()
            if rec.status == "available" and key not in before
        )

        return NodeTransition(
            state=new_state,
            node=spec,
            applied=True,
            passed=True,
            previous_status=previous,
            status=status,
            stars_earned=updated.stars_earned,
            unlocked_node_ids=unlocked,
        )

    # -- Views -------------------------------------------------------------

    def frontier_level(self, state: ProgressTreeState) -> int:
        """Level of the current node, or the highest level touched."""
        if state.current_node_id is not None:
            parsed = parse_node_id(state.current_node_id)
            if parsed is not None:
                return parsed[0]
        return max((parse_node_id(key)[0] for key in state.nodes), default=1)

    def view(
        self,
        state: ProgressTreeState,
        from_level: int = 1,
        to_level: int | None = None,
    ) -> ProgressTreeView:
        """Renders nodes of a level range (default: level 1 to the frontier)."""
        first = max(1, from_level)
        last = min(self.generator.max_level, to_level or self.frontier_level(state))
        views: list[NodeView] = []
        for level in range(first, last + 1):
            for spec in self.layout(level):
                record = state.nodes.get(spec.id)
                views.append(
                    NodeView(
                        id=spec.id,
                        level=spec.level,
                        position=spec.position,
                        node_type=spec.node_type,
                        challenge_type=spec.challenge_type,
                        status=record.status if record else "locked",
                        stars_earned=record.stars_earned if record else 0,
                        best_score=record.best_score if record else 0.0,
                        pass_score=spec.pass_score,
                        xp_reward=spec.xp_reward,
                        test_sequence=list(spec.test_sequence) if spec.test_sequence else None,
                    )
                )
        return ProgressTreeView(nodes=views, current_node_id=state.current_node_id)
