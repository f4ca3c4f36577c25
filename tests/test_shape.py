"""Unit tests for session shape descriptors and classification."""

import pytest

from prompt_shape.models import PromptMetrics, PromptNode
from prompt_shape.shape import (
    SESSION_CLASSIFICATIONS,
    classification_info,
    classify_session,
    compute_session_shape,
)

CATEGORIES = ["filesystem", "execution", "browser", "search", "media", "communication", "infrastructure"]


def make_node(
    index: int,
    drift: float | None = 0.1,
    complexity: int = 30,
    latency: int = 2000,
    tokens: int = 50,
    focus: float = 0.6,
    categories: list | None = None,
    timestamp: int | None = None,
) -> PromptNode:
    metrics = PromptMetrics(
        char_count=tokens * 4,
        word_count=tokens,
        token_estimate=tokens,
        tool_call_count=len(categories or []),
        tool_types=[],
        tool_categories=list(categories or []),
        response_latency_ms=latency,
        latency_bucket="fast",
        similarity_to_prev=None if drift is None else 1 - drift,
        topic_drift_score=drift,
        complexity_score=complexity,
        focus_score=focus,
        sentence_count=1,
        question_count=0,
        thinking_intensity=0.0,
        tool_diversity=0.0,
        intent="command",
    )
    return PromptNode(
        id=f"n{index}",
        index=index,
        text="x",
        text_preview="x",
        timestamp=1_000_000 + index * 1000 if timestamp is None else timestamp,
        metrics=metrics,
    )


class TestSpecialCases:
    """Tests for sessions with zero or one node."""

    def test_empty_session(self):
        shape = compute_session_shape([])
        assert shape.classification == "mixed"
        assert shape.momentum == 0.5
        assert (shape.linearity, shape.density, shape.rhythm, shape.breadth, shape.convergence) == (0, 0, 0, 0, 0)
        assert shape.node_count == 0
        assert shape.duration_ms == 0
        assert shape.drift_profile == []
        assert shape.complexity_profile == []

    def test_single_node_is_sprint(self):
        shape = compute_session_shape([make_node(0, drift=0.5, complexity=42)])
        assert shape.classification == "sprint"
        assert (shape.linearity, shape.density, shape.rhythm) == (1, 1, 1)
        assert (shape.breadth, shape.convergence, shape.momentum) == (0, 0, 0.5)
        assert shape.node_count == 1
        assert shape.drift_profile == [0.5]
        assert shape.complexity_profile == [42]

    def test_single_node_without_drift(self):
        shape = compute_session_shape([make_node(0, drift=None)])
        assert shape.drift_profile == [0]


class TestDescriptors:
    """Tests for the descriptor formulas and the resulting labels."""

    def test_focused_build(self):
        nodes = [make_node(i, drift=0.1, focus=f) for i, f in enumerate([0.6, 0.7, 0.8, 0.9])]
        shape = compute_session_shape(nodes)
        assert shape.linearity == pytest.approx(0.85)
        assert shape.density == 1.0
        assert shape.rhythm == 1.0
        assert shape.breadth == 0.0
        assert shape.convergence == pytest.approx(0.4)
        assert shape.momentum == 0.5
        assert shape.classification == "focused-build"

    def test_research_spiral(self):
        drifts = [0.1, 0.2, 0.8, 0.9]
        nodes = [
            make_node(i, drift=d, complexity=10 * (i + 1), focus=0.5, categories=CATEGORIES[:5])
            for i, d in enumerate(drifts)
        ]
        shape = compute_session_shape(nodes)
        assert shape.linearity == pytest.approx(0.25)
        assert shape.breadth == pytest.approx(0.53)
        assert shape.convergence == pytest.approx(-0.42)
        assert shape.momentum == 1.0
        assert shape.classification == "research-spiral"
        assert shape.drift_profile == [0.1, 0.2, 0.8, 0.9]
        assert shape.complexity_profile == [10, 20, 30, 40]

    def test_collaborative_discovery(self):
        nodes = [make_node(i, drift=0.3, focus=0.5, categories=CATEGORIES[:3]) for i in range(5)]
        shape = compute_session_shape(nodes)
        assert shape.linearity == pytest.approx(0.55)
        assert shape.breadth == pytest.approx(0.21)
        assert shape.classification == "collaborative-discovery"

    def test_sprint(self):
        nodes = [make_node(i, drift=0.1, focus=0.5) for i in range(3)]
        assert compute_session_shape(nodes).classification == "sprint"

    def test_exploratory(self):
        nodes = [make_node(i, drift=0.7, focus=0.5, categories=CATEGORIES[:5]) for i in range(4)]
        shape = compute_session_shape(nodes)
        assert shape.linearity == 0.0
        assert shape.classification == "exploratory"

    def test_scattered(self):
        nodes = []
        for i in range(6):
            big = i % 2 == 1
            nodes.append(make_node(
                i,
                drift=0.5 if big else 0.9,
                complexity=90 if big else 5,
                tokens=500 if big else 10,
                latency=60000 if big else 100,
                focus=0.5,
            ))
        shape = compute_session_shape(nodes)
        assert shape.linearity == 0.0
        assert shape.density < 0.4
        assert shape.rhythm < 0.4
        assert shape.classification == "scattered"

    def test_mixed(self):
        nodes = [make_node(i, drift=0.3, focus=0.5) for i in range(10)]
        shape = compute_session_shape(nodes)
        assert shape.classification == "mixed"

    def test_descriptors_stay_in_range(self):
        nodes = [
            make_node(i, drift=d, complexity=c, latency=l, tokens=t, focus=f, categories=CATEGORIES)
            for i, (d, c, l, t, f) in enumerate([
                (1.0, 100, 0, 1, 0.0),
                (0.0, 0, 500000, 2000, 1.0),
                (1.0, 50, 10, 3, 0.2),
            ])
        ]
        shape = compute_session_shape(nodes)
        for value in (shape.linearity, shape.density, shape.rhythm, shape.breadth, shape.momentum):
            assert 0.0 <= value <= 1.0
        assert -1.0 <= shape.convergence <= 1.0

    def test_duration_uses_positive_timestamps(self):
        nodes = [make_node(0, timestamp=1000), make_node(1, timestamp=0), make_node(2, timestamp=5000)]
        assert compute_session_shape(nodes).duration_ms == 4000

    def test_nodes_without_metrics_are_skipped(self):
        nodes = [make_node(0), make_node(1), make_node(2)]
        nodes[1].metrics = None
        shape = compute_session_shape(nodes)
        assert shape.node_count == 3
        assert len(shape.drift_profile) == 2


class TestClassifySession:
    """Tests for rule order and the label table."""

    def test_first_matching_rule_wins(self):
        # Also satisfies the sprint rule.
        label = classify_session(
            linearity=0.9, density=0.9, rhythm=0.9, breadth=0.0,
            convergence=0.2, momentum=0.6, node_count=3, avg_focus=0.8,
        )
        assert label == "focused-build"

    def test_nothing_matches(self):
        label = classify_session(
            linearity=0.5, density=0.5, rhythm=0.5, breadth=0.0,
            convergence=0.0, momentum=0.3, node_count=20, avg_focus=0.5,
        )
        assert label == "mixed"

    def test_classification_info(self):
        assert classification_info("sprint")["label"] == "Sprint"
        assert classification_info("no-such-label") == SESSION_CLASSIFICATIONS["mixed"]
