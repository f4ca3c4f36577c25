"""Session shape: whole-session working-style descriptors and classification."""

from typing import Callable

from .features import MAX_TOOL_CATEGORIES
from .models import PromptNode, SessionShape
from .stats import clamp, coefficient_of_variation, mean, round2, round_half_up, stddev, trend_slope

SESSION_CLASSIFICATIONS = {
    "focused-build": {
        "label": "Focused Build",
        "description": "Tight, linear session driving toward a specific outcome.",
    },
    "research-spiral": {
        "label": "Research Spiral",
        "description": "Widening exploration with escalating complexity.",
    },
    "collaborative-discovery": {
        "label": "Collaborative Discovery",
        "description": "Back-and-forth problem solving with balanced exploration.",
    },
    "sprint": {
        "label": "Sprint",
        "description": "Short, targeted burst of focused work.",
    },
    "exploratory": {
        "label": "Exploratory",
        "description": "Wide-ranging investigation without a fixed target.",
    },
    "scattered": {
        "label": "Scattered",
        "description": "No clear direction; topics, complexity and rhythm all over the place.",
    },
    "mixed": {
        "label": "Mixed",
        "description": "Doesn't fit a clean pattern; multiple phases or style shifts.",
    },
}

# First match wins; "mixed" when nothing matches.
_CLASSIFICATION_RULES: tuple[tuple[str, Callable[[dict], bool]], ...] = (
    (
        "focused-build",
        lambda d: d["linearity"] > 0.6 and d["density"] > 0.5
        and d["convergence"] > 0 and d["avg_focus"] > 0.5,
    ),
    (
        "research-spiral",
        lambda d: d["breadth"] > 0.4 and d["convergence"] < -0.1 and d["momentum"] > 0.5,
    ),
    (
        "collaborative-discovery",
        lambda d: 0.3 < d["linearity"] < 0.7 and d["breadth"] > 0.2 and d["rhythm"] > 0.3,
    ),
    (
        "sprint",
        lambda d: d["node_count"] <= 8 and d["linearity"] > 0.5 and d["momentum"] > 0.4,
    ),
    (
        "exploratory",
        lambda d: d["linearity"] < 0.4 and d["breadth"] > 0.3 and abs(d["convergence"]) < 0.2,
    ),
    (
        "scattered",
        lambda d: d["linearity"] < 0.35 and d["density"] < 0.4 and d["rhythm"] < 0.4,
    ),
)


def classification_info(name: str) -> dict:
    """Display label and description; unknown names get the "mixed" entry."""
    return SESSION_CLASSIFICATIONS.get(name, SESSION_CLASSIFICATIONS["mixed"])


def classify_session(
    linearity: float,
    density: float,
    rhythm: float,
    breadth: float,
    convergence: float,
    momentum: float,
    node_count: int,
    avg_focus: float,
) -> str:
    """Pick the first classification whose thresholds the descriptors meet."""
    descriptors = {
        "linearity": linearity,
        "density": density,
        "rhythm": rhythm,
        "breadth": breadth,
        "convergence": convergence,
        "momentum": momentum,
        "node_count": node_count,
        "avg_focus": avg_focus,
    }
    for name, matches in _CLASSIFICATION_RULES:
        if matches(descriptors):
            return name
    return "mixed"


def empty_shape() -> SessionShape:
    return SessionShape(
        linearity=0.0,
        density=0.0,
        rhythm=0.0,
        breadth=0.0,
        convergence=0.0,
        momentum=0.5,
        classification="mixed",
        node_count=0,
        duration_ms=0,
        drift_profile=[],
        complexity_profile=[],
    )


def single_node_shape(node: PromptNode) -> SessionShape:
    m = node.metrics
    drift = m.topic_drift_score if m and m.topic_drift_score is not None else 0.0
    complexity = m.complexity_score if m else 0
    return SessionShape(
        linearity=1.0,
        density=1.0,
        rhythm=1.0,
        breadth=0.0,
        convergence=0.0,
        momentum=0.5,
        classification="sprint",
        node_count=1,
        duration_ms=0,
        drift_profile=[drift],
        complexity_profile=[complexity],
    )


def compute_session_shape(nodes: list[PromptNode]) -> SessionShape:
    """Aggregate per-turn metrics into the session's shape.

    Linearity reflects how little the topic drifts, density how even the
    turns are in size, rhythm how steady response latency is, breadth how
    many tool categories and topics are covered, convergence whether drift
    falls and focus rises over time, and momentum whether complexity builds.

    Nodes without metrics are left out of the metric series but still count
    towards ``node_count``. The descriptors are rounded to two decimals in
    the result; classification uses the unrounded values.

    Args:
        nodes: Prompt nodes in session order.

    Returns:
        A SessionShape.
    """
    if not nodes:
        return empty_shape()
    if len(nodes) == 1:
        return single_node_shape(nodes[0])

    drifts: list[float] = []
    complexities: list[float] = []
    latencies: list[float] = []
    tokens: list[float] = []
    focus_scores: list[float] = []
    categories: set[str] = set()

    for node in nodes:
        m = node.metrics
        if m is None:
            continue
        drifts.append(m.topic_drift_score if m.topic_drift_score is not None else 0.0)
        complexities.append(m.complexity_score)
        latencies.append(m.response_latency_ms)
        tokens.append(m.token_estimate)
        focus_scores.append(m.focus_score if m.focus_score is not None else 0.5)
        categories.update(m.tool_categories)

    linearity = clamp(1 - mean(drifts) * 1.5, 0.0, 1.0)

    density = clamp(
        1 - (0.6 * coefficient_of_variation(complexities) + 0.4 * coefficient_of_variation(tokens)),
        0.0,
        1.0,
    )

    rhythm = clamp(1 - 0.7 * coefficient_of_variation(latencies), 0.0, 1.0)

    breadth = clamp(
        0.5 * (len(categories) / MAX_TOOL_CATEGORIES) + 0.5 * stddev(drifts),
        0.0,
        1.0,
    )

    half = len(drifts) // 2
    drift_delta = mean(drifts[: half or 1]) - mean(drifts[half:])
    convergence = clamp(0.6 * drift_delta + 0.4 * trend_slope(focus_scores), -1.0, 1.0)

    momentum = clamp((trend_slope(complexities) + 1) / 2, 0.0, 1.0)

    classification = classify_session(
        linearity=linearity,
        density=density,
        rhythm=rhythm,
        breadth=breadth,
        convergence=convergence,
        momentum=momentum,
        node_count=len(nodes),
        avg_focus=mean(focus_scores),
    )

    timestamps = [node.timestamp for node in nodes if node.timestamp > 0]
    duration_ms = max(timestamps) - min(timestamps) if len(timestamps) >= 2 else 0

    return SessionShape(
        linearity=round2(linearity),
        density=round2(density),
        rhythm=round2(rhythm),
        breadth=round2(breadth),
        convergence=round2(convergence),
        momentum=round2(momentum),
        classification=classification,
        node_count=len(nodes),
        duration_ms=duration_ms,
        drift_profile=[round2(d) for d in drifts],
        complexity_profile=[int(round_half_up(c)) for c in complexities],
    )
