"""Composite focus and complexity scores for a single turn."""

from typing import Optional

from .drift import DEFAULT_OVERLAP
from .stats import clamp, round_half_up

# Focus sub-score weights; they sum to 1.
FOCUS_WEIGHTS = {
    "length": 0.20,
    "sentences": 0.15,
    "questions": 0.15,
    "tools": 0.20,
    "cohesion": 0.30,
}


def compute_focus_score(
    char_count: int,
    sentence_count: int,
    question_count: int,
    tool_diversity: float,
    topic_overlap: Optional[float],
) -> float:
    """How narrowly a turn is aimed, in [0, 1].

    Short prompts with one sentence and at most one question, few tool
    categories and high overlap with the previous turn score highest.
    """
    cohesion = DEFAULT_OVERLAP if topic_overlap is None else topic_overlap
    parts = {
        "length": clamp(1 - char_count / 2000, 0.0, 1.0),
        "sentences": clamp(1 - (sentence_count - 1) / 10, 0.0, 1.0),
        "questions": clamp(1 - (question_count - 1) / 5, 0.0, 1.0),
        "tools": clamp(1 - tool_diversity, 0.0, 1.0),
        "cohesion": clamp(cohesion, 0.0, 1.0),
    }
    total = sum(parts[name] * weight for name, weight in FOCUS_WEIGHTS.items())
    return clamp(total, 0.0, 1.0)


def calculate_complexity(char_count: int, tool_call_count: int, response_latency_ms: float) -> int:
    """Integer complexity in [0, 100] from prompt length, tool calls and latency."""
    raw = (
        0.40 * min(char_count / 2000, 1.0)
        + 0.35 * min(tool_call_count / 5, 1.0)
        + 0.25 * min(response_latency_ms / 30000, 1.0)
    )
    return int(round_half_up(clamp(raw, 0.0, 1.0) * 100))
