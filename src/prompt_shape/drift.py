"""Topic overlap between consecutive turns."""

from typing import Optional

from .models import TopicKeyword
from .stats import clamp

# Neutral overlap used when there is nothing to compare against.
DEFAULT_OVERLAP = 0.5


def compute_topic_overlap(
    sig_a: Optional[list[TopicKeyword]],
    sig_b: Optional[list[TopicKeyword]],
) -> float:
    """Blend of keyword-set Jaccard and shared keyword weight.

    Args:
        sig_a: Signature of the earlier turn.
        sig_b: Signature of the later turn.

    Returns:
        A value in [0, 1]; DEFAULT_OVERLAP if either signature is empty.
    """
    if not sig_a or not sig_b:
        return DEFAULT_OVERLAP

    weights_a = {kw.word: kw.weight for kw in sig_a}
    weights_b = {kw.word: kw.weight for kw in sig_b}
    shared = weights_a.keys() & weights_b.keys()
    union = weights_a.keys() | weights_b.keys()

    jaccard = len(shared) / len(union)
    weighted = sum(weights_a[w] + weights_b[w] for w in shared) / 2

    return clamp(0.6 * jaccard + 0.4 * weighted, 0.0, 1.0)


def drift_score(overlap: Optional[float]) -> Optional[float]:
    """Topic drift is the complement of overlap."""
    if overlap is None:
        return None
    return 1 - overlap
