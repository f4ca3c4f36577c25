"""Outcome links: connecting a session to the code it produced.

An OutcomeLink is immutable. Every update function returns a new link with
``linked_at`` refreshed, so callers can keep older versions around and the
store decides which one wins.
"""

import json
from dataclasses import replace
from typing import Any, Optional, Union

from .models import CommitRange, DiffSummary, OutcomeLink
from .stats import round_half_up
from .time_utils import now_ms

OUTCOMES = {
    "shipped": {"label": "Shipped", "description": "Feature/fix merged or deployed"},
    "wip": {"label": "WIP", "description": "Work in progress, not yet merged"},
    "abandoned": {"label": "Abandoned", "description": "Work was dropped or reverted"},
    "research": {"label": "Research", "description": "Investigation only, no code output"},
    "unknown": {"label": "Unknown", "description": "Outcome not yet determined"},
}


def outcome_info(name: str) -> dict:
    return OUTCOMES.get(name, OUTCOMES["unknown"])


def create_outcome_link(session_id: str, now: Optional[int] = None) -> OutcomeLink:
    """Empty link for a session: no repo, no commits, outcome "unknown"."""
    return OutcomeLink(
        session_id=session_id,
        linked_at=now_ms() if now is None else now,
    )


def link_to_repo(
    link: OutcomeLink,
    repo: str,
    branch: str,
    memory_chain_id: Optional[str] = None,
    now: Optional[int] = None,
) -> OutcomeLink:
    """Record the repository and branch. Keeps the memory chain id unless a new one is given."""
    return replace(
        link,
        repo=repo,
        branch=branch,
        memory_chain_id=memory_chain_id or link.memory_chain_id,
        linked_at=now_ms() if now is None else now,
    )


def attach_commit_range(link: OutcomeLink, commit_range: CommitRange, now: Optional[int] = None) -> OutcomeLink:
    return replace(link, commit_range=commit_range, linked_at=now_ms() if now is None else now)


def attach_diff_summary(link: OutcomeLink, diff: DiffSummary, now: Optional[int] = None) -> OutcomeLink:
    return replace(link, diff=diff, linked_at=now_ms() if now is None else now)


def set_outcome(
    link: OutcomeLink,
    outcome: str,
    tags: Optional[list[str]] = None,
    now: Optional[int] = None,
) -> OutcomeLink:
    """Set the outcome label and optionally replace the tags.

    Args:
        link: The link to update.
        outcome: One of OUTCOMES; anything else is stored as "unknown".
        tags: New tags, or None to keep the existing ones.
        now: Timestamp to record instead of the current time.

    Returns:
        The updated link.
    """
    return replace(
        link,
        outcome=outcome if outcome in OUTCOMES else "unknown",
        tags=link.tags if tags is None else tuple(tags),
        linked_at=now_ms() if now is None else now,
    )


def infer_outcome(link: OutcomeLink) -> str:
    """Conservative guess from git data: no commits means research, changed files means wip."""
    if link.commit_range is None or link.commit_range.count == 0:
        return "research"
    if link.diff is not None and link.diff.files_changed > 0:
        return "wip"
    return "unknown"


def compute_output_score(link: OutcomeLink) -> int:
    """Rough 0-100 measure of how much code a session produced.

    Commits contribute up to 40 points, changed files up to 30 and changed
    lines up to 30.
    """
    score = 0.0
    if link.commit_range is not None:
        score += min(40, link.commit_range.count * 10)
    if link.diff is not None:
        score += min(30, link.diff.files_changed * 5)
        total_lines = link.diff.lines_added + link.diff.lines_removed
        score += min(30, total_lines / 10)
    return int(round_half_up(min(100, score)))


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def link_to_record(link: OutcomeLink) -> dict:
    """Convert an OutcomeLink to the JSON-compatible camelCase record."""
    commit_range = None
    if link.commit_range is not None:
        commit_range = {
            "first": link.commit_range.first,
            "last": link.commit_range.last,
            "count": link.commit_range.count,
            "messages": list(link.commit_range.messages),
        }
    diff = None
    if link.diff is not None:
        diff = {
            "filesChanged": link.diff.files_changed,
            "linesAdded": link.diff.lines_added,
            "linesRemoved": link.diff.lines_removed,
            "fileTypes": list(link.diff.file_types),
        }
    return {
        "sessionId": link.session_id,
        "repo": link.repo,
        "branch": link.branch,
        "commitRange": commit_range,
        "diff": diff,
        "outcome": link.outcome,
        "tags": list(link.tags),
        "memoryChainId": link.memory_chain_id,
        "linkedAt": link.linked_at,
    }


def serialize_link(link: OutcomeLink) -> str:
    return json.dumps(link_to_record(link), ensure_ascii=False)


def _string_tuple(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    return tuple(str(v) for v in value)


def _commit_range_from_record(data: Any) -> Optional[CommitRange]:
    if not data:
        return None
    if not isinstance(data, dict):
        raise ValueError("commitRange must be an object")
    return CommitRange(
        first=str(data.get("first") or ""),
        last=str(data.get("last") or ""),
        count=int(data.get("count") or 0),
        messages=_string_tuple(data.get("messages"), "messages"),
    )


def _diff_from_record(data: Any) -> Optional[DiffSummary]:
    if not data:
        return None
    if not isinstance(data, dict):
        raise ValueError("diff must be an object")
    return DiffSummary(
        files_changed=int(data.get("filesChanged") or 0),
        lines_added=int(data.get("linesAdded") or 0),
        lines_removed=int(data.get("linesRemoved") or 0),
        file_types=_string_tuple(data.get("fileTypes"), "fileTypes"),
    )


def deserialize_link(data: Union[str, dict]) -> Optional[OutcomeLink]:
    """Rebuild an OutcomeLink from its JSON text or decoded record.

    Returns None for anything that is not a usable link: invalid JSON, a
    non-object, a missing session id, list fields that are not lists, or
    malformed or non-finite numbers. Missing optional fields take their
    defaults and a missing ``linkedAt`` becomes the current time.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError:
            return None
    if not isinstance(data, dict) or not data.get("sessionId"):
        return None

    try:
        commit_range = _commit_range_from_record(data.get("commitRange"))
        diff = _diff_from_record(data.get("diff"))
        tags = _string_tuple(data.get("tags"), "tags")
        linked_at = data.get("linkedAt")
        linked_at = now_ms() if linked_at is None else int(linked_at)
    except (TypeError, ValueError, OverflowError):
        return None

    outcome = data.get("outcome")
    if not isinstance(outcome, str) or outcome not in OUTCOMES:
        outcome = "unknown"
    return OutcomeLink(
        session_id=str(data["sessionId"]),
        repo=data.get("repo") or None,
        branch=data.get("branch") or None,
        commit_range=commit_range,
        diff=diff,
        outcome=outcome,
        tags=tags,
        memory_chain_id=data.get("memoryChainId") or None,
        linked_at=linked_at,
    )
