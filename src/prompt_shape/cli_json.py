"""JSON CLI for prompt-shape.

All subcommands output JSON to stdout. Errors go to stderr with exit code 1.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Optional

from .config import Config, apply_overrides, default_config, load_config
from .db import (
    get_all_outcome_links,
    get_outcome_link,
    get_shape_outcome_pairs,
    init_db,
    upsert_outcome_link,
    upsert_session_shape,
)
from .features import CONTENT_TYPES, INTENT_TYPES
from .ingest import load_session
from .models import (
    CommitRange,
    DiffSummary,
    OutcomeLink,
    ParseError,
    ParseResult,
    PromptMetrics,
    PromptNode,
    SessionMeta,
    SessionShape,
)
from .outcome import (
    OUTCOMES,
    attach_commit_range,
    attach_diff_summary,
    compute_output_score,
    create_outcome_link,
    infer_outcome,
    link_to_record,
    link_to_repo,
    outcome_info,
    set_outcome,
)
from .shape import SESSION_CLASSIFICATIONS, classification_info


# ---------------------------------------------------------------------------
# Client converters
# ---------------------------------------------------------------------------


def metrics_to_client(m: PromptMetrics) -> dict:
    return {
        "charCount": m.char_count,
        "wordCount": m.word_count,
        "tokenEstimate": m.token_estimate,
        "toolCallCount": m.tool_call_count,
        "toolTypes": list(m.tool_types),
        "toolCategories": list(m.tool_categories),
        "responseLatencyMs": m.response_latency_ms,
        "latencyBucket": m.latency_bucket,
        "similarityToPrev": m.similarity_to_prev,
        "topicDriftScore": m.topic_drift_score,
        "complexityScore": m.complexity_score,
        "focusScore": m.focus_score,
        "sentenceCount": m.sentence_count,
        "questionCount": m.question_count,
        "thinkingIntensity": m.thinking_intensity,
        "toolDiversity": m.tool_diversity,
        "intent": m.intent,
        "contentTypes": [{"type": c.type, "count": c.count} for c in m.content_types],
    }


def node_to_client(node: PromptNode) -> dict:
    """Convert PromptNode to the client record (camelCase keys)."""
    return {
        "id": node.id,
        "index": node.index,
        "text": node.text,
        "textPreview": node.text_preview,
        "timestamp": node.timestamp,
        "metrics": metrics_to_client(node.metrics) if node.metrics else None,
        "position": {"x": node.position.x, "y": node.position.y, "z": node.position.z},
        "prevId": node.prev_id,
        "nextId": node.next_id,
    }


def meta_to_client(meta: SessionMeta) -> dict:
    return {
        "sessionId": meta.session_id,
        "startTime": meta.start_time,
        "endTime": meta.end_time,
        "nodeCount": meta.node_count,
        "totalTokens": meta.total_tokens,
        "avgComplexity": meta.avg_complexity,
        "maxComplexity": meta.max_complexity,
        "avgLatency": meta.avg_latency,
        "toolsUsed": list(meta.tools_used),
    }


def shape_to_client(shape: SessionShape) -> dict:
    return {
        "linearity": shape.linearity,
        "density": shape.density,
        "rhythm": shape.rhythm,
        "breadth": shape.breadth,
        "convergence": shape.convergence,
        "momentum": shape.momentum,
        "classification": shape.classification,
        "nodeCount": shape.node_count,
        "durationMs": shape.duration_ms,
        "driftProfile": list(shape.drift_profile),
        "complexityProfile": list(shape.complexity_profile),
    }


def error_to_client(error: ParseError) -> dict:
    d = {"line": error.line, "message": error.message}
    if error.raw_excerpt is not None:
        d["rawExcerpt"] = error.raw_excerpt
    return d


def result_to_client(result: ParseResult) -> dict:
    """Convert a ParseResult to the JSON output contract."""
    return {
        "success": result.success,
        "nodes": [node_to_client(n) for n in result.nodes],
        "meta": meta_to_client(result.meta),
        "shape": shape_to_client(result.shape),
        "outcomeLink": link_to_record(result.outcome_link),
        "errors": [error_to_client(e) for e in result.errors],
    }


def _link_out(link: OutcomeLink) -> dict:
    d = link_to_record(link)
    d["outcomeLabel"] = outcome_info(link.outcome)["label"]
    d["outputScore"] = compute_output_score(link)
    return d


def _die(msg: str) -> None:
    """Write error to stderr and exit with code 1."""
    print(msg, file=sys.stderr)
    sys.exit(1)


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False), flush=True)


def _resolve_config(args) -> Config:
    config = load_config(args.config) if args.config else default_config()
    if args.db:
        config = apply_overrides(config, {"store": {"db_path": args.db}})
    return config


def _ensure_db(path: str):
    """Ensure db exists and return connection. Die on failure."""
    if not os.path.exists(path):
        _die(f"Database file not found: {path}")
    return init_db(path)


def _load_or_create_link(conn, session_id: str) -> OutcomeLink:
    return get_outcome_link(conn, session_id) or create_outcome_link(session_id)


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------


def _cmd_parse(args) -> None:
    config = _resolve_config(args)
    location = args.file or args.url
    result = load_session(location, config=config, session_id=args.session_id, debug=args.debug)

    out = result_to_client(result)
    out["shape"]["label"] = classification_info(result.shape.classification)["label"]
    if args.store and result.success:
        conn = init_db(config.store.db_path)
        try:
            upsert_session_shape(conn, result.meta.session_id, result.shape)
            if get_outcome_link(conn, result.meta.session_id) is None:
                upsert_outcome_link(conn, result.outcome_link)
        finally:
            conn.close()
        if args.debug:
            print(f"[cli] Stored shape for {result.meta.session_id} in {config.store.db_path}", file=sys.stderr)
    _print_json(out)


# ---------------------------------------------------------------------------
# Outcome links
# ---------------------------------------------------------------------------


def _cmd_get_link(args) -> None:
    conn = _ensure_db(_resolve_config(args).store.db_path)
    try:
        link = get_outcome_link(conn, args.session)
        if link is None:
            _die(f"Outcome link not found: {args.session}")
        _print_json(_link_out(link))
    finally:
        conn.close()


def _cmd_list_links(args) -> None:
    conn = _ensure_db(_resolve_config(args).store.db_path)
    try:
        _print_json([_link_out(link) for link in get_all_outcome_links(conn)])
    finally:
        conn.close()


def _update_link(args, update) -> None:
    conn = init_db(_resolve_config(args).store.db_path)
    try:
        link = update(_load_or_create_link(conn, args.session))
        upsert_outcome_link(conn, link)
        _print_json(_link_out(link))
    finally:
        conn.close()


def _cmd_link_repo(args) -> None:
    _update_link(args, lambda link: link_to_repo(
        link, repo=args.repo, branch=args.branch, memory_chain_id=args.memory_chain,
    ))


def _cmd_attach_commits(args) -> None:
    if args.count < 0:
        _die("--count must be >= 0")
    commit_range = CommitRange(
        first=args.first,
        last=args.last,
        count=args.count,
        messages=tuple(args.message or []),
    )
    _update_link(args, lambda link: attach_commit_range(link, commit_range))


def _cmd_attach_diff(args) -> None:
    if min(args.files_changed, args.lines_added, args.lines_removed) < 0:
        _die("Diff counts must be >= 0")
    diff = DiffSummary(
        files_changed=args.files_changed,
        lines_added=args.lines_added,
        lines_removed=args.lines_removed,
        file_types=tuple(args.file_type or []),
    )
    _update_link(args, lambda link: attach_diff_summary(link, diff))


def _cmd_set_outcome(args) -> None:
    if not args.outcome and not args.infer:
        _die("One of --outcome or --infer is required")

    def update(link: OutcomeLink) -> OutcomeLink:
        outcome = infer_outcome(link) if args.infer else args.outcome
        return set_outcome(link, outcome, tags=args.tag)

    _update_link(args, update)


# ---------------------------------------------------------------------------
# correlate
# ---------------------------------------------------------------------------


def _cmd_correlate(args) -> None:
    """Group stored sessions by shape classification with their outcomes."""
    conn = _ensure_db(_resolve_config(args).store.db_path)
    try:
        pairs = get_shape_outcome_pairs(conn)
    finally:
        conn.close()

    groups: dict[str, dict] = {}
    for p in pairs:
        g = groups.setdefault(p["classification"], {
            "classification": p["classification"],
            "label": classification_info(p["classification"])["label"],
            "sessions": 0,
            "outcomes": {},
            "scoreTotal": 0,
        })
        g["sessions"] += 1
        g["outcomes"][p["outcome"]] = g["outcomes"].get(p["outcome"], 0) + 1
        g["scoreTotal"] += p["output_score"]

    summary = []
    for g in sorted(groups.values(), key=lambda x: x["classification"]):
        summary.append({
            "classification": g["classification"],
            "label": g["label"],
            "sessions": g["sessions"],
            "outcomes": g["outcomes"],
            "avgOutputScore": round(g["scoreTotal"] / g["sessions"], 1),
        })

    _print_json({
        "sessions": [
            {
                "sessionId": p["session_id"],
                "classification": p["classification"],
                "outcome": p["outcome"],
                "outputScore": p["output_score"],
            }
            for p in pairs
        ],
        "byClassification": summary,
    })


# ---------------------------------------------------------------------------
# labels
# ---------------------------------------------------------------------------


def _cmd_labels(args) -> None:
    """Display labels for every enumerated value in the output."""
    _print_json({
        "intents": dict(INTENT_TYPES),
        "contentTypes": dict(CONTENT_TYPES),
        "classifications": SESSION_CLASSIFICATIONS,
        "outcomes": OUTCOMES,
    })


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="prompt-shape JSON CLI")
    parser.add_argument("--db", default=None, help="SQLite database path (overrides config store.db_path)")
    parser.add_argument("--config", default=None, help="Path to config.yml")
    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # parse
    p_parse = subparsers.add_parser("parse")
    src = p_parse.add_mutually_exclusive_group(required=True)
    src.add_argument("--file", default=None, help="Path to a session .jsonl file")
    src.add_argument("--url", default=None, help="URL of a session .jsonl file")
    p_parse.add_argument("--session-id", dest="session_id", default=None, help="Session id if the log has none")
    p_parse.add_argument("--store", action="store_true", help="Save the session shape to the database")
    p_parse.add_argument("--debug", action="store_true", help="Print progress logs to stderr")
    p_parse.set_defaults(func=_cmd_parse)

    # get_link
    p_get = subparsers.add_parser("get_link")
    p_get.add_argument("--session", required=True, help="Session ID")
    p_get.set_defaults(func=_cmd_get_link)

    # list_links
    p_list = subparsers.add_parser("list_links")
    p_list.set_defaults(func=_cmd_list_links)

    # link_repo
    p_repo = subparsers.add_parser("link_repo")
    p_repo.add_argument("--session", required=True, help="Session ID")
    p_repo.add_argument("--repo", required=True, help="Repo URL or local path")
    p_repo.add_argument("--branch", required=True, help="Branch name")
    p_repo.add_argument("--memory-chain", dest="memory_chain", default=None, help="Memory chain ID")
    p_repo.set_defaults(func=_cmd_link_repo)

    # attach_commits
    p_commits = subparsers.add_parser("attach_commits")
    p_commits.add_argument("--session", required=True, help="Session ID")
    p_commits.add_argument("--first", required=True, help="First commit hash")
    p_commits.add_argument("--last", required=True, help="Last commit hash")
    p_commits.add_argument("--count", type=int, required=True, help="Number of commits")
    p_commits.add_argument("--message", action="append", help="Commit message (repeatable)")
    p_commits.set_defaults(func=_cmd_attach_commits)

    # attach_diff
    p_diff = subparsers.add_parser("attach_diff")
    p_diff.add_argument("--session", required=True, help="Session ID")
    p_diff.add_argument("--files-changed", dest="files_changed", type=int, required=True)
    p_diff.add_argument("--lines-added", dest="lines_added", type=int, required=True)
    p_diff.add_argument("--lines-removed", dest="lines_removed", type=int, required=True)
    p_diff.add_argument("--file-type", dest="file_type", action="append", help="File extension (repeatable)")
    p_diff.set_defaults(func=_cmd_attach_diff)

    # set_outcome
    p_outcome = subparsers.add_parser("set_outcome")
    p_outcome.add_argument("--session", required=True, help="Session ID")
    p_outcome.add_argument("--outcome", default=None, choices=sorted(OUTCOMES), help="Outcome to record")
    p_outcome.add_argument("--infer", action="store_true", help="Infer the outcome from commits and diff")
    p_outcome.add_argument("--tag", action="append", default=None, help="Tag (repeatable; replaces existing tags)")
    p_outcome.set_defaults(func=_cmd_set_outcome)

    # correlate
    p_corr = subparsers.add_parser("correlate")
    p_corr.set_defaults(func=_cmd_correlate)

    # labels
    p_labels = subparsers.add_parser("labels")
    p_labels.set_defaults(func=_cmd_labels)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except Exception as e:
        _die(str(e))


if __name__ == "__main__":
    main()
