"""Transcript ingestion: session log text -> prompt nodes, meta and shape."""

import asyncio
import json
import sys
from typing import Iterable, Optional

from .config import Config
from .datasource import TranscriptSource, get_source
from .drift import DEFAULT_OVERLAP, compute_topic_overlap
from .features import calculate_metrics, create_topic_signature
from .models import (
    ParseError,
    ParseResult,
    PromptNode,
    RawEvent,
    SessionMeta,
    ThinkingBlock,
    ToolCall,
    TopicKeyword,
)
from .outcome import create_outcome_link
from .shape import compute_session_shape, empty_shape
from .stats import mean, round_half_up
from .time_utils import to_epoch_ms

PREVIEW_LENGTH = 120
EXCERPT_LENGTH = 100


# ---------------------------------------------------------------------------
# Line decoding
# ---------------------------------------------------------------------------


def parse_line(line: str, line_num: int) -> tuple[Optional[dict], Optional[ParseError]]:
    """Decode one log line.

    Args:
        line: Raw line text.
        line_num: 1-based line number, used in error reports.

    Returns:
        (record, None) for a JSON object, (None, None) for a blank line, and
        (None, ParseError) for anything else.
    """
    stripped = line.strip()
    if not stripped:
        return None, None
    try:
        record = json.loads(stripped)
    except json.JSONDecodeError as e:
        return None, ParseError(
            line=line_num,
            message=f"Invalid JSON: {e.msg}",
            raw_excerpt=stripped[:EXCERPT_LENGTH],
        )
    if not isinstance(record, dict):
        return None, ParseError(
            line=line_num,
            message="Expected a JSON object",
            raw_excerpt=stripped[:EXCERPT_LENGTH],
        )
    return record, None


def _normalize_content(content) -> list[dict]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return [block for block in content if isinstance(block, dict)]
    return []


def to_raw_event(record: dict, line_num: int) -> RawEvent:
    message = record.get("message")
    if not isinstance(message, dict):
        message = {}
    return RawEvent(
        type=str(record.get("type") or ""),
        id=record.get("id"),
        parent_id=record.get("parentId"),
        timestamp=record.get("timestamp"),
        role=message.get("role"),
        content=_normalize_content(message.get("content")),
        line=line_num,
    )


def read_events(lines: Iterable[str]) -> tuple[list[RawEvent], list[ParseError]]:
    """Decode every line, collecting events and per-line errors."""
    events: list[RawEvent] = []
    errors: list[ParseError] = []
    for line_num, line in enumerate(lines, start=1):
        record, error = parse_line(line, line_num)
        if error is not None:
            errors.append(error)
        elif record is not None:
            events.append(to_raw_event(record, line_num))
    return events, errors


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


def extract_text_content(content: list[dict]) -> str:
    parts = [
        block.get("text") or ""
        for block in content
        if block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    return "\n".join(parts).strip()


def _tool_name(block: dict) -> str:
    name = block.get("name")
    return name if isinstance(name, str) and name else "unknown"


def extract_tool_calls(content: list[dict]) -> list[ToolCall]:
    return [
        ToolCall(name=_tool_name(block))
        for block in content
        if block.get("type") == "toolCall"
    ]


def extract_thinking_blocks(content: list[dict]) -> list[ThinkingBlock]:
    blocks = []
    for block in content:
        if block.get("type") != "thinking":
            continue
        text = block.get("thinking")
        if not isinstance(text, str):
            text = ""
        blocks.append(ThinkingBlock(text=text, length=len(text)))
    return blocks


def _is_user_message(event: RawEvent) -> bool:
    return event.type == "message" and event.role == "user"


def _is_assistant_message(event: RawEvent) -> bool:
    return event.type == "message" and event.role == "assistant"


def find_assistant_response(
    events: list[RawEvent],
    user_index: int,
) -> tuple[int, list[ToolCall], list[ThinkingBlock]]:
    """Collect the assistant activity that answers the user event at ``user_index``.

    Scans forward until the next user message. Latency is measured to the
    first assistant message and is 0 when there is none or when either side
    lacks a usable timestamp.

    Returns:
        (latency_ms, tool_calls, thinking_blocks)
    """
    user_ts = to_epoch_ms(events[user_index].timestamp)
    latency_ms: Optional[int] = None
    tool_calls: list[ToolCall] = []
    thinking_blocks: list[ThinkingBlock] = []

    for event in events[user_index + 1:]:
        if _is_user_message(event):
            break
        if not _is_assistant_message(event):
            continue
        if latency_ms is None:
            response_ts = to_epoch_ms(event.timestamp)
            latency_ms = response_ts - user_ts if user_ts and response_ts else 0
        tool_calls.extend(extract_tool_calls(event.content))
        thinking_blocks.extend(extract_thinking_blocks(event.content))

    return max(0, latency_ms or 0), tool_calls, thinking_blocks


def create_preview(text: str, max_len: int = PREVIEW_LENGTH) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len].rstrip() + "…"


# ---------------------------------------------------------------------------
# Session meta
# ---------------------------------------------------------------------------


def create_empty_meta(session_id: str) -> SessionMeta:
    return SessionMeta(session_id=session_id)


def build_session_meta(session_id: str, nodes: list[PromptNode]) -> SessionMeta:
    """Aggregate token, complexity, latency and tool figures over the nodes."""
    if not nodes:
        return create_empty_meta(session_id)

    metrics = [node.metrics for node in nodes if node.metrics is not None]
    complexities = [m.complexity_score for m in metrics]
    latencies = [m.response_latency_ms for m in metrics]
    tools: set[str] = set()
    for m in metrics:
        tools.update(m.tool_types)

    return SessionMeta(
        session_id=session_id,
        start_time=nodes[0].timestamp,
        end_time=nodes[-1].timestamp,
        node_count=len(nodes),
        total_tokens=sum(m.token_estimate for m in metrics),
        avg_complexity=int(round_half_up(mean(complexities))),
        max_complexity=max(complexities, default=0),
        avg_latency=int(round_half_up(mean(latencies))),
        tools_used=sorted(tools),
    )


# ---------------------------------------------------------------------------
# Session assembly
# ---------------------------------------------------------------------------


def _session_id_from_events(events: list[RawEvent], fallback: str) -> str:
    for event in events:
        if event.type == "session":
            return str(event.id) if event.id else fallback
    return fallback


def build_nodes(events: list[RawEvent], debug: bool = False) -> list[PromptNode]:
    """Turn user messages into linked prompt nodes, skipping those with no text."""
    nodes: list[PromptNode] = []
    prev_signature: Optional[list[TopicKeyword]] = None

    for i, event in enumerate(events):
        if not _is_user_message(event):
            continue
        text = extract_text_content(event.content)
        if not text:
            if debug:
                print(f"[ingest] Skipping empty user turn on line {event.line}", file=sys.stderr)
            continue

        signature = create_topic_signature(text)
        if prev_signature is None:
            overlap = DEFAULT_OVERLAP
        else:
            overlap = compute_topic_overlap(prev_signature, signature)

        latency_ms, tool_calls, thinking_blocks = find_assistant_response(events, i)
        metrics = calculate_metrics(
            text,
            latency_ms,
            tool_calls,
            thinking_blocks,
            overlap,
            content_blocks=event.content,
        )

        node = PromptNode(
            id=str(event.id) if event.id else f"turn-{event.line}",
            index=len(nodes),
            text=text,
            text_preview=create_preview(text),
            timestamp=to_epoch_ms(event.timestamp),
            metrics=metrics,
            prev_id=nodes[-1].id if nodes else None,
        )
        if nodes:
            nodes[-1].next_id = node.id
        nodes.append(node)
        prev_signature = signature

    return nodes


def parse_session_lines(
    lines: Iterable[str],
    session_id: str = "inline",
    debug: bool = False,
) -> ParseResult:
    """Parse a session log given as lines.

    Args:
        lines: Log lines, in order.
        session_id: Id to use when the log has no "session" record.
        debug: If True, print progress to stderr.

    Returns:
        A ParseResult. ``success`` is True when at least one node was built.
    """
    events, errors = read_events(lines)
    session_id = _session_id_from_events(events, session_id)
    if debug:
        print(
            f"[ingest] {session_id}: {len(events)} records, {len(errors)} bad lines",
            file=sys.stderr,
        )
        for error in errors:
            print(f"[ingest] line {error.line}: {error.message}", file=sys.stderr)

    nodes = build_nodes(events, debug=debug)
    meta = build_session_meta(session_id, nodes)
    shape = compute_session_shape(nodes)

    if debug:
        print(
            f"[ingest] {session_id}: {len(nodes)} turns, shape={shape.classification}",
            file=sys.stderr,
        )

    return ParseResult(
        success=len(nodes) > 0,
        nodes=nodes,
        meta=meta,
        shape=shape,
        outcome_link=create_outcome_link(session_id),
        errors=errors,
    )


def parse_session_from_string(content: str, session_id: str = "inline", debug: bool = False) -> ParseResult:
    return parse_session_lines(content.split("\n"), session_id=session_id, debug=debug)


def failed_result(session_id: str, message: str) -> ParseResult:
    """Result for a log that could not be read at all."""
    return ParseResult(
        success=False,
        nodes=[],
        meta=create_empty_meta(session_id),
        shape=empty_shape(),
        outcome_link=create_outcome_link(session_id),
        errors=[ParseError(line=0, message=message)],
    )


async def parse_session(
    source: TranscriptSource,
    session_id: Optional[str] = None,
    debug: bool = False,
) -> ParseResult:
    """Read a session log from ``source`` and parse it.

    Never raises: if the source cannot be read, the result has
    ``success=False`` and a single error describing the failure.

    Args:
        source: Where the log text comes from.
        session_id: Id to use when the log has no "session" record.
            Defaults to the source's own id.
        debug: If True, print progress to stderr.

    Returns:
        A ParseResult.
    """
    session_id = session_id or getattr(source, "session_id", None) or "unknown"
    try:
        content = await source.read_text()
    except Exception as e:
        if debug:
            print(f"[ingest] Failed to read {session_id}: {e}", file=sys.stderr)
        return failed_result(session_id, str(e) or type(e).__name__)

    return parse_session_from_string(content, session_id=session_id, debug=debug)


def load_session(
    location: str,
    config: Optional[Config] = None,
    session_id: Optional[str] = None,
    debug: bool = False,
) -> ParseResult:
    """Parse the session log at a path or URL. Blocking wrapper around parse_session."""
    source = get_source(location, config=config, session_id=session_id)
    return asyncio.run(parse_session(source, debug=debug))
