"""Pytest configuration and fixtures.

Helpers here build session log records in the on-disk JSONL format so tests
can describe conversations compactly.
"""

import json

import pytest


def session_record(session_id: str, timestamp: str = "2026-01-05T10:00:00Z") -> dict:
    return {"type": "session", "id": session_id, "timestamp": timestamp}


def user_message(msg_id: str, timestamp, text: str = "", extra_blocks: list | None = None) -> dict:
    """A user message record. Empty ``text`` produces no text block."""
    content = [{"type": "text", "text": text}] if text else []
    content.extend(extra_blocks or [])
    return {
        "type": "message",
        "id": msg_id,
        "timestamp": timestamp,
        "message": {"role": "user", "content": content},
    }


def assistant_message(
    msg_id: str,
    timestamp,
    tools: tuple = (),
    thinking: tuple = (),
    text: str = "",
) -> dict:
    content = [{"type": "thinking", "thinking": t} for t in thinking]
    content.extend(
        {"type": "toolCall", "id": f"{msg_id}-tool-{i}", "name": name, "arguments": {}}
        for i, name in enumerate(tools)
    )
    if text:
        content.append({"type": "text", "text": text})
    return {
        "type": "message",
        "id": msg_id,
        "timestamp": timestamp,
        "message": {"role": "assistant", "content": content},
    }


def to_jsonl(records: list) -> str:
    """Serialize records one per line. Strings are written as-is (for malformed lines)."""
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    return "\n".join(lines)


@pytest.fixture
def sample_records() -> list:
    """A short session: two text turns, one empty turn and one malformed line."""
    return [
        session_record("sess-42"),
        user_message(
            "u1",
            "2026-01-05T10:00:00Z",
            "Set up the database migration script for the billing service",
        ),
        assistant_message("a1", "2026-01-05T10:00:04Z", tools=("read",), thinking=("x" * 400,), text="ok"),
        assistant_message("a2", "2026-01-05T10:00:20Z", tools=("exec",)),
        user_message("u2", "2026-01-05T10:01:00Z", ""),
        assistant_message("a3", "2026-01-05T10:01:05Z", tools=("browser",)),
        user_message(
            "u3",
            "2026-01-05T10:02:00Z",
            "Now run the billing database migration against staging",
        ),
        assistant_message("a4", "2026-01-05T10:02:10Z", text="done"),
        "not json",
        "",
    ]


@pytest.fixture
def sample_jsonl(sample_records) -> str:
    return to_jsonl(sample_records)


@pytest.fixture
def sample_file(tmp_path, sample_jsonl):
    path = tmp_path / "billing-session.jsonl"
    path.write_text(sample_jsonl, encoding="utf-8")
    return path
