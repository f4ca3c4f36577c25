"""Database layer for prompt-shape - SQLite store for outcome links and session shapes."""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import OutcomeLink, SessionShape
from .outcome import compute_output_score, deserialize_link, serialize_link


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db(path: str) -> sqlite3.Connection:
    """Initialize the SQLite database with all required tables.

    Creates tables for:
    - outcome_links: one serialized OutcomeLink per session
    - session_shapes: shape descriptors per session, for correlating with outcomes

    Args:
        path: Path to the SQLite database file, or ":memory:".

    Returns:
        A sqlite3.Connection object.
    """
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=60000")

    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS outcome_links (
            session_id TEXT PRIMARY KEY,
            record TEXT NOT NULL,
            outcome TEXT NOT NULL,
            linked_at INTEGER NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS session_shapes (
            session_id TEXT PRIMARY KEY,
            classification TEXT NOT NULL,
            linearity REAL NOT NULL,
            density REAL NOT NULL,
            rhythm REAL NOT NULL,
            breadth REAL NOT NULL,
            convergence REAL NOT NULL,
            momentum REAL NOT NULL,
            node_count INTEGER NOT NULL,
            duration_ms INTEGER NOT NULL,
            drift_profile TEXT NOT NULL,
            complexity_profile TEXT NOT NULL,
            recorded_at TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_outcome_links_outcome
        ON outcome_links(outcome)
    """)

    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Outcome links
# ---------------------------------------------------------------------------


def upsert_outcome_link(conn: sqlite3.Connection, link: OutcomeLink) -> None:
    """Store a link under its session id, replacing any earlier one.

    Args:
        conn: SQLite connection.
        link: OutcomeLink to store.
    """
    cursor = conn.cursor()
    cursor.execute("""
        INSERT OR REPLACE INTO outcome_links
        (session_id, record, outcome, linked_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
    """, (
        link.session_id,
        serialize_link(link),
        link.outcome,
        link.linked_at,
        _utc_now_iso(),
    ))
    conn.commit()


def get_outcome_link(conn: sqlite3.Connection, session_id: str) -> Optional[OutcomeLink]:
    """Get the stored link for a session.

    Returns:
        The OutcomeLink, or None if there is none or the stored record is unreadable.
    """
    cursor = conn.cursor()
    cursor.execute("SELECT record FROM outcome_links WHERE session_id = ?", (session_id,))
    row = cursor.fetchone()
    if row is None:
        return None
    return deserialize_link(row[0])


def get_all_outcome_links(conn: sqlite3.Connection) -> list[OutcomeLink]:
    """All readable stored links, most recently linked first."""
    cursor = conn.cursor()
    cursor.execute("SELECT record FROM outcome_links ORDER BY linked_at DESC, session_id")
    links = []
    for row in cursor.fetchall():
        link = deserialize_link(row[0])
        if link is not None:
            links.append(link)
    return links


def delete_outcome_link(conn: sqlite3.Connection, session_id: str) -> bool:
    """Delete a session's link. Returns True if one existed."""
    cursor = conn.cursor()
    cursor.execute("DELETE FROM outcome_links WHERE session_id = ?", (session_id,))
    conn.commit()
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Session shapes
# ---------------------------------------------------------------------------


def upsert_session_shape(conn: sqlite3.Connection, session_id: str, shape: SessionShape) -> None:
    cursor = conn.cursor()
    cursor.execute("""
        INSERT OR REPLACE INTO session_shapes
        (session_id, classification, linearity, density, rhythm, breadth, convergence,
         momentum, node_count, duration_ms, drift_profile, complexity_profile, recorded_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        session_id,
        shape.classification,
        shape.linearity,
        shape.density,
        shape.rhythm,
        shape.breadth,
        shape.convergence,
        shape.momentum,
        shape.node_count,
        shape.duration_ms,
        json.dumps(shape.drift_profile),
        json.dumps(shape.complexity_profile),
        _utc_now_iso(),
    ))
    conn.commit()


def _row_to_shape(row: sqlite3.Row) -> SessionShape:
    return SessionShape(
        linearity=row["linearity"],
        density=row["density"],
        rhythm=row["rhythm"],
        breadth=row["breadth"],
        convergence=row["convergence"],
        momentum=row["momentum"],
        classification=row["classification"],
        node_count=row["node_count"],
        duration_ms=row["duration_ms"],
        drift_profile=json.loads(row["drift_profile"]),
        complexity_profile=json.loads(row["complexity_profile"]),
    )


def get_session_shape(conn: sqlite3.Connection, session_id: str) -> Optional[SessionShape]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM session_shapes WHERE session_id = ?", (session_id,))
    row = cursor.fetchone()
    if row is None:
        return None
    return _row_to_shape(row)


def get_shape_outcome_pairs(conn: sqlite3.Connection) -> list[dict]:
    """Join stored shapes with stored outcome links.

    Only sessions that have both are returned. Each entry carries the shape
    classification and descriptors together with the link's outcome and
    output score, ordered by session id.

    Returns:
        List of dicts with keys session_id, classification, linearity,
        density, rhythm, breadth, convergence, momentum, node_count,
        outcome, output_score.
    """
    cursor = conn.cursor()
    cursor.execute("""
        SELECT s.*, o.record
        FROM session_shapes s
        JOIN outcome_links o ON o.session_id = s.session_id
        ORDER BY s.session_id
    """)
    pairs = []
    for row in cursor.fetchall():
        link = deserialize_link(row["record"])
        if link is None:
            continue
        pairs.append({
            "session_id": row["session_id"],
            "classification": row["classification"],
            "linearity": row["linearity"],
            "density": row["density"],
            "rhythm": row["rhythm"],
            "breadth": row["breadth"],
            "convergence": row["convergence"],
            "momentum": row["momentum"],
            "node_count": row["node_count"],
            "outcome": link.outcome,
            "output_score": compute_output_score(link),
        })
    return pairs
