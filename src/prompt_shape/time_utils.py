"""Timestamp normalization for session logs."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

# Epoch numbers above this are taken to be milliseconds, below it seconds.
_MS_THRESHOLD = 1e12

_FRACTION_RE = re.compile(r"\.(\d+)")


def _pad_fraction(match: re.Match) -> str:
    # fromisoformat on 3.10 only takes 3 or 6 fractional digits
    return "." + match.group(1)[:6].ljust(6, "0")


def to_epoch_ms(value: Any) -> int:
    """Convert a log timestamp to Unix milliseconds.

    Accepts ISO 8601 strings (a trailing "Z" is fine; values without an
    offset are read as UTC) and epoch numbers in seconds or milliseconds.

    Args:
        value: The raw ``timestamp`` field of a log record.

    Returns:
        Milliseconds since the epoch, or 0 if the value is missing,
        non-finite or unparseable.
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        if value <= 0:
            return 0
        if value > _MS_THRESHOLD:
            return int(value)
        return int(value * 1000)

    if not isinstance(value, str) or not value.strip():
        return 0

    text = value.strip()
    try:
        iso = _FRACTION_RE.sub(_pad_fraction, text.replace("Z", "+00:00"), count=1)
        dt = datetime.fromisoformat(iso)
    except ValueError:
        try:
            return to_epoch_ms(float(text))
        except (ValueError, OverflowError):
            return 0

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def now_ms() -> int:
    """Current wall-clock time in Unix milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)
