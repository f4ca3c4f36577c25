"""Transcript sources: where the raw session log text comes from."""

import asyncio
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx

from .config import Config


class DataSourceError(Exception):
    """Exception raised when a transcript cannot be read."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class TranscriptSource(Protocol):
    """Protocol for transcript sources."""

    session_id: str

    async def read_text(self) -> str:
        """Return the full text of the session log.

        Raises:
            DataSourceError: If the text cannot be obtained.
        """
        ...


def session_id_from_location(location: str) -> str:
    """Derive a session id from a path or URL: the last path segment minus ``.jsonl``."""
    path = urlparse(location).path if "://" in location else location
    name = path.replace("\\", "/").rstrip("/").split("/")[-1]
    if name.endswith(".jsonl"):
        name = name[: -len(".jsonl")]
    return name or "unknown"


class StringSource:
    """Transcript already held in memory."""

    def __init__(self, content: str, session_id: str = "inline"):
        self.content = content
        self.session_id = session_id

    async def read_text(self) -> str:
        return self.content


class LinesSource:
    """Transcript held as a sequence of lines."""

    def __init__(self, lines: list[str], session_id: str = "inline"):
        self.lines = list(lines)
        self.session_id = session_id

    async def read_text(self) -> str:
        return "\n".join(self.lines)


class FileSource:
    """Transcript stored in a local file."""

    def __init__(self, path: str, session_id: Optional[str] = None):
        self.path = Path(path)
        self.session_id = session_id or session_id_from_location(str(path))

    def _read(self) -> str:
        if not self.path.exists():
            raise DataSourceError(f"Session file not found: {self.path}")
        try:
            return self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise DataSourceError(f"Session file is not valid UTF-8: {self.path}", cause=e)
        except OSError as e:
            raise DataSourceError(f"Failed to read session file: {self.path}: {e}", cause=e)

    async def read_text(self) -> str:
        return await asyncio.to_thread(self._read)


class HttpSource:
    """Transcript fetched over HTTP(S)."""

    def __init__(
        self,
        url: str,
        timeout_s: float = 30.0,
        headers: Optional[dict] = None,
        session_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize an HTTP source.

        Args:
            url: Location of the session log.
            timeout_s: Request timeout in seconds.
            headers: Extra request headers.
            session_id: Overrides the id derived from the URL.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.url = url
        self.timeout_s = timeout_s
        self.headers = dict(headers or {})
        self.session_id = session_id or session_id_from_location(url)
        self._transport = transport

    async def read_text(self) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s,
                headers=self.headers,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(self.url)
        except httpx.HTTPError as e:
            raise DataSourceError(f"Failed to fetch file: {e}", cause=e)

        if not response.is_success:
            raise DataSourceError(f"HTTP {response.status_code}: {response.reason_phrase}")
        return response.text


def get_source(
    location: str,
    config: Optional[Config] = None,
    session_id: Optional[str] = None,
) -> TranscriptSource:
    """Get a transcript source for a path or URL.

    Args:
        location: Local file path, or an http:// / https:// URL.
        config: Supplies the HTTP timeout and headers; defaults apply if None.
        session_id: Overrides the id derived from the location.

    Returns:
        A FileSource or HttpSource.

    Raises:
        ValueError: If location is empty.
    """
    if not location:
        raise ValueError("location is required")
    if location.startswith(("http://", "https://")):
        timeout_s = config.source.timeout_s if config else 30.0
        headers = config.source.headers if config else None
        return HttpSource(location, timeout_s=timeout_s, headers=headers, session_id=session_id)
    return FileSource(location, session_id=session_id)
