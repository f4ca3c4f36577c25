"""Core data models for prompt-shape."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class RawEvent:
    """One decoded record from a session log."""

    type: str
    id: Optional[str] = None
    parent_id: Optional[str] = None
    timestamp: Any = None  # ISO 8601 string or epoch number, as written in the log
    role: Optional[str] = None  # only set for type == "message"
    content: list[dict] = field(default_factory=list)
    line: int = 0  # 1-based line in the source


@dataclass
class ToolCall:
    """A tool invocation made by the assistant while answering a turn."""

    name: str = "unknown"


@dataclass
class ThinkingBlock:
    """A reasoning block emitted by the assistant."""

    text: str
    length: int


@dataclass(frozen=True)
class TopicKeyword:
    """A keyword with its share of the turn's keyword occurrences."""

    word: str
    weight: float


@dataclass
class ToolDiversity:
    """Summary of the tools used while answering a turn."""

    count: int
    unique_tools: list[str]
    categories: list[str]
    diversity_score: float


@dataclass
class ContentTypeCount:
    """Count of one kind of attachment-like content in a turn."""

    type: str  # image | link | codeBlock | fileRef
    count: int


@dataclass
class PromptMetrics:
    """Feature vector for one user turn."""

    char_count: int
    word_count: int
    token_estimate: int
    tool_call_count: int
    tool_types: list[str]
    tool_categories: list[str]
    response_latency_ms: int
    latency_bucket: str
    similarity_to_prev: Optional[float]
    topic_drift_score: Optional[float]
    complexity_score: int
    focus_score: float
    sentence_count: int
    question_count: int
    thinking_intensity: float
    tool_diversity: float
    intent: str
    content_types: list[ContentTypeCount] = field(default_factory=list)


@dataclass
class Vector3:
    """Layout position. Left at the origin; a layout stage fills it in."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class PromptNode:
    """A user turn with its metrics and links to its neighbours."""

    id: str
    index: int
    text: str
    text_preview: str
    timestamp: int  # Unix timestamp in milliseconds
    metrics: Optional[PromptMetrics]
    position: Vector3 = field(default_factory=Vector3)
    prev_id: Optional[str] = None
    next_id: Optional[str] = None


@dataclass
class SessionMeta:
    """Aggregate figures for a whole session."""

    session_id: str
    start_time: int = 0
    end_time: int = 0
    node_count: int = 0
    total_tokens: int = 0
    avg_complexity: int = 0
    max_complexity: int = 0
    avg_latency: int = 0
    tools_used: list[str] = field(default_factory=list)


@dataclass
class SessionShape:
    """Session-wide working-style descriptor."""

    linearity: float
    density: float
    rhythm: float
    breadth: float
    convergence: float  # in [-1, 1]
    momentum: float
    classification: str
    node_count: int
    duration_ms: int
    drift_profile: list[float] = field(default_factory=list)
    complexity_profile: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class CommitRange:
    """Commits produced during a session."""

    first: str
    last: str
    count: int
    messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiffSummary:
    """Size of the change produced during a session."""

    files_changed: int
    lines_added: int
    lines_removed: int
    file_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class OutcomeLink:
    """Association between a session and the code it produced.

    Immutable; see outcome.py for the functions that derive updated copies.
    """

    session_id: str
    repo: Optional[str] = None
    branch: Optional[str] = None
    commit_range: Optional[CommitRange] = None
    diff: Optional[DiffSummary] = None
    outcome: str = "unknown"
    tags: tuple[str, ...] = ()
    memory_chain_id: Optional[str] = None
    linked_at: int = 0  # Unix timestamp in milliseconds


@dataclass
class ParseError:
    """A problem found while reading a session log."""

    line: int  # 1-based; 0 when the whole read failed
    message: str
    raw_excerpt: Optional[str] = None


@dataclass
class ParseResult:
    """Everything produced from one session log."""

    success: bool
    nodes: list[PromptNode]
    meta: SessionMeta
    shape: SessionShape
    outcome_link: OutcomeLink
    errors: list[ParseError] = field(default_factory=list)
