"""Per-turn feature extraction.

Everything here is a pure function of its inputs: text statistics, keyword
signatures, tool usage summaries, intent labels and content-type counts, and
finally ``calculate_metrics`` which assembles them into a PromptMetrics.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Optional

from .drift import drift_score
from .models import (
    ContentTypeCount,
    PromptMetrics,
    ThinkingBlock,
    ToolCall,
    ToolDiversity,
    TopicKeyword,
)
from .scoring import calculate_complexity, compute_focus_score
from .stats import clamp, round2

STOP_WORDS = frozenset({
    "this", "that", "with", "from", "have", "been", "were", "they",
    "their", "what", "when", "where", "which", "while", "would",
    "could", "should", "about", "after", "before", "being", "between",
    "both", "each", "into", "just", "more", "most", "other", "over",
    "same", "some", "such", "than", "then", "these", "through",
    "under", "very", "will", "your", "also", "back", "because",
    "come", "does", "down", "even", "first", "good", "great", "here",
    "know", "like", "look", "make", "much", "need", "only", "part",
    "people", "place", "right", "take", "think", "want", "well", "work",
    "there", "them", "those", "thing", "things", "time",
    "way", "ways", "can", "cant", "dont", "its", "you",
    "the", "and", "for", "are", "but", "not", "all",
    "her", "was", "one", "our", "out", "day", "get", "has", "him",
    "his", "how", "man", "new", "now", "old", "see", "two",
    "who", "boy", "did", "let", "put", "say", "she", "too", "use",
    "file", "files", "please", "using", "used", "help", "sure", "okay",
})

# Exact, case-sensitive tool name -> category. Anything else is "other".
TOOL_CATEGORIES = MappingProxyType({
    "read": "filesystem",
    "write": "filesystem",
    "edit": "filesystem",
    "Read": "filesystem",
    "Write": "filesystem",
    "Edit": "filesystem",
    "exec": "execution",
    "process": "execution",
    "browser": "browser",
    "web_search": "search",
    "web_fetch": "search",
    "image": "media",
    "tts": "media",
    "message": "communication",
    "nodes": "infrastructure",
    "canvas": "infrastructure",
})

# Number of named categories; diversity saturates once all are used.
MAX_TOOL_CATEGORIES = 7

IMPERATIVE_VERBS = (
    "read", "write", "create", "delete", "run", "execute", "find", "search",
    "check", "update", "fix", "add", "remove", "show", "list", "get", "set",
    "make", "build", "test", "deploy", "send", "open", "close", "start",
    "stop", "install", "configure", "edit", "copy", "move", "download",
    "upload", "generate", "analyze", "parse", "format", "validate",
    "convert", "extract", "merge", "split",
)

INTENT_TYPES = MappingProxyType({
    "question": "Question",
    "command": "Command",
    "clarification": "Clarification",
    "creative": "Creative",
    "error": "Error / Fix",
    "informational": "Informational",
})

CONTENT_TYPES = MappingProxyType({
    "image": "Image",
    "link": "Link",
    "codeBlock": "Code",
    "fileRef": "File",
})

LATENCY_BUCKETS = (
    (5_000, "fast"),
    (30_000, "moderate"),
    (120_000, "slow"),
)

_SENTENCE_END_RE = re.compile(r"[.!?]+(?:\s+|\Z)")
_IMPERATIVE_RE = re.compile(r"\b(" + "|".join(IMPERATIVE_VERBS) + r")\b", re.IGNORECASE)
_NON_KEYWORD_CHARS_RE = re.compile(r"[^\w\s-]")

_ERROR_RE = re.compile(
    r"\b(error|bug|fix|broke|broken|crash|fail|issue|wrong|doesn'?t work|not working"
    r"|exception|stack ?trace|traceback)\b",
    re.IGNORECASE,
)
_CLARIFICATION_RE = re.compile(
    r"\b(actually|instead|i meant|rather|what i mean|no,? |wait|sorry|correction"
    r"|let me clarify|not that|the other)\b",
    re.IGNORECASE,
)
_PURE_QUESTION_RE = re.compile(
    r"^(what|how|why|when|where|who|which|is |are |does |do |can |could |would |should )",
    re.IGNORECASE,
)
_CAN_YOU_RE = re.compile(r"^can you ", re.IGNORECASE)
_CREATIVE_RE = re.compile(
    r"\b(write|create|generate|imagine|story|poem|haiku|creative|brainstorm|suggest"
    r"|ideas? for|come up with)\b",
    re.IGNORECASE,
)
_INFORMATIONAL_RE = re.compile(
    r"\b(here'?s|fyi|for context|note that|i should mention|background|context:)\b",
    re.IGNORECASE,
)

_IMAGE_REF_RE = re.compile(r"\.(png|jpg|jpeg|gif|svg|webp|bmp)\b", re.IGNORECASE)
_LINK_RE = re.compile(r"https?://[^\s)>\]]+")
_FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`[^`]{20,}`")
_FILE_REF_RE = re.compile(
    r"\b[\w\-./]+\.(?:js|ts|py|rs|go|java|cpp|c|h|css|html|json|yaml|yml|toml|md|txt"
    r"|sh|sql|rb|php|swift|kt)\b"
)


# ---------------------------------------------------------------------------
# Text statistics
# ---------------------------------------------------------------------------


def estimate_tokens(text: str) -> int:
    """Rough token count at four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def count_words(text: str) -> int:
    if not text:
        return 0
    return len(text.split())


def count_sentences(text: str) -> int:
    """Count runs of sentence-ending punctuation; any non-empty text is at least one."""
    if not text:
        return 0
    matches = _SENTENCE_END_RE.findall(text)
    return len(matches) if matches else 1


def count_questions(text: str) -> int:
    if not text:
        return 0
    return text.count("?")


def extract_imperative_verbs(text: str) -> list[str]:
    """Known command verbs in the text, lower-cased, first occurrence order."""
    if not text:
        return []
    found = [m.group(1).lower() for m in _IMPERATIVE_RE.finditer(text)]
    return list(dict.fromkeys(found))


def extract_keywords(text: str) -> list[str]:
    """Lower-cased words longer than three characters that are not stop words."""
    if not text:
        return []
    cleaned = _NON_KEYWORD_CHARS_RE.sub(" ", text.lower())
    return [w for w in cleaned.split() if len(w) > 3 and w not in STOP_WORDS]


def create_topic_signature(text: str) -> list[TopicKeyword]:
    """Top ten keywords by frequency, each weighted by its share of all keywords.

    Ties keep the order in which the words first appear.
    """
    keywords = extract_keywords(text)
    if not keywords:
        return []
    total = len(keywords)
    return [
        TopicKeyword(word=word, weight=count / total)
        for word, count in Counter(keywords).most_common(10)
    ]


# ---------------------------------------------------------------------------
# Tools, thinking and latency
# ---------------------------------------------------------------------------


def tool_category(name: str) -> str:
    return TOOL_CATEGORIES.get(name, "other")


def calculate_tool_diversity(tool_calls: list[ToolCall]) -> ToolDiversity:
    """Summarize tool usage: call count, unique names and their categories."""
    if not tool_calls:
        return ToolDiversity(count=0, unique_tools=[], categories=[], diversity_score=0.0)

    unique_tools = list(dict.fromkeys(call.name for call in tool_calls))
    categories = list(dict.fromkeys(tool_category(name) for name in unique_tools))
    return ToolDiversity(
        count=len(tool_calls),
        unique_tools=unique_tools,
        categories=categories,
        diversity_score=min(len(categories) / MAX_TOOL_CATEGORIES, 1.0),
    )


def compute_thinking_intensity(thinking_blocks: list[ThinkingBlock]) -> float:
    if not thinking_blocks:
        return 0.0
    total_length = sum(block.length for block in thinking_blocks)
    return clamp(total_length / 2000, 0.0, 1.0)


def get_latency_bucket(latency_ms: float) -> str:
    for upper, bucket in LATENCY_BUCKETS:
        if latency_ms < upper:
            return bucket
    return "extended"


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------


@dataclass
class _IntentInput:
    text: str
    question_count: int
    imperative_verbs: list[str]
    stripped: str = field(init=False)
    word_count: int = field(init=False)

    def __post_init__(self):
        self.stripped = self.text.strip()
        self.word_count = count_words(self.text)


def _is_question_dominant(t: _IntentInput) -> bool:
    return t.question_count >= 2 or (t.question_count >= 1 and t.word_count < 25)


def _question_form(t: _IntentInput) -> str:
    if _PURE_QUESTION_RE.match(t.stripped):
        return "question"
    if _CAN_YOU_RE.match(t.stripped):
        return "command"
    return "question"


# Evaluated top to bottom; the first matching predicate decides the intent.
_INTENT_RULES: tuple[tuple[Callable[[_IntentInput], bool], Callable[[_IntentInput], str]], ...] = (
    (lambda t: bool(_ERROR_RE.search(t.text)), lambda t: "error"),
    (
        lambda t: bool(_CLARIFICATION_RE.search(t.text)) and t.word_count < 40,
        lambda t: "clarification",
    ),
    (_is_question_dominant, _question_form),
    (lambda t: bool(_CREATIVE_RE.search(t.text)), lambda t: "creative"),
    (
        lambda t: bool(_INFORMATIONAL_RE.search(t.text))
        and t.question_count == 0
        and not t.imperative_verbs,
        lambda t: "informational",
    ),
    (lambda t: bool(t.imperative_verbs), lambda t: "command"),
    (lambda t: t.question_count > 0, lambda t: "question"),
)


def classify_intent(text: str, question_count: int, imperative_verbs: list[str]) -> str:
    """Label what the user is doing with this turn.

    Args:
        text: The turn text.
        question_count: Number of "?" in the text.
        imperative_verbs: Output of extract_imperative_verbs(text).

    Returns:
        One of the keys of INTENT_TYPES. Empty text is a command.
    """
    if not text:
        return "command"
    t = _IntentInput(text, question_count, imperative_verbs)
    for predicate, result in _INTENT_RULES:
        if predicate(t):
            return result(t)
    return "command"


# ---------------------------------------------------------------------------
# Content types
# ---------------------------------------------------------------------------


def detect_content_types(text: str, content_blocks: Optional[list[dict]] = None) -> list[ContentTypeCount]:
    """Count images, links, code and file references in a turn.

    Image blocks in ``content_blocks`` count as images alongside image file
    names in the text. Inline code spans only count at 20 characters or
    more; both patterns run over the whole text, so a long fenced block also
    counts as an inline span. File references are
    counted once per distinct path. Types with a zero count are omitted.
    """
    text = text or ""
    results: list[ContentTypeCount] = []

    image_count = sum(1 for block in content_blocks or [] if block.get("type") == "image")
    image_count += len(_IMAGE_REF_RE.findall(text))
    if image_count:
        results.append(ContentTypeCount(type="image", count=image_count))

    link_count = len(_LINK_RE.findall(text))
    if link_count:
        results.append(ContentTypeCount(type="link", count=link_count))

    code_count = len(_FENCED_CODE_RE.findall(text)) + len(_INLINE_CODE_RE.findall(text))
    if code_count:
        results.append(ContentTypeCount(type="codeBlock", count=code_count))

    file_refs = {m.group(0) for m in _FILE_REF_RE.finditer(text)}
    if file_refs:
        results.append(ContentTypeCount(type="fileRef", count=len(file_refs)))

    return results


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def calculate_metrics(
    text: str,
    response_latency_ms: int,
    tool_calls: list[ToolCall],
    thinking_blocks: list[ThinkingBlock],
    topic_overlap: Optional[float],
    content_blocks: Optional[list[dict]] = None,
) -> PromptMetrics:
    """Build the full feature vector for one user turn.

    Args:
        text: The turn text.
        response_latency_ms: Time until the first assistant reply.
        tool_calls: Tool calls made while answering the turn.
        thinking_blocks: Reasoning blocks emitted while answering.
        topic_overlap: Overlap with the previous turn, or None if unknown.
        content_blocks: The user message's raw content blocks.

    Returns:
        A PromptMetrics. Focus, thinking intensity and tool diversity are
        rounded to two decimals.
    """
    text = text or ""
    char_count = len(text)
    sentence_count = count_sentences(text)
    question_count = count_questions(text)

    tools = calculate_tool_diversity(tool_calls)
    focus = compute_focus_score(
        char_count=char_count,
        sentence_count=sentence_count,
        question_count=question_count,
        tool_diversity=tools.diversity_score,
        topic_overlap=topic_overlap,
    )
    complexity = calculate_complexity(char_count, tools.count, response_latency_ms)

    imperative_verbs = extract_imperative_verbs(text)

    return PromptMetrics(
        char_count=char_count,
        word_count=count_words(text),
        token_estimate=estimate_tokens(text),
        tool_call_count=tools.count,
        tool_types=tools.unique_tools,
        tool_categories=tools.categories,
        response_latency_ms=response_latency_ms,
        latency_bucket=get_latency_bucket(response_latency_ms),
        similarity_to_prev=topic_overlap,
        topic_drift_score=drift_score(topic_overlap),
        complexity_score=complexity,
        focus_score=round2(focus),
        sentence_count=sentence_count,
        question_count=question_count,
        thinking_intensity=round2(compute_thinking_intensity(thinking_blocks)),
        tool_diversity=round2(tools.diversity_score),
        intent=classify_intent(text, question_count, imperative_verbs),
        content_types=detect_content_types(text, content_blocks),
    )
