"""Data models for the SupportDesk agent.

This module defines the core data structures shared by the local pipeline,
the MCP tool-provider and the HTTP API. All models use Pydantic for
validation and serialization. Python attributes are snake_case; the JSON
representation uses the camelCase keys of the dataset files and the API,
so models are always dumped with ``by_alias=True``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def utc_timestamp() -> str:
    """Return the current UTC time as ISO-8601 with milliseconds and ``Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class KnowledgeEntry(BaseModel):
    """Curated FAQ entry from ``faq.json``.

    Entries are maintained outside this system, so parsing is lenient:
    missing text fields become empty strings and tags are coerced to a list
    of strings.

    Attributes:
        id: Entry identifier (e.g. ``"FAQ-001"``).
        title: Short title, also matched as a substring of the query.
        content: Answer text shown to the user.
        tags: Keywords matched as substrings of the query.
    """

    model_config = ConfigDict(extra="allow")

    id: str = ""
    title: str = ""
    content: str = ""
    tags: List[str] = Field(default_factory=list)

    @field_validator("id", "title", "content", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(tag) for tag in value]


class InteractionRecord(CamelModel):
    """One served question, appended to ``logs.json``.

    ``channel`` is only set on records written by the MCP tool-provider;
    local records leave it unset so it is omitted from the stored JSON.
    Records written by earlier versions used ``ts`` and ``usedLLM``; both
    spellings are accepted on read.
    """

    timestamp: str = Field(
        default_factory=utc_timestamp,
        validation_alias=AliasChoices("timestamp", "ts"),
        serialization_alias="timestamp",
    )
    question: str
    intent: str
    confidence: float
    needs_human: bool = Field(alias="needsHuman")
    used_generative_enhancer: bool = Field(
        default=False,
        validation_alias=AliasChoices("usedGenerativeEnhancer", "usedLLM"),
        serialization_alias="usedGenerativeEnhancer",
    )
    latency_ms: int = Field(default=0, alias="latencyMs")
    channel: Optional[str] = None

    def to_json_dict(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if "channel" not in self.model_fields_set:
            data.pop("channel")
        return data


class RetrievalCandidate(CamelModel):
    """Merged-search hit from either the FAQ or the question history."""

    source: Literal["knowledge", "history"]
    id: str
    title: str
    content: Optional[str] = None
    score: float
    intent: Optional[str] = None
    timestamp: Optional[str] = None


class ScoredEntry(CamelModel):
    """FAQ entry with its retrieval score attached."""

    id: str
    title: str
    content: str
    tags: List[str] = Field(default_factory=list)
    score: float


class IntentResult(CamelModel):
    intent: str
    reason: str


class JudgeResult(CamelModel):
    needs_human: bool = Field(alias="needsHuman")
    reason: str


class Citation(CamelModel):
    id: str
    title: str
    score: float
    source: Literal["knowledge"] = "knowledge"


class SearchResult(CamelModel):
    """FAQ-only search result (``search_faq``)."""

    items: List[ScoredEntry]
    confidence: float


class SimilarResult(CamelModel):
    """Merged FAQ + history search result (``search_similar``)."""

    items: List[RetrievalCandidate]
    confidence: float


class AskResponse(CamelModel):
    """Answer returned for a support question, identical on both paths.

    Attributes:
        answer: Answer text (template or enhancer rephrasing).
        intent: Classified intent.
        confidence: Top FAQ score rounded to 3 decimals.
        needs_human: Whether the interaction must be escalated.
        citations: FAQ candidates the answer was built from.
        similar_items: Merged FAQ/history candidates for reference.
        trace: Per-agent details (intent, rag, judge).
    """

    answer: str
    intent: str
    confidence: float
    needs_human: bool = Field(alias="needsHuman")
    citations: List[Citation] = Field(default_factory=list)
    similar_items: List[Dict[str, Any]] = Field(default_factory=list, alias="similarItems")
    trace: Dict[str, Any] = Field(default_factory=dict)


class Metrics(CamelModel):
    total: int
    deflected: int
    deflection_rate: float = Field(alias="deflectionRate")
    avg_confidence: float = Field(alias="avgConfidence")
    max_confidence: float = Field(alias="maxConfidence")
    by_intent: Dict[str, int] = Field(default_factory=dict, alias="byIntent")
