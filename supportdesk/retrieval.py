"""Lexical retrieval over the FAQ and the question history.

Two ranking operations are provided:
- ``retrieve``: FAQ-only ranking used to build answers
- ``search_similar``: FAQ entries and past questions merged into one list

FAQ entries use a composite score that favours tag hits, which works well for
Japanese queries where whitespace tokenization is weak:

    score = tag_hits * 0.25 + title_hit * 0.2 + overlap * 0.4

The signals are summed without normalization, so an entry matching several
tags can score above 1.0. History records are scored by token overlap with
the stored question only.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .models import KnowledgeEntry, RetrievalCandidate, ScoredEntry, SimilarResult
from .text import overlap_score, tokenize

TAG_WEIGHT = 0.25
TITLE_WEIGHT = 0.2
OVERLAP_WEIGHT = 0.4

HISTORY_TITLE_LIMIT = 80
SCORE_DECIMALS = 3


@dataclass(frozen=True)
class EntryScore:
    """Signal breakdown for one FAQ entry against one query."""

    tag_hits: int
    title_hit: int
    overlap: float

    @property
    def score(self) -> float:
        return (
            self.tag_hits * TAG_WEIGHT
            + self.title_hit * TITLE_WEIGHT
            + self.overlap * OVERLAP_WEIGHT
        )


@dataclass
class RetrievalResult:
    ranked: List[ScoredEntry]
    confidence: float


def _check_top_k(top_k: int) -> None:
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
        raise ValueError(f"top_k must be a positive integer, got {top_k!r}")


def score_entry(
    entry: KnowledgeEntry, query: Optional[str], query_tokens: Optional[List[str]] = None
) -> EntryScore:
    """Score a single FAQ entry against ``query``.

    Args:
        entry: FAQ entry to score.
        query: Raw query text.
        query_tokens: Pre-computed ``tokenize(query)``, to avoid re-tokenizing
                      the query for every entry.

    Returns:
        EntryScore: tag hits, title hit and token overlap for the entry.
    """
    lowered = (query or "").lower()
    if query_tokens is None:
        query_tokens = tokenize(query)

    tags = [tag.lower() for tag in entry.tags]
    tag_hits = sum(1 for tag in tags if tag and tag in lowered)

    title = entry.title.lower()
    title_hit = 1 if title and title in lowered else 0

    doc_tokens = tokenize(f"{entry.title} {' '.join(tags)} {entry.content}")
    return EntryScore(
        tag_hits=tag_hits,
        title_hit=title_hit,
        overlap=overlap_score(query_tokens, doc_tokens),
    )


def retrieve(
    query: Optional[str], entries: Sequence[KnowledgeEntry], top_k: int = 3
) -> RetrievalResult:
    """Rank FAQ entries for ``query`` and keep the ``top_k`` best.

    Scores are left unrounded; ``confidence`` is the score of the first
    ranked entry, or 0 when there are no entries. Ties keep file order.
    """
    _check_top_k(top_k)
    query_tokens = tokenize(query)
    scored = [
        ScoredEntry(
            id=entry.id,
            title=entry.title,
            content=entry.content,
            tags=entry.tags,
            score=score_entry(entry, query, query_tokens).score,
        )
        for entry in entries
    ]
    ranked = sorted(scored, key=lambda item: item.score, reverse=True)[:top_k]
    confidence = ranked[0].score if ranked else 0.0
    return RetrievalResult(ranked=ranked, confidence=confidence)


def _history_title(question: str) -> str:
    if len(question) > HISTORY_TITLE_LIMIT:
        return question[:HISTORY_TITLE_LIMIT] + "…"
    return question


def search_similar(
    query: Optional[str],
    entries: Sequence[KnowledgeEntry],
    history: Sequence[Dict[str, Any]],
    top_k: int = 10,
) -> SimilarResult:
    """Search FAQ entries and past questions together.

    FAQ entries are scored exactly as in ``retrieve``; history records are
    scored by token overlap with their ``question``. Candidates with a score
    of 0 or less are dropped, the rest are ranked, truncated to ``top_k`` and
    rounded to 3 decimals.

    Args:
        query: Raw query text.
        entries: FAQ entries.
        history: Raw interaction records from the log store.
        top_k: Maximum number of candidates to return.

    Returns:
        SimilarResult: Merged candidates and the top rounded score.
    """
    _check_top_k(top_k)
    query_tokens = tokenize(query)
    candidates: List[RetrievalCandidate] = []

    for entry in entries:
        candidates.append(
            RetrievalCandidate(
                source="knowledge",
                id=entry.id,
                title=entry.title,
                content=entry.content,
                score=score_entry(entry, query, query_tokens).score,
            )
        )

    for idx, record in enumerate(history):
        question = str(record.get("question") or "")
        raw_timestamp = record.get("timestamp") or record.get("ts")
        timestamp = str(raw_timestamp) if raw_timestamp else None
        intent = record.get("intent")
        candidates.append(
            RetrievalCandidate(
                source="history",
                id=timestamp or f"log-{idx}",
                title=_history_title(question),
                score=overlap_score(query_tokens, tokenize(question)),
                intent=str(intent) if intent else None,
                timestamp=timestamp,
            )
        )

    positive = [c for c in candidates if c.score > 0]
    ranked = sorted(positive, key=lambda c: c.score, reverse=True)[:top_k]
    for candidate in ranked:
        candidate.score = round(candidate.score, SCORE_DECIMALS)

    confidence = ranked[0].score if ranked else 0.0
    return SimilarResult(items=ranked, confidence=confidence)
