"""Embedded support pipeline.

``SupportPipeline`` runs every agent in-process against the dataset files.
The MCP tool-provider wraps the same class, so answers produced locally and
remotely have an identical shape; the web API uses it directly whenever the
provider is unavailable.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from .answer import AnswerComposer, compose_answer
from .config import SupportDeskConfig
from .intent import classify_intent
from .judge import judge
from .metrics import compute_metrics
from .models import (
    AskResponse,
    Citation,
    IntentResult,
    InteractionRecord,
    Metrics,
    SearchResult,
    SimilarResult,
)
from .retrieval import SCORE_DECIMALS, retrieve, search_similar
from .store import KnowledgeStore, LogStore

logger = logging.getLogger(__name__)


class SupportPipeline:
    """Classify, retrieve, answer, judge and log support questions.

    Attributes:
        config: Pipeline configuration (data directory, default top-k).
        knowledge: Read-only FAQ store.
        logs: Append-only interaction log store.
        composer: Answer composer, with or without a generative enhancer.
        channel: Value written to the ``channel`` field of log records, or
                 None to omit the field.
    """

    def __init__(
        self,
        config: Optional[SupportDeskConfig] = None,
        composer: Optional[AnswerComposer] = None,
        channel: Optional[str] = None,
    ):
        self.config = config or SupportDeskConfig()
        self.knowledge = KnowledgeStore(self.config.faq_path)
        self.logs = LogStore(self.config.logs_path)
        self.composer = composer or AnswerComposer.from_config(self.config.llm)
        self.channel = channel

    def classify(self, text: str) -> IntentResult:
        return classify_intent(text)

    async def search_faq(self, query: str, top_k: int = 5) -> SearchResult:
        entries = await self.knowledge.aentries()
        retrieved = retrieve(query, entries, top_k)
        for item in retrieved.ranked:
            item.score = round(item.score, SCORE_DECIMALS)
        return SearchResult(
            items=retrieved.ranked,
            confidence=round(retrieved.confidence, SCORE_DECIMALS),
        )

    async def search_similar(self, query: str, top_k: int = 10) -> SimilarResult:
        entries = await self.knowledge.aentries()
        history = await self.logs.aread()
        return search_similar(query, entries, history, top_k)

    async def metrics(self) -> Metrics:
        return compute_metrics(await self.logs.aread())

    async def logs_snapshot(self) -> List[Dict[str, Any]]:
        return await self.logs.aread()

    async def faq_overview(self) -> Dict[str, Any]:
        """Summarize ``faq.json``: entry count, first 20 ids and 2 sample entries."""
        raw = await asyncio.to_thread(self.knowledge.read_raw)
        return {
            "count": len(raw),
            "ids": [item.get("id") for item in raw[:20] if isinstance(item, dict)],
            "sample": raw[:2],
        }

    async def ask(self, question: str, top_k: Optional[int] = None) -> AskResponse:
        """Answer ``question`` and append one interaction record.

        Steps: classify, retrieve FAQ candidates, compose the answer, judge
        escalation on the deterministic template (an enhancer rephrasing never
        changes the decision), collect merged FAQ/history matches, then log the
        interaction. The log record keeps the unrounded confidence.

        Args:
            question: Non-empty support question.
            top_k: FAQ candidates to retrieve (defaults to ``config.default_top_k``).

        Returns:
            AskResponse: Answer, intent, confidence, escalation flag,
                         citations, similar items and a per-agent trace.
        """
        started = time.monotonic()
        top_k = top_k or self.config.default_top_k

        intent = classify_intent(question)
        entries = await self.knowledge.aentries()
        retrieved = retrieve(question, entries, top_k)
        composed = await self.composer.compose(question, intent.intent, retrieved.ranked)
        # the enhancer only replaces the text shown; escalation is decided on the template
        verdict = judge(retrieved.confidence, intent.intent, compose_answer(retrieved.ranked))

        record_fields = dict(
            question=question,
            intent=intent.intent,
            confidence=retrieved.confidence,
            needs_human=verdict.needs_human,
            used_generative_enhancer=composed.used_generative_enhancer,
            latency_ms=int((time.monotonic() - started) * 1000),
        )
        if self.channel is not None:
            record_fields["channel"] = self.channel

        similar = await self.search_similar(question, self.config.similar_top_k)
        await self.logs.append(InteractionRecord(**record_fields))

        confidence = round(retrieved.confidence, SCORE_DECIMALS)
        citations = [
            Citation(id=item.id, title=item.title, score=round(item.score, SCORE_DECIMALS))
            for item in retrieved.ranked
        ]
        logger.info(
            f"Answered question intent={intent.intent} confidence={confidence} "
            f"needs_human={verdict.needs_human} reason={verdict.reason}"
        )
        return AskResponse(
            answer=composed.answer,
            intent=intent.intent,
            confidence=confidence,
            needs_human=verdict.needs_human,
            citations=citations,
            similar_items=[item.to_json_dict() for item in similar.items],
            trace={
                "intent": intent.to_json_dict(),
                "rag": {
                    "confidence": confidence,
                    "top": [c.to_json_dict() for c in citations],
                },
                "judge": verdict.to_json_dict(),
            },
        )
