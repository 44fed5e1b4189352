"""Answer composition with an optional generative enhancer.

The composer always produces a deterministic templated answer from the best
FAQ candidate. When an LLM credential is configured, the template can be
replaced by a rephrasing grounded in the same FAQ entry. Enhancer problems
of any kind fall back to the template; they are never surfaced to the user.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from .config import LLMConfig
from .models import ScoredEntry

logger = logging.getLogger(__name__)

NO_MATCH_ANSWER = (
    "No matching knowledge entry was found. Please escalate to the responsible "
    "team with the error message, the time it occurred and your device/network "
    "environment."
)

FOLLOW_UP_SUFFIX = (
    "If the steps above do not solve the problem, contact the support desk with "
    "the error message, the time it occurred and your device/network details."
)

ENHANCER_SYSTEM_PROMPT = (
    "You are the AI assistant of an internal support desk. Using only the "
    "knowledge entry provided, give short step-by-step instructions in the "
    "language of the question. If the knowledge does not clearly answer the "
    "question, recommend escalating to the responsible team."
)


@dataclass
class ComposedAnswer:
    answer: str
    used_generative_enhancer: bool = False


def compose_answer(candidates: Sequence[ScoredEntry]) -> str:
    """Build the deterministic answer from the top-ranked FAQ entry."""
    if not candidates:
        return NO_MATCH_ANSWER
    best = candidates[0]
    return f"[Guide] ({best.id}: {best.title})\n{best.content}\n\n{FOLLOW_UP_SUFFIX}"


class GenerativeEnhancer:
    """Rephrases answers through an OpenAI-compatible chat completions API.

    Attributes:
        config: LLM settings; ``config.api_key`` must be set.
    """

    def __init__(self, config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def rephrase(self, question: str, intent: str, best: ScoredEntry) -> str:
        """Ask the model for an answer grounded in ``best``.

        Raises:
            httpx.HTTPError: On transport failures and non-2xx responses.
            ValueError: If the response has no usable answer text.
        """
        user_prompt = (
            f"Question:\n{question}\n\n"
            f"Estimated intent: {intent}\n\n"
            f"Knowledge:\n[{best.id}] {best.title}\n{best.content}"
        )
        async with httpx.AsyncClient(transport=self._transport, timeout=self.config.timeout) as client:
            response = await client.post(
                f"{self.config.api_base.rstrip('/')}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.config.default_model,
                    "messages": [
                        {"role": "system", "content": ENHANCER_SYSTEM_PROMPT},
                        {"role": "user", "content": user_prompt},
                    ],
                    "max_tokens": self.config.max_tokens,
                    "temperature": self.config.temperature,
                },
            )
            response.raise_for_status()
            data = response.json()

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected LLM response shape: {e}") from e
        if not isinstance(content, str) or not content.strip():
            raise ValueError("LLM returned an empty answer")
        return content.strip()


class AnswerComposer:
    """Composes answers, delegating to the enhancer when one is configured."""

    def __init__(self, enhancer: Optional[GenerativeEnhancer] = None):
        self.enhancer = enhancer

    @classmethod
    def from_config(cls, config: LLMConfig) -> "AnswerComposer":
        return cls(GenerativeEnhancer(config) if config.enabled else None)

    async def compose(
        self, question: str, intent: str, candidates: Sequence[ScoredEntry]
    ) -> ComposedAnswer:
        if self.enhancer is not None and candidates:
            try:
                text = await self.enhancer.rephrase(question, intent, candidates[0])
                return ComposedAnswer(answer=text, used_generative_enhancer=True)
            except Exception as e:
                logger.warning(f"Generative enhancer failed, using template answer: {e}")
        return ComposedAnswer(answer=compose_answer(candidates))
