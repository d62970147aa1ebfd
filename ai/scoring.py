"""Readiness scoring for completed qualification rounds.

Wraps an OpenAI chat model with JSON output and retry logic. Scores gate
whether a prospect may move on to the next round.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Sequence

from openai import AsyncOpenAI, OpenAI, OpenAIError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from yenta.config import settings
from yenta.errors import UpstreamError

logger = logging.getLogger(__name__)

SCORE_CATEGORIES = ("HOT", "WARM", "COLD")

READINESS_PROMPT = """You score how ready a B2B prospect is to buy an AI solution.

Read the qualification conversation below and score four dimensions from 0 to 25:
budget_score, use_case_score, timeline_score, technical_score.
total_score is their sum (0-100). category is HOT (>= 75), WARM (>= 50) or COLD.

Return JSON only:
{{"budget_score": int, "use_case_score": int, "timeline_score": int,
  "technical_score": int, "total_score": int, "category": "HOT|WARM|COLD",
  "evidence": [short quotes], "summary": "one paragraph"}}

Conversation:
{conversation}"""


@dataclass
class RoundScore:
    """Readiness score for one round."""
    total_score: float
    category: str
    evidence: list[str] = field(default_factory=list)
    summary: str = ""


def _client_options() -> dict[str, Any]:
    if not settings.llm.api_key:
        raise UpstreamError("LLM provider not configured", detail="Set LLM_API_KEY")
    # Retries are handled by tenacity around each call
    return {
        "api_key": settings.llm.api_key,
        "base_url": settings.llm.base_url,
        "timeout": settings.llm.timeout_seconds,
        "max_retries": 0,
    }


@lru_cache(maxsize=1)
def get_llm_client() -> OpenAI:
    """Create and cache the blocking OpenAI client used by extraction.

    Raises:
        UpstreamError: If no API key is configured
    """
    return OpenAI(**_client_options())


@lru_cache(maxsize=1)
def get_async_llm_client() -> AsyncOpenAI:
    """Create and cache the async OpenAI client used by the scorer.

    Raises:
        UpstreamError: If no API key is configured
    """
    return AsyncOpenAI(**_client_options())


def format_transcript(transcript: Sequence[dict[str, str]]) -> str:
    return "\n".join(
        f"{m.get('role', 'user')}: {m.get('content', '')}"
        for m in transcript
        if m.get("role") != "system"
    )


def parse_score(payload: dict[str, Any]) -> RoundScore:
    """Validate the model's JSON and clamp the total to 0..100."""
    try:
        total = float(payload["total_score"])
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError("Scorer returned no usable total_score", detail=str(e)) from e

    total = max(0.0, min(100.0, total))
    category = str(payload.get("category", "")).upper()
    if category not in SCORE_CATEGORIES:
        category = "HOT" if total >= 75 else "WARM" if total >= 50 else "COLD"

    return RoundScore(
        total_score=total,
        category=category,
        evidence=[str(e) for e in payload.get("evidence") or []],
        summary=str(payload.get("summary") or ""),
    )


class ReadinessScorer:
    """Scores a round transcript with an LLM without blocking the event loop."""

    def __init__(self, client: AsyncOpenAI | None = None, *, model: str | None = None) -> None:
        self._client = client
        self.model = model or settings.llm.model

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_async_llm_client()
        return self._client

    @retry(
        stop=stop_after_attempt(settings.llm.max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OpenAIError),
        reraise=True,
    )
    async def _complete(self, conversation: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are a strict B2B sales qualification analyst. Always return valid JSON."},
                {"role": "user", "content": READINESS_PROMPT.format(conversation=conversation)},
            ],
            response_format={"type": "json_object"},
            temperature=0.3,
        )
        return response.choices[0].message.content or ""

    async def score(self, transcript: Sequence[dict[str, str]]) -> RoundScore:
        """Score a round transcript.

        Raises:
            UpstreamError: If the provider fails after retries or returns bad JSON
        """
        conversation = format_transcript(transcript)
        if not conversation:
            raise UpstreamError("Cannot score an empty transcript")

        try:
            raw = await self._complete(conversation)
        except OpenAIError as e:
            logger.error(f"Readiness scoring failed: {e}")
            raise UpstreamError("Readiness scoring failed", detail=str(e)) from e

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Scorer returned invalid JSON: {raw[:200]!r}")
            raise UpstreamError("Scorer returned invalid JSON", detail=str(e)) from e

        result = parse_score(payload)
        logger.info(f"Scored round: {result.total_score:.0f} ({result.category})")
        return result
