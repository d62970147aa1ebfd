"""LLM-backed field extraction with the same interface as the keyword extractor.

The model is asked for explicit facts only and its answer is filtered to the
known field vocabulary, so it can never introduce fields or values the rule
table does not know about.
"""
from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Iterable

from openai import OpenAI, OpenAIError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ai.scoring import get_llm_client
from yenta.config import settings
from yenta.errors import UpstreamError
from yenta.rules import ExtractionRule, load_rules

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are a strict data extraction tool. Extract ONLY information that is
EXPLICITLY stated in the user's message. Do not guess or infer.

Allowed fields and values:
{vocabulary}

Free-text fields (copy the exact phrase): {free_fields}

User message: "{utterance}"

Return a JSON object containing only the fields that were explicitly stated.
Return {{}} if nothing was stated."""


def build_vocabulary(rules: Iterable[ExtractionRule]) -> tuple[dict[str, list[str]], list[str]]:
    """Split a rule set into enumerated fields and free-text fields."""
    enumerated: dict[str, list[str]] = defaultdict(list)
    free_text: list[str] = []
    for rule in rules:
        if rule.value is None:
            if rule.field not in free_text:
                free_text.append(rule.field)
        elif rule.value not in enumerated[rule.field]:
            enumerated[rule.field].append(rule.value)
    return dict(enumerated), free_text


class LLMFieldExtractor:
    """Field extractor that asks a chat model for a JSON object.

    Calls are blocking; the qualification pipeline runs them in a worker thread.
    """

    def __init__(
        self,
        rules: Iterable[ExtractionRule] | None = None,
        client: OpenAI | None = None,
        *,
        model: str | None = None,
    ) -> None:
        self.vocabulary, self.free_fields = build_vocabulary(rules if rules is not None else load_rules())
        self._client = client
        self.model = model or settings.llm.model

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_llm_client()
        return self._client

    def _prompt(self, utterance: str) -> str:
        vocabulary = "\n".join(f"- {f}: {' | '.join(values)}" for f, values in self.vocabulary.items())
        return EXTRACTION_PROMPT.format(
            vocabulary=vocabulary,
            free_fields=", ".join(self.free_fields) or "none",
            utterance=utterance.replace('"', "'"),
        )

    @retry(
        stop=stop_after_attempt(settings.llm.max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OpenAIError),
        reraise=True,
    )
    def _complete(self, utterance: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are an expert at extracting structured business data. Always return valid JSON."},
                {"role": "user", "content": self._prompt(utterance)},
            ],
            response_format={"type": "json_object"},
            temperature=settings.llm.temperature,
        )
        return response.choices[0].message.content or "{}"

    def extract(self, utterance: str) -> dict[str, str]:
        """Extract known fields from an utterance.

        Raises:
            UpstreamError: If the provider fails after retries or returns bad JSON
        """
        if not utterance or not utterance.strip():
            return {}

        try:
            raw = self._complete(utterance)
            payload = json.loads(raw)
        except OpenAIError as e:
            logger.error(f"LLM extraction failed: {e}")
            raise UpstreamError("Field extraction failed", detail=str(e)) from e
        except json.JSONDecodeError as e:
            logger.error(f"LLM extraction returned invalid JSON: {e}")
            raise UpstreamError("Field extraction returned invalid JSON", detail=str(e)) from e

        if not isinstance(payload, dict):
            raise UpstreamError("Field extraction returned a non-object payload")

        return self._filter(payload)

    def _filter(self, payload: dict) -> dict[str, str]:
        fields: dict[str, str] = {}
        for name, value in payload.items():
            if value is None or value == "":
                continue
            if name in self.vocabulary:
                if value in self.vocabulary[name]:
                    fields[name] = value
                else:
                    logger.debug(f"Dropping unknown value {value!r} for {name}")
            elif name in self.free_fields:
                fields[name] = str(value).strip()
            else:
                logger.debug(f"Dropping unknown field {name!r}")
        return fields
