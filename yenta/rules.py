"""Rule engine for keyword-based qualification field extraction.

Rule tables are immutable configuration passed into the extractor, so
callers and tests can substitute their own rule sets. Every match is
recorded in an audit trace.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from rapidfuzz import fuzz

from config.qualification_rules import EXTRACTION_RULES, FIELD_CATEGORIES

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")
STEM_MARKER = "*"


@dataclass(frozen=True)
class ExtractionRule:
    """Sets ``field`` to ``value`` when any keyword or pattern matches.

    Rules with patterns and no value use the matched text as the value.
    """
    field: str
    value: str | None = None
    keywords: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExtractionRule:
        return cls(
            field=data["field"],
            value=data.get("value"),
            keywords=tuple(k.lower() for k in data.get("keywords", ())),
            patterns=tuple(data.get("patterns", ())),
        )


@dataclass(frozen=True)
class RuleMatch:
    """Audit trace for a single matching rule."""
    field: str
    value: str
    matched_text: str
    method: str  # keyword, pattern, fuzzy


@dataclass(frozen=True)
class ExtractionResult:
    """Field updates plus the matches that produced them, in evaluation order."""
    fields: dict[str, str]
    matches: tuple[RuleMatch, ...] = field(default_factory=tuple)


class FieldExtractor(Protocol):
    """Anything that maps an utterance to partial field updates."""

    def extract(self, utterance: str) -> dict[str, str]:
        ...


def is_stem(keyword: str) -> bool:
    return keyword.endswith(STEM_MARKER)


def keyword_regex(keyword: str) -> str:
    """Regex for one keyword: a stem matches any word it starts, anything
    else must be a whole word, optionally pluralized."""
    if is_stem(keyword):
        return re.escape(keyword[:-1])
    return re.escape(keyword) + r"(?:e?s)?(?!\w)"


def derive_categories(
    fields: Mapping[str, Any],
    categories: Mapping[str, Mapping[str, str]] = FIELD_CATEGORIES,
) -> dict[str, str]:
    """Companion ``<field>Category`` entries for the categorized values in ``fields``."""
    derived: dict[str, str] = {}
    for name, value in fields.items():
        category = categories.get(name, {}).get(value)
        if category:
            derived[f"{name}Category"] = category
    return derived


def load_rules(raw_rules: Iterable[Mapping[str, Any]] = EXTRACTION_RULES) -> tuple[ExtractionRule, ...]:
    """Build an immutable rule set from plain dict configuration."""
    return tuple(ExtractionRule.from_dict(r) for r in raw_rules)


class KeywordFieldExtractor:
    """Config-driven keyword/pattern extractor.

    Rules are evaluated in order and a later matching rule overwrites an
    earlier one for the same field. There is no confidence model, so the
    rule table ordering is the only precedence. Fields no rule matches are
    left out of the result.
    """

    def __init__(
        self,
        rules: Iterable[ExtractionRule] | None = None,
        *,
        fuzzy_matching: bool = False,
        fuzzy_threshold: int = 88,
    ) -> None:
        self.rules: tuple[ExtractionRule, ...] = tuple(rules) if rules is not None else load_rules()
        self.fuzzy_matching = fuzzy_matching
        self.fuzzy_threshold = fuzzy_threshold
        self._compiled = [(rule, self._compile(rule)) for rule in self.rules]

        logger.info(
            f"Initialized field extractor: {len(self.rules)} rules, "
            f"fuzzy={'on' if fuzzy_matching else 'off'}"
        )

    @staticmethod
    def _compile(rule: ExtractionRule) -> list[re.Pattern]:
        compiled = [re.compile(p, re.IGNORECASE) for p in rule.patterns]
        if rule.keywords:
            alternatives = "|".join(keyword_regex(k) for k in rule.keywords)
            compiled.insert(0, re.compile(rf"\b(?:{alternatives})", re.IGNORECASE))
        return compiled

    def extract(self, utterance: str) -> dict[str, str]:
        return self.extract_with_trace(utterance).fields

    def extract_with_trace(self, utterance: str) -> ExtractionResult:
        """Extract field updates with the list of rules that fired."""
        if not utterance or not utterance.strip():
            return ExtractionResult(fields={})

        fields: dict[str, str] = {}
        matches: list[RuleMatch] = []
        tokens = _WORD_RE.findall(utterance.lower()) if self.fuzzy_matching else []

        for rule, patterns in self._compiled:
            match = self._match_rule(rule, patterns, utterance, tokens)
            if match is None:
                continue
            if match.field in fields and fields[match.field] != match.value:
                logger.debug(
                    f"Rule override for {match.field}: {fields[match.field]!r} -> {match.value!r}"
                )
            fields[match.field] = match.value
            matches.append(match)

        logger.debug(f"Extracted {len(fields)} fields from utterance of length {len(utterance)}")
        return ExtractionResult(fields=fields, matches=tuple(matches))

    def _match_rule(
        self,
        rule: ExtractionRule,
        patterns: list[re.Pattern],
        text: str,
        tokens: list[str],
    ) -> RuleMatch | None:
        for pattern in patterns:
            found = pattern.search(text)
            if found:
                matched_text = found.group(0).strip()
                is_keyword = bool(rule.keywords) and pattern is patterns[0]
                return RuleMatch(
                    field=rule.field,
                    value=rule.value if rule.value is not None else matched_text,
                    matched_text=matched_text,
                    method="keyword" if is_keyword else "pattern",
                )

        if self.fuzzy_matching and rule.value is not None:
            return self._fuzzy_match(rule, tokens)
        return None

    def _fuzzy_match(self, rule: ExtractionRule, tokens: list[str]) -> RuleMatch | None:
        # Single-word keywords only; short words produce too many near-misses
        candidates = [k for k in rule.keywords if not is_stem(k) and " " not in k and len(k) >= 6]
        for keyword in candidates:
            for token in tokens:
                if len(token) < 6:
                    continue
                if fuzz.ratio(token, keyword) >= self.fuzzy_threshold:
                    return RuleMatch(
                        field=rule.field,
                        value=rule.value,
                        matched_text=token,
                        method="fuzzy",
                    )
        return None
