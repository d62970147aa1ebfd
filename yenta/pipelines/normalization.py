"""Text normalization for chat utterances before field extraction.

Handles Unicode form, quotes and dashes, stray HTML, whitespace and case.
"""
from __future__ import annotations

import re
import unicodedata

_QUOTES = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
}
_DASHES = {
    "–": "-",
    "—": "-",
}


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_punctuation(text: str) -> str:
    """Normalize smart quotes, dashes and repeated sentence punctuation."""
    for src, dst in {**_QUOTES, **_DASHES}.items():
        text = text.replace(src, dst)

    # Remove excessive punctuation
    text = re.sub(r'([!?.]){2,}', r'\1', text)

    return text


def clean_html(text: str) -> str:
    """Replace HTML tags (e.g. ``<br>`` pasted from the chat widget) with spaces."""
    return re.sub(r'<[^>]+>', ' ', text)


def normalize_utterance(
    text: str,
    *,
    lowercase: bool = True,
    clean_html_tags: bool = True,
) -> str:
    """Normalize a user utterance for keyword matching.

    Args:
        text: Raw message text
        lowercase: Convert to lowercase
        clean_html_tags: Strip HTML tags

    Returns:
        Normalized text, or "" for blank input
    """
    if not text or not text.strip():
        return ""

    if clean_html_tags:
        text = clean_html(text)

    text = unicodedata.normalize('NFC', text)
    text = normalize_punctuation(text)

    if lowercase:
        text = text.lower()

    return normalize_whitespace(text)
