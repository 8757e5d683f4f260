"""Lightweight content statistics attached to every ingestion result."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

from agentkb.models.data_source import SourceType

_WORDS_PER_MINUTE = 200
_LANGUAGE_SAMPLE_CHARS = 500

# Stop-word vote; the language with the most hits in the sample wins, ties
# resolve to the earlier entry.
_LANGUAGE_PATTERNS: dict[str, re.Pattern[str]] = {
    "en": re.compile(
        r"\b(the|and|for|are|but|not|you|all|can|had|her|was|one|our|out|day|get|has"
        r"|him|his|how|its|may|new|now|old|see|two|way|who|did|man)\b"
    ),
    "es": re.compile(
        r"\b(que|de|no|el|la|en|es|se|le|da|su|por|son|con|para|una|las|los|del|más"
        r"|muy|fue|ser|han|era)\b"
    ),
    "fr": re.compile(
        r"\b(le|de|et|à|un|il|être|en|avoir|que|pour|dans|ce|son|une|sur|avec|ne|se"
        r"|pas|tout|plus|par)\b"
    ),
}

_LINK_PATTERN = re.compile(r"https?://")
_CODE_PATTERN = re.compile(r"```|<code>|function\s*\(")


def detect_language(text: str) -> str:
    """Guess ``en``, ``es`` or ``fr`` from the first 500 characters."""
    sample = text[:_LANGUAGE_SAMPLE_CHARS].lower()
    best, best_hits = "en", 0
    for language, pattern in _LANGUAGE_PATTERNS.items():
        hits = len(pattern.findall(sample))
        if hits > best_hits:
            best, best_hits = language, hits
    return best


def extract_metadata(text: str, source_type: SourceType, source_name: str) -> dict[str, Any]:
    """Return word/char counts, read time and language for *text*.

    Website sources additionally report ``has_links`` and ``has_code``.
    """
    word_count = len(text.split())
    metadata: dict[str, Any] = {
        "source_type": source_type.value,
        "source_name": source_name,
        "word_count": word_count,
        "char_count": len(text),
        "estimated_read_time": math.ceil(word_count / _WORDS_PER_MINUTE),
        "language": detect_language(text),
        "extracted_at": datetime.now(timezone.utc).isoformat(),
    }
    if source_type is SourceType.WEBSITE:
        metadata["has_links"] = bool(_LINK_PATTERN.search(text))
        metadata["has_code"] = bool(_CODE_PATTERN.search(text))
    return metadata
