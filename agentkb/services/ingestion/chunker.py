"""Greedy, paragraph-first text chunking with a word-aligned overlap prefix.

Splits cleaned source text into chunks of at most ``chunk_size``
characters, then prefixes every chunk after the first with the tail of
its predecessor so a concept spanning a boundary keeps local context.

The algorithm works in two passes:

1. **Boundaries** -- paragraphs (blank-line separated) are packed greedily
   into a buffer while ``buffer + "\\n\\n" + paragraph`` still fits.  A
   paragraph that is too long on its own is split at sentence boundaries
   with the same greedy rule; a sentence that is too long is split at
   whitespace; a single word longer than ``chunk_size`` is cut into
   ``chunk_size`` pieces.  No boundary chunk ever exceeds ``chunk_size``.

2. **Overlap** -- chunk *i* (i > 0) becomes
   ``"..." + <last whole words of chunk i-1, at most overlap chars> + " " + chunk i``.

Nothing is dropped: joining the boundary chunks reproduces the cleaned
text up to whitespace.  The process is deterministic.
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(logger_name=__name__)

OVERLAP_MARKER = "..."

_PARAGRAPH_SEPARATOR = "\n\n"

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "vs",
        "etc",
        "approx",
        "inc",
        "ltd",
        "co",
        "e.g",
        "i.e",
    }
)

_ABBREVIATION_PERIOD = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HORIZONTAL_WS = re.compile(r"[ \t]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"[.!?]+(?:\s|$)")


class TextChunker:
    """Splits text into bounded chunks with an overlap prefix.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk before the overlap prefix (default 1000).
    overlap:
        Maximum characters of the previous chunk repeated as a prefix
        (default 100).  ``0`` disables overlap.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 100) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than chunk_size")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[str]:
        """Clean *text* and return overlapped chunks, in order."""
        chunks = self.apply_overlap(self.split(text))
        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks

    def split(self, text: str) -> list[str]:
        """Clean *text* and return boundary chunks without overlap."""
        cleaned = self.clean(text)
        if not cleaned:
            return []
        paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT.split(cleaned) if p.strip()]
        return self._pack(paragraphs, _PARAGRAPH_SEPARATOR, self._split_paragraph)

    def apply_overlap(self, chunks: list[str]) -> list[str]:
        """Prefix each chunk after the first with the tail of its predecessor."""
        if len(chunks) <= 1 or self._overlap <= 0:
            return list(chunks)

        result = [chunks[0]]
        for previous, current in zip(chunks, chunks[1:]):
            tail = self._last_words(previous)
            result.append(f"{OVERLAP_MARKER}{tail} {current}" if tail else current)
        return result

    @staticmethod
    def clean(text: str) -> str:
        """Normalize line endings and whitespace, strip control characters.

        Paragraph breaks survive: runs of three or more newlines collapse
        to one blank line, single newlines are kept.
        """
        if not text:
            return ""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = _CONTROL_CHARS.sub("", text)
        text = _HORIZONTAL_WS.sub(" ", text)
        text = _SPACE_AROUND_NEWLINE.sub("\n", text)
        text = _EXCESS_NEWLINES.sub("\n\n", text)
        return text.strip()

    # ------------------------------------------------------------------
    # Splitting cascade: paragraph → sentence → word → hard cut
    # ------------------------------------------------------------------

    def _pack(self, parts: list[str], separator: str, split_oversized) -> list[str]:  # noqa: ANN001
        """Greedily pack *parts* into chunks joined by *separator*.

        Parts longer than the limit are handed to *split_oversized* and
        their pieces emitted as chunks of their own.
        """
        chunks: list[str] = []
        buffer = ""

        for part in parts:
            candidate = f"{buffer}{separator}{part}" if buffer else part
            if len(candidate) <= self._chunk_size:
                buffer = candidate
                continue

            if buffer:
                chunks.append(buffer)
                buffer = ""

            if len(part) > self._chunk_size:
                chunks.extend(split_oversized(part))
            else:
                buffer = part

        if buffer:
            chunks.append(buffer)
        return chunks

    def _split_paragraph(self, paragraph: str) -> list[str]:
        return self._pack(self._split_sentences(paragraph), " ", self._split_sentence)

    def _split_sentence(self, sentence: str) -> list[str]:
        return self._pack(sentence.split(), " ", self._split_word)

    def _split_word(self, word: str) -> list[str]:
        size = self._chunk_size
        return [word[i : i + size] for i in range(0, len(word), size)]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* after ``.``, ``!`` or ``?`` while respecting abbreviations.

        The punctuation stays with its sentence.  Abbreviation periods are
        masked with ``\\x00`` (same length, so indices stay aligned with the
        original text) to avoid variable-width lookbehinds.
        """
        masked = _ABBREVIATION_PERIOD.sub(lambda m: m.group(1) + "\x00", text)

        sentences: list[str] = []
        last = 0
        for match in _SENTENCE_END.finditer(masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)

        return sentences if sentences else [text]

    def _last_words(self, text: str) -> str:
        """Return the longest run of trailing whole words within ``overlap`` chars."""
        result = ""
        for word in reversed(text.split()):
            candidate = f"{word} {result}" if result else word
            if len(candidate) > self._overlap:
                break
            result = candidate
        return result


def chunk_text(text: str, max_chunk_size: int = 1000, overlap: int = 100) -> list[str]:
    """Functional wrapper: ``TextChunker(max_chunk_size, overlap).chunk(text)``."""
    return TextChunker(chunk_size=max_chunk_size, overlap=overlap).chunk(text)
