"""
Document chunking - split raw text into embeddable spans.

Each chunk is an exact slice ``text[char_start:char_end]`` of the input.
The splitter aims for ``target_chars`` per chunk, never exceeds
``max_chars``, and prefers to cut at a natural boundary that falls in a
tolerance window around the target:

    paragraph break  >  sentence end  >  whitespace  >  hard cut

Consecutive chunks overlap by ``overlap_chars`` (snapped forward to a word
start) so a sentence straddling a cut is still retrievable.

INVARIANTS:
-----------
- Deterministic: the same text always yields the same boundaries
- First chunk starts at 0; last chunk ends at len(text)
- char_start strictly increases; no characters are skipped between chunks
  (whitespace-only gaps between PDF pages excepted)
- Empty / whitespace-only text yields no chunks
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterator

from semantic_retrieval.core.models import Chunk

# ---------------------------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChunkConfig:
    """Chunk sizing, in characters."""

    target_chars: int = 2000
    max_chars: int = 2400
    min_chars: int = 200
    overlap_chars: int = 200
    tolerance_chars: int = 500

    def __post_init__(self) -> None:
        if self.target_chars <= 0 or self.max_chars < self.target_chars:
            raise ValueError("Require 0 < target_chars <= max_chars")
        if self.overlap_chars < 0 or self.overlap_chars >= self.target_chars:
            raise ValueError("overlap_chars must be in [0, target_chars)")


CHARS_PER_TOKEN = 4

# Content that is never split into passages
UNCHUNKABLE_TYPES = frozenset({"image"})

SHORT_CONTENT = ChunkConfig(target_chars=4000, max_chars=4000, min_chars=0, overlap_chars=0, tolerance_chars=0)
MEDIUM_CONTENT = ChunkConfig(target_chars=2000, max_chars=2400, min_chars=200, overlap_chars=200, tolerance_chars=500)
LONG_CONTENT = ChunkConfig(target_chars=1600, max_chars=2000, min_chars=150, overlap_chars=200, tolerance_chars=400)
EMAIL_CONTENT = ChunkConfig(target_chars=1200, max_chars=1600, min_chars=100, overlap_chars=100, tolerance_chars=300)


def estimate_tokens(text: str) -> int:
    """Rough token count (~4 chars per token for English)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def is_chunkable(content_type: str) -> bool:
    return content_type not in UNCHUNKABLE_TYPES


def chunk_config_for(content_type: str, content_length: int) -> ChunkConfig:
    """
    Pick chunk sizing from the content type and length.

    Short content stays whole, long content gets smaller overlapping
    chunks, and email bodies (quoted replies, signatures) get tighter ones.
    """
    if content_length < 1000:
        return SHORT_CONTENT
    if content_type == "email":
        return EMAIL_CONTENT
    if content_length < 5000:
        return MEDIUM_CONTENT
    return LONG_CONTENT


# ---------------------------------------------------------------------------
# BOUNDARY DETECTION
# ---------------------------------------------------------------------------

_PARAGRAPH = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE = re.compile(r"[.!?][\"')\]]*\s+")
_WHITESPACE = re.compile(r"\s+")
_PAGE_MARKER = re.compile(r"(?:^|\n)\s*\[?Page\s+(\d+)\]?", re.IGNORECASE)

_BOUNDARIES = (
    ("paragraph", _PARAGRAPH),
    ("sentence", _SENTENCE),
    ("word", _WHITESPACE),
)


def _last_match_end(pattern: re.Pattern, text: str, lo: int, hi: int) -> int | None:
    end = None
    for match in pattern.finditer(text, lo, hi):
        if match.end() > lo:
            end = match.end()
    return end


def _page_segments(text: str) -> list[tuple[int, int, int]]:
    """Split PDF text at page markers into (start, stop, page_number)."""
    segments: list[tuple[int, int, int]] = []
    last = 0
    page = 1
    for match in _PAGE_MARKER.finditer(text):
        if match.start() > last:
            segments.append((last, match.start(), page))
        page = int(match.group(1))
        last = match.start()
    segments.append((last, len(text), page))
    return segments


# ---------------------------------------------------------------------------
# CHUNKER
# ---------------------------------------------------------------------------


class ChunkSequence:
    """
    Lazy, restartable sequence of chunks.

    Iterating twice re-runs the splitter and yields identical chunks.
    """

    def __init__(self, chunker: "Chunker", document_id: str, text: str, content_type: str):
        self._chunker = chunker
        self._document_id = document_id
        self._text = text
        self._content_type = content_type

    def __iter__(self) -> Iterator[Chunk]:
        return self._chunker._generate(self._document_id, self._text, self._content_type)

    def to_list(self) -> list[Chunk]:
        return list(self)


class Chunker:
    """
    Boundary-aware text splitter.

    A fixed ``config`` applies to every document; without one the sizing
    is chosen per document by chunk_config_for().
    """

    def __init__(self, config: ChunkConfig | None = None):
        self.config = config

    def chunk(self, document_id: str, text: str, content_type: str = "text") -> ChunkSequence:
        """Split ``text`` into a lazy sequence of chunks."""
        return ChunkSequence(self, document_id, text, content_type)

    def config_for(self, content_type: str, content_length: int) -> ChunkConfig:
        return self.config or chunk_config_for(content_type, content_length)

    def _generate(self, document_id: str, text: str, content_type: str) -> Iterator[Chunk]:
        if not text or not text.strip():
            return

        config = self.config_for(content_type, len(text))

        if content_type == "pdf":
            segments = _page_segments(text)
        else:
            segments = [(0, len(text), None)]

        index = 0
        for seg_start, seg_stop, page in segments:
            if seg_start > 0 and not text[seg_start:seg_stop].strip():
                continue
            for start, end, boundary in self._spans(text, seg_start, seg_stop, config):
                piece = text[start:end]
                yield Chunk(
                    document_id=document_id,
                    sequence_index=index,
                    text=piece,
                    char_start=start,
                    char_end=end,
                    token_count=estimate_tokens(piece),
                    boundary=boundary,
                    page_number=page,
                )
                index += 1

    def _spans(
        self,
        text: str,
        start: int,
        stop: int,
        config: ChunkConfig,
    ) -> Iterator[tuple[int, int, str]]:
        """Yield (start, end, boundary) spans covering text[start:stop]."""
        pos = start
        while pos < stop:
            if stop - pos <= config.max_chars or not text[pos:stop].strip():
                yield pos, stop, "end"
                return

            end, boundary = self._find_break(text, pos, stop, config)
            # Don't leave a whitespace-only tail behind
            if not text[end:stop].strip():
                end, boundary = stop, "end"
            yield pos, end, boundary
            if end >= stop:
                return

            next_pos = max(end - config.overlap_chars, pos + 1)
            while next_pos < end and not text[next_pos - 1].isspace():
                next_pos += 1
            pos = next_pos

    def _find_break(self, text: str, pos: int, stop: int, config: ChunkConfig) -> tuple[int, str]:
        limit = min(pos + config.max_chars, stop)
        target = pos + config.target_chars
        lo = max(pos + max(config.min_chars, 1), target - config.tolerance_chars)
        hi = min(limit, target + config.tolerance_chars)

        if lo < hi:
            for name, pattern in _BOUNDARIES:
                end = _last_match_end(pattern, text, lo, hi)
                if end is not None:
                    return end, name

        # No boundary near the target: take the last word break that fits
        end = _last_match_end(_WHITESPACE, text, pos + 1, limit)
        if end is not None and end > pos:
            return end, "word"
        return limit, "hard"
