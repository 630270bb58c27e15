"""Character-window text chunking with overlap.

Splits the text of a Context into retrievable segments of at most
``max_size`` characters (default 2000).  Consecutive segments share
``overlap`` characters (default 100) so a sentence spanning a boundary
is fully contained in at least one of them.

Window boundaries that fall mid-document are pulled back to the last
whitespace in the second half of the window so words are not cut in
two.  If that half holds no whitespace (e.g. a long URL or base64 blob),
the cut falls on the raw boundary.

Catalog-style content (one product per record) uses
:meth:`TextChunker.chunk_by_delimiter` instead, which never splits a
record: an oversized record is truncated and logged.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger(logger_name=__name__)


class TextChunker:
    """Splits text into overlapping, size-bounded chunks.

    Parameters
    ----------
    max_size:
        Maximum characters per chunk (default 2000).
    overlap:
        Characters shared by consecutive chunks (default 100).  Must be
        smaller than ``max_size``.
    """

    def __init__(self, max_size: int = 2000, overlap: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        if overlap < 0 or overlap >= max_size:
            raise ValueError("overlap must be in [0, max_size)")
        self._max_size = max_size
        self._overlap = overlap

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[str]:
        """Split *text* into overlapping chunks.

        Returns ``[text]`` unchanged when it already fits in one chunk, and
        an empty list for the empty string.
        """
        if not text:
            return []
        if len(text) <= self._max_size:
            return [text]

        pieces: list[str] = []
        length = len(text)
        start = 0
        while start < length:
            end = min(start + self._max_size, length)
            if end < length:
                cut = self._last_whitespace(text, start + self._max_size // 2, end)
                if cut > start:
                    end = cut
            pieces.append(text[start:end])
            if end >= length:
                break
            # Always advance, even if overlap would reach back past start.
            start = max(end - self._overlap, start + 1)

        chunks = [piece.strip() for piece in pieces]
        chunks = [c for c in chunks if c]
        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            text_length=length,
            max_size=self._max_size,
        )
        return chunks

    def chunk_by_delimiter(self, text: str, delimiter: str) -> list[str]:
        """Split *text* strictly on *delimiter*, one chunk per record.

        Records are trimmed and empty ones dropped.  A record longer than
        ``max_size`` is truncated to ``max_size`` with a warning rather than
        split, so each chunk still describes exactly one record.
        """
        if not delimiter:
            raise ValueError("delimiter must be a non-empty string")

        chunks: list[str] = []
        for index, raw in enumerate(text.split(delimiter)):
            record = raw.strip()
            if not record:
                continue
            if len(record) > self._max_size:
                logger.warning(
                    "chunk_record_truncated",
                    record_index=index,
                    record_length=len(record),
                    max_size=self._max_size,
                )
                record = record[: self._max_size].rstrip()
            chunks.append(record)

        logger.debug("chunking_complete", num_chunks=len(chunks), delimiter=delimiter)
        return chunks

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _last_whitespace(text: str, lo: int, hi: int) -> int:
        """Index of the last whitespace character in ``text[lo:hi]``, or -1."""
        for idx in range(hi - 1, lo - 1, -1):
            if text[idx].isspace():
                return idx
        return -1
