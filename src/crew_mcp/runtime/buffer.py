"""Bounded output accumulator for subprocess streams.

A verbose or misbehaving agent must not be able to exhaust memory, so every
stream we read goes through an OutputBuffer with a byte cap. Once the cap is
reached the buffer keeps the prefix that fits, appends a fixed marker once,
and ignores everything after that.
"""

from __future__ import annotations

__all__ = [
    "OutputBuffer",
    "STDOUT_TRUNCATED_MARKER",
    "STDERR_TRUNCATED_MARKER",
]

STDOUT_TRUNCATED_MARKER = b"\n...truncated..."
STDERR_TRUNCATED_MARKER = b"\n...stderr truncated..."


class OutputBuffer:
    """Append-only byte buffer with a hard length cap.

    Attributes:
        max_bytes: Cap on stored content, not counting the marker
        marker: Trailer appended exactly once when the cap is hit
    """

    def __init__(
        self,
        max_bytes: int,
        marker: bytes = STDOUT_TRUNCATED_MARKER,
    ) -> None:
        if max_bytes < 0:
            raise ValueError(f"max_bytes must be >= 0, got {max_bytes}")
        self.max_bytes = max_bytes
        self.marker = marker
        self._chunks: list[bytes] = []
        self._length = 0
        self._truncated = False

    @property
    def truncated(self) -> bool:
        return self._truncated

    def append(self, chunk: bytes) -> None:
        """Append a chunk, truncating and sealing the buffer on overflow."""
        if self._truncated or not chunk:
            return

        room = self.max_bytes - self._length
        if len(chunk) <= room:
            self._chunks.append(chunk)
            self._length += len(chunk)
            return

        if room > 0:
            self._chunks.append(chunk[:room])
            self._length += room
        self._chunks.append(self.marker)
        self._truncated = True

    @property
    def data(self) -> bytes:
        """All stored bytes, marker included."""
        if len(self._chunks) > 1:
            # collapse so repeated reads stay cheap
            self._chunks = [b"".join(self._chunks)]
        return self._chunks[0] if self._chunks else b""

    @property
    def text(self) -> str:
        # chunks may split multi-byte sequences, decode the whole thing
        return self.data.decode("utf-8", errors="replace")

    def __len__(self) -> int:
        if self._truncated:
            return self._length + len(self.marker)
        return self._length

    def __repr__(self) -> str:
        return (
            f"OutputBuffer(length={len(self)}, max_bytes={self.max_bytes}, "
            f"truncated={self._truncated})"
        )
