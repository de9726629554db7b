"""Timestamped chunk buffers for pre-roll and clip recording."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum


class BufferMode(str, Enum):
    # Bounded pre-roll window: old chunks fall off the front.
    SLIDING = "sliding"
    # Fixed-duration clip: keeps everything until cleared.
    LINEAR = "linear"


@dataclass(frozen=True)
class Chunk:
    timestamp: float
    data: bytes


class RecordingBuffer:
    """Ordered sequence of encoded chunks."""

    def __init__(
        self,
        mode: BufferMode = BufferMode.LINEAR,
        window_s: float = 10.0,
        max_chunks: int = 600,
    ) -> None:
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        if max_chunks <= 0:
            raise ValueError("max_chunks must be > 0")
        self.mode = mode
        self.window_s = float(window_s)
        self.max_chunks = int(max_chunks)
        self._chunks: deque[Chunk] = (
            deque(maxlen=self.max_chunks) if mode is BufferMode.SLIDING else deque()
        )

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def total_bytes(self) -> int:
        return sum(len(c.data) for c in self._chunks)

    def append(self, chunk: Chunk) -> None:
        if not chunk.data:
            return
        self._chunks.append(chunk)
        if self.mode is BufferMode.SLIDING:
            self._trim(chunk.timestamp)

    def _trim(self, newest: float) -> None:
        cutoff = newest - self.window_s
        while self._chunks and self._chunks[0].timestamp < cutoff:
            self._chunks.popleft()

    def chunks(self) -> list[Chunk]:
        return list(self._chunks)

    def recent(self, duration_s: float) -> list[Chunk]:
        """Chunks no older than `duration_s` relative to the newest chunk."""

        if not self._chunks:
            return []
        cutoff = self._chunks[-1].timestamp - float(duration_s)
        return [c for c in self._chunks if c.timestamp >= cutoff]

    def clear(self) -> None:
        self._chunks.clear()
