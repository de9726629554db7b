"""Frame encoder and recording session handles.

Clips are stored as Motion JPEG: every frame becomes one JPEG chunk, and an
artifact is the concatenation of its chunks. That keeps encoding in OpenCV,
lets a sliding pre-roll window be cut at any chunk boundary, and produces a
stream most players and `ffmpeg -f mjpeg` accept directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import cv2

from cashguard.core.capture.buffer import BufferMode, Chunk, RecordingBuffer
from cashguard.core.types import Frame

logger = logging.getLogger(__name__)

MJPEG_MEDIA_TYPE = "video/x-motion-jpeg"


class ChunkEncoder(Protocol):
    media_type: str

    def encode(self, frame: Frame) -> bytes | None:
        """Return one encoded chunk for the frame (None when encoding failed)."""

    def release(self) -> None:
        """Free encoder resources."""


class MjpegChunkEncoder:
    """JPEG-per-frame encoder with optional output downscale."""

    media_type = MJPEG_MEDIA_TYPE

    def __init__(self, jpeg_quality: int = 80, output_width: int | None = None) -> None:
        if not 10 <= int(jpeg_quality) <= 100:
            raise ValueError("jpeg_quality must be in [10, 100]")
        self.jpeg_quality = int(jpeg_quality)
        self.output_width = output_width
        self._resize_cache: tuple[int, int, int, int] | None = None
        self.released = False

    def _scaled(self, frame: Frame) -> Frame:
        out_w = self.output_width
        if not out_w:
            return frame
        h0, w0 = frame.shape[:2]
        if w0 <= out_w:
            return frame
        cache = self._resize_cache
        if cache is None or cache[:3] != (w0, h0, out_w):
            out_h = max(1, int(h0 * out_w / float(w0)))
            self._resize_cache = (w0, h0, out_w, out_h)
        else:
            out_h = cache[3]
        return cv2.resize(frame, (out_w, out_h), interpolation=cv2.INTER_LINEAR)

    def encode(self, frame: Frame) -> bytes | None:
        if self.released:
            return None
        params = [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality]
        ok, jpg = cv2.imencode(".jpg", self._scaled(frame), params)
        if not ok:
            return None
        return jpg.tobytes()

    def release(self) -> None:
        self.released = True


@dataclass(frozen=True)
class Artifact:
    data: bytes
    chunk_count: int
    started_at: float | None
    ended_at: float | None
    media_type: str = MJPEG_MEDIA_TYPE

    @property
    def empty(self) -> bool:
        return len(self.data) == 0


def assemble(chunks: list[Chunk], media_type: str = MJPEG_MEDIA_TYPE) -> Artifact:
    if not chunks:
        return Artifact(b"", 0, None, None, media_type)
    return Artifact(
        data=b"".join(c.data for c in chunks),
        chunk_count=len(chunks),
        started_at=chunks[0].timestamp,
        ended_at=chunks[-1].timestamp,
        media_type=media_type,
    )


ChunkCallback = Callable[[Chunk], None]


class RecordingSession:
    """Handle for one active capture session.

    Writes frames through the shared encoder into its own buffer. A sliding
    session serves as pre-roll; a linear session records the incident clip.
    """

    def __init__(
        self,
        encoder: ChunkEncoder,
        mode: BufferMode,
        window_s: float = 10.0,
        max_chunks: int = 600,
    ) -> None:
        self.encoder = encoder
        self.buffer = RecordingBuffer(mode=mode, window_s=window_s, max_chunks=max_chunks)
        self.active = True
        self._callbacks: list[ChunkCallback] = []

    @property
    def mode(self) -> BufferMode:
        return self.buffer.mode

    def on_chunk(self, callback: ChunkCallback) -> None:
        self._callbacks.append(callback)

    def write(self, frame: Frame, now: float) -> Chunk | None:
        if not self.active:
            return None
        data = self.encoder.encode(frame)
        if not data:
            return None
        chunk = Chunk(timestamp=now, data=data)
        self.append(chunk)
        return chunk

    def append(self, chunk: Chunk) -> None:
        """Add an already-encoded chunk (shared between sessions)."""

        if not self.active:
            return
        self.buffer.append(chunk)
        for cb in self._callbacks:
            try:
                cb(chunk)
            except Exception:
                logger.exception("Chunk callback failed")

    def recent_window(self, duration_s: float) -> Artifact:
        return assemble(self.buffer.recent(duration_s), self.encoder.media_type)

    def stop(self) -> Artifact:
        """Finish the session and return everything it captured."""

        self.active = False
        artifact = assemble(self.buffer.chunks(), self.encoder.media_type)
        self.buffer.clear()
        return artifact

    def discard(self) -> None:
        self.active = False
        self.buffer.clear()
