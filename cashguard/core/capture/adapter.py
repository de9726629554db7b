"""Capture/upload adapter used by the incident state machine.

The adapter owns the encoder, the pre-roll (sliding) session, the incident
(linear) session, and a background upload worker. Everything except the
upload itself runs on the frame-loop thread.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from queue import Empty, Queue

from cashguard.core.capture.buffer import BufferMode, Chunk
from cashguard.core.capture.recorder import (
    Artifact,
    ChunkEncoder,
    MjpegChunkEncoder,
    RecordingSession,
    assemble,
)
from cashguard.core.capture.upload import ClipUploader, UploadReceipt
from cashguard.core.errors import ResourceNotReadyError, UploadError
from cashguard.core.types import Frame, Incident

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    incident_id: str
    receipt: UploadReceipt | None = None
    error: UploadError | None = None

    @property
    def ok(self) -> bool:
        return self.receipt is not None and self.error is None


class UploadWorker:
    """Single background thread draining an upload queue.

    Results are queued back instead of applied in place, so only the frame
    loop mutates incidents.
    """

    def __init__(self, uploader: ClipUploader | None) -> None:
        self.uploader = uploader
        self._jobs: Queue[Incident | None] = Queue()
        self._results: Queue[UploadOutcome] = Queue()
        self._lock = threading.Lock()
        self._pending = 0
        self._idle = threading.Event()
        self._idle.set()
        self._thread: threading.Thread | None = None
        self.closed = False

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def _ensure_thread(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name="clip-upload", daemon=True)
            self._thread.start()

    def submit(self, incident: Incident) -> None:
        if self.closed:
            raise ResourceNotReadyError("upload worker is closed")
        with self._lock:
            self._pending += 1
            self._idle.clear()
        self._ensure_thread()
        self._jobs.put(incident)

    def _upload_one(self, incident: Incident) -> UploadOutcome:
        if self.uploader is None:
            return UploadOutcome(incident.id, error=UploadError("uploads are disabled"))
        try:
            receipt = self.uploader.upload(incident)
        except UploadError as exc:
            logger.warning("Upload of %s failed: %s", incident.id, exc)
            return UploadOutcome(incident.id, error=exc)
        except Exception as exc:
            logger.exception("Unexpected upload failure for %s", incident.id)
            return UploadOutcome(incident.id, error=UploadError(str(exc)))
        logger.info("Uploaded %s as clip %s", incident.id, receipt.clip_id)
        return UploadOutcome(incident.id, receipt=receipt)

    def _run(self) -> None:
        logger.debug("Upload worker started")
        while True:
            incident = self._jobs.get()
            if incident is None:
                break
            self._results.put(self._upload_one(incident))
            with self._lock:
                self._pending -= 1
                if self._pending <= 0:
                    self._pending = 0
                    self._idle.set()

    def drain(self) -> list[UploadOutcome]:
        out: list[UploadOutcome] = []
        while True:
            try:
                out.append(self._results.get_nowait())
            except Empty:
                return out

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self._idle.wait(timeout=timeout)

    def close(self, timeout: float = 2.0) -> None:
        self.closed = True
        if self._thread is not None and self._thread.is_alive():
            self._jobs.put(None)
            self._thread.join(timeout=timeout)
        if self.uploader is not None:
            self.uploader.close()


EncoderFactory = Callable[[], ChunkEncoder]


class CaptureUploadAdapter:
    """Recording and upload services for the incident state machine."""

    def __init__(
        self,
        encoder_factory: EncoderFactory | None = None,
        uploader: ClipUploader | None = None,
        pre_roll_s: float = 10.0,
        max_chunks: int = 600,
        chunk_interval_s: float = 0.1,
        worker: UploadWorker | None = None,
    ) -> None:
        self.encoder_factory: EncoderFactory = encoder_factory or MjpegChunkEncoder
        self.pre_roll_s = float(pre_roll_s)
        self.max_chunks = int(max_chunks)
        # Minimum spacing between encoded chunks; 0 encodes every fed frame.
        self.chunk_interval_s = float(chunk_interval_s)
        self._last_chunk_at: float | None = None
        self.worker = worker or UploadWorker(uploader)
        self.encoder: ChunkEncoder | None = None
        self.passive: RecordingSession | None = None
        self.recording: RecordingSession | None = None
        self._pre_roll: list[Chunk] = []

    @property
    def ready(self) -> bool:
        return self.encoder is not None

    @property
    def passive_active(self) -> bool:
        return self.passive is not None and self.passive.active

    @property
    def recording_active(self) -> bool:
        return self.recording is not None and self.recording.active

    def acquire(self) -> None:
        if self.encoder is None:
            self.encoder = self.encoder_factory()
            logger.debug("Encoder acquired")

    def release(self) -> None:
        self.discard()
        if self.encoder is not None:
            self.encoder.release()
            self.encoder = None
            logger.debug("Encoder released")

    def start_passive(self) -> None:
        """Start the sliding pre-roll session (no-op when already running)."""

        if self.encoder is None:
            raise ResourceNotReadyError("encoder not acquired")
        if self.passive_active:
            return
        self.passive = RecordingSession(
            self.encoder,
            BufferMode.SLIDING,
            window_s=self.pre_roll_s,
            max_chunks=self.max_chunks,
        )
        logger.debug("Passive buffering started")

    def start_recording(self, now: float) -> RecordingSession:
        if self.encoder is None:
            raise ResourceNotReadyError("encoder not acquired")
        if self.recording_active:
            raise ResourceNotReadyError("a recording session is already active")
        # Freeze the pre-roll; passive buffering pauses until the incident is handled.
        if self.passive is not None:
            self._pre_roll = self.passive.buffer.recent(self.pre_roll_s)
            self.passive.discard()
            self.passive = None
        else:
            self._pre_roll = []
        self.recording = RecordingSession(
            self.encoder,
            BufferMode.LINEAR,
            window_s=max(self.pre_roll_s, 1.0),
            max_chunks=self.max_chunks,
        )
        logger.info("Recording started at %.3f (%d pre-roll chunks)", now, len(self._pre_roll))
        return self.recording

    def feed(self, frame: Frame, now: float) -> Chunk | None:
        """Encode the frame once and hand the chunk to every active session."""

        if self.encoder is None:
            return None
        targets = [s for s in (self.passive, self.recording) if s is not None and s.active]
        if not targets:
            return None
        last = self._last_chunk_at
        if last is not None and 0.0 <= now - last < self.chunk_interval_s:
            return None
        data = self.encoder.encode(frame)
        if not data:
            return None
        self._last_chunk_at = now
        chunk = Chunk(timestamp=now, data=data)
        for session in targets:
            session.append(chunk)
        return chunk

    def stop_recording(self, now: float) -> Artifact:
        """Close the linear session; the artifact is pre-roll followed by the clip."""

        media_type = self.encoder.media_type if self.encoder is not None else MjpegChunkEncoder.media_type
        if self.recording is None:
            self._pre_roll = []
            return assemble([], media_type)
        clip = self.recording.buffer.chunks()
        self.recording.discard()
        self.recording = None
        artifact = assemble(self._pre_roll + clip, media_type)
        self._pre_roll = []
        logger.info(
            "Recording stopped at %.3f (%d chunks, %d bytes)",
            now,
            artifact.chunk_count,
            len(artifact.data),
        )
        return artifact

    def discard(self) -> None:
        for session in (self.passive, self.recording):
            if session is not None:
                session.discard()
        self.passive = None
        self.recording = None
        self._pre_roll = []
        self._last_chunk_at = None

    def submit(self, incident: Incident) -> None:
        self.worker.submit(incident)

    def poll_uploads(self) -> list[UploadOutcome]:
        return self.worker.drain()

    def close(self) -> None:
        self.release()
        self.worker.close()
