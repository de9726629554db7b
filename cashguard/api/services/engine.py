from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import AsyncGenerator, Callable
from dataclasses import replace
from pathlib import Path

from cashguard.core.analytics.pipeline import DetectionSession
from cashguard.core.capture.adapter import CaptureUploadAdapter
from cashguard.core.capture.recorder import MjpegChunkEncoder
from cashguard.core.capture.upload import ClipUploader
from cashguard.core.config.settings import (
    MonitorSettings,
    classifier_from_settings,
    drawer_from_settings,
    fusion_from_settings,
    incident_from_settings,
    locator_from_settings,
)
from cashguard.core.keypoints.base import CompositeKeypointProvider, KeypointProvider
from cashguard.core.keypoints.yolo_pose import YoloPoseProvider
from cashguard.core.overlay.draw import draw_overlays
from cashguard.core.regions.tracker import RegionTracker
from cashguard.core.types import DEFAULT_CLOCK, Clock, FrameResult, Incident, KeypointFrame
from cashguard.core.video_sources.base import FileSource, RTSPSource, VideoSource, WebcamSource

logger = logging.getLogger(__name__)

# Typical camera rate used to size chunk buffers.
NOMINAL_FPS = 30.0


def build_session(settings: MonitorSettings, uploads: bool | None = None) -> DetectionSession:
    """Wire a `DetectionSession` from settings."""

    enable_uploads = settings.uploads_enabled if uploads is None else uploads
    uploader = (
        ClipUploader(
            settings.upload_url,
            token=settings.upload_token,
            timeout=settings.upload_timeout_s,
        )
        if enable_uploads
        else None
    )
    horizon_s = settings.pre_roll_s + settings.recording_s + 1.0
    adapter = CaptureUploadAdapter(
        encoder_factory=lambda: MjpegChunkEncoder(settings.clip_jpeg_quality, settings.clip_width),
        uploader=uploader,
        pre_roll_s=settings.pre_roll_s,
        max_chunks=max(1, int(horizon_s * NOMINAL_FPS)),
        chunk_interval_s=settings.clip_chunk_interval_s,
    )
    tracker = RegionTracker(
        locator_from_settings(settings),
        drawer_from_settings(settings),
        drawer_height_ratio=settings.drawer_height_ratio,
    )
    return DetectionSession(
        adapter=adapter,
        tracker=tracker,
        classifier_config=classifier_from_settings(settings),
        fusion_config=fusion_from_settings(settings),
        incident_config=incident_from_settings(settings),
    )


class MonitorEngine:
    """Runs the read -> keypoints -> detect -> overlay -> encode frame loop.

    One worker thread processes frames in order; the latest JPEG preview and
    `FrameResult` are exposed to the HTTP layer under a lock.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        session: DetectionSession | None = None,
        source_factory: Callable[[], VideoSource] | None = None,
        provider_factory: Callable[[], KeypointProvider] | None = None,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.settings = settings
        self.session = session or build_session(settings)
        self._source_factory = source_factory or self._make_source
        self._provider_factory = provider_factory or self._make_provider
        self.clock = clock
        if settings.target_fps is not None:
            self._target_fps = float(settings.target_fps)
        else:
            # File sources pace themselves to the container FPS.
            self._target_fps = 0.0 if settings.video_source == "file" else 30.0
        self.preview_encoder = MjpegChunkEncoder(settings.jpeg_quality, settings.output_width)

        self.source: VideoSource | None = None
        self.provider: KeypointProvider | None = None
        self.running = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._latest_frame: bytes | None = None
        self._latest_result: FrameResult | None = None
        self._fps = 0.0
        self._fps_alpha = 0.2
        self._last_processed_at: float | None = None
        self.last_error: str | None = None

    def _make_source(self) -> VideoSource:
        s = self.settings
        if s.video_source == "file":
            if not s.video_path:
                raise RuntimeError("video_path is required for file sources")
            path = Path(s.video_path)
            if not path.exists():
                raise RuntimeError(f"Video path not found: {path}")
            return FileSource(str(path))
        if s.video_source == "rtsp":
            if not s.rtsp_url:
                raise RuntimeError("rtsp_url is required for rtsp sources")
            return RTSPSource(s.rtsp_url)
        return WebcamSource(s.webcam_index)

    def _make_provider(self) -> KeypointProvider:
        s = self.settings
        pose = YoloPoseProvider(s.pose_model, conf=s.pose_confidence, imgsz=s.inference_width)
        hands: KeypointProvider | None = None
        if s.hands_enabled:
            try:
                from cashguard.core.keypoints.mediapipe_hands import MediaPipeHandProvider

                hands = MediaPipeHandProvider(max_hands=s.max_hands)
            except ModuleNotFoundError:
                logger.warning("mediapipe is not installed; fingertip evidence disabled")
        return CompositeKeypointProvider(pose, hands)

    def start(self) -> bool:
        """Open the source and provider and start the frame loop.

        Returns False (and sets `last_error`) when a resource cannot be opened.
        Calling it while running is a no-op.
        """

        if self.running:
            return True
        try:
            self.source = self._source_factory()
        except Exception:
            self.last_error = "Failed to initialize video source"
            logger.exception(self.last_error)
            return False
        try:
            self.provider = self._provider_factory()
        except Exception:
            self.last_error = "Failed to initialize keypoint provider"
            logger.exception(self.last_error)
            self.source.close()
            self.source = None
            return False

        self.last_error = None
        self.session.start(self.clock())
        self._stop_event.clear()
        self.running = True
        self._thread = threading.Thread(target=self._loop, name="frame-loop", daemon=True)
        self._thread.start()
        logger.info("Monitor started (source=%s)", self.settings.video_source)
        return True

    def stop(self) -> None:
        """Stop the loop and release resources in a fixed order.

        Loop, capture source, encoder and buffers (nothing is uploaded),
        keypoint provider, then session state.
        """

        self.running = False
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2)
        self._thread = None
        if self.source is not None:
            self.source.close()
            self.source = None
        with self._lock:
            self.session.adapter.release()
            if self.provider is not None:
                self.provider.close()
                self.provider = None
            self.session.stop()
        logger.info("Monitor stopped")

    def close(self) -> None:
        """Stop and shut down the upload worker."""

        self.stop()
        self.session.adapter.close()
        self.preview_encoder.release()

    def _loop(self) -> None:
        logger.debug("Frame loop started")
        while not self._stop_event.is_set():
            start = time.perf_counter()
            source = self.source
            frame = source.read() if source is not None else None
            if frame is None:
                self._stop_event.wait(0.02)
                continue
            if self._stop_event.is_set():
                break
            now = self.clock()
            try:
                keypoints = self.provider.detect(frame, now) if self.provider else KeypointFrame()
            except Exception:
                self.last_error = "Keypoint provider failed"
                logger.exception(self.last_error)
                keypoints = KeypointFrame()
            t_kp = time.perf_counter()

            try:
                with self._lock:
                    if self._stop_event.is_set():
                        break
                    result = self.session.process(
                        frame, keypoints, now, profile=self.settings.profile_steps
                    )
            except Exception:
                self.last_error = "Frame processing failed"
                logger.exception(self.last_error)
                continue

            annotated = draw_overlays(frame, result) if self.settings.enable_overlays else frame
            jpg = self.preview_encoder.encode(annotated)
            if result.profile is not None:
                profile = dict(result.profile)
                profile["keypoints_ms"] = (t_kp - start) * 1000.0
                profile["total_ms"] = (time.perf_counter() - start) * 1000.0
                result = replace(result, profile=profile)

            processed_at = time.perf_counter()
            with self._lock:
                if self._last_processed_at is not None:
                    dt = processed_at - self._last_processed_at
                    if dt > 0:
                        instant = 1.0 / dt
                        self._fps = (
                            instant
                            if self._fps == 0.0
                            else self._fps * (1.0 - self._fps_alpha) + instant * self._fps_alpha
                        )
                self._last_processed_at = processed_at
                self._latest_result = result
                if jpg is not None:
                    self._latest_frame = jpg

            if self._target_fps > 0:
                delay = (1.0 / self._target_fps) - (time.perf_counter() - start)
                if delay > 0:
                    self._stop_event.wait(delay)

    def latest_frame(self) -> bytes | None:
        with self._lock:
            return self._latest_frame

    def latest_result(self) -> FrameResult | None:
        with self._lock:
            return self._latest_result

    def fps(self) -> float:
        with self._lock:
            return float(self._fps)

    def incidents(self) -> list[Incident]:
        """Retained incidents, with any finished uploads applied first.

        Outcomes are otherwise applied by the frame loop, which does not run
        while the monitor is stopped.
        """

        with self._lock:
            self.session.machine.poll_uploads(self.clock())
            return list(self.session.machine.incidents.values())

    def retry_incident(self, incident_id: str) -> Incident:
        """Re-submit a failed upload (KeyError if unknown, ValueError if not failed)."""

        with self._lock:
            self.session.machine.poll_uploads(self.clock())
            return self.session.machine.retry(incident_id)

    @property
    def auto_record(self) -> bool:
        return self.session.machine.auto_record

    def set_auto_record(self, enabled: bool) -> None:
        with self._lock:
            self.session.machine.set_auto_record(enabled)

    def trigger_incident(self) -> None:
        """Operator test trigger (ValueError unless monitoring and armed)."""

        with self._lock:
            self.session.machine.force_trigger(self.clock())

    def start_manual_recording(self) -> None:
        with self._lock:
            self.session.machine.start_manual(self.clock())

    def stop_manual_recording(self) -> Incident:
        with self._lock:
            return self.session.machine.stop_manual(self.clock())

    def incident_state(self) -> dict[str, object]:
        machine = self.session.machine
        with self._lock:
            return {
                "phase": machine.phase.value,
                "status": machine.status,
                "alert": machine.alert,
                "auto_record": machine.auto_record,
            }

    async def mjpeg_generator(self) -> AsyncGenerator[bytes, None]:
        """Yield MJPEG multipart chunks for HTTP streaming."""

        last_sent = None
        while True:
            frame = self.latest_frame()
            if frame is not None and frame != last_sent:
                yield (b"--frame\r\n" b"Content-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
                last_sent = frame
            await asyncio.sleep(0.02)

    async def metadata_stream(self) -> AsyncGenerator[FrameResult, None]:
        """Yield per-frame results for WebSocket streaming."""

        last_id = -1
        while True:
            result = self.latest_result()
            if result is not None and result.frame_id != last_id:
                last_id = result.frame_id
                yield result
            await asyncio.sleep(0.02)
