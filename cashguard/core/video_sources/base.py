"""Video source abstractions.

The monitor reads frames through `VideoSource`, so a webcam, a recorded file,
or an RTSP camera can back the same detection session.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod

import cv2

from cashguard.core.types import Frame

logger = logging.getLogger(__name__)


class VideoSource(ABC):
    """Anything that can produce BGR frames."""

    @abstractmethod
    def read(self) -> Frame | None:
        """Return the next frame, or `None` when none is available yet."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def fps(self) -> float | None:
        return None


class OpenCVSource(VideoSource):
    """A `VideoSource` backed by `cv2.VideoCapture`."""

    def __init__(self, source: str | int) -> None:
        self.cap = cv2.VideoCapture(source)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {source}")

    def read(self) -> Frame | None:
        ok, frame = self.cap.read()
        if not ok:
            return None
        return frame

    def close(self) -> None:
        self.cap.release()

    def fps(self) -> float | None:
        try:
            value = float(self.cap.get(cv2.CAP_PROP_FPS))
        except Exception:
            return None
        return value if value > 0.0 else None


class WebcamSource(OpenCVSource):
    """Webcam capture that always hands out the newest frame.

    A reader thread drains the driver buffer so a slow frame loop never works
    on stale frames.
    """

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        self.cap = None
        for backend in (getattr(cv2, "CAP_V4L2", None), getattr(cv2, "CAP_DSHOW", None), cv2.CAP_ANY):
            if backend is None:
                continue
            try:
                cap = cv2.VideoCapture(index, backend)
            except Exception:
                continue
            if cap.isOpened() and cap.read()[0]:
                self.cap = cap
                logger.info("Opened camera index=%s backend=%s", index, backend)
                break
            cap.release()
        if self.cap is None:
            raise RuntimeError(f"Failed to open webcam {index}")

        try:
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        except Exception:
            pass
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        self._lock = threading.Lock()
        self._running = True
        self._latest: Frame | None = None
        self._seq = 0
        self._delivered = 0
        self._thread = threading.Thread(target=self._reader_loop, daemon=True)
        self._thread.start()

    def _reader_loop(self) -> None:
        while self._running and self.cap is not None:
            try:
                ok, frame = self.cap.read()
            except Exception:
                logger.exception("Webcam read failed")
                time.sleep(0.05)
                continue
            if not ok:
                time.sleep(0.01)
                continue
            with self._lock:
                self._latest = frame
                self._seq += 1

    def read(self) -> Frame | None:
        with self._lock:
            frame = self._latest
            seq = self._seq
        if frame is None or seq == self._delivered:
            return None
        self._delivered = seq
        return frame

    def close(self) -> None:
        self._running = False
        try:
            if self._thread.is_alive():
                self._thread.join(timeout=1)
        finally:
            if self.cap is not None:
                self.cap.release()


class FileSource(OpenCVSource):
    """Video file, optionally paced to its native FPS and looped at EOF."""

    def __init__(self, path: str, realtime: bool = True, loop: bool = True) -> None:
        self.path = path
        self.realtime = realtime
        self.loop = loop
        self._start: float | None = None
        self._index = 0
        super().__init__(path)
        self._fps = super().fps()

    def fps(self) -> float | None:
        return self._fps

    def _pace(self) -> None:
        if not self.realtime or not self._fps or self._start is None:
            return
        delay = self._index / self._fps - (time.perf_counter() - self._start)
        if delay > 0:
            time.sleep(delay)

    def _rewind(self) -> bool:
        try:
            if self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0):
                return True
        except Exception:
            pass
        # Some backends ignore seeking; reopen instead.
        self.cap.release()
        self.cap = cv2.VideoCapture(self.path)
        return bool(self.cap.isOpened())

    def read(self) -> Frame | None:
        if self._start is None:
            self._start = time.perf_counter()
            self._index = 0
        ok, frame = self.cap.read()
        if not ok:
            if not self.loop or not self._rewind():
                return None
            self._start = time.perf_counter()
            self._index = 0
            ok, frame = self.cap.read()
            if not ok:
                return None
        self._index += 1
        self._pace()
        return frame


class RTSPSource(OpenCVSource):
    """RTSP camera stream (FFmpeg backend preferred)."""

    def __init__(self, url: str, timeout_ms: int = 5000) -> None:
        self.cap = None
        last_exc: Exception | None = None
        for backend in (getattr(cv2, "CAP_FFMPEG", None), None):
            try:
                cap = cv2.VideoCapture(url) if backend is None else cv2.VideoCapture(url, backend)
            except Exception as exc:
                last_exc = exc
                continue
            if cap.isOpened():
                self.cap = cap
                break
            cap.release()
        if self.cap is None:
            if last_exc is not None:
                raise RuntimeError(f"Failed to open RTSP source: {url} ({last_exc})") from last_exc
            raise RuntimeError(f"Failed to open RTSP source: {url}")

        for prop in ("CAP_PROP_OPEN_TIMEOUT_MSEC", "CAP_PROP_READ_TIMEOUT_MSEC"):
            value = getattr(cv2, prop, None)
            if value is None:
                continue
            try:
                self.cap.set(int(value), float(timeout_ms))
            except Exception:
                pass
