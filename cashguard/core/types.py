"""Shared type definitions used across the monitor.

Small, stable value types (keypoints, regions, incidents, per-frame results)
live here so the classifier, region tracker, fusion, and incident code can stay
strongly typed without importing each other.
"""

from __future__ import annotations

import math
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum

import numpy as np

Frame = np.ndarray
Point = tuple[float, float]

# Wall-clock seconds. Injected everywhere timing matters so tests can drive it.
Clock = Callable[[], float]
DEFAULT_CLOCK: Clock = time.time


class PoseLandmark(IntEnum):
    """Canonical body landmark indices (MediaPipe pose topology)."""

    NOSE = 0
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24


class HandLandmark(IntEnum):
    """Canonical hand landmark indices for the fingertips we track."""

    INDEX_TIP = 8
    MIDDLE_TIP = 12
    RING_TIP = 16
    PINKY_TIP = 20


FINGERTIPS: tuple[HandLandmark, ...] = (
    HandLandmark.INDEX_TIP,
    HandLandmark.MIDDLE_TIP,
    HandLandmark.RING_TIP,
    HandLandmark.PINKY_TIP,
)


@dataclass(frozen=True)
class Keypoint:
    """One landmark in normalized image coordinates."""

    x: float
    y: float
    z: float = 0.0  # depth, unused by the core
    visibility: float = 1.0


# One pose or one hand, addressed by canonical landmark index.
KeypointSet = Mapping[int, Keypoint]


@dataclass(frozen=True)
class KeypointFrame:
    """Everything the keypoint provider produced for a single frame."""

    poses: list[KeypointSet] = field(default_factory=list)
    hands: list[KeypointSet] = field(default_factory=list)


@dataclass(frozen=True)
class Roi:
    """Axis-aligned rectangle in normalized image coordinates."""

    x: float
    y: float
    w: float
    h: float
    name: str = "roi"

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> Point:
        return (self.x + self.w * 0.5, self.y + self.h * 0.5)

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x2 and self.y <= y <= self.y2

    def same_size(self, other: Roi, tol: float = 1e-6) -> bool:
        return math.isclose(self.w, other.w, abs_tol=tol) and math.isclose(
            self.h, other.h, abs_tol=tol
        )

    def to_pixels(self, frame_w: int, frame_h: int) -> tuple[int, int, int, int]:
        """Return (x1, y1, x2, y2) integer pixel bounds, at least 1px wide/high."""

        x1 = int(max(0, min(frame_w - 1, math.floor(self.x * frame_w))))
        y1 = int(max(0, min(frame_h - 1, math.floor(self.y * frame_h))))
        x2 = int(max(x1 + 1, min(frame_w, math.ceil(self.x2 * frame_w))))
        y2 = int(max(y1 + 1, min(frame_h, math.ceil(self.y2 * frame_h))))
        return x1, y1, x2, y2


class DrawerState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    UNKNOWN = "unknown"


class IncidentPhase(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    RECORDING = "recording"
    COOLDOWN = "cooldown"


class UploadState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"


@dataclass
class Incident:
    """One detected-and-captured suspicious event."""

    cashier_label: str
    detected_at: float
    clip_start_time: float
    clip_end_time: float | None = None
    data: bytes = b""
    media_type: str = "video/x-motion-jpeg"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    attempts: int = 0
    upload_state: UploadState = UploadState.NONE
    upload_id: str | None = None
    error: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FrameResult:
    """Per-frame payload handed to the presentation layer."""

    frame_id: int
    timestamp: float
    frame_size: tuple[int, int]
    device_roi: Roi | None
    drawer_zone: Roi | None
    drawer_state: DrawerState
    near_hip: bool
    fingertip_in_region: bool
    suspicion: int
    alert: bool
    phase: IncidentPhase
    status: str
    profile: dict[str, float] | None = None
