"""Cash-drawer open/closed estimation by patch differencing.

The drawer zone is compared against a baseline patch captured while the drawer
is presumed closed. Two bounded counters debounce the decision, and the
baseline is refreshed only during long confirmed-closed stretches so slow
lighting drift is absorbed without ever learning an open drawer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from cashguard.core.types import DrawerState, Roi

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawerConfig:
    patch_width: int = 64
    patch_height: int = 32
    # Mean absolute luma difference (0-255) that counts as "open" evidence.
    diff_threshold: float = 18.0
    open_floor: int = 3
    open_max: int = 10
    stable_closed_frames: int = 25
    closed_max: int = 10_000
    refresh_interval_s: float = 20.0
    # 1 compares every pixel; larger values subsample uniformly.
    sample_step: int = 1


def extract_patch(gray: np.ndarray, zone: Roi, config: DrawerConfig) -> np.ndarray:
    """Crop the zone from a grayscale frame and resample it to the fixed raster."""

    h, w = gray.shape[:2]
    x1, y1, x2, y2 = zone.to_pixels(w, h)
    crop = gray[y1:y2, x1:x2]
    patch = cv2.resize(
        crop,
        (config.patch_width, config.patch_height),
        interpolation=cv2.INTER_AREA,
    )
    return patch.astype(np.float32)


def mean_abs_diff(a: np.ndarray, b: np.ndarray, step: int = 1) -> float:
    s = max(1, int(step))
    return float(np.abs(a[::s, ::s] - b[::s, ::s]).mean())


class DrawerStateEstimator:
    """Tri-state drawer classifier driven once per frame."""

    def __init__(self, config: DrawerConfig | None = None) -> None:
        self.config = config or DrawerConfig()
        self.state = DrawerState.UNKNOWN
        self.baseline: np.ndarray | None = None
        self.baseline_device: Roi | None = None
        self.baseline_at: float | None = None
        self.open_evidence = 0
        self.closed_streak = 0
        self.last_diff: float | None = None

    def reset(self) -> None:
        self.state = DrawerState.UNKNOWN
        self.baseline = None
        self.baseline_device = None
        self.baseline_at = None
        self.open_evidence = 0
        self.closed_streak = 0
        self.last_diff = None

    def _capture(self, patch: np.ndarray, device: Roi, now: float) -> None:
        self.baseline = patch
        self.baseline_device = device
        self.baseline_at = now
        self.closed_streak = 0

    def update(
        self,
        gray: np.ndarray,
        device: Roi | None,
        zone: Roi | None,
        now: float,
    ) -> DrawerState:
        cfg = self.config
        if device is None or zone is None:
            self.state = DrawerState.UNKNOWN
            return self.state

        if (
            self.baseline is not None
            and self.baseline_device is not None
            and not self.baseline_device.same_size(device)
        ):
            logger.info("Device ROI size changed; discarding drawer baseline")
            self.baseline = None

        patch = extract_patch(gray, zone, cfg)
        if self.baseline is None:
            # Cold start: assume the drawer is closed when first seen.
            self._capture(patch, device, now)
            self.open_evidence = 0
            self.last_diff = 0.0
            self.state = DrawerState.CLOSED
            return self.state

        diff = mean_abs_diff(patch, self.baseline, cfg.sample_step)
        self.last_diff = diff
        if diff > cfg.diff_threshold:
            self.open_evidence = min(cfg.open_max, self.open_evidence + 1)
            self.closed_streak = 0
        else:
            self.open_evidence = max(0, self.open_evidence - 1)

        if self.open_evidence >= cfg.open_floor:
            if self.state is not DrawerState.OPEN:
                logger.info("Drawer open (diff=%.1f)", diff)
            self.state = DrawerState.OPEN
        elif self.open_evidence == 0:
            if self.state is DrawerState.OPEN:
                logger.info("Drawer closed")
            self.state = DrawerState.CLOSED

        if self.state is DrawerState.CLOSED and diff <= cfg.diff_threshold:
            self.closed_streak = min(cfg.closed_max, self.closed_streak + 1)
            age = now - (self.baseline_at if self.baseline_at is not None else now)
            if self.closed_streak >= cfg.stable_closed_frames and age >= cfg.refresh_interval_s:
                logger.debug("Refreshing drawer baseline after %.1fs closed", age)
                self._capture(patch, device, now)

        return self.state
