"""Cash-device localization from edge statistics.

No trained detector is involved: a register or card terminal shows up as a
rectangle with strong, rigid edges around a comparatively flat face (screen,
keypad). Candidates are scored by border gradient minus interior gradient on a
small grayscale working copy, which keeps the cost bounded regardless of the
camera resolution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from cashguard.core.roi import DEVICE_ROI_NAME, roi_from_pixels, squared_distance
from cashguard.core.types import Frame, Roi

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceLocatorConfig:
    work_width: int = 160
    work_height: int = 120
    width_fractions: tuple[float, ...] = (0.20, 0.28, 0.36, 0.45)
    aspect_ratio: float = 1.6
    # Devices sit at counter level: only the lower part of the frame is searched.
    search_top_fraction: float = 0.4
    stride: int = 4
    border_step: int = 2
    interior_step: int = 4
    # Minimum (border - interior - penalty) score; below it the pass is discarded.
    min_score: float = 20.0
    # Quadratic penalty per squared normalized distance from the previous center.
    stability_weight: float = 200.0
    interval_s: float = 30.0
    # Faster retry cadence while no device has been found yet.
    retry_interval_s: float = 2.0


@dataclass(frozen=True)
class DeviceCandidate:
    roi: Roi
    score: float
    border: float
    interior: float


def working_gray(frame: Frame, width: int, height: int) -> np.ndarray:
    """Return the fixed-size grayscale working copy of a frame."""

    gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    h, w = gray.shape[:2]
    if (w, h) != (width, height):
        gray = cv2.resize(gray, (width, height), interpolation=cv2.INTER_AREA)
    return gray


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """Gradient magnitude from a 3x3 Sobel pair; border pixels are left at zero."""

    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    mag = cv2.magnitude(gx, gy)
    mag[0, :] = 0.0
    mag[-1, :] = 0.0
    mag[:, 0] = 0.0
    mag[:, -1] = 0.0
    return mag


def _border_offsets(w: int, h: int, step: int) -> tuple[np.ndarray, np.ndarray]:
    xs = np.arange(0, w, step)
    ys = np.arange(0, h, step)
    dy = np.concatenate([np.zeros_like(xs), np.full_like(xs, h - 1), ys, ys])
    dx = np.concatenate([xs, xs, np.zeros_like(ys), np.full_like(ys, w - 1)])
    return dy, dx


def _interior_offsets(w: int, h: int, step: int) -> tuple[np.ndarray, np.ndarray]:
    xs = np.arange(step, w - step, step)
    ys = np.arange(step, h - step, step)
    if xs.size == 0 or ys.size == 0:
        return np.zeros(0, dtype=int), np.zeros(0, dtype=int)
    gy, gx = np.meshgrid(ys, xs, indexing="ij")
    return gy.ravel(), gx.ravel()


def candidate_sizes(config: DeviceLocatorConfig) -> list[tuple[int, int]]:
    sizes: list[tuple[int, int]] = []
    for frac in config.width_fractions:
        w = int(round(frac * config.work_width))
        h = int(round(w / config.aspect_ratio))
        if w >= 3 and h >= 3:
            sizes.append((w, h))
    return sizes


def locate_device(
    work_gray: np.ndarray,
    previous: Roi | None,
    config: DeviceLocatorConfig,
) -> DeviceCandidate | None:
    """Find the best device rectangle in a working-resolution grayscale image.

    Returns None when nothing beats the quality floor; callers keep their last
    known ROI in that case.
    """

    mag = sobel_magnitude(work_gray)
    img_h, img_w = mag.shape[:2]
    y_min = int(img_h * config.search_top_fraction)
    stride = max(1, int(config.stride))
    prev_center = previous.center if previous is not None else None

    best: DeviceCandidate | None = None
    for w, h in candidate_sizes(config):
        if w > img_w or y_min + h > img_h:
            continue
        b_dy, b_dx = _border_offsets(w, h, max(1, config.border_step))
        i_dy, i_dx = _interior_offsets(w, h, max(1, config.interior_step))
        for y in range(y_min, img_h - h + 1, stride):
            for x in range(0, img_w - w + 1, stride):
                border = float(mag[y + b_dy, x + b_dx].mean())
                interior = float(mag[y + i_dy, x + i_dx].mean()) if i_dy.size else 0.0
                score = border - interior
                if prev_center is not None:
                    center = ((x + w * 0.5) / img_w, (y + h * 0.5) / img_h)
                    score -= config.stability_weight * squared_distance(center, prev_center)
                if best is None or score > best.score:
                    best = DeviceCandidate(
                        roi=roi_from_pixels(x, y, w, h, img_w, img_h, name=DEVICE_ROI_NAME),
                        score=score,
                        border=border,
                        interior=interior,
                    )

    if best is None or best.score < config.min_score:
        logger.debug(
            "Device pass rejected (best score=%s, floor=%.1f)",
            None if best is None else round(best.score, 2),
            config.min_score,
        )
        return None
    return best
