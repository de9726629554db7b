"""Overlay drawing helpers (OpenCV) for the preview stream."""

from __future__ import annotations

import cv2
import numpy as np

from cashguard.core.types import DrawerState, FrameResult, IncidentPhase, Roi

DEVICE_COLOR = (255, 170, 0)
DRAWER_COLORS = {
    DrawerState.OPEN: (0, 165, 255),  # orange
    DrawerState.CLOSED: (57, 255, 20),  # green
    DrawerState.UNKNOWN: (160, 160, 160),
}
ALERT_COLOR = (0, 0, 255)
TEXT_COLOR = (255, 255, 255)


def _rect(img: np.ndarray, roi: Roi, color: tuple[int, int, int], label: str) -> None:
    h, w = img.shape[:2]
    x1, y1, x2, y2 = roi.to_pixels(w, h)
    cv2.rectangle(img, (x1, y1), (x2 - 1, y2 - 1), color, 2)
    cv2.putText(
        img,
        label,
        (x1, max(y1 - 6, 10)),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.45,
        color,
        1,
        cv2.LINE_AA,
    )


def draw_overlays(frame: np.ndarray, result: FrameResult) -> np.ndarray:
    """Return a copy of `frame` with regions, alert border and status drawn."""

    img = frame.copy()
    if result.device_roi is not None:
        _rect(img, result.device_roi, DEVICE_COLOR, "device")
    if result.drawer_zone is not None:
        color = DRAWER_COLORS.get(result.drawer_state, DRAWER_COLORS[DrawerState.UNKNOWN])
        _rect(img, result.drawer_zone, color, f"drawer: {result.drawer_state.value}")

    h, w = img.shape[:2]
    if result.alert:
        cv2.rectangle(img, (0, 0), (w - 1, h - 1), ALERT_COLOR, 6)

    rec = " REC" if result.phase is IncidentPhase.RECORDING else ""
    line = f"{result.phase.value}{rec} | suspicion {result.suspicion}"
    cv2.putText(img, line, (8, 20), cv2.FONT_HERSHEY_SIMPLEX, 0.55, TEXT_COLOR, 1, cv2.LINE_AA)
    cv2.putText(
        img,
        result.status[:80],
        (8, h - 10),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.5,
        ALERT_COLOR if result.alert else TEXT_COLOR,
        1,
        cv2.LINE_AA,
    )
    return img
