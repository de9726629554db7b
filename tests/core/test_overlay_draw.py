from __future__ import annotations

import numpy as np

from cashguard.core.overlay.draw import ALERT_COLOR, draw_overlays
from cashguard.core.types import DrawerState, FrameResult, IncidentPhase, Roi


def make_result(**overrides) -> FrameResult:
    fields = dict(
        frame_id=1,
        timestamp=0.0,
        frame_size=(80, 60),
        device_roi=None,
        drawer_zone=None,
        drawer_state=DrawerState.UNKNOWN,
        near_hip=False,
        fingertip_in_region=False,
        suspicion=0,
        alert=False,
        phase=IncidentPhase.ARMED,
        status="Monitoring",
    )
    fields.update(overrides)
    return FrameResult(**fields)


def test_draw_returns_copy_and_keeps_input():
    frame = np.zeros((60, 80, 3), dtype=np.uint8)
    out = draw_overlays(frame, make_result())
    assert out is not frame
    assert out.shape == frame.shape
    assert not frame.any()


def test_draw_regions():
    frame = np.zeros((60, 80, 3), dtype=np.uint8)
    result = make_result(
        device_roi=Roi(0.25, 0.3, 0.5, 0.3, name="device"),
        drawer_zone=Roi(0.25, 0.6, 0.5, 0.15, name="drawer"),
        drawer_state=DrawerState.OPEN,
    )
    out = draw_overlays(frame, result)
    # Left edge of the device rectangle.
    assert out[30, 20].any()


def test_alert_draws_red_border():
    frame = np.zeros((60, 80, 3), dtype=np.uint8)
    out = draw_overlays(frame, make_result(alert=True, phase=IncidentPhase.RECORDING))
    assert tuple(int(c) for c in out[30, 0]) == ALERT_COLOR
    quiet = draw_overlays(frame, make_result())
    assert not quiet[30, 0].any()
