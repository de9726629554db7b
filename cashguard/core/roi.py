from __future__ import annotations

from collections.abc import Iterable

from cashguard.core.types import FINGERTIPS, KeypointSet, Point, Roi

DEVICE_ROI_NAME = "device"
DRAWER_ZONE_NAME = "drawer"
DEFAULT_DRAWER_HEIGHT_RATIO = 0.5


def _clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v


def clamp_roi(roi: Roi) -> Roi:
    """Clip a rectangle to the unit square, keeping its name."""

    x1 = _clamp(roi.x, 0.0, 1.0)
    y1 = _clamp(roi.y, 0.0, 1.0)
    x2 = _clamp(roi.x2, 0.0, 1.0)
    y2 = _clamp(roi.y2, 0.0, 1.0)
    if x2 < x1:
        x1, x2 = x2, x1
    if y2 < y1:
        y1, y2 = y2, y1
    return Roi(x=x1, y=y1, w=x2 - x1, h=y2 - y1, name=roi.name)


def roi_from_pixels(
    x: float,
    y: float,
    w: float,
    h: float,
    frame_w: int,
    frame_h: int,
    name: str = DEVICE_ROI_NAME,
) -> Roi:
    """Normalize a pixel rectangle (top-left + size) against a frame size."""

    fw = float(frame_w) if frame_w > 0 else 1.0
    fh = float(frame_h) if frame_h > 0 else 1.0
    return clamp_roi(Roi(x=x / fw, y=y / fh, w=w / fw, h=h / fh, name=name))


def derive_drawer_zone(
    device: Roi | None,
    height_ratio: float = DEFAULT_DRAWER_HEIGHT_RATIO,
) -> Roi | None:
    """Return the drawer zone that sits directly below a device ROI.

    The zone is never located on its own: it always follows the device, which
    keeps it pixel-aligned with the baseline as long as the device size holds.
    """

    if device is None:
        return None
    zone = Roi(
        x=device.x,
        y=device.y2,
        w=device.w,
        h=device.h * float(height_ratio),
        name=DRAWER_ZONE_NAME,
    )
    return clamp_roi(zone)


def squared_distance(a: Point, b: Point) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    return dx * dx + dy * dy


def fingertip_points(hands: Iterable[KeypointSet]) -> list[Point]:
    """Collect the tracked fingertip coordinates from every hand set."""

    points: list[Point] = []
    for hand in hands:
        for idx in FINGERTIPS:
            kp = hand.get(int(idx))
            if kp is None:
                continue
            points.append((float(kp.x), float(kp.y)))
    return points


def any_point_inside(points: Iterable[Point], region: Roi | None) -> bool:
    if region is None:
        return False
    return any(region.contains(x, y) for x, y in points)
