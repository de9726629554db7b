"""Region tracker: device ROI + derived drawer zone + drawer state."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import cv2

from cashguard.core.regions.device import (
    DeviceCandidate,
    DeviceLocatorConfig,
    locate_device,
    working_gray,
)
from cashguard.core.regions.drawer import DrawerConfig, DrawerStateEstimator
from cashguard.core.roi import (
    DEFAULT_DRAWER_HEIGHT_RATIO,
    any_point_inside,
    derive_drawer_zone,
    fingertip_points,
)
from cashguard.core.types import DrawerState, Frame, KeypointSet, Roi

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionUpdate:
    device_roi: Roi | None
    drawer_zone: Roi | None
    drawer_state: DrawerState
    relocated: bool
    candidate: DeviceCandidate | None = None


class RegionTracker:
    """Owns the device ROI, the drawer baseline, and their counters.

    Device localization runs on an interval; drawer differencing runs every
    frame after it, so the diff always sees the ROI chosen for that frame.
    """

    def __init__(
        self,
        locator_config: DeviceLocatorConfig | None = None,
        drawer_config: DrawerConfig | None = None,
        drawer_height_ratio: float = DEFAULT_DRAWER_HEIGHT_RATIO,
    ) -> None:
        self.locator_config = locator_config or DeviceLocatorConfig()
        self.drawer = DrawerStateEstimator(drawer_config)
        self.drawer_height_ratio = float(drawer_height_ratio)
        self.device_roi: Roi | None = None
        self.last_locate_at: float | None = None

    @property
    def drawer_zone(self) -> Roi | None:
        return derive_drawer_zone(self.device_roi, self.drawer_height_ratio)

    @property
    def drawer_state(self) -> DrawerState:
        return self.drawer.state

    def _locate_due(self, now: float) -> bool:
        if self.last_locate_at is None:
            return True
        cfg = self.locator_config
        interval = cfg.interval_s if self.device_roi is not None else cfg.retry_interval_s
        return (now - self.last_locate_at) >= interval

    def relocate(self, frame: Frame, now: float) -> DeviceCandidate | None:
        """Run one localization pass; keeps the previous ROI when nothing qualifies."""

        cfg = self.locator_config
        work = working_gray(frame, cfg.work_width, cfg.work_height)
        self.last_locate_at = now
        candidate = locate_device(work, self.device_roi, cfg)
        if candidate is not None:
            if self.device_roi is None:
                logger.info("Cash device located (score=%.1f)", candidate.score)
            self.device_roi = candidate.roi
        return candidate

    def update(self, frame: Frame, now: float) -> RegionUpdate:
        candidate: DeviceCandidate | None = None
        relocated = False
        if self._locate_due(now):
            candidate = self.relocate(frame, now)
            relocated = candidate is not None

        gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        zone = self.drawer_zone
        state = self.drawer.update(gray, self.device_roi, zone, now)
        return RegionUpdate(
            device_roi=self.device_roi,
            drawer_zone=zone,
            drawer_state=state,
            relocated=relocated,
            candidate=candidate,
        )

    def active_region(self) -> Roi | None:
        """Drawer zone while the drawer is open, otherwise the device ROI."""

        if self.drawer.state is DrawerState.OPEN:
            return self.drawer_zone
        return self.device_roi

    def fingertips_in_region(self, hands: Iterable[KeypointSet]) -> bool:
        return any_point_inside(fingertip_points(hands), self.active_region())

    def reset(self) -> None:
        self.device_roi = None
        self.last_locate_at = None
        self.drawer.reset()
