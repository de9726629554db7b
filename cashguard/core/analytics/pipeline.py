"""Per-frame detection orchestration.

Ties the region tracker, the hand-to-hip classifier, the fingertip
containment check, the suspicion counter, and the incident state machine into
one `process()` call. Everything a session needs lives on the session object;
two sessions never share state.
"""

from __future__ import annotations

import logging
import time

from cashguard.core.analytics.classifier import ClassifierConfig, classify_poses
from cashguard.core.analytics.fusion import FusionConfig, SuspicionCounter
from cashguard.core.capture.adapter import CaptureUploadAdapter
from cashguard.core.incidents.machine import IncidentConfig, IncidentStateMachine
from cashguard.core.logs import ThrottledLogger
from cashguard.core.regions.tracker import RegionTracker
from cashguard.core.types import DEFAULT_CLOCK, Clock, Frame, FrameResult, KeypointFrame

logger = logging.getLogger(__name__)


class DetectionSession:
    """One monitoring session over one video stream."""

    def __init__(
        self,
        adapter: CaptureUploadAdapter | None = None,
        tracker: RegionTracker | None = None,
        classifier_config: ClassifierConfig | None = None,
        fusion_config: FusionConfig | None = None,
        incident_config: IncidentConfig | None = None,
        log_clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.adapter = adapter or CaptureUploadAdapter()
        self.tracker = tracker or RegionTracker()
        self.classifier_config = classifier_config or ClassifierConfig()
        self.counter = SuspicionCounter(fusion_config)
        self.machine = IncidentStateMachine(self.adapter, incident_config)
        self.frame_id = 0
        self._trace = ThrottledLogger(logger, interval_s=1.0, clock=log_clock)

    def start(self, now: float) -> None:
        self.machine.arm(now)

    def stop(self) -> None:
        """Disarm and forget all per-stream state (ROI, baseline, counters)."""

        self.machine.disarm()
        self.counter.reset()
        self.tracker.reset()
        self.frame_id = 0

    def process(
        self,
        frame: Frame,
        keypoints: KeypointFrame,
        now: float,
        profile: bool = False,
    ) -> FrameResult:
        timings: dict[str, float] | None = {} if profile else None
        t0 = time.perf_counter()

        regions = self.tracker.update(frame, now)
        t1 = time.perf_counter()

        near_hip, evidence = classify_poses(keypoints.poses, self.classifier_config)
        in_region = self.tracker.fingertips_in_region(keypoints.hands)
        t2 = time.perf_counter()

        triggered = self.counter.update(near_hip, in_region)
        self.machine.feed(frame, now)
        phase = self.machine.tick(triggered, now)
        t3 = time.perf_counter()

        if evidence:
            e = evidence[0]
            self._trace.debug(
                "pose",
                "pose scale=%.3f thr=%.3f L=%.3f R=%.3f near=%s in_region=%s counter=%d",
                e.body_scale,
                e.threshold,
                e.left.distance,
                e.right.distance,
                near_hip,
                in_region,
                self.counter.value,
            )
        else:
            self._trace.debug("pose", "no usable pose (%d candidates)", len(keypoints.poses))

        if timings is not None:
            timings["regions_ms"] = (t1 - t0) * 1000.0
            timings["classify_ms"] = (t2 - t1) * 1000.0
            timings["incident_ms"] = (t3 - t2) * 1000.0

        h, w = frame.shape[:2]
        result = FrameResult(
            frame_id=self.frame_id,
            timestamp=now,
            frame_size=(w, h),
            device_roi=regions.device_roi,
            drawer_zone=regions.drawer_zone,
            drawer_state=regions.drawer_state,
            near_hip=near_hip,
            fingertip_in_region=in_region,
            suspicion=self.counter.value,
            alert=self.machine.alert,
            phase=phase,
            status=self.machine.status,
            profile=timings,
        )
        self.frame_id += 1
        return result
