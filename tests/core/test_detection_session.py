import numpy as np

from cashguard.core.analytics.fusion import FusionConfig
from cashguard.core.analytics.pipeline import DetectionSession
from cashguard.core.capture.adapter import CaptureUploadAdapter
from cashguard.core.incidents.machine import IncidentConfig
from cashguard.core.types import (
    DrawerState,
    HandLandmark,
    IncidentPhase,
    Keypoint,
    KeypointFrame,
    PoseLandmark,
)


class CountingEncoder:
    media_type = "application/test"

    def __init__(self):
        self.calls = 0

    def encode(self, frame):
        self.calls += 1
        return b"x"

    def release(self):
        pass


class StubWorker:
    def __init__(self):
        self.submitted = []

    def submit(self, incident):
        self.submitted.append(incident)

    def drain(self):
        return []

    def close(self):
        pass


def counter_frame():
    """Bright cash device at pixels x 80..196, y 120..192 on a dark counter."""

    gray = np.full((240, 320), 50, dtype=np.uint8)
    gray[120:192, 80:196] = 200
    return np.stack([gray, gray, gray], axis=-1)


def near_hip_pose():
    return {
        int(PoseLandmark.NOSE): Keypoint(0.5, 0.2),
        int(PoseLandmark.LEFT_SHOULDER): Keypoint(0.40, 0.30),
        int(PoseLandmark.RIGHT_SHOULDER): Keypoint(0.60, 0.30),
        int(PoseLandmark.LEFT_WRIST): Keypoint(0.43, 0.62),
        int(PoseLandmark.RIGHT_WRIST): Keypoint(0.70, 0.45),
        int(PoseLandmark.LEFT_HIP): Keypoint(0.42, 0.60),
        int(PoseLandmark.RIGHT_HIP): Keypoint(0.58, 0.60),
    }


def hand_over_device():
    return {int(HandLandmark.INDEX_TIP): Keypoint(0.43, 0.65)}


def make_session():
    worker = StubWorker()
    adapter = CaptureUploadAdapter(
        encoder_factory=CountingEncoder, chunk_interval_s=0.0, worker=worker
    )
    session = DetectionSession(
        adapter=adapter,
        fusion_config=FusionConfig(threshold=6, strong_step=2, weak_step=1),
        incident_config=IncidentConfig(),
        log_clock=lambda: 0.0,
    )
    session.start(0.0)
    return session, worker


def run_frames(session, keypoints, count, start=0.0, step=0.1):
    frame = counter_frame()
    return [session.process(frame, keypoints, start + i * step) for i in range(count)]


def first_alert(results):
    return next((r.frame_id for r in results if r.alert), None)


def test_near_hip_alone_triggers_after_threshold_frames():
    session, _ = make_session()
    results = run_frames(session, KeypointFrame(poses=[near_hip_pose()]), 8)
    assert all(r.near_hip for r in results)
    assert [r.suspicion for r in results[:6]] == [1, 2, 3, 4, 5, 6]
    assert first_alert(results) == 5
    assert results[5].phase is IncidentPhase.RECORDING
    assert results[4].phase is IncidentPhase.ARMED


def test_fingertip_in_device_accelerates_trigger():
    session, _ = make_session()
    keypoints = KeypointFrame(poses=[near_hip_pose()], hands=[hand_over_device()])
    results = run_frames(session, keypoints, 4)
    assert results[0].device_roi is not None
    assert results[0].fingertip_in_region is True
    assert [r.suspicion for r in results[:3]] == [2, 4, 6]
    assert first_alert(results) == 2


def test_no_pose_never_triggers():
    session, worker = make_session()
    results = run_frames(session, KeypointFrame(), 20)
    assert all(not r.near_hip and r.suspicion == 0 for r in results)
    assert all(r.phase is IncidentPhase.ARMED for r in results)
    assert worker.submitted == []


def test_incident_submitted_after_recording_window():
    session, worker = make_session()
    run_frames(session, KeypointFrame(poses=[near_hip_pose()]), 40)
    # Trigger at t=0.5, recording closes once t - 0.5 >= 3.0.
    assert len(worker.submitted) == 1
    incident = worker.submitted[0]
    assert incident.detected_at == 0.5
    assert incident.cashier_label == "Cashier 1"
    assert session.machine.phase is IncidentPhase.COOLDOWN


def test_frame_result_fields():
    session, _ = make_session()
    frame = counter_frame()
    result = session.process(frame, KeypointFrame(), 1.25, profile=True)
    assert result.frame_id == 0
    assert result.timestamp == 1.25
    assert result.frame_size == (320, 240)
    assert result.drawer_state is DrawerState.CLOSED
    assert result.drawer_zone is not None
    assert result.status == "Monitoring"
    assert set(result.profile) == {"regions_ms", "classify_ms", "incident_ms"}
    assert session.process(frame, KeypointFrame(), 1.3).frame_id == 1
    assert session.process(frame, KeypointFrame(), 1.35).profile is None


def test_stop_resets_session_state():
    session, _ = make_session()
    run_frames(session, KeypointFrame(poses=[near_hip_pose()]), 3)
    session.stop()
    assert session.frame_id == 0
    assert session.counter.value == 0
    assert session.tracker.device_roi is None
    assert session.machine.phase is IncidentPhase.IDLE


def test_sessions_do_not_share_state():
    a, _ = make_session()
    b, _ = make_session()
    run_frames(a, KeypointFrame(poses=[near_hip_pose()]), 4)
    result = b.process(counter_frame(), KeypointFrame(), 0.0)
    assert a.counter.value == 4
    assert result.suspicion == 0
    assert result.frame_id == 0
    assert a.tracker is not b.tracker
