import time

import numpy as np
import pytest

from cashguard.api.services.engine import MonitorEngine, build_session
from cashguard.core.analytics.pipeline import DetectionSession
from cashguard.core.capture.adapter import CaptureUploadAdapter, UploadOutcome
from cashguard.core.capture.upload import ClipUploader, UploadReceipt
from cashguard.core.config.settings import MonitorSettings, incident_from_settings
from cashguard.core.errors import UploadError
from cashguard.core.types import IncidentPhase, KeypointFrame, UploadState


def wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class DummySource:
    def __init__(self, log=None):
        self.log = log if log is not None else []
        self.frame = np.full((120, 160, 3), 60, dtype=np.uint8)

    def read(self):
        return self.frame

    def close(self):
        self.log.append("source")

    def fps(self):
        return None


class DummyProvider:
    def __init__(self, log=None, fail=False):
        self.log = log if log is not None else []
        self.fail = fail

    def detect(self, frame, timestamp):
        if self.fail:
            raise RuntimeError("model crashed")
        return KeypointFrame()

    def close(self):
        self.log.append("provider")


class LoggingEncoder:
    media_type = "application/test"

    def __init__(self, log):
        self.log = log

    def encode(self, frame):
        return b"x"

    def release(self):
        self.log.append("encoder")


class StubWorker:
    def submit(self, incident):
        pass

    def drain(self):
        return []

    def close(self):
        pass


class LoggingSession(DetectionSession):
    def __init__(self, log, **kwargs):
        super().__init__(**kwargs)
        self.log = log

    def stop(self):
        self.log.append("session")
        super().stop()


def make_engine(log=None, provider_fail=False, worker=None, **overrides):
    log = log if log is not None else []
    settings = MonitorSettings(uploads_enabled=False, target_fps=100, **overrides)
    adapter = CaptureUploadAdapter(
        encoder_factory=lambda: LoggingEncoder(log), chunk_interval_s=0.0, worker=worker or StubWorker()
    )
    session = LoggingSession(log, adapter=adapter, incident_config=incident_from_settings(settings))
    return MonitorEngine(
        settings,
        session=session,
        source_factory=lambda: DummySource(log),
        provider_factory=lambda: DummyProvider(log, fail=provider_fail),
    )


def test_engine_reports_source_error():
    settings = MonitorSettings(video_source="file", video_path="/nonexistent/video.mp4", uploads_enabled=False)
    engine = MonitorEngine(settings)
    assert engine.start() is False
    assert engine.last_error == "Failed to initialize video source"
    assert engine.running is False
    engine.close()


def test_engine_reports_provider_error_and_closes_source():
    log = []

    def broken_provider():
        raise RuntimeError("no model")

    engine = MonitorEngine(
        MonitorSettings(uploads_enabled=False),
        source_factory=lambda: DummySource(log),
        provider_factory=broken_provider,
    )
    assert engine.start() is False
    assert engine.last_error == "Failed to initialize keypoint provider"
    assert log == ["source"]
    engine.close()


def test_engine_processes_frames_and_encodes_preview():
    engine = make_engine()
    assert engine.start() is True
    try:
        assert wait_for(lambda: engine.latest_result() is not None)
        assert wait_for(lambda: engine.latest_frame() is not None)
        result = engine.latest_result()
        assert result.frame_size == (160, 120)
        assert result.phase is IncidentPhase.ARMED
        assert engine.latest_frame()[:2] == b"\xff\xd8"
        assert wait_for(lambda: engine.fps() > 0.0)
    finally:
        engine.close()


def test_stop_releases_resources_in_order():
    log = []
    engine = make_engine(log)
    engine.start()
    assert wait_for(lambda: engine.latest_result() is not None)
    engine.stop()
    assert log == ["source", "encoder", "provider", "session"]
    assert engine.running is False
    assert engine.session.machine.phase is IncidentPhase.IDLE
    engine.close()


def test_no_processing_after_stop():
    engine = make_engine()
    engine.start()
    assert wait_for(lambda: engine.latest_result() is not None)
    engine.stop()
    last = engine.latest_result()
    time.sleep(0.1)
    assert engine.latest_result() is last
    engine.close()


def test_provider_failure_keeps_loop_running():
    engine = make_engine(provider_fail=True)
    engine.start()
    try:
        assert wait_for(lambda: engine.latest_result() is not None)
        assert engine.last_error == "Keypoint provider failed"
        assert engine.latest_result().near_hip is False
    finally:
        engine.close()


def test_restart_after_stop():
    engine = make_engine()
    assert engine.start() is True
    engine.stop()
    assert engine.start() is True
    try:
        assert engine.session.machine.phase is IncidentPhase.ARMED
    finally:
        engine.close()


def test_build_session_wires_settings():
    settings = MonitorSettings(
        uploads_enabled=True,
        upload_url="http://clips.local/api/clips",
        upload_token="secret",
        pre_roll_s=5.0,
        recording_s=2.0,
        cooldown_s=6.0,
        sensitivity=0.4,
    )
    session = build_session(settings)
    try:
        uploader = session.adapter.worker.uploader
        assert isinstance(uploader, ClipUploader)
        assert uploader.url == "http://clips.local/api/clips"
        assert session.adapter.pre_roll_s == 5.0
        assert session.machine.config.recording_s == 2.0
        assert session.classifier_config.sensitivity == 0.4
    finally:
        session.adapter.close()

    disabled = build_session(settings, uploads=False)
    assert disabled.adapter.worker.uploader is None
    disabled.adapter.close()


class OutcomeWorker(StubWorker):
    def __init__(self):
        self.submitted = []
        self.outcomes = []

    def submit(self, incident):
        self.submitted.append(incident)

    def drain(self):
        out, self.outcomes = self.outcomes, []
        return out


def test_incidents_apply_upload_outcomes_while_stopped():
    worker = OutcomeWorker()
    engine = make_engine(worker=worker)
    machine = engine.session.machine
    frame = np.zeros((8, 8, 3), dtype=np.uint8)
    machine.arm(0.0)
    machine.start_manual(1.0)
    machine.feed(frame, 1.5)
    incident = machine.stop_manual(2.0)
    machine.disarm()
    assert engine.running is False

    worker.outcomes.append(UploadOutcome(incident.id, error=UploadError("offline")))
    (listed,) = engine.incidents()
    assert listed.upload_state is UploadState.FAILED

    engine.retry_incident(incident.id)
    assert worker.submitted == [incident, incident]
    receipt = UploadReceipt(clip_id="c1", status_code=201, body={"id": "c1"})
    worker.outcomes.append(UploadOutcome(incident.id, receipt=receipt))
    (listed,) = engine.incidents()
    assert listed.upload_state is UploadState.SUCCEEDED
    assert listed.upload_id == "c1"
    engine.close()


def test_operator_actions_require_running_monitor():
    engine = make_engine()
    with pytest.raises(ValueError):
        engine.trigger_incident()
    with pytest.raises(ValueError):
        engine.start_manual_recording()
    with pytest.raises(ValueError):
        engine.stop_manual_recording()
    engine.close()


def test_trigger_and_auto_record_on_running_engine():
    engine = make_engine(auto_record=False)
    assert engine.auto_record is False
    engine.start()
    try:
        assert wait_for(lambda: engine.latest_result() is not None)
        assert engine.incident_state()["status"] == "Auto-monitoring disabled"
        engine.trigger_incident()
        state = engine.incident_state()
        assert state["phase"] == "recording"
        assert state["alert"] is True
        engine.set_auto_record(True)
        assert engine.auto_record is True
    finally:
        engine.close()


def test_manual_recording_on_running_engine():
    engine = make_engine()
    engine.start()
    try:
        assert wait_for(lambda: engine.latest_result() is not None)
        engine.start_manual_recording()
        assert engine.incident_state()["phase"] == "recording"
        assert wait_for(lambda: engine.session.adapter.recording.buffer.chunks() != [])
        incident = engine.stop_manual_recording()
        assert incident.size > 0
        assert engine.incident_state()["phase"] == "cooldown"
    finally:
        engine.close()
