"""Incident lifecycle: arm, record, upload, cool down, re-arm."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass

from cashguard.core.capture.adapter import CaptureUploadAdapter, UploadOutcome
from cashguard.core.errors import ResourceNotReadyError
from cashguard.core.types import Frame, Incident, IncidentPhase, UploadState

logger = logging.getLogger(__name__)

STATUS_IDLE = "Monitoring stopped"
STATUS_ARMED = "Monitoring"
STATUS_AUTO_OFF = "Auto-monitoring disabled"
STATUS_RECORDING = "Suspicious activity detected, recording incident"
STATUS_TEST = "Test incident triggered, recording"
STATUS_MANUAL = "Manual recording started"
STATUS_UPLOADING = "Uploading incident clip"
STATUS_EMPTY = "Recording produced an empty clip; nothing uploaded"


@dataclass(frozen=True)
class IncidentConfig:
    recording_s: float = 3.0
    cooldown_s: float = 8.0
    resume_delay_s: float = 2.0
    pre_roll_s: float = 10.0
    max_upload_attempts: int = 3
    cashier_label: str = "Cashier 1"
    # Fusion triggers start recordings only while this is on.
    auto_record: bool = True
    # Incidents kept for the operator; failed uploads are never pruned.
    history_limit: int = 50

    def __post_init__(self) -> None:
        if self.recording_s <= 0:
            raise ValueError("recording_s must be > 0")
        if self.cooldown_s < self.recording_s:
            raise ValueError("cooldown_s must be >= recording_s")
        if self.resume_delay_s < 0 or self.pre_roll_s < 0:
            raise ValueError("resume_delay_s and pre_roll_s must be >= 0")
        if self.max_upload_attempts < 1:
            raise ValueError("max_upload_attempts must be >= 1")


class IncidentStateMachine:
    """Turns fusion trigger edges into recorded and uploaded incidents.

    Driven once per frame from the frame loop via `tick()`. Upload outcomes
    produced by the adapter's worker thread are applied here, so incident
    state only ever changes on the caller's thread.

    Besides fusion triggers, an operator can force a test incident or run a
    manual recording that lasts until `stop_manual()`.
    """

    def __init__(
        self,
        adapter: CaptureUploadAdapter,
        config: IncidentConfig | None = None,
    ) -> None:
        self.adapter = adapter
        self.config = config or IncidentConfig()
        self.phase = IncidentPhase.IDLE
        self.alert = False
        self.status = STATUS_IDLE
        self.auto_record = self.config.auto_record
        self.manual = False
        self.detected_at: float | None = None
        self.deferred_at: float | None = None
        self.resume_at: float | None = None
        self.incidents: OrderedDict[str, Incident] = OrderedDict()

    # lifecycle

    def arm(self, now: float) -> None:
        if self.phase is not IncidentPhase.IDLE:
            return
        self.adapter.acquire()
        self.phase = IncidentPhase.ARMED
        self.status = self._armed_status()
        self._ensure_passive()
        logger.info("Incident detection armed (auto_record=%s)", self.auto_record)

    def disarm(self) -> None:
        """Stop everything without uploading in-flight buffers."""

        self.adapter.discard()
        self.phase = IncidentPhase.IDLE
        self.alert = False
        self.manual = False
        self.status = STATUS_IDLE
        self.detected_at = None
        self.deferred_at = None
        self.resume_at = None
        logger.info("Incident detection disarmed")

    def set_auto_record(self, enabled: bool) -> None:
        self.auto_record = bool(enabled)
        if not self.auto_record:
            self.deferred_at = None
        if self.phase is IncidentPhase.ARMED:
            self.status = self._armed_status()
        logger.info("Auto-monitoring %s", "enabled" if self.auto_record else "disabled")

    def _armed_status(self) -> str:
        return STATUS_ARMED if self.auto_record else STATUS_AUTO_OFF

    def feed(self, frame: Frame, now: float) -> None:
        if self.phase is IncidentPhase.IDLE:
            return
        self.adapter.feed(frame, now)

    def _ensure_passive(self) -> None:
        try:
            self.adapter.start_passive()
        except ResourceNotReadyError as exc:
            self.status = f"Recorder not ready: {exc}"
            logger.warning("Passive buffering unavailable: %s", exc)

    # per-frame driver

    def tick(self, triggered: bool, now: float) -> IncidentPhase:
        self.poll_uploads(now)

        if self.resume_at is not None and now >= self.resume_at:
            self.resume_at = None
            if self.phase is not IncidentPhase.IDLE and not self.adapter.recording_active:
                self._ensure_passive()

        if self.phase is IncidentPhase.RECORDING and not self.manual:
            if self.detected_at is not None and now - self.detected_at >= self.config.recording_s:
                self._finish_recording(now)

        if self.phase is IncidentPhase.COOLDOWN:
            if self.detected_at is None or now - self.detected_at >= self.config.cooldown_s:
                self._rearm()

        if self.phase in (IncidentPhase.IDLE, IncidentPhase.ARMED):
            if triggered and self.auto_record and self.deferred_at is None:
                self._try_start(now, first_attempt=True)
            elif self.deferred_at is not None:
                if now - self.deferred_at >= self.config.cooldown_s:
                    logger.info("Deferred detection expired")
                    self.deferred_at = None
                    self.status = (
                        self._armed_status() if self.phase is IncidentPhase.ARMED else STATUS_IDLE
                    )
                else:
                    self._try_start(now, first_attempt=False)
        return self.phase

    def _try_start(self, now: float, first_attempt: bool) -> bool:
        try:
            self.adapter.start_recording(now)
        except ResourceNotReadyError as exc:
            if first_attempt:
                self.deferred_at = now
                logger.warning("Detection deferred, recorder not ready: %s", exc)
            self.status = f"Recorder not ready: {exc}; detection deferred"
            return False
        self.deferred_at = None
        self.resume_at = None
        self.detected_at = now
        self.phase = IncidentPhase.RECORDING
        self.alert = True
        self.status = STATUS_RECORDING
        logger.info("Suspicious activity detected at %.3f; recording", now)
        return True

    # operator actions

    def _require_armed(self) -> None:
        if self.phase is IncidentPhase.IDLE:
            raise ValueError("monitoring is not running")
        if self.phase is not IncidentPhase.ARMED:
            raise ValueError(f"an incident is already in progress ({self.phase.value})")

    def force_trigger(self, now: float) -> IncidentPhase:
        """Run the full record-then-upload flow as if fusion had triggered.

        Works with auto-monitoring off. Raises ValueError unless armed; a
        recorder that is not ready defers the trigger like a detection.
        """

        self._require_armed()
        self.deferred_at = None
        if self._try_start(now, first_attempt=True):
            self.status = STATUS_TEST
            logger.info("Test incident triggered at %.3f", now)
        return self.phase

    def start_manual(self, now: float) -> None:
        """Open a recording that runs until `stop_manual()`.

        Raises ValueError unless armed and ResourceNotReadyError when the
        recorder cannot start.
        """

        self._require_armed()
        self.adapter.start_recording(now)
        self.deferred_at = None
        self.resume_at = None
        self.detected_at = now
        self.manual = True
        self.phase = IncidentPhase.RECORDING
        self.status = STATUS_MANUAL
        logger.info("Manual recording started at %.3f", now)

    def stop_manual(self, now: float) -> Incident:
        """Close the manual recording and submit it for upload."""

        if not (self.manual and self.phase is IncidentPhase.RECORDING):
            raise ValueError("no manual recording is active")
        return self._finish_recording(now, end_time=now)

    # recording

    def _finish_recording(self, now: float, end_time: float | None = None) -> Incident:
        cfg = self.config
        detected = self.detected_at if self.detected_at is not None else now
        artifact = self.adapter.stop_recording(now)
        incident = Incident(
            cashier_label=cfg.cashier_label,
            detected_at=detected,
            clip_start_time=detected - cfg.pre_roll_s,
            clip_end_time=end_time if end_time is not None else detected + cfg.recording_s,
            data=artifact.data,
            media_type=artifact.media_type,
        )
        self.phase = IncidentPhase.COOLDOWN
        self.manual = False
        self._remember(incident)
        if artifact.empty:
            incident.upload_state = UploadState.ABANDONED
            incident.error = "empty clip"
            self.status = STATUS_EMPTY
            logger.warning("Incident %s produced an empty clip", incident.id)
            return incident
        self._submit(incident)
        return incident

    def _submit(self, incident: Incident) -> None:
        incident.attempts += 1
        incident.upload_state = UploadState.PENDING
        incident.error = None
        try:
            self.adapter.submit(incident)
        except ResourceNotReadyError as exc:
            incident.upload_state = UploadState.FAILED
            incident.error = str(exc)
            self.status = f"Upload failed: {exc}"
            return
        self.status = STATUS_UPLOADING

    def _rearm(self) -> None:
        self.phase = IncidentPhase.ARMED
        self.alert = False
        self.detected_at = None
        self.status = self._armed_status()
        self._ensure_passive()
        logger.info("Cooldown over; detection re-armed")

    # uploads

    def poll_uploads(self, now: float) -> None:
        """Apply every upload outcome the worker has reported so far."""

        for outcome in self.adapter.poll_uploads():
            self._apply_outcome(outcome, now)

    def _apply_outcome(self, outcome: UploadOutcome, now: float) -> None:
        incident = self.incidents.get(outcome.incident_id)
        if incident is None:
            logger.warning("Upload outcome for unknown incident %s", outcome.incident_id)
            return
        if outcome.ok and outcome.receipt is not None:
            incident.upload_state = UploadState.SUCCEEDED
            incident.upload_id = outcome.receipt.clip_id
            incident.error = None
            incident.data = b""
            self.status = f"Clip uploaded (id {incident.upload_id})"
            if self.phase is not IncidentPhase.IDLE:
                self.resume_at = now + self.config.resume_delay_s
            return

        incident.error = str(outcome.error) if outcome.error is not None else "upload failed"
        if incident.attempts >= self.config.max_upload_attempts:
            incident.upload_state = UploadState.ABANDONED
            incident.data = b""
            self.status = f"Upload abandoned after {incident.attempts} attempts: {incident.error}"
            logger.error("Incident %s abandoned: %s", incident.id, incident.error)
        else:
            incident.upload_state = UploadState.FAILED
            self.status = f"Upload failed: {incident.error} (retry available)"

    def retry(self, incident_id: str) -> Incident:
        """Re-submit a failed upload on operator request.

        Raises KeyError for unknown ids and ValueError when the incident is
        not in the failed state.
        """

        incident = self.incidents[incident_id]
        if incident.upload_state is not UploadState.FAILED:
            raise ValueError(f"incident {incident_id} is {incident.upload_state.value}, not failed")
        logger.info("Retrying upload of %s (attempt %d)", incident_id, incident.attempts + 1)
        self._submit(incident)
        return incident

    def _remember(self, incident: Incident) -> None:
        self.incidents[incident.id] = incident
        limit = self.config.history_limit
        if len(self.incidents) <= limit:
            return
        # The incident being added is never a pruning candidate.
        for key in list(self.incidents):
            if len(self.incidents) <= limit:
                break
            if key == incident.id:
                continue
            state = self.incidents[key].upload_state
            if state not in (UploadState.FAILED, UploadState.PENDING):
                del self.incidents[key]

    def failed_incidents(self) -> list[Incident]:
        return [i for i in self.incidents.values() if i.upload_state is UploadState.FAILED]
