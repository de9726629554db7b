"""Pydantic models for the HTTP/WS API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from cashguard.core.types import FrameResult, Incident, Roi


class RoiSchema(BaseModel):
    """Normalized rectangle payload."""

    x: float
    y: float
    w: float
    h: float
    name: str

    @classmethod
    def from_roi(cls, roi: Roi | None) -> RoiSchema | None:
        if roi is None:
            return None
        return cls(x=roi.x, y=roi.y, w=roi.w, h=roi.h, name=roi.name)


class FrameSchema(BaseModel):
    """Per-frame detection payload."""

    frame_id: int
    timestamp: float
    frame_size: tuple[int, int]
    device_roi: RoiSchema | None = None
    drawer_zone: RoiSchema | None = None
    drawer_state: str
    near_hip: bool
    fingertip_in_region: bool
    suspicion: int
    alert: bool
    phase: str
    status: str
    profile: dict[str, float] | None = None

    @classmethod
    def from_result(cls, result: FrameResult) -> FrameSchema:
        return cls(
            frame_id=result.frame_id,
            timestamp=result.timestamp,
            frame_size=result.frame_size,
            device_roi=RoiSchema.from_roi(result.device_roi),
            drawer_zone=RoiSchema.from_roi(result.drawer_zone),
            drawer_state=result.drawer_state.value,
            near_hip=result.near_hip,
            fingertip_in_region=result.fingertip_in_region,
            suspicion=result.suspicion,
            alert=result.alert,
            phase=result.phase.value,
            status=result.status,
            profile=result.profile,
        )


class StatusSchema(BaseModel):
    """Monitor status payload."""

    running: bool
    fps: float
    auto_record: bool = True
    frame: FrameSchema | None = None
    error: str | None = None


class IncidentSchema(BaseModel):
    """Retained incident payload (clip bytes are never returned)."""

    id: str
    cashier_label: str
    detected_at: float
    clip_start_time: float
    clip_end_time: float | None = None
    size: int
    attempts: int
    upload_state: str
    upload_id: str | None = None
    error: str | None = None

    @classmethod
    def from_incident(cls, incident: Incident) -> IncidentSchema:
        return cls(
            id=incident.id,
            cashier_label=incident.cashier_label,
            detected_at=incident.detected_at,
            clip_start_time=incident.clip_start_time,
            clip_end_time=incident.clip_end_time,
            size=incident.size,
            attempts=incident.attempts,
            upload_state=incident.upload_state.value,
            upload_id=incident.upload_id,
            error=incident.error,
        )


class ConfigSchema(BaseModel):
    """Runtime configuration payload (operator-editable subset)."""

    video_source: str
    video_path: str | None = None
    rtsp_url: str | None = None
    webcam_index: int = Field(default=0, ge=0)
    pose_model: str
    hands_enabled: bool = True
    sensitivity: float = Field(ge=0.2, le=1.0)
    min_visibility: float = Field(default=0.4, ge=0.0, le=1.0)
    birds_eye: bool = False
    drawer_height_ratio: float = Field(default=0.5, gt=0.0, le=1.0)
    suspicion_threshold: int = Field(default=6, ge=1)
    cashier_label: str = "Cashier 1"
    recording_s: float = Field(default=3.0, gt=0.0)
    cooldown_s: float = Field(default=8.0, gt=0.0)
    pre_roll_s: float = Field(default=10.0, ge=0.0)
    auto_record: bool = True
    uploads_enabled: bool = True
    upload_url: str
    target_fps: float | None = Field(default=None, ge=0)
    output_width: int | None = Field(default=None, gt=0)
    jpeg_quality: int = Field(default=70, ge=10, le=100)
    enable_overlays: bool = True

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file", "rtsp"}:
            raise ValueError("video_source must be webcam|file|rtsp")
        return v


class AutoRecordSchema(BaseModel):
    """Auto-monitoring toggle."""

    enabled: bool


class IncidentStateSchema(BaseModel):
    """Incident machine state after an operator action."""

    phase: str
    status: str
    alert: bool
    auto_record: bool
