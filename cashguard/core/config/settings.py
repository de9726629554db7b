"""Monitor configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `CG_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cashguard.core.analytics.classifier import SENSITIVITY_RANGE, ClassifierConfig
from cashguard.core.analytics.fusion import FusionConfig
from cashguard.core.capture.upload import DEFAULT_UPLOAD_URL
from cashguard.core.incidents.machine import IncidentConfig
from cashguard.core.regions.device import DeviceLocatorConfig
from cashguard.core.regions.drawer import DrawerConfig

DEFAULT_CONFIG_PATH = "config/cashguard.config.yml"


class MonitorSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `CG_` env overrides."""

    # Source
    video_source: str = Field("webcam", description="webcam|file|rtsp")
    video_path: str | None = None
    rtsp_url: str | None = None
    webcam_index: int = 0

    # Keypoints
    pose_model: str = "yolo11n-pose.pt"
    pose_confidence: float = 0.3
    inference_width: int | None = None
    hands_enabled: bool = True
    max_hands: int = 4

    # Classifier
    sensitivity: float = 0.6
    min_visibility: float = 0.4
    min_body_scale: float = 0.05
    alignment_fraction: float = 0.5
    # Overhead camera: vertical wrist/shoulder order is not meaningful.
    birds_eye: bool = False

    # Regions
    device_interval_s: float = 30.0
    device_retry_interval_s: float = 2.0
    device_min_score: float = 20.0
    drawer_height_ratio: float = 0.5
    drawer_diff_threshold: float = 18.0
    drawer_open_floor: int = 3
    drawer_stable_closed_frames: int = 25
    drawer_refresh_interval_s: float = 20.0

    # Fusion
    suspicion_max: int = 20
    suspicion_threshold: int = 6
    strong_step: int = 2
    weak_step: int = 1
    decay_step: int = 1

    # Incidents
    cashier_label: str = "Cashier 1"
    recording_s: float = 3.0
    cooldown_s: float = 8.0
    resume_delay_s: float = 2.0
    pre_roll_s: float = 10.0
    max_upload_attempts: int = 3
    # Fusion triggers start recordings; off leaves only operator triggers.
    auto_record: bool = True

    # Clip capture / upload
    clip_jpeg_quality: int = 75
    clip_width: int | None = 640
    clip_chunk_interval_s: float = 0.1
    uploads_enabled: bool = True
    upload_url: str = DEFAULT_UPLOAD_URL
    upload_token: str | None = None
    upload_timeout_s: float = 15.0

    # Engine / preview
    target_fps: float | None = None
    output_width: int | None = None
    jpeg_quality: int = 70
    enable_overlays: bool = True
    profile_steps: bool = False

    model_config = SettingsConfigDict(env_prefix="CG_", validate_assignment=True)

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file", "rtsp"}:
            raise ValueError("video_source must be webcam|file|rtsp")
        return v

    @field_validator("sensitivity")
    @classmethod
    def _validate_sensitivity(cls, v: float) -> float:
        lo, hi = SENSITIVITY_RANGE
        if not lo <= float(v) <= hi:
            raise ValueError(f"sensitivity must be in [{lo}, {hi}]")
        return float(v)

    @field_validator("min_visibility", "pose_confidence")
    @classmethod
    def _validate_unit(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("value must be in [0, 1]")
        return float(v)

    @field_validator("min_body_scale", "alignment_fraction", "drawer_height_ratio")
    @classmethod
    def _validate_fraction(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("value must be in (0, 1]")
        return float(v)

    @field_validator(
        "device_interval_s",
        "device_retry_interval_s",
        "drawer_refresh_interval_s",
        "recording_s",
        "cooldown_s",
        "upload_timeout_s",
    )
    @classmethod
    def _validate_positive_duration(cls, v: float) -> float:
        if float(v) <= 0:
            raise ValueError("duration must be > 0")
        return float(v)

    @field_validator(
        "resume_delay_s",
        "pre_roll_s",
        "drawer_diff_threshold",
        "device_min_score",
        "clip_chunk_interval_s",
    )
    @classmethod
    def _validate_non_negative(cls, v: float) -> float:
        if float(v) < 0:
            raise ValueError("value must be >= 0")
        return float(v)

    @field_validator(
        "drawer_open_floor",
        "drawer_stable_closed_frames",
        "suspicion_max",
        "suspicion_threshold",
        "strong_step",
        "weak_step",
        "decay_step",
        "max_upload_attempts",
        "max_hands",
    )
    @classmethod
    def _validate_positive_int(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("value must be >= 1")
        return int(v)

    @field_validator("jpeg_quality", "clip_jpeg_quality")
    @classmethod
    def _validate_quality(cls, v: int) -> int:
        if not 10 <= int(v) <= 100:
            raise ValueError("jpeg quality must be in [10, 100]")
        return int(v)

    @field_validator("output_width", "clip_width", "inference_width")
    @classmethod
    def _validate_width(cls, v: int | None) -> int | None:
        if v is None:
            return v
        if v <= 0:
            raise ValueError("width must be > 0")
        return v

    @field_validator("target_fps")
    @classmethod
    def _validate_target_fps(cls, v: float | None) -> float | None:
        if v is None:
            return v
        if v < 0:
            raise ValueError("target_fps must be >= 0")
        return float(v)

    @model_validator(mode="after")
    def _validate_relations(self) -> MonitorSettings:
        if self.suspicion_threshold <= self.strong_step:
            raise ValueError("suspicion_threshold must exceed strong_step")
        if self.suspicion_threshold > self.suspicion_max:
            raise ValueError("suspicion_threshold must be <= suspicion_max")
        if self.weak_step > self.strong_step:
            raise ValueError("weak_step must be <= strong_step")
        if self.cooldown_s < self.recording_s:
            raise ValueError("cooldown_s must be >= recording_s")
        return self


def settings_to_dict(settings: MonitorSettings) -> dict[str, Any]:
    return settings.model_dump()


def _config_path() -> Path:
    return Path(os.getenv("CG_CONFIG", DEFAULT_CONFIG_PATH))


def load_settings() -> MonitorSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = MonitorSettings()
    env_overrides = {name: getattr(env_settings, name) for name in env_settings.model_fields_set}
    return MonitorSettings(**{**data, **env_overrides})


def classifier_from_settings(settings: MonitorSettings) -> ClassifierConfig:
    return ClassifierConfig(
        sensitivity=settings.sensitivity,
        min_visibility=settings.min_visibility,
        min_body_scale=settings.min_body_scale,
        alignment_fraction=settings.alignment_fraction,
        require_below_shoulder=not settings.birds_eye,
    )


def locator_from_settings(settings: MonitorSettings) -> DeviceLocatorConfig:
    return DeviceLocatorConfig(
        interval_s=settings.device_interval_s,
        retry_interval_s=settings.device_retry_interval_s,
        min_score=settings.device_min_score,
    )


def drawer_from_settings(settings: MonitorSettings) -> DrawerConfig:
    return DrawerConfig(
        diff_threshold=settings.drawer_diff_threshold,
        open_floor=settings.drawer_open_floor,
        stable_closed_frames=settings.drawer_stable_closed_frames,
        refresh_interval_s=settings.drawer_refresh_interval_s,
    )


def fusion_from_settings(settings: MonitorSettings) -> FusionConfig:
    return FusionConfig(
        max_value=settings.suspicion_max,
        threshold=settings.suspicion_threshold,
        strong_step=settings.strong_step,
        weak_step=settings.weak_step,
        decay_step=settings.decay_step,
    )


def incident_from_settings(settings: MonitorSettings) -> IncidentConfig:
    return IncidentConfig(
        recording_s=settings.recording_s,
        cooldown_s=settings.cooldown_s,
        resume_delay_s=settings.resume_delay_s,
        pre_roll_s=settings.pre_roll_s,
        max_upload_attempts=settings.max_upload_attempts,
        cashier_label=settings.cashier_label,
        auto_record=settings.auto_record,
    )
