"""Configuration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from cashguard.api.schemas.models import ConfigSchema
from cashguard.api.services.state import get_settings, reload_settings
from cashguard.core.config.presets import list_presets, preset_patch
from cashguard.core.config.settings import MonitorSettings, settings_to_dict

router = APIRouter()


def _to_schema(settings: MonitorSettings) -> ConfigSchema:
    data = settings_to_dict(settings)
    return ConfigSchema(**{k: data[k] for k in ConfigSchema.model_fields if k in data})


@router.get("/config", response_model=ConfigSchema)
def get_config() -> ConfigSchema:
    return _to_schema(get_settings())


@router.get("/config/presets")
def get_presets() -> dict[str, list[dict[str, object]]]:
    return {"presets": list_presets()}


@router.post("/config/presets/{preset_id}", response_model=ConfigSchema)
def apply_preset(preset_id: str) -> ConfigSchema:
    try:
        patch = preset_patch(preset_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown preset") from None
    return _to_schema(reload_settings(patch))


@router.post("/config", response_model=ConfigSchema)
def update_config(cfg: ConfigSchema) -> ConfigSchema:
    """Update in-memory settings and rebuild the engine.

    Persist configuration via environment variables or the YAML file.
    """

    try:
        settings = reload_settings(cfg.model_dump())
    except ValidationError as exc:
        # Cross-field rules (e.g. threshold vs. steps) live on the settings model.
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from None
    return _to_schema(settings)
