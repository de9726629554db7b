from __future__ import annotations

from typing import Any

# Camera-placement presets, applied as patches on top of the loaded settings.
#
# Notes:
# - sensitivity: wrist-to-hip distance threshold as a fraction of body scale
#   (higher flags wider hand positions)
# - birds_eye: skip the wrist-below-shoulder check for ceiling cameras
# - suspicion_threshold: frames of evidence needed before recording


PRESETS: dict[str, dict[str, Any]] = {
    # Camera in front of the counter at chest height.
    "counter": {
        "sensitivity": 0.6,
        "birds_eye": False,
        "min_body_scale": 0.05,
        "drawer_height_ratio": 0.5,
        "suspicion_threshold": 6,
    },
    # Ceiling camera looking down on the till.
    "overhead": {
        "sensitivity": 0.7,
        "birds_eye": True,
        "min_body_scale": 0.03,
        "drawer_height_ratio": 0.6,
        "suspicion_threshold": 6,
    },
    # Fewer false alarms: tighter distance and more evidence frames.
    "strict": {
        "sensitivity": 0.4,
        "birds_eye": False,
        "min_visibility": 0.6,
        "suspicion_threshold": 10,
    },
}


PRESET_LABELS: dict[str, str] = {
    "counter": "Counter camera",
    "overhead": "Overhead camera",
    "strict": "Strict",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "settings": PRESETS[preset_id],
        }
        for preset_id in PRESETS
    ]


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
