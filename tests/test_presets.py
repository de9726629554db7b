from __future__ import annotations

import pytest

from cashguard.core.config.presets import PRESETS, list_presets, preset_patch
from cashguard.core.config.settings import MonitorSettings


def test_list_presets_has_expected_shape_and_labels():
    presets = list_presets()
    ids = {p["id"] for p in presets}
    assert ids == set(PRESETS)

    by_id = {p["id"]: p for p in presets}
    assert by_id["overhead"]["label"] == "Overhead camera"
    assert by_id["overhead"]["settings"]["birds_eye"] is True


def test_preset_patch_is_a_copy():
    patch = preset_patch("strict")
    patch["suspicion_threshold"] = 99
    assert PRESETS["strict"]["suspicion_threshold"] == 10


def test_unknown_preset():
    with pytest.raises(KeyError):
        preset_patch("nope")


@pytest.mark.parametrize("preset_id", sorted(PRESETS))
def test_every_preset_produces_valid_settings(preset_id):
    settings = MonitorSettings(**preset_patch(preset_id))
    for key, value in PRESETS[preset_id].items():
        assert getattr(settings, key) == value
