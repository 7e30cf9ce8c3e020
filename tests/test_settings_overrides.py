from __future__ import annotations

import pytest
from pydantic import ValidationError

from minyanmap.config.overrides import apply_settings_overrides
from minyanmap.config.settings import get_settings


def test_apply_settings_overrides_returns_same_object_when_none():
    settings = get_settings()
    # Identity: the helper returns early without rebuilding the model.
    assert apply_settings_overrides(settings, None) is settings


def test_apply_settings_overrides_can_override_allowed_knobs():
    settings = get_settings()
    out = apply_settings_overrides(
        settings, {"clustering": {"radius_margin": 1.5}, "proximity": {"radius_m": 750}}
    )

    assert out.clustering.radius_margin == 1.5
    assert out.proximity.radius_m == 750
    # The shared cached settings stay untouched.
    assert settings.clustering.radius_margin == 1.2
    assert settings.proximity.radius_m == 500


def test_apply_settings_overrides_rejects_disallowed_keys_with_clear_path():
    with pytest.raises(ValueError, match=r"proximity\.ledger_key"):
        apply_settings_overrides(get_settings(), {"proximity": {"ledger_key": "other"}})


def test_apply_settings_overrides_rejects_wrong_value_shapes_for_restricted_subtrees():
    with pytest.raises(ValueError, match=r"settings_overrides key 'proximity' must be a mapping"):
        apply_settings_overrides(get_settings(), {"proximity": 1})


def test_apply_settings_overrides_revalidates_ranges():
    with pytest.raises(ValidationError):
        apply_settings_overrides(get_settings(), {"clustering": {"radius_margin": 0.5}})


def test_defaults_match_adaptive_grid_table():
    cfg = get_settings().clustering
    assert [(t.max_span_deg, t.grid_size_km) for t in cfg.span_thresholds] == [
        (0.02, 0.5),
        (0.05, 1),
        (0.10, 2),
        (0.30, 3),
    ]
    assert cfg.wide_grid_size_km == 5
