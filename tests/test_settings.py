"""Tests for export parameters and their resolution."""

import json

import pytest

from ambiance_core.errors import ValidationError
from ambiance_core.models import DistributionMode, IntervalMode, LoopMode
from ambiance_core.settings import (
    ContainerOverride,
    ExportParams,
    ExportSettings,
    clamp_max_pool_items,
    load_export_defaults,
    resolve_loop_mode,
    save_export_defaults,
)


def test_out_of_range_values_are_clamped():
    params = ExportParams(
        instance_amount=500, spacing=-3, loop_duration=0.2, loop_interval=-40, max_pool_items=-2
    ).validated()

    assert params.instance_amount == 100
    assert params.spacing == 0.0
    assert params.loop_duration == 1.0
    assert params.loop_interval == -10.0
    assert params.max_pool_items == 0


def test_non_numeric_value_raises():
    with pytest.raises(ValidationError):
        ExportParams(spacing="wide").validated()
    with pytest.raises(ValidationError):
        ExportParams(instance_amount=True).validated()


def test_unknown_enum_falls_back_to_default():
    params = ExportParams(loop_mode="sometimes", distribution_mode="random").validated()

    assert params.loop_mode is LoopMode.AUTO
    assert params.distribution_mode is DistributionMode.RANDOM


def test_override_applies_only_its_fields():
    settings = ExportSettings(global_params=ExportParams(spacing=2.0, instance_amount=3))
    settings.set_override("1::1", ContainerOverride(params={"spacing": 5.0, "bogus": 1}))

    params = settings.effective_params("1::1")
    assert params.spacing == 5.0
    assert params.instance_amount == 3
    assert settings.effective_params("1::2").spacing == 2.0


def test_disabled_override_is_ignored():
    settings = ExportSettings()
    settings.set_override("1::1", ContainerOverride(enabled=False, params={"spacing": 9.0}))

    assert settings.effective_params("1::1").spacing == 1.0


def test_enabled_defaults_to_true():
    settings = ExportSettings()
    settings.set_enabled("1::2", False)

    assert settings.is_enabled("1::1")
    assert not settings.is_enabled("1::2")


def test_set_global_param_rejects_unknown_name():
    settings = ExportSettings()
    settings.set_global_param("loop_duration", 5000)

    assert settings.global_params.loop_duration == 3600.0
    with pytest.raises(ValidationError):
        settings.set_global_param("colour", "red")


@pytest.mark.parametrize(
    "mode, rate, interval_mode, expected",
    [
        (LoopMode.ON, 5.0, IntervalMode.ABSOLUTE, True),
        (LoopMode.OFF, -1.0, IntervalMode.ABSOLUTE, False),
        (LoopMode.AUTO, -1.0, IntervalMode.ABSOLUTE, True),
        (LoopMode.AUTO, -1.0, IntervalMode.RELATIVE, False),
        (LoopMode.AUTO, 2.0, IntervalMode.ABSOLUTE, False),
        (LoopMode.AUTO, None, IntervalMode.ABSOLUTE, False),
    ],
)
def test_resolve_loop_mode(mode, rate, interval_mode, expected):
    assert resolve_loop_mode(ExportParams(loop_mode=mode), rate, interval_mode) is expected


def test_clamp_max_pool_items():
    assert clamp_max_pool_items(0, 10) == 0
    assert clamp_max_pool_items(-4, 10) == 0
    assert clamp_max_pool_items(4, 10) == 4
    assert clamp_max_pool_items(40, 10) == 10


def test_defaults_round_trip(tmp_path):
    path = tmp_path / "defaults.json"
    save_export_defaults(ExportParams(spacing=4.5, loop_mode=LoopMode.ON), path)

    loaded = load_export_defaults(path)
    assert loaded.spacing == 4.5
    assert loaded.loop_mode is LoopMode.ON


def test_load_defaults_ignores_unknown_keys(tmp_path):
    path = tmp_path / "defaults.json"
    path.write_text(json.dumps({"spacing": 3, "theme": "dark"}), encoding="utf-8")

    assert load_export_defaults(path).spacing == 3.0


def test_load_defaults_falls_back_on_bad_file(tmp_path):
    path = tmp_path / "defaults.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_export_defaults(path) == ExportParams()
    assert load_export_defaults(tmp_path / "missing.json") == ExportParams()
