"""Export parameters, per-container overrides and their resolution."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type

from .errors import ValidationError
from .models import DistributionMode, ExportMode, IntervalMode, LoopMode

logger = logging.getLogger(__name__)

INSTANCE_MIN = 1
INSTANCE_MAX = 100
SPACING_MIN = 0.0
SPACING_MAX = 60.0
LOOP_DURATION_MIN = 1.0
LOOP_DURATION_MAX = 3600.0
LOOP_INTERVAL_MIN = -10.0
LOOP_INTERVAL_MAX = 10.0

DEFAULTS_FILE = Path.home() / ".ambiance_export.json"


@dataclass
class ExportParams:
    """Parameters controlling how one container is exported."""

    instance_amount: int = 1
    spacing: float = 1.0
    align_to_seconds: bool = True
    preserve_pan: bool = True
    preserve_volume: bool = True
    preserve_pitch: bool = True
    create_regions: bool = False
    region_pattern: str = "$container"
    # 0 exports the whole pool, otherwise a random subset of this size.
    max_pool_items: int = 0
    loop_mode: LoopMode = LoopMode.AUTO
    loop_duration: float = 30.0
    loop_interval: float = 0.0
    export_mode: ExportMode = ExportMode.PRESERVE
    distribution_mode: DistributionMode = DistributionMode.ROUND_ROBIN

    def validated(self) -> "ExportParams":
        """Return a copy with every field coerced and clamped into range."""

        return replace(
            self,
            instance_amount=int(_clamp("instance_amount", _as_number(
                "instance_amount", self.instance_amount), INSTANCE_MIN, INSTANCE_MAX)),
            spacing=_clamp("spacing", _as_number("spacing", self.spacing),
                           SPACING_MIN, SPACING_MAX),
            align_to_seconds=bool(self.align_to_seconds),
            preserve_pan=bool(self.preserve_pan),
            preserve_volume=bool(self.preserve_volume),
            preserve_pitch=bool(self.preserve_pitch),
            create_regions=bool(self.create_regions),
            region_pattern=str(self.region_pattern or "$container"),
            max_pool_items=int(max(0, _as_number("max_pool_items", self.max_pool_items))),
            loop_mode=_as_enum(LoopMode, self.loop_mode, LoopMode.AUTO),
            loop_duration=_clamp("loop_duration", _as_number(
                "loop_duration", self.loop_duration), LOOP_DURATION_MIN, LOOP_DURATION_MAX),
            loop_interval=_clamp("loop_interval", _as_number(
                "loop_interval", self.loop_interval), LOOP_INTERVAL_MIN, LOOP_INTERVAL_MAX),
            export_mode=_as_enum(ExportMode, self.export_mode, ExportMode.PRESERVE),
            distribution_mode=_as_enum(
                DistributionMode, self.distribution_mode, DistributionMode.ROUND_ROBIN
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExportParams":
        params = cls()
        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key in known:
                setattr(params, key, value)
        return params.validated()


def _as_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be numeric, got a boolean")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be numeric, got {value!r}") from exc


def _clamp(name: str, value: float, low: float, high: float) -> float:
    clamped = min(high, max(low, value))
    if clamped != value:
        logger.warning("%s=%s out of range, clamped to %s", name, value, clamped)
    return clamped


def _as_enum(enum_cls: Type[Enum], value: Any, default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(
            "Unknown %s %r, using %r", enum_cls.__name__, value, default.value
        )
        return default


@dataclass
class ContainerOverride:
    """Partial parameter set that replaces the global values for one container."""

    enabled: bool = True
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExportSettings:
    """Global export parameters plus per-container state."""

    global_params: ExportParams = field(default_factory=ExportParams)
    overrides: Dict[str, ContainerOverride] = field(default_factory=dict)
    enabled: Dict[str, bool] = field(default_factory=dict)

    def is_enabled(self, key: str) -> bool:
        return self.enabled.get(key, True)

    def set_enabled(self, key: str, enabled: bool) -> None:
        self.enabled[key] = enabled

    def set_override(self, key: str, override: Optional[ContainerOverride]) -> None:
        if override is None:
            self.overrides.pop(key, None)
        else:
            self.overrides[key] = override

    def set_global_param(self, name: str, value: Any) -> None:
        if name not in {f.name for f in fields(ExportParams)}:
            raise ValidationError(f"Unknown export parameter: {name}")
        self.global_params = replace(self.global_params, **{name: value}).validated()

    def effective_params(self, key: str) -> ExportParams:
        """Resolve the parameters one container is exported with.

        An enabled override wins field by field; fields it does not set fall
        back to the global value.
        """

        override = self.overrides.get(key)
        if override is None or not override.enabled:
            return self.global_params.validated()
        known = {f.name for f in fields(ExportParams)}
        unknown = set(override.params) - known
        if unknown:
            logger.warning("Ignoring unknown override fields for %s: %s", key, sorted(unknown))
        values = {k: v for k, v in override.params.items() if k in known}
        return replace(self.global_params, **values).validated()


def resolve_loop_mode(
    params: ExportParams,
    trigger_rate: Optional[float],
    interval_mode: IntervalMode,
) -> bool:
    """Decide whether a container is exported as a loop.

    ``auto`` loops only containers whose inherited interval is a negative
    (overlapping) value in absolute interval mode.
    """

    if params.loop_mode is LoopMode.ON:
        return True
    if params.loop_mode is LoopMode.OFF:
        return False
    return (
        trigger_rate is not None
        and trigger_rate < 0
        and interval_mode is IntervalMode.ABSOLUTE
    )


def clamp_max_pool_items(requested: int, total_entries: int) -> int:
    """Clamp ``requested`` to ``[0, total_entries]``; 0 still means everything."""

    if requested <= 0:
        return 0
    return min(int(requested), int(total_entries))


def load_export_defaults(path: Optional[Path] = None) -> ExportParams:
    """Load the global export defaults from a JSON preferences file.

    Unknown keys are ignored. If the file is missing or unreadable the
    built-in defaults are returned.
    """

    path = Path(path) if path is not None else DEFAULTS_FILE
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return ExportParams.from_dict(data)
            logger.warning("Export defaults in %s are not a JSON object", path)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to load export defaults from %s: %s", path, e)
    return ExportParams()


def save_export_defaults(params: ExportParams, path: Optional[Path] = None) -> None:
    path = Path(path) if path is not None else DEFAULTS_FILE
    with open(path, "w", encoding="utf-8") as f:
        json.dump(params.to_dict(), f, indent=2)


__all__ = [
    "ExportParams",
    "ContainerOverride",
    "ExportSettings",
    "resolve_loop_mode",
    "clamp_max_pool_items",
    "load_export_defaults",
    "save_export_defaults",
    "DEFAULTS_FILE",
]
