"""Exceptions raised by the export pipeline and the warnings it records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class AmbianceError(Exception):
    """Base class for errors raised by :mod:`ambiance_core`."""


class ValidationError(AmbianceError, ValueError):
    """A parameter could not be coerced into a usable value."""


class MissingSourceError(AmbianceError, FileNotFoundError):
    """The audio source behind a pool entry cannot be located."""

    def __init__(self, source: Optional[str], item_name: str = "") -> None:
        self.source = source
        self.item_name = item_name
        label = f" for item '{item_name}'" if item_name else ""
        super().__init__(f"Audio source not found{label}: {source!r}")


@dataclass
class ExportWarning:
    """A non-fatal condition recorded while exporting a container."""

    message: str
    track: Optional[int] = None

    def __str__(self) -> str:
        if self.track is None:
            return self.message
        return f"Track {self.track}: {self.message}"


class EmptyPoolWarning(ExportWarning):
    pass


class ZeroCrossingFallbackWarning(ExportWarning):
    pass


class OverlapReducedWarning(ExportWarning):
    pass


class PositionClampedWarning(ExportWarning):
    pass


class LoopSkippedWarning(ExportWarning):
    pass


class LoopTruncatedWarning(ExportWarning):
    pass


class LoopDurationDriftWarning(ExportWarning):
    pass


class TopologyWarning(ExportWarning):
    pass


__all__ = [
    "AmbianceError",
    "ValidationError",
    "MissingSourceError",
    "ExportWarning",
    "EmptyPoolWarning",
    "ZeroCrossingFallbackWarning",
    "OverlapReducedWarning",
    "PositionClampedWarning",
    "LoopSkippedWarning",
    "LoopTruncatedWarning",
    "LoopDurationDriftWarning",
    "TopologyWarning",
]
