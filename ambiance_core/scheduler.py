"""Place pool entries on the timeline.

Two placement loops exist. The shared-cursor loop advances one position
cursor for every placed entry whatever track it lands on, so round-robin
and random output interleaves tracks in time exactly like generation does.
The all-tracks loop gives every track its own cursor and its own full walk
of the pool.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .distribution import DistributionEngine, TrackAssignment
from .errors import ExportWarning, LoopTruncatedWarning, MissingSourceError
from .models import ContainerSettings, IntervalMode, PlacedItem, PoolEntry, Variation
from .settings import ExportParams
from .timeline import TimelineHost

logger = logging.getLogger(__name__)

DEFAULT_SPACING = 1.0
DEFAULT_LOOP_INTERVAL = 0.0
LOOP_MAX_ITERATIONS = 10000
MIN_FORWARD_PROGRESS = 0.001
MIN_OVERFILL = 1.1

# Tolerance for float noise before rounding up to the next second.
_ALIGN_EPSILON = 1e-9


def resolve_effective_interval(
    params: ExportParams, settings: ContainerSettings, is_loop: bool
) -> float:
    """Interval between consecutive placements, negative meaning overlap.

    ``settings`` must already carry the parent group's values when the
    container inherits them. An explicit non-zero export value wins, then a
    compatible inherited trigger rate, then the default.
    """

    rate = settings.trigger_rate
    if is_loop:
        if params.loop_interval != 0:
            return float(params.loop_interval)
        if rate is not None and rate < 0:
            return float(rate)
        return DEFAULT_LOOP_INTERVAL

    if params.spacing != 0:
        return float(params.spacing)
    if rate is not None and rate > 0 and settings.interval_mode is IntervalMode.ABSOLUTE:
        return float(rate)
    return DEFAULT_SPACING


def overfill_factor(interval: float, loop_duration: float) -> float:
    """How far past the loop duration independent tracks are filled."""

    if loop_duration <= 0:
        return MIN_OVERFILL
    return max(1.0 + abs(interval) / loop_duration, MIN_OVERFILL)


def align_position(position: float, interval: float, align_to_seconds: bool) -> float:
    if align_to_seconds and interval >= 0:
        return float(math.ceil(position - _ALIGN_EPSILON))
    return position


def next_position(position: float, length: float, interval: float) -> float:
    """Cursor after an item placed at ``position``; never moves backwards."""

    new_position = position + length + interval
    if new_position <= position:
        new_position = position + MIN_FORWARD_PROGRESS
    return new_position


@dataclass
class ScheduleResult:
    placed: List[PlacedItem] = field(default_factory=list)
    end_position: float = 0.0
    counter: int = 0
    effective_interval: float = 0.0
    is_loop: bool = False
    independent: bool = False
    warnings: List[ExportWarning] = field(default_factory=list)


class PlacementScheduler:
    """Realise a resolved pool on a :class:`TimelineHost`.

    ``lane`` tags every created segment with the container it belongs to so
    a host can keep each container's channel tracks apart.
    """

    def __init__(
        self,
        host: TimelineHost,
        engine: DistributionEngine,
        params: ExportParams,
        *,
        lane: str = "",
        variation: Optional[Variation] = None,
    ) -> None:
        self.host = host
        self.engine = engine
        self.params = params
        self.lane = lane
        self.variation = variation or Variation()

    def check_sources(self, entries: Sequence[PoolEntry]) -> None:
        """Raise :class:`MissingSourceError` before anything is placed."""

        for entry in entries:
            path = entry.source_item.file_path
            if not path or not self.host.source_exists(path):
                raise MissingSourceError(path, entry.source_item.name)

    def place(
        self,
        entries: Sequence[PoolEntry],
        start_position: float,
        effective_interval: float,
        is_loop: bool = False,
        counter: int = 0,
    ) -> ScheduleResult:
        start = max(0.0, float(start_position))
        result = ScheduleResult(
            end_position=start,
            counter=counter,
            effective_interval=effective_interval,
            is_loop=is_loop,
            independent=self.engine.independent,
        )
        if not entries:
            return result

        self.check_sources(entries)

        if self.engine.independent:
            target = math.inf
            if is_loop:
                target = self.params.loop_duration * overfill_factor(
                    effective_interval, self.params.loop_duration
                )
            for slot in range(self.engine.slot_count):
                assignment = self.engine.assignment_for_slot(slot)
                self._walk(entries, start, [assignment], target, is_loop, result)
        else:
            target = self.params.loop_duration if is_loop else math.inf
            self._walk(entries, start, None, target, is_loop, result)

        if result.placed:
            result.end_position = max(p.end for p in result.placed)
        logger.debug(
            "Placed %d segments in lane '%s' from %.3f to %.3f",
            len(result.placed), self.lane, start, result.end_position,
        )
        return result

    def _walk(
        self,
        entries: Sequence[PoolEntry],
        start: float,
        fixed: Optional[List[TrackAssignment]],
        target: float,
        is_loop: bool,
        result: ScheduleResult,
    ) -> None:
        """Walk the pool with one cursor.

        ``fixed`` pins every placement to the given assignments; otherwise
        the engine decides per placement and the counter in ``result`` is
        advanced.
        """

        interval = result.effective_interval
        align = self.params.align_to_seconds
        cursor = start
        placed = 0

        def place_one(entry: PoolEntry) -> None:
            nonlocal cursor
            position = align_position(cursor, interval, align)
            if fixed is None:
                targets, result.counter = self.engine.assign(result.counter)
            else:
                targets = fixed
            for assignment in targets:
                result.placed.append(self._create(entry, assignment, position))
            cursor = next_position(position, entry.length, interval)

        if not is_loop:
            for entry in entries:
                for _ in range(self.params.instance_amount):
                    place_one(entry)
            return

        index = 0
        while cursor - start < target and placed < LOOP_MAX_ITERATIONS:
            entry = entries[index]
            for _ in range(self.params.instance_amount):
                if cursor - start >= target or placed >= LOOP_MAX_ITERATIONS:
                    break
                place_one(entry)
                placed += 1
            index = (index + 1) % len(entries)
        if placed >= LOOP_MAX_ITERATIONS and cursor - start < target:
            warning = LoopTruncatedWarning(
                f"Loop placement stopped after {placed} items at {cursor - start:.3f}s of {target:.3f}s",
                track=fixed[0].track if fixed else None,
            )
            logger.warning("Lane '%s': %s", self.lane, warning)
            result.warnings.append(warning)

    def _create(self, entry: PoolEntry, assignment: TrackAssignment, position: float) -> PlacedItem:
        segment = self.host.create_segment(
            assignment.track,
            entry.source_item.file_path,
            position,
            entry.source_offset,
            entry.length,
            lane=self.lane,
            channel=assignment.channel,
            name=entry.name,
            variation=self.variation,
        )
        return PlacedItem(
            entry=entry,
            segment=segment,
            track=assignment.track,
            position=position,
            length=entry.length,
            track_slot=assignment.slot,
            channel=assignment.channel,
        )


__all__ = [
    "DEFAULT_SPACING",
    "DEFAULT_LOOP_INTERVAL",
    "LOOP_MAX_ITERATIONS",
    "MIN_FORWARD_PROGRESS",
    "MIN_OVERFILL",
    "resolve_effective_interval",
    "overfill_factor",
    "align_position",
    "next_position",
    "ScheduleResult",
    "PlacementScheduler",
]
