"""Decide which channel track(s) receive each placement."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .models import ChannelSelection, DistributionMode, ExportMode, TrackTopology


class Strategy(Enum):
    SINGLE = "single"  # flatten: first track, whole items
    BROADCAST = "broadcast"  # same item on every track, per-track channel extraction
    ALL = "all"  # same item on every track, no distribution
    ROUND_ROBIN = "round-robin"
    RANDOM = "random"
    INDEPENDENT = "independent"  # every track walks the full pool on its own


@dataclass(frozen=True)
class TrackAssignment:
    """Target of one placement: logical slot, real track and extracted channel."""

    slot: int
    track: int
    channel: Optional[int] = None


def select_strategy(
    topology: TrackTopology,
    export_mode: ExportMode,
    distribution_mode: DistributionMode,
) -> Strategy:
    if export_mode is ExportMode.FLATTEN or topology.track_count <= 1:
        return Strategy.SINGLE
    if export_mode is not ExportMode.PRESERVE:
        raise ValueError(f"Unsupported export mode: {export_mode!r}")
    if topology.native_multichannel_passthrough:
        return Strategy.BROADCAST
    if not topology.distribution_applicable:
        return Strategy.ALL
    if distribution_mode is DistributionMode.ROUND_ROBIN:
        return Strategy.ROUND_ROBIN
    if distribution_mode is DistributionMode.RANDOM:
        return Strategy.RANDOM
    if distribution_mode is DistributionMode.ALL_TRACKS:
        return Strategy.INDEPENDENT
    raise ValueError(f"Unsupported distribution mode: {distribution_mode!r}")


class DistributionEngine:
    """Map placements onto the tracks of a :class:`TrackTopology`.

    The round-robin counter is not stored here: :meth:`assign` takes the
    current value and returns the advanced one so the caller owns it for the
    whole placement run. Track numbers always come from
    ``topology.track_indices``.
    """

    def __init__(
        self,
        topology: TrackTopology,
        export_mode: ExportMode = ExportMode.PRESERVE,
        distribution_mode: DistributionMode = DistributionMode.ROUND_ROBIN,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.topology = topology
        self.strategy = select_strategy(topology, export_mode, distribution_mode)
        self._rng = rng if rng is not None else np.random.default_rng()

    @property
    def independent(self) -> bool:
        return self.strategy is Strategy.INDEPENDENT

    @property
    def slot_count(self) -> int:
        if self.strategy is Strategy.SINGLE:
            return 1
        return self.topology.track_count

    def channel_for_slot(self, slot: int) -> Optional[int]:
        """Source channel (0-based) to extract on ``slot``, ``None`` for whole items."""

        if self.strategy is Strategy.SINGLE:
            return None
        topology = self.topology
        if self.strategy is Strategy.BROADCAST:
            if slot < len(topology.source_channels):
                return topology.source_channels[slot]
            return slot
        mode = topology.channel_selection_mode
        if mode is ChannelSelection.SPLIT_STEREO:
            return 2 * slot
        if mode in (ChannelSelection.MONO, ChannelSelection.STEREO):
            return 0
        return None

    def assignment_for_slot(self, slot: int) -> TrackAssignment:
        if not 0 <= slot < self.slot_count:
            raise IndexError(f"Slot {slot} outside topology with {self.slot_count} slots")
        return TrackAssignment(
            slot=slot,
            track=self.topology.track_indices[slot],
            channel=self.channel_for_slot(slot),
        )

    def assign(self, counter: int) -> Tuple[List[TrackAssignment], int]:
        """Targets for the next placement and the advanced round-robin counter."""

        strategy = self.strategy
        if strategy is Strategy.SINGLE:
            return [self.assignment_for_slot(0)], counter
        if strategy in (Strategy.BROADCAST, Strategy.ALL):
            return [self.assignment_for_slot(s) for s in range(self.slot_count)], counter
        if strategy is Strategy.ROUND_ROBIN:
            counter += 1
            return [self.assignment_for_slot((counter - 1) % self.slot_count)], counter
        if strategy is Strategy.RANDOM:
            slot = int(self._rng.integers(0, self.slot_count))
            return [self.assignment_for_slot(slot)], counter
        raise RuntimeError(
            "Independent distribution places per track; use assignment_for_slot()"
        )


__all__ = [
    "Strategy",
    "TrackAssignment",
    "select_strategy",
    "DistributionEngine",
]
