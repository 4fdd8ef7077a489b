"""Batch export of containers onto a timeline host."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Union

import numpy as np

from .distribution import DistributionEngine
from .errors import EmptyPoolWarning, ExportWarning, TopologyWarning
from .loop import LoopResult, process_loop, shift_to_start, synchronize_tracks
from .models import (
    ContainerEntry,
    Folder,
    Group,
    PlacedItem,
    Variation,
    collect_containers,
    effective_container_settings,
)
from .pool import pool_size, resolve_pool
from .scheduler import PlacementScheduler, resolve_effective_interval
from .settings import ExportSettings, clamp_max_pool_items, resolve_loop_mode
from .timeline import TimelineHost
from .topology import DefaultTopologyProvider, TopologyProvider

logger = logging.getLogger(__name__)

# Gap left between the output of consecutive containers, in seconds.
CONTAINER_SPACING = 1.0


class ExportStatus(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ExportResult:
    key: str
    name: str
    status: ExportStatus
    items_exported: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    start_position: Optional[float] = None
    end_position: Optional[float] = None
    region: Optional[str] = None
    is_loop: bool = False


@dataclass
class BatchResult:
    results: List[ExportResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def completed(self) -> int:
        """Containers that exported, with or without warnings."""

        return sum(1 for r in self.results if r.status is not ExportStatus.ERROR)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status is ExportStatus.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(len(r.warnings) for r in self.results)

    @property
    def items_exported(self) -> int:
        return sum(r.items_exported for r in self.results)

    def summary(self) -> str:
        text = (
            f"Exported {self.items_exported} items from {self.completed}/{self.total} containers"
        )
        if self.failed:
            text += f", {self.failed} failed"
        if self.warning_count:
            text += f", {self.warning_count} warnings"
        return text


@dataclass
class ExportSuccess:
    entry: ContainerEntry
    placed: List[PlacedItem]
    warnings: List[ExportWarning]
    start_position: float
    end_position: float
    is_loop: bool = False
    region: Optional[str] = None


@dataclass
class ExportFailure:
    entry: ContainerEntry
    error: Exception


ExportOutcome = Union[ExportSuccess, ExportFailure]


def parse_region_pattern(
    pattern: str, container_name: str, group_name: str = "", index: int = 1
) -> str:
    """Expand ``$container``, ``$group`` and ``$index`` in a region name."""

    name = pattern or "$container"
    name = name.replace("$container", container_name or "Container")
    name = name.replace("$group", group_name or "Group")
    return name.replace("$index", str(index))


@dataclass
class _OrchestratorOptions:
    container_spacing: float
    seed: Optional[int]


class ExportOrchestrator:
    """Run the export pipeline for a batch of containers.

    Each container goes through pool resolution, topology and distribution,
    placement and, for loops, split/swap or multi-track synchronisation. A
    container that raises is rolled back on the host and reported as an
    error; the batch carries on with the next one at the same cursor.
    """

    def __init__(
        self,
        host: TimelineHost,
        settings: Optional[ExportSettings] = None,
        *,
        topology_provider: Optional[TopologyProvider] = None,
        container_spacing: float = CONTAINER_SPACING,
        seed: Optional[int] = None,
    ) -> None:
        self.host = host
        self.settings = settings or ExportSettings()
        self.topology_provider = topology_provider or DefaultTopologyProvider()
        self._options = _OrchestratorOptions(
            container_spacing=max(0.0, float(container_spacing)),
            seed=seed,
        )

    def export_container(
        self,
        entry: ContainerEntry,
        start_position: float,
        export_index: int = 1,
        rng: Optional[np.random.Generator] = None,
    ) -> ExportSuccess:
        """Export one container starting at ``start_position``.

        Raises on failure; :meth:`export` turns that into an error result.
        """

        container = entry.container
        params = self.settings.effective_params(entry.key)
        inherited = effective_container_settings(container, entry.group)
        is_loop = resolve_loop_mode(params, inherited.trigger_rate, inherited.interval_mode)
        interval = resolve_effective_interval(params, inherited, is_loop)
        rng = rng if rng is not None else np.random.default_rng(self._options.seed)
        warnings: List[ExportWarning] = []

        analysis = self.topology_provider.analyze_items(container)
        topology = self.topology_provider.determine_topology(container, analysis)
        if topology.warning:
            warnings.append(TopologyWarning(topology.warning))
        container.channel_track_ids = list(topology.track_indices)

        max_items = clamp_max_pool_items(params.max_pool_items, pool_size(container))
        entries = resolve_pool(
            container, max_items, rng, path=entry.path, container_index=entry.container_index
        )
        if not entries:
            warning = EmptyPoolWarning(f"Container '{container.name}' has no items to export")
            logger.warning("%s", warning)
            warnings.append(warning)
            return ExportSuccess(entry, [], warnings, start_position, start_position, is_loop)

        engine = DistributionEngine(topology, params.export_mode, params.distribution_mode, rng)
        variation = Variation(
            pitch=inherited.randomize_pitch and params.preserve_pitch,
            volume=inherited.randomize_volume and params.preserve_volume,
            pan=inherited.randomize_pan and params.preserve_pan,
        )
        scheduler = PlacementScheduler(
            self.host, engine, params, lane=entry.key, variation=variation
        )
        # Loops are laid out one item length in; the wrapped fragment fits
        # in that lead and the block is then moved back to start_position.
        lead = max(e.length for e in entries) if is_loop else 0.0
        schedule = scheduler.place(entries, start_position + lead, interval, is_loop)
        placed = schedule.placed
        warnings.extend(schedule.warnings)

        if is_loop and placed:
            loop: LoopResult
            if schedule.independent and engine.slot_count > 1:
                loop = synchronize_tracks(self.host, placed, interval, params.loop_duration)
            else:
                loop = process_loop(self.host, placed, interval, params.loop_duration)
            placed = loop.items
            warnings.extend(loop.warnings)
            shift_to_start(self.host, placed, max(0.0, start_position))

        if not placed:
            return ExportSuccess(entry, [], warnings, start_position, start_position, is_loop)

        region_start = min(p.position for p in placed)
        region_end = max(p.end for p in placed)
        region = None
        if params.create_regions:
            group_name = entry.group.name if entry.group else ""
            region = parse_region_pattern(
                params.region_pattern, container.name, group_name, export_index
            )
            self.host.add_region(region_start, region_end, region)

        return ExportSuccess(
            entry, placed, warnings, region_start, region_end, is_loop, region
        )

    def _run_isolated(
        self,
        entry: ContainerEntry,
        start_position: float,
        export_index: int,
        rng: np.random.Generator,
    ) -> ExportOutcome:
        token = self.host.checkpoint()
        routing = list(entry.container.channel_track_ids)
        try:
            return self.export_container(entry, start_position, export_index, rng)
        except Exception as exc:
            logger.exception("Export of '%s' failed", entry.display_name)
            self.host.rollback(token)
            entry.container.channel_track_ids = routing
            return ExportFailure(entry, exc)

    def export(
        self, entries: Iterable[ContainerEntry], start_position: float = 0.0
    ) -> BatchResult:
        """Export every enabled container in order, chaining positions."""

        rng = np.random.default_rng(self._options.seed)
        batch = BatchResult()
        cursor = max(0.0, float(start_position))
        export_index = 0

        for entry in entries:
            if not self.settings.is_enabled(entry.key):
                logger.debug("Skipping disabled container %s", entry.key)
                continue
            export_index += 1
            outcome = self._run_isolated(entry, cursor, export_index, rng)

            if isinstance(outcome, ExportSuccess):
                result = ExportResult(
                    key=entry.key,
                    name=entry.display_name,
                    status=ExportStatus.WARNING if outcome.warnings else ExportStatus.SUCCESS,
                    items_exported=len(outcome.placed),
                    warnings=[str(w) for w in outcome.warnings],
                    start_position=outcome.start_position,
                    end_position=outcome.end_position,
                    region=outcome.region,
                    is_loop=outcome.is_loop,
                )
                if outcome.placed:
                    cursor = outcome.end_position + self._options.container_spacing
            elif isinstance(outcome, ExportFailure):
                result = ExportResult(
                    key=entry.key,
                    name=entry.display_name,
                    status=ExportStatus.ERROR,
                    errors=[str(outcome.error)],
                )
            else:
                raise TypeError(f"Unexpected export outcome: {outcome!r}")

            logger.info(
                "%s: %s (%d items)", result.name, result.status.value, result.items_exported
            )
            batch.results.append(result)

        logger.info("%s", batch.summary())
        return batch

    def export_project(
        self, items: Iterable[Union[Folder, Group]], start_position: float = 0.0
    ) -> BatchResult:
        """Collect the containers of a folder/group hierarchy and export them."""

        return self.export(collect_containers(items), start_position)


__all__ = [
    "CONTAINER_SPACING",
    "ExportStatus",
    "ExportResult",
    "BatchResult",
    "ExportSuccess",
    "ExportFailure",
    "ExportOutcome",
    "parse_region_pattern",
    "ExportOrchestrator",
]
