"""Container, pool and placement data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union


class ChannelLayout(Enum):
    """Output channel configuration of a container."""

    MONO = "mono"
    STEREO = "stereo"
    QUAD = "quad"
    SURROUND_5_0 = "5.0"
    SURROUND_7_0 = "7.0"

    @property
    def channels(self) -> int:
        return _LAYOUT_CHANNELS[self]


_LAYOUT_CHANNELS = {
    ChannelLayout.MONO: 1,
    ChannelLayout.STEREO: 2,
    ChannelLayout.QUAD: 4,
    ChannelLayout.SURROUND_5_0: 5,
    ChannelLayout.SURROUND_7_0: 7,
}


class LayoutVariant(Enum):
    """Channel ordering of surround material."""

    ITU = "itu"  # L R C LS RS [LB RB]
    SMPTE = "smpte"  # L C R LS RS [LB RB]


class IntervalMode(Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    COVERAGE = "coverage"
    CHUNK = "chunk"


class DistributionMode(Enum):
    ROUND_ROBIN = "round-robin"
    RANDOM = "random"
    ALL_TRACKS = "all-tracks"


class ExportMode(Enum):
    FLATTEN = "flatten"
    PRESERVE = "preserve"


class LoopMode(Enum):
    AUTO = "auto"
    ON = "on"
    OFF = "off"


class TrackType(Enum):
    MONO = "mono"
    STEREO = "stereo"
    MULTI = "multi"


class ChannelSelection(Enum):
    NONE = "none"
    MONO = "mono"
    STEREO = "stereo"
    SPLIT_STEREO = "split-stereo"


@dataclass(frozen=True)
class Area:
    """Named sub-region of a source item, offsets relative to the item start."""

    start: float
    end: float
    name: str = ""

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass
class SourceItem:
    """Reference to a slice of an audio file."""

    name: str
    file_path: Optional[str]
    length: float
    start_offset: float = 0.0
    num_channels: int = 2
    areas: List[Area] = field(default_factory=list)


@dataclass
class Container:
    """A pool of source items plus its placement and channel configuration."""

    name: str
    items: List[SourceItem] = field(default_factory=list)
    channel_layout: ChannelLayout = ChannelLayout.STEREO
    layout_variant: Optional[LayoutVariant] = None
    channel_selection: ChannelSelection = ChannelSelection.NONE
    # Negative values mean overlap. None means "not set on this container".
    trigger_rate: Optional[float] = None
    interval_mode: IntervalMode = IntervalMode.ABSOLUTE
    override_parent: bool = False
    randomize_pitch: bool = True
    randomize_volume: bool = True
    randomize_pan: bool = True
    # Written back by the export with the real destination channels.
    channel_track_ids: List[int] = field(default_factory=list)


@dataclass
class Group:
    """Named set of containers; supplies inherited trigger settings."""

    name: str
    containers: List[Container] = field(default_factory=list)
    trigger_rate: float = 10.0
    interval_mode: IntervalMode = IntervalMode.ABSOLUTE
    randomize_pitch: bool = True
    randomize_volume: bool = True
    randomize_pan: bool = True


@dataclass
class Folder:
    name: str
    children: List[Union["Folder", Group]] = field(default_factory=list)


@dataclass(frozen=True)
class ContainerSettings:
    """Trigger and variation settings after parent-group inheritance."""

    trigger_rate: Optional[float]
    interval_mode: IntervalMode
    randomize_pitch: bool
    randomize_volume: bool
    randomize_pan: bool


def effective_container_settings(
    container: Container, group: Optional[Group] = None
) -> ContainerSettings:
    """Return the settings a container actually uses.

    Containers that do not override their parent take the trigger rate,
    interval mode and randomization toggles of their group. The container's
    own ``trigger_rate`` field is only meaningful when ``override_parent`` is
    set (or when there is no group at all).
    """

    if container.override_parent or group is None:
        return ContainerSettings(
            trigger_rate=container.trigger_rate,
            interval_mode=container.interval_mode,
            randomize_pitch=container.randomize_pitch,
            randomize_volume=container.randomize_volume,
            randomize_pan=container.randomize_pan,
        )
    return ContainerSettings(
        trigger_rate=group.trigger_rate,
        interval_mode=group.interval_mode,
        randomize_pitch=group.randomize_pitch,
        randomize_volume=group.randomize_volume,
        randomize_pan=group.randomize_pan,
    )


@dataclass
class ContainerEntry:
    """A container located in the project hierarchy."""

    path: Tuple[int, ...]
    container_index: int
    container: Container
    group: Optional[Group]
    key: str

    @property
    def display_name(self) -> str:
        group_name = self.group.name if self.group else ""
        if group_name:
            return f"{group_name} / {self.container.name}"
        return self.container.name


def make_container_key(path: Sequence[int], container_index: int) -> str:
    return "_".join(str(p) for p in path) + f"::{container_index}"


def make_item_key(path: Sequence[int], container_index: int, item_index: int) -> str:
    return ",".join(str(p) for p in path) + f"::{container_index}::{item_index}"


def collect_containers(items: Iterable[Union[Folder, Group]]) -> List[ContainerEntry]:
    """Walk folders and groups depth-first and list every container.

    Indices are 1-based so keys stay stable with the ones shown to users.
    """

    def _walk(nodes, parent_path: Tuple[int, ...]) -> Iterator[ContainerEntry]:
        for index, node in enumerate(nodes, start=1):
            path = parent_path + (index,)
            if isinstance(node, Folder):
                yield from _walk(node.children, path)
            elif isinstance(node, Group):
                for ci, container in enumerate(node.containers, start=1):
                    yield ContainerEntry(
                        path=path,
                        container_index=ci,
                        container=container,
                        group=node,
                        key=make_container_key(path, ci),
                    )

    return list(_walk(items, ()))


@dataclass(frozen=True)
class PoolEntry:
    """One placeable unit: a full item or one of its areas.

    ``source_item`` is a private copy taken at resolution time.
    """

    source_item: SourceItem
    area: Area
    source_index: int
    key: str

    @property
    def length(self) -> float:
        return self.area.length

    @property
    def source_offset(self) -> float:
        return self.source_item.start_offset + self.area.start

    @property
    def name(self) -> str:
        return self.area.name or self.source_item.name or "Exported"


@dataclass
class TrackTopology:
    """Channel-track layout needed to realise a container's channel layout."""

    track_count: int
    track_type: TrackType
    channels_per_track: int
    track_labels: List[str] = field(default_factory=list)
    # Real 1-based destination channel for each logical slot.
    track_indices: List[int] = field(default_factory=list)
    distribution_applicable: bool = False
    native_multichannel_passthrough: bool = False
    channel_selection_mode: ChannelSelection = ChannelSelection.NONE
    # Source channel (0-based) extracted on each slot when smart routing.
    source_channels: List[int] = field(default_factory=list)
    strategy: str = ""
    warning: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.track_indices:
            self.track_indices = list(range(1, self.track_count + 1))
        if len(self.track_indices) != self.track_count:
            raise ValueError(
                f"Topology has {self.track_count} tracks but "
                f"{len(self.track_indices)} track indices"
            )


@dataclass(frozen=True)
class Variation:
    """Which randomizations the host may apply to a placed segment."""

    pitch: bool = False
    volume: bool = False
    pan: bool = False


@dataclass
class PlacedItem:
    """A pool entry realised on the timeline.

    ``segment`` is the host handle. ``position`` and ``length`` are kept in
    sync with the host when the loop synthesizer splits or moves it.
    """

    entry: PoolEntry
    segment: object
    track: int
    position: float
    length: float
    track_slot: int
    channel: Optional[int] = None

    @property
    def end(self) -> float:
        return self.position + self.length

    @property
    def source_item(self) -> SourceItem:
        return self.entry.source_item

    @property
    def area(self) -> Area:
        return self.entry.area


def group_by_track(placed: Iterable[PlacedItem]) -> Dict[int, List[PlacedItem]]:
    """Group placed items per real track, each list sorted by position."""

    tracks: Dict[int, List[PlacedItem]] = {}
    for item in placed:
        tracks.setdefault(item.track, []).append(item)
    for items in tracks.values():
        items.sort(key=lambda p: p.position)
    return tracks


__all__ = [
    "ChannelLayout",
    "LayoutVariant",
    "IntervalMode",
    "DistributionMode",
    "ExportMode",
    "LoopMode",
    "TrackType",
    "ChannelSelection",
    "Area",
    "SourceItem",
    "Container",
    "Group",
    "Folder",
    "ContainerSettings",
    "effective_container_settings",
    "ContainerEntry",
    "make_container_key",
    "make_item_key",
    "collect_containers",
    "PoolEntry",
    "TrackTopology",
    "Variation",
    "PlacedItem",
    "group_by_track",
]
