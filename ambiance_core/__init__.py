"""Container export, placement and loop synthesis for ambiance soundscapes."""

from .models import (
    Area,
    ChannelLayout,
    ChannelSelection,
    Container,
    ContainerEntry,
    DistributionMode,
    ExportMode,
    Folder,
    Group,
    IntervalMode,
    LayoutVariant,
    LoopMode,
    PlacedItem,
    PoolEntry,
    SourceItem,
    TrackTopology,
    collect_containers,
)
from .errors import (
    AmbianceError,
    ExportWarning,
    MissingSourceError,
    ValidationError,
)
from .settings import (
    ContainerOverride,
    ExportParams,
    ExportSettings,
    load_export_defaults,
    save_export_defaults,
)
from .pool import resolve_pool
from .topology import DefaultTopologyProvider
from .distribution import DistributionEngine
from .scheduler import PlacementScheduler
from .loop import find_nearest_zero_crossing, process_loop, synchronize_tracks
from .timeline import Timeline, TimelineHost
from .export import BatchResult, ExportOrchestrator, ExportResult, ExportStatus

__all__ = [
    "Area",
    "ChannelLayout",
    "ChannelSelection",
    "Container",
    "ContainerEntry",
    "DistributionMode",
    "ExportMode",
    "Folder",
    "Group",
    "IntervalMode",
    "LayoutVariant",
    "LoopMode",
    "PlacedItem",
    "PoolEntry",
    "SourceItem",
    "TrackTopology",
    "collect_containers",
    "AmbianceError",
    "ExportWarning",
    "MissingSourceError",
    "ValidationError",
    "ContainerOverride",
    "ExportParams",
    "ExportSettings",
    "load_export_defaults",
    "save_export_defaults",
    "resolve_pool",
    "DefaultTopologyProvider",
    "DistributionEngine",
    "PlacementScheduler",
    "find_nearest_zero_crossing",
    "process_loop",
    "synchronize_tracks",
    "Timeline",
    "TimelineHost",
    "BatchResult",
    "ExportOrchestrator",
    "ExportResult",
    "ExportStatus",
]
