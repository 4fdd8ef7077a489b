"""Reference track topology provider.

Turns a container's channel layout and the channel counts of its items into a
:class:`~ambiance_core.models.TrackTopology`. Hosts that build their own
channel tracks can supply any object implementing :class:`TopologyProvider`
instead.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from .models import (
    ChannelLayout,
    ChannelSelection,
    Container,
    LayoutVariant,
    TrackTopology,
    TrackType,
)

# Source channels kept when folding 5.0/7.0 material into four tracks
# (L, R, LS, RS with the centre skipped).
_SMART_ROUTING_CHANNELS = {
    LayoutVariant.ITU: [0, 1, 3, 4],
    LayoutVariant.SMPTE: [0, 2, 3, 4],
}


@dataclass
class ItemAnalysis:
    is_empty: bool
    is_homogeneous: bool
    dominant_channels: int
    channel_counts: Dict[int, int] = field(default_factory=dict)
    total_items: int = 0


class TopologyProvider(Protocol):
    def analyze_items(self, container: Container) -> ItemAnalysis:
        ...

    def determine_topology(
        self, container: Container, analysis: ItemAnalysis
    ) -> TrackTopology:
        ...


def layout_labels(layout: ChannelLayout, variant: Optional[LayoutVariant] = None) -> List[str]:
    """Channel labels of ``layout`` in output order."""

    smpte = variant is LayoutVariant.SMPTE
    if layout is ChannelLayout.MONO:
        return ["M"]
    if layout is ChannelLayout.STEREO:
        return ["L", "R"]
    if layout is ChannelLayout.QUAD:
        return ["L", "R", "LS", "RS"]
    front = ["L", "C", "R"] if smpte else ["L", "R", "C"]
    if layout is ChannelLayout.SURROUND_5_0:
        return front + ["LS", "RS"]
    return front + ["LS", "RS", "LB", "RB"]


def label_to_channel(
    label: str, layout: ChannelLayout, variant: Optional[LayoutVariant] = None
) -> int:
    """1-based output channel carrying ``label`` in ``layout``."""

    labels = layout_labels(layout, variant)
    if label not in labels:
        raise KeyError(f"{label!r} is not a channel of {layout.value}")
    return labels.index(label) + 1


def analyze_items(container: Container) -> ItemAnalysis:
    if not container.items:
        return ItemAnalysis(is_empty=True, is_homogeneous=True, dominant_channels=2)
    counts = Counter(item.num_channels or 2 for item in container.items)
    # Most frequent channel count, lowest count wins ties.
    dominant = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]
    return ItemAnalysis(
        is_empty=False,
        is_homogeneous=len(counts) == 1,
        dominant_channels=dominant,
        channel_counts=dict(counts),
        total_items=len(container.items),
    )


def _mono_tracks(container: Container, strategy: str, warning: Optional[str] = None,
                 selection: ChannelSelection = ChannelSelection.MONO) -> TrackTopology:
    layout = container.channel_layout
    labels = layout_labels(layout, container.layout_variant)
    return TrackTopology(
        track_count=layout.channels,
        track_type=TrackType.MONO,
        channels_per_track=1,
        track_labels=labels,
        track_indices=list(range(1, layout.channels + 1)),
        distribution_applicable=True,
        channel_selection_mode=selection,
        strategy=strategy,
        warning=warning,
    )


def _stereo_pairs(container: Container, strategy: str) -> TrackTopology:
    layout = container.channel_layout
    variant = container.layout_variant
    return TrackTopology(
        track_count=2,
        track_type=TrackType.STEREO,
        channels_per_track=2,
        track_labels=["L+R", "LS+RS"],
        track_indices=[
            label_to_channel("L", layout, variant),
            label_to_channel("LS", layout, variant),
        ],
        distribution_applicable=True,
        strategy=strategy,
    )


def _single_track(container: Container, strategy: str, track_type: TrackType,
                  selection: ChannelSelection = ChannelSelection.NONE,
                  warning: Optional[str] = None) -> TrackTopology:
    channels = container.channel_layout.channels
    return TrackTopology(
        track_count=1,
        track_type=track_type,
        channels_per_track=2 if track_type is TrackType.STEREO else channels,
        track_labels=[container.name],
        track_indices=[1],
        channel_selection_mode=selection,
        strategy=strategy,
        warning=warning,
    )


def determine_topology(container: Container, analysis: ItemAnalysis) -> TrackTopology:
    """Pick the channel-track layout for ``container``.

    Rules are checked in priority order; the first that matches wins.
    """

    out = container.channel_layout.channels
    item_ch = analysis.dominant_channels
    selection = container.channel_selection

    if not analysis.is_homogeneous:
        return _mono_tracks(
            container,
            "mixed-items-forced-mono",
            warning="Mixed channel items detected - forcing mono channel selection",
        )

    if analysis.is_empty:
        return _single_track(container, "empty-default", TrackType.MULTI)

    if item_ch == out and selection is ChannelSelection.NONE:
        return _single_track(container, "perfect-match-passthrough", TrackType.MULTI)

    if item_ch == 1:
        return _mono_tracks(container, "mono-distribution", selection=ChannelSelection.NONE)

    if selection is ChannelSelection.STEREO:
        if item_ch % 2:
            return _mono_tracks(
                container,
                "invalid-stereo-fallback-mono",
                warning="Cannot split odd-channel items into stereo pairs - using mono",
            )
        if out == 2:
            return _single_track(
                container, "stereo-pair-selection", TrackType.STEREO, ChannelSelection.STEREO
            )
        if out >= 4:
            return _stereo_pairs(container, "stereo-pairs")

    if selection is ChannelSelection.MONO:
        return _mono_tracks(container, "split-to-mono")

    # Automatic optimisation.
    if item_ch == 2 and out >= 4:
        return _stereo_pairs(container, "auto-stereo-pairs")

    if item_ch == 4 and out >= 5:
        layout, variant = container.channel_layout, container.layout_variant
        return TrackTopology(
            track_count=4,
            track_type=TrackType.MONO,
            channels_per_track=1,
            track_labels=["L", "R", "LS", "RS"],
            track_indices=[label_to_channel(l, layout, variant) for l in ("L", "R", "LS", "RS")],
            native_multichannel_passthrough=True,
            channel_selection_mode=ChannelSelection.MONO,
            source_channels=[0, 1, 2, 3],
            strategy="auto-4ch-in-surround",
        )

    if item_ch > out:
        if item_ch in (5, 7) and container.layout_variant is not None and out == 4:
            return TrackTopology(
                track_count=4,
                track_type=TrackType.MONO,
                channels_per_track=1,
                track_labels=["L", "R", "LS", "RS"],
                track_indices=[1, 2, 3, 4],
                native_multichannel_passthrough=True,
                channel_selection_mode=ChannelSelection.MONO,
                source_channels=list(_SMART_ROUTING_CHANNELS[container.layout_variant]),
                strategy="surround-to-quad-skip-center",
                warning=f"Items have {item_ch} channels, mapping to 4.0 (skipping center channel).",
            )
        if out == 2:
            return _single_track(
                container,
                "auto-downmix-stereo",
                TrackType.STEREO,
                ChannelSelection.STEREO,
                warning=f"Items have {item_ch} channels but output is stereo. Using channels 1-2.",
            )
        return _single_track(
            container,
            "auto-downmix-to-first",
            TrackType.MULTI,
            ChannelSelection.MONO,
            warning=f"Items have {item_ch} channels but output is {out} channels. Using channel 1 only.",
        )

    return _mono_tracks(
        container,
        "auto-default",
        selection=ChannelSelection.MONO if item_ch > 1 else ChannelSelection.NONE,
    )


class DefaultTopologyProvider:
    """:class:`TopologyProvider` backed by the module level rules."""

    def analyze_items(self, container: Container) -> ItemAnalysis:
        return analyze_items(container)

    def determine_topology(self, container: Container, analysis: ItemAnalysis) -> TrackTopology:
        return determine_topology(container, analysis)


__all__ = [
    "ItemAnalysis",
    "TopologyProvider",
    "DefaultTopologyProvider",
    "layout_labels",
    "label_to_channel",
    "analyze_items",
    "determine_topology",
]
