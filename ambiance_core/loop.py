"""Seamless loop creation by zero-crossing split/swap.

The last item on a track is cut at a zero crossing near its middle and the
right-hand fragment is moved in front of the first item, so the material
that ends the loop also leads into its start. Independently filled tracks
are first aligned to a common start and cut at a common end so the whole
multichannel region loops as one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import (
    ExportWarning,
    LoopDurationDriftWarning,
    LoopSkippedWarning,
    OverlapReducedWarning,
    PositionClampedWarning,
    ZeroCrossingFallbackWarning,
)
from .models import PlacedItem, group_by_track
from .timeline import TimelineHost

logger = logging.getLogger(__name__)

# Half width, in seconds, of the zero-crossing search window.
ZERO_CROSSING_WINDOW = 0.05

_EPSILON = 1e-9


@dataclass
class LoopResult:
    items: List[PlacedItem] = field(default_factory=list)
    warnings: List[ExportWarning] = field(default_factory=list)
    # Fragments created by splitting, already included in ``items``.
    fragments: List[PlacedItem] = field(default_factory=list)


def _warn(warnings: List[ExportWarning], warning: ExportWarning) -> None:
    logger.warning("%s", warning)
    warnings.append(warning)


def find_nearest_zero_crossing(
    host: TimelineHost,
    item: PlacedItem,
    target: float,
    window: float = ZERO_CROSSING_WINDOW,
) -> Optional[float]:
    """Project time of the sign change closest to ``target`` inside ``item``.

    Returns ``None`` when the window holds no sign change. Items shorter
    than four windows search a quarter of their length instead.
    """

    if item.length < window * 4:
        window = item.length / 4
    lo = max(item.position, target - window)
    hi = min(item.end, target + window)

    rate = int(host.source_sample_rate(item.segment))
    num_samples = int((hi - lo) * rate)
    if num_samples <= 1:
        return None

    samples = np.asarray(host.read_samples(item.segment, lo, num_samples, rate, 1), dtype=np.float64)
    a, b = samples[:-1], samples[1:]
    crossings = np.flatnonzero(((a >= 0) & (b < 0)) | ((a <= 0) & (b > 0)))
    if crossings.size == 0:
        return None

    # A crossing is reported at the first sample after the sign change.
    times = lo + (crossings + 1) / float(rate)
    times = times[(times > item.position + _EPSILON) & (times < item.end - _EPSILON)]
    if times.size == 0:
        return None
    return float(times[np.argmin(np.abs(times - target))])


def _split_point(
    host: TimelineHost, item: PlacedItem, target: float, warnings: List[ExportWarning]
) -> float:
    point = find_nearest_zero_crossing(host, item, target)
    if point is None:
        _warn(warnings, ZeroCrossingFallbackWarning(
            f"No zero crossing near {target:.3f}s, splitting at that point", item.track,
        ))
        return target
    return point


def _split(host: TimelineHost, item: PlacedItem, at: float) -> PlacedItem:
    """Split ``item`` in place and return the right fragment as a new item."""

    right = host.split_segment(item.segment, at)
    item.length = at - item.position
    return PlacedItem(
        entry=item.entry,
        segment=right,
        track=item.track,
        position=at,
        length=right.length,
        track_slot=item.track_slot,
        channel=item.channel,
    )


def _move(host: TimelineHost, item: PlacedItem, position: float) -> None:
    host.move_segment(item.segment, position)
    item.position = position


def split_and_swap(
    host: TimelineHost,
    items: Sequence[PlacedItem],
    overlap: float,
) -> Tuple[List[PlacedItem], List[ExportWarning]]:
    """Close the loop of one track.

    ``items`` must be sorted by position. The fragment cut from the last
    item ends ``overlap`` seconds into the first item, or overlaps it by its
    whole length when it is shorter than that.
    """

    warnings: List[ExportWarning] = []
    first, last = items[0], items[-1]
    track = last.track

    split_at = _split_point(host, last, last.position + last.length / 2, warnings)
    fragment = _split(host, last, split_at)

    achieved = overlap
    if fragment.length < overlap:
        achieved = fragment.length
        _warn(warnings, OverlapReducedWarning(
            f"Fragment of {fragment.length:.3f}s is shorter than the {overlap:.3f}s overlap, "
            f"overlap reduced to {achieved:.3f}s",
            track,
        ))

    position = first.position + achieved - fragment.length
    if position < 0:
        _warn(warnings, PositionClampedWarning(
            f"Right part position clamped to 0 (would have been {position:.3f}s)", track,
        ))
        position = 0.0
    _move(host, fragment, position)

    if achieved > 0:
        host.set_fades(fragment.segment, fade_out=achieved)
        host.set_fades(first.segment, fade_in=achieved)

    return [fragment] + list(items), warnings


def process_loop(
    host: TimelineHost,
    placed: Sequence[PlacedItem],
    effective_interval: float,
    loop_duration: Optional[float] = None,
) -> LoopResult:
    """Apply split/swap to every track of a shared-cursor placement.

    Tracks with fewer than two items, or whose material is shorter than
    ``loop_duration``, are left untouched with a warning.
    """

    result = LoopResult()
    overlap = abs(effective_interval) if effective_interval < 0 else 0.0

    for track, items in sorted(group_by_track(placed).items()):
        if len(items) < 2:
            _warn(result.warnings, LoopSkippedWarning(
                f"Need at least 2 items for meaningful loop (found {len(items)})", track,
            ))
            result.items.extend(items)
            continue

        span = items[-1].end - items[0].position
        if loop_duration is not None and span < loop_duration - _EPSILON:
            _warn(result.warnings, LoopSkippedWarning(
                f"Last item ends before loop duration ({span:.2f}s < {loop_duration:.2f}s)", track,
            ))
            result.items.extend(items)
            continue

        looped, warnings = split_and_swap(host, items, overlap)
        result.items.extend(looped)
        result.fragments.append(looped[0])
        result.warnings.extend(warnings)

    return result


def synchronize_tracks(
    host: TimelineHost,
    placed: Sequence[PlacedItem],
    effective_interval: float,
    loop_duration: float,
) -> LoopResult:
    """Make independently filled tracks start and end together.

    Every track is shifted so its first item starts at the earliest start
    of all tracks. Items beginning at or past ``start + loop_duration`` are
    overfill and are deleted. An item straddling the end is split at a zero
    crossing near it and the fragment wraps round to the common start.
    """

    result = LoopResult()
    tracks: Dict[int, List[PlacedItem]] = group_by_track(placed)
    if not tracks:
        return result

    target_start = min(items[0].position for items in tracks.values())
    target_end = target_start + loop_duration
    overlap = abs(effective_interval) if effective_interval < 0 else 0.0

    for track, items in sorted(tracks.items()):
        shift = target_start - items[0].position
        if abs(shift) > _EPSILON:
            for item in items:
                _move(host, item, item.position + shift)

        kept: List[PlacedItem] = []
        for item in items:
            if item.position >= target_end - _EPSILON:
                host.delete_segment(item.segment)
            else:
                kept.append(item)

        fragments: List[PlacedItem] = []
        for item in kept:
            if item.end <= target_end + _EPSILON:
                continue
            split_at = _split_point(host, item, target_end, result.warnings)
            fragment = _split(host, item, split_at)
            _move(host, fragment, target_start)
            fade = min(overlap, fragment.length)
            if fade > 0:
                host.set_fades(fragment.segment, fade_out=fade)
            fragments.append(fragment)

        if fragments and overlap > 0:
            host.set_fades(kept[0].segment, fade_in=overlap)

        track_items = sorted(fragments + kept, key=lambda p: p.position)
        result.items.extend(track_items)
        result.fragments.extend(fragments)

        if track_items:
            span = max(p.end for p in track_items) - target_start
            if abs(span - loop_duration) > ZERO_CROSSING_WINDOW:
                _warn(result.warnings, LoopDurationDriftWarning(
                    f"Loop spans {span:.3f}s instead of {loop_duration:.3f}s", track,
                ))

    return result


def shift_to_start(host: TimelineHost, items: Sequence[PlacedItem], start: float) -> float:
    """Move ``items`` as one block so the earliest begins at ``start``.

    Returns the offset applied.
    """

    if not items:
        return 0.0
    offset = start - min(item.position for item in items)
    if abs(offset) <= _EPSILON:
        return 0.0
    for item in items:
        _move(host, item, item.position + offset)
    return offset


__all__ = [
    "ZERO_CROSSING_WINDOW",
    "LoopResult",
    "find_nearest_zero_crossing",
    "split_and_swap",
    "process_loop",
    "synchronize_tracks",
    "shift_to_start",
]
