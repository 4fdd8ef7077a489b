"""Timeline host interface and an in-memory implementation.

The export pipeline never touches a DAW directly. Everything it needs from
the host (creating, moving and splitting segments, reading decoded samples
for zero-crossing analysis, regions and rollback) goes through
:class:`TimelineHost`. :class:`Timeline` implements it on plain numpy arrays
so exports can be computed, inspected and tested without a DAW.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Protocol

import numpy as np
import soundfile as sf
from scipy.signal import resample_poly

from .models import Variation

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100


@dataclass
class Segment:
    """A slice of an audio source placed on a track."""

    id: int
    track: int
    source: str
    position: float
    offset: float
    length: float
    lane: str = ""
    channel: Optional[int] = None
    name: str = ""
    variation: Variation = field(default_factory=Variation)
    fade_in: float = 0.0
    fade_out: float = 0.0

    @property
    def end(self) -> float:
        return self.position + self.length


@dataclass
class Region:
    start: float
    end: float
    name: str


@dataclass
class AudioSource:
    """Decoded audio as ``(frames, channels)`` float32."""

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return self.samples.shape[0] / float(self.sample_rate)


class TimelineHost(Protocol):
    def source_exists(self, source: Optional[str]) -> bool:
        ...

    def create_segment(
        self,
        track: int,
        source: str,
        position: float,
        offset: float,
        length: float,
        *,
        lane: str = "",
        channel: Optional[int] = None,
        name: str = "",
        variation: Optional[Variation] = None,
    ) -> Segment:
        ...

    def move_segment(self, segment: Segment, position: float) -> None:
        ...

    def split_segment(self, segment: Segment, at: float) -> Segment:
        ...

    def delete_segment(self, segment: Segment) -> None:
        ...

    def set_fades(
        self, segment: Segment, fade_in: Optional[float] = None, fade_out: Optional[float] = None
    ) -> None:
        ...

    def source_sample_rate(self, segment: Segment) -> int:
        ...

    def read_samples(
        self,
        segment: Segment,
        start: float,
        num_samples: int,
        sample_rate: Optional[int] = None,
        num_channels: int = 1,
    ) -> np.ndarray:
        ...

    def add_region(self, start: float, end: float, name: str) -> Region:
        ...

    def checkpoint(self) -> object:
        ...

    def rollback(self, token: object) -> None:
        ...


def load_audio_source(file_path: str) -> AudioSource:
    """Decode ``file_path`` keeping its native rate and channel count.

    WAV/FLAC/OGG are read with :mod:`soundfile`; MP3 goes through
    :mod:`pydub`, which needs ffmpeg on the host.
    """

    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"Audio file not found: {file_path}")

    ext = os.path.splitext(file_path)[1].lower()
    if ext == ".mp3":
        from pydub import AudioSegment

        seg = AudioSegment.from_file(file_path)
        sr = seg.frame_rate
        samples = np.array(seg.get_array_of_samples())
        samples = samples.reshape((-1, max(1, seg.channels)))
        data = samples.astype(np.float32) / float(1 << (8 * seg.sample_width - 1))
    else:
        data, sr = sf.read(file_path, always_2d=True, dtype="float32")

    return AudioSource(samples=np.ascontiguousarray(data, dtype=np.float32), sample_rate=int(sr))


def _frames(data: np.ndarray, first: int, count: int) -> np.ndarray:
    """``count`` frames starting at ``first``, zero padded outside the data."""

    out = np.zeros((count, data.shape[1]), dtype=np.float32)
    lo = max(first, 0)
    hi = min(first + count, data.shape[0])
    if hi > lo:
        out[lo - first:hi - first] = data[lo:hi]
    return out


class Timeline:
    """In-memory :class:`TimelineHost`.

    Sources are either registered as arrays with :meth:`register_source` or
    decoded from disk on first use and cached.
    """

    def __init__(self) -> None:
        self._sources: Dict[str, AudioSource] = {}
        self._segments: Dict[int, Segment] = {}
        self._regions: List[Region] = []
        self._next_id = 1

    # -- sources -----------------------------------------------------------

    def register_source(self, name: str, samples: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> AudioSource:
        data = np.asarray(samples, dtype=np.float32)
        if data.ndim == 1:
            data = data[:, None]
        source = AudioSource(samples=data, sample_rate=int(sample_rate))
        self._sources[name] = source
        return source

    def source_exists(self, source: Optional[str]) -> bool:
        if not source:
            return False
        return source in self._sources or os.path.isfile(source)

    def _source(self, name: str) -> AudioSource:
        source = self._sources.get(name)
        if source is None:
            source = load_audio_source(name)
            self._sources[name] = source
            logger.debug("Decoded %s (%d ch @ %d Hz)", name, source.channels, source.sample_rate)
        return source

    def source_sample_rate(self, segment: Segment) -> int:
        return self._source(segment.source).sample_rate

    # -- segments ----------------------------------------------------------

    def create_segment(
        self,
        track: int,
        source: str,
        position: float,
        offset: float,
        length: float,
        *,
        lane: str = "",
        channel: Optional[int] = None,
        name: str = "",
        variation: Optional[Variation] = None,
    ) -> Segment:
        if length <= 0:
            raise ValueError(f"Segment length must be positive, got {length}")
        segment = Segment(
            id=self._next_id,
            track=track,
            source=source,
            position=float(position),
            offset=float(offset),
            length=float(length),
            lane=lane,
            channel=channel,
            name=name,
            variation=variation or Variation(),
        )
        self._segments[segment.id] = segment
        self._next_id += 1
        return segment

    def move_segment(self, segment: Segment, position: float) -> None:
        segment.position = float(position)

    def split_segment(self, segment: Segment, at: float) -> Segment:
        """Cut ``segment`` at project time ``at`` and return the right part."""

        if not segment.position < at < segment.end:
            raise ValueError(
                f"Split point {at:.6f} outside segment [{segment.position:.6f}, {segment.end:.6f}]"
            )
        right = self.create_segment(
            segment.track,
            segment.source,
            at,
            segment.offset + (at - segment.position),
            segment.end - at,
            lane=segment.lane,
            channel=segment.channel,
            name=segment.name,
            variation=segment.variation,
        )
        right.fade_out = segment.fade_out
        segment.length = at - segment.position
        segment.fade_out = 0.0
        return right

    def delete_segment(self, segment: Segment) -> None:
        self._segments.pop(segment.id, None)

    def set_fades(
        self, segment: Segment, fade_in: Optional[float] = None, fade_out: Optional[float] = None
    ) -> None:
        if fade_in is not None:
            segment.fade_in = max(0.0, min(float(fade_in), segment.length))
        if fade_out is not None:
            segment.fade_out = max(0.0, min(float(fade_out), segment.length))

    def segments(self, lane: Optional[str] = None, track: Optional[int] = None) -> List[Segment]:
        found = [
            s for s in self._segments.values()
            if (lane is None or s.lane == lane) and (track is None or s.track == track)
        ]
        return sorted(found, key=lambda s: (s.lane, s.track, s.position, s.id))

    # -- samples -----------------------------------------------------------

    def read_samples(
        self,
        segment: Segment,
        start: float,
        num_samples: int,
        sample_rate: Optional[int] = None,
        num_channels: int = 1,
    ) -> np.ndarray:
        """Read ``num_samples`` starting at project time ``start``.

        Mono reads return the segment's extracted channel, or a mixdown when
        the segment plays the whole source. Multichannel reads return
        ``(num_samples, num_channels)``.
        """

        source = self._source(segment.source)
        rate = int(sample_rate or source.sample_rate)
        source_time = segment.offset + (start - segment.position)

        if rate == source.sample_rate:
            data = _frames(source.samples, int(round(source_time * rate)), num_samples)
        else:
            ratio = Fraction(rate, source.sample_rate).limit_denominator(1000)
            first = int(np.floor(source_time * source.sample_rate))
            count = int(np.ceil(num_samples * source.sample_rate / rate)) + 1
            raw = _frames(source.samples, first, count)
            data = resample_poly(raw, ratio.numerator, ratio.denominator, axis=0)
            data = _frames(data.astype(np.float32), 0, num_samples)

        if segment.channel is not None:
            lo = min(segment.channel, data.shape[1] - 1)
            data = data[:, lo:lo + num_channels]
        elif num_channels == 1:
            return data.mean(axis=1)
        else:
            data = data[:, :num_channels]

        if data.shape[1] < num_channels:
            pad = np.zeros((data.shape[0], num_channels - data.shape[1]), dtype=np.float32)
            data = np.hstack([data, pad])
        return data[:, 0] if num_channels == 1 else data

    # -- regions and rollback ----------------------------------------------

    def add_region(self, start: float, end: float, name: str) -> Region:
        region = Region(start=float(start), end=float(end), name=name)
        self._regions.append(region)
        return region

    @property
    def regions(self) -> List[Region]:
        return list(self._regions)

    def checkpoint(self) -> object:
        return (copy.deepcopy(self._segments), list(self._regions), self._next_id)

    def rollback(self, token: object) -> None:
        segments, regions, next_id = token  # type: ignore[misc]
        self._segments = segments
        self._regions = regions
        self._next_id = next_id


__all__ = [
    "DEFAULT_SAMPLE_RATE",
    "Segment",
    "Region",
    "AudioSource",
    "TimelineHost",
    "load_audio_source",
    "Timeline",
]
