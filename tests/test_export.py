"""End-to-end tests for the export orchestrator."""

import pytest

from ambiance_core.export import ExportOrchestrator, ExportStatus, parse_region_pattern
from ambiance_core.loop import ZERO_CROSSING_WINDOW
from ambiance_core.models import (
    ChannelLayout,
    Container,
    DistributionMode,
    ExportMode,
    Group,
    LayoutVariant,
    LoopMode,
    collect_containers,
)
from ambiance_core.settings import ContainerOverride, ExportParams, ExportSettings
from ambiance_core.timeline import Timeline

from factories import SAMPLE_RATE, make_entry, make_items, sine


def mono(name, count=4, **kwargs):
    return Container(name=name, items=make_items(count, **kwargs), channel_layout=ChannelLayout.MONO)


def test_region_pattern_tags():
    assert parse_region_pattern("sfx_$group_$container_$index", "Rain", "Weather", 3) == "sfx_Weather_Rain_3"
    assert parse_region_pattern("", "Rain") == "Rain"


def test_bounded_pool_exports_fresh_subset_each_run(timeline, area_container):
    settings = ExportSettings(global_params=ExportParams(max_pool_items=6))
    orchestrator = ExportOrchestrator(timeline, settings)
    entry = make_entry(area_container)

    batch = orchestrator.export([entry])
    assert batch.results[0].items_exported == 6

    def subset():
        placed = orchestrator.export_container(entry, 0.0).placed
        assert len(placed) == 6
        return sorted((p.entry.key, p.area.start) for p in placed)

    first = subset()
    assert any(subset() != first for _ in range(5))


def test_negative_trigger_rate_exports_loop_with_exact_overlap(timeline):
    container = mono("Drone", length=3.0, start_offset=0.002)
    container.override_parent = True
    container.trigger_rate = -1.5
    settings = ExportSettings(global_params=ExportParams(loop_duration=10.0))
    entry = make_entry(container)

    batch = ExportOrchestrator(timeline, settings).export([entry], start_position=5.0)

    result = batch.results[0]
    assert result.status is ExportStatus.SUCCESS
    assert result.is_loop
    segments = timeline.segments(lane=entry.key)
    fragment, first = segments[0], segments[1]
    assert fragment.position == pytest.approx(5.0)
    assert first.position > fragment.position
    assert fragment.end - first.position == pytest.approx(1.5)
    assert result.start_position == pytest.approx(5.0)


def test_loop_from_project_start_keeps_exact_overlap(timeline):
    container = mono("Drone", length=3.0, start_offset=0.002)
    container.override_parent = True
    container.trigger_rate = -1.5
    settings = ExportSettings(global_params=ExportParams(loop_duration=10.0))
    entry = make_entry(container)

    result = ExportOrchestrator(timeline, settings).export([entry], start_position=0.0).results[0]

    assert result.status is ExportStatus.SUCCESS
    assert result.warnings == []
    fragment, first = timeline.segments(lane=entry.key)[:2]
    assert fragment.position == pytest.approx(0.0)
    assert fragment.end - first.position == pytest.approx(1.5)
    assert result.start_position == pytest.approx(0.0)
    assert min(s.position for s in timeline.segments()) >= 0.0


def test_loop_after_plain_container_starts_past_its_output(timeline):
    project = [Group(name="G", containers=[mono("Plain"), mono("Loop")])]
    settings = ExportSettings(global_params=ExportParams(create_regions=True, loop_duration=12.0))
    settings.set_override("1::2", ContainerOverride(params={"loop_mode": LoopMode.ON}))

    batch = ExportOrchestrator(timeline, settings).export_project(project)

    plain, loop = batch.results
    assert loop.is_loop
    assert plain.end_position == 15.0
    assert loop.start_position >= plain.end_position
    assert loop.start_position == pytest.approx(16.0)
    assert min(s.position for s in timeline.segments(lane="1::2")) >= plain.end_position
    first_region, second_region = timeline.regions
    assert second_region.start >= first_region.end


def test_loop_cap_is_reported_as_warning(timeline, monkeypatch):
    monkeypatch.setattr("ambiance_core.scheduler.LOOP_MAX_ITERATIONS", 3)
    settings = ExportSettings(global_params=ExportParams(loop_mode=LoopMode.ON, loop_duration=30.0))
    entry = make_entry(mono("Long"))

    result = ExportOrchestrator(timeline, settings).export([entry]).results[0]

    assert result.status is ExportStatus.WARNING
    assert result.items_exported == 3
    assert any("stopped after 3 items" in w for w in result.warnings)


def test_failed_container_does_not_shift_the_next(timeline):
    broken = Container(
        name="Broken",
        items=make_items(2) + make_items(1, source="missing.wav"),
        channel_layout=ChannelLayout.MONO,
    )
    project = [Group(name="G", containers=[mono("One"), broken, mono("Three")])]
    orchestrator = ExportOrchestrator(timeline)

    batch = orchestrator.export_project(project)

    statuses = [r.status for r in batch.results]
    assert statuses == [ExportStatus.SUCCESS, ExportStatus.ERROR, ExportStatus.SUCCESS]
    assert "missing.wav" in batch.results[1].errors[0]
    assert batch.results[0].end_position == 15.0
    assert batch.results[2].start_position == 16.0
    assert timeline.segments(lane="1::2") == []
    assert broken.channel_track_ids == []
    assert batch.failed == 1
    assert batch.completed == 2
    assert batch.items_exported == 8


def test_container_failing_mid_loop_is_rolled_back(timeline, tmp_path):
    broken_file = tmp_path / "broken.wav"
    broken_file.write_bytes(b"RIFF0000WAVEnot really audio")
    broken = mono("Broken", source=str(broken_file))
    project = [Group(name="G", containers=[broken, mono("Next")])]
    settings = ExportSettings(global_params=ExportParams(
        create_regions=True, loop_interval=-1.0, loop_duration=6.0
    ))
    settings.set_override("1::1", ContainerOverride(params={"loop_mode": LoopMode.ON}))

    batch = ExportOrchestrator(timeline, settings).export_project(project)

    assert [r.status for r in batch.results] == [ExportStatus.ERROR, ExportStatus.SUCCESS]
    assert timeline.segments(lane="1::1") == []
    assert broken.channel_track_ids == []
    assert batch.results[1].start_position == 0.0
    assert [(g.start, g.end) for g in timeline.regions] == [(0.0, 15.0)]
    assert len(timeline.segments()) == 4


def test_empty_container_is_a_warning(timeline):
    project = [Group(name="G", containers=[Container(name="Empty"), mono("One")])]

    batch = ExportOrchestrator(timeline).export_project(project)

    assert batch.results[0].status is ExportStatus.WARNING
    assert batch.results[0].items_exported == 0
    assert batch.results[1].start_position == 0.0
    assert "1 warnings" in batch.summary()


def test_disabled_containers_are_skipped(timeline):
    project = [Group(name="G", containers=[mono("One"), mono("Two"), mono("Three")])]
    settings = ExportSettings(global_params=ExportParams(create_regions=True, region_pattern="$container_$index"))
    settings.set_enabled("1::2", False)

    batch = ExportOrchestrator(timeline, settings).export_project(project)

    assert [r.name for r in batch.results] == ["G / One", "G / Three"]
    assert [r.region for r in batch.results] == ["One_1", "Three_2"]
    assert [(g.start, g.end) for g in timeline.regions] == [(0.0, 15.0), (16.0, 31.0)]


def test_override_changes_one_container(timeline):
    project = [Group(name="G", containers=[mono("One"), mono("Two")])]
    settings = ExportSettings()
    settings.set_override("1::2", ContainerOverride(params={"instance_amount": 2}))

    batch = ExportOrchestrator(timeline, settings).export_project(project)

    assert [r.items_exported for r in batch.results] == [4, 8]


def test_quad_items_route_to_surround_channels(timeline):
    timeline.register_source("quad.wav", sine(100.0, 10.0, channels=4), SAMPLE_RATE)
    container = Container(
        name="Room",
        items=make_items(2, source="quad.wav", channels=4),
        channel_layout=ChannelLayout.SURROUND_5_0,
        layout_variant=LayoutVariant.ITU,
    )
    entry = make_entry(container)

    ExportOrchestrator(timeline).export([entry])

    assert container.channel_track_ids == [1, 2, 4, 5]
    segments = timeline.segments(lane=entry.key)
    assert sorted({(s.track, s.channel) for s in segments}) == [(1, 0), (2, 1), (4, 2), (5, 3)]
    assert len(segments) == 8


def test_flatten_places_whole_items_on_one_track(timeline):
    timeline.register_source("quad.wav", sine(100.0, 10.0, channels=4), SAMPLE_RATE)
    container = Container(
        name="Room",
        items=make_items(2, source="quad.wav", channels=4),
        channel_layout=ChannelLayout.SURROUND_5_0,
        layout_variant=LayoutVariant.ITU,
    )
    settings = ExportSettings(global_params=ExportParams(export_mode=ExportMode.FLATTEN))
    entry = make_entry(container)

    ExportOrchestrator(timeline, settings).export([entry])

    assert {(s.track, s.channel) for s in timeline.segments(lane=entry.key)} == {(1, None)}


def test_all_tracks_loop_is_synchronised(timeline):
    container = Container(name="Bed", items=make_items(4), channel_layout=ChannelLayout.QUAD)
    settings = ExportSettings(global_params=ExportParams(
        loop_mode=LoopMode.ON,
        loop_interval=-1.0,
        loop_duration=10.0,
        distribution_mode=DistributionMode.ALL_TRACKS,
    ))
    entry = make_entry(container)

    result = ExportOrchestrator(timeline, settings).export([entry], start_position=2.0).results[0]

    assert result.status is ExportStatus.SUCCESS
    segments = timeline.segments(lane=entry.key)
    by_track = {}
    for segment in segments:
        by_track.setdefault(segment.track, []).append(segment)
    assert sorted(by_track) == [1, 2, 3, 4]
    for track_segments in by_track.values():
        assert min(s.position for s in track_segments) == pytest.approx(2.0)
        assert max(s.end for s in track_segments) == pytest.approx(12.0, abs=ZERO_CROSSING_WINDOW)


def test_variation_flags_combine_container_and_params(timeline):
    container = mono("Leaves")
    container.override_parent = True
    container.randomize_pitch = False
    settings = ExportSettings(global_params=ExportParams(preserve_volume=False))
    entry = make_entry(container)

    ExportOrchestrator(timeline, settings).export([entry])

    variation = timeline.segments(lane=entry.key)[0].variation
    assert (variation.pitch, variation.volume, variation.pan) == (False, False, True)


def test_group_rate_is_inherited_for_loop_detection(timeline):
    """A container that does not override its group loops on the group's overlap."""
    container = mono("Wash", start_offset=0.002)
    group = Group(name="Pads", containers=[container], trigger_rate=-1.0)
    settings = ExportSettings(global_params=ExportParams(loop_duration=8.0))

    batch = ExportOrchestrator(timeline, settings).export(collect_containers([group]), start_position=5.0)

    result = batch.results[0]
    assert result.is_loop
    assert result.status is ExportStatus.SUCCESS
    tracks = group_by_track_segments(timeline.segments(lane="1::1"))
    fragment, first = tracks[1][0], tracks[1][1]
    assert fragment.end - first.position == pytest.approx(1.0)


def group_by_track_segments(segments):
    tracks = {}
    for segment in segments:
        tracks.setdefault(segment.track, []).append(segment)
    return tracks


def test_seeded_runs_are_repeatable(area_container):
    settings = ExportSettings(global_params=ExportParams(max_pool_items=4))
    entry = make_entry(area_container)

    def run():
        host = Timeline()
        host.register_source("sine.wav", sine(100.0, 20.0), SAMPLE_RATE)
        ExportOrchestrator(host, settings, seed=42).export([entry])
        return [(s.name, s.offset) for s in host.segments()]

    assert run() == run()
