"""Tests for the job runner: event flow, failures, session state, serialization."""

import cv2
import pytest

from jobs import JobKind, JobRequest, JobRunner, SourceRegistry
from models import FadeBoundary, SceneScanResult, ThumbRequest, VideoMetadata
from reporting import (
    CollectingSink,
    JobFailedEvent,
    MessageLevel,
    OpenFailedEvent,
    ResultEvent,
)
from settings import ScannerSettings


def fade_pixel(i):
    return 50 if 10 <= i <= 90 else 0


def test_request_kind_accepts_strings():
    request = JobRequest('scene_scan', 'f1', 'movie.mp4')
    assert request.kind is JobKind.SCENE_SCAN
    assert request.job_id


def test_file_details(capture_factory):
    sink = CollectingSink()
    runner = JobRunner(sink, capture_factory=capture_factory(frame_count=250, fourcc='avc1'))

    details = runner.run(JobRequest(JobKind.FILE_DETAILS, 'f1', 'movie.mp4'))

    assert isinstance(details, VideoMetadata)
    assert details.frame_count == 250
    assert details.codec == 'avc1'
    assert details.duration == pytest.approx(10.0)
    [event] = sink.of_type(ResultEvent)
    assert event.kind == 'file_details'
    assert event.file_id == 'f1'


def test_open_failure_is_reported(capture_factory):
    sink = CollectingSink()
    runner = JobRunner(sink, capture_factory=capture_factory(opened=False))

    result = runner.run(JobRequest(JobKind.SCENE_SCAN, 'f1', 'broken.mp4'))

    assert result is None
    [failed] = sink.of_type(OpenFailedEvent)
    assert failed.file_id == 'f1'
    assert failed.file_path == 'broken.mp4'
    assert sink.messages(MessageLevel.ERROR) == ['Failed to open broken.mp4']
    assert sink.of_type(ResultEvent) == []


def test_process_fault_is_reported(capture_factory):
    sink = CollectingSink()
    runner = JobRunner(sink, capture_factory=capture_factory(read_error=RuntimeError('decoder crashed')))

    result = runner.run(JobRequest(JobKind.SCENE_SCAN, 'f1', 'movie.mp4'))

    assert result is None
    [failed] = sink.of_type(JobFailedEvent)
    assert 'decoder crashed' in failed.reason
    assert runner.run(JobRequest(JobKind.FILE_DETAILS, 'f1', 'movie.mp4')) is not None


def test_fade_job_uses_settings_and_threshold_override(capture_factory):
    sink = CollectingSink()
    settings = ScannerSettings(fade_search_length=50, fade_threshold=20.0)
    runner = JobRunner(sink, settings, capture_factory=capture_factory(frame_count=100, pixel=fade_pixel))

    boundary = runner.run(JobRequest(JobKind.FADE_DETECTION, 'f1', 'movie.mp4'))
    assert (boundary.in_frame, boundary.out_frame) == (10, 90)

    boundary = runner.run(JobRequest(JobKind.FADE_DETECTION, 'f1', 'movie.mp4', threshold=60.0))
    assert isinstance(boundary, FadeBoundary)
    # never reaches 60: brightest frames win
    assert boundary.in_frame == 10
    assert boundary.out_frame == 90


def test_fade_job_disabled(capture_factory):
    factory = capture_factory(frame_count=100)
    runner = JobRunner(CollectingSink(), capture_factory=factory)

    boundary = runner.run(JobRequest(JobKind.FADE_DETECTION, 'f1', 'movie.mp4', detect=False))

    assert (boundary.in_frame, boundary.out_frame) == (0, 99)
    assert factory.created[0][1].reads == []


def test_scene_scan_job(capture_factory):
    sink = CollectingSink()
    runner = JobRunner(sink, capture_factory=capture_factory(frame_count=120))

    result = runner.run(JobRequest(JobKind.SCENE_SCAN, 'f1', 'movie.mp4'))

    assert isinstance(result, SceneScanResult)
    assert len(result.metrics) == 120
    assert sink.progress()[-1] == 100
    [event] = sink.of_type(ResultEvent)
    assert event.kind == 'scene_scan'


def test_thumbnail_job_emits_per_slot_results(capture_factory):
    sink = CollectingSink()
    runner = JobRunner(sink, capture_factory=capture_factory(frame_count=100))
    thumbs = [ThumbRequest(f"t{i}", f"f{i}", frame) for i, frame in enumerate([5, 50, 95])]

    results = runner.run(JobRequest(JobKind.THUMBNAILS, 'f1', 'movie.mp4', thumbs=thumbs))

    events = sink.of_type(ResultEvent)
    assert [e.kind for e in events] == ['thumb'] * 3
    assert [e.result.actual_frame for e in events] == [5, 50, 95]
    assert [e.result.is_last for e in events] == [False, False, True]
    assert results == [e.result for e in events]


def test_thumbnail_job_rejects_out_of_range_targets(capture_factory):
    sink = CollectingSink()
    runner = JobRunner(sink, capture_factory=capture_factory(frame_count=10))
    thumbs = [ThumbRequest('t0', 'f0', 10)]

    assert runner.run(JobRequest(JobKind.THUMBNAILS_SYNC, 'f1', 'movie.mp4', thumbs=thumbs)) is None
    assert sink.of_type(JobFailedEvent)


def test_ratio_seek_persists_across_jobs(capture_factory):
    factory = capture_factory(frame_count=101, drift=1)
    runner = JobRunner(CollectingSink(), capture_factory=factory)

    poster = runner.run(JobRequest(JobKind.POSTER_FRAME, 'f1', 'movie.mp4', poster_frame_id='p'))
    assert poster.uses_ratio_seek
    assert runner.registry.uses_ratio_seek('movie.mp4')

    runner.run(JobRequest(JobKind.SCENE_SCAN, 'f1', 'movie.mp4'))
    thumbs = [ThumbRequest('t0', 'f0', 25)]
    runner.run(JobRequest(JobKind.THUMBNAILS, 'f1', 'movie.mp4', thumbs=thumbs))

    for _, capture in factory.created[1:]:
        assert capture.frame_seeks == []
        assert capture.ratio_seeks


def test_ratio_seek_is_per_file(capture_factory):
    factory = capture_factory(frame_count=101, drift=1)
    runner = JobRunner(CollectingSink(), capture_factory=factory)

    runner.run(JobRequest(JobKind.POSTER_FRAME, 'a', 'a.mp4'))

    assert runner.registry.uses_ratio_seek('a.mp4')
    assert not runner.registry.uses_ratio_seek('b.mp4')


def test_jobs_on_the_same_file_never_decode_concurrently(capture_factory, tracker):
    factory = capture_factory(frame_count=40, read_delay=0.001, tracker=tracker)
    settings = ScannerSettings(max_workers=4)

    with JobRunner(CollectingSink(), settings, capture_factory=factory) as runner:
        futures = [runner.submit(JobRequest(JobKind.SCENE_SCAN, 'f1', 'movie.mp4')) for _ in range(4)]
        results = [f.result() for f in futures]

    assert all(len(r.metrics) == 40 for r in results)
    assert tracker.max_active == 1


def test_registry_forget_resets_session():
    registry = SourceRegistry()
    registry.strategy_for('movie.mp4').record_drift_check(1, 2)
    assert registry.uses_ratio_seek('movie.mp4')

    registry.forget('movie.mp4')

    assert not registry.uses_ratio_seek('movie.mp4')
    assert registry.lock_for('movie.mp4') is registry.lock_for('./movie.mp4')
