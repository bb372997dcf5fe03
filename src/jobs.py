"""
Job Dispatch

Accepts job requests (file details, poster frame, fade detection, scene scan,
thumbnail batches), runs them against a VideoSource and reports through an
EventSink.

Jobs on the same file are serialized with a per-path lock so that only one
decode is ever in flight per file. Jobs on different files may run in
parallel on the runner's thread pool.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from models import VideoMetadata, ThumbRequest
from settings import ScannerSettings
from video_source import OpenError, PositioningStrategy, VideoSource
from frame_sampler import SampleSpec
from fade_detection import FadeDetector
from scene_detection import SceneDetector
from thumbnail_retrieval import ThumbnailRetriever
from reporting import EventSink, JobReporter


logger = logging.getLogger(__name__)


class JobKind(str, Enum):
    FILE_DETAILS = 'file_details'
    POSTER_FRAME = 'poster_frame'
    FADE_DETECTION = 'fade_detection'
    SCENE_SCAN = 'scene_scan'
    THUMBNAILS = 'thumbnails'
    THUMBNAILS_SYNC = 'thumbnails_sync'


@dataclass
class JobRequest:
    """One unit of work against one file"""
    kind: JobKind
    file_id: str
    file_path: str
    use_ratio: bool = False
    detect: bool = True
    threshold: Optional[float] = None
    thumbs: List[ThumbRequest] = field(default_factory=list)
    poster_frame_id: Optional[str] = None
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def __post_init__(self):
        self.kind = JobKind(self.kind)


class SourceRegistry:
    """
    Session state per file.

    Keeps one PositioningStrategy per resolved path so that a ratio-seek switch
    found by one job is honoured by every later job on the same file.
    """

    def __init__(self):
        self._strategies: Dict[str, PositioningStrategy] = {}
        self._path_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(path: str) -> str:
        return str(Path(path).resolve())

    def strategy_for(self, path: str) -> PositioningStrategy:
        key = self.key(path)
        with self._lock:
            if key not in self._strategies:
                self._strategies[key] = PositioningStrategy()
            return self._strategies[key]

    def lock_for(self, path: str) -> threading.Lock:
        key = self.key(path)
        with self._lock:
            if key not in self._path_locks:
                self._path_locks[key] = threading.Lock()
            return self._path_locks[key]

    def uses_ratio_seek(self, path: str) -> bool:
        key = self.key(path)
        with self._lock:
            strategy = self._strategies.get(key)
        return strategy.uses_ratio_seek if strategy else False

    def forget(self, path: str) -> None:
        key = self.key(path)
        with self._lock:
            self._strategies.pop(key, None)


class JobRunner:
    """
    Runs scanner jobs and reports their events.
    """

    def __init__(
        self,
        sink: EventSink,
        settings: Optional[ScannerSettings] = None,
        capture_factory: Optional[Callable[[str], Any]] = None,
        registry: Optional[SourceRegistry] = None
    ):
        """
        Initialize the JobRunner.

        Args:
            sink: Receives progress, messages and results of every job
            settings: Scanner settings (default: ScannerSettings())
            capture_factory: Builds capture objects (default: cv2.VideoCapture)
            registry: Session state shared across jobs
        """
        self.sink = sink
        self.settings = settings or ScannerSettings()
        self.capture_factory = capture_factory
        self.registry = registry or SourceRegistry()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._handlers = {
            JobKind.FILE_DETAILS: self._file_details,
            JobKind.POSTER_FRAME: self._poster_frame,
            JobKind.FADE_DETECTION: self._fade_detection,
            JobKind.SCENE_SCAN: self._scene_scan,
            JobKind.THUMBNAILS: self._thumbnails,
            JobKind.THUMBNAILS_SYNC: self._thumbnails_sync,
        }

        self.fade_detector = FadeDetector(
            search_length=self.settings.fade_search_length,
            threshold=self.settings.fade_threshold,
            sample_spec=SampleSpec(scale=self.settings.fade_sample_scale)
        )
        self.scene_detector = SceneDetector(
            threshold=self.settings.scene_threshold,
            min_scene_length=self.settings.min_scene_length,
            sample_spec=SampleSpec(max_dimension=self.settings.scene_sample_max_dimension),
            progress_interval=self.settings.scene_progress_interval
        )
        self.retriever = ThumbnailRetriever(
            search_limit=self.settings.search_limit,
            image_format=self.settings.image_format,
            jpeg_quality=self.settings.jpeg_quality
        )

    def reporter_for(self, request: JobRequest) -> JobReporter:
        return JobReporter(self.sink, request.job_id, request.file_id, self.settings.message_duration_ms)

    def run(self, request: JobRequest) -> Optional[Any]:
        """
        Run one job to completion on the calling thread.

        Returns:
            The job result, or None if the file could not be opened or the job failed
        """
        reporter = self.reporter_for(request)
        handler = self._handlers[request.kind]

        with self.registry.lock_for(request.file_path):
            logger.debug(f"Job {request.job_id}: {request.kind.value} on {request.file_path}")
            try:
                source = VideoSource.open(
                    request.file_path,
                    strategy=self.registry.strategy_for(request.file_path),
                    capture_factory=self.capture_factory
                )
            except OpenError as e:
                logger.error(f"Failed to open {request.file_path}: {e.reason}")
                reporter.open_failed(request.file_path, e.reason)
                reporter.error(f"Failed to open {request.file_path}")
                return None

            try:
                with source:
                    result = handler(source, request, reporter)
            except Exception as e:
                logger.error(f"Job {request.job_id} ({request.kind.value}) failed: {e}", exc_info=True)
                reporter.error(f"Processing {request.file_path} failed: {e}")
                reporter.job_failed(str(e))
                return None

        if request.kind not in (JobKind.THUMBNAILS, JobKind.THUMBNAILS_SYNC):
            reporter.result(request.kind.value, result)
        return result

    def submit(self, request: JobRequest) -> Future:
        """Schedule a job on the runner's thread pool"""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.max_workers,
                thread_name_prefix='scanner'
            )
        return self._executor.submit(self.run, request)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self) -> 'JobRunner':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _file_details(self, source: VideoSource, request: JobRequest, reporter: JobReporter) -> VideoMetadata:
        logger.debug(
            f"width: {source.width}, height: {source.height}, FPS: {source.fps}, codec: {source.codec_tag}"
        )
        return VideoMetadata(
            file_id=request.file_id,
            file_path=source.path,
            frame_count=source.frame_count,
            width=source.width,
            height=source.height,
            fps=source.fps,
            codec=source.codec_tag,
            duration=source.duration
        )

    def _poster_frame(self, source: VideoSource, request: JobRequest, reporter: JobReporter):
        return self.retriever.fetch_poster_frame(source, request.poster_frame_id, reporter)

    def _fade_detection(self, source: VideoSource, request: JobRequest, reporter: JobReporter):
        if request.threshold is not None and request.threshold != self.fade_detector.threshold:
            detector = FadeDetector(
                search_length=self.fade_detector.search_length,
                threshold=request.threshold,
                sample_spec=self.fade_detector.sampler.spec
            )
        else:
            detector = self.fade_detector
        return detector.detect(source, use_ratio=request.use_ratio, detect=request.detect, reporter=reporter)

    def _scene_scan(self, source: VideoSource, request: JobRequest, reporter: JobReporter):
        return self.scene_detector.detect(
            source, use_ratio=request.use_ratio, reporter=reporter, threshold=request.threshold
        )

    def _thumbnails(self, source: VideoSource, request: JobRequest, reporter: JobReporter):
        return self.retriever.retrieve(source, request.thumbs, request.use_ratio, reporter, retry=True)

    def _thumbnails_sync(self, source: VideoSource, request: JobRequest, reporter: JobReporter):
        return self.retriever.retrieve(source, request.thumbs, request.use_ratio, reporter, retry=False)
