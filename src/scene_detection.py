"""
Scene Cut Detection

Scans a video frame by frame and registers a cut wherever the mean HSV color
of a frame jumps away from the previous frame's, keeping a minimum distance
between registered cuts.
"""

import logging
import time
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

from models import ColorVector, FrameSample, SceneCut, SceneScanResult
from frame_sampler import FrameSampler, SampleSpec
from reporting import JobReporter, NullReporter
from video_source import VideoSource


logger = logging.getLogger(__name__)

ZERO_MEAN = ColorVector(0.0, 0.0, 0.0)


def frame_delta(current: ColorVector, previous: ColorVector) -> float:
    """Average absolute difference over the three channels (H, S and V)"""
    return float(np.mean(np.abs(np.subtract(current, previous))))


def find_scene_cuts(
    samples: Iterable[FrameSample],
    threshold: float = 20.0,
    min_scene_length: int = 15
) -> Tuple[List[SceneCut], List[FrameSample]]:
    """
    Turn a sequence of frame samples into a cut list.

    The first decoded frame is compared against a zero mean. Empty samples are
    kept in the metric list but neither register a cut nor replace the previous
    mean. A cut closer than ``min_scene_length`` to the last registered one is
    dropped.

    Args:
        samples: Frame samples in ascending decode order
        threshold: Minimum frame delta for a cut
        min_scene_length: Minimum number of frames between two cuts

    Returns:
        (cuts, metrics)
    """
    cuts: List[SceneCut] = []
    metrics: List[FrameSample] = []
    previous_mean = ZERO_MEAN
    last_cut: Optional[int] = None

    for sample in samples:
        metrics.append(sample)
        if sample.mean is None:
            continue

        delta = frame_delta(sample.mean, previous_mean)
        if delta >= threshold:
            if last_cut is None or sample.frame_index - last_cut >= min_scene_length:
                cuts.append(SceneCut(frame=sample.frame_index))
                last_cut = sample.frame_index
                logger.debug(f"Scene cut at frame {sample.frame_index} (delta {delta:.2f})")
        previous_mean = sample.mean

    return cuts, metrics


class SceneDetector:
    """Sequential full-length scene scan over one VideoSource"""

    def __init__(
        self,
        threshold: float = 20.0,
        min_scene_length: int = 15,
        sample_spec: Optional[SampleSpec] = None,
        progress_interval: int = 100
    ):
        self.threshold = threshold
        self.min_scene_length = min_scene_length
        self.sampler = FrameSampler(sample_spec or SampleSpec(max_dimension=240))
        self.progress_interval = progress_interval

    def iter_samples(
        self,
        source: VideoSource,
        use_ratio: bool = False,
        reporter: Optional[JobReporter] = None
    ) -> Iterator[FrameSample]:
        """Decode every frame from the start, one at a time"""
        reporter = reporter or NullReporter()
        source.set_position(0, use_ratio)
        for iteration in range(source.frame_count):
            if iteration % self.progress_interval == 0:
                reporter.progress(iteration / source.frame_count * 100)
                logger.debug(f"Scanning frame {source.describe_position()}")
            sample = self.sampler.sample(source, iteration)
            if sample.is_empty:
                logger.error(f"Empty frame: iteration {iteration} of {source.frame_count} in {source.path}")
            yield sample

    def detect(
        self,
        source: VideoSource,
        use_ratio: bool = False,
        reporter: Optional[JobReporter] = None,
        threshold: Optional[float] = None
    ) -> SceneScanResult:
        """
        Scan the whole video for scene cuts.

        Args:
            source: Opened video source
            use_ratio: Seek by ratio even if the source has not switched yet
            reporter: Receives progress and messages
            threshold: Per-call override of the detector threshold

        Returns:
            SceneScanResult with the cut list and per-frame metrics
        """
        reporter = reporter or NullReporter()
        threshold = self.threshold if threshold is None else threshold
        started = time.perf_counter()

        cuts, metrics = find_scene_cuts(
            self.iter_samples(source, use_ratio, reporter),
            threshold=threshold,
            min_scene_length=self.min_scene_length
        )

        elapsed = time.perf_counter() - started
        speed_ms = elapsed * 1000 / max(source.frame_count, 1)
        message = f"File scanning finished - {elapsed:.2f}s - speed: {speed_ms:.2f}ms per frame"
        logger.debug(message)
        reporter.progress(100)
        reporter.info(message, 6000)

        return SceneScanResult(cuts=cuts, metrics=metrics)
