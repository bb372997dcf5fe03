"""
Fade In / Fade Out Boundary Detection

This module is responsible for:
1. Scanning the first frames of a video until brightness reaches a threshold (in point)
2. Scanning the last frames of the same decode stream (out point)
3. Resolving each scan into a single boundary frame, falling back to the
   brightest frame when the threshold is never crossed
"""

import logging
import time
from typing import Iterable, Iterator, List, Optional, Tuple

from models import FadeBoundary, FrameSample
from frame_sampler import FrameSampler, SampleSpec
from reporting import JobReporter, NullReporter
from video_source import VideoSource, limit_range


logger = logging.getLogger(__name__)


def _resolve(samples: Iterable[FrameSample], threshold: float, default_frame: int) -> int:
    """
    Walk samples in the given order tracking the brightest one.

    The first sample whose brightness exceeds the threshold wins; otherwise the
    brightest sample does. Ties keep the sample visited first.
    """
    best_frame, best_mean = default_frame, 0.0
    for sample in samples:
        brightness = sample.brightness
        if brightness is None:
            continue
        if brightness > threshold:
            return sample.frame_index
        if brightness > best_mean:
            best_frame, best_mean = sample.frame_index, brightness
    return best_frame


def resolve_in_point(samples: List[FrameSample], threshold: float, default_frame: int = 0) -> int:
    """In point: first frame brighter than threshold, scanning forward"""
    return _resolve(samples, threshold, default_frame)


def resolve_out_point(samples: List[FrameSample], threshold: float, default_frame: int) -> int:
    """Out point: first frame brighter than threshold, scanning backward from the end"""
    return _resolve(reversed(samples), threshold, default_frame)


class FadeDetector:
    """
    Locates fade-in and fade-out boundaries near both ends of a video.

    Both sub-scans share one decode stream: the in-point scan runs first, then
    the source is repositioned near the end for the out-point scan.
    """

    def __init__(
        self,
        search_length: int = 300,
        threshold: float = 20.0,
        sample_spec: Optional[SampleSpec] = None
    ):
        """
        Initialize the FadeDetector.

        Args:
            search_length: Maximum number of frames scanned from each end
            threshold: Brightness (HSV value channel, 0-255) that counts as faded in
            sample_spec: Frame reduction policy (default: quarter scale)
        """
        self.search_length = search_length
        self.threshold = threshold
        self.sampler = FrameSampler(sample_spec or SampleSpec(scale=0.25))

    def effective_search_length(self, frame_count: int) -> int:
        return int(max(0, min(self.search_length, frame_count // 2)))

    def scan(
        self,
        source: VideoSource,
        use_ratio: bool = False
    ) -> Iterator[Tuple[str, FrameSample]]:
        """
        Lazily decode the frames both sub-scans visit.

        Yields:
            ('in' | 'out', FrameSample) in decode order
        """
        search_length = self.effective_search_length(source.frame_count)

        source.set_position(0, use_ratio)
        for expected in range(0, search_length):
            sample = self.sampler.sample(source, expected)
            if sample.is_empty:
                logger.error(f"Empty frame during in point scan: {expected} of {source.frame_count}")
            yield 'in', sample
            if sample.brightness is not None and sample.brightness >= self.threshold:
                break

        out_start = source.last_frame - search_length
        logger.debug(f"Resetting playhead to {out_start} for out point scan")
        source.set_position(out_start, use_ratio)
        for expected in range(out_start, source.frame_count):
            sample = self.sampler.sample(source, expected)
            if sample.is_empty:
                logger.error(f"Empty frame during out point scan: {expected} of {source.frame_count}")
            yield 'out', sample

    def detect(
        self,
        source: VideoSource,
        use_ratio: bool = False,
        detect: bool = True,
        reporter: Optional[JobReporter] = None
    ) -> FadeBoundary:
        """
        Find the in and out point of a video.

        Args:
            source: Opened video source
            use_ratio: Seek by ratio even if the source has not switched yet
            detect: When False, return the full range without decoding
            reporter: Receives progress and messages

        Returns:
            FadeBoundary
        """
        reporter = reporter or NullReporter()
        last_frame = source.last_frame

        if not detect:
            logger.debug("In and out point detection deactivated")
            return FadeBoundary(in_frame=0, out_frame=last_frame, frames_scanned=0)

        reporter.info('Detecting in and outpoint')
        started = time.perf_counter()

        search_length = self.effective_search_length(source.frame_count)
        total = search_length * 2 + 1
        in_samples: List[FrameSample] = []
        out_samples: List[FrameSample] = []
        scanned = 0

        for phase, sample in self.scan(source, use_ratio):
            (in_samples if phase == 'in' else out_samples).append(sample)
            scanned += 1
            # every other frame
            if scanned % 2:
                reporter.progress(scanned / total * 100)

        in_frame = int(limit_range(resolve_in_point(in_samples, self.threshold, 0), 0, last_frame))
        out_frame = int(limit_range(
            resolve_out_point(out_samples, self.threshold, last_frame), 0, last_frame
        ))
        logger.debug(f"fadeInPoint: {in_frame}, fadeOutPoint: {out_frame}")

        if in_frame > out_frame:
            logger.warning(
                f"In point {in_frame} lies after out point {out_frame} in {source.path}; using full range"
            )
            in_frame, out_frame = 0, last_frame

        elapsed_ms = (time.perf_counter() - started) * 1000
        reporter.progress(100)
        reporter.info(f"In and out point detection finished - {elapsed_ms:.0f}ms", 3000)

        return FadeBoundary(in_frame=in_frame, out_frame=out_frame, frames_scanned=scanned)
