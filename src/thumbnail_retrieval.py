"""
Thumbnail and Poster Frame Retrieval

This module is responsible for:
1. Decoding an ordered list of target frames into encoded images
2. Searching neighbouring frames when a target cannot be decoded
3. Fetching the poster frame (middle of the video) and running the one-time
   seek drift check for the file
"""

import logging
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import cv2

from models import PosterFrameResult, ThumbRequest, ThumbResult
from frame_sampler import encode_image
from reporting import JobReporter, NullReporter
from video_source import SeekMode, VideoSource, limit_range


logger = logging.getLogger(__name__)

SEARCH_LIMIT = 25


def search_direction(target: int, frame_count: int, search_limit: int = SEARCH_LIMIT) -> int:
    """+1 to search forward from target, -1 when target is within search_limit of the end"""
    return 1 if target < frame_count - search_limit else -1


class ThumbnailRetriever:
    """
    Decodes frames one at a time, strictly in request order.
    """

    def __init__(
        self,
        search_limit: int = SEARCH_LIMIT,
        image_format: str = '.jpg',
        jpeg_quality: int = 95
    ):
        """
        Initialize the ThumbnailRetriever.

        Args:
            search_limit: Largest frame offset probed around an undecodable target
            image_format: Extension passed to cv2.imencode ('.jpg' or '.png')
            jpeg_quality: JPEG quality when image_format is '.jpg'
        """
        self.search_limit = search_limit
        self.image_format = image_format
        self.encode_params = [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality] if image_format == '.jpg' else []

    def encode(self, frame: Optional[np.ndarray]) -> bytes:
        return encode_image(frame, self.image_format, self.encode_params)

    def read_at(self, source: VideoSource, frame_number: int, use_ratio: bool = False) -> Tuple[Optional[np.ndarray], int]:
        """Seek to one frame and decode it. Returns (frame or None, reported frame index)."""
        source.set_position(frame_number, use_ratio)
        frame = source.read()
        logger.debug(f"read {frame_number}/{source.describe_position()}")
        return frame, source.current_frame

    def read_with_retry(
        self,
        source: VideoSource,
        target: int,
        use_ratio: bool = False
    ) -> Tuple[Optional[np.ndarray], int]:
        """
        Decode ``target``, probing neighbouring frames while it comes back empty.

        The search direction is fixed per target: forward, unless the target is
        within ``search_limit`` frames of the end. No offset larger than
        ``search_limit`` is probed.

        Returns:
            (frame or None once the search is exhausted, frame index reached)
        """
        direction = search_direction(target, source.frame_count, self.search_limit)
        offset = 0
        while True:
            frame_number = int(limit_range(target + offset, 0, source.last_frame))
            frame, reached = self.read_at(source, frame_number, use_ratio)
            if frame is not None:
                return frame, reached
            if abs(offset) >= self.search_limit:
                logger.info(f"Frame {target} still empty after probing {abs(offset)} frames, giving up")
                return None, reached
            logger.info(f"Frame {frame_number} is empty, trying one frame {'forward' if direction > 0 else 'backward'}")
            offset += direction

    def _validate(self, source: VideoSource, requests: Sequence[ThumbRequest]) -> None:
        for request in requests:
            if not 0 <= request.target_frame < source.frame_count:
                raise ValueError(
                    f"Target frame {request.target_frame} outside 0..{source.last_frame} for {source.path}"
                )

    def iter_thumbs(
        self,
        source: VideoSource,
        requests: Sequence[ThumbRequest],
        use_ratio: bool = False
    ) -> Iterator[ThumbResult]:
        """Lazily retrieve each requested frame with retry-search, in input order"""
        self._validate(source, requests)
        for i, request in enumerate(requests):
            frame, reached = self.read_with_retry(source, request.target_frame, use_ratio)
            yield ThumbResult(
                thumb_id=request.thumb_id,
                frame_id=request.frame_id,
                image=self.encode(frame),
                actual_frame=reached,
                is_last=i == len(requests) - 1,
                target_frame=request.target_frame,
            )

    def iter_thumbs_sync(
        self,
        source: VideoSource,
        requests: Sequence[ThumbRequest],
        use_ratio: bool = False
    ) -> Iterator[ThumbResult]:
        """Retrieve each requested frame once, without retry-search"""
        self._validate(source, requests)
        for i, request in enumerate(requests):
            frame, reached = self.read_at(source, request.target_frame, use_ratio)
            if frame is None:
                logger.info(f"Frame {request.target_frame} is empty")
            yield ThumbResult(
                thumb_id=request.thumb_id,
                frame_id=request.frame_id,
                image=self.encode(frame),
                actual_frame=reached,
                is_last=i == len(requests) - 1,
                target_frame=request.target_frame,
            )

    def retrieve(
        self,
        source: VideoSource,
        requests: Sequence[ThumbRequest],
        use_ratio: bool = False,
        reporter: Optional[JobReporter] = None,
        retry: bool = True
    ) -> List[ThumbResult]:
        """
        Retrieve a batch of thumbnails, emitting one result event per slot.

        Args:
            source: Opened video source
            requests: Thumbnails to retrieve, processed in this order
            use_ratio: Seek by ratio even if the source has not switched yet
            reporter: Receives one 'thumb' result per slot plus progress
            retry: Probe neighbouring frames when a target is undecodable

        Returns:
            List of ThumbResult in request order
        """
        reporter = reporter or NullReporter()
        produce = self.iter_thumbs if retry else self.iter_thumbs_sync
        results = []
        for result in produce(source, requests, use_ratio):
            results.append(result)
            reporter.result('thumb', result)
            reporter.progress(len(results) / len(requests) * 100)
        return results

    def fetch_poster_frame(
        self,
        source: VideoSource,
        poster_frame_id: Optional[str] = None,
        reporter: Optional[JobReporter] = None
    ) -> PosterFrameResult:
        """
        Decode the middle frame of the video.

        The first poster fetch on a file seeks by frame index and compares where
        the decoder landed with the requested frame; a mismatch switches the file
        to ratio seeking for the rest of the session.
        """
        reporter = reporter or NullReporter()
        target = source.frame_count // 2
        frame = None
        reached = target

        if not source.strategy.drift_checked:
            source.seek(target, SeekMode.BY_FRAME_INDEX)
            frame = source.read()
            reached = source.current_frame
            logger.debug(f"Poster frame {target}/{source.describe_position()}")
            if frame is not None:
                source.strategy.record_drift_check(target, reached)

        if frame is None:
            frame, reached = self.read_with_retry(source, target)

        if frame is None:
            reporter.warning(f"No decodable frame found around frame {target}")

        return PosterFrameResult(
            poster_frame_id=poster_frame_id,
            image=self.encode(frame),
            actual_frame=reached,
            target_frame=target,
            uses_ratio_seek=source.uses_ratio_seek,
        )
