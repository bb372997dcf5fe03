"""
Video Source and Positioning Module

This module is responsible for:
1. Opening a video file through OpenCV and exposing its metadata
2. Positioning the decoder by absolute frame index or by normalized ratio
3. Detecting when frame-index seeking drifts from the requested frame and
   switching the file over to ratio seeking for the rest of the session
4. Turning decoder failures into empty frames instead of exceptions
"""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Any

import numpy as np
import cv2


logger = logging.getLogger(__name__)


class OpenError(IOError):
    """Raised when a video file cannot be opened for decoding"""

    def __init__(self, path: str, reason: str = "cannot be opened"):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot open video {self.path}: {reason}")


class SeekMode(str, Enum):
    BY_FRAME_INDEX = 'frame_index'
    BY_RATIO = 'ratio'


def limit_range(value, lower_limit, upper_limit):
    """Clamp value into [lower_limit, upper_limit]; NaN and None become the lower limit"""
    if value is None or value != value:
        value = lower_limit
    return min(max(value, lower_limit), upper_limit)


def fourcc_to_string(fourcc) -> str:
    """Decode the FOURCC integer OpenCV reports into its four characters"""
    code = int(fourcc)
    return ''.join(chr((code >> shift) & 0xFF) for shift in (0, 8, 16, 24))


class PositioningStrategy:
    """
    Decides how seeks are issued for one file.

    The ratio-seek flag is sticky: once drift has been detected it is never
    cleared, and the drift check itself is only performed once.
    """

    def __init__(self, uses_ratio_seek: bool = False):
        self._uses_ratio_seek = uses_ratio_seek
        self._drift_checked = False
        self._lock = threading.Lock()

    @property
    def uses_ratio_seek(self) -> bool:
        return self._uses_ratio_seek

    @property
    def drift_checked(self) -> bool:
        return self._drift_checked

    def mode_for(self, use_ratio: bool = False) -> SeekMode:
        """Seek mode for a request, honouring the sticky flag"""
        if use_ratio or self._uses_ratio_seek:
            return SeekMode.BY_RATIO
        return SeekMode.BY_FRAME_INDEX

    def record_drift_check(self, requested_frame: int, reported_frame: int) -> bool:
        """
        Compare where a frame-index seek landed with where it was asked to go.

        Only the first call has an effect; later calls return the stored flag.

        Args:
            requested_frame: Frame index passed to the seek
            reported_frame: Frame index the decoder reports after reading

        Returns:
            The ratio-seek flag after the check
        """
        with self._lock:
            if self._drift_checked:
                return self._uses_ratio_seek
            self._drift_checked = True
            if int(requested_frame) != int(reported_frame):
                logger.info(
                    f"Playhead not at correct position ({reported_frame} instead of "
                    f"{requested_frame}): switching to ratio seeking"
                )
                self._uses_ratio_seek = True
            return self._uses_ratio_seek


class VideoSource:
    """
    An opened decode handle for one media file.

    Owned by exactly one job at a time; use it as a context manager so the
    handle is released when the job ends.
    """

    def __init__(self, path: str, capture: Any, strategy: Optional[PositioningStrategy] = None):
        self.path = str(path)
        self.capture = capture
        self.strategy = strategy or PositioningStrategy()

        self.frame_count = int(self.get_property(cv2.CAP_PROP_FRAME_COUNT))
        self.width = int(self.get_property(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.get_property(cv2.CAP_PROP_FRAME_HEIGHT))
        self.fps = float(self.get_property(cv2.CAP_PROP_FPS))
        self.codec_tag = fourcc_to_string(self.get_property(cv2.CAP_PROP_FOURCC))

    @classmethod
    def open(
        cls,
        path: str,
        strategy: Optional[PositioningStrategy] = None,
        capture_factory: Optional[Callable[[str], Any]] = None
    ) -> 'VideoSource':
        """
        Open a video file.

        Args:
            path: Path to the video file
            strategy: Positioning strategy shared with earlier jobs on this file
            capture_factory: Callable building a capture object (default: cv2.VideoCapture)

        Returns:
            VideoSource

        Raises:
            OpenError: if the file is missing, cannot be decoded or reports no frames
        """
        factory = capture_factory or cv2.VideoCapture
        if capture_factory is None and not Path(path).exists():
            raise OpenError(path, "file not found")

        try:
            capture = factory(str(path))
        except cv2.error as e:
            raise OpenError(path, str(e)) from e

        if not capture.isOpened():
            raise OpenError(path)

        source = cls(path, capture, strategy)
        if source.frame_count <= 0:
            source.release()
            raise OpenError(path, "no frames reported")

        logger.debug(
            f"Opened {path}: {source.frame_count} frames, {source.width}x{source.height}, "
            f"{source.fps:.3f} fps, codec {source.codec_tag}"
        )
        return source

    @property
    def uses_ratio_seek(self) -> bool:
        return self.strategy.uses_ratio_seek

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps if self.fps > 0 else 0.0

    @property
    def last_frame(self) -> int:
        return max(self.frame_count - 1, 0)

    def get_property(self, prop: int) -> float:
        value = self.capture.get(prop)
        return float(value) if value is not None else 0.0

    @property
    def position(self) -> float:
        """Index of the next frame the decoder will deliver"""
        return self.get_property(cv2.CAP_PROP_POS_FRAMES)

    @property
    def position_msec(self) -> float:
        return self.get_property(cv2.CAP_PROP_POS_MSEC)

    @property
    def current_frame(self) -> int:
        """Index of the frame most recently read, as reported by the decoder"""
        return int(limit_range(int(self.position) - 1, 0, self.last_frame))

    def seek(self, target: int, mode: SeekMode) -> None:
        """Position the decoder so that the next read delivers ``target``"""
        if mode == SeekMode.BY_RATIO:
            ratio = target / (self.frame_count - 1) if self.frame_count > 1 else 0.0
            self.capture.set(cv2.CAP_PROP_POS_AVI_RATIO, ratio)
        else:
            self.capture.set(cv2.CAP_PROP_POS_FRAMES, target)

    def set_position(self, target: int, use_ratio: bool = False) -> SeekMode:
        """Seek using the mode the positioning strategy picks for this file"""
        mode = self.strategy.mode_for(use_ratio)
        self.seek(target, mode)
        return mode

    def read(self) -> Optional[np.ndarray]:
        """
        Decode the next frame.

        Returns:
            The BGR frame, or None when the decoder delivers nothing
        """
        try:
            ok, frame = self.capture.read()
        except cv2.error as e:
            logger.error(f"Decoder error at frame {self.current_frame} of {self.path}: {e}")
            return None
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def describe_position(self) -> str:
        return f"{self.current_frame} ({self.position_msec:.0f}ms) of {self.frame_count}"

    def release(self) -> None:
        if self.capture is not None:
            self.capture.release()
            self.capture = None

    def __enter__(self) -> 'VideoSource':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
