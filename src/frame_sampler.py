"""
Frame Sampler Module

Decodes the frame a VideoSource is positioned at and reduces it to a
three-channel color-mean vector. The sampler never retries; callers decide
what to do with an empty sample.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import cv2

from models import ColorVector, FrameSample
from video_source import VideoSource


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleSpec:
    """
    How a frame is reduced before measuring.

    Exactly one of ``scale`` (uniform factor) or ``max_dimension`` (longest
    side in pixels) is normally set; with neither the frame is measured as is.
    """
    scale: Optional[float] = None
    max_dimension: Optional[int] = None
    color_conversion: int = cv2.COLOR_BGR2HSV


def reduce_frame(frame: np.ndarray, spec: SampleSpec) -> np.ndarray:
    """Downscale a frame as ``spec`` describes (never upscales)"""
    height, width = frame.shape[:2]
    factor = 1.0
    if spec.scale is not None:
        factor = spec.scale
    elif spec.max_dimension is not None:
        factor = spec.max_dimension / max(height, width)

    if factor >= 1.0:
        return frame

    new_size = (max(1, int(round(width * factor))), max(1, int(round(height * factor))))
    return cv2.resize(frame, new_size, interpolation=cv2.INTER_AREA)


def color_mean(frame: np.ndarray, spec: SampleSpec) -> ColorVector:
    """
    Per-channel mean of a frame after reduction and color conversion.

    Args:
        frame: BGR frame as delivered by the decoder
        spec: Reduction and color-space policy

    Returns:
        ColorVector with the first three channel means
    """
    reduced = reduce_frame(frame, spec)
    if reduced.ndim == 2:
        reduced = cv2.cvtColor(reduced, cv2.COLOR_GRAY2BGR)
    converted = cv2.cvtColor(reduced, spec.color_conversion)
    means = cv2.mean(converted)
    return ColorVector(float(means[0]), float(means[1]), float(means[2]))


def encode_image(frame: Optional[np.ndarray], image_format: str = '.jpg',
                 params: Optional[Sequence[int]] = None) -> bytes:
    """Encode a frame to image bytes; None or a failed encode yields b''"""
    if frame is None:
        return b''
    ok, buffer = cv2.imencode(image_format, frame, list(params or []))
    if not ok:
        logger.warning(f"Encoding to {image_format} failed")
        return b''
    return buffer.tobytes()


class FrameSampler:
    """Reads the next frame from a source and measures it"""

    def __init__(self, spec: SampleSpec):
        self.spec = spec

    def sample(self, source: VideoSource, frame_index: int) -> FrameSample:
        """
        Decode the frame the source is positioned at.

        Args:
            source: Positioned video source
            frame_index: Frame the caller expects the decoder to deliver

        Returns:
            FrameSample indexed by the decoder's reported position, or an
            empty sample at ``frame_index`` if nothing could be decoded
        """
        frame = source.read()
        if frame is None:
            return FrameSample(frame_index=frame_index, mean=None)
        return FrameSample(frame_index=source.current_frame, mean=color_mean(frame, self.spec))
