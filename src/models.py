"""
Shared data models for the Video Frame Scanner.

This module contains dataclasses and shared types used across
multiple modules to avoid circular imports and unnecessary dependencies.
"""

import base64
from dataclasses import dataclass, asdict, field
from typing import List, NamedTuple, Optional


@dataclass
class VideoMetadata:
    """Metadata reported by the file-details probe"""
    file_id: str
    file_path: str
    frame_count: int
    width: int
    height: int
    fps: float
    codec: str
    duration: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class ColorVector(NamedTuple):
    """Per-channel mean of a frame in HSV space"""
    hue: float
    saturation: float
    value: float

    @property
    def brightness(self) -> float:
        return self.value


@dataclass
class FrameSample:
    """
    One decoded (or undecodable) frame.

    A ``mean`` of None marks a frame the decoder could not deliver.
    """
    frame_index: int
    mean: Optional[ColorVector] = None

    @property
    def is_empty(self) -> bool:
        return self.mean is None

    @property
    def brightness(self) -> Optional[float]:
        return None if self.mean is None else self.mean.value


@dataclass
class FadeBoundary:
    """In and out point of the footage, both inclusive frame indices"""
    in_frame: int
    out_frame: int
    frames_scanned: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SceneCut:
    frame: int


@dataclass
class SceneScanResult:
    """Cut list plus the full per-frame metric list of a scene scan"""
    cuts: List[SceneCut] = field(default_factory=list)
    metrics: List[FrameSample] = field(default_factory=list)

    @property
    def cut_frames(self) -> List[int]:
        return [cut.frame for cut in self.cuts]

    @property
    def brightness_timeline(self) -> List[Optional[float]]:
        """V channel per scanned frame, None where the frame was empty"""
        return [sample.brightness for sample in self.metrics]

    def to_dict(self) -> dict:
        return {
            'cuts': self.cut_frames,
            'brightness': self.brightness_timeline,
        }


@dataclass
class ThumbRequest:
    thumb_id: str
    frame_id: str
    target_frame: int


@dataclass
class ThumbResult:
    """Outcome of one thumbnail slot. An empty ``image`` marks a failed slot."""
    thumb_id: str
    frame_id: str
    image: bytes
    actual_frame: int
    is_last: bool = False
    target_frame: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.image

    def to_dict(self) -> dict:
        return {
            'thumb_id': self.thumb_id,
            'frame_id': self.frame_id,
            'image': base64.b64encode(self.image).decode('ascii'),
            'actual_frame': self.actual_frame,
            'target_frame': self.target_frame,
            'is_last': self.is_last,
        }


@dataclass
class PosterFrameResult:
    poster_frame_id: Optional[str]
    image: bytes
    actual_frame: int
    target_frame: int
    uses_ratio_seek: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.image

    def to_dict(self) -> dict:
        return {
            'poster_frame_id': self.poster_frame_id,
            'image': base64.b64encode(self.image).decode('ascii'),
            'actual_frame': self.actual_frame,
            'target_frame': self.target_frame,
            'uses_ratio_seek': self.uses_ratio_seek,
        }
