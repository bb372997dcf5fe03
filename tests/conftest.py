"""Shared fixtures: a scripted stand-in for cv2.VideoCapture."""

import threading
import time

import cv2
import numpy as np
import pytest


def fourcc_code(text):
    return sum(ord(c) << (8 * i) for i, c in enumerate(text))


class FakeCapture:
    """
    Behaves like an opened cv2.VideoCapture over synthetic frames.

    ``pixel(frame_index)`` returns a gray level (int) or a BGR triple used to
    fill the whole frame. Frames listed in ``empty_frames`` fail to decode.
    ``drift`` is added to every frame-index seek to simulate a broken index.
    Every ``set`` call is recorded for seek audits.
    """

    def __init__(self, frame_count=100, width=64, height=48, fps=25.0, fourcc='avc1',
                 pixel=None, empty_frames=(), drift=0, opened=True, read_error=None,
                 read_delay=0.0, tracker=None):
        self.frame_count = frame_count
        self.width = width
        self.height = height
        self.fps = fps
        self.fourcc = fourcc_code(fourcc)
        self.pixel = pixel or (lambda i: 128)
        self.empty_frames = set(empty_frames)
        self.drift = drift
        self.opened = opened
        self.read_error = read_error
        self.read_delay = read_delay
        self.tracker = tracker
        self.pos = 0
        self.set_calls = []
        self.reads = []
        self.released = False

    def isOpened(self):
        return self.opened

    def get(self, prop):
        if prop == cv2.CAP_PROP_FRAME_COUNT:
            return float(self.frame_count)
        if prop == cv2.CAP_PROP_FRAME_WIDTH:
            return float(self.width)
        if prop == cv2.CAP_PROP_FRAME_HEIGHT:
            return float(self.height)
        if prop == cv2.CAP_PROP_FPS:
            return float(self.fps)
        if prop == cv2.CAP_PROP_FOURCC:
            return float(self.fourcc)
        if prop == cv2.CAP_PROP_POS_FRAMES:
            return float(self.pos)
        if prop == cv2.CAP_PROP_POS_MSEC:
            return self.pos / self.fps * 1000 if self.fps else 0.0
        return 0.0

    def set(self, prop, value):
        self.set_calls.append((prop, value))
        if prop == cv2.CAP_PROP_POS_FRAMES:
            self.pos = int(value) + self.drift
        elif prop == cv2.CAP_PROP_POS_AVI_RATIO:
            self.pos = int(round(value * (self.frame_count - 1)))
        return True

    @property
    def frame_seeks(self):
        return [value for prop, value in self.set_calls if prop == cv2.CAP_PROP_POS_FRAMES]

    @property
    def ratio_seeks(self):
        return [value for prop, value in self.set_calls if prop == cv2.CAP_PROP_POS_AVI_RATIO]

    def read(self):
        if self.tracker is not None:
            self.tracker.enter()
        try:
            if self.read_delay:
                time.sleep(self.read_delay)
            if self.read_error is not None:
                raise self.read_error
            index = self.pos
            self.reads.append(index)
            if index < 0 or index >= self.frame_count:
                return False, None
            self.pos += 1
            if index in self.empty_frames:
                return False, None
            value = self.pixel(index)
            if isinstance(value, tuple):
                frame = np.zeros((self.height, self.width, 3), dtype=np.uint8)
                frame[:, :] = value
            else:
                frame = np.full((self.height, self.width, 3), value, dtype=np.uint8)
            return True, frame
        finally:
            if self.tracker is not None:
                self.tracker.leave()

    def release(self):
        self.released = True


class ConcurrencyTracker:
    """Counts how many reads are in flight at once"""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def enter(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def leave(self):
        with self._lock:
            self.active -= 1


class CaptureFactory:
    """capture_factory that hands out FakeCaptures and remembers them"""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created = []

    def __call__(self, path):
        capture = FakeCapture(**self.kwargs)
        self.created.append((path, capture))
        return capture


@pytest.fixture
def fake_capture():
    return FakeCapture


@pytest.fixture
def capture_factory():
    return CaptureFactory


@pytest.fixture
def tracker():
    return ConcurrencyTracker()
