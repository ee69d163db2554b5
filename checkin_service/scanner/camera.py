# checkin_service/scanner/camera.py
"""
Camera frame sources.

A frame source is an explicitly owned resource: ``acquire()`` opens the
device, ``release()`` closes it. Nothing opens a camera implicitly. Use
``open_camera`` (or ``ScanDecoder`` as a context manager) so release happens
on every exit path.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

import cv2

from checkin_service.core.errors import CameraPermissionError, FrameDecodeError

logger = logging.getLogger(__name__)


class FrameSource(ABC):
    """Something that yields image frames (numpy arrays) one at a time."""

    @abstractmethod
    def acquire(self) -> None:
        """Open the underlying device. Raises CameraPermissionError."""

    @abstractmethod
    def read(self):
        """Return the next frame. Raises FrameDecodeError on I/O failure."""

    @abstractmethod
    def release(self) -> None:
        """Close the device. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...


class OpenCVCamera(FrameSource):
    """A local camera read through OpenCV's VideoCapture."""

    def __init__(self, device_index: int = 0, width: Optional[int] = None, height: Optional[int] = None):
        self.device_index = device_index
        self.width = width
        self.height = height
        self._capture = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def acquire(self) -> None:
        if self._capture is not None:
            return
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise CameraPermissionError(
                f"Camera {self.device_index} could not be opened. Check that camera access is allowed."
            )
        if self.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        logger.info(f"Camera {self.device_index} acquired")

    def read(self):
        if self._capture is None:
            raise FrameDecodeError("Camera is not acquired")
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise FrameDecodeError(f"Camera {self.device_index} returned no frame")
        return frame

    def release(self) -> None:
        if self._capture is None:
            return
        try:
            self._capture.release()
        finally:
            self._capture = None
            logger.info(f"Camera {self.device_index} released")


@contextmanager
def open_camera(source: FrameSource) -> Iterator[FrameSource]:
    source.acquire()
    try:
        yield source
    finally:
        source.release()
