# checkin_service/scanner/decoder.py
"""
Pull-based QR scanning loop.

``ScanDecoder.decode_next_frame()`` captures one frame at the target rate and
returns a ``ScanResult`` only for a new presentation of a code. A code held
in front of the camera is reported once; the same text is reported again
only after it has been out of view for the cooldown window. "No code in this
frame" is simply ``None``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import cv2

from checkin_service.core.config import settings
from checkin_service.core.errors import FrameDecodeError
from checkin_service.scanner.camera import FrameSource

logger = logging.getLogger(__name__)


class QRFrameDecoder:
    """Finds and decodes a single QR code in a frame using OpenCV."""

    def __init__(self):
        self._detector = cv2.QRCodeDetector()

    def decode(self, frame) -> Optional[str]:
        if frame is None or getattr(frame, "size", 0) == 0:
            raise FrameDecodeError("Empty frame")
        try:
            text, _points, _ = self._detector.detectAndDecode(frame)
        except cv2.error as e:
            raise FrameDecodeError(f"Corrupt frame: {e}") from e
        return text or None


@dataclass(frozen=True)
class ScanResult:
    text: str
    scanned_at: float


class ScanDecoder:
    """Single-threaded frame loop for one scanning device."""

    def __init__(
        self,
        source: FrameSource,
        frame_decoder: Optional[QRFrameDecoder] = None,
        target_fps: float = settings.SCANNER_TARGET_FPS,
        cooldown_seconds: float = settings.SCANNER_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if target_fps <= 0:
            raise ValueError("target_fps must be positive")
        self.source = source
        self.frame_decoder = frame_decoder or QRFrameDecoder()
        self.frame_interval = 1.0 / target_fps
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.sleep = sleep
        self._running = False
        self._next_frame_at: Optional[float] = None
        self._last_text: Optional[str] = None
        self._last_seen: float = 0.0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self.source.acquire()
        self._running = True
        self._next_frame_at = None
        self._last_text = None
        logger.info("Scanner started")

    def stop(self) -> None:
        if not self._running and not self.source.is_open:
            return
        self._running = False
        try:
            self.source.release()
        finally:
            logger.info("Scanner stopped")

    def __enter__(self) -> "ScanDecoder":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _pace(self) -> float:
        now = self.clock()
        if self._next_frame_at is not None and now < self._next_frame_at:
            self.sleep(self._next_frame_at - now)
            now = self._next_frame_at
        self._next_frame_at = now + self.frame_interval
        return now

    def decode_next_frame(self) -> Optional[ScanResult]:
        """Capture and decode one frame.

        Raises FrameDecodeError for corrupt frames or camera I/O failures.
        """
        if not self._running:
            raise RuntimeError("Scanner is not started")

        now = self._pace()
        frame = self.source.read()
        text = self.frame_decoder.decode(frame)
        if not text:
            return None

        if text == self._last_text and now - self._last_seen < self.cooldown_seconds:
            self._last_seen = now
            logger.debug("Suppressed repeat of code still in frame")
            return None

        self._last_text = text
        self._last_seen = now
        return ScanResult(text=text, scanned_at=now)

    def scans(self) -> Iterator[ScanResult]:
        """Yield new scans until ``stop()``; releases the camera on exit."""
        self.start()
        try:
            while self._running:
                result = self.decode_next_frame()
                if result is not None:
                    yield result
        finally:
            self.stop()
