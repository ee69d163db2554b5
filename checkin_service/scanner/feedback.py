# checkin_service/scanner/feedback.py
import logging
import sys
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class ScanFeedback(ABC):
    """Audible cue played to the operator after each scan."""

    @abstractmethod
    def acquire(self) -> None:
        ...

    @abstractmethod
    def release(self) -> None:
        ...

    @abstractmethod
    def success(self) -> None:
        ...

    @abstractmethod
    def already_done(self) -> None:
        ...

    @abstractmethod
    def failure(self) -> None:
        ...


class TerminalBellFeedback(ScanFeedback):
    """Rings the terminal bell: once for success, twice for a repeat, three times for a rejection."""

    def __init__(self, stream=None):
        self._target = stream
        self._stream = None

    def acquire(self) -> None:
        self._stream = self._target or sys.stdout

    def release(self) -> None:
        if self._stream is not None:
            try:
                self._stream.flush()
            finally:
                self._stream = None

    def _ring(self, times: int) -> None:
        if self._stream is None:
            logger.debug("Feedback not acquired; skipping cue")
            return
        self._stream.write("\a" * times)
        self._stream.flush()

    def success(self) -> None:
        self._ring(1)

    def already_done(self) -> None:
        self._ring(2)

    def failure(self) -> None:
        self._ring(3)
