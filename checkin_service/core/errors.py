# checkin_service/core/errors.py
"""
Error taxonomy for ticket verification, check-in and scanning.

Every error carries a stable ``code`` for API clients, a human ``message``
for the operator, and a ``retryable`` flag. Only ``NetworkError`` is
retryable; the check-in transition is idempotent so a retry is always safe.
"""


class CheckInError(Exception):
    """Base class for check-in failures."""

    code = "check_in_failed"
    retryable = False

    def __init__(self, message: str, code: str | None = None, retryable: bool | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class MalformedScanError(CheckInError):
    """Scanned text is not a ticket token. Benign: the scanner keeps running."""

    code = "malformed_scan"


class TamperError(CheckInError):
    """Signature did not verify against any accepted key."""

    code = "invalid_signature"


class SupersededTokenError(TamperError):
    """Token was validly signed but a newer ticket has been issued for the booking."""

    code = "superseded_ticket"


class ExpiredTokenError(CheckInError):
    code = "expired_ticket"


class UnknownBookingError(CheckInError):
    """Booking does not exist or has been cancelled."""

    code = "unknown_booking"


class StateConflictError(CheckInError):
    """Business-rule rejection, e.g. check-out before check-in."""

    code = "state_conflict"


class NetworkError(CheckInError):
    """Booking store unreachable or timed out."""

    code = "network_error"
    retryable = True


# ---------------------------------------------------------------------------
# Scanner-side errors
# ---------------------------------------------------------------------------


class ScannerError(Exception):
    """Base class for camera / frame failures on a scanning device."""


class CameraPermissionError(ScannerError):
    """Camera could not be opened. Fatal to the scanning session."""


class FrameDecodeError(ScannerError):
    """A frame could not be read or was corrupt. The loop may continue."""
