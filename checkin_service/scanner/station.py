# checkin_service/scanner/station.py
"""
Scanning station: camera -> ScanDecoder -> check-in API.

Runs on the door device. Non-ticket codes and corrupt frames are logged and
scanning continues; a camera that cannot be opened ends the session.
"""

import logging
from contextlib import ExitStack
from typing import Optional

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from checkin_service.core.config import settings
from checkin_service.core.errors import (
    ExpiredTokenError,
    FrameDecodeError,
    MalformedScanError,
    NetworkError,
)
from checkin_service.scanner.decoder import ScanDecoder, ScanResult
from checkin_service.scanner.feedback import ScanFeedback
from checkin_service.schemas.check_in import CheckInAction
from checkin_service.services.ticketing.check_in_service import validate_scanned_text

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FRAME_ERRORS = 50


class CheckInClient:
    """HTTP client for POST /api/v1/check-in with bounded retries."""

    def __init__(
        self,
        url: str = settings.CHECK_IN_API_URL,
        api_token: Optional[str] = settings.SCANNER_API_TOKEN,
        timeout: float = settings.SCANNER_HTTP_TIMEOUT_SECONDS,
        max_attempts: int = settings.CHECK_IN_MAX_ATTEMPTS,
        retry_wait_seconds: float = 0.2,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.url = url
        self.max_attempts = max(1, max_attempts)
        self.retry_wait_seconds = retry_wait_seconds
        self._client = httpx.Client(headers=headers, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _post(self, body: dict) -> dict:
        try:
            response = self._client.post(self.url, json=body)
        except httpx.TransportError as e:
            raise NetworkError(f"Check-in service unreachable: {e.__class__.__name__}") from e
        if response.status_code == 503:
            raise NetworkError("Check-in service unavailable")
        try:
            return response.json()
        except ValueError:
            return {
                "success": False,
                "alreadyCheckedIn": False,
                "error": f"Unexpected response ({response.status_code})",
            }

    def submit(self, booking_id: str, token_text: str, action: CheckInAction, scanned_by: Optional[str] = None) -> dict:
        body = {"bookingId": booking_id, "signature": token_text, "action": CheckInAction(action).value}
        if scanned_by:
            body["scannedBy"] = scanned_by

        retrying = Retrying(
            retry=retry_if_exception_type(NetworkError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=2),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._post(body)


class ScanningStation:
    """Connects one device's scanner to the check-in service."""

    def __init__(
        self,
        scan_decoder: ScanDecoder,
        client: CheckInClient,
        feedback: ScanFeedback,
        action: CheckInAction = CheckInAction.CHECK_IN,
        scanned_by: Optional[str] = None,
    ):
        self.scan_decoder = scan_decoder
        self.client = client
        self.feedback = feedback
        self.action = CheckInAction(action)
        self.scanned_by = scanned_by

    def handle_scan(self, result: ScanResult) -> Optional[dict]:
        """Submit one scan. Returns the service response, or None if nothing was sent."""
        try:
            claims = validate_scanned_text(result.text)
        except MalformedScanError as e:
            logger.debug(f"Ignoring non-ticket code: {e}")
            return None
        except ExpiredTokenError:
            logger.warning("Expired ticket presented")
            self.feedback.failure()
            return None

        try:
            response = self.client.submit(claims.booking_id, result.text, self.action, self.scanned_by)
        except NetworkError as e:
            logger.error(f"Check-in for {claims.confirmation_code} not recorded: {e}")
            self.feedback.failure()
            return None

        if response.get("success"):
            logger.info(f"{response.get('message', 'Done')}: {claims.confirmation_code}")
            self.feedback.success()
        elif response.get("alreadyCheckedIn"):
            logger.info(f"{response.get('message', 'Already done')}: {claims.confirmation_code}")
            self.feedback.already_done()
        else:
            logger.warning(f"Rejected {claims.confirmation_code}: {response.get('error')}")
            self.feedback.failure()
        return response

    def run(self, max_scans: Optional[int] = None) -> int:
        """Scan until stopped, ``max_scans`` tickets are handled, or the camera fails.

        The camera and the feedback handle are released on every exit path.
        Returns the number of scans handled.
        """
        handled = 0
        frame_errors = 0
        with ExitStack() as stack:
            self.feedback.acquire()
            stack.callback(self.feedback.release)
            stack.enter_context(self.scan_decoder)

            while self.scan_decoder.running:
                try:
                    result = self.scan_decoder.decode_next_frame()
                except FrameDecodeError as e:
                    frame_errors += 1
                    logger.warning(f"Frame error ({frame_errors}): {e}")
                    if frame_errors >= MAX_CONSECUTIVE_FRAME_ERRORS:
                        raise
                    continue
                frame_errors = 0

                if result is None:
                    continue
                if self.handle_scan(result) is not None:
                    handled += 1
                if max_scans is not None and handled >= max_scans:
                    break
        return handled
