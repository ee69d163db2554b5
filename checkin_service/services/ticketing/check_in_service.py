# checkin_service/services/ticketing/check_in_service.py
"""
Check-in coordinator.

Turns a scanned ticket into exactly one of:
- a first transition (booked -> checked_in, checked_in -> checked_out),
- an idempotent "already done" report carrying the current booking,
- a categorized rejection (see ``checkin_service.core.errors``).

The transition itself is one conditional UPDATE against the booking store,
so concurrent scans of the same ticket on different devices produce a single
success. Because of that, retrying after a store timeout is always safe.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session
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
    MalformedScanError,
    NetworkError,
    StateConflictError,
    SupersededTokenError,
    TamperError,
    UnknownBookingError,
)
from checkin_service.crud.booking_crud import booking_crud
from checkin_service.models.booking import Booking
from checkin_service.schemas.check_in import (
    BookingSnapshot,
    BookingStatus,
    CheckInAction,
    CheckInOutcome,
    CheckInResponse,
    TicketClaims,
)
from checkin_service.services.ticketing.payload_codec import ParseError, SignedToken, parse_token
from checkin_service.services.ticketing.signing import KeyRing

logger = logging.getLogger(__name__)

CHECK_IN_METHOD = "qr_code"

_MESSAGES = {
    CheckInOutcome.CHECKED_IN: "Check-in successful!",
    CheckInOutcome.CHECKED_OUT: "Check-out successful!",
    CheckInOutcome.ALREADY_CHECKED_IN: "Already checked in",
    CheckInOutcome.ALREADY_CHECKED_OUT: "Already checked out",
}


def booking_snapshot(booking: Booking) -> BookingSnapshot:
    return BookingSnapshot(
        id=booking.id,
        customer=booking.customer_name,
        confirmation_code=booking.confirmation_code,
        activity_name=booking.activity_name or "Activity",
        venue_name=booking.venue_name or "Venue",
        date=booking.booking_date.isoformat(),
        time=booking.start_time.strftime("%H:%M"),
        group_size=booking.group_size,
        status=BookingStatus(booking.status),
        check_in_time=booking.check_in_time,
        check_out_time=booking.check_out_time,
    )


@dataclass(frozen=True)
class CheckInResult:
    outcome: CheckInOutcome
    booking: BookingSnapshot

    @property
    def success(self) -> bool:
        return self.outcome.is_first_transition

    def to_response(self) -> CheckInResponse:
        return CheckInResponse(
            success=self.success,
            already_checked_in=not self.success,
            message=_MESSAGES[self.outcome],
            booking=self.booking,
        )


def validate_scanned_text(text: str, now: Optional[float] = None) -> TicketClaims:
    """Decode-only check a scanning device can run before calling the server.

    Catches non-ticket codes and expired tickets locally. It cannot detect
    forgeries; only the server holds the signing secret.
    """
    try:
        claims = parse_token(text).claims
    except ParseError as e:
        raise MalformedScanError(f"Not a ticket QR code: {e}") from e
    if (now if now is not None else time.time()) > claims.expires_at:
        raise ExpiredTokenError("This ticket has expired")
    return claims


class CheckInCoordinator:
    """Validates scanned tickets and performs race-safe status transitions."""

    def __init__(
        self,
        key_ring: Optional[KeyRing] = None,
        clock: Callable[[], float] = time.time,
        max_attempts: int = settings.CHECK_IN_MAX_ATTEMPTS,
        retry_wait_seconds: float = 0.2,
    ):
        self.key_ring = key_ring or KeyRing.from_settings()
        self.clock = clock
        self.max_attempts = max(1, max_attempts)
        self.retry_wait_seconds = retry_wait_seconds

    # ----------------------------------------
    # Token validation (no store access)
    # ----------------------------------------

    def verify_scan(self, scanned_text: str, booking_id: Optional[str] = None) -> SignedToken:
        """Parse, authenticate and expiry-check a scanned token."""
        try:
            token = parse_token(scanned_text)
        except ParseError as e:
            logger.debug(f"Malformed scan rejected: {e}")
            raise MalformedScanError("Not a valid ticket QR code") from e

        if not self.key_ring.verify_token(token):
            logger.warning(f"Invalid signature on ticket for booking {token.claims.booking_id}")
            raise TamperError("Invalid QR code signature")

        if booking_id is not None and token.claims.booking_id != booking_id:
            logger.warning(
                f"Ticket for booking {token.claims.booking_id} presented as booking {booking_id}"
            )
            raise TamperError("QR code does not belong to this booking")

        if self.clock() > token.claims.expires_at:
            logger.warning(f"Expired ticket scanned for booking {token.claims.booking_id}")
            raise ExpiredTokenError("This ticket has expired")

        return token

    # ----------------------------------------
    # Check-in / check-out
    # ----------------------------------------

    def process_check_in(
        self,
        db: Session,
        booking_id: Optional[str],
        signature: str,
        action: CheckInAction,
        scanned_by: Optional[str] = None,
    ) -> CheckInResult:
        """Validate ``signature`` (the scanned token) and apply ``action``.

        Store timeouts are retried up to ``max_attempts`` times before a
        ``NetworkError`` reaches the caller.
        """
        action = CheckInAction(action)
        token = self.verify_scan(signature, booking_id)

        retrying = Retrying(
            retry=retry_if_exception_type(NetworkError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=2),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._apply(db, token.claims, action, scanned_by or "qr_scan")

    def _load_booking(self, db: Session, claims: TicketClaims) -> Booking:
        booking = booking_crud.get(db, claims.booking_id)
        if not booking:
            logger.warning(f"Scanned ticket for unknown booking {claims.booking_id}")
            raise UnknownBookingError("Booking not found")
        if booking.is_cancelled:
            logger.warning(f"Scanned ticket for cancelled booking {booking.id}")
            raise UnknownBookingError("This booking has been cancelled")
        if booking.ticket_issued_at is not None and booking.ticket_issued_at != claims.issued_at:
            logger.warning(f"Superseded ticket scanned for booking {booking.id}")
            raise SupersededTokenError("This ticket has been replaced by a newer one")
        return booking

    def _apply(
        self,
        db: Session,
        claims: TicketClaims,
        action: CheckInAction,
        actor: str,
    ) -> CheckInResult:
        booking = self._load_booking(db, claims)
        if action == CheckInAction.CHECK_IN:
            return self._check_in(db, booking, actor)
        return self._check_out(db, booking, actor)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def _reload(self, db: Session, booking_id: str) -> Booking:
        booking = booking_crud.get(db, booking_id)
        if not booking:
            raise UnknownBookingError("Booking not found")
        if booking.is_cancelled:
            raise UnknownBookingError("This booking has been cancelled")
        return booking

    def _check_in(self, db: Session, booking: Booking, actor: str) -> CheckInResult:
        if booking.status == BookingStatus.BOOKED.value:
            applied = booking_crud.cas_update_status(
                db,
                booking.id,
                expected_status=BookingStatus.BOOKED,
                new_status=BookingStatus.CHECKED_IN,
                timestamp_field="check_in_time",
                timestamp_value=self._now(),
                actor=actor,
                method=CHECK_IN_METHOD,
            )
            booking = self._reload(db, booking.id)
            if applied:
                logger.info(f"check_in successful for booking {booking.id} by {actor}")
                return CheckInResult(CheckInOutcome.CHECKED_IN, booking_snapshot(booking))

        # Lost the race, or the guest was already in.
        if booking.status in (BookingStatus.CHECKED_IN.value, BookingStatus.CHECKED_OUT.value):
            logger.info(f"Duplicate check_in for booking {booking.id} ({booking.status})")
            return CheckInResult(CheckInOutcome.ALREADY_CHECKED_IN, booking_snapshot(booking))

        raise StateConflictError(f"Booking cannot be checked in. Current status: {booking.status}")

    def _check_out(self, db: Session, booking: Booking, actor: str) -> CheckInResult:
        if booking.status == BookingStatus.CHECKED_IN.value:
            applied = booking_crud.cas_update_status(
                db,
                booking.id,
                expected_status=BookingStatus.CHECKED_IN,
                new_status=BookingStatus.CHECKED_OUT,
                timestamp_field="check_out_time",
                timestamp_value=self._now(),
                actor=actor,
            )
            booking = self._reload(db, booking.id)
            if applied:
                logger.info(f"check_out successful for booking {booking.id} by {actor}")
                return CheckInResult(CheckInOutcome.CHECKED_OUT, booking_snapshot(booking))

        if booking.status == BookingStatus.CHECKED_OUT.value:
            logger.info(f"Duplicate check_out for booking {booking.id}")
            return CheckInResult(CheckInOutcome.ALREADY_CHECKED_OUT, booking_snapshot(booking))

        if booking.status == BookingStatus.BOOKED.value:
            raise StateConflictError("Must check in before checking out")

        raise StateConflictError(f"Booking cannot be checked out. Current status: {booking.status}")


check_in_coordinator = CheckInCoordinator()
