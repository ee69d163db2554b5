# checkin_service/services/ticketing/issuance.py
"""
Ticket issuance.

A booking has exactly one accepted ticket at a time, identified by the
``issuedAt`` stamped on the booking. Rescheduling reissues the ticket with a
strictly later ``issuedAt``; the old one then fails verification.
"""

import hashlib
import logging
import time
from datetime import date, datetime, timedelta
from datetime import time as dt_time
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from checkin_service.core.config import settings
from checkin_service.core.errors import UnknownBookingError
from checkin_service.crud.booking_crud import booking_crud
from checkin_service.models.booking import Booking
from checkin_service.schemas.check_in import TicketClaims
from checkin_service.services.ticketing.signing import KeyRing

logger = logging.getLogger(__name__)


def hash_customer_email(email: str, salt: Optional[str] = None) -> str:
    """One-way hash of a customer email so no PII ends up in a QR code."""
    normalized = (email or "").strip().lower()
    salted_input = f"{salt if salt is not None else settings.EMAIL_HASH_SALT}{normalized}"
    return hashlib.sha256(salted_input.encode("utf-8")).hexdigest()


def scheduled_end(booking: Booking, tz_name: Optional[str] = None) -> datetime:
    """Venue-local end of the booking as an aware datetime."""
    tz = ZoneInfo(tz_name or settings.VENUE_TIMEZONE)
    start = datetime.combine(booking.booking_date, booking.start_time).replace(tzinfo=tz)
    duration = booking.duration_minutes or settings.DEFAULT_BOOKING_DURATION_MINUTES
    return start + timedelta(minutes=duration)


def expires_at_for(booking: Booking) -> int:
    end = scheduled_end(booking) + timedelta(hours=settings.TICKET_EXPIRY_GRACE_HOURS)
    return int(end.timestamp())


def build_claims(booking: Booking, issued_at: int) -> TicketClaims:
    return TicketClaims(
        booking_id=booking.id,
        confirmation_code=booking.confirmation_code,
        customer_email_hash=hash_customer_email(booking.customer_email),
        activity_name=booking.activity_name,
        venue_name=booking.venue_name,
        date=booking.booking_date.isoformat(),
        time=booking.start_time.strftime("%H:%M"),
        group_size=booking.group_size,
        issued_at=issued_at,
        expires_at=expires_at_for(booking),
    )


class TicketIssuer:
    """Creates and reissues signed tickets for bookings."""

    def __init__(
        self,
        key_ring: Optional[KeyRing] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.key_ring = key_ring or KeyRing.from_settings()
        self.clock = clock

    def _next_issued_at(self, booking: Booking) -> int:
        issued_at = int(self.clock())
        if booking.ticket_issued_at is not None and issued_at <= booking.ticket_issued_at:
            issued_at = booking.ticket_issued_at + 1
        return issued_at

    def _load(self, db: Session, booking_id: str) -> Booking:
        booking = booking_crud.get(db, booking_id)
        if not booking or booking.is_cancelled:
            raise UnknownBookingError("Booking not found")
        return booking

    def token_for(self, booking: Booking) -> Tuple[str, TicketClaims]:
        """Token for the booking's currently accepted ticket."""
        if booking.ticket_issued_at is None:
            raise ValueError(f"No ticket has been issued for booking {booking.id}")
        claims = build_claims(booking, booking.ticket_issued_at)
        return self.key_ring.issue(claims), claims

    def issue(self, db: Session, booking_id: str) -> Tuple[str, TicketClaims]:
        """Issue a fresh ticket, superseding any earlier one."""
        booking = self._load(db, booking_id)
        issued_at = self._next_issued_at(booking)
        booking = booking_crud.stamp_ticket_issued_at(db, booking.id, issued_at)
        token, claims = self.token_for(booking)
        logger.info(f"Issued ticket for booking {booking.id} ({booking.confirmation_code}), iat={issued_at}")
        return token, claims

    def get_or_issue(self, db: Session, booking_id: str) -> Tuple[str, TicketClaims]:
        """Current ticket for the booking, issuing the first one if needed.

        Concurrent first requests all return the same ticket: only one stamp
        lands and everyone re-reads it.
        """
        booking = self._load(db, booking_id)
        if booking.ticket_issued_at is None:
            issued_at = int(self.clock())
            if booking_crud.stamp_first_ticket(db, booking.id, issued_at):
                logger.info(
                    f"Issued ticket for booking {booking.id} ({booking.confirmation_code}), iat={issued_at}"
                )
            booking = self._load(db, booking_id)
        return self.token_for(booking)

    def reschedule(
        self,
        db: Session,
        booking_id: str,
        booking_date: date,
        start_time: dt_time,
        duration_minutes: Optional[int] = None,
    ) -> Tuple[str, TicketClaims]:
        """Move a booking and reissue its ticket; the old ticket stops verifying."""
        self._load(db, booking_id)
        booking_crud.update_schedule(db, booking_id, booking_date, start_time, duration_minutes)
        logger.info(f"Booking {booking_id} rescheduled to {booking_date} {start_time}; reissuing ticket")
        return self.issue(db, booking_id)


ticket_issuer = TicketIssuer()
