# checkin_service/crud/booking_crud.py
import logging
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import and_, update
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from checkin_service.core.errors import NetworkError
from checkin_service.models.booking import Booking
from checkin_service.schemas.check_in import BookingStatus

logger = logging.getLogger(__name__)

# Columns a status transition may stamp, with the audit column that goes with each.
_TIMESTAMP_FIELDS = {
    "check_in_time": "checked_in_by",
    "check_out_time": "checked_out_by",
}


class CRUDBooking:
    """Booking store operations used by ticket issuance and check-in.

    Store failures (connection refused, pool or statement timeout) are
    raised as ``NetworkError`` so callers can retry them.
    """

    def get(self, db: Session, booking_id: str) -> Optional[Booking]:
        """Get a booking by ID, always reading the committed row."""
        try:
            return db.query(Booking).populate_existing().filter(Booking.id == booking_id).first()
        except (OperationalError, PoolTimeoutError) as e:
            db.rollback()
            logger.error(f"Booking store read failed for {booking_id}: {e}")
            raise NetworkError(f"Booking store unavailable: {e.__class__.__name__}") from e

    def create(
        self,
        db: Session,
        *,
        confirmation_code: str,
        customer_email: str,
        booking_date: date,
        start_time: time,
        customer_first_name: Optional[str] = None,
        customer_last_name: Optional[str] = None,
        activity_name: Optional[str] = None,
        venue_name: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        group_size: int = 1,
        booking_id: Optional[str] = None,
    ) -> Booking:
        """Create a booking in the 'booked' state."""
        db_obj = Booking(
            confirmation_code=confirmation_code,
            customer_email=customer_email,
            customer_first_name=customer_first_name,
            customer_last_name=customer_last_name,
            activity_name=activity_name,
            venue_name=venue_name,
            booking_date=booking_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            group_size=group_size,
            status=BookingStatus.BOOKED.value,
        )
        if booking_id:
            db_obj.id = booking_id
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def cas_update_status(
        self,
        db: Session,
        booking_id: str,
        expected_status: BookingStatus,
        new_status: BookingStatus,
        timestamp_field: str,
        timestamp_value: datetime,
        actor: Optional[str] = None,
        method: Optional[str] = None,
    ) -> bool:
        """Atomically move a booking from ``expected_status`` to ``new_status``.

        A single conditional UPDATE: it applies only while the row is still in
        ``expected_status`` and ``timestamp_field`` has never been stamped, so
        of many concurrent callers exactly one sees True. Returns False on
        conflict (or a missing row) without mutating anything.
        """
        if timestamp_field not in _TIMESTAMP_FIELDS:
            raise ValueError(f"Unsupported timestamp field: {timestamp_field}")

        column = getattr(Booking, timestamp_field)
        values = {
            "status": new_status.value,
            timestamp_field: timestamp_value,
            _TIMESTAMP_FIELDS[timestamp_field]: actor,
            "updated_at": timestamp_value,
        }
        if method and new_status == BookingStatus.CHECKED_IN:
            values["check_in_method"] = method

        try:
            result = db.execute(
                update(Booking).where(
                    and_(
                        Booking.id == booking_id,
                        Booking.status == expected_status.value,
                        column.is_(None),
                    )
                ).values(**values).returning(Booking.id)
            )
            updated_id = result.scalar_one_or_none()
            db.commit()
        except (OperationalError, PoolTimeoutError) as e:
            db.rollback()
            logger.error(f"Conditional update failed for booking {booking_id}: {e}")
            raise NetworkError(f"Booking store unavailable: {e.__class__.__name__}") from e

        if updated_id is None:
            logger.debug(
                f"Conditional update rejected for booking {booking_id}: "
                f"expected {expected_status.value}"
            )
            return False
        return True

    def stamp_ticket_issued_at(self, db: Session, booking_id: str, issued_at: int) -> Optional[Booking]:
        """Record the issuedAt of the ticket that is now the only valid one."""
        booking = self.get(db, booking_id)
        if not booking:
            return None
        booking.ticket_issued_at = issued_at
        booking.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(booking)
        return booking

    def stamp_first_ticket(self, db: Session, booking_id: str, issued_at: int) -> bool:
        """Stamp ``issued_at`` only if the booking has never had a ticket.

        Of many concurrent first issues exactly one applies; the rest see
        False and should re-read the stamp that won.
        """
        try:
            result = db.execute(
                update(Booking).where(
                    and_(
                        Booking.id == booking_id,
                        Booking.ticket_issued_at.is_(None),
                    )
                ).values(
                    ticket_issued_at=issued_at,
                    updated_at=datetime.now(timezone.utc),
                ).returning(Booking.id)
            )
            updated_id = result.scalar_one_or_none()
            db.commit()
        except (OperationalError, PoolTimeoutError) as e:
            db.rollback()
            logger.error(f"First ticket stamp failed for booking {booking_id}: {e}")
            raise NetworkError(f"Booking store unavailable: {e.__class__.__name__}") from e
        return updated_id is not None

    def update_schedule(
        self,
        db: Session,
        booking_id: str,
        booking_date: date,
        start_time: time,
        duration_minutes: Optional[int] = None,
    ) -> Optional[Booking]:
        booking = self.get(db, booking_id)
        if not booking:
            return None
        if booking.status != BookingStatus.BOOKED.value:
            raise ValueError(f"Booking cannot be rescheduled. Current status: {booking.status}")

        booking.booking_date = booking_date
        booking.start_time = start_time
        if duration_minutes is not None:
            booking.duration_minutes = duration_minutes
        booking.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(booking)
        return booking

    def cancel(self, db: Session, booking_id: str) -> Optional[Booking]:
        """Cancel a booking. Its tickets stop verifying immediately."""
        booking = self.get(db, booking_id)
        if not booking:
            return None
        if booking.status != BookingStatus.BOOKED.value:
            raise ValueError(f"Booking cannot be cancelled. Current status: {booking.status}")

        booking.status = BookingStatus.CANCELLED.value
        booking.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(booking)
        return booking


booking_crud = CRUDBooking()
