# checkin_service/models/booking.py
from sqlalchemy import Column, Date, DateTime, Integer, String, Time, func
import uuid

from checkin_service.db.base_class import Base


class Booking(Base):
    """Booking record as seen by the check-in subsystem.

    The admin dashboard owns the rest of the booking lifecycle; this table
    carries the fields a ticket is built from and the check-in state that
    only the check-in coordinator mutates.
    """
    __tablename__ = "bookings"

    id = Column(
        String, primary_key=True, default=lambda: f"bk_{uuid.uuid4().hex[:12]}"
    )
    confirmation_code = Column(String(32), unique=True, nullable=False, index=True)

    # Customer
    customer_email = Column(String(255), nullable=False)
    customer_first_name = Column(String(255), nullable=True)
    customer_last_name = Column(String(255), nullable=True)

    # Display fields shown to staff on scan
    activity_name = Column(String(255), nullable=True)
    venue_name = Column(String(255), nullable=True)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    group_size = Column(Integer, nullable=False, default=1)

    # Status: 'booked', 'checked_in', 'checked_out', 'cancelled'
    status = Column(String(32), nullable=False, default="booked", index=True)

    # Check-in information (each stamped exactly once)
    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(String, nullable=True)
    checked_out_by = Column(String, nullable=True)
    check_in_method = Column(String(32), nullable=True)

    # issuedAt of the only ticket currently accepted for this booking
    ticket_issued_at = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name or ''} {self.customer_last_name or ''}".strip()

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"
