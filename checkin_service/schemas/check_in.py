# checkin_service/schemas/check_in.py
import re
from datetime import date as dt_date
from datetime import datetime
from datetime import time as dt_time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")


# ============================================
# Enums
# ============================================

class BookingStatus(str, Enum):
    BOOKED = "booked"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class CheckInAction(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class CheckInOutcome(str, Enum):
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    ALREADY_CHECKED_IN = "already_checked_in"
    ALREADY_CHECKED_OUT = "already_checked_out"

    @property
    def is_first_transition(self) -> bool:
        return self in (CheckInOutcome.CHECKED_IN, CheckInOutcome.CHECKED_OUT)


# ============================================
# Ticket claims (the signed payload)
# ============================================

class TicketClaims(BaseModel):
    """Structured data embedded in a ticket. Serialized with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    booking_id: str = Field(..., alias="bookingId", min_length=1)
    confirmation_code: str = Field(..., alias="confirmationCode", min_length=1)
    customer_email_hash: Optional[str] = Field(default=None, alias="customerEmailHash")
    activity_name: Optional[str] = Field(default=None, alias="activityName")
    venue_name: Optional[str] = Field(default=None, alias="venueName")
    date: Optional[str] = None
    time: Optional[str] = None
    group_size: Optional[int] = Field(default=None, alias="groupSize")
    issued_at: int = Field(..., alias="issuedAt")
    expires_at: int = Field(..., alias="expiresAt")


# ============================================
# Check-in API
# ============================================

class CheckInRequest(BaseModel):
    """Body of POST /check-in.

    ``signature`` is the full scanned token text; ``bookingId`` must match
    the booking the token was issued for.
    """
    booking_id: str = Field(..., alias="bookingId", min_length=1)
    signature: str = Field(..., min_length=1, max_length=4096)
    action: CheckInAction
    scanned_by: Optional[str] = Field(default=None, alias="scannedBy", max_length=255)

    model_config = {"populate_by_name": True}


class BookingSnapshot(BaseModel):
    """What staff see on the scanner after a scan."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    customer: str
    confirmation_code: str = Field(..., alias="confirmationCode")
    activity_name: Optional[str] = Field(default=None, alias="activityName")
    venue_name: Optional[str] = Field(default=None, alias="venueName")
    date: str
    time: str
    group_size: int = Field(..., alias="groupSize")
    status: BookingStatus
    check_in_time: Optional[datetime] = Field(default=None, alias="checkInTime")
    check_out_time: Optional[datetime] = Field(default=None, alias="checkOutTime")


class CheckInResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    already_checked_in: bool = Field(default=False, alias="alreadyCheckedIn")
    message: Optional[str] = None
    booking: Optional[BookingSnapshot] = None
    error: Optional[str] = None
    code: Optional[str] = None


# ============================================
# Ticket API
# ============================================

class TicketResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: str = Field(..., alias="bookingId")
    token: str
    filename: str
    issued_at: int = Field(..., alias="issuedAt")
    expires_at: int = Field(..., alias="expiresAt")


class ScheduleUpdate(BaseModel):
    booking_date: dt_date = Field(..., alias="date")
    start_time: dt_time = Field(..., alias="time")
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes", ge=1)

    model_config = {"populate_by_name": True}

    @field_validator("booking_date", mode="before")
    @classmethod
    def parse_booking_date(cls, value):
        if not isinstance(value, str) or not _DATE_PATTERN.match(value):
            raise ValueError("date must be YYYY-MM-DD")
        return dt_date.fromisoformat(value)

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_start_time(cls, value):
        if not isinstance(value, str) or not _TIME_PATTERN.match(value):
            raise ValueError("time must be HH:MM or HH:MM:SS")
        return dt_time.fromisoformat(value)
