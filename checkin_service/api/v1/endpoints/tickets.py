# checkin_service/api/v1/endpoints/tickets.py
"""
Ticket issuance endpoints: the signed token, its QR image for download, and
rescheduling (which reissues the ticket and invalidates the old one).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from checkin_service.api import deps
from checkin_service.schemas.check_in import ScheduleUpdate, TicketResponse
from checkin_service.schemas.token import TokenPayload
from checkin_service.services.ticketing import renderer
from checkin_service.services.ticketing.issuance import ticket_issuer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tickets"])


def _ticket_response(token: str, claims) -> TicketResponse:
    return TicketResponse(
        booking_id=claims.booking_id,
        token=token,
        filename=renderer.ticket_filename(claims.confirmation_code),
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
    )


@router.get("/bookings/{booking_id}/ticket", response_model=TicketResponse)
def get_ticket(
    booking_id: str,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Return the booking's current ticket token, issuing one if needed."""
    token, claims = ticket_issuer.get_or_issue(db, booking_id)
    return _ticket_response(token, claims)


@router.get("/bookings/{booking_id}/ticket.{fmt}")
def download_ticket(
    booking_id: str,
    fmt: str,
    size: int = Query(default=300, ge=renderer.MIN_SIZE_PX, le=renderer.MAX_SIZE_PX),
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Download the ticket QR code as `ticket-<confirmationCode>.png` (or `.svg`)."""
    if fmt not in ("png", "svg"):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket format must be png or svg",
        )
    token, claims = ticket_issuer.get_or_issue(db, booking_id)
    try:
        rendered = renderer.render(token, claims.confirmation_code, size_px=size, fmt=fmt)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return Response(
        content=rendered.content,
        media_type=rendered.media_type,
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )


@router.patch("/bookings/{booking_id}/schedule", response_model=TicketResponse)
def reschedule_booking(
    booking_id: str,
    schedule_in: ScheduleUpdate,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Move a booking to a new date/time and reissue its ticket."""
    try:
        token, claims = ticket_issuer.reschedule(
            db,
            booking_id,
            booking_date=schedule_in.booking_date,
            start_time=schedule_in.start_time,
            duration_minutes=schedule_in.duration_minutes,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    logger.info(f"Booking {booking_id} rescheduled by {current_user.sub}")
    return _ticket_response(token, claims)
