# checkin_service/api/v1/endpoints/check_in.py
"""
QR check-in / check-out.

One endpoint: a scanner posts the scanned token and the action. Every
outcome is either a first transition (success), an "already done" report
(200, ``alreadyCheckedIn``), or a categorized error body from the
``CheckInError`` handler.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from checkin_service.api import deps
from checkin_service.core.config import settings
from checkin_service.core.limiter import limiter
from checkin_service.schemas.check_in import CheckInRequest, CheckInResponse
from checkin_service.schemas.token import TokenPayload
from checkin_service.services.ticketing.check_in_service import check_in_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Check-in"])


@router.post("/check-in", response_model=CheckInResponse)
@limiter.limit(settings.CHECK_IN_RATE_LIMIT)
def process_check_in(
    request: Request,
    check_in_in: CheckInRequest,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Check a guest in or out from a scanned ticket.

    Re-scanning the same ticket is safe: the second scan reports
    `alreadyCheckedIn` with the original timestamps instead of failing.
    """
    result = check_in_coordinator.process_check_in(
        db,
        booking_id=check_in_in.booking_id,
        signature=check_in_in.signature,
        action=check_in_in.action,
        scanned_by=check_in_in.scanned_by or current_user.sub,
    )
    return result.to_response()
