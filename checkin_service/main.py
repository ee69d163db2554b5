# checkin_service/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from checkin_service.api.v1.api import api_router
from checkin_service.core.errors import (
    CheckInError,
    ExpiredTokenError,
    MalformedScanError,
    NetworkError,
    StateConflictError,
    TamperError,
    UnknownBookingError,
)
from checkin_service.core.limiter import limiter
from checkin_service.db.base_class import Base
from checkin_service.db.session import engine

logger = logging.getLogger(__name__)

# Most specific first; SupersededTokenError falls under TamperError.
_ERROR_STATUS = (
    (MalformedScanError, 400),
    (TamperError, 401),
    (UnknownBookingError, 404),
    (StateConflictError, 409),
    (ExpiredTokenError, 410),
    (NetworkError, 503),
)


def status_for(exc: CheckInError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Check-in service starting up...")
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Check-in service shutting down...")


app = FastAPI(
    title="Booking Check-in Service",
    version="1.0.0",
    description="""
        **Ticket issuance and on-site check-in**

        * **Tickets**: signed, tamper-evident QR tickets per booking
        * **Check-in / check-out**: idempotent, race-safe status transitions
        * **Reissue**: rescheduling a booking invalidates its old ticket

        All endpoints require a staff JWT via the `Authorization: Bearer <token>` header.
        """,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CheckInError)
async def check_in_error_handler(request: Request, exc: CheckInError):
    return JSONResponse(
        status_code=status_for(exc),
        content={
            "success": False,
            "alreadyCheckedIn": False,
            "error": exc.message,
            "code": exc.code,
        },
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Check-in service is running"}
