# checkin_service/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from checkin_service.core.config import settings


def _connect_args(url: str, timeout_seconds: float) -> dict:
    """Driver-level timeouts so a stalled booking store surfaces as an error."""
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if url.startswith("postgresql"):
        return {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }
    return {}


def make_engine(url: str, timeout_seconds: float = settings.BOOKING_STORE_TIMEOUT_SECONDS):
    kwargs = {
        "pool_pre_ping": True,
        "connect_args": _connect_args(url, timeout_seconds),
    }
    if not url.startswith("sqlite"):
        kwargs["pool_timeout"] = timeout_seconds
    return create_engine(url, **kwargs)


# The engine is the entry point to the database. It's configured with the
# database URL and handles the connection pooling.
engine = make_engine(settings.DATABASE_URL)

# SessionLocal is a factory for creating new Session objects.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        # Always close the session, even if the endpoint raised.
        db.close()
