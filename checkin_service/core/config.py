# checkin_service/core/config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values come from the environment (Docker Compose / the shell).
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Database URLs ---
    DATABASE_URL_LOCAL: str = "sqlite:///./checkin.db"
    DATABASE_URL_PROD: Optional[str] = None

    # Staff bearer tokens (issued by the auth service, HS256)
    JWT_SECRET: str = "CHANGE-ME-IN-PRODUCTION"

    # --- Ticket signing ---
    # The previous secret stays accepted for verification during a rotation.
    QR_SIGNING_SECRET: str = "CHANGE-ME-IN-PRODUCTION-use-a-64-char-random-string"
    QR_SIGNING_SECRET_PREVIOUS: Optional[str] = None
    EMAIL_HASH_SALT: str = "checkin-service"

    # --- Ticket lifetime ---
    TICKET_EXPIRY_GRACE_HOURS: int = 24
    DEFAULT_BOOKING_DURATION_MINUTES: int = 120
    VENUE_TIMEZONE: str = "UTC"

    # --- Booking store ---
    BOOKING_STORE_TIMEOUT_SECONDS: float = 5.0
    CHECK_IN_MAX_ATTEMPTS: int = 3

    # --- Rate limiting ---
    RATE_LIMIT_ENABLED: bool = True
    CHECK_IN_RATE_LIMIT: str = "120/minute"

    # --- Scanning station ---
    SCANNER_TARGET_FPS: float = 10.0
    SCANNER_COOLDOWN_SECONDS: float = 2.0
    SCANNER_CAMERA_INDEX: int = 0
    CHECK_IN_API_URL: str = "http://localhost:8000/api/v1/check-in"
    SCANNER_API_TOKEN: Optional[str] = None
    SCANNER_HTTP_TIMEOUT_SECONDS: float = 5.0

    @property
    def DATABASE_URL(self) -> str:
        if self.ENV == "local" or not self.DATABASE_URL_PROD:
            return self.DATABASE_URL_LOCAL
        return self.DATABASE_URL_PROD


# Create a single instance of the settings
settings = Settings()
