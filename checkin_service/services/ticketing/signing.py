# checkin_service/services/ticketing/signing.py
"""
HMAC-SHA256 signing of ticket payloads.

Signatures are computed over the exact canonical bytes carried in the token,
never over a re-serialized copy. Verification accepts the active secret and,
during a rotation, the previous one, so tickets already in customers' inboxes
keep working until they expire.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import List, Optional

from checkin_service.core.config import settings
from checkin_service.schemas.check_in import TicketClaims
from checkin_service.services.ticketing.payload_codec import (
    ParseError,
    SignedToken,
    TOKEN_SEPARATOR,
    b64url_decode,
    b64url_encode,
    canonical_bytes,
)

logger = logging.getLogger(__name__)


def _as_bytes(secret) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


def sign_bytes(payload: bytes, secret) -> bytes:
    return hmac.new(_as_bytes(secret), payload, hashlib.sha256).digest()


def sign(claims: TicketClaims, secret) -> bytes:
    """Signature bytes over the canonical encoding of ``claims``."""
    return sign_bytes(canonical_bytes(claims), secret)


def verify(payload: bytes, signature: bytes, secret) -> bool:
    """Constant-time check of ``signature`` against ``payload``."""
    expected = sign_bytes(payload, secret)
    return hmac.compare_digest(expected, signature)


def key_id(secret) -> str:
    """Short, non-reversible identifier of a secret, safe for logs."""
    return hashlib.sha256(_as_bytes(secret)).hexdigest()[:8]


@dataclass(frozen=True)
class KeyRing:
    """The active signing secret plus any secrets still accepted for verification."""

    active: str
    previous: tuple = ()

    @classmethod
    def from_settings(cls) -> "KeyRing":
        previous = (settings.QR_SIGNING_SECRET_PREVIOUS,) if settings.QR_SIGNING_SECRET_PREVIOUS else ()
        return cls(active=settings.QR_SIGNING_SECRET, previous=previous)

    @property
    def verification_secrets(self) -> List[str]:
        return [self.active, *self.previous]

    def issue(self, claims: TicketClaims) -> str:
        """Produce the full token text for ``claims`` with the active secret."""
        payload = canonical_bytes(claims)
        signature = sign_bytes(payload, self.active)
        return f"{b64url_encode(payload)}{TOKEN_SEPARATOR}{b64url_encode(signature)}"

    def matching_key_id(self, token: SignedToken) -> Optional[str]:
        """Return the key id that signed ``token``, or None if no accepted key did."""
        try:
            signature = b64url_decode(token.signature_segment)
        except ParseError:
            return None

        matched = None
        # Check every secret so timing does not reveal which one matched.
        for secret in self.verification_secrets:
            if verify(token.payload, signature, secret) and matched is None:
                matched = key_id(secret)
        return matched

    def verify_token(self, token: SignedToken) -> bool:
        matched = self.matching_key_id(token)
        if matched and matched != key_id(self.active):
            logger.info(f"Ticket {token.claims.confirmation_code} verified with previous key {matched}")
        return matched is not None
