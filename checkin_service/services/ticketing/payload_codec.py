# checkin_service/services/ticketing/payload_codec.py
"""
Canonical encoding of ticket claims.

Token format (the exact text embedded in the QR code):

    base64url(canonical_json(claims)) + "." + base64url(hmac_sha256(canonical_json(claims)))

Canonical JSON uses sorted keys, no whitespace and UTF-8, so the same claims
always produce the same bytes. base64url segments are unpadded, and decoding
is strict: a segment must re-encode to exactly the text that was scanned.
"""

import base64
import binascii
import json
from dataclasses import dataclass

from pydantic import ValidationError

from checkin_service.schemas.check_in import TicketClaims

TOKEN_SEPARATOR = "."


class ParseError(ValueError):
    """Scanned text is not a structurally valid ticket token."""


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Strict unpadded base64url decode."""
    if not segment:
        raise ParseError("Empty base64url segment")
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise ParseError("Invalid base64url") from e
    # Rejects stray characters and non-zero padding bits.
    if b64url_encode(raw) != segment:
        raise ParseError("Non-canonical base64url")
    return raw


def canonical_bytes(claims: TicketClaims) -> bytes:
    data = claims.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def encode(claims: TicketClaims) -> str:
    """Encode claims as the payload segment of a token."""
    return b64url_encode(canonical_bytes(claims))


def decode_claims(payload: bytes) -> TicketClaims:
    try:
        data = json.loads(payload.decode("utf-8"))
    except RecursionError as e:
        raise ParseError("Payload is nested too deeply") from e
    except ValueError as e:
        # Covers bad UTF-8, bad JSON and integers over the digit limit.
        raise ParseError("Payload is not JSON") from e
    if not isinstance(data, dict):
        raise ParseError("Payload is not a JSON object")
    try:
        return TicketClaims.model_validate(data)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ParseError(f"Invalid claims: {', '.join(missing)}") from e


def decode(segment: str) -> TicketClaims:
    """Decode a payload segment back into claims."""
    return decode_claims(b64url_decode(segment))


@dataclass(frozen=True)
class SignedToken:
    """A parsed token. ``payload`` holds the exact bytes that were signed."""

    payload_segment: str
    signature_segment: str
    payload: bytes
    claims: TicketClaims

    @property
    def text(self) -> str:
        return f"{self.payload_segment}{TOKEN_SEPARATOR}{self.signature_segment}"


def parse_token(text: str) -> SignedToken:
    """Split scanned text into payload and signature and decode the claims.

    The signature segment is only checked for presence here; its bytes are
    judged by the verifier.
    """
    if not isinstance(text, str):
        raise ParseError("Token must be text")
    text = text.strip()
    parts = text.split(TOKEN_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ParseError("Token must have exactly two non-empty segments")

    payload_segment, signature_segment = parts
    payload = b64url_decode(payload_segment)
    return SignedToken(
        payload_segment=payload_segment,
        signature_segment=signature_segment,
        payload=payload,
        claims=decode_claims(payload),
    )
