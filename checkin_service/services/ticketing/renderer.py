# checkin_service/services/ticketing/renderer.py
"""
Render a signed ticket token as a QR code for display or download.

Pure function of (token, size): no network, no database. Error correction is
level M or higher so a ticket still scans through glare or a cracked screen.
"""

import io
import re
from dataclasses import dataclass

import qrcode
from PIL import Image
from qrcode.image.svg import SvgPathImage

QR_BORDER_MODULES = 4
MIN_SIZE_PX = 64
MAX_SIZE_PX = 2048

_ERROR_CORRECTION = {
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

_MEDIA_TYPES = {"png": "image/png", "svg": "image/svg+xml"}


@dataclass(frozen=True)
class RenderedTicket:
    content: bytes
    media_type: str
    filename: str


def ticket_filename(confirmation_code: str, ext: str = "png") -> str:
    """Download name for a ticket, e.g. ``ticket-ABC123.png``."""
    safe_code = re.sub(r"[^A-Za-z0-9_-]", "_", confirmation_code) or "ticket"
    return f"ticket-{safe_code}.{ext}"


def _build_qr(token: str, error_correction: str) -> qrcode.QRCode:
    if error_correction not in _ERROR_CORRECTION:
        raise ValueError(f"Error correction must be one of {sorted(_ERROR_CORRECTION)}")
    qr = qrcode.QRCode(
        version=None,
        error_correction=_ERROR_CORRECTION[error_correction],
        box_size=1,
        border=QR_BORDER_MODULES,
    )
    qr.add_data(token)
    qr.make(fit=True)
    return qr


def _check_size(size_px: int) -> None:
    if not MIN_SIZE_PX <= size_px <= MAX_SIZE_PX:
        raise ValueError(f"size_px must be between {MIN_SIZE_PX} and {MAX_SIZE_PX}")


def _sized_qr(token: str, size_px: int, error_correction: str) -> qrcode.QRCode:
    qr = _build_qr(token, error_correction)
    modules = qr.modules_count + 2 * QR_BORDER_MODULES
    if size_px < modules:
        raise ValueError(f"size_px must be at least {modules} for this ticket")
    # Whole pixels per module keep module edges crisp.
    qr.box_size = size_px // modules
    return qr


def min_size_px(token: str, error_correction: str = "M") -> int:
    """Smallest image size that gives every module at least one pixel."""
    qr = _build_qr(token, error_correction)
    return max(MIN_SIZE_PX, qr.modules_count + 2 * QR_BORDER_MODULES)


def render_image(token: str, size_px: int = 300, error_correction: str = "M") -> Image.Image:
    """Rasterize ``token`` into a square, black-on-white image of ``size_px``.

    Raises ValueError when ``size_px`` is below ``min_size_px(token)``.
    """
    _check_size(size_px)

    qr = _sized_qr(token, size_px, error_correction)
    img = qr.make_image(fill_color="black", back_color="white").convert("L")

    canvas = Image.new("L", (size_px, size_px), 255)
    offset = (size_px - img.size[0]) // 2
    canvas.paste(img, (offset, offset))
    return canvas


def render(
    token: str,
    confirmation_code: str,
    size_px: int = 300,
    fmt: str = "png",
    error_correction: str = "M",
) -> RenderedTicket:
    """Render ``token`` and pair it with its download filename."""
    if fmt not in _MEDIA_TYPES:
        raise ValueError(f"Unsupported ticket format: {fmt}")
    _check_size(size_px)

    buffer = io.BytesIO()
    if fmt == "svg":
        qr = _sized_qr(token, size_px, error_correction)
        qr.make_image(image_factory=SvgPathImage).save(buffer)
    else:
        render_image(token, size_px, error_correction).save(buffer, format="PNG")

    return RenderedTicket(
        content=buffer.getvalue(),
        media_type=_MEDIA_TYPES[fmt],
        filename=ticket_filename(confirmation_code, fmt),
    )
