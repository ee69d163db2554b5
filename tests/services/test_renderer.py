import io

import numpy as np
import pytest
from PIL import Image

from checkin_service.scanner.decoder import QRFrameDecoder
from checkin_service.services.ticketing import renderer
from checkin_service.services.ticketing.signing import KeyRing
from tests.utils.booking import scenario_claims


@pytest.fixture
def token():
    return KeyRing(active="K1").issue(scenario_claims(activityName="Escape Room", groupSize=4))


def test_png_has_requested_size(token):
    rendered = renderer.render(token, "ABC123", size_px=320)

    assert rendered.media_type == "image/png"
    assert rendered.content.startswith(b"\x89PNG")
    assert Image.open(io.BytesIO(rendered.content)).size == (320, 320)


def test_rendering_is_deterministic(token):
    first = renderer.render(token, "ABC123", size_px=256)
    second = renderer.render(token, "ABC123", size_px=256)

    assert first.content == second.content


def test_filename_keyed_by_confirmation_code(token):
    assert renderer.render(token, "ABC123").filename == "ticket-ABC123.png"
    assert renderer.render(token, "ABC123", fmt="svg").filename == "ticket-ABC123.svg"
    assert renderer.ticket_filename("AB/12 3") == "ticket-AB_12_3.png"


def test_svg_output(token):
    rendered = renderer.render(token, "ABC123", fmt="svg")

    assert rendered.media_type == "image/svg+xml"
    assert b"<svg" in rendered.content


def test_image_is_black_and_white(token):
    img = renderer.render_image(token, size_px=200)

    assert set(np.unique(np.array(img))) <= {0, 255}


@pytest.mark.parametrize("size", [10, 5000])
def test_rejects_out_of_range_size(token, size):
    with pytest.raises(ValueError):
        renderer.render(token, "ABC123", size_px=size)


def test_rejects_low_error_correction(token):
    with pytest.raises(ValueError):
        renderer.render_image(token, error_correction="L")


def test_rejects_unknown_format(token):
    with pytest.raises(ValueError):
        renderer.render(token, "ABC123", fmt="gif")


def test_rendered_code_is_readable_by_scanner_decoder():
    img = renderer.render_image("BK-1001.ABC123", size_px=400)

    assert QRFrameDecoder().decode(np.array(img)) == "BK-1001.ABC123"


@pytest.fixture
def full_ticket_token():
    claims = scenario_claims(
        bookingId="bk_3f9a1c2d4e5b",
        confirmationCode="Q7XK2M9P",
        customerEmailHash="9" * 64,
        activityName="Escape Room: The Vault Heist",
        venueName="Downtown Adventure Center",
        date="2030-05-01",
        time="14:30",
        groupSize=6,
    )
    return KeyRing(active="K1").issue(claims)


def test_size_below_one_pixel_per_module_is_rejected(full_ticket_token):
    assert renderer.min_size_px(full_ticket_token) > renderer.MIN_SIZE_PX

    with pytest.raises(ValueError, match="at least"):
        renderer.render_image(full_ticket_token, size_px=renderer.MIN_SIZE_PX)
    with pytest.raises(ValueError, match="at least"):
        renderer.render(full_ticket_token, "Q7XK2M9P", size_px=renderer.MIN_SIZE_PX, fmt="svg")


def test_smallest_accepted_size_is_readable(full_ticket_token):
    size = renderer.min_size_px(full_ticket_token)
    img = renderer.render_image(full_ticket_token, size_px=size)

    assert img.size == (size, size)
    assert QRFrameDecoder().decode(np.array(img)) == full_ticket_token


def test_short_token_is_readable_at_minimum_size():
    assert renderer.min_size_px("BK-1001.ABC123") == renderer.MIN_SIZE_PX

    img = renderer.render_image("BK-1001.ABC123", size_px=renderer.MIN_SIZE_PX)

    assert QRFrameDecoder().decode(np.array(img)) == "BK-1001.ABC123"
