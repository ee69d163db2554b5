import numpy as np
import pytest

from checkin_service.core.errors import CameraPermissionError, FrameDecodeError
from checkin_service.scanner.camera import open_camera
from checkin_service.scanner.decoder import QRFrameDecoder, ScanDecoder
from checkin_service.services.ticketing.renderer import render_image
from tests.scanner.fakes import FakeClock, FakeFrameSource, PassthroughDecoder


def make_decoder(source, clock=None, target_fps=10.0, cooldown_seconds=2.0):
    clock = clock or FakeClock()
    return ScanDecoder(
        source,
        frame_decoder=PassthroughDecoder(),
        target_fps=target_fps,
        cooldown_seconds=cooldown_seconds,
        clock=clock,
        sleep=clock.sleep,
    )


class TestDebounce:
    def test_code_held_in_view_is_reported_once(self):
        source = FakeFrameSource(["BK.TOKEN"], repeat_last=True)

        with make_decoder(source) as decoder:
            results = [decoder.decode_next_frame() for _ in range(50)]

        emitted = [r for r in results if r is not None]
        assert len(emitted) == 1
        assert emitted[0].text == "BK.TOKEN"

    def test_code_reported_again_after_leaving_view(self):
        clock = FakeClock()
        source = FakeFrameSource(["A.B", "A.B", None, "A.B"])

        with make_decoder(source, clock=clock) as decoder:
            first = decoder.decode_next_frame()
            held = decoder.decode_next_frame()
            clock.advance(3.0)
            absent = decoder.decode_next_frame()
            again = decoder.decode_next_frame()

        assert first.text == "A.B"
        assert held is None
        assert absent is None
        assert again is not None and again.text == "A.B"

    def test_brief_absence_within_cooldown_does_not_re_emit(self):
        source = FakeFrameSource(["A.B", None, None, "A.B"])

        with make_decoder(source) as decoder:
            results = [decoder.decode_next_frame() for _ in range(4)]

        assert [r is not None for r in results] == [True, False, False, False]

    def test_different_codes_are_each_reported(self):
        source = FakeFrameSource(["A.B", "C.D", "A.B"])

        with make_decoder(source) as decoder:
            texts = [decoder.decode_next_frame().text for _ in range(3)]

        assert texts == ["A.B", "C.D", "A.B"]

    def test_frame_without_code_returns_none(self):
        source = FakeFrameSource([None, ""])

        with make_decoder(source) as decoder:
            assert decoder.decode_next_frame() is None
            assert decoder.decode_next_frame() is None


class TestPacing:
    def test_frames_are_spaced_at_target_rate(self):
        clock = FakeClock(start=0.0)
        source = FakeFrameSource(["x"], repeat_last=True)

        with make_decoder(source, clock=clock, target_fps=5.0) as decoder:
            results = [decoder.decode_next_frame() for _ in range(4)]

        assert clock.sleeps == pytest.approx([0.2, 0.2, 0.2])
        assert results[0].scanned_at == 0.0

    def test_no_sleep_when_processing_is_slower_than_target(self):
        clock = FakeClock()
        source = FakeFrameSource(["a", "b", "c"])

        with make_decoder(source, clock=clock, target_fps=10.0) as decoder:
            for _ in range(3):
                decoder.decode_next_frame()
                clock.advance(0.5)

        assert clock.sleeps == []

    def test_target_fps_must_be_positive(self):
        with pytest.raises(ValueError):
            make_decoder(FakeFrameSource(), target_fps=0)


class TestResources:
    def test_decode_before_start_is_an_error(self):
        decoder = make_decoder(FakeFrameSource(["x"]))

        with pytest.raises(RuntimeError):
            decoder.decode_next_frame()

    def test_start_and_stop_acquire_and_release_camera(self):
        source = FakeFrameSource()
        decoder = make_decoder(source)

        decoder.start()
        decoder.start()
        assert decoder.running is True
        assert source.acquire_count == 1

        decoder.stop()
        decoder.stop()
        assert decoder.running is False
        assert source.release_count == 1

    def test_camera_released_when_loop_raises(self):
        source = FakeFrameSource([FrameDecodeError("corrupt frame")])

        with pytest.raises(FrameDecodeError):
            with make_decoder(source) as decoder:
                decoder.decode_next_frame()

        assert source.is_open is False
        assert source.release_count == 1

    def test_permission_denied_propagates(self):
        source = FakeFrameSource(deny_access=True)
        decoder = make_decoder(source)

        with pytest.raises(CameraPermissionError):
            decoder.start()
        assert decoder.running is False

    def test_scans_generator_releases_camera_when_closed(self):
        source = FakeFrameSource(["A.B", None, "C.D"], repeat_last=False)
        decoder = make_decoder(source)

        scans = decoder.scans()
        assert next(scans).text == "A.B"
        assert next(scans).text == "C.D"
        scans.close()

        assert source.is_open is False
        assert decoder.running is False

    def test_open_camera_context_releases(self):
        source = FakeFrameSource()

        with pytest.raises(KeyError):
            with open_camera(source):
                assert source.is_open
                raise KeyError("boom")

        assert source.is_open is False


class TestQRFrameDecoder:
    def test_empty_frame_is_a_decode_error(self):
        decoder = QRFrameDecoder()

        with pytest.raises(FrameDecodeError):
            decoder.decode(None)
        with pytest.raises(FrameDecodeError):
            decoder.decode(np.zeros((0, 0), dtype=np.uint8))

    def test_blank_frame_has_no_code(self):
        blank = np.full((240, 320), 255, dtype=np.uint8)

        assert QRFrameDecoder().decode(blank) is None

    def test_decodes_rendered_ticket(self):
        frame = np.array(render_image("BK-1001.ABC123", size_px=400))

        assert QRFrameDecoder().decode(frame) == "BK-1001.ABC123"
