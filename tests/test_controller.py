import threading
import unittest

import numpy as np

from tests._test_path import SRC  # noqa: F401
from tests._images import circle_cutout, jpeg_bytes, open_bytes, png_bytes, raster

from backdropshop.app.controller import SessionController
from backdropshop.app.state import AppState
from backdropshop.config import Settings
from backdropshop.core.models import OutputMode
from backdropshop.errors import DecodeFailure, InvalidUpload, ModelRefused, SessionError

WAIT = 5.0


class FakeSegmenter:
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else raster(circle_cutout(120, 90, 30))
        self.error = error
        self.calls = 0

    def segment_foreground(self, image_bytes, mime_type):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class BlockingSegmenter(FakeSegmenter):
    """Holds the call open until `release` is set."""

    def __init__(self, result=None):
        super().__init__(result)
        self.started = threading.Event()
        self.release = threading.Event()

    def segment_foreground(self, image_bytes, mime_type):
        self.started.set()
        self.release.wait(WAIT)
        return super().segment_foreground(image_bytes, mime_type)


def _controller(segmenter=None, **settings):
    return SessionController(segmenter or FakeSegmenter(), settings=Settings(**settings))


class TestUploads(unittest.TestCase):
    def test_load_subject_starts_fresh_state(self):
        ctl = _controller()
        old_state = ctl.state
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        self.assertIsNot(ctl.state, old_state)
        self.assertEqual(ctl.state.subject.mime_type, "image/jpeg")
        self.assertEqual(ctl.state.subject.file_name, "me.jpg")

    def test_non_image_rejected(self):
        ctl = _controller()
        with self.assertRaises(InvalidUpload):
            ctl.load_subject(b"%PDF-1.4", "doc.pdf")
        self.assertEqual(ctl.state.error_message, "Please upload a valid image file (PNG, JPG, etc.).")
        self.assertIsNone(ctl.state.subject)

    def test_explicit_mime_wins_over_name(self):
        ctl = _controller()
        ctl.load_subject(png_bytes(circle_cutout(4, 4, 1)), "upload", mime_type="image/png")
        self.assertEqual(ctl.state.subject.mime_type, "image/png")

    def test_too_large_rejected(self):
        ctl = _controller(max_upload_bytes=10)
        with self.assertRaises(InvalidUpload):
            ctl.load_subject(b"x" * 11, "big.png")


class TestRemoveBackground(unittest.TestCase):
    def test_success_stores_foreground(self):
        seg = FakeSegmenter()
        ctl = _controller(seg)
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        result = ctl.remove_background()
        self.assertIs(result, seg.result)
        self.assertIs(ctl.state.foreground, seg.result)
        self.assertFalse(ctl.state.is_loading)
        self.assertIsNone(ctl.state.error_message)

    def test_requires_subject(self):
        with self.assertRaises(SessionError):
            _controller().remove_background()

    def test_refusal_sets_message(self):
        ctl = _controller(FakeSegmenter(error=ModelRefused("Unable to process: unsafe content")))
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        with self.assertRaises(ModelRefused):
            ctl.remove_background()
        self.assertIsNone(ctl.state.foreground)
        self.assertFalse(ctl.state.is_loading)
        self.assertIn("unsafe content", ctl.state.error_message)

    def test_unexpected_error_clears_loading(self):
        ctl = _controller(FakeSegmenter(error=RuntimeError("boom")))
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        with self.assertRaises(RuntimeError):
            ctl.remove_background()
        self.assertFalse(ctl.state.is_loading)
        self.assertIsNone(ctl.state.foreground)

    def test_unexpected_error_clears_loading_async(self):
        ctl = _controller(FakeSegmenter(error=RuntimeError("boom")))
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        future = ctl.start_remove_background()
        with self.assertRaises(RuntimeError):
            future.result(WAIT)
        self.assertFalse(ctl.state.is_loading)
        ctl.close()

    def test_async_result_applied(self):
        seg = FakeSegmenter()
        ctl = _controller(seg)
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        done = threading.Event()
        future = ctl.start_remove_background(on_done=lambda f: done.set())
        self.assertIs(future.result(timeout=WAIT), seg.result)
        self.assertTrue(done.wait(WAIT))
        self.assertIs(ctl.state.foreground, seg.result)
        ctl.close()

    def test_reset_while_in_flight_discards_result(self):
        seg = BlockingSegmenter()
        ctl = _controller(seg)
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        future = ctl.start_remove_background()
        self.assertTrue(ctl.state.is_loading)
        self.assertTrue(seg.started.wait(WAIT))

        ctl.reset()
        seg.release.set()

        self.assertIsNone(future.result(timeout=WAIT))
        self.assertIsNone(ctl.state.foreground)
        self.assertIsNone(ctl.state.subject)
        self.assertFalse(ctl.state.is_loading)
        ctl.close()

    def test_new_upload_while_in_flight_discards_result(self):
        seg = BlockingSegmenter()
        ctl = _controller(seg)
        ctl.load_subject(jpeg_bytes(10, 10), "first.jpg")
        future = ctl.start_remove_background()
        self.assertTrue(seg.started.wait(WAIT))

        ctl.load_subject(jpeg_bytes(12, 12), "second.jpg")
        seg.release.set()

        self.assertIsNone(future.result(timeout=WAIT))
        self.assertEqual(ctl.state.subject.file_name, "second.jpg")
        self.assertIsNone(ctl.state.foreground)
        ctl.close()


class TestBackgroundAndExport(unittest.TestCase):
    def _ready(self, **settings):
        ctl = _controller(**settings)
        ctl.load_subject(jpeg_bytes(10, 10), "portrait.jpg")
        ctl.remove_background()
        return ctl

    def test_background_requires_foreground(self):
        ctl = _controller()
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        with self.assertRaises(SessionError):
            ctl.set_background(jpeg_bytes(20, 10), "bg.jpg")

    def test_set_background_resets_mode_to_png(self):
        ctl = self._ready()
        ctl.select_output_mode("jpeg")
        ctl.set_background(jpeg_bytes(300, 100), "beach.jpg")
        self.assertIs(ctl.state.output_mode, OutputMode.TRANSPARENT_PNG)
        self.assertTrue(ctl.state.has_background)

    def test_bad_background_reports_decode_failure(self):
        ctl = self._ready()
        with self.assertRaises(DecodeFailure):
            ctl.set_background(b"junk", "bg.png")
        self.assertFalse(ctl.state.has_background)
        self.assertIn("decode", ctl.state.error_message)

    def test_non_image_background_rejected(self):
        ctl = self._ready()
        with self.assertRaises(InvalidUpload):
            ctl.set_background(b"hello", "notes.txt")
        self.assertEqual(ctl.state.error_message, "Please upload a valid image file for the background.")

    def test_passport_not_offered_with_background(self):
        ctl = self._ready()
        ctl.set_background(jpeg_bytes(300, 100), "beach.jpg")
        with self.assertRaises(SessionError):
            ctl.select_output_mode(OutputMode.PASSPORT_JPEG)
        ctl.clear_background()
        self.assertIs(ctl.select_output_mode("passport"), OutputMode.PASSPORT_JPEG)

    def test_unknown_mode(self):
        with self.assertRaises(SessionError):
            self._ready().select_output_mode("tiff")

    def test_export_names_follow_state(self):
        ctl = self._ready()
        self.assertEqual(ctl.export().suggested_file_name, "bg-removed-portrait.png")
        ctl.select_output_mode("passport")
        out = ctl.export()
        self.assertEqual(out.suggested_file_name, "passport-portrait.jpg")
        self.assertEqual(open_bytes(out.data).size, (600, 600))
        ctl.set_background(jpeg_bytes(300, 100), "beach.jpg")
        ctl.select_output_mode("jpeg")
        out = ctl.export()
        self.assertEqual(out.suggested_file_name, "composite-portrait.jpg")
        self.assertEqual(open_bytes(out.data).size, (120, 90))

    def test_export_requires_foreground(self):
        ctl = _controller()
        ctl.load_subject(jpeg_bytes(10, 10), "me.jpg")
        with self.assertRaises(SessionError):
            ctl.export()

    def test_preview(self):
        ctl = _controller()
        self.assertIsNone(ctl.preview())
        ctl = self._ready()
        self.assertIs(ctl.preview(), ctl.state.foreground)
        ctl.set_background(jpeg_bytes(300, 100), "beach.jpg")
        composite = ctl.preview()
        self.assertEqual(composite.size, (120, 90))
        self.assertTrue((composite.pixels[..., 3] == 255).all())
        self.assertFalse(np.array_equal(composite.pixels, ctl.state.foreground.pixels))

    def test_reset_replaces_state(self):
        ctl = self._ready()
        old = ctl.state
        ctl.reset()
        self.assertIsNot(ctl.state, old)
        self.assertEqual(ctl.state, AppState())
