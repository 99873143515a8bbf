"""Tests for the OpenCV capture adapter using fake capture/detector objects."""

import asyncio
import threading

import pytest

from qrscan.domain.common.errors import CaptureUnavailableError
from qrscan.infra.capture.opencv_capture import (
    FRAME_READ_FAILED,
    NO_CODE_IN_FRAME,
    OpenCvCaptureDevice,
)


class FakeVideoCapture:
    def __init__(self, opened=True, frames_ok=True):
        self.opened = opened
        self.frames_ok = frames_ok
        self.props = {}
        self.released = threading.Event()

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def read(self):
        if not self.frames_ok:
            return False, None
        return True, object()

    def release(self):
        self.released.set()


class FakeDetector:
    def __init__(self, data=""):
        self.data = data

    def detectAndDecode(self, frame):
        return self.data, None, None


def _device(capture, detector, **kwargs):
    return OpenCvCaptureDevice(
        source="cam-test",
        fps=60,
        capture_factory=lambda source: capture,
        detector_factory=lambda: detector,
        **kwargs,
    )


class _Collector:
    def __init__(self):
        self.decoded = []
        self.errors = []
        self.got_decoded = asyncio.Event()
        self.got_error = asyncio.Event()

    def on_decoded(self, text):
        self.decoded.append(text)
        self.got_decoded.set()

    def on_decode_error(self, message):
        self.errors.append(message)
        self.got_error.set()


@pytest.mark.asyncio
class TestOpenCvCaptureDevice:

    async def test_unopened_device_raises(self):
        capture = FakeVideoCapture(opened=False)
        device = _device(capture, FakeDetector())
        sink = _Collector()

        with pytest.raises(CaptureUnavailableError) as exc:
            await device.acquire(sink.on_decoded, sink.on_decode_error)

        assert exc.value.source == "cam-test"
        assert capture.released.is_set()

    async def test_decoded_text_reaches_loop(self):
        capture = FakeVideoCapture()
        device = _device(capture, FakeDetector("tok-1"), frame_width=320, frame_height=240)
        sink = _Collector()

        handle = await device.acquire(sink.on_decoded, sink.on_decode_error)
        try:
            await asyncio.wait_for(sink.got_decoded.wait(), timeout=2)
        finally:
            await handle.release()

        assert sink.decoded[0] == "tok-1"
        assert 320 in capture.props.values()
        assert 240 in capture.props.values()

    async def test_empty_frame_reports_decode_error(self):
        device = _device(FakeVideoCapture(), FakeDetector(""))
        sink = _Collector()

        handle = await device.acquire(sink.on_decoded, sink.on_decode_error)
        try:
            await asyncio.wait_for(sink.got_error.wait(), timeout=2)
        finally:
            await handle.release()

        assert sink.errors[0] == NO_CODE_IN_FRAME
        assert sink.decoded == []

    async def test_read_failure_reports_decode_error(self):
        device = _device(FakeVideoCapture(frames_ok=False), FakeDetector("tok-1"))
        sink = _Collector()

        handle = await device.acquire(sink.on_decoded, sink.on_decode_error)
        try:
            await asyncio.wait_for(sink.got_error.wait(), timeout=2)
        finally:
            await handle.release()

        assert sink.errors[0] == FRAME_READ_FAILED


@pytest.mark.asyncio
class TestOpenCvCaptureHandle:

    async def test_pause_and_resume(self):
        device = _device(FakeVideoCapture(), FakeDetector("tok-1"))
        sink = _Collector()
        handle = await device.acquire(sink.on_decoded, sink.on_decode_error)
        try:
            await handle.pause()
            assert handle.is_paused
            await handle.resume()
            assert not handle.is_paused
        finally:
            await handle.release()

    async def test_release_is_idempotent(self):
        capture = FakeVideoCapture()
        device = _device(capture, FakeDetector())
        sink = _Collector()
        handle = await device.acquire(sink.on_decoded, sink.on_decode_error)

        await handle.release()
        await handle.release()

        assert handle.is_released
        assert capture.released.is_set()

    async def test_resume_after_release_raises(self):
        device = _device(FakeVideoCapture(), FakeDetector())
        sink = _Collector()
        handle = await device.acquire(sink.on_decoded, sink.on_decode_error)
        await handle.release()

        with pytest.raises(RuntimeError):
            await handle.resume()
