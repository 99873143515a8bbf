"""OpenCV implementation of the capture ports.

Frames are read and decoded with ``cv2.QRCodeDetector`` on a daemon
worker thread.  Results are marshalled onto the session's event loop
with ``call_soon_threadsafe`` so the session only ever sees callbacks
on its own loop.

Pausing does not close the camera: the worker keeps the device open
and simply stops decoding until resumed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Optional

import cv2

from qrscan.domain.common.errors import CaptureUnavailableError
from qrscan.domain.scanning.ports import (
    CaptureDevice,
    CaptureHandle,
    DecodedCallback,
    DecodeErrorCallback,
)

logger = logging.getLogger(__name__)

NO_CODE_IN_FRAME = "No QR code found in frame"
FRAME_READ_FAILED = "Failed to read frame"


def create_capture(source: str) -> cv2.VideoCapture:
    """Create VideoCapture object from index or URL."""
    try:
        idx = int(source)
        return cv2.VideoCapture(idx)
    except ValueError:
        return cv2.VideoCapture(source)


class OpenCvCaptureHandle(CaptureHandle):
    """A running OpenCV capture loop bound to decode callbacks."""

    JOIN_TIMEOUT = 2.0

    def __init__(
        self,
        capture: Any,
        detector: Any,
        loop: asyncio.AbstractEventLoop,
        on_decoded: DecodedCallback,
        on_decode_error: DecodeErrorCallback,
        fps: int = 10,
    ) -> None:
        self._capture = capture
        self._detector = detector
        self._loop = loop
        self._on_decoded = on_decoded
        self._on_decode_error = on_decode_error
        self._interval = 1.0 / fps

        self._active = threading.Event()
        self._stopping = threading.Event()
        self._released = False
        self._thread = threading.Thread(
            target=self._run, name="qrscan-capture", daemon=True
        )

    @property
    def is_paused(self) -> bool:
        return not self._active.is_set()

    @property
    def is_released(self) -> bool:
        return self._released

    def start(self) -> None:
        self._active.set()
        self._thread.start()

    async def pause(self) -> None:
        self._active.clear()

    async def resume(self) -> None:
        if self._released:
            raise RuntimeError("Cannot resume a released capture handle")
        self._active.set()

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._stopping.set()
        self._active.set()  # wake the worker so it can observe _stopping
        if self._thread.is_alive():
            await self._loop.run_in_executor(
                None, self._thread.join, self.JOIN_TIMEOUT
            )
        self._capture.release()
        logger.info("Capture device released")

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._stopping.is_set():
            if not self._active.wait(timeout=0.1):
                continue
            if self._stopping.is_set():
                break

            ok, frame = self._capture.read()
            if not ok or frame is None:
                self._dispatch(self._on_decode_error, FRAME_READ_FAILED)
                time.sleep(self._interval)
                continue

            try:
                data, _points, _ = self._detector.detectAndDecode(frame)
            except cv2.error as e:
                self._dispatch(self._on_decode_error, str(e))
                data = None

            if not self._active.is_set():
                # paused while decoding; this frame belongs to the old run
                continue
            if data:
                self._dispatch(self._on_decoded, data)
            elif data is not None:
                self._dispatch(self._on_decode_error, NO_CODE_IN_FRAME)

            time.sleep(self._interval)

    def _dispatch(self, callback: Callable[[str], object], arg: str) -> None:
        try:
            self._loop.call_soon_threadsafe(callback, arg)
        except RuntimeError:
            # loop already closed; the session is gone
            logger.debug("Dropping capture event, event loop is closed")


class OpenCvCaptureDevice(CaptureDevice):
    """Open a local camera (or stream URL) and decode QR codes from it."""

    def __init__(
        self,
        source: str = "0",
        fps: int = 10,
        frame_width: int = 640,
        frame_height: int = 480,
        capture_factory: Optional[Callable[[str], Any]] = None,
        detector_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.source = source
        self.fps = fps
        self.frame_width = frame_width
        self.frame_height = frame_height
        self._capture_factory = capture_factory or create_capture
        self._detector_factory = detector_factory or cv2.QRCodeDetector

    def _open(self) -> Any:
        capture = self._capture_factory(self.source)
        if not capture.isOpened():
            capture.release()
            raise CaptureUnavailableError(self.source, "device could not be opened")
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.frame_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.frame_height)
        return capture

    async def acquire(
        self,
        on_decoded: DecodedCallback,
        on_decode_error: DecodeErrorCallback,
    ) -> OpenCvCaptureHandle:
        loop = asyncio.get_running_loop()
        # Opening a device can block for seconds on some drivers
        capture = await loop.run_in_executor(None, self._open)

        handle = OpenCvCaptureHandle(
            capture=capture,
            detector=self._detector_factory(),
            loop=loop,
            on_decoded=on_decoded,
            on_decode_error=on_decode_error,
            fps=self.fps,
        )
        handle.start()
        logger.info(
            "Capture started on %s at %d fps (%dx%d)",
            self.source,
            self.fps,
            self.frame_width,
            self.frame_height,
        )
        return handle
