"""ScanSession — drives one operator scan from camera start to delivery.

This use case contains the business rules for verifying a scanned code:
  1. Acquire the capture device (single attempt, no retries)
  2. On a decoded frame, drop it if a code is already being processed
  3. Pause capture while the token service is consulted
  4. Apply the scope and mode policy to the verified claim
  5. On any rejection, surface a message and resume capture
  6. On acceptance, deliver the claim exactly once after a short delay
  7. Release the capture device on every exit path

The use case depends ONLY on domain ports — never on OpenCV, httpx,
Redis, or any other infrastructure.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from qrscan.domain.common.errors import InvalidTransitionError
from qrscan.domain.scanning.models import (
    ALREADY_USED,
    CAMERA_START_FAILED,
    INVALID_CODE,
    PROCESSING_FAILED,
    VERIFICATION_TIMED_OUT,
    ScanSessionConfig,
    SessionPhase,
    SessionSnapshot,
    TokenClaim,
    VerificationResult,
    validate_transition,
)
from qrscan.domain.scanning.policy import evaluate_claim
from qrscan.domain.scanning.ports import (
    CaptureDevice,
    CaptureHandle,
    ConsumedTokenLedger,
    TokenVerifier,
)

logger = logging.getLogger(__name__)

# Long enough for the success indication to render before the caller
# tears the scanner down.
DEFAULT_SUCCESS_DELAY = 0.5

SuccessCallback = Callable[[str, str, TokenClaim], "Awaitable[None] | None"]
CloseCallback = Callable[[], "Awaitable[None] | None"]
SnapshotListener = Callable[[SessionSnapshot], None]


async def _maybe_await(value: object) -> None:
    if inspect.isawaitable(value):
        await value


class ScanSession:
    """Scan-verification state machine for a single operator session.

    The constructor accepts infrastructure collaborators through ports.
    Decode events are expected on the event loop that runs the session;
    adapters decoding on other threads must hop onto it first.
    """

    def __init__(
        self,
        config: ScanSessionConfig,
        capture: CaptureDevice,
        verifier: TokenVerifier,
        on_success: SuccessCallback,
        *,
        on_close: CloseCallback | None = None,
        ledger: ConsumedTokenLedger | None = None,
        success_delay: float = DEFAULT_SUCCESS_DELAY,
        verify_timeout: float | None = None,
    ) -> None:
        self._config = config
        self._capture = capture
        self._verifier = verifier
        self._on_success = on_success
        self._on_close = on_close
        self._ledger = ledger
        self._success_delay = success_delay
        self._verify_timeout = verify_timeout

        self._phase = SessionPhase.IDLE
        self._last_error: str | None = None
        self._handle: CaptureHandle | None = None
        self._closed = False
        self._delivered = False
        self._verify_task: asyncio.Task | None = None
        self._delivery_task: asyncio.Task | None = None
        self._listeners: list[SnapshotListener] = []
        self._finished = asyncio.Event()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def config(self) -> ScanSessionConfig:
        return self._config

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def delivered(self) -> bool:
        return self._delivered

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self._phase,
            last_error=self._last_error,
            closed=self._closed,
            restaurant_scope=self._config.restaurant_scope,
            mode=self._config.mode,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot after every state change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_closed(self) -> None:
        """Block until the session has been torn down."""
        await self._finished.wait()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Acquire the camera.  Failure ends the session in FAILED."""
        if self._closed or self._phase is not SessionPhase.IDLE:
            raise InvalidTransitionError(self._phase, SessionPhase.CAPTURING)

        self._last_error = None
        try:
            handle = await self._capture.acquire(self.on_decoded, self.on_decode_error)
        except Exception:
            logger.warning(
                "Failed to start capture for restaurant %s",
                self._config.restaurant_scope,
                exc_info=True,
            )
            self._set_phase(SessionPhase.FAILED)
            self._last_error = CAMERA_START_FAILED
            self._notify()
            return

        if self._closed:
            # stop() ran while acquire() was pending; nobody else owns this handle
            await self._release_handle(handle)
            return

        self._handle = handle
        self._set_phase(SessionPhase.CAPTURING)
        self._notify()
        logger.info(
            "Scan session started (restaurant=%s, mode=%s)",
            self._config.restaurant_scope,
            self._config.mode.value,
        )

    async def stop(self) -> None:
        """Tear the session down.  Safe from any phase, safe to repeat."""
        if self._closed:
            return
        self._closed = True

        delivery = self._delivery_task
        if (
            delivery is not None
            and not self._delivered
            and not delivery.done()
            and delivery is not asyncio.current_task()
        ):
            delivery.cancel()

        handle, self._handle = self._handle, None
        if handle is not None:
            await self._release_handle(handle)

        if not self._phase.is_terminal:
            self._phase = SessionPhase.IDLE
        self._notify()
        self._finished.set()
        logger.debug("Scan session stopped in phase %s", self._phase.value)

    async def close(self) -> None:
        """Operator-initiated close: stop, then tell the caller."""
        await self.stop()
        if self._on_close is not None:
            await _maybe_await(self._on_close())

    async def __aenter__(self) -> "ScanSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Capture callbacks
    # ------------------------------------------------------------------

    def on_decoded(self, text: str) -> asyncio.Task | None:
        """Handle a decoded frame.

        The phase guard runs before any await, so a burst of decodes of
        the same physical code yields a single verification.  Returns the
        processing task, or None when the event was dropped.
        """
        if self._closed or self._phase is not SessionPhase.CAPTURING:
            logger.debug("Dropping decode event in phase %s", self._phase.value)
            return None
        if not text:
            return None

        self._set_phase(SessionPhase.PROCESSING)
        self._last_error = None
        self._notify()

        self._verify_task = asyncio.get_running_loop().create_task(
            self._process(text)
        )
        return self._verify_task

    def on_decode_error(self, message: str) -> None:
        # Frames without a readable code arrive many times per second.
        return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _process(self, text: str) -> None:
        await self._pause_capture()

        try:
            result = await self._verify(text)
        except asyncio.TimeoutError:
            logger.warning(
                "Token verification timed out after %ss", self._verify_timeout
            )
            await self._recover(VERIFICATION_TIMED_OUT)
            return
        except Exception:
            logger.error("Error processing QR code", exc_info=True)
            await self._recover(PROCESSING_FAILED)
            return

        if self._closed:
            logger.info("Session closed during verification; result discarded")
            return

        if not result.valid:
            logger.info("Token rejected by verifier: %s", result.error)
            await self._recover(result.error or INVALID_CODE)
            return

        claim = result.payload
        decision = evaluate_claim(claim, self._config)
        if not decision.allowed:
            logger.info(
                "Token for restaurant %s failed %s check (session restaurant=%s, mode=%s)",
                claim.restaurant_id,
                decision.check,
                self._config.restaurant_scope,
                self._config.mode.value,
            )
            await self._recover(decision.message)
            return

        if self._ledger is not None:
            try:
                first_use = await self._ledger.mark_consumed(text)
            except Exception:
                logger.error("Consumed-token ledger unavailable", exc_info=True)
                await self._recover(PROCESSING_FAILED)
                return
            if not first_use:
                logger.info("Token already consumed at this station")
                await self._recover(ALREADY_USED)
                return
            if self._closed:
                return

        self._set_phase(SessionPhase.SUCCEEDED)
        self._notify()
        logger.info(
            "Token accepted for customer %s at restaurant %s",
            claim.customer_id,
            claim.restaurant_id,
        )
        self._delivery_task = asyncio.get_running_loop().create_task(
            self._deliver(claim)
        )

    async def _verify(self, text: str) -> VerificationResult:
        if self._verify_timeout is None:
            return await self._verifier.verify(text)
        return await asyncio.wait_for(
            self._verifier.verify(text), timeout=self._verify_timeout
        )

    async def _recover(self, message: str) -> None:
        """Surface *message* and re-arm capture."""
        if self._closed:
            return
        self._last_error = message
        self._set_phase(SessionPhase.CAPTURING)
        self._notify()
        await self._resume_capture()

    async def _deliver(self, claim: TokenClaim) -> None:
        await asyncio.sleep(self._success_delay)
        if self._closed or self._delivered:
            return
        self._delivered = True
        try:
            await _maybe_await(
                self._on_success(claim.customer_id, claim.restaurant_id, claim)
            )
        except Exception:
            logger.error("Success callback raised", exc_info=True)
        finally:
            await self.stop()

    async def _pause_capture(self) -> None:
        if self._handle is None:
            return
        try:
            await self._handle.pause()
        except Exception:
            logger.warning("Failed to pause capture", exc_info=True)

    async def _resume_capture(self) -> None:
        if self._handle is None:
            return
        try:
            await self._handle.resume()
        except Exception:
            logger.warning("Failed to resume capture", exc_info=True)

    async def _release_handle(self, handle: CaptureHandle) -> None:
        try:
            await handle.pause()
        except Exception:
            logger.debug("Error pausing capture during teardown", exc_info=True)
        try:
            await handle.release()
        except Exception:
            logger.warning("Error releasing capture device", exc_info=True)

    def _set_phase(self, target: SessionPhase) -> None:
        validate_transition(self._phase, target)
        logger.debug("Phase %s -> %s", self._phase.value, target.value)
        self._phase = target

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.warning("Snapshot listener raised", exc_info=True)
