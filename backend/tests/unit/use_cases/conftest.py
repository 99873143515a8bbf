"""Shared test fakes and fixtures for scanning use case tests.

Consolidates all in-memory fake implementations of domain ports.
Each fake records what actually happened to it — verifying behaviour
through state (pauses, releases, verified tokens), not just "was
method X called?".

Other test files outside this directory can import these fakes directly::

    from tests.unit.use_cases.conftest import FakeCaptureDevice, FakeTokenVerifier
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from qrscan.domain.common.errors import CaptureUnavailableError
from qrscan.domain.scanning.models import (
    ScanMode,
    ScanSessionConfig,
    TokenClaim,
    VerificationResult,
)
from qrscan.domain.scanning.ports import (
    CaptureDevice,
    CaptureHandle,
    ConsumedTokenLedger,
    TokenVerifier,
)
from qrscan.use_cases.scanning.scan_session import ScanSession


# ---------------------------------------------------------------------------
# Capture fakes
# ---------------------------------------------------------------------------


class FakeCaptureHandle(CaptureHandle):
    """Capture handle that records every call in order.

    Any of ``pause_error`` / ``resume_error`` / ``release_error`` makes
    the corresponding call raise after being recorded.
    """

    def __init__(
        self,
        pause_error: Exception | None = None,
        resume_error: Exception | None = None,
        release_error: Exception | None = None,
    ) -> None:
        self.calls: list[str] = []
        self.paused = False
        self.released = False
        self._pause_error = pause_error
        self._resume_error = resume_error
        self._release_error = release_error

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def pause(self) -> None:
        self.calls.append("pause")
        if self._pause_error is not None:
            raise self._pause_error
        self.paused = True

    async def resume(self) -> None:
        self.calls.append("resume")
        if self._resume_error is not None:
            raise self._resume_error
        self.paused = False

    async def release(self) -> None:
        self.calls.append("release")
        if self._release_error is not None:
            raise self._release_error
        self.released = True


class FakeCaptureDevice(CaptureDevice):
    """Hands out a single FakeCaptureHandle and keeps the callbacks.

    ``gate`` (if given) blocks ``acquire`` until set, to simulate a slow
    camera permission prompt.
    """

    def __init__(
        self,
        handle: FakeCaptureHandle | None = None,
        should_fail: bool = False,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.handle = handle or FakeCaptureHandle()
        self.should_fail = should_fail
        self.gate = gate
        self.acquire_count = 0
        self.on_decoded = None
        self.on_decode_error = None

    async def acquire(self, on_decoded, on_decode_error) -> FakeCaptureHandle:
        self.acquire_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.should_fail:
            raise CaptureUnavailableError("fake-camera", "permission denied")
        self.on_decoded = on_decoded
        self.on_decode_error = on_decode_error
        return self.handle


# ---------------------------------------------------------------------------
# Verification fakes
# ---------------------------------------------------------------------------


class FakeTokenVerifier(TokenVerifier):
    """Answers from a token → result table.

    Table values may be a VerificationResult or an exception to raise.
    Unknown tokens get ``default``.  ``gate`` (if given) holds every call
    until set.
    """

    def __init__(
        self,
        results: dict[str, VerificationResult | Exception] | None = None,
        default: VerificationResult | Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.results = dict(results or {})
        self.default = default or VerificationResult.invalid("Unknown token")
        self.gate = gate
        self.verified: list[str] = []

    async def verify(self, token: str) -> VerificationResult:
        self.verified.append(token)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.results.get(token, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeLedger(ConsumedTokenLedger):
    """Set-backed ledger; ``should_fail`` simulates an unreachable store."""

    def __init__(self, should_fail: bool = False) -> None:
        self.tokens: set[str] = set()
        self.should_fail = should_fail

    async def mark_consumed(self, token: str) -> bool:
        if self.should_fail:
            raise ConnectionError("ledger down")
        if token in self.tokens:
            return False
        self.tokens.add(token)
        return True


# ---------------------------------------------------------------------------
# Caller-side recorders
# ---------------------------------------------------------------------------


@dataclass
class SuccessRecorder:
    """Stands in for the caller's on_success callback."""

    calls: list[tuple[str, str, TokenClaim]] = field(default_factory=list)

    def __call__(self, customer_id: str, restaurant_id: str, claim: TokenClaim) -> None:
        self.calls.append((customer_id, restaurant_id, claim))


@dataclass
class CloseRecorder:
    count: int = 0

    def __call__(self) -> None:
        self.count += 1


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_claim(
    customer_id: str = "cust-1",
    restaurant_id: str = "rest-42",
    type: str | None = None,
    **extra,
) -> TokenClaim:
    return TokenClaim(
        customer_id=customer_id,
        restaurant_id=restaurant_id,
        type=type,
        extra=extra,
    )


def accepted(**claim_fields) -> VerificationResult:
    return VerificationResult.accepted(make_claim(**claim_fields))


def make_session(
    capture: CaptureDevice,
    verifier: TokenVerifier,
    on_success,
    restaurant_scope: str = "rest-42",
    mode: ScanMode | str = ScanMode.CUSTOMER,
    **kwargs,
) -> ScanSession:
    kwargs.setdefault("success_delay", 0)
    return ScanSession(
        ScanSessionConfig(restaurant_scope=restaurant_scope, mode=mode),
        capture=capture,
        verifier=verifier,
        on_success=on_success,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def capture():
    return FakeCaptureDevice()


@pytest.fixture
def verifier():
    return FakeTokenVerifier()


@pytest.fixture
def recorder():
    return SuccessRecorder()
