"""Ports (abstract interfaces) for the scanning domain.

These define WHAT the scan session needs from the outside world without
specifying HOW it's provided.  Concrete implementations live in infra/.

Note: No infrastructure types (VideoCapture, AsyncClient, Redis) appear
here.  Any QR/barcode backend that can deliver decoded text through a
callback and supports pause/resume/release fits the capture ports.
"""

from __future__ import annotations

import abc
from collections.abc import Callable

from ..common.types import Token
from .models import VerificationResult

DecodedCallback = Callable[[str], object]
DecodeErrorCallback = Callable[[str], object]


class CaptureHandle(abc.ABC):
    """An active camera feed bound to decode callbacks.

    Every method may raise; callers treat failures here as non-fatal.
    """

    @abc.abstractmethod
    async def pause(self) -> None:
        """Stop delivering decode events without giving up the device."""
        ...

    @abc.abstractmethod
    async def resume(self) -> None:
        ...

    @abc.abstractmethod
    async def release(self) -> None:
        """Give the device back.  Must tolerate being called twice."""
        ...


class CaptureDevice(abc.ABC):
    """Open a camera and bind it to decode callbacks."""

    @abc.abstractmethod
    async def acquire(
        self,
        on_decoded: DecodedCallback,
        on_decode_error: DecodeErrorCallback,
    ) -> CaptureHandle:
        """Start capturing.

        Raises:
            CaptureUnavailableError: device missing or permission denied.
        """
        ...


class TokenVerifier(abc.ABC):
    """Ask the token service whether a decoded token is valid.

    The service owns single-use semantics: a valid answer marks the
    token consumed on its side.
    """

    @abc.abstractmethod
    async def verify(self, token: Token) -> VerificationResult:
        ...


class ConsumedTokenLedger(abc.ABC):
    """Local record of tokens already accepted by this station.

    Only needed when the token service cannot guarantee single use.
    """

    @abc.abstractmethod
    async def mark_consumed(self, token: Token) -> bool:
        """Record *token*; return False if it was already recorded."""
        ...
