"""Dependency injection bootstrap — the single place that binds ports to adapters.

Interfaces never import concrete implementations directly; they depend
on the abstractions returned by these factories.

Example usage in an interface::

    from qrscan.wiring.bootstrap import build_scan_session

    session = build_scan_session(config, on_success=handle_claim)
    async with session:
        await session.wait_closed()
"""

from __future__ import annotations

import logging

from redis import Redis
from redis.exceptions import RedisError

from qrscan.config import Settings, get_settings
from qrscan.domain.scanning.models import ScanSessionConfig
from qrscan.domain.scanning.ports import (
    CaptureDevice,
    ConsumedTokenLedger,
    TokenVerifier,
)
from qrscan.infra.capture.opencv_capture import OpenCvCaptureDevice
from qrscan.infra.ledger.memory_ledger import InMemoryConsumedTokenLedger
from qrscan.infra.ledger.redis_ledger import RedisConsumedTokenLedger
from qrscan.infra.verification.http_token_verifier import HttpTokenVerifier
from qrscan.use_cases.scanning.scan_session import (
    CloseCallback,
    ScanSession,
    SuccessCallback,
)

logger = logging.getLogger(__name__)


# ── Verification ─────────────────────────────────────────────────────────


def get_token_verifier(settings: Settings | None = None) -> TokenVerifier:
    """Return an HTTP verifier pointed at the configured token service."""
    settings = settings or get_settings()
    api_key = (
        settings.token_service_api_key.get_secret_value()
        if settings.token_service_api_key
        else None
    )
    return HttpTokenVerifier(
        base_url=settings.token_service_url,
        api_key=api_key,
        verify_path=settings.token_verify_path,
        timeout=settings.token_request_timeout,
    )


# ── Capture ──────────────────────────────────────────────────────────────


def get_capture_device(
    settings: Settings | None = None, source: str | None = None
) -> CaptureDevice:
    """Return an OpenCV capture device for *source* (default from settings)."""
    settings = settings or get_settings()
    return OpenCvCaptureDevice(
        source=source if source is not None else settings.camera_source,
        fps=settings.camera_fps,
        frame_width=settings.camera_frame_width,
        frame_height=settings.camera_frame_height,
    )


# ── Ledger ───────────────────────────────────────────────────────────────

# One ledger per process, shared by every session built here.
_ledger: ConsumedTokenLedger | None = None
_ledger_backend: str | None = None


def _connect_ledger_redis(settings: Settings) -> Redis | None:
    """Open a Redis client for the ledger, or None if Redis is unreachable."""
    client = Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.ledger_redis_db,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        client.ping()
    except RedisError:
        logger.warning(
            "Redis ledger requested but %s:%s is unreachable; "
            "relying on the token service for single use",
            settings.redis_host,
            settings.redis_port,
            exc_info=True,
        )
        client.close()
        return None
    logger.info(
        "Redis ledger connected: %s:%s/db%s",
        settings.redis_host,
        settings.redis_port,
        settings.ledger_redis_db,
    )
    return client


def get_consumed_token_ledger(
    settings: Settings | None = None,
) -> ConsumedTokenLedger | None:
    """Return the shared ledger, or None when single use is left to the service."""
    global _ledger, _ledger_backend
    settings = settings or get_settings()
    backend = settings.ledger_backend

    if backend == "none":
        return None
    if _ledger is not None and _ledger_backend == backend:
        return _ledger

    if backend == "memory":
        ledger: ConsumedTokenLedger = InMemoryConsumedTokenLedger(
            ttl_seconds=settings.ledger_ttl_seconds
        )
    else:
        client = _connect_ledger_redis(settings)
        if client is None:
            return None
        ledger = RedisConsumedTokenLedger(
            client,
            ttl_seconds=settings.ledger_ttl_seconds,
            key_prefix=settings.ledger_key_prefix,
        )

    _ledger, _ledger_backend = ledger, backend
    return ledger


def reset_ledger() -> None:
    """Forget the shared ledger (tests, or after a settings change)."""
    global _ledger, _ledger_backend
    _ledger = None
    _ledger_backend = None


# ── Session ──────────────────────────────────────────────────────────────


def build_scan_session(
    config: ScanSessionConfig,
    on_success: SuccessCallback,
    *,
    on_close: CloseCallback | None = None,
    settings: Settings | None = None,
    capture: CaptureDevice | None = None,
    verifier: TokenVerifier | None = None,
) -> ScanSession:
    """Assemble a ScanSession from settings, allowing adapter overrides."""
    settings = settings or get_settings()
    return ScanSession(
        config,
        capture=capture or get_capture_device(settings),
        verifier=verifier or get_token_verifier(settings),
        on_success=on_success,
        on_close=on_close,
        ledger=get_consumed_token_ledger(settings),
        success_delay=settings.success_delay_seconds,
        verify_timeout=settings.verify_timeout_seconds,
    )
