"""
Operator console for a single scan.

Opens the camera, waits for a customer's QR code and prints the verified
claim as JSON once it has been accepted.

Usage:
    python -m qrscan --restaurant rest-42                    # customer code
    python -m qrscan --restaurant rest-42 --mode redemption  # reward code
    python -m qrscan --restaurant rest-42 --camera rtsp://10.0.0.5/stream --timeout 15

Exit codes: 0 accepted, 1 camera failed to start, 2 bad arguments,
130 interrupted.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from ...config import get_settings
from ...domain.common.errors import ValidationError
from ...domain.scanning.models import (
    ScanMode,
    ScanSessionConfig,
    SessionPhase,
    SessionSnapshot,
    TokenClaim,
)
from ...wiring.bootstrap import build_scan_session, get_capture_device, get_token_verifier

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_START_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _positive_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qrscan",
        description="Scan and verify a customer QR code for a restaurant.",
    )
    parser.add_argument("--restaurant", required=True, help="Restaurant id this station serves")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ScanMode],
        default=ScanMode.CUSTOMER.value,
        help="Accept any customer code, or only reward redemption codes",
    )
    parser.add_argument("--camera", default=None, help="Camera index or stream URL")
    parser.add_argument(
        "--timeout",
        type=_positive_seconds,
        default=None,
        help="Give up on a single verification after this many seconds",
    )
    parser.add_argument("--log-level", default=None, help="Override QRSCAN_LOG_LEVEL")
    return parser


class SnapshotLogger:
    """Log each phase change and each new error message once."""

    def __init__(self) -> None:
        self._phase: Optional[SessionPhase] = None
        self._error: Optional[str] = None

    def __call__(self, snap: SessionSnapshot) -> None:
        if snap.phase != self._phase:
            logger.info("Scanner %s", snap.phase.value)
            if snap.phase is SessionPhase.PROCESSING:
                logger.info("Processing QR code...")
            elif snap.phase is SessionPhase.SUCCEEDED:
                logger.info("QR code scanned successfully!")
            self._phase = snap.phase
        if snap.last_error and snap.last_error != self._error:
            logger.warning("%s", snap.last_error)
        self._error = snap.last_error


async def run_scan(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.timeout is not None:
        settings = settings.model_copy(update={"verify_timeout_seconds": args.timeout})

    config = ScanSessionConfig(restaurant_scope=args.restaurant, mode=args.mode)
    result: dict = {}

    def on_success(customer_id: str, restaurant_id: str, claim: TokenClaim) -> None:
        result["claim"] = claim.to_dict()
        print(json.dumps(result["claim"], indent=2, sort_keys=True))

    verifier = get_token_verifier(settings)
    session = build_scan_session(
        config,
        on_success,
        settings=settings,
        capture=get_capture_device(settings, source=args.camera),
        verifier=verifier,
    )
    session.subscribe(SnapshotLogger())

    logger.info(config.title)
    if config.hint:
        logger.info(config.hint)
    logger.info("Position QR code within the frame")

    try:
        await session.start()
        if session.phase is SessionPhase.FAILED:
            return EXIT_START_FAILED
        await session.wait_closed()
    finally:
        await session.stop()
        aclose = getattr(verifier, "aclose", None)
        if aclose is not None:
            await aclose()

    return EXIT_OK if "claim" in result else EXIT_START_FAILED


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = (args.log_level or get_settings().log_level).upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        return asyncio.run(run_scan(args))
    except ValidationError as e:
        logger.error("%s", e)
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.info("Scan cancelled by operator")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
