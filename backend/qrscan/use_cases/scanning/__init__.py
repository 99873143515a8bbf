"""Scanning use cases."""

from .scan_session import DEFAULT_SUCCESS_DELAY, ScanSession  # noqa: F401
