"""In-process implementation of the ConsumedTokenLedger port.

Good enough for a single station; tokens are forgotten on restart.
"""

from __future__ import annotations

import time

from qrscan.domain.scanning.ports import ConsumedTokenLedger


class InMemoryConsumedTokenLedger(ConsumedTokenLedger):
    """Remember accepted tokens for ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._ttl = ttl_seconds
        self._seen: dict[str, float] = {}

    def _expired(self, recorded_at: float, now: float) -> bool:
        return self._ttl is not None and now - recorded_at >= self._ttl

    async def mark_consumed(self, token: str) -> bool:
        now = time.monotonic()
        recorded_at = self._seen.get(token)
        if recorded_at is not None and not self._expired(recorded_at, now):
            return False
        self._seen[token] = now
        return True

    def __len__(self) -> int:
        return len(self._seen)
