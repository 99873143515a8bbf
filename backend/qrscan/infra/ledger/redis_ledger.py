"""Redis implementation of the ConsumedTokenLedger port.

Uses ``SET key 1 NX EX ttl`` so that concurrent stations sharing one
Redis agree on which of them accepted a token first.  Keys are SHA-256
digests of the token, so raw tokens never land in Redis.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging

from redis import Redis

from qrscan.domain.scanning.ports import ConsumedTokenLedger

logger = logging.getLogger(__name__)


class RedisConsumedTokenLedger(ConsumedTokenLedger):
    """Record accepted tokens in Redis."""

    def __init__(
        self,
        client: Redis,
        ttl_seconds: int = 86400,
        key_prefix: str = "qrscan:consumed:",
    ) -> None:
        self._client = client
        self._ttl = ttl_seconds
        self._prefix = key_prefix

    def key_for(self, token: str) -> str:
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return f"{self._prefix}{digest}"

    def _set_if_absent(self, key: str) -> bool:
        return bool(self._client.set(key, b"1", nx=True, ex=self._ttl))

    async def mark_consumed(self, token: str) -> bool:
        key = self.key_for(token)
        # redis-py is blocking; keep it off the event loop
        first_use = await asyncio.get_running_loop().run_in_executor(
            None, self._set_if_absent, key
        )
        if not first_use:
            logger.info("Token %s already recorded in ledger", key[-12:])
        return first_use
