"""httpx implementation of the TokenVerifier port.

Calls the token service's verify-and-consume endpoint.  A rejected token
is a normal answer (``valid: false``), whether it comes back as 200 or
as a 4xx with a JSON body; anything else (timeouts, 5xx, bodies that do
not parse) becomes a VerificationError so the session can recover.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from qrscan.domain.common.errors import ValidationError, VerificationError
from qrscan.domain.scanning.models import VerificationResult
from qrscan.domain.scanning.ports import TokenVerifier

logger = logging.getLogger(__name__)


class HttpTokenVerifier(TokenVerifier):
    """Verify tokens against the QR token service over HTTP."""

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_VERIFY_PATH = "/qr-tokens/verify"
    USER_AGENT = "qrscan-station/0.1"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        verify_path: str = DEFAULT_VERIFY_PATH,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.verify_path = verify_path
        self.timeout = timeout
        self._api_key = api_key
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def verify(self, token: str) -> VerificationResult:
        client = await self._get_client()
        try:
            response = await client.post(
                self.verify_path,
                json={"token": token},
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            logger.warning("Timeout verifying token at %s%s", self.base_url, self.verify_path)
            raise VerificationError("Token service timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Token service request failed: %s", e)
            raise VerificationError(f"Token service request failed: {e}") from e

        if response.status_code >= 500:
            raise VerificationError(
                f"Token service error: HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise VerificationError(
                f"Token service returned non-JSON body (HTTP {response.status_code})"
            ) from e

        if response.is_client_error:
            # 4xx carrying a verdict is a rejection; anything else is a failure
            if isinstance(body, dict) and body.get("valid") is False:
                return VerificationResult.invalid(body.get("error"))
            raise VerificationError(
                f"Token service rejected the request: HTTP {response.status_code}"
            )

        try:
            return VerificationResult.from_mapping(body)
        except ValidationError as e:
            raise VerificationError(f"Malformed verification response: {e}") from e

    async def aclose(self) -> None:
        """Close the HTTP client if this verifier created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
