"""Acceptance policy for verified token claims.

Pure policy function that decides whether a verified claim may be
delivered to the caller of a session.  No I/O, no side effects.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import (
    REDEMPTION_TOKEN_TYPE,
    WRONG_CODE_TYPE,
    WRONG_RESTAURANT,
    ScanMode,
    ScanSessionConfig,
    TokenClaim,
)


# ---------------------------------------------------------------------------
# Policy Decision Value Object
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyDecision:
    """Result of checking a claim against a session's scope and mode."""

    allowed: bool
    check: str | None = None  # "scope" | "mode" when blocked
    message: str | None = None


_ALLOWED = PolicyDecision(allowed=True)


# ---------------------------------------------------------------------------
# Policy Function
# ---------------------------------------------------------------------------


def evaluate_claim(claim: TokenClaim, config: ScanSessionConfig) -> PolicyDecision:
    """Check *claim* against *config*.

    Scope is checked before mode, so a redemption token for another
    restaurant reports the restaurant mismatch.
    """
    if claim.restaurant_id != config.restaurant_scope:
        return PolicyDecision(allowed=False, check="scope", message=WRONG_RESTAURANT)

    if config.mode is ScanMode.REDEMPTION and claim.type != REDEMPTION_TOKEN_TYPE:
        return PolicyDecision(allowed=False, check="mode", message=WRONG_CODE_TYPE)

    return _ALLOWED


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "PolicyDecision",
    "evaluate_claim",
]
