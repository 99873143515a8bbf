"""Scanning domain — session state machine, token claims, acceptance policy."""

from .models import (  # noqa: F401 – re-export for convenience
    ScanMode,
    ScanSessionConfig,
    SessionPhase,
    SessionSnapshot,
    TokenClaim,
    VerificationResult,
)
from .policy import PolicyDecision, evaluate_claim  # noqa: F401
