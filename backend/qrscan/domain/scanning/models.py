"""Domain models for the scanning bounded context.

Pure value objects and enums that represent a scan session's lifecycle,
the claims carried by a verified token, and the messages shown to the
operator — independently of any infrastructure (camera, HTTP, cache).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..common.errors import InvalidTransitionError, ValidationError
from ..common.types import CustomerId, RestaurantId


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ScanMode(str, Enum):
    """Which kind of token the session accepts."""

    CUSTOMER = "customer"  # any customer token for this restaurant
    REDEMPTION = "redemption"  # only tokens typed "redemption"


class SessionPhase(str, Enum):
    """Lifecycle states of a scan session."""

    IDLE = "idle"
    CAPTURING = "capturing"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"  # start-up failure only

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.SUCCEEDED, SessionPhase.FAILED)


# ---------------------------------------------------------------------------
# Operator-facing messages
# ---------------------------------------------------------------------------

CAMERA_START_FAILED = (
    "Failed to start camera. Please ensure camera permissions are granted."
)
INVALID_CODE = "Invalid QR code"
PROCESSING_FAILED = "Failed to process QR code"
WRONG_RESTAURANT = "QR code is not valid for this restaurant"
WRONG_CODE_TYPE = "Please scan a reward redemption QR code"
ALREADY_USED = "This QR code has already been used"
VERIFICATION_TIMED_OUT = "Verification timed out. Please try again."

REDEMPTION_TOKEN_TYPE = "redemption"


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------

# stop() is handled outside the table: it may be called from any phase.
_VALID_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.IDLE: frozenset({SessionPhase.CAPTURING, SessionPhase.FAILED}),
    SessionPhase.CAPTURING: frozenset({SessionPhase.PROCESSING}),
    SessionPhase.PROCESSING: frozenset(
        {SessionPhase.CAPTURING, SessionPhase.SUCCEEDED}
    ),
    SessionPhase.SUCCEEDED: frozenset(),
    SessionPhase.FAILED: frozenset(),
}


def validate_transition(current: SessionPhase, target: SessionPhase) -> None:
    """Raise InvalidTransitionError if *current* → *target* is illegal."""
    allowed = _VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current, target)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


@dataclass(frozen=True)
class TokenClaim:
    """Structured payload of a verified token.

    ``extra`` keeps whatever else the token service put in the payload
    (issued-at, reward id, ...) so callers receive it untouched.
    """

    customer_id: CustomerId
    restaurant_id: RestaurantId
    type: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.customer_id:
            raise ValidationError("Token claim is missing customer_id")
        if not self.restaurant_id:
            raise ValidationError("Token claim is missing restaurant_id")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TokenClaim":
        """Build a claim from a token-service payload.

        Accepts both camelCase (``customerId``) and snake_case keys.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"Token payload must be an object, got {type(data).__name__}"
            )
        known = {
            "customerId", "customer_id",
            "restaurantId", "restaurant_id",
            "type",
        }
        customer_id = _pick(data, "customerId", "customer_id")
        restaurant_id = _pick(data, "restaurantId", "restaurant_id")
        token_type = data.get("type")
        return cls(
            customer_id=str(customer_id) if customer_id is not None else "",
            restaurant_id=str(restaurant_id) if restaurant_id is not None else "",
            type=str(token_type) if token_type is not None else None,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out["customerId"] = self.customer_id
        out["restaurantId"] = self.restaurant_id
        if self.type is not None:
            out["type"] = self.type
        return out


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of asking the token service about a decoded token.

    Invariant: ``valid`` implies ``payload`` is present.  When ``valid``
    is False the payload is ignored.
    """

    valid: bool
    error: str | None = None
    payload: TokenClaim | None = None

    def __post_init__(self) -> None:
        if self.valid and self.payload is None:
            raise ValidationError("A valid verification result requires a payload")

    @classmethod
    def accepted(cls, payload: TokenClaim) -> "VerificationResult":
        return cls(valid=True, payload=payload)

    @classmethod
    def invalid(cls, error: str | None = None) -> "VerificationResult":
        return cls(valid=False, error=error)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VerificationResult":
        """Parse ``{valid, error?, payload?}`` as returned by the token service."""
        if not isinstance(data, Mapping) or "valid" not in data:
            raise ValidationError("Verification response has no 'valid' field")
        if not isinstance(data["valid"], bool):
            raise ValidationError(
                f"Verification response 'valid' must be a boolean, got {data['valid']!r}"
            )
        if not data["valid"]:
            error = data.get("error")
            return cls.invalid(str(error) if error else None)
        payload = data.get("payload")
        if payload is None:
            raise ValidationError("Verification response is valid but has no payload")
        return cls.accepted(TokenClaim.from_mapping(payload))


@dataclass(frozen=True)
class ScanSessionConfig:
    """Caller-supplied, immutable session configuration."""

    restaurant_scope: RestaurantId
    mode: ScanMode = ScanMode.CUSTOMER

    def __post_init__(self) -> None:
        if not self.restaurant_scope or not str(self.restaurant_scope).strip():
            raise ValidationError("restaurant_scope must be a non-empty identifier")
        if not isinstance(self.mode, ScanMode):
            try:
                object.__setattr__(self, "mode", ScanMode(self.mode))
            except ValueError:
                raise ValidationError(
                    f"Unknown scan mode: {self.mode!r} "
                    f"(expected one of {[m.value for m in ScanMode]})"
                ) from None

    @property
    def title(self) -> str:
        if self.mode is ScanMode.REDEMPTION:
            return "Scan Reward QR Code"
        return "Scan Customer QR Code"

    @property
    def hint(self) -> str | None:
        if self.mode is ScanMode.REDEMPTION:
            return "Make sure the customer shows their reward redemption QR code"
        return None


@dataclass(frozen=True)
class SessionSnapshot:
    """Observable state handed to whatever renders the session."""

    phase: SessionPhase
    last_error: str | None
    closed: bool
    restaurant_scope: RestaurantId
    mode: ScanMode

    @property
    def is_processing(self) -> bool:
        return self.phase is SessionPhase.PROCESSING

    @property
    def is_succeeded(self) -> bool:
        return self.phase is SessionPhase.SUCCEEDED


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "ScanMode",
    "SessionPhase",
    "validate_transition",
    "TokenClaim",
    "VerificationResult",
    "ScanSessionConfig",
    "SessionSnapshot",
    "CAMERA_START_FAILED",
    "INVALID_CODE",
    "PROCESSING_FAILED",
    "WRONG_RESTAURANT",
    "WRONG_CODE_TYPE",
    "ALREADY_USED",
    "VERIFICATION_TIMED_OUT",
    "REDEMPTION_TOKEN_TYPE",
]
