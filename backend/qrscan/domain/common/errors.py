"""Domain-level error hierarchy.

All domain exceptions inherit from DomainError so that interface layers
can catch a single base class and translate to CLI/UI-appropriate
responses without leaking adapter internals.
"""


class DomainError(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainError):
    """A domain invariant or input constraint was violated."""


class InvalidTransitionError(DomainError):
    """An illegal state transition was attempted."""

    def __init__(self, current: object, target: object) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current} -> {target}")


class CaptureUnavailableError(DomainError):
    """The camera could not be opened (missing device, permission denied)."""

    def __init__(self, source: object, reason: str | None = None) -> None:
        self.source = source
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Capture device unavailable ({source}){detail}")


class VerificationError(DomainError):
    """The token service could not be reached or answered nonsense.

    Distinct from an *invalid* token: an invalid token is a normal
    verification result, this is a failure to obtain one.
    """
