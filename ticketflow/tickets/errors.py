from __future__ import annotations

from typing import Any, Sequence


class TicketServiceError(RuntimeError):
    """Base error for ticket engine issues.

    ``details`` carries the failed precondition (current status, allowed
    statuses, required capability...) so callers can explain the rejection.
    """

    def __init__(
        self,
        message: str,
        *,
        current_status: str | None = None,
        allowed: Sequence[str] | None = None,
        **details: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.current_status = current_status
        self.allowed = list(allowed) if allowed is not None else None
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.current_status is not None:
            payload["current_status"] = self.current_status
        if self.allowed is not None:
            payload["allowed"] = self.allowed
        payload.update(self.details)
        return payload


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class InvalidTransitionError(TicketServiceError):
    """Raised when the target status is not reachable from the current one."""


class InvalidStateError(TicketServiceError):
    """Raised when a business action's status precondition is not met."""


class ForbiddenError(TicketServiceError):
    """Raised when the actor lacks the role or capability for an operation."""


class ConflictError(TicketServiceError):
    """Raised when a concurrent write already advanced the ticket."""


class PolicyMissingError(TicketServiceError):
    """Raised when no SLA policy exists for a department and ticket type."""
