from __future__ import annotations

from enum import Enum

from .errors import InvalidTransitionError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    NEED_RESPONSE = "need_response"
    IN_PROGRESS = "in_progress"
    WAITING_CUSTOMER = "waiting_customer"
    NEED_ADJUSTMENT = "need_adjustment"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: dict[TicketStatus, tuple[TicketStatus, ...]] = {
        TicketStatus.OPEN: (TicketStatus.IN_PROGRESS, TicketStatus.PENDING, TicketStatus.CLOSED),
        TicketStatus.NEED_RESPONSE: (
            TicketStatus.IN_PROGRESS,
            TicketStatus.WAITING_CUSTOMER,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ),
        TicketStatus.IN_PROGRESS: (
            TicketStatus.NEED_RESPONSE,
            TicketStatus.WAITING_CUSTOMER,
            TicketStatus.NEED_ADJUSTMENT,
            TicketStatus.PENDING,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ),
        TicketStatus.WAITING_CUSTOMER: (
            TicketStatus.IN_PROGRESS,
            TicketStatus.NEED_ADJUSTMENT,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ),
        TicketStatus.NEED_ADJUSTMENT: (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED),
        TicketStatus.PENDING: (
            TicketStatus.OPEN,
            TicketStatus.IN_PROGRESS,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ),
        TicketStatus.RESOLVED: (TicketStatus.CLOSED, TicketStatus.IN_PROGRESS),
        TicketStatus.CLOSED: (TicketStatus.OPEN,),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def allowed_targets(cls, current: TicketStatus) -> tuple[TicketStatus, ...]:
        return cls._TRANSITIONS.get(current, ())

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls.allowed_targets(current)

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            allowed = [status.value for status in cls.allowed_targets(current)]
            raise InvalidTransitionError(
                f"Invalid ticket status transition: {current.value} -> {new.value}",
                current_status=current.value,
                allowed=allowed,
            )
