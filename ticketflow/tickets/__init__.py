"""Ticket lifecycle, turn tracking and SLA compliance."""

from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    PolicyMissingError,
    TicketNotFoundError,
    TicketServiceError,
)
from .exchanges import Exchange, reconstruct_exchanges
from .guard import TicketGuard
from .models import (
    AdjustmentReason,
    CloseOutcome,
    Department,
    ResponderType,
    ResponseParty,
    Ticket,
    TicketEvent,
    TicketEventType,
    TicketPriority,
    TicketType,
)
from .permissions import Actor, Capability, Role
from .policy import SLAPolicy, SLAPolicyProvider
from .projection import apply_event, replay
from .repository import InMemoryTicketRepository, SQLTicketRepository, TicketRepository
from .service import TicketService
from .sla import SLACalculator, SLADimension, SLAReport
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "Actor",
    "AdjustmentReason",
    "Capability",
    "CloseOutcome",
    "ConflictError",
    "Department",
    "Exchange",
    "ForbiddenError",
    "InMemoryTicketRepository",
    "InvalidStateError",
    "InvalidTransitionError",
    "PolicyMissingError",
    "ResponderType",
    "ResponseParty",
    "Role",
    "SLACalculator",
    "SLADimension",
    "SLAPolicy",
    "SLAPolicyProvider",
    "SLAReport",
    "SQLTicketRepository",
    "Ticket",
    "TicketEvent",
    "TicketEventType",
    "TicketGuard",
    "TicketNotFoundError",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketType",
    "apply_event",
    "reconstruct_exchanges",
    "replay",
]
