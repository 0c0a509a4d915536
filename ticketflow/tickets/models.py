from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .state import TicketStatus


class TicketType(str, Enum):
    """Request for quotation or general inquiry."""

    RFQ = "RFQ"
    GEN = "GEN"


class Department(str, Enum):
    MKT = "MKT"
    SAL = "SAL"
    DOM = "DOM"
    EXI = "EXI"
    DTD = "DTD"
    TRF = "TRF"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ResponseParty(str, Enum):
    """Party that owes the next action on a ticket."""

    CREATOR = "creator"
    DEPARTMENT = "department"

    @property
    def other(self) -> "ResponseParty":
        if self is ResponseParty.CREATOR:
            return ResponseParty.DEPARTMENT
        return ResponseParty.CREATOR


class ResponderType(str, Enum):
    """Role an event's actor plays relative to the ticket."""

    CREATOR = "creator"
    ASSIGNEE = "assignee"

    @property
    def party(self) -> ResponseParty:
        if self is ResponderType.CREATOR:
            return ResponseParty.CREATOR
        return ResponseParty.DEPARTMENT


class CloseOutcome(str, Enum):
    WON = "won"
    LOST = "lost"


class AdjustmentReason(str, Enum):
    """Why a creator sends a quote back to the department."""

    PRICE_TOO_HIGH = "harga_terlalu_tinggi"
    MARGIN_INSUFFICIENT = "margin_tidak_mencukupi"
    VENDOR_MISMATCH = "vendor_tidak_sesuai"
    SCHEDULE_MISMATCH = "waktu_tidak_sesuai"
    NEEDS_REVISION = "perlu_revisi"
    RATE_NOT_COMPETITIVE = "tarif_tidak_masuk"
    COMPETITOR_CHEAPER = "kompetitor_lebih_murah"
    CUSTOMER_BUDGET_SHORT = "budget_customer_tidak_cukup"
    OTHER = "other"


class TicketEventType(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    COMMENT_ADDED = "comment_added"
    QUOTE_SUBMITTED = "quote_submitted"
    ADJUSTMENT_REQUESTED = "adjustment_requested"
    QUOTE_SENT_TO_CUSTOMER = "quote_sent_to_customer"
    MARKED_WON = "marked_won"
    MARKED_LOST = "marked_lost"


@dataclass(slots=True)
class Ticket:
    """Projection of a ticket's event log.

    Only :func:`ticketflow.tickets.projection.apply_event` produces new
    instances; the service never edits fields in place.
    """

    id: str
    ticket_type: TicketType
    department: Department
    priority: TicketPriority
    subject: str
    created_by: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime
    assigned_to: str | None = None
    pending_response_from: ResponseParty | None = None
    first_response_at: datetime | None = None
    first_quote_at: datetime | None = None
    resolved_at: datetime | None = None
    close_outcome: CloseOutcome | None = None
    version: int = 0

    def responder_type_for(self, user_id: str) -> ResponderType:
        if user_id == self.created_by:
            return ResponderType.CREATOR
        return ResponderType.ASSIGNEE


@dataclass(frozen=True, slots=True)
class TicketEvent:
    """Immutable entry of a ticket's append-only event log."""

    id: str
    ticket_id: str
    sequence: int
    event_type: TicketEventType
    actor_user_id: str
    actor_role: ResponderType
    created_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)
