"""Fold a ticket's event log into its :class:`Ticket` projection.

The reducer is the single place where turn ownership
(``pending_response_from``) and the SLA timestamps are derived. The guard
appends events, the service folds them with :func:`apply_event`, and
:func:`replay` rebuilds the same projection from scratch.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from .errors import TicketNotFoundError
from .models import (
    CloseOutcome,
    Department,
    ResponseParty,
    Ticket,
    TicketEvent,
    TicketEventType,
    TicketPriority,
    TicketType,
)
from .state import TicketStatus


def apply_event(ticket: Ticket | None, event: TicketEvent) -> Ticket:
    """Return the projection after ``event``; ``ticket`` is left untouched."""

    if event.event_type is TicketEventType.CREATED:
        if ticket is not None:
            raise ValueError(f"Ticket {event.ticket_id} already has a creation event")
        return _created(event)
    if ticket is None:
        raise ValueError(f"Event {event.event_type.value} precedes creation of ticket {event.ticket_id}")
    if event.sequence != ticket.version + 1:
        raise ValueError(
            f"Out of order event for ticket {ticket.id}: expected sequence {ticket.version + 1}, got {event.sequence}"
        )

    handler = _HANDLERS[event.event_type]
    updated = handler(ticket, event)
    return replace(updated, version=event.sequence, updated_at=event.created_at)


def replay(events: Iterable[TicketEvent]) -> Ticket:
    """Rebuild a ticket by folding its full event log."""

    ticket: Ticket | None = None
    for event in events:
        ticket = apply_event(ticket, event)
    if ticket is None:
        raise TicketNotFoundError("Cannot replay an empty event log")
    return ticket


def _created(event: TicketEvent) -> Ticket:
    payload = event.payload
    assigned_to = payload.get("assigned_to") or None
    return Ticket(
        id=event.ticket_id,
        ticket_type=TicketType(payload["ticket_type"]),
        department=Department(payload["department"]),
        priority=TicketPriority(payload.get("priority", TicketPriority.MEDIUM.value)),
        subject=str(payload.get("subject", "")),
        created_by=event.actor_user_id,
        status=TicketStatus.OPEN,
        created_at=event.created_at,
        updated_at=event.created_at,
        assigned_to=assigned_to,
        pending_response_from=ResponseParty.DEPARTMENT if assigned_to else None,
        version=event.sequence,
    )


def _assigned(ticket: Ticket, event: TicketEvent) -> Ticket:
    pending = ticket.pending_response_from
    if pending is None and not ticket.status.is_terminal:
        pending = ResponseParty.DEPARTMENT
    return replace(ticket, assigned_to=event.payload["assigned_to"], pending_response_from=pending)


def _status_changed(ticket: Ticket, event: TicketEvent) -> Ticket:
    new_status = TicketStatus(event.payload["new_status"])
    if new_status.is_terminal:
        return replace(
            ticket,
            status=new_status,
            pending_response_from=None,
            resolved_at=ticket.resolved_at or event.created_at,
        )
    if ticket.status.is_terminal:
        # Reopened: the previous won/lost outcome no longer applies.
        return replace(
            ticket,
            status=new_status,
            pending_response_from=ResponseParty.DEPARTMENT if ticket.assigned_to else None,
            close_outcome=None,
        )
    return replace(ticket, status=new_status)


def _comment_added(ticket: Ticket, event: TicketEvent) -> Ticket:
    if event.payload.get("is_internal"):
        return ticket
    owed = ticket.pending_response_from
    if owed is None or event.actor_role.party is not owed:
        return ticket
    first_response_at = ticket.first_response_at
    if owed is ResponseParty.DEPARTMENT and first_response_at is None:
        first_response_at = event.created_at
    return replace(ticket, pending_response_from=owed.other, first_response_at=first_response_at)


def _quote_submitted(ticket: Ticket, event: TicketEvent) -> Ticket:
    return replace(
        ticket,
        status=TicketStatus.WAITING_CUSTOMER,
        pending_response_from=ResponseParty.CREATOR,
        first_response_at=ticket.first_response_at or event.created_at,
        first_quote_at=ticket.first_quote_at or event.created_at,
    )


def _adjustment_requested(ticket: Ticket, event: TicketEvent) -> Ticket:
    return replace(
        ticket,
        status=TicketStatus.NEED_ADJUSTMENT,
        pending_response_from=ResponseParty.DEPARTMENT,
    )


def _audit_only(ticket: Ticket, event: TicketEvent) -> Ticket:
    return ticket


def _closed_with(outcome: CloseOutcome):
    def handler(ticket: Ticket, event: TicketEvent) -> Ticket:
        return replace(
            ticket,
            status=TicketStatus.RESOLVED,
            close_outcome=outcome,
            resolved_at=ticket.resolved_at or event.created_at,
            pending_response_from=None,
        )

    return handler


_HANDLERS = {
    TicketEventType.ASSIGNED: _assigned,
    TicketEventType.STATUS_CHANGED: _status_changed,
    TicketEventType.COMMENT_ADDED: _comment_added,
    TicketEventType.QUOTE_SUBMITTED: _quote_submitted,
    TicketEventType.ADJUSTMENT_REQUESTED: _adjustment_requested,
    TicketEventType.QUOTE_SENT_TO_CUSTOMER: _audit_only,
    TicketEventType.MARKED_WON: _closed_with(CloseOutcome.WON),
    TicketEventType.MARKED_LOST: _closed_with(CloseOutcome.LOST),
}
