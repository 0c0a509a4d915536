"""Validate ticket operations and produce the events that record them.

The guard never mutates a :class:`Ticket`. Each method checks the actor and
the ticket's current state and returns the next :class:`TicketEvent`; the
service appends it and folds it into the projection.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from .errors import ForbiddenError, InvalidStateError
from .models import (
    AdjustmentReason,
    Department,
    ResponderType,
    Ticket,
    TicketEvent,
    TicketEventType,
    TicketPriority,
    TicketType,
)
from .permissions import Actor, Capability
from .state import TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)

SUBMIT_QUOTE_STATUSES = frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.NEED_ADJUSTMENT})
REQUEST_ADJUSTMENT_STATUSES = frozenset({TicketStatus.WAITING_CUSTOMER, TicketStatus.IN_PROGRESS})
QUOTE_SENT_STATUSES = frozenset({TicketStatus.WAITING_CUSTOMER})
CLOSE_OUTCOME_STATUSES = frozenset({TicketStatus.PENDING, TicketStatus.WAITING_CUSTOMER})
TARGET_AMOUNT_REASONS = frozenset(
    {
        AdjustmentReason.RATE_NOT_COMPETITIVE,
        AdjustmentReason.PRICE_TOO_HIGH,
        AdjustmentReason.MARGIN_INSUFFICIENT,
    }
)


def check_adjustment_figures(
    reason_type: AdjustmentReason,
    *,
    competitor_name: str | None,
    competitor_amount: Decimal | None,
    customer_budget: Decimal | None,
) -> None:
    """Raise ``ValueError`` when a financial reason lacks the figures it needs."""

    if reason_type is AdjustmentReason.COMPETITOR_CHEAPER:
        if not competitor_name and competitor_amount is None:
            raise ValueError(f"competitor_name or competitor_amount is required when reason is {reason_type.value}")
    elif reason_type is AdjustmentReason.CUSTOMER_BUDGET_SHORT:
        if customer_budget is None:
            raise ValueError(f"customer_budget is required when reason is {reason_type.value}")
    elif reason_type in TARGET_AMOUNT_REASONS:
        if competitor_amount is None and customer_budget is None:
            raise ValueError(f"competitor_amount or customer_budget is required when reason is {reason_type.value}")


def _new_id() -> str:
    return str(uuid.uuid4())


def _labels(statuses: frozenset[TicketStatus]) -> list[str]:
    return sorted(status.value for status in statuses)


class TicketGuard:
    """Role- and state-aware gatekeeper for every ticket mutation."""

    def __init__(self, state_machine: type[TicketStateMachine] = TicketStateMachine) -> None:
        self._state_machine = state_machine

    def create(
        self,
        *,
        ticket_id: str,
        ticket_type: TicketType,
        department: Department,
        priority: TicketPriority,
        subject: str,
        actor: Actor,
        assigned_to: str | None,
        now: datetime,
    ) -> TicketEvent:
        if assigned_to is not None and not actor.can(Capability.ASSIGN):
            raise ForbiddenError("Assigning a ticket requires the assign capability", capability=Capability.ASSIGN.value)
        return TicketEvent(
            id=_new_id(),
            ticket_id=ticket_id,
            sequence=1,
            event_type=TicketEventType.CREATED,
            actor_user_id=actor.user_id,
            actor_role=ResponderType.CREATOR,
            created_at=now,
            payload={
                "ticket_type": ticket_type.value,
                "department": department.value,
                "priority": priority.value,
                "subject": subject,
                "assigned_to": assigned_to,
            },
        )

    def transition(
        self,
        ticket: Ticket,
        *,
        new_status: TicketStatus,
        actor: Actor,
        notes: str | None,
        now: datetime,
    ) -> TicketEvent:
        if not self._may_transition(ticket, new_status, actor):
            raise ForbiddenError(
                "Changing ticket status requires the transition capability",
                current_status=ticket.status.value,
                capability=Capability.TRANSITION.value,
            )
        self._state_machine.assert_transition(ticket.status, new_status)
        return self._event(
            ticket,
            TicketEventType.STATUS_CHANGED,
            actor,
            now,
            {"old_status": ticket.status.value, "new_status": new_status.value, "notes": notes},
        )

    def assign(self, ticket: Ticket, *, assigned_to: str, actor: Actor, now: datetime) -> TicketEvent:
        if not actor.can(Capability.ASSIGN):
            raise ForbiddenError("Assigning a ticket requires the assign capability", capability=Capability.ASSIGN.value)
        if ticket.status.is_terminal:
            self._reject("Assign", ticket, frozenset(s for s in TicketStatus if not s.is_terminal))
        return self._event(
            ticket,
            TicketEventType.ASSIGNED,
            actor,
            now,
            {"assigned_to": assigned_to, "previous_assignee": ticket.assigned_to},
        )

    def comment(
        self,
        ticket: Ticket,
        *,
        actor: Actor,
        is_internal: bool,
        comment_id: str | None,
        content: str | None = None,
        now: datetime,
    ) -> TicketEvent:
        if is_internal and not actor.can(Capability.INTERNAL_COMMENT):
            raise ForbiddenError(
                "Internal comments require the internal_comment capability",
                capability=Capability.INTERNAL_COMMENT.value,
            )
        return self._event(
            ticket,
            TicketEventType.COMMENT_ADDED,
            actor,
            now,
            {"comment_id": comment_id or _new_id(), "is_internal": is_internal, "content": content},
        )

    def submit_quote(
        self,
        ticket: Ticket,
        *,
        amount: Decimal,
        currency: str,
        terms: str | None,
        valid_until: str | None,
        actor: Actor,
        now: datetime,
    ) -> TicketEvent:
        self._require_rfq("Submit Quote", ticket)
        if ticket.responder_type_for(actor.user_id) is not ResponderType.ASSIGNEE:
            raise ForbiddenError("Submit Quote is reserved for the assigned department", current_status=ticket.status.value)
        if not actor.can(Capability.SUBMIT_QUOTE):
            raise ForbiddenError(
                "Submit Quote requires the submit_quote capability",
                capability=Capability.SUBMIT_QUOTE.value,
            )
        if ticket.status not in SUBMIT_QUOTE_STATUSES:
            self._reject("Submit Quote", ticket, SUBMIT_QUOTE_STATUSES)
        if ticket.assigned_to is None:
            raise InvalidStateError(
                "Submit Quote is not available before the ticket is assigned",
                current_status=ticket.status.value,
            )
        if amount <= 0:
            raise ValueError("Quote amount must be positive")
        return self._event(
            ticket,
            TicketEventType.QUOTE_SUBMITTED,
            actor,
            now,
            {"amount": str(amount), "currency": currency, "terms": terms, "valid_until": valid_until},
        )

    def request_adjustment(
        self,
        ticket: Ticket,
        *,
        reason_type: AdjustmentReason,
        actor: Actor,
        now: datetime,
        competitor_name: str | None = None,
        competitor_amount: Decimal | None = None,
        customer_budget: Decimal | None = None,
        currency: str = "IDR",
        notes: str | None = None,
    ) -> TicketEvent:
        self._require_creator_action("Request Adjustment", ticket, actor, REQUEST_ADJUSTMENT_STATUSES)
        reason_type = AdjustmentReason(reason_type)
        check_adjustment_figures(
            reason_type,
            competitor_name=competitor_name,
            competitor_amount=competitor_amount,
            customer_budget=customer_budget,
        )
        return self._event(
            ticket,
            TicketEventType.ADJUSTMENT_REQUESTED,
            actor,
            now,
            {
                "reason_type": reason_type.value,
                "competitor_name": competitor_name,
                "competitor_amount": None if competitor_amount is None else str(competitor_amount),
                "customer_budget": None if customer_budget is None else str(customer_budget),
                "currency": currency,
                "notes": notes,
            },
        )

    def quote_sent_to_customer(
        self, ticket: Ticket, *, notes: str | None, actor: Actor, now: datetime
    ) -> TicketEvent:
        self._require_creator_action("Quote Sent To Customer", ticket, actor, QUOTE_SENT_STATUSES)
        return self._event(ticket, TicketEventType.QUOTE_SENT_TO_CUSTOMER, actor, now, {"notes": notes})

    def mark_won(self, ticket: Ticket, *, notes: str | None, actor: Actor, now: datetime) -> TicketEvent:
        self._require_creator_action("Mark Won", ticket, actor, CLOSE_OUTCOME_STATUSES)
        return self._event(ticket, TicketEventType.MARKED_WON, actor, now, {"notes": notes})

    def mark_lost(
        self,
        ticket: Ticket,
        *,
        reason: str,
        competitor_name: str | None,
        competitor_cost: Decimal | None,
        actor: Actor,
        now: datetime,
    ) -> TicketEvent:
        self._require_creator_action("Mark Lost", ticket, actor, CLOSE_OUTCOME_STATUSES)
        if not reason or not reason.strip():
            raise ValueError("A reason is required to mark a ticket as lost")
        return self._event(
            ticket,
            TicketEventType.MARKED_LOST,
            actor,
            now,
            {
                "reason": reason,
                "competitor_name": competitor_name,
                "competitor_cost": None if competitor_cost is None else str(competitor_cost),
            },
        )

    def _may_transition(self, ticket: Ticket, new_status: TicketStatus, actor: Actor) -> bool:
        if actor.can(Capability.TRANSITION):
            return True
        # Creators holding the close capability may close their own tickets.
        return (
            new_status is TicketStatus.CLOSED
            and actor.can(Capability.CLOSE)
            and ticket.responder_type_for(actor.user_id) is ResponderType.CREATOR
        )

    def _require_rfq(self, action: str, ticket: Ticket) -> None:
        if ticket.ticket_type is not TicketType.RFQ:
            raise InvalidStateError(
                f"{action} is only available for RFQ tickets",
                current_status=ticket.status.value,
                ticket_type=ticket.ticket_type.value,
            )

    def _require_creator_action(
        self,
        action: str,
        ticket: Ticket,
        actor: Actor,
        statuses: frozenset[TicketStatus],
    ) -> None:
        self._require_rfq(action, ticket)
        if ticket.responder_type_for(actor.user_id) is not ResponderType.CREATOR:
            raise ForbiddenError(f"{action} is reserved for the ticket creator", current_status=ticket.status.value)
        if ticket.status not in statuses:
            self._reject(action, ticket, statuses)

    def _reject(self, action: str, ticket: Ticket, statuses: frozenset[TicketStatus]) -> None:
        logger.debug("Rejected %s on ticket %s in status %s", action, ticket.id, ticket.status.value)
        raise InvalidStateError(
            f"{action} is not available while status is {ticket.status.value}",
            current_status=ticket.status.value,
            allowed=_labels(statuses),
        )

    def _event(
        self,
        ticket: Ticket,
        event_type: TicketEventType,
        actor: Actor,
        now: datetime,
        payload: Mapping[str, Any],
    ) -> TicketEvent:
        return TicketEvent(
            id=_new_id(),
            ticket_id=ticket.id,
            sequence=ticket.version + 1,
            event_type=event_type,
            actor_user_id=actor.user_id,
            actor_role=ticket.responder_type_for(actor.user_id),
            created_at=now,
            payload=dict(payload),
        )
