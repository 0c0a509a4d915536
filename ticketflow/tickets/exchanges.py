"""Rebuild the creator/assignee turn sequence from a ticket's event log."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .calendar import BusinessCalendar, elapsed_seconds
from .models import ResponderType, Ticket, TicketEvent, TicketEventType
from .projection import apply_event

RESPONSE_EVENT_TYPES: frozenset[TicketEventType] = frozenset(
    {
        TicketEventType.COMMENT_ADDED,
        TicketEventType.QUOTE_SUBMITTED,
        TicketEventType.ADJUSTMENT_REQUESTED,
        TicketEventType.MARKED_WON,
        TicketEventType.MARKED_LOST,
    }
)


@dataclass(frozen=True, slots=True)
class Exchange:
    """One attributable response and how long the responder took."""

    exchange_number: int
    responder_type: ResponderType
    business_response_seconds: float
    owed_since: datetime
    responded_at: datetime
    event_id: str


def reconstruct_exchanges(
    events: Iterable[TicketEvent],
    calendar: BusinessCalendar | None = None,
) -> list[Exchange]:
    """Walk ``events`` in order and emit an exchange for every owed response.

    The walk folds the same reducer as the projection, so the party owed at
    each step is exactly the ticket's ``pending_response_from`` at that point.
    An event is a response when its actor is on the owed side and it hands the
    turn over (or ends it). Internal comments never qualify.
    """

    exchanges: list[Exchange] = []
    numbers: Counter[ResponderType] = Counter()
    ticket: Ticket | None = None
    owed_since: datetime | None = None

    for event in events:
        before = ticket
        ticket = apply_event(before, event)
        owed_before = before.pending_response_from if before is not None else None
        owed_after = ticket.pending_response_from

        if (
            before is not None
            and owed_before is not None
            and owed_since is not None
            and event.event_type in RESPONSE_EVENT_TYPES
            and event.actor_role.party is owed_before
            and owed_after is not owed_before
        ):
            numbers[event.actor_role] += 1
            exchanges.append(
                Exchange(
                    exchange_number=numbers[event.actor_role],
                    responder_type=event.actor_role,
                    business_response_seconds=elapsed_seconds(owed_since, event.created_at, calendar),
                    owed_since=owed_since,
                    responded_at=event.created_at,
                    event_id=event.id,
                )
            )

        if owed_after is None:
            owed_since = None
        elif owed_after is not owed_before:
            owed_since = event.created_at

    return exchanges
