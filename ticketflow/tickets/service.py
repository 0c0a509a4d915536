from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable

from opentelemetry import trace

from .calendar import BusinessCalendar
from .errors import ForbiddenError, PolicyMissingError, TicketNotFoundError
from .exchanges import Exchange, reconstruct_exchanges
from .guard import TicketGuard
from .models import AdjustmentReason, Department, Ticket, TicketEvent, TicketPriority, TicketType
from .permissions import Actor, Capability
from .policy import SLAPolicyProvider
from .projection import apply_event, replay
from .repository import TicketRepository
from .sla import SLACalculator, SLAReport
from .state import TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketService:
    """High level orchestration for the ticket lifecycle and SLA tracking.

    Every mutation takes the ticket's write lock, validates the request with
    the :class:`TicketGuard`, folds the resulting event into the projection
    and appends both with an optimistic version check. Reads never lock: they
    work on the event list returned by the repository at call time.
    """

    def __init__(
        self,
        repository: TicketRepository,
        policy_provider: SLAPolicyProvider,
        *,
        guard: TicketGuard | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repository = repository
        self._policy_provider = policy_provider
        self._guard = guard or TicketGuard()
        self._clock = clock or utcnow
        self._calculator = SLACalculator(policy_provider)

    async def create_ticket(
        self,
        *,
        ticket_type: TicketType,
        department: Department,
        subject: str,
        actor: Actor,
        priority: TicketPriority = TicketPriority.MEDIUM,
        assigned_to: str | None = None,
    ) -> Ticket:
        ticket_id = str(uuid.uuid4())
        with tracer.start_as_current_span("ticket.create"):
            event = self._guard.create(
                ticket_id=ticket_id,
                ticket_type=ticket_type,
                department=department,
                priority=priority,
                subject=subject,
                actor=actor,
                assigned_to=assigned_to,
                now=self._clock(),
            )
            ticket = apply_event(None, event)
            await self._repository.create(ticket, event)
        logger.info("Ticket %s created by %s (%s/%s)", ticket.id, actor.user_id, department.value, ticket_type.value)
        return ticket

    async def get_ticket(self, ticket_id: str, *, actor: Actor | None = None) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        if actor is not None:
            self._ensure_can_view(ticket, actor)
        return ticket

    async def list_tickets(self, *, status: TicketStatus | None = None, actor: Actor | None = None) -> list[Ticket]:
        tickets = await self._repository.list_tickets(status=status)
        if actor is None or actor.can(Capability.VIEW_ALL):
            return tickets
        return [ticket for ticket in tickets if actor.user_id in (ticket.created_by, ticket.assigned_to)]

    async def assign(self, ticket_id: str, *, assigned_to: str, actor: Actor) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.assign",
            lambda ticket, now: self._guard.assign(ticket, assigned_to=assigned_to, actor=actor, now=now),
        )

    async def add_comment(
        self,
        ticket_id: str,
        *,
        actor: Actor,
        is_internal: bool = False,
        comment_id: str | None = None,
        content: str | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.comment",
            lambda ticket, now: self._guard.comment(
                ticket, actor=actor, is_internal=is_internal, comment_id=comment_id, content=content, now=now
            ),
        )

    async def transition(
        self,
        ticket_id: str,
        *,
        new_status: TicketStatus,
        actor: Actor,
        notes: str | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.transition",
            lambda ticket, now: self._guard.transition(
                ticket, new_status=new_status, actor=actor, notes=notes, now=now
            ),
        )

    async def submit_quote(
        self,
        ticket_id: str,
        *,
        amount: Decimal,
        actor: Actor,
        currency: str = "IDR",
        terms: str | None = None,
        valid_until: str | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.submit_quote",
            lambda ticket, now: self._guard.submit_quote(
                ticket,
                amount=amount,
                currency=currency,
                terms=terms,
                valid_until=valid_until,
                actor=actor,
                now=now,
            ),
        )

    async def request_adjustment(
        self,
        ticket_id: str,
        *,
        actor: Actor,
        reason_type: AdjustmentReason,
        competitor_name: str | None = None,
        competitor_amount: Decimal | None = None,
        customer_budget: Decimal | None = None,
        currency: str = "IDR",
        notes: str | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.request_adjustment",
            lambda ticket, now: self._guard.request_adjustment(
                ticket,
                reason_type=reason_type,
                competitor_name=competitor_name,
                competitor_amount=competitor_amount,
                customer_budget=customer_budget,
                currency=currency,
                notes=notes,
                actor=actor,
                now=now,
            ),
        )

    async def quote_sent_to_customer(self, ticket_id: str, *, actor: Actor, notes: str | None = None) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.quote_sent_to_customer",
            lambda ticket, now: self._guard.quote_sent_to_customer(ticket, notes=notes, actor=actor, now=now),
        )

    async def mark_won(self, ticket_id: str, *, actor: Actor, notes: str | None = None) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.mark_won",
            lambda ticket, now: self._guard.mark_won(ticket, notes=notes, actor=actor, now=now),
        )

    async def mark_lost(
        self,
        ticket_id: str,
        *,
        actor: Actor,
        reason: str,
        competitor_name: str | None = None,
        competitor_cost: Decimal | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            "ticket.mark_lost",
            lambda ticket, now: self._guard.mark_lost(
                ticket,
                reason=reason,
                competitor_name=competitor_name,
                competitor_cost=competitor_cost,
                actor=actor,
                now=now,
            ),
        )

    async def perform_action(self, ticket_id: str, action: str, *, actor: Actor, **payload: Any) -> Ticket:
        """Dispatch one of the RFQ business actions by name."""

        handlers: dict[str, Callable[..., Awaitable[Ticket]]] = {
            "submit_quote": self.submit_quote,
            "request_adjustment": self.request_adjustment,
            "quote_sent_to_customer": self.quote_sent_to_customer,
            "mark_won": self.mark_won,
            "mark_lost": self.mark_lost,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValueError(f"Unknown action: {action}")
        return await handler(ticket_id, actor=actor, **payload)

    async def get_events(self, ticket_id: str, *, actor: Actor | None = None) -> list[TicketEvent]:
        await self.get_ticket(ticket_id, actor=actor)
        return await self._repository.list_events(ticket_id)

    async def get_exchanges(self, ticket_id: str, *, actor: Actor | None = None) -> list[Exchange]:
        ticket = await self.get_ticket(ticket_id, actor=actor)
        events = await self._repository.list_events(ticket_id)
        return reconstruct_exchanges(events, self._calendar_for(ticket))

    async def get_sla_report(self, ticket_id: str, *, actor: Actor | None = None) -> SLAReport:
        await self.get_ticket(ticket_id, actor=actor)
        events = await self._repository.list_events(ticket_id)
        # Fold the snapshot so the report and its exchanges describe the same history.
        ticket = replay(events)
        return self._calculator.report(ticket, reconstruct_exchanges(events, self._calendar_for(ticket)), self._clock())

    async def rebuild_ticket(self, ticket_id: str) -> Ticket:
        events = await self._repository.list_events(ticket_id)
        if not events:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return replay(events)

    async def find_breached_tickets(self, now: datetime | None = None) -> list[SLAReport]:
        """Reports of open tickets that breach an SLA dimension at ``now``."""

        breached: list[SLAReport] = []
        now = now or self._clock()
        for ticket in await self._repository.list_tickets():
            if ticket.status.is_terminal:
                continue
            events = await self._repository.list_events(ticket.id)
            report = self._calculator.report(
                ticket, reconstruct_exchanges(events, self._calendar_for(ticket)), now
            )
            if report.is_breached:
                breached.append(report)
        logger.info("SLA sweep found %d breached tickets", len(breached))
        return breached

    async def _mutate(
        self,
        ticket_id: str,
        span_name: str,
        build_event: Callable[[Ticket, datetime], TicketEvent],
    ) -> Ticket:
        with tracer.start_as_current_span(span_name) as span:
            span.set_attribute("ticket.id", ticket_id)
            async with self._repository.lock(ticket_id):
                current = await self._repository.get_ticket(ticket_id)
                if current is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                # Event timestamps never run backwards within a ticket.
                now = max(self._clock(), current.updated_at)
                event = build_event(current, now)
                updated = apply_event(current, event)
                await self._repository.append(updated, event, expected_version=current.version)
            span.set_attribute("ticket.status", updated.status.value)
        logger.info(
            "Ticket %s: %s by %s (%s -> %s)",
            ticket_id,
            event.event_type.value,
            event.actor_user_id,
            current.status.value,
            updated.status.value,
        )
        return updated

    def _calendar_for(self, ticket: Ticket) -> BusinessCalendar | None:
        try:
            return self._policy_provider.get(ticket.department, ticket.ticket_type).calendar
        except PolicyMissingError:
            return None

    @staticmethod
    def _ensure_can_view(ticket: Ticket, actor: Actor) -> None:
        if actor.can(Capability.VIEW_ALL) or actor.user_id in (ticket.created_by, ticket.assigned_to):
            return
        raise ForbiddenError(f"Access denied to ticket {ticket.id}")
