"""SLA compliance report computed from a ticket and its exchanges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .calendar import BusinessCalendar, elapsed_seconds, wall_clock_seconds
from .errors import PolicyMissingError
from .exchanges import Exchange
from .models import ResponderType, ResponseParty, Ticket, TicketType
from .policy import SLAPolicy, SLAPolicyProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SLADimension:
    """Compliance of one SLA dimension.

    ``met`` is only known once ``at`` is set. ``pending`` means the clock is
    still running inside the threshold; ``breached`` means the clock ran past
    the threshold without the dimension being satisfied.
    """

    at: datetime | None
    met: bool | None
    pending: bool | None
    breached: bool
    threshold_seconds: float | None
    elapsed_seconds: float


@dataclass(slots=True)
class ResponderMetrics:
    count: int = 0
    average_seconds: float | None = None


@dataclass(slots=True)
class SLAReport:
    ticket_id: str
    age: str
    age_seconds: float
    first_response: SLADimension
    first_quote: SLADimension | None
    resolution: SLADimension
    is_breached: bool
    pending_response_from: ResponseParty | None
    metrics: dict[ResponderType, ResponderMetrics] = field(default_factory=dict)
    exchanges: list[Exchange] = field(default_factory=list)
    policy_missing: bool = False


def format_age(seconds: float) -> str:
    """Render a duration as ``Nd Nh Nm``."""

    total_minutes = max(0, int(seconds)) // 60
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)
    return f"{days}d {hours}h {minutes}m"


class SLACalculator:
    """Classify each SLA dimension as met, breached or pending."""

    def __init__(self, policy_provider: SLAPolicyProvider) -> None:
        self._policy_provider = policy_provider

    def report(self, ticket: Ticket, exchanges: Sequence[Exchange], now: datetime) -> SLAReport:
        try:
            policy = self._policy_provider.get(ticket.department, ticket.ticket_type)
        except PolicyMissingError as exc:
            logger.warning("SLA report for ticket %s degraded: %s", ticket.id, exc)
            policy = None
        return self.build_report(ticket, exchanges, policy, now)

    def build_report(
        self,
        ticket: Ticket,
        exchanges: Sequence[Exchange],
        policy: SLAPolicy | None,
        now: datetime,
    ) -> SLAReport:
        calendar = policy.calendar if policy is not None else None
        # Once a ticket is resolved or closed the clocks of unmet dimensions stop.
        clock_end = now
        stopped = ticket.status.is_terminal and ticket.resolved_at is not None
        if stopped:
            clock_end = min(now, ticket.resolved_at)

        first_response = _dimension(
            ticket.created_at,
            ticket.first_response_at,
            policy.first_response_seconds if policy else None,
            clock_end,
            calendar,
            stopped=stopped,
        )
        first_quote = None
        if ticket.ticket_type is TicketType.RFQ:
            first_quote = _dimension(
                ticket.created_at,
                ticket.first_quote_at,
                policy.first_quote_seconds if policy else None,
                clock_end,
                calendar,
                stopped=stopped,
            )
        resolution = _dimension(
            ticket.created_at,
            ticket.resolved_at,
            policy.resolution_seconds if policy else None,
            now,
            calendar,
        )

        dimensions = [first_response, resolution]
        if first_quote is not None:
            dimensions.append(first_quote)

        age_seconds = wall_clock_seconds(ticket.created_at, now)
        return SLAReport(
            ticket_id=ticket.id,
            age=format_age(age_seconds),
            age_seconds=age_seconds,
            first_response=first_response,
            first_quote=first_quote,
            resolution=resolution,
            is_breached=any(dimension.breached for dimension in dimensions),
            pending_response_from=ticket.pending_response_from,
            metrics=responder_metrics(exchanges),
            exchanges=list(exchanges),
            policy_missing=policy is None,
        )


def responder_metrics(exchanges: Sequence[Exchange]) -> dict[ResponderType, ResponderMetrics]:
    metrics: dict[ResponderType, ResponderMetrics] = {}
    for responder_type in ResponderType:
        durations = [
            exchange.business_response_seconds
            for exchange in exchanges
            if exchange.responder_type is responder_type
        ]
        average = sum(durations) / len(durations) if durations else None
        metrics[responder_type] = ResponderMetrics(count=len(durations), average_seconds=average)
    return metrics


def _dimension(
    started_at: datetime,
    satisfied_at: datetime | None,
    threshold: float | None,
    now: datetime,
    calendar: BusinessCalendar | None,
    *,
    stopped: bool = False,
) -> SLADimension:
    if satisfied_at is not None:
        elapsed = elapsed_seconds(started_at, satisfied_at, calendar)
        return SLADimension(
            at=satisfied_at,
            met=None if threshold is None else elapsed <= threshold,
            pending=False,
            breached=False,
            threshold_seconds=threshold,
            elapsed_seconds=elapsed,
        )

    elapsed = elapsed_seconds(started_at, now, calendar)
    if threshold is None:
        return SLADimension(
            at=None,
            met=None,
            pending=None,
            breached=False,
            threshold_seconds=None,
            elapsed_seconds=elapsed,
        )
    return SLADimension(
        at=None,
        met=None,
        pending=not stopped and elapsed <= threshold,
        breached=elapsed > threshold,
        threshold_seconds=threshold,
        elapsed_seconds=elapsed,
    )
