from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ticketflow.tickets import (
    Actor,
    Department,
    InMemoryTicketRepository,
    ResponseParty,
    Role,
    SLAPolicyProvider,
    Ticket,
    TicketPriority,
    TicketService,
    TicketStatus,
    TicketType,
)

# Monday morning, inside the standard working window.
BASE_TIME = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def policy_provider() -> SLAPolicyProvider:
    return SLAPolicyProvider.default()


@pytest.fixture
def service(repository, policy_provider, clock) -> TicketService:
    return TicketService(repository, policy_provider, clock=clock)


@pytest.fixture
def sales() -> Actor:
    return Actor.for_role("sales-1", Role.SALES)


@pytest.fixture
def ops() -> Actor:
    return Actor.for_role("ops-1", Role.OPS)


@pytest.fixture
def other_ops() -> Actor:
    return Actor.for_role("ops-2", Role.OPS)


@pytest.fixture
def manager() -> Actor:
    return Actor.for_role("ops-manager-1", Role.OPS_MANAGER)


@pytest.fixture
def viewer() -> Actor:
    return Actor.for_role("viewer-1", Role.VIEWER)


@pytest.fixture
def make_ticket():
    def factory(**overrides) -> Ticket:
        values = {
            "id": "ticket-1",
            "ticket_type": TicketType.RFQ,
            "department": Department.SAL,
            "priority": TicketPriority.MEDIUM,
            "subject": "Jakarta to Surabaya, 2x40HC",
            "created_by": "sales-1",
            "status": TicketStatus.OPEN,
            "created_at": BASE_TIME,
            "updated_at": BASE_TIME,
            "assigned_to": "ops-1",
            "pending_response_from": ResponseParty.DEPARTMENT,
            "version": 2,
        }
        values.update(overrides)
        return Ticket(**values)

    return factory


@pytest.fixture
def assigned_rfq(service, sales, manager):
    """Create an RFQ raised by sales and assigned to ops-1."""

    async def factory(ticket_type: TicketType = TicketType.RFQ) -> Ticket:
        ticket = await service.create_ticket(
            ticket_type=ticket_type,
            department=Department.SAL,
            subject="Jakarta to Surabaya, 2x40HC",
            actor=sales,
        )
        return await service.assign(ticket.id, assigned_to="ops-1", actor=manager)

    return factory
