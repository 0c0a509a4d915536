from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from ticketflow.db.models import TicketEventTable, TicketTable
from ticketflow.tickets.errors import ConflictError
from ticketflow.tickets.models import (
    Department,
    ResponderType,
    ResponseParty,
    TicketEvent,
    TicketEventType,
    TicketType,
)
from ticketflow.tickets.repository import InMemoryTicketRepository, SQLTicketRepository
from ticketflow.tickets.state import TicketStatus


class DummyTransaction:
    async def __aenter__(self):
        return None

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummySession:
    def __init__(self, *, execute_result=None, get_result=None):
        self.added: list[object] = []
        self.execute = AsyncMock(return_value=execute_result)
        self.get = AsyncMock(return_value=get_result)
        self.flush = AsyncMock()

    def begin(self):
        return DummyTransaction()

    def add(self, obj):
        self.added.append(obj)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _factory(session: DummySession):
    return lambda: session


def _event(ticket, sequence: int, created_at: datetime) -> TicketEvent:
    return TicketEvent(
        id=f"event-{sequence}",
        ticket_id=ticket.id,
        sequence=sequence,
        event_type=TicketEventType.COMMENT_ADDED,
        actor_user_id="ops-1",
        actor_role=ResponderType.ASSIGNEE,
        created_at=created_at,
        payload={"comment_id": "c-1", "is_internal": False},
    )


@pytest.mark.asyncio
async def test_ensure_schema_requires_engine():
    repository = SQLTicketRepository(_factory(DummySession()))

    with pytest.raises(RuntimeError):
        await repository.ensure_schema()


@pytest.mark.asyncio
async def test_create_adds_ticket_then_event(make_ticket, base_time):
    session = DummySession()
    repository = SQLTicketRepository(_factory(session))
    ticket = make_ticket(version=1)

    await repository.create(ticket, _event(ticket, 1, base_time))

    ticket_row, event_row = session.added
    assert isinstance(ticket_row, TicketTable)
    assert ticket_row.status == "open"
    assert ticket_row.pending_response_from == "department"
    assert isinstance(event_row, TicketEventTable)
    assert event_row.sequence == 1
    session.flush.assert_awaited()


@pytest.mark.asyncio
async def test_create_maps_integrity_error_to_conflict(make_ticket, base_time):
    session = DummySession()
    session.flush = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate")))
    repository = SQLTicketRepository(_factory(session))
    ticket = make_ticket(version=1)

    with pytest.raises(ConflictError):
        await repository.create(ticket, _event(ticket, 1, base_time))


@pytest.mark.asyncio
async def test_append_writes_event_when_version_matches(make_ticket, base_time):
    session = DummySession(execute_result=MagicMock(rowcount=1))
    repository = SQLTicketRepository(_factory(session))
    ticket = make_ticket(version=3)

    await repository.append(ticket, _event(ticket, 3, base_time), expected_version=2)

    session.execute.assert_awaited_once()
    assert [row.sequence for row in session.added] == [3]


@pytest.mark.asyncio
async def test_append_raises_conflict_on_stale_version(make_ticket, base_time):
    session = DummySession(execute_result=MagicMock(rowcount=0))
    repository = SQLTicketRepository(_factory(session))
    ticket = make_ticket(version=3)

    with pytest.raises(ConflictError) as exc:
        await repository.append(ticket, _event(ticket, 3, base_time), expected_version=2)

    assert exc.value.details["expected_version"] == 2
    assert session.added == []


@pytest.mark.asyncio
async def test_get_ticket_converts_row(base_time):
    row = TicketTable(
        id="ticket-1",
        ticket_type="RFQ",
        department="EXI",
        priority="high",
        subject="Export",
        created_by="sales-1",
        assigned_to="ops-1",
        status="waiting_customer",
        pending_response_from="creator",
        first_response_at=base_time.replace(tzinfo=None),
        first_quote_at=base_time,
        resolved_at=None,
        close_outcome=None,
        version=4,
        created_at=base_time,
        updated_at=base_time,
    )
    repository = SQLTicketRepository(_factory(DummySession(get_result=row)))

    ticket = await repository.get_ticket("ticket-1")

    assert ticket is not None
    assert ticket.ticket_type is TicketType.RFQ
    assert ticket.department is Department.EXI
    assert ticket.status is TicketStatus.WAITING_CUSTOMER
    assert ticket.pending_response_from is ResponseParty.CREATOR
    assert ticket.first_response_at == base_time
    assert ticket.version == 4


@pytest.mark.asyncio
async def test_get_ticket_returns_none_when_missing():
    repository = SQLTicketRepository(_factory(DummySession(get_result=None)))

    assert await repository.get_ticket("missing") is None


@pytest.mark.asyncio
async def test_list_events_converts_rows(base_time):
    row = TicketEventTable(
        id="event-1",
        ticket_id="ticket-1",
        sequence=1,
        event_type="created",
        actor_user_id="sales-1",
        actor_role="creator",
        payload={"ticket_type": "RFQ"},
        created_at=base_time,
    )
    result = MagicMock()
    result.scalars.return_value.all.return_value = [row]
    repository = SQLTicketRepository(_factory(DummySession(execute_result=result)))

    events = await repository.list_events("ticket-1")

    assert events[0].event_type is TicketEventType.CREATED
    assert events[0].actor_role is ResponderType.CREATOR
    assert events[0].payload == {"ticket_type": "RFQ"}


@pytest.mark.asyncio
async def test_in_memory_event_snapshots_are_stable(make_ticket, base_time):
    repository = InMemoryTicketRepository()
    ticket = make_ticket(version=1)
    await repository.create(ticket, _event(ticket, 1, base_time))
    snapshot = await repository.list_events(ticket.id)

    updated = make_ticket(version=2)
    await repository.append(updated, _event(updated, 2, base_time), expected_version=1)

    assert len(snapshot) == 1
    assert len(await repository.list_events(ticket.id)) == 2


@pytest.mark.asyncio
async def test_in_memory_rejects_duplicate_ticket(make_ticket, base_time):
    repository = InMemoryTicketRepository()
    ticket = make_ticket(version=1)
    await repository.create(ticket, _event(ticket, 1, base_time))

    with pytest.raises(ConflictError):
        await repository.create(ticket, _event(ticket, 1, base_time))
