from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Protocol
from weakref import WeakValueDictionary

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, col, select

from ticketflow.db.models import TicketEventTable, TicketTable

from .errors import ConflictError
from .models import (
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
from .state import TicketStatus


class TicketRepository(Protocol):
    """Event store plus cached projection for tickets."""

    def lock(self, ticket_id: str) -> AbstractAsyncContextManager[None]:
        ...

    async def create(self, ticket: Ticket, event: TicketEvent) -> None:
        ...

    async def append(self, ticket: Ticket, event: TicketEvent, *, expected_version: int) -> None:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        ...

    async def list_events(self, ticket_id: str) -> list[TicketEvent]:
        ...


class TicketLocks:
    """Per-ticket asyncio locks serializing writers inside one process."""

    def __init__(self) -> None:
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[ticket_id] = lock
        async with lock:
            yield


class InMemoryTicketRepository:
    """Process-local event store used for tests and single-node deployments."""

    def __init__(self) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._events: dict[str, list[TicketEvent]] = {}
        self._locks = TicketLocks()

    def lock(self, ticket_id: str) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(ticket_id)

    async def create(self, ticket: Ticket, event: TicketEvent) -> None:
        if ticket.id in self._tickets:
            raise ConflictError(f"Ticket {ticket.id} already exists")
        self._events[ticket.id] = [event]
        self._tickets[ticket.id] = ticket

    async def append(self, ticket: Ticket, event: TicketEvent, *, expected_version: int) -> None:
        stored = self._tickets.get(ticket.id)
        if stored is None or stored.version != expected_version:
            raise ConflictError(
                f"Ticket {ticket.id} was modified concurrently",
                expected_version=expected_version,
                actual_version=None if stored is None else stored.version,
            )
        # Rebinding the list keeps snapshots handed to readers unchanged.
        self._events[ticket.id] = [*self._events[ticket.id], event]
        self._tickets[ticket.id] = ticket

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        return self._tickets.get(ticket_id)

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        tickets = [ticket for ticket in self._tickets.values() if status is None or ticket.status is status]
        return sorted(tickets, key=lambda ticket: ticket.created_at, reverse=True)

    async def list_events(self, ticket_id: str) -> list[TicketEvent]:
        return list(self._events.get(ticket_id, ()))


class SQLTicketRepository:
    """Persistence helper wrapping the `tickets` and `ticket_events` tables.

    Writers are serialized per ticket inside the process and guarded across
    processes by a conditional update on ``tickets.version``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine
        self._locks = TicketLocks()

    def lock(self, ticket_id: str) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(ticket_id)

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create(self, ticket: Ticket, event: TicketEvent) -> None:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(self._ticket_to_table(ticket))
                    await session.flush()
                    session.add(self._event_to_table(event))
            except IntegrityError as exc:
                raise ConflictError(f"Ticket {ticket.id} already exists") from exc

    async def append(self, ticket: Ticket, event: TicketEvent, *, expected_version: int) -> None:
        values = self._ticket_values(ticket)
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    result = await session.execute(
                        update(TicketTable)
                        .where(col(TicketTable.id) == ticket.id, col(TicketTable.version) == expected_version)
                        .values(**values)
                    )
                    if result.rowcount != 1:
                        raise ConflictError(
                            f"Ticket {ticket.id} was modified concurrently",
                            expected_version=expected_version,
                        )
                    session.add(self._event_to_table(event))
            except IntegrityError as exc:
                raise ConflictError(
                    f"Ticket {ticket.id} was modified concurrently",
                    expected_version=expected_version,
                ) from exc

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        statement = select(TicketTable)
        if status is not None:
            statement = statement.where(col(TicketTable.status) == status.value)
        statement = statement.order_by(col(TicketTable.created_at).desc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def list_events(self, ticket_id: str) -> list[TicketEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketEventTable)
                .where(col(TicketEventTable.ticket_id) == ticket_id)
                .order_by(col(TicketEventTable.sequence).asc())
            )
            return [self._table_to_event(row) for row in result.scalars().all()]

    @staticmethod
    def _ticket_values(ticket: Ticket) -> dict[str, object]:
        return {
            "ticket_type": ticket.ticket_type.value,
            "department": ticket.department.value,
            "priority": ticket.priority.value,
            "subject": ticket.subject,
            "created_by": ticket.created_by,
            "assigned_to": ticket.assigned_to,
            "status": ticket.status.value,
            "pending_response_from": _value_or_none(ticket.pending_response_from),
            "first_response_at": ticket.first_response_at,
            "first_quote_at": ticket.first_quote_at,
            "resolved_at": ticket.resolved_at,
            "close_outcome": _value_or_none(ticket.close_outcome),
            "version": ticket.version,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
        }

    @classmethod
    def _ticket_to_table(cls, ticket: Ticket) -> TicketTable:
        return TicketTable(id=ticket.id, **cls._ticket_values(ticket))

    @staticmethod
    def _event_to_table(event: TicketEvent) -> TicketEventTable:
        return TicketEventTable(
            id=event.id,
            ticket_id=event.ticket_id,
            sequence=event.sequence,
            event_type=event.event_type.value,
            actor_user_id=event.actor_user_id,
            actor_role=event.actor_role.value,
            payload=dict(event.payload),
            created_at=event.created_at,
        )

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_type=TicketType(row.ticket_type),
            department=Department(row.department),
            priority=TicketPriority(row.priority),
            subject=row.subject,
            created_by=row.created_by,
            assigned_to=row.assigned_to,
            status=TicketStatus(row.status),
            pending_response_from=ResponseParty(row.pending_response_from) if row.pending_response_from else None,
            first_response_at=_optional_datetime(row.first_response_at),
            first_quote_at=_optional_datetime(row.first_quote_at),
            resolved_at=_optional_datetime(row.resolved_at),
            close_outcome=CloseOutcome(row.close_outcome) if row.close_outcome else None,
            version=row.version,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_event(row: TicketEventTable) -> TicketEvent:
        return TicketEvent(
            id=row.id,
            ticket_id=row.ticket_id,
            sequence=row.sequence,
            event_type=TicketEventType(row.event_type),
            actor_user_id=row.actor_user_id,
            actor_role=ResponderType(row.actor_role),
            created_at=_ensure_datetime(row.created_at),
            payload=dict(row.payload or {}),
        )


def _value_or_none(value) -> str | None:
    return None if value is None else value.value


def _optional_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
