"""SQLModel table definitions for the ticket event store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class TicketTable(SQLModel, table=True):
    """Cached projection of each ticket's event log."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    ticket_type: str = Field(sa_column=Column(String(10), nullable=False))
    department: str = Field(sa_column=Column(String(10), nullable=False))
    priority: str = Field(sa_column=Column(String(20), nullable=False))
    subject: str = Field(sa_column=Column(String(255), nullable=False))
    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    assigned_to: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    pending_response_from: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    first_response_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    first_quote_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    resolved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    close_outcome: str | None = Field(default=None, sa_column=Column(String(10), nullable=True))
    version: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketEventTable(SQLModel, table=True):
    """Append-only ticket event log."""

    __tablename__ = "ticket_events"
    __table_args__ = (UniqueConstraint("ticket_id", "sequence", name="uq_ticket_events_sequence"),)

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id"), nullable=False, index=True)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    event_type: str = Field(sa_column=Column(String(50), nullable=False))
    actor_user_id: str = Field(sa_column=Column(String(255), nullable=False))
    actor_role: str = Field(sa_column=Column(String(20), nullable=False))
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
