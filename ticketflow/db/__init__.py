"""Database models and utilities."""

from .models import TicketEventTable, TicketTable

__all__ = [
    "TicketEventTable",
    "TicketTable",
]
