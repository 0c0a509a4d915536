"""HTTP routers exposed by the ticketflow API."""

from . import ping, tickets

__all__ = ["ping", "tickets"]
