from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Supported CRM roles."""

    ADMIN = "admin"
    OPS_MANAGER = "ops_manager"
    OPS = "ops"
    SALES_MANAGER = "sales_manager"
    SALES = "sales"
    VIEWER = "viewer"


class Capability(str, Enum):
    """Ticket operations gated by role."""

    TRANSITION = "transition"
    ASSIGN = "assign"
    SUBMIT_QUOTE = "submit_quote"
    CLOSE = "close"
    INTERNAL_COMMENT = "internal_comment"
    VIEW_ALL = "view_all"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.OPS_MANAGER: frozenset(
        {
            Capability.TRANSITION,
            Capability.ASSIGN,
            Capability.SUBMIT_QUOTE,
            Capability.CLOSE,
            Capability.INTERNAL_COMMENT,
            Capability.VIEW_ALL,
        }
    ),
    Role.OPS: frozenset({Capability.SUBMIT_QUOTE, Capability.INTERNAL_COMMENT}),
    Role.SALES_MANAGER: frozenset({Capability.CLOSE, Capability.VIEW_ALL}),
    Role.SALES: frozenset({Capability.CLOSE}),
    Role.VIEWER: frozenset(),
}


@dataclass(frozen=True, slots=True)
class Actor:
    """User acting on a ticket, with capabilities resolved once from the role."""

    user_id: str
    role: Role
    capabilities: frozenset[Capability] | None = None

    def __post_init__(self) -> None:
        if self.capabilities is None:
            object.__setattr__(self, "capabilities", ROLE_CAPABILITIES.get(self.role, frozenset()))

    @classmethod
    def for_role(cls, user_id: str, role: Role) -> "Actor":
        return cls(user_id=user_id, role=role)

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities
