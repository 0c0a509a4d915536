from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ticketflow.tickets.permissions import Actor, Capability, Role


class User:
    """Simple representation of an authenticated CRM user."""

    def __init__(self, username: str, role: Role):
        self.username = username
        self.role = role

    def to_actor(self) -> Actor:
        return Actor.for_role(self.username, self.role)

    def can(self, capability: Capability) -> bool:
        return self.to_actor().can(capability)


TOKEN_USER_MAP: dict[str, tuple[str, Role]] = {
    "admin-token": ("admin", Role.ADMIN),
    "ops-manager-token": ("ops-manager", Role.OPS_MANAGER),
    "ops-token": ("ops", Role.OPS),
    "sales-manager-token": ("sales-manager", Role.SALES_MANAGER),
    "sales-token": ("sales", Role.SALES),
    "viewer-token": ("viewer", Role.VIEWER),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Return a user instance associated with the provided bearer token."""

    if token is None:
        return User(username="anonymous", role=Role.VIEWER)

    if token not in TOKEN_USER_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, role = TOKEN_USER_MAP[token]
    return User(username=username, role=role)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Very small authentication stub.

    Static tokens map to known users. A real deployment would verify the token
    and look the user and role up in the CRM's user directory.
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def capability_required(capability: Capability) -> Callable[[User], User]:
    """Dependency factory ensuring the current user's role grants ``capability``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.can(capability):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


def authenticated_required() -> Callable[[User], User]:
    """Dependency factory rejecting anonymous callers."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.username == "anonymous":
            raise HTTPException(status_code=401, detail="Authentication required")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
