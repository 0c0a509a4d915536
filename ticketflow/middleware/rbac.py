"""Resolve the caller once per request for the ticket routes."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ticketflow.dependencies.auth import resolve_user_from_token

logger = logging.getLogger(__name__)

ROLE_HEADER = "X-Ticketflow-Role"


class RBACMiddleware(BaseHTTPMiddleware):
    """Attach the authenticated user and its ticket actor to ``request.state``.

    Unknown tokens and non-bearer schemes are answered with 401 before any
    route runs; requests without credentials continue as the anonymous viewer.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            token = _bearer_token(request.headers.get("Authorization"))
            user = resolve_user_from_token(token)
        except HTTPException as exc:
            logger.info("Rejected credentials on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail},
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user = user
        request.state.actor = user.to_actor()
        response = await call_next(request)
        response.headers[ROLE_HEADER] = user.role.value
        return response


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return credentials.strip() or None
