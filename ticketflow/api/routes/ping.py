from fastapi import APIRouter, Depends, HTTPException, Request

from ticketflow.dependencies.auth import CurrentUser, capability_required
from ticketflow.tickets.permissions import Capability

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/secure",
    summary="RBAC protected endpoint",
    dependencies=[Depends(capability_required(Capability.VIEW_ALL))],
)
async def secure_ping(user: CurrentUser) -> dict[str, str]:
    return {"status": "ok", "user": user.username, "role": user.role.value}


@router.get("/storage", summary="Ticket storage probe")
async def storage_ping(request: Request) -> dict[str, str]:
    tester = getattr(request.app.state, "postgres_tester", None)
    if tester is None:
        return {"status": "ok", "backend": "memory"}
    try:
        await tester.test_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}") from exc
    return {"status": "ok", "backend": "postgres"}
