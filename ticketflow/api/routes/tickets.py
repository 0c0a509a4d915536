from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, NoReturn, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ticketflow.dependencies.tickets import AuthenticatedUser, SupervisorUser, get_ticket_service
from ticketflow.tickets.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    TicketNotFoundError,
    TicketServiceError,
)
from ticketflow.tickets.exchanges import Exchange
from ticketflow.tickets.guard import check_adjustment_figures
from ticketflow.tickets.models import (
    AdjustmentReason,
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
from ticketflow.tickets.service import TicketService
from ticketflow.tickets.sla import SLAReport
from ticketflow.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])

_ERROR_STATUS: dict[type[TicketServiceError], int] = {
    TicketNotFoundError: 404,
    ForbiddenError: 403,
    InvalidTransitionError: 409,
    ConflictError: 409,
    InvalidStateError: 422,
}


class TicketCreateRequest(BaseModel):
    ticket_type: TicketType
    department: Department
    subject: str = Field(..., min_length=1, max_length=255)
    priority: TicketPriority = TicketPriority.MEDIUM
    assigned_to: str | None = Field(default=None, min_length=1)


class TicketTransitionRequest(BaseModel):
    new_status: TicketStatus
    notes: str | None = Field(default=None, max_length=2000)


class TicketAssignRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1)


class TicketCommentRequest(BaseModel):
    content: str = Field(..., min_length=1)
    is_internal: bool = False
    comment_id: str | None = None


class SubmitQuoteAction(BaseModel):
    action: Literal["submit_quote"]
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="IDR", min_length=3, max_length=3)
    terms: str | None = None
    valid_until: str | None = None


class RequestAdjustmentAction(BaseModel):
    action: Literal["request_adjustment"]
    reason_type: AdjustmentReason
    competitor_name: str | None = None
    competitor_amount: Decimal | None = Field(default=None, gt=0)
    customer_budget: Decimal | None = Field(default=None, gt=0)
    currency: str = Field(default="IDR", min_length=3, max_length=3)
    notes: str | None = None

    @model_validator(mode="after")
    def require_figures(self) -> "RequestAdjustmentAction":
        check_adjustment_figures(
            self.reason_type,
            competitor_name=self.competitor_name,
            competitor_amount=self.competitor_amount,
            customer_budget=self.customer_budget,
        )
        return self


class QuoteSentToCustomerAction(BaseModel):
    action: Literal["quote_sent_to_customer"]
    notes: str | None = None


class MarkWonAction(BaseModel):
    action: Literal["mark_won"]
    notes: str | None = None


class MarkLostAction(BaseModel):
    action: Literal["mark_lost"]
    reason: str = Field(..., min_length=1)
    competitor_name: str | None = None
    competitor_cost: Decimal | None = Field(default=None, ge=0)


TicketActionRequest = Annotated[
    Union[SubmitQuoteAction, RequestAdjustmentAction, QuoteSentToCustomerAction, MarkWonAction, MarkLostAction],
    Body(discriminator="action"),
]


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_type: TicketType
    department: Department
    priority: TicketPriority
    subject: str
    created_by: str
    assigned_to: str | None
    status: TicketStatus
    pending_response_from: ResponseParty | None
    first_response_at: datetime | None
    first_quote_at: datetime | None
    resolved_at: datetime | None
    close_outcome: CloseOutcome | None
    version: int
    created_at: datetime
    updated_at: datetime


class TicketEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    sequence: int
    event_type: TicketEventType
    actor_user_id: str
    actor_role: ResponderType
    created_at: datetime
    payload: dict[str, Any]


class ExchangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    exchange_number: int
    responder_type: ResponderType
    business_response_seconds: float
    owed_since: datetime
    responded_at: datetime


class SLADimensionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    at: datetime | None
    met: bool | None
    pending: bool | None
    breached: bool
    threshold_seconds: float | None
    elapsed_seconds: float


class ResponderMetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    average_seconds: float | None


class SLAReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    age: str
    age_seconds: float
    first_response: SLADimensionResponse
    first_quote: SLADimensionResponse | None
    resolution: SLADimensionResponse
    is_breached: bool
    pending_response_from: ResponseParty | None
    metrics: dict[ResponderType, ResponderMetricsResponse]
    exchanges: list[ExchangeResponse]
    policy_missing: bool


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_event_response(event: TicketEvent) -> TicketEventResponse:
    return TicketEventResponse.model_validate(event)


def _to_sla_response(report: SLAReport) -> SLAReportResponse:
    return SLAReportResponse.model_validate(report)


def _raise_http(exc: TicketServiceError) -> NoReturn:
    status_code = 400
    for error_type, code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    raise HTTPException(status_code=status_code, detail=exc.to_dict()) from exc


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.create_ticket(
            ticket_type=payload.ticket_type,
            department=payload.department,
            subject=payload.subject,
            priority=payload.priority,
            assigned_to=payload.assigned_to,
            actor=user.to_actor(),
        )
    except TicketServiceError as exc:
        _raise_http(exc)
    return _to_response(ticket)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: AuthenticatedUser,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(status=status_filter, actor=user.to_actor())
    return [_to_response(ticket) for ticket in tickets]


@router.get("/sla/breaches", response_model=list[SLAReportResponse])
async def list_sla_breaches(service: TicketServiceDep, _: SupervisorUser) -> list[SLAReportResponse]:
    reports = await service.find_breached_tickets()
    return [_to_sla_response(report) for report in reports]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: AuthenticatedUser) -> TicketResponse:
    try:
        ticket = await service.get_ticket(ticket_id, actor=user.to_actor())
    except TicketServiceError as exc:
        _raise_http(exc)
    return _to_response(ticket)


@router.post("/{ticket_id}/transition", response_model=TicketResponse)
async def transition_ticket(
    ticket_id: str,
    payload: TicketTransitionRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.transition(
            ticket_id,
            new_status=payload.new_status,
            notes=payload.notes,
            actor=user.to_actor(),
        )
    except TicketServiceError as exc:
        _raise_http(exc)
    return _to_response(ticket)


@router.post("/{ticket_id}/actions", response_model=TicketResponse)
async def perform_ticket_action(
    ticket_id: str,
    payload: TicketActionRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.perform_action(
            ticket_id,
            payload.action,
            actor=user.to_actor(),
            **payload.model_dump(exclude={"action"}),
        )
    except TicketServiceError as exc:
        _raise_http(exc)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.assign(ticket_id, assigned_to=payload.assigned_to, actor=user.to_actor())
    except TicketServiceError as exc:
        _raise_http(exc)
    return _to_response(ticket)


@router.post("/{ticket_id}/comments", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def add_ticket_comment(
    ticket_id: str,
    payload: TicketCommentRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.add_comment(
            ticket_id,
            actor=user.to_actor(),
            is_internal=payload.is_internal,
            comment_id=payload.comment_id,
            content=payload.content,
        )
    except TicketServiceError as exc:
        _raise_http(exc)
    return _to_response(ticket)


@router.get("/{ticket_id}/events", response_model=list[TicketEventResponse])
async def get_ticket_events(
    ticket_id: str, service: TicketServiceDep, user: AuthenticatedUser
) -> list[TicketEventResponse]:
    try:
        events = await service.get_events(ticket_id, actor=user.to_actor())
    except TicketServiceError as exc:
        _raise_http(exc)
    return [_to_event_response(event) for event in events]


@router.get("/{ticket_id}/exchanges", response_model=list[ExchangeResponse])
async def get_ticket_exchanges(
    ticket_id: str, service: TicketServiceDep, user: AuthenticatedUser
) -> list[ExchangeResponse]:
    try:
        exchanges: list[Exchange] = await service.get_exchanges(ticket_id, actor=user.to_actor())
    except TicketServiceError as exc:
        _raise_http(exc)
    return [ExchangeResponse.model_validate(exchange) for exchange in exchanges]


@router.get("/{ticket_id}/sla", response_model=SLAReportResponse)
async def get_ticket_sla(ticket_id: str, service: TicketServiceDep, user: AuthenticatedUser) -> SLAReportResponse:
    try:
        report = await service.get_sla_report(ticket_id, actor=user.to_actor())
    except TicketServiceError as exc:
        _raise_http(exc)
    return _to_sla_response(report)
