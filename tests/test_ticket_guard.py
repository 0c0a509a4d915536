from datetime import timedelta
from decimal import Decimal

import pytest

from ticketflow.tickets.errors import ForbiddenError, InvalidStateError, InvalidTransitionError
from ticketflow.tickets.guard import TicketGuard
from ticketflow.tickets.models import (
    AdjustmentReason,
    Department,
    ResponderType,
    TicketEventType,
    TicketPriority,
    TicketType,
)
from ticketflow.tickets.state import TicketStatus


@pytest.fixture
def guard() -> TicketGuard:
    return TicketGuard()


def _quote(guard, ticket, actor, now, amount=Decimal("1500000")):
    return guard.submit_quote(
        ticket, amount=amount, currency="IDR", terms=None, valid_until=None, actor=actor, now=now
    )


def test_submit_quote_builds_next_event(guard, make_ticket, ops, base_time):
    ticket = make_ticket()

    event = _quote(guard, ticket, ops, base_time + timedelta(hours=1))

    assert event.event_type is TicketEventType.QUOTE_SUBMITTED
    assert event.sequence == ticket.version + 1
    assert event.actor_role is ResponderType.ASSIGNEE
    assert event.payload["amount"] == "1500000"
    assert event.payload["currency"] == "IDR"


def test_submit_quote_rejected_for_general_tickets(guard, make_ticket, ops, base_time):
    ticket = make_ticket(ticket_type=TicketType.GEN)

    with pytest.raises(InvalidStateError) as exc:
        _quote(guard, ticket, ops, base_time)

    assert exc.value.details["ticket_type"] == "GEN"


def test_submit_quote_rejected_for_creator(guard, make_ticket, sales, base_time):
    with pytest.raises(ForbiddenError):
        _quote(guard, make_ticket(), sales, base_time)


def test_submit_quote_requires_capability(guard, make_ticket, viewer, base_time):
    with pytest.raises(ForbiddenError) as exc:
        _quote(guard, make_ticket(), viewer, base_time)

    assert exc.value.details["capability"] == "submit_quote"


def test_submit_quote_rejected_in_wrong_status(guard, make_ticket, ops, base_time):
    ticket = make_ticket(status=TicketStatus.WAITING_CUSTOMER)

    with pytest.raises(InvalidStateError) as exc:
        _quote(guard, ticket, ops, base_time)

    assert exc.value.message == "Submit Quote is not available while status is waiting_customer"
    assert exc.value.current_status == "waiting_customer"
    assert exc.value.allowed == ["in_progress", "need_adjustment", "open"]


def test_submit_quote_requires_assignee(guard, make_ticket, ops, base_time):
    ticket = make_ticket(assigned_to=None, pending_response_from=None)

    with pytest.raises(InvalidStateError):
        _quote(guard, ticket, ops, base_time)


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
def test_submit_quote_requires_positive_amount(guard, make_ticket, ops, base_time, amount):
    with pytest.raises(ValueError):
        _quote(guard, make_ticket(), ops, base_time, amount=amount)


def test_request_adjustment_only_for_creator(guard, make_ticket, ops, sales, base_time):
    ticket = make_ticket(status=TicketStatus.WAITING_CUSTOMER)

    with pytest.raises(ForbiddenError):
        guard.request_adjustment(ticket, reason_type=AdjustmentReason.NEEDS_REVISION, actor=ops, now=base_time)

    event = guard.request_adjustment(ticket, reason_type=AdjustmentReason.NEEDS_REVISION, actor=sales, now=base_time)
    assert event.event_type is TicketEventType.ADJUSTMENT_REQUESTED
    assert event.actor_role is ResponderType.CREATOR


def test_request_adjustment_records_reason_details(guard, make_ticket, sales, base_time):
    ticket = make_ticket(status=TicketStatus.WAITING_CUSTOMER)

    event = guard.request_adjustment(
        ticket,
        reason_type=AdjustmentReason.COMPETITOR_CHEAPER,
        competitor_name="Samudera Cargo",
        competitor_amount=Decimal("1200000"),
        notes="Customer forwarded their offer",
        actor=sales,
        now=base_time,
    )

    assert event.payload == {
        "reason_type": "kompetitor_lebih_murah",
        "competitor_name": "Samudera Cargo",
        "competitor_amount": "1200000",
        "customer_budget": None,
        "currency": "IDR",
        "notes": "Customer forwarded their offer",
    }


@pytest.mark.parametrize(
    "reason_type, figures",
    [
        (AdjustmentReason.COMPETITOR_CHEAPER, {}),
        (AdjustmentReason.CUSTOMER_BUDGET_SHORT, {"competitor_amount": Decimal("100")}),
        (AdjustmentReason.RATE_NOT_COMPETITIVE, {"competitor_name": "Samudera Cargo"}),
        (AdjustmentReason.PRICE_TOO_HIGH, {}),
        (AdjustmentReason.MARGIN_INSUFFICIENT, {}),
        ("not_a_reason", {}),
    ],
)
def test_request_adjustment_requires_figures_for_financial_reasons(
    guard, make_ticket, sales, base_time, reason_type, figures
):
    ticket = make_ticket(status=TicketStatus.WAITING_CUSTOMER)

    with pytest.raises(ValueError):
        guard.request_adjustment(ticket, reason_type=reason_type, actor=sales, now=base_time, **figures)


@pytest.mark.parametrize(
    "reason_type, figures",
    [
        (AdjustmentReason.COMPETITOR_CHEAPER, {"competitor_name": "Samudera Cargo"}),
        (AdjustmentReason.CUSTOMER_BUDGET_SHORT, {"customer_budget": Decimal("900")}),
        (AdjustmentReason.RATE_NOT_COMPETITIVE, {"customer_budget": Decimal("900")}),
        (AdjustmentReason.PRICE_TOO_HIGH, {"competitor_amount": Decimal("900")}),
        (AdjustmentReason.VENDOR_MISMATCH, {}),
        (AdjustmentReason.OTHER, {}),
    ],
)
def test_request_adjustment_accepts_complete_reasons(guard, make_ticket, sales, base_time, reason_type, figures):
    ticket = make_ticket(status=TicketStatus.WAITING_CUSTOMER)

    event = guard.request_adjustment(ticket, reason_type=reason_type, actor=sales, now=base_time, **figures)

    assert event.payload["reason_type"] == reason_type.value


def test_request_adjustment_rejected_while_open(guard, make_ticket, sales, base_time):
    with pytest.raises(InvalidStateError) as exc:
        guard.request_adjustment(make_ticket(), reason_type=AdjustmentReason.OTHER, actor=sales, now=base_time)

    assert exc.value.allowed == ["in_progress", "waiting_customer"]


def test_quote_sent_only_while_waiting_customer(guard, make_ticket, sales, base_time):
    with pytest.raises(InvalidStateError):
        guard.quote_sent_to_customer(make_ticket(), notes=None, actor=sales, now=base_time)

    event = guard.quote_sent_to_customer(
        make_ticket(status=TicketStatus.WAITING_CUSTOMER), notes="Forwarded", actor=sales, now=base_time
    )
    assert event.event_type is TicketEventType.QUOTE_SENT_TO_CUSTOMER


@pytest.mark.parametrize("status", [TicketStatus.PENDING, TicketStatus.WAITING_CUSTOMER])
def test_mark_won_allowed_statuses(guard, make_ticket, sales, base_time, status):
    event = guard.mark_won(make_ticket(status=status), notes=None, actor=sales, now=base_time)
    assert event.event_type is TicketEventType.MARKED_WON


def test_mark_lost_requires_reason(guard, make_ticket, sales, base_time):
    ticket = make_ticket(status=TicketStatus.WAITING_CUSTOMER)

    with pytest.raises(ValueError):
        guard.mark_lost(ticket, reason="  ", competitor_name=None, competitor_cost=None, actor=sales, now=base_time)

    event = guard.mark_lost(
        ticket,
        reason="Price",
        competitor_name="Other Logistics",
        competitor_cost=Decimal("1200000"),
        actor=sales,
        now=base_time,
    )
    assert event.payload == {"reason": "Price", "competitor_name": "Other Logistics", "competitor_cost": "1200000"}


def test_mark_lost_rejected_in_open_status(guard, make_ticket, sales, base_time):
    with pytest.raises(InvalidStateError):
        guard.mark_lost(make_ticket(), reason="Price", competitor_name=None, competitor_cost=None, actor=sales, now=base_time)


def test_transition_requires_capability(guard, make_ticket, sales, ops, base_time):
    ticket = make_ticket()

    for actor in (sales, ops):
        with pytest.raises(ForbiddenError):
            guard.transition(ticket, new_status=TicketStatus.IN_PROGRESS, actor=actor, notes=None, now=base_time)


def test_creator_may_close_own_ticket(guard, make_ticket, sales, base_time):
    event = guard.transition(make_ticket(), new_status=TicketStatus.CLOSED, actor=sales, notes=None, now=base_time)

    assert event.payload == {"old_status": "open", "new_status": "closed", "notes": None}


def test_transition_checks_matrix(guard, make_ticket, manager, base_time):
    with pytest.raises(InvalidTransitionError) as exc:
        guard.transition(make_ticket(), new_status=TicketStatus.RESOLVED, actor=manager, notes=None, now=base_time)

    assert exc.value.allowed == ["in_progress", "pending", "closed"]


def test_same_status_transition_is_invalid(guard, make_ticket, manager, base_time):
    with pytest.raises(InvalidTransitionError):
        guard.transition(make_ticket(), new_status=TicketStatus.OPEN, actor=manager, notes=None, now=base_time)


def test_internal_comment_requires_capability(guard, make_ticket, sales, ops, base_time):
    ticket = make_ticket()

    with pytest.raises(ForbiddenError):
        guard.comment(ticket, actor=sales, is_internal=True, comment_id=None, now=base_time)

    event = guard.comment(ticket, actor=ops, is_internal=True, comment_id="c-1", now=base_time)
    assert event.payload == {"comment_id": "c-1", "is_internal": True, "content": None}


def test_assign_requires_capability_and_open_ticket(guard, make_ticket, ops, manager, base_time):
    with pytest.raises(ForbiddenError):
        guard.assign(make_ticket(), assigned_to="ops-2", actor=ops, now=base_time)

    with pytest.raises(InvalidStateError):
        guard.assign(make_ticket(status=TicketStatus.CLOSED), assigned_to="ops-2", actor=manager, now=base_time)

    event = guard.assign(make_ticket(), assigned_to="ops-2", actor=manager, now=base_time)
    assert event.payload == {"assigned_to": "ops-2", "previous_assignee": "ops-1"}


def test_create_with_assignee_requires_assign_capability(guard, sales, manager, base_time):
    kwargs = dict(
        ticket_id="ticket-9",
        ticket_type=TicketType.RFQ,
        department=Department.DTD,
        priority=TicketPriority.HIGH,
        subject="Door to door, Medan",
        assigned_to="ops-1",
        now=base_time,
    )
    with pytest.raises(ForbiddenError):
        guard.create(actor=sales, **kwargs)

    event = guard.create(actor=manager, **kwargs)
    assert event.sequence == 1
    assert event.event_type is TicketEventType.CREATED
    assert event.payload["department"] == "DTD"
