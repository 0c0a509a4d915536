"""SLA thresholds per department and ticket type."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, time
from pathlib import Path
from typing import Iterable, Mapping

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from .calendar import BusinessCalendar
from .errors import PolicyMissingError
from .models import Department, TicketType

logger = logging.getLogger(__name__)

HOUR = 3600

DEFAULT_FIRST_RESPONSE_HOURS = 4
DEFAULT_FIRST_QUOTE_HOURS = 24
DEFAULT_RESOLUTION_HOURS = 48


@dataclass(frozen=True)
class SLAPolicy:
    """Thresholds, in seconds, for one (department, ticket type) pair."""

    department: Department
    ticket_type: TicketType
    first_response_seconds: float
    resolution_seconds: float
    first_quote_seconds: float | None = None
    calendar: BusinessCalendar | None = None


class BusinessHoursRow(BaseModel):
    """One weekday of the working calendar; ``day_of_week`` 0 is Sunday."""

    day_of_week: int = Field(..., ge=0, le=6)
    is_working_day: bool = True
    start_time: time = time(8, 0)
    end_time: time = time(17, 0)

    @field_validator("end_time")
    @classmethod
    def _end_after_start(cls, value: time, info: ValidationInfo) -> time:
        start = info.data.get("start_time")
        if start is not None and value <= start:
            raise ValueError("end_time must be after start_time")
        return value


class HolidayRow(BaseModel):
    holiday_date: date
    name: str = ""
    is_recurring: bool = False


class PolicyRow(BaseModel):
    department: Department
    ticket_type: TicketType
    first_response_hours: float = Field(default=DEFAULT_FIRST_RESPONSE_HOURS, gt=0)
    first_quote_hours: float | None = Field(default=None, gt=0)
    resolution_hours: float = Field(default=DEFAULT_RESOLUTION_HOURS, gt=0)


class SLAPolicyDocument(BaseModel):
    """JSON layout accepted by :meth:`SLAPolicyProvider.from_file`."""

    timezone: str = "UTC"
    business_hours: list[BusinessHoursRow] = Field(default_factory=list)
    holidays: list[HolidayRow] = Field(default_factory=list)
    policies: list[PolicyRow] = Field(default_factory=list)

    def build_calendar(self) -> BusinessCalendar | None:
        if not self.business_hours:
            return None
        working_hours = {}
        for row in self.business_hours:
            if row.is_working_day:
                # Sunday-first rows to Monday-first weekday numbers.
                working_hours[(row.day_of_week - 1) % 7] = (row.start_time, row.end_time)
        return BusinessCalendar(
            timezone_name=self.timezone,
            working_hours=working_hours,
            holidays=frozenset(row.holiday_date for row in self.holidays if not row.is_recurring),
            recurring_holidays=frozenset(
                (row.holiday_date.month, row.holiday_date.day) for row in self.holidays if row.is_recurring
            ),
        )


class SLAPolicyProvider:
    """Pure lookup of SLA policies keyed by ``(department, ticket_type)``."""

    def __init__(self, policies: Iterable[SLAPolicy]) -> None:
        self._policies: Mapping[tuple[Department, TicketType], SLAPolicy] = {
            (policy.department, policy.ticket_type): policy for policy in policies
        }

    def get(self, department: Department, ticket_type: TicketType) -> SLAPolicy:
        policy = self._policies.get((department, ticket_type))
        if policy is None:
            raise PolicyMissingError(
                f"No SLA policy configured for {department.value}/{ticket_type.value}",
                department=department.value,
                ticket_type=ticket_type.value,
            )
        return policy

    def policies(self) -> list[SLAPolicy]:
        return list(self._policies.values())

    @classmethod
    def default(cls, calendar: BusinessCalendar | None = None) -> "SLAPolicyProvider":
        policies = []
        for department in Department:
            for ticket_type in TicketType:
                policies.append(
                    SLAPolicy(
                        department=department,
                        ticket_type=ticket_type,
                        first_response_seconds=DEFAULT_FIRST_RESPONSE_HOURS * HOUR,
                        first_quote_seconds=(
                            DEFAULT_FIRST_QUOTE_HOURS * HOUR if ticket_type is TicketType.RFQ else None
                        ),
                        resolution_seconds=DEFAULT_RESOLUTION_HOURS * HOUR,
                        calendar=calendar,
                    )
                )
        return cls(policies)

    @classmethod
    def from_document(cls, document: SLAPolicyDocument) -> "SLAPolicyProvider":
        calendar = document.build_calendar()
        policies = []
        for row in document.policies:
            first_quote_hours = row.first_quote_hours
            if row.ticket_type is TicketType.RFQ and first_quote_hours is None:
                first_quote_hours = DEFAULT_FIRST_QUOTE_HOURS
            if row.ticket_type is not TicketType.RFQ:
                first_quote_hours = None
            policies.append(
                SLAPolicy(
                    department=row.department,
                    ticket_type=row.ticket_type,
                    first_response_seconds=row.first_response_hours * HOUR,
                    first_quote_seconds=first_quote_hours * HOUR if first_quote_hours is not None else None,
                    resolution_seconds=row.resolution_hours * HOUR,
                    calendar=calendar,
                )
            )
        return cls(policies)

    @classmethod
    def from_file(cls, path: str | Path) -> "SLAPolicyProvider":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        document = SLAPolicyDocument.model_validate(raw)
        logger.info("Loaded %d SLA policies from %s", len(document.policies), path)
        return cls.from_document(document)

    @classmethod
    def from_settings(cls, settings) -> "SLAPolicyProvider":
        if settings.sla_policy_file:
            return cls.from_file(settings.sla_policy_file)
        return cls.default()
