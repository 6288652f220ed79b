"""Shared recurrence rule definitions and validation"""
from datetime import date
from enum import Enum, IntEnum
from typing import Annotated, Dict, Optional

from pydantic import AfterValidator, BaseModel


class InvalidRule(ValueError):
    """Raised when a recurrence rule is missing or has unsupported parameters"""


class RecurrenceType(str, Enum):
    """Recurrence types supported for templates"""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MONTHLY_WEEKDAY = "monthly_weekday"
    MONTHLY_LAST_DAY = "monthly_last_day"
    YEARLY = "yearly"


class Weekday(IntEnum):
    """Weekday numbers (0=Monday, 6=Sunday), same as date.weekday()"""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


# Generic label shown in place of a template's stored name
GENERIC_LABELS: Dict[RecurrenceType, str] = {
    RecurrenceType.DAILY: "Daily",
    RecurrenceType.WEEKLY: "Weekly",
    RecurrenceType.MONTHLY: "Monthly",
    RecurrenceType.MONTHLY_WEEKDAY: "Monthly",
    RecurrenceType.MONTHLY_LAST_DAY: "Monthly",
    RecurrenceType.YEARLY: "Yearly",
}

MAX_WEEK_OF_MONTH = 5


class RecurrenceRule(BaseModel):
    """
    Declarative shape of a repeating schedule.

    Field constraints are checked by validate_recurrence_rule() rather than
    at construction, so rows written before a constraint existed can still
    be loaded and reported per template.
    """
    type: RecurrenceType = RecurrenceType.NONE
    interval: int = 1
    weekday: Optional[Weekday] = None
    month_day: Optional[int] = None
    week_of_month: Optional[int] = None
    end_date: Optional[date] = None
    completion_based: bool = False

    @property
    def is_active(self) -> bool:
        return self.type != RecurrenceType.NONE


def validate_recurrence_rule(rule: Optional[RecurrenceRule]) -> Optional[RecurrenceRule]:
    """
    Validate the structural parameters of a recurrence rule.

    Args:
        rule: Rule to check (None passes through)

    Returns:
        The validated rule

    Raises:
        InvalidRule: If a parameter is out of range or a required one is missing
    """
    if rule is None or rule.type == RecurrenceType.NONE:
        return rule

    if rule.interval is None or rule.interval < 1:
        raise InvalidRule(f"Invalid recurrence interval: {rule.interval!r}. Interval must be >= 1")

    if rule.month_day is not None and not 1 <= rule.month_day <= 31:
        raise InvalidRule(f"Invalid month_day: {rule.month_day}. Valid range is 1-31")

    if rule.week_of_month is not None and not 1 <= rule.week_of_month <= MAX_WEEK_OF_MONTH:
        raise InvalidRule(
            f"Invalid week_of_month: {rule.week_of_month}. Valid range is 1-{MAX_WEEK_OF_MONTH}"
        )

    if rule.type == RecurrenceType.MONTHLY_WEEKDAY:
        if rule.weekday is None:
            raise InvalidRule("monthly_weekday recurrence requires a weekday")
        if rule.week_of_month is None:
            raise InvalidRule("monthly_weekday recurrence requires a week_of_month")

    return rule


# Pydantic annotated type for use in request models
ValidatedRecurrenceRule = Annotated[Optional[RecurrenceRule], AfterValidator(validate_recurrence_rule)]
