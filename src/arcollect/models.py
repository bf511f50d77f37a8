"""Shared domain enums and row helpers."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class AgingBucket(str, Enum):
    """Days-past-due classification of an invoice."""

    CURRENT = "current"
    DPD_1_30 = "dpd_1_30"
    DPD_31_60 = "dpd_31_60"
    DPD_61_90 = "dpd_61_90"
    DPD_91_120 = "dpd_91_120"
    DPD_121_150 = "dpd_121_150"
    DPD_150_PLUS = "dpd_150_plus"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states as stored by the backend."""

    OPEN = "Open"
    PARTIALLY_PAID = "PartiallyPaid"
    IN_PAYMENT_PLAN = "InPaymentPlan"
    PAID = "Paid"
    DISPUTED = "Disputed"
    CANCELED = "Canceled"


class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class CommandAction(str, Enum):
    """What the user asked the collector persona to do."""

    DRAFT_MESSAGE = "draft_message"
    REMIND_CUSTOMER = "remind_customer"
    FOLLOW_UP = "follow_up"
    ESCALATE = "escalate"


# Statuses that still carry an outstanding balance
OUTSTANDING_STATUSES = (
    InvoiceStatus.OPEN.value,
    InvoiceStatus.IN_PAYMENT_PLAN.value,
    InvoiceStatus.PARTIALLY_PAID.value,
)
ACTIVE_TASK_STATUSES = (TaskStatus.OPEN.value, TaskStatus.IN_PROGRESS.value)


def to_decimal(value: Any) -> Decimal:
    """Coerce a numeric column (number, string or None) to Decimal."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def to_date(value: Any) -> date | None:
    """Coerce a date or timestamp column to a date, ignoring the time part."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def outstanding_amount(invoice: dict[str, Any]) -> Decimal:
    """Outstanding balance of an invoice, falling back to its face amount."""
    outstanding = to_decimal(invoice.get("amount_outstanding"))
    if outstanding:
        return outstanding
    return to_decimal(invoice.get("amount"))
