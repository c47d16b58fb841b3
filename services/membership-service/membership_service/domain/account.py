from __future__ import annotations

import calendar
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class AccountStatus(str, Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


@dataclass(slots=True)
class Account:
    """Aggregate root owning a set of members billed together."""

    account_id: uuid.UUID
    status: AccountStatus
    account_type: str
    payment_amount: Decimal
    pend_cancel: bool
    period_start_utc: datetime
    period_end_utc: datetime
    next_billing_utc: datetime


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by whole calendar months, clamping the day to the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_billing_date(period_start_utc: datetime) -> datetime:
    """Billing runs one calendar month after the start of the billing period."""
    return add_months(period_start_utc, 1)
