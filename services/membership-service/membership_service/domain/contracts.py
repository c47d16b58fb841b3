"""Domain-level request contracts shared by multiple layers.

Each contract carries a ``validate`` method returning a human readable error
message, or ``None`` when the payload is acceptable. Services call it inside
the operation's unit of work so a rejected payload rolls the scope back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal

from .account import AccountStatus

MAX_TEXT_LENGTH = 255


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _first_naive(payload: object) -> str | None:
    for item in fields(payload):
        value = getattr(payload, item.name)
        if isinstance(value, datetime) and value.utcoffset() is None:
            return f"{item.name} must carry a UTC offset"
    return None


def _check_lengths(payload: object) -> str | None:
    for item in fields(payload):
        value = getattr(payload, item.name)
        if isinstance(value, str) and len(value) > MAX_TEXT_LENGTH:
            return f"{item.name} must be at most {MAX_TEXT_LENGTH} characters"
    return None


@dataclass(slots=True)
class CreateAccountInput:
    """Inputs required to open an account at an existing location."""

    location_id: uuid.UUID
    account_type: str
    payment_amount: Decimal
    period_start_utc: datetime
    period_end_utc: datetime

    def validate(self) -> str | None:
        if _blank(self.account_type):
            return "account_type is required"
        if self.payment_amount < 0:
            return "payment_amount must not be negative"
        naive = _first_naive(self)
        if naive:
            return naive
        if self.period_end_utc <= self.period_start_utc:
            return "period_end_utc must be after period_start_utc"
        return _check_lengths(self)


@dataclass(slots=True)
class UpdateAccountInput:
    """Mutable account fields replaced wholesale by an update."""

    status: AccountStatus
    account_type: str
    payment_amount: Decimal
    pend_cancel: bool = False
    pend_cancel_date_utc: datetime | None = None
    end_date_utc: datetime | None = None

    def validate(self) -> str | None:
        if _blank(self.account_type):
            return "account_type is required"
        if self.payment_amount < 0:
            return "payment_amount must not be negative"
        if self.pend_cancel and self.pend_cancel_date_utc is None:
            return "pend_cancel_date_utc is required when pend_cancel is set"
        naive = _first_naive(self)
        if naive:
            return naive
        return _check_lengths(self)


@dataclass(slots=True)
class CreateMemberInput:
    """Inputs required to attach a member to an existing account."""

    account_id: uuid.UUID
    first_name: str
    last_name: str
    primary: bool = False
    address: str | None = None
    city: str | None = None
    locale: str | None = None
    postal_code: str | None = None
    cancelled: bool = False
    joined_date_utc: datetime | None = None

    def validate(self) -> str | None:
        if _blank(self.first_name):
            return "first_name is required"
        if _blank(self.last_name):
            return "last_name is required"
        naive = _first_naive(self)
        if naive:
            return naive
        return _check_lengths(self)
