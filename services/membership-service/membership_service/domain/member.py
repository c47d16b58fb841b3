from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(slots=True)
class Member:
    """A person attached to an account; exactly one member per account is primary."""

    member_id: uuid.UUID
    primary: bool
    first_name: str
    last_name: str
    address: str | None
    city: str | None
    cancelled: bool
