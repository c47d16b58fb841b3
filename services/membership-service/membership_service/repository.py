"""Parameterized SQL for the account/member aggregate.

Repositories are bound to the connection of one unit of work and never commit
on their own; the owning scope decides whether the statements become durable.
Write methods return the affected-row count so callers can enforce the
aggregate invariants.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from psycopg import Connection
from psycopg.rows import tuple_row

from .domain.account import Account, AccountStatus
from .domain.contracts import CreateAccountInput, CreateMemberInput, UpdateAccountInput
from .domain.member import Member


@dataclass(slots=True)
class AccountKeys:
    """Internal keys of an account needed to attach a member to it."""

    uid: int
    location_uid: int


@dataclass(slots=True)
class MemberKeys:
    """Internal keys and primary flag of a member about to be deleted."""

    uid: int
    account_uid: int
    primary: bool


_ACCOUNT_COLUMNS = """
    guid, status, account_type, payment_amount, pend_cancel,
    period_start_utc, period_end_utc, next_billing_utc
"""

_MEMBER_COLUMNS = "m.guid, m.is_primary, m.first_name, m.last_name, m.address, m.city, m.cancelled"

_MEMBER_INSERT_COLUMNS = """
    guid, account_uid, location_uid, joined_date_utc, created_utc, is_primary,
    first_name, last_name, address, city, locale, postal_code, cancelled
"""

_MEMBER_INSERT_VALUES = """
    %(guid)s, %(account_uid)s, %(location_uid)s, %(joined_date_utc)s, %(created_utc)s, %(is_primary)s,
    %(first_name)s, %(last_name)s, %(address)s, %(city)s, %(locale)s, %(postal_code)s, %(cancelled)s
"""


class AccountRepository:
    """Account table access within a single transaction."""

    def __init__(self, conn: Connection) -> None:
        """Bind the repository to the connection of the current unit of work."""
        self._conn = conn

    def list_accounts(self) -> list[Account]:
        """Return every account ordered by internal key."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM account ORDER BY uid")
            return [self._map_account(row) for row in cur.fetchall()]

    def get_account(self, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by external id or return ``None``."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM account WHERE guid = %s", (account_id,))
            row = cur.fetchone()
        if not row:
            return None
        return self._map_account(row)

    def find_location_key(self, location_id: uuid.UUID) -> int | None:
        """Return the internal key of the location with the given external id."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute("SELECT uid FROM location WHERE guid = %s", (location_id,))
            row = cur.fetchone()
        return row[0] if row else None

    def insert_account(
        self,
        *,
        account_id: uuid.UUID,
        location_uid: int,
        payload: CreateAccountInput,
        status: AccountStatus,
        next_billing_utc: datetime,
        created_utc: datetime,
    ) -> int:
        """Insert a new account row and return the affected row count."""
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO account (
                    guid, location_uid, created_utc, status, account_type, payment_amount,
                    pend_cancel, period_start_utc, period_end_utc, next_billing_utc
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    account_id,
                    location_uid,
                    created_utc,
                    status.value,
                    payload.account_type,
                    payload.payment_amount,
                    False,
                    payload.period_start_utc,
                    payload.period_end_utc,
                    next_billing_utc,
                ),
            )
            return cur.rowcount

    def update_account(
        self, account_id: uuid.UUID, payload: UpdateAccountInput, updated_utc: datetime
    ) -> int:
        """Replace the mutable account fields and return the affected row count."""
        with self._conn.cursor() as cur:
            cur.execute(
                """
                UPDATE account
                SET
                    updated_utc = %s,
                    status = %s,
                    account_type = %s,
                    payment_amount = %s,
                    pend_cancel = %s,
                    pend_cancel_date_utc = %s,
                    end_date_utc = %s
                WHERE guid = %s
                """,
                (
                    updated_utc,
                    payload.status.value,
                    payload.account_type,
                    payload.payment_amount,
                    payload.pend_cancel,
                    payload.pend_cancel_date_utc,
                    payload.end_date_utc,
                    account_id,
                ),
            )
            return cur.rowcount

    def delete_account(self, account_id: uuid.UUID) -> int:
        """Delete the account row only and return the affected row count."""
        with self._conn.cursor() as cur:
            cur.execute("DELETE FROM account WHERE guid = %s", (account_id,))
            return cur.rowcount

    def _map_account(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            status=AccountStatus(row[1]),
            account_type=row[2],
            payment_amount=Decimal(row[3]),
            pend_cancel=row[4],
            period_start_utc=row[5],
            period_end_utc=row[6],
            next_billing_utc=row[7],
        )


class MemberRepository:
    """Member table access within a single transaction."""

    def __init__(self, conn: Connection) -> None:
        """Bind the repository to the connection of the current unit of work."""
        self._conn = conn

    def list_members(self) -> list[Member]:
        """Return every member ordered by internal key."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(f"SELECT {_MEMBER_COLUMNS} FROM member m ORDER BY m.uid")
            return [self._map_member(row) for row in cur.fetchall()]

    def list_account_members(self, account_id: uuid.UUID) -> list[Member]:
        """Members joined to the account with the given external id, by internal key."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                f"""
                SELECT {_MEMBER_COLUMNS}
                FROM account a
                JOIN member m ON m.account_uid = a.uid
                WHERE a.guid = %s
                ORDER BY m.uid
                """,
                (account_id,),
            )
            return [self._map_member(row) for row in cur.fetchall()]

    def find_account_keys(self, account_id: uuid.UUID) -> AccountKeys | None:
        """Return the internal keys of the account with the given external id."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute("SELECT uid, location_uid FROM account WHERE guid = %s", (account_id,))
            row = cur.fetchone()
        return AccountKeys(*row) if row else None

    def insert_member(self, params: dict[str, Any]) -> int:
        """Insert a member unconditionally and return the affected row count."""
        with self._conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO member ({_MEMBER_INSERT_COLUMNS}) VALUES ({_MEMBER_INSERT_VALUES})",
                params,
            )
            return cur.rowcount

    def insert_primary_member_if_absent(self, params: dict[str, Any]) -> int:
        """Insert the member only while the account has no primary member.

        The existence check and the insert are one statement, so two concurrent
        requests cannot both observe "no primary" and both write one.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO member ({_MEMBER_INSERT_COLUMNS})
                SELECT {_MEMBER_INSERT_VALUES}
                WHERE NOT EXISTS (
                    SELECT 1
                    FROM member m
                    WHERE m.account_uid = %(account_uid)s AND m.is_primary
                )
                """,
                params,
            )
            return cur.rowcount

    def find_member_keys(self, member_id: uuid.UUID) -> MemberKeys | None:
        """Return the internal keys and primary flag of the given member."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                "SELECT uid, account_uid, is_primary FROM member WHERE guid = %s",
                (member_id,),
            )
            row = cur.fetchone()
        return MemberKeys(*row) if row else None

    def count_account_members(self, account_uid: int) -> int:
        """Count the members currently attached to the account."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute("SELECT COUNT(1) FROM member WHERE account_uid = %s", (account_uid,))
            row = cur.fetchone()
        return int(row[0]) if row else 0

    def pick_promotion_candidate(self, account_uid: int, excluding_uid: int) -> int | None:
        """Return the lowest internal key among the account's other members."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                """
                SELECT uid
                FROM member
                WHERE account_uid = %s AND uid <> %s
                ORDER BY uid
                LIMIT 1
                """,
                (account_uid, excluding_uid),
            )
            row = cur.fetchone()
        return row[0] if row else None

    def promote_member(self, account_uid: int, member_uid: int) -> int:
        """Make ``member_uid`` the only primary member of the account in one pass."""
        with self._conn.cursor() as cur:
            cur.execute(
                "UPDATE member SET is_primary = (uid = %s) WHERE account_uid = %s",
                (member_uid, account_uid),
            )
            return cur.rowcount

    def delete_member(self, member_uid: int) -> int:
        """Delete the member by internal key and return the affected row count."""
        with self._conn.cursor() as cur:
            cur.execute("DELETE FROM member WHERE uid = %s", (member_uid,))
            return cur.rowcount

    def delete_non_primary_members(self, account_id: uuid.UUID) -> int:
        """Delete every non-primary member of the account and return how many went."""
        with self._conn.cursor() as cur:
            cur.execute(
                """
                DELETE FROM member m
                USING account a
                WHERE a.uid = m.account_uid AND a.guid = %s AND NOT m.is_primary
                """,
                (account_id,),
            )
            return cur.rowcount

    def _map_member(self, row: tuple) -> Member:
        """Convert a raw database tuple into the domain ``Member`` dataclass."""
        return Member(
            member_id=row[0],
            primary=row[1],
            first_name=row[2],
            last_name=row[3],
            address=row[4],
            city=row[5],
            cancelled=row[6],
        )


def member_insert_params(
    payload: CreateMemberInput,
    *,
    member_id: uuid.UUID,
    keys: AccountKeys,
    created_utc: datetime,
) -> dict[str, Any]:
    """Bind a member creation request to the owning account's internal keys."""
    return {
        "guid": member_id,
        "account_uid": keys.uid,
        "location_uid": keys.location_uid,
        "joined_date_utc": payload.joined_date_utc or created_utc,
        "created_utc": created_utc,
        "is_primary": payload.primary,
        "first_name": payload.first_name,
        "last_name": payload.last_name,
        "address": payload.address,
        "city": payload.city,
        "locale": payload.locale,
        "postal_code": payload.postal_code,
        "cancelled": payload.cancelled,
    }
