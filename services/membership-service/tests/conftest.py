from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from membership_service.domain.account import Account, AccountStatus
from membership_service.domain.account_service import AccountService
from membership_service.domain.contracts import CreateAccountInput, UpdateAccountInput
from membership_service.domain.member import Member
from membership_service.domain.member_service import MemberService
from membership_service.repository import AccountKeys, MemberKeys
from membership_service.unit_of_work import AbstractUnitOfWork, SessionFactory

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@dataclass
class AccountRow:
    uid: int
    guid: uuid.UUID
    location_uid: int
    status: AccountStatus
    account_type: str
    payment_amount: Decimal
    pend_cancel: bool
    period_start_utc: datetime
    period_end_utc: datetime
    next_billing_utc: datetime
    created_utc: datetime
    pend_cancel_date_utc: datetime | None = None
    updated_utc: datetime | None = None
    end_date_utc: datetime | None = None


@dataclass
class MemberRow:
    uid: int
    guid: uuid.UUID
    account_uid: int
    location_uid: int
    is_primary: bool
    first_name: str
    last_name: str
    joined_date_utc: datetime
    created_utc: datetime
    address: str | None = None
    city: str | None = None
    locale: str | None = None
    postal_code: str | None = None
    cancelled: bool = False


@dataclass
class FakeTables:
    locations: dict[uuid.UUID, int] = field(default_factory=dict)
    accounts: dict[int, AccountRow] = field(default_factory=dict)
    members: dict[int, MemberRow] = field(default_factory=dict)
    last_uid: int = 0

    def next_uid(self) -> int:
        self.last_uid += 1
        return self.last_uid

    def account_by_guid(self, guid: uuid.UUID) -> AccountRow | None:
        return next((row for row in self.accounts.values() if row.guid == guid), None)

    def members_of(self, account_uid: int) -> list[MemberRow]:
        return sorted(
            (row for row in self.members.values() if row.account_uid == account_uid),
            key=lambda row: row.uid,
        )


def _to_member(row: MemberRow) -> Member:
    return Member(
        member_id=row.guid,
        primary=row.is_primary,
        first_name=row.first_name,
        last_name=row.last_name,
        address=row.address,
        city=row.city,
        cancelled=row.cancelled,
    )


class FakeAccountRepository:
    """In-memory stand-in for the account SQL."""

    def __init__(self, tables: FakeTables) -> None:
        self._tables = tables

    def list_accounts(self) -> list[Account]:
        return [self._to_account(row) for _, row in sorted(self._tables.accounts.items())]

    def get_account(self, account_id: uuid.UUID) -> Account | None:
        row = self._tables.account_by_guid(account_id)
        return self._to_account(row) if row else None

    def find_location_key(self, location_id: uuid.UUID) -> int | None:
        return self._tables.locations.get(location_id)

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
        uid = self._tables.next_uid()
        self._tables.accounts[uid] = AccountRow(
            uid=uid,
            guid=account_id,
            location_uid=location_uid,
            status=status,
            account_type=payload.account_type,
            payment_amount=payload.payment_amount,
            pend_cancel=False,
            period_start_utc=payload.period_start_utc,
            period_end_utc=payload.period_end_utc,
            next_billing_utc=next_billing_utc,
            created_utc=created_utc,
        )
        return 1

    def update_account(
        self, account_id: uuid.UUID, payload: UpdateAccountInput, updated_utc: datetime
    ) -> int:
        row = self._tables.account_by_guid(account_id)
        if row is None:
            return 0
        row.updated_utc = updated_utc
        row.status = payload.status
        row.account_type = payload.account_type
        row.payment_amount = payload.payment_amount
        row.pend_cancel = payload.pend_cancel
        row.pend_cancel_date_utc = payload.pend_cancel_date_utc
        row.end_date_utc = payload.end_date_utc
        return 1

    def delete_account(self, account_id: uuid.UUID) -> int:
        row = self._tables.account_by_guid(account_id)
        if row is None:
            return 0
        del self._tables.accounts[row.uid]
        return 1

    def _to_account(self, row: AccountRow) -> Account:
        return Account(
            account_id=row.guid,
            status=row.status,
            account_type=row.account_type,
            payment_amount=row.payment_amount,
            pend_cancel=row.pend_cancel,
            period_start_utc=row.period_start_utc,
            period_end_utc=row.period_end_utc,
            next_billing_utc=row.next_billing_utc,
        )


class FakeMemberRepository:
    """In-memory stand-in for the member SQL, including its conditional writes."""

    def __init__(self, tables: FakeTables) -> None:
        self._tables = tables

    def list_members(self) -> list[Member]:
        return [_to_member(row) for _, row in sorted(self._tables.members.items())]

    def list_account_members(self, account_id: uuid.UUID) -> list[Member]:
        account = self._tables.account_by_guid(account_id)
        if account is None:
            return []
        return [_to_member(row) for row in self._tables.members_of(account.uid)]

    def find_account_keys(self, account_id: uuid.UUID) -> AccountKeys | None:
        account = self._tables.account_by_guid(account_id)
        return AccountKeys(account.uid, account.location_uid) if account else None

    def insert_member(self, params: dict[str, Any]) -> int:
        uid = self._tables.next_uid()
        self._tables.members[uid] = MemberRow(
            uid=uid,
            guid=params["guid"],
            account_uid=params["account_uid"],
            location_uid=params["location_uid"],
            is_primary=params["is_primary"],
            first_name=params["first_name"],
            last_name=params["last_name"],
            joined_date_utc=params["joined_date_utc"],
            created_utc=params["created_utc"],
            address=params["address"],
            city=params["city"],
            locale=params["locale"],
            postal_code=params["postal_code"],
            cancelled=params["cancelled"],
        )
        return 1

    def insert_primary_member_if_absent(self, params: dict[str, Any]) -> int:
        if any(row.is_primary for row in self._tables.members_of(params["account_uid"])):
            return 0
        return self.insert_member(params)

    def find_member_keys(self, member_id: uuid.UUID) -> MemberKeys | None:
        row = next((row for row in self._tables.members.values() if row.guid == member_id), None)
        return MemberKeys(row.uid, row.account_uid, row.is_primary) if row else None

    def count_account_members(self, account_uid: int) -> int:
        return len(self._tables.members_of(account_uid))

    def pick_promotion_candidate(self, account_uid: int, excluding_uid: int) -> int | None:
        others = [row.uid for row in self._tables.members_of(account_uid) if row.uid != excluding_uid]
        return others[0] if others else None

    def promote_member(self, account_uid: int, member_uid: int) -> int:
        rows = self._tables.members_of(account_uid)
        for row in rows:
            row.is_primary = row.uid == member_uid
        return len(rows)

    def delete_member(self, member_uid: int) -> int:
        return 1 if self._tables.members.pop(member_uid, None) else 0

    def delete_non_primary_members(self, account_id: uuid.UUID) -> int:
        account = self._tables.account_by_guid(account_id)
        if account is None:
            return 0
        doomed = [row.uid for row in self._tables.members_of(account.uid) if not row.is_primary]
        for uid in doomed:
            del self._tables.members[uid]
        return len(doomed)


class FakeStore:
    """Committed state plus counters describing how each scope ended."""

    def __init__(self) -> None:
        self.tables = FakeTables()
        self.opened = 0
        self.commits = 0
        self.rollbacks = 0

    def add_location(self) -> uuid.UUID:
        guid = uuid.uuid4()
        self.tables.locations[guid] = self.tables.next_uid()
        return guid

    def add_account(self, location_id: uuid.UUID | None = None) -> AccountRow:
        location_id = location_id or self.add_location()
        uid = self.tables.next_uid()
        row = AccountRow(
            uid=uid,
            guid=uuid.uuid4(),
            location_uid=self.tables.locations[location_id],
            status=AccountStatus.GREEN,
            account_type="standard",
            payment_amount=Decimal("29.99"),
            pend_cancel=False,
            period_start_utc=datetime(2026, 1, 1, tzinfo=timezone.utc),
            period_end_utc=datetime(2026, 12, 31, tzinfo=timezone.utc),
            next_billing_utc=datetime(2026, 2, 1, tzinfo=timezone.utc),
            created_utc=FIXED_NOW,
        )
        self.tables.accounts[uid] = row
        return row

    def add_member(self, account: AccountRow, *, primary: bool = False, name: str = "Member") -> MemberRow:
        uid = self.tables.next_uid()
        row = MemberRow(
            uid=uid,
            guid=uuid.uuid4(),
            account_uid=account.uid,
            location_uid=account.location_uid,
            is_primary=primary,
            first_name=name,
            last_name="Tester",
            joined_date_utc=FIXED_NOW,
            created_utc=FIXED_NOW,
        )
        self.tables.members[uid] = row
        return row

    def members_of(self, account: AccountRow) -> list[MemberRow]:
        return self.tables.members_of(account.uid)

    def primaries_of(self, account: AccountRow) -> list[MemberRow]:
        return [row for row in self.members_of(account) if row.is_primary]

    @property
    def open_scopes(self) -> int:
        return self.opened - self.commits - self.rollbacks


class FakeUnitOfWork(AbstractUnitOfWork):
    """Works on a private copy of the tables, published only on commit."""

    def __init__(self, store: FakeStore) -> None:
        super().__init__()
        self._store = store
        self._working = copy.deepcopy(store.tables)
        self.accounts = FakeAccountRepository(self._working)
        self.members = FakeMemberRepository(self._working)
        store.opened += 1

    def _commit(self) -> None:
        self._store.tables = self._working
        self._store.commits += 1

    def _rollback(self) -> None:
        self._store.rollbacks += 1


class FakeSessionFactory(SessionFactory):
    def __init__(self, store: FakeStore) -> None:
        super().__init__(pool=None)
        self._store = store

    def _create_unit_of_work(self) -> AbstractUnitOfWork:
        return FakeUnitOfWork(self._store)


class SequentialIds:
    """Deterministic id factory so tests can predict created identifiers."""

    def __init__(self) -> None:
        self.issued: list[uuid.UUID] = []

    def __call__(self) -> uuid.UUID:
        value = uuid.UUID(int=len(self.issued) + 1)
        self.issued.append(value)
        return value


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sessions(store: FakeStore) -> FakeSessionFactory:
    return FakeSessionFactory(store)


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def account_service(sessions: FakeSessionFactory, ids: SequentialIds) -> AccountService:
    return AccountService(sessions, clock=lambda: FIXED_NOW, id_factory=ids)


@pytest.fixture
def member_service(sessions: FakeSessionFactory, ids: SequentialIds) -> MemberService:
    return MemberService(sessions, clock=lambda: FIXED_NOW, id_factory=ids)
