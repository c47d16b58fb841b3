"""Account service orchestrating the account side of the aggregate."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable

from .account import Account, AccountStatus, next_billing_date
from .clock import utc_now
from .contracts import CreateAccountInput, UpdateAccountInput
from .errors import NotFoundError, ValidationError, WriteFailedError
from .member import Member
from ..unit_of_work import CancellationSignal, SessionFactory

logger = logging.getLogger(__name__)


class AccountService:
    """Account workflows, each executed inside its own unit of work."""

    def __init__(
        self,
        sessions: SessionFactory,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ) -> None:
        """Store the scope factory and the collaborators used to stamp new rows."""
        self._sessions = sessions
        self._clock = clock
        self._id_factory = id_factory

    def list_accounts(self, cancellation: CancellationSignal | None = None) -> list[Account]:
        """Return every account."""
        with self._sessions.open(cancellation) as uow:
            accounts = uow.accounts.list_accounts()
            uow.commit()
        return accounts

    def get_account(
        self, account_id: uuid.UUID, cancellation: CancellationSignal | None = None
    ) -> Account:
        """Return the account with the given external id or raise ``NotFoundError``."""
        with self._sessions.open(cancellation) as uow:
            account = uow.accounts.get_account(account_id)
            uow.commit()
        if account is None:
            raise NotFoundError("account not found")
        return account

    def list_members(
        self, account_id: uuid.UUID, cancellation: CancellationSignal | None = None
    ) -> list[Member]:
        """Return the account's members; an unknown account simply has none."""
        with self._sessions.open(cancellation) as uow:
            members = uow.members.list_account_members(account_id)
            uow.commit()
        return members

    def create_account(
        self, payload: CreateAccountInput, cancellation: CancellationSignal | None = None
    ) -> uuid.UUID:
        """Open an account at an existing location and return its external id.

        The account starts ``GREEN`` with no pending cancellation, and its first
        billing date is one calendar month after the start of the billing period.
        """
        with self._sessions.open(cancellation) as uow:
            error = payload.validate()
            if error:
                raise ValidationError(error)

            location_uid = uow.accounts.find_location_key(payload.location_id)
            if location_uid is None:
                raise NotFoundError("location not found")

            account_id = self._id_factory()
            count = uow.accounts.insert_account(
                account_id=account_id,
                location_uid=location_uid,
                payload=payload,
                status=AccountStatus.GREEN,
                next_billing_utc=next_billing_date(payload.period_start_utc),
                created_utc=self._clock(),
            )
            if count != 1:
                raise WriteFailedError("Unable to add account")
            uow.commit()

        logger.info("account %s created at location %s", account_id, payload.location_id)
        return account_id

    def update_account(
        self,
        account_id: uuid.UUID,
        payload: UpdateAccountInput,
        cancellation: CancellationSignal | None = None,
    ) -> None:
        with self._sessions.open(cancellation) as uow:
            error = payload.validate()
            if error:
                raise ValidationError(error)

            count = uow.accounts.update_account(account_id, payload, self._clock())
            if count != 1:
                raise NotFoundError("account not found")
            uow.commit()

        logger.info("account %s updated to status %s", account_id, payload.status.value)

    def delete_account(
        self, account_id: uuid.UUID, cancellation: CancellationSignal | None = None
    ) -> None:
        """Delete the account row only; its members are left in place."""
        with self._sessions.open(cancellation) as uow:
            count = uow.accounts.delete_account(account_id)
            if count != 1:
                raise WriteFailedError("Unable to delete account")
            uow.commit()

        logger.info("account %s deleted", account_id)

    def delete_non_primary_members(
        self, account_id: uuid.UUID, cancellation: CancellationSignal | None = None
    ) -> int:
        """Remove every non-primary member of the account and return how many went.

        Succeeds even when nothing matched, including for an unknown account.
        """
        with self._sessions.open(cancellation) as uow:
            count = uow.members.delete_non_primary_members(account_id)
            uow.commit()

        logger.info("removed %s non-primary members from account %s", count, account_id)
        return count
