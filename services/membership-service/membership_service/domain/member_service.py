"""Member service enforcing the primary-member invariants of an account.

Every account with members has exactly one primary member, and its last member
can never be removed. Both rules are enforced inside one transaction per
operation with conditional statements; there is no application-level lock, so
the store must run these scopes with serializable isolation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable

from .clock import utc_now
from .contracts import CreateMemberInput
from .errors import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
    WriteFailedError,
)
from .member import Member
from ..repository import member_insert_params
from ..unit_of_work import CancellationSignal, SessionFactory

logger = logging.getLogger(__name__)


class MemberService:
    """Member workflows preserving one primary and at least one member per account."""

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

    def list_members(self, cancellation: CancellationSignal | None = None) -> list[Member]:
        """Return every member across all accounts."""
        with self._sessions.open(cancellation) as uow:
            members = uow.members.list_members()
            uow.commit()
        return members

    def create_member(
        self, payload: CreateMemberInput, cancellation: CancellationSignal | None = None
    ) -> uuid.UUID:
        """Attach a member to an existing account and return its external id.

        A primary member is written with a conditional insert that only succeeds
        while the account has no primary member; losing that race raises
        ``ConflictError`` and nothing is persisted.
        """
        with self._sessions.open(cancellation) as uow:
            error = payload.validate()
            if error:
                raise ValidationError(error)

            keys = uow.members.find_account_keys(payload.account_id)
            if keys is None:
                raise NotFoundError("account not found")

            member_id = self._id_factory()
            params = member_insert_params(
                payload, member_id=member_id, keys=keys, created_utc=self._clock()
            )

            if payload.primary:
                count = uow.members.insert_primary_member_if_absent(params)
                if count == 0:
                    logger.warning(
                        "rejected second primary member for account %s", payload.account_id
                    )
                    raise ConflictError("A primary member already exists for this account")
            else:
                count = uow.members.insert_member(params)
                if count == 0:
                    raise WriteFailedError("Unable to add member")

            uow.commit()

        logger.info(
            "member %s added to account %s (primary=%s)",
            member_id,
            payload.account_id,
            payload.primary,
        )
        return member_id

    def delete_member(
        self, member_id: uuid.UUID, cancellation: CancellationSignal | None = None
    ) -> None:
        """Delete a member, promoting a replacement first when it is the primary.

        The replacement is the remaining member with the lowest internal key.
        Existing data relies on that ordering, so it must not change.
        """
        with self._sessions.open(cancellation) as uow:
            target = uow.members.find_member_keys(member_id)
            if target is None:
                raise NotFoundError("member not found")

            if uow.members.count_account_members(target.account_uid) == 1:
                logger.warning("refused to delete last member %s", member_id)
                raise InvariantViolationError("Cannot delete last member")

            if target.primary:
                candidate = uow.members.pick_promotion_candidate(target.account_uid, target.uid)
                if candidate is None:
                    raise ConflictError("No member available to promote to primary")
                uow.members.promote_member(target.account_uid, candidate)
                logger.info(
                    "promoted member uid=%s to primary of account uid=%s",
                    candidate,
                    target.account_uid,
                )

            if uow.members.delete_member(target.uid) != 1:
                raise NotFoundError("member not found")
            uow.commit()

        logger.info("member %s deleted", member_id)
