"""Transactional scopes for account/member operations.

A :class:`UnitOfWork` wraps one pooled connection and one transaction. Every
scope ends in exactly one ``commit`` or ``rollback``; leaving the ``with`` block
without either rolls back, so an early ``raise`` never persists partial writes.

Usage::

    with sessions.open(cancellation) as uow:
        keys = uow.members.find_member_keys(member_id)
        ...
        uow.commit()
"""

from __future__ import annotations

import logging
from typing import Protocol

from psycopg import Connection, IsolationLevel
from psycopg import errors as pg_errors
from psycopg_pool import ConnectionPool

from .domain.errors import OperationCancelledError
from .repository import AccountRepository, MemberRepository

logger = logging.getLogger(__name__)


class CancellationSignal(Protocol):
    def is_set(self) -> bool: ...


class AbstractUnitOfWork:
    """Commit/rollback bookkeeping shared by every scope implementation."""

    accounts: AccountRepository
    members: MemberRepository

    def __init__(self) -> None:
        self._completed = False

    @property
    def completed(self) -> bool:
        """Whether the scope has already been committed or rolled back."""
        return self._completed

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if not self._completed:
                if exc_type is None:
                    logger.warning("unit of work left without commit or rollback; rolling back")
                elif issubclass(exc_type, pg_errors.SerializationFailure):
                    logger.warning("serialization failure, rolling back: %s", exc_val)
                else:
                    logger.debug("rolling back after %s", exc_type.__name__)
                self.rollback()
        finally:
            self._release()

    def commit(self) -> None:
        self._ensure_open("commit")
        # a failed commit leaves the scope open so __exit__ still rolls it back
        self._commit()
        self._completed = True
        logger.debug("unit of work committed")

    def rollback(self) -> None:
        self._ensure_open("rollback")
        self._completed = True
        self._rollback()
        logger.debug("unit of work rolled back")

    def _ensure_open(self, action: str) -> None:
        if self._completed:
            raise RuntimeError(f"cannot {action}: unit of work already completed")

    def _commit(self) -> None:
        raise NotImplementedError

    def _rollback(self) -> None:
        raise NotImplementedError

    def _release(self) -> None:
        """Return resources held by the scope; called exactly once on exit."""


class UnitOfWork(AbstractUnitOfWork):
    """Postgres transaction bound to a connection borrowed from the pool."""

    def __init__(self, pool: ConnectionPool, isolation_level: IsolationLevel) -> None:
        super().__init__()
        self._pool = pool
        self._conn: Connection = pool.getconn()
        try:
            self._conn.isolation_level = isolation_level
        except Exception:
            pool.putconn(self._conn)
            raise
        self.accounts = AccountRepository(self._conn)
        self.members = MemberRepository(self._conn)

    def _commit(self) -> None:
        self._conn.commit()

    def _rollback(self) -> None:
        self._conn.rollback()

    def _release(self) -> None:
        self._pool.putconn(self._conn)


class SessionFactory:
    """Opens one unit of work per logical operation."""

    def __init__(
        self,
        pool: ConnectionPool | None,
        isolation_level: IsolationLevel = IsolationLevel.SERIALIZABLE,
    ) -> None:
        self._pool = pool
        self._isolation_level = isolation_level

    def open(self, cancellation: CancellationSignal | None = None) -> AbstractUnitOfWork:
        """Begin a scope unless the caller has already cancelled the operation."""
        if cancellation is not None and cancellation.is_set():
            raise OperationCancelledError("operation cancelled before the transaction began")
        return self._create_unit_of_work()

    def _create_unit_of_work(self) -> AbstractUnitOfWork:
        if self._pool is None:
            raise RuntimeError("SessionFactory has no connection pool")
        return UnitOfWork(self._pool, self._isolation_level)


def parse_isolation_level(name: str) -> IsolationLevel:
    """Map a configuration value such as ``"repeatable read"`` to psycopg's enum."""
    key = name.strip().upper().replace(" ", "_").replace("-", "_")
    try:
        return IsolationLevel[key]
    except KeyError as exc:
        raise ValueError(f"unknown isolation level: {name}") from exc
