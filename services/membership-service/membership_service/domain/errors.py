"""Failure taxonomy raised by the account and member services."""

from __future__ import annotations


class MembershipError(Exception):
    """Base class for every business-level failure of an operation."""


class ValidationError(MembershipError):
    """Input is malformed or missing required values."""


class NotFoundError(MembershipError):
    """A referenced account, member or location does not exist."""


class InvariantViolationError(MembershipError):
    """A business rule blocks the operation, e.g. removing an account's last member."""


class ConflictError(MembershipError):
    """A concurrency guard rejected the write, e.g. a second primary member."""


class WriteFailedError(MembershipError):
    """A write affected an unexpected number of rows."""


class OperationCancelledError(MembershipError):
    """The caller cancelled the operation before its scope was opened."""
