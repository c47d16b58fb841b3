"""HTTP route definitions for the membership service."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import AwareDatetime, BaseModel

from ..domain.account import Account, AccountStatus
from ..domain.account_service import AccountService
from ..domain.contracts import CreateAccountInput, CreateMemberInput, UpdateAccountInput
from ..domain.member import Member
from ..domain.member_service import MemberService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate root."""

    id: uuid.UUID
    status: AccountStatus
    account_type: str
    payment_amount: Decimal
    pend_cancel: bool
    period_start_utc: datetime
    period_end_utc: datetime
    next_billing_utc: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            id=account.account_id,
            status=account.status,
            account_type=account.account_type,
            payment_amount=account.payment_amount,
            pend_cancel=account.pend_cancel,
            period_start_utc=account.period_start_utc,
            period_end_utc=account.period_end_utc,
            next_billing_utc=account.next_billing_utc,
        )


class MemberResponse(BaseModel):
    """Serialised member projection."""

    id: uuid.UUID
    primary: bool
    first_name: str
    last_name: str
    address: str | None = None
    city: str | None = None
    cancelled: bool

    @classmethod
    def from_domain(cls, member: Member) -> "MemberResponse":
        """Build a response model from the member projection."""
        return cls(
            id=member.member_id,
            primary=member.primary,
            first_name=member.first_name,
            last_name=member.last_name,
            address=member.address,
            city=member.city,
            cancelled=member.cancelled,
        )


class CreatedResponse(BaseModel):
    """External id of a newly created resource."""

    id: uuid.UUID


class CreateAccountRequest(BaseModel):
    """Payload accepted when opening an account at a location."""

    location_id: uuid.UUID
    account_type: str
    payment_amount: Decimal
    period_start_utc: AwareDatetime
    period_end_utc: AwareDatetime


class UpdateAccountRequest(BaseModel):
    """Payload replacing the mutable fields of an account."""

    status: AccountStatus
    account_type: str
    payment_amount: Decimal
    pend_cancel: bool = False
    pend_cancel_date_utc: AwareDatetime | None = None
    end_date_utc: AwareDatetime | None = None


class CreateMemberRequest(BaseModel):
    """Payload accepted when attaching a member to an account."""

    account_id: uuid.UUID
    primary: bool = False
    first_name: str
    last_name: str
    address: str | None = None
    city: str | None = None
    locale: str | None = None
    postal_code: str | None = None
    cancelled: bool = False
    joined_date_utc: AwareDatetime | None = None


def get_account_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    return request.app.state.account_service


def get_member_service(request: Request) -> MemberService:
    """Resolve the `MemberService` stored on the FastAPI application state."""
    return request.app.state.member_service


async def get_cancellation(request: Request) -> threading.Event:
    """Signal that is already set when the client went away before the handler ran."""
    cancellation = threading.Event()
    if await request.is_disconnected():
        logger.info("client disconnected before %s %s", request.method, request.url.path)
        cancellation.set()
    return cancellation


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> list[AccountResponse]:
    """Return every account."""
    return [AccountResponse.from_domain(account) for account in service.list_accounts(cancellation)]


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: uuid.UUID,
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> AccountResponse:
    """Retrieve a single account by its external id."""
    return AccountResponse.from_domain(service.get_account(account_id, cancellation))


@router.get("/accounts/{account_id}/members", response_model=list[MemberResponse])
def list_account_members(
    account_id: uuid.UUID,
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> list[MemberResponse]:
    """List the account's members; an unknown account yields an empty list."""
    members = service.list_members(account_id, cancellation)
    return [MemberResponse.from_domain(member) for member in members]


@router.post("/accounts", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> CreatedResponse:
    """Open an account at an existing location, billed monthly from the period start."""
    account_id = service.create_account(
        CreateAccountInput(
            location_id=payload.location_id,
            account_type=payload.account_type,
            payment_amount=payload.payment_amount,
            period_start_utc=payload.period_start_utc,
            period_end_utc=payload.period_end_utc,
        ),
        cancellation,
    )
    return CreatedResponse(id=account_id)


@router.put("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_account(
    account_id: uuid.UUID,
    payload: UpdateAccountRequest,
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> Response:
    """Replace the mutable fields of an account."""
    service.update_account(
        account_id,
        UpdateAccountInput(
            status=payload.status,
            account_type=payload.account_type,
            payment_amount=payload.payment_amount,
            pend_cancel=payload.pend_cancel,
            pend_cancel_date_utc=payload.pend_cancel_date_utc,
            end_date_utc=payload.end_date_utc,
        ),
        cancellation,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_200_OK)
def delete_account(
    account_id: uuid.UUID,
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> Response:
    """Delete the account; its members are not removed."""
    service.delete_account(account_id, cancellation)
    return Response(status_code=status.HTTP_200_OK)


@router.delete("/accounts/{account_id}/members", status_code=status.HTTP_204_NO_CONTENT)
def delete_non_primary_members(
    account_id: uuid.UUID,
    service: AccountService = Depends(get_account_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> Response:
    """Remove every non-primary member of the account; always 204."""
    service.delete_non_primary_members(account_id, cancellation)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/members", response_model=list[MemberResponse])
def list_members(
    service: MemberService = Depends(get_member_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> list[MemberResponse]:
    """Return every member across all accounts."""
    return [MemberResponse.from_domain(member) for member in service.list_members(cancellation)]


@router.post("/members", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_member(
    payload: CreateMemberRequest,
    service: MemberService = Depends(get_member_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> CreatedResponse:
    """Attach a member; a second primary member for the account is a 409."""
    member_id = service.create_member(
        CreateMemberInput(
            account_id=payload.account_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            primary=payload.primary,
            address=payload.address,
            city=payload.city,
            locale=payload.locale,
            postal_code=payload.postal_code,
            cancelled=payload.cancelled,
            joined_date_utc=payload.joined_date_utc,
        ),
        cancellation,
    )
    return CreatedResponse(id=member_id)


@router.delete("/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_member(
    member_id: uuid.UUID,
    service: MemberService = Depends(get_member_service),
    cancellation: threading.Event = Depends(get_cancellation),
) -> Response:
    """Delete a member, promoting a new primary when needed; the last member stays."""
    service.delete_member(member_id, cancellation)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
