"""HTTP route definitions for the accounts service."""

from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from schemas import Account as AccountPayload, AccountsEnvelope, Change as ChangePayload

from ..domain.account import Account, Change
from ..domain.errors import (
    AccountAlreadyExistsError,
    AccountError,
    AccountNotFoundError,
    ProfileAlreadyRegisteredError,
)
from ..domain.service import AccessDeniedError, AccountService, AuthenticationRequiredError
from ..security.tokens import AccessToken, decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


def to_payload(account: Account) -> AccountPayload:
    """Build the wire model from the domain dataclass."""
    return AccountPayload(
        id=account.id,
        profile_id=account.profile_id,
        is_registration=account.is_registration,
        created_at=account.created_at,
        last_seen_at=account.last_seen_at,
        last_used_at=account.last_used_at,
    )


def to_domain(payload: AccountPayload) -> Account:
    return Account(
        id=payload.id,
        profile_id=payload.profile_id,
        is_registration=payload.is_registration,
        created_at=payload.created_at,
        last_seen_at=payload.last_seen_at,
        last_used_at=payload.last_used_at,
    )


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def parse_authorization(authorization: str | None) -> AccessToken | None:
    """Verify the bearer token in an ``Authorization`` header value, if any."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="malformed authorization header")
    try:
        return decode_access_token(credentials.strip())
    except jwt.PyJWTError as exc:
        logger.debug("rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token") from exc


def get_access_token(authorization: str | None = Header(default=None)) -> AccessToken | None:
    return parse_authorization(authorization)


def _envelope(*accounts: Account) -> AccountsEnvelope:
    return AccountsEnvelope(accounts=[to_payload(account) for account in accounts])


@router.post("/accounts", response_model=AccountsEnvelope, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountPayload,
    service: AccountService = Depends(get_service),
    authorization: str | None = Header(default=None),
) -> AccountsEnvelope:
    """Register a new profile, or add an identifier to the caller's profile.

    The ``Authorization`` header is only read when ``profileID`` names an
    existing profile; registering a fresh profile needs no credentials.
    """
    token = parse_authorization(authorization) if payload.profile_id else None
    try:
        account = service.create_account(to_domain(payload), token)
    except Exception as exc:
        raise _http_error(exc, "error creating account %s", payload.id) from exc
    return _envelope(account)


@router.get("/accounts", response_model=AccountsEnvelope)
def list_accounts(
    profile_id: str | None = Query(default=None, alias="profileID"),
    service: AccountService = Depends(get_service),
    token: AccessToken | None = Depends(get_access_token),
) -> AccountsEnvelope:
    """List the accounts of the caller's profile, most recently used first."""
    if not profile_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="profileID is required")
    try:
        accounts = service.list_accounts(profile_id, token)
    except Exception as exc:
        raise _http_error(exc, "error listing accounts for profile %s", profile_id) from exc
    return _envelope(*accounts)


@router.get("/accounts/{account_id}", response_model=AccountsEnvelope)
def get_account(
    account_id: str,
    service: AccountService = Depends(get_service),
    token: AccessToken | None = Depends(get_access_token),
) -> AccountsEnvelope:
    """Retrieve one account belonging to the caller's profile."""
    try:
        account = service.get_account(account_id, token)
    except Exception as exc:
        raise _http_error(exc, "error retrieving account %s", account_id) from exc
    return _envelope(account)


@router.patch("/accounts/{account_id}", response_model=AccountsEnvelope)
def update_account(
    account_id: str,
    payload: ChangePayload,
    service: AccountService = Depends(get_service),
    token: AccessToken | None = Depends(get_access_token),
) -> AccountsEnvelope:
    """Record new last-used/last-seen times for an account."""
    change = Change(last_used_at=payload.last_used_at, last_seen_at=payload.last_seen_at)
    try:
        account = service.update_account(account_id, change, token)
    except Exception as exc:
        raise _http_error(exc, "error updating account %s", account_id) from exc
    return _envelope(account)


@router.delete("/accounts/{account_id}", response_model=AccountsEnvelope)
def delete_account(
    account_id: str,
    service: AccountService = Depends(get_service),
    token: AccessToken | None = Depends(get_access_token),
) -> AccountsEnvelope:
    """Remove an account from the caller's profile."""
    try:
        account = service.delete_account(account_id, token)
    except Exception as exc:
        raise _http_error(exc, "error deleting account %s", account_id) from exc
    return _envelope(account)


def _http_error(exc: Exception, message: str, *args: object) -> HTTPException:
    """Map a service or storer failure onto the HTTP status callers expect."""
    if isinstance(exc, AccountNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    if isinstance(exc, AccountAlreadyExistsError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="account already exists")
    if isinstance(exc, ProfileAlreadyRegisteredError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="profile already registered")
    if isinstance(exc, (AccountError, ValueError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AuthenticationRequiredError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    logger.exception(message, *args)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="an unexpected error occurred")
