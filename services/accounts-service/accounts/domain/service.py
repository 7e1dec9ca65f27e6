"""Account service enforcing caller ownership on top of a storer."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace

from .account import Account, Change, fill_defaults
from .contracts import AccountStorer
from ..security.tokens import AccessToken

logger = logging.getLogger(__name__)


class AuthenticationRequiredError(Exception):
    """The operation needs a verified caller and none was supplied."""


class AccessDeniedError(Exception):
    """The verified caller does not own the profile being acted on."""


class AccountService:
    """Account workflows shared by every storer backend."""

    def __init__(self, storer: AccountStorer) -> None:
        """Store the backend used to persist accounts."""
        self._storer = storer

    def create_account(self, account: Account, token: AccessToken | None) -> Account:
        """Create an account, generating a profile ID for brand new registrations.

        Adding an identifier to an existing profile requires a token issued
        to that profile.
        """
        account = fill_defaults(account)
        if account.profile_id:
            self._authorize(token, account.profile_id)
        elif account.is_registration:
            account = replace(account, profile_id=str(uuid.uuid4()))
        else:
            raise ValueError("profileID is required unless registering a new profile")
        self._storer.create(account)
        logger.info("account %s registered to profile %s", account.id, account.profile_id)
        return account

    def get_account(self, account_id: str, token: AccessToken | None) -> Account:
        """Retrieve an account owned by the caller's profile."""
        self._require(token)
        account = self._storer.get(account_id)
        self._authorize(token, account.profile_id)
        return account

    def update_account(self, account_id: str, change: Change, token: AccessToken | None) -> Account:
        """Apply ``change`` to an account owned by the caller and return the result."""
        self.get_account(account_id, token)
        self._storer.update(account_id, change)
        return self._storer.get(account_id)

    def delete_account(self, account_id: str, token: AccessToken | None) -> Account:
        """Delete an account owned by the caller, returning what was removed."""
        account = self.get_account(account_id, token)
        self._storer.delete(account_id)
        logger.info("account %s removed from profile %s", account.id, account.profile_id)
        return account

    def list_accounts(self, profile_id: str, token: AccessToken | None) -> list[Account]:
        """List the caller's accounts, most recently used first."""
        self._authorize(token, profile_id)
        return self._storer.list_by_profile(profile_id)

    def _require(self, token: AccessToken | None) -> AccessToken:
        if token is None:
            raise AuthenticationRequiredError("bearer token required")
        return token

    def _authorize(self, token: AccessToken | None, profile_id: str) -> None:
        if self._require(token).profile_id != profile_id:
            raise AccessDeniedError("token does not grant access to this profile")
