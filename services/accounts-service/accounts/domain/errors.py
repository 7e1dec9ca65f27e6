"""Domain errors raised by account storers."""

from __future__ import annotations


class AccountError(Exception):
    """Base class for identity-mapping conditions callers are expected to handle."""


class AccountNotFoundError(AccountError):
    """No account matches the requested identifier."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"account not found: {account_id}")
        self.account_id = account_id


class AccountAlreadyExistsError(AccountError):
    """An account with the same (case-insensitive) identifier already exists."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"account already exists: {account_id}")
        self.account_id = account_id


class ProfileAlreadyRegisteredError(AccountError):
    """The profile already has a registration account."""

    def __init__(self, profile_id: str) -> None:
        super().__init__(f"profile already registered: {profile_id}")
        self.profile_id = profile_id
