"""Storage contract every account backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .account import Account, Change


class AccountStorer(ABC):
    """Persistence for accounts, shared by the memory, Postgres and Redis backends.

    Domain conditions are reported with the exceptions in
    :mod:`accounts.domain.errors`. Any other exception comes from the backend
    itself (connectivity, timeouts) and is propagated unchanged.
    """

    @abstractmethod
    def create(self, account: Account) -> None:
        """Insert a new account.

        Raises:
            AccountAlreadyExistsError: The ID collides, ignoring case, with a stored account.
            ProfileAlreadyRegisteredError: ``account`` is a registration and its
                profile already has one.
        """

    @abstractmethod
    def get(self, account_id: str) -> Account:
        """Return the account matching ``account_id``, ignoring case.

        Raises:
            AccountNotFoundError: No account matches.
        """

    @abstractmethod
    def update(self, account_id: str, change: Change) -> None:
        """Apply ``change`` to the matching account.

        Missing accounts and empty changes are silently ignored.
        """

    @abstractmethod
    def delete(self, account_id: str) -> None:
        """Remove the matching account; deleting a missing account is not an error."""

    @abstractmethod
    def list_by_profile(self, profile_id: str) -> list[Account]:
        """Return every account of ``profile_id``, most recently used first."""
