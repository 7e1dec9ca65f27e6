"""In-memory account storer for tests and single-process deployments."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock

from ..domain.account import Account, Change, apply_change, fold_id, sort_by_last_used
from ..domain.contracts import AccountStorer
from ..domain.errors import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    ProfileAlreadyRegisteredError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Snapshot:
    """Immutable view of both indexes; replaced wholesale on every commit."""

    by_id: Mapping[str, Account]
    by_profile: Mapping[str, frozenset[str]]


class _Transaction:
    """Write transaction staging copy-on-write changes against a snapshot."""

    def __init__(self, snapshot: _Snapshot) -> None:
        self._base = snapshot
        self._by_id: dict[str, Account] | None = None
        self._by_profile: dict[str, frozenset[str]] | None = None
        self.committed = False

    def _ids(self) -> Mapping[str, Account]:
        return self._by_id if self._by_id is not None else self._base.by_id

    def _profiles(self) -> Mapping[str, frozenset[str]]:
        return self._by_profile if self._by_profile is not None else self._base.by_profile

    def _stage(self) -> tuple[dict[str, Account], dict[str, frozenset[str]]]:
        if self._by_id is None:
            self._by_id = dict(self._base.by_id)
            self._by_profile = dict(self._base.by_profile)
        return self._by_id, self._by_profile

    def first(self, account_id: str) -> Account | None:
        """Look up an account through the unique ID index."""
        return self._ids().get(fold_id(account_id))

    def registration(self, profile_id: str) -> Account | None:
        """Return the registration account of ``profile_id`` from the profile index."""
        ids = self._ids()
        for key in self._profiles().get(profile_id, frozenset()):
            account = ids[key]
            if account.is_registration:
                return account
        return None

    def insert(self, account: Account) -> None:
        """Insert or replace ``account`` in both indexes."""
        by_id, by_profile = self._stage()
        key = fold_id(account.id)
        by_id[key] = account
        by_profile[account.profile_id] = by_profile.get(account.profile_id, frozenset()) | {key}

    def delete(self, account: Account) -> None:
        """Remove ``account`` from both indexes."""
        by_id, by_profile = self._stage()
        key = fold_id(account.id)
        del by_id[key]
        remaining = by_profile[account.profile_id] - {key}
        if remaining:
            by_profile[account.profile_id] = remaining
        else:
            del by_profile[account.profile_id]

    def commit(self) -> None:
        self.committed = True

    def result(self) -> _Snapshot:
        if self._by_id is None:
            return self._base
        return _Snapshot(by_id=self._by_id, by_profile=self._by_profile)


class MemoryStorer(AccountStorer):
    """Thread-safe storer keeping accounts in two in-process indexes.

    Writers are serialised by a mutex and publish a new snapshot only when
    their transaction commits. Readers grab the current snapshot without
    locking, so they never see a transaction half applied.
    """

    def __init__(self) -> None:
        self._snapshot = _Snapshot(by_id={}, by_profile={})
        self._lock = Lock()

    @contextmanager
    def _write(self) -> Iterator[_Transaction]:
        with self._lock:
            txn = _Transaction(self._snapshot)
            yield txn
            if txn.committed:
                self._snapshot = txn.result()

    def create(self, account: Account) -> None:
        with self._write() as txn:
            if txn.first(account.id) is not None:
                raise AccountAlreadyExistsError(account.id)
            if account.is_registration and txn.registration(account.profile_id) is not None:
                raise ProfileAlreadyRegisteredError(account.profile_id)
            txn.insert(account)
            txn.commit()
        logger.debug("account %s created for profile %s", account.id, account.profile_id)

    def get(self, account_id: str) -> Account:
        account = self._snapshot.by_id.get(fold_id(account_id))
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def update(self, account_id: str, change: Change) -> None:
        if change.is_empty():
            return
        with self._write() as txn:
            account = txn.first(account_id)
            if account is None:
                return
            txn.insert(apply_change(change, account))
            txn.commit()
        logger.debug("account %s updated", account_id)

    def delete(self, account_id: str) -> None:
        with self._write() as txn:
            account = txn.first(account_id)
            if account is None:
                return
            txn.delete(account)
            txn.commit()
        logger.debug("account %s deleted", account_id)

    def list_by_profile(self, profile_id: str) -> list[Account]:
        snapshot = self._snapshot
        keys = snapshot.by_profile.get(profile_id, frozenset())
        return sort_by_last_used(snapshot.by_id[key] for key in keys)
