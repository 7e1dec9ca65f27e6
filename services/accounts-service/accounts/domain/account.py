"""Account records mapping login identifiers to profile IDs."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable


@dataclass(frozen=True, slots=True)
class Account:
    """Binding of one login identifier to the profile that owns it.

    ``None`` timestamps mean "unset"; :func:`fill_defaults` fills them in
    before an account is created. Set timestamps are held in UTC.
    """

    id: str
    profile_id: str
    created_at: datetime | None = None
    last_used_at: datetime | None = None
    last_seen_at: datetime | None = None
    is_registration: bool = False

    def __post_init__(self) -> None:
        for name in ("created_at", "last_used_at", "last_seen_at"):
            object.__setattr__(self, name, as_utc(getattr(self, name)))


@dataclass(frozen=True, slots=True)
class Change:
    """Sparse update to the mutable timestamps of an account."""

    last_used_at: datetime | None = None
    last_seen_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "last_used_at", as_utc(self.last_used_at))
        object.__setattr__(self, "last_seen_at", as_utc(self.last_seen_at))

    def is_empty(self) -> bool:
        """Return ``True`` when applying the change could never alter an account."""
        return self.last_used_at is None and self.last_seen_at is None


def apply_change(change: Change, account: Account) -> Account:
    """Return a copy of ``account`` with the fields set on ``change`` overwritten."""
    if change.is_empty():
        return account
    updates: dict[str, datetime] = {}
    if change.last_used_at is not None:
        updates["last_used_at"] = change.last_used_at
    if change.last_seen_at is not None:
        updates["last_seen_at"] = change.last_seen_at
    return replace(account, **updates)


def fill_defaults(account: Account, now: datetime | None = None) -> Account:
    """Return a copy of ``account`` with unset timestamps given sensible defaults.

    ``created_at`` falls back to ``now``, ``last_used_at`` to ``created_at`` and
    ``last_seen_at`` to ``last_used_at``.
    """
    created_at = account.created_at or now or datetime.now(timezone.utc)
    last_used_at = account.last_used_at or created_at
    last_seen_at = account.last_seen_at or last_used_at
    return replace(
        account,
        created_at=created_at,
        last_used_at=last_used_at,
        last_seen_at=last_seen_at,
    )


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fold_id(account_id: str) -> str:
    """Normalise an account ID for case-insensitive comparison."""
    return account_id.lower()


def sort_by_last_used(accounts: Iterable[Account]) -> list[Account]:
    """Return accounts most recently used first.

    Accounts that were never used sort last; ties fall back to the folded ID.
    """
    ordered = sorted(accounts, key=lambda account: fold_id(account.id))
    dated = [account for account in ordered if account.last_used_at is not None]
    undated = [account for account in ordered if account.last_used_at is None]
    # list.sort is stable, so equal timestamps keep the ID order
    dated.sort(key=lambda account: account.last_used_at, reverse=True)
    return dated + undated
