"""Snapshot isolation and indexing behaviour of the in-memory storer."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from accounts.domain.account import Account, Change
from accounts.storers import MemoryStorer

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _account(account_id: str, profile_id: str = "profile-1", **kwargs) -> Account:
    return Account(
        id=account_id,
        profile_id=profile_id,
        created_at=NOW,
        last_used_at=NOW,
        last_seen_at=NOW,
        **kwargs,
    )


def test_non_registration_accounts_do_not_block_registration():
    storer = MemoryStorer()
    storer.create(_account("secondary@x.com", "p1"))

    storer.create(_account("primary@x.com", "p1", is_registration=True))

    assert {account.id for account in storer.list_by_profile("p1")} == {"secondary@x.com", "primary@x.com"}


def test_failed_transaction_publishes_nothing(monkeypatch):
    storer = MemoryStorer()
    storer.create(_account("paddy@impractical.co"))
    before = storer._snapshot

    def explode(change, account):
        raise RuntimeError("boom")

    monkeypatch.setattr("accounts.storers.memory.apply_change", explode)
    with pytest.raises(RuntimeError):
        storer.update("paddy@impractical.co", Change(last_used_at=NOW + timedelta(hours=1)))

    assert storer._snapshot is before
    assert storer.get("paddy@impractical.co").last_used_at == NOW


def test_readers_keep_their_snapshot_during_writes():
    storer = MemoryStorer()
    storer.create(_account("a@x.com"))
    snapshot = storer._snapshot

    storer.create(_account("b@x.com"))
    storer.delete("a@x.com")

    assert set(snapshot.by_id) == {"a@x.com"}
    assert set(storer._snapshot.by_id) == {"b@x.com"}


def test_empty_change_keeps_snapshot_identity():
    storer = MemoryStorer()
    storer.create(_account("a@x.com"))
    snapshot = storer._snapshot

    storer.update("a@x.com", Change())
    storer.update("missing@x.com", Change(last_seen_at=NOW))
    storer.delete("missing@x.com")

    assert storer._snapshot is snapshot


def test_delete_drops_empty_profile_entries():
    storer = MemoryStorer()
    storer.create(_account("a@x.com", "p1"))

    storer.delete("A@X.COM")

    assert "p1" not in storer._snapshot.by_profile
    assert storer.list_by_profile("p1") == []
