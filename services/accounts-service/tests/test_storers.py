"""Contract tests every account storer backend must pass."""

from __future__ import annotations

import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from accounts.domain.account import Account, Change
from accounts.domain.errors import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    ProfileAlreadyRegisteredError,
)
from accounts.storers import MemoryStorer, PostgresStorer, RedisDocumentStorer

PG_TEST_DB = "PG_TEST_DB"

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def postgres_control():
    """Connection to the database named by PG_TEST_DB, used to create per-test schemas."""
    conninfo = os.getenv(PG_TEST_DB)
    if not conninfo:
        pytest.skip(f"{PG_TEST_DB} is not set")
    import psycopg

    with psycopg.connect(conninfo, autocommit=True) as conn:
        yield conninfo, conn


@pytest.fixture(params=["memory", "redis", "postgres"])
def storer(request):
    """Provide a fresh, empty storer for each backend."""
    if request.param == "memory":
        yield MemoryStorer()
    elif request.param == "redis":
        client = fakeredis.FakeStrictRedis()
        client.flushall()
        yield RedisDocumentStorer(client, namespace=f"test-{uuid.uuid4().hex[:8]}")
    else:
        from psycopg_pool import ConnectionPool

        conninfo, control = request.getfixturevalue("postgres_control")
        schema = f"accounts_test_{uuid.uuid4().hex[:12]}"
        control.execute(f"CREATE SCHEMA {schema}")
        pool = ConnectionPool(conninfo, open=True, kwargs={"options": f"-c search_path={schema}"})
        try:
            pg = PostgresStorer(pool)
            pg.create_schema()
            yield pg
        finally:
            pool.close()
            control.execute(f"DROP SCHEMA {schema} CASCADE")


def make_account(account_id: str, profile_id: str | None = None, *, offset=timedelta(0), **kwargs) -> Account:
    moment = NOW + offset
    return Account(
        id=account_id,
        profile_id=profile_id or str(uuid.uuid4()),
        created_at=moment,
        last_used_at=moment,
        last_seen_at=moment,
        **kwargs,
    )


def test_create_and_get_account(storer):
    account = make_account("paddy@impractical.co")
    storer.create(account)

    assert storer.get(account.id) == account


def test_get_ignores_case(storer):
    account = make_account("Paddy@Impractical.co")
    storer.create(account)

    assert storer.get("paddy@impractical.co") == account
    assert storer.get("PADDY@IMPRACTICAL.CO") == account


def test_get_nonexistent_account(storer):
    with pytest.raises(AccountNotFoundError) as excinfo:
        storer.get("myaccount@impractical.co")
    assert excinfo.value.account_id == "myaccount@impractical.co"


def test_create_duplicate_id_leaves_original(storer):
    account = make_account("paddy@impractical.co")
    storer.create(account)

    duplicate = make_account("PADDY@impractical.co", offset=timedelta(hours=1))
    with pytest.raises(AccountAlreadyExistsError):
        storer.create(duplicate)

    assert storer.get(account.id) == account


def test_create_secondary_accounts(storer):
    registration = make_account("paddy@impractical.co", is_registration=True)
    storer.create(registration)
    second = make_account("paddy@impracticallabs.com", registration.profile_id, offset=timedelta(hours=1))
    third = make_account("paddy@carvers.co", registration.profile_id, offset=timedelta(hours=2))
    storer.create(second)
    storer.create(third)

    assert storer.get(registration.id) == registration
    assert storer.get(second.id) == second
    assert storer.get(third.id) == third


def test_create_duplicate_registration(storer):
    registration = make_account("paddy@impractical.co", is_registration=True)
    storer.create(registration)

    rival = make_account("paddy@impracticallabs.com", registration.profile_id, is_registration=True)
    with pytest.raises(ProfileAlreadyRegisteredError) as excinfo:
        storer.create(rival)

    assert excinfo.value.profile_id == registration.profile_id
    assert storer.get(registration.id) == registration
    with pytest.raises(AccountNotFoundError):
        storer.get(rival.id)


def test_registration_scenario(storer):
    a = make_account("a@x.com", "p1", is_registration=True)
    b = make_account("b@x.com", "p1", offset=timedelta(minutes=5))
    c = make_account("c@x.com", "p1", is_registration=True)

    storer.create(a)
    storer.create(b)
    with pytest.raises(ProfileAlreadyRegisteredError):
        storer.create(c)

    assert storer.list_by_profile("p1") == [b, a]


def test_registration_can_be_recreated_after_delete(storer):
    registration = make_account("paddy@impractical.co", "p1", is_registration=True)
    storer.create(registration)
    storer.delete(registration.id)

    replacement = make_account("paddy@carvers.co", "p1", is_registration=True)
    storer.create(replacement)

    assert storer.list_by_profile("p1") == [replacement]


def test_create_multiple_profiles(storer):
    first = make_account("paddy@impractical.co", is_registration=True)
    second = make_account("paddy@carvers.co", is_registration=True)
    storer.create(first)
    storer.create(second)

    assert storer.get(first.id) == first
    assert storer.get(second.id) == second


def test_list_accounts_by_profile_orders_by_last_used(storer):
    profile_id = str(uuid.uuid4())
    earlier = make_account("earlier@x.com", profile_id, offset=-timedelta(minutes=1))
    current = make_account("current@x.com", profile_id)
    later = make_account("later@x.com", profile_id, offset=timedelta(hours=1))
    other = make_account("other@x.com")
    for account in (current, earlier, other, later):
        storer.create(account)

    assert storer.list_by_profile(profile_id) == [later, current, earlier]


def test_list_ties_are_deterministic(storer):
    profile_id = str(uuid.uuid4())
    accounts = [make_account(f"{name}@x.com", profile_id) for name in ("c", "a", "b")]
    for account in accounts:
        storer.create(account)

    first = storer.list_by_profile(profile_id)
    assert [account.id for account in first] == ["a@x.com", "b@x.com", "c@x.com"]
    assert storer.list_by_profile(profile_id) == first


def test_list_mixes_naive_and_aware_timestamps(storer):
    profile_id = str(uuid.uuid4())
    naive = NOW.replace(tzinfo=None)
    storer.create(Account(id="naive@x.com", profile_id=profile_id, created_at=naive, last_used_at=naive, last_seen_at=naive))
    storer.create(make_account("aware@x.com", profile_id, offset=timedelta(minutes=5)))
    storer.create(make_account("older@x.com", profile_id, offset=-timedelta(minutes=5)))

    listed = storer.list_by_profile(profile_id)

    assert [account.id for account in listed] == ["aware@x.com", "naive@x.com", "older@x.com"]
    assert listed[1].last_used_at == NOW
    assert listed[1].last_used_at.tzinfo is not None


def test_list_profile_id_is_case_sensitive(storer):
    storer.create(make_account("paddy@impractical.co", "Profile-1"))

    assert storer.list_by_profile("profile-1") == []
    assert len(storer.list_by_profile("Profile-1")) == 1


def test_list_unknown_profile_is_empty(storer):
    assert storer.list_by_profile(str(uuid.uuid4())) == []


@pytest.mark.parametrize(
    "change",
    [
        Change(last_used_at=NOW + timedelta(days=1)),
        Change(last_seen_at=NOW + timedelta(days=2)),
        Change(last_used_at=NOW + timedelta(days=1), last_seen_at=NOW + timedelta(days=2)),
        Change(),
    ],
    ids=["last-used", "last-seen", "both", "empty"],
)
def test_update_one_of_many(storer, change):
    profile_id = str(uuid.uuid4())
    target = make_account("paddy@impractical.co", profile_id, is_registration=True)
    bystanders = [make_account(f"other-{idx}@x.com", profile_id) for idx in range(3)]
    storer.create(target)
    for account in bystanders:
        storer.create(account)

    storer.update("Paddy@Impractical.co", change)

    expected = target
    if change.last_used_at is not None:
        expected = replace(expected, last_used_at=change.last_used_at)
    if change.last_seen_at is not None:
        expected = replace(expected, last_seen_at=change.last_seen_at)
    assert storer.get(target.id) == expected
    for account in bystanders:
        assert storer.get(account.id) == account


def test_update_nonexistent_is_silent(storer):
    existing = make_account("paddy@impractical.co")
    storer.create(existing)

    storer.update("nobody@impractical.co", Change(last_used_at=NOW, last_seen_at=NOW))

    with pytest.raises(AccountNotFoundError):
        storer.get("nobody@impractical.co")
    assert storer.get(existing.id) == existing


def test_update_with_empty_change_on_missing_account(storer):
    storer.update("nobody@impractical.co", Change())

    with pytest.raises(AccountNotFoundError):
        storer.get("nobody@impractical.co")


def test_delete_one_of_many(storer):
    profile_id = str(uuid.uuid4())
    target = make_account("paddy@impractical.co", profile_id, is_registration=True)
    bystanders = [make_account(f"other-{idx}@x.com", profile_id, offset=timedelta(minutes=idx)) for idx in range(3)]
    storer.create(target)
    for account in bystanders:
        storer.create(account)

    storer.delete("PADDY@impractical.co")

    with pytest.raises(AccountNotFoundError):
        storer.get(target.id)
    for account in bystanders:
        assert storer.get(account.id) == account
    assert storer.list_by_profile(profile_id) == list(reversed(bystanders))


def test_delete_twice_is_idempotent(storer):
    account = make_account("paddy@impractical.co")
    bystander = make_account("other@impractical.co", account.profile_id)
    storer.create(account)
    storer.create(bystander)

    storer.delete(account.id)
    storer.delete(account.id)

    assert storer.get(bystander.id) == bystander


def test_delete_nonexistent(storer):
    storer.delete("nobody@impractical.co")


def _race(storer, accounts: list[Account]) -> list[BaseException | None]:
    """Create every account at once from its own thread; return each thread's error, if any."""
    barrier = threading.Barrier(len(accounts))

    def attempt(account: Account) -> BaseException | None:
        barrier.wait()
        try:
            storer.create(account)
        except (AccountAlreadyExistsError, ProfileAlreadyRegisteredError) as exc:
            return exc
        return None

    with ThreadPoolExecutor(max_workers=len(accounts)) as pool:
        return list(pool.map(attempt, accounts))


def test_concurrent_creates_of_one_id_have_a_single_winner(storer):
    contenders = [make_account("Paddy@impractical.co" if idx % 2 else "paddy@impractical.co") for idx in range(8)]

    results = _race(storer, contenders)

    assert results.count(None) == 1
    assert all(isinstance(result, AccountAlreadyExistsError) for result in results if result is not None)
    winner = contenders[results.index(None)]
    assert storer.get("paddy@impractical.co") == winner
    for loser in contenders:
        if loser is not winner:
            assert storer.list_by_profile(loser.profile_id) == []


def test_concurrent_registrations_have_a_single_winner(storer):
    profile_id = str(uuid.uuid4())
    contenders = [make_account(f"user-{idx}@x.com", profile_id, is_registration=True) for idx in range(8)]

    results = _race(storer, contenders)

    assert results.count(None) == 1
    assert all(isinstance(result, ProfileAlreadyRegisteredError) for result in results if result is not None)
    assert storer.list_by_profile(profile_id) == [contenders[results.index(None)]]
    for idx, result in enumerate(results):
        if result is not None:
            with pytest.raises(AccountNotFoundError):
                storer.get(contenders[idx].id)
