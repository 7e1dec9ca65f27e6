"""Redis-backed document storer: one JSON document per account."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from redis import Redis
from redis.client import Pipeline

from ..domain.account import Account, Change, apply_change, fold_id, sort_by_last_used
from ..domain.contracts import AccountStorer
from ..domain.errors import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    ProfileAlreadyRegisteredError,
)

logger = logging.getLogger(__name__)


def encode_account(account: Account) -> str:
    """Serialise an account into the JSON document stored in Redis."""
    return json.dumps(
        {
            "id": account.id,
            "profile_id": account.profile_id,
            "created_at": _encode_time(account.created_at),
            "last_used_at": _encode_time(account.last_used_at),
            "last_seen_at": _encode_time(account.last_seen_at),
            "is_registration": account.is_registration,
        }
    )


def decode_account(raw: str | bytes) -> Account:
    """Parse a stored JSON document back into an ``Account``."""
    data: dict[str, Any] = json.loads(raw)
    return Account(
        id=data["id"],
        profile_id=data["profile_id"],
        created_at=_decode_time(data.get("created_at")),
        last_used_at=_decode_time(data.get("last_used_at")),
        last_seen_at=_decode_time(data.get("last_seen_at")),
        is_registration=bool(data.get("is_registration", False)),
    )


def _encode_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _decode_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class RedisDocumentStorer(AccountStorer):
    """Accounts stored as documents keyed by their folded ID.

    Key layout under ``namespace``:

    * ``{ns}:account:{id}`` - the account document
    * ``{ns}:profile:{profile_id}`` - set of document keys owned by the profile
    * ``{ns}:registration:{profile_id}`` - document key of the registration account

    Writes run as optimistic ``WATCH``/``MULTI``/``EXEC`` transactions so the
    document, the profile set and the registration marker always move together.
    """

    def __init__(self, client: Redis, *, namespace: str = "accounts") -> None:
        """Store the Redis client and the key prefix shared by all documents."""
        self._client = client
        self._namespace = namespace

    def _account_key(self, account_id: str) -> str:
        return f"{self._namespace}:account:{fold_id(account_id)}"

    def _profile_key(self, profile_id: str) -> str:
        return f"{self._namespace}:profile:{profile_id}"

    def _registration_key(self, profile_id: str) -> str:
        return f"{self._namespace}:registration:{profile_id}"

    def create(self, account: Account) -> None:
        account_key = self._account_key(account.id)
        registration_key = self._registration_key(account.profile_id)

        def insert(pipe: Pipeline) -> None:
            if pipe.exists(account_key):
                raise AccountAlreadyExistsError(account.id)
            if account.is_registration and pipe.exists(registration_key):
                raise ProfileAlreadyRegisteredError(account.profile_id)
            pipe.multi()
            pipe.set(account_key, encode_account(account))
            pipe.sadd(self._profile_key(account.profile_id), account_key)
            if account.is_registration:
                pipe.set(registration_key, account_key)

        self._client.transaction(insert, account_key, registration_key)
        logger.debug("account %s created for profile %s", account.id, account.profile_id)

    def get(self, account_id: str) -> Account:
        raw = self._client.get(self._account_key(account_id))
        if raw is None:
            raise AccountNotFoundError(account_id)
        return decode_account(raw)

    def update(self, account_id: str, change: Change) -> None:
        if change.is_empty():
            return
        account_key = self._account_key(account_id)

        def read_modify_write(pipe: Pipeline) -> bool:
            raw = pipe.get(account_key)
            if raw is None:
                return False
            updated = apply_change(change, decode_account(raw))
            pipe.multi()
            pipe.set(account_key, encode_account(updated))
            return True

        if self._client.transaction(read_modify_write, account_key, value_from_callable=True):
            logger.debug("account %s updated", account_id)

    def delete(self, account_id: str) -> None:
        account_key = self._account_key(account_id)

        def remove(pipe: Pipeline) -> bool:
            raw = pipe.get(account_key)
            if raw is None:
                return False
            account = decode_account(raw)
            pipe.multi()
            pipe.delete(account_key)
            pipe.srem(self._profile_key(account.profile_id), account_key)
            if account.is_registration:
                pipe.delete(self._registration_key(account.profile_id))
            return True

        if self._client.transaction(remove, account_key, value_from_callable=True):
            logger.debug("account %s deleted", account_id)

    def list_by_profile(self, profile_id: str) -> list[Account]:
        keys = sorted(self._client.smembers(self._profile_key(profile_id)))
        if not keys:
            return []
        logger.debug("profile %s has %d account keys", profile_id, len(keys))
        accounts: list[Account] = []
        for raw in self._client.mget(keys):
            # documents deleted between SMEMBERS and MGET come back empty
            if raw is None:
                continue
            account = decode_account(raw)
            if account.profile_id == profile_id:
                accounts.append(account)
        return sort_by_last_used(accounts)
