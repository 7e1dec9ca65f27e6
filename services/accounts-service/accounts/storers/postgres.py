"""PostgreSQL account storer relying on database constraints for invariants."""

from __future__ import annotations

import logging
from typing import Any

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from ..domain.account import Account, Change
from ..domain.contracts import AccountStorer
from ..domain.errors import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    ProfileAlreadyRegisteredError,
)

logger = logging.getLogger(__name__)

ID_CONSTRAINTS = frozenset({"accounts_pkey", "accounts_id_lower_key"})
REGISTRATION_CONSTRAINT = "unique_registration"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT NOT NULL,
    profile_id TEXT NOT NULL,
    created_at TIMESTAMPTZ,
    last_used_at TIMESTAMPTZ,
    last_seen_at TIMESTAMPTZ,
    is_registration BOOLEAN NOT NULL DEFAULT FALSE,
    CONSTRAINT accounts_pkey PRIMARY KEY (id)
);
CREATE UNIQUE INDEX IF NOT EXISTS accounts_id_lower_key ON accounts (LOWER(id));
CREATE UNIQUE INDEX IF NOT EXISTS unique_registration ON accounts (profile_id) WHERE is_registration;
CREATE INDEX IF NOT EXISTS accounts_profile_last_used_idx ON accounts (profile_id, last_used_at DESC);
"""

_COLUMNS = "id, profile_id, created_at, last_used_at, last_seen_at, is_registration"


def error_for_constraint(constraint: str | None, account: Account) -> Exception | None:
    """Translate a violated constraint name into the matching domain error, if any."""
    if constraint in ID_CONSTRAINTS:
        return AccountAlreadyExistsError(account.id)
    if constraint == REGISTRATION_CONSTRAINT:
        return ProfileAlreadyRegisteredError(account.profile_id)
    return None


def update_statement(account_id: str, change: Change) -> tuple[str, list[Any]]:
    """Build an UPDATE touching only the columns present on ``change``."""
    assignments: list[str] = []
    params: list[Any] = []
    if change.last_used_at is not None:
        assignments.append("last_used_at = %s")
        params.append(change.last_used_at)
    if change.last_seen_at is not None:
        assignments.append("last_seen_at = %s")
        params.append(change.last_seen_at)
    params.append(account_id)
    query = f"UPDATE accounts SET {', '.join(assignments)} WHERE LOWER(id) = LOWER(%s)"
    return query, params


class PostgresStorer(AccountStorer):
    """Account persistence in a single ``accounts`` table."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_schema(self) -> None:
        """Create the accounts table and its indexes if they are missing."""
        with self._pool.connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    def create(self, account: Account) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute(
                        f"""
                        INSERT INTO accounts ({_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s)
                        """,
                        (
                            account.id,
                            account.profile_id,
                            account.created_at,
                            account.last_used_at,
                            account.last_seen_at,
                            account.is_registration,
                        ),
                    )
                except errors.UniqueViolation as exc:
                    conn.rollback()
                    domain_error = error_for_constraint(exc.diag.constraint_name, account)
                    if domain_error is None:
                        raise
                    raise domain_error from exc
                conn.commit()
        logger.debug("account %s created for profile %s", account.id, account.profile_id)

    def get(self, account_id: str) -> Account:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM accounts WHERE LOWER(id) = LOWER(%s)",
                    (account_id,),
                )
                row = cur.fetchone()
        if row is None:
            raise AccountNotFoundError(account_id)
        return self._map_record(row)

    def update(self, account_id: str, change: Change) -> None:
        if change.is_empty():
            return
        query, params = update_statement(account_id, change)
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                updated = cur.rowcount
                conn.commit()
        logger.debug("account %s updated (%d rows)", account_id, updated)

    def delete(self, account_id: str) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM accounts WHERE LOWER(id) = LOWER(%s)", (account_id,))
                deleted = cur.rowcount
                conn.commit()
        logger.debug("account %s deleted (%d rows)", account_id, deleted)

    def list_by_profile(self, profile_id: str) -> list[Account]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM accounts
                    WHERE profile_id = %s
                    ORDER BY last_used_at DESC NULLS LAST, LOWER(id)
                    """,
                    (profile_id,),
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            id=row[0],
            profile_id=row[1],
            created_at=row[2],
            last_used_at=row[3],
            last_seen_at=row[4],
            is_registration=row[5],
        )
