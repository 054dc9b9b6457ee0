"""
Postgres-backed credential store: the `users` and `logins` tables.

Every method is a single statement on a pooled connection. Uniqueness of
`users.email` and `users.google_user_id` is enforced by the schema
(see migrations/0001_users_logins.sql); a violation surfaces as
DuplicateAccountError.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors

from identity.auth.models import LoginRecord, UserAccount
from identity.storage.config import StoreConfig, build_postgres_dsn

logger = logging.getLogger(__name__)

_USER_COLUMNS = "user_id, email, password_hash, google_user_id, email_verified, first_name, last_name, created_at"


class StoreError(Exception):
    """Credential store unavailable or query failed."""


class DuplicateAccountError(StoreError):
    """Insert rejected by a unique constraint (email or google_user_id)."""


def _row_to_user(row: Sequence[Any]) -> UserAccount:
    user_id, email, password_hash, google_user_id, email_verified, first_name, last_name, created_at = row
    return UserAccount(
        user_id=int(user_id),
        email=email,
        password_hash=password_hash,
        google_user_id=str(google_user_id) if google_user_id is not None else None,
        email_verified=bool(email_verified),
        first_name=first_name,
        last_name=last_name,
        created_at=created_at,
    )


class PostgresCredentialStore:
    def __init__(self, pool) -> None:
        self._pool = pool

    @classmethod
    def from_config(cls, cfg: StoreConfig) -> "PostgresCredentialStore":
        from psycopg_pool import ConnectionPool

        dsn = build_postgres_dsn(cfg)
        if not dsn:
            raise StoreError("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars)")
        pool = ConnectionPool(
            dsn,
            min_size=cfg.pool_min_size,
            max_size=cfg.pool_max_size,
            timeout=cfg.pool_timeout_seconds,
            open=False,
        )
        return cls(pool)

    def open(self) -> None:
        self._pool.open()

    def close(self) -> None:
        self._pool.close()

    def _fetchone(self, sql: str, params: Sequence[Any]) -> Optional[Sequence[Any]]:
        try:
            with self._pool.connection() as conn:
                return conn.execute(sql, params).fetchone()
        except pg_errors.UniqueViolation as e:
            raise DuplicateAccountError(str(e)) from e
        except psycopg.Error as e:
            logger.warning("Credential store query failed: %s", type(e).__name__)
            raise StoreError(str(e)) from e

    # ---- users ----
    def get_user(self, user_id: int) -> Optional[UserAccount]:
        row = self._fetchone(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = %s", (user_id,))
        return _row_to_user(row) if row else None

    def find_by_email(self, email: str) -> Optional[UserAccount]:
        row = self._fetchone(f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s", (email,))
        return _row_to_user(row) if row else None

    def find_by_google_or_email(self, google_user_id: str, email: str) -> Optional[UserAccount]:
        # Prefer the row bound to this Google account when both match.
        row = self._fetchone(
            f"""
            SELECT {_USER_COLUMNS}
            FROM users
            WHERE google_user_id = %s OR email = %s
            ORDER BY (google_user_id = %s) DESC NULLS LAST, user_id
            LIMIT 1
            """,
            (google_user_id, email, google_user_id),
        )
        return _row_to_user(row) if row else None

    def create_user(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        email_verified: bool = False,
        password_hash: Optional[str] = None,
        google_user_id: Optional[str] = None,
    ) -> UserAccount:
        row = self._fetchone(
            f"""
            INSERT INTO users (email, password_hash, google_user_id, email_verified, first_name, last_name)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_USER_COLUMNS}
            """,
            (email, password_hash, google_user_id, email_verified, first_name, last_name),
        )
        if not row:
            raise StoreError("Failed to create user")
        return _row_to_user(row)

    # ---- logins ----
    def add_login(self, user_id: int, token: str) -> LoginRecord:
        row = self._fetchone(
            "INSERT INTO logins (user_id, token) VALUES (%s, %s) RETURNING user_id, token, created_at",
            (user_id, token),
        )
        if not row:
            raise StoreError("Failed to record login")
        return LoginRecord(user_id=int(row[0]), token=row[1], created_at=row[2])

    def has_login(self, user_id: int, token: str) -> bool:
        row = self._fetchone("SELECT 1 FROM logins WHERE user_id = %s AND token = %s", (user_id, token))
        return row is not None
