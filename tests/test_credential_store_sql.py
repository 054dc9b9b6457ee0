from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone

import psycopg
import pytest
from psycopg import errors as pg_errors

from identity.storage.config import StoreConfig
from identity.storage.store import DuplicateAccountError, PostgresCredentialStore, StoreError

_CREATED = datetime(2025, 1, 1, tzinfo=timezone.utc)


class _Conn:
    def __init__(self, row=None, exc=None) -> None:
        self.row = row
        self.exc = exc
        self.last_sql = None
        self.last_params = None

    def execute(self, sql: str, params):  # type: ignore[no-untyped-def]
        self.last_sql = sql
        self.last_params = params
        if self.exc is not None:
            raise self.exc
        return self

    def fetchone(self):  # type: ignore[no-untyped-def]
        return self.row


class _Pool:
    def __init__(self, conn: _Conn) -> None:
        self.conn = conn

    @contextmanager
    def connection(self):  # type: ignore[no-untyped-def]
        yield self.conn


def _user_row(user_id=1, google_user_id=None, password_hash="$2b$10$hash"):
    return (user_id, "a@b.com", password_hash, google_user_id, False, "A", "B", _CREATED)


def test_find_by_email_maps_row_to_account() -> None:
    conn = _Conn(row=_user_row())
    user = PostgresCredentialStore(_Pool(conn)).find_by_email("a@b.com")
    assert user is not None
    assert user.user_id == 1
    assert user.email == "a@b.com"
    assert user.password_hash == "$2b$10$hash"
    assert user.google_user_id is None
    assert user.email_verified is False
    assert user.created_at == _CREATED
    assert "WHERE email = %s" in conn.last_sql
    assert conn.last_params == ("a@b.com",)


def test_missing_row_returns_none() -> None:
    store = PostgresCredentialStore(_Pool(_Conn(row=None)))
    assert store.get_user(5) is None
    assert store.find_by_email("x@y.com") is None


def test_google_or_email_lookup_prefers_subject_match() -> None:
    conn = _Conn(row=_user_row(google_user_id=12345, password_hash=None))
    user = PostgresCredentialStore(_Pool(conn)).find_by_google_or_email("12345", "a@b.com")
    assert user.google_user_id == "12345"
    assert user.is_federated_only is True
    assert "google_user_id = %s OR email = %s" in conn.last_sql
    assert "ORDER BY (google_user_id = %s) DESC" in conn.last_sql
    assert conn.last_params == ("12345", "a@b.com", "12345")


def test_create_user_returns_inserted_row() -> None:
    conn = _Conn(row=_user_row(user_id=9))
    user = PostgresCredentialStore(_Pool(conn)).create_user(
        email="a@b.com", first_name="A", last_name="B", password_hash="$2b$10$hash"
    )
    assert user.user_id == 9
    assert "INSERT INTO users" in conn.last_sql
    assert "RETURNING" in conn.last_sql
    assert conn.last_params == ("a@b.com", "$2b$10$hash", None, False, "A", "B")


def test_unique_violation_becomes_duplicate_account_error() -> None:
    conn = _Conn(exc=pg_errors.UniqueViolation("duplicate key value violates unique constraint"))
    store = PostgresCredentialStore(_Pool(conn))
    with pytest.raises(DuplicateAccountError):
        store.create_user(email="a@b.com", first_name="A", last_name="B", password_hash="h")


def test_other_database_errors_become_store_error() -> None:
    store = PostgresCredentialStore(_Pool(_Conn(exc=psycopg.OperationalError("server closed the connection"))))
    with pytest.raises(StoreError) as exc:
        store.find_by_email("a@b.com")
    assert not isinstance(exc.value, DuplicateAccountError)


def test_login_records() -> None:
    conn = _Conn(row=(1, "tok", _CREATED))
    store = PostgresCredentialStore(_Pool(conn))
    record = store.add_login(1, "tok")
    assert (record.user_id, record.token, record.created_at) == (1, "tok", _CREATED)
    assert "INSERT INTO logins" in conn.last_sql
    assert conn.last_params == (1, "tok")

    assert store.has_login(1, "tok") is True
    assert "WHERE user_id = %s AND token = %s" in conn.last_sql
    conn.row = None
    assert store.has_login(1, "other") is False


def test_from_config_requires_dsn() -> None:
    cfg = StoreConfig(
        db_auto_migrate=False,
        postgres_dsn=None,
        postgres_host=None,
        postgres_port=5432,
        postgres_db=None,
        postgres_user=None,
        postgres_password=None,
        pool_min_size=1,
        pool_max_size=10,
        pool_timeout_seconds=10.0,
    )
    with pytest.raises(StoreError):
        PostgresCredentialStore.from_config(cfg)
