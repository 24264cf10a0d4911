import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import psycopg
import pytest
from psycopg import errors

from chirpauth.logging import get_logger
from chirpauth.storage.errors import ConstraintViolation, StoreUnavailable
from chirpauth.storage.postgres import PostgresStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, row=None, rowcount=0):
        self._row = row
        self.rowcount = rowcount

    def fetchone(self):
        return self._row


class FakeConnection:
    def __init__(self, responses):
        self.responses = list(responses)
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakePool:
    def __init__(self, responses=(), error=None):
        self.conn = FakeConnection(responses)
        self.error = error

    @contextmanager
    def connection(self):
        if self.error is not None:
            raise self.error
        yield self.conn


def _store(pool) -> PostgresStore:
    store: PostgresStore = PostgresStore.__new__(PostgresStore)
    store.dsn = "postgresql://localhost/chirpy"
    store.logger = get_logger("test")
    store.pool = pool
    return store


def _user_row(**overrides):
    row = {
        "id": uuid.uuid4(),
        "email": "walt@example.com",
        "hashed_password": "$argon2id$fake",
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def test_create_user_maps_row():
    row = _user_row()
    pool = FakePool([FakeCursor(row)])
    user = _store(pool).create_user("walt@example.com", "$argon2id$fake")

    assert user.id == row["id"]
    assert user.email == "walt@example.com"
    sql, params = pool.conn.executed[0]
    assert sql.startswith("INSERT INTO users")
    assert params[1:] == ("walt@example.com", "$argon2id$fake")


def test_create_user_unique_violation_becomes_constraint_violation():
    pool = FakePool([errors.UniqueViolation("duplicate key")])
    with pytest.raises(ConstraintViolation) as excinfo:
        _store(pool).create_user("walt@example.com", "h")
    assert excinfo.value.detail == {"field": "email"}


def test_get_refresh_token_missing_returns_none():
    pool = FakePool([FakeCursor(None)])
    assert _store(pool).get_refresh_token("a" * 64) is None


def test_get_refresh_token_maps_nullable_columns():
    user_id = uuid.uuid4()
    pool = FakePool([
        FakeCursor({
            "token": "a" * 64,
            "user_id": str(user_id),
            "created_at": NOW,
            "updated_at": NOW,
            "expires_at": None,
            "revoked_at": None,
        })
    ])
    record = _store(pool).get_refresh_token("a" * 64)

    assert record.user_id == user_id
    assert record.expires_at is None
    assert record.revoked_at is None


def test_revoke_keeps_first_timestamp_and_reports_unknown():
    pool = FakePool([FakeCursor(rowcount=1), FakeCursor(rowcount=0)])
    store = _store(pool)

    assert store.revoke_refresh_token("a" * 64) is True
    assert store.revoke_refresh_token("b" * 64) is False
    sql, _ = pool.conn.executed[0]
    assert "COALESCE(revoked_at, now())" in sql


def test_create_refresh_token_for_unknown_user():
    pool = FakePool([errors.ForeignKeyViolation("fk")])
    with pytest.raises(ConstraintViolation):
        _store(pool).create_refresh_token("a" * 64, uuid.uuid4(), NOW + timedelta(days=60))


def test_connection_failure_is_store_unavailable():
    pool = FakePool(error=psycopg.OperationalError("connection refused"))
    with pytest.raises(StoreUnavailable):
        _store(pool).get_user_by_email("walt@example.com")


def test_verify_required_schema_lists_missing_tables():
    pool = FakePool([FakeCursor({"oid": "users"}), FakeCursor({"oid": None})])
    with pytest.raises(RuntimeError, match="refresh_tokens"):
        _store(pool)._verify_required_schema()
