from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from chirpauth.logging import get_logger
from chirpauth.storage.errors import ConstraintViolation, StoreUnavailable
from chirpauth.storage.models import RefreshTokenRecord, User

_REQUIRED_TABLES = ("users", "refresh_tokens")


class PostgresStore:
    """Postgres-backed credential store.

    Expects the ``users`` and ``refresh_tokens`` tables to exist; schema
    migrations are managed outside this package.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
            open=True,
        )
        self._verify_required_schema()

    @contextmanager
    def _connect(self) -> Iterator[psycopg.Connection]:
        try:
            with self.pool.connection() as conn:
                yield conn
        except (psycopg.OperationalError, psycopg.InterfaceError, PoolTimeout) as exc:
            self.logger.error("postgres_unavailable", error=str(exc))
            raise StoreUnavailable("credential store unavailable") from exc

    def _verify_required_schema(self) -> None:
        """Ensure the credential tables exist before serving requests."""

        with self._connect() as conn:
            missing_tables = []
            for table in _REQUIRED_TABLES:
                row = conn.execute(
                    "SELECT to_regclass(%s) AS oid", (f"public.{table}",)
                ).fetchone()
                if not row or not row.get("oid"):
                    missing_tables.append(table)

        if missing_tables:
            raise RuntimeError(
                "Missing required Postgres tables: {}. Apply the schema migrations first.".format(
                    ", ".join(sorted(missing_tables))
                )
            )

    def close(self) -> None:
        self.pool.close()

    @staticmethod
    def _row_to_user(row: Dict[str, Any]) -> User:
        return User(
            id=row["id"] if isinstance(row["id"], uuid.UUID) else uuid.UUID(str(row["id"])),
            email=row["email"],
            hashed_password=row["hashed_password"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_refresh_token(row: Dict[str, Any]) -> RefreshTokenRecord:
        user_id = row["user_id"]
        return RefreshTokenRecord(
            token=row["token"],
            user_id=user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id)),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            expires_at=row.get("expires_at"),
            revoked_at=row.get("revoked_at"),
        )

    # users
    def create_user(self, email: str, hashed_password: str) -> User:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO users (id, created_at, updated_at, email, hashed_password)
                    VALUES (%s, now(), now(), %s, %s)
                    RETURNING *
                    """,
                    (uuid.uuid4(), email, hashed_password),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        return self._row_to_user(row)

    def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = %s", (user_id,)
            ).fetchone()
        if not row:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = %s", (email,)
            ).fetchone()
        if not row:
            return None
        return self._row_to_user(row)

    def update_user_credentials(
        self, user_id: uuid.UUID, email: str, hashed_password: str
    ) -> Optional[User]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    UPDATE users
                    SET email = %s, hashed_password = %s, updated_at = now()
                    WHERE id = %s
                    RETURNING *
                    """,
                    (email, hashed_password, user_id),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        if not row:
            return None
        return self._row_to_user(row)

    def delete_users(self) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM users")
            return cur.rowcount

    # refresh tokens
    def create_refresh_token(
        self, token: str, user_id: uuid.UUID, expires_at: datetime
    ) -> RefreshTokenRecord:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO refresh_tokens (token, created_at, updated_at, user_id, expires_at, revoked_at)
                    VALUES (%s, now(), now(), %s, %s, NULL)
                    RETURNING *
                    """,
                    (token, user_id, expires_at),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("refresh token already exists", {"field": "token"})
        except errors.ForeignKeyViolation:
            raise ConstraintViolation("unknown user", {"field": "user_id"})
        return self._row_to_refresh_token(row)

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM refresh_tokens WHERE token = %s", (token,)
            ).fetchone()
        if not row:
            return None
        return self._row_to_refresh_token(row)

    def revoke_refresh_token(self, token: str) -> bool:
        # COALESCE keeps the first revocation timestamp
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = COALESCE(revoked_at, now()), updated_at = now()
                WHERE token = %s
                """,
                (token,),
            )
            return cur.rowcount > 0

    def revoke_user_refresh_tokens(self, user_id: uuid.UUID) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = now(), updated_at = now()
                WHERE user_id = %s AND revoked_at IS NULL
                """,
                (user_id,),
            )
            return cur.rowcount
