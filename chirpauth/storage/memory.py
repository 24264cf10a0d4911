from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from chirpauth.logging import get_logger
from chirpauth.storage.errors import ConstraintViolation
from chirpauth.storage.models import RefreshTokenRecord, User


class MemoryStore:
    """In-process credential store.

    Every read and write happens under a single re-entrant lock, so a
    revocation is visible to the very next lookup. When ``fs_root`` is given the
    state is snapshotted to ``<fs_root>/state/memory_store.json`` after each
    mutation and reloaded on start.
    """

    def __init__(self, fs_root: str | None = None) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[uuid.UUID, User] = {}
        self.refresh_tokens: Dict[str, RefreshTokenRecord] = {}
        self._data_lock = threading.RLock()
        self.fs_root = Path(fs_root) if fs_root else None
        if self.fs_root is not None:
            self.fs_root.mkdir(parents=True, exist_ok=True)
            if self._load_state():
                self.logger.info(
                    "memory_store_loaded",
                    users=len(self.users),
                    refresh_records=len(self.refresh_tokens),
                )

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # users -----------------------------------------------------------------

    def create_user(self, email: str, hashed_password: str) -> User:
        with self._data_lock:
            if any(existing.email == email for existing in self.users.values()):
                raise ConstraintViolation("email already exists", {"field": "email"})
            user = User.new(email, hashed_password)
            self.users[user.id] = user
            self._persist_state()
            return user

    def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._data_lock:
            return next((u for u in self.users.values() if u.email == email), None)

    def update_user_credentials(
        self, user_id: uuid.UUID, email: str, hashed_password: str
    ) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            if any(
                other.email == email and other.id != user_id
                for other in self.users.values()
            ):
                raise ConstraintViolation("email already exists", {"field": "email"})
            updated = user.with_credentials(email, hashed_password)
            self.users[user_id] = updated
            self._persist_state()
            return updated

    def delete_users(self) -> int:
        with self._data_lock:
            removed = len(self.users)
            self.users.clear()
            # refresh_tokens.user_id cascades on delete
            self.refresh_tokens.clear()
            self._persist_state()
            return removed

    # refresh tokens --------------------------------------------------------

    def create_refresh_token(
        self, token: str, user_id: uuid.UUID, expires_at: datetime
    ) -> RefreshTokenRecord:
        with self._data_lock:
            if user_id not in self.users:
                raise ConstraintViolation("unknown user", {"field": "user_id"})
            if token in self.refresh_tokens:
                raise ConstraintViolation("refresh token already exists", {"field": "token"})
            now = self._now()
            record = RefreshTokenRecord(
                token=token,
                user_id=user_id,
                created_at=now,
                updated_at=now,
                expires_at=expires_at,
            )
            self.refresh_tokens[token] = record
            self._persist_state()
            return record

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._data_lock:
            return self.refresh_tokens.get(token)

    def revoke_refresh_token(self, token: str) -> bool:
        with self._data_lock:
            record = self.refresh_tokens.get(token)
            if record is None:
                return False
            if not record.revoked:
                self.refresh_tokens[token] = record.revoke(self._now())
                self._persist_state()
            return True

    def revoke_user_refresh_tokens(self, user_id: uuid.UUID) -> int:
        with self._data_lock:
            now = self._now()
            live = [
                token
                for token, record in self.refresh_tokens.items()
                if record.user_id == user_id and not record.revoked
            ]
            for token in live:
                self.refresh_tokens[token] = self.refresh_tokens[token].revoke(now)
            if live:
                self._persist_state()
            return len(live)

    # persistence -----------------------------------------------------------

    def _state_path(self) -> Path:
        assert self.fs_root is not None
        state_dir = self.fs_root / "state"
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / "memory_store.json"

    @staticmethod
    def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt else None

    @staticmethod
    def _deserialize_datetime(raw: Optional[str]) -> Optional[datetime]:
        return datetime.fromisoformat(raw) if raw else None

    def _serialize_user(self, user: User) -> Dict[str, Any]:
        return {
            "id": str(user.id),
            "email": user.email,
            "hashed_password": user.hashed_password,
            "created_at": self._serialize_datetime(user.created_at),
            "updated_at": self._serialize_datetime(user.updated_at),
        }

    def _deserialize_user(self, data: Dict[str, Any]) -> User:
        return User(
            id=uuid.UUID(data["id"]),
            email=data["email"],
            hashed_password=data["hashed_password"],
            created_at=self._deserialize_datetime(data["created_at"]),
            updated_at=self._deserialize_datetime(data["updated_at"]),
        )

    def _serialize_refresh_token(self, record: RefreshTokenRecord) -> Dict[str, Any]:
        return {
            "token": record.token,
            "user_id": str(record.user_id),
            "created_at": self._serialize_datetime(record.created_at),
            "updated_at": self._serialize_datetime(record.updated_at),
            "expires_at": self._serialize_datetime(record.expires_at),
            "revoked_at": self._serialize_datetime(record.revoked_at),
        }

    def _deserialize_refresh_token(self, data: Dict[str, Any]) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            token=data["token"],
            user_id=uuid.UUID(data["user_id"]),
            created_at=self._deserialize_datetime(data["created_at"]),
            updated_at=self._deserialize_datetime(data["updated_at"]),
            expires_at=self._deserialize_datetime(data.get("expires_at")),
            revoked_at=self._deserialize_datetime(data.get("revoked_at")),
        )

    def _persist_state(self) -> None:
        if self.fs_root is None:
            return
        state: Dict[str, List[Dict[str, Any]]] = {
            "users": [self._serialize_user(u) for u in self.users.values()],
            "refresh_tokens": [
                self._serialize_refresh_token(r) for r in self.refresh_tokens.values()
            ],
        }
        path = self._state_path()
        try:
            path.write_text(json.dumps(state, indent=2))
        except OSError as exc:
            raise RuntimeError(f"failed to persist in-memory state: {exc}") from exc

    def _load_state(self) -> bool:
        path = self._state_path()
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        self.users = {
            user.id: user
            for user in (self._deserialize_user(u) for u in data.get("users", []))
        }
        self.refresh_tokens = {
            record.token: record
            for record in (
                self._deserialize_refresh_token(r)
                for r in data.get("refresh_tokens", [])
            )
        }
        return True

    def close(self) -> None:
        return None
