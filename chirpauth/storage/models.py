from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class User:
    id: uuid.UUID
    email: str
    hashed_password: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def new(cls, email: str, hashed_password: str) -> "User":
        now = _utcnow()
        return cls(
            id=uuid.uuid4(),
            email=email,
            hashed_password=hashed_password,
            created_at=now,
            updated_at=now,
        )

    def with_credentials(self, email: str, hashed_password: str) -> "User":
        return replace(
            self, email=email, hashed_password=hashed_password, updated_at=_utcnow()
        )


@dataclass(frozen=True)
class RefreshTokenRecord:
    """Server-side state for an opaque refresh token.

    ``revoked_at`` goes from None to a timestamp once and is never cleared.
    ``expires_at`` may be None for rows written by older clients; such rows are
    never usable.
    """

    token: str
    user_id: uuid.UUID
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None

    def revoke(self, when: datetime | None = None) -> "RefreshTokenRecord":
        if self.revoked_at is not None:
            return self
        when = when or _utcnow()
        return replace(self, revoked_at=when, updated_at=when)
