from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from chirpauth.service.errors import (
    ExpiredCredentialError,
    HashingFailure,
    RevokedCredentialError,
)
from chirpauth.storage.models import RefreshTokenRecord

DEFAULT_REFRESH_TTL = timedelta(days=60)
REFRESH_TOKEN_BYTES = 32


def make_refresh_token() -> str:
    """Return 256 bits of CSPRNG output, hex encoded."""
    try:
        return secrets.token_hex(REFRESH_TOKEN_BYTES)
    except OSError as exc:
        raise HashingFailure("unable to generate refresh token") from exc


def is_usable(record: RefreshTokenRecord, now: datetime) -> bool:
    if record.revoked_at is not None:
        return False
    if record.expires_at is None:
        return False
    return record.expires_at > now


class RefreshTokenIssuer:
    """Mint opaque refresh tokens and decide whether stored records are usable.

    Records are looked up fresh for every check; usability is never cached, so
    a revocation takes effect on the next request.
    """

    def __init__(self, ttl: timedelta = DEFAULT_REFRESH_TTL) -> None:
        self.ttl = ttl

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def mint(self) -> str:
        return make_refresh_token()

    def expires_at(self, issued_at: Optional[datetime] = None) -> datetime:
        return (issued_at or self._now()) + self.ttl

    def is_usable(self, record: RefreshTokenRecord, now: Optional[datetime] = None) -> bool:
        return is_usable(record, now or self._now())

    def check(self, record: RefreshTokenRecord, now: Optional[datetime] = None) -> None:
        # revocation wins over expiry
        if record.revoked_at is not None:
            raise RevokedCredentialError()
        if not is_usable(record, now or self._now()):
            raise ExpiredCredentialError()
