from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional, Protocol

from chirpauth.config import Settings
from chirpauth.logging import get_logger
from chirpauth.service.bearer import get_bearer_token
from chirpauth.service.errors import (
    AuthenticationFailure,
    AuthorizationFailure,
    CredentialError,
    PasswordMismatchError,
    UnknownCredentialError,
)
from chirpauth.service.passwords import PasswordHasher
from chirpauth.service.refresh import RefreshTokenIssuer
from chirpauth.service.tokens import AccessTokenCodec
from chirpauth.storage.models import RefreshTokenRecord, User

logger = get_logger(__name__)


class CredentialStore(Protocol):
    def create_user(self, email: str, hashed_password: str) -> User: ...

    def get_user(self, user_id: uuid.UUID) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def update_user_credentials(
        self, user_id: uuid.UUID, email: str, hashed_password: str
    ) -> Optional[User]: ...

    def delete_users(self) -> int: ...

    def create_refresh_token(
        self, token: str, user_id: uuid.UUID, expires_at: datetime
    ) -> RefreshTokenRecord: ...

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]: ...

    def revoke_refresh_token(self, token: str) -> bool: ...

    def revoke_user_refresh_tokens(self, user_id: uuid.UUID) -> int: ...


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime
    token_type: str = "bearer"


class AuthService:
    """Login, bearer authorization, refresh and revocation.

    Every client-facing failure is collapsed into :class:`AuthenticationFailure`
    or :class:`AuthorizationFailure`. The precise reason is kept on
    ``exc.cause`` and logged, so an attacker cannot tell an unknown email from
    a wrong password or a forged token from an expired one.

    Store errors (``StoreUnavailable``) are not caught here and reach the
    caller unchanged.
    """

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        *,
        hasher: Optional[PasswordHasher] = None,
        codec: Optional[AccessTokenCodec] = None,
        refresh_issuer: Optional[RefreshTokenIssuer] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.logger = logger
        self.hasher = hasher or PasswordHasher(
            time_cost=settings.password_time_cost,
            memory_cost=settings.password_memory_cost,
            parallelism=settings.password_parallelism,
        )
        self.codec = codec or AccessTokenCodec(
            settings.token_secret,
            issuer=settings.jwt_issuer,
            leeway=settings.clock_skew_leeway,
        )
        self.refresh_issuer = refresh_issuer or RefreshTokenIssuer(
            settings.refresh_token_ttl
        )
        # verified against when the email is unknown so both login failures cost the same
        self._dummy_hash = self.hasher.hash_password(uuid.uuid4().hex)

    def _now(self) -> datetime:
        """Timezone-aware UTC helper to avoid naive datetime usage."""

        return datetime.now(timezone.utc)

    def issue_access_token(self, user_id: uuid.UUID, *, now: Optional[datetime] = None) -> str:
        return self.codec.issue(user_id, self.settings.access_token_ttl, now=now)

    def create_user(self, email: str, password: str) -> User:
        hashed = self.hasher.hash_password(password)
        user = self.store.create_user(email, hashed)
        self.logger.info("user_created", user_id=str(user.id))
        return user

    def login(self, email: str, password: str) -> tuple[User, IssuedTokens]:
        user = self.store.get_user_by_email(email)
        if user is None:
            # burn the same argon2 work as a real check
            self.hasher.verify_password(self._dummy_hash, password)
            self.logger.warning("login_failed", reason=UnknownCredentialError.reason)
            raise AuthenticationFailure(UnknownCredentialError())
        try:
            self.hasher.check_password_hash(user.hashed_password, password)
        except PasswordMismatchError as exc:
            self.logger.warning("login_failed", reason=exc.reason, user_id=str(user.id))
            raise AuthenticationFailure(exc) from exc

        if self.hasher.needs_rehash(user.hashed_password):
            upgraded = self.store.update_user_credentials(
                user.id, user.email, self.hasher.hash_password(password)
            )
            if upgraded is not None:
                user = upgraded
                self.logger.info("password_rehashed", user_id=str(user.id))

        now = self._now()
        access_token = self.issue_access_token(user.id, now=now)
        refresh_token = self.refresh_issuer.mint()
        expires_at = self.refresh_issuer.expires_at(now)
        self.store.create_refresh_token(refresh_token, user.id, expires_at)
        self.logger.info("login_succeeded", user_id=str(user.id))
        return user, IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            refresh_expires_at=expires_at,
        )

    def authorize(self, headers: Mapping[str, str]) -> uuid.UUID:
        """Return the user id carried by the request's access token."""
        try:
            token = get_bearer_token(headers)
            return self.codec.verify(token)
        except CredentialError as exc:
            self.logger.info("authorization_failed", reason=exc.reason)
            raise AuthorizationFailure(exc) from exc

    def _unknown_user(self, user_id: uuid.UUID) -> AuthorizationFailure:
        # a signed token can outlive its user, e.g. after an admin reset
        self.logger.info(
            "authorization_failed", reason=UnknownCredentialError.reason, user_id=str(user_id)
        )
        return AuthorizationFailure(UnknownCredentialError())

    def current_user(self, headers: Mapping[str, str]) -> User:
        user_id = self.authorize(headers)
        user = self.store.get_user(user_id)
        if user is None:
            raise self._unknown_user(user_id)
        return user

    def refresh(self, headers: Mapping[str, str]) -> str:
        """Exchange a bearer refresh token for a new access token.

        The refresh token itself is neither rotated nor extended.
        """
        try:
            token = get_bearer_token(headers)
            record = self.store.get_refresh_token(token)
            if record is None:
                raise UnknownCredentialError()
            self.refresh_issuer.check(record, self._now())
        except CredentialError as exc:
            self.logger.info("refresh_rejected", reason=exc.reason)
            raise AuthorizationFailure(exc) from exc
        return self.issue_access_token(record.user_id)

    def revoke(self, headers: Mapping[str, str]) -> None:
        """Revoke the bearer refresh token. Unknown or revoked tokens are a no-op."""
        try:
            token = get_bearer_token(headers)
        except CredentialError as exc:
            self.logger.info("revoke_rejected", reason=exc.reason)
            raise AuthorizationFailure(exc) from exc
        if not self.store.revoke_refresh_token(token):
            self.logger.info("revoke_unknown_refresh")

    def update_credentials(
        self, headers: Mapping[str, str], email: str, password: str
    ) -> User:
        """Replace the caller's email and password.

        The user's refresh tokens are revoked before the new credentials are
        written. A token whose user no longer exists is unauthorized.
        """
        user_id = self.authorize(headers)
        hashed = self.hasher.hash_password(password)
        revoked = self.store.revoke_user_refresh_tokens(user_id)
        user = self.store.update_user_credentials(user_id, email, hashed)
        if user is None:
            raise self._unknown_user(user_id)
        self.logger.info(
            "credentials_updated", user_id=str(user_id), revoked_refresh=revoked
        )
        return user

    def reset(self) -> int:
        removed = self.store.delete_users()
        self.logger.warning("users_reset", removed=removed)
        return removed
