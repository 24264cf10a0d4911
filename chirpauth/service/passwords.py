from __future__ import annotations

from argon2 import PasswordHasher as Argon2Hasher
from argon2 import Type
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from chirpauth.logging import get_logger
from chirpauth.service.errors import (
    HashingFailure,
    PasswordMismatchError,
    ValidationError,
)

logger = get_logger(__name__)


class PasswordHasher:
    """Salted one-way password hashing backed by argon2id.

    Hashes are PHC strings that embed their salt and cost parameters, so a hash
    produced with older parameters still verifies after the configuration
    changes; :meth:`needs_rehash` reports when it should be upgraded.
    """

    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ) -> None:
        self._hasher = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )

    def hash_password(self, plaintext: str) -> str:
        if not plaintext:
            raise ValidationError("password cannot be empty", detail={"field": "password"})
        try:
            return self._hasher.hash(plaintext)
        except HashingError as exc:
            logger.error("password_hash_failed", error=str(exc))
            raise HashingFailure("unable to hash password") from exc

    def check_password_hash(self, password_hash: str, plaintext: str) -> None:
        """Raise :class:`PasswordMismatchError` unless ``plaintext`` matches.

        A wrong password, a corrupt hash and a hash from another algorithm all
        raise the same error.
        """
        try:
            self._hasher.verify(password_hash, plaintext)
        except VerifyMismatchError as exc:
            raise PasswordMismatchError() from exc
        except (InvalidHashError, VerificationError) as exc:
            logger.warning("password_hash_unverifiable", error_type=type(exc).__name__)
            raise PasswordMismatchError() from exc

    def verify_password(self, password_hash: str, plaintext: str) -> bool:
        try:
            self.check_password_hash(password_hash, plaintext)
        except PasswordMismatchError:
            return False
        return True

    def needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except (InvalidHashError, ValueError):
            return True


_default_hasher = PasswordHasher()


def hash_password(plaintext: str) -> str:
    return _default_hasher.hash_password(plaintext)


def check_password_hash(password_hash: str, plaintext: str) -> None:
    _default_hasher.check_password_hash(password_hash, plaintext)
