"""Unit tests for argon2id password hashing."""

import pytest

from chirpauth.service.errors import (
    HashingFailure,
    PasswordMismatchError,
    ValidationError,
)
from chirpauth.service.passwords import PasswordHasher


@pytest.fixture
def hasher():
    return PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


class TestHashPassword:
    def test_hash_is_not_plaintext(self, hasher):
        password = "CorrectHorse42"
        digest = hasher.hash_password(password)

        assert digest != password
        assert password not in digest
        assert digest.startswith("$argon2id$")

    def test_same_password_hashes_differently(self, hasher):
        """Random salts make every hash unique, yet both verify."""
        first = hasher.hash_password("CorrectHorse42")
        second = hasher.hash_password("CorrectHorse42")

        assert first != second
        hasher.check_password_hash(first, "CorrectHorse42")
        hasher.check_password_hash(second, "CorrectHorse42")

    def test_empty_password_is_rejected(self, hasher):
        with pytest.raises(ValidationError):
            hasher.hash_password("")

    def test_internal_failure_becomes_hashing_failure(self, hasher, monkeypatch):
        from argon2 import PasswordHasher as Argon2Hasher
        from argon2.exceptions import HashingError

        def boom(self, password, **kwargs):
            raise HashingError("out of memory")

        monkeypatch.setattr(Argon2Hasher, "hash", boom)
        with pytest.raises(HashingFailure):
            hasher.hash_password("CorrectHorse42")


class TestCheckPasswordHash:
    def test_matching_password_passes(self, hasher):
        digest = hasher.hash_password("CorrectHorse42")
        assert hasher.check_password_hash(digest, "CorrectHorse42") is None

    def test_wrong_password_fails(self, hasher):
        digest = hasher.hash_password("CorrectHorse42")
        with pytest.raises(PasswordMismatchError):
            hasher.check_password_hash(digest, "CorrectHorse43")

    @pytest.mark.parametrize(
        "bad_hash",
        ["", "not-a-hash", "$2b$12$abcdefghijklmnopqrstuuF4s3bGq2iYc6Q5yK9t1Gq5xE7aW3yZ."],
    )
    def test_unusable_hash_is_indistinguishable_from_mismatch(self, hasher, bad_hash):
        with pytest.raises(PasswordMismatchError):
            hasher.check_password_hash(bad_hash, "CorrectHorse42")

    def test_verify_password_returns_bool(self, hasher):
        digest = hasher.hash_password("CorrectHorse42")
        assert hasher.verify_password(digest, "CorrectHorse42") is True
        assert hasher.verify_password(digest, "nope") is False


class TestNeedsRehash:
    def test_hash_with_current_parameters_is_fresh(self, hasher):
        digest = hasher.hash_password("CorrectHorse42")
        assert hasher.needs_rehash(digest) is False

    def test_stronger_parameters_flag_old_hash(self, hasher):
        digest = hasher.hash_password("CorrectHorse42")
        stronger = PasswordHasher(time_cost=2, memory_cost=1024, parallelism=1)

        assert stronger.needs_rehash(digest) is True
        # old hashes keep verifying after a parameter change
        stronger.check_password_hash(digest, "CorrectHorse42")
