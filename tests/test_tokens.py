"""Unit tests for HS256 access token issue/verify."""

import base64
import json
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from chirpauth.service.errors import (
    ExpiredCredentialError,
    MalformedCredentialError,
    SignatureMismatchError,
)
from chirpauth.service.tokens import (
    AccessTokenCodec,
    issue_access_token,
    verify_access_token,
)

SECRET = "unit-test-signing-secret-0123456789abcdef"


def _b64(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _claims(token: str) -> dict:
    segment = token.split(".")[1]
    return json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))


@pytest.fixture
def codec():
    return AccessTokenCodec(SECRET)


@pytest.fixture
def user_id():
    return uuid.uuid4()


class TestIssue:
    def test_round_trip_returns_subject(self, codec, user_id):
        token = codec.issue(user_id, timedelta(hours=1))
        assert codec.verify(token) == user_id

    def test_claims_layout(self, codec, user_id):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        token = codec.issue(user_id, timedelta(hours=1), now=now)

        claims = _claims(token)
        assert list(claims) == ["iss", "sub", "exp", "iat"]
        assert claims["iss"] == "chirpy"
        assert claims["sub"] == str(user_id)
        assert claims["iat"] == int(now.timestamp())
        assert claims["exp"] == int(now.timestamp()) + 3600

    def test_decodes_with_standard_jwt_library(self, codec, user_id):
        token = codec.issue(user_id, timedelta(hours=1))

        decoded = jwt.decode(token, SECRET, algorithms=["HS256"], issuer="chirpy")
        assert decoded["sub"] == str(user_id)
        assert jwt.get_unverified_header(token) == {"alg": "HS256", "typ": "JWT"}

    def test_verifies_tokens_signed_by_standard_jwt_library(self, codec, user_id):
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode(
            {"iss": "chirpy", "sub": str(user_id), "iat": now, "exp": now + 60},
            SECRET,
            algorithm="HS256",
        )
        assert codec.verify(token) == user_id

    def test_empty_secret_is_rejected(self):
        with pytest.raises(ValueError):
            AccessTokenCodec("")


class TestVerify:
    def test_negative_ttl_is_already_expired(self, codec, user_id):
        token = codec.issue(user_id, timedelta(minutes=-5))
        with pytest.raises(ExpiredCredentialError):
            codec.verify(token)

    def test_expiry_is_inclusive_of_exp_second(self, codec, user_id):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        token = codec.issue(user_id, timedelta(seconds=30), now=now)

        assert codec.verify(token, now=now + timedelta(seconds=30)) == user_id
        with pytest.raises(ExpiredCredentialError):
            codec.verify(token, now=now + timedelta(seconds=31))

    def test_leeway_extends_acceptance(self, user_id):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        lenient = AccessTokenCodec(SECRET, leeway=timedelta(seconds=60))
        token = lenient.issue(user_id, timedelta(seconds=10), now=now)

        assert lenient.verify(token, now=now + timedelta(seconds=60)) == user_id

    def test_wrong_secret_is_signature_mismatch(self, codec, user_id):
        token = codec.issue(user_id, timedelta(hours=1))
        other = AccessTokenCodec("a-completely-different-signing-secret")
        with pytest.raises(SignatureMismatchError):
            other.verify(token)

    def test_signature_checked_before_expiry(self, codec, user_id):
        """An expired token signed with another key reports the signature."""
        token = codec.issue(user_id, timedelta(minutes=-5))
        other = AccessTokenCodec("a-completely-different-signing-secret")
        with pytest.raises(SignatureMismatchError):
            other.verify(token)

    def test_tampered_expiry_fails_signature(self, codec, user_id):
        token = codec.issue(user_id, timedelta(minutes=-5))
        header, _, signature = token.split(".")
        claims = _claims(token)
        claims["exp"] += 7200
        forged = f"{header}.{_b64(claims)}.{signature}"

        with pytest.raises(SignatureMismatchError):
            codec.verify(forged)

    @pytest.mark.parametrize("suffix", ["!!!!", "=", "==", "\n", "~"])
    def test_extra_signature_characters_are_rejected(self, codec, user_id, suffix):
        token = codec.issue(user_id, timedelta(hours=1))
        with pytest.raises(SignatureMismatchError):
            codec.verify(token + suffix)

    @pytest.mark.parametrize(
        "token",
        [
            "",
            "abc",
            "a.b",
            "a.b.c.d",
            "!!!.???.***",
            f"{_b64({'alg': 'HS256'})}.bm90LWpzb24.sig",
        ],
    )
    def test_malformed_structure(self, codec, token):
        with pytest.raises(MalformedCredentialError):
            codec.verify(token)

    def test_none_algorithm_is_rejected(self, codec, user_id):
        claims = {"iss": "chirpy", "sub": str(user_id), "exp": 4102444800, "iat": 0}
        token = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64(claims)}."
        with pytest.raises(MalformedCredentialError):
            codec.verify(token)

    def test_wrong_issuer_is_malformed(self, user_id):
        token = AccessTokenCodec(SECRET, issuer="someone-else").issue(
            user_id, timedelta(hours=1)
        )
        with pytest.raises(MalformedCredentialError):
            AccessTokenCodec(SECRET).verify(token)

    def test_non_uuid_subject_is_malformed(self):
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode(
            {"iss": "chirpy", "sub": "walter", "iat": now, "exp": now + 60},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(MalformedCredentialError):
            AccessTokenCodec(SECRET).verify(token)

    def test_missing_expiry_is_malformed(self, user_id):
        token = jwt.encode({"iss": "chirpy", "sub": str(user_id)}, SECRET, algorithm="HS256")
        with pytest.raises(MalformedCredentialError):
            AccessTokenCodec(SECRET).verify(token)


def test_module_helpers_take_secret_per_call():
    user_id = uuid.uuid4()
    token = issue_access_token(user_id, SECRET, timedelta(hours=1))

    assert verify_access_token(token, SECRET) == user_id
    with pytest.raises(SignatureMismatchError):
        verify_access_token(token, "wrong-secret-wrong-secret-wrong-secret")
