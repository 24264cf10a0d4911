from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from chirpauth.logging import get_logger
from chirpauth.service.errors import (
    ExpiredCredentialError,
    MalformedCredentialError,
    SignatureMismatchError,
)

logger = get_logger(__name__)

DEFAULT_ISSUER = "chirpy"
_HEADER = {"alg": "HS256", "typ": "JWT"}


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode((segment + padding).encode("ascii"))


def _decode_json_segment(segment: str) -> dict[str, Any]:
    try:
        value = json.loads(_decode_segment(segment))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise MalformedCredentialError("token segment is not valid base64url JSON") from exc
    if not isinstance(value, dict):
        raise MalformedCredentialError("token segment is not a JSON object")
    return value


class AccessTokenCodec:
    """Issue and verify HS256-signed compact JWT access tokens.

    The codec holds no mutable state: the secret, issuer and clock-skew leeway
    are fixed at construction and safe to share across threads.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = DEFAULT_ISSUER,
        leeway: timedelta = timedelta(0),
    ) -> None:
        if not secret:
            raise ValueError("token secret cannot be empty")
        self._key = secret.encode("utf-8")
        self.issuer = issuer
        self.leeway = leeway

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _sign(self, signing_input: str) -> bytes:
        return hmac.new(self._key, signing_input.encode("ascii"), hashlib.sha256).digest()

    def issue(
        self,
        subject: uuid.UUID,
        ttl: timedelta,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        """Return a signed token for ``subject`` expiring ``ttl`` from ``now``.

        A negative ``ttl`` produces a token that is already expired.
        """
        issued_at = now or self._now()
        claims = {
            "iss": self.issuer,
            "sub": str(subject),
            "exp": int((issued_at + ttl).timestamp()),
            "iat": int(issued_at.timestamp()),
        }
        header_enc = _encode_segment(json.dumps(_HEADER, separators=(",", ":")).encode())
        claims_enc = _encode_segment(json.dumps(claims, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{claims_enc}"
        return f"{signing_input}.{_encode_segment(self._sign(signing_input))}"

    def verify(self, token: str, *, now: Optional[datetime] = None) -> uuid.UUID:
        """Return the subject of a valid token.

        Checks run in a fixed order: structure, then signature, then claims,
        then expiry. A token signed with another secret is reported as a
        signature mismatch even when it has also expired.
        """
        try:
            header_b64, claims_b64, sig_b64 = token.split(".")
        except ValueError as exc:
            raise MalformedCredentialError("token must have three segments") from exc

        header = _decode_json_segment(header_b64)
        if header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm", alg=str(header.get("alg")))
            raise MalformedCredentialError("unsupported token algorithm")
        claims = _decode_json_segment(claims_b64)

        # compare the encoded form; the decoder tolerates stray characters
        expected = _encode_segment(self._sign(f"{header_b64}.{claims_b64}"))
        if not hmac.compare_digest(expected.encode("ascii"), sig_b64.encode("utf-8")):
            raise SignatureMismatchError()

        if claims.get("iss") != self.issuer:
            raise MalformedCredentialError("unexpected token issuer")
        try:
            subject = uuid.UUID(str(claims["sub"]))
        except (KeyError, ValueError) as exc:
            raise MalformedCredentialError("token subject is not a user id") from exc
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise MalformedCredentialError("token expiry is missing")

        current = now or self._now()
        if current.timestamp() > exp + self.leeway.total_seconds():
            raise ExpiredCredentialError()
        return subject


def issue_access_token(subject: uuid.UUID, secret: str, ttl: timedelta) -> str:
    return AccessTokenCodec(secret).issue(subject, ttl)


def verify_access_token(token: str, secret: str) -> uuid.UUID:
    return AccessTokenCodec(secret).verify(token)
