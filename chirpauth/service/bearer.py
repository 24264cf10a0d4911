from __future__ import annotations

from typing import Mapping, Optional

from chirpauth.service.errors import MissingCredentialError

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "


def _authorization_value(headers: Mapping[str, str]) -> Optional[str]:
    value = headers.get(AUTHORIZATION_HEADER)
    if value is not None:
        return value
    # plain dicts are case-sensitive; Starlette Headers already are not
    target = AUTHORIZATION_HEADER.lower()
    for name, candidate in headers.items():
        if name.lower() == target:
            return candidate
    return None


def get_bearer_token(headers: Mapping[str, str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    The scheme is matched case-sensitively with exactly one separating space.
    Anything else, including an absent header, raises
    :class:`MissingCredentialError`.
    """
    value = _authorization_value(headers)
    if not value or not value.startswith(BEARER_PREFIX):
        raise MissingCredentialError()
    token = value[len(BEARER_PREFIX):]
    if not token or any(ch.isspace() for ch in token):
        raise MissingCredentialError()
    return token
