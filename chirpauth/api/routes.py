from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse

from chirpauth.api.schemas import (
    CreateUserRequest,
    Envelope,
    LoginRequest,
    LoginResponse,
    TokenResponse,
    UpdateUserRequest,
    UserResponse,
)
from chirpauth.logging import get_logger
from chirpauth.service.runtime import get_runtime
from chirpauth.storage.models import User

logger = get_logger(__name__)

router = APIRouter(prefix="/api")
admin_router = APIRouter(prefix="/admin")


def _http_error(
    code: str, message: str, status_code: int, details: Optional[dict | str] = None
) -> HTTPException:
    payload: dict[str, object] = {
        "status": "error",
        "error": {"code": code, "message": message},
    }
    if details is not None:
        payload["error"]["details"] = details  # type: ignore[index]
    return HTTPException(status_code=status_code, detail=payload)


def get_current_user(request: Request) -> User:
    """Resolve the caller from the ``Authorization: Bearer`` access token."""
    return get_runtime().auth.current_user(request.headers)


@router.get("/healthz", response_class=PlainTextResponse, tags=["ops"])
def healthz() -> str:
    return "OK"


@router.post("/users", response_model=Envelope, status_code=201, tags=["users"])
def create_user(body: CreateUserRequest):
    """Register a new user.

    Raises:
        400: If the email or password fails validation
        409: If the email is already registered
    """
    runtime = get_runtime()
    user = runtime.auth.create_user(body.email, body.password)
    return Envelope(status="ok", data=UserResponse.from_user(user))


@router.put("/users", response_model=Envelope, tags=["users"])
def update_user(body: UpdateUserRequest, request: Request):
    """Change the caller's email and password.

    Requires an access token. Every refresh token issued to the user is
    revoked, so other devices must log in again.
    """
    runtime = get_runtime()
    user = runtime.auth.update_credentials(request.headers, body.email, body.password)
    return Envelope(status="ok", data=UserResponse.from_user(user))


@router.post("/login", response_model=Envelope, tags=["auth"])
def login(body: LoginRequest):
    """Authenticate with email and password.

    Returns the user together with a one-hour access token and a refresh token.

    Raises:
        401: If the email is unknown or the password is wrong (same response)
    """
    runtime = get_runtime()
    user, tokens = runtime.auth.login(body.email, body.password)
    data = LoginResponse(
        **UserResponse.from_user(user).model_dump(),
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
    )
    return Envelope(status="ok", data=data)


@router.post("/refresh", response_model=Envelope, tags=["auth"])
def refresh(request: Request):
    """Exchange the bearer refresh token for a new access token."""
    runtime = get_runtime()
    token = runtime.auth.refresh(request.headers)
    return Envelope(status="ok", data=TokenResponse(token=token))


@router.post("/revoke", status_code=204, tags=["auth"])
def revoke(request: Request) -> Response:
    """Revoke the bearer refresh token. Revoking twice is not an error."""
    runtime = get_runtime()
    runtime.auth.revoke(request.headers)
    return Response(status_code=204)


@router.get("/me", response_model=Envelope, tags=["users"])
def whoami(user: User = Depends(get_current_user)):
    return Envelope(status="ok", data=UserResponse.from_user(user))


@admin_router.post("/reset", response_model=Envelope, tags=["admin"])
def reset():
    """Delete every user and refresh token. Only available on the dev platform."""
    runtime = get_runtime()
    if not runtime.settings.is_dev:
        logger.warning("admin_reset_forbidden", platform=runtime.settings.platform)
        raise _http_error("forbidden", "reset is only allowed in dev", status_code=403)
    removed = runtime.auth.reset()
    return Envelope(status="ok", data={"removed_users": removed})
