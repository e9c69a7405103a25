"""FastAPI dependencies that authenticate requests with verified tokens."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authtokens.core.errors import (
    AuthError,
    CertificateFetchError,
    InvalidTokenError,
    UnavailableError,
    UserNotFoundError,
)
from authtokens.core.settings import AuthSettings
from authtokens.tokens.client import TokenAuth
from authtokens.tokens.types import DecodedToken

SESSION_COOKIE_NAME = "session"

_security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AuthSettings:
    """The settings the application was created with."""
    return request.app.state.settings


def get_token_auth(request: Request) -> TokenAuth:
    """The TokenAuth instance stored on the application state."""
    return request.app.state.token_auth


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _to_http_error(error: AuthError) -> HTTPException:
    if isinstance(error, (InvalidTokenError, UserNotFoundError)):
        return _unauthorized()
    if isinstance(error, (CertificateFetchError, UnavailableError)):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def require_id_token(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(_security)
    ],
    token_auth: Annotated[TokenAuth, Depends(get_token_auth)],
    settings: Annotated[AuthSettings, Depends(get_settings)],
) -> DecodedToken:
    """Verify the Bearer ID token of the request."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized()
    try:
        return await token_auth.verify_id_token(
            credentials.credentials, check_revoked=settings.check_revoked
        )
    except AuthError as exc:
        raise _to_http_error(exc) from exc


async def require_session_cookie(
    request: Request,
    token_auth: Annotated[TokenAuth, Depends(get_token_auth)],
    settings: Annotated[AuthSettings, Depends(get_settings)],
) -> DecodedToken:
    """Verify the session cookie of the request."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise _unauthorized()
    try:
        return await token_auth.verify_session_cookie(
            cookie, check_revoked=settings.check_revoked
        )
    except AuthError as exc:
        raise _to_http_error(exc) from exc
