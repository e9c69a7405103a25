"""Looks up user records for revocation checks."""

from abc import ABC, abstractmethod

import httpx
from pydantic import ValidationError

from authtokens.core.errors import (
    AuthError,
    ErrorCode,
    InvalidArgumentError,
    UnknownError,
    UserNotFoundError,
    error_for_code,
)
from authtokens.core.http import ErrorHandlingHttpClient, PlatformErrorHandler
from authtokens.tokens.types import GetAccountInfoResponse, UserLookupResult

ID_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

# Auth service error codes and the message they are reported with.
_AUTH_ERRORS: dict[str, tuple[ErrorCode, str]] = {
    "USER_NOT_FOUND": (
        ErrorCode.NOT_FOUND,
        "No user record found for the given identifier",
    ),
    "TENANT_NOT_FOUND": (
        ErrorCode.NOT_FOUND,
        "No tenant found for the given identifier",
    ),
    "CONFIGURATION_NOT_FOUND": (
        ErrorCode.NOT_FOUND,
        "No identity provider configuration found for the given identifier",
    ),
}


class UserLookup(ABC):
    @abstractmethod
    async def lookup_user(self, uid: str) -> UserLookupResult:
        """Return what is known about ``uid``."""


def split_auth_error(message: str | None) -> tuple[str, str | None]:
    """Split an auth service message of the form ``CODE: detail``."""
    if not message:
        return "", None
    code, sep, detail = message.partition(":")
    if not sep:
        return message, None
    return code.strip(), detail.strip() or None


def _auth_error_message(response: httpx.Response) -> str | None:
    try:
        parsed = response.json()
    except ValueError:
        return None
    error = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


class _AuthErrorHandler(PlatformErrorHandler):
    def handle_response(self, response: httpx.Response) -> AuthError:
        auth_code, detail = split_auth_error(_auth_error_message(response))
        known = _AUTH_ERRORS.get(auth_code)
        if known is None:
            return super().handle_response(response)
        code, message = known
        message = f"{message} ({auth_code})"
        message = f"{message}: {detail}" if detail else f"{message}."
        if auth_code == "USER_NOT_FOUND":
            return UserNotFoundError(message, code=code, http_response=response)
        return error_for_code(code, message, response)

    def handle_parse_error(
        self, error: ValueError, response: httpx.Response
    ) -> AuthError:
        return UnknownError(
            f"Error while parsing Auth service response. {error}: {response.text}",
            http_response=response,
        )


class HttpUserLookup(UserLookup):
    """Fetches user records from the accounts:lookup endpoint.

    Requests go straight to the emulator when ``emulator_host`` is set.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        project_id: str,
        tenant_id: str | None = None,
        emulator_host: str | None = None,
    ) -> None:
        if http_client is None:
            raise InvalidArgumentError("http_client must not be None.")
        if not project_id:
            raise InvalidArgumentError("project_id must not be None or empty.")
        if tenant_id == "":
            raise InvalidArgumentError("Tenant ID must not be empty.")
        self._http_client = http_client
        self._client = ErrorHandlingHttpClient(http_client, _AuthErrorHandler())
        self.url = _lookup_url(project_id, tenant_id, emulator_host)

    async def lookup_user(self, uid: str) -> UserLookupResult:
        if not uid:
            raise InvalidArgumentError("uid must not be None or empty")
        request = self._http_client.build_request(
            "POST", self.url, json={"localId": [uid]}
        )
        body, response = await self._client.send_json(request)
        try:
            parsed = GetAccountInfoResponse.model_validate(body)
        except ValidationError as exc:
            raise UnknownError(
                f"Error while parsing Auth service response. {response.text}",
                http_response=response,
            ) from exc
        if not parsed.users:
            return UserLookupResult(uid=uid, exists=False)
        return UserLookupResult(
            uid=parsed.users[0].local_id,
            valid_since_seconds=parsed.users[0].valid_since,
        )


def _lookup_url(
    project_id: str, tenant_id: str | None, emulator_host: str | None
) -> str:
    base = ID_TOOLKIT_URL
    if emulator_host:
        base = f"http://{emulator_host}/identitytoolkit.googleapis.com/v1"
    url = f"{base}/projects/{project_id}"
    if tenant_id is not None:
        url = f"{url}/tenants/{tenant_id}"
    return f"{url}/accounts:lookup"
