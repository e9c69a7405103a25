"""HTTP plumbing: platform error parsing and retrying request dispatch."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from authtokens.core.errors import (
    AuthError,
    ErrorCode,
    UnavailableError,
    UnknownError,
    error_for_code,
)

logger = logging.getLogger(__name__)

RETRY_MAX_DEFAULT = 4
RETRY_MAX_DELAY_DEFAULT = 30.0

HTTP_STATUS_TO_CODE: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_ARGUMENT,
    401: ErrorCode.UNAUTHENTICATED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    412: ErrorCode.FAILED_PRECONDITION,
    416: ErrorCode.OUT_OF_RANGE,
    429: ErrorCode.RESOURCE_EXHAUSTED,
    500: ErrorCode.INTERNAL,
    503: ErrorCode.UNAVAILABLE,
}


class RetryOptions(BaseModel):
    """How failing requests are retried.

    ``max_retries`` counts retries, so the default of 4 allows 5 attempts.
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = RETRY_MAX_DEFAULT
    backoff_factor: float = 1.0
    max_delay: float = RETRY_MAX_DELAY_DEFAULT

    @classmethod
    def no_backoff(cls, max_retries: int = RETRY_MAX_DEFAULT) -> "RetryOptions":
        """Retry immediately, for tests."""
        return cls(max_retries=max_retries, backoff_factor=0.0)

    def backoff_delay(self, retries: int) -> float:
        """Exponential delay before retry number ``retries`` (zero based)."""
        return min(self.backoff_factor * (2**retries), self.max_delay)


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500


def parse_retry_after(response: httpx.Response) -> float | None:
    """Seconds to wait as requested by a Retry-After header, if any."""
    value = response.headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max((when - datetime.now(UTC)).total_seconds(), 0.0)


def parse_platform_error(response: httpx.Response) -> tuple[ErrorCode, str]:
    """Extract an error code and message from a Google-style error body."""
    code = HTTP_STATUS_TO_CODE.get(response.status_code, ErrorCode.UNKNOWN)
    message = (
        f"Unexpected HTTP response with status: {response.status_code}; "
        f"body: {response.text}"
    )
    try:
        parsed = response.json()
    except ValueError:
        return code, message
    error = parsed.get("error") if isinstance(parsed, dict) else None
    if not isinstance(error, dict):
        return code, message
    status = error.get("status")
    if isinstance(status, str) and status in ErrorCode.__members__:
        code = ErrorCode(status)
    if error.get("message"):
        message = str(error["message"])
    return code, message


def transport_error_details(error: httpx.TransportError) -> tuple[ErrorCode, str]:
    """Classify an httpx transport failure."""
    if isinstance(error, httpx.TimeoutException):
        return (
            ErrorCode.DEADLINE_EXCEEDED,
            f"Timed out while making an API call: {error}",
        )
    if isinstance(error, httpx.ConnectError):
        return ErrorCode.UNAVAILABLE, f"Failed to establish a connection: {error}"
    return (
        ErrorCode.UNKNOWN,
        f"Unknown error while making a remote service call: {error}",
    )


class PlatformErrorHandler:
    """Turns failed HTTP exchanges into AuthError instances.

    Subclasses override ``create_error`` to pick the exception type for their
    call site.
    """

    def create_error(
        self,
        code: ErrorCode,
        message: str,
        response: httpx.Response | None,
        retryable: bool,
    ) -> AuthError:
        return error_for_code(code, message, response)

    def handle_response(self, response: httpx.Response) -> AuthError:
        code, message = parse_platform_error(response)
        return self.create_error(
            code, message, response, is_retryable_status(response.status_code)
        )

    def handle_transport_error(self, error: httpx.TransportError) -> AuthError:
        code, message = transport_error_details(error)
        return self.create_error(code, message, None, True)

    def handle_parse_error(
        self, error: ValueError, response: httpx.Response
    ) -> AuthError:
        return UnknownError(
            f"Error while parsing response. {error}: {response.text}",
            http_response=response,
        )


class ErrorHandlingHttpClient:
    """Sends requests through an httpx client, retrying and mapping failures.

    Without ``retry_options`` every failure is raised on the first attempt.
    With them, 5xx responses and transport errors are retried with
    exponential backoff, and a failure that is still retryable after the
    last attempt is raised as UnavailableError.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        error_handler: PlatformErrorHandler,
        retry_options: RetryOptions | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = http_client
        self._handler = error_handler
        self._retry = retry_options
        self._sleep = sleep

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request and return the successful response."""
        retries = 0
        while True:
            try:
                response = await self._client.send(request)
            except httpx.TransportError as exc:
                delay = self._next_delay(retries, None)
                if delay is None:
                    error = self._handler.handle_transport_error(exc)
                    error.__cause__ = exc
                    raise self._final(error)
                logger.warning(
                    "Transport error calling %s, retry %d in %.2fs: %s",
                    request.url,
                    retries + 1,
                    delay,
                    exc,
                )
            else:
                if response.is_success:
                    return response
                if not is_retryable_status(response.status_code):
                    raise self._handler.handle_response(response)
                delay = self._next_delay(retries, response)
                if delay is None:
                    raise self._final(self._handler.handle_response(response))
                logger.warning(
                    "HTTP %d from %s, retry %d in %.2fs",
                    response.status_code,
                    request.url,
                    retries + 1,
                    delay,
                )
            await self._sleep(delay)
            retries += 1

    async def send_json(self, request: httpx.Request) -> tuple[Any, httpx.Response]:
        """Send a request and decode its JSON body."""
        response = await self.send(request)
        try:
            return json.loads(response.text), response
        except ValueError as exc:
            raise self._handler.handle_parse_error(exc, response) from exc

    def _next_delay(
        self, retries: int, response: httpx.Response | None
    ) -> float | None:
        if self._retry is None or retries >= self._retry.max_retries:
            return None
        if response is not None:
            requested = parse_retry_after(response)
            if requested is not None:
                return requested if requested <= self._retry.max_delay else None
        return self._retry.backoff_delay(retries)

    def _final(self, error: AuthError) -> AuthError:
        if self._retry is None:
            return error
        unavailable = UnavailableError(error.message, http_response=error.http_response)
        unavailable.__cause__ = error
        return unavailable
