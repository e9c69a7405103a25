"""Error taxonomy shared by the signers, key sources and token verifiers."""

from enum import StrEnum

import httpx


class ErrorCode(StrEnum):
    """Platform-level error codes, mirroring the canonical RPC status names."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    ABORTED = "ABORTED"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    CANCELLED = "CANCELLED"
    DATA_LOSS = "DATA_LOSS"
    UNKNOWN = "UNKNOWN"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"


class AuthError(Exception):
    """Base class for every error raised by authtokens.

    The underlying cause, when there is one, is attached with ``raise ... from``
    and is available as ``__cause__``.
    """

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        http_response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.http_response = http_response


class InvalidArgumentError(AuthError, ValueError):
    """Bad input shape, detected before any I/O."""

    default_code = ErrorCode.INVALID_ARGUMENT


class InvalidTokenError(AuthError):
    """Base class for tokens that fail verification."""

    default_code = ErrorCode.INVALID_ARGUMENT


class MalformedTokenError(InvalidTokenError):
    """The token could not be split or decoded."""


class InvalidSignatureError(InvalidTokenError):
    """Missing key id, wrong algorithm, or a signature that does not verify."""


class ExpiredTokenError(InvalidTokenError):
    """The token expired more than the allowed clock skew ago."""


class IssuedInFutureError(InvalidTokenError):
    """The token was issued further in the future than the allowed clock skew."""


class InvalidIssuerError(InvalidTokenError):
    """The iss claim does not name the expected issuer."""


class InvalidAudienceError(InvalidTokenError):
    """The aud claim does not name the expected project."""


class InvalidSubjectError(InvalidTokenError):
    """The sub claim is missing, empty or too long."""


class TenantIdMismatchError(InvalidTokenError):
    """The token belongs to a different tenant than the verifier."""


class CustomTokenGivenError(InvalidTokenError):
    """A custom token was passed where an ID token or session cookie is expected."""


class RevokedTokenError(InvalidTokenError):
    """The token was issued before the user's tokens were revoked."""


class UserNotFoundError(AuthError):
    default_code = ErrorCode.NOT_FOUND


class CertificateFetchError(AuthError):
    """Public keys could not be fetched or parsed."""


class SigningIdentityError(AuthError):
    """The signer could not determine its own key id."""

    default_code = ErrorCode.FAILED_PRECONDITION


class SigningError(AuthError):
    """A remote signing call failed."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        http_response: httpx.Response | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, code=code, http_response=http_response)
        self.retryable = retryable


class UnavailableError(AuthError):
    """A retryable remote failure that persisted after all retries."""

    default_code = ErrorCode.UNAVAILABLE


class InternalError(AuthError):
    default_code = ErrorCode.INTERNAL


class UnknownError(AuthError):
    default_code = ErrorCode.UNKNOWN


def error_for_code(
    code: ErrorCode,
    message: str,
    http_response: httpx.Response | None = None,
) -> AuthError:
    """Build the most specific generic exception for a platform error code."""
    if code == ErrorCode.UNAVAILABLE:
        return UnavailableError(message, http_response=http_response)
    if code == ErrorCode.INTERNAL:
        return InternalError(message, http_response=http_response)
    return UnknownError(message, code=code, http_response=http_response)
