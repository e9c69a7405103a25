"""Signers that produce key ids and RS256 signatures for custom tokens."""

import asyncio
import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from jwt.algorithms import RSAAlgorithm
from pydantic import ValidationError

from authtokens.core.errors import (
    AuthError,
    ErrorCode,
    InvalidArgumentError,
    SigningError,
    SigningIdentityError,
)
from authtokens.core.http import (
    ErrorHandlingHttpClient,
    PlatformErrorHandler,
    RetryOptions,
)
from authtokens.crypto.keys import load_rsa_private_key
from authtokens.crypto.types import (
    ServiceAccountInfo,
    SignBlobRequest,
    SignBlobResponse,
)

logger = logging.getLogger(__name__)

SIGN_BLOB_URL = (
    "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/{}:signBlob"
)
METADATA_SERVER_URL = (
    "http://metadata.google.internal/computeMetadata/v1/instance/"
    "service-accounts/default/email"
)
EMULATOR_ACCOUNT = "firebase-auth-emulator@example.com"

DISCOVERY_FAILED_MESSAGE = (
    "Failed to determine service account ID. Make sure to initialize the SDK "
    "with service account credentials or specify a service account "
    "ID with iam.serviceAccounts.signBlob permission. Please refer to "
    "https://firebase.google.com/docs/auth/admin/create-custom-tokens for "
    "more details on creating custom tokens."
)


class Signer(ABC):
    """Produces the key id and signatures used to mint custom tokens."""

    algorithm = "RS256"

    @abstractmethod
    async def get_key_id(self) -> str:
        """Return the identity that signs, used as the token's iss and kid."""

    @abstractmethod
    async def sign(self, data: bytes) -> bytes:
        """Sign the given bytes."""


class ServiceAccountSigner(Signer):
    """Signs locally with a service account's RSA private key."""

    def __init__(self, key_id: str, private_key: RSAPrivateKey) -> None:
        if not key_id:
            raise InvalidArgumentError("key_id must not be None or empty.")
        if private_key is None:
            raise InvalidArgumentError("private_key must not be None.")
        self._key_id = key_id
        self._private_key = private_key
        self._rsa = RSAAlgorithm(RSAAlgorithm.SHA256)

    @classmethod
    def from_service_account_info(
        cls, info: Mapping[str, Any]
    ) -> "ServiceAccountSigner":
        """Build a signer from a parsed service-account JSON document."""
        try:
            account = ServiceAccountInfo.model_validate(info)
        except ValidationError as exc:
            raise InvalidArgumentError(
                f"Invalid service account info: {exc}"
            ) from exc
        return cls(account.client_email, load_rsa_private_key(account.private_key))

    @classmethod
    def from_service_account_file(cls, path: str | Path) -> "ServiceAccountSigner":
        """Build a signer from a service-account JSON key file."""
        try:
            info = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise InvalidArgumentError(
                f"Failed to read service account file {path}: {exc}"
            ) from exc
        return cls.from_service_account_info(info)

    async def get_key_id(self) -> str:
        return self._key_id

    async def sign(self, data: bytes) -> bytes:
        return self._rsa.sign(data, self._private_key)


class EmulatorSigner(Signer):
    """Stands in for a real signer when targeting the auth emulator."""

    algorithm = "none"

    async def get_key_id(self) -> str:
        return EMULATOR_ACCOUNT

    async def sign(self, data: bytes) -> bytes:
        return b""


class _SignBlobErrorHandler(PlatformErrorHandler):
    def create_error(
        self,
        code: ErrorCode,
        message: str,
        response: httpx.Response | None,
        retryable: bool,
    ) -> AuthError:
        return SigningError(
            message, code=code, http_response=response, retryable=retryable
        )

    def handle_parse_error(
        self, error: ValueError, response: httpx.Response
    ) -> AuthError:
        return SigningError(
            f"Error while parsing signBlob response. {error}: {response.text}",
            http_response=response,
        )


class _IdentityState(Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class IAMSigner(Signer):
    """Signs through the remote signBlob API.

    The signing identity is discovered from the metadata server on first use
    and memoized. A failed discovery leaves the identity unresolved so the
    next call tries again. ``http_client`` is expected to attach the caller's
    credentials to outgoing requests.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_options: RetryOptions | None = None,
    ) -> None:
        if http_client is None:
            raise InvalidArgumentError("http_client must not be None.")
        self._http_client = http_client
        self._client = ErrorHandlingHttpClient(
            http_client,
            _SignBlobErrorHandler(),
            retry_options if retry_options is not None else RetryOptions(),
        )
        self._state = _IdentityState.UNRESOLVED
        self._key_id: str | None = None
        self._lock = asyncio.Lock()

    async def get_key_id(self) -> str:
        if self._state is _IdentityState.RESOLVED and self._key_id is not None:
            return self._key_id
        async with self._lock:
            if self._state is _IdentityState.RESOLVED and self._key_id is not None:
                return self._key_id
            self._state = _IdentityState.RESOLVING
            try:
                self._key_id = await self._discover_key_id()
            except (httpx.HTTPError, ValueError) as exc:
                raise SigningIdentityError(DISCOVERY_FAILED_MESSAGE) from exc
            finally:
                self._state = (
                    _IdentityState.RESOLVED
                    if self._key_id is not None
                    else _IdentityState.UNRESOLVED
                )
            logger.debug("Discovered signing service account %s", self._key_id)
            return self._key_id

    async def sign(self, data: bytes) -> bytes:
        key_id = await self.get_key_id()
        body = SignBlobRequest(bytes_to_sign=base64.b64encode(data).decode("ascii"))
        request = self._http_client.build_request(
            "POST",
            SIGN_BLOB_URL.format(key_id),
            json=body.model_dump(by_alias=True),
        )
        parsed, response = await self._client.send_json(request)
        try:
            result = SignBlobResponse.model_validate(parsed)
            return base64.b64decode(result.signature, validate=True)
        except (ValidationError, binascii.Error) as exc:
            raise SigningError(
                f"Unexpected signBlob response: {response.text}",
                http_response=response,
            ) from exc

    async def _discover_key_id(self) -> str:
        response = await self._http_client.get(
            METADATA_SERVER_URL, headers={"Metadata-Flavor": "Google"}
        )
        response.raise_for_status()
        key_id = response.text.strip()
        if not key_id:
            raise ValueError("metadata server returned an empty service account")
        return key_id


class FixedAccountIAMSigner(IAMSigner):
    """Remote signer bound to an explicitly configured service account."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        key_id: str,
        retry_options: RetryOptions | None = None,
    ) -> None:
        if not key_id:
            raise InvalidArgumentError("key_id must not be None or empty.")
        super().__init__(http_client, retry_options)
        self._fixed_key_id = key_id

    async def get_key_id(self) -> str:
        return self._fixed_key_id
