"""Sources of public keys used to verify token signatures."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

import httpx
from pydantic import ValidationError

from authtokens.core.clock import Clock
from authtokens.core.errors import (
    AuthError,
    CertificateFetchError,
    ErrorCode,
    InvalidArgumentError,
)
from authtokens.core.http import ErrorHandlingHttpClient, PlatformErrorHandler
from authtokens.crypto.keys import jwk_entry_to_public_key, load_rsa_public_key
from authtokens.crypto.types import JWKSResponse, PublicKey
from authtokens.tokens.types import CachedKeySet

logger = logging.getLogger(__name__)

_MAX_AGE = re.compile(
    r"(?:^|,)\s*max-age\s*=\s*\"?(\d+)\"?\s*(?:,|$)", re.IGNORECASE
)


class PublicKeySource(ABC):
    """Supplies the current set of verification keys."""

    @abstractmethod
    async def get_public_keys(self) -> tuple[PublicKey, ...]:
        """Return an immutable snapshot of the current keys."""


class StaticPublicKeySource(PublicKeySource):
    """A fixed, pre-provisioned key set."""

    def __init__(self, keys: Iterable[PublicKey]) -> None:
        self._keys = tuple(keys)

    @classmethod
    def from_pem_keys(cls, pem_keys: Mapping[str, str]) -> "StaticPublicKeySource":
        """Build a key set from PEM public keys indexed by key id."""
        return cls(
            PublicKey(id=kid, key=load_rsa_public_key(pem))
            for kid, pem in pem_keys.items()
        )

    async def get_public_keys(self) -> tuple[PublicKey, ...]:
        return self._keys


def parse_max_age(cache_control: str | None) -> int:
    """Return the max-age directive in seconds, or 0 when absent."""
    if not cache_control:
        return 0
    match = _MAX_AGE.search(cache_control)
    return int(match.group(1)) if match else 0


class _KeyFetchErrorHandler(PlatformErrorHandler):
    def create_error(
        self,
        code: ErrorCode,
        message: str,
        response: httpx.Response | None,
        retryable: bool,
    ) -> AuthError:
        if response is None:
            message = f"Failed to retrieve latest public keys. {message}"
        return CertificateFetchError(message, code=code, http_response=response)

    def handle_parse_error(
        self, error: ValueError, response: httpx.Response
    ) -> AuthError:
        return CertificateFetchError(
            f"Failed to parse certificate response: {response.text}.",
            http_response=response,
        )


class HttpPublicKeySource(PublicKeySource):
    """Fetches a JWKS document over HTTP and caches it per Cache-Control.

    The cached set is an immutable snapshot replaced wholesale after each
    successful fetch. A response without a max-age directive is not cached.
    """

    def __init__(
        self, url: str, clock: Clock, http_client: httpx.AsyncClient
    ) -> None:
        if not url:
            raise InvalidArgumentError("url must not be None or empty.")
        if clock is None:
            raise InvalidArgumentError("clock must not be None.")
        if http_client is None:
            raise InvalidArgumentError("http_client must not be None.")
        self._url = url
        self._clock = clock
        self._http_client = http_client
        self._client = ErrorHandlingHttpClient(http_client, _KeyFetchErrorHandler())
        self._cached: CachedKeySet | None = None
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return self._url

    async def get_public_keys(self) -> tuple[PublicKey, ...]:
        cached = self._cached
        if cached is None or self._clock.unix_timestamp() >= cached.expires_at:
            async with self._lock:
                cached = self._cached
                now = self._clock.unix_timestamp()
                if cached is None or now >= cached.expires_at:
                    cached = await self._fetch(now)
                    self._cached = cached
        return cached.keys

    async def _fetch(self, now: int) -> CachedKeySet:
        request = self._http_client.build_request("GET", self._url)
        body, response = await self._client.send_json(request)
        try:
            jwks = JWKSResponse.model_validate(body)
        except ValidationError as exc:
            raise CertificateFetchError(
                f"Failed to parse certificate response: {response.text}.",
                http_response=response,
            ) from exc
        if not jwks.keys:
            raise CertificateFetchError(
                "No public keys present in the response.", http_response=response
            )
        try:
            keys = tuple(jwk_entry_to_public_key(entry) for entry in jwks.keys)
        except InvalidArgumentError as exc:
            raise CertificateFetchError(
                f"Failed to parse public key from certificate response: {exc}",
                http_response=response,
            ) from exc
        max_age = parse_max_age(response.headers.get("Cache-Control"))
        logger.debug(
            "Fetched %d public keys from %s, cached for %ds",
            len(keys),
            self._url,
            max_age,
        )
        return CachedKeySet(keys=keys, expires_at=now + max_age)
