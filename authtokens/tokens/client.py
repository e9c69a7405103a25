"""TokenAuth: custom token minting and token verification wired from settings."""

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from authtokens.core.clock import Clock, SystemClock
from authtokens.core.errors import InvalidArgumentError
from authtokens.core.http import RetryOptions
from authtokens.core.settings import AuthSettings
from authtokens.crypto.signers import (
    EmulatorSigner,
    FixedAccountIAMSigner,
    IAMSigner,
    ServiceAccountSigner,
    Signer,
)
from authtokens.tokens.public_keys import HttpPublicKeySource, PublicKeySource
from authtokens.tokens.token_factory import CustomTokenFactory
from authtokens.tokens.token_verifier import (
    ID_TOKEN_KEYS_URL,
    SESSION_COOKIE_KEYS_URL,
    TokenVerifier,
    TokenVerifierArgs,
)
from authtokens.tokens.types import DecodedToken
from authtokens.tokens.user_lookup import HttpUserLookup, UserLookup

logger = logging.getLogger(__name__)


def create_signer(settings: AuthSettings, http_client: httpx.AsyncClient) -> Signer:
    """Pick a signer from explicit configuration, most specific first."""
    if settings.emulator:
        return EmulatorSigner()
    if settings.credentials_file:
        return ServiceAccountSigner.from_service_account_file(settings.credentials_file)
    retry_options = RetryOptions(max_retries=settings.max_retries)
    if settings.service_account_id:
        return FixedAccountIAMSigner(
            http_client, settings.service_account_id, retry_options
        )
    return IAMSigner(http_client, retry_options)


class TokenAuth:
    """Mints custom tokens and verifies ID tokens and session cookies.

    Verifiers and the user lookup are created on first use. A tenant-scoped
    instance from ``tenant()`` shares the HTTP client and key caches.
    """

    def __init__(
        self,
        *,
        signer: Signer,
        http_client: httpx.AsyncClient,
        project_id: str = "",
        clock: Clock | None = None,
        tenant_id: str | None = None,
        emulator_host: str = "",
        id_token_keys: PublicKeySource | None = None,
        session_cookie_keys: PublicKeySource | None = None,
        user_lookup: UserLookup | None = None,
        owns_client: bool = False,
    ) -> None:
        self.project_id = project_id
        self.tenant_id = tenant_id
        self.emulator_host = emulator_host
        self._http_client = http_client
        self._owns_client = owns_client
        self._clock = clock or SystemClock()
        self._signer = signer
        self._factory = CustomTokenFactory(signer, self._clock, tenant_id)
        self._id_token_keys = id_token_keys or HttpPublicKeySource(
            ID_TOKEN_KEYS_URL, self._clock, http_client
        )
        self._session_cookie_keys = session_cookie_keys or HttpPublicKeySource(
            SESSION_COOKIE_KEYS_URL, self._clock, http_client
        )
        self._user_lookup = user_lookup
        self._id_token_verifier: TokenVerifier | None = None
        self._session_cookie_verifier: TokenVerifier | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AuthSettings,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
        tenant_id: str | None = None,
    ) -> "TokenAuth":
        owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=settings.http_timeout)
        return cls(
            signer=create_signer(settings, http_client),
            http_client=http_client,
            project_id=settings.project_id,
            clock=clock,
            tenant_id=tenant_id if tenant_id is not None else settings.tenant_id,
            emulator_host=settings.emulator_host.strip(),
            owns_client=owns_client,
        )

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def emulator(self) -> bool:
        return bool(self.emulator_host)

    def tenant(self, tenant_id: str) -> "TokenAuth":
        """Return a client whose tokens are scoped to ``tenant_id``."""
        if not tenant_id:
            raise InvalidArgumentError("Tenant ID must not be empty.")
        return TokenAuth(
            signer=self._signer,
            http_client=self._http_client,
            project_id=self.project_id,
            clock=self._clock,
            tenant_id=tenant_id,
            emulator_host=self.emulator_host,
            id_token_keys=self._id_token_keys,
            session_cookie_keys=self._session_cookie_keys,
        )

    async def create_custom_token(
        self, uid: str, developer_claims: Mapping[str, Any] | None = None
    ) -> str:
        return await self._factory.create_custom_token(uid, developer_claims)

    async def verify_id_token(
        self, id_token: str, check_revoked: bool = False
    ) -> DecodedToken:
        verifier = self._get_id_token_verifier()
        return await verifier.verify_token(
            id_token, check_revoked, self._lookup() if check_revoked else None
        )

    async def verify_session_cookie(
        self, cookie: str, check_revoked: bool = False
    ) -> DecodedToken:
        verifier = self._get_session_cookie_verifier()
        return await verifier.verify_token(
            cookie, check_revoked, self._lookup() if check_revoked else None
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    def _get_id_token_verifier(self) -> TokenVerifier:
        if self._id_token_verifier is None:
            if not self.project_id:
                raise InvalidArgumentError(
                    "Must initialize with a project ID to verify ID tokens."
                )
            self._id_token_verifier = TokenVerifier(
                TokenVerifierArgs.for_id_tokens(
                    self.project_id,
                    self._id_token_keys,
                    clock=self._clock,
                    tenant_id=self.tenant_id,
                    emulator=self.emulator,
                )
            )
        return self._id_token_verifier

    def _get_session_cookie_verifier(self) -> TokenVerifier:
        if self._session_cookie_verifier is None:
            if not self.project_id:
                raise InvalidArgumentError(
                    "Must initialize with a project ID to verify session cookies."
                )
            self._session_cookie_verifier = TokenVerifier(
                TokenVerifierArgs.for_session_cookies(
                    self.project_id,
                    self._session_cookie_keys,
                    clock=self._clock,
                    tenant_id=self.tenant_id,
                    emulator=self.emulator,
                )
            )
        return self._session_cookie_verifier

    def _lookup(self) -> UserLookup:
        if self._user_lookup is None:
            self._user_lookup = HttpUserLookup(
                self._http_client,
                self.project_id,
                tenant_id=self.tenant_id,
                emulator_host=self.emulator_host or None,
            )
            logger.debug("Created user lookup for project %s", self.project_id)
        return self._user_lookup
