"""Verification of ID tokens and session cookies."""

import logging
from typing import Any

from jwt.algorithms import RSAAlgorithm
from pydantic import BaseModel, ConfigDict

from authtokens.core.clock import Clock, SystemClock
from authtokens.core.errors import (
    CustomTokenGivenError,
    ExpiredTokenError,
    InvalidArgumentError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidSubjectError,
    IssuedInFutureError,
    MalformedTokenError,
    RevokedTokenError,
    TenantIdMismatchError,
    UserNotFoundError,
)
from authtokens.crypto.jwt_utils import decode_segment, urlsafe_b64decode
from authtokens.tokens.public_keys import PublicKeySource
from authtokens.tokens.token_factory import CUSTOM_TOKEN_AUDIENCE
from authtokens.tokens.types import DecodedToken
from authtokens.tokens.user_lookup import UserLookup

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 300
MAX_SUBJECT_LENGTH = 128

ID_TOKEN_KEYS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)
ID_TOKEN_ISSUER = "https://securetoken.google.com"
SESSION_COOKIE_KEYS_URL = (
    "https://identitytoolkit.googleapis.com/v1/sessionCookiePublicKeys"
)
SESSION_COOKIE_ISSUER = "https://session.firebase.google.com"

STANDARD_CLAIMS = ("iss", "aud", "exp", "iat", "sub", "uid")


class TokenVerifierArgs(BaseModel):
    """Everything a TokenVerifier needs to know about one kind of token."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    project_id: str = ""
    short_name: str = ""
    operation: str = ""
    url: str = ""
    issuer: str = ""
    clock: Clock | None = None
    public_key_source: PublicKeySource | None = None
    tenant_id: str | None = None
    emulator: bool = False

    @classmethod
    def for_id_tokens(
        cls,
        project_id: str,
        public_key_source: PublicKeySource,
        clock: Clock | None = None,
        tenant_id: str | None = None,
        emulator: bool = False,
    ) -> "TokenVerifierArgs":
        return cls(
            project_id=project_id,
            short_name="ID token",
            operation="verify_id_token()",
            url="https://firebase.google.com/docs/auth/admin/verify-id-tokens",
            issuer=ID_TOKEN_ISSUER,
            clock=clock or SystemClock(),
            public_key_source=public_key_source,
            tenant_id=tenant_id,
            emulator=emulator,
        )

    @classmethod
    def for_session_cookies(
        cls,
        project_id: str,
        public_key_source: PublicKeySource,
        clock: Clock | None = None,
        tenant_id: str | None = None,
        emulator: bool = False,
    ) -> "TokenVerifierArgs":
        return cls(
            project_id=project_id,
            short_name="session cookie",
            operation="verify_session_cookie()",
            url="https://firebase.google.com/docs/auth/admin/manage-cookies",
            issuer=SESSION_COOKIE_ISSUER,
            clock=clock or SystemClock(),
            public_key_source=public_key_source,
            tenant_id=tenant_id,
            emulator=emulator,
        )


def _require(value: str, name: str) -> str:
    if not value:
        raise InvalidArgumentError(f"{name} must not be None or empty.")
    return value


class TokenVerifier:
    """Checks the structure, signature and claims of a signed token.

    Checks run in a fixed order and the first failure is raised. Emulator
    verifiers accept unsigned tokens (``alg: none``) and skip the key id and
    signature checks.
    """

    def __init__(self, args: TokenVerifierArgs) -> None:
        self.project_id = _require(args.project_id, "project_id")
        self.short_name = _require(args.short_name, "short_name")
        self.operation = _require(args.operation, "operation")
        self.url = _require(args.url, "url")
        self.issuer = _require(args.issuer, "issuer")
        if args.clock is None:
            raise InvalidArgumentError("clock must not be None.")
        if args.public_key_source is None:
            raise InvalidArgumentError("public_key_source must not be None.")
        if args.tenant_id == "":
            raise InvalidArgumentError("Tenant ID must not be empty.")
        self.tenant_id = args.tenant_id
        self.emulator = args.emulator
        self._clock = args.clock
        self._key_source = args.public_key_source
        self._rsa = RSAAlgorithm(RSAAlgorithm.SHA256)

        article = "an" if self.short_name[0].lower() in "aeiou" else "a"
        self._articled_short_name = f"{article} {self.short_name}"

    @property
    def expected_algorithm(self) -> str:
        return "none" if self.emulator else "RS256"

    async def verify_token(
        self,
        token: str,
        check_revoked: bool = False,
        user_lookup: UserLookup | None = None,
    ) -> DecodedToken:
        """Verify ``token`` and return its decoded claims.

        With ``check_revoked`` set, ``user_lookup`` is consulted after the
        signature is verified to reject tokens of deleted users and tokens
        issued before the user's last revocation.
        """
        if check_revoked and user_lookup is None:
            raise InvalidArgumentError(
                "user_lookup must be provided when check_revoked is set."
            )
        segments, header, payload, signature = self._decode(token)
        self._check_header(header, payload)
        self._check_claims(payload)
        if not self.emulator:
            await self._verify_signature(segments, header["kid"], signature)

        decoded = DecodedToken(
            uid=payload["sub"],
            iss=payload["iss"],
            aud=payload["aud"],
            iat=payload["iat"],
            exp=payload["exp"],
            tenant_id=_tenant_of(payload),
            claims={k: v for k, v in payload.items() if k not in STANDARD_CLAIMS},
        )
        if check_revoked:
            await self._check_revoked(decoded, user_lookup)
        return decoded

    def _decode(
        self, token: str
    ) -> tuple[list[str], dict[str, Any], dict[str, Any], bytes]:
        if not token or not isinstance(token, str):
            raise MalformedTokenError(
                f"{self.short_name[0].upper()}{self.short_name[1:]} "
                "must not be None or empty."
            )
        segments = token.split(".")
        if len(segments) != 3:
            raise MalformedTokenError(
                f"Incorrect number of segments in {self.short_name}."
            )
        try:
            header = decode_segment(segments[0])
            payload = decode_segment(segments[1])
            signature = urlsafe_b64decode(segments[2])
        except ValueError as exc:
            raise MalformedTokenError(
                f"Failed to decode {self.short_name}: {exc}"
            ) from exc
        return segments, header, payload, signature

    def _check_header(self, header: dict[str, Any], payload: dict[str, Any]) -> None:
        if not self.emulator and not header.get("kid"):
            if payload.get("aud") == CUSTOM_TOKEN_AUDIENCE:
                raise self._custom_token_error()
            if header.get("alg") == "HS256":
                raise self._custom_token_error(legacy=True)
            raise InvalidSignatureError(
                f"Firebase {self.short_name} has no 'kid' claim."
            )
        algorithm = header.get("alg")
        if algorithm != self.expected_algorithm:
            raise InvalidSignatureError(
                f"Firebase {self.short_name} has incorrect algorithm. Expected "
                f"{self.expected_algorithm} but got {algorithm}. "
                f"{self._verify_token_message}"
            )

    def _check_claims(self, payload: dict[str, Any]) -> None:
        audience = payload.get("aud")
        if audience == CUSTOM_TOKEN_AUDIENCE:
            raise self._custom_token_error()

        issued_at = self._timestamp_claim(payload, "iat")
        expires_at = self._timestamp_claim(payload, "exp")
        now = self._clock.unix_timestamp()
        if expires_at + CLOCK_SKEW_SECONDS < now:
            raise ExpiredTokenError(
                f"Firebase {self.short_name} expired at {expires_at}. "
                f"Expected to be greater than {now}."
            )
        if issued_at - CLOCK_SKEW_SECONDS > now:
            raise IssuedInFutureError(
                f"Firebase {self.short_name} issued at future timestamp "
                f"{issued_at}. Expected to be less than {now}."
            )

        expected_issuer = f"{self.issuer}/{self.project_id}"
        if payload.get("iss") != expected_issuer:
            raise InvalidIssuerError(
                f"Firebase {self.short_name} has incorrect issuer (iss) claim. "
                f"Expected {expected_issuer} but got {payload.get('iss')}. "
                f"{self._project_id_message} {self._verify_token_message}"
            )
        if audience != self.project_id:
            raise InvalidAudienceError(
                f"Firebase {self.short_name} has incorrect audience (aud) claim. "
                f"Expected {self.project_id} but got {audience}. "
                f"{self._project_id_message} {self._verify_token_message}"
            )

        subject = payload.get("sub")
        if not subject or not isinstance(subject, str):
            raise InvalidSubjectError(
                f"Firebase {self.short_name} has no or empty subject (sub) claim."
            )
        if len(subject) > MAX_SUBJECT_LENGTH:
            raise InvalidSubjectError(
                f"Firebase {self.short_name} has a subject claim longer than "
                f"{MAX_SUBJECT_LENGTH} characters."
            )

        if self.tenant_id is not None and _tenant_of(payload) != self.tenant_id:
            raise TenantIdMismatchError(
                f"Firebase {self.short_name} has incorrect tenant ID."
            )

    async def _verify_signature(
        self, segments: list[str], key_id: str, signature: bytes
    ) -> None:
        signing_input = f"{segments[0]}.{segments[1]}".encode("ascii")
        keys = await self._key_source.get_public_keys()
        for key in keys:
            if key.id == key_id and self._rsa.verify(signing_input, key.key, signature):
                return
        raise InvalidSignatureError(f"Failed to verify {self.short_name} signature.")

    async def _check_revoked(
        self, decoded: DecodedToken, user_lookup: UserLookup
    ) -> None:
        user = await user_lookup.lookup_user(decoded.uid)
        if not user.exists:
            raise UserNotFoundError(
                "No user record found for the given identifier (USER_NOT_FOUND)."
            )
        if (
            user.valid_since_seconds is not None
            and user.valid_since_seconds >= decoded.iat
        ):
            logger.info(
                "Rejected revoked %s for uid %s", self.short_name, decoded.uid
            )
            raise RevokedTokenError(f"Firebase {self.short_name} has been revoked.")

    def _timestamp_claim(self, payload: dict[str, Any], name: str) -> int:
        value = payload.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedTokenError(
                f"Firebase {self.short_name} has no or invalid {name} claim."
            )
        return value

    def _custom_token_error(self, legacy: bool = False) -> CustomTokenGivenError:
        kind = "legacy custom token" if legacy else "custom token"
        return CustomTokenGivenError(
            f"{self.operation} expects {self._articled_short_name}, but was given "
            f"a {kind}."
        )

    @property
    def _project_id_message(self) -> str:
        return (
            f"Make sure the {self.short_name} comes from the same project as the "
            "credential used to initialize this client."
        )

    @property
    def _verify_token_message(self) -> str:
        return (
            f"See {self.url} for details on how to retrieve "
            f"{self._articled_short_name}."
        )


def _tenant_of(payload: dict[str, Any]) -> str | None:
    firebase = payload.get("firebase")
    if isinstance(firebase, dict):
        tenant = firebase.get("tenant")
        return tenant if isinstance(tenant, str) else None
    return None
