"""Custom token creation."""

import json
from collections.abc import Mapping
from typing import Any

from authtokens.core.clock import Clock
from authtokens.core.errors import InvalidArgumentError
from authtokens.crypto.jwt_utils import create_signed_jwt
from authtokens.crypto.signers import Signer

CUSTOM_TOKEN_AUDIENCE = (
    "https://identitytoolkit.googleapis.com/"
    "google.identity.identitytoolkit.v1.IdentityToolkit"
)
TOKEN_DURATION_SECONDS = 3600
MAX_UID_LENGTH = 128

RESERVED_CLAIMS = frozenset(
    {
        "acr",
        "amr",
        "at_hash",
        "aud",
        "auth_time",
        "azp",
        "cnf",
        "c_hash",
        "exp",
        "firebase",
        "iat",
        "iss",
        "jti",
        "nbf",
        "nonce",
        "sub",
        "uid",
    }
)


class CustomTokenFactory:
    """Mints custom tokens that clients exchange for a session.

    When ``tenant_id`` is set, every token is scoped to that tenant.
    """

    def __init__(
        self, signer: Signer, clock: Clock, tenant_id: str | None = None
    ) -> None:
        if signer is None:
            raise InvalidArgumentError("signer must not be None.")
        if clock is None:
            raise InvalidArgumentError("clock must not be None.")
        if tenant_id == "":
            raise InvalidArgumentError("Tenant ID must not be empty.")
        self.signer = signer
        self.tenant_id = tenant_id
        self._clock = clock

    async def create_custom_token(
        self, uid: str, developer_claims: Mapping[str, Any] | None = None
    ) -> str:
        """Build and sign a custom token for ``uid``."""
        if not uid or not isinstance(uid, str):
            raise InvalidArgumentError("uid must not be None or empty")
        if len(uid) > MAX_UID_LENGTH:
            raise InvalidArgumentError(
                f"uid must not be longer than {MAX_UID_LENGTH} characters"
            )
        claims = _validate_claims(developer_claims)

        key_id = await self.signer.get_key_id()
        header = {"alg": self.signer.algorithm, "typ": "JWT", "kid": key_id}
        issued = self._clock.unix_timestamp()
        payload: dict[str, Any] = {
            "iss": key_id,
            "sub": key_id,
            "aud": CUSTOM_TOKEN_AUDIENCE,
            "iat": issued,
            "exp": issued + TOKEN_DURATION_SECONDS,
            "uid": uid,
        }
        if claims:
            payload["claims"] = claims
        if self.tenant_id is not None:
            payload["tenant_id"] = self.tenant_id
        return await create_signed_jwt(header, payload, self.signer)


def _validate_claims(developer_claims: Mapping[str, Any] | None) -> dict[str, Any]:
    if developer_claims is None:
        return {}
    if not isinstance(developer_claims, Mapping):
        raise InvalidArgumentError("developer claims must be a mapping")
    for key in developer_claims:
        if key in RESERVED_CLAIMS:
            raise InvalidArgumentError(
                f"reserved claim {key} not allowed in developer claims"
            )
    claims = dict(developer_claims)
    try:
        json.dumps(claims)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(
            f"developer claims must be JSON serializable: {exc}"
        ) from exc
    return claims
