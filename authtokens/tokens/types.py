"""Type definitions for token verification and user lookups."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from authtokens.crypto.types import PublicKey


class CachedKeySet(BaseModel):
    """An immutable snapshot of verification keys and when it goes stale."""

    model_config = ConfigDict(frozen=True)

    keys: tuple[PublicKey, ...]
    expires_at: int


class DecodedToken(BaseModel):
    """A verified ID token or session cookie."""

    model_config = ConfigDict(frozen=True)

    uid: str
    iss: str
    aud: str
    iat: int
    exp: int
    tenant_id: str | None = None
    claims: dict[str, Any] = Field(default_factory=dict)


class UserLookupResult(BaseModel):
    """What a revocation check needs to know about a user."""

    uid: str
    exists: bool = True
    valid_since_seconds: int | None = None


class AccountInfo(BaseModel):
    """One user record in an accounts:lookup response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    local_id: str = Field(alias="localId")
    valid_since: int | None = Field(default=None, alias="validSince")


class GetAccountInfoResponse(BaseModel):
    """Body of an accounts:lookup response."""

    users: list[AccountInfo] = Field(default_factory=list)
