"""Type definitions for signing keys, JWKS documents and remote signing."""

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from pydantic import BaseModel, ConfigDict, Field


class JWKEntry(BaseModel):
    """Single JWK entry in a JWKS response."""

    kty: str = "RSA"
    use: str = "sig"
    alg: str = "RS256"
    kid: str
    n: str
    e: str


class JWKSResponse(BaseModel):
    """JSON Web Key Set response."""

    keys: list[JWKEntry] = []


class PublicKey(BaseModel):
    """A verification key and the id tokens reference it by."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    key: RSAPublicKey


class ServiceAccountInfo(BaseModel):
    """The fields of a service-account JSON key file that signing needs."""

    client_email: str
    private_key: str
    private_key_id: str | None = None
    project_id: str | None = None


class SignBlobRequest(BaseModel):
    """Body of a remote signBlob call."""

    model_config = ConfigDict(populate_by_name=True)

    bytes_to_sign: str = Field(alias="payload")


class SignBlobResponse(BaseModel):
    """Body returned by a remote signBlob call."""

    model_config = ConfigDict(populate_by_name=True)

    key_id: str | None = Field(default=None, alias="keyId")
    signature: str = Field(alias="signedBlob")
