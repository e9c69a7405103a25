"""PEM loading and JWK conversion for RSA keys."""

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from jwt.algorithms import RSAAlgorithm
from jwt.exceptions import InvalidKeyError

from authtokens.core.errors import InvalidArgumentError
from authtokens.crypto.types import JWKEntry, PublicKey


def load_rsa_private_key(private_key_pem: str) -> RSAPrivateKey:
    """Parse an unencrypted PEM RSA private key."""
    try:
        loaded = serialization.load_pem_private_key(
            private_key_pem.encode(), password=None
        )
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"Failed to load private key: {exc}") from exc
    if not isinstance(loaded, RSAPrivateKey):
        raise InvalidArgumentError("Private key must be an RSA key.")
    return loaded


def load_rsa_public_key(public_key_pem: str) -> RSAPublicKey:
    try:
        loaded = serialization.load_pem_public_key(public_key_pem.encode())
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"Failed to load public key: {exc}") from exc
    if not isinstance(loaded, RSAPublicKey):
        raise InvalidArgumentError("Public key must be an RSA key.")
    return loaded


def jwk_entry_to_public_key(entry: JWKEntry) -> PublicKey:
    """Convert a JWK entry into a verification key."""
    try:
        key = RSAAlgorithm.from_jwk(entry.model_dump())
    except (InvalidKeyError, ValueError) as exc:
        raise InvalidArgumentError(f"Invalid JWK {entry.kid}: {exc}") from exc
    if not isinstance(key, RSAPublicKey):
        raise InvalidArgumentError(f"JWK {entry.kid} is not an RSA public key.")
    return PublicKey(id=entry.kid, key=key)
