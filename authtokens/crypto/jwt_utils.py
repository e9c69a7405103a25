"""Compact JWT serialization helpers."""

import binascii
import json
from typing import TYPE_CHECKING, Any

from jwt.utils import base64url_decode, base64url_encode

if TYPE_CHECKING:
    from authtokens.crypto.signers import Signer


def urlsafe_b64encode(data: bytes) -> str:
    """Base64url-encode bytes without padding."""
    return base64url_encode(data).decode("ascii")


def urlsafe_b64decode(segment: str) -> bytes:
    """Decode an unpadded base64url segment.

    Raises ValueError on malformed input.
    """
    try:
        return base64url_decode(segment.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"Invalid base64url segment: {exc}") from exc


def encode_segment(value: dict[str, Any]) -> str:
    """Serialize a header or payload to its compact JWT segment."""
    raw = json.dumps(value, separators=(",", ":")).encode("utf-8")
    return urlsafe_b64encode(raw)


def decode_segment(segment: str) -> dict[str, Any]:
    """Decode a header or payload segment into a JSON object.

    Raises ValueError when the segment is not base64url-encoded JSON object.
    """
    decoded = json.loads(urlsafe_b64decode(segment).decode("utf-8"))
    if not isinstance(decoded, dict):
        raise ValueError("JWT segment is not a JSON object")
    return decoded


async def create_signed_jwt(
    header: dict[str, Any], payload: dict[str, Any], signer: "Signer"
) -> str:
    """Encode header and payload and append the signer's signature."""
    signing_input = f"{encode_segment(header)}.{encode_segment(payload)}"
    signature = await signer.sign(signing_input.encode("ascii"))
    return f"{signing_input}.{urlsafe_b64encode(signature)}"
