"""Tests for the compact JWT codec."""

import pytest

from authtokens.crypto.jwt_utils import (
    create_signed_jwt,
    decode_segment,
    encode_segment,
    urlsafe_b64decode,
    urlsafe_b64encode,
)
from authtokens.crypto.signers import EmulatorSigner, ServiceAccountSigner


class TestSegments:
    """Tests for base64url segments."""

    def test_no_padding(self) -> None:
        assert urlsafe_b64encode(b"a") == "YQ"
        assert urlsafe_b64decode("YQ") == b"a"

    def test_url_safe_alphabet(self) -> None:
        encoded = urlsafe_b64encode(b"\xfb\xff")
        assert "+" not in encoded
        assert "/" not in encoded

    def test_compact_json(self) -> None:
        segment = encode_segment({"alg": "RS256", "typ": "JWT"})
        assert urlsafe_b64decode(segment) == b'{"alg":"RS256","typ":"JWT"}'

    def test_decode_segment(self) -> None:
        assert decode_segment(encode_segment({"a": 1})) == {"a": 1}

    def test_decode_rejects_non_object(self) -> None:
        with pytest.raises(ValueError):
            decode_segment(urlsafe_b64encode(b"[1, 2]"))

    def test_decode_rejects_non_json(self) -> None:
        with pytest.raises(ValueError):
            decode_segment(urlsafe_b64encode(b"not json"))

    def test_decode_rejects_bad_base64(self) -> None:
        with pytest.raises(ValueError):
            urlsafe_b64decode("é")


class TestCreateSignedJwt:
    """Tests for assembling signed tokens."""

    async def test_three_segments_with_signature(
        self, service_account_signer: ServiceAccountSigner
    ) -> None:
        token = await create_signed_jwt(
            {"alg": "RS256"}, {"a": 1}, service_account_signer
        )
        header, payload, signature = token.split(".")
        assert decode_segment(header) == {"alg": "RS256"}
        assert decode_segment(payload) == {"a": 1}
        assert signature

    async def test_empty_signature_keeps_trailing_dot(self) -> None:
        token = await create_signed_jwt({"alg": "none"}, {"a": 1}, EmulatorSigner())
        assert token.count(".") == 2
        assert token.endswith(".")
