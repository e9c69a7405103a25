"""Tests for custom token minting."""

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from authtokens.core.errors import InvalidArgumentError
from authtokens.crypto.jwt_utils import decode_segment
from authtokens.crypto.signers import (
    EMULATOR_ACCOUNT,
    EmulatorSigner,
    ServiceAccountSigner,
)
from authtokens.tokens.token_factory import (
    CUSTOM_TOKEN_AUDIENCE,
    RESERVED_CLAIMS,
    CustomTokenFactory,
)

SERVICE_ACCOUNT = "client@test-project.iam.gserviceaccount.com"


def _decode(token: str, signing_key: RSAPrivateKey) -> dict:
    return jwt.decode(
        token,
        signing_key.public_key(),
        algorithms=["RS256"],
        audience=CUSTOM_TOKEN_AUDIENCE,
        options={"verify_exp": False},
    )


@pytest.fixture
def factory(service_account_signer: ServiceAccountSigner, clock) -> CustomTokenFactory:
    return CustomTokenFactory(service_account_signer, clock)


class TestCreateCustomToken:
    """Tests for token contents and signing."""

    async def test_user1_with_claims(
        self, factory: CustomTokenFactory, clock, signing_key: RSAPrivateKey
    ) -> None:
        claims = {"admin": True, "package": "gold", "magicNumber": 42}
        token = await factory.create_custom_token("user1", claims)
        header = jwt.get_unverified_header(token)
        assert header == {"alg": "RS256", "typ": "JWT", "kid": SERVICE_ACCOUNT}
        payload = _decode(token, signing_key)
        assert payload == {
            "iss": SERVICE_ACCOUNT,
            "sub": SERVICE_ACCOUNT,
            "aud": CUSTOM_TOKEN_AUDIENCE,
            "iat": clock.now,
            "exp": clock.now + 3600,
            "uid": "user1",
            "claims": claims,
        }

    async def test_no_claims_field_without_claims(
        self, factory: CustomTokenFactory, signing_key: RSAPrivateKey
    ) -> None:
        payload = _decode(await factory.create_custom_token("user2"), signing_key)
        assert "claims" not in payload
        assert "tenant_id" not in payload

    async def test_empty_claims_are_omitted(
        self, factory: CustomTokenFactory, signing_key: RSAPrivateKey
    ) -> None:
        payload = _decode(await factory.create_custom_token("user2", {}), signing_key)
        assert "claims" not in payload

    async def test_max_length_uid(
        self, factory: CustomTokenFactory, signing_key: RSAPrivateKey
    ) -> None:
        uid = "u" * 128
        payload = _decode(await factory.create_custom_token(uid), signing_key)
        assert payload["uid"] == uid

    async def test_tenant_id(
        self,
        service_account_signer: ServiceAccountSigner,
        clock,
        signing_key: RSAPrivateKey,
    ) -> None:
        factory = CustomTokenFactory(service_account_signer, clock, tenant_id="t1")
        payload = _decode(await factory.create_custom_token("user1"), signing_key)
        assert payload["tenant_id"] == "t1"

    async def test_emulator_token_is_unsigned(self, clock) -> None:
        factory = CustomTokenFactory(EmulatorSigner(), clock)
        token = await factory.create_custom_token("user1")
        header, payload, signature = token.split(".")
        assert signature == ""
        assert decode_segment(header) == {
            "alg": "none",
            "typ": "JWT",
            "kid": EMULATOR_ACCOUNT,
        }
        assert decode_segment(payload)["iss"] == EMULATOR_ACCOUNT


class TestValidation:
    """Tests for rejected inputs."""

    @pytest.mark.parametrize("uid", ["", None, 42])
    async def test_empty_or_non_string_uid(
        self, factory: CustomTokenFactory, uid
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="uid must not be None or empty"):
            await factory.create_custom_token(uid)

    async def test_uid_too_long(self, factory: CustomTokenFactory) -> None:
        with pytest.raises(
            InvalidArgumentError, match="uid must not be longer than 128 characters"
        ):
            await factory.create_custom_token("u" * 129)

    @pytest.mark.parametrize("claim", sorted(RESERVED_CLAIMS))
    async def test_reserved_claims(self, factory: CustomTokenFactory, claim) -> None:
        with pytest.raises(InvalidArgumentError) as exc_info:
            await factory.create_custom_token("user1", {claim: "value"})
        assert exc_info.value.message == (
            f"reserved claim {claim} not allowed in developer claims"
        )

    async def test_non_serializable_claims(self, factory: CustomTokenFactory) -> None:
        with pytest.raises(InvalidArgumentError, match="JSON serializable"):
            await factory.create_custom_token("user1", {"when": object()})

    async def test_validation_happens_before_signing(self, clock) -> None:
        class ExplodingSigner(EmulatorSigner):
            async def get_key_id(self) -> str:
                raise AssertionError("signer must not be called")

        factory = CustomTokenFactory(ExplodingSigner(), clock)
        with pytest.raises(InvalidArgumentError):
            await factory.create_custom_token("user1", {"sub": "x"})

    def test_rejects_empty_tenant(
        self, service_account_signer: ServiceAccountSigner, clock
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="Tenant ID must not be empty."):
            CustomTokenFactory(service_account_signer, clock, tenant_id="")

    def test_rejects_missing_collaborators(
        self, service_account_signer: ServiceAccountSigner, clock
    ) -> None:
        with pytest.raises(InvalidArgumentError):
            CustomTokenFactory(None, clock)  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            CustomTokenFactory(service_account_signer, None)  # type: ignore[arg-type]
