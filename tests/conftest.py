"""Shared test fixtures for authtokens."""

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from jwt.algorithms import RSAAlgorithm

from authtokens.crypto.jwt_utils import encode_segment, urlsafe_b64encode
from authtokens.crypto.signers import ServiceAccountSigner
from authtokens.crypto.types import PublicKey

NOW = 1_700_000_000
PROJECT_ID = "test-project"
KEY_ID = "key1"
SERVICE_ACCOUNT = "client@test-project.iam.gserviceaccount.com"


class MockClock:
    """A clock that only moves when told to."""

    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def unix_timestamp(self) -> int:
        return self.now


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ambient credentials and emulator settings out of the tests."""
    for name in (
        "AUTH_PROJECT_ID",
        "GOOGLE_CLOUD_PROJECT",
        "GCLOUD_PROJECT",
        "AUTH_CREDENTIALS_FILE",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "AUTH_EMULATOR_HOST",
        "FIREBASE_AUTH_EMULATOR_HOST",
        "AUTH_SERVICE_ACCOUNT_ID",
        "AUTH_TENANT_ID",
        "AUTH_CHECK_REVOKED",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture(scope="session")
def signing_key() -> RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_signing_key() -> RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_pem(signing_key: RSAPrivateKey) -> str:
    return signing_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_pem(signing_key: RSAPrivateKey) -> str:
    return (
        signing_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture
def public_keys(signing_key: RSAPrivateKey) -> tuple[PublicKey, ...]:
    return (PublicKey(id=KEY_ID, key=signing_key.public_key()),)


@pytest.fixture
def service_account_signer(signing_key: RSAPrivateKey) -> ServiceAccountSigner:
    return ServiceAccountSigner(SERVICE_ACCOUNT, signing_key)


@pytest.fixture
def make_token(signing_key: RSAPrivateKey) -> Callable[..., str]:
    """Build ID tokens for ``PROJECT_ID``, signed with ``signing_key``.

    ``payload`` and ``header`` entries override the defaults, and a value of
    None removes the entry.
    """

    def _make(
        payload: dict[str, Any] | None = None,
        header: dict[str, Any] | None = None,
        key: RSAPrivateKey | None = None,
        issuer: str = "https://securetoken.google.com",
        signed: bool = True,
    ) -> str:
        full_header: dict[str, Any] = {"alg": "RS256", "typ": "JWT", "kid": KEY_ID}
        full_payload: dict[str, Any] = {
            "iss": f"{issuer}/{PROJECT_ID}",
            "aud": PROJECT_ID,
            "sub": "user1",
            "iat": NOW - 60,
            "exp": NOW + 3540,
            "auth_time": NOW - 60,
            "firebase": {"sign_in_provider": "custom"},
        }
        for target, overrides in ((full_header, header), (full_payload, payload)):
            for name, value in (overrides or {}).items():
                if value is None:
                    target.pop(name, None)
                else:
                    target[name] = value
        signing_input = f"{encode_segment(full_header)}.{encode_segment(full_payload)}"
        if not signed:
            return f"{signing_input}."
        signature = RSAAlgorithm(RSAAlgorithm.SHA256).sign(
            signing_input.encode("ascii"), key or signing_key
        )
        return f"{signing_input}.{urlsafe_b64encode(signature)}"

    return _make


@pytest.fixture
async def make_http_client() -> AsyncIterator[Callable[..., httpx.AsyncClient]]:
    """Build httpx clients, optionally routed to a handler, closed at teardown."""
    clients: list[httpx.AsyncClient] = []

    def _make(
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> httpx.AsyncClient:
        transport = httpx.MockTransport(handler) if handler is not None else None
        client = httpx.AsyncClient(transport=transport)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()
