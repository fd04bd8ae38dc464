"""
Shared fixtures: RSA key pairs, settings, in-memory store with a controllable
clock, a mock identity provider key endpoint and a TestClient.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from remauth.config import Settings
from remauth.main import create_app
from remauth.store import MemoryKeyValueStore

IDP_URL = "https://idp.example.com/adauth"
PUBLIC_KEY_URL = "https://idp.example.com/adauth/publickey.pem"


def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem.decode(), public_pem.decode()


TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_test_keys()
OTHER_PRIVATE_KEY, OTHER_PUBLIC_KEY = generate_test_keys()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class KeyEndpoint:
    """Mock transport handler serving the public key and counting requests."""

    def __init__(self, body: bytes = TEST_PUBLIC_KEY.encode(), status_code: int = 200):
        self.body = body
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.body)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def key_endpoint():
    return KeyEndpoint()


@pytest.fixture
def http_client(key_endpoint):
    return httpx.AsyncClient(transport=httpx.MockTransport(key_endpoint))


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        REM_AUTH_ADAUTH_URL=IDP_URL,
        REM_AUTH_ADAUTH_PUBLICKEY_URL=PUBLIC_KEY_URL,
        REM_AUTH_ADAUTH_TARGETNAME="remauth",
        REM_AUTH_ADAUTH_GROUPPREFIX="REM_",
    )


@pytest.fixture
def app(settings, store, http_client):
    return create_app(settings=settings, store=store, http_client=http_client)


@pytest.fixture
def client(app):
    # https so the Secure cookies are sent back
    return TestClient(app, base_url="https://testserver")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build an AD Auth token for ``request_id``."""

    def _make(
        request_id: str,
        *,
        exp_delta: timedelta = timedelta(minutes=5),
        private_key: str = TEST_PRIVATE_KEY,
        **claims,
    ) -> str:
        payload = {
            "nameid": "jdoe",
            "name": "John Doe",
            "email": "jdoe@example.com",
            "groups": "REM_Users,REM_Admins",
            "iss": "adauth",
            "aud": request_id,
            "exp": datetime.now(timezone.utc) + exp_delta,
        }
        payload.update(claims)
        return jwt.encode(payload, private_key, algorithm="RS256")

    return _make


@pytest.fixture
def public_key_pem():
    return TEST_PUBLIC_KEY


@pytest.fixture
def other_private_key():
    return OTHER_PRIVATE_KEY
