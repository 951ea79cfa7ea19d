import json
import time
import uuid

import aiohttp
import jwt
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from aioresponses.core import normalize_url

from api_platform.client import ApiClient
from api_platform.core.storage import MemoryCredentialStore

BASE_URL = "https://api.example.com"
MERCURE_URL = "https://hub.example.com/.well-known/mercure"
LOGIN_URL = f"{BASE_URL}/authentication_token"
REFRESH_URL = f"{BASE_URL}/token_refresh"
ORDER_ID = "0c2c6e4a-5b7f-4a55-9d3b-6f1f1f3e2a10"
ORDER_IRI = f"/api/orders/{ORDER_ID}"


def make_token(expires_in: float = 3600, now: float | None = None, **claims) -> str:
    """Build a JWT, each call gets a distinct token thanks to the jti claim"""
    if now is None:
        now = time.time()
    payload = {"exp": int(now + expires_in), "userId": 7, "jti": str(uuid.uuid4()), **claims}
    return jwt.encode(payload, "secret", algorithm="HS256")


def calls(rmock, method: str, url: str) -> list:
    """Requests sent to `url`, as recorded by aioresponses"""
    return rmock.requests.get((method, normalize_url(url)), [])


def sent_payloads(rmock, method: str, url: str) -> list:
    return [json.loads(call.kwargs["data"]) for call in calls(rmock, method, url)]


@pytest.fixture
def rmock():
    with aioresponses() as m:
        yield m


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest_asyncio.fixture
async def api(session, store):
    client = ApiClient(
        session,
        base_url=BASE_URL,
        mercure_url=MERCURE_URL,
        credential_store=store,
        soft_deletes=False,
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def logged_in(api, rmock):
    """An ApiClient holding a valid token pair"""
    token = make_token()
    rmock.post(LOGIN_URL, payload={"token": token, "refresh_token": "refresh-1"})
    await api.login({"email": "foo@bar.com", "password": "secret"})
    yield api
