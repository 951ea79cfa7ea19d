import pytest

from api_platform.client import ApiClient
from api_platform.core.exceptions import AuthenticationError, ConfigurationError

from .conftest import BASE_URL, MERCURE_URL, make_token

pytestmark = pytest.mark.asyncio


async def test_create_entity():
    entity = ApiClient.create_entity("orders", {"total": 12})
    assert entity["@id"] == f"/api/orders/{entity['id']}"
    assert entity["total"] == 12
    assert ApiClient.create_entity("orders")["id"] != entity["id"]


async def test_me(api, rmock):
    api.transport.bearer = make_token(userId=7)
    rmock.get(f"{BASE_URL}/api/users/7", payload={"@id": "/api/users/7", "email": "foo@bar.com"})
    assert (await api.me())["email"] == "foo@bar.com"


async def test_me_anonymous(api):
    with pytest.raises(AuthenticationError):
        await api.me()


async def test_items(api):
    api.soft_deletes = True
    orders = api.items("orders")
    assert orders.name == "orders"
    assert orders.soft_deletes is True
    assert orders.transport is api.transport
    assert orders.context.media_collection == "media_objects"


async def test_own_session(rmock):
    async with ApiClient(base_url=BASE_URL) as client:
        rmock.get(f"{BASE_URL}/api/orders", payload={"member": [], "totalItems": 0})
        result = await client.items("orders").get()
        assert result.data == []
        session = client.session
    assert session.closed
    assert client.session is None


async def test_without_session(rmock):
    client = ApiClient(base_url=BASE_URL, mercure_url=MERCURE_URL)
    with pytest.raises(ConfigurationError):
        await client.items("orders").get()
    with pytest.raises(ConfigurationError):
        client.listen_to([("orders", lambda event: None)])
    assert not rmock.requests
