import asyncio
import json
import logging
from urllib.parse import parse_qsl, urlparse

import aiohttp
import pytest

from api_platform.core.events import EventRouter, Source
from api_platform.core.exceptions import ConfigurationError
from api_platform.core.models import EventEnvelope

from .conftest import BASE_URL, MERCURE_URL

pytestmark = pytest.mark.asyncio


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event: EventEnvelope):
        self.events.append(event)


@pytest.fixture
def router(session):
    return EventRouter(session, MERCURE_URL, BASE_URL, retry_delay=0)


async def test_subscription_url(router):
    router.listen_to([("orders", Recorder()), Source("media_objects", Recorder())])
    url = urlparse(router.url)
    assert f"{url.scheme}://{url.netloc}{url.path}" == MERCURE_URL
    assert parse_qsl(url.query) == [
        ("topic", f"{BASE_URL}/api/orders/{{id}}"),
        ("topic", f"{BASE_URL}/api/media_objects/{{id}}"),
    ]


async def test_register_rejects_duplicates(router):
    router.register("orders", Recorder())
    with pytest.raises(ValueError):
        router.register("orders", Recorder())


@pytest.mark.parametrize("topic", ["", "orders/items"])
async def test_register_rejects_invalid_topic(router, topic):
    with pytest.raises(ValueError):
        router.register(topic, Recorder())


async def test_register_rejects_non_callable(router):
    with pytest.raises(ValueError):
        router.register("orders", "not a handler")


async def test_dispatch_update(router):
    orders = Recorder()
    router.register("orders", orders)
    data = {"@id": "/api/orders/42", "@type": "Order", "total": 12}
    await router.dispatch(json.dumps(data))
    assert orders.events == [EventEnvelope("update", data)]


async def test_dispatch_delete(router):
    orders, customers = Recorder(), Recorder()
    router.listen_to([("orders", orders), ("customers", customers)])
    await router.dispatch('{"@id": "/api/orders/42"}')
    assert orders.events == [EventEnvelope("delete", {"@id": "/api/orders/42"})]
    assert customers.events == []


async def test_dispatch_delete_absolute_iri(router):
    categories = Recorder()
    router.register("categories", categories)
    await router.dispatch(json.dumps({"@id": f"{BASE_URL}/api/categories/3"}))
    assert [event.type for event in categories.events] == ["delete"]


async def test_dispatch_unknown_type(router):
    orders = Recorder()
    router.register("orders", orders)
    await router.dispatch('{"@id": "/api/invoices/1", "@type": "Invoice"}')
    await router.dispatch('{"@id": "/api/invoices/1"}')
    assert orders.events == []


@pytest.mark.parametrize(
    "raw", ["not json", "[1, 2]", '{"total": 12}', '{"@id": 42}', '{"@id": null}']
)
async def test_dispatch_malformed(router, raw):
    orders = Recorder()
    router.register("orders", orders)
    await router.dispatch(raw)
    assert orders.events == []


async def test_dispatch_handler_failure(router, caplog):
    def failing(event):
        raise RuntimeError("boom")

    router.register("orders", failing)
    with caplog.at_level(logging.ERROR):
        await router.dispatch('{"@id": "/api/orders/42", "@type": "Order"}')
    assert "Event handler for Order failed" in caplog.text


async def test_dispatch_async_handler(router):
    received = []

    async def handler(event):
        await asyncio.sleep(0)
        received.append(event.type)

    router.register("orders", handler)
    await router.dispatch('{"@id": "/api/orders/42"}')
    assert received == ["delete"]


async def test_listen(router, rmock):
    received = []

    def handler(event):
        received.append(event)
        if len(received) == 2:
            router.stop()

    router.register("orders", handler)
    body = (
        ": keep-alive\n\n"
        'id: urn:uuid:1\ndata: {"@id": "/api/orders/1", "@type": "Order"}\n\n'
        "id: urn:uuid:2\n"
        'data: {"@id":\n'
        'data: "/api/orders/2"}\n\n'
    )
    rmock.get(router.url, body=body, content_type="text/event-stream")
    await asyncio.wait_for(router.listen(), timeout=1)
    assert [event.type for event in received] == ["update", "delete"]
    assert received[1].data == {"@id": "/api/orders/2"}
    assert router.last_event_id == "urn:uuid:2"


async def test_listen_skips_undecodable_frame(router, rmock):
    received = []

    def handler(event):
        received.append(event)
        router.stop()

    router.register("orders", handler)
    body = b"data: \xff\xfe\n\n" b'data: {"@id": "/api/orders/1"}\n\n'
    rmock.get(router.url, body=body, content_type="text/event-stream")
    await asyncio.wait_for(router.listen(), timeout=1)
    assert [event.data for event in received] == [{"@id": "/api/orders/1"}]


async def test_listen_reconnects(router, rmock, caplog):
    received = []

    def handler(event):
        received.append(event)
        router.stop()

    router.register("orders", handler)
    rmock.get(router.url, exception=aiohttp.ClientConnectionError("connection reset"))
    rmock.get(
        router.url,
        body='retry: 10\ndata: {"@id": "/api/orders/1"}\n\n',
        content_type="text/event-stream",
    )
    with caplog.at_level(logging.ERROR):
        await asyncio.wait_for(router.listen(), timeout=1)
    assert "Event stream error" in caplog.text
    assert [event.type for event in received] == ["delete"]
    assert router.retry_delay == 0.01


async def test_start_and_close(router, rmock):
    router.register("orders", Recorder())
    rmock.get(router.url, body="", content_type="text/event-stream", repeat=True)
    task = router.start()
    await asyncio.sleep(0.01)
    await router.close()
    assert task.done()


async def test_client_listen_to(api):
    router = api.listen_to([("orders", Recorder())])
    assert router.url.startswith(MERCURE_URL)
    assert [entity_type.name for entity_type in router.handlers] == ["Order"]


async def test_client_listen_to_without_hub(api):
    api.mercure_url = ""
    with pytest.raises(ConfigurationError):
        api.listen_to([("orders", Recorder())])
