"""
Mercure event routing for the core module.

One server-sent events stream carries the updates of every subscribed
collection. EventRouter builds the subscription URL, reads the stream and
calls the handler registered for the type of each message.
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from urllib.parse import urlencode

import aiohttp
from aiohttp import ClientSession

from .models import EntityType, EventEnvelope
from .utils import collection_from_iri

log = logging.getLogger(__name__)

Handler = Callable[[EventEnvelope], Awaitable[None] | None]


@dataclass
class Source:
    topic: str
    handler: Handler


class EventRouter:
    def __init__(
        self,
        session: ClientSession,
        hub_url: str,
        base_url: str = "",
        retry_delay: float = 3.0,
    ):
        self.session = session
        self.hub_url = hub_url
        self.base_url = base_url.rstrip("/")
        self.retry_delay = retry_delay
        self.handlers: dict[EntityType, Handler] = {}
        self.topics: list[str] = []
        self.last_event_id: str | None = None
        self._closed = False
        self._task: asyncio.Task | None = None

    def register(self, topic: str, handler: Handler) -> EntityType:
        """Route the messages of the `topic` collection to `handler`."""
        entity_type = EntityType(topic)
        if not callable(handler):
            raise ValueError(f"handler for '{topic}' is not callable")
        if any(known.name == entity_type.name for known in self.handlers):
            raise ValueError(f"a handler is already registered for type '{entity_type.name}'")
        self.handlers[entity_type] = handler
        self.topics.append(f"{self.base_url}/api/{topic}/{{id}}")
        return entity_type

    def listen_to(self, sources: Iterable[Source | tuple[str, Handler]]) -> "EventRouter":
        for source in sources:
            if isinstance(source, Source):
                self.register(source.topic, source.handler)
            else:
                self.register(*source)
        return self

    @property
    def url(self) -> str:
        query = urlencode([("topic", topic) for topic in self.topics])
        separator = "&" if "?" in self.hub_url else "?"
        return f"{self.hub_url}{separator}{query}" if query else self.hub_url

    def handler_for(self, name: str) -> Handler | None:
        for entity_type, handler in self.handlers.items():
            if entity_type.name == name:
                return handler
        return None

    async def dispatch(self, raw: str) -> None:
        """Route a single message, never raises."""
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("Ignoring malformed event: %r", raw)
            return
        if not isinstance(data, dict):
            log.warning("Ignoring malformed event: %r", raw)
            return

        if data.get("@type"):
            name = data["@type"]
            envelope = EventEnvelope("update", data)
        else:
            # without a type, the message is a deletion
            iri = data.get("@id")
            collection = collection_from_iri(iri) if isinstance(iri, str) else None
            if collection is None:
                log.warning("Ignoring event without @type nor @id: %r", raw)
                return
            name = EntityType(collection).name
            envelope = EventEnvelope("delete", data)

        handler = self.handler_for(name)
        if handler is None:
            log.debug("No handler registered for type %s", name)
            return
        try:
            result = handler(envelope)
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("Event handler for %s failed", name)

    async def _read_stream(self, res: aiohttp.ClientResponse) -> None:
        data: list[str] = []
        async for raw_line in res.content:
            line = raw_line.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                # a blank line ends the event
                if data:
                    await self.dispatch("\n".join(data))
                data = []
                if self._closed:
                    return
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "data":
                data.append(value)
            elif field == "id":
                self.last_event_id = value
            elif field == "retry" and value.isdigit():
                self.retry_delay = int(value) / 1000
        if data:
            await self.dispatch("\n".join(data))

    async def listen(self) -> None:
        """Read the stream until close() is called, reconnecting when it drops."""
        if not self.handlers:
            raise ValueError("no handler registered")
        self._closed = False
        while not self._closed:
            headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
            if self.last_event_id:
                headers["Last-Event-ID"] = self.last_event_id
            try:
                async with self.session.get(
                    self.url, headers=headers, timeout=aiohttp.ClientTimeout(total=None)
                ) as res:
                    res.raise_for_status()
                    await self._read_stream(res)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.error("Event stream error: %s", e)
            if self._closed:
                break
            log.info("Event stream closed, reconnecting in %s seconds", self.retry_delay)
            await asyncio.sleep(self.retry_delay)

    def start(self) -> asyncio.Task:
        self._task = asyncio.ensure_future(self.listen())
        return self._task

    def stop(self) -> None:
        """Stop listening once the current event has been dispatched."""
        self._closed = True

    async def close(self) -> None:
        self.stop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
