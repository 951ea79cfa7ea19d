"""
CRUD operations on a single collection of the API.
"""

import asyncio
import copy
import warnings
from collections.abc import Mapping

from .models import CollectionPage, QueryOptions
from .preprocessors import PreprocessorContext, PreprocessorRegistry
from .preprocessors import registry as default_registry
from .query_builder import build_headers, build_query_string, decode_collection
from .transport import JSON_LD, MERGE_PATCH, Transport
from .utils import now_timestamp, resource_path

# fields managed by the client or the backend, never sent in a write
CLIENT_ONLY_FIELDS = ("@id", "createdAt", "updatedAt")


class ItemsRepository:
    """Performs CRUD operations on the entities of one collection, ie `orders`."""

    def __init__(
        self,
        name: str,
        transport: Transport,
        registry: PreprocessorRegistry | None = None,
        context: PreprocessorContext | None = None,
        soft_deletes: bool = False,
    ):
        self.name = name
        self.transport = transport
        self.registry = registry or default_registry
        self.context = context or PreprocessorContext(transport)
        self.soft_deletes = soft_deletes

    async def get(
        self,
        id: str | None = None,
        filter: dict | None = None,
        sort=None,
        page: int | None = None,
        resolve: list[str] | None = None,
        props: list | None = None,
    ) -> dict | CollectionPage:
        """
        Fetch a single entity if an `id` is given, a page of the collection otherwise.

        Args:
            id: the identifier of the entity to fetch
            filter: mapping of properties to a value, a list of values or
                an operator mapping such as {"gte": 10}
            sort: a Sort, or a dict like {"prop": "createdAt", "order": "desc"}
            page: the 1-based page of the collection
            resolve: deprecated, properties holding IRIs to replace by the
                fetched resources
            props: properties to select, sent in the `props` header

        Returns:
            The entity as returned by the API, or a CollectionPage
        """
        options = QueryOptions(
            id=id, filter=filter, sort=sort, page=page, resolve=resolve, props=props
        )
        qs = build_query_string(options)
        headers = build_headers(options)
        if options.id is not None:
            data = await self.transport.get(f"/api/{self.name}/{options.id}{qs}", headers=headers)
            if options.resolve:
                data = await self._resolve_props(data, options.resolve)
            return data

        envelope = await self.transport.get(f"/api/{self.name}{qs}", headers=headers)
        result = decode_collection(envelope)
        if result.data and options.resolve:
            result.data = list(
                await asyncio.gather(
                    *(self._resolve_props(entry, options.resolve) for entry in result.data)
                )
            )
        return result

    async def _resolve_props(self, entry: dict, props: list[str]) -> dict:
        warnings.warn(
            "The `resolve` option is deprecated, select nested properties with `props` instead",
            DeprecationWarning,
            stacklevel=3,
        )

        async def fetch(value):
            # only IRIs are fetched, expanded objects are kept as they are
            if isinstance(value, str) and value:
                return await self.transport.get(value)
            return value

        async def resolve(prop):
            value = entry[prop]
            if isinstance(value, list):
                entry[prop] = list(await asyncio.gather(*(fetch(v) for v in value)))
            else:
                entry[prop] = await fetch(value)

        await asyncio.gather(*(resolve(prop) for prop in props if prop in entry))
        return entry

    async def _prepare(self, entity: Mapping, preprocessors: Mapping[str, str] | None) -> dict:
        payload = copy.deepcopy(dict(entity))
        for field in CLIENT_ONLY_FIELDS:
            payload.pop(field, None)
        if preprocessors:
            await self.registry.apply(payload, preprocessors, self.context)
        return payload

    async def create(self, entity: Mapping, preprocessors: Mapping[str, str] | None = None) -> dict:
        """POST a new entity, `preprocessors` maps fields to a preprocessor name."""
        payload = await self._prepare(entity, preprocessors)
        return await self.transport.post(
            f"/api/{self.name}",
            payload,
            headers={"Content-Type": JSON_LD, "Accept": JSON_LD},
        )

    async def update(self, entity: Mapping, preprocessors: Mapping[str, str] | None = None) -> dict:
        """PATCH the fields of an existing entity, identified by its `@id`."""
        iri = entity.get("@id")
        if not iri:
            raise ValueError("cannot update an entity without @id")
        payload = await self._prepare(entity, preprocessors)
        return await self._merge_patch(iri, payload)

    async def delete(self, id_or_path):
        """Delete an entity, or mark it as deleted when soft deletes are enabled."""
        url = resource_path(self.name, id_or_path)
        if self.soft_deletes:
            return await self._merge_patch(url, {"deleted": now_timestamp()})
        return await self.transport.delete(url)

    async def archive(self, id_or_path):
        url = resource_path(self.name, id_or_path)
        return await self._merge_patch(url, {"archived": now_timestamp()})

    async def _merge_patch(self, url: str, payload: dict):
        return await self.transport.patch(
            url, payload, headers={"Content-Type": MERGE_PATCH, "Accept": JSON_LD}
        )
