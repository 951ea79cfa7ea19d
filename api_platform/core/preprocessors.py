"""
Preprocessors applied to the fields of a payload before it is written.

A preprocessor is an async function `(value, context) -> value` registered
under a name. `ItemsRepository.create` and `update` take a mapping of field
names to preprocessor names and replace each field by the resolved value.
"""

import asyncio
import base64
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .storage import MediaStorage
from .transport import JSON_LD, MERGE_PATCH, Transport

# fields computed by the backend, it refuses them in a PATCH
SERVER_MANAGED_FIELDS = ("contentUrl", "createdAt", "updatedAt")


@dataclass
class PreprocessorContext:
    transport: Transport
    media_collection: str = "media_objects"
    media_storage: MediaStorage | None = None
    media_bucket: str = "media"


Preprocessor = Callable[[Any, PreprocessorContext], Awaitable[Any]]


class PreprocessorRegistry:
    def __init__(self):
        self.preprocessors: dict[str, Preprocessor] = {}

    def register(self, *names: str):
        """Decorator registering a preprocessor under one or several names."""

        def decorator(func: Preprocessor) -> Preprocessor:
            for name in names:
                self.preprocessors[name] = func
            return func

        return decorator

    def get(self, name: str) -> Preprocessor:
        try:
            return self.preprocessors[name]
        except KeyError:
            raise ValueError(f"unknown preprocessor '{name}'") from None

    def copy(self) -> "PreprocessorRegistry":
        registry = PreprocessorRegistry()
        registry.preprocessors.update(self.preprocessors)
        return registry

    async def apply(
        self, payload: dict, preprocessors: Mapping[str, str], context: PreprocessorContext
    ) -> dict:
        """
        Resolve the configured fields of `payload` in place, concurrently.

        Fields missing from the payload are left out. Unknown preprocessor
        names are rejected before any request is sent.
        The first failing field makes the whole call fail.
        """
        funcs = {prop: self.get(name) for prop, name in preprocessors.items()}
        props = [prop for prop in funcs if prop in payload]
        values = await asyncio.gather(
            *(funcs[prop](payload.get(prop), context) for prop in props)
        )
        payload.update(zip(props, values))
        return payload


registry = PreprocessorRegistry()


async def upload_media(value: Mapping, context: PreprocessorContext) -> str:
    media = {"id": str(uuid.uuid4()), "caption": value.get("caption"), "sort": value.get("sort")}
    if context.media_storage is not None:
        content = base64.b64decode(value["base64"].split(",")[-1])
        media.update(
            await context.media_storage.upload(context.media_bucket, media["id"], content)
        )
    else:
        media["base64"] = value["base64"]
    data = await context.transport.post(
        f"/api/{context.media_collection}",
        media,
        headers={"Content-Type": JSON_LD, "Accept": JSON_LD},
    )
    return data["@id"]


async def patch_media(value: Mapping, context: PreprocessorContext) -> str:
    iri = value.get("@id")
    if not iri:
        raise ValueError("a media object without base64 data must have an @id")
    payload = {key: item for key, item in value.items() if key not in SERVER_MANAGED_FIELDS}
    await context.transport.patch(
        iri, payload, headers={"Content-Type": MERGE_PATCH, "Accept": JSON_LD}
    )
    return iri


async def resolve_media(value, context: PreprocessorContext):
    if isinstance(value, Mapping):
        if value.get("base64"):
            return await upload_media(value, context)
        return await patch_media(value, context)
    return value


@registry.register("mediaObject", "media_object")
async def media_object(value, context: PreprocessorContext):
    """Replace inline media objects by the IRI of the persisted resource."""
    if isinstance(value, (list, tuple)):
        return list(await asyncio.gather(*(resolve_media(item, context) for item in value)))
    return await resolve_media(value, context)
