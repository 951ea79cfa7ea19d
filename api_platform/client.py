"""
Entry point of the API client.

The application builds one ApiClient and passes it to the code that needs to
talk to the backend; it owns the transport and the authentication session
shared by the repositories it hands out.
"""

import uuid
from collections.abc import Iterable

import aiohttp

from api_platform import config
from api_platform.core.events import EventRouter, Source
from api_platform.core.exceptions import AuthenticationError, ConfigurationError
from api_platform.core.items import ItemsRepository
from api_platform.core.preprocessors import PreprocessorContext, PreprocessorRegistry
from api_platform.core.preprocessors import registry as default_registry
from api_platform.core.sentry import init_sentry
from api_platform.core.session import TokenSession
from api_platform.core.storage import CredentialStore, MediaStorage
from api_platform.core.transport import Transport
from api_platform.core.utils import token_claims


def _option(value, default):
    return default if value is None else value


class ApiClient:
    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        base_url: str | None = None,
        access_token_endpoint: str | None = None,
        refresh_token_endpoint: str | None = None,
        mercure_url: str | None = None,
        users_entity: str | None = None,
        access_token_user_id_key: str | None = None,
        soft_deletes: bool | None = None,
        refresh_margin: float | None = None,
        credential_store: CredentialStore | None = None,
        media_storage: MediaStorage | None = None,
        registry: PreprocessorRegistry | None = None,
    ):
        """
        Every option defaults to the matching config value, ie `base_url` to
        `config.BASE_URL`. A session is created when none is given, and
        closed by `close()`.
        """
        init_sentry()
        self._own_session = session is None
        self.session = session
        self.base_url = _option(base_url, config.BASE_URL).rstrip("/")
        self.mercure_url = _option(mercure_url, config.MERCURE_URL)
        self.users_entity = _option(users_entity, config.USERS_ENTITY)
        self.access_token_user_id_key = _option(
            access_token_user_id_key, config.ACCESS_TOKEN_USER_ID_KEY
        )
        self.soft_deletes = _option(soft_deletes, config.SOFT_DELETES)
        self.registry = registry or default_registry
        self.media_storage = media_storage
        self.transport = Transport(session, self.base_url, config.REQUEST_TIMEOUT)
        self.auth = TokenSession(
            self.transport,
            _option(access_token_endpoint, config.ACCESS_TOKEN_ENDPOINT),
            _option(refresh_token_endpoint, config.REFRESH_TOKEN_ENDPOINT),
            credential_store=credential_store,
            access_token_name=config.ACCESS_TOKEN_COOKIE_NAME,
            refresh_token_name=config.REFRESH_TOKEN_COOKIE_NAME,
            margin=_option(refresh_margin, config.REFRESH_MARGIN),
        )

    async def __aenter__(self) -> "ApiClient":
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self.transport.session = self.session
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        self.auth.cancel_renewal()
        if self._own_session and self.session is not None:
            await self.session.close()
            self.session = None

    def items(self, name: str) -> ItemsRepository:
        """Returns a repository performing CRUD operations on a collection, ie `orders`"""
        context = PreprocessorContext(
            self.transport,
            media_collection=config.MEDIA_OBJECTS_COLLECTION,
            media_storage=self.media_storage,
            media_bucket=config.MEDIA_BUCKET,
        )
        return ItemsRepository(
            name,
            self.transport,
            registry=self.registry,
            context=context,
            soft_deletes=self.soft_deletes,
        )

    @staticmethod
    def create_entity(name: str, data: dict | None = None) -> dict:
        """Returns a new entity of the `name` collection, with a fresh id and @id"""
        id = str(uuid.uuid4())
        return {"id": id, "@id": f"/api/{name}/{id}", **(data or {})}

    async def login(self, credentials: dict) -> dict:
        return await self.auth.login(credentials)

    async def logout(self) -> None:
        await self.auth.logout()

    async def me(self) -> dict:
        """Fetches the user the access token was issued for"""
        if not self.auth.access_token:
            raise AuthenticationError("Not logged in")
        user_id = token_claims(self.auth.access_token)[self.access_token_user_id_key]
        return await self.transport.get(f"/api/{self.users_entity}/{user_id}")

    def listen_to(self, sources: Iterable[Source | tuple]) -> EventRouter:
        """
        Register handlers for the Mercure events of several collections

        Args:
            sources: Source objects or (topic, handler) tuples, ie
                ("orders", handler); handlers receive an EventEnvelope

        Returns:
            The EventRouter, call `start()` or await `listen()` on it
        """
        if not self.mercure_url:
            raise ConfigurationError(
                "You need to provide the URL to the event server via `mercure_url` "
                "in order to use listeners."
            )
        if self.session is None:
            raise ConfigurationError(
                "No HTTP session, pass one to ApiClient or use it as `async with ApiClient()`"
            )
        router = EventRouter(
            self.session, self.mercure_url, self.base_url, retry_delay=config.EVENT_RETRY_DELAY
        )
        return router.listen_to(sources)
