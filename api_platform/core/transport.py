"""
HTTP transport for the core module.

Wraps an aiohttp ClientSession: prefixes the backend URL, carries the default
bearer header, maps unsuccessful responses to ApiError subclasses and replays
a request once after the session recovered from a 401.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

import aiohttp
from aiohttp import ClientSession

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    handle_exception,
)
from .version import get_app_version

log = logging.getLogger(__name__)

JSON_LD = "application/ld+json"
MERGE_PATCH = "application/merge-patch+json"

# called with the bearer token of the rejected request, returns whether to replay it
RecoveryHook = Callable[[str | None], Awaitable[bool]]


class Transport:
    def __init__(
        self, session: ClientSession | None, base_url: str = "", timeout: float | None = None
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None
        self.headers: dict[str, str] = {"User-Agent": f"api-platform-client/{get_app_version()}"}
        self.recovery_hook: RecoveryHook | None = None
        self._bearer: str | None = None

    @property
    def bearer(self) -> str | None:
        return self._bearer

    @bearer.setter
    def bearer(self, token: str | None) -> None:
        """Sets the token to be used. Pass None to delete the Authorization header"""
        self._bearer = token or None
        if self._bearer:
            self.headers["Authorization"] = f"Bearer {self._bearer}"
        else:
            self.headers.pop("Authorization", None)

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        payload=None,
        headers: dict[str, str] | None = None,
        authenticate: bool = True,
        retry_auth: bool = True,
    ):
        """
        Send a request and return its decoded JSON body.

        Args:
            method: the HTTP verb
            path: a path on the backend (or an absolute URL)
            payload: JSON serializable body
            headers: extra headers for this request only
            authenticate: send the bearer token, if any
            retry_auth: on a 401, let the recovery hook refresh the session
                and replay the request once

        Returns:
            The decoded body, None for empty responses

        Raises:
            ApiError: the matching subclass for unsuccessful responses
        """
        token = self._bearer if authenticate else None
        try:
            return await self._send(method, path, payload, headers, authenticate)
        except AuthenticationError:
            if not retry_auth or self.recovery_hook is None:
                raise
            if not await self.recovery_hook(token):
                raise
            log.debug("Replaying %s %s after session recovery", method, path)
            return await self._send(method, path, payload, headers, authenticate)

    async def _send(self, method, path, payload, headers, authenticate):
        if self.session is None:
            raise ConfigurationError(
                "No HTTP session, pass one to ApiClient or use it as `async with ApiClient()`"
            )
        request_headers = dict(self.headers)
        if not authenticate:
            request_headers.pop("Authorization", None)
        if headers:
            request_headers.update(headers)
        data = None
        if payload is not None:
            data = json.dumps(payload)
            request_headers.setdefault("Content-Type", "application/json")
        url = self.url(path)
        options = {"timeout": self.timeout} if self.timeout else {}
        try:
            async with self.session.request(
                method, url, data=data, headers=request_headers, **options
            ) as res:
                body = await self._read_body(res)
                if not res.ok:
                    handle_exception(res.status, body, url)
                return body
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

    async def _read_body(self, res: aiohttp.ClientResponse):
        text = await res.text()
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            if res.ok:
                raise
            # error pages are not always JSON
            return text

    async def get(self, path: str, **kwargs):
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, payload=None, **kwargs):
        return await self.request("POST", path, payload, **kwargs)

    async def patch(self, path: str, payload=None, **kwargs):
        return await self.request("PATCH", path, payload, **kwargs)

    async def delete(self, path: str, **kwargs):
        return await self.request("DELETE", path, **kwargs)
