"""
Authentication session for the core module.

TokenSession logs in against the JWT endpoint, installs the access token as
the transport bearer, renews it shortly before it expires and refreshes it
when a request gets rejected with a 401.

States: ANONYMOUS -> AUTHENTICATED (login), AUTHENTICATED -> REFRESHING
(renewal timer or 401), REFRESHING -> AUTHENTICATED (refresh succeeded),
REFRESHING -> EXPIRED (refresh token rejected), any -> ANONYMOUS (logout).
"""

import asyncio
import logging
import time
from collections.abc import Callable

from .exceptions import ApiError, AuthenticationError, RefreshTokenExpired
from .models import SessionState, TokenPair
from .storage import CredentialStore, MemoryCredentialStore
from .transport import Transport
from .utils import seconds_until_refresh

log = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = 300


class TokenSession:
    def __init__(
        self,
        transport: Transport,
        access_token_endpoint: str,
        refresh_token_endpoint: str,
        credential_store: CredentialStore | None = None,
        access_token_name: str = "access_token",
        refresh_token_name: str = "refresh_token",
        margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.access_token_endpoint = access_token_endpoint
        self.refresh_token_endpoint = refresh_token_endpoint
        self.credential_store = credential_store or MemoryCredentialStore()
        self.access_token_name = access_token_name
        self.refresh_token_name = refresh_token_name
        self.margin = margin
        self.clock = clock
        self.state = SessionState.ANONYMOUS
        self.refresh_token: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._renewal: asyncio.Task | None = None
        self._refreshing: asyncio.Task | None = None
        # bumped by login and logout, a refresh started before is discarded
        self._generation = 0
        transport.recovery_hook = self.recover

    @property
    def access_token(self) -> str | None:
        return self.transport.bearer

    @property
    def tokens(self) -> TokenPair | None:
        if not self.access_token:
            return None
        return TokenPair(self.access_token, self.refresh_token)

    def _install(self, token: str | None, refresh_token: str | None) -> None:
        self.transport.bearer = token
        self.refresh_token = refresh_token
        for name, value in (
            (self.access_token_name, token),
            (self.refresh_token_name, refresh_token),
        ):
            if value:
                self.credential_store.set(name, value)
            else:
                self.credential_store.remove(name)

    async def login(self, credentials: dict) -> dict:
        """
        Perform a login attempt with the given credentials

        Args:
            credentials: e.g. {"email": "foo@bar.com", "password": "secret"}

        Returns:
            The API response, holding `token` and `refresh_token`

        Raises:
            AuthenticationError: the credentials were rejected
        """
        try:
            data = await self.transport.post(
                self.access_token_endpoint, credentials, authenticate=False, retry_auth=False
            )
        except AuthenticationError as e:
            errors = e.detail.get("errors") if isinstance(e.detail, dict) else None
            raise AuthenticationError("Authentication Failure", e.status, errors or e.detail) from e
        self._generation += 1
        self._refreshing = None
        self._install(data["token"], data.get("refresh_token"))
        self.state = SessionState.AUTHENTICATED
        self.schedule_renewal()
        log.info("Logged in against %s", self.access_token_endpoint)
        return data

    async def logout(self) -> None:
        self.cancel_renewal()
        self._generation += 1
        self._refreshing = None
        self._install(None, None)
        self.state = SessionState.ANONYMOUS
        log.info("Logged out")

    async def restore(self) -> bool:
        """Resume the session kept in the credential store, if any."""
        token = self.credential_store.get(self.access_token_name)
        refresh_token = self.credential_store.get(self.refresh_token_name)
        if not token or not refresh_token:
            return False
        self.transport.bearer = token
        self.refresh_token = refresh_token
        if seconds_until_refresh(token, self.margin, self.clock()) <= 0:
            try:
                await self.refresh()
            except RefreshTokenExpired:
                return False
            except ApiError:
                # keep the stored pair for a later attempt
                self.transport.bearer = None
                self.refresh_token = None
                raise
        else:
            self.state = SessionState.AUTHENTICATED
            self.schedule_renewal()
        return True

    async def refresh(self) -> str:
        """
        Refresh both tokens and return the new access token.

        A refresh already in flight is awaited instead of starting a second one.

        Raises:
            RefreshTokenExpired: the refresh token was rejected, the session
                is EXPIRED until the next login
        """
        if self._refreshing is None:
            self._refreshing = asyncio.ensure_future(self._refresh())
            self._refreshing.add_done_callback(self._refresh_done)
        return await asyncio.shield(self._refreshing)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refreshing is task:
            self._refreshing = None

    async def _refresh(self) -> str:
        if not self.refresh_token:
            raise RefreshTokenExpired("No refresh token available")
        generation = self._generation
        previous_state = self.state
        self.state = SessionState.REFRESHING
        self.cancel_renewal()
        try:
            data = await self.transport.post(
                self.refresh_token_endpoint,
                {"refresh_token": self.refresh_token},
                authenticate=False,
                retry_auth=False,
            )
        except AuthenticationError as e:
            if generation == self._generation:
                self._install(None, None)
                self.state = SessionState.EXPIRED
                log.warning("Refresh token rejected, the session has expired")
            raise RefreshTokenExpired("refreshTokenExpired", e.status, e.detail) from e
        except BaseException:
            if generation == self._generation:
                self.state = previous_state
            raise
        if generation != self._generation:
            log.info("Session changed during the token refresh, discarding the new tokens")
            raise RefreshTokenExpired("Session changed during the token refresh")
        self._install(data["token"], data.get("refresh_token", self.refresh_token))
        self.state = SessionState.AUTHENTICATED
        self.schedule_renewal()
        log.info("Access token refreshed")
        return data["token"]

    async def recover(self, stale_token: str | None) -> bool:
        """Recovery hook of the transport, called when a request got a 401."""
        if not self.refresh_token:
            return False
        if stale_token != self.access_token and self.access_token:
            # another request already refreshed the session
            return True
        try:
            await self.refresh()
        except ApiError as e:
            log.warning("Could not recover from a 401: %s", e)
            return False
        return True

    def schedule_renewal(self) -> None:
        """Schedule the next refresh at the access token expiry minus the margin."""
        self.cancel_renewal()
        if not self.access_token:
            return
        delay = max(0.0, seconds_until_refresh(self.access_token, self.margin, self.clock()))
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_renewal_timer)
        log.debug("Token renewal scheduled in %.0f seconds", delay)

    def cancel_renewal(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_renewal_timer(self) -> None:
        self._timer = None
        self._renewal = asyncio.ensure_future(self._renew())

    async def _renew(self) -> None:
        try:
            await self.refresh()
        except ApiError as e:
            log.warning("Scheduled token renewal failed: %s", e)
