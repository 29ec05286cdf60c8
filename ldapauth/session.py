from __future__ import annotations

import asyncio
import functools
import logging
from enum import Enum
from typing import Any, Callable, Optional

from .directory import Credentials, DirectoryClient
from .errors import (
    BindError,
    DirectoryConnectionError,
    InvalidCredentialsError,
    LdapAuthError,
    NotConnectedError,
    RetryAborted,
    ServiceClosedError,
)
from .retry import RetryingConnector, ShutdownToken
from .signals import PROXY_SIGNALS, Signal, SignalHub

log = logging.getLogger(__name__)


class SessionState(str, Enum):
    STARTING = "starting"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting-down"
    CLOSED = "closed"


class AdminSession:
    """Keeps one bound administrative client alive.

    The client reference and the state are only changed here: by the connect
    task, by the disconnect handler and by `close()`. A disconnect signal is
    ignored while a connect sequence is running, after shutdown, and for any
    client that is not the current one, so at most one reconnect runs.
    """

    def __init__(
        self,
        connector: RetryingConnector,
        credentials: Credentials,
        signals: SignalHub | None = None,
        token: ShutdownToken | None = None,
    ) -> None:
        self._connector = connector
        self._credentials = credentials
        self.signals = signals or SignalHub()
        self.token = token or ShutdownToken()

        self._state = SessionState.STARTING
        self._client: DirectoryClient | None = None
        self._connect_task: asyncio.Task | None = None
        self._subscriptions: list[tuple[Signal, Callable[..., Any]]] = []
        self._settled = asyncio.Event()
        self._close_lock = asyncio.Lock()
        self.failure: Optional[BaseException] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def client(self) -> DirectoryClient | None:
        return self._client

    @property
    def connecting(self) -> bool:
        return self._connect_task is not None

    def start(self) -> None:
        """Launch a connect sequence unless one is running or nothing is to be done."""
        if self.connecting or self._client is not None:
            return
        if self.token.is_set or self.failure is not None:
            return
        self._state = SessionState.STARTING
        self._connect_task = asyncio.get_running_loop().create_task(self._connect())

    async def _run_connector(self) -> DirectoryClient:
        # Admin reconnection never gives up: an exhausted finite budget starts a new sequence.
        while True:
            try:
                return await self._connector.connect(self._credentials, self.token)
            except (DirectoryConnectionError, BindError) as e:
                delay = self._connector.backoff.max_delay
                log.error("Admin connect sequence to %s exhausted (%s); restarting in %.1fs",
                          self._connector.params.url, e, delay)
                if await self.token.sleep(delay):
                    raise RetryAborted("shutdown during restart delay") from e

    async def _connect(self) -> None:
        try:
            client = await self._run_connector()
        except RetryAborted:
            log.debug("Admin connect sequence aborted by shutdown")
            return
        except InvalidCredentialsError as e:
            if not self.token.is_set:
                log.error("Admin bind as %s rejected: invalid credentials", self._credentials.dn)
                self._fail(e)
            return
        except Exception as e:
            log.exception("Admin connect sequence crashed")
            self._fail(e)
            return
        finally:
            self._connect_task = None

        if self.token.is_set:
            await self._quiet_unbind(client)
            return
        self._attach(client)

    def _fail(self, exc: BaseException) -> None:
        self.failure = exc
        self._settled.set()
        self.signals.emit(Signal.ERROR, exc)

    def _attach(self, client: DirectoryClient) -> None:
        on_lost = functools.partial(self._handle_disconnect, client)
        subs: list[tuple[Signal, Callable[..., Any]]] = [
            (Signal.ERROR, on_lost),
            (Signal.CLOSE, on_lost),
        ]
        for sig in PROXY_SIGNALS:
            subs.append((sig, functools.partial(self.signals.emit, sig)))
        for sig, cb in subs:
            client.signals.connect(sig, cb)
        self._subscriptions = subs

        self._client = client
        self._state = SessionState.CONNECTED
        self._settled.set()
        log.info("Admin connection to %s bound as %s", self._connector.params.url, self._credentials.dn)
        self.signals.emit(Signal.CONNECT)

    def _detach(self, client: DirectoryClient) -> None:
        for sig, cb in self._subscriptions:
            client.signals.disconnect(sig, cb)
        self._subscriptions = []

    def _handle_disconnect(self, client: DirectoryClient, err: BaseException | None = None) -> None:
        if client is not self._client or self.connecting or self.token.is_set:
            return
        log.warning("Admin LDAP client disconnected (%s); reconnecting", err or "connection closed")
        self._detach(client)
        self._client = None
        self._settled.clear()
        self.start()

    async def _quiet_unbind(self, client: DirectoryClient) -> None:
        try:
            await client.unbind()
        except LdapAuthError as e:
            log.debug("Error unbinding admin client after shutdown (ignoring): %s", e)

    async def wait_until_connected(self, timeout: float | None = None) -> DirectoryClient:
        await asyncio.wait_for(self._settled.wait(), timeout)
        if self.failure is not None:
            raise self.failure
        if self._client is None:
            raise ServiceClosedError("session closed before the admin bind completed")
        return self._client

    def require_client(self) -> DirectoryClient:
        client = self._client
        if client is None:
            if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
                raise ServiceClosedError("admin session is closed")
            raise NotConnectedError("LDAP connection is not yet bound")
        return client

    async def close(self) -> None:
        async with self._close_lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.SHUTTING_DOWN
            self.token.set()
            client, self._client = self._client, None
            self._settled.set()
            if client is not None:
                self._detach(client)
                try:
                    await client.unbind()
                finally:
                    self._state = SessionState.CLOSED
            self._state = SessionState.CLOSED
            log.info("Admin session to %s closed", self._connector.params.url)
            self.signals.emit(Signal.CLOSE)
