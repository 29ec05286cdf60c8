from __future__ import annotations

import asyncio
import functools
import logging
import socket
from concurrent.futures import Executor
from typing import Any, Callable, Optional, Protocol

from ldap3 import ALL_ATTRIBUTES, NONE, SAFE_SYNC, SIMPLE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import (
    LDAPCommunicationError,
    LDAPException,
    LDAPResponseTimeoutError,
    LDAPSocketOpenError,
)
from ldap3.core.results import RESULT_INVALID_CREDENTIALS

from ..errors import (
    BindError,
    ConnectTimeoutError,
    DirectoryConnectionError,
    InvalidCredentialsError,
    NotConnectedError,
    SearchError,
    ValidationError,
)
from ..signals import Signal, SignalHub
from .models import ConnectionParams, DirectoryEntry, SearchResult
from .utils import flatten_attributes

log = logging.getLogger(__name__)


class DirectoryClient(Protocol):
    """One directory connection.

    Implementations raise `DirectoryConnectionError` for transport failures,
    `InvalidCredentialsError` / `BindError` from `bind`, and report transport
    loss through `signals` (ERROR, CLOSE, TIMEOUT, SOCKET_TIMEOUT).
    """

    signals: SignalHub

    async def connect(self) -> None: ...

    async def bind(self, dn: str, password: str) -> None: ...

    async def search(
        self, base: str, search_filter: str, attributes: Optional[list[str]] = None
    ) -> SearchResult: ...

    async def unbind(self) -> None: ...

    async def abort(self) -> None: ...


ClientFactory = Callable[[ConnectionParams], DirectoryClient]


def _is_timeout(exc: BaseException) -> bool:
    return "timed out" in str(exc).lower() or "timeout" in type(exc).__name__.lower()


def _unpack(ret: Any, conn: Connection) -> tuple[bool, dict, list]:
    """Normalize ldap3 operation results.

    Thread-safe strategies return `(status, result, response, request)`; the
    classic ones return a bool and keep the rest on the connection.
    """
    if isinstance(ret, tuple):
        status, result, response = ret[0], ret[1], ret[2]
    else:
        status, result, response = ret, conn.result, conn.response
    return bool(status), dict(result or {}), list(response or [])


def _enable_keepalive(conn: Connection) -> None:
    # Servers drop idle binds (AD MaxConnIdleTime); keepalive keeps the admin bind around.
    sock = getattr(conn, "socket", None)
    if sock is None:
        return
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    except OSError as e:
        log.debug("Cannot enable TCP keepalive: %s", e)


class Ldap3DirectoryClient:
    """DirectoryClient on top of ldap3.

    ldap3 is blocking, so every operation runs in an executor. The SAFE_SYNC
    strategy lets several searches share the connection concurrently.
    """

    def __init__(self, params: ConnectionParams, executor: Executor | None = None) -> None:
        self.params = params
        self.signals = SignalHub()
        self._executor = executor
        self._conn: Connection | None = None
        self._lost = False

        try:
            tls = Tls(**params.tls_options) if params.tls_options else None
            self.server = Server(
                params.url,
                connect_timeout=params.connect_timeout,
                tls=tls,
                get_info=NONE,
            )
        except (LDAPException, TypeError, ValueError) as e:
            raise ValidationError(f"invalid connection settings for {params.url!r}: {e}") from e

    async def _run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))

    def _require_conn(self) -> Connection:
        if self._conn is None:
            raise NotConnectedError(f"not connected to {self.params.url}")
        return self._conn

    def _transport_lost(self, exc: BaseException) -> None:
        if _is_timeout(exc):
            self.signals.emit(Signal.SOCKET_TIMEOUT)
        if self._lost:
            return
        self._lost = True
        self.signals.emit(Signal.ERROR, DirectoryConnectionError(str(exc)))
        self.signals.emit(Signal.CLOSE)

    async def connect(self) -> None:
        conn = Connection(
            self.server,
            client_strategy=SAFE_SYNC,
            authentication=SIMPLE,
            receive_timeout=self.params.timeout,
            read_only=True,
            raise_exceptions=False,
        )
        try:
            await self._run(conn.open)
        except LDAPSocketOpenError as e:
            if _is_timeout(e):
                raise ConnectTimeoutError(f"connect timeout: {self.params.url}") from e
            raise DirectoryConnectionError(f"cannot connect to {self.params.url}: {e}") from e
        except LDAPException as e:
            raise DirectoryConnectionError(f"cannot connect to {self.params.url}: {e}") from e
        _enable_keepalive(conn)
        self._conn = conn
        self._lost = False
        log.debug("Connected to %s", self.params.url)

    async def bind(self, dn: str, password: str) -> None:
        conn = self._require_conn()
        conn.user = dn
        conn.password = password
        try:
            ret = await self._run(conn.bind)
        except LDAPCommunicationError as e:
            self._transport_lost(e)
            raise DirectoryConnectionError(f"bind as {dn!r} interrupted: {e}") from e
        except LDAPException as e:
            raise BindError(f"bind as {dn!r} failed: {e}") from e

        ok, result, _ = _unpack(ret, conn)
        if ok:
            return
        code = result.get("result")
        if code == RESULT_INVALID_CREDENTIALS:
            raise InvalidCredentialsError(dn)
        desc = result.get("description") or result.get("message") or "unknown error"
        raise BindError(f"bind as {dn!r} failed: {desc}", result_code=code)

    async def search(
        self, base: str, search_filter: str, attributes: Optional[list[str]] = None
    ) -> SearchResult:
        conn = self._require_conn()
        try:
            ret = await self._run(
                conn.search,
                search_base=base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=attributes or ALL_ATTRIBUTES,
            )
        except LDAPResponseTimeoutError as e:
            self.signals.emit(Signal.TIMEOUT)
            raise SearchError(f"search under {base!r} timed out") from e
        except LDAPCommunicationError as e:
            self._transport_lost(e)
            raise DirectoryConnectionError(f"search under {base!r} interrupted: {e}") from e
        except LDAPException as e:
            raise SearchError(f"search under {base!r} failed: {e}") from e

        _, result, response = _unpack(ret, conn)
        entries = [
            DirectoryEntry(dn=r["dn"], attributes=flatten_attributes(dict(r.get("attributes") or {})))
            for r in response
            if r.get("type") == "searchResEntry"
        ]
        return SearchResult(
            status=int(result.get("result") or 0),
            entries=entries,
            message=str(result.get("description") or result.get("message") or ""),
        )

    async def unbind(self) -> None:
        conn = self._conn
        if conn is None:
            return
        self._conn = None
        try:
            await self._run(conn.unbind)
        except LDAPException as e:
            raise DirectoryConnectionError(f"unbind failed: {e}") from e

    async def abort(self) -> None:
        conn = self._conn
        if conn is None:
            return
        self._conn = None
        try:
            await self._run(conn.strategy.close)
        except (LDAPException, OSError) as e:
            log.debug("Error closing half-open connection to %s (ignoring): %s", self.params.url, e)


def ldap3_client_factory(params: ConnectionParams) -> DirectoryClient:
    return Ldap3DirectoryClient(params)
