from __future__ import annotations

import asyncio
import re
from typing import Any, Callable

import pytest

from ldapauth.directory import ConnectionParams, DirectoryEntry, SearchResult
from ldapauth.errors import BindError, DirectoryConnectionError, InvalidCredentialsError
from ldapauth.settings import build_settings
from ldapauth.signals import Signal, SignalHub

ADMIN_DN = "cn=admin"
ADMIN_PASSWORD = "adminpw"

_SIMPLE_FILTER = re.compile(r"\((\w+)=(.*)\)")


class FakeClient:
    """In-memory DirectoryClient bound to a FakeDirectory."""

    def __init__(self, directory: "FakeDirectory", params: ConnectionParams) -> None:
        self.directory = directory
        self.params = params
        self.signals = SignalHub()
        self.connected = False
        self.bound_dn: str | None = None
        self.aborted = False
        self.unbound = False

    async def connect(self) -> None:
        d = self.directory
        d.connects += 1
        if d.connect_gate is not None:
            await d.connect_gate.wait()
        if d.connect_failures:
            d.connect_failures -= 1
            raise DirectoryConnectionError("connection refused")
        self.connected = True

    async def bind(self, dn: str, password: str) -> None:
        d = self.directory
        d.binds.append(dn)
        await asyncio.sleep(0)
        if d.bind_gate is not None and dn != ADMIN_DN:
            await d.bind_gate.wait()
        if d.bind_failures:
            d.bind_failures -= 1
            raise BindError("server busy", result_code=51)
        entry = d.users.get(dn)
        if entry is None or entry[0] != password:
            raise InvalidCredentialsError(dn)
        self.bound_dn = dn

    async def search(self, base: str, search_filter: str, attributes: Any = None) -> SearchResult:
        d = self.directory
        d.searches.append((base, search_filter))
        await asyncio.sleep(0)
        if d.search_error is not None:
            raise d.search_error
        m = _SIMPLE_FILTER.fullmatch(search_filter)
        assert m, f"fake directory only understands (attr=value) filters, got {search_filter}"
        attr, value = m.group(1), m.group(2)
        entries = [
            DirectoryEntry(dn=dn, attributes=dict(attrs))
            for dn, (_, attrs) in d.users.items()
            if dn.endswith(base) and attrs.get(attr) == value
        ]
        return SearchResult(status=d.search_status, entries=entries)

    async def unbind(self) -> None:
        d = self.directory
        d.unbinds += 1
        self.unbound = True
        if d.unbind_error is not None:
            raise d.unbind_error

    async def abort(self) -> None:
        self.aborted = True

    def drop(self) -> None:
        """Simulate the server going away."""
        self.signals.emit(Signal.ERROR, DirectoryConnectionError("connection reset"))
        self.signals.emit(Signal.CLOSE)


class FakeDirectory:
    def __init__(self) -> None:
        self.users: dict[str, tuple[str, dict[str, Any]]] = {}
        self.clients: list[FakeClient] = []
        self.connect_failures = 0
        self.bind_failures = 0
        self.search_status = 0
        self.search_error: Exception | None = None
        self.unbind_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        # holds user (non-admin) binds
        self.bind_gate: asyncio.Event | None = None

        self.connects = 0
        self.binds: list[str] = []
        self.searches: list[tuple[str, str]] = []
        self.unbinds = 0

    def add_user(self, dn: str, password: str, **attrs: Any) -> None:
        self.users[dn] = (password, attrs)

    def factory(self, params: ConnectionParams) -> FakeClient:
        client = FakeClient(self, params)
        self.clients.append(client)
        return client

    def user_binds(self) -> list[str]:
        return [dn for dn in self.binds if dn != ADMIN_DN]


async def _eventually(pred: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not pred():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def eventually():
    return _eventually


@pytest.fixture
def directory() -> FakeDirectory:
    d = FakeDirectory()
    d.add_user(ADMIN_DN, ADMIN_PASSWORD)
    d.add_user("uid=jdoe,ou=users", "secret", uid="jdoe")
    return d


def make_settings(**overrides: Any):
    values: dict[str, Any] = dict(
        url="ldap://ldap.test:389",
        admin_dn=ADMIN_DN,
        admin_password=ADMIN_PASSWORD,
        search_base="ou=users",
        search_filter="(uid={{username}})",
        retry={"initial_delay": 0.001, "max_delay": 0.004},
    )
    values.update(overrides)
    return build_settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings
