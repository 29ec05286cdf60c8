"""LDAP auth service.

Usage:

    settings = build_settings(
        url="ldaps://ldap.example.com:636",
        admin_dn="uid=myapp,ou=users,o=example.com",
        admin_password="...",
        search_base="ou=users,o=example.com",
        search_filter="(uid={{username}})",
        cache=True,
    )
    async with AuthenticationService(settings) as auth:
        await auth.wait_until_connected()
        user = await auth.authenticate("jdoe", "secret")

Skipping `wait_until_connected()` is allowed; an early `authenticate()` then
fails fast with NotConnectedError while the admin bind is still running.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from .cache import CacheEntry, CredentialCache
from .directory import ClientFactory, Credentials, DirectoryClient, UserRecord, ldap3_client_factory
from .errors import (
    LdapAuthError,
    NoSuchUserError,
    RetryAborted,
    ServiceClosedError,
    ValidationError,
)
from .log_config import enable_ldap3_trace
from .resolver import UserResolver
from .retry import ExponentialBackoff, RetryingConnector, ShutdownToken
from .security import hash_password, new_salt, verify_password
from .session import AdminSession, SessionState
from .settings import LdapAuthSettings
from .signals import Signal, SignalHub

log = logging.getLogger(__name__)


class AuthenticationService:
    def __init__(
        self,
        settings: LdapAuthSettings,
        client_factory: ClientFactory | None = None,
        cache: CredentialCache | None = None,
        hash_rounds: int = 10,
        on_backoff: Callable[[int, float], None] | None = None,
    ) -> None:
        self.settings = settings
        self.signals = SignalHub()
        self._client_factory = client_factory or ldap3_client_factory
        self._token = ShutdownToken()
        if settings.verbose:
            enable_ldap3_trace()

        policy = settings.retry
        backoff = ExponentialBackoff(policy.initial_delay, policy.max_delay)
        params = settings.connection_params
        admin_connector = RetryingConnector(
            params,
            self._client_factory,
            backoff,
            max_attempts=policy.max_attempts,
            on_backoff=on_backoff,
            verbose=settings.verbose,
        )
        # End-user verification is a single explicit bind, never a retry loop.
        self._user_connector = RetryingConnector(
            params,
            self._client_factory,
            backoff,
            max_attempts=1,
            verbose=settings.verbose,
        )
        self.session = AdminSession(
            admin_connector,
            settings.admin_credentials,
            signals=self.signals,
            token=self._token,
        )
        self.resolver = UserResolver(
            self.session,
            settings.search_base,
            settings.search_filter,
            settings.search_attributes,
        )

        self.cache: Optional[CredentialCache] = None
        if settings.cache:
            self.cache = cache or CredentialCache(name="user")
        self._salt = new_salt(hash_rounds) if self.cache is not None else b""

    # -- lifecycle -------------------------------------------------------

    def start(self) -> "AuthenticationService":
        """Begin the admin connect sequence. Needs a running event loop."""
        self.session.start()
        return self

    async def __aenter__(self) -> "AuthenticationService":
        return self.start()

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def closed(self) -> bool:
        return self.session.state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED)

    def on(self, signal: Signal | str, callback: Callable[..., Any]) -> None:
        self.signals.connect(signal, callback)

    def off(self, signal: Signal | str, callback: Callable[..., Any]) -> None:
        self.signals.disconnect(signal, callback)

    async def wait_until_connected(self, timeout: float | None = None) -> None:
        await self.session.wait_until_connected(timeout)

    async def close(self) -> None:
        await self.session.close()

    # -- authentication --------------------------------------------------

    async def _cached_user(self, username: str, password: str) -> Optional[UserRecord]:
        if self.cache is None:
            return None
        cached = self.cache.get(username)
        if cached is None:
            return None
        loop = asyncio.get_running_loop()
        if await loop.run_in_executor(None, verify_password, password, cached.password_hash):
            return cached.user.copy()
        return None

    async def _remember(self, username: str, password: str, user: UserRecord) -> None:
        if self.cache is None:
            return
        loop = asyncio.get_running_loop()
        hashed = await loop.run_in_executor(None, hash_password, password, self._salt)
        self.cache.set(username, CacheEntry(password_hash=hashed, user=user.copy()))

    async def _verify_bind(self, dn: str, password: str) -> DirectoryClient:
        try:
            return await self._user_connector.connect(Credentials(dn=dn, password=password), self._token)
        except RetryAborted as e:
            raise ServiceClosedError("service closed during authentication") from e

    async def authenticate(self, username: str, password: str) -> UserRecord:
        if not username:
            raise ValidationError("empty username")
        if not password:
            raise ValidationError("empty password")
        if self.closed:
            raise ServiceClosedError("service is closed")

        user = await self._cached_user(username, password)
        if user is not None:
            log.debug("ldap authenticate: cache hit for %r", username)
            return user

        # 1. Find the user DN in question.
        user = await self.resolver.find_user(username)
        if user is None:
            raise NoSuchUserError(username)

        # 2. Attempt to bind as that user to check password.
        try:
            client = await self._verify_bind(user.dn, password)
        except LdapAuthError as e:
            log.debug("ldap authenticate: bind error for %r: %s", user.dn, e)
            raise

        # Shielded: a cancelled caller must not leave the user connection bound.
        await asyncio.shield(self._release(client))

        await self._remember(username, password, user)
        return user

    async def _release(self, client: DirectoryClient) -> None:
        try:
            await client.unbind()
        except LdapAuthError as e:
            log.debug("Error unbinding user client (ignoring): %s", e)
