"""Connect-and-bind with exponential backoff.

A connect sequence runs one attempt at a time:

- transport failures and non-credential bind failures are retried after
  `min(initial_delay * 2**attempt, max_delay)`;
- an invalidCredentials bind aborts the sequence at once;
- a set `ShutdownToken` ends the sequence with `RetryAborted` after tearing
  down whatever half-open connection the current attempt holds.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .directory import ClientFactory, ConnectionParams, Credentials, DirectoryClient
from .errors import (
    BindError,
    DirectoryConnectionError,
    InvalidCredentialsError,
    LdapAuthError,
    RetryAborted,
)

log = logging.getLogger(__name__)

BackoffCallback = Callable[[int, float], None]


class ShutdownToken:
    """Single shutdown flag shared by a session and every connect sequence it starts."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self) -> None:
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep for `delay` seconds; returns True early if the token gets set."""
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


class ExponentialBackoff:
    def __init__(self, initial_delay: float = 0.1, max_delay: float = 30.0, factor: float = 2.0) -> None:
        if initial_delay <= 0 or max_delay < initial_delay:
            raise ValueError("need 0 < initial_delay <= max_delay")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.factor = factor

    def delay(self, attempt: int) -> float:
        # Cap the exponent; the product overflows to inf long before it matters.
        return min(self.initial_delay * self.factor ** min(attempt, 64), self.max_delay)


def _backoff_level(attempt: int) -> int:
    if attempt == 0:
        return logging.INFO
    if attempt < 5:
        return logging.WARNING
    return logging.ERROR


class RetryingConnector:
    """Produces a connected-and-bound DirectoryClient or a terminal error."""

    def __init__(
        self,
        params: ConnectionParams,
        client_factory: ClientFactory,
        backoff: ExponentialBackoff,
        max_attempts: Optional[int] = None,
        on_backoff: BackoffCallback | None = None,
        verbose: bool = False,
    ) -> None:
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.params = params
        self.client_factory = client_factory
        self.backoff = backoff
        self.max_attempts = max_attempts
        self.on_backoff = on_backoff
        self.verbose = verbose

    def _trace(self, msg: str, *args: object) -> None:
        if self.verbose:
            log.debug(msg, *args)

    async def _attempt(self, credentials: Credentials, token: ShutdownToken) -> DirectoryClient:
        client = self.client_factory(self.params)
        await client.connect()
        self._trace("connected to %s", self.params.url)
        # From here on the transport is open; any way out other than success tears it down.
        try:
            if token.is_set:
                raise RetryAborted("shutdown after connect")
            try:
                await client.bind(credentials.dn, credentials.password)
            except InvalidCredentialsError:
                self._trace("invalid credentials for %s; aborting retries", credentials.dn)
                raise
            except LdapAuthError as e:
                self._trace("unexpected bind error for %s: %s", credentials.dn, e)
                if token.is_set:
                    raise RetryAborted("shutdown during bind") from e
                raise
            if token.is_set:
                raise RetryAborted("shutdown during bind")
        except BaseException:
            await asyncio.shield(client.abort())
            raise
        self._trace("connected and bound as %s", credentials.dn)
        return client

    async def connect(self, credentials: Credentials, token: ShutdownToken) -> DirectoryClient:
        attempt = 0
        while True:
            if token.is_set:
                raise RetryAborted("shutdown before attempt")
            try:
                return await self._attempt(credentials, token)
            except (DirectoryConnectionError, BindError) as e:
                last_error: LdapAuthError = e

            if token.is_set:
                raise RetryAborted("shutdown during attempt") from last_error
            if self.max_attempts is not None and attempt + 1 >= self.max_attempts:
                self._trace("giving up on %s after %d attempt(s)", self.params.url, attempt + 1)
                raise last_error

            delay = self.backoff.delay(attempt)
            log.log(
                _backoff_level(attempt),
                "Connection attempt %d to %s failed (%s); retrying in %.3fs",
                attempt, self.params.url, last_error, delay,
            )
            if self.on_backoff is not None:
                try:
                    self.on_backoff(attempt, delay)
                except Exception:
                    log.exception("on_backoff callback failed")
            attempt += 1
            if await token.sleep(delay):
                raise RetryAborted("shutdown during backoff")
