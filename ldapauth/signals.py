from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

log = logging.getLogger(__name__)


class Signal(str, Enum):
    CONNECT = "connect"
    ERROR = "error"
    CLOSE = "close"
    TIMEOUT = "timeout"
    SOCKET_TIMEOUT = "socket_timeout"


# Transport signals re-emitted from the admin client to service listeners.
PROXY_SIGNALS = (Signal.TIMEOUT, Signal.SOCKET_TIMEOUT)


class SignalHub:
    """Fixed-set observer registry.

    Callbacks run synchronously in subscription order. A failing callback is
    logged and does not prevent the remaining ones from running.
    """

    def __init__(self) -> None:
        self._subs: dict[Signal, list[Callable[..., Any]]] = {s: [] for s in Signal}

    def connect(self, signal: Signal | str, callback: Callable[..., Any]) -> None:
        self._subs[Signal(signal)].append(callback)

    def disconnect(self, signal: Signal | str, callback: Callable[..., Any]) -> None:
        subs = self._subs[Signal(signal)]
        if callback in subs:
            subs.remove(callback)

    def clear(self, signal: Signal | str | None = None) -> None:
        if signal is None:
            for subs in self._subs.values():
                subs.clear()
        else:
            self._subs[Signal(signal)].clear()

    def emit(self, signal: Signal, *args: Any) -> None:
        for cb in list(self._subs[signal]):
            try:
                cb(*args)
            except Exception:
                log.exception("Listener for %r signal failed", signal.value)

    def count(self, signal: Signal | str) -> int:
        return len(self._subs[Signal(signal)])
