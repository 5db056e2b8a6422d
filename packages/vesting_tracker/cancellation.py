"""Cooperative cancellation token threaded through fetch and retry calls."""

from __future__ import annotations

import threading
from collections.abc import Callable

from .errors import RequestCancelledError


class CancellationToken:
    """A one-shot, thread-safe cancel flag with abort callbacks.

    Callbacks registered with :meth:`on_cancel` run once, on the thread that
    calls :meth:`cancel`; registering on an already-cancelled token runs the
    callback immediately. Long waits use :meth:`wait` so they wake on cancel.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; return a function that unregisters it."""

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def _unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return _unregister
        callback()
        return lambda: None

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; return True if cancelled meanwhile."""

        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError()

    def child(self) -> CancellationToken:
        """Return a token that is cancelled whenever this one is."""

        linked = CancellationToken()
        unregister = self.on_cancel(lambda: linked.cancel(self.reason or "cancelled"))
        linked.on_cancel(unregister)
        return linked


__all__ = ["CancellationToken"]
