"""Cooperative cancellation tokens for workflow runs and step attempts."""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, List, Optional, Tuple

from .errors import WorkflowCancelledError


class CancellationToken:
    """A one-shot, thread-safe cancellation signal.

    Tokens form a tree: a token created with :meth:`linked` fires when any of
    its parents fires, but cancelling the child never touches the parents.
    The engine gives every workflow run one token linked to the caller's, and
    every step attempt a child of that which also fires on timeout.
    """

    def __init__(self, *parents: "CancellationToken") -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []
        self._links: List[Tuple["CancellationToken", Callable[[], None]]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        for parent in parents:
            self._link(parent)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self._reason!r})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Fire the token. Calling it again is a no-op."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when the token fires, or now if it already has."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def linked(self, *others: "CancellationToken") -> "CancellationToken":
        """Return a child token that fires when this token (or ``others``) fires."""
        return CancellationToken(self, *others)

    def cancel_after(self, delay: float) -> None:
        """Fire the token after ``delay`` seconds on the running event loop."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(
            delay, self.cancel, f"timed out after {delay}s"
        )

    def raise_if_cancelled(self, workflow_id: str = "") -> None:
        if self._cancelled:
            raise WorkflowCancelledError(workflow_id, self._reason)

    async def wait(self) -> None:
        """Block until the token fires."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        def _wake() -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve)

        self.add_callback(_wake)
        try:
            await future
        finally:
            self.remove_callback(_wake)

    def dispose(self) -> None:
        """Stop any pending timer and detach from parent tokens."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        links, self._links = self._links, []
        for parent, callback in links:
            parent.remove_callback(callback)

    def _link(self, parent: "CancellationToken") -> None:
        def _propagate() -> None:
            self.cancel(parent.reason)

        self._links.append((parent, _propagate))
        parent.add_callback(_propagate)
