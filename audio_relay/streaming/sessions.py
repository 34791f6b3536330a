# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar


T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised by ``CancelToken.run`` when the token, not the caller, stopped the work."""

    def __init__(self, reason: str):
        super().__init__(f"operation cancelled: {reason}")
        self.reason = reason


class CancelToken:
    """Explicit cancellation handle for one client session.

    Work is bound to the token by running it through ``run`` (or ``bind``ing a
    task). ``cancel`` cancels every bound task that is still running; tasks bound
    after cancellation are cancelled immediately.
    """

    def __init__(self, label: str = ""):
        self.label = label
        self.reason: str | None = None
        self._tasks: set[asyncio.Task] = set()

    def __repr__(self):
        state = f"cancelled:{self.reason}" if self.cancelled else "live"
        return f"CancelToken({self.label!r}, {state}, tasks={len(self._tasks)})"

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: str = "cancelled") -> None:
        if self.cancelled:
            return
        self.reason = reason
        for task in list(self._tasks):
            if not task.done():
                task.cancel()

    def bind(self, task: asyncio.Task) -> None:
        if self.cancelled:
            task.cancel()
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` in a task bound to this token and return its result.

        Raises ``OperationCancelled`` if the token was cancelled while the work
        ran. If the calling task itself is cancelled, the bound task is cancelled
        with it and ``asyncio.CancelledError`` propagates as usual.
        """
        task = asyncio.create_task(coro)
        self.bind(task)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self.cancelled and current is not None and not current.cancelling():
                raise OperationCancelled(self.reason or "cancelled") from None
            raise

    async def wait_stopped(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for bound work to finish. True if it did."""
        pending = [t for t in self._tasks if not t.done()]
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending


@dataclass
class ClientSession:
    """The active relay for one client key."""

    client_key: str
    cancel: CancelToken
    created_at: float = field(default_factory=lambda: asyncio.get_running_loop().time())

    def __repr__(self):
        return f"ClientSession(key={self.client_key}, token={self.cancel!r})"


class SessionRegistry:
    """At most one live session per client key.

    Callers follow ``supersede`` -> ``register`` -> ``release`` (in ``finally``).
    """

    def __init__(self, supersede_timeout_s: float = 2.0):
        self.supersede_timeout_s = supersede_timeout_s
        self._sessions: dict[str, ClientSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def supersede(self, client_key: str) -> None:
        """Cancel and remove any existing session for ``client_key``."""
        async with self._lock:
            existing = self._sessions.pop(client_key, None)

        if existing is None:
            logging.getLogger("sessions").debug(f"no prior session for {client_key}")
            return

        logging.getLogger("sessions").info(f"superseding session for {client_key}")
        existing.cancel.cancel("superseded")
        stopped = await existing.cancel.wait_stopped(self.supersede_timeout_s)
        if not stopped:
            logging.getLogger("sessions").warning(
                f"superseded session for {client_key} still running after {self.supersede_timeout_s}s"
            )

    async def register(self, client_key: str, token: CancelToken) -> ClientSession:
        """Register ``token`` as the live session for ``client_key``.

        A different live token found under the key (a concurrent request won the
        race after our ``supersede``) is cancelled so only one session remains.
        """
        session = ClientSession(client_key=client_key, cancel=token)
        async with self._lock:
            displaced = self._sessions.get(client_key)
            self._sessions[client_key] = session

        if displaced is not None and displaced.cancel is not token:
            logging.getLogger("sessions").info(f"displacing concurrent session for {client_key}")
            displaced.cancel.cancel("superseded")

        logging.getLogger("sessions").debug(f"registered {session!r}")
        return session

    async def release(self, client_key: str, token: CancelToken) -> None:
        """Remove the session for ``client_key`` only if it is still ``token``'s."""
        async with self._lock:
            current = self._sessions.get(client_key)
            if current is not None and current.cancel is token:
                self._sessions.pop(client_key, None)
                logging.getLogger("sessions").debug(f"released session for {client_key}")
