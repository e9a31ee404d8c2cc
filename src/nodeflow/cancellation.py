"""
Cooperative cancellation for flow runs.

A CancellationToken is shared by the caller, the orchestrator and every
executor of a run. The caller may cancel from any thread (for example a UI
thread or a signal handler); the orchestrator's event loop is woken through
a registered callback, so cancellation interrupts engine-level waits
immediately instead of at the next poll.

Example:
    >>> token = CancellationToken()
    >>> task = asyncio.ensure_future(orchestrator.run(nodes, edges, on_state, cancel_token=token))
    >>> token.cancel()
    >>> await task  # raises ExecutionCancelledError
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable, List, Optional, TypeVar

from .exceptions import ExecutionCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Thread-safe cancellation flag with wake-up callbacks.

    Executors doing their own I/O should either await ``wait_async()`` in a
    race with that I/O or call ``raise_if_cancelled()`` between steps.
    """

    def __init__(self):
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        """Signal cancellation and run registered callbacks once. Thread-safe."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested. Thread-safe."""
        return self._cancelled.is_set()

    def reset(self) -> None:
        """Reset the token for reuse. Thread-safe."""
        self._cancelled.clear()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until cancelled.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if cancelled, False if timeout elapsed.
        """
        return self._cancelled.wait(timeout=timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register ``callback`` to run on cancellation.

        The callback runs immediately when the token is already cancelled.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            already = self._cancelled.is_set()
            if not already:
                self._callbacks.append(callback)
        if already:
            callback()

        def remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        """Raise ExecutionCancelledError when cancellation was requested."""
        if self.is_cancelled():
            raise ExecutionCancelledError()

    async def wait_async(self) -> None:
        """Suspend the current task until the token is cancelled."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        def _wake() -> None:
            loop.call_soon_threadsafe(_resolve)

        remove = self.add_callback(_wake)
        try:
            await future
        finally:
            remove()


async def run_cancellable(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """
    Await ``awaitable`` unless ``token`` is cancelled first.

    On cancellation the work is cancelled, awaited to completion, and
    ExecutionCancelledError is raised. Without a token this is a plain await.
    """
    if token is None:
        return await awaitable
    if token.is_cancelled():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise ExecutionCancelledError()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait_async())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        waiter.cancel()
        raise

    if work in done:
        waiter.cancel()
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise ExecutionCancelledError()
