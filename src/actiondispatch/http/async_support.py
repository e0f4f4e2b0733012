"""
=============================================================================
CONTAINER ASYNC SUPPORT
=============================================================================

Lets a handler release the worker thread's hold on a request and finish it
later from another thread. Whether the container can do this is decided ONCE
at startup and installed on every request as an AsyncSupport capability:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  DispatchConfig.async_supported                                     │
    │          │                                                          │
    │     True ┼──► SuspendingAsyncSupport  → AsyncContext per request    │
    │          │                                                          │
    │    False └──► SynchronousAsyncSupport → AsyncNotSupportedError      │
    └─────────────────────────────────────────────────────────────────────┘

AsyncContext is the low-level handle (think container-level async context).
The dispatcher wraps it in an AsyncResponse that handlers actually see.

    worker thread                      some other thread
    ─────────────                      ─────────────────
    dispatch() returns
    await_completion(timeout) ───┐
         (blocks)                │     context.complete()
                                 │◄────   listeners.on_complete
    write response to socket ◄───┘

If nothing completes the context in time, await_completion fires the timeout
listeners and completes it itself.

=============================================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from ..exceptions import AsyncNotSupportedError

logger = logging.getLogger(__name__)


class AsyncListener:
    """Container-level callbacks. Override the ones you need."""

    def on_complete(self, context: "AsyncContext") -> None:
        pass

    def on_timeout(self, context: "AsyncContext") -> None:
        pass

    def on_error(self, context: "AsyncContext", error: BaseException) -> None:
        pass


class AsyncContext:
    """
    A suspended request.

    Args:
        request: The suspended request.
        response: Its response; written to until completion.
        timeout: Seconds the container waits before firing a timeout.
    """

    def __init__(self, request, response, timeout: float = 30.0):
        self.request = request
        self.response = response
        self.timeout = timeout
        self._listeners: List[AsyncListener] = []
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._completed = False

    def add_listener(self, listener: AsyncListener) -> None:
        self._listeners.append(listener)

    @property
    def is_completed(self) -> bool:
        return self._completed

    def complete(self) -> None:
        """Finish the request. Later calls are no-ops."""
        with self._lock:
            if self._completed:
                return
            self._completed = True
        try:
            for listener in list(self._listeners):
                listener.on_complete(self)
        finally:
            self._done.set()

    def dispatch(self, path: str) -> None:
        """Forward the suspended request to `path`, then complete it."""
        try:
            self.response.forward(self.request, path)
        finally:
            self.complete()

    def fire_timeout(self) -> None:
        logger.debug(f"Async request {self.request.path} timed out after {self.timeout}s")
        for listener in list(self._listeners):
            listener.on_timeout(self)
        self.complete()

    def fire_error(self, error: BaseException) -> None:
        for listener in list(self._listeners):
            listener.on_error(self, error)
        self.complete()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until completed; False if `timeout` elapsed first."""
        return self._done.wait(timeout)

    def await_completion(self) -> None:
        """Wait up to `timeout` seconds, firing the timeout if still pending."""
        if not self.wait(self.timeout):
            self.fire_timeout()


class AsyncSupport(ABC):
    """What the container can do with a request that wants to suspend."""

    supported: bool = False

    @abstractmethod
    def start_async(self, request, response) -> AsyncContext:
        """Suspend `request` and return its context."""


class SynchronousAsyncSupport(AsyncSupport):
    """Container without suspension. Every request completes on its worker."""

    supported = False

    def start_async(self, request, response) -> AsyncContext:
        raise AsyncNotSupportedError(
            "Asynchronous handlers are disabled (async_supported is False)"
        )


class SuspendingAsyncSupport(AsyncSupport):
    """Container that parks suspended requests until they complete."""

    supported = True

    def __init__(self, default_timeout: float = 30.0):
        self.default_timeout = default_timeout

    def start_async(self, request, response) -> AsyncContext:
        return AsyncContext(request, response, timeout=self.default_timeout)


def select_async_support(enabled: bool, default_timeout: float = 30.0) -> AsyncSupport:
    """Pick the capability for the lifetime of the container."""
    if enabled:
        return SuspendingAsyncSupport(default_timeout)
    return SynchronousAsyncSupport()
