"""
=============================================================================
ASYNC RESPONSES
=============================================================================

What an @async_handler method receives instead of returning a Resolution:

    @async_handler
    def report(self, async_response):
        def work():
            data = build_report()
            async_response.complete(StreamingResolution("text/csv", data))
        executor.submit(work)

The dispatcher returns as soon as the method does; the request stays open
until someone completes it, it times out, or it fails.

=============================================================================
STATE MACHINE
=============================================================================

    CREATED ──execute()──► RUNNING ──┬── complete() / dispatch() ──► COMPLETED
                                     ├── container timeout ────────► TIMED_OUT
                                     └── error ────────────────────► ERRORED

Whatever happens first wins. A guard with a lock-protected flag makes sure
listeners are notified and the dispatcher's cleanup (RequestComplete, restore
the saved handler) runs exactly once:

    ┌──────────────┬───────────────────────────────────────────────────────┐
    │  first event │  effect                                               │
    ├──────────────┼───────────────────────────────────────────────────────┤
    │  complete    │  listeners.on_complete, cleanup                       │
    │  timeout     │  listeners.on_timeout, 500 "Operation timed out",     │
    │              │  cleanup                                              │
    │  error       │  listeners.on_error, 500 <message>, cleanup           │
    └──────────────┴───────────────────────────────────────────────────────┘

The error pages are only sent if the response is not committed yet.

=============================================================================
"""

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from ..action.resolution import Resolution
from ..constants import REQ_ATTR_ASYNC_RESPONSE
from ..exceptions import AsyncNotSupportedError, DispatchError
from ..http.async_support import AsyncContext, AsyncListener
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


class AsyncState(Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class _CompletionGuard(AsyncListener):
    """Container listener funnelling every way of finishing into one."""

    def __init__(self, async_response: "AsyncResponse"):
        self.async_response = async_response

    def on_complete(self, context: AsyncContext) -> None:
        self.async_response._finish(AsyncState.COMPLETED, "on_complete")

    def on_timeout(self, context: AsyncContext) -> None:
        self.async_response._finish(AsyncState.TIMED_OUT, "on_timeout", message="Operation timed out")

    def on_error(self, context: AsyncContext, error: BaseException) -> None:
        self.async_response._finish(AsyncState.ERRORED, "on_error", error=error, message=str(error))


class AsyncResponse(Resolution):
    """
    Handle on a suspended request, given to an @async_handler method.

    Built by the dispatcher with new_instance(); executing it (as any
    Resolution) suspends the request and calls the handler method.
    """

    def __init__(self, request, response, handler, method):
        self.request = request
        self.response = response
        self.handler = handler
        self.method = method
        self.state = AsyncState.CREATED
        self.async_context: Optional[AsyncContext] = None
        self.cleanup: Optional[Callable[[], None]] = None
        """Set by the dispatcher; runs once when the request finishes."""
        self._timeout: Optional[float] = None
        self._listeners: List[AsyncListener] = []
        self._lock = threading.Lock()
        self._completed = False
        self._cleaned_up = False

    @classmethod
    def new_instance(cls, request, response, handler, method) -> "AsyncResponse":
        """
        Raises:
            AsyncNotSupportedError: The container cannot suspend requests.
        """
        support = request.async_support
        if support is None or not support.supported:
            raise AsyncNotSupportedError(
                f"{method} is an async handler but this container does not support "
                f"asynchronous requests (enable async_supported)"
            )
        return cls(request, response, handler, method)

    # ─────────────────────────────────────────────────────────────────────
    # RESOLUTION
    # ─────────────────────────────────────────────────────────────────────

    def execute(self, request, response) -> None:
        """Suspend the request and invoke the handler method with self."""
        if self.state is not AsyncState.CREATED:
            raise DispatchError("Handler already invoked")

        self.async_context = request.start_async(response)
        if self._timeout is not None:
            self.async_context.timeout = self._timeout
        self.async_context.add_listener(_CompletionGuard(self))
        request.set_attribute(REQ_ATTR_ASYNC_RESPONSE, self)
        self.state = AsyncState.RUNNING

        logger.debug(f"Invoking async handler {self.method}")
        try:
            self.method.invoke(self.handler, self)
        except Exception as e:
            logger.exception(f"Async handler {self.method} failed")
            self.async_context.fire_error(e)

    # ─────────────────────────────────────────────────────────────────────
    # COMPLETION
    # ─────────────────────────────────────────────────────────────────────

    def complete(self, resolution: Optional[Resolution] = None) -> None:
        """Finish the request, executing `resolution` first if given."""
        if resolution is not None:
            try:
                resolution.execute(self.request, self.response)
            except Exception as e:
                logger.exception(f"Resolution {resolution!r} failed in async request")
                self._context().fire_error(e)
                return
        self._context().complete()

    def dispatch(self, path: str) -> None:
        """Forward the suspended request to `path` and complete it."""
        self._context().dispatch(path)

    def _context(self) -> AsyncContext:
        if self.async_context is None:
            raise DispatchError("AsyncResponse has not been started")
        return self.async_context

    @property
    def timeout(self) -> Optional[float]:
        if self.async_context is not None:
            return self.async_context.timeout
        return self._timeout

    @timeout.setter
    def timeout(self, seconds: float) -> None:
        self._timeout = seconds
        if self.async_context is not None:
            self.async_context.timeout = seconds

    @property
    def is_completed(self) -> bool:
        return self._completed

    def add_listener(self, listener: AsyncListener) -> None:
        """Listener notified with this AsyncResponse when the request finishes."""
        self._listeners.append(listener)

    def _finish(self, state: AsyncState, callback: str,
                error: Optional[BaseException] = None, message: Optional[str] = None) -> None:
        with self._lock:
            if self._completed:
                return
            self._completed = True
        self.state = state

        try:
            for listener in list(self._listeners):
                try:
                    if error is not None:
                        getattr(listener, callback)(self, error)
                    else:
                        getattr(listener, callback)(self)
                except Exception:
                    logger.exception(f"Async listener {type(listener).__name__}.{callback} failed")

            if message is not None and not self.response.committed:
                self.response.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
        finally:
            self.run_cleanup()

    def run_cleanup(self) -> None:
        """Run the dispatcher's cleanup callback; later calls do nothing."""
        with self._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
        if self.cleanup is not None:
            self.cleanup()

    def __repr__(self) -> str:
        return f"AsyncResponse(method={self.method}, state={self.state.value})"
