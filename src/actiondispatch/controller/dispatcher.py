"""
=============================================================================
DISPATCHER
=============================================================================

Runs one request through the lifecycle:

    dispatch(request, response)
        │
        ├── save the current handler (a forward may be nesting us)
        │
        ├── RequestInit
        ├── ActionBeanResolution ─┐
        ├── HandlerResolution     │  the first Resolution produced
        ├── BindingAndValidation  │  ends this part early
        ├── CustomValidation      │
        ├── ValidationErrorHandling
        ├── EventHandling ────────┘
        ├── ResolutionExecution   (if there is a Resolution)
        │
        └── finally, unless the request went async:
                RequestComplete (errors are logged, not raised)
                restore the saved handler

An AsyncResponse leaves the request suspended; the same cleanup then runs
once, from whichever thread completes it.

Exceptions reaching dispatch() are unwrapped and handed to the configured
exception handler. Nested dispatches (forwards to another binding) use
dispatch_request() and let their exceptions surface in the outer one.

=============================================================================
"""

import logging
from typing import Optional

from ..action.handler import ActionContext
from ..action.resolution import Resolution
from ..constants import REQ_ATTR_ACTION_BEAN, REQ_ATTR_ACTION_BEAN_STACK, REQ_ATTR_CONFIGURATION
from ..exceptions import DispatchError
from .async_response import AsyncResponse
from .execution_context import ExecutionContext
from .helper import DispatcherHelper

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Drives requests through the lifecycle stages.

    Args:
        configuration: RuntimeConfiguration holding every collaborator.
    """

    def __init__(self, configuration):
        self.configuration = configuration
        self.helper = DispatcherHelper(configuration)

    def dispatch(self, request, response) -> None:
        """
        Dispatch a request from the container.

        Raises:
            Whatever the exception handler does not handle.
        """
        request.set_attribute(REQ_ATTR_CONFIGURATION, self.configuration)
        try:
            self.dispatch_request(request, response)
        except Exception as e:
            cause = self.unwrap(e)
            self.configuration.exception_handler.handle(cause, request, response)

    @staticmethod
    def unwrap(error: BaseException) -> BaseException:
        """Strip plain DispatchError wrappers, leaving the underlying exception."""
        while type(error) is DispatchError and error.__cause__ is not None:
            error = error.__cause__
        return error

    def dispatch_request(self, request, response) -> None:
        """Run the lifecycle. Used directly for nested dispatches."""
        ctx = ExecutionContext(
            action_context=self.new_action_context(request, response),
            configuration=self.configuration,
        )
        helper = self.helper
        async_response: Optional[AsyncResponse] = None

        self.save_action_bean(request)
        try:
            resolution = self.run_stages(ctx)
            if resolution is not None:
                if isinstance(resolution, AsyncResponse):
                    async_response = resolution
                    async_response.cleanup = lambda: self.finish(ctx)
                helper.execute_resolution(ctx, resolution)
        finally:
            if async_response is not None and async_response.async_context is not None:
                logger.debug(f"{request.path} went async; cleanup runs on completion")
            else:
                self.finish(ctx)

    def run_stages(self, ctx) -> Optional[Resolution]:
        helper = self.helper
        stages = (
            helper.request_init,
            helper.resolve_action_bean,
            helper.resolve_handler,
            helper.do_binding_and_validation,
            helper.do_custom_validation,
            helper.handle_validation_errors,
            helper.invoke_event_handler,
        )
        for stage in stages:
            resolution = stage(ctx)
            if resolution is not None:
                return resolution
        return None

    def finish(self, ctx) -> None:
        """RequestComplete, then put back the handler saved on entry."""
        try:
            self.helper.request_complete(ctx)
        except Exception:
            logger.exception(f"Exception during {ctx.stage} for {ctx.request.path}")
        finally:
            self.restore_action_bean(ctx.request)

    def new_action_context(self, request, response) -> ActionContext:
        return ActionContext(request, response, sealer=self.configuration.sealer)

    # ─────────────────────────────────────────────────────────────────────
    # NESTED DISPATCH
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def save_action_bean(request) -> None:
        current = request.get_attribute(REQ_ATTR_ACTION_BEAN)
        if current is None:
            return
        stack = request.get_attribute(REQ_ATTR_ACTION_BEAN_STACK)
        if stack is None:
            stack = []
            request.set_attribute(REQ_ATTR_ACTION_BEAN_STACK, stack)
        stack.append(current)

    @staticmethod
    def restore_action_bean(request) -> None:
        stack = request.get_attribute(REQ_ATTR_ACTION_BEAN_STACK)
        if stack:
            request.set_attribute(REQ_ATTR_ACTION_BEAN, stack.pop())
