"""
=============================================================================
EXECUTION CONTEXT
=============================================================================

Everything the pipeline knows about one dispatch, passed explicitly from
stage to stage and to every interceptor.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  ctx.wrap(core)  with interceptors [A, B]                           │
    │                                                                     │
    │    A.intercept(ctx)                                                 │
    │      before-advice                                                  │
    │      ctx.proceed() ──► B.intercept(ctx)                             │
    │                          before-advice                              │
    │                          ctx.proceed() ──► core(ctx)                │
    │                          after-advice  ◄──                          │
    │      after-advice   ◄──                                             │
    │                                                                     │
    │  An interceptor that returns without calling proceed() stops the    │
    │  chain; whatever it returns is the stage's result.                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
from typing import Callable, Iterator, List, Optional

logger = logging.getLogger(__name__)

StageAction = Callable[["ExecutionContext"], Optional["Resolution"]]


class ExecutionContext:
    """
    State of one dispatch.

    Attributes:
        stage: The LifecycleStage currently running.
        interceptors: Interceptors wrapping the current stage, outermost first.
        action_context: The ActionContext handed to the handler.
        handler: The handler instance, once resolved.
        handler_method: The EventHandlerMethod about to be (or being) run.
        resolution: The Resolution being executed (ResolutionExecution only).
        resolution_from_handler: True when the event method itself produced
            the resolution, rather than an interceptor or error handling.
    """

    def __init__(self, action_context=None, configuration=None):
        self.action_context = action_context
        self.configuration = configuration
        self.stage = None
        self.interceptors: List = []
        self.handler = None
        self.handler_method = None
        self.resolution = None
        self.resolution_from_handler = False
        self._target: Optional[StageAction] = None
        self._iterator: Optional[Iterator] = None

    def set_interceptors(self, interceptors) -> None:
        self.interceptors = list(interceptors)

    def wrap(self, target: StageAction):
        """Run `target` inside the current stage's interceptors."""
        self._target = target
        self._iterator = None
        return self.proceed()

    def proceed(self):
        """Invoke the next interceptor, or the stage's core action after the last one."""
        if self._iterator is None:
            logger.debug(f"Transitioning to lifecycle stage {self.stage}")
            self._iterator = iter(self.interceptors)
        interceptor = next(self._iterator, None)
        if interceptor is not None:
            return interceptor.intercept(self)
        return self._target(self)

    @property
    def request(self):
        return self.action_context.request if self.action_context is not None else None

    @property
    def response(self):
        return self.action_context.response if self.action_context is not None else None

    @property
    def event_name(self) -> Optional[str]:
        return self.action_context.event_name if self.action_context is not None else None

    def __repr__(self) -> str:
        handler = type(self.handler).__name__ if self.handler is not None else None
        return f"ExecutionContext(stage={self.stage}, handler={handler}, event={self.event_name!r})"
