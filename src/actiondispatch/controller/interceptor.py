"""
=============================================================================
INTERCEPTORS
=============================================================================

Cross-cutting code that wraps one or more lifecycle stages.

    @intercepts(LifecycleStage.EVENT_HANDLING)
    class TimingInterceptor(Interceptor):
        def intercept(self, ctx):
            start = time.time()
            resolution = ctx.proceed()          # run the stage
            logger.info(f"{ctx.event_name} took {time.time() - start:.3f}s")
            return resolution

Returning a Resolution without calling proceed() short-circuits the stage;
the dispatcher then skips straight to ResolutionExecution.

The registry keeps one list per stage in registration order; the first
interceptor registered is the outermost.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .lifecycle import LifecycleStage

logger = logging.getLogger(__name__)

INTERCEPTS_ATTR = "__intercepts__"


def intercepts(*stages: LifecycleStage):
    """Class decorator naming the stages an interceptor wraps."""

    def decorator(cls):
        setattr(cls, INTERCEPTS_ATTR, tuple(stages))
        return cls

    return decorator


class Interceptor(ABC):
    """
    Wraps lifecycle stages. Subclasses declare their stages with
    @intercepts or override `stages`.
    """

    @abstractmethod
    def intercept(self, ctx):
        """
        Do something around ctx.proceed().

        Returns:
            A Resolution to short-circuit with, or whatever proceed()
            returned.
        """

    @property
    def stages(self) -> Iterable[LifecycleStage]:
        return getattr(type(self), INTERCEPTS_ATTR, ())

    @property
    def name(self) -> str:
        return type(self).__name__


class InterceptorRegistry:
    """Interceptors per lifecycle stage."""

    def __init__(self, interceptors: Optional[Iterable[Interceptor]] = None):
        self._by_stage: Dict[LifecycleStage, List[Interceptor]] = {stage: [] for stage in LifecycleStage}
        for interceptor in interceptors or ():
            self.add(interceptor)

    def add(self, interceptor: Interceptor) -> None:
        stages = tuple(interceptor.stages)
        if not stages:
            logger.warning(f"Interceptor {interceptor.name} declares no stages and will never run")
        for stage in stages:
            self._by_stage[stage].append(interceptor)
            logger.debug(f"Registered interceptor {interceptor.name} for {stage}")

    def get(self, stage: LifecycleStage) -> List[Interceptor]:
        return list(self._by_stage[stage])

    def __iter__(self):
        seen = []
        for interceptors in self._by_stage.values():
            for interceptor in interceptors:
                if interceptor not in seen:
                    seen.append(interceptor)
        return iter(seen)
