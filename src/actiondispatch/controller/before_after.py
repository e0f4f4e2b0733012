"""
=============================================================================
BEFORE / AFTER METHODS
=============================================================================

Runs a handler's own @before and @after methods around lifecycle stages:

    class OrderAction(Handler):
        @before(stages=LifecycleStage.BINDING_AND_VALIDATION)
        def load_order(self): ...

        @after(on=["!cancel"])
        def audit(self): ...

    stage X with handler present
        │
        ├── @before methods for X whose `on` list selects the event
        │       a Resolution return ──► stage result, X never runs
        ├── X (ctx.proceed())
        └── @after methods for X (event re-read, it may have changed)
                a Resolution return ──► replaces the stage result

Methods are found once per handler type and cached. Methods taking
arguments are skipped with a warning. Before ActionBeanResolution there is
no handler yet, so @before methods for that stage are ignored.

=============================================================================
"""

import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..action.markers import method_markers
from ..action.resolution import Resolution
from ..util.events import applies
from .interceptor import Interceptor, intercepts
from .lifecycle import LifecycleStage

logger = logging.getLogger(__name__)


@dataclass
class _StageMethod:
    name: str
    on: tuple


@dataclass
class _StageMethods:
    before: Dict[LifecycleStage, List[_StageMethod]] = field(default_factory=dict)
    after: Dict[LifecycleStage, List[_StageMethod]] = field(default_factory=dict)


@intercepts(
    LifecycleStage.ACTION_BEAN_RESOLUTION,
    LifecycleStage.HANDLER_RESOLUTION,
    LifecycleStage.BINDING_AND_VALIDATION,
    LifecycleStage.CUSTOM_VALIDATION,
    LifecycleStage.VALIDATION_ERROR_HANDLING,
    LifecycleStage.EVENT_HANDLING,
    LifecycleStage.RESOLUTION_EXECUTION,
)
class BeforeAfterMethodInterceptor(Interceptor):
    """Invokes @before/@after handler methods for the current stage."""

    def __init__(self):
        self._cache: Dict[type, _StageMethods] = {}
        self._lock = threading.Lock()

    def intercept(self, ctx):
        stage = ctx.stage
        handler = ctx.handler

        if handler is not None:
            methods = self.get_methods(type(handler))
            for method in methods.before.get(stage, ()):
                resolution = self._invoke(handler, method, ctx.event_name)
                if resolution is not None:
                    return resolution

        resolution = ctx.proceed()

        # ActionBeanResolution only has a handler once it has proceeded
        handler = ctx.handler
        if handler is not None:
            methods = self.get_methods(type(handler))
            event = ctx.event_name
            for method in methods.after.get(stage, ()):
                override = self._invoke(handler, method, event)
                if override is not None:
                    resolution = override
        return resolution

    def _invoke(self, handler, method: _StageMethod, event: Optional[str]) -> Optional[Resolution]:
        if event is not None and not applies(method.on, event):
            return None
        logger.debug(f"Calling {type(handler).__name__}.{method.name}()")
        result = getattr(handler, method.name)()
        return result if isinstance(result, Resolution) else None

    def get_methods(self, handler_type: type) -> _StageMethods:
        """The type's stage methods, scanned on first use."""
        with self._lock:
            methods = self._cache.get(handler_type)
            if methods is None:
                methods = self._scan(handler_type)
                self._cache[handler_type] = methods
            return methods

    def _scan(self, handler_type: type) -> _StageMethods:
        # Base class methods first; an override takes its base's place
        functions = {}
        for cls in reversed(handler_type.__mro__):
            for name, value in vars(cls).items():
                if inspect.isfunction(value):
                    functions[name] = (cls, value)

        methods = _StageMethods()
        for name, (cls, value) in functions.items():
            markers = method_markers(value)
            if "before" not in markers and "after" not in markers:
                continue

            parameters = list(inspect.signature(value).parameters.values())[1:]
            if any(p.default is inspect.Parameter.empty for p in parameters):
                logger.warning(
                    f"{cls.__name__}.{name}() is marked @before/@after but takes "
                    f"arguments; it will not be called"
                )
                continue

            if "before" in markers:
                stages, on = markers["before"]
                for stage in stages:
                    if stage is LifecycleStage.ACTION_BEAN_RESOLUTION:
                        logger.warning(
                            f"@before on {cls.__name__}.{name}() names {stage}, which runs "
                            f"before the handler exists; ignored for that stage"
                        )
                        continue
                    methods.before.setdefault(stage, []).append(_StageMethod(name, on))
            if "after" in markers:
                stages, on = markers["after"]
                for stage in stages:
                    methods.after.setdefault(stage, []).append(_StageMethod(name, on))
        return methods
