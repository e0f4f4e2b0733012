"""
=============================================================================
ACTIONDISPATCH - Request Dispatch Lifecycle for Handler Classes
=============================================================================

An inbound request is resolved to a handler class and one of its event
methods, request parameters are bound and validated onto the handler's
typed fields, interceptors run around every stage, the event method runs,
and the Resolution it returns is executed against the response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   POST /user/42/save   user.name=alice                              │
    │        │                                                            │
    │        ▼                                                            │
    │   UrlBindingRegistry   "/user/{id}/{$event}"  → UserAction          │
    │        │                                       id=42, event=save    │
    │        ▼                                                            │
    │   PropertyBinder       user.name → UserAction.user.name             │
    │        │                                                            │
    │        ▼                                                            │
    │   UserAction.save()    → RedirectResolution("/user/42")             │
    │        │                                                            │
    │        ▼                                                            │
    │   302 Location: /user/42                                            │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    actiondispatch/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI (python -m actiondispatch serve|routes)
    ├── config.py            # DispatchConfig dataclass
    ├── configuration.py     # RuntimeConfiguration: wires collaborators
    ├── server.py            # DispatchServer socket container
    ├── mock.py              # MockRoundtrip test harness
    ├── view.py              # FileViewRenderer
    ├── action/              # Handler, decorators, resolutions
    ├── binding/             # URL bindings, property binder
    ├── validation/          # errors, field rules, converters
    ├── controller/          # lifecycle, interceptors, resolvers, dispatcher
    ├── http/                # request, response, sessions, async support
    ├── core/                # sockets, connections, thread pool
    └── util/                # sealed values, html helpers

=============================================================================
QUICK START
=============================================================================

    from actiondispatch import (
        DispatchServer, Handler, Resolution, RuntimeConfiguration,
        StreamingResolution, default_handler, url_binding,
    )

    @url_binding("/hello/{name}")
    class HelloAction(Handler):
        name: Optional[str] = None

        @default_handler
        def greet(self) -> Resolution:
            return StreamingResolution("text/plain", f"Hello, {self.name}!")

    configuration = RuntimeConfiguration(handler_types=[HelloAction])
    DispatchServer(configuration).run()

=============================================================================
"""

__version__ = "1.0.0"

from .action import (
    ActionContext,
    ErrorResolution,
    ForwardResolution,
    Handler,
    JsonResolution,
    RedirectResolution,
    Resolution,
    StreamingResolution,
    after,
    async_handler,
    before,
    default_handler,
    dont_bind,
    dont_validate,
    handles_event,
    url_binding,
    validation_method,
)
from .config import DispatchConfig
from .configuration import RuntimeConfiguration
from .controller.async_response import AsyncResponse
from .controller.dispatcher import Dispatcher
from .controller.lifecycle import LifecycleStage
from .exceptions import DispatchError
from .mock import MockRoundtrip
from .server import DispatchServer
from .validation import validate

__all__ = [
    "ActionContext",
    "AsyncResponse",
    "DispatchConfig",
    "DispatchError",
    "DispatchServer",
    "Dispatcher",
    "ErrorResolution",
    "ForwardResolution",
    "Handler",
    "JsonResolution",
    "LifecycleStage",
    "MockRoundtrip",
    "RedirectResolution",
    "Resolution",
    "RuntimeConfiguration",
    "StreamingResolution",
    "after",
    "async_handler",
    "before",
    "default_handler",
    "dont_bind",
    "dont_validate",
    "handles_event",
    "url_binding",
    "validate",
    "validation_method",
    "__version__",
]
