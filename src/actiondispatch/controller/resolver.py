"""
=============================================================================
ACTION RESOLVER
=============================================================================

Answers the three questions the pipeline asks about every request:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  which handler type?     path ──► UrlBindingRegistry ──► type       │
    │  which instance?         request (or session) attributes, keyed     │
    │                          by the binding string; else a new one      │
    │  which event?            see get_event_name                         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP
=============================================================================

    init(["app.web"])
        │
        ├── import app.web and every module below it
        ├── keep concrete Handler subclasses without @dont_auto_load
        │
        ├── phase one, per type:
        │       parse @url_binding            → UrlBinding
        │       walk the MRO, base first      → event mappings
        │           duplicate event in one class   → ConfigurationError
        │           two defaults in one class      → ConfigurationError
        │
        └── phase two, per type:
                fill the {$event} default with the default handler's
                event (the declared default stays when there is none)

Everything built here is read-only once init() returns.

=============================================================================
EVENT METHODS
=============================================================================

A method is an event handler when it is marked (@handles_event,
@default_handler, @async_handler) or annotated to return a Resolution and
callable without arguments (abstract methods never count):

    class UserAction(Handler):
        @default_handler
        def view(self) -> Resolution: ...         event "view", default

        @handles_event("save")
        def do_save(self) -> Resolution: ...      event "save"

        def helper(self): ...                     not an event

        def go_to(self, where) -> Resolution: ... not an event

Methods are looked up on the instance when invoked, so a subclass that
overrides do_save() without repeating the decorator still answers "save".

=============================================================================
"""

import importlib
import inspect
import logging
import pkgutil
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, get_type_hints

from ..action.handler import Handler
from ..action.markers import class_marker, method_markers
from ..action.resolution import Resolution
from ..binding.registry import UrlBindingRegistry
from ..binding.url_binding import EVENT_PARAMETER, LiveBinding, UrlBinding, parse_url_binding
from ..constants import REQ_ATTR_EVENT_NAME, REQ_ATTR_URL_BINDING, URL_KEY_EVENT_NAME
from ..exceptions import (
    AmbiguousEventError,
    ConfigurationError,
    DispatchError,
    HandlerNotFoundError,
)
from .object_factory import ObjectFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventHandlerMethod:
    """One entry of a handler type's event mapping."""

    name: str
    """Attribute name; invocation goes through getattr on the instance."""
    event: str
    owner: type
    """Class that declared the method."""
    function: Callable = field(compare=False, repr=False)
    is_default: bool = False

    @property
    def markers(self) -> Dict[str, Any]:
        return method_markers(self.function)

    @property
    def verbs(self) -> FrozenSet[str]:
        return self.markers.get("verbs", frozenset())

    @property
    def is_async(self) -> bool:
        return self.markers.get("async_handler", False)

    @property
    def dont_bind(self) -> bool:
        return self.markers.get("dont_bind", False)

    @property
    def dont_validate(self) -> bool:
        return self.markers.get("dont_validate", False)

    @property
    def ignore_binding_errors(self) -> bool:
        return self.markers.get("ignore_binding_errors", False)

    @property
    def http_cache(self) -> Optional[Tuple[bool, Optional[int]]]:
        return self.markers.get("http_cache")

    def bound_to(self, handler) -> Callable:
        return getattr(handler, self.name)

    def invoke(self, handler, *args):
        return self.bound_to(handler)(*args)

    def __str__(self) -> str:
        return f"{self.owner.__name__}.{self.name}()"


def _returns_resolution(function: Callable) -> bool:
    try:
        annotation = get_type_hints(function).get("return")
    except Exception:
        annotation = getattr(function, "__annotations__", {}).get("return")
    if isinstance(annotation, str):
        return annotation.endswith("Resolution")
    return isinstance(annotation, type) and issubclass(annotation, Resolution)


def _callable_without_arguments(function: Callable) -> bool:
    try:
        parameters = list(inspect.signature(function).parameters.values())[1:]
    except (TypeError, ValueError):
        return False
    return all(
        p.default is not p.empty or p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        for p in parameters
    )


def _walk_error(name: str) -> None:
    raise ConfigurationError(f"Could not import action package {name}")


class AnnotatedClassActionResolver:
    """
    Resolves handlers from @url_binding declarations.

    Args:
        object_factory: Builds handler instances.
        registry: Index of URL bindings; a new one by default.
    """

    def __init__(self, object_factory: Optional[ObjectFactory] = None,
                 registry: Optional[UrlBindingRegistry] = None):
        self.object_factory = object_factory or ObjectFactory()
        self.registry = registry or UrlBindingRegistry()
        self.event_mappings: Dict[type, Dict[str, EventHandlerMethod]] = {}
        self.default_handlers: Dict[type, EventHandlerMethod] = {}

    # ─────────────────────────────────────────────────────────────────────
    # STARTUP
    # ─────────────────────────────────────────────────────────────────────

    def init(self, packages: Optional[Iterable[str]]) -> None:
        """
        Scan `packages` and register every handler type found.

        Raises:
            ConfigurationError: No packages, an unimportable package, a bad
                binding pattern or conflicting event declarations.
        """
        packages = [p.strip() for p in (packages or []) if p and p.strip()]
        if not packages:
            raise ConfigurationError(
                "No action packages configured. Supply one or more package roots "
                "(DISPATCH_ACTION_PACKAGES or --packages) to be scanned for Handler classes."
            )

        handler_types = self.find_classes(packages)
        for handler_type in handler_types:
            self._register(handler_type)
        for handler_type in list(self.event_mappings):
            self._resolve_event_default(handler_type)

        logger.info(f"Registered {len(self.registry)} handler types from {', '.join(packages)}")

    def find_classes(self, packages: Iterable[str]) -> List[type]:
        """Concrete Handler subclasses defined in `packages` and below."""
        found: List[type] = []
        for package in packages:
            try:
                root = importlib.import_module(package)
            except ImportError as e:
                raise ConfigurationError(f"Could not import action package {package}: {e}") from e

            modules = [root]
            if hasattr(root, "__path__"):
                for info in pkgutil.walk_packages(root.__path__, root.__name__ + ".", onerror=_walk_error):
                    try:
                        modules.append(importlib.import_module(info.name))
                    except ImportError as e:
                        raise ConfigurationError(f"Could not import action module {info.name}: {e}") from e

            for module in modules:
                for _, candidate in inspect.getmembers(module, inspect.isclass):
                    if candidate.__module__ != module.__name__ or candidate in found:
                        continue
                    if self.is_handler_type(candidate):
                        found.append(candidate)
        return found

    @staticmethod
    def is_handler_type(candidate: type) -> bool:
        return (
            issubclass(candidate, Handler)
            and candidate is not Handler
            and not inspect.isabstract(candidate)
            and not class_marker(candidate, "dont_auto_load", False, inherited=False)
        )

    def add_handler_type(self, handler_type: type) -> None:
        """Register one handler type, both startup phases at once."""
        if self._register(handler_type):
            self._resolve_event_default(handler_type)

    def _register(self, handler_type: type) -> bool:
        pattern = self.get_url_binding_pattern(handler_type)
        if pattern is None:
            logger.debug(f"{handler_type.__name__} has no URL binding and is not registered")
            return False

        prototype = parse_url_binding(handler_type, pattern)
        mappings, default = self.process_methods(handler_type)
        self.registry.add_binding(handler_type, prototype)
        self.event_mappings[handler_type] = mappings
        if default is not None:
            self.default_handlers[handler_type] = default

        if logger.isEnabledFor(logging.DEBUG):
            for event, method in mappings.items():
                marker = " (default)" if default is not None and method.name == default.name else ""
                logger.debug(f"Bound: {method} ==> {prototype}?{event}{marker}")
        return True

    def _resolve_event_default(self, handler_type: type) -> None:
        binding = self.registry.get_binding_for(handler_type)
        if binding is None or binding.get_parameter(EVENT_PARAMETER) is None:
            return
        try:
            event = self.get_default_handler(handler_type).event
        except HandlerNotFoundError:
            event = None
        self.registry.replace_binding(handler_type, binding.with_event_default(event))

    def get_url_binding_pattern(self, handler_type: type) -> Optional[str]:
        """The pattern declared with @url_binding on this very class."""
        return class_marker(handler_type, "url_binding", inherited=False)

    def process_methods(self, handler_type: type) -> Tuple[Dict[str, EventHandlerMethod], Optional[EventHandlerMethod]]:
        """
        Collect event methods, most general class first.

        Raises:
            ConfigurationError: One class declares an event twice, or two
                default handlers.
        """
        mappings: Dict[str, EventHandlerMethod] = {}
        default: Optional[EventHandlerMethod] = None

        for cls in reversed(handler_type.__mro__):
            if cls is object:
                continue
            for name, value in vars(cls).items():
                if name.startswith("_") or not inspect.isfunction(value):
                    continue
                event = self.get_handled_event(value)
                if event is None:
                    continue

                is_default = bool(method_markers(value).get("default"))
                method = EventHandlerMethod(name, event, cls, value, is_default)

                existing = mappings.get(event)
                if existing is not None and existing.owner is cls:
                    raise ConfigurationError(
                        f"The handler {cls.__name__} declares multiple event handlers "
                        f"for event '{event}': {existing.name}() and {name}()"
                    )
                mappings[event] = method

                if is_default:
                    if default is not None and default.owner is cls:
                        raise ConfigurationError(
                            f"The handler {cls.__name__} declares multiple default event "
                            f"handlers: {default.name}() and {name}()"
                        )
                    default = method

        return mappings, default

    def get_handled_event(self, method) -> Optional[str]:
        """
        Event a method answers, or None when it is not an event method.
        Accepts a plain function or an EventHandlerMethod.
        """
        if isinstance(method, EventHandlerMethod):
            return method.event
        markers = method_markers(method)
        if "event" in markers:
            return markers["event"]
        if markers.get("default") or markers.get("async_handler"):
            return method.__name__
        if (
            _returns_resolution(method)
            and not getattr(method, "__isabstractmethod__", False)
            and _callable_without_arguments(method)
        ):
            return method.__name__
        return None

    # ─────────────────────────────────────────────────────────────────────
    # BINDINGS
    # ─────────────────────────────────────────────────────────────────────

    def get_url_binding(self, handler_type: type) -> Optional[str]:
        """Canonical binding string of a handler type, e.g. "/user/{id}/{$event}"."""
        prototype = self.registry.get_binding_for(handler_type)
        return str(prototype) if prototype is not None else None

    def get_url_binding_from_path(self, path: str) -> Optional[UrlBinding]:
        """The binding prototype whose pattern matches `path`, or None."""
        return self.registry.get_binding_prototype(path)

    def get_handler_type(self, path: str) -> Optional[type]:
        prototype = self.registry.get_binding_prototype(path)
        return prototype.handler_type if prototype is not None else None

    def get_handler_types(self) -> List[type]:
        return self.registry.get_handler_types()

    # ─────────────────────────────────────────────────────────────────────
    # HANDLER INSTANCES
    # ─────────────────────────────────────────────────────────────────────

    def get_action_bean(self, context, path: Optional[str] = None):
        """
        The handler instance for the request in `context`.

        Session scoped handlers live in the session under their binding
        string, all others in the request attributes under the same key.

        Raises:
            HandlerNotFoundError: Nothing is bound to the path.
            DispatchError: The instance could not be created.
        """
        request = context.request
        path = path or request.path
        handler_type = self.get_handler_type(path)
        if handler_type is None:
            return self.handle_handler_not_found(context, path)

        binding_path = self.get_url_binding(handler_type)
        try:
            if class_marker(handler_type, "session_scope", False):
                session = request.get_session(True)
                with session.lock:
                    handler = session.get_attribute(binding_path)
                    if handler is None:
                        handler = self.make_new_handler(handler_type, context)
                        session.set_attribute(binding_path, handler)
            else:
                handler = request.get_attribute(binding_path)
                if handler is None:
                    handler = self.make_new_handler(handler_type, context)
                    request.set_attribute(binding_path, handler)
            self.set_handler_context(handler, context)
        except DispatchError:
            raise
        except Exception as e:
            raise DispatchError(f"Could not create instance of handler type {handler_type.__name__}: {e}") from e

        request.set_attribute(REQ_ATTR_URL_BINDING, self.registry.get_binding(path))
        return handler

    def handle_handler_not_found(self, context, path: str):
        raise HandlerNotFoundError(
            f"Could not locate a handler bound to {path}. "
            f"Known bindings: {sorted(self.registry.path_map())}"
        )

    def make_new_handler(self, handler_type: type, context):
        return self.object_factory.new_instance(handler_type)

    def set_handler_context(self, handler, context) -> None:
        """Attach `context` unless the handler already has one for this very request."""
        existing = handler.get_context()
        if existing is not None and existing.request is context.request:
            return
        handler.set_context(context)

    # ─────────────────────────────────────────────────────────────────────
    # EVENTS
    # ─────────────────────────────────────────────────────────────────────

    def _mappings(self, handler_type: type) -> Dict[str, EventHandlerMethod]:
        return self.event_mappings.get(handler_type, {})

    def get_event_name(self, handler_type: type, context) -> Optional[str]:
        """
        The event a request names, or None for the default handler.

        In order, first hit wins:
            1. an event pinned by a forward
            2. a single _eventName parameter naming a known event
            3. the one parameter named like an event (or "event.x")
            4. the {$event} segment present in the path (not its default),
               or the path segment after the binding

        Raises:
            AmbiguousEventError: Several parameters name events.
        """
        event = self.get_event_name_from_request_attribute(handler_type, context)
        if event is None:
            event = self.get_event_name_from_event_name_param(handler_type, context)
        if event is None:
            event = self.get_event_name_from_request_params(handler_type, context)
        if event is None:
            event = self.get_event_name_from_path(handler_type, context)
        return event

    def get_event_name_from_request_attribute(self, handler_type: type, context) -> Optional[str]:
        return context.request.get_attribute(REQ_ATTR_EVENT_NAME)

    def get_event_name_from_event_name_param(self, handler_type: type, context) -> Optional[str]:
        values = context.request.get_parameter_values(URL_KEY_EVENT_NAME)
        if not values:
            return None
        if len(values) > 1:
            logger.warning(f"{URL_KEY_EVENT_NAME} was submitted {len(values)} times ({values}); ignoring it")
            return None

        event = values[0] if values[0] in self._mappings(handler_type) else None
        if event is not None:
            try:
                other = self.get_event_name_from_request_params(handler_type, context)
            except AmbiguousEventError:
                other = None
            if other is not None and other != event:
                logger.warning(
                    f"The event name was specified by two request parameters: "
                    f"{URL_KEY_EVENT_NAME}={event} and {other}. {URL_KEY_EVENT_NAME} wins."
                )
        return event

    def get_event_name_from_request_params(self, handler_type: type, context) -> Optional[str]:
        request = context.request
        named = [
            event for event in sorted(self._mappings(handler_type))
            if request.has_parameter(event) or request.has_parameter(event + ".x")
        ]
        if not named:
            return None
        if len(named) > 1:
            raise AmbiguousEventError(handler_type, named)
        return named[0]

    def get_event_name_from_path(self, handler_type: type, context) -> Optional[str]:
        mappings = self._mappings(handler_type)
        request = context.request
        binding: Optional[LiveBinding] = request.get_attribute(REQ_ATTR_URL_BINDING)
        if binding is None or binding.prototype.handler_type is not handler_type:
            binding = self.registry.get_binding(request.path)
        if binding is None:
            return None

        event = binding.from_path.get(EVENT_PARAMETER)
        if event in mappings:
            return event

        path = request.path
        if path.startswith(binding.path) and len(path) > len(binding.path) + 1:
            extra = path[len(binding.path) + 1:]
            segment = extra.split("/", 1)[0]
            if segment in mappings:
                return segment
        return None

    def get_handler(self, handler_type: type, event: str) -> EventHandlerMethod:
        """
        Raises:
            HandlerNotFoundError: No method handles `event`.
        """
        mappings = self._mappings(handler_type)
        method = mappings.get(event)
        if method is None:
            raise HandlerNotFoundError(
                f"Could not find handler method for event name [{event}] on class "
                f"[{handler_type.__name__}]. Known handler mappings are: {sorted(mappings)}"
            )
        return method

    def get_default_handler(self, handler_type: type) -> EventHandlerMethod:
        """
        The sole event method, else the one marked @default_handler.

        Raises:
            HandlerNotFoundError: Neither exists.
        """
        mappings = self._mappings(handler_type)
        if len(mappings) == 1:
            return next(iter(mappings.values()))
        default = self.default_handlers.get(handler_type)
        if default is not None:
            return default
        raise HandlerNotFoundError(
            f"No default handler could be found for handler type {handler_type.__name__}"
        )
