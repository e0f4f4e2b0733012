"""
=============================================================================
HANDLER DECLARATIONS
=============================================================================

Decorators that describe a handler to the dispatcher. They only attach
metadata; the resolver and interceptors read it once at startup (or once per
handler type) and never look at it again per request.

    @url_binding("/user/{id}/{$event=view}")          ← class markers
    @session_scope
    @strict_binding(allow=["user.**"])
    class UserAction(Handler):

        @default_handler                              ← method markers
        @handles_event("view")
        def show(self) -> Resolution: ...

        @POST
        @before(stages=LifecycleStage.BINDING_AND_VALIDATION)
        def load(self): ...

Class markers are looked up along the MRO unless noted otherwise, so a
subclass of a @rest handler is a REST handler too. @url_binding and
@dont_auto_load belong to the decorated class only.

=============================================================================
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from ..controller.lifecycle import LifecycleStage
from ..validation.metadata import ValidationState

MARKERS_ATTR = "__dispatch_markers__"


class Policy(Enum):
    """Default decision of @strict_binding for properties no glob matches."""

    ALLOW = "allow"
    DENY = "deny"


# ─────────────────────────────────────────────────────────────────────────
# READING MARKERS
# ─────────────────────────────────────────────────────────────────────────


def _own_markers(target) -> Optional[Dict[str, Any]]:
    if isinstance(target, type):
        return vars(target).get(MARKERS_ATTR)
    return getattr(target, MARKERS_ATTR, None)


def _mark(target, **values):
    markers = _own_markers(target)
    if markers is None:
        markers = {}
        setattr(target, MARKERS_ATTR, markers)
    markers.update(values)
    return target


def method_markers(function) -> Dict[str, Any]:
    """Markers attached to a function (empty dict if none)."""
    function = getattr(function, "__func__", function)
    return _own_markers(function) or {}


def class_marker(cls: type, key: str, default: Any = None, inherited: bool = True) -> Any:
    """Value of a class marker, searching base classes when `inherited`."""
    classes = cls.__mro__ if inherited else (cls,)
    for klass in classes:
        markers = vars(klass).get(MARKERS_ATTR)
        if markers and key in markers:
            return markers[key]
    return default


def _as_tuple(value) -> Tuple:
    if value is None:
        return ()
    if isinstance(value, (str, Enum)):
        return (value,)
    return tuple(value)


# ─────────────────────────────────────────────────────────────────────────
# CLASS MARKERS
# ─────────────────────────────────────────────────────────────────────────


def url_binding(pattern: str):
    """Bind a handler type to a URL pattern such as "/user/{id}/{$event}"."""

    def decorator(cls):
        return _mark(cls, url_binding=pattern)

    return decorator


def session_scope(cls):
    """Keep one instance of the handler per session instead of per request."""
    return _mark(cls, session_scope=True)


def dont_auto_load(cls):
    """Skip this handler type when scanning packages."""
    return _mark(cls, dont_auto_load=True)


def rest(cls):
    """
    Mark a REST handler: events default to the lower-cased HTTP verb, and
    failures become status codes instead of exceptions or source pages.
    """
    return _mark(cls, rest=True)


def wizard(cls=None, *, start_events: Iterable[str] = ()):
    """
    Mark a multi-page form. Except on `start_events`, a submission must
    carry a valid fields-present manifest, and only the fields it lists
    are checked for `required`.
    """

    def decorator(klass):
        return _mark(klass, wizard=tuple(start_events))

    return decorator(cls) if cls is not None else decorator


def strict_binding(
    default_policy: Policy = Policy.DENY,
    allow: Union[str, Iterable[str]] = (),
    deny: Union[str, Iterable[str]] = (),
):
    """
    Restrict which properties request parameters may set.

    `allow` and `deny` take globs ("user.name", "user.*", "user.**"), as a
    list or one comma separated string.
    """

    def decorator(cls):
        return _mark(cls, strict_binding=(default_policy, _as_tuple(allow), _as_tuple(deny)))

    return decorator


def http_cache(allow: bool = True, expires: Optional[int] = None):
    """
    Cache headers for responses produced by a handler (class) or one event
    (method). `expires` is in seconds from now; None leaves it unset.
    """

    def decorator(target):
        return _mark(target, http_cache=(allow, expires))

    return decorator


# ─────────────────────────────────────────────────────────────────────────
# METHOD MARKERS
# ─────────────────────────────────────────────────────────────────────────


def handles_event(name: str):
    """Name the event a method answers (defaults to the method name)."""

    def decorator(function):
        return _mark(function, event=name)

    return decorator


def default_handler(function):
    """Run this method when the request names no event."""
    return _mark(function, default=True)


def dont_bind(function):
    """Skip binding and validation entirely for this event."""
    return _mark(function, dont_bind=True)


def dont_validate(function=None, *, ignore_binding_errors: bool = False):
    """
    Skip validation for this event. With ignore_binding_errors, conversion
    errors do not divert the request to the error handling either.
    """

    def decorator(fn):
        return _mark(fn, dont_validate=True, ignore_binding_errors=ignore_binding_errors)

    return decorator(function) if function is not None else decorator


def validation_method(
    function=None,
    *,
    priority: int = 0,
    when: ValidationState = ValidationState.DEFAULT,
    on: Union[str, Iterable[str]] = (),
):
    """
    Custom validation run after binding. The method takes no arguments or
    the ValidationErrors to add to. Lower priorities run first.
    """

    def decorator(fn):
        return _mark(fn, validation_method=(priority, when, _as_tuple(on)))

    return decorator(function) if function is not None else decorator


def _stage_marker(key: str, function, stages, on):
    def decorator(fn):
        stage_set = _as_tuple(stages) or (LifecycleStage.EVENT_HANDLING,)
        return _mark(fn, **{key: (stage_set, _as_tuple(on))})

    return decorator(function) if function is not None else decorator


def before(function=None, *, stages=LifecycleStage.EVENT_HANDLING, on=()):
    """Run this zero-argument method before the given stages."""
    return _stage_marker("before", function, stages, on)


def after(function=None, *, stages=LifecycleStage.EVENT_HANDLING, on=()):
    """Run this zero-argument method after the given stages."""
    return _stage_marker("after", function, stages, on)


def async_handler(function):
    """The method takes an AsyncResponse and completes it, maybe later."""
    return _mark(function, async_handler=True)


def http_method(*verbs: str) -> Callable:
    """Restrict an event method to the given HTTP verbs."""

    def decorator(function):
        existing = method_markers(function).get("verbs", frozenset())
        return _mark(function, verbs=existing | {verb.upper() for verb in verbs})

    return decorator


GET = http_method("GET")
POST = http_method("POST")
PUT = http_method("PUT")
DELETE = http_method("DELETE")
PATCH = http_method("PATCH")
HEAD = http_method("HEAD")
OPTIONS = http_method("OPTIONS")
