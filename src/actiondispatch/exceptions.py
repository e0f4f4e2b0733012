"""
=============================================================================
DISPATCH ERRORS
=============================================================================

Every error the dispatch core raises derives from DispatchError. Like the
parse errors of the HTTP layer, each one carries the status code that should
reach the client if nothing else handles it.

=============================================================================
ERROR TAXONOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  WHEN                 │  ERROR                        │  STATUS     │
    ├───────────────────────┼───────────────────────────────┼─────────────┤
    │  startup              │  ConfigurationError           │  500        │
    │                       │  UrlBindingParseError         │  500        │
    │  resolution           │  HandlerNotFoundError         │  404        │
    │                       │  AmbiguousEventError          │  400        │
    │                       │  UrlBindingConflictError      │  500        │
    │                       │  ConstructionError            │  500        │
    │  event handling       │  HttpMethodNotAllowedError    │  405        │
    │  binding (security)   │  WizardManifestError          │  400        │
    │  async                │  AsyncNotSupportedError       │  500        │
    └───────────────────────┴───────────────────────────────┴─────────────┘

Binding and validation problems are NOT exceptions. They are collected in
ValidationErrors and handled by the ValidationErrorHandling stage.

=============================================================================
"""

from typing import Iterable, Optional


class DispatchError(Exception):
    """
    Base class for dispatch failures.

    Carries an HTTP status code so the outermost boundary can turn an
    unhandled error into a response without inspecting its type.
    """

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(DispatchError):
    """Fatal problem detected while scanning handlers at startup."""


class UrlBindingParseError(ConfigurationError):
    """A binding pattern could not be parsed."""

    def __init__(self, pattern: str, message: str):
        super().__init__(f"{message}: {pattern}")
        self.pattern = pattern


class UrlBindingConflictError(DispatchError):
    """Several handler types claim the same request path."""

    def __init__(self, path: str, candidates: Iterable[str]):
        self.path = path
        self.candidates = sorted(candidates)
        super().__init__(
            f"Request path {path!r} matches more than one binding: "
            f"{', '.join(self.candidates)}"
        )


class HandlerNotFoundError(DispatchError):
    """No handler type, event method or default handler could be resolved."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class AmbiguousEventError(DispatchError):
    """More than one submitted parameter names a known event."""

    def __init__(self, handler_type: type, events: Iterable[str]):
        self.events = sorted(events)
        super().__init__(
            f"Request to {handler_type.__name__} names more than one event: "
            f"{', '.join(self.events)}",
            status_code=400,
        )


class HttpMethodNotAllowedError(DispatchError):
    """The resolved event method does not accept the request's HTTP verb."""

    def __init__(self, message: str, allowed: Optional[Iterable[str]] = None):
        super().__init__(message, status_code=405)
        self.allowed = sorted(allowed or [])


class ConstructionError(DispatchError):
    """The object factory could not build a handler or context."""


class WizardManifestError(DispatchError):
    """A wizard form was submitted without a valid fields-present manifest."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class SourcePageNotFoundError(DispatchError):
    """Validation failed but the request did not say where it came from."""

    def __init__(self, context):
        self.context = context
        super().__init__(
            "Validation errors occurred but no source page was submitted "
            "with the request, so there is no page to return to."
        )


class AsyncNotSupportedError(DispatchError):
    """An async event handler was invoked in a container without suspension."""
