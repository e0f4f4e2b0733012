"""
What applications write against: the Handler base class, its context, the
declaration decorators and the resolutions handlers return.
"""

from .handler import ActionContext, Handler, ValidationErrorHandler
from .markers import (
    DELETE,
    GET,
    HEAD,
    OPTIONS,
    PATCH,
    POST,
    PUT,
    Policy,
    after,
    async_handler,
    before,
    default_handler,
    dont_auto_load,
    dont_bind,
    dont_validate,
    handles_event,
    http_cache,
    http_method,
    rest,
    session_scope,
    strict_binding,
    url_binding,
    validation_method,
    wizard,
)
from .resolution import (
    ErrorResolution,
    ForwardResolution,
    JsonResolution,
    OnwardResolution,
    RedirectResolution,
    Resolution,
    StreamingResolution,
    ValidationErrorReportResolution,
)

__all__ = [
    "ActionContext",
    "Handler",
    "ValidationErrorHandler",
    "DELETE",
    "GET",
    "HEAD",
    "OPTIONS",
    "PATCH",
    "POST",
    "PUT",
    "Policy",
    "after",
    "async_handler",
    "before",
    "default_handler",
    "dont_auto_load",
    "dont_bind",
    "dont_validate",
    "handles_event",
    "http_cache",
    "http_method",
    "rest",
    "session_scope",
    "strict_binding",
    "url_binding",
    "validation_method",
    "wizard",
    "ErrorResolution",
    "ForwardResolution",
    "JsonResolution",
    "OnwardResolution",
    "RedirectResolution",
    "Resolution",
    "StreamingResolution",
    "ValidationErrorReportResolution",
]
