"""
HTTP layer: the request and response objects the dispatcher works on, plus
the container pieces they depend on (sessions, async support).
"""

from .async_support import (
    AsyncContext,
    AsyncListener,
    AsyncSupport,
    SuspendingAsyncSupport,
    SynchronousAsyncSupport,
    select_async_support,
)
from .mime_types import get_content_type, get_mime_type
from .request import FileBean, HTTPParseError, HTTPRequest, RequestParser
from .response import HTTPResponse, ResponseCommittedError, format_http_date
from .session import Session, SessionStore
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    "AsyncContext",
    "AsyncListener",
    "AsyncSupport",
    "SuspendingAsyncSupport",
    "SynchronousAsyncSupport",
    "select_async_support",
    "get_content_type",
    "get_mime_type",
    "FileBean",
    "HTTPParseError",
    "HTTPRequest",
    "RequestParser",
    "HTTPResponse",
    "ResponseCommittedError",
    "format_http_date",
    "Session",
    "SessionStore",
    "HTTPStatus",
    "reason_phrase",
]
