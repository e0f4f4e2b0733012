"""
pytest configuration and fixtures.
"""

from typing import Callable, Dict, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from actiondispatch import DispatchConfig, RuntimeConfiguration
from actiondispatch.action.handler import ActionContext
from actiondispatch.http import HTTPRequest, HTTPResponse


@pytest.fixture
def make_configuration() -> Callable[..., RuntimeConfiguration]:
    """
    Build a RuntimeConfiguration for handler types defined in a test module.

    Keyword arguments are DispatchConfig settings, except `interceptors`.
    """

    def factory(*handler_types, interceptors=None, **settings) -> RuntimeConfiguration:
        settings.setdefault("encryption_key", "test-key")
        settings.setdefault("log_level", "WARNING")
        return RuntimeConfiguration(
            DispatchConfig(**settings),
            handler_types=handler_types,
            interceptors=interceptors,
        )

    return factory


@pytest.fixture
def make_context() -> Callable[..., ActionContext]:
    """ActionContext over a bare request carrying the given parameters."""

    def factory(parameters: Optional[Dict[str, List[str]]] = None, event: Optional[str] = None,
                method: str = "POST", path: str = "/") -> ActionContext:
        request = HTTPRequest(method=method, path=path, query_params=dict(parameters or {}))
        context = ActionContext(request, HTTPResponse())
        context.event_name = event
        return context

    return factory


@pytest.fixture
def sample_form_request() -> bytes:
    """Sample urlencoded POST firing the save event."""
    body = b"user.name=alice&user.age=42&save="
    head = (
        "POST /user/42 HTTP/1.1\r\n"
        "Host: localhost:8080\r\n"
        "Content-Type: application/x-www-form-urlencoded\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode() + body


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample GET naming an event in the query string."""
    return (
        b"GET /account/7?_eventName=view&tab=history&tab=notes HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Cookie: DSESSIONID=abc123; theme=dark\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_json_request() -> bytes:
    """Sample POST with a JSON body."""
    body = b'{"name": "widget", "price": 5}'
    head = (
        "POST /api/items HTTP/1.1\r\n"
        "Host: localhost:8080\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "\r\n"
    )
    return head.encode() + body
