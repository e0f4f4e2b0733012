"""
=============================================================================
MOCK ROUND TRIP
=============================================================================

Runs one request through the real dispatcher, in process, without sockets.
Meant for application tests:

    trip = MockRoundtrip(configuration, UserAction)
    trip.add_parameter("user.name", "alice")
    trip.execute("save")

    trip.get_action_bean().user.name        # "alice"
    trip.validation_errors                  # ValidationErrors
    trip.redirect_url                       # "/user/42"
    trip.status, trip.output                # 200, "..."

The request gets the configuration's session store and async support, so
session-scoped handlers and async handlers behave as they do when served.
Reusing a Session across trips keeps session-scoped handlers alive.

=============================================================================
"""

import logging
from typing import Dict, List, Optional, Union

from .constants import REQ_ATTR_ACTION_BEAN, URL_KEY_SOURCE_PAGE
from .http.request import HTTPRequest
from .http.response import HTTPResponse
from .http.session import Session
from .validation.errors import ValidationErrors

logger = logging.getLogger(__name__)


class MockRoundtrip:
    """
    Args:
        configuration: RuntimeConfiguration to dispatch through.
        target: A request path, or a registered handler type (its binding
            path is used).
        method: HTTP method.
        session: Session to attach; a new one is created on demand.
    """

    def __init__(self, configuration, target: Union[str, type], method: str = "GET",
                 session: Optional[Session] = None):
        self.configuration = configuration
        self.path = self._path_for(target)
        self.method = method.upper()
        self.session = session
        self.parameters: Dict[str, List[str]] = {}
        self.headers: Dict[str, str] = {}
        self.body = b""
        self.request: Optional[HTTPRequest] = None
        self.response: Optional[HTTPResponse] = None

    def _path_for(self, target: Union[str, type]) -> str:
        if isinstance(target, str):
            return target
        prototype = self.configuration.action_resolver.registry.get_binding_for(target)
        if prototype is None:
            raise ValueError(f"{target.__name__} is not bound to a URL")
        return prototype.path

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST SETUP
    # ─────────────────────────────────────────────────────────────────────

    def add_parameter(self, name: str, *values: str) -> "MockRoundtrip":
        self.parameters.setdefault(name, []).extend(values)
        return self

    def set_parameter(self, name: str, *values: str) -> "MockRoundtrip":
        self.parameters[name] = list(values)
        return self

    def set_source_page(self, path: str) -> "MockRoundtrip":
        """Submit `path`, sealed, as the page the form came from."""
        return self.set_parameter(URL_KEY_SOURCE_PAGE, self.configuration.sealer.seal(path))

    def add_header(self, name: str, value: str) -> "MockRoundtrip":
        self.headers[name.lower()] = value
        return self

    def set_body(self, body: Union[str, bytes], content_type: str) -> "MockRoundtrip":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.headers["content-type"] = content_type
        self.headers["content-length"] = str(len(self.body))
        return self

    # ─────────────────────────────────────────────────────────────────────
    # EXECUTION
    # ─────────────────────────────────────────────────────────────────────

    def execute(self, event: Optional[str] = None) -> "MockRoundtrip":
        """
        Dispatch the request, firing `event` when given. Async requests
        are waited for.
        """
        parameters = {name: list(values) for name, values in self.parameters.items()}
        if event is not None:
            parameters.setdefault(event, [""])

        self.request = HTTPRequest(
            method=self.method,
            path=self.path,
            headers=dict(self.headers),
            query_params=parameters,
            body=self.body,
            client_address=("127.0.0.1", 0),
            session=self.session,
        )
        self.response = HTTPResponse()
        self.configuration.prepare(self.request, self.response)

        logger.debug(f"Mock {self.method} {self.path} event={event}")
        self.configuration.dispatcher.dispatch(self.request, self.response)
        if self.request.async_context is not None:
            self.request.async_context.await_completion()

        self.session = self.request.session
        return self

    # ─────────────────────────────────────────────────────────────────────
    # RESULTS
    # ─────────────────────────────────────────────────────────────────────

    def get_action_bean(self, handler_type: Optional[type] = None):
        """The handler that answered, optionally checked against a type."""
        handler = self.request.get_attribute(REQ_ATTR_ACTION_BEAN)
        if handler_type is not None and not isinstance(handler, handler_type):
            raise TypeError(f"Expected a {handler_type.__name__}, got {type(handler).__name__}")
        return handler

    @property
    def validation_errors(self) -> ValidationErrors:
        handler = self.get_action_bean()
        context = handler.get_context() if handler is not None else None
        return context.validation_errors if context is not None else ValidationErrors()

    @property
    def status(self) -> int:
        return int(self.response.status)

    @property
    def output(self) -> str:
        return self.response.text

    @property
    def forward_url(self) -> Optional[str]:
        return self.response.forward_url

    @property
    def redirect_url(self) -> Optional[str]:
        return self.response.redirect_url
