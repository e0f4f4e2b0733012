"""
=============================================================================
RESOLUTIONS
=============================================================================

A Resolution is what a handler decides should happen next. The handler only
builds it; the dispatcher executes it in the ResolutionExecution stage,
after interceptors have had their say.

    ┌────────────────────────────────────┬──────────────────────────────────┐
    │  Resolution                        │  execute(request, response)      │
    ├────────────────────────────────────┼──────────────────────────────────┤
    │  ForwardResolution("/view.html")   │  server-side forward             │
    │  ForwardResolution(UserAction,     │  dispatch again to another       │
    │                    "edit")         │  handler's binding               │
    │  RedirectResolution("/done")       │  302 (or 301) with Location      │
    │  ErrorResolution(404, "...")       │  error page with status          │
    │  StreamingResolution("text/csv",   │  write bytes, optionally as an   │
    │                      data)         │  attachment                      │
    │  JsonResolution({...})             │  application/json body           │
    │  ValidationErrorReportResolution   │  HTML list of errors when there  │
    │                                    │  is no source page to return to  │
    └────────────────────────────────────┴──────────────────────────────────┘

=============================================================================
URL BUILDING
=============================================================================

Onward resolutions that target a handler TYPE fill the type's binding with
their parameters, so parameters named in the pattern become path segments:

    @url_binding("/user/{id}/{$event}")

    ForwardResolution(UserAction, "edit").add_parameter("id", 42)
        → "/user/42/edit"

    ForwardResolution(UserAction).add_parameter("id", 42).add_parameter("x", 1)
        → "/user/42/view?x=1"       (view being the default event)

Filling stops at the first parameter without a value. An event that cannot
go into the path is added as an empty parameter named after the event
("?save=").

=============================================================================
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, quote_plus

from ..constants import REQ_ATTR_ASYNC_RESPONSE, REQ_ATTR_CONFIGURATION, REQ_ATTR_EVENT_NAME
from ..exceptions import DispatchError, SourcePageNotFoundError
from ..http.status_codes import HTTPStatus
from ..util.html import encode


logger = logging.getLogger(__name__)

_UNSET = object()
EVENT_PARAMETER = "$event"


class Resolution(ABC):
    """Something to do with the response once the handler has run."""

    @abstractmethod
    def execute(self, request, response) -> None:
        """Write to (or forward, or redirect) the response."""


class OnwardResolution(Resolution):
    """
    Base for resolutions that send the client somewhere else.

    Args:
        target: A path, or a handler type whose binding is used.
        event: Event to fire on the target. Leave out to fire its default.
    """

    def __init__(self, target: Union[str, type], event: Any = _UNSET):
        if target is None:
            raise ValueError("target must not be None")
        self.target = target
        self._event = event
        self.parameters: List[Tuple[str, Any]] = []
        self.anchor: Optional[str] = None

    @property
    def event(self) -> Optional[str]:
        return None if self._event is _UNSET else self._event

    @property
    def is_event_specified(self) -> bool:
        return self._event is not _UNSET

    @property
    def path(self) -> Optional[str]:
        return self.target if isinstance(self.target, str) else None

    def add_parameter(self, name: str, *values: Any) -> "OnwardResolution":
        """Add a parameter; lists and tuples add one value per item."""
        if not values:
            values = ("",)
        for value in values:
            if isinstance(value, (list, tuple, set)):
                self.add_parameter(name, *value)
            else:
                self.parameters.append((name, value))
        return self

    def add_parameters(self, parameters: Dict[str, Any]) -> "OnwardResolution":
        for name, value in parameters.items():
            self.add_parameter(name, value)
        return self

    def set_anchor(self, anchor: Optional[str]) -> "OnwardResolution":
        self.anchor = anchor[1:] if anchor and anchor.startswith("#") else anchor
        return self

    def get_url(self, configuration=None) -> str:
        """
        Build the target URL.

        Args:
            configuration: RuntimeConfiguration used to look up bindings.
                Required when the target is a handler type.
        """
        base = self.target
        if not isinstance(base, str):
            if configuration is None:
                raise DispatchError(
                    f"Cannot build a URL for {base.__name__}: no configuration available"
                )
            handler_type = base
            base = configuration.action_resolver.get_url_binding(handler_type)
            if base is None:
                raise DispatchError(f"{handler_type.__name__} has no URL binding")

        if "#" in base:
            base, _, anchor = base.partition("#")
            if self.anchor is None and anchor:
                self.anchor = anchor

        parameters: List[Tuple[str, Any]] = []
        event_param: Optional[Tuple[str, Any]] = None
        if self.is_event_specified:
            event_param = (EVENT_PARAMETER, self.event or None)
            parameters.append(event_param)
        parameters.extend(self.parameters)

        url = self._fill_binding(base, parameters, configuration)

        query = []
        for param in parameters:
            name, value = param
            if param is event_param:
                if value is None:
                    continue
                name, value = value, ""
            query.append(f"{quote_plus(str(name))}={quote_plus(_format(value))}")
        if query:
            url += ("&" if "?" in url else "?") + "&".join(query)
        if self.anchor:
            url += "#" + quote(self.anchor)
        return url

    def _fill_binding(self, base: str, parameters: List[Tuple[str, Any]], configuration) -> str:
        """Substitute parameters into the binding's path. Consumed ones are removed."""
        if configuration is None:
            return base
        resolver = configuration.action_resolver
        binding = resolver.get_url_binding_from_path(base)
        if binding is None or not binding.parameters:
            return base
        if base == str(binding):
            base = binding.path
        if len(binding.path) < len(base):
            return base

        sealer = configuration.sealer
        validations = configuration.property_binder.metadata.get(binding.handler_type)
        assigned: Dict[str, Tuple[str, Any]] = {}
        for param in parameters:
            assigned.setdefault(param[0], param)

        url = base
        next_literal: Optional[str] = None
        for component in binding.components:
            if isinstance(component, str):
                next_literal = component
                continue

            param = assigned.get(component.name)
            is_event = component.name == EVENT_PARAMETER
            if param is not None and (param[1] is not None or is_event):
                value = param[1]
            else:
                value = component.default

            filled = False
            if value is not None:
                formatted = _format(value)
                metadata = validations.get(component.name)
                if metadata is not None and metadata.encrypted:
                    formatted = sealer.seal(formatted)
                if formatted:
                    if next_literal is not None:
                        url += next_literal
                    url += quote(formatted, safe="")
                    if param is not None:
                        parameters.remove(param)
                    filled = True
            elif param is not None and is_event:
                parameters.remove(param)
            next_literal = None
            if not filled:
                break

        if next_literal is not None:
            url += next_literal
        elif binding.suffix is not None:
            url += binding.suffix
        return url

    def _configuration(self, request):
        return request.get_attribute(REQ_ATTR_CONFIGURATION)

    def __repr__(self) -> str:
        target = self.target if isinstance(self.target, str) else self.target.__name__
        return f"{type(self).__name__}(target={target!r})"


class ForwardResolution(OnwardResolution):
    """
    Server-side forward to a view path or to another handler.

    While the forward runs, the event named here (or none) is pinned in the
    request so parameters of the original request cannot change it.
    """

    def __init__(self, target: Union[str, type], event: Any = _UNSET, status: Optional[int] = None):
        super().__init__(target, event)
        self.status = status

    def execute(self, request, response) -> None:
        if self.status is not None:
            response.set_status(self.status)
        url = self.get_url(self._configuration(request))

        old_event = request.get_attribute(REQ_ATTR_EVENT_NAME)
        request.set_attribute(REQ_ATTR_EVENT_NAME, self.event)

        async_response = request.get_attribute(REQ_ATTR_ASYNC_RESPONSE)
        if async_response is not None:
            logger.debug(f"Async mode, dispatching to {url}")
            async_response.dispatch(url)
            return

        logger.debug(f"Forwarding to {url}")
        try:
            response.forward(request, url)
        finally:
            request.set_attribute(REQ_ATTR_EVENT_NAME, old_event)


class RedirectResolution(OnwardResolution):
    """
    Client-side redirect.

    Args:
        target: Path or handler type.
        event: Event on the target handler.
        prepend_context: Prefix paths starting with "/" with the context path.
        permanent: 301 instead of 302.
        include_request_parameters: Copy the current request's parameters.
    """

    def __init__(
        self,
        target: Union[str, type],
        event: Any = _UNSET,
        prepend_context: bool = True,
        permanent: bool = False,
        include_request_parameters: bool = False,
    ):
        super().__init__(target, event)
        self.prepend_context = prepend_context
        self.permanent = permanent
        self.include_request_parameters = include_request_parameters

    def execute(self, request, response) -> None:
        if self.include_request_parameters:
            self.add_parameters(request.parameters)

        url = self.get_url(self._configuration(request))
        if self.prepend_context and url.startswith("/") and len(request.context_path) > 1:
            url = request.context_path + url

        logger.debug(f"Redirecting to {url}")
        status = HTTPStatus.MOVED_PERMANENTLY if self.permanent else HTTPStatus.FOUND
        response.send_redirect(url, status=status)


class ErrorResolution(Resolution):
    """Answer with an HTTP error status and optional message."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        self.message = message

    def execute(self, request, response) -> None:
        response.send_error(self.status, self.message)

    def __repr__(self) -> str:
        return f"ErrorResolution(status={self.status}, message={self.message!r})"


class StreamingResolution(Resolution):
    """
    Write content straight to the response.

    `data` may be str, bytes, an iterable of chunks, or a callable taking
    the response and writing to it.

    Example:
        StreamingResolution("text/csv", rows_as_csv, filename="report.csv")
    """

    def __init__(
        self,
        content_type: str,
        data: Union[str, bytes, Callable, Any] = b"",
        filename: Optional[str] = None,
        attachment: bool = True,
    ):
        self.content_type = content_type
        self.data = data
        self.filename = filename
        self.attachment = attachment

    def execute(self, request, response) -> None:
        response.set_content_type(self.content_type)
        if self.filename:
            disposition = "attachment" if self.attachment else "inline"
            response.set_header("Content-Disposition", f'{disposition}; filename="{self.filename}"')

        if callable(self.data):
            self.data(response)
        elif isinstance(self.data, (str, bytes)):
            response.write(self.data)
        else:
            for chunk in self.data:
                response.write(chunk)


class JsonResolution(Resolution):
    """Serialize `payload` as the JSON body."""

    def __init__(self, payload: Any, status: int = HTTPStatus.OK):
        self.payload = payload
        self.status = status

    def execute(self, request, response) -> None:
        response.set_status(self.status)
        response.set_content_type("application/json; charset=utf-8")
        response.write(json.dumps(self.payload, default=str))


class ValidationErrorReportResolution(Resolution):
    """
    Lists validation errors when the request carried no source page to
    send the user back to. A developer aid rather than a user-facing page.
    """

    HEADER = '<div class="errorHeader">Validation Errors</div><ul>'
    FOOTER = "</ul>"

    def __init__(self, context):
        self.context = context

    def execute(self, request, response) -> None:
        exception = SourcePageNotFoundError(self.context)
        logger.error(str(exception))

        messages = None
        configuration = request.get_attribute(REQ_ATTR_CONFIGURATION)
        if configuration is not None:
            messages = configuration.messages

        response.set_content_type("text/html; charset=utf-8")
        response.write('<div style="font-family: Arial, sans-serif; font-size: 10pt;">\n')
        response.write("<h1>Validation error report</h1><p>\n")
        response.write(encode(str(exception)))
        response.write("\n</p><h2>Validation errors</h2><p>\n")
        response.write(self.HEADER)
        for errors in self.context.validation_errors.values():
            for error in errors:
                response.write(f"<li>{encode(error.get_message(messages))}</li>")
        response.write(self.FOOTER)
        response.write("\n</p></div>\n")


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
