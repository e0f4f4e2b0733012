"""
=============================================================================
DISPATCH REQUEST
=============================================================================

The request object every lifecycle stage reads from. It starts life as raw
bytes off the socket (RequestParser) or as a hand-built object in a test
(MockRoundtrip), and carries everything the dispatcher needs:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     WHAT A REQUEST CARRIES                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  method, path, version, headers      ← request line and headers     │
    │                                                                     │
    │  parameters                          ← query string + urlencoded    │
    │    "user.name"  → ["alice"]            body, multi-valued, merged   │
    │    "save"       → [""]                 (query values first)         │
    │                                                                     │
    │  attributes                          ← per-dispatch scratch space   │
    │    "actiondispatch.action_bean" → <UserAction>                      │
    │                                                                     │
    │  session                             ← looked up from the cookie    │
    │  files                               ← filled by a multipart layer  │
    │  async_support                       ← chosen once at startup       │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PARAMETERS VS ATTRIBUTES
=============================================================================

Parameters come from the client and are strings. Attributes are objects the
server attaches while dispatching (the current handler, the live URL binding,
an event name pinned by a forward). A forward keeps the same request object,
so attributes survive it while the path and parameters are rewritten.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlparse

from ..constants import REQ_ATTR_FORWARD_URI
from ..exceptions import AsyncNotSupportedError
from .session import Session, SessionStore

logger = logging.getLogger(__name__)


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code the container should answer with:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class FileBean:
    """
    An uploaded file, as handed over by a multipart layer.

    The dispatcher only binds these onto handler fields; parsing multipart
    bodies is left to whatever fills `HTTPRequest.files`.
    """

    field_name: str
    file_name: str
    content_type: str = "application/octet-stream"
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.data.decode(encoding)


@dataclass
class HTTPRequest:
    """
    A request as seen by the dispatch pipeline.

    Example:
        request = HTTPRequest(method="POST", path="/user/42/save",
                              query_params={"user.name": ["alice"]})
        request.get_parameter("user.name")   # "alice"
    """

    method: str = "GET"
    path: str = "/"
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple = ("", 0)
    raw: bytes = b""

    attributes: Dict[str, Any] = field(default_factory=dict)
    """Objects attached during dispatch. Never sent by the client."""

    files: Dict[str, FileBean] = field(default_factory=dict)
    """Uploaded files by parameter name."""

    session: Optional[Session] = None
    session_store: Optional[SessionStore] = field(default=None, repr=False)
    """Where get_session(create=True) registers a new session."""

    async_support: Any = field(default=None, repr=False)
    """AsyncSupport capability installed by the container."""

    async_context: Any = field(default=None, repr=False)
    locale: str = "en"
    context_path: str = ""

    form_params: Dict[str, List[str]] = field(default_factory=dict)
    """Parameters decoded from an urlencoded body."""

    def __post_init__(self):
        if not self.form_params and self.body and self.content_type.startswith(FORM_CONTENT_TYPE):
            self.form_params = parse_qs(
                self.body.decode("utf-8", errors="replace"), keep_blank_values=True
            )

    # ─────────────────────────────────────────────────────────────────────
    # HEADERS
    # ─────────────────────────────────────────────────────────────────────

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", "0"))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def json(self) -> Any:
        """Body decoded as JSON, or None when it is empty or not JSON."""
        if not self.body:
            return None
        try:
            return json.loads(self.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    @property
    def is_keep_alive(self) -> bool:
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def cookies(self) -> Dict[str, str]:
        """Cookies from the Cookie header."""
        cookies = {}
        for part in self.headers.get("cookie", "").split(";"):
            name, sep, value = part.strip().partition("=")
            if sep:
                cookies[name] = value
        return cookies

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    # ─────────────────────────────────────────────────────────────────────
    # PARAMETERS
    # ─────────────────────────────────────────────────────────────────────

    @property
    def parameters(self) -> Dict[str, List[str]]:
        """
        All submitted parameters, query string first, then the form body.

        Returns a fresh dict, so callers may not mutate request parameters
        through it (use add_parameter / set_parameter).
        """
        merged: Dict[str, List[str]] = {name: list(values) for name, values in self.query_params.items()}
        for name, values in self.form_params.items():
            merged.setdefault(name, []).extend(values)
        return merged

    def get_parameter(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.get_parameter_values(name)
        return values[0] if values else default

    def get_parameter_values(self, name: str) -> Optional[List[str]]:
        """All values for a parameter, or None when it was not submitted."""
        values = self.query_params.get(name, []) + self.form_params.get(name, [])
        return values if name in self.query_params or name in self.form_params else None

    def has_parameter(self, name: str) -> bool:
        return name in self.query_params or name in self.form_params

    def set_parameter(self, name: str, *values: str) -> None:
        self.form_params.pop(name, None)
        self.query_params[name] = list(values)

    def add_parameter(self, name: str, *values: str) -> None:
        self.query_params.setdefault(name, []).extend(values)

    # ─────────────────────────────────────────────────────────────────────
    # ATTRIBUTES AND SESSION
    # ─────────────────────────────────────────────────────────────────────

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def set_attribute(self, name: str, value: Any) -> None:
        if value is None:
            self.attributes.pop(name, None)
        else:
            self.attributes[name] = value

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def get_session(self, create: bool = True) -> Optional[Session]:
        """
        The client's session, creating one if asked to.

        Without a session store (a bare test request) a standalone session
        is created and kept on this request only.
        """
        if self.session is None and create:
            if self.session_store is not None:
                self.session = self.session_store.create()
            else:
                self.session = Session(id="local")
        return self.session

    # ─────────────────────────────────────────────────────────────────────
    # FORWARD AND ASYNC
    # ─────────────────────────────────────────────────────────────────────

    def apply_forward(self, target: str) -> None:
        """
        Point this request at a forward target.

        The path becomes the target's path and parameters in the target's
        query string take precedence over the submitted ones.
        """
        parsed = urlparse(target)
        self.attributes.setdefault(REQ_ATTR_FORWARD_URI, self.path)
        self.path = unquote(parsed.path) or "/"
        for name, values in parse_qs(parsed.query, keep_blank_values=True).items():
            self.query_params[name] = values + self.query_params.get(name, [])

    def start_async(self, response) -> Any:
        """Suspend this request; raises if the container cannot suspend."""
        if self.async_support is None or not self.async_support.supported:
            raise AsyncNotSupportedError(
                "This container does not support asynchronous requests"
            )
        self.async_context = self.async_support.start_async(self, response)
        return self.async_context

    @property
    def is_async_started(self) -> bool:
        return self.async_context is not None


ForwardHandler = Callable[[HTTPRequest, Any, str], None]
"""Container callback performing a server-side forward: (request, response, path)."""


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER STEPS
    ==========================================================================

        1. Size check                  → HTTPParseError(413)
        2. Find \\r\\n\\r\\n separator     → HTTPParseError("Incomplete")
        3. Request line                → HTTPParseError(400/405/505)
        4. Headers, names lowercased
        5. Body by Content-Length
        6. HTTPRequest (the urlencoded body is decoded in __post_init__)

    ==========================================================================
    """

    VALID_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
        """
        Parse raw request bytes.

        Raises:
            HTTPParseError: If the request is malformed or incomplete.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")
        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(self, line: str):
        parts = line.split(" ")
        if len(parts) != 3 or not parts[2].startswith("HTTP/"):
            raise HTTPParseError(f"Invalid request line: {line}")
        method, uri, version = parts

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)
        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)
        return method, path, parse_qs(parsed.query, keep_blank_values=True), version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        # Repeated headers are folded into one comma separated value
        headers: Dict[str, str] = {}
        for line in lines:
            name, sep, value = line.partition(":")
            if not sep or not name.strip():
                continue
            name = name.strip().lower()
            value = value.strip()
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        return headers
