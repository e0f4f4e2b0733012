"""
=============================================================================
DISPATCH RESPONSE
=============================================================================

The mutable response a resolution writes to. Unlike a finished HTTP message
it has a notion of being COMMITTED: once an error page, a redirect or a
flushed body has gone out, the status and headers can no longer change.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     RESOLUTION → RESPONSE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  ErrorResolution(404)        → send_error(404, msg)     committed   │
    │  RedirectResolution("/x")    → send_redirect("/x")      committed   │
    │  ForwardResolution("/v")     → forward(request, "/v")               │
    │  StreamingResolution(...)    → set_content_type + write             │
    │                                                                     │
    │                           to_bytes()                                │
    │                               │                                     │
    │                               ▼                                     │
    │          HTTP/1.1 404 Not Found\r\nContent-Length: ...\r\n\r\n...   │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

A forward is not done here: the container installs a forwarder callback that
either dispatches the target path again (same request object) or renders a
view.

=============================================================================
"""

import html
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union

from ..exceptions import DispatchError
from .status_codes import HTTPStatus, reason_phrase


class ResponseCommittedError(DispatchError):
    """Status or headers changed after the response was committed."""


@dataclass
class HTTPResponse:
    """
    Response being built for one request.

    Example:
        response = HTTPResponse()
        response.set_content_type("text/plain; charset=utf-8")
        response.write("hello")
        response.to_bytes()  # b"HTTP/1.1 200 OK\\r\\n..."
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    committed: bool = False

    forwarder: Optional[Callable] = field(default=None, repr=False)
    """Container callback performing forwards: (request, response, path)."""

    forward_url: Optional[str] = None
    """Last path forwarded to, kept for inspection by tests and logs."""

    redirect_url: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {reason_phrase(int(self.status))}"

    # ─────────────────────────────────────────────────────────────────────
    # HEADERS AND BODY
    # ─────────────────────────────────────────────────────────────────────

    def set_status(self, status: int) -> "HTTPResponse":
        self._check_not_committed("set status")
        self.status = status
        return self

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self._check_not_committed(f"set header {name}")
        for existing in list(self.headers):
            if existing.lower() == name.lower():
                del self.headers[existing]
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for existing, value in self.headers.items():
            if existing.lower() == name.lower():
                return value
        return default

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    def write(self, data: Union[str, bytes]) -> "HTTPResponse":
        """Append to the body. Strings are encoded as UTF-8."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.body += data
        return self

    def flush(self) -> None:
        """Commit the response; status and headers are frozen from now on."""
        self.committed = True

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    # ─────────────────────────────────────────────────────────────────────
    # TERMINAL OPERATIONS
    # ─────────────────────────────────────────────────────────────────────

    def send_error(self, status: int, message: Optional[str] = None) -> None:
        """Replace the body with a small error page and commit."""
        self._check_not_committed("send error")
        self.status = status
        self.error_message = message
        phrase = reason_phrase(int(status))
        detail = html.escape(message or phrase)
        self.headers["Content-Type"] = "text/html; charset=utf-8"
        self.body = (
            f"<html><head><title>{int(status)} {phrase}</title></head>"
            f"<body><h1>{int(status)} {phrase}</h1><p>{detail}</p></body></html>"
        ).encode("utf-8")
        self.committed = True

    def send_redirect(self, location: str, status: int = HTTPStatus.FOUND) -> None:
        self._check_not_committed("send redirect")
        self.status = status
        self.redirect_url = location
        self.headers["Location"] = location
        self.body = b""
        self.committed = True

    def forward(self, request, path: str) -> None:
        """
        Hand the request to another path on the server.

        Raises:
            DispatchError: If no forwarder is installed.
        """
        self._check_not_committed(f"forward to {path}")
        self.forward_url = path
        if self.forwarder is None:
            raise DispatchError(f"Cannot forward to {path}: no forwarder installed")
        self.forwarder(request, self, path)

    def _check_not_committed(self, action: str) -> None:
        if self.committed:
            raise ResponseCommittedError(f"Cannot {action}: response already committed")

    # ─────────────────────────────────────────────────────────────────────
    # SERIALIZATION
    # ─────────────────────────────────────────────────────────────────────

    def to_bytes(self, server_name: str = "ActionDispatch/1.0", head_only: bool = False) -> bytes:
        """
        Serialize to wire format, adding Content-Length, Date and Server
        when the handler did not set them.
        """
        response_headers = dict(self.headers)
        if self.get_header("Content-Length") is None:
            response_headers["Content-Length"] = str(len(self.body))
        if self.get_header("Date") is None:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if self.get_header("Server") is None:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes if head_only else header_bytes + self.body


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Example:
        format_http_date(datetime(2026, 1, 1, tzinfo=timezone.utc))
        # "Thu, 01 Jan 2026 00:00:00 GMT"
    """
    weekdays = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{weekdays[dt.weekday()]}, {dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
