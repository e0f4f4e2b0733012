"""
Unit tests for the HTTP response object.
"""

from datetime import datetime, timezone

import pytest

from actiondispatch.exceptions import DispatchError
from actiondispatch.http import HTTPRequest, HTTPResponse, HTTPStatus, ResponseCommittedError, format_http_date


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=HTTPStatus.NOT_FOUND).status_line == "HTTP/1.1 404 Not Found"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(headers={"X-Custom": "value"}, body=b"test")

        result = response.to_bytes()

        assert b"HTTP/1.1 200 OK\r\n" in result
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: ActionDispatch/1.0\r\n" in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_to_bytes_head_only(self):
        """Test HEAD responses keep Content-Length but drop the body."""
        result = HTTPResponse(body=b"hello world").to_bytes(head_only=True)

        assert b"Content-Length: 11\r\n" in result
        assert result.endswith(b"\r\n\r\n")

    def test_set_header_chaining(self):
        """Test method chaining and case-insensitive replacement."""
        response = HTTPResponse().set_header("X-One", "1").set_header("x-one", "2")

        assert response.get_header("X-ONE") == "2"
        assert len(response.headers) == 1

    def test_write_appends(self):
        """Test write() accepts text and bytes."""
        response = HTTPResponse().write("café ").write(b"ok")

        assert response.text == "café ok"


class TestTerminalOperations:
    """Tests for send_error, send_redirect and forward."""

    def test_send_error(self):
        """Test an error page replaces the body and commits."""
        response = HTTPResponse().write("partial")

        response.send_error(HTTPStatus.NOT_FOUND, "No <such> page")

        assert response.status == 404
        assert response.error_message == "No <such> page"
        assert "No &lt;such&gt; page" in response.text
        assert "partial" not in response.text
        assert response.committed

    def test_send_redirect(self):
        """Test a redirect sets Location and defaults to 302."""
        response = HTTPResponse()

        response.send_redirect("/new-location")

        assert response.status == HTTPStatus.FOUND
        assert response.get_header("Location") == "/new-location"
        assert response.redirect_url == "/new-location"

    def test_committed_response_is_frozen(self):
        """Test status and headers cannot change after commit."""
        response = HTTPResponse()
        response.send_redirect("/elsewhere")

        with pytest.raises(ResponseCommittedError):
            response.set_header("X-Late", "1")
        with pytest.raises(ResponseCommittedError):
            response.send_error(500)

    def test_forward_uses_forwarder(self):
        """Test forward() hands off to the installed callback."""
        calls = []
        response = HTTPResponse(forwarder=lambda request, response, path: calls.append(path))

        response.forward(HTTPRequest(), "/view.html")

        assert calls == ["/view.html"]
        assert response.forward_url == "/view.html"

    def test_forward_without_forwarder(self):
        """Test forward() needs a container."""
        with pytest.raises(DispatchError):
            HTTPResponse().forward(HTTPRequest(), "/view.html")


class TestHelpers:
    """Tests for module helpers."""

    def test_format_http_date(self):
        """Test RFC 7231 date formatting."""
        dt = datetime(2026, 1, 1, 12, 30, 5, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 01 Jan 2026 12:30:05 GMT"

    def test_unknown_status_phrase(self):
        """Test a status without an enum member still gets a status line."""
        assert HTTPResponse(status=299).status_line.startswith("HTTP/1.1 299 ")
