"""
Unit tests for the dispatch server: request handling, a live socket round trip
and the worker pool.
"""

import socket
import threading
import time
from typing import Optional

import pytest

from actiondispatch import DispatchServer
from actiondispatch.action import Handler, Resolution, StreamingResolution, default_handler, session_scope, url_binding
from actiondispatch.core import ThreadPool
from actiondispatch.http import HTTPParseError, HTTPRequest, RequestParser


class Profile:
    name: Optional[str] = None
    age: Optional[int] = None


@url_binding("/user/{id}/{$event}")
class UserAction(Handler):
    id: Optional[int] = None
    user: Optional[Profile] = None

    @default_handler
    def view(self) -> Resolution:
        return StreamingResolution("text/plain", f"user {self.id}")

    def save(self) -> Resolution:
        return StreamingResolution("text/plain", f"saved {self.user.name} ({self.user.age}) as {self.id}")


@url_binding("/visits")
@session_scope
class VisitAction(Handler):
    count: int = 0

    @default_handler
    def visit(self) -> Resolution:
        self.count += 1
        return StreamingResolution("text/plain", f"visit {self.count}")


@pytest.fixture
def server(make_configuration):
    return DispatchServer(make_configuration(UserAction, VisitAction))


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_form_post(self, sample_form_request):
        """Test a urlencoded body becomes request parameters."""
        request = RequestParser().parse(sample_form_request)

        assert request.method == "POST"
        assert request.path == "/user/42"
        assert request.get_parameter("user.name") == "alice"
        assert request.has_parameter("save")
        assert request.get_header("Content-Type") == "application/x-www-form-urlencoded"

    def test_query_string(self):
        """Test repeated query parameters keep every value."""
        request = RequestParser().parse(b"GET /search?tag=a&tag=b&q= HTTP/1.1\r\nHost: x\r\n\r\n")

        assert request.get_parameter_values("tag") == ["a", "b"]
        assert request.get_parameter("q") == ""

    def test_traversal_rejected(self):
        """Test paths with .. are refused."""
        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse(b"GET /../etc/passwd HTTP/1.1\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_incomplete(self):
        """Test a request without the header terminator is incomplete."""
        with pytest.raises(HTTPParseError):
            RequestParser().parse(b"GET / HTTP/1.1\r\nHost: x")


class TestHandleRequest:
    """Tests for DispatchServer.handle_request."""

    def test_form_submission(self, server, sample_form_request):
        """Test a parsed form post is bound and handled."""
        request = RequestParser().parse(sample_form_request)

        response = server.handle_request(request)

        assert response.status == 200
        assert response.text == "saved alice (42) as 42"
        assert "Set-Cookie" not in response.headers
        assert response.to_bytes().startswith(b"HTTP/1.1 200 OK")

    def test_unbound_path_is_404(self, server):
        """Test an unbound path becomes a 404 page."""
        response = server.handle_request(HTTPRequest(path="/missing"))

        assert response.status == 404
        assert "Could not locate a handler" in response.text

    def test_session_cookie(self, server):
        """Test a new session is announced once and found again by cookie."""
        first = server.handle_request(HTTPRequest(path="/visits"))
        cookie = first.headers["Set-Cookie"]
        session_id = cookie.split(";")[0].split("=", 1)[1]

        assert cookie == f"DSESSIONID={session_id}; Path=/; HttpOnly"
        assert first.text == "visit 1"

        second = server.handle_request(
            HTTPRequest(path="/visits", headers={"cookie": f"DSESSIONID={session_id}"})
        )
        assert second.text == "visit 2"
        assert "Set-Cookie" not in second.headers

    def test_unknown_session_gets_new_one(self, server):
        """Test a stale cookie starts a fresh session."""
        response = server.handle_request(HTTPRequest(path="/visits", headers={"cookie": "DSESSIONID=stale"}))

        assert response.text == "visit 1"
        assert "Set-Cookie" in response.headers


class TestLiveServer:
    """Tests over a real socket on a free port."""

    @pytest.fixture
    def live_server(self, make_configuration):
        server = DispatchServer(make_configuration(UserAction, VisitAction, port=0, workers=2))
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()

        deadline = time.time() + 5
        while server.address[1] == 0 and time.time() < deadline:
            time.sleep(0.01)

        yield server

        server.shutdown()
        thread.join(timeout=5)

    def test_round_trip(self, live_server, sample_form_request):
        """Test a form post over TCP gets a complete response."""
        with socket.create_connection(live_server.address, timeout=5) as client:
            client.sendall(sample_form_request)
            data = b""
            while True:
                chunk = client.recv(4096)
                if not chunk:
                    break
                data += chunk

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Connection: close\r\n" in data
        assert data.endswith(b"saved alice (42) as 42")

    def test_bad_request(self, live_server):
        """Test an unparseable request is answered with its status."""
        with socket.create_connection(live_server.address, timeout=5) as client:
            client.sendall(b"BREW /pot HTTP/1.1\r\nHost: x\r\n\r\n")
            data = client.recv(4096)

        assert data.startswith(b"HTTP/1.1 405 ")


class TestThreadPool:
    """Tests for ThreadPool class."""

    def test_runs_submitted_calls(self):
        """Test submitted calls run on the workers."""
        pool = ThreadPool(workers=2)
        pool.start()
        done = threading.Event()
        results = []

        assert pool.submit(lambda value: (results.append(value), done.set()), args=(7,))
        done.wait(timeout=5)
        pool.shutdown(wait=True, timeout=5)

        assert results == [7]
        assert pool.stats["workers"]["total"] == 0

    def test_full_queue_refuses(self):
        """Test submit() returns False once the queue is full."""
        pool = ThreadPool(workers=1, queue_size=1)

        assert pool.submit(print) is True
        assert pool.submit(print) is False
