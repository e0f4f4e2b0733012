"""
=============================================================================
DISPATCH SERVER
=============================================================================

A small HTTP/1.1 container hosting the dispatcher, so an application can
run without any other server in front of it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   SocketServer ──accept──► ThreadPool ──► worker thread             │
    │                                              │                      │
    │                                              ▼                      │
    │                         ┌───────────── connection loop ───────────┐ │
    │                         │ read_request()                          │ │
    │                         │ RequestParser.parse()                   │ │
    │                         │ handle_request()                        │ │
    │                         │    ├── session from cookie              │ │
    │                         │    ├── Dispatcher.dispatch()            │ │
    │                         │    └── async? await_completion()        │ │
    │                         │ send_response()                         │ │
    │                         │ keep-alive? loop : close                │ │
    │                         └─────────────────────────────────────────┘ │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Exceptions that get past the configured exception handler become error
pages here: a DispatchError carries its own status (404 for an unbound
path, 405, ...), anything else is a 500.

=============================================================================
"""

import logging
from typing import Optional

from .config import DispatchConfig
from .configuration import RuntimeConfiguration
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .exceptions import DispatchError
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse
from .http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


class DispatchServer:
    """
    Serves a RuntimeConfiguration over HTTP.

    Usage:
        config = DispatchConfig(action_packages=["app.web"], port=8080)
        DispatchServer(RuntimeConfiguration(config)).run()
    """

    def __init__(self, configuration: RuntimeConfiguration):
        self.configuration = configuration
        self.config: DispatchConfig = configuration.config
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(workers=self.config.workers)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._running = False

    @property
    def address(self):
        return self._socket_server.address

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """Serve until SIGINT/SIGTERM or shutdown(). Blocks."""
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._running = True
        self._thread_pool.start()
        self._socket_server.bind()
        self._print_startup_banner()
        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        self._socket_server.shutdown()

    def _print_startup_banner(self):
        host, port = self.address
        print()
        print(f"  {self.config.server_name} listening on http://{host}:{port}")
        print(f"  Workers: {self.config.workers}   Handlers: {len(self.configuration.action_resolver.registry)}")
        print("  Press Ctrl+C to stop")
        print()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTIONS
    # ─────────────────────────────────────────────────────────────────────

    def _handle_connection(self, conn: Connection):
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
        )
        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, e.status_code, str(e))
                        break

                    conn.state = ConnectionState.PROCESSING
                    response = self.handle_request(request)

                    keep_alive = request.is_keep_alive and self.config.keep_alive
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
                    else:
                        response.headers["Connection"] = "close"

                    data = response.to_bytes(self.config.server_name, head_only=request.method == "HEAD")
                    if not conn.send_response(data):
                        break
                    if not keep_alive:
                        break
                    conn.state = ConnectionState.KEEP_ALIVE

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except ValueError as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break
                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: int, message: str):
        response = HTTPResponse()
        response.send_error(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

    # ─────────────────────────────────────────────────────────────────────
    # REQUESTS
    # ─────────────────────────────────────────────────────────────────────

    def handle_request(self, request: HTTPRequest) -> HTTPResponse:
        """
        Dispatch one parsed request and return the finished response.

        An async request is waited for here, up to its timeout, so the
        response is complete when this returns.
        """
        response = HTTPResponse()
        self.configuration.prepare(request, response)
        self._attach_session(request)

        try:
            self.configuration.dispatcher.dispatch(request, response)
        except DispatchError as e:
            logger.warning(f"{request.method} {request.path}: {e}")
            self._fail(response, e.status_code, str(e))
        except Exception as e:
            logger.exception(f"Unhandled error dispatching {request.method} {request.path}: {e}")
            self._fail(response, HTTPStatus.INTERNAL_SERVER_ERROR, None)

        if request.async_context is not None:
            state = "completed" if request.async_context.is_completed else "pending"
            logger.debug(f"{request.path} is async ({state}); waiting for completion")
            request.async_context.await_completion()

        self._write_session_cookie(request, response)
        return response

    @staticmethod
    def _fail(response: HTTPResponse, status: int, message: Optional[str]):
        if response.committed:
            logger.error(f"Response already committed; cannot send {status}")
            return
        response.send_error(status, message)

    def _attach_session(self, request: HTTPRequest):
        session_id = request.cookies.get(self.config.session_cookie)
        request.session = self.configuration.session_store.get(session_id)

    def _write_session_cookie(self, request: HTTPRequest, response: HTTPResponse):
        session = request.session
        if session is not None and session.is_new:
            response.headers["Set-Cookie"] = f"{self.config.session_cookie}={session.id}; Path=/; HttpOnly"
