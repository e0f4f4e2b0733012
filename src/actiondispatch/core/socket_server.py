"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

The accept loop underneath DispatchServer.

    start(handler)
        │
        ├── socket()  SO_REUSEADDR, TCP_NODELAY, 1s accept timeout
        ├── bind()    config.host : config.port
        ├── listen()  config.backlog
        ├── SIGINT / SIGTERM ──► shutdown()
        │
        └── while running:
                accept() ──► Connection ──► handler(conn)
                (the 1s timeout lets the loop notice shutdown)

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Dict, Optional, Tuple

from .connection import Connection

logger = logging.getLogger(__name__)


class SocketServer:
    """
    Accepts TCP connections and hands them to a callback.

    Args:
        config: DispatchConfig (host, port, backlog, timeout, ...).
    """

    def __init__(self, config):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._shutdown_event = threading.Event()
        self._original_handlers: Dict[int, object] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound address; the real port once started with port 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        # Signal handlers can only be installed from the main thread
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self) -> None:
        """Create, bind and listen; start() calls this when needed."""
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise
        self._socket.listen(self.config.backlog)

    def start(self, connection_handler: Callable[[Connection], None]):
        """Accept connections until shutdown() is called. Blocks."""
        if self._socket is None:
            self.bind()
        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            conn = Connection(
                socket=client_socket,
                address=client_address,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop accepting. Safe to call more than once and from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
