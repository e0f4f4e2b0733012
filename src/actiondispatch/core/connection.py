"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps an accepted socket with request framing and keep-alive bookkeeping.

    read_request()
        │
        ├── recv() into the buffer until "\\r\\n\\r\\n"
        ├── Content-Length ──► recv() until the body is complete
        └── cut one request off the buffer; pipelined extras stay

The first request gets `timeout` seconds, later ones on the same
connection `keep_alive_timeout`. A keep-alive timeout is a normal end of
the connection, not an error.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    SUSPENDED = "suspended"
    """An async request is waiting for completion."""
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """A client connection."""

    socket: socket.socket
    address: Tuple[str, int]
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request.

        Returns:
            The request bytes, or None when the client closed the
            connection or a keep-alive wait timed out.

        Raises:
            TimeoutError: The first request did not arrive in time.
            ValueError: The request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._append(chunk)

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._append(chunk)

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            self.requests_handled += 1
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            self.socket.settimeout(self.timeout)

    def _append(self, chunk: bytes) -> None:
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        for line in headers.decode("utf-8", errors="replace").lower().split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return int(line.split(":", 1)[1].strip())
                except ValueError:
                    return 0
        return 0

    def send_response(self, data: bytes) -> bool:
        """Send all of `data`; False if the client has gone away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def close(self):
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
