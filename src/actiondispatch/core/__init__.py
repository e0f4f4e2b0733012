"""Socket container plumbing: accept loop, connections, worker threads."""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = ["Connection", "ConnectionState", "SocketServer", "ThreadPool"]
