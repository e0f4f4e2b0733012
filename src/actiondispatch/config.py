"""
=============================================================================
DISPATCH CONFIGURATION
=============================================================================

Every setting of the dispatcher and the container hosting it, in one
dataclass. Values come from code, from DISPATCH_* environment variables,
or from the command line, and are validated eagerly at startup.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Priority (highest first)                                           │
    │                                                                     │
    │   1. command line     python -m actiondispatch serve --port 3000    │
    │   2. environment      DISPATCH_PORT=3000                            │
    │   3. defaults below                                                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .controller.name_based import (
    DEFAULT_BASE_PACKAGES,
    DEFAULT_BINDING_SUFFIX,
    DEFAULT_CLASS_SUFFIXES,
)

RESOLVERS = ("annotated", "name_based")


def _split(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DispatchConfig:
    """Settings for RuntimeConfiguration and DispatchServer."""

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080
    """0 picks a free port (handy in tests)."""

    backlog: int = 128
    timeout: float = 30.0
    """Seconds to wait for the first request on a connection."""

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024
    workers: int = 8

    # ─────────────────────────────────────────────────────────────────────
    # HANDLERS
    # ─────────────────────────────────────────────────────────────────────

    action_packages: List[str] = field(default_factory=list)
    """Packages scanned for Handler subclasses. Required."""

    resolver: str = "annotated"
    """
    "annotated" registers only handlers with @url_binding; "name_based"
    generates bindings for the others and falls back to views.
    """

    base_packages: List[str] = field(default_factory=lambda: list(DEFAULT_BASE_PACKAGES))
    class_suffixes: List[str] = field(default_factory=lambda: list(DEFAULT_CLASS_SUFFIXES))
    binding_suffix: str = DEFAULT_BINDING_SUFFIX

    # ─────────────────────────────────────────────────────────────────────
    # VIEWS
    # ─────────────────────────────────────────────────────────────────────

    view_root: Optional[str] = None
    """Directory views are rendered from. None disables file views."""

    view_extension: str = ".html"

    # ─────────────────────────────────────────────────────────────────────
    # VALIDATION AND SECURITY
    # ─────────────────────────────────────────────────────────────────────

    always_invoke_validate: bool = False
    """Run DEFAULT-state validation methods even after binding errors."""

    encryption_key: Optional[str] = None
    """
    Key for sealed values (_sourcePage, the wizard manifest, encrypted
    fields). A random key is generated when unset, which does not survive
    restarts.
    """

    debug_mode: bool = False
    """Accept unsealed values. Never in production."""

    # ─────────────────────────────────────────────────────────────────────
    # ASYNC AND SESSIONS
    # ─────────────────────────────────────────────────────────────────────

    async_supported: bool = True
    async_timeout: float = 30.0
    session_cookie: str = "DSESSIONID"
    session_max_idle: float = 1800.0

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING AND IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: "text" or "json"."""

    server_name: str = "ActionDispatch/1.0"

    @classmethod
    def from_env(cls) -> "DispatchConfig":
        """
        Configuration from the environment.

            DISPATCH_HOST, DISPATCH_PORT, DISPATCH_WORKERS, DISPATCH_TIMEOUT
            DISPATCH_ACTION_PACKAGES     comma separated
            DISPATCH_RESOLVER            annotated | name_based
            DISPATCH_VIEW_ROOT, DISPATCH_VIEW_EXTENSION
            DISPATCH_ALWAYS_INVOKE_VALIDATE, DISPATCH_ASYNC_SUPPORTED
            DISPATCH_ASYNC_TIMEOUT, DISPATCH_ENCRYPTION_KEY, DISPATCH_DEBUG
            DISPATCH_LOG_LEVEL, DISPATCH_LOG_FORMAT
        """
        defaults = cls()
        env = os.environ
        return cls(
            host=env.get("DISPATCH_HOST", defaults.host),
            port=int(env.get("DISPATCH_PORT", defaults.port)),
            workers=int(env.get("DISPATCH_WORKERS", defaults.workers)),
            timeout=float(env.get("DISPATCH_TIMEOUT", defaults.timeout)),
            action_packages=_split(env.get("DISPATCH_ACTION_PACKAGES")),
            resolver=env.get("DISPATCH_RESOLVER", defaults.resolver),
            base_packages=_split(env.get("DISPATCH_BASE_PACKAGES")) or defaults.base_packages,
            view_root=env.get("DISPATCH_VIEW_ROOT"),
            view_extension=env.get("DISPATCH_VIEW_EXTENSION", defaults.view_extension),
            always_invoke_validate=_flag(
                env.get("DISPATCH_ALWAYS_INVOKE_VALIDATE"), defaults.always_invoke_validate
            ),
            async_supported=_flag(env.get("DISPATCH_ASYNC_SUPPORTED"), defaults.async_supported),
            async_timeout=float(env.get("DISPATCH_ASYNC_TIMEOUT", defaults.async_timeout)),
            encryption_key=env.get("DISPATCH_ENCRYPTION_KEY"),
            debug_mode=_flag(env.get("DISPATCH_DEBUG"), defaults.debug_mode),
            log_level=env.get("DISPATCH_LOG_LEVEL", defaults.log_level),
            log_format=env.get("DISPATCH_LOG_FORMAT", defaults.log_format),
        )

    def validate(self) -> None:
        """
        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.async_timeout <= 0:
            raise ValueError("async_timeout must be > 0")
        if self.resolver not in RESOLVERS:
            raise ValueError(f"resolver must be one of {', '.join(RESOLVERS)}, not {self.resolver!r}")
        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', not {self.log_format!r}")
        if self.view_root is not None and not os.path.isdir(self.view_root):
            raise ValueError(f"view_root {self.view_root} is not a directory")
