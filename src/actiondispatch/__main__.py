"""
=============================================================================
ACTIONDISPATCH CLI ENTRY POINT
=============================================================================

    # Serve the handlers in app.web on localhost:8080
    python -m actiondispatch serve --packages app.web

    # Custom port, all interfaces, views from ./views
    python -m actiondispatch serve --packages app.web --host 0.0.0.0 --port 3000 --views ./views

    # Convention-based bindings (app.web.account.ViewAccountAction → /account/ViewAccount.action)
    python -m actiondispatch serve --packages app.web --name-based

    # Print the binding table and exit
    python -m actiondispatch routes --packages app.web

Unset options fall back to DISPATCH_* environment variables, then to the
DispatchConfig defaults.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import DispatchConfig
from .configuration import RuntimeConfiguration
from .exceptions import ConfigurationError
from .server import DispatchServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="actiondispatch",
        description="Dispatch HTTP requests to annotated handler classes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m actiondispatch serve --packages app.web
  python -m actiondispatch serve --packages app.web --port 3000 --views ./views
  python -m actiondispatch routes --packages app.web
        """,
    )
    parser.add_argument("--version", "-v", action="version", version=f"ActionDispatch {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--packages", "-P",
        help="Comma separated packages scanned for handlers (default: $DISPATCH_ACTION_PACKAGES)",
    )
    common.add_argument(
        "--name-based",
        action="store_true",
        help="Generate bindings for handlers without @url_binding",
    )
    common.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    # ─────────────────────────────────────────────────────────────────────
    # SERVE
    # ─────────────────────────────────────────────────────────────────────

    serve = commands.add_parser("serve", parents=[common], help="Run the HTTP server")
    serve.add_argument("--host", "-H", default=None, help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 8080)")
    serve.add_argument("--workers", "-w", type=int, default=None, help="Worker threads (default: 8)")
    serve.add_argument("--views", "-s", default=None, help="Directory views are rendered from")
    serve.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)",
    )
    serve.add_argument("--debug", action="store_true", help="Accept unsigned source pages")

    # ─────────────────────────────────────────────────────────────────────
    # ROUTES
    # ─────────────────────────────────────────────────────────────────────

    commands.add_parser("routes", parents=[common], help="Print the URL binding table")
    return parser


def config_from_args(args: argparse.Namespace) -> DispatchConfig:
    config = DispatchConfig.from_env()
    if args.packages:
        config.action_packages = [p.strip() for p in args.packages.split(",") if p.strip()]
    if args.name_based:
        config.resolver = "name_based"
    if args.log_level:
        config.log_level = args.log_level

    for option, attribute in (
        ("host", "host"),
        ("port", "port"),
        ("workers", "workers"),
        ("views", "view_root"),
        ("log_format", "log_format"),
    ):
        value = getattr(args, option, None)
        if value is not None:
            setattr(config, attribute, value)
    if getattr(args, "debug", False):
        config.debug_mode = True
    return config


def setup_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("actiondispatch").setLevel(level)


def format_routes(configuration: RuntimeConfiguration) -> List[str]:
    """One line per registered handler: binding, class, events."""
    resolver = configuration.action_resolver
    lines = []
    for handler_type in sorted(resolver.get_handler_types(), key=lambda t: resolver.get_url_binding(t) or ""):
        events = []
        default = resolver.default_handlers.get(handler_type)
        for event in sorted(resolver.event_mappings.get(handler_type, {})):
            events.append(f"{event}*" if default is not None and default.event == event else event)
        lines.append(
            f"{resolver.get_url_binding(handler_type):<40} "
            f"{handler_type.__module__}.{handler_type.__name__}  [{', '.join(events)}]"
        )
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    setup_logging(config.log_level)

    try:
        configuration = RuntimeConfiguration(config)
    except (ConfigurationError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.command == "routes":
        for line in format_routes(configuration):
            print(line)
        return 0

    DispatchServer(configuration).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
