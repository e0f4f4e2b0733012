"""
=============================================================================
NAME-BASED RESOLUTION
=============================================================================

Convention over configuration: handlers without @url_binding get a binding
made from their module and class name.

    module app.web.account   class ViewAccountAction
        │
        ├── drop everything up to the last base package ("web")
        │       → account.ViewAccountAction
        ├── drop one class suffix ("Action")
        │       → account.ViewAccount
        ├── dots become slashes, leading "/"
        │       → /account/ViewAccount
        └── binding suffix
                → /account/ViewAccount.action

When nothing is bound to a request path, the path is tried as a view
before giving up. For "/account/ViewAccount.action" and extension ".html":

    /account/ViewAccount.html
    /account/viewAccount.html
    /account/view_account.html

The first one the view renderer knows is served by a DefaultViewHandler
that simply forwards to it.

=============================================================================
"""

import logging
import re
from typing import List, Optional, Sequence

from ..action.handler import Handler
from ..action.markers import default_handler, dont_auto_load
from ..action.resolution import ForwardResolution, Resolution
from ..validation.metadata import validate
from .resolver import AnnotatedClassActionResolver

logger = logging.getLogger(__name__)

DEFAULT_BASE_PACKAGES = ("web", "www", "stripes", "action")
DEFAULT_CLASS_SUFFIXES = ("ActionBean", "Bean", "Action")
DEFAULT_BINDING_SUFFIX = ".action"

_CAMEL_HUMP = re.compile(r"(?<=[a-z0-9])([A-Z])")


@dont_auto_load
class DefaultViewHandler(Handler):
    """Forwards to a view found for an otherwise unbound path."""

    view_path: Optional[str] = validate(ignore=True)

    @default_handler
    def view(self) -> Resolution:
        return ForwardResolution(self.view_path)


class NameBasedActionResolver(AnnotatedClassActionResolver):
    """
    Args:
        object_factory: Builds handler instances.
        view_renderer: Answers exists(path) for the view fallback; None
            disables the fallback.
        base_packages: Package names that end the stripped module prefix.
        class_suffixes: Class name suffixes removed (the first match only).
        binding_suffix: Appended to every generated binding.
        view_extension: Extension tried for view paths.
    """

    def __init__(
        self,
        object_factory=None,
        registry=None,
        view_renderer=None,
        base_packages: Sequence[str] = DEFAULT_BASE_PACKAGES,
        class_suffixes: Sequence[str] = DEFAULT_CLASS_SUFFIXES,
        binding_suffix: str = DEFAULT_BINDING_SUFFIX,
        view_extension: str = ".html",
    ):
        super().__init__(object_factory, registry)
        self.view_renderer = view_renderer
        self.base_packages = tuple(base_packages)
        self.class_suffixes = tuple(class_suffixes)
        self.binding_suffix = binding_suffix
        self.view_extension = view_extension if view_extension.startswith(".") else "." + view_extension

        mappings, default = self.process_methods(DefaultViewHandler)
        self.event_mappings[DefaultViewHandler] = mappings
        self.default_handlers[DefaultViewHandler] = default

    def get_url_binding_pattern(self, handler_type: type) -> Optional[str]:
        pattern = super().get_url_binding_pattern(handler_type)
        if pattern is not None:
            return pattern
        return self.get_binding_for_name(f"{handler_type.__module__}.{handler_type.__name__}")

    def get_binding_for_name(self, qualified_name: str) -> str:
        """Binding generated for a dotted "module.Class" name."""
        parts = qualified_name.split(".")
        module_parts, class_name = parts[:-1], parts[-1]

        for index in range(len(module_parts) - 1, -1, -1):
            if module_parts[index] in self.base_packages:
                module_parts = module_parts[index + 1:]
                break

        for suffix in self.class_suffixes:
            if class_name.endswith(suffix) and class_name != suffix:
                class_name = class_name[: -len(suffix)]
                break

        return "/" + "/".join(module_parts + [class_name]) + self.binding_suffix

    # ─────────────────────────────────────────────────────────────────────
    # VIEW FALLBACK
    # ─────────────────────────────────────────────────────────────────────

    def handle_handler_not_found(self, context, path: str):
        view = self.find_view(path)
        if view is None:
            return super().handle_handler_not_found(context, path)

        logger.debug(f"No handler bound to {path}; serving view {view}")
        handler = self.make_new_handler(DefaultViewHandler, context)
        handler.view_path = view
        handler.set_context(context)
        return handler

    def get_find_view_attempts(self, path: str) -> List[str]:
        directory = path[: path.rfind("/") + 1]
        name = path[len(directory):]
        if "." in name:
            name = name[: name.rfind(".")]
        if not name:
            name = "index"

        lower_camel = name[:1].lower() + name[1:]
        snake = _CAMEL_HUMP.sub(r"_\1", lower_camel).lower()

        attempts = []
        for candidate in (name, lower_camel, snake):
            view = directory + candidate + self.view_extension
            if view not in attempts:
                attempts.append(view)
        return attempts

    def find_view(self, path: str) -> Optional[str]:
        if self.view_renderer is None:
            return None
        for attempt in self.get_find_view_attempts(path):
            if self.view_renderer.exists(attempt):
                return attempt
        return None
