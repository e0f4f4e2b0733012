"""
=============================================================================
RUNTIME CONFIGURATION
=============================================================================

Builds every collaborator the dispatcher needs from one DispatchConfig and
holds them for the lifetime of the application.

    DispatchConfig
        │
        ▼
    RuntimeConfiguration
        ├── object_factory      ObjectFactory
        ├── action_resolver     AnnotatedClassActionResolver
        │                       or NameBasedActionResolver
        ├── property_binder     DefaultPropertyBinder
        ├── interceptors        BeforeAfterMethod, HttpCache, DispatchLogging
        ├── sealer              ValueSealer
        ├── messages            MessageTable
        ├── exception_handler   DefaultExceptionHandler
        ├── async_support       Suspending / Synchronous
        ├── session_store       SessionStore
        ├── view_renderer       FileViewRenderer (when view_root is set)
        └── dispatcher          Dispatcher

Forwards are performed by forward(): the request is re-pointed at the
target, then either dispatched again (the target has a binding) or handed
to the view renderer.

=============================================================================
"""

import logging
from typing import Iterable, Optional

from .config import DispatchConfig
from .controller.before_after import BeforeAfterMethodInterceptor
from .controller.dispatcher import Dispatcher
from .controller.exception_handler import DefaultExceptionHandler
from .controller.http_cache import HttpCacheInterceptor
from .controller.interceptor import Interceptor, InterceptorRegistry
from .controller.logging import DispatchLoggingInterceptor
from .controller.name_based import NameBasedActionResolver
from .controller.object_factory import ObjectFactory
from .controller.resolver import AnnotatedClassActionResolver
from .binding.binder import DefaultPropertyBinder
from .binding.policy import BindingPolicyManager
from .http.async_support import select_async_support
from .http.session import SessionStore
from .http.status_codes import HTTPStatus
from .util.crypto import ValueSealer
from .validation.converters import DefaultTypeConverterFactory
from .validation.errors import default_message_table
from .view import FileViewRenderer

logger = logging.getLogger(__name__)


class RuntimeConfiguration:
    """
    Args:
        config: Settings; DispatchConfig() when omitted.
        handler_types: Handler classes registered directly, in addition to
            those found in config.action_packages.
        interceptors: Extra interceptors, run after the built-in ones.
        object_factory: Replaces the default ObjectFactory.

    Raises:
        ValueError: Invalid settings.
        ConfigurationError: No handlers to register, or a handler declares
            a bad binding or conflicting events.

    Example:
        configuration = RuntimeConfiguration(DispatchConfig(action_packages=["app.web"]))
        configuration.dispatcher.dispatch(request, response)
    """

    def __init__(
        self,
        config: Optional[DispatchConfig] = None,
        handler_types: Optional[Iterable[type]] = None,
        interceptors: Optional[Iterable[Interceptor]] = None,
        object_factory: Optional[ObjectFactory] = None,
    ):
        self.config = config or DispatchConfig()
        self.config.validate()

        self.object_factory = object_factory or ObjectFactory()
        self.view_renderer = self.init_view_renderer()
        self.action_resolver = self.init_action_resolver()
        self.property_binder = DefaultPropertyBinder(DefaultTypeConverterFactory(), BindingPolicyManager())
        self.sealer = ValueSealer(self.config.encryption_key, debug_mode=self.config.debug_mode)
        self.messages = default_message_table
        self.exception_handler = DefaultExceptionHandler()
        self.async_support = select_async_support(self.config.async_supported, self.config.async_timeout)
        self.session_store = SessionStore(self.config.session_max_idle)

        self.interceptors = InterceptorRegistry(self.init_interceptors())
        for interceptor in interceptors or ():
            self.interceptors.add(interceptor)

        handler_types = list(handler_types or [])
        if self.config.action_packages or not handler_types:
            self.action_resolver.init(self.config.action_packages)
        for handler_type in handler_types:
            self.action_resolver.add_handler_type(handler_type)

        self.dispatcher = Dispatcher(self)

    @property
    def always_invoke_validate(self) -> bool:
        return self.config.always_invoke_validate

    # ─────────────────────────────────────────────────────────────────────
    # COLLABORATORS
    # ─────────────────────────────────────────────────────────────────────

    def init_view_renderer(self) -> Optional[FileViewRenderer]:
        if self.config.view_root is None:
            return None
        return FileViewRenderer(self.config.view_root, self.config.view_extension)

    def init_action_resolver(self) -> AnnotatedClassActionResolver:
        if self.config.resolver == "name_based":
            return NameBasedActionResolver(
                object_factory=self.object_factory,
                view_renderer=self.view_renderer,
                base_packages=self.config.base_packages,
                class_suffixes=self.config.class_suffixes,
                binding_suffix=self.config.binding_suffix,
                view_extension=self.config.view_extension,
            )
        return AnnotatedClassActionResolver(object_factory=self.object_factory)

    def init_interceptors(self):
        return [
            BeforeAfterMethodInterceptor(),
            HttpCacheInterceptor(),
            DispatchLoggingInterceptor(log_format=self.config.log_format),
        ]

    # ─────────────────────────────────────────────────────────────────────
    # CONTAINER HOOKS
    # ─────────────────────────────────────────────────────────────────────

    def prepare(self, request, response) -> None:
        """Install the container capabilities on a fresh request/response pair."""
        request.session_store = self.session_store
        request.async_support = self.async_support
        response.forwarder = self.forward

    def forward(self, request, response, path: str) -> None:
        """Forward `request` to `path`: a nested dispatch or a view."""
        request.apply_forward(path)
        if self.action_resolver.get_url_binding_from_path(request.path) is not None:
            logger.debug(f"Forwarding to handler at {request.path}")
            self.dispatcher.dispatch_request(request, response)
        elif self.view_renderer is not None:
            self.view_renderer.render(request.path, request, response)
        else:
            response.send_error(HTTPStatus.NOT_FOUND, f"Nothing to forward to at {path}")
