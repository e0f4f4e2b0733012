"""
=============================================================================
LIFECYCLE STAGES
=============================================================================

One method per stage. Each sets the stage on the ExecutionContext, installs
that stage's interceptors and wraps its core action, so every stage reads:

    def do_something(self, ctx):
        ctx.stage = LifecycleStage.SOMETHING
        ctx.set_interceptors(self.interceptors_for(ctx.stage))

        def core(ctx):
            ...                      # None to carry on, a Resolution to stop
        return ctx.wrap(core)

The Dispatcher calls them in order and stops at the first Resolution.

=============================================================================
STAGE SUMMARY
=============================================================================

    ┌──────────────────────────┬─────────────────────────────────────────────┐
    │  ActionBeanResolution    │  handler instance from the resolver; URL    │
    │                          │  binding values become request parameters   │
    │  HandlerResolution       │  event name, then the method (REST: verb,   │
    │                          │  404 if missing), else the default handler  │
    │  BindingAndValidation    │  binder.bind(), unless @dont_bind           │
    │  CustomValidation        │  @validation_method methods                 │
    │  ValidationErrorHandling │  errors ─► handler, source page, REST 400   │
    │  EventHandling           │  verb check, then call the event method     │
    │  ResolutionExecution     │  resolution.execute(request, response)      │
    └──────────────────────────┴─────────────────────────────────────────────┘

=============================================================================
"""

import inspect
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..action.handler import ValidationErrorHandler
from ..action.markers import class_marker, method_markers
from ..action.resolution import (
    ErrorResolution,
    JsonResolution,
    Resolution,
    ValidationErrorReportResolution,
)
from ..binding.url_binding import EVENT_PARAMETER
from ..constants import REQ_ATTR_ACTION_BEAN, REQ_ATTR_URL_BINDING
from ..exceptions import HandlerNotFoundError, HttpMethodNotAllowedError, SourcePageNotFoundError
from ..http.status_codes import HTTPStatus
from ..util.events import applies
from ..util.html import encode
from ..validation.metadata import ValidationState
from .async_response import AsyncResponse
from .lifecycle import LifecycleStage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationMethod:
    name: str
    priority: int
    when: ValidationState
    on: Tuple[str, ...]
    takes_errors: bool


def is_rest(handler_type: type) -> bool:
    return bool(class_marker(handler_type, "rest", False))


class DispatcherHelper:
    """
    Stage implementations.

    Args:
        configuration: RuntimeConfiguration supplying the resolver, binder,
            interceptors and message table.
    """

    def __init__(self, configuration):
        self.configuration = configuration
        self._validation_methods: Dict[type, List[ValidationMethod]] = {}
        self._lock = threading.Lock()

    def interceptors_for(self, stage: LifecycleStage):
        return self.configuration.interceptors.get(stage)

    def _enter(self, ctx, stage: LifecycleStage) -> None:
        ctx.stage = stage
        ctx.set_interceptors(self.interceptors_for(stage))

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST INIT / COMPLETE
    # ─────────────────────────────────────────────────────────────────────

    def request_init(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.REQUEST_INIT)
        return ctx.wrap(lambda ctx: None)

    def request_complete(self, ctx) -> None:
        self._enter(ctx, LifecycleStage.REQUEST_COMPLETE)
        resolution = ctx.wrap(lambda ctx: None)
        if resolution is not None:
            logger.warning(
                f"An interceptor for {LifecycleStage.REQUEST_COMPLETE} returned {resolution!r}. "
                f"The response has already been produced, so it is ignored."
            )

    # ─────────────────────────────────────────────────────────────────────
    # RESOLUTION OF HANDLER AND EVENT
    # ─────────────────────────────────────────────────────────────────────

    def resolve_action_bean(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.ACTION_BEAN_RESOLUTION)

        def core(ctx):
            context = ctx.action_context
            request = context.request
            handler = self.configuration.action_resolver.get_action_bean(context)
            ctx.handler = handler
            request.set_attribute(REQ_ATTR_ACTION_BEAN, handler)

            # The handler's own context may be a richer subclass; adopt it
            own = handler.get_context()
            if own is not None and own is not context:
                own.event_name = context.event_name
                own.request = context.request
                own.response = context.response
                ctx.action_context = own

            binding = request.get_attribute(REQ_ATTR_URL_BINDING)
            if binding is not None:
                for name, value in binding.values.items():
                    if name != EVENT_PARAMETER and not request.has_parameter(name):
                        request.add_parameter(name, value)
            return None

        return ctx.wrap(core)

    def resolve_handler(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.HANDLER_RESOLUTION)

        def core(ctx):
            context = ctx.action_context
            resolver = self.configuration.action_resolver
            handler_type = type(ctx.handler)
            rest = is_rest(handler_type)

            method = None
            event = resolver.get_event_name(handler_type, context)
            if event is not None:
                try:
                    method = resolver.get_handler(handler_type, event)
                except HandlerNotFoundError:
                    if not rest:
                        raise
                    return self._rest_not_found(handler_type, event)
            elif rest:
                verb = context.request.method.lower()
                try:
                    method = resolver.get_handler(handler_type, verb)
                    event = verb
                except HandlerNotFoundError:
                    method = None

            if method is None:
                try:
                    method = resolver.get_default_handler(handler_type)
                except HandlerNotFoundError:
                    if not rest:
                        raise
                    return self._rest_not_found(handler_type, context.request.method.lower())
                event = resolver.get_handled_event(method)

            context.event_name = event
            ctx.handler_method = method
            logger.debug(f"Resolved event {event!r} to {method}")
            return None

        return ctx.wrap(core)

    def _rest_not_found(self, handler_type: type, event: str) -> Resolution:
        return ErrorResolution(
            HTTPStatus.NOT_FOUND,
            f"The requested handler method ({event}) is not found on this "
            f"RestActionBean ({handler_type.__name__})",
        )

    # ─────────────────────────────────────────────────────────────────────
    # BINDING AND VALIDATION
    # ─────────────────────────────────────────────────────────────────────

    def do_binding_and_validation(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.BINDING_AND_VALIDATION)

        def core(ctx):
            method = ctx.handler_method
            if method is not None and method.dont_bind:
                return None
            validate = method is None or not method.dont_validate
            self.configuration.property_binder.bind(ctx.handler, ctx.action_context, validate)
            self.fill_in_validation_errors(ctx)
            return None

        return ctx.wrap(core)

    def do_custom_validation(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.CUSTOM_VALIDATION)

        def core(ctx):
            method = ctx.handler_method
            if method is not None and (method.dont_bind or method.dont_validate):
                return None

            handler = ctx.handler
            errors = ctx.action_context.validation_errors
            event = ctx.event_name
            always = self.configuration.always_invoke_validate
            for validation in self.get_validation_methods(type(handler)):
                run = (
                    validation.when is ValidationState.ALWAYS
                    or (validation.when is ValidationState.DEFAULT and always)
                    or not errors
                )
                if run and applies(validation.on, event):
                    logger.debug(f"Calling validation method {type(handler).__name__}.{validation.name}()")
                    function = getattr(handler, validation.name)
                    if validation.takes_errors:
                        function(errors)
                    else:
                        function()

            self.fill_in_validation_errors(ctx)
            return None

        return ctx.wrap(core)

    def get_validation_methods(self, handler_type: type) -> List[ValidationMethod]:
        """@validation_method methods ordered by (priority, name); cached per type."""
        with self._lock:
            methods = self._validation_methods.get(handler_type)
            if methods is None:
                methods = self._scan_validation_methods(handler_type)
                self._validation_methods[handler_type] = methods
            return methods

    @staticmethod
    def _scan_validation_methods(handler_type: type) -> List[ValidationMethod]:
        functions = {}
        for cls in reversed(handler_type.__mro__):
            for name, value in vars(cls).items():
                if inspect.isfunction(value):
                    functions[name] = value

        methods = []
        for name, function in functions.items():
            marker = method_markers(function).get("validation_method")
            if marker is None:
                continue
            priority, when, on = marker
            arguments = list(inspect.signature(function).parameters)[1:]
            methods.append(ValidationMethod(name, priority, when, on, bool(arguments)))
        return sorted(methods, key=lambda m: (m.priority, m.name))

    def handle_validation_errors(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.VALIDATION_ERROR_HANDLING)

        def core(ctx):
            method = ctx.handler_method
            if method is not None and method.ignore_binding_errors:
                return None

            self.fill_in_validation_errors(ctx)
            context = ctx.action_context
            handler = ctx.handler
            errors = context.validation_errors

            if errors and isinstance(handler, ValidationErrorHandler):
                resolution = handler.handle_validation_errors(errors)
                self.fill_in_validation_errors(ctx)
                if resolution is not None:
                    return resolution

            if not errors:
                return None

            messages = self.configuration.messages
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    f"Validation errors on {type(handler).__name__} for event "
                    f"{ctx.event_name!r}: {errors.messages(messages)}"
                )

            if is_rest(type(handler)):
                return JsonResolution(self.error_document(errors), status=HTTPStatus.BAD_REQUEST)
            try:
                return context.get_source_page_resolution()
            except SourcePageNotFoundError:
                return ValidationErrorReportResolution(context)

        return ctx.wrap(core)

    def error_document(self, errors) -> dict:
        """Validation errors as the JSON body REST handlers answer with."""
        messages = self.configuration.messages
        return {
            "globalErrors": [error.get_message(messages) for error in errors.global_errors],
            "fieldErrors": [
                {
                    "fieldName": field,
                    "fieldValue": field_errors[0].field_value if field_errors else None,
                    "errorMessages": [error.get_message(messages) for error in field_errors],
                }
                for field, field_errors in errors.field_errors().items()
            ],
        }

    def fill_in_validation_errors(self, ctx) -> None:
        """
        Stamp new errors with the handler's binding and type, and the
        submitted value HTML-encoded for redisplay.
        """
        handler = ctx.handler
        if handler is None:
            return
        request = ctx.request
        action_path = self.configuration.action_resolver.get_url_binding(type(handler))
        for errors in ctx.action_context.validation_errors.values():
            for error in errors:
                if error.action_path is not None:
                    continue
                error.action_path = action_path
                error.handler_type = type(handler)
                value = error.field_value
                if value is None and error.field_name:
                    value = request.get_parameter(error.field_name)
                error.field_value = encode(value)

    # ─────────────────────────────────────────────────────────────────────
    # EVENT HANDLING
    # ─────────────────────────────────────────────────────────────────────

    def invoke_event_handler(self, ctx) -> Optional[Resolution]:
        self._enter(ctx, LifecycleStage.EVENT_HANDLING)

        def core(ctx):
            handler = ctx.handler
            method = ctx.handler_method
            request = ctx.request

            verb = request.method.upper()
            verbs = method.verbs
            if verbs and verb not in verbs and method.name.lower() != verb.lower():
                message = (
                    f"{verb} is not allowed for {method}; allowed: {', '.join(sorted(verbs))}"
                )
                if is_rest(type(handler)):
                    return ErrorResolution(HTTPStatus.METHOD_NOT_ALLOWED, message)
                raise HttpMethodNotAllowedError(message, verbs)

            if method.is_async:
                logger.debug(f"Event {ctx.event_name!r} is handled asynchronously by {method}")
                return AsyncResponse.new_instance(request, ctx.response, handler, method)

            result = method.invoke(handler)
            self.fill_in_validation_errors(ctx)

            if isinstance(result, Resolution):
                ctx.resolution_from_handler = True
                return result
            if result is not None:
                logger.warning(
                    f"{method} returned {type(result).__name__}, not a Resolution; "
                    f"the value is ignored"
                )
            return None

        return ctx.wrap(core)

    # ─────────────────────────────────────────────────────────────────────
    # RESOLUTION EXECUTION
    # ─────────────────────────────────────────────────────────────────────

    def execute_resolution(self, ctx, resolution: Resolution) -> None:
        self._enter(ctx, LifecycleStage.RESOLUTION_EXECUTION)
        ctx.resolution = resolution

        def core(ctx):
            logger.debug(f"Executing {ctx.resolution!r}")
            ctx.resolution.execute(ctx.request, ctx.response)
            return None

        returned = ctx.wrap(core)
        if returned is not None:
            logger.warning(
                f"An interceptor for {LifecycleStage.RESOLUTION_EXECUTION} returned "
                f"{returned!r}. Resolutions returned from this stage are ignored; to "
                f"execute a different one, set ctx.resolution before calling proceed()."
            )
