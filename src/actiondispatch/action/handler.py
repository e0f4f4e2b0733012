"""
=============================================================================
HANDLERS AND THEIR CONTEXT
=============================================================================

A Handler is an application class whose instances answer requests. Its
fields receive request parameters, its event methods return Resolutions:

    @url_binding("/user/{id}/{$event}")
    class UserAction(Handler):
        id: int = validate(required=True)
        user: User = None

        @default_handler
        def view(self) -> Resolution:
            self.user = users.load(self.id)
            return ForwardResolution("/user/view.html")

Each instance is given an ActionContext before binding. The context is the
handler's window onto the request: the request and response objects, the
event being fired, validation errors, and the page the form came from.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..constants import URL_KEY_SOURCE_PAGE
from ..exceptions import SourcePageNotFoundError
from ..util.crypto import ValueSealer
from ..validation.errors import ValidationErrors
from .resolution import ForwardResolution, Resolution


class ActionContext:
    """
    Per-request state handed to a handler.

    Args:
        request: The HTTPRequest.
        response: The HTTPResponse.
        sealer: Verifies the signed source page. Contexts built by the
            dispatcher get the configured sealer; a bare context accepts
            values as they are.
    """

    def __init__(self, request=None, response=None, sealer: Optional[ValueSealer] = None):
        self.request = request
        self.response = response
        self.event_name: Optional[str] = None
        self.sealer = sealer or ValueSealer(debug_mode=True)
        self._validation_errors: Optional[ValidationErrors] = None

    @property
    def validation_errors(self) -> ValidationErrors:
        if self._validation_errors is None:
            self._validation_errors = ValidationErrors()
        return self._validation_errors

    @validation_errors.setter
    def validation_errors(self, errors: ValidationErrors) -> None:
        self._validation_errors = errors

    @property
    def locale(self) -> str:
        return getattr(self.request, "locale", "en")

    def get_session(self, create: bool = True):
        return self.request.get_session(create)

    def get_source_page(self) -> Optional[str]:
        """
        Path of the page the submitted form was rendered on, or None when
        it was not submitted or its signature does not verify.
        """
        token = self.request.get_parameter(URL_KEY_SOURCE_PAGE)
        return self.sealer.unseal(token)

    def get_source_page_resolution(self) -> Resolution:
        """
        Forward back to the source page; used to redisplay a form with
        its errors.

        Raises:
            SourcePageNotFoundError: If there is no (valid) source page.
        """
        source = self.get_source_page()
        if source is None:
            raise SourcePageNotFoundError(self)
        return ForwardResolution(source)

    def __repr__(self) -> str:
        path = getattr(self.request, "path", None)
        return f"ActionContext(path={path!r}, event={self.event_name!r})"


class Handler:
    """
    Base class of request handlers.

    Subclasses may override get_context/set_context, for example to hand
    back a context subclass with typed helpers.
    """

    context: Optional[ActionContext] = None

    def get_context(self) -> Optional[ActionContext]:
        return self.context

    def set_context(self, context: ActionContext) -> None:
        self.context = context


class ValidationErrorHandler(ABC):
    """
    Mixin for handlers that want the first say when validation fails.

    Return a Resolution to take over, or None to let the default handling
    (source page, or the REST error document) proceed. Errors may be
    cleared or added to.
    """

    @abstractmethod
    def handle_validation_errors(self, errors: ValidationErrors) -> Optional[Resolution]:
        """Decide what to do about `errors`."""
