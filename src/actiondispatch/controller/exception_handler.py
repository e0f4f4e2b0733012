"""
Exception handling at the outer dispatch boundary.

Handlers are registered per exception class and found by walking the
raised exception's MRO, so the most specific registration wins:

    exceptions = DefaultExceptionHandler()
    exceptions.add_handler(HandlerNotFoundError, lambda e, req, res: ErrorResolution(404))
    exceptions.add_handler(DispatchError, render_error_page)

A handler may write the response itself and return None, or return a
Resolution to execute. Exceptions nobody registered for are re-raised to
the container.
"""

import logging
from typing import Callable, Dict, Optional, Type

from ..action.resolution import Resolution

logger = logging.getLogger(__name__)

ExceptionHandlerFn = Callable[[BaseException, object, object], Optional[Resolution]]


class DefaultExceptionHandler:

    def __init__(self):
        self.handlers: Dict[Type[BaseException], ExceptionHandlerFn] = {}

    def add_handler(self, exception_type: Type[BaseException], handler: ExceptionHandlerFn) -> None:
        self.handlers[exception_type] = handler

    def find_handler(self, exception_type: Type[BaseException]) -> Optional[ExceptionHandlerFn]:
        for cls in exception_type.__mro__:
            handler = self.handlers.get(cls)
            if handler is not None:
                return handler
        return None

    def handle(self, error: BaseException, request, response) -> None:
        """
        Raises:
            The original exception, when no handler is registered for it.
        """
        handler = self.find_handler(type(error))
        if handler is None:
            raise error

        logger.debug(f"Handling {type(error).__name__} with {getattr(handler, '__name__', handler)}")
        resolution = handler(error, request, response)
        if resolution is not None:
            resolution.execute(request, response)
