"""
Builds handler instances (and anything else the dispatcher instantiates).

Applications that wire handlers through a container of their own replace
this with a subclass overriding new_instance().
"""

import logging
from typing import Any, Type, TypeVar

from ..exceptions import ConstructionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObjectFactory:
    """Calls the no-argument constructor."""

    def new_instance(self, cls: Type[T]) -> T:
        """
        Raises:
            ConstructionError: The constructor is missing or raised.
        """
        try:
            instance = cls()
        except Exception as e:
            raise ConstructionError(f"Could not create an instance of {cls.__name__}: {e}") from e
        return self.post_process(instance)

    def post_process(self, instance: Any) -> Any:
        """Hook run on every new instance."""
        return instance
