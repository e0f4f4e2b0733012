"""URL bindings and request parameter binding."""

from .binder import DefaultPropertyBinder
from .parameter_name import ParameterName
from .policy import BindingPolicyManager, glob_to_pattern
from .property import (
    PropertyExpression,
    PropertyExpressionError,
    PropertyExpressionEvaluation,
    get_property,
    set_property,
)
from .registry import UrlBindingRegistry
from .url_binding import (
    EVENT_PARAMETER,
    LiveBinding,
    UrlBinding,
    UrlBindingParameter,
    evaluate,
    parse_url_binding,
)

__all__ = [
    "BindingPolicyManager",
    "DefaultPropertyBinder",
    "EVENT_PARAMETER",
    "LiveBinding",
    "ParameterName",
    "PropertyExpression",
    "PropertyExpressionError",
    "PropertyExpressionEvaluation",
    "UrlBinding",
    "UrlBindingParameter",
    "UrlBindingRegistry",
    "evaluate",
    "get_property",
    "glob_to_pattern",
    "parse_url_binding",
    "set_property",
]
