"""Small helpers with no dependencies on the rest of the package."""

from .crypto import ValueSealer
from .events import applies
from .html import combine_values, encode, split_values

__all__ = ["ValueSealer", "applies", "combine_values", "encode", "split_values"]
