"""
Request parameter names as the binder sees them.

    ParameterName("items[3].name")
        name          "items[3].name"
        stripped_name "items.name"     ← key for validation metadata
        is_indexed    True

Names order by length, then lexically, so "user" is bound before
"user.address" and "user.address.city": a parent object always exists
before its properties are set.
"""

from functools import total_ordering

from ..validation.errors import strip_indexes


@total_ordering
class ParameterName:
    """A submitted parameter name and its index-free form."""

    __slots__ = ("name", "stripped_name", "is_indexed")

    def __init__(self, name: str):
        self.name = name
        self.stripped_name = strip_indexes(name)
        self.is_indexed = self.stripped_name != name

    def _key(self):
        return (len(self.name), self.name)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ParameterName):
            return NotImplemented
        return self.name == other.name

    def __lt__(self, other) -> bool:
        if not isinstance(other, ParameterName):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self.name)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"ParameterName({self.name!r})"
