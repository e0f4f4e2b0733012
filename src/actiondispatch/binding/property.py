"""
=============================================================================
PROPERTY EXPRESSIONS
=============================================================================

Request parameter names are paths into the handler's object graph:

    "user.address.city"      attribute chain
    "items[2].quantity"      list element, then attribute
    "prefs['theme']"         dict entry
    "prefs[theme]"           same; unquoted non-numeric keys are strings

Types come from class annotations, so a handler declares what it accepts:

    class Item:
        quantity: int = None

    class OrderAction(Handler):
        items: List[Item] = None
        prefs: Dict[str, str] = None

Setting a value creates whatever is missing along the way:

    evaluation = PropertyExpressionEvaluation(parse("items[2].quantity"), order)
    evaluation.set_value(5)

        order.items is None          → order.items = []
        len(order.items) < 3         → padded with None
        order.items[2] is None       → order.items[2] = Item()
        order.items[2].quantity = 5

=============================================================================
"""

import logging
import threading
import types
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

logger = logging.getLogger(__name__)

_UNION_TYPES = tuple({Union, getattr(types, "UnionType", Union)})
COLLECTION_TYPES = (list, set, frozenset, tuple)


class PropertyExpressionError(ValueError):
    """A parameter name that is not a well formed property path."""


@dataclass(frozen=True)
class Node:
    value: Union[str, int]
    is_index: bool = False

    def __str__(self) -> str:
        return f"[{self.value!r}]" if self.is_index else str(self.value)


class PropertyExpression:
    """A parsed property path."""

    def __init__(self, source: str, nodes: List[Node]):
        self.source = source
        self.nodes = nodes

    @classmethod
    def parse(cls, source: str) -> "PropertyExpression":
        nodes: List[Node] = []
        i = 0
        length = len(source)
        while i < length:
            char = source[i]
            if char == ".":
                i += 1
                continue
            if char == "[":
                end = source.find("]", i)
                if end < 0:
                    raise PropertyExpressionError(f"Unterminated index in {source!r}")
                nodes.append(_index_node(source[i + 1:end].strip()))
                i = end + 1
                continue
            start = i
            while i < length and source[i] not in ".[":
                i += 1
            name = source[start:i].strip()
            if not name.isidentifier():
                raise PropertyExpressionError(f"Invalid property {name!r} in {source!r}")
            nodes.append(Node(name))

        if not nodes or nodes[0].is_index:
            raise PropertyExpressionError(f"Invalid property expression {source!r}")
        return cls(source, nodes)

    def __str__(self) -> str:
        return self.source


def _index_node(text: str) -> Node:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return Node(text[1:-1], is_index=True)
    if text.lstrip("-").isdigit():
        return Node(int(text), is_index=True)
    return Node(text, is_index=True)


_expression_cache: Dict[str, PropertyExpression] = {}


def parse(source: str) -> PropertyExpression:
    """Parse (and cache) a property expression."""
    expression = _expression_cache.get(source)
    if expression is None:
        expression = PropertyExpression.parse(source)
        _expression_cache[source] = expression
    return expression


# ─────────────────────────────────────────────────────────────────────────
# TYPE RESOLUTION
# ─────────────────────────────────────────────────────────────────────────

_hints_cache: Dict[type, Dict[str, Any]] = {}
_hints_lock = threading.Lock()


def type_hints(cls: type) -> Dict[str, Any]:
    """Resolved annotations of `cls` and its bases, cached per class."""
    hints = _hints_cache.get(cls)
    if hints is not None:
        return hints
    with _hints_lock:
        hints = _hints_cache.get(cls)
        if hints is None:
            try:
                hints = get_type_hints(cls)
            except Exception as e:
                logger.debug(f"Could not resolve annotations of {cls.__name__}: {e}")
                hints = {}
                for klass in reversed(cls.__mro__):
                    hints.update(getattr(klass, "__annotations__", {}))
            _hints_cache[cls] = hints
    return hints


def unwrap_optional(annotation: Any) -> Any:
    """`Optional[int]` → `int`. Other unions are left alone."""
    if get_origin(annotation) in _UNION_TYPES:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def collection_origin(annotation: Any) -> Optional[type]:
    """list/set/frozenset/tuple for collection annotations, else None."""
    annotation = unwrap_optional(annotation)
    origin = get_origin(annotation) or annotation
    if isinstance(origin, type) and issubclass(origin, COLLECTION_TYPES):
        return origin
    return None


def element_type(annotation: Any) -> Any:
    """Item type of a collection, or value type of a mapping; None if unknown."""
    annotation = unwrap_optional(annotation)
    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin is None or not args:
        return None
    if isinstance(origin, type) and issubclass(origin, dict):
        return args[1] if len(args) > 1 else None
    return args[0]


def _instantiate(annotation: Any) -> Any:
    annotation = unwrap_optional(annotation)
    origin = get_origin(annotation) or annotation
    if origin is list or (isinstance(origin, type) and issubclass(origin, tuple)):
        return []
    if isinstance(origin, type) and issubclass(origin, dict):
        return {}
    if isinstance(origin, type) and issubclass(origin, (set, frozenset)):
        return set()
    if isinstance(origin, type):
        return origin()
    raise PropertyExpressionError(f"Cannot create an instance of {annotation!r}")


# ─────────────────────────────────────────────────────────────────────────
# EVALUATION
# ─────────────────────────────────────────────────────────────────────────


class PropertyExpressionEvaluation:
    """
    One expression evaluated against one bean.

    Example:
        evaluation = PropertyExpressionEvaluation(parse("user.age"), action)
        evaluation.get_type()         # int
        evaluation.set_value(42)
    """

    def __init__(self, expression: PropertyExpression, bean: Any):
        self.expression = expression
        self.bean = bean
        self._types: Optional[List[Any]] = None

    def _node_types(self) -> List[Any]:
        """Declared type at each node, following the live object where one exists."""
        if self._types is not None:
            return self._types
        node_types = []
        current_type: Any = type(self.bean)
        current_value: Any = self.bean
        for node in self.expression.nodes:
            if node.is_index:
                declared = element_type(current_type)
                current_value = _get_item(current_value, node.value)
            else:
                declared = None
                cls = unwrap_optional(current_type)
                if isinstance(cls, type):
                    declared = type_hints(cls).get(node.value)
                current_value = getattr(current_value, node.value, None) if current_value is not None else None
            if declared is None and current_value is not None:
                declared = type(current_value)
            node_types.append(declared)
            current_type = declared
        self._types = node_types
        return node_types

    def get_type(self) -> Any:
        """Declared type of the target property (may be a typing alias), or None."""
        return unwrap_optional(self._node_types()[-1])

    def is_collection(self) -> bool:
        return collection_origin(self.get_type()) is not None

    def get_scalar_type(self) -> Any:
        """The item type for collections, the property type otherwise."""
        declared = self.get_type()
        if collection_origin(declared) is not None:
            return unwrap_optional(element_type(declared)) or str
        return declared

    def get_value(self) -> Any:
        current = self.bean
        for node in self.expression.nodes:
            if current is None:
                return None
            if node.is_index:
                current = _get_item(current, node.value)
            else:
                current = getattr(current, node.value, None)
        return current

    def set_value(self, value: Any) -> None:
        """Set the target property, creating intermediate objects as needed."""
        nodes = self.expression.nodes
        node_types = self._node_types()
        current = self.bean
        for i, node in enumerate(nodes[:-1]):
            child = _get_item(current, node.value) if node.is_index else getattr(current, node.value, None)
            if child is None:
                child = _instantiate(node_types[i])
                _set_child(current, node, child)
            current = child
        _set_child(current, nodes[-1], value)
        self._types = None

    def set_to_null(self) -> None:
        """Set the target to None, unless something along the path is missing."""
        current = self.bean
        for node in self.expression.nodes[:-1]:
            current = _get_item(current, node.value) if node.is_index else getattr(current, node.value, None)
            if current is None:
                return
        _set_child(current, self.expression.nodes[-1], None)


def _get_item(container: Any, key: Union[str, int]) -> Any:
    if container is None:
        return None
    if isinstance(container, dict):
        return container.get(key)
    if isinstance(container, (list, tuple)) and isinstance(key, int):
        return container[key] if -len(container) <= key < len(container) else None
    return None


def _set_child(container: Any, node: Node, value: Any) -> None:
    if not node.is_index:
        setattr(container, node.value, value)
    elif isinstance(container, dict):
        container[node.value] = value
    elif isinstance(container, list) and isinstance(node.value, int):
        if node.value < 0:
            raise PropertyExpressionError(f"Negative index {node.value} cannot grow a list")
        while len(container) <= node.value:
            container.append(None)
        container[node.value] = value
    else:
        raise PropertyExpressionError(
            f"Cannot set index {node.value!r} on {type(container).__name__}"
        )


def get_property(bean: Any, name: str) -> Any:
    return PropertyExpressionEvaluation(parse(name), bean).get_value()


def set_property(bean: Any, name: str, value: Any) -> None:
    PropertyExpressionEvaluation(parse(name), bean).set_value(value)


def set_property_to_null(bean: Any, name: str) -> None:
    PropertyExpressionEvaluation(parse(name), bean).set_to_null()
