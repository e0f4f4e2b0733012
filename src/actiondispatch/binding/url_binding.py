"""
=============================================================================
URL BINDING PATTERNS
=============================================================================

A handler's @url_binding pattern says which request paths it answers and
which path segments are really parameters:

    "/user/{id}/{$event=view}.action"

    parse ─►  path:        "/user"
              components:  ["/", {id}, "/", {$event=view}, ".action"]
              suffix:      ".action"

    ┌──────────────┬────────────────────────────────────────────────────────┐
    │  Syntax      │  Meaning                                               │
    ├──────────────┼────────────────────────────────────────────────────────┤
    │  {name}      │  parameter                                             │
    │  {name=dflt} │  parameter with a default value                        │
    │  {$event}    │  the event name; defaults to the default handler's     │
    │  \\x          │  literal x (escapes braces, backslashes and "=")       │
    └──────────────┴────────────────────────────────────────────────────────┘

The path is everything before the first parameter, trimmed back to its last
identifier character; whatever was trimmed becomes the first literal
component. Patterns without parameters are all path.

=============================================================================
EVALUATION
=============================================================================

Evaluating a pattern against a concrete URI yields a LiveBinding:

    "/user/{id}/{$event=view}"  against  "/user/42"

        index = len("/user")
        literal "/"  found at 5   → nothing pending
        {id}         pending
        literal "/"  not found    → stop; id = "42" (rest of the URI)
        {$event}     not reached  → default

    LiveBinding(id="42", $event=<default handler's event>)

A trailing "/" and the suffix are ignored before walking.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ..exceptions import UrlBindingParseError

EVENT_PARAMETER = "$event"


@dataclass(frozen=True)
class UrlBindingParameter:
    """A `{name}` or `{name=default}` component of a pattern."""

    name: str
    default: Optional[str] = None
    declared_default: Optional[str] = None
    """The default as written in the pattern, kept for rendering."""

    @property
    def is_event(self) -> bool:
        return self.name == EVENT_PARAMETER

    def __str__(self) -> str:
        if self.declared_default is not None:
            return f"{{{self.name}={self.declared_default}}}"
        return f"{{{self.name}}}"


Component = Union[str, UrlBindingParameter]


class UrlBinding:
    """
    A parsed pattern bound to one handler type.

    Immutable once registered, except that the `$event` default is filled
    in once during startup (see with_event_default).
    """

    def __init__(self, handler_type: Optional[type], path: str, components: Optional[List[Component]] = None):
        self.handler_type = handler_type
        self.path = path
        self.components: List[Component] = list(components or [])
        self.parameters: List[UrlBindingParameter] = [
            c for c in self.components if isinstance(c, UrlBindingParameter)
        ]
        if self.parameters and self.components and isinstance(self.components[-1], str):
            self.suffix: Optional[str] = self.components[-1]
        else:
            self.suffix = None

    def with_event_default(self, event_name: Optional[str]) -> "UrlBinding":
        """
        Copy of this binding whose `$event` parameter defaults to
        `event_name`. The declared default is kept when `event_name` is None.
        """
        components: List[Component] = []
        for component in self.components:
            if isinstance(component, UrlBindingParameter) and component.is_event and event_name is not None:
                component = UrlBindingParameter(component.name, event_name, component.declared_default)
            components.append(component)
        return UrlBinding(self.handler_type, self.path, components)

    def get_parameter(self, name: str) -> Optional[UrlBindingParameter]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def __str__(self) -> str:
        return self.path + "".join(str(c) for c in self.components)

    def __repr__(self) -> str:
        owner = self.handler_type.__name__ if self.handler_type else None
        return f"UrlBinding({str(self)!r}, handler={owner})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, UrlBinding):
            return NotImplemented
        return self.handler_type is other.handler_type and str(self) == str(other)

    def __hash__(self) -> int:
        return hash((self.handler_type, str(self)))


@dataclass
class LiveBinding:
    """
    A binding evaluated against one request path.

    `values` holds a value for every parameter that has one, whether it
    came from the path or from a default.
    """

    prototype: UrlBinding
    uri: str
    values: Dict[str, str] = field(default_factory=dict)
    from_path: Dict[str, str] = field(default_factory=dict)
    """The subset of values actually present in the URI."""

    @property
    def handler_type(self) -> Optional[type]:
        return self.prototype.handler_type

    @property
    def path(self) -> str:
        return self.prototype.path

    def get(self, name: str) -> Optional[str]:
        return self.values.get(name)

    @property
    def event(self) -> Optional[str]:
        return self.values.get(EVENT_PARAMETER)

    def __str__(self) -> str:
        return str(self.prototype)


# ─────────────────────────────────────────────────────────────────────────
# PARSING
# ─────────────────────────────────────────────────────────────────────────


def _is_identifier_part(char: str) -> bool:
    return char.isalnum() or char in "_$"


def parse_url_binding(handler_type: Optional[type], pattern: Optional[str]) -> Optional[UrlBinding]:
    """
    Parse a binding pattern.

    Returns None for an empty pattern.

    Raises:
        UrlBindingParseError: On a trailing escape or an unclosed brace.
    """
    if not pattern:
        return None

    path: Optional[str] = None
    components: List[Component] = []
    brace_level = 0
    escape = False
    buf: List[str] = []

    for char in pattern:
        if not escape:
            if char == "{":
                brace_level += 1
                if brace_level == 1:
                    text = "".join(buf)
                    if path is None:
                        end = len(text) - 1
                        while end >= 0 and not _is_identifier_part(text[end]):
                            end -= 1
                        if end < 0:
                            path = text
                        else:
                            path = text[: end + 1]
                            if text[end + 1:]:
                                components.append(text[end + 1:])
                    elif text:
                        components.append(text)
                    buf = []
                    continue
            elif char == "}":
                if brace_level > 0:
                    brace_level -= 1
                if brace_level == 0:
                    components.append(parse_parameter("".join(buf)))
                    buf = []
                    continue
            elif char == "\\":
                escape = True
                if brace_level > 0:
                    # The parameter parser handles its own escapes
                    buf.append(char)
                continue
        buf.append(char)
        escape = False

    if escape:
        raise UrlBindingParseError(pattern, "Expression must not end with escape character")
    if brace_level > 0:
        raise UrlBindingParseError(pattern, "Unterminated left brace ('{') in expression")
    if buf:
        text = "".join(buf)
        if path is None:
            path = text
        else:
            components.append(text)

    return UrlBinding(handler_type, path if path is not None else "", components)


def parse_parameter(text: str) -> UrlBindingParameter:
    """Split `name=default` on the first unescaped "="."""
    name: List[str] = []
    default: List[str] = []
    current = name
    escape = False
    for char in text:
        if not escape:
            if char == "\\":
                escape = True
                continue
            if char == "=" and current is name:
                current = default
                continue
        current.append(char)
        escape = False

    default_value = "".join(default) or None
    return UrlBindingParameter("".join(name), default_value, default_value)


# ─────────────────────────────────────────────────────────────────────────
# EVALUATION
# ─────────────────────────────────────────────────────────────────────────


def evaluate(prototype: UrlBinding, uri: str) -> LiveBinding:
    """Extract parameter values from `uri` (see the module docstring)."""
    length = len(uri)
    while length > 0 and uri[length - 1] == "/":
        length -= 1
    suffix = prototype.suffix
    if suffix is not None and uri[:length].endswith(suffix):
        length -= len(suffix)

    from_path: Dict[str, str] = {}
    index = len(prototype.path)
    pending: Optional[UrlBindingParameter] = None
    value: Optional[str] = None
    for component in prototype.components:
        if index >= length:
            break
        if isinstance(component, str):
            end = uri.find(component, index, length)
            if end >= 0:
                value = uri[index:end]
                index = end + len(component)
            else:
                value = uri[index:length]
                index = length
            if pending is not None and value:
                from_path[pending.name] = value
                pending = None
                value = None
        else:
            pending = component

    if index < length:
        value = uri[index:length]
    if pending is not None and value:
        from_path[pending.name] = value

    values: Dict[str, str] = {}
    for parameter in prototype.parameters:
        if parameter.name in from_path:
            values[parameter.name] = from_path[parameter.name]
        elif parameter.default is not None:
            values[parameter.name] = parameter.default

    return LiveBinding(prototype=prototype, uri=uri, values=values, from_path=from_path)
