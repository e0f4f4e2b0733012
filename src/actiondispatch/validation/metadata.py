"""
=============================================================================
FIELD VALIDATION METADATA
=============================================================================

Handlers declare validation rules where they declare their fields:

    class RegisterAction(Handler):
        user: User = validate(nested={
            "username": validate(required=True, minlength=3, maxlength=20),
            "email":    validate(required=True, converter=EmailTypeConverter),
        })
        age: int = validate(minvalue=18, on=["!cancel"])
        password: str = validate(required=True, on=["register"], trim=False)
        token: str = validate(encrypted=True)

`validate(...)` is a data descriptor. On the class it carries the rules; on
an instance it behaves like a plain attribute defaulting to None (or to
`default=`).

At startup (and lazily on first use) the rules of a handler type are
flattened into one ValidationMetadata per property path:

    "user.username" → ValidationMetadata(required=True, minlength=3, ...)
    "user.email"    → ValidationMetadata(required=True, converter=...)
    "age"           → ValidationMetadata(minvalue=18, on=("!cancel",))

=============================================================================
RULE ORDER DURING BINDING
=============================================================================

    required ─► minlength / maxlength / mask ─► convert ─► minvalue / maxvalue
                 (on the trimmed string)                    ─► expression

`on=` applies to `required` only; the other rules run for every event.

=============================================================================
"""

import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Pattern, Tuple

from ..util.events import applies


class ValidationState(Enum):
    """When a @validation_method runs relative to earlier errors."""

    ALWAYS = "always"
    """Run even if binding produced errors."""

    NO_ERRORS = "no_errors"
    """Run only when there are no errors so far."""

    DEFAULT = "default"
    """NO_ERRORS, unless the configuration says always_invoke_validate."""


@dataclass(frozen=True)
class ValidationMetadata:
    """Rules for one property path of one handler type."""

    property: str
    required: bool = False
    on: Tuple[str, ...] = ()
    ignore: bool = False
    trim: bool = True
    minlength: Optional[int] = None
    maxlength: Optional[int] = None
    minvalue: Optional[float] = None
    maxvalue: Optional[float] = None
    mask: Optional[Pattern] = None
    expression: Optional[Callable[[Any, Any], bool]] = field(default=None, compare=False)
    """Called as expression(handler, value); a falsy result is an error."""
    converter: Any = None
    encrypted: bool = False
    label: Optional[str] = None

    def required_on(self, event: Optional[str]) -> bool:
        """Whether the field is required when `event` fires."""
        return self.required and applies(self.on, event)


class validate:
    """
    Declare validation rules on a handler field.

    Args:
        required: Value must be present (see `on`).
        on: Events `required` applies to; prefix the first with "!" to
            list exclusions instead.
        ignore: Never bind this field from the request.
        trim: Strip whitespace before validating (default True).
        minlength / maxlength: Bounds on the string length.
        minvalue / maxvalue: Bounds on the converted number.
        mask: Regex the whole string must match.
        expression: Callable(handler, value) -> bool run after conversion.
        converter: TypeConverter class or instance to use for this field.
        encrypted: Value is sealed on the way out and unsealed on the way in.
        label: Display name used in error messages.
        nested: Rules for properties of this field's value, keyed by their
            path relative to this field.
        default: Instance value before anything is bound.
    """

    def __init__(
        self,
        required: bool = False,
        on=(),
        ignore: bool = False,
        trim: bool = True,
        minlength: Optional[int] = None,
        maxlength: Optional[int] = None,
        minvalue: Optional[float] = None,
        maxvalue: Optional[float] = None,
        mask: Optional[str] = None,
        expression: Optional[Callable[[Any, Any], bool]] = None,
        converter: Any = None,
        encrypted: bool = False,
        label: Optional[str] = None,
        nested: Optional[Dict[str, "validate"]] = None,
        default: Any = None,
    ):
        if isinstance(on, str):
            on = (on,)
        self.rules = dict(
            required=required,
            on=tuple(on),
            ignore=ignore,
            trim=trim,
            minlength=minlength,
            maxlength=maxlength,
            minvalue=minvalue,
            maxvalue=maxvalue,
            mask=re.compile(mask) if mask else None,
            expression=expression,
            converter=converter,
            encrypted=encrypted,
            label=label,
        )
        self.nested = dict(nested or {})
        self.default = default
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance.__dict__.get(self.name, self.default)

    def __set__(self, instance, value):
        instance.__dict__[self.name] = value

    @property
    def has_rules(self) -> bool:
        """False for a bare validate() used only to hold nested rules."""
        defaults = validate().rules
        return any(self.rules[key] != defaults[key] for key in defaults)

    def metadata_for(self, path: str) -> Dict[str, ValidationMetadata]:
        """Flatten this declaration (and nested ones) under `path`."""
        result: Dict[str, ValidationMetadata] = {}
        if self.has_rules:
            result[path] = ValidationMetadata(property=path, **self.rules)
        for relative, rule in self.nested.items():
            result.update(rule.metadata_for(f"{path}.{relative}"))
        return result




def get_validation_metadata(handler_type: type) -> Dict[str, ValidationMetadata]:
    """
    All rules of a handler type, keyed by property path.

    Subclass declarations replace those of the same name in a base class.
    Computed on every call; a ValidationMetadataProvider caches the result.
    """
    declarations: Dict[str, validate] = {}
    for cls in reversed(handler_type.__mro__):
        for name, value in vars(cls).items():
            if isinstance(value, validate):
                declarations[name] = value

    metadata: Dict[str, ValidationMetadata] = {}
    for name, rule in declarations.items():
        metadata.update(rule.metadata_for(name))
    return metadata


class ValidationMetadataProvider:
    """
    Per-type cache of validation metadata.

    Each property binder owns one, so the cache lives and dies with the
    runtime configuration that created it.

    Example:
        provider = ValidationMetadataProvider()
        provider.get(RegisterAction)["user.email"].required     # True
        provider.get_field(RegisterAction, "user.email")
    """

    def __init__(self):
        self._cache: Dict[type, Dict[str, ValidationMetadata]] = {}
        self._lock = threading.Lock()

    def get(self, handler_type: type) -> Dict[str, ValidationMetadata]:
        cached = self._cache.get(handler_type)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._cache.get(handler_type)
            if cached is None:
                cached = get_validation_metadata(handler_type)
                self._cache[handler_type] = cached
        return cached

    def get_field(self, handler_type: type, property_path: str) -> Optional[ValidationMetadata]:
        return self.get(handler_type).get(property_path)

    def clear(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._cache.clear()
