"""
=============================================================================
VALIDATION ERRORS
=============================================================================

Binding and validation never raise for bad input. Every problem becomes a
ValidationError filed under the field it concerns:

    ValidationErrors
    ┌───────────────────────┬───────────────────────────────────────────────┐
    │  "user.age"           │  [LocalizableError(converter.number...)]      │
    │  "items.name"         │  [ScopedLocalizableError(validation.requir.)] │
    │  "__global_error"     │  [SimpleError("Card was declined")]           │
    └───────────────────────┴───────────────────────────────────────────────┘

Indexed names are filed under their stripped form (`items[3].name` goes under
`items.name`) so a page can look errors up without knowing the row.

=============================================================================
MESSAGES
=============================================================================

Messages are MessageFormat-like templates: `{0}` is the field's display name,
`{1}` the submitted value, `{2}` onward the error's own parameters.

    ScopedLocalizableError("validation.required", "valueNotPresent")
    looks up, first hit wins:
        /user/{id}.user.name.valueNotPresent      (action path + field)
        /user/{id}.valueNotPresent                (action path)
        user.name.valueNotPresent                 (field)
        validation.required.valueNotPresent       (default scope)

Localization proper is not handled here: lookups go to one MessageTable,
English by default, which an application may extend.

=============================================================================
"""

import re
from typing import Any, Dict, Iterable, List, Optional

GLOBAL_ERROR = "__global_error"
"""Key under which errors that belong to no single field are filed."""

DEFAULT_MESSAGES: Dict[str, str] = {
    "validation.required.valueNotPresent": "{0} is a required field",
    "validation.minlength.valueTooShort": "{0} must be at least {2} characters long",
    "validation.maxlength.valueTooLong": "{0} must be no more than {2} characters long",
    "validation.minvalue.valueBelowMinimum": "The minimum allowed value for {0} is {2}",
    "validation.maxvalue.valueAboveMaximum": "The maximum allowed value for {0} is {2}",
    "validation.mask.valueDoesNotMatch": "{1} is not a valid {0}",
    "validation.expression.valueFailedExpression": "The value supplied ({1}) for field {0} is invalid",
    "converter.number.invalidNumber": "The value ({1}) entered in field {0} must be a valid number",
    "converter.integer.outOfRange": "The value ({1}) entered in field {0} was out of the range {2} to {3}",
    "converter.float.outOfRange": "The value ({1}) entered in field {0} was out of the range {2} to {3}",
    "converter.date.invalidDate": "The value ({1}) entered in field {0} must be a valid date",
    "converter.enum.notAnEnumeratedValue": "The value ({1}) entered in field {0} is not a valid value",
    "converter.email.invalidEmail": "The value ({1}) entered is not a valid email address",
    "converter.creditCard.invalidCreditCard": "The value entered is not a valid or supported credit card number",
    "converter.percentage.invalidNumber": "The value ({1}) entered in field {0} must be a valid percentage",
    "converter.invalidValue": "The value ({1}) entered in field {0} is not valid",
}


class MessageTable:
    """Key to template lookup shared by all localizable errors."""

    def __init__(self, messages: Optional[Dict[str, str]] = None):
        self.messages: Dict[str, str] = dict(DEFAULT_MESSAGES)
        if messages:
            self.messages.update(messages)

    def get(self, key: str) -> Optional[str]:
        return self.messages.get(key)

    def update(self, messages: Dict[str, str]) -> None:
        self.messages.update(messages)


default_message_table = MessageTable()

_PLACEHOLDER = re.compile(r"\{(\d+)\}")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def format_message(template: str, params: List[Any]) -> str:
    """Replace `{n}` placeholders; unknown indexes are left as they are."""

    def replace(match):
        index = int(match.group(1))
        if index < len(params):
            value = params[index]
            return "" if value is None else str(value)
        return match.group(0)

    return _PLACEHOLDER.sub(replace, template)


def friendly_name(field_name: Optional[str]) -> str:
    """
    Turn a property path into something readable.

    Example:
        friendly_name("user.firstName")   # "User First Name"
        friendly_name("items.unit_price") # "Items Unit Price"
    """
    if not field_name:
        return ""
    words = []
    for part in re.split(r"[._\[\]]+", field_name):
        words.extend(_CAMEL_BOUNDARY.sub(" ", part).split())
    return " ".join(word[:1].upper() + word[1:] for word in words)


class ValidationError:
    """
    One problem with one field (or with the request as a whole).

    The binder fills in field_name and field_value; the dispatcher fills in
    action_path and handler_type once binding is over.
    """

    def __init__(self):
        self.field_name: Optional[str] = None
        self.field_value: Optional[str] = None
        self.field_label: Optional[str] = None
        self.action_path: Optional[str] = None
        self.handler_type: Optional[type] = None

    def get_message(self, messages: Optional[MessageTable] = None) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(field={self.field_name!r}, message={self.get_message()!r})"


class SimpleError(ValidationError):
    """
    An error with a literal message template.

    Example:
        SimpleError("{0} must be an adult", 18)
    """

    def __init__(self, message: str, *params: Any):
        super().__init__()
        self.message = message
        self.params = list(params)

    def _display_name(self) -> str:
        return self.field_label or friendly_name(self.field_name)

    def _replacement_params(self) -> List[Any]:
        return [self._display_name(), self.field_value] + self.params

    def get_message(self, messages: Optional[MessageTable] = None) -> str:
        return format_message(self._template(messages or default_message_table), self._replacement_params())

    def _template(self, messages: MessageTable) -> str:
        return self.message


class LocalizableError(SimpleError):
    """An error whose template is looked up by key."""

    def __init__(self, message_key: str, *params: Any):
        super().__init__(message_key, *params)
        self.message_key = message_key

    def _template(self, messages: MessageTable) -> str:
        return messages.get(self.message_key) or self.message_key


class ScopedLocalizableError(LocalizableError):
    """
    An error whose template may be overridden per action, per field or
    globally; see the module docstring for the lookup order.
    """

    def __init__(self, default_scope: str, key: str, *params: Any):
        super().__init__(f"{default_scope}.{key}", *params)
        self.default_scope = default_scope
        self.key = key

    def _template(self, messages: MessageTable) -> str:
        candidates = []
        if self.action_path:
            if self.field_name:
                candidates.append(f"{self.action_path}.{self.field_name}.{self.key}")
            candidates.append(f"{self.action_path}.{self.key}")
        if self.field_name:
            candidates.append(f"{self.field_name}.{self.key}")
        candidates.append(f"{self.default_scope}.{self.key}")

        for candidate in candidates:
            template = messages.get(candidate)
            if template is not None:
                return template
        return self.message_key


class ValidationErrors(dict):
    """
    Field name to list of errors. A plain dict underneath, so pages can
    iterate it and tests can compare it.
    """

    def add(self, field: str, error: ValidationError) -> None:
        """File `error` under `field`, stripping any indexes from the name."""
        if not field:
            raise ValueError("Field name must not be empty; use add_global_error")
        stripped = strip_indexes(field)
        error.field_name = stripped
        self.setdefault(stripped, []).append(error)

    def add_all(self, field: str, errors: Iterable[ValidationError]) -> None:
        for error in errors:
            self.add(field, error)

    def add_global_error(self, error: ValidationError) -> None:
        self.setdefault(GLOBAL_ERROR, []).append(error)

    def put_all(self, other: Dict[str, List[ValidationError]]) -> None:
        for field, errors in other.items():
            self.setdefault(field, []).extend(errors)

    def has_field_errors(self) -> bool:
        return any(field != GLOBAL_ERROR and errors for field, errors in self.items())

    @property
    def global_errors(self) -> List[ValidationError]:
        return self.get(GLOBAL_ERROR, [])

    def field_errors(self) -> Dict[str, List[ValidationError]]:
        return {field: errors for field, errors in self.items() if field != GLOBAL_ERROR}

    def messages(self, messages: Optional[MessageTable] = None) -> Dict[str, List[str]]:
        """Rendered messages per field, mostly useful in tests and logs."""
        return {field: [error.get_message(messages) for error in errors] for field, errors in self.items()}


_INDEX = re.compile(r"\[.*?\]")


def strip_indexes(name: str) -> str:
    """`items[3].tags['x']` becomes `items.tags`."""
    return _INDEX.sub("", name)
