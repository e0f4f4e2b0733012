"""
=============================================================================
TYPE CONVERTERS
=============================================================================

Request parameters are strings; handler fields are typed. A TypeConverter
turns one string into one value of the target type, or records why it
could not:

    converter.convert("12x", int, errors)
        │
        ├── returns None
        └── errors == [ScopedLocalizableError("converter.number", "invalidNumber")]

The binder picks a converter per field (see binding/binder.py):

    1. validate(converter=...) on the field
    2. factory.get_type_converter(declared type)
    3. factory.get_type_converter(element type)   for List[T] / Set[T] / ...
    4. the type's own constructor, if it accepts a single string

=============================================================================
BUILT-IN CONVERTERS
=============================================================================

    ┌──────────────────────────┬──────────────────┬──────────────────────────┐
    │  Converter               │  Target          │  Error key               │
    ├──────────────────────────┼──────────────────┼──────────────────────────┤
    │  BooleanTypeConverter    │  bool            │  (never fails)           │
    │  IntegerTypeConverter    │  int             │  invalidNumber, outOfRange│
    │  FloatTypeConverter      │  float           │  invalidNumber           │
    │  DecimalTypeConverter    │  Decimal         │  invalidNumber           │
    │  StringTypeConverter     │  str             │  (never fails)           │
    │  DateTypeConverter       │  date            │  invalidDate             │
    │  DateTimeTypeConverter   │  datetime        │  invalidDate             │
    │  EnumeratedTypeConverter │  Enum subclasses │  notAnEnumeratedValue    │
    │  EmailTypeConverter      │  (opt-in)        │  invalidEmail            │
    │  PercentageTypeConverter │  (opt-in)        │  invalidNumber           │
    │  CreditCardTypeConverter │  (opt-in)        │  invalidCreditCard       │
    │  OneToManyTypeConverter  │  (opt-in)        │  per item                │
    └──────────────────────────┴──────────────────┴──────────────────────────┘

=============================================================================
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from .errors import ScopedLocalizableError, ValidationError

logger = logging.getLogger(__name__)


class TypeConverter:
    """Base class. Subclasses implement convert()."""

    def __init__(self):
        self.locale = "en"
        self.factory: Optional["DefaultTypeConverterFactory"] = None

    def set_locale(self, locale: str) -> None:
        self.locale = locale

    def convert(self, value: str, target_type: type, errors: List[ValidationError]) -> Any:
        raise NotImplementedError


# ─────────────────────────────────────────────────────────────────────────
# SCALARS
# ─────────────────────────────────────────────────────────────────────────


class BooleanTypeConverter(TypeConverter):
    """true/on/yes/y/1 (any case) are True, everything else False."""

    TRUE_VALUES = {"true", "on", "yes", "y", "1"}

    def convert(self, value, target_type, errors):
        return value.strip().lower() in self.TRUE_VALUES


class StringTypeConverter(TypeConverter):
    def convert(self, value, target_type, errors):
        return value


def _clean_number(value: str) -> Optional[str]:
    """
    Normalize a number as people type it: grouping commas, a leading
    currency sign and accounting-style parentheses for negatives.
    """
    text = value.strip().replace(",", "")
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    if text[:1] in ("$", "£", "€"):
        text = text[1:].strip()
    if not text:
        return None
    return f"-{text}" if negative else text


class NumberTypeConverter(TypeConverter):
    """Shared parsing for the numeric converters."""

    def _parse(self, value: str, errors: List[ValidationError]) -> Optional[Decimal]:
        text = _clean_number(value)
        try:
            if text is None:
                raise InvalidOperation(value)
            number = Decimal(text)
            if not number.is_finite():
                raise InvalidOperation(value)
            return number
        except InvalidOperation:
            errors.append(ScopedLocalizableError("converter.number", "invalidNumber"))
            return None


class IntegerTypeConverter(NumberTypeConverter):
    """Whole numbers within a signed 64-bit range."""

    MIN_VALUE = -(2 ** 63)
    MAX_VALUE = 2 ** 63 - 1

    def convert(self, value, target_type, errors):
        number = self._parse(value, errors)
        if number is None:
            return None
        if number != number.to_integral_value():
            errors.append(ScopedLocalizableError("converter.number", "invalidNumber"))
            return None
        result = int(number)
        if not self.MIN_VALUE <= result <= self.MAX_VALUE:
            errors.append(
                ScopedLocalizableError("converter.integer", "outOfRange", self.MIN_VALUE, self.MAX_VALUE)
            )
            return None
        return result


class FloatTypeConverter(NumberTypeConverter):
    def convert(self, value, target_type, errors):
        number = self._parse(value, errors)
        return None if number is None else float(number)


class DecimalTypeConverter(NumberTypeConverter):
    def convert(self, value, target_type, errors):
        return self._parse(value, errors)


class PercentageTypeConverter(NumberTypeConverter):
    """
    "15%" or "15" become 0.15.
    """

    def convert(self, value, target_type, errors):
        text = value.strip()
        if text.endswith("%"):
            text = text[:-1]
        number = self._parse(text, [])
        if number is None:
            errors.append(ScopedLocalizableError("converter.percentage", "invalidNumber"))
            return None
        result = number / 100
        return result if target_type is Decimal else float(result)


# ─────────────────────────────────────────────────────────────────────────
# DATES
# ─────────────────────────────────────────────────────────────────────────


class DateTimeTypeConverter(TypeConverter):
    """
    Accepts ISO 8601 plus the common US and written-out formats.

    Example:
        "2026-03-01", "03/01/2026", "1 Mar 2026", "March 1, 2026"
    """

    FORMATS = (
        "%m/%d/%Y",
        "%m/%d/%y",
        "%m-%d-%Y",
        "%Y/%m/%d",
        "%d %b %Y",
        "%d %B %Y",
        "%b %d, %Y",
        "%B %d, %Y",
        "%b %d %Y",
        "%B %d %Y",
        "%m/%d/%Y %H:%M",
        "%m/%d/%Y %H:%M:%S",
    )

    def _parse(self, value: str) -> Optional[datetime]:
        text = " ".join(value.split())
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
        for fmt in self.FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        return None

    def convert(self, value, target_type, errors):
        result = self._parse(value)
        if result is None:
            errors.append(ScopedLocalizableError("converter.date", "invalidDate"))
        return result


class DateTypeConverter(DateTimeTypeConverter):
    def convert(self, value, target_type, errors):
        result = super().convert(value, target_type, errors)
        return result.date() if result is not None else None


# ─────────────────────────────────────────────────────────────────────────
# OTHERS
# ─────────────────────────────────────────────────────────────────────────


class EnumeratedTypeConverter(TypeConverter):
    """Matches the member name first, then the member value as a string."""

    def convert(self, value, target_type, errors):
        text = value.strip()
        if text in target_type.__members__:
            return target_type.__members__[text]
        for member in target_type:
            if str(member.value) == text:
                return member
        errors.append(ScopedLocalizableError("converter.enum", "notAnEnumeratedValue"))
        return None


class EmailTypeConverter(TypeConverter):
    """Trims whitespace and checks the address shape."""

    PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

    def convert(self, value, target_type, errors):
        text = value.strip()
        if self.PATTERN.match(text):
            return text
        errors.append(ScopedLocalizableError("converter.email", "invalidEmail"))
        return None


class CreditCardTypeConverter(TypeConverter):
    """
    Strips everything but digits and accepts numbers that pass the Luhn
    check and match a known issuer's length and prefix.
    """

    CARD_TYPES = (
        ("AMEX", 15, ("34", "37")),
        ("DinersClub", 14, ("30", "36", "38")),
        ("Discover", 16, ("6011",)),
        ("enRoute", 15, ("2014", "2149")),
        ("JCB", 16, ("3088", "3096", "3112", "3158", "3337", "3528")),
        ("MasterCard", 16, ("51", "52", "53", "54", "55")),
        ("VISA", 13, ("4",)),
        ("VISA", 16, ("4",)),
    )

    def convert(self, value, target_type, errors):
        number = re.sub(r"\D", "", value)
        if self.card_type(number) is not None:
            return number
        errors.append(ScopedLocalizableError("converter.creditCard", "invalidCreditCard"))
        return None

    @classmethod
    def card_type(cls, number: str) -> Optional[str]:
        if not luhn_valid(number):
            return None
        for name, length, prefixes in cls.CARD_TYPES:
            if len(number) == length and number.startswith(prefixes):
                return name
        return None


def luhn_valid(number: str) -> bool:
    if not number.isdigit() or not 13 <= len(number) <= 16:
        return False
    total = 0
    for i, digit in enumerate(reversed(number)):
        v = int(digit)
        if i % 2 == 1:
            v *= 2
        total += v // 10 + v % 10
    return total % 10 == 0


class OneToManyTypeConverter(TypeConverter):
    """
    Splits one submitted string into several items ("1, 2 3" → [1, 2, 3])
    and converts each with the converter registered for the item type.
    """

    SPLIT = re.compile(r",?[ ]+")

    def convert(self, value, target_type, errors):
        converter = self.factory.get_type_converter(target_type, self.locale) if self.factory else None
        if converter is None:
            raise TypeError(
                f"OneToManyTypeConverter needs a registered converter for {target_type!r}"
            )
        items = []
        for part in self.SPLIT.split(value):
            item = converter.convert(part, target_type, errors)
            if item is not None:
                items.append(item)
        return items or None


# ─────────────────────────────────────────────────────────────────────────
# FACTORY
# ─────────────────────────────────────────────────────────────────────────


class DefaultTypeConverterFactory:
    """
    Maps target types to converter classes.

    Lookup is by exact type first, then along the target's MRO, so any Enum
    subclass finds EnumeratedTypeConverter. A fresh converter instance is
    returned per call with its locale set.
    """

    def __init__(self):
        self.converters: Dict[type, Type[TypeConverter]] = {
            bool: BooleanTypeConverter,
            int: IntegerTypeConverter,
            float: FloatTypeConverter,
            Decimal: DecimalTypeConverter,
            str: StringTypeConverter,
            date: DateTypeConverter,
            datetime: DateTimeTypeConverter,
            Enum: EnumeratedTypeConverter,
        }

    def add(self, target_type: type, converter_class: Type[TypeConverter]) -> None:
        self.converters[target_type] = converter_class

    def get_type_converter(self, target_type: Any, locale: str = "en") -> Optional[TypeConverter]:
        if not isinstance(target_type, type):
            return None
        converter_class = self.converters.get(target_type)
        if converter_class is None and issubclass(target_type, Enum):
            converter_class = self.converters.get(Enum)
        if converter_class is None:
            for base in target_type.__mro__[1:]:
                if base in self.converters and base is not object:
                    converter_class = self.converters[base]
                    break
        if converter_class is None:
            return None
        return self.get_instance(converter_class, locale)

    def get_instance(self, converter: Any, locale: str = "en") -> TypeConverter:
        """Instantiate a converter class (or adopt an instance) for use."""
        instance = converter() if isinstance(converter, type) else converter
        instance.set_locale(locale)
        instance.factory = self
        return instance
