"""
Validation: field rules, the errors they produce and the converters that
turn request strings into typed values.
"""

from .converters import (
    BooleanTypeConverter,
    CreditCardTypeConverter,
    DateTimeTypeConverter,
    DateTypeConverter,
    DecimalTypeConverter,
    DefaultTypeConverterFactory,
    EmailTypeConverter,
    EnumeratedTypeConverter,
    FloatTypeConverter,
    IntegerTypeConverter,
    OneToManyTypeConverter,
    PercentageTypeConverter,
    StringTypeConverter,
    TypeConverter,
)
from .errors import (
    GLOBAL_ERROR,
    LocalizableError,
    MessageTable,
    ScopedLocalizableError,
    SimpleError,
    ValidationError,
    ValidationErrors,
)
from .metadata import (
    ValidationMetadata,
    ValidationMetadataProvider,
    ValidationState,
    get_validation_metadata,
    validate,
)

__all__ = [
    "BooleanTypeConverter",
    "CreditCardTypeConverter",
    "DateTimeTypeConverter",
    "DateTypeConverter",
    "DecimalTypeConverter",
    "DefaultTypeConverterFactory",
    "EmailTypeConverter",
    "EnumeratedTypeConverter",
    "FloatTypeConverter",
    "IntegerTypeConverter",
    "OneToManyTypeConverter",
    "PercentageTypeConverter",
    "StringTypeConverter",
    "TypeConverter",
    "GLOBAL_ERROR",
    "LocalizableError",
    "MessageTable",
    "ScopedLocalizableError",
    "SimpleError",
    "ValidationError",
    "ValidationErrors",
    "ValidationMetadata",
    "ValidationState",
    "ValidationMetadataProvider",
    "get_validation_metadata",
    "validate",
]
