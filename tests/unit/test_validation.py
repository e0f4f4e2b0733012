"""
Unit tests for validation errors, messages, metadata and type converters.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

import pytest

from actiondispatch.validation import (
    GLOBAL_ERROR,
    BooleanTypeConverter,
    CreditCardTypeConverter,
    DateTypeConverter,
    DefaultTypeConverterFactory,
    EmailTypeConverter,
    EnumeratedTypeConverter,
    IntegerTypeConverter,
    LocalizableError,
    MessageTable,
    OneToManyTypeConverter,
    PercentageTypeConverter,
    ScopedLocalizableError,
    SimpleError,
    ValidationErrors,
    ValidationMetadataProvider,
    ValidationState,
    get_validation_metadata,
    validate,
)
from actiondispatch.validation.errors import friendly_name, strip_indexes


class Color(Enum):
    RED = "r"
    GREEN = "g"


class Count(int):
    pass


class Account:
    owner: str = validate(required=True, label="Account owner", nested={
        "email": validate(required=True, on=["!draft"]),
    })
    balance: Decimal = validate(minvalue=0, default=Decimal("0"))


class PremiumAccount(Account):
    owner: str = validate(maxlength=40)


class TestValidationErrors:
    """Tests for ValidationErrors class."""

    def test_indexes_stripped(self):
        """Test indexed field names are filed under their stripped form."""
        errors = ValidationErrors()
        errors.add("items[3].name", SimpleError("bad"))

        assert list(errors) == ["items.name"]
        assert errors["items.name"][0].field_name == "items.name"

    def test_global_errors(self):
        """Test global errors are kept apart from field errors."""
        errors = ValidationErrors()
        errors.add_global_error(SimpleError("Card was declined"))
        errors.add("amount", SimpleError("too much"))

        assert [e.get_message() for e in errors.global_errors] == ["Card was declined"]
        assert list(errors.field_errors()) == ["amount"]
        assert GLOBAL_ERROR in errors
        assert errors.has_field_errors()

    def test_empty_field_rejected(self):
        """Test field errors need a field name."""
        with pytest.raises(ValueError):
            ValidationErrors().add("", SimpleError("x"))

    def test_messages(self):
        """Test rendered messages per field."""
        errors = ValidationErrors()
        errors.add("user.firstName", ScopedLocalizableError("validation.required", "valueNotPresent"))

        assert errors.messages() == {"user.firstName": ["User First Name is a required field"]}


class TestMessages:
    """Tests for message templates and lookups."""

    def test_simple_error_parameters(self):
        """Test {0} is the field, {1} the value and {2} onward the parameters."""
        error = SimpleError("{0} got {1}, wanted {2}", 18)
        error.field_name = "age"
        error.field_value = "12"

        assert error.get_message() == "Age got 12, wanted 18"

    def test_label_overrides_friendly_name(self):
        """Test an explicit label is used as the display name."""
        error = LocalizableError("validation.required.valueNotPresent")
        error.field_name = "usr"
        error.field_label = "User name"

        assert error.get_message() == "User name is a required field"

    def test_scoped_lookup_order(self):
        """Test action and field scoped templates win over the default."""
        messages = MessageTable({
            "/user/{id}.name.valueNotPresent": "Tell us your name",
            "email.valueNotPresent": "Email please",
        })
        by_action = ScopedLocalizableError("validation.required", "valueNotPresent")
        by_action.action_path = "/user/{id}"
        by_action.field_name = "name"
        by_field = ScopedLocalizableError("validation.required", "valueNotPresent")
        by_field.field_name = "email"
        default = ScopedLocalizableError("validation.required", "valueNotPresent")
        default.field_name = "phone"

        assert by_action.get_message(messages) == "Tell us your name"
        assert by_field.get_message(messages) == "Email please"
        assert default.get_message(messages) == "Phone is a required field"

    def test_unknown_key(self):
        """Test an unknown key renders as the key itself."""
        assert LocalizableError("no.such.key").get_message() == "no.such.key"

    def test_friendly_name(self):
        """Test property paths become readable names."""
        assert friendly_name("user.firstName") == "User First Name"
        assert friendly_name("items.unit_price") == "Items Unit Price"
        assert friendly_name(None) == ""

    def test_strip_indexes(self):
        """Test every index is removed."""
        assert strip_indexes("items[3].tags['x']") == "items.tags"


class TestMetadata:
    """Tests for validate() declarations."""

    def test_flattened_paths(self):
        """Test nested rules are flattened under their property path."""
        metadata = get_validation_metadata(Account)

        assert sorted(metadata) == ["balance", "owner", "owner.email"]
        assert metadata["owner"].label == "Account owner"
        assert metadata["owner.email"].required_on("save") is True
        assert metadata["owner.email"].required_on("draft") is False

    def test_subclass_replaces_declaration(self):
        """Test a subclass declaration replaces the inherited one."""
        metadata = get_validation_metadata(PremiumAccount)

        assert metadata["owner"].maxlength == 40
        assert metadata["owner"].required is False
        assert "owner.email" not in metadata

    def test_descriptor_default(self):
        """Test instances see the declared default until a value is set."""
        account = Account()
        assert account.balance == Decimal("0")
        assert account.owner is None

        account.owner = "alice"
        assert account.owner == "alice"
        assert isinstance(Account.owner, validate)

    def test_validation_states(self):
        """Test the states a validation method may run in."""
        assert {state.value for state in ValidationState} == {"always", "no_errors", "default"}

    def test_provider_caches_per_instance(self):
        """Test each provider keeps its own cache."""
        first, second = ValidationMetadataProvider(), ValidationMetadataProvider()

        metadata = first.get(Account)

        assert first.get(Account) is metadata
        assert second.get(Account) is not metadata
        assert second.get(Account) == metadata
        assert first.get_field(Account, "owner.email").required_on("save") is True
        assert first.get_field(Account, "missing") is None

    def test_provider_clear(self):
        """Test clear() forces the metadata to be computed again."""
        provider = ValidationMetadataProvider()
        metadata = provider.get(Account)

        provider.clear()

        assert provider.get(Account) is not metadata
        assert provider.get(Account) == metadata


class TestConverters:
    """Tests for the built-in type converters."""

    def test_boolean(self):
        """Test the accepted spellings of true."""
        converter = BooleanTypeConverter()
        assert all(converter.convert(v, bool, []) for v in ("true", "ON", "yes", "y", "1"))
        assert converter.convert("nope", bool, []) is False

    def test_integer(self):
        """Test grouping, currency and accounting negatives."""
        converter = IntegerTypeConverter()
        assert converter.convert("1,234", int, []) == 1234
        assert converter.convert("$15", int, []) == 15
        assert converter.convert("(7)", int, []) == -7

    def test_integer_rejects_fractions(self):
        """Test a fractional value is not a valid integer."""
        errors = []
        assert IntegerTypeConverter().convert("12.5", int, errors) is None
        assert errors[0].message_key == "converter.number.invalidNumber"

    def test_integer_range(self):
        """Test values beyond 64 bits are out of range."""
        errors = []
        assert IntegerTypeConverter().convert(str(2 ** 64), int, errors) is None
        assert errors[0].message_key == "converter.integer.outOfRange"

    def test_percentage(self):
        """Test percentages become fractions."""
        converter = PercentageTypeConverter()
        assert converter.convert("15%", float, []) == pytest.approx(0.15)
        assert converter.convert("15", Decimal, []) == Decimal("0.15")

    def test_dates(self):
        """Test ISO and US formats."""
        converter = DateTypeConverter()
        assert converter.convert("2026-03-01", date, []) == date(2026, 3, 1)
        assert converter.convert("03/01/2026", date, []) == date(2026, 3, 1)

        errors = []
        assert converter.convert("someday", date, errors) is None
        assert errors[0].message_key == "converter.date.invalidDate"

    def test_enum(self):
        """Test members match by name, then by value."""
        converter = EnumeratedTypeConverter()
        assert converter.convert("RED", Color, []) is Color.RED
        assert converter.convert("g", Color, []) is Color.GREEN

        errors = []
        assert converter.convert("BLUE", Color, errors) is None
        assert errors[0].message_key == "converter.enum.notAnEnumeratedValue"

    def test_email(self):
        """Test the address is trimmed and its shape checked."""
        converter = EmailTypeConverter()
        assert converter.convert(" a@b.com ", str, []) == "a@b.com"

        errors = []
        assert converter.convert("not-an-email", str, errors) is None
        assert errors[0].message_key == "converter.email.invalidEmail"

    def test_credit_card(self):
        """Test Luhn-valid numbers of a known issuer are accepted."""
        converter = CreditCardTypeConverter()
        assert converter.convert("4111 1111 1111 1111", str, []) == "4111111111111111"
        assert CreditCardTypeConverter.card_type("4111111111111111") == "VISA"

        errors = []
        assert converter.convert("4111 1111 1111 1112", str, errors) is None

    def test_one_to_many(self):
        """Test one string is split into converted items."""
        factory = DefaultTypeConverterFactory()
        converter = factory.get_instance(OneToManyTypeConverter)

        assert converter.convert("1, 2 3", int, []) == [1, 2, 3]


class TestConverterFactory:
    """Tests for DefaultTypeConverterFactory class."""

    def test_lookup(self):
        """Test exact types, enums and subclasses find their converters."""
        factory = DefaultTypeConverterFactory()

        assert isinstance(factory.get_type_converter(bool), BooleanTypeConverter)
        assert isinstance(factory.get_type_converter(int), IntegerTypeConverter)
        assert isinstance(factory.get_type_converter(Color), EnumeratedTypeConverter)
        assert isinstance(factory.get_type_converter(Count), IntegerTypeConverter)
        assert factory.get_type_converter(object) is None

    def test_locale_and_registration(self):
        """Test added converters are returned with the requested locale."""
        factory = DefaultTypeConverterFactory()
        factory.add(datetime, EmailTypeConverter)

        converter = factory.get_type_converter(datetime, "fr")

        assert isinstance(converter, EmailTypeConverter)
        assert converter.locale == "fr"
