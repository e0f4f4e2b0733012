"""
Unit tests for request parameter binding.
"""

from typing import Dict, List, Optional

import pytest

from actiondispatch.action import Handler, strict_binding, wizard
from actiondispatch.binding.binder import DefaultPropertyBinder
from actiondispatch.binding.policy import BindingPolicyManager
from actiondispatch.constants import URL_KEY_FIELDS_PRESENT, URL_KEY_SOURCE_PAGE
from actiondispatch.exceptions import WizardManifestError
from actiondispatch.http import FileBean
from actiondispatch.util.html import combine_values
from actiondispatch.validation import DefaultTypeConverterFactory, TypeConverter, validate


class Address:
    city: Optional[str] = None
    zip_code: Optional[int] = None


class User:
    name: Optional[str] = None
    age: Optional[int] = None
    address: Optional[Address] = None


class Item:
    sku: Optional[str] = None
    quantity: Optional[int] = None


class ProfileAction(Handler):
    name: Optional[str] = None
    age: Optional[int] = None
    user: Optional[User] = None
    tags: Optional[List[str]] = None
    scores: Optional[List[int]] = None
    items: Optional[List[Item]] = None
    prefs: Optional[Dict[str, str]] = None


class RegisterAction(Handler):
    username: str = validate(required=True, minlength=3, maxlength=10)
    age: int = validate(minvalue=18, maxvalue=120)
    code: str = validate(mask=r"[A-Z]{3}")
    nickname: str = validate(expression=lambda handler, value: value != handler.username)
    password: str = validate(required=True, on=["register"], trim=False)


class OrderAction(Handler):
    items: Optional[List[Item]] = validate(nested={"quantity": validate(required=True)})


@strict_binding(allow=["user.**"], deny="user.age")
class StrictAction(Handler):
    user: Optional[User] = None
    admin: bool = False
    note: str = validate(required=True)


@wizard(start_events=["begin"])
class SignupWizard(Handler):
    email: str = validate(required=True)
    phone: str = validate(required=True)


class UploadAction(Handler):
    attachment: Optional[FileBean] = None


class Tags(list):
    pass


class TagsConverter(TypeConverter):
    """Splits "a|b" into Tags(["a", "b"])."""

    def convert(self, value, target_type, errors):
        return Tags(value.split("|"))


class TaggedAction(Handler):
    tags: Optional[Tags] = None


@pytest.fixture
def binder():
    return DefaultPropertyBinder()


class TestBinding:
    """Tests for converting and setting properties."""

    def test_scalars_are_trimmed_and_converted(self, binder, make_context):
        """Test simple properties get trimmed, converted values."""
        handler = ProfileAction()
        context = make_context({"name": ["  bob "], "age": ["42"]})

        errors = binder.bind(handler, context, True)

        assert not errors
        assert handler.name == "bob"
        assert handler.age == 42

    def test_partial_failure(self, binder, make_context):
        """Test a bad value is reported while the good ones are still bound."""
        handler = ProfileAction()
        context = make_context({"name": ["bob"], "age": ["abc"]})

        errors = binder.bind(handler, context, True)

        assert handler.name == "bob"
        assert handler.age is None
        assert list(errors) == ["age"]
        error = errors["age"][0]
        assert error.message_key == "converter.number.invalidNumber"
        assert error.field_value == "abc"
        assert error.get_message() == "The value (abc) entered in field Age must be a valid number"

    def test_nested_objects_created(self, binder, make_context):
        """Test intermediate objects are instantiated from annotations."""
        handler = ProfileAction()
        context = make_context({"user.name": ["alice"], "user.address.zip_code": ["12345"]})

        binder.bind(handler, context, True)

        assert isinstance(handler.user, User)
        assert handler.user.name == "alice"
        assert handler.user.address.zip_code == 12345

    def test_multi_valued_list(self, binder, make_context):
        """Test repeated parameters fill a list property."""
        handler = ProfileAction()
        context = make_context({"tags": ["a", "b"], "scores": ["1", "2", "3"]})

        binder.bind(handler, context, True)

        assert handler.tags == ["a", "b"]
        assert handler.scores == [1, 2, 3]

    def test_indexed_list_padded(self, binder, make_context):
        """Test an indexed parameter grows the list to reach its index."""
        handler = ProfileAction()
        context = make_context({"items[1].sku": ["X-1"], "items[1].quantity": ["3"]})

        binder.bind(handler, context, True)

        assert len(handler.items) == 2
        assert handler.items[0] is None
        assert handler.items[1].sku == "X-1"
        assert handler.items[1].quantity == 3

    def test_mapping_entry(self, binder, make_context):
        """Test dict properties accept keyed parameters."""
        handler = ProfileAction()
        context = make_context({"prefs['theme']": ["dark"]})

        binder.bind(handler, context, True)

        assert handler.prefs == {"theme": "dark"}

    def test_skipped_parameters(self, binder, make_context):
        """Test the event, special keys, context and unknown names are not bound."""
        handler = ProfileAction()
        context = make_context(
            {
                "save": ["oops"],
                URL_KEY_SOURCE_PAGE: ["/form.html"],
                "context": ["x"],
                "nonexistent": ["1"],
                "name": ["kept"],
            },
            event="save",
        )

        errors = binder.bind(handler, context, True)

        assert not errors
        assert handler.name == "kept"
        assert handler.get_context() is None

    def test_empty_value_sets_none(self, binder, make_context):
        """Test a blank submission clears the property."""
        handler = ProfileAction()
        handler.name = "old"
        context = make_context({"name": ["   "]})

        binder.bind(handler, context, True)

        assert handler.name is None

    def test_file_upload(self, binder, make_context):
        """Test uploaded files are bound, empty ones as None."""
        handler = UploadAction()
        context = make_context()
        context.request.files["attachment"] = FileBean("attachment", "a.txt", "text/plain", b"hi")

        binder.bind(handler, context, True)

        assert handler.attachment.read_text() == "hi"


class TestValidation:
    """Tests for field rules applied while binding."""

    def test_required_missing(self, binder, make_context):
        """Test a missing required field is reported."""
        handler = RegisterAction()
        errors = binder.bind(handler, make_context({}), True)

        assert errors["username"][0].get_message() == "Username is a required field"
        assert "password" not in errors

    def test_required_on_event(self, binder, make_context):
        """Test `on` limits required to the listed events."""
        handler = RegisterAction()
        errors = binder.bind(handler, make_context({"username": ["alice"]}, event="register"), True)

        assert list(errors) == ["password"]

    def test_no_validation(self, binder, make_context):
        """Test validate=False skips the rules but still binds."""
        handler = RegisterAction()
        errors = binder.bind(handler, make_context({"username": ["al"], "age": ["3"]}), False)

        assert not errors
        assert handler.username == "al"
        assert handler.age == 3

    def test_length_rules(self, binder, make_context):
        """Test minlength and maxlength run on the trimmed string."""
        short = binder.bind(RegisterAction(), make_context({"username": [" al "]}), True)
        long = binder.bind(RegisterAction(), make_context({"username": ["a" * 11]}), True)

        assert short["username"][0].get_message() == "Username must be at least 3 characters long"
        assert long["username"][0].get_message() == "Username must be no more than 10 characters long"

    def test_value_bounds(self, binder, make_context):
        """Test minvalue and maxvalue run on the converted number."""
        handler = RegisterAction()
        errors = binder.bind(handler, make_context({"username": ["alice"], "age": ["12"]}), True)

        assert errors["age"][0].get_message() == "The minimum allowed value for Age is 18"
        assert handler.age == 12

    def test_mask(self, binder, make_context):
        """Test the mask must match the whole value."""
        errors = binder.bind(RegisterAction(), make_context({"username": ["alice"], "code": ["ABCD"]}), True)

        assert errors["code"][0].get_message() == "ABCD is not a valid Code"

    def test_expression(self, binder, make_context):
        """Test expressions see the handler after binding."""
        errors = binder.bind(
            RegisterAction(), make_context({"username": ["alice"], "nickname": ["alice"]}), True
        )

        assert errors["nickname"][0].message_key == "validation.expression.valueFailedExpression"

    def test_indexed_rows(self, binder, make_context):
        """Test required is checked per row and blank rows are dropped."""
        handler = OrderAction()
        context = make_context({
            "items[0].sku": ["A"],
            "items[0].quantity": [""],
            "items[1].sku": [""],
            "items[1].quantity": [""],
        })

        errors = binder.bind(handler, context, True)

        assert list(errors) == ["items.quantity"]
        assert len(errors["items.quantity"]) == 1
        assert len(handler.items) == 1
        assert handler.items[0].sku == "A"


class TestBindingPolicy:
    """Tests for @strict_binding."""

    def test_allow_and_deny(self, binder, make_context):
        """Test only allowed, non-denied properties are bound."""
        handler = StrictAction()
        context = make_context({
            "user.name": ["alice"],
            "user.age": ["99"],
            "admin": ["true"],
            "note": ["hello"],
        })

        errors = binder.bind(handler, context, True)

        assert not errors
        assert handler.user.name == "alice"
        assert handler.user.age is None
        assert handler.admin is False
        assert handler.note == "hello"


class TestWizard:
    """Tests for wizard forms and the fields-present manifest."""

    def test_start_event_needs_no_manifest(self, binder, make_context):
        """Test the start event binds without a manifest."""
        handler = SignupWizard()
        errors = binder.bind(handler, make_context({"email": ["a@b.c"]}, event="begin"), True)

        assert not errors
        assert handler.email == "a@b.c"

    def test_missing_manifest_rejected(self, binder, make_context):
        """Test other events refuse a submission without the manifest."""
        with pytest.raises(WizardManifestError) as exc_info:
            binder.bind(SignupWizard(), make_context({"email": ["a@b.c"]}, event="next"), True)

        assert exc_info.value.status_code == 400

    def test_manifest_limits_required(self, binder, make_context):
        """Test only fields on the submitted page are required."""
        handler = SignupWizard()
        context = make_context(
            {"email": [""], URL_KEY_FIELDS_PRESENT: ["email||"]},
            event="next",
        )

        errors = binder.bind(handler, context, True)

        assert list(errors) == ["email"]

    def test_unsubmitted_fields_cleared(self, binder, make_context):
        """Test manifest fields missing from the request become None."""
        handler = SignupWizard()
        handler.phone = "555"
        context = make_context(
            {"email": ["a@b.c"], URL_KEY_FIELDS_PRESENT: [combine_values(["email", "phone"])]},
            event="begin",
        )

        binder.bind(handler, context, False)

        assert handler.email == "a@b.c"
        assert handler.phone is None


class TestConverterSelection:
    """Tests for choosing the type each value converts to."""

    def test_registered_collection_converter(self, make_context):
        """Test a converter registered for a list subclass receives the whole value."""
        factory = DefaultTypeConverterFactory()
        factory.add(Tags, TagsConverter)
        binder = DefaultPropertyBinder(factory, BindingPolicyManager())
        handler = TaggedAction()

        errors = binder.bind(handler, make_context({"tags": ["a|b"]}), True)

        assert not errors
        assert isinstance(handler.tags, Tags)
        assert handler.tags == ["a", "b"]

    def test_unregistered_collection_keeps_its_type(self, binder, make_context):
        """Test a list subclass without a converter is filled item by item."""
        handler = TaggedAction()

        binder.bind(handler, make_context({"tags": ["x", "y"]}), True)

        assert isinstance(handler.tags, Tags)
        assert handler.tags == ["x", "y"]
