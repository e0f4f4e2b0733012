"""
=============================================================================
PROPERTY BINDER
=============================================================================

Copies request parameters onto handler fields, converting and validating
them on the way. Bad input never raises: every problem is filed in the
context's ValidationErrors.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         bind(handler, context)                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  1. parameters, sorted by (length, name)                            │
    │  2. required checks                       (validate=True only)      │
    │       indexed rows grouped by "items[3]"; blank rows are dropped    │
    │       wizards only check fields listed in the manifest              │
    │  3. for each parameter:                                             │
    │       skip: event name, _sourcePage/_eventName/__fp, fields         │
    │             already in error, disallowed by policy, unknown, ignore │
    │       trim ─► minlength/maxlength/mask ─► unseal ─► convert         │
    │       errors? file them : set value (list/tuple/set or scalar)      │
    │  4. fields in the __fp manifest but not submitted → None            │
    │  5. uploaded files                                                  │
    │  6. minvalue/maxvalue, then expression   (validate=True only)       │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Converter choice for a value:

    validate(converter=X)                    X
    converter registered for the type        int → IntegerTypeConverter
    converter for the item type              List[int] → IntegerTypeConverter
    the item type's own constructor          Money("12.50")

=============================================================================
"""

import logging
from numbers import Number
from typing import Any, Dict, Iterable, List, Optional, Set

from ..action.markers import class_marker
from ..constants import SPECIAL_URL_KEYS, URL_KEY_FIELDS_PRESENT
from ..exceptions import WizardManifestError
from ..util.html import split_values
from ..validation.converters import DefaultTypeConverterFactory, TypeConverter
from ..validation.errors import ScopedLocalizableError, ValidationError, ValidationErrors
from ..validation.metadata import ValidationMetadata, ValidationMetadataProvider
from .parameter_name import ParameterName
from .policy import BindingPolicyManager
from .property import (
    PropertyExpressionEvaluation,
    collection_origin,
    parse,
    set_property_to_null,
)

logger = logging.getLogger(__name__)


class _Row(dict):
    """Parameters of one indexed row, e.g. everything under "items[3]"."""

    has_non_empty_values = False

    def __setitem__(self, name: ParameterName, values: List[str]) -> None:
        if not self.has_non_empty_values:
            self.has_non_empty_values = bool(values) and bool(values[0] and values[0].strip())
        super().__setitem__(name, values)


class DefaultPropertyBinder:
    """
    Binds and validates request parameters onto a handler.

    Args:
        converter_factory: Looks up TypeConverters by target type.
        policies: Decides which properties may be bound.
    """

    def __init__(
        self,
        converter_factory: Optional[DefaultTypeConverterFactory] = None,
        policies: Optional[BindingPolicyManager] = None,
    ):
        self.converter_factory = converter_factory or DefaultTypeConverterFactory()
        self.policies = policies or BindingPolicyManager()
        self.metadata = ValidationMetadataProvider()

    # ─────────────────────────────────────────────────────────────────────
    # BIND
    # ─────────────────────────────────────────────────────────────────────

    def bind(self, handler: Any, context, validate: bool) -> ValidationErrors:
        """
        Bind the request in `context` onto `handler`.

        Returns:
            The context's ValidationErrors, with any new errors added.

        Raises:
            WizardManifestError: A wizard form arrived without a valid
                fields-present manifest.
        """
        errors = context.validation_errors
        request = context.request
        handler_type = type(handler)
        validations = self.metadata.get(handler_type)

        parameters = self.get_parameters(request)
        if validate:
            self.validate_required_fields(parameters, handler, context, errors)

        converted_values: Dict[ParameterName, List[Any]] = {}
        for name, values in parameters.items():
            try:
                if name.name == context.event_name:
                    if values and values[0]:
                        logger.warning(
                            f"Parameter {name.name} names the event being fired but carries "
                            f"the value {values[0]!r}; it will not be bound"
                        )
                    continue
                if name.name in SPECIAL_URL_KEYS or name.name in errors:
                    continue

                metadata = validations.get(name.stripped_name)
                if not self.policies.is_binding_allowed(handler_type, name.stripped_name):
                    logger.debug(f"Binding {name.name} on {handler_type.__name__} is not allowed")
                    continue

                evaluation = PropertyExpressionEvaluation(parse(name.name), handler)
                declared = evaluation.get_type()
                if declared is None and (metadata is None or metadata.converter is None):
                    logger.debug(
                        f"Could not bind {name.name}: not a property of {handler_type.__name__}"
                    )
                    continue
                if metadata is not None and metadata.ignore:
                    continue

                if metadata is None or metadata.trim:
                    values = [value.strip() for value in values]

                field_errors: List[ValidationError] = []
                if validate and metadata is not None:
                    self.do_pre_conversion_validations(name, values, metadata, field_errors)

                converted: List[Any] = []
                if not field_errors:
                    if metadata is not None and metadata.encrypted:
                        values = [context.sealer.unseal(value) or "" for value in values]
                    target_type = self.get_conversion_type(context, evaluation, metadata)
                    converted = self.convert(context, name, values, target_type, metadata, field_errors)

                if field_errors:
                    errors.add_all(name.name, field_errors)
                elif converted:
                    self.bind_non_null_value(evaluation, converted, declared)
                    converted_values[name] = converted
                else:
                    evaluation.set_to_null()
            except Exception as e:
                self.handle_property_binding_error(handler, name, values, e, errors)

        self.bind_missing_values_as_null(handler, context, errors)
        self.bind_files(handler, context, errors)

        if validate:
            self.do_post_conversion_validations(handler, converted_values, errors)

        return errors

    def bind_property(self, handler: Any, property_path: str, value: Any) -> None:
        """Set one property directly, bypassing conversion and validation."""
        PropertyExpressionEvaluation(parse(property_path), handler).set_value(value)

    def get_parameters(self, request) -> Dict[ParameterName, List[str]]:
        parameters = {
            ParameterName(name.strip()): list(values)
            for name, values in request.parameters.items()
        }
        return dict(sorted(parameters.items()))

    def handle_property_binding_error(self, handler, name: ParameterName, values, error: Exception,
                                      errors: ValidationErrors) -> None:
        """Hook for failures that are not validation errors. Logs and moves on."""
        logger.debug(
            f"Could not bind property {name} of {type(handler).__name__} "
            f"to {values!r}: {error}"
        )

    # ─────────────────────────────────────────────────────────────────────
    # SETTING VALUES
    # ─────────────────────────────────────────────────────────────────────

    def bind_non_null_value(self, evaluation: PropertyExpressionEvaluation, values: List[Any],
                            declared: Any) -> None:
        origin = collection_origin(declared)
        first = values[0]
        if origin is not None and not isinstance(first, (list, tuple, set, frozenset)):
            evaluation.set_value(_as_collection(origin, values))
        elif origin is not None and type(first) is not origin:
            evaluation.set_value(_as_collection(origin, first))
        else:
            evaluation.set_value(first)

    def bind_missing_values_as_null(self, handler: Any, context, errors: ValidationErrors) -> None:
        """Fields listed in the manifest but absent from the request become None."""
        request = context.request
        for name in self.get_fields_present_info(handler, context):
            if request.has_parameter(name):
                continue
            if not self.policies.is_binding_allowed(type(handler), ParameterName(name).stripped_name):
                continue
            try:
                set_property_to_null(handler, name)
            except Exception as e:
                self.handle_property_binding_error(handler, ParameterName(name), None, e, errors)

    def bind_files(self, handler: Any, context, errors: ValidationErrors) -> None:
        handler_type = type(handler)
        for field_name, file_bean in context.request.files.items():
            name = ParameterName(field_name)
            if name.name in errors:
                continue
            if not self.policies.is_binding_allowed(handler_type, name.stripped_name):
                continue
            try:
                evaluation = PropertyExpressionEvaluation(parse(name.name), handler)
                if evaluation.get_type() is None:
                    logger.debug(f"Could not bind file {name}: not a property of {handler_type.__name__}")
                    continue
                evaluation.set_value(file_bean if file_bean.size > 0 else None)
            except Exception as e:
                self.handle_property_binding_error(handler, name, file_bean, e, errors)

    # ─────────────────────────────────────────────────────────────────────
    # FIELDS-PRESENT MANIFEST
    # ─────────────────────────────────────────────────────────────────────

    def get_fields_present_info(self, handler: Any, context) -> Set[str]:
        """
        Names listed in the signed __fp parameter.

        Raises:
            WizardManifestError: For a wizard, when the manifest is missing
                (outside the start events) or does not verify.
        """
        token = context.request.get_parameter(URL_KEY_FIELDS_PRESENT)
        start_events = class_marker(type(handler), "wizard")
        is_wizard = start_events is not None

        if not token:
            if is_wizard and context.event_name not in start_events:
                raise WizardManifestError(
                    f"Submission of wizard {type(handler).__name__} for event "
                    f"{context.event_name!r} is missing the {URL_KEY_FIELDS_PRESENT} "
                    f"parameter. Wizard forms must list the fields they contain."
                )
            return set()

        fields = context.sealer.unseal(token)
        if fields is None:
            if is_wizard:
                raise WizardManifestError(
                    f"The {URL_KEY_FIELDS_PRESENT} parameter submitted to wizard "
                    f"{type(handler).__name__} could not be verified"
                )
            return set()
        return set(split_values(fields))

    # ─────────────────────────────────────────────────────────────────────
    # VALIDATION
    # ─────────────────────────────────────────────────────────────────────

    def validate_required_fields(self, parameters: Dict[ParameterName, List[str]], handler: Any,
                                 context, errors: ValidationErrors) -> None:
        """
        File validation.required errors for missing fields.

        Indexed parameters are checked per row, and only for rows where
        something was entered. Rows left completely blank are removed
        from `parameters` so nothing downstream trips over them.
        """
        event = context.event_name
        request = context.request
        validations = self.metadata.get(type(handler))
        indexed = {name.stripped_name for name in parameters if name.is_indexed}

        is_wizard = class_marker(type(handler), "wizard") is not None
        fields_on_page = self.get_fields_present_info(handler, context)

        for property_path, metadata in validations.items():
            if not metadata.required_on(event) or property_path in indexed:
                continue
            if is_wizard and property_path not in fields_on_page:
                continue
            values = request.get_parameter_values(property_path)
            self.check_single_required_field(property_path, values, metadata, request, errors)

        if not indexed:
            return

        rows: Dict[str, _Row] = {}
        for name, values in parameters.items():
            if name.is_indexed:
                row_key = name.name[: name.name.index("]") + 1]
                rows.setdefault(row_key, _Row())[name] = values

        for row in rows.values():
            if row.has_non_empty_values:
                for name, values in row.items():
                    metadata = validations.get(name.stripped_name)
                    if metadata is not None and metadata.required_on(event):
                        self.check_single_required_field(name.name, values, metadata, request, errors)
            else:
                for name in row:
                    del parameters[name]

    def check_single_required_field(self, name: str, values: Optional[List[str]],
                                    metadata: ValidationMetadata, request,
                                    errors: ValidationErrors) -> None:
        file_bean = request.files.get(name)
        if file_bean is not None:
            if file_bean.size <= 0:
                errors.add(name, ScopedLocalizableError("validation.required", "valueNotPresent"))
            return

        if not values:
            error = ScopedLocalizableError("validation.required", "valueNotPresent")
            error.field_value = None
            errors.add(name, error)
            return

        for value in values:
            blank = not value.strip() if metadata.trim else not value
            if blank:
                error = ScopedLocalizableError("validation.required", "valueNotPresent")
                error.field_value = value
                errors.add(name, error)

    def do_pre_conversion_validations(self, name: ParameterName, values: Iterable[str],
                                      metadata: ValidationMetadata,
                                      errors: List[ValidationError]) -> None:
        for value in values:
            if not value:
                continue
            if metadata.minlength is not None and len(value) < metadata.minlength:
                errors.append(_error("validation.minlength", "valueTooShort", value, metadata.minlength))
            if metadata.maxlength is not None and len(value) > metadata.maxlength:
                errors.append(_error("validation.maxlength", "valueTooLong", value, metadata.maxlength))
            if metadata.mask is not None and not metadata.mask.fullmatch(value):
                errors.append(_error("validation.mask", "valueDoesNotMatch", value))

    def do_post_conversion_validations(self, handler: Any, converted: Dict[ParameterName, List[Any]],
                                       errors: ValidationErrors) -> None:
        validations = self.metadata.get(type(handler))
        for name, values in converted.items():
            metadata = validations.get(name.stripped_name)
            if not values or metadata is None:
                continue

            for value in values:
                if isinstance(value, Number) and not isinstance(value, bool):
                    if metadata.minvalue is not None and float(value) < metadata.minvalue:
                        errors.add(name.name, _error(
                            "validation.minvalue", "valueBelowMinimum", str(value), metadata.minvalue))
                    if metadata.maxvalue is not None and float(value) > metadata.maxvalue:
                        errors.add(name.name, _error(
                            "validation.maxvalue", "valueAboveMaximum", str(value), metadata.maxvalue))

            self.do_expression_validation(handler, name, values, metadata, errors)

    def do_expression_validation(self, handler: Any, name: ParameterName, values: List[Any],
                                 metadata: ValidationMetadata, errors: ValidationErrors) -> None:
        if metadata.expression is None:
            return
        for value in values:
            try:
                passed = metadata.expression(handler, value)
            except Exception as e:
                logger.warning(f"Validation expression for {name} raised on {value!r}: {e}")
                passed = False
            if not passed:
                errors.add(name.name, _error("validation.expression", "valueFailedExpression", str(value)))

    # ─────────────────────────────────────────────────────────────────────
    # CONVERSION
    # ─────────────────────────────────────────────────────────────────────

    def get_conversion_type(self, context, evaluation: PropertyExpressionEvaluation,
                            metadata: Optional[ValidationMetadata]) -> Any:
        """
        The type each value is converted to: the declared type when a
        converter is registered for it (a collection type included), else
        the item type. An explicit converter only converts to the declared
        type when it is the one registered for that type.
        """
        declared = evaluation.get_type()
        registered = self.converter_factory.get_type_converter(declared, context.locale)
        if metadata is not None and metadata.converter is not None:
            explicit = metadata.converter if isinstance(metadata.converter, type) else type(metadata.converter)
            if registered is not None and type(registered) is explicit:
                return declared
        elif registered is not None:
            return declared
        return evaluation.get_scalar_type()

    def get_converter(self, context, target_type: Any,
                      metadata: Optional[ValidationMetadata]) -> Optional[TypeConverter]:
        factory = self.converter_factory
        if metadata is not None and metadata.converter is not None:
            return factory.get_instance(metadata.converter, context.locale)
        return factory.get_type_converter(target_type, context.locale)

    def convert(self, context, name: ParameterName, values: List[str], target_type: Any,
                metadata: Optional[ValidationMetadata], errors: List[ValidationError]) -> List[Any]:
        """Convert every non-empty value; failures are appended to `errors`."""
        converter = self.get_converter(context, target_type, metadata)
        results: List[Any] = []
        for value in values:
            if value == "":
                continue
            value_errors: List[ValidationError] = []
            if converter is not None:
                result = converter.convert(value, target_type, value_errors)
            elif isinstance(target_type, type):
                try:
                    result = target_type(value)
                except (TypeError, ValueError, ArithmeticError) as e:
                    logger.debug(f"Could not construct {target_type.__name__} from {value!r}: {e}")
                    value_errors.append(ScopedLocalizableError("converter", "invalidValue"))
                    result = None
            else:
                result = value

            for error in value_errors:
                error.field_name = name.stripped_name
                error.field_value = value
            errors.extend(value_errors)
            if result is not None and not value_errors:
                results.append(result)
        return results


def _error(scope: str, key: str, value: Optional[str], *params: Any) -> ValidationError:
    error = ScopedLocalizableError(scope, key, *params)
    error.field_value = value
    return error


def _as_collection(origin: type, values: Iterable[Any]) -> Any:
    if issubclass(origin, tuple):
        return tuple(values)
    return origin(values)
