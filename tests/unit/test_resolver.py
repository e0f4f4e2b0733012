"""
Unit tests for the annotated class action resolver.
"""

import abc

import pytest

from actiondispatch.action import (
    ActionContext,
    Handler,
    Resolution,
    StreamingResolution,
    default_handler,
    handles_event,
    session_scope,
    url_binding,
)
from actiondispatch.constants import REQ_ATTR_EVENT_NAME, REQ_ATTR_URL_BINDING
from actiondispatch.controller.resolver import AnnotatedClassActionResolver
from actiondispatch.exceptions import (
    AmbiguousEventError,
    ConfigurationError,
    HandlerNotFoundError,
)
from actiondispatch.http import HTTPRequest, HTTPResponse


@url_binding("/user/{id}/{$event}")
class UserAction(Handler):

    @default_handler
    def view(self) -> Resolution:
        return StreamingResolution("text/plain", "view")

    def save(self) -> Resolution:
        return StreamingResolution("text/plain", "save")

    @handles_event("delete")
    def remove(self):
        return None

    def helper(self):
        return "not an event"


@url_binding("/admin/user/{id}/{$event}")
class AdminUserAction(UserAction):

    def save(self) -> Resolution:
        return StreamingResolution("text/plain", "admin save")


@url_binding("/single")
class SingleEventAction(Handler):

    def only(self) -> Resolution:
        return StreamingResolution("text/plain", "only")


@url_binding("/none")
class NoDefaultAction(Handler):

    def first(self) -> Resolution:
        return StreamingResolution("text/plain", "1")

    def second(self) -> Resolution:
        return StreamingResolution("text/plain", "2")


class DuplicateEventAction(Handler):

    @handles_event("go")
    def one(self):
        return None

    @handles_event("go")
    def two(self):
        return None


class DoubleDefaultAction(Handler):

    @default_handler
    def one(self):
        return None

    @default_handler
    def two(self):
        return None


class NavigationAction(Handler):

    @default_handler
    def show(self) -> Resolution:
        return StreamingResolution("text/plain", "show")

    def go_to(self, where) -> Resolution:
        return StreamingResolution("text/plain", where)

    def refresh(self, full=False) -> Resolution:
        return StreamingResolution("text/plain", "refresh")

    @abc.abstractmethod
    def render(self) -> Resolution:
        raise NotImplementedError


@url_binding("/cart")
@session_scope
class CartAction(Handler):

    @default_handler
    def show(self) -> Resolution:
        return StreamingResolution("text/plain", "cart")


@pytest.fixture
def resolver():
    resolver = AnnotatedClassActionResolver()
    for handler_type in (UserAction, AdminUserAction, SingleEventAction, NoDefaultAction, CartAction):
        resolver.add_handler_type(handler_type)
    return resolver


def context_for(path, parameters=None, method="GET"):
    request = HTTPRequest(method=method, path=path, query_params=dict(parameters or {}))
    return ActionContext(request, HTTPResponse())


class TestStartup:
    """Tests for handler registration."""

    def test_init_requires_packages(self):
        """Test scanning nothing is a configuration error."""
        with pytest.raises(ConfigurationError):
            AnnotatedClassActionResolver().init([])

    def test_init_rejects_unknown_package(self):
        """Test an unimportable package is a configuration error."""
        with pytest.raises(ConfigurationError):
            AnnotatedClassActionResolver().init(["no_such_package_for_dispatch_tests"])

    def test_event_methods(self, resolver):
        """Test marked and Resolution-returning methods are events."""
        mappings = resolver.event_mappings[UserAction]

        assert sorted(mappings) == ["delete", "save", "view"]
        assert mappings["delete"].name == "remove"
        assert "helper" not in mappings

    def test_subclass_override(self, resolver):
        """Test an override in a subclass replaces the base method."""
        mappings = resolver.event_mappings[AdminUserAction]

        assert mappings["save"].owner is AdminUserAction
        assert mappings["view"].owner is UserAction
        assert resolver.get_default_handler(AdminUserAction).event == "view"

    def test_duplicate_event_rejected(self, resolver):
        """Test one class declaring an event twice fails at startup."""
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.process_methods(DuplicateEventAction)

        assert "go" in str(exc_info.value)

    def test_duplicate_default_rejected(self, resolver):
        """Test one class declaring two defaults fails at startup."""
        with pytest.raises(ConfigurationError):
            resolver.process_methods(DoubleDefaultAction)

    def test_methods_needing_arguments_are_not_events(self, resolver):
        """Test only Resolution methods callable without arguments are inferred as events."""
        mappings, default = resolver.process_methods(NavigationAction)

        assert sorted(mappings) == ["refresh", "show"]
        assert default.name == "show"

    def test_broken_module_in_package(self, tmp_path, monkeypatch):
        """Test a module that fails to import aborts the scan."""
        package = tmp_path / "dispatch_broken_actions"
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "bad.py").write_text("import no_such_module_for_dispatch_tests\n")
        monkeypatch.syspath_prepend(str(tmp_path))

        with pytest.raises(ConfigurationError) as exc_info:
            AnnotatedClassActionResolver().find_classes(["dispatch_broken_actions"])

        assert "dispatch_broken_actions.bad" in str(exc_info.value)

    def test_event_default_filled_in(self, resolver):
        """Test the $event parameter defaults to the default handler's event."""
        binding = resolver.registry.get_binding("/user/42")

        assert binding.event == "view"
        assert resolver.get_url_binding(UserAction) == "/user/{id}/{$event}"


class TestHandlerLookup:
    """Tests for default and named handler lookup."""

    def test_sole_method_is_default(self, resolver):
        """Test a handler with one event needs no @default_handler."""
        assert resolver.get_default_handler(SingleEventAction).name == "only"

    def test_no_default(self, resolver):
        """Test several events and no default raise HandlerNotFoundError."""
        with pytest.raises(HandlerNotFoundError) as exc_info:
            resolver.get_default_handler(NoDefaultAction)

        assert exc_info.value.status_code == 404

    def test_unknown_event(self, resolver):
        """Test an unknown event lists the known mappings."""
        with pytest.raises(HandlerNotFoundError) as exc_info:
            resolver.get_handler(UserAction, "launch")

        assert "launch" in str(exc_info.value)


class TestActionBean:
    """Tests for handler instance lookup."""

    def test_request_scoped(self, resolver):
        """Test one instance per request, stored under the binding."""
        context = context_for("/user/42")
        handler = resolver.get_action_bean(context)

        assert isinstance(handler, UserAction)
        assert handler.get_context() is context
        assert context.request.get_attribute("/user/{id}/{$event}") is handler
        assert context.request.get_attribute(REQ_ATTR_URL_BINDING).get("id") == "42"
        assert resolver.get_action_bean(context) is handler

    def test_session_scoped(self, resolver):
        """Test session scoped handlers survive across requests of a session."""
        first = context_for("/cart")
        handler = resolver.get_action_bean(first)

        second = context_for("/cart")
        second.request.session = first.request.session
        assert resolver.get_action_bean(second) is handler
        assert handler.get_context() is second

    def test_unbound_path(self, resolver):
        """Test a path nothing is bound to raises HandlerNotFoundError."""
        with pytest.raises(HandlerNotFoundError):
            resolver.get_action_bean(context_for("/missing"))


class TestEventName:
    """Tests for event name resolution order."""

    def test_pinned_attribute_wins(self, resolver):
        """Test an event pinned by a forward beats parameters."""
        context = context_for("/user/42", {"save": [""]})
        context.request.set_attribute(REQ_ATTR_EVENT_NAME, "delete")

        assert resolver.get_event_name(UserAction, context) == "delete"

    def test_event_name_parameter(self, resolver):
        """Test _eventName wins over a parameter named after an event."""
        context = context_for("/user/42", {"_eventName": ["delete"], "save": [""]})

        assert resolver.get_event_name(UserAction, context) == "delete"

    def test_repeated_event_name_parameter_ignored(self, resolver):
        """Test a repeated _eventName is ignored in favour of the path."""
        context = context_for("/user/42", {"_eventName": ["delete", "save"]})

        assert resolver.get_event_name(UserAction, context) == "view"

    def test_unknown_event_name_parameter_ignored(self, resolver):
        """Test _eventName naming no event falls through to the path."""
        context = context_for("/user/42/save", {"_eventName": ["launch"]})

        assert resolver.get_event_name(UserAction, context) == "save"

    def test_named_parameter(self, resolver):
        """Test a parameter named after an event, image-button form included."""
        assert resolver.get_event_name(UserAction, context_for("/user/42", {"save": [""]})) == "save"
        assert resolver.get_event_name(UserAction, context_for("/user/42", {"save.x": ["3"]})) == "save"

    def test_ambiguous_parameters(self, resolver):
        """Test two event parameters are rejected."""
        context = context_for("/user/42", {"save": [""], "delete": [""]})

        with pytest.raises(AmbiguousEventError) as exc_info:
            resolver.get_event_name(UserAction, context)

        assert exc_info.value.events == ["delete", "save"]
        assert exc_info.value.status_code == 400

    def test_event_from_path(self, resolver):
        """Test the {$event} segment names the event."""
        assert resolver.get_event_name(UserAction, context_for("/user/42/save")) == "save"

    def test_bare_path_names_no_event(self, resolver):
        """Test the {$event} default is left to handler resolution."""
        assert resolver.get_event_name(UserAction, context_for("/user/42")) is None
        assert resolver.get_event_name(UserAction, context_for("/user/42/view")) == "view"

    def test_segment_after_literal_binding(self, resolver):
        """Test the segment after a parameterless binding names the event."""
        assert resolver.get_event_name(NoDefaultAction, context_for("/none/second")) == "second"
        assert resolver.get_event_name(NoDefaultAction, context_for("/none")) is None
