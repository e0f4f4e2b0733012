"""
Unit tests for NameBasedActionResolver.
"""

import pytest

from actiondispatch import MockRoundtrip
from actiondispatch.action import Handler, Resolution, StreamingResolution, default_handler, url_binding
from actiondispatch.controller.name_based import NameBasedActionResolver
from actiondispatch.exceptions import HandlerNotFoundError


class ViewAccountAction(Handler):

    @default_handler
    def show(self) -> Resolution:
        return StreamingResolution("text/plain", "account page")


@url_binding("/explicit")
class ExplicitAction(Handler):

    @default_handler
    def show(self) -> Resolution:
        return StreamingResolution("text/plain", "explicit")


@pytest.fixture
def resolver():
    return NameBasedActionResolver()


class TestBindingForName:
    """Tests for generated bindings."""

    @pytest.mark.parametrize(
        "qualified_name, binding",
        [
            ("app.web.account.ViewAccountAction", "/account/ViewAccount.action"),
            ("com.example.stripes.admin.UserActionBean", "/admin/User.action"),
            ("shop.action.CartBean", "/Cart.action"),
            ("shop.orders.OrderList", "/shop/orders/OrderList.action"),
            ("misc.Action", "/misc/Action.action"),
        ],
    )
    def test_generated(self, resolver, qualified_name, binding):
        """Test the module prefix and class suffix are stripped."""
        assert resolver.get_binding_for_name(qualified_name) == binding

    def test_annotation_wins(self, resolver):
        """Test an explicit @url_binding is used as is."""
        assert resolver.get_url_binding_pattern(ExplicitAction) == "/explicit"

    def test_unannotated_class(self, resolver):
        """Test an unannotated class gets a generated binding."""
        assert resolver.get_url_binding_pattern(ViewAccountAction).endswith("/ViewAccount.action")


class TestViewFallback:
    """Tests for serving views at unbound paths."""

    def test_find_view_attempts(self, resolver):
        """Test the name is tried as is, lower camel case and snake case."""
        assert resolver.get_find_view_attempts("/account/ViewAccount.action") == [
            "/account/ViewAccount.html",
            "/account/viewAccount.html",
            "/account/view_account.html",
        ]

    def test_index_for_directory(self, resolver):
        """Test a directory path looks for an index view."""
        assert resolver.get_find_view_attempts("/help/") == ["/help/index.html"]

    def test_generated_binding_dispatches(self, make_configuration):
        """Test an unannotated handler is reachable at its generated binding."""
        configuration = make_configuration(ViewAccountAction, resolver="name_based")

        trip = MockRoundtrip(configuration, ViewAccountAction).execute()

        assert trip.output == "account page"

    def test_view_served(self, make_configuration, tmp_path):
        """Test an unbound path with a matching view forwards to it."""
        (tmp_path / "help").mkdir()
        (tmp_path / "help" / "contact_us.html").write_text("<h1>Contact us</h1>")
        configuration = make_configuration(ExplicitAction, resolver="name_based", view_root=str(tmp_path))

        trip = MockRoundtrip(configuration, "/help/ContactUs.action").execute()

        assert trip.forward_url == "/help/contact_us.html"
        assert trip.output == "<h1>Contact us</h1>"

    def test_no_view(self, make_configuration, tmp_path):
        """Test an unbound path without a view is still not found."""
        configuration = make_configuration(ExplicitAction, resolver="name_based", view_root=str(tmp_path))

        with pytest.raises(HandlerNotFoundError):
            MockRoundtrip(configuration, "/help/Missing.action").execute()
