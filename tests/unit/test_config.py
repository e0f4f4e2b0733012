"""
Unit tests for DispatchConfig and RuntimeConfiguration.
"""

import pytest

from actiondispatch import DispatchConfig, RuntimeConfiguration
from actiondispatch.action import Handler, Resolution, StreamingResolution, url_binding
from actiondispatch.controller.name_based import NameBasedActionResolver
from actiondispatch.exceptions import ConfigurationError
from actiondispatch.http import HTTPRequest, HTTPResponse, SuspendingAsyncSupport, SynchronousAsyncSupport


@url_binding("/ping")
class PingAction(Handler):

    def ping(self) -> Resolution:
        return StreamingResolution("text/plain", "pong")


class TestDispatchConfig:
    """Tests for DispatchConfig class."""

    def test_defaults_are_valid(self):
        """Test the defaults pass validation."""
        DispatchConfig().validate()

    @pytest.mark.parametrize(
        "settings, message",
        [
            ({"port": 70000}, "Invalid port"),
            ({"workers": 0}, "workers"),
            ({"timeout": 0}, "timeout"),
            ({"async_timeout": -1}, "async_timeout"),
            ({"resolver": "magic"}, "resolver"),
            ({"log_format": "xml"}, "log_format"),
        ],
    )
    def test_invalid_settings(self, settings, message):
        """Test each bad setting is reported."""
        with pytest.raises(ValueError) as exc_info:
            DispatchConfig(**settings).validate()

        assert message in str(exc_info.value)

    def test_view_root_must_exist(self, tmp_path):
        """Test a missing view root is rejected."""
        with pytest.raises(ValueError):
            DispatchConfig(view_root=str(tmp_path / "missing")).validate()

    def test_from_env(self, monkeypatch):
        """Test DISPATCH_* variables override the defaults."""
        monkeypatch.setenv("DISPATCH_PORT", "3000")
        monkeypatch.setenv("DISPATCH_WORKERS", "2")
        monkeypatch.setenv("DISPATCH_ACTION_PACKAGES", "app.web, app.api")
        monkeypatch.setenv("DISPATCH_RESOLVER", "name_based")
        monkeypatch.setenv("DISPATCH_ASYNC_SUPPORTED", "false")
        monkeypatch.setenv("DISPATCH_LOG_FORMAT", "json")

        config = DispatchConfig.from_env()

        assert config.port == 3000
        assert config.workers == 2
        assert config.action_packages == ["app.web", "app.api"]
        assert config.resolver == "name_based"
        assert config.async_supported is False
        assert config.log_format == "json"
        assert config.host == "127.0.0.1"


class TestRuntimeConfiguration:
    """Tests for RuntimeConfiguration class."""

    def test_handler_types_without_packages(self):
        """Test directly registered handlers need no package scan."""
        configuration = RuntimeConfiguration(DispatchConfig(), handler_types=[PingAction])

        assert configuration.action_resolver.get_url_binding(PingAction) == "/ping"

    def test_nothing_to_register(self):
        """Test a configuration with no handlers at all fails."""
        with pytest.raises(ConfigurationError):
            RuntimeConfiguration(DispatchConfig())

    def test_invalid_config_rejected(self):
        """Test settings are validated on construction."""
        with pytest.raises(ValueError):
            RuntimeConfiguration(DispatchConfig(workers=0), handler_types=[PingAction])

    def test_collaborators(self, make_configuration, tmp_path):
        """Test settings choose the resolver, async support and views."""
        annotated = make_configuration(PingAction)
        named = make_configuration(
            PingAction, resolver="name_based", async_supported=False, view_root=str(tmp_path)
        )

        assert not isinstance(annotated.action_resolver, NameBasedActionResolver)
        assert isinstance(annotated.async_support, SuspendingAsyncSupport)
        assert annotated.view_renderer is None
        assert isinstance(named.action_resolver, NameBasedActionResolver)
        assert isinstance(named.async_support, SynchronousAsyncSupport)
        assert named.view_renderer is not None

    def test_prepare(self, make_configuration):
        """Test prepare() installs the container hooks."""
        configuration = make_configuration(PingAction)
        request, response = HTTPRequest(), HTTPResponse()

        configuration.prepare(request, response)

        assert request.session_store is configuration.session_store
        assert request.async_support is configuration.async_support
        assert response.forwarder == configuration.forward

    def test_forward_without_target(self, make_configuration):
        """Test a forward to nothing known is a 404."""
        configuration = make_configuration(PingAction)
        request, response = HTTPRequest(path="/ping"), HTTPResponse()
        configuration.prepare(request, response)

        response.forward(request, "/nowhere.html")

        assert response.status == 404
        assert response.forward_url == "/nowhere.html"
        assert request.path == "/nowhere.html"
