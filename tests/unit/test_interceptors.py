"""
Unit tests for interceptors, the execution context and the built-in
interceptors.
"""

import json
import logging

import pytest

from actiondispatch import MockRoundtrip
from actiondispatch.action import (
    ErrorResolution,
    Handler,
    Resolution,
    StreamingResolution,
    after,
    before,
    default_handler,
    http_cache,
    url_binding,
)
from actiondispatch.controller.before_after import BeforeAfterMethodInterceptor
from actiondispatch.controller.execution_context import ExecutionContext
from actiondispatch.controller.interceptor import Interceptor, InterceptorRegistry, intercepts
from actiondispatch.controller.lifecycle import LifecycleStage
from actiondispatch.validation import validate


@intercepts(LifecycleStage.EVENT_HANDLING)
class Recorder(Interceptor):

    def __init__(self, name, log, short_circuit=None):
        self._name = name
        self.log = log
        self.short_circuit = short_circuit

    def intercept(self, ctx):
        self.log.append(f"{self._name} before")
        if self.short_circuit is not None:
            return self.short_circuit
        result = ctx.proceed()
        self.log.append(f"{self._name} after")
        return result


class Silent(Interceptor):

    def intercept(self, ctx):
        return ctx.proceed()


@intercepts(LifecycleStage.REQUEST_INIT, LifecycleStage.REQUEST_COMPLETE)
class StageRecorder(Interceptor):

    def __init__(self):
        self.seen = []

    def intercept(self, ctx):
        self.seen.append(ctx.stage)
        return ctx.proceed()


@url_binding("/audit")
class AuditedAction(Handler):

    def __init__(self):
        self.calls = []

    @before(stages=LifecycleStage.BINDING_AND_VALIDATION)
    def load(self):
        self.calls.append("load")

    @before(stages=LifecycleStage.ACTION_BEAN_RESOLUTION)
    def too_early(self):
        self.calls.append("too_early")

    @before(on=["guarded"])
    def guard(self):
        return ErrorResolution(403, "Forbidden")

    @after
    def audit(self):
        self.calls.append("audit")

    @after(on=["replace"])
    def swap(self):
        return StreamingResolution("text/plain", "swapped")

    @after
    def needs_value(self, value):
        self.calls.append(value)

    @default_handler
    def show(self) -> Resolution:
        self.calls.append("show")
        return StreamingResolution("text/plain", "shown")

    def guarded(self) -> Resolution:
        self.calls.append("guarded")
        return StreamingResolution("text/plain", "secret")

    def replace(self) -> Resolution:
        return StreamingResolution("text/plain", "original")


@url_binding("/cached")
@http_cache(allow=False)
class CachedAction(Handler):
    code: str = validate(mask=r"[0-9]+")

    @default_handler
    def show(self) -> Resolution:
        return StreamingResolution("text/plain", "fresh")

    @http_cache(expires=600)
    def report(self) -> Resolution:
        return StreamingResolution("text/plain", "report")

    def check(self) -> Resolution:
        return StreamingResolution("text/plain", "checked")


class TestExecutionContext:
    """Tests for ExecutionContext class."""

    def test_chain_order(self):
        """Test interceptors nest around the stage, first registered outermost."""
        log = []
        ctx = ExecutionContext()
        ctx.set_interceptors([Recorder("a", log), Recorder("b", log)])

        result = ctx.wrap(lambda ctx: log.append("core") or "done")

        assert result == "done"
        assert log == ["a before", "b before", "core", "b after", "a after"]

    def test_short_circuit(self):
        """Test returning without proceed() skips the rest of the chain."""
        log = []
        ctx = ExecutionContext()
        ctx.set_interceptors([Recorder("a", log, short_circuit="stop"), Recorder("b", log)])

        result = ctx.wrap(lambda ctx: log.append("core"))

        assert result == "stop"
        assert log == ["a before"]

    def test_no_interceptors(self):
        """Test the core action runs directly."""
        ctx = ExecutionContext()
        assert ctx.wrap(lambda ctx: 42) == 42
        assert ctx.request is None
        assert ctx.event_name is None


class TestInterceptorRegistry:
    """Tests for InterceptorRegistry class."""

    def test_registered_per_stage(self):
        """Test interceptors are listed under their declared stages."""
        recorder = Recorder("a", [])
        registry = InterceptorRegistry([recorder])

        assert registry.get(LifecycleStage.EVENT_HANDLING) == [recorder]
        assert registry.get(LifecycleStage.REQUEST_INIT) == []
        assert list(registry) == [recorder]

    def test_no_stages(self, caplog):
        """Test an interceptor without stages is reported and never runs."""
        with caplog.at_level(logging.WARNING):
            registry = InterceptorRegistry([Silent()])

        assert "declares no stages" in caplog.text
        assert all(not registry.get(stage) for stage in LifecycleStage)

    def test_stages_run_in_dispatch(self, make_configuration):
        """Test an added interceptor sees its stages, RequestComplete included."""
        recorder = StageRecorder()
        configuration = make_configuration(AuditedAction, interceptors=[recorder])

        MockRoundtrip(configuration, "/audit").execute()

        assert recorder.seen == [LifecycleStage.REQUEST_INIT, LifecycleStage.REQUEST_COMPLETE]


class TestBeforeAfterMethods:
    """Tests for BeforeAfterMethodInterceptor class."""

    @pytest.fixture
    def configuration(self, make_configuration):
        return make_configuration(AuditedAction)

    def test_order(self, configuration):
        """Test before and after methods run around their stages."""
        trip = MockRoundtrip(configuration, "/audit").execute()

        assert trip.get_action_bean().calls == ["load", "show", "audit"]
        assert trip.output == "shown"

    def test_before_short_circuits(self, configuration):
        """Test a Resolution from a before method replaces the stage."""
        trip = MockRoundtrip(configuration, "/audit").execute("guarded")

        assert trip.status == 403
        assert "guarded" not in trip.get_action_bean().calls

    def test_after_overrides(self, configuration):
        """Test a Resolution from an after method replaces the stage result."""
        trip = MockRoundtrip(configuration, "/audit").execute("replace")

        assert trip.output == "swapped"

    def test_scan(self):
        """Test early and argument-taking methods are left out."""
        methods = BeforeAfterMethodInterceptor().get_methods(AuditedAction)

        assert LifecycleStage.ACTION_BEAN_RESOLUTION not in methods.before
        assert [m.name for m in methods.before[LifecycleStage.EVENT_HANDLING]] == ["guard"]
        assert [m.name for m in methods.after[LifecycleStage.EVENT_HANDLING]] == ["audit", "swap"]


class TestHttpCache:
    """Tests for HttpCacheInterceptor class."""

    @pytest.fixture
    def configuration(self, make_configuration):
        return make_configuration(CachedAction)

    def test_class_disallows_caching(self, configuration):
        """Test allow=False sends the no-cache headers."""
        response = MockRoundtrip(configuration, "/cached").execute().response

        assert response.get_header("Expires") == "0"
        assert response.get_header("Cache-Control") == "no-cache"
        assert response.get_header("Pragma") == "no-cache"

    def test_method_expires(self, configuration):
        """Test the method marker wins and sets an HTTP-date."""
        response = MockRoundtrip(configuration, "/cached").execute("report").response

        assert response.get_header("Expires").endswith(" GMT")
        assert response.get_header("Cache-Control") is None

    def test_only_handler_resolutions(self, configuration):
        """Test resolutions from error handling get no cache headers."""
        trip = MockRoundtrip(configuration, "/cached").add_parameter("code", "abc")
        trip.execute("check")

        assert "Validation error report" in trip.output
        assert trip.response.get_header("Expires") is None


class TestDispatchLogging:
    """Tests for DispatchLoggingInterceptor class."""

    def test_text_entry(self, make_configuration, caplog):
        """Test one access line per request."""
        configuration = make_configuration(AuditedAction)

        with caplog.at_level(logging.INFO, logger="actiondispatch.access"):
            MockRoundtrip(configuration, "/audit").execute()

        lines = [r.getMessage() for r in caplog.records if r.name == "actiondispatch.access"]
        assert len(lines) == 1
        assert '"GET /audit" AuditedAction.show 200' in lines[0]

    def test_json_entry(self, make_configuration, caplog):
        """Test the JSON format carries the same fields."""
        configuration = make_configuration(AuditedAction, log_format="json")

        with caplog.at_level(logging.INFO, logger="actiondispatch.access"):
            MockRoundtrip(configuration, "/audit").execute("replace")

        lines = [r.getMessage() for r in caplog.records if r.name == "actiondispatch.access"]
        entry = json.loads(lines[0])
        assert entry["handler"] == "AuditedAction"
        assert entry["event"] == "replace"
        assert entry["status_code"] == 200
