"""
Unit tests for asynchronous handlers.
"""

import threading
from typing import Optional

import pytest

from actiondispatch import MockRoundtrip
from actiondispatch.action import (
    Handler,
    Resolution,
    StreamingResolution,
    async_handler,
    default_handler,
    url_binding,
)
from actiondispatch.controller.async_response import AsyncState
from actiondispatch.controller.interceptor import Interceptor, intercepts
from actiondispatch.controller.lifecycle import LifecycleStage
from actiondispatch.exceptions import AsyncNotSupportedError
from actiondispatch.http import AsyncContext, HTTPRequest, HTTPResponse, SynchronousAsyncSupport


@url_binding("/report")
class ReportAction(Handler):
    mode: Optional[str] = None
    listener = None

    @async_handler
    def build(self, async_response):
        self.async_response = async_response
        if self.listener is not None:
            async_response.add_listener(self.listener)
        if self.mode == "hang":
            async_response.timeout = 0.05
            return
        if self.mode == "fail":
            raise RuntimeError("disk full")
        if self.mode == "summary":
            async_response.dispatch("/summary")
            return
        if self.mode == "later":
            worker = threading.Thread(
                target=async_response.complete,
                args=(StreamingResolution("text/plain", "built later"),),
            )
            worker.start()
            return
        async_response.complete(StreamingResolution("text/plain", "report ready"))


@url_binding("/summary")
class SummaryAction(Handler):

    @default_handler
    def show(self) -> Resolution:
        return StreamingResolution("text/plain", "summary")


class RecordingListener:

    def __init__(self):
        self.events = []

    def on_complete(self, async_response):
        self.events.append(("complete", async_response.state))

    def on_timeout(self, async_response):
        self.events.append(("timeout", async_response.state))

    def on_error(self, async_response, error):
        self.events.append(("error", str(error)))


@intercepts(LifecycleStage.REQUEST_COMPLETE)
class CompletionCounter(Interceptor):

    def __init__(self):
        self.count = 0

    def intercept(self, ctx):
        self.count += 1
        return ctx.proceed()


@pytest.fixture
def counter():
    return CompletionCounter()


@pytest.fixture
def configuration(make_configuration, counter):
    return make_configuration(ReportAction, SummaryAction, interceptors=[counter])


class TestAsyncHandlers:
    """Tests for @async_handler events."""

    def test_completed_inline(self, configuration, counter):
        """Test completing during the call writes the resolution and cleans up once."""
        trip = MockRoundtrip(configuration, "/report").execute()

        assert trip.status == 200
        assert trip.output == "report ready"
        assert trip.request.async_context.is_completed
        assert trip.get_action_bean().async_response.state is AsyncState.COMPLETED
        assert counter.count == 1

    def test_completed_from_other_thread(self, configuration, counter):
        """Test a request completed by another thread."""
        trip = MockRoundtrip(configuration, "/report").add_parameter("mode", "later").execute()

        assert trip.output == "built later"
        assert counter.count == 1

    def test_timeout(self, configuration, counter):
        """Test a request nobody completes times out with a 500."""
        trip = MockRoundtrip(configuration, "/report").add_parameter("mode", "hang").execute()

        assert trip.status == 500
        assert trip.response.error_message == "Operation timed out"
        assert trip.get_action_bean().async_response.state is AsyncState.TIMED_OUT
        assert counter.count == 1

    def test_handler_error(self, configuration, counter):
        """Test an exception from the handler becomes a 500."""
        trip = MockRoundtrip(configuration, "/report").add_parameter("mode", "fail").execute()

        assert trip.status == 500
        assert trip.response.error_message == "disk full"
        assert counter.count == 1

    def test_completion_is_idempotent(self, configuration, counter):
        """Test completing twice changes nothing."""
        trip = MockRoundtrip(configuration, "/report").execute()
        async_response = trip.get_action_bean().async_response

        async_response.complete()

        assert counter.count == 1
        assert async_response.is_completed

    def test_cleanup_runs_once(self, configuration, counter):
        """Test late container events and repeated cleanup leave the finished request alone."""
        trip = MockRoundtrip(configuration, "/report").execute()
        async_response = trip.get_action_bean().async_response

        async_response.run_cleanup()
        trip.request.async_context.fire_error(RuntimeError("too late"))

        assert counter.count == 1
        assert trip.status == 200
        assert async_response.state is AsyncState.COMPLETED

    @pytest.mark.parametrize(
        "mode, expected",
        [
            (None, [("complete", AsyncState.COMPLETED)]),
            ("hang", [("timeout", AsyncState.TIMED_OUT)]),
            ("fail", [("error", "disk full")]),
        ],
    )
    def test_listeners_notified_once(self, configuration, monkeypatch, mode, expected):
        """Test listeners hear about the first way the request finished, and only that."""
        listener = RecordingListener()
        monkeypatch.setattr(ReportAction, "listener", listener)
        trip = MockRoundtrip(configuration, "/report")
        if mode is not None:
            trip.add_parameter("mode", mode)

        trip.execute()

        assert listener.events == expected

    def test_dispatch_forwards_and_completes(self, configuration):
        """Test dispatch() forwards the suspended request and finishes it."""
        trip = MockRoundtrip(configuration, "/report").add_parameter("mode", "summary").execute()

        assert trip.output == "summary"
        assert trip.request.async_context.is_completed
        assert trip.get_action_bean(ReportAction).async_response.state is AsyncState.COMPLETED

    def test_disabled(self, make_configuration):
        """Test async handlers fail when the container cannot suspend."""
        configuration = make_configuration(ReportAction, async_supported=False)

        with pytest.raises(AsyncNotSupportedError):
            MockRoundtrip(configuration, "/report").execute()


class TestAsyncContext:
    """Tests for AsyncContext class."""

    def test_await_completion_fires_timeout(self):
        """Test an unfinished context times out and completes."""
        context = AsyncContext(HTTPRequest(path="/slow"), HTTPResponse(), timeout=0.01)
        seen = []

        class Listener:
            def on_timeout(self, ctx):
                seen.append("timeout")

            def on_complete(self, ctx):
                seen.append("complete")

        context.add_listener(Listener())
        context.await_completion()

        assert seen == ["timeout", "complete"]
        assert context.is_completed

    def test_synchronous_support(self):
        """Test a container without suspension refuses to start."""
        with pytest.raises(AsyncNotSupportedError):
            SynchronousAsyncSupport().start_async(HTTPRequest(), HTTPResponse())
