"""
=============================================================================
ACCESS LOGGING
=============================================================================

One line per dispatched request, written when the request completes:

    TEXT FORMAT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 10.0.0.7 [18/Oct/2026:10:55:36 +0000] "POST /user/42/save"          │
    │     UserAction.save 302 4.21ms                                      │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "a1b2c3d4", "method": "POST", "path": "/user/42/save"│
    │  "handler": "UserAction", "event": "save", "status_code": 302, ...} │
    └─────────────────────────────────────────────────────────────────────┘

The interceptor starts the clock in RequestInit and logs in RequestComplete,
so the time covers every stage in between, resolution execution included.
For async requests RequestComplete runs when the request is completed.

Configure it like any logger:

    logging.getLogger("actiondispatch.access").setLevel(logging.WARNING)

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from .interceptor import Interceptor, intercepts
from .lifecycle import LifecycleStage

logger = logging.getLogger("actiondispatch.access")

REQ_ATTR_LOG_START = "actiondispatch.access.start"
REQ_ATTR_LOG_ID = "actiondispatch.access.request_id"


@dataclass
class DispatchLog:
    """One access log entry."""

    request_id: str
    method: str
    path: str
    client_ip: str
    handler: str
    event: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "handler": self.handler,
            "event": self.event,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        target = f"{self.handler}.{self.event}" if self.event != "-" else self.handler
        return (
            f'{self.client_ip} [{self.timestamp}] "{self.method} {self.path}" '
            f"{target} {self.status_code} {self.content_length} {self.duration_ms:.2f}ms"
        )


@intercepts(LifecycleStage.REQUEST_INIT, LifecycleStage.REQUEST_COMPLETE)
class DispatchLoggingInterceptor(Interceptor):
    """
    Access log interceptor.

    Args:
        log_format: "text" or "json".
        log_level: Level the entries are logged at.
        skip_paths: Paths never logged (health checks and the like).
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def intercept(self, ctx):
        request = ctx.request
        if ctx.stage is LifecycleStage.REQUEST_INIT:
            # Nested dispatches keep the outer request's clock
            if request.get_attribute(REQ_ATTR_LOG_START) is None:
                request.set_attribute(REQ_ATTR_LOG_START, time.time())
                request.set_attribute(REQ_ATTR_LOG_ID, str(uuid.uuid4())[:8])
            return ctx.proceed()

        resolution = ctx.proceed()
        if request.path not in self.skip_paths and logger.isEnabledFor(self.log_level):
            entry = self.build_entry(ctx)
            if self.log_format == "json":
                logger.log(self.log_level, json.dumps(entry.to_dict()))
            else:
                logger.log(self.log_level, entry.to_text())
        return resolution

    def build_entry(self, ctx) -> DispatchLog:
        request = ctx.request
        response = ctx.response
        started = request.get_attribute(REQ_ATTR_LOG_START) or time.time()
        return DispatchLog(
            request_id=request.get_attribute(REQ_ATTR_LOG_ID) or "-",
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0] or "-",
            handler=type(ctx.handler).__name__ if ctx.handler is not None else "-",
            event=ctx.event_name or "-",
            status_code=int(response.status) if response is not None else 0,
            content_length=len(response.body) if response is not None else 0,
            duration_ms=(time.time() - started) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )
