"""
Cache headers from @http_cache, applied while a handler's own resolution
executes.

    @http_cache(allow=False)                 Expires: 0
    class AccountAction(Handler): ...        Cache-Control: no-cache
                                             Pragma: no-cache

    @http_cache(expires=600)                 Expires: <now + 600s>
    def report(self) -> Resolution: ...

The marker on the event method wins over the one on the class. Resolutions
that did not come from the event method (validation errors, interceptors)
are left alone.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from ..action.markers import class_marker, method_markers
from ..http.response import format_http_date
from .interceptor import Interceptor, intercepts
from .lifecycle import LifecycleStage

logger = logging.getLogger(__name__)

CacheSetting = Tuple[bool, Optional[int]]


@intercepts(LifecycleStage.RESOLUTION_EXECUTION)
class HttpCacheInterceptor(Interceptor):

    def __init__(self):
        self._cache: Dict[Tuple[type, str], Optional[CacheSetting]] = {}
        self._lock = threading.Lock()

    def intercept(self, ctx):
        method = ctx.handler_method
        if ctx.resolution_from_handler and ctx.handler is not None and method is not None:
            setting = self.get_cache_setting(type(ctx.handler), method)
            if setting is not None:
                self.apply(ctx.response, *setting)
        return ctx.proceed()

    def get_cache_setting(self, handler_type: type, method) -> Optional[CacheSetting]:
        key = (handler_type, method.name)
        with self._lock:
            if key not in self._cache:
                setting = method_markers(method.function).get("http_cache")
                if setting is None:
                    setting = class_marker(handler_type, "http_cache")
                self._cache[key] = setting
            return self._cache[key]

    def apply(self, response, allow: bool, expires: Optional[int]) -> None:
        if allow:
            if expires is not None and expires >= 0:
                when = datetime.now(timezone.utc) + timedelta(seconds=expires)
                response.set_header("Expires", format_http_date(when))
            elif expires is not None:
                logger.warning(f"@http_cache expires={expires} is negative and was ignored")
        else:
            if expires is not None:
                logger.warning("@http_cache(allow=False) ignores its expires value")
            response.set_header("Expires", "0")
            response.set_header("Cache-Control", "no-cache")
            response.set_header("Pragma", "no-cache")
