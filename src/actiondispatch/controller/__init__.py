"""
The dispatch controller: lifecycle stages, interceptors, the action
resolver and the dispatcher driving them.

Only the lightweight pieces are exported here; import the dispatcher and
resolvers from their modules (or from the top-level package).
"""

from .interceptor import Interceptor, InterceptorRegistry, intercepts
from .lifecycle import LifecycleStage

__all__ = [
    "Interceptor",
    "InterceptorRegistry",
    "LifecycleStage",
    "intercepts",
]
