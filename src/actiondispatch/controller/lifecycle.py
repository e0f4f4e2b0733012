"""
The stages every dispatched request passes through, in order.

    REQUEST_INIT
        │
    ACTION_BEAN_RESOLUTION ──┐
    HANDLER_RESOLUTION       │  any stage may produce a Resolution,
    BINDING_AND_VALIDATION   │  which skips straight to
    CUSTOM_VALIDATION        │  RESOLUTION_EXECUTION
    VALIDATION_ERROR_HANDLING│
    EVENT_HANDLING ──────────┘
        │
    RESOLUTION_EXECUTION
        │
    REQUEST_COMPLETE          (always, even after errors)
"""

from enum import Enum


class LifecycleStage(Enum):
    REQUEST_INIT = "RequestInit"
    ACTION_BEAN_RESOLUTION = "ActionBeanResolution"
    HANDLER_RESOLUTION = "HandlerResolution"
    BINDING_AND_VALIDATION = "BindingAndValidation"
    CUSTOM_VALIDATION = "CustomValidation"
    VALIDATION_ERROR_HANDLING = "ValidationErrorHandling"
    EVENT_HANDLING = "EventHandling"
    RESOLUTION_EXECUTION = "ResolutionExecution"
    REQUEST_COMPLETE = "RequestComplete"

    def __str__(self) -> str:
        return self.value
