"""
Names shared between the dispatcher, the binder and the views.

Request parameter keys are part of the wire format: forms written by a view
layer submit them back. Request attribute keys are private to one dispatch.
"""

# ─────────────────────────────────────────────────────────────────────────
# REQUEST PARAMETERS (wire format)
# ─────────────────────────────────────────────────────────────────────────

URL_KEY_EVENT_NAME = "_eventName"
"""Explicitly names the event to fire."""

URL_KEY_SOURCE_PAGE = "_sourcePage"
"""Signed path of the page the form was rendered on."""

URL_KEY_FIELDS_PRESENT = "__fp"
"""Signed list of the fields that were present on the submitted form."""

SPECIAL_URL_KEYS = frozenset({
    URL_KEY_EVENT_NAME,
    URL_KEY_SOURCE_PAGE,
    URL_KEY_FIELDS_PRESENT,
})

# ─────────────────────────────────────────────────────────────────────────
# REQUEST ATTRIBUTES
# ─────────────────────────────────────────────────────────────────────────

REQ_ATTR_ACTION_BEAN = "actiondispatch.action_bean"
"""The handler instance answering the current request."""

REQ_ATTR_ACTION_BEAN_STACK = "actiondispatch.action_bean_stack"
"""Handlers saved while a nested (forwarded) dispatch runs."""

REQ_ATTR_EVENT_NAME = "actiondispatch.event_name"
"""Event name pinned by a forward, so stale parameters cannot override it."""

REQ_ATTR_URL_BINDING = "actiondispatch.url_binding"
"""LiveBinding evaluated for the current request path."""

REQ_ATTR_CONFIGURATION = "actiondispatch.configuration"
"""RuntimeConfiguration serving the request; resolutions use it to build URLs."""

REQ_ATTR_ASYNC_RESPONSE = "actiondispatch.async_response"
"""AsyncResponse of a suspended request, so forwards become async dispatches."""

REQ_ATTR_FORWARD_URI = "actiondispatch.forward.request_uri"
"""Original path of a request that has been forwarded."""
