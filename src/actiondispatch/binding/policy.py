"""
=============================================================================
BINDING POLICY
=============================================================================

Decides which properties request parameters may set on a handler.

Handlers without @strict_binding accept any property except `context`.
With it, the allow and deny globs decide:

    ┌──────────────────┬──────────────┬──────────────┬────────────────────┐
    │  default policy  │  allow hits  │  deny hits   │  bound?            │
    ├──────────────────┼──────────────┼──────────────┼────────────────────┤
    │  DENY            │  yes         │  no          │  yes               │
    │  DENY            │  any other combination      │  no                │
    │  ALLOW           │  no          │  yes         │  no                │
    │  ALLOW           │  any other combination      │  yes               │
    └──────────────────┴─────────────────────────────┴────────────────────┘

Globs work on the index-free property path:

    "user.name"   exactly that property
    "user.*"      one property of user          (user.name, not user.a.b)
    "user.**"     any depth below user          (user.name, user.a.b)

Properties that carry validation rules are allowed implicitly: declaring
rules on a field says it is meant to be submitted.

=============================================================================
"""

import logging
import re
import threading
from typing import Dict, Iterable, List, Optional, Pattern

from ..action.markers import Policy, class_marker
from ..validation.metadata import get_validation_metadata

logger = logging.getLogger(__name__)

_PROPERTY = r"[A-Za-z_$][A-Za-z0-9_$]*"
_VALID_SEGMENT = re.compile(_PROPERTY)

NEVER_BINDABLE = frozenset({"context"})


def glob_to_pattern(globs: Iterable[str]) -> Optional[Pattern]:
    """
    Compile allow/deny globs into one regex, or None when there are none.

    Entries may themselves be comma separated lists. An entry with an
    invalid property name is skipped with a warning.
    """
    alternatives: List[str] = []
    for entry in globs:
        for glob in re.split(r"\s*,\s*", entry.strip()):
            if not glob:
                continue
            parts = []
            for segment in glob.split("."):
                if segment == "*":
                    parts.append(_PROPERTY)
                elif segment == "**":
                    parts.append(rf"{_PROPERTY}(?:\.{_PROPERTY})*")
                elif _VALID_SEGMENT.fullmatch(segment):
                    parts.append(re.escape(segment))
                else:
                    logger.warning(f"Invalid property name in binding glob {glob!r}: {segment!r}")
                    parts = []
                    break
            if parts:
                alternatives.append(r"\.".join(parts))

    if not alternatives:
        return None
    regex = "|".join(f"(?:{alternative})" for alternative in alternatives)
    logger.debug(f"Translated binding globs {list(globs)} to {regex}")
    return re.compile(regex)


class _TypePolicy:
    def __init__(self, default_policy: Policy, allow: Optional[Pattern], deny: Optional[Pattern],
                 implicit: Iterable[str], strict: bool):
        self.default_policy = default_policy
        self.allow = allow
        self.deny = deny
        self.implicit = frozenset(implicit)
        self.strict = strict


class BindingPolicyManager:
    """
    Per handler type binding decisions, computed once per type.

    Example:
        @strict_binding(allow=["user.**"], deny="user.password")
        class RegisterAction(Handler): ...

        policies.is_binding_allowed(RegisterAction, "user.email")      # True
        policies.is_binding_allowed(RegisterAction, "user.password")   # False
        policies.is_binding_allowed(RegisterAction, "admin")           # False
    """

    def __init__(self):
        self._policies: Dict[type, _TypePolicy] = {}
        self._lock = threading.Lock()

    def _policy_for(self, handler_type: type) -> _TypePolicy:
        policy = self._policies.get(handler_type)
        if policy is not None:
            return policy

        with self._lock:
            policy = self._policies.get(handler_type)
            if policy is None:
                marker = class_marker(handler_type, "strict_binding")
                if marker is None:
                    policy = _TypePolicy(Policy.ALLOW, None, None, (), strict=False)
                else:
                    default_policy, allow, deny = marker
                    policy = _TypePolicy(
                        default_policy,
                        glob_to_pattern(allow),
                        glob_to_pattern(deny),
                        get_validation_metadata(handler_type),
                        strict=True,
                    )
                self._policies[handler_type] = policy
        return policy

    def is_binding_allowed(self, handler_type: type, property_path: str) -> bool:
        """Whether `property_path` (indexes stripped) may be set from the request."""
        root = property_path.split(".", 1)[0]
        if root in NEVER_BINDABLE:
            return False

        policy = self._policy_for(handler_type)
        if not policy.strict:
            return True
        if property_path in policy.implicit:
            return True

        allow = policy.allow is not None and policy.allow.fullmatch(property_path) is not None
        deny = policy.deny is not None and policy.deny.fullmatch(property_path) is not None

        if policy.default_policy is Policy.DENY:
            return allow and not deny
        return allow or not deny
