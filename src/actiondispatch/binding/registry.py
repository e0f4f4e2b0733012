"""
=============================================================================
URL BINDING REGISTRY
=============================================================================

Maps request paths to binding prototypes. Built once at startup, read-only
afterwards, so lookups need no locking.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  add_binding(UserAction, "/user/{id}/{$event}")                     │
    │                                                                     │
    │  path cache (exact):                                                │
    │      "/user"                   → UserAction                         │
    │      "/user/"                  → UserAction                         │
    │      "/user/{id}/{$event}"     → UserAction                         │
    │                                                                     │
    │  prefix cache (longest key first):                                  │
    │      "/user/"                  → {UserAction}                       │
    └─────────────────────────────────────────────────────────────────────┘

Lookup order for "/user/42/edit":

    1. exact path cache hit?                  no
    2. first prefix key the URI starts with   "/user/"
    3. one candidate                          → UserAction
       several candidates                     → deepest literal match,
                                                then fewest components,
                                                then smallest pattern string

Two handler types claiming an identical path key is a conflict; looking up
that exact key raises UrlBindingConflictError.

=============================================================================
"""

import logging
from typing import Dict, List, Optional, Set

from ..exceptions import UrlBindingConflictError
from .url_binding import LiveBinding, UrlBinding, evaluate

logger = logging.getLogger(__name__)


class UrlBindingRegistry:
    """Path and prefix index over all registered bindings."""

    def __init__(self):
        self._class_cache: Dict[type, UrlBinding] = {}
        self._path_cache: Dict[str, UrlBinding] = {}
        self._path_conflicts: Dict[str, List[str]] = {}
        self._prefix_cache: Dict[str, Set[UrlBinding]] = {}
        self._prefix_order: List[str] = []

    # ─────────────────────────────────────────────────────────────────────
    # REGISTRATION
    # ─────────────────────────────────────────────────────────────────────

    def add_binding(self, handler_type: type, binding: UrlBinding) -> None:
        path_plus_slash = binding.path if binding.path.endswith("/") else binding.path + "/"

        self._cache_path(binding.path, binding)
        if binding.path != path_plus_slash:
            self._cache_path(path_plus_slash, binding)
        if binding.suffix is not None:
            self._cache_path(binding.path + binding.suffix, binding)
        if str(binding) != binding.path:
            self._cache_path(str(binding), binding)

        leading_literal = None
        if binding.components and isinstance(binding.components[0], str):
            leading_literal = binding.components[0]
        path_plus_literal = binding.path + leading_literal if leading_literal is not None else None

        if path_plus_literal is not None:
            self._cache_prefix(path_plus_literal, binding)
        if path_plus_slash != path_plus_literal:
            self._cache_prefix(path_plus_slash, binding)

        self._class_cache[handler_type] = binding

    def replace_binding(self, handler_type: type, binding: UrlBinding) -> None:
        """
        Swap the prototype registered for `handler_type` for an equivalent
        one (same pattern), keeping every index entry pointing at it.
        """
        old = self._class_cache.get(handler_type)
        if old is None:
            self.add_binding(handler_type, binding)
            return
        for key, value in list(self._path_cache.items()):
            if value is old:
                self._path_cache[key] = binding
        for key, bindings in self._prefix_cache.items():
            if old in bindings:
                bindings.discard(old)
                bindings.add(binding)
        self._class_cache[handler_type] = binding

    def _cache_path(self, path: str, binding: UrlBinding) -> None:
        if path in self._path_conflicts:
            self._path_conflicts[path].append(str(binding))
            logger.warning(f"Path {path} for {binding.handler_type.__name__} @ {binding} "
                           f"conflicts with {self._path_conflicts[path]}")
            return

        existing = self._path_cache.get(path)
        if existing is None:
            logger.debug(f"Wiring path {path} to {binding.handler_type.__name__} @ {binding}")
            self._path_cache[path] = binding
        elif existing.handler_type is not binding.handler_type:
            del self._path_cache[path]
            self._path_conflicts[path] = [str(existing), str(binding)]
            logger.warning(f"Path {path} for {binding.handler_type.__name__} @ {binding} "
                           f"conflicts with {existing}")

    def _cache_prefix(self, prefix: str, binding: UrlBinding) -> None:
        logger.debug(f"Wiring prefix {prefix}* to {binding.handler_type.__name__} @ {binding}")
        if prefix not in self._prefix_cache:
            self._prefix_cache[prefix] = set()
            self._prefix_order.append(prefix)
            self._prefix_order.sort(key=lambda key: (-len(key), key))
        self._prefix_cache[prefix].add(binding)

    # ─────────────────────────────────────────────────────────────────────
    # LOOKUP
    # ─────────────────────────────────────────────────────────────────────

    def get_binding_prototype(self, uri: str) -> Optional[UrlBinding]:
        """
        The prototype whose binding matches `uri`, or None.

        Raises:
            UrlBindingConflictError: `uri` is a path two handler types claim.
        """
        prototype = self._path_cache.get(uri)
        if prototype is not None:
            logger.debug(f"Matched {uri} to {prototype}")
            return prototype
        if uri in self._path_conflicts:
            raise UrlBindingConflictError(uri, self._path_conflicts[uri])

        candidates = None
        for prefix in self._prefix_order:
            if uri.startswith(prefix):
                candidates = self._prefix_cache[prefix]
                break

        if not candidates:
            logger.debug(f"No URL binding matches {uri}")
            return None
        if len(candidates) == 1:
            return next(iter(candidates))

        best: Optional[UrlBinding] = None
        best_index = -1
        for binding in sorted(candidates, key=lambda b: (len(b.components), str(b))):
            index = self._match_depth(binding, uri)
            if index > best_index:
                best, best_index = binding, index

        logger.debug(f"Matched @{best_index} {uri} to {best}")
        return best

    @staticmethod
    def _match_depth(binding: UrlBinding, uri: str) -> int:
        """How far into `uri` the binding's literals can be matched in order."""
        index = len(binding.path)
        for component in binding.components:
            if not isinstance(component, str):
                continue
            at = uri.find(component, index)
            if at < 0:
                break
            index = at + len(component)
        return index

    def get_binding(self, uri: str) -> Optional[LiveBinding]:
        prototype = self.get_binding_prototype(uri)
        if prototype is None:
            return None
        return evaluate(prototype, uri)

    def get_binding_for(self, handler_type: type) -> Optional[UrlBinding]:
        return self._class_cache.get(handler_type)

    def get_handler_types(self) -> List[type]:
        return list(self._class_cache)

    def path_map(self) -> Dict[str, type]:
        """Every exact path key and the handler type it leads to."""
        return {path: binding.handler_type for path, binding in self._path_cache.items()}

    def __len__(self) -> int:
        return len(self._class_cache)
