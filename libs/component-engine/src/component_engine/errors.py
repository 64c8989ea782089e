"""Exception types raised by the component engine.

Dangling references and malformed persisted blobs are NOT errors: they are
reported through typed results (skipped children, non-matches, validation
warnings, empty decoded collections). Exceptions are reserved for inputs the
engine cannot interpret at all.
"""

from __future__ import annotations


class ComponentEngineError(Exception):
    """Base class for component engine errors."""


class InvalidComponentError(ComponentEngineError, ValueError):
    """Component is neither atomic nor composite (or otherwise uninterpretable)."""


class CyclicReferenceError(ComponentEngineError, ValueError):
    """A composite component references itself through its children."""

    def __init__(self, component_id: str, path: list[str] | None = None) -> None:
        self.component_id = component_id
        self.path = list(path or [])
        chain = " -> ".join([*self.path, component_id])
        super().__init__(f"Cyclic component reference detected: {chain}")


class CyclicTreeError(ComponentEngineError, ValueError):
    """A criteria tree clause is reachable from itself."""

    def __init__(self, clause_id: str) -> None:
        self.clause_id = clause_id
        super().__init__(f"Circular reference detected at clause {clause_id!r}")
