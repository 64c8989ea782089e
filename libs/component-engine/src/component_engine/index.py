"""Library snapshots and the incrementally maintained hash index.

``LibrarySnapshot`` is the read-only view one batch operation works against:
every component (archived included, so composites can still resolve their
children) plus lazily cached content hashes. Only non-archived components are
eligible as match targets.

``ComponentHashIndex`` is the long-lived hash -> component id index a
repository keeps current from write events, so matching does not rebuild the
map on every call. It hands out consistent snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from component_engine.errors import CyclicReferenceError
from component_engine.identity import component_hash
from component_engine.schemas.components import (
    ApprovalStatus,
    CompositeComponent,
    LibraryComponent,
)

logger = logging.getLogger(__name__)


class LibrarySnapshot(Mapping[str, LibraryComponent]):
    """Immutable id -> component mapping with cached content hashes."""

    def __init__(
        self,
        components: Mapping[str, LibraryComponent] | Iterable[LibraryComponent],
        hashes: Mapping[str, str] | None = None,
        by_hash: Mapping[str, list[str]] | None = None,
    ) -> None:
        if isinstance(components, Mapping):
            items = dict(components)
        else:
            items = {c.id: c for c in components}
        self._components: dict[str, LibraryComponent] = items
        self._hashes: dict[str, str] = dict(hashes or {})
        self._by_hash: dict[str, list[str]] | None = None
        if by_hash is not None:
            self._by_hash = {h: list(ids) for h, ids in by_hash.items()}

    def __getitem__(self, component_id: str) -> LibraryComponent:
        return self._components[component_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._components)

    def __len__(self) -> int:
        return len(self._components)

    def eligible(self) -> list[LibraryComponent]:
        """Non-archived components in insertion order (the match targets)."""
        return [c for c in self._components.values() if not c.is_archived]

    def hash_of(self, component: LibraryComponent) -> str:
        """Content hash of a component, resolved against this snapshot.

        Raises:
            CyclicReferenceError: If the component's children form a cycle.
        """
        return component_hash(component, self._components, self._hashes)

    def try_hash_of(self, component: LibraryComponent) -> str | None:
        """Like ``hash_of`` but logs and returns None for cyclic components."""
        try:
            return self.hash_of(component)
        except CyclicReferenceError as e:
            logger.warning("Skipping component %s: %s", component.id, e)
            return None

    def ids_for_hash(self, digest: str) -> list[str]:
        """Eligible component ids with the given hash, in snapshot order."""
        if self._by_hash is None:
            by_hash: dict[str, list[str]] = {}
            for component in self.eligible():
                h = self.try_hash_of(component)
                if h is not None:
                    by_hash.setdefault(h, []).append(component.id)
            self._by_hash = by_hash
        return list(self._by_hash.get(digest, []))


class ComponentHashIndex:
    """Incrementally maintained hash -> component id index.

    ``upsert``/``archive``/``remove`` are called by the repository on write
    events. A content change re-hashes the component and every composite
    ancestor that (transitively) references it. Not thread-safe; callers
    serialize writes.
    """

    def __init__(self, components: Iterable[LibraryComponent] = ()) -> None:
        self._components: dict[str, LibraryComponent] = {}
        self._hashes: dict[str, str] = {}
        self._parents: dict[str, set[str]] = {}
        self._by_hash: dict[str, set[str]] = {}
        self._order: dict[str, int] = {}
        for component in components:
            self._components[component.id] = component
            self._order.setdefault(component.id, len(self._order))
            self._link_parents(component)
        for component_id in list(self._components):
            self._rehash(component_id)

    def __len__(self) -> int:
        return len(self._components)

    def __contains__(self, component_id: object) -> bool:
        return component_id in self._components

    def get(self, component_id: str) -> LibraryComponent | None:
        return self._components.get(component_id)

    def hash_for(self, component_id: str) -> str | None:
        return self._hashes.get(component_id)

    def lookup(self, digest: str) -> list[str]:
        """Non-archived component ids whose content hash equals ``digest``."""
        return self._ordered(self._by_hash.get(digest, ()))

    def upsert(self, component: LibraryComponent) -> str | None:
        """Insert or replace a component and re-hash affected ancestors."""
        previous = self._components.get(component.id)
        if previous is not None:
            self._unlink_parents(previous)
        self._components[component.id] = component
        self._order.setdefault(component.id, len(self._order))
        self._link_parents(component)
        self._rehash_with_ancestors(component.id)
        return self._hashes.get(component.id)

    def archive(self, component_id: str) -> None:
        """Mark a component archived; it stays resolvable as a child."""
        component = self._components.get(component_id)
        if component is None:
            logger.debug("archive: unknown component %s", component_id)
            return
        version_info = component.version_info.model_copy(
            update={"status": ApprovalStatus.ARCHIVED}
        )
        self._components[component_id] = component.model_copy(
            update={"version_info": version_info}
        )
        self._unindex(component_id)

    def remove(self, component_id: str) -> None:
        """Drop a component; parents now hash it as a missing child."""
        component = self._components.pop(component_id, None)
        if component is None:
            return
        ancestors = self._ancestors(component_id)
        self._unlink_parents(component)
        self._order.pop(component_id, None)
        self._unindex(component_id)
        self._hashes.pop(component_id, None)
        for parent_id in ancestors:
            self._unindex(parent_id)
            self._hashes.pop(parent_id, None)
        for parent_id in ancestors:
            self._rehash(parent_id)

    def snapshot(self) -> LibrarySnapshot:
        """Consistent snapshot sharing the precomputed hashes and reverse map."""
        by_hash = {h: self._ordered(ids) for h, ids in self._by_hash.items()}
        return LibrarySnapshot(self._components, self._hashes, by_hash)

    # --- internals ---

    def _ordered(self, ids: Iterable[str]) -> list[str]:
        return sorted(ids, key=self._order.__getitem__)

    def _unindex(self, component_id: str) -> None:
        digest = self._hashes.get(component_id)
        if digest is None:
            return
        ids = self._by_hash.get(digest)
        if ids is not None:
            ids.discard(component_id)
            if not ids:
                del self._by_hash[digest]

    def _link_parents(self, component: LibraryComponent) -> None:
        if isinstance(component, CompositeComponent):
            for ref in component.children:
                self._parents.setdefault(ref.component_id, set()).add(component.id)

    def _unlink_parents(self, component: LibraryComponent) -> None:
        if isinstance(component, CompositeComponent):
            for ref in component.children:
                parents = self._parents.get(ref.component_id)
                if parents:
                    parents.discard(component.id)

    def _ancestors(self, component_id: str) -> list[str]:
        seen: set[str] = set()
        order: list[str] = []
        stack = [component_id]
        while stack:
            current = stack.pop()
            for parent_id in self._parents.get(current, ()):
                if parent_id not in seen and parent_id in self._components:
                    seen.add(parent_id)
                    order.append(parent_id)
                    stack.append(parent_id)
        return order

    def _rehash_with_ancestors(self, component_id: str) -> None:
        stale = [component_id, *self._ancestors(component_id)]
        for cid in stale:
            self._unindex(cid)
            self._hashes.pop(cid, None)
        for cid in stale:
            self._rehash(cid)

    def _rehash(self, component_id: str) -> None:
        component = self._components[component_id]
        self._unindex(component_id)
        try:
            digest = component_hash(component, self._components, self._hashes)
        except CyclicReferenceError as e:
            logger.warning("Cannot index component %s: %s", component_id, e)
            self._hashes.pop(component_id, None)
            return
        self._hashes[component_id] = digest
        if not component.is_archived:
            self._by_hash.setdefault(digest, set()).add(component_id)
