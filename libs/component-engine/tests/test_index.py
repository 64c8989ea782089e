"""Tests for LibrarySnapshot and the incrementally maintained ComponentHashIndex."""

from __future__ import annotations

from component_engine.identity import component_hash
from component_engine.index import ComponentHashIndex, LibrarySnapshot
from component_engine.schemas.components import (
    ApprovalStatus,
    AtomicComponent,
    ComponentReference,
    ComponentVersionInfo,
    CompositeComponent,
    LogicalOperator,
    TimingExpression,
    TimingOperator,
    ValueSetRef,
)


def _make_atomic(
    component_id: str,
    oid: str,
    status: ApprovalStatus = ApprovalStatus.DRAFT,
    timing: TimingExpression | None = None,
) -> AtomicComponent:
    return AtomicComponent(
        id=component_id,
        name=component_id,
        value_set=ValueSetRef(oid=oid),
        timing=timing,
        version_info=ComponentVersionInfo(status=status),
    )


def _make_composite(
    component_id: str,
    child_ids: list[str],
    operator: LogicalOperator = LogicalOperator.AND,
) -> CompositeComponent:
    return CompositeComponent(
        id=component_id,
        name=component_id,
        operator=operator,
        children=[ComponentReference(component_id=cid) for cid in child_ids],
    )


class TestLibrarySnapshot:
    """Tests for the read-only snapshot."""

    def test_accepts_iterable_or_mapping(self) -> None:
        a = _make_atomic("a", "1.1")
        assert dict(LibrarySnapshot([a])) == dict(LibrarySnapshot({"a": a}))

    def test_eligible_excludes_archived(self) -> None:
        live = _make_atomic("live", "1.1")
        gone = _make_atomic("gone", "1.2", status=ApprovalStatus.ARCHIVED)
        snapshot = LibrarySnapshot([live, gone])
        assert [c.id for c in snapshot.eligible()] == ["live"]
        assert "gone" in snapshot

    def test_ids_for_hash_lists_duplicates_in_order(self) -> None:
        first = _make_atomic("first", "1.1")
        second = _make_atomic("second", "1.1")
        snapshot = LibrarySnapshot([first, second])
        assert snapshot.ids_for_hash(snapshot.hash_of(first)) == ["first", "second"]

    def test_ids_for_hash_skips_archived(self) -> None:
        archived = _make_atomic("old", "1.1", status=ApprovalStatus.ARCHIVED)
        snapshot = LibrarySnapshot([archived])
        assert snapshot.ids_for_hash(snapshot.hash_of(archived)) == []

    def test_try_hash_of_cycle_returns_none(self) -> None:
        x = _make_composite("x", ["y"])
        y = _make_composite("y", ["x"])
        snapshot = LibrarySnapshot([x, y])
        assert snapshot.try_hash_of(x) is None
        assert snapshot.ids_for_hash("00000000") == []


class TestComponentHashIndex:
    """Tests for incremental index maintenance on write events."""

    def test_initial_hashes_match_direct_computation(self) -> None:
        a = _make_atomic("a", "1.1")
        b = _make_atomic("b", "1.2")
        ab = _make_composite("ab", ["a", "b"])
        index = ComponentHashIndex([ab, a, b])
        library = {c.id: c for c in (a, b, ab)}
        for cid, component in library.items():
            assert index.hash_for(cid) == component_hash(component, library)

    def test_lookup_finds_component(self) -> None:
        a = _make_atomic("a", "1.1")
        index = ComponentHashIndex([a])
        assert index.lookup(index.hash_for("a")) == ["a"]
        assert "a" in index
        assert len(index) == 1

    def test_upsert_child_rehashes_parent(self) -> None:
        """Editing a child's timing changes its composite parent's hash."""
        a = _make_atomic("a", "1.1")
        b = _make_atomic("b", "1.2")
        parent = _make_composite("p", ["a", "b"])
        index = ComponentHashIndex([a, b, parent])
        before = index.hash_for("p")

        edited = _make_atomic(
            "a", "1.1", timing=TimingExpression(operator=TimingOperator.DURING)
        )
        index.upsert(edited)

        library = {"a": edited, "b": b, "p": parent}
        assert index.hash_for("p") != before
        assert index.hash_for("p") == component_hash(parent, library)

    def test_upsert_rehashes_grandparents(self) -> None:
        a = _make_atomic("a", "1.1")
        inner = _make_composite("inner", ["a"])
        outer = _make_composite("outer", ["inner"], LogicalOperator.OR)
        index = ComponentHashIndex([a, inner, outer])
        before = index.hash_for("outer")

        index.upsert(_make_atomic("a", "9.9"))
        assert index.hash_for("outer") != before

    def test_upsert_replacing_children_relinks_parents(self) -> None:
        """A composite that drops a child no longer re-hashes on its edits."""
        a = _make_atomic("a", "1.1")
        b = _make_atomic("b", "1.2")
        index = ComponentHashIndex([a, b, _make_composite("p", ["a"])])
        index.upsert(_make_composite("p", ["b"]))
        after_relink = index.hash_for("p")

        index.upsert(_make_atomic("a", "5.5"))
        assert index.hash_for("p") == after_relink

    def test_archive_hides_from_lookup_but_keeps_parent_hash(self) -> None:
        a = _make_atomic("a", "1.1")
        parent = _make_composite("p", ["a"])
        index = ComponentHashIndex([a, parent])
        digest = index.hash_for("a")
        parent_hash = index.hash_for("p")

        index.archive("a")

        assert index.lookup(digest) == []
        assert index.get("a").is_archived
        assert index.hash_for("p") == parent_hash

    def test_archive_unknown_is_noop(self) -> None:
        index = ComponentHashIndex()
        index.archive("nope")
        assert len(index) == 0

    def test_remove_makes_parent_hash_missing_child(self) -> None:
        a = _make_atomic("a", "1.1")
        parent = _make_composite("p", ["a"])
        index = ComponentHashIndex([a, parent])

        index.remove("a")

        assert index.hash_for("a") is None
        assert index.hash_for("p") == component_hash(parent, {"p": parent})

    def test_snapshot_shares_hashes(self) -> None:
        a = _make_atomic("a", "1.1")
        index = ComponentHashIndex([a])
        snapshot = index.snapshot()
        assert snapshot.ids_for_hash(index.hash_for("a")) == ["a"]

    def test_cyclic_component_is_not_indexed(self) -> None:
        x = _make_composite("x", ["y"])
        y = _make_composite("y", ["x"])
        index = ComponentHashIndex([x, y])
        assert index.hash_for("x") is None
        assert index.hash_for("y") is None


class TestHashIndexLookup:
    """Tests that the reverse hash map tracks every write event."""

    def test_lookup_follows_upsert(self) -> None:
        index = ComponentHashIndex([_make_atomic("a", "1.1")])
        old_digest = index.hash_for("a")

        new_digest = index.upsert(_make_atomic("a", "2.2"))

        assert index.lookup(old_digest) == []
        assert index.lookup(new_digest) == ["a"]

    def test_lookup_follows_parent_rehash(self) -> None:
        a = _make_atomic("a", "1.1")
        parent = _make_composite("p", ["a"])
        index = ComponentHashIndex([a, parent])
        old_parent = index.hash_for("p")

        index.upsert(_make_atomic("a", "3.3"))

        assert index.lookup(old_parent) == []
        assert index.lookup(index.hash_for("p")) == ["p"]

    def test_lookup_after_archive_keeps_duplicates(self) -> None:
        index = ComponentHashIndex(
            [_make_atomic("first", "1.1"), _make_atomic("second", "1.1")]
        )
        digest = index.hash_for("first")

        index.archive("first")

        assert index.lookup(digest) == ["second"]

    def test_upsert_of_archived_component_is_not_indexed(self) -> None:
        index = ComponentHashIndex()
        digest = index.upsert(
            _make_atomic("old", "1.1", status=ApprovalStatus.ARCHIVED)
        )
        assert digest is not None
        assert index.lookup(digest) == []

    def test_lookup_after_remove(self) -> None:
        a = _make_atomic("a", "1.1")
        parent = _make_composite("p", ["a"])
        index = ComponentHashIndex([a, parent])
        digest = index.hash_for("a")
        old_parent = index.hash_for("p")

        index.remove("a")

        assert index.lookup(digest) == []
        assert index.lookup(old_parent) == []
        assert index.lookup(index.hash_for("p")) == ["p"]

    def test_duplicates_keep_insertion_order_after_rehash(self) -> None:
        index = ComponentHashIndex(
            [_make_atomic("first", "1.1"), _make_atomic("second", "1.1")]
        )
        index.upsert(_make_atomic("first", "9.9"))
        digest = index.upsert(_make_atomic("first", "1.1"))

        assert index.lookup(digest) == ["first", "second"]
        assert index.snapshot().ids_for_hash(digest) == ["first", "second"]

    def test_snapshot_is_isolated_from_later_writes(self) -> None:
        index = ComponentHashIndex([_make_atomic("a", "1.1")])
        digest = index.hash_for("a")
        snapshot = index.snapshot()

        index.remove("a")

        assert snapshot.ids_for_hash(digest) == ["a"]
        assert index.lookup(digest) == []
