"""Traversal and structural validation of criteria trees.

Trees are arenas (see ``CriteriaTree``): every traversal resolves child ids
through the arena and carries a visited set, so a corrupted tree with a
cycle is reported instead of recursing forever.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from component_engine.config import get_config
from component_engine.errors import CyclicTreeError
from component_engine.schemas.components import LogicalOperator
from component_engine.schemas.criteria import CriteriaTree, DataElement
from component_engine.schemas.results import (
    ElementLink,
    TreeIssue,
    TreeStats,
    TreeValidation,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeNode:
    """A visited clause or data element with its position in the tree."""

    node_id: str
    depth: int
    path: tuple[str, ...]
    is_clause: bool


@dataclass(frozen=True)
class _Visit:
    node: TreeNode
    parent_id: str | None
    revisit: bool = False
    missing: bool = False


def _iter_visits(tree: CriteriaTree) -> Iterator[_Visit]:
    root_id = tree.root_clause_id
    if root_id is None:
        return
    seen: set[str] = set()
    stack: list[tuple[str, bool, int, tuple[str, ...], str | None]] = [
        (root_id, True, 0, (), None)
    ]
    while stack:
        node_id, is_clause, depth, path, parent_id = stack.pop()
        node = TreeNode(node_id=node_id, depth=depth, path=path, is_clause=is_clause)
        if is_clause:
            if node_id in seen:
                yield _Visit(node, parent_id, revisit=True)
                continue
            clause = tree.clauses.get(node_id)
            if clause is None:
                yield _Visit(node, parent_id, missing=True)
                continue
            seen.add(node_id)
            yield _Visit(node, parent_id)
            child_path = (*path, node_id)
            children = [
                (cid, True, depth + 1, child_path, node_id)
                for cid in clause.child_clause_ids
            ] + [
                (eid, False, depth + 1, child_path, node_id)
                for eid in clause.data_element_ids
            ]
            # Reverse so the first child is popped first
            stack.extend(reversed(children))
        else:
            missing = node_id not in tree.elements
            yield _Visit(node, parent_id, missing=missing)


def walk_tree(tree: CriteriaTree) -> Iterator[TreeNode]:
    """Depth-first, pre-order walk over clauses and data elements.

    Missing ids are skipped.

    Raises:
        CyclicTreeError: If a clause is reached twice.
    """
    for visit in _iter_visits(tree):
        if visit.revisit:
            raise CyclicTreeError(visit.node.node_id)
        if visit.missing:
            logger.debug("Skipping missing tree node %s", visit.node.node_id)
            continue
        yield visit.node


def collect_data_elements(tree: CriteriaTree) -> list[DataElement]:
    """Data elements in display (depth-first) order."""
    return [tree.elements[n.node_id] for n in walk_tree(tree) if not n.is_clause]


def tree_depth(tree: CriteriaTree) -> int:
    return max((n.depth for n in walk_tree(tree)), default=0)


def flatten_element_links(tree: CriteriaTree) -> list[ElementLink]:
    """Flatten a tree into the link records usage validation audits."""
    links = []
    for element in collect_data_elements(tree):
        oid = next((vs.oid for vs in element.value_sets if vs.oid), None)
        links.append(
            ElementLink(
                id=element.id,
                description=element.description,
                library_component_id=element.library_component_id,
                value_set_oid=oid,
            )
        )
    return links


def validate_criteria_tree(tree: CriteriaTree) -> TreeValidation:
    """Check a criteria tree for structural problems.

    Errors: EMPTY_TREE, MISSING_NODE, CIRCULAR_REFERENCE, PARENT_MISMATCH,
    EMPTY_GROUP, NOT_WITH_MULTIPLE_CHILDREN. Warnings: SINGLE_CHILD_GROUP,
    DEEPLY_NESTED.
    """
    if tree.root_clause_id is None or tree.root_clause_id not in tree.clauses:
        return TreeValidation(
            valid=False,
            errors=[TreeIssue(code="EMPTY_TREE", message="Criteria tree has no root")],
        )

    errors: list[TreeIssue] = []
    warnings: list[TreeIssue] = []
    stats = TreeStats()

    for visit in _iter_visits(tree):
        node = visit.node
        if visit.revisit:
            errors.append(
                TreeIssue(
                    code="CIRCULAR_REFERENCE",
                    message=f"Clause {node.node_id} is reachable more than once",
                    node_id=node.node_id,
                )
            )
            continue
        if visit.missing:
            kind = "clause" if node.is_clause else "data element"
            errors.append(
                TreeIssue(
                    code="MISSING_NODE",
                    message=f"Referenced {kind} {node.node_id} does not exist",
                    node_id=node.node_id,
                )
            )
            continue

        stats.max_depth = max(stats.max_depth, node.depth)
        if not node.is_clause:
            stats.element_count += 1
            element = tree.elements[node.node_id]
            if element.clause_id is not None and element.clause_id != visit.parent_id:
                errors.append(
                    TreeIssue(
                        code="PARENT_MISMATCH",
                        message=(
                            f"Data element {element.id} names clause "
                            f"{element.clause_id} but is listed under {visit.parent_id}"
                        ),
                        node_id=element.id,
                    )
                )
            continue

        stats.clause_count += 1
        clause = tree.clauses[node.node_id]
        if clause.parent_clause_id != visit.parent_id:
            errors.append(
                TreeIssue(
                    code="PARENT_MISMATCH",
                    message=(
                        f"Clause {clause.id} names parent {clause.parent_clause_id} "
                        f"but is listed under {visit.parent_id}"
                    ),
                    node_id=clause.id,
                )
            )
        child_count = tree.child_count(clause.id)
        if child_count == 0:
            errors.append(
                TreeIssue(
                    code="EMPTY_GROUP",
                    message="Group has no children",
                    node_id=clause.id,
                )
            )
        if clause.operator == LogicalOperator.NOT and child_count > 1:
            errors.append(
                TreeIssue(
                    code="NOT_WITH_MULTIPLE_CHILDREN",
                    message="NOT operator should have exactly one child",
                    node_id=clause.id,
                )
            )
        if child_count == 1 and clause.operator != LogicalOperator.NOT:
            warnings.append(
                TreeIssue(
                    code="SINGLE_CHILD_GROUP",
                    message="Group has only one child; consider flattening",
                    node_id=clause.id,
                )
            )

    max_depth = get_config().max_tree_depth
    if stats.max_depth > max_depth:
        warnings.append(
            TreeIssue(
                code="DEEPLY_NESTED",
                message=(
                    f"Tree is deeply nested (depth: {stats.max_depth}); "
                    "consider simplifying"
                ),
            )
        )

    return TreeValidation(
        valid=not errors, errors=errors, warnings=warnings, stats=stats
    )
