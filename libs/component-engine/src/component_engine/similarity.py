"""Similarity scoring and field-level diffs between candidates and library components.

Similarity is defined only between an atomic candidate and an atomic library
component. Composites are compared structurally by the matching module, so a
composite on either side always scores 0.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from component_engine.config import get_config
from component_engine.identity import parsed_component_hash
from component_engine.index import LibrarySnapshot
from component_engine.schemas.components import (
    AtomicComponent,
    CompositeComponent,
    LibraryComponent,
    LogicalOperator,
    ParsedComponent,
    TimingExpression,
)
from component_engine.schemas.results import ComponentDiff, ComponentMatch

logger = logging.getLogger(__name__)

OID_MATCH_SCORE = 0.70
TIMING_OPERATOR_BONUS = 0.15
TIMING_REFERENCE_BONUS = 0.15

_NONE = "none"


def compute_similarity(
    candidate: ParsedComponent, component: LibraryComponent
) -> float:
    """Score how close an atomic candidate is to an atomic library component.

    Returns 0.0 unless both OIDs are present and equal; otherwise 0.70 plus
    0.15 for an equal timing operator and 0.15 for an equal timing reference
    (each only counted when present on both sides), capped at 1.0.
    """
    if candidate.is_composite or not isinstance(component, AtomicComponent):
        return 0.0
    candidate_oid = candidate.value_set_oid
    if not candidate_oid or candidate_oid != component.value_set.oid:
        return 0.0

    score = OID_MATCH_SCORE
    ours, theirs = candidate.timing, component.timing
    if ours is not None and theirs is not None:
        if ours.operator == theirs.operator:
            score += TIMING_OPERATOR_BONUS
        if ours.reference and ours.reference == theirs.reference:
            score += TIMING_REFERENCE_BONUS
    return min(round(score, 4), 1.0)


def find_similar_components(
    candidate: ParsedComponent,
    snapshot: LibrarySnapshot,
    threshold: float | None = None,
) -> list[ComponentMatch]:
    """List near-matches at or above ``threshold``, best first.

    Components that are hash-exact matches are excluded so they are not
    suggested twice. Ties keep snapshot order.

    Args:
        candidate: Incoming candidate component.
        snapshot: Library snapshot; only non-archived components are scored.
        threshold: Minimum score; defaults to the configured threshold (0.5).

    Returns:
        Matches sorted by score, descending, each with its field diffs.
    """
    if threshold is None:
        threshold = get_config().similarity_threshold
    candidate_hash = parsed_component_hash(candidate)

    matches: list[ComponentMatch] = []
    for component in snapshot.eligible():
        if snapshot.try_hash_of(component) == candidate_hash:
            continue
        score = compute_similarity(candidate, component)
        if score < threshold:
            continue
        matches.append(
            ComponentMatch(
                matched_component_id=component.id,
                score=score,
                diffs=compute_component_diff(component, candidate),
            )
        )

    matches.sort(key=lambda m: m.score, reverse=True)
    logger.debug(
        "Found %d similar components for %r at threshold %.2f",
        len(matches),
        candidate.name,
        threshold,
    )
    return matches


# --- Diffing ---


def _text(value: Any) -> str:
    if value is None or value == "":
        return _NONE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _timing_attr(timing: TimingExpression | None, attr: str) -> Any:
    return getattr(timing, attr) if timing is not None else None


def _diff(field: str, label: str, expected: Any, actual: Any) -> ComponentDiff | None:
    left, right = _text(expected), _text(actual)
    if left == right:
        return None
    return ComponentDiff(
        field=field,
        expected=left,
        actual=right,
        description=f'{label} differs: library has "{left}", incoming has "{right}"',
    )


def compute_component_diff(
    existing: LibraryComponent, candidate: ParsedComponent
) -> list[ComponentDiff]:
    """Field-level differences between a library component and a candidate.

    Atomics compare value set OID, each timing field, and negation; composites
    compare operator and child count. A differing variant is reported first
    as ``component_type``.
    """
    diffs: list[ComponentDiff | None] = []
    existing_type = existing.type
    candidate_type = "composite" if candidate.is_composite else "atomic"
    if existing_type != candidate_type:
        diffs.append(
            _diff("component_type", "Component type", existing_type, candidate_type)
        )

    if isinstance(existing, AtomicComponent):
        ours, theirs = existing.timing, candidate.timing
        diffs.extend(
            [
                _diff(
                    "value_set_oid",
                    "Value set OID",
                    existing.value_set.oid,
                    candidate.value_set_oid,
                ),
                _diff(
                    "timing_operator",
                    "Timing operator",
                    _timing_attr(ours, "operator"),
                    _timing_attr(theirs, "operator"),
                ),
                _diff(
                    "timing_quantity",
                    "Timing quantity",
                    _timing_attr(ours, "quantity"),
                    _timing_attr(theirs, "quantity"),
                ),
                _diff(
                    "timing_unit",
                    "Timing unit",
                    _timing_attr(ours, "unit"),
                    _timing_attr(theirs, "unit"),
                ),
                _diff(
                    "timing_position",
                    "Timing position",
                    _timing_attr(ours, "position"),
                    _timing_attr(theirs, "position"),
                ),
                _diff(
                    "timing_reference",
                    "Timing reference",
                    _timing_attr(ours, "reference"),
                    _timing_attr(theirs, "reference"),
                ),
                _diff("negation", "Negation", existing.negation, candidate.negation),
            ]
        )
    elif isinstance(existing, CompositeComponent):
        candidate_operator = candidate.operator or LogicalOperator.AND
        diffs.append(
            _diff("operator", "Operator", existing.operator, candidate_operator)
        )
        diffs.append(
            _diff(
                "children",
                "Child count",
                len(existing.children),
                len(candidate.children),
            )
        )
    return [d for d in diffs if d is not None]
