"""Audit a measure's data element links against the component library."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from component_engine.criteria_tree import flatten_element_links
from component_engine.index import LibrarySnapshot
from component_engine.matching import find_approved_by_oid
from component_engine.schemas.criteria import CriteriaTree
from component_engine.schemas.results import (
    ElementLink,
    ValidationResult,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

ZERO_CODES_SENTINEL = "__ZERO_CODES__"
_NO_OID_MARKERS = {"", "N/A"}


def _has_meaningful_oid(element: ElementLink) -> bool:
    oid = element.value_set_oid
    return oid is not None and oid.strip() not in _NO_OID_MARKERS


def validate_measure_components(
    elements: Iterable[ElementLink], snapshot: LibrarySnapshot
) -> ValidationResult:
    """Count approved/draft/missing links and warn where an upgrade exists.

    Elements without a meaningful value set OID (demographics, age limits)
    are excluded entirely. Links to archived components are treated like
    links to components absent from the snapshot.

    Args:
        elements: Flattened measure elements.
        snapshot: Library snapshot shared by the whole audit.

    Returns:
        ValidationResult; ``is_valid`` is False only when some element could
        be linked to an approved component but is not.
    """
    warnings: list[ValidationWarning] = []
    total = approved = draft = unlinked = 0

    for element in elements:
        if not _has_meaningful_oid(element):
            continue
        total += 1
        link = element.library_component_id
        if not link or link == ZERO_CODES_SENTINEL:
            unlinked += 1
            alternative = find_approved_by_oid(element.value_set_oid, snapshot)
            if alternative is not None:
                warnings.append(
                    ValidationWarning(
                        element_id=element.id,
                        element_description=element.description,
                        type="approved_available",
                        message=(
                            "No library link, but approved component "
                            f'"{alternative.name}" is available'
                        ),
                        suggested_component_id=alternative.id,
                        suggested_component_name=alternative.name,
                    )
                )
            continue

        component = snapshot.get(link)
        if component is None or component.is_archived:
            unlinked += 1
            warnings.append(
                ValidationWarning(
                    element_id=element.id,
                    element_description=element.description,
                    type="no_library_match",
                    message="Component reference not found in library",
                )
            )
            continue

        if component.is_approved:
            approved += 1
            continue

        draft += 1
        alternative = find_approved_by_oid(element.value_set_oid, snapshot)
        if alternative is not None:
            warnings.append(
                ValidationWarning(
                    element_id=element.id,
                    element_description=element.description,
                    type="approved_available",
                    message=(
                        "Linked to draft component, but approved component "
                        f'"{alternative.name}" is available'
                    ),
                    suggested_component_id=alternative.id,
                    suggested_component_name=alternative.name,
                )
            )
        else:
            warnings.append(
                ValidationWarning(
                    element_id=element.id,
                    element_description=element.description,
                    type="unapproved_component",
                    message=(
                        "Linked to unapproved component "
                        f"(status: {component.status.value})"
                    ),
                )
            )

    is_valid = not any(w.type == "approved_available" for w in warnings)
    logger.info(
        "Validated %d elements: %d approved, %d draft, %d unlinked, %d warnings",
        total,
        approved,
        draft,
        unlinked,
        len(warnings),
    )
    return ValidationResult(
        is_valid=is_valid,
        total_elements=total,
        linked_to_approved=approved,
        linked_to_draft=draft,
        unlinked=unlinked,
        warnings=warnings,
    )


def validate_measure_tree(
    tree: CriteriaTree, snapshot: LibrarySnapshot
) -> ValidationResult:
    """Flatten a criteria tree and validate its element links."""
    return validate_measure_components(flatten_element_links(tree), snapshot)
