"""Referential integrity between measures and component usage tracking.

Detects drift between what measures actually reference and what library
components record in ``usage``:
- Orphaned references (element links to a component that does not exist)
- Stale usage (component claims a measure that no longer references it)
- Missing usage (measure references a component that does not track it)
- Count mismatches (``usage_count`` differs from the real measure count)

All checks are READ-ONLY -- nothing here modifies components or measures.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from component_engine.schemas.components import LibraryComponent
from component_engine.schemas.results import (
    ElementLink,
    IntegrityIssue,
    IntegrityReport,
)
from component_engine.validation import ZERO_CODES_SENTINEL

logger = logging.getLogger(__name__)


# --- Individual check functions ---


def _collect_actual_usage(
    measures: Mapping[str, Iterable[ElementLink]],
    components: Mapping[str, LibraryComponent],
) -> tuple[dict[str, set[str]], list[IntegrityIssue]]:
    """Check 1 (orphaned_reference, error) while building component -> measures."""
    actual: dict[str, set[str]] = {}
    issues: list[IntegrityIssue] = []
    for measure_id, elements in measures.items():
        for element in elements:
            component_id = element.library_component_id
            if not component_id or component_id == ZERO_CODES_SENTINEL:
                continue
            if component_id not in components:
                issues.append(
                    IntegrityIssue(
                        category="orphaned_reference",
                        severity="error",
                        description=(
                            f"Element {element.id!r} references component "
                            f"{component_id!r} which does not exist"
                        ),
                        component_id=component_id,
                        measure_id=measure_id,
                        element_id=element.id,
                    )
                )
            actual.setdefault(component_id, set()).add(measure_id)
    return actual, issues


def _check_component_usage(
    component: LibraryComponent, actual_measure_ids: set[str]
) -> list[IntegrityIssue]:
    """Checks 2-4 (stale_usage, missing_usage, count_mismatch) for one component."""
    issues: list[IntegrityIssue] = []
    claimed = set(component.usage.measure_ids)

    for measure_id in sorted(claimed - actual_measure_ids):
        issues.append(
            IntegrityIssue(
                category="stale_usage",
                severity="warning",
                description=(
                    f"Component {component.id!r} lists measure {measure_id!r} "
                    "in usage but the measure does not reference it"
                ),
                component_id=component.id,
                measure_id=measure_id,
            )
        )
    for measure_id in sorted(actual_measure_ids - claimed):
        issues.append(
            IntegrityIssue(
                category="missing_usage",
                severity="warning",
                description=(
                    f"Measure {measure_id!r} references component "
                    f"{component.id!r} but the component does not track it"
                ),
                component_id=component.id,
                measure_id=measure_id,
            )
        )
    if component.usage.usage_count != len(actual_measure_ids):
        issues.append(
            IntegrityIssue(
                category="count_mismatch",
                severity="warning",
                description=(
                    f"Component {component.id!r} has usage_count "
                    f"{component.usage.usage_count} but is referenced by "
                    f"{len(actual_measure_ids)} measure(s)"
                ),
                component_id=component.id,
            )
        )
    return issues


# --- Entry point ---


def check_usage_integrity(
    measures: Mapping[str, Iterable[ElementLink]],
    components: Mapping[str, LibraryComponent],
) -> IntegrityReport:
    """Run every usage check.

    Args:
        measures: Measure id -> flattened element links of that measure.
        components: Every library component by id, archived ones included.

    Returns:
        IntegrityReport with per-category counts; ``passed`` only when no
        issue of any category was found.
    """
    actual, issues = _collect_actual_usage(measures, components)
    for component in components.values():
        actual_ids = actual.get(component.id, set())
        issues.extend(_check_component_usage(component, actual_ids))

    summary: dict[str, int] = {}
    for issue in issues:
        summary[issue.category] = summary.get(issue.category, 0) + 1

    passed = len(issues) == 0
    logger.info(
        "Usage integrity check: %d issue(s) across %d measures, passed=%s",
        len(issues),
        len(measures),
        passed,
    )
    return IntegrityReport(issues=issues, summary=summary, passed=passed)
