"""Deterministic complexity scoring for components and criteria trees.

Scores are additive:

- atomic: ``max(1 + timing_clauses + 2*negation, 4 if the value set has no codes)``
- composite: ``children_sum + and_penalty + 2*nesting_depth`` over resolved
  children with a cached complexity
- data element (tree leaf): ``1 + timing_override + timing_window + 2*negation``,
  floored at 4 when the element has no value sets (demographics excepted)
- clause: sum of child clauses and leaves plus the AND penalty

Levels: score <= 3 LOW, 4..7 MEDIUM, >= 8 HIGH.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from component_engine.errors import (
    CyclicReferenceError,
    CyclicTreeError,
    InvalidComponentError,
)
from component_engine.schemas.components import (
    AtomicComponent,
    ComplexityFactors,
    ComplexityLevel,
    ComponentComplexity,
    CompositeComponent,
    LibraryComponent,
    LogicalOperator,
    TimingExpression,
)
from component_engine.schemas.criteria import CriteriaTree, DataElement, DataElementType

logger = logging.getLogger(__name__)

LOW_MAX_SCORE = 3
MEDIUM_MAX_SCORE = 7
ZERO_CODES_FLOOR = 4
NEGATION_PENALTY = 2
_NEGATION_PHRASES = ("absence of", "without")


def level_for_score(score: int) -> ComplexityLevel:
    if score <= LOW_MAX_SCORE:
        return ComplexityLevel.LOW
    if score <= MEDIUM_MAX_SCORE:
        return ComplexityLevel.MEDIUM
    return ComplexityLevel.HIGH


def count_timing_clauses(timing: TimingExpression | None) -> int:
    """0 without timing, 2 with a quantity or position qualifier, else 1."""
    if timing is None:
        return 0
    if timing.quantity is not None or timing.position:
        return 2
    return 1


def _from_factors(factors: ComplexityFactors) -> ComponentComplexity:
    score = factors.total()
    return ComponentComplexity(
        level=level_for_score(score), score=score, factors=factors
    )


# --- Library components ---


def calculate_atomic_complexity(component: AtomicComponent) -> ComponentComplexity:
    factors = ComplexityFactors(
        base=1,
        timing_clauses=count_timing_clauses(component.timing),
        negations=1 if component.negation else 0,
        zero_codes=not component.value_set.codes,
    )
    return _from_factors(factors)


def calculate_composite_complexity(
    composite: CompositeComponent,
    components: Mapping[str, LibraryComponent],
) -> ComponentComplexity:
    """Score a composite from its children's cached complexity.

    Children that are missing from ``components`` or have no cached
    complexity contribute nothing and do not count toward the AND penalty.
    """
    children_sum = 0
    resolved = 0
    nesting_depth = 0
    for ref in composite.children:
        child = components.get(ref.component_id)
        if child is None or child.complexity is None:
            logger.debug(
                "Composite %s: skipping unresolved child %s",
                composite.id,
                ref.component_id,
            )
            continue
        children_sum += child.complexity.score
        resolved += 1
        if isinstance(child, CompositeComponent):
            nesting_depth = max(
                nesting_depth, child.complexity.factors.nesting_depth + 1
            )

    and_operators = 0
    if composite.operator == LogicalOperator.AND and resolved > 1:
        and_operators = resolved - 1

    factors = ComplexityFactors(
        children_sum=children_sum,
        and_operators=and_operators,
        nesting_depth=nesting_depth,
    )
    return _from_factors(factors)


def calculate_component_complexity(
    component: LibraryComponent,
    components: Mapping[str, LibraryComponent],
) -> ComponentComplexity:
    """Dispatch on the component variant.

    Raises:
        InvalidComponentError: If the component is neither atomic nor composite.
    """
    if isinstance(component, AtomicComponent):
        return calculate_atomic_complexity(component)
    if isinstance(component, CompositeComponent):
        return calculate_composite_complexity(component, components)
    raise InvalidComponentError(
        f"Unknown component variant: {type(component).__name__}"
    )


def recalculate_library_complexity(
    components: Mapping[str, LibraryComponent],
) -> dict[str, ComponentComplexity]:
    """Recompute every component's complexity bottom-up from fresh child scores.

    Cached complexity on the inputs is ignored; the inputs are not mutated.
    The caller persists the returned scores.

    Raises:
        CyclicReferenceError: If composite children form a cycle.
    """
    results: dict[str, ComponentComplexity] = {}

    def visit(component_id: str, path: list[str]) -> None:
        if component_id in results:
            return
        if component_id in path:
            raise CyclicReferenceError(component_id, path)
        component = components[component_id]
        if isinstance(component, CompositeComponent):
            for ref in component.children:
                if ref.component_id in components:
                    visit(ref.component_id, [*path, component_id])
            scored = {
                ref.component_id: components[ref.component_id].model_copy(
                    update={"complexity": results[ref.component_id]}
                )
                for ref in component.children
                if ref.component_id in results
            }
            results[component_id] = calculate_composite_complexity(component, scored)
        else:
            results[component_id] = calculate_component_complexity(
                component, components
            )

    for component_id in components:
        visit(component_id, [])
    logger.info("Recalculated complexity for %d components", len(results))
    return results


# --- Criteria trees ---


def _has_negation_wording(description: str) -> bool:
    lowered = description.lower()
    return any(phrase in lowered for phrase in _NEGATION_PHRASES)


def calculate_data_element_score(element: DataElement) -> int:
    score = 1
    if element.timing_override:
        score += 1
    if element.timing_window is not None:
        score += 1
    if element.negation or _has_negation_wording(element.description):
        score += NEGATION_PENALTY
    if not element.value_sets and element.element_type != DataElementType.DEMOGRAPHIC:
        score = max(score, ZERO_CODES_FLOOR)
    return score


def calculate_data_element_complexity(element: DataElement) -> ComplexityLevel:
    return level_for_score(calculate_data_element_score(element))


def calculate_clause_score(tree: CriteriaTree, clause_id: str) -> int:
    """Recursively score a clause: child clauses + leaves + AND penalty.

    Raises:
        CyclicTreeError: If a clause is reachable from itself.
    """
    return _clause_score(tree, clause_id, set())


def _clause_score(tree: CriteriaTree, clause_id: str, visited: set[str]) -> int:
    if clause_id in visited:
        raise CyclicTreeError(clause_id)
    visited.add(clause_id)
    clause = tree.clauses[clause_id]

    total = 0
    members = 0
    for child_id in clause.child_clause_ids:
        if child_id not in tree.clauses:
            logger.debug("Clause %s: missing child clause %s", clause_id, child_id)
            continue
        total += _clause_score(tree, child_id, visited)
        members += 1
    for element_id in clause.data_element_ids:
        element = tree.elements.get(element_id)
        if element is None:
            logger.debug("Clause %s: missing data element %s", clause_id, element_id)
            continue
        total += calculate_data_element_score(element)
        members += 1

    if clause.operator == LogicalOperator.AND and members > 1:
        total += members - 1
    return total


def calculate_clause_complexity(tree: CriteriaTree, clause_id: str) -> ComplexityLevel:
    return level_for_score(calculate_clause_score(tree, clause_id))


def calculate_population_complexity(tree: CriteriaTree) -> ComplexityLevel:
    """Level of a population's criteria tree; LOW when it has no root."""
    if tree.root_clause_id is None or tree.root_clause_id not in tree.clauses:
        return ComplexityLevel.LOW
    return calculate_clause_complexity(tree, tree.root_clause_id)
