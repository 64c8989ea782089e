"""Canonical identity, matching, and complexity scoring for measure components."""

from component_engine.complexity import (
    calculate_clause_complexity,
    calculate_component_complexity,
    calculate_data_element_complexity,
    calculate_population_complexity,
    level_for_score,
    recalculate_library_complexity,
)
from component_engine.errors import (
    ComponentEngineError,
    CyclicReferenceError,
    CyclicTreeError,
    InvalidComponentError,
)
from component_engine.identity import (
    are_components_identical,
    component_hash,
    parsed_component_hash,
)
from component_engine.index import ComponentHashIndex, LibrarySnapshot
from component_engine.matching import (
    find_exact_match,
    find_exact_match_prioritize_approved,
    link_measure_elements,
)
from component_engine.similarity import (
    compute_component_diff,
    compute_similarity,
    find_similar_components,
)
from component_engine.validation import (
    validate_measure_components,
    validate_measure_tree,
)

__all__ = [
    "ComponentEngineError",
    "ComponentHashIndex",
    "CyclicReferenceError",
    "CyclicTreeError",
    "InvalidComponentError",
    "LibrarySnapshot",
    "are_components_identical",
    "calculate_clause_complexity",
    "calculate_component_complexity",
    "calculate_data_element_complexity",
    "calculate_population_complexity",
    "component_hash",
    "compute_component_diff",
    "compute_similarity",
    "find_exact_match",
    "find_exact_match_prioritize_approved",
    "find_similar_components",
    "level_for_score",
    "link_measure_elements",
    "parsed_component_hash",
    "recalculate_library_complexity",
    "validate_measure_components",
    "validate_measure_tree",
]
