"""Exact matching of candidate components against a library snapshot.

Strategies, in order of preference:

1. Hash-exact: candidate hash equals a library component hash.
2. Structural composite: same operator and child count, library children all
   resolve to atomics whose sorted hashes equal the candidate's sorted child
   hashes. Catches composites assembled from different child records built
   on identical atomics.
3. Name fallback (atomic candidates only): normalized value set name plus
   equal timing operator, timing reference, and negation.

Only non-archived components are match targets. Children of a library
composite resolve against the full snapshot, archived components included.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

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
    TimingOperator,
)
from component_engine.schemas.criteria import DataElement
from component_engine.schemas.results import (
    ApprovedMatchResult,
    ElementLinkResult,
    MatchResult,
    MatchType,
)

logger = logging.getLogger(__name__)

_VALUE_SET_SUFFIX_RE = re.compile(r"\s+value\s*set$")
_WHITESPACE_RE = re.compile(r"\s+")
_NEGATION_PHRASES = ("absence of", "without")

# --- Name normalization ---


def normalize_value_set_name(name: str) -> str:
    """Lowercase, trim, drop a trailing 'value set' suffix, collapse whitespace.

    Example: '  Office  Visit Value Set ' -> 'office visit'.
    """
    text = name.lower().strip()
    text = _VALUE_SET_SUFFIX_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text)


# --- Structural matching ---


def match_composite_by_children(
    candidate: ParsedComponent,
    composite: CompositeComponent,
    snapshot: LibrarySnapshot,
) -> bool:
    """True when a library composite is built from the candidate's child atomics."""
    if not candidate.is_composite:
        return False
    if (candidate.operator or LogicalOperator.AND) != composite.operator:
        return False
    if len(candidate.children) != len(composite.children):
        return False

    library_hashes: list[str] = []
    for ref in composite.children:
        child = snapshot.get(ref.component_id)
        if not isinstance(child, AtomicComponent):
            # Dangling or nested-composite children never match structurally
            return False
        library_hashes.append(snapshot.hash_of(child))

    candidate_hashes = [parsed_component_hash(c) for c in candidate.children]
    return sorted(library_hashes) == sorted(candidate_hashes)


def _matches_exactly(
    candidate: ParsedComponent,
    candidate_hash: str,
    component: LibraryComponent,
    snapshot: LibrarySnapshot,
) -> MatchType | None:
    component_hash = snapshot.try_hash_of(component)
    if component_hash is None:
        return None
    if component_hash == candidate_hash:
        return "hash"
    if candidate.is_composite and isinstance(component, CompositeComponent):
        if match_composite_by_children(candidate, component, snapshot):
            return "structural"
    return None


# --- Name fallback ---


def _timing_signature(timing: TimingExpression | None) -> tuple[str, str]:
    config = get_config()
    if timing is None:
        return config.default_timing_operator, config.default_timing_reference
    return timing.operator.value, timing.reference or config.default_timing_reference


def find_name_match(
    candidate: ParsedComponent, snapshot: LibrarySnapshot
) -> LibraryComponent | None:
    """Fallback match on normalized value set name, timing, and negation."""
    if candidate.is_composite:
        return None
    raw_name = candidate.value_set_name or candidate.name
    if not raw_name:
        return None
    wanted = normalize_value_set_name(raw_name)
    if not wanted:
        return None
    wanted_timing = _timing_signature(candidate.timing)

    for component in snapshot.eligible():
        if not isinstance(component, AtomicComponent):
            continue
        if not component.value_set.name:
            continue
        if normalize_value_set_name(component.value_set.name) != wanted:
            continue
        if (
            _timing_signature(component.timing) == wanted_timing
            and component.negation == candidate.negation
        ):
            return component
    return None


# --- Public match API ---


def find_exact_match(
    candidate: ParsedComponent, snapshot: LibrarySnapshot
) -> MatchResult:
    """Find an exact match: hash, then structural composite, then name fallback."""
    candidate_hash = parsed_component_hash(candidate)

    for component_id in snapshot.ids_for_hash(candidate_hash):
        return MatchResult(component_id=component_id, match_type="hash")

    if candidate.is_composite:
        for component in snapshot.eligible():
            if not isinstance(component, CompositeComponent):
                continue
            if match_composite_by_children(candidate, component, snapshot):
                return MatchResult(component_id=component.id, match_type="structural")

    named = find_name_match(candidate, snapshot)
    if named is not None:
        return MatchResult(component_id=named.id, match_type="name")
    return MatchResult()


def find_approved_by_oid(
    oid: str | None, snapshot: LibrarySnapshot
) -> AtomicComponent | None:
    """First approved, non-archived atomic with the given value set OID."""
    if not oid:
        return None
    for component in snapshot.eligible():
        if (
            isinstance(component, AtomicComponent)
            and component.is_approved
            and component.value_set.oid == oid
        ):
            return component
    return None


def find_exact_match_prioritize_approved(
    candidate: ParsedComponent, snapshot: LibrarySnapshot
) -> ApprovedMatchResult:
    """Exact match that prefers approved components.

    Scans once. The first approved hash/structural match wins immediately.
    Otherwise the first non-approved match is returned together with an
    approved atomic sharing the candidate's OID (timing ignored), if any.
    Falls back to name matching, reporting that match's approval status.
    """
    candidate_hash = parsed_component_hash(candidate)
    first_match: LibraryComponent | None = None
    first_type: MatchType | None = None

    for component in snapshot.eligible():
        match_type = _matches_exactly(candidate, candidate_hash, component, snapshot)
        if match_type is None:
            continue
        if component.is_approved:
            return ApprovedMatchResult(
                match_id=component.id, is_approved=True, match_type=match_type
            )
        if first_match is None:
            first_match, first_type = component, match_type

    if first_match is not None:
        alternate = find_approved_by_oid(candidate.value_set_oid, snapshot)
        return ApprovedMatchResult(
            match_id=first_match.id,
            is_approved=False,
            alternate_approved_id=alternate.id if alternate else None,
            match_type=first_type,
        )

    named = find_name_match(candidate, snapshot)
    if named is not None:
        return ApprovedMatchResult(
            match_id=named.id, is_approved=named.is_approved, match_type="name"
        )
    return ApprovedMatchResult()


# --- Batch linking ---


def _has_negation_wording(description: str) -> bool:
    lowered = description.lower()
    return any(phrase in lowered for phrase in _NEGATION_PHRASES)


def _timing_from_element(element: DataElement) -> TimingExpression:
    config = get_config()
    window = element.timing_window
    if window is not None:
        if window.direction == "before":
            position = "before end of"
        else:
            position = "after start of"
        return TimingExpression(
            operator=TimingOperator.WITHIN,
            quantity=window.value,
            unit=window.unit,
            position=position,
            reference=config.default_timing_reference,
        )
    return TimingExpression(
        operator=TimingOperator(config.default_timing_operator),
        reference=config.default_timing_reference,
    )


def parse_data_element_to_component(element: DataElement) -> ParsedComponent | None:
    """Build an atomic candidate from a measure data element.

    Returns None when the element has no value set with an OID.
    """
    value_set = next((vs for vs in element.value_sets if vs.oid), None)
    if value_set is None:
        return None
    return ParsedComponent(
        name=element.description or value_set.name,
        value_set_oid=value_set.oid,
        value_set_name=value_set.name or None,
        timing=_timing_from_element(element),
        negation=element.negation or _has_negation_wording(element.description),
    )


def link_measure_elements(
    elements: Iterable[DataElement], snapshot: LibrarySnapshot
) -> list[ElementLinkResult]:
    """Match every element of a measure against one library snapshot.

    Args:
        elements: Data elements to link, typically a flattened criteria tree.
        snapshot: Library view shared by the whole batch.

    Returns:
        One ElementLinkResult per element, in input order.
    """
    results: list[ElementLinkResult] = []
    linked = 0
    for element in elements:
        candidate = parse_data_element_to_component(element)
        if candidate is None:
            logger.debug("Element %s has no value set OID; not linked", element.id)
            results.append(
                ElementLinkResult(element_id=element.id, skipped_reason="no_value_set")
            )
            continue
        match = find_exact_match_prioritize_approved(candidate, snapshot)
        if match.match_id is not None:
            linked += 1
        results.append(
            ElementLinkResult(
                element_id=element.id,
                match_id=match.match_id,
                is_approved=match.is_approved,
                alternate_approved_id=match.alternate_approved_id,
                match_type=match.match_type,
            )
        )
    logger.info(
        "Linked %d/%d measure elements to library components", linked, len(results)
    )
    return results
