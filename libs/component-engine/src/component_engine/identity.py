"""Canonical identity keys and content hashes for library components.

Two components are interchangeable for reuse iff their content hashes are
equal. The hash never depends on ``id``, display names, value set names, or
the code expansion of a value set; it covers only:

- atomic: value set OID, timing (operator, quantity, unit, position,
  reference) and negation;
- composite: operator plus the sorted hashes of its children.

The canonical serialization is compact JSON with a fixed key order. Missing
values serialize as ``null`` so that "absent" and "empty string" never
collide silently. The hash is a 32-bit djb2 variant over UTF-16 code units,
rendered as 8 lowercase hex digits, so that identities agree bit-for-bit
with other clients that hash the same serialization.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from component_engine.errors import CyclicReferenceError, InvalidComponentError
from component_engine.schemas.components import (
    AtomicComponent,
    CompositeComponent,
    LibraryComponent,
    LogicalOperator,
    ParsedComponent,
    TimingExpression,
)

logger = logging.getLogger(__name__)

_HASH_SEED = 5381
_HASH_MASK = 0xFFFFFFFF
MISSING_CHILD_PREFIX = "missing:"


def djb2_hash(text: str) -> str:
    """Hash text with djb2 (seed 5381, ``h = h * 33 + c``) masked to 32 bits.

    Iterates over UTF-16 code units rather than code points so characters
    outside the BMP contribute their surrogate pair. Lone surrogates hash as
    their own code unit.
    """
    value = _HASH_SEED
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        value = (value * 33 + code_unit) & _HASH_MASK
    return f"{value:08x}"


def canonical_json(key: Mapping[str, Any]) -> str:
    """Serialize an identity key compactly, preserving its insertion order."""
    return json.dumps(key, separators=(",", ":"), ensure_ascii=False)


# --- Identity keys ---


def _timing_fields(timing: TimingExpression | None) -> dict[str, Any]:
    if timing is None:
        return {
            "timingOperator": None,
            "timingQuantity": None,
            "timingUnit": None,
            "timingPosition": None,
            "timingReference": None,
        }
    return {
        "timingOperator": timing.operator.value,
        "timingQuantity": timing.quantity,
        "timingUnit": timing.unit,
        "timingPosition": timing.position,
        "timingReference": timing.reference,
    }


def atomic_identity_key(source: AtomicComponent | ParsedComponent) -> dict[str, Any]:
    """Build the ordered identity key of an atomic component or atomic candidate."""
    if isinstance(source, AtomicComponent):
        oid = source.value_set.oid
    else:
        oid = source.value_set_oid
    return {
        "oid": oid,
        **_timing_fields(source.timing),
        "negation": bool(source.negation),
    }


def composite_identity_key(
    operator: LogicalOperator | None, child_hashes: list[str]
) -> dict[str, Any]:
    """Build the identity key of a composite from its children's hashes."""
    op = operator or LogicalOperator.AND
    return {"operator": op.value, "children": sorted(child_hashes)}


# --- Hashing ---


def component_hash(
    component: LibraryComponent,
    components: Mapping[str, LibraryComponent],
    memo: dict[str, str] | None = None,
) -> str:
    """Compute the content hash of a library component.

    Args:
        component: Atomic or composite library component.
        components: Every resolvable component by id, archived ones included.
            Composite children are looked up here.
        memo: Optional id -> hash cache shared across calls. Only components
            that are the same object as ``components[id]`` are cached.

    Returns:
        8 lowercase hex digits.

    Raises:
        InvalidComponentError: If the component is neither atomic nor composite.
        CyclicReferenceError: If composite children form a cycle.
    """
    return _hash_library(component, components, memo if memo is not None else {}, [])


def _hash_library(
    component: LibraryComponent,
    components: Mapping[str, LibraryComponent],
    memo: dict[str, str],
    path: list[str],
) -> str:
    cacheable = components.get(component.id) is component
    if cacheable and component.id in memo:
        return memo[component.id]

    if isinstance(component, AtomicComponent):
        key = atomic_identity_key(component)
    elif isinstance(component, CompositeComponent):
        if component.id in path:
            raise CyclicReferenceError(component.id, path)
        child_path = [*path, component.id]
        child_hashes = []
        for ref in component.children:
            child = components.get(ref.component_id)
            if child is None:
                logger.debug(
                    "Composite %s references missing child %s",
                    component.id,
                    ref.component_id,
                )
                child_hashes.append(f"{MISSING_CHILD_PREFIX}{ref.component_id}")
            else:
                child_hashes.append(_hash_library(child, components, memo, child_path))
        key = composite_identity_key(component.operator, child_hashes)
    else:
        raise InvalidComponentError(
            f"Unknown component variant: {type(component).__name__}"
        )

    digest = djb2_hash(canonical_json(key))
    if cacheable:
        memo[component.id] = digest
    return digest


def parsed_component_hash(candidate: ParsedComponent) -> str:
    """Compute the content hash of a candidate; children are hashed directly."""
    if candidate.is_composite:
        child_hashes = [parsed_component_hash(child) for child in candidate.children]
        key = composite_identity_key(candidate.operator, child_hashes)
    else:
        key = atomic_identity_key(candidate)
    return djb2_hash(canonical_json(key))


def are_components_identical(
    a: LibraryComponent,
    b: LibraryComponent,
    components: Mapping[str, LibraryComponent],
) -> bool:
    """True when two library components share a content hash."""
    return component_hash(a, components) == component_hash(b, components)


# --- Display helpers ---


def format_timing(timing: TimingExpression | None) -> str:
    """Render timing as e.g. 'within 10 years before end of Measurement Period'."""
    if timing is None:
        return ""
    if timing.display_expression:
        return timing.display_expression
    parts: list[str] = []
    if timing.operator.value != timing.position:
        parts.append(timing.operator.value)
    if timing.quantity is not None:
        parts.append(f"{timing.quantity} {timing.unit or ''}".strip())
    if timing.position:
        parts.append(timing.position)
    if timing.reference:
        parts.append(timing.reference)
    return " ".join(parts)


def readable_identity(
    component: LibraryComponent, components: Mapping[str, LibraryComponent]
) -> str:
    """Human-readable summary of what a component's identity covers."""
    if isinstance(component, AtomicComponent):
        parts: list[str] = []
        if component.negation:
            parts.append("NOT")
        label = component.value_set.name or component.name
        parts.append(f"{label} ({component.value_set.oid or 'no OID'})")
        timing_text = format_timing(component.timing)
        if timing_text:
            parts.append(timing_text)
        return " ".join(parts)
    if isinstance(component, CompositeComponent):
        names = []
        for ref in component.children:
            child = components.get(ref.component_id)
            names.append(
                ref.display_name or (child.name if child else ref.component_id)
            )
        return f"{component.operator.value}({', '.join(names)})"
    raise InvalidComponentError(
        f"Unknown component variant: {type(component).__name__}"
    )
