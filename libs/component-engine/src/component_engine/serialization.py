"""Persistence boundary: JSON-as-text columns and flat component rows.

The repository stores nested sub-structures (codes, child references, tags,
version history, complexity factors) as opaque JSON text. Each field has a
dedicated ``decode_*``/``encode_*`` pair here. A malformed blob is logged
and decodes to an empty default, and the rest of the batch continues. The core
algorithms only ever see validated models.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from component_engine.errors import InvalidComponentError
from component_engine.schemas.components import (
    AtomicComponent,
    CodeReference,
    ComplexityFactors,
    ComponentComplexity,
    ComponentMetadata,
    ComponentReference,
    ComponentUsage,
    ComponentVersionInfo,
    CompositeComponent,
    LibraryComponent,
    TimingExpression,
    ValueSetRef,
    VersionHistoryEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CODES = TypeAdapter(list[CodeReference])
_VALUE_SETS = TypeAdapter(list[ValueSetRef])
_CHILDREN = TypeAdapter(list[ComponentReference])
_STRINGS = TypeAdapter(list[str])
_HISTORY = TypeAdapter(list[VersionHistoryEntry])


def _decode_list(
    text: str | None, adapter: TypeAdapter[list[T]], field: str
) -> list[T]:
    if not text:
        return []
    try:
        return adapter.validate_json(text)
    except ValidationError as e:
        logger.warning(
            "Malformed %s blob, decoding as empty: %s", field, e.errors()[:1]
        )
        return []


def _encode(value: Any, adapter: TypeAdapter[Any]) -> str:
    return adapter.dump_json(value).decode()


# --- Per-field decode/encode ---


def decode_codes(text: str | None) -> list[CodeReference]:
    return _decode_list(text, _CODES, "value_set_codes")


def encode_codes(codes: list[CodeReference]) -> str:
    return _encode(codes, _CODES)


def decode_value_sets(text: str | None) -> list[ValueSetRef]:
    return _decode_list(text, _VALUE_SETS, "additional_value_sets")


def encode_value_sets(value_sets: list[ValueSetRef]) -> str:
    return _encode(value_sets, _VALUE_SETS)


def decode_children(text: str | None) -> list[ComponentReference]:
    return _decode_list(text, _CHILDREN, "children")


def encode_children(children: list[ComponentReference]) -> str:
    return _encode(children, _CHILDREN)


def decode_string_list(text: str | None, field: str = "string list") -> list[str]:
    """Decode tags, measure ids, or parent composite ids."""
    return _decode_list(text, _STRINGS, field)


def encode_string_list(values: list[str]) -> str:
    return _encode(values, _STRINGS)


def decode_version_history(text: str | None) -> list[VersionHistoryEntry]:
    return _decode_list(text, _HISTORY, "version_history")


def encode_version_history(history: list[VersionHistoryEntry]) -> str:
    return _encode(history, _HISTORY)


def decode_complexity_factors(text: str | None) -> ComplexityFactors:
    if not text:
        return ComplexityFactors()
    try:
        factors = ComplexityFactors.model_validate_json(text)
    except ValidationError as e:
        logger.warning(
            "Malformed complexity_factors blob, using defaults: %s", e.errors()[:1]
        )
        return ComplexityFactors()
    if not factors.model_fields_set:
        logger.warning(
            "complexity_factors blob has no recognised keys, using defaults: %.80s",
            text,
        )
    return factors


def encode_complexity_factors(factors: ComplexityFactors) -> str:
    return factors.model_dump_json()


# --- Row conversion ---


def _complexity_from_row(row: Mapping[str, Any]) -> ComponentComplexity | None:
    if row.get("complexity_level") is None or row.get("complexity_score") is None:
        return None
    return ComponentComplexity(
        level=row["complexity_level"],
        score=row["complexity_score"],
        factors=decode_complexity_factors(row.get("complexity_factors")),
    )


def _timing_from_row(row: Mapping[str, Any]) -> TimingExpression | None:
    if not row.get("timing_operator"):
        return None
    return TimingExpression(
        operator=row["timing_operator"],
        quantity=row.get("timing_quantity"),
        unit=row.get("timing_unit"),
        position=row.get("timing_position"),
        reference=row.get("timing_reference"),
        display_expression=row.get("timing_display"),
    )


def component_from_row(row: Mapping[str, Any]) -> LibraryComponent:
    """Build a library component from a flat ``library_component`` row.

    Args:
        row: Column name -> value, JSON sub-structures as text.

    Returns:
        AtomicComponent or CompositeComponent.

    Raises:
        InvalidComponentError: If ``component_type`` is unknown or a scalar
            column holds an invalid value.
    """
    component_type = str(row.get("component_type") or "").strip().lower()
    if component_type not in ("atomic", "composite"):
        raise InvalidComponentError(
            f"Unknown component_type {row.get('component_type')!r} "
            f"for component {row.get('id')!r}"
        )

    try:
        header: dict[str, Any] = {
            "id": row["id"],
            "name": row["name"],
            "description": row.get("description"),
            "complexity": _complexity_from_row(row),
            "version_info": ComponentVersionInfo(
                version_id=row.get("version_id") or "1.0",
                status=row.get("version_status") or "draft",
                version_history=decode_version_history(row.get("version_history")),
                approved_by=row.get("approved_by"),
                approved_at=row.get("approved_at"),
                review_notes=row.get("review_notes"),
            ),
            "usage": ComponentUsage(
                measure_ids=decode_string_list(row.get("measure_ids"), "measure_ids"),
                usage_count=row.get("usage_count") or 0,
                last_used_at=row.get("last_used_at"),
                parent_composite_ids=decode_string_list(
                    row.get("parent_composite_ids"), "parent_composite_ids"
                ),
            ),
            "metadata": ComponentMetadata(
                created_at=row.get("created_at"),
                created_by=row.get("created_by") or "",
                updated_at=row.get("updated_at"),
                updated_by=row.get("updated_by") or "",
                category=row.get("category") or "clinical-observations",
                category_auto_assigned=bool(row.get("category_auto_assigned")),
                tags=decode_string_list(row.get("tags"), "tags"),
                source_origin=row.get("source_origin") or "custom",
                source_reference=row.get("source_reference"),
                original_measure_id=row.get("original_measure_id"),
            ),
        }
        if component_type == "atomic":
            return AtomicComponent(
                **header,
                value_set=ValueSetRef(
                    oid=row.get("value_set_oid"),
                    name=row.get("value_set_name") or "",
                    version=row.get("value_set_version"),
                    codes=decode_codes(row.get("value_set_codes")),
                ),
                additional_value_sets=decode_value_sets(
                    row.get("additional_value_sets")
                ),
                timing=_timing_from_row(row),
                negation=bool(row.get("negation")),
                resource_type=row.get("resource_type"),
                gender_value=row.get("gender_value"),
            )
        return CompositeComponent(
            **header,
            operator=row.get("logical_operator") or "AND",
            children=decode_children(row.get("children")),
        )
    except (KeyError, ValidationError) as e:
        raise InvalidComponentError(
            f"Invalid library_component row {row.get('id')!r}: {e}"
        ) from e


def component_to_row(component: LibraryComponent) -> dict[str, Any]:
    """Flatten a component into ``library_component`` columns."""
    complexity = component.complexity
    version = component.version_info
    usage = component.usage
    meta = component.metadata
    row: dict[str, Any] = {
        "id": component.id,
        "component_type": component.type,
        "name": component.name,
        "description": component.description,
        "complexity_level": complexity.level.value if complexity else None,
        "complexity_score": complexity.score if complexity else None,
        "complexity_factors": (
            encode_complexity_factors(complexity.factors) if complexity else None
        ),
        "version_id": version.version_id,
        "version_status": version.status.value,
        "version_history": encode_version_history(version.version_history),
        "approved_by": version.approved_by,
        "approved_at": version.approved_at,
        "review_notes": version.review_notes,
        "measure_ids": encode_string_list(usage.measure_ids),
        "usage_count": usage.usage_count,
        "last_used_at": usage.last_used_at,
        "parent_composite_ids": encode_string_list(usage.parent_composite_ids),
        "category": meta.category.value,
        "category_auto_assigned": meta.category_auto_assigned,
        "tags": encode_string_list(meta.tags),
        "source_origin": meta.source_origin,
        "source_reference": meta.source_reference,
        "original_measure_id": meta.original_measure_id,
        "created_at": meta.created_at,
        "created_by": meta.created_by,
        "updated_at": meta.updated_at,
        "updated_by": meta.updated_by,
    }
    if isinstance(component, AtomicComponent):
        timing = component.timing
        row.update(
            {
                "value_set_oid": component.value_set.oid,
                "value_set_name": component.value_set.name,
                "value_set_version": component.value_set.version,
                "value_set_codes": encode_codes(component.value_set.codes),
                "additional_value_sets": encode_value_sets(
                    component.additional_value_sets
                ),
                "timing_operator": timing.operator.value if timing else None,
                "timing_quantity": timing.quantity if timing else None,
                "timing_unit": timing.unit if timing else None,
                "timing_position": timing.position if timing else None,
                "timing_reference": timing.reference if timing else None,
                "timing_display": timing.display_expression if timing else None,
                "negation": component.negation,
                "resource_type": component.resource_type,
                "gender_value": component.gender_value,
            }
        )
    elif isinstance(component, CompositeComponent):
        row.update(
            {
                "logical_operator": component.operator.value,
                "children": encode_children(component.children),
            }
        )
    else:
        raise InvalidComponentError(
            f"Unknown component variant: {type(component).__name__}"
        )
    return row
