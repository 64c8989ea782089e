"""Library component lifecycle: creation, versioning, approval, usage, search.

Every function returns a new model and leaves its input untouched; the
repository collaborator persists the result and feeds it to the hash index.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from component_engine.categories import infer_category
from component_engine.complexity import (
    calculate_atomic_complexity,
    calculate_composite_complexity,
)
from component_engine.schemas.components import (
    ApprovalStatus,
    AtomicComponent,
    ComplexityLevel,
    ComponentCategory,
    ComponentMetadata,
    ComponentReference,
    ComponentVersionInfo,
    CompositeComponent,
    GenderValue,
    LibraryComponent,
    LogicalOperator,
    SourceOrigin,
    TimingExpression,
    ValueSetRef,
    VersionHistoryEntry,
)

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0"

SortField = Literal["name", "complexity", "usage", "status", "date"]


class ComponentChanges(BaseModel):
    """Edits applied when creating a new component version."""

    change_description: str
    name: str | None = None
    description: str | None = None
    timing: TimingExpression | None = None
    negation: bool | None = None
    operator: LogicalOperator | None = None
    children: list[ComponentReference] | None = None


class LibraryFilters(BaseModel):
    """Library browser filters."""

    category: ComponentCategory | None = None
    statuses: list[ApprovalStatus] = Field(default_factory=list)
    complexities: list[ComplexityLevel] = Field(default_factory=list)
    show_archived: bool = False
    search_query: str = ""
    sort_by: SortField = "name"
    sort_direction: Literal["asc", "desc"] = "asc"
    usage_sort: Literal["asc", "desc"] | None = Field(
        default=None,
        description="When set, sort by usage count and ignore sort_by.",
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _initial_version_info(
    created_by: str, created_at: datetime
) -> ComponentVersionInfo:
    return ComponentVersionInfo(
        version_id=INITIAL_VERSION,
        status=ApprovalStatus.DRAFT,
        version_history=[
            VersionHistoryEntry(
                version_id=INITIAL_VERSION,
                status=ApprovalStatus.DRAFT,
                created_at=created_at,
                created_by=created_by,
                change_description="Initial version",
            )
        ],
    )


def _initial_metadata(
    category: ComponentCategory | None,
    tags: list[str] | None,
    created_by: str,
    created_at: datetime,
    source_origin: SourceOrigin,
) -> ComponentMetadata:
    return ComponentMetadata(
        created_at=created_at,
        created_by=created_by,
        updated_at=created_at,
        updated_by=created_by,
        category=category or ComponentCategory.CLINICAL_OBSERVATIONS,
        tags=list(tags or []),
        source_origin=source_origin,
    )


def _with_inferred_category(
    component: LibraryComponent, category: ComponentCategory | None
) -> LibraryComponent:
    if category is not None:
        return component
    metadata = component.metadata.model_copy(
        update={
            "category": infer_category(component),
            "category_auto_assigned": True,
        }
    )
    return component.model_copy(update={"metadata": metadata})


# --- Creation ---


def create_atomic_component(
    name: str,
    value_set: ValueSetRef,
    timing: TimingExpression | None = None,
    negation: bool = False,
    *,
    description: str | None = None,
    additional_value_sets: list[ValueSetRef] | None = None,
    category: ComponentCategory | None = None,
    tags: list[str] | None = None,
    resource_type: str | None = None,
    gender_value: GenderValue | None = None,
    created_by: str = "user",
    source_origin: SourceOrigin = "custom",
) -> AtomicComponent:
    """Create a draft atomic component with computed complexity.

    The category is inferred (and flagged as auto-assigned) when not given.
    """
    now = _now()
    component = AtomicComponent(
        id=f"atomic-{uuid4()}",
        name=name,
        description=description,
        value_set=value_set,
        additional_value_sets=list(additional_value_sets or []),
        timing=timing,
        negation=negation,
        resource_type=resource_type,
        gender_value=gender_value,
        version_info=_initial_version_info(created_by, now),
        metadata=_initial_metadata(category, tags, created_by, now, source_origin),
    )
    component.complexity = calculate_atomic_complexity(component)
    return _with_inferred_category(component, category)


def create_composite_component(
    name: str,
    operator: LogicalOperator,
    children: list[ComponentReference],
    components: Mapping[str, LibraryComponent],
    *,
    description: str | None = None,
    category: ComponentCategory | None = None,
    tags: list[str] | None = None,
    created_by: str = "user",
    source_origin: SourceOrigin = "custom",
) -> CompositeComponent:
    """Create a draft composite; complexity uses the children's cached scores."""
    now = _now()
    component = CompositeComponent(
        id=f"composite-{uuid4()}",
        name=name,
        description=description,
        operator=operator,
        children=list(children),
        version_info=_initial_version_info(created_by, now),
        metadata=_initial_metadata(category, tags, created_by, now, source_origin),
    )
    component.complexity = calculate_composite_complexity(component, components)
    return _with_inferred_category(component, category)


# --- Versioning and approval ---


def _next_version_id(version_id: str) -> str:
    try:
        current = float(version_id)
    except ValueError:
        logger.warning("Unparseable version id %r, restarting at 1.0", version_id)
        current = 0.9
    return f"{current + 0.1:.1f}"


def create_new_version(
    component: LibraryComponent,
    changes: ComponentChanges,
    updated_by: str,
    components: Mapping[str, LibraryComponent] | None = None,
) -> LibraryComponent:
    """Apply edits as a new draft version (version id + 0.1).

    Complexity is recomputed for atomics, and for composites when
    ``components`` is supplied to resolve the children.
    """
    now = _now()
    new_version_id = _next_version_id(component.version_info.version_id)
    version_info = ComponentVersionInfo(
        version_id=new_version_id,
        status=ApprovalStatus.DRAFT,
        version_history=[
            *component.version_info.version_history,
            VersionHistoryEntry(
                version_id=new_version_id,
                status=ApprovalStatus.DRAFT,
                created_at=now,
                created_by=updated_by,
                change_description=changes.change_description,
            ),
        ],
    )
    metadata = component.metadata.model_copy(
        update={"updated_at": now, "updated_by": updated_by}
    )

    update: dict[str, object] = {"version_info": version_info, "metadata": metadata}
    if changes.name is not None:
        update["name"] = changes.name
    if changes.description is not None:
        update["description"] = changes.description

    if isinstance(component, AtomicComponent):
        if changes.timing is not None:
            update["timing"] = changes.timing
        if changes.negation is not None:
            update["negation"] = changes.negation
        updated = component.model_copy(update=update)
        updated.complexity = calculate_atomic_complexity(updated)
        return updated

    if changes.operator is not None:
        update["operator"] = changes.operator
    if changes.children is not None:
        update["children"] = list(changes.children)
    updated = component.model_copy(update=update)
    if components is not None:
        updated.complexity = calculate_composite_complexity(updated, components)
    return updated


def _set_current_history_status(
    version_info: ComponentVersionInfo,
    status: ApprovalStatus,
    superseded_by: str | None = None,
) -> list[VersionHistoryEntry]:
    history = []
    for entry in version_info.version_history:
        if entry.version_id == version_info.version_id:
            changes: dict[str, object] = {"status": status}
            if superseded_by is not None:
                changes["superseded_by"] = superseded_by
            entry = entry.model_copy(update=changes)
        history.append(entry)
    return history


def approve_component(
    component: LibraryComponent, approved_by: str
) -> LibraryComponent:
    now = _now()
    version_info = component.version_info.model_copy(
        update={
            "status": ApprovalStatus.APPROVED,
            "approved_by": approved_by,
            "approved_at": now,
            "version_history": _set_current_history_status(
                component.version_info, ApprovalStatus.APPROVED
            ),
        }
    )
    metadata = component.metadata.model_copy(
        update={"updated_at": now, "updated_by": approved_by}
    )
    return component.model_copy(
        update={"version_info": version_info, "metadata": metadata}
    )


def archive_component(
    component: LibraryComponent, superseded_by: str | None = None
) -> LibraryComponent:
    """Archive the current version; it stays resolvable as a composite child."""
    version_info = component.version_info.model_copy(
        update={
            "status": ApprovalStatus.ARCHIVED,
            "version_history": _set_current_history_status(
                component.version_info, ApprovalStatus.ARCHIVED, superseded_by
            ),
        }
    )
    metadata = component.metadata.model_copy(update={"updated_at": _now()})
    return component.model_copy(
        update={"version_info": version_info, "metadata": metadata}
    )


# --- Usage tracking ---


def add_usage_reference(
    component: LibraryComponent, measure_id: str
) -> LibraryComponent:
    if measure_id in component.usage.measure_ids:
        return component
    usage = component.usage.model_copy(
        update={
            "measure_ids": [*component.usage.measure_ids, measure_id],
            "usage_count": component.usage.usage_count + 1,
            "last_used_at": _now(),
        }
    )
    return component.model_copy(update={"usage": usage})


def remove_usage_reference(
    component: LibraryComponent, measure_id: str
) -> LibraryComponent:
    if measure_id not in component.usage.measure_ids:
        return component
    usage = component.usage.model_copy(
        update={
            "measure_ids": [m for m in component.usage.measure_ids if m != measure_id],
            "usage_count": max(0, component.usage.usage_count - 1),
        }
    )
    return component.model_copy(update={"usage": usage})


# --- Search ---


def _matches_query(component: LibraryComponent, query: str) -> bool:
    if query in component.name.lower():
        return True
    if component.description and query in component.description.lower():
        return True
    if any(query in tag.lower() for tag in component.metadata.tags):
        return True
    if isinstance(component, AtomicComponent):
        if component.value_set.oid and query in component.value_set.oid.lower():
            return True
        if query in component.value_set.name.lower():
            return True
    return False


def _sort_key(component: LibraryComponent, filters: LibraryFilters) -> object:
    if filters.usage_sort is not None:
        return component.usage.usage_count
    if filters.sort_by == "complexity":
        return component.complexity.score if component.complexity else 0
    if filters.sort_by == "usage":
        return component.usage.usage_count
    if filters.sort_by == "status":
        return component.status.value
    if filters.sort_by == "date":
        created = component.metadata.created_at
        return created.timestamp() if created else 0.0
    return component.name.lower()


def search_components(
    components: Iterable[LibraryComponent], filters: LibraryFilters
) -> list[LibraryComponent]:
    """Filter and sort components for the library browser.

    Archived components are hidden unless ``show_archived`` is set, and are
    always listed after non-archived ones.
    """
    result = list(components)
    if filters.category is not None:
        result = [c for c in result if c.metadata.category == filters.category]
    if filters.statuses:
        result = [c for c in result if c.status in filters.statuses]
    if filters.complexities:
        result = [
            c
            for c in result
            if c.complexity is not None and c.complexity.level in filters.complexities
        ]
    if not filters.show_archived:
        result = [c for c in result if not c.is_archived]

    query = filters.search_query.strip().lower()
    if query:
        result = [c for c in result if _matches_query(c, query)]

    descending = (filters.usage_sort or filters.sort_direction) == "desc"
    result.sort(key=lambda c: _sort_key(c, filters), reverse=descending)
    # Stable second pass keeps archived components last in either direction
    result.sort(key=lambda c: c.is_archived)
    return result
