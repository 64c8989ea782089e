"""Pydantic schemas for library components and transient match candidates.

A library component is a tagged union discriminated on ``type``:

1. AtomicComponent: one value set, optional timing, optional negation.
2. CompositeComponent: AND/OR/NOT over references to other components.

ParsedComponent is the shape of a candidate produced by an import/link
collaborator before it is matched against the library. It never carries a
library id.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Enums ---


class ApprovalStatus(str, Enum):
    """Review lifecycle of a library component version."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    ARCHIVED = "archived"


class ComplexityLevel(str, Enum):
    """Bucketed complexity level derived from a numeric score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LogicalOperator(str, Enum):
    """Boolean operator joining composite children or clause members."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class TimingOperator(str, Enum):
    """Temporal relationship between an event and its reference period."""

    DURING = "during"
    BEFORE = "before"
    AFTER = "after"
    STARTS_DURING = "starts during"
    ENDS_DURING = "ends during"
    STARTS_BEFORE = "starts before"
    STARTS_AFTER = "starts after"
    ENDS_BEFORE = "ends before"
    ENDS_AFTER = "ends after"
    WITHIN = "within"
    OVERLAPS = "overlaps"
    BEFORE_END_OF = "before end of"
    AFTER_START_OF = "after start of"


class ComponentCategory(str, Enum):
    """Browsing category of a library component."""

    DEMOGRAPHICS = "demographics"
    ENCOUNTERS = "encounters"
    CONDITIONS = "conditions"
    PROCEDURES = "procedures"
    MEDICATIONS = "medications"
    ASSESSMENTS = "assessments"
    LABORATORY = "laboratory"
    CLINICAL_OBSERVATIONS = "clinical-observations"
    EXCLUSIONS = "exclusions"


TimingUnit = Literal["years", "months", "days", "hours"]
SourceOrigin = Literal["ecqi", "custom", "imported"]
GenderValue = Literal["male", "female"]

# JSON-as-text blobs may carry camelCase keys; both spellings decode.
_BLOB_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# --- Value sets and timing ---


class CodeReference(BaseModel):
    """A single code in a value set expansion."""

    model_config = _BLOB_CONFIG

    code: str
    system: str
    display: str | None = None
    version: str | None = None


class ValueSetRef(BaseModel):
    """Reference to a value set by OID. Codes are informational only."""

    model_config = _BLOB_CONFIG

    oid: str | None = Field(
        default=None,
        description="Value set OID. None when the value set is unidentified.",
    )
    name: str = ""
    version: str | None = None
    codes: list[CodeReference] = Field(default_factory=list)


class TimingExpression(BaseModel):
    """Timing constraint, e.g. 'within 10 years before end of Measurement Period'."""

    operator: TimingOperator
    quantity: int | None = None
    unit: TimingUnit | None = None
    position: str | None = Field(
        default=None,
        description="Anchor within the reference, e.g. 'before end of'.",
    )
    reference: str | None = Field(
        default=None,
        description="Reference period, e.g. 'Measurement Period'.",
    )
    display_expression: str | None = Field(
        default=None,
        description="Cached human-readable rendering. Not part of identity.",
    )


# --- Complexity ---


class ComplexityFactors(BaseModel):
    """Additive contributions that make up a complexity score."""

    model_config = _BLOB_CONFIG

    base: int = 0
    timing_clauses: int = 0
    negations: int = 0
    children_sum: int = 0
    and_operators: int = 0
    nesting_depth: int = 0
    zero_codes: bool = False

    def total(self) -> int:
        """Recompute the score these factors describe."""
        raw = (
            self.base
            + self.timing_clauses
            + 2 * self.negations
            + self.children_sum
            + self.and_operators
            + 2 * self.nesting_depth
        )
        if self.zero_codes:
            return max(raw, 4)
        return raw


class ComponentComplexity(BaseModel):
    """Cached complexity result stored on a component."""

    level: ComplexityLevel
    score: int = Field(ge=0)
    factors: ComplexityFactors = Field(default_factory=ComplexityFactors)


# --- Versioning, usage, metadata ---


class VersionHistoryEntry(BaseModel):
    model_config = _BLOB_CONFIG

    version_id: str
    status: ApprovalStatus
    created_at: datetime
    created_by: str
    change_description: str = ""
    superseded_by: str | None = None


class ComponentVersionInfo(BaseModel):
    version_id: str = "1.0"
    status: ApprovalStatus = ApprovalStatus.DRAFT
    version_history: list[VersionHistoryEntry] = Field(default_factory=list)
    approved_by: str | None = None
    approved_at: datetime | None = None
    review_notes: str | None = None


class ComponentUsage(BaseModel):
    measure_ids: list[str] = Field(default_factory=list)
    usage_count: int = 0
    last_used_at: datetime | None = None
    parent_composite_ids: list[str] = Field(default_factory=list)


class ComponentMetadata(BaseModel):
    created_at: datetime | None = None
    created_by: str = ""
    updated_at: datetime | None = None
    updated_by: str = ""
    category: ComponentCategory = ComponentCategory.CLINICAL_OBSERVATIONS
    category_auto_assigned: bool = False
    tags: list[str] = Field(default_factory=list)
    source_origin: SourceOrigin = "custom"
    source_reference: str | None = None
    original_measure_id: str | None = None


# --- Library components ---


class ComponentReference(BaseModel):
    """Reference from a composite to one of its children."""

    model_config = _BLOB_CONFIG

    component_id: str
    version_id: str | None = None
    display_name: str = ""


class _ComponentBase(BaseModel):
    id: str
    name: str
    description: str | None = None
    complexity: ComponentComplexity | None = None
    version_info: ComponentVersionInfo = Field(default_factory=ComponentVersionInfo)
    usage: ComponentUsage = Field(default_factory=ComponentUsage)
    metadata: ComponentMetadata = Field(default_factory=ComponentMetadata)

    @property
    def status(self) -> ApprovalStatus:
        return self.version_info.status

    @property
    def is_archived(self) -> bool:
        return self.version_info.status == ApprovalStatus.ARCHIVED

    @property
    def is_approved(self) -> bool:
        return self.version_info.status == ApprovalStatus.APPROVED


class AtomicComponent(_ComponentBase):
    """Single-value-set clinical criterion."""

    type: Literal["atomic"] = "atomic"
    value_set: ValueSetRef = Field(default_factory=ValueSetRef)
    additional_value_sets: list[ValueSetRef] = Field(default_factory=list)
    timing: TimingExpression | None = None
    negation: bool = False
    resource_type: str | None = Field(
        default=None,
        description="FHIR resource type, e.g. 'Encounter' or 'Patient'.",
    )
    gender_value: GenderValue | None = None


class CompositeComponent(_ComponentBase):
    """Boolean combination of other library components."""

    type: Literal["composite"] = "composite"
    operator: LogicalOperator = LogicalOperator.AND
    children: list[ComponentReference] = Field(default_factory=list)


LibraryComponent = Annotated[
    AtomicComponent | CompositeComponent, Field(discriminator="type")
]


# --- Match candidates ---


class ParsedComponent(BaseModel):
    """Candidate component awaiting a library match.

    Composite iff ``children`` is non-empty; ``operator`` then defaults to AND.
    """

    name: str = ""
    value_set_oid: str | None = None
    value_set_name: str | None = None
    timing: TimingExpression | None = None
    negation: bool = False
    operator: LogicalOperator | None = None
    children: list[ParsedComponent] = Field(default_factory=list)

    @property
    def is_composite(self) -> bool:
        return bool(self.children)
