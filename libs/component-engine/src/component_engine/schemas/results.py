"""Result models returned by matching, diffing, validation, and integrity checks."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

MatchType = Literal["hash", "structural", "name"]

# --- Matching ---


class MatchResult(BaseModel):
    """Outcome of an exact match lookup."""

    component_id: str | None = None
    match_type: MatchType | None = None

    @property
    def matched(self) -> bool:
        return self.component_id is not None


class ApprovedMatchResult(BaseModel):
    """Exact match that prefers approved components.

    ``alternate_approved_id`` is only set when the match itself is not
    approved but an approved atomic with the same value set OID exists.
    """

    match_id: str | None = None
    is_approved: bool = False
    alternate_approved_id: str | None = None
    match_type: MatchType | None = None


class ComponentDiff(BaseModel):
    """Single field-level difference between a library component and a candidate."""

    field: str
    expected: str = Field(description="Value on the library component.")
    actual: str = Field(description="Value on the incoming candidate.")
    description: str


class ComponentMatch(BaseModel):
    """Near-match returned by similarity search."""

    matched_component_id: str
    score: float = Field(ge=0.0, le=1.0)
    diffs: list[ComponentDiff] = Field(default_factory=list)


class ElementLinkResult(BaseModel):
    """Batch link outcome for one measure data element."""

    element_id: str
    match_id: str | None = None
    is_approved: bool = False
    alternate_approved_id: str | None = None
    match_type: MatchType | None = None
    skipped_reason: str | None = Field(
        default=None,
        description="Why no candidate could be built (e.g. no value set OID).",
    )


# --- Usage validation ---


class ElementLink(BaseModel):
    """Flattened measure element as seen by usage validation."""

    id: str
    description: str = ""
    library_component_id: str | None = None
    value_set_oid: str | None = None


WarningType = Literal["approved_available", "unapproved_component", "no_library_match"]


class ValidationWarning(BaseModel):
    element_id: str
    element_description: str
    type: WarningType
    message: str
    suggested_component_id: str | None = None
    suggested_component_name: str | None = None


class ValidationResult(BaseModel):
    """Audit of a measure's element links against the library."""

    is_valid: bool
    total_elements: int
    linked_to_approved: int
    linked_to_draft: int
    unlinked: int
    warnings: list[ValidationWarning] = Field(default_factory=list)


# --- Referential integrity ---

IntegrityCategory = Literal[
    "orphaned_reference", "stale_usage", "missing_usage", "count_mismatch"
]


class IntegrityIssue(BaseModel):
    """A single usage-tracking inconsistency."""

    category: IntegrityCategory
    severity: Literal["error", "warning"]
    description: str
    component_id: str | None = None
    measure_id: str | None = None
    element_id: str | None = None


class IntegrityReport(BaseModel):
    issues: list[IntegrityIssue] = Field(default_factory=list)
    summary: dict[str, int] = Field(default_factory=dict)
    passed: bool = True


# --- Criteria tree validation ---


class TreeIssue(BaseModel):
    code: str
    message: str
    node_id: str | None = None


class TreeStats(BaseModel):
    clause_count: int = 0
    element_count: int = 0
    max_depth: int = 0


class TreeValidation(BaseModel):
    valid: bool
    errors: list[TreeIssue] = Field(default_factory=list)
    warnings: list[TreeIssue] = Field(default_factory=list)
    stats: TreeStats = Field(default_factory=TreeStats)
