"""Pydantic schemas for measure population criteria trees.

A criteria tree is stored as an arena: clauses and data elements live in
flat dicts keyed by id, and each clause lists its children by id. The
``parent_clause_id`` back-reference must agree with the parent's child list.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from component_engine.schemas.components import LogicalOperator, TimingUnit


class DataElementType(str, Enum):
    """Clinical category of a measure data element."""

    DIAGNOSIS = "diagnosis"
    ENCOUNTER = "encounter"
    PROCEDURE = "procedure"
    OBSERVATION = "observation"
    MEDICATION = "medication"
    DEMOGRAPHIC = "demographic"
    ASSESSMENT = "assessment"
    IMMUNIZATION = "immunization"
    DEVICE = "device"
    COMMUNICATION = "communication"
    ALLERGY = "allergy"
    GOAL = "goal"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    FLAGGED = "flagged"


class MeasureValueSet(BaseModel):
    """Value set attached to a measure data element."""

    oid: str | None = None
    name: str = ""
    version: str | None = None


class TimingWindow(BaseModel):
    """Relative window such as '10 years before end of Measurement Period'."""

    value: int
    unit: TimingUnit
    direction: Literal["before", "after"] = "before"


class DataElement(BaseModel):
    """Leaf of a criteria tree."""

    id: str
    description: str = ""
    element_type: DataElementType = DataElementType.OBSERVATION
    timing_override: str | None = Field(
        default=None,
        description="Free-text timing that replaces the measure default.",
    )
    timing_window: TimingWindow | None = None
    negation: bool = False
    value_sets: list[MeasureValueSet] = Field(default_factory=list)
    library_component_id: str | None = Field(
        default=None,
        description="Linked library component id, or the zero-codes sentinel.",
    )
    clause_id: str | None = None
    display_order: int = 0


class LogicalClause(BaseModel):
    """Branch of a criteria tree."""

    id: str
    parent_clause_id: str | None = None
    operator: LogicalOperator = LogicalOperator.AND
    description: str = ""
    child_clause_ids: list[str] = Field(default_factory=list)
    data_element_ids: list[str] = Field(default_factory=list)
    display_order: int = 0
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    review_status: ReviewStatus = ReviewStatus.PENDING
    cql_snippet: str | None = None


class CriteriaTree(BaseModel):
    """Arena of clauses and data elements rooted at ``root_clause_id``."""

    root_clause_id: str | None = None
    clauses: dict[str, LogicalClause] = Field(default_factory=dict)
    elements: dict[str, DataElement] = Field(default_factory=dict)

    def child_count(self, clause_id: str) -> int:
        clause = self.clauses[clause_id]
        return len(clause.child_clause_ids) + len(clause.data_element_ids)
