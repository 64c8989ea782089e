"""Pydantic schemas for components, criteria trees, and engine results."""

from component_engine.schemas.components import (
    ApprovalStatus,
    AtomicComponent,
    CodeReference,
    ComplexityFactors,
    ComplexityLevel,
    ComponentCategory,
    ComponentComplexity,
    ComponentMetadata,
    ComponentReference,
    ComponentUsage,
    ComponentVersionInfo,
    CompositeComponent,
    LibraryComponent,
    LogicalOperator,
    ParsedComponent,
    TimingExpression,
    TimingOperator,
    ValueSetRef,
    VersionHistoryEntry,
)
from component_engine.schemas.criteria import (
    ConfidenceLevel,
    CriteriaTree,
    DataElement,
    DataElementType,
    LogicalClause,
    MeasureValueSet,
    ReviewStatus,
    TimingWindow,
)
from component_engine.schemas.results import (
    ApprovedMatchResult,
    ComponentDiff,
    ComponentMatch,
    ElementLink,
    ElementLinkResult,
    IntegrityIssue,
    IntegrityReport,
    MatchResult,
    TreeIssue,
    TreeStats,
    TreeValidation,
    ValidationResult,
    ValidationWarning,
)

__all__ = [
    "ApprovalStatus",
    "ApprovedMatchResult",
    "AtomicComponent",
    "CodeReference",
    "ComplexityFactors",
    "ComplexityLevel",
    "ComponentCategory",
    "ComponentComplexity",
    "ComponentDiff",
    "ComponentMatch",
    "ComponentMetadata",
    "ComponentReference",
    "ComponentUsage",
    "ComponentVersionInfo",
    "CompositeComponent",
    "ConfidenceLevel",
    "CriteriaTree",
    "DataElement",
    "DataElementType",
    "ElementLink",
    "ElementLinkResult",
    "IntegrityIssue",
    "IntegrityReport",
    "LibraryComponent",
    "LogicalClause",
    "LogicalOperator",
    "MatchResult",
    "MeasureValueSet",
    "ParsedComponent",
    "ReviewStatus",
    "TimingExpression",
    "TimingOperator",
    "TimingWindow",
    "TreeIssue",
    "TreeStats",
    "TreeValidation",
    "ValidationResult",
    "ValidationWarning",
    "ValueSetRef",
    "VersionHistoryEntry",
]
