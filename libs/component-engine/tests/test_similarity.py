"""Tests for similarity scoring, near-match search, and field diffs."""

from __future__ import annotations

import pytest

from component_engine.index import LibrarySnapshot
from component_engine.schemas.components import (
    ApprovalStatus,
    AtomicComponent,
    ComponentReference,
    ComponentVersionInfo,
    CompositeComponent,
    LogicalOperator,
    ParsedComponent,
    TimingExpression,
    TimingOperator,
    ValueSetRef,
)
from component_engine.similarity import (
    compute_component_diff,
    compute_similarity,
    find_similar_components,
)

HBA1C_OID = "2.16.840.1.113883.3.464.1003.198.12.1013"


def _timing(
    operator: TimingOperator = TimingOperator.DURING,
    reference: str | None = "Measurement Period",
    **extra: object,
) -> TimingExpression:
    return TimingExpression(operator=operator, reference=reference, **extra)


def _make_atomic(
    component_id: str = "lib-1",
    oid: str | None = HBA1C_OID,
    timing: TimingExpression | None = None,
    negation: bool = False,
    status: ApprovalStatus = ApprovalStatus.DRAFT,
) -> AtomicComponent:
    return AtomicComponent(
        id=component_id,
        name="HbA1c Laboratory Test",
        value_set=ValueSetRef(oid=oid, name="HbA1c Laboratory Test"),
        timing=timing,
        negation=negation,
        version_info=ComponentVersionInfo(status=status),
    )


# ===========================================================================
# compute_similarity()
# ===========================================================================


class TestComputeSimilarity:
    """Tests for the OID + timing similarity score."""

    def test_oid_and_full_timing_match(self) -> None:
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, timing=_timing())
        assert compute_similarity(candidate, _make_atomic(timing=_timing())) == 1.0

    def test_oid_only_when_candidate_has_no_timing(self) -> None:
        candidate = ParsedComponent(value_set_oid=HBA1C_OID)
        assert compute_similarity(candidate, _make_atomic(timing=_timing())) == 0.7

    def test_operator_bonus_only(self) -> None:
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID, timing=_timing(reference="Index Date")
        )
        assert compute_similarity(candidate, _make_atomic(timing=_timing())) == 0.85

    def test_reference_bonus_only(self) -> None:
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID, timing=_timing(operator=TimingOperator.BEFORE)
        )
        assert compute_similarity(candidate, _make_atomic(timing=_timing())) == 0.85

    def test_missing_references_do_not_earn_bonus(self) -> None:
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID, timing=_timing(reference=None)
        )
        library = _make_atomic(timing=_timing(reference=None))
        assert compute_similarity(candidate, library) == 0.85

    def test_different_oid_scores_zero(self) -> None:
        candidate = ParsedComponent(value_set_oid="1.2.3", timing=_timing())
        assert compute_similarity(candidate, _make_atomic(timing=_timing())) == 0.0

    def test_missing_oid_scores_zero(self) -> None:
        candidate = ParsedComponent(value_set_oid=None)
        assert compute_similarity(candidate, _make_atomic(oid=None)) == 0.0

    def test_composite_candidate_scores_zero(self) -> None:
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID,
            children=[ParsedComponent(value_set_oid=HBA1C_OID)],
        )
        assert compute_similarity(candidate, _make_atomic()) == 0.0

    def test_composite_library_scores_zero(self) -> None:
        composite = CompositeComponent(
            id="c", name="c", children=[ComponentReference(component_id="lib-1")]
        )
        candidate = ParsedComponent(value_set_oid=HBA1C_OID)
        assert compute_similarity(candidate, composite) == 0.0

    def test_score_within_unit_interval(self) -> None:
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, timing=_timing())
        score = compute_similarity(candidate, _make_atomic(timing=_timing()))
        assert 0.0 <= score <= 1.0


# ===========================================================================
# find_similar_components()
# ===========================================================================


class TestFindSimilarComponents:
    """Tests for threshold filtering, ordering, and exact-match exclusion."""

    def test_oid_only_match_respects_threshold(self) -> None:
        """A 0.70 near-match appears at 0.5 but not at 0.75."""
        library = _make_atomic(timing=_timing())
        snapshot = LibrarySnapshot([library])
        candidate = ParsedComponent(value_set_oid=HBA1C_OID)

        matches = find_similar_components(candidate, snapshot, threshold=0.5)
        assert [(m.matched_component_id, m.score) for m in matches] == [
            ("lib-1", 0.7)
        ]
        assert find_similar_components(candidate, snapshot, threshold=0.75) == []

    def test_zero_threshold_keeps_zero_scores(self) -> None:
        """Every score is >= 0, so threshold 0 lists unrelated components too."""
        related = _make_atomic("related", timing=_timing(reference="Index"))
        unrelated = _make_atomic("unrelated", oid="9.9.9")
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, timing=_timing())
        matches = find_similar_components(
            candidate, LibrarySnapshot([unrelated, related]), threshold=0.0
        )
        assert [(m.matched_component_id, m.score) for m in matches] == [
            ("related", 0.85),
            ("unrelated", 0.0),
        ]

    def test_sorted_by_score_descending(self) -> None:
        weak = _make_atomic("weak", timing=_timing(TimingOperator.BEFORE, "Index"))
        strong = _make_atomic("strong", timing=_timing(reference="Index"))
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID, timing=_timing(reference="Measurement Period")
        )
        matches = find_similar_components(
            candidate, LibrarySnapshot([weak, strong]), threshold=0.5
        )
        assert [m.matched_component_id for m in matches] == ["strong", "weak"]
        assert matches[0].score >= matches[1].score

    def test_excludes_hash_exact_match(self) -> None:
        exact = _make_atomic("exact", timing=_timing())
        near = _make_atomic("near", timing=_timing(reference="Index"))
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, timing=_timing())
        matches = find_similar_components(
            candidate, LibrarySnapshot([exact, near]), threshold=0.5
        )
        assert [m.matched_component_id for m in matches] == ["near"]

    def test_excludes_archived(self) -> None:
        archived = _make_atomic(status=ApprovalStatus.ARCHIVED)
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, timing=_timing())
        assert find_similar_components(candidate, LibrarySnapshot([archived])) == []

    def test_default_threshold_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("COMPONENT_SIMILARITY_THRESHOLD", "0.8")
        candidate = ParsedComponent(value_set_oid=HBA1C_OID)
        snapshot = LibrarySnapshot([_make_atomic(timing=_timing())])
        assert find_similar_components(candidate, snapshot) == []

    def test_matches_carry_diffs(self) -> None:
        library = _make_atomic(timing=_timing())
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID,
            timing=_timing(reference="Index Date"),
        )
        (match,) = find_similar_components(candidate, LibrarySnapshot([library]))
        assert [d.field for d in match.diffs] == ["timing_reference"]


# ===========================================================================
# compute_component_diff()
# ===========================================================================


class TestComputeComponentDiff:
    """Tests for field-level diffs."""

    def test_identical_has_no_diffs(self) -> None:
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, timing=_timing())
        assert compute_component_diff(_make_atomic(timing=_timing()), candidate) == []

    def test_timing_and_negation_diffs(self) -> None:
        library = _make_atomic(timing=_timing())
        candidate = ParsedComponent(
            value_set_oid=HBA1C_OID,
            timing=_timing(
                TimingOperator.WITHIN,
                quantity=3,
                unit="months",
                position="before end of",
            ),
            negation=True,
        )
        diffs = {d.field: d for d in compute_component_diff(library, candidate)}
        assert list(diffs) == [
            "timing_operator",
            "timing_quantity",
            "timing_unit",
            "timing_position",
            "negation",
        ]
        assert diffs["timing_operator"].expected == "during"
        assert diffs["timing_operator"].actual == "within"
        assert diffs["timing_quantity"].expected == "none"
        assert diffs["timing_quantity"].actual == "3"
        assert diffs["negation"].description == (
            'Negation differs: library has "false", incoming has "true"'
        )

    def test_missing_timing_on_candidate(self) -> None:
        library = _make_atomic(timing=_timing())
        candidate = ParsedComponent(value_set_oid=HBA1C_OID)
        fields = [d.field for d in compute_component_diff(library, candidate)]
        assert fields == ["timing_operator", "timing_reference"]

    def test_oid_diff(self) -> None:
        candidate = ParsedComponent(value_set_oid="1.2.3")
        (diff,) = compute_component_diff(_make_atomic(), candidate)
        assert diff.field == "value_set_oid"
        assert diff.expected == HBA1C_OID
        assert diff.actual == "1.2.3"

    def test_composite_operator_and_child_count(self) -> None:
        composite = CompositeComponent(
            id="c",
            name="c",
            operator=LogicalOperator.OR,
            children=[ComponentReference(component_id="x")],
        )
        candidate = ParsedComponent(
            children=[ParsedComponent(value_set_oid="1"), ParsedComponent()]
        )
        diffs = compute_component_diff(composite, candidate)
        assert [(d.field, d.expected, d.actual) for d in diffs] == [
            ("operator", "OR", "AND"),
            ("children", "1", "2"),
        ]

    def test_component_type_mismatch_reported_first(self) -> None:
        candidate = ParsedComponent(children=[ParsedComponent(value_set_oid="1")])
        diffs = compute_component_diff(_make_atomic(), candidate)
        assert diffs[0].field == "component_type"
        assert diffs[0].expected == "atomic"
        assert diffs[0].actual == "composite"

    @pytest.mark.parametrize("negation", [True, False])
    def test_diff_is_symmetric_in_presence(self, negation: bool) -> None:
        """A differing field is reported whichever side holds which value."""
        library = _make_atomic(negation=negation)
        candidate = ParsedComponent(value_set_oid=HBA1C_OID, negation=not negation)
        assert [d.field for d in compute_component_diff(library, candidate)] == [
            "negation"
        ]
