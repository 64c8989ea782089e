"""Tests for measure/component usage integrity checks."""

from __future__ import annotations

from component_engine.integrity import check_usage_integrity
from component_engine.schemas.components import (
    AtomicComponent,
    ComponentUsage,
    ValueSetRef,
)
from component_engine.schemas.results import ElementLink
from component_engine.validation import ZERO_CODES_SENTINEL


def _component(component_id: str, measure_ids: list[str], count: int | None = None):
    return AtomicComponent(
        id=component_id,
        name=component_id,
        value_set=ValueSetRef(oid="1.2.3"),
        usage=ComponentUsage(
            measure_ids=measure_ids,
            usage_count=len(measure_ids) if count is None else count,
        ),
    )


def _links(*pairs: tuple[str, str | None]) -> list[ElementLink]:
    return [ElementLink(id=eid, library_component_id=cid) for eid, cid in pairs]


class TestCheckUsageIntegrity:
    """Tests for each integrity category and the summary."""

    def test_consistent_library_passes(self) -> None:
        components = {"c1": _component("c1", ["CMS130"])}
        measures = {"CMS130": _links(("e1", "c1"), ("e2", None))}
        report = check_usage_integrity(measures, components)
        assert report.passed
        assert report.issues == []
        assert report.summary == {}

    def test_orphaned_reference(self) -> None:
        measures = {"CMS130": _links(("e1", "ghost"))}
        report = check_usage_integrity(measures, {})
        (issue,) = report.issues
        assert issue.category == "orphaned_reference"
        assert issue.severity == "error"
        assert issue.element_id == "e1"
        assert not report.passed

    def test_sentinel_is_not_a_reference(self) -> None:
        measures = {"CMS130": _links(("e1", ZERO_CODES_SENTINEL))}
        assert check_usage_integrity(measures, {}).passed

    def test_stale_usage(self) -> None:
        components = {"c1": _component("c1", ["CMS130", "CMS122"])}
        measures = {"CMS130": _links(("e1", "c1"))}
        report = check_usage_integrity(measures, components)
        categories = [i.category for i in report.issues]
        assert categories == ["stale_usage", "count_mismatch"]
        assert report.issues[0].measure_id == "CMS122"
        assert not report.passed

    def test_missing_usage(self) -> None:
        components = {"c1": _component("c1", [])}
        measures = {"CMS130": _links(("e1", "c1"))}
        report = check_usage_integrity(measures, components)
        assert [i.category for i in report.issues] == [
            "missing_usage",
            "count_mismatch",
        ]

    def test_count_mismatch_only(self) -> None:
        components = {"c1": _component("c1", ["CMS130"], count=3)}
        measures = {"CMS130": _links(("e1", "c1"), ("e2", "c1"))}
        report = check_usage_integrity(measures, components)
        (issue,) = report.issues
        assert issue.category == "count_mismatch"
        assert issue.severity == "warning"
        assert not report.passed

    def test_summary_counts_by_category(self) -> None:
        components = {
            "c1": _component("c1", ["CMS1", "CMS2"]),
            "c2": _component("c2", ["CMS3"]),
        }
        measures = {
            "CMS1": _links(("e1", "c1"), ("e2", "ghost")),
            "CMS3": _links(("e3", "c2")),
        }
        report = check_usage_integrity(measures, components)
        assert report.summary == {
            "orphaned_reference": 1,
            "stale_usage": 1,
            "count_mismatch": 1,
        }
