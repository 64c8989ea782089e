"""Category inference for library components.

Deterministic keyword lookup driven by ``config/category_keywords.yaml``.
Priority order:

1. Exclusion keywords in name/description -> exclusions
2. Patient resource or a gender value -> demographics
3. Age wording in name/description -> demographics
4. FHIR resource type mapping (Observation/DiagnosticReport split into
   laboratory vs assessments by value set)
5. Value set name keywords
6. Composite name/description keywords
7. clinical-observations
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import yaml

from component_engine.config import CONFIG_DIR
from component_engine.schemas.components import (
    AtomicComponent,
    ComponentCategory,
    CompositeComponent,
    LibraryComponent,
    ValueSetRef,
)

logger = logging.getLogger(__name__)

_CONFIG_PATH = CONFIG_DIR / "category_keywords.yaml"


@lru_cache(maxsize=1)
def _load_keywords() -> dict[str, Any]:
    """Load the category keyword tables (cached after first call)."""
    with open(_CONFIG_PATH) as f:
        data: dict[str, Any] = yaml.safe_load(f)
    return data


def _keywords(name: str) -> list[str]:
    return [str(k).lower() for k in _load_keywords().get(name, [])]


def _contains_any(text: str, keywords: list[str]) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in keywords)


def _name_and_description(component: LibraryComponent) -> str:
    return f"{component.name} {component.description or ''}"


def is_lab_value_set(value_set: ValueSetRef) -> bool:
    """Lab keywords in the name, or mostly LOINC codes."""
    if _contains_any(value_set.name, _keywords("laboratory")):
        return True
    if value_set.codes:
        loinc = [c for c in value_set.codes if "loinc" in c.system.lower()]
        if len(loinc) > len(value_set.codes) / 2:
            return True
    return False


def _from_value_set_name(value_set: ValueSetRef) -> ComponentCategory | None:
    for category in _load_keywords().get("value_set_priority", []):
        if _contains_any(value_set.name, _keywords(category)):
            return ComponentCategory(category)
    return None


def _from_composite_text(component: CompositeComponent) -> ComponentCategory | None:
    text = _name_and_description(component)
    for rule in _load_keywords().get("composite", []):
        if _contains_any(text, [str(k).lower() for k in rule["keywords"]]):
            return ComponentCategory(rule["category"])
    if _contains_any(text, _keywords("laboratory")):
        return ComponentCategory.LABORATORY
    if _contains_any(text, _keywords("assessments")):
        return ComponentCategory.ASSESSMENTS
    return None


def infer_category(component: LibraryComponent) -> ComponentCategory:
    """Pick the most appropriate browsing category for a component."""
    if _contains_any(_name_and_description(component), _keywords("exclusion")):
        return ComponentCategory.EXCLUSIONS

    if isinstance(component, AtomicComponent):
        if component.resource_type == "Patient" or component.gender_value:
            return ComponentCategory.DEMOGRAPHICS
        if _contains_any(_name_and_description(component), _keywords("age")):
            return ComponentCategory.DEMOGRAPHICS

        resource_type = component.resource_type
        if resource_type:
            mapped = _load_keywords().get("resource_types", {}).get(resource_type)
            if mapped:
                return ComponentCategory(mapped)
            if resource_type in _load_keywords().get("observation_resource_types", []):
                if is_lab_value_set(component.value_set):
                    return ComponentCategory.LABORATORY
                if _contains_any(component.value_set.name, _keywords("assessments")):
                    return ComponentCategory.ASSESSMENTS
                return ComponentCategory.CLINICAL_OBSERVATIONS

        from_value_set = _from_value_set_name(component.value_set)
        if from_value_set is not None:
            return from_value_set

    if isinstance(component, CompositeComponent):
        from_text = _from_composite_text(component)
        if from_text is not None:
            return from_text

    logger.debug("No category keywords matched for %s", component.id)
    return ComponentCategory.CLINICAL_OBSERVATIONS
