"""Configuration for the component engine.

Runtime knobs come from environment variables via ``EngineConfig.from_env``.
Static lookup tables (category keywords) live in YAML files next to this
module and are loaded by the modules that use them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from component_engine.schemas.components import TimingOperator

CONFIG_DIR = Path(__file__).parent


@dataclass(frozen=True)
class EngineConfig:
    """Tunable defaults for matching, similarity, and tree validation.

    Attributes:
        similarity_threshold: Minimum score for find_similar_components.
        default_timing_operator: Timing operator assumed when a component
            carries no timing (name-fallback matching).
        default_timing_reference: Timing reference assumed when absent.
        max_tree_depth: Criteria tree depth above which a DEEPLY_NESTED
            warning is emitted.
    """

    similarity_threshold: float = 0.5
    default_timing_operator: str = "during"
    default_timing_reference: str = "Measurement Period"
    max_tree_depth: int = 4

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create EngineConfig from environment variables."""
        raw_threshold = os.getenv("COMPONENT_SIMILARITY_THRESHOLD", "")
        try:
            threshold = float(raw_threshold)
        except ValueError:
            threshold = cls.similarity_threshold
        if not 0.0 <= threshold <= 1.0:
            threshold = cls.similarity_threshold

        raw_depth = os.getenv("CRITERIA_MAX_TREE_DEPTH", "")
        try:
            max_depth = int(raw_depth)
        except ValueError:
            max_depth = cls.max_tree_depth
        if max_depth <= 0:
            max_depth = cls.max_tree_depth

        timing_operator = (
            os.getenv("COMPONENT_DEFAULT_TIMING_OPERATOR", "").strip().lower()
            or cls.default_timing_operator
        )
        if timing_operator not in {op.value for op in TimingOperator}:
            timing_operator = cls.default_timing_operator

        return cls(
            similarity_threshold=threshold,
            default_timing_operator=timing_operator,
            default_timing_reference=(
                os.getenv("COMPONENT_DEFAULT_TIMING_REFERENCE", "").strip()
                or cls.default_timing_reference
            ),
            max_tree_depth=max_depth,
        )


@lru_cache(maxsize=1)
def get_config() -> EngineConfig:
    """Return the process-wide EngineConfig (read from env once)."""
    return EngineConfig.from_env()


__all__ = ["CONFIG_DIR", "EngineConfig", "get_config"]
