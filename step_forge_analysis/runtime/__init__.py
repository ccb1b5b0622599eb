"""
Runtime side of step-forge: the builder API step files are written with,
and the world state those steps merge into.

Usage:
    from step_forge_analysis.runtime import GivenBuilder, World

    GivenBuilder("a clean slate").step(lambda ctx: {}).register()
"""

from step_forge_analysis.runtime.builders import (
    GivenBuilder,
    WhenBuilder,
    ThenBuilder,
    Step,
    StepBuilder,
    StepCollection,
    StepContext,
    default_collection,
)
from step_forge_analysis.runtime.world import (
    MergeConflictError,
    MissingDependencyError,
    PhaseState,
    World,
    merge_state,
)

__all__ = [
    "GivenBuilder",
    "WhenBuilder",
    "ThenBuilder",
    "Step",
    "StepBuilder",
    "StepCollection",
    "StepContext",
    "default_collection",
    "MergeConflictError",
    "MissingDependencyError",
    "PhaseState",
    "World",
    "merge_state",
]
