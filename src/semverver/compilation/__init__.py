"""Compilation of package versions into metadata artifacts."""

from .capture import BuildPlan, CaptureBuffer, decode_build_plan
from .cargo import CargoRunner, CargoShell
from .orchestrator import (
    BuildLane,
    BuildOptions,
    DualBuildOrchestrator,
    ResolvedArtifact,
    find_library_output,
)

__all__ = [
    "BuildLane",
    "BuildOptions",
    "BuildPlan",
    "CaptureBuffer",
    "CargoRunner",
    "CargoShell",
    "DualBuildOrchestrator",
    "ResolvedArtifact",
    "decode_build_plan",
    "find_library_output",
]
