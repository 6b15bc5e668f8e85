"""Dual-lane compilation of the current and stable package versions."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

from ..errors import ArtifactNotFound, BuildFailed, MissingLibraryTarget
from ..workspace.models import ResolvedWork
from .capture import BuildPlan, CaptureBuffer, decode_build_plan
from .cargo import CargoRunner, CargoShell

_LOGGER = logging.getLogger(__name__)

PLAN_FLAGS = ("-Z", "unstable-options", "--build-plan", "--quiet")


class BuildLane(str, Enum):
    """One of the two isolated compilation passes."""

    CURRENT = "current"
    STABLE = "stable"

    @property
    def tag(self) -> str:
        """Build-identity tag injected as ``-C metadata=<tag>``."""
        return "new" if self is BuildLane.CURRENT else "old"


@dataclass(slots=True)
class BuildOptions:
    features: list[str] = field(default_factory=list)
    all_features: bool = False
    no_default_features: bool = False
    target: str | None = None
    offline: bool = False


@dataclass(frozen=True, slots=True)
class ResolvedArtifact:
    library_path: Path
    dependency_search_path: Path


def is_library_kind(kind: str) -> bool:
    return "lib" in kind or kind == "proc-macro"


def find_library_output(plan: BuildPlan, package_name: str) -> Path:
    """First library output of ``package_name`` in plan order.

    Packages with several library-like targets resolve to whichever appears
    first in the plan.
    """

    for invocation in plan.invocations:
        if invocation.package_name != package_name or not invocation.outputs:
            continue
        if any(is_library_kind(kind) for kind in invocation.target_kinds):
            return invocation.outputs[0]
    raise ArtifactNotFound(f"lost build artifact: no library output for `{package_name}` in the build plan")


def check_args(work: ResolvedWork, options: BuildOptions) -> list[str]:
    """Arguments for a metadata-only ``cargo check`` of the package."""

    args = ["check", "--manifest-path", str(work.package.manifest_path)]
    if options.features:
        args.extend(["--features", ",".join(options.features)])
    if options.all_features:
        args.append("--all-features")
    if options.no_default_features:
        args.append("--no-default-features")
    if options.target:
        args.extend(["--target", options.target])
    if options.offline:
        args.append("--offline")
    return args


def lane_environment(lane: BuildLane, target_dir: Path, base: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    metadata_flag = f"-C metadata={lane.tag}"
    existing = env.get("RUSTFLAGS", "").strip()
    env["RUSTFLAGS"] = f"{existing} {metadata_flag}" if existing else metadata_flag
    env["CARGO_TARGET_DIR"] = str(target_dir)
    return env


class DualBuildOrchestrator:
    """Compile a resolved package into a metadata artifact for one lane."""

    def __init__(self, runner: CargoRunner, shell: CargoShell, *, profile_dir: str = "debug") -> None:
        self._runner = runner
        self._shell = shell
        self._profile_dir = profile_dir

    def compile_lane(self, work: ResolvedWork, lane: BuildLane, options: BuildOptions) -> ResolvedArtifact:
        package = work.package
        if not package.has_library():
            raise MissingLibraryTarget(f"package `{package.name}` lacks required [lib] target")

        target_dir = work.workspace.lane_target_dir(lane.tag)
        env = lane_environment(lane, target_dir)
        args = check_args(work, options)
        cwd = work.workspace.root

        _LOGGER.info("Compiling %s %s (%s lane)", package.name, package.version, lane.value)
        plan = self._plan(args, env, cwd, package.name)

        status = self._runner.run(args, shell=self._shell, env=env, cwd=cwd)
        if status != 0:
            raise BuildFailed(f"failed to compile `{package.name}` ({lane.value}): cargo exited with status {status}")

        library = find_library_output(plan, package.name)
        deps = self.dependency_search_path(target_dir, options.target)
        _LOGGER.debug("%s lane artifact %s (deps %s)", lane.value, library, deps)
        return ResolvedArtifact(library_path=library, dependency_search_path=deps)

    def compile_pair(
        self,
        current: ResolvedWork,
        stable: ResolvedWork,
        options: BuildOptions,
    ) -> tuple[ResolvedArtifact, ResolvedArtifact]:
        """Build both lanes one after the other; returns ``(current, stable)``."""

        current_artifact = self.compile_lane(current, BuildLane.CURRENT, options)
        stable_artifact = self.compile_lane(stable, BuildLane.STABLE, options)
        return current_artifact, stable_artifact

    def dependency_search_path(self, target_dir: Path, target: str | None) -> Path:
        base = target_dir / target if target else target_dir
        return base / self._profile_dir / "deps"

    def _plan(self, args: list[str], env: Mapping[str, str], cwd: Path, name: str) -> BuildPlan:
        buffer = CaptureBuffer()
        with self._shell.redirect(buffer):
            status = self._runner.run([*args, *PLAN_FLAGS], shell=self._shell, env=env, cwd=cwd)
        if status != 0:
            raise BuildFailed(f"failed to plan the build of `{name}`: cargo exited with status {status}")
        return decode_build_plan(buffer.read())


__all__ = [
    "BuildLane",
    "BuildOptions",
    "DualBuildOrchestrator",
    "ResolvedArtifact",
    "check_args",
    "find_library_output",
    "is_library_kind",
    "lane_environment",
]
