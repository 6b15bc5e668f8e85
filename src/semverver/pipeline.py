"""End-to-end check: resolve both versions, build both lanes, run the driver."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path

from .analysis import AnalysisDriverLauncher, ExitOutcome, ReportChannels
from .compilation import BuildLane, BuildOptions, DualBuildOrchestrator, ResolvedArtifact
from .errors import MissingLibraryTarget
from .workspace import (
    PackageNameAndVersion,
    PackageResolver,
    RegistryLookup,
    ResolvedWork,
    find_root_manifest,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ReportOptions:
    explain: bool = False
    compact: bool = False
    json: bool = False
    api_guidelines: bool = False


@dataclass(slots=True)
class CheckRequest:
    """What to compare, as collected from the command line."""

    current_path: Path | None = None
    current_pkg: str | None = None
    stable_path: Path | None = None
    stable_pkg: str | None = None
    build: BuildOptions = field(default_factory=BuildOptions)
    report: ReportOptions = field(default_factory=ReportOptions)
    show_public: bool = False
    debug: bool = False

    def __post_init__(self) -> None:
        if self.current_path is not None and self.current_pkg is not None:
            raise ValueError("at most one of `-c,--current-path` and `-C,--current-pkg` allowed")
        if self.stable_path is not None and self.stable_pkg is not None:
            raise ValueError("at most one of `-s,--stable-path` and `-S,--stable-pkg` allowed")


@dataclass(slots=True)
class CheckResult:
    current: ResolvedArtifact
    stable: ResolvedArtifact | None = None
    stable_version: str | None = None
    outcome: ExitOutcome | None = None
    debug_command: str | None = None


class SemverPipeline:
    """Coordinate resolution, compilation and the analysis driver."""

    def __init__(
        self,
        resolver: PackageResolver,
        lookup: RegistryLookup,
        orchestrator: DualBuildOrchestrator,
        launcher: AnalysisDriverLauncher,
        *,
        cwd: Path | None = None,
    ) -> None:
        self._resolver = resolver
        self._lookup = lookup
        self._orchestrator = orchestrator
        self._launcher = launcher
        self._cwd = cwd

    def run(self, request: CheckRequest) -> CheckResult:
        _LOGGER.debug("running cargo-semver")
        with ExitStack() as stack:
            current = self._resolve_current(request)
            stack.callback(current.workspace.cleanup)
            name = current.package.name

            if not current.package.has_library():
                raise MissingLibraryTarget(f"package `{name}` lacks required [lib] target")

            if request.show_public:
                artifact = self._orchestrator.compile_lane(current, BuildLane.CURRENT, request.build)
                outcome = self._launcher.launch_public_only(artifact, target=request.build.target)
                return CheckResult(current=artifact, outcome=outcome)

            stable, stable_version = self._resolve_stable(request, name)
            stack.callback(stable.workspace.cleanup)

            current_artifact, stable_artifact = self._orchestrator.compile_pair(current, stable, request.build)
            result = CheckResult(
                current=current_artifact,
                stable=stable_artifact,
                stable_version=stable_version,
            )

            if request.debug:
                result.debug_command = self._launcher.describe(stable_artifact, current_artifact)
                return result

            channels = ReportChannels(
                stable_version=stable_version,
                verbose=request.report.explain,
                compact=request.report.compact,
                json=request.report.json,
                api_guidelines=request.report.api_guidelines,
            )
            result.outcome = self._launcher.launch(
                stable_artifact,
                current_artifact,
                channels,
                target=request.build.target,
            )
            return result

    def _resolve_current(self, request: CheckRequest) -> ResolvedWork:
        if request.current_pkg is not None:
            info = PackageNameAndVersion.parse(request.current_pkg)
            return self._resolver.resolve_remote(info.name, info.version)
        start = request.current_path or self._cwd or Path.cwd()
        return self._resolver.resolve_local(find_root_manifest(start))

    def _resolve_stable(self, request: CheckRequest, name: str) -> tuple[ResolvedWork, str]:
        if request.stable_pkg is not None:
            info = PackageNameAndVersion.parse(request.stable_pkg)
            return self._resolver.resolve_remote(info.name, info.version), info.version
        if request.stable_path is not None:
            work = self._resolver.resolve_local(find_root_manifest(request.stable_path))
            return work, work.package.version

        version = self._lookup.find_latest_stable(name)
        _LOGGER.info("Comparing against %s %s from the registry", name, version)
        return self._resolver.resolve_remote(name, version), version


__all__ = ["CheckRequest", "CheckResult", "ReportOptions", "SemverPipeline"]
