"""Shared application state helpers for the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from .analysis import AnalysisDriverLauncher
from .compilation import CargoRunner, CargoShell, DualBuildOrchestrator
from .config import AppConfig, load_config
from .logging import cargo_is_quiet, configure_logging, resolve_verbosity
from .pipeline import SemverPipeline
from .workspace import PackageResolver, RegistryLookup, RegistrySource
from .workspace.registry import build_client


@dataclass(slots=True)
class AppState:
    config: AppConfig
    client: httpx.Client
    pipeline: SemverPipeline

    def close(self) -> None:
        self.client.close()


def build_state(config_path: Optional[Path], *, offline: bool = False, quiet: bool = False) -> AppState:
    """Construct an application state bundle.

    Wires the registry client, cargo runner, build orchestrator and driver
    launcher into a single :class:`SemverPipeline`.
    """

    config = load_config(config_path)
    if offline:
        config.offline = True
    verbosity = resolve_verbosity(config.verbosity, quiet=quiet)
    configure_logging(verbosity)

    client = build_client(config.registry)
    runner = CargoRunner(config.build.cargo, config.build.toolchain)
    source = RegistrySource(config.registry, client, offline=config.offline)
    pipeline = SemverPipeline(
        resolver=PackageResolver(runner, source),
        lookup=RegistryLookup(config.registry, client, offline=config.offline),
        orchestrator=DualBuildOrchestrator(
            runner,
            CargoShell.console(quiet=cargo_is_quiet(verbosity)),
            profile_dir=config.build.profile_dir,
        ),
        launcher=AnalysisDriverLauncher(config.driver),
    )
    return AppState(config=config, client=client, pipeline=pipeline)
