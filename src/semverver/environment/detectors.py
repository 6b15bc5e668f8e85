"""Environment detection and verification."""

from __future__ import annotations

import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path

from ..config import AppConfig


@dataclass(slots=True)
class ToolCheck:
    name: str
    command: str | None
    available: bool
    version: str | None = None
    path: Path | None = None
    details: str | None = None


@dataclass(slots=True)
class EnvironmentReport:
    python_version: str
    offline: bool
    tools: list[ToolCheck] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def missing_tools(self) -> list[str]:
        return [t.name for t in self.tools if not t.available]


def _check_command(name: str, command: list[str]) -> ToolCheck:
    path = shutil.which(command[0])
    if not path:
        return ToolCheck(name=name, command=None, available=False)
    version = _probe_version(command)
    return ToolCheck(name=name, command=" ".join(command), available=True, version=version, path=Path(path))


def _probe_version(command: list[str]) -> str | None:
    try:
        output = subprocess.check_output([*command, "--version"], stderr=subprocess.STDOUT, timeout=10)
    except (FileNotFoundError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        return None
    lines = output.decode(errors="replace").splitlines()
    return lines[0].strip() if lines else None


def detect_environment(config: AppConfig) -> EnvironmentReport:
    report = EnvironmentReport(
        python_version=sys.version.split()[0],
        offline=config.offline,
    )

    cargo = [config.build.cargo]
    if config.build.toolchain:
        cargo.append(f"+{config.build.toolchain}")

    cargo_check = _check_command("cargo", cargo)
    report.tools.append(cargo_check)
    report.tools.append(_check_command("rustc", ["rustc"]))
    report.tools.append(_check_command("rust-semverver", [config.driver.semverver]))
    report.tools.append(_check_command("rust-semver-public", [config.driver.public]))

    optional_tools = {"rust-semver-public"}
    for tool in report.tools:
        if not tool.available:
            if tool.name in optional_tools:
                report.notes.append(f"Optional tool missing: {tool.name} (needed for --show-public)")
            else:
                report.issues.append(f"Missing dependency: {tool.name}")

    if cargo_check.available and "nightly" not in (cargo_check.version or ""):
        report.notes.append(
            "cargo is not a nightly toolchain; `--build-plan` needs nightly (set build.toolchain = \"nightly\")."
        )

    if config.offline:
        report.notes.append("Offline mode: only packages already in the package cache can be used.")

    return report


__all__ = ["EnvironmentReport", "ToolCheck", "detect_environment"]
