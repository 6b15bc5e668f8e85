"""Spawn the analysis driver on a pair of compiled crates.

The driver receives both artifacts as ``--extern`` bindings and reads a
two-line stub from stdin. It recovers which crate is ``old`` and which is
``new`` from the order of the ``extern crate`` declarations in that stub,
so the stub order and the binding order on the command line must match.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Mapping

from ..compilation.orchestrator import ResolvedArtifact
from ..config import DriverSettings
from ..errors import AnalysisFailed, ChildWaitFailed, PipeUnavailable, SpawnFailed
from .channels import ReportChannels

_LOGGER = logging.getLogger(__name__)

OLD_STUB_LINE = "#[allow(unused_extern_crates)] extern crate old;"
NEW_STUB_LINE = "#[allow(unused_extern_crates)] extern crate new;"
PAIR_STUB = f"{OLD_STUB_LINE}\n{NEW_STUB_LINE}\n"
PUBLIC_STUB = f"{NEW_STUB_LINE}\n"


@dataclass(frozen=True, slots=True)
class ExitOutcome:
    command: tuple[str, ...]
    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0


def extern_args(name: str, artifact: ResolvedArtifact) -> list[str]:
    return ["--extern", f"{name}={artifact.library_path}", f"-L{artifact.dependency_search_path}"]


class AnalysisDriverLauncher:
    """Run ``rust-semverver`` / ``rust-semver-public`` with the stub protocol."""

    def __init__(
        self,
        settings: DriverSettings,
        *,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._popen = popen
        self._base_env = base_env

    def pair_command(self, old: ResolvedArtifact, new: ResolvedArtifact, target: str | None = None) -> list[str]:
        cmd = [self._settings.semverver, "--crate-type=lib"]
        cmd.extend(extern_args("old", old))
        cmd.extend(extern_args("new", new))
        if target:
            cmd.extend(["--target", target])
        cmd.append("-")
        return cmd

    def public_command(self, artifact: ResolvedArtifact, target: str | None = None) -> list[str]:
        cmd = [self._settings.public, "--crate-type=lib"]
        cmd.extend(extern_args("new", artifact))
        if target:
            cmd.extend(["--target", target])
        cmd.append("-")
        return cmd

    @staticmethod
    def describe(old: ResolvedArtifact, new: ResolvedArtifact) -> str:
        """The bindings as a single line, for running the driver by hand."""
        return " ".join(
            [
                f"--extern old={old.library_path}",
                f"-L{old.dependency_search_path}",
                f"--extern new={new.library_path}",
                f"-L{new.dependency_search_path}",
            ]
        )

    def launch(
        self,
        old: ResolvedArtifact,
        new: ResolvedArtifact,
        channels: ReportChannels,
        *,
        target: str | None = None,
    ) -> ExitOutcome:
        _LOGGER.debug("running rust-semverver on compiled crates")
        env = dict(os.environ if self._base_env is None else self._base_env)
        env.update(channels.to_environ())
        return self._run(self.pair_command(old, new, target), PAIR_STUB, env)

    def launch_public_only(self, artifact: ResolvedArtifact, *, target: str | None = None) -> ExitOutcome:
        env = dict(os.environ if self._base_env is None else self._base_env)
        return self._run(self.public_command(artifact, target), PUBLIC_STUB, env)

    def _run(self, cmd: list[str], stub: str, env: dict[str, str]) -> ExitOutcome:
        program = cmd[0]
        _LOGGER.debug("Spawning %s", " ".join(cmd))
        try:
            child = self._popen(cmd, stdin=subprocess.PIPE, env=env)
        except OSError as exc:
            raise SpawnFailed(f"could not spawn {program}: {exc}") from exc

        if child.stdin is None:
            child.kill()
            child.wait()
            raise PipeUnavailable(f"could not pipe to {program}")

        try:
            child.stdin.write(stub.encode())
            child.stdin.close()
        except BrokenPipeError:
            # The driver exited before reading its input; its status says why.
            _LOGGER.debug("%s closed its stdin early", program)

        try:
            returncode = child.wait()
        except OSError as exc:
            raise ChildWaitFailed(f"failed to wait for {program}: {exc}") from exc

        outcome = ExitOutcome(command=tuple(cmd), returncode=returncode)
        if not outcome.success:
            raise AnalysisFailed(f"{program} errored (exit status {returncode})")
        return outcome


__all__ = [
    "AnalysisDriverLauncher",
    "ExitOutcome",
    "NEW_STUB_LINE",
    "OLD_STUB_LINE",
    "PAIR_STUB",
    "PUBLIC_STUB",
    "extern_args",
]
