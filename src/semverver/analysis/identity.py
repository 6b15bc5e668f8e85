"""Crate identity recovery inside the analysis driver.

After semantic analysis the driver sees every crate the program references,
including transitive dependencies of ``old`` and ``new``. Only the two crates
declared by the stub are direct ``extern crate`` items with a real source
location, and they appear in the stub's order: ``old`` first, ``new`` second.
Crate names are not used, since they need not survive into the elaborated
program.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

from ..errors import CrateIdentityError
from .channels import ReportChannels

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExternCrateRef:
    """An external crate as seen by the elaborated program."""

    crate: int
    is_direct: bool
    span_lo: int


@dataclass(frozen=True, slots=True)
class ElaboratedProgram:
    crates: tuple[ExternCrateRef, ...]

    @classmethod
    def from_json(cls, payload: str | bytes) -> ElaboratedProgram:
        """Load a crate table dumped by a driver as ``{"crates": [...]}``."""

        data: dict[str, Any] = json.loads(payload)
        return cls(
            crates=tuple(
                ExternCrateRef(
                    crate=int(item["crate"]),
                    is_direct=bool(item["is_direct"]),
                    span_lo=int(item["span_lo"]),
                )
                for item in data.get("crates", [])
            )
        )


@dataclass(frozen=True, slots=True)
class CratePair:
    old: ExternCrateRef
    new: ExternCrateRef


def direct_references(program: ElaboratedProgram) -> list[ExternCrateRef]:
    """Directly declared crates with a real source location, in source order."""

    candidates = [ref for ref in program.crates if ref.is_direct and ref.span_lo > 0]
    return sorted(candidates, key=lambda ref: ref.span_lo)


def resolve_crate_pair(program: ElaboratedProgram) -> CratePair:
    refs = direct_references(program)
    if len(refs) < 2:
        raise CrateIdentityError("could not find `old` and `new` crates")
    if len(refs) > 2:
        _LOGGER.warning("Found %d direct crate references; using the first two", len(refs))
    return CratePair(old=refs[0], new=refs[1])


def resolve_public_crate(program: ElaboratedProgram) -> ExternCrateRef:
    refs = direct_references(program)
    if not refs:
        raise CrateIdentityError("could not find `new` crate")
    return refs[0]


class Compilation(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"


class DiffEngine(Protocol):
    """The comparison service run on the resolved crates."""

    def compare(self, program: ElaboratedProgram, pair: CratePair, channels: ReportChannels) -> None:
        ...

    def traverse(self, program: ElaboratedProgram, crate: ExternCrateRef) -> None:
        ...


class SemverCallbacks:
    """Driver hook run after analysis, before any code generation."""

    def __init__(self, engine: DiffEngine, channels: ReportChannels, *, public_only: bool = False) -> None:
        self._engine = engine
        self._channels = channels
        self._public_only = public_only

    def after_analysis(self, program: ElaboratedProgram) -> Compilation:
        _LOGGER.debug("running semverver after_analysis callback")
        if self._public_only:
            self._engine.traverse(program, resolve_public_crate(program))
        else:
            self._engine.compare(program, resolve_crate_pair(program), self._channels)
        return Compilation.STOP


def program_from_refs(refs: Sequence[tuple[int, bool, int]]) -> ElaboratedProgram:
    """Build a program from ``(crate, is_direct, span_lo)`` triples."""

    return ElaboratedProgram(crates=tuple(ExternCrateRef(*ref) for ref in refs))


__all__ = [
    "Compilation",
    "CratePair",
    "DiffEngine",
    "ElaboratedProgram",
    "ExternCrateRef",
    "SemverCallbacks",
    "direct_references",
    "program_from_refs",
    "resolve_crate_pair",
    "resolve_public_crate",
]
