"""Package, workspace and identity models used during resolution."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from ..errors import PackageIdInvalid

_LOGGER = logging.getLogger(__name__)

LIBRARY_KINDS = frozenset({"lib", "rlib", "dylib", "cdylib", "staticlib", "proc-macro"})

_CRATE_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,63}$")
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


@dataclass(frozen=True, slots=True)
class PackageNameAndVersion:
    """A ``name:version`` reference as given on the command line."""

    name: str
    version: str

    @classmethod
    def parse(cls, text: str) -> PackageNameAndVersion:
        parts = text.split(":")
        if len(parts) != 2 or not all(parts):
            raise PackageIdInvalid(f"spec has to be of form `name:version` but is `{text}`")
        return cls(name=parts[0], version=parts[1])


@dataclass(frozen=True, slots=True)
class PackageReference:
    """Either a local manifest path or a registry ``name``/``version`` pair."""

    manifest_path: Path | None = None
    name: str | None = None
    version: str | None = None

    def __post_init__(self) -> None:
        remote = self.name is not None or self.version is not None
        if (self.manifest_path is None) == (not remote):
            raise ValueError("exactly one of manifest_path or name/version must be set")
        if remote and (self.name is None or self.version is None):
            raise ValueError("remote references need both name and version")

    @property
    def is_local(self) -> bool:
        return self.manifest_path is not None

    @classmethod
    def local(cls, manifest_path: Path) -> PackageReference:
        return cls(manifest_path=manifest_path)

    @classmethod
    def remote(cls, name: str, version: str) -> PackageReference:
        return cls(name=name, version=version)


@dataclass(frozen=True, slots=True)
class SourceId:
    """Identity of a package source, e.g. ``sparse+https://index.crates.io/``."""

    kind: str
    url: str

    @classmethod
    def for_index(cls, index_url: str) -> SourceId:
        if index_url.startswith("sparse+"):
            return cls(kind="sparse", url=index_url.removeprefix("sparse+"))
        return cls(kind="sparse", url=index_url)

    def __str__(self) -> str:
        return f"{self.kind}+{self.url}"


@dataclass(frozen=True, slots=True)
class PackageId:
    """Uniquely addresses one downloadable package revision."""

    name: str
    version: str
    source_id: SourceId

    def __post_init__(self) -> None:
        if not _CRATE_NAME_RE.match(self.name):
            raise PackageIdInvalid(f"invalid crate name `{self.name}`")
        if not _SEMVER_RE.match(self.version):
            raise PackageIdInvalid(f"invalid version `{self.version}` for crate `{self.name}`")

    def __str__(self) -> str:
        return f"{self.name} v{self.version} ({self.source_id})"


@dataclass(frozen=True, slots=True)
class Target:
    name: str
    kind: tuple[str, ...]
    crate_types: tuple[str, ...] = ()

    @property
    def is_lib(self) -> bool:
        return any(kind in LIBRARY_KINDS for kind in self.kind)


@dataclass(frozen=True, slots=True)
class PackageMetadata:
    name: str
    version: str
    manifest_path: Path
    targets: tuple[Target, ...] = ()

    def has_library(self) -> bool:
        return any(target.is_lib for target in self.targets)


@dataclass(slots=True)
class BuildContext:
    """The workspace a package is built in."""

    manifest_path: Path
    root: Path
    target_dir: Path
    ephemeral: bool = False
    scratch_dir: Path | None = None

    def lane_target_dir(self, tag: str) -> Path:
        return self.target_dir / "semverver" / tag

    def cleanup(self) -> None:
        """Remove an ephemeral workspace from disk."""
        if not self.ephemeral or self.scratch_dir is None:
            return
        _LOGGER.debug("Removing ephemeral workspace %s", self.scratch_dir)
        shutil.rmtree(self.scratch_dir, ignore_errors=True)


@dataclass(slots=True)
class ResolvedWork:
    package: PackageMetadata
    workspace: BuildContext
