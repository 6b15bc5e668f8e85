"""Turn package references into loaded packages with a build workspace."""

from __future__ import annotations

import json
import logging
import shutil
import tarfile
import tempfile
import tomllib
from pathlib import Path
from typing import Any

from ..compilation.cargo import CargoRunner
from ..errors import ManifestInvalid, ManifestNotFound
from .models import (
    BuildContext,
    PackageId,
    PackageMetadata,
    PackageReference,
    ResolvedWork,
    Target,
)
from .registry import RegistrySource, package_cache_lock

_LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"


def find_root_manifest(path: Path) -> Path:
    """Locate the nearest ``Cargo.toml`` at or above ``path``."""

    path = path.expanduser().resolve()
    if path.is_file():
        return path
    for directory in (path, *path.parents):
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate
    raise ManifestNotFound(f"could not find `{MANIFEST_NAME}` in `{path}` or any parent directory")


class PackageResolver:
    """Load packages from local manifests or from the registry."""

    def __init__(self, runner: CargoRunner, source: RegistrySource) -> None:
        self._runner = runner
        self._source = source

    def resolve(self, reference: PackageReference) -> ResolvedWork:
        if reference.is_local:
            assert reference.manifest_path is not None
            return self.resolve_local(reference.manifest_path)
        assert reference.name is not None and reference.version is not None
        return self.resolve_remote(reference.name, reference.version)

    def resolve_local(self, manifest_path: Path) -> ResolvedWork:
        manifest_path = manifest_path.expanduser().resolve()
        if not manifest_path.is_file():
            raise ManifestNotFound(f"manifest path `{manifest_path}` does not exist")

        package, workspace = self._load(manifest_path, ephemeral=False)
        _LOGGER.debug("Loaded local package %s %s from %s", package.name, package.version, manifest_path)
        return ResolvedWork(package=package, workspace=workspace)

    def resolve_remote(self, name: str, version: str) -> ResolvedWork:
        source = self._source
        _LOGGER.debug("source id loaded: %s", source.source_id)

        package_id = PackageId(name, version, source.source_id)
        if not source.offline:
            with package_cache_lock(source.cache_dir):
                source.update(name)

        _LOGGER.debug("(remote) package id: %s", package_id)
        crate_file = source.download_now(package_id)

        scratch = Path(tempfile.mkdtemp(prefix=f"semverver-{name}-{version}-"))
        try:
            root = _unpack_crate(crate_file, scratch, package_id)
            package, workspace = self._load(
                root / MANIFEST_NAME,
                ephemeral=True,
                scratch_dir=scratch,
                target_dir=scratch / "target",
            )
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        _LOGGER.info("Unpacked %s into ephemeral workspace %s", package_id, workspace.root)
        return ResolvedWork(package=package, workspace=workspace)

    def _load(
        self,
        manifest_path: Path,
        *,
        ephemeral: bool,
        scratch_dir: Path | None = None,
        target_dir: Path | None = None,
    ) -> tuple[PackageMetadata, BuildContext]:
        try:
            with manifest_path.open("rb") as fh:
                tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestInvalid(f"failed to parse manifest at `{manifest_path}`: {exc}") from exc

        args = ["metadata", "--format-version", "1", "--no-deps", "--manifest-path", str(manifest_path)]
        if self._source.offline:
            args.append("--offline")
        result = self._runner.output(args, cwd=manifest_path.parent)
        if not result.success:
            detail = result.stderr.decode(errors="replace").strip()
            raise ManifestInvalid(f"failed to load manifest at `{manifest_path}`: {detail}")

        try:
            metadata: dict[str, Any] = json.loads(result.stdout)
        except ValueError as exc:
            raise ManifestInvalid(f"cargo metadata for `{manifest_path}` is not valid JSON") from exc

        package = _select_package(metadata, manifest_path)
        workspace = BuildContext(
            manifest_path=manifest_path,
            root=Path(metadata.get("workspace_root") or manifest_path.parent),
            target_dir=target_dir or Path(metadata.get("target_directory") or manifest_path.parent / "target"),
            ephemeral=ephemeral,
            scratch_dir=scratch_dir,
        )
        return package, workspace


def _select_package(metadata: dict[str, Any], manifest_path: Path) -> PackageMetadata:
    for record in metadata.get("packages", []):
        if Path(record.get("manifest_path", "")).resolve() != manifest_path.resolve():
            continue
        targets = tuple(
            Target(
                name=target["name"],
                kind=tuple(target.get("kind", [])),
                crate_types=tuple(target.get("crate_types", [])),
            )
            for target in record.get("targets", [])
        )
        return PackageMetadata(
            name=record["name"],
            version=record["version"],
            manifest_path=manifest_path,
            targets=targets,
        )
    raise ManifestInvalid(
        f"`{manifest_path}` is a virtual manifest; point at the manifest of a package instead"
    )


def _unpack_crate(crate_file: Path, destination: Path, package_id: PackageId) -> Path:
    try:
        with tarfile.open(crate_file, "r:gz") as archive:
            archive.extractall(destination, filter="data")
    except (tarfile.TarError, OSError) as exc:
        raise ManifestInvalid(f"failed to unpack `{package_id}`: {exc}") from exc

    root = destination / f"{package_id.name}-{package_id.version}"
    if not (root / MANIFEST_NAME).is_file():
        raise ManifestInvalid(f"package `{package_id}` has no `{MANIFEST_NAME}` at its root")
    return root


__all__ = ["MANIFEST_NAME", "PackageResolver", "find_root_manifest"]
