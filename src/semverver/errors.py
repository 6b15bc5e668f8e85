"""Error hierarchy shared by every pipeline stage.

Each failure aborts the run; the CLI turns any ``SemverError`` into a single
``error: ...`` line and exit code 1.
"""

from __future__ import annotations


class SemverError(RuntimeError):
    """Base class for all terminal pipeline failures."""


# Package resolution


class ManifestNotFound(SemverError):
    """No ``Cargo.toml`` exists at (or above) the requested location."""


class ManifestInvalid(SemverError):
    """The manifest exists but cargo cannot load a package from it."""


class RegistryUnavailable(SemverError):
    """The registry could not be reached, or offline mode has nothing cached."""


class PackageNotFound(SemverError):
    """The registry has no such crate or version."""


class PackageIdInvalid(SemverError):
    """A ``name:version`` reference or package identifier is malformed."""


class NoMatch(SemverError):
    """A registry search returned no crate with exactly the requested name."""


class ChecksumMismatch(SemverError):
    """A downloaded ``.crate`` file does not match the index checksum."""


# Compilation


class MissingLibraryTarget(SemverError):
    """The package declares no ``[lib]`` target."""


class BuildFailed(SemverError):
    """cargo exited unsuccessfully."""


class ArtifactNotFound(SemverError):
    """The build plan holds no library output for the package."""


class BuildPlanUnreadable(SemverError):
    """The captured build plan is empty or not a valid plan document."""


# Analysis driver


class SpawnFailed(SemverError):
    """The analysis driver could not be started."""


class PipeUnavailable(SemverError):
    """The analysis driver's standard input is not connected."""


class ChildWaitFailed(SemverError):
    """Waiting for the analysis driver failed."""


class AnalysisFailed(SemverError):
    """The analysis driver exited with a non-zero status."""


class CrateIdentityError(SemverError):
    """The driver could not find the crates bound by the stub."""


__all__ = [
    "AnalysisFailed",
    "ArtifactNotFound",
    "BuildFailed",
    "BuildPlanUnreadable",
    "ChecksumMismatch",
    "ChildWaitFailed",
    "CrateIdentityError",
    "ManifestInvalid",
    "ManifestNotFound",
    "MissingLibraryTarget",
    "NoMatch",
    "PackageIdInvalid",
    "PackageNotFound",
    "PipeUnavailable",
    "RegistryUnavailable",
    "SemverError",
    "SpawnFailed",
]
