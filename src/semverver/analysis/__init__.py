"""Analysis driver protocol: launching the driver and crate identity recovery."""

from .channels import ReportChannels
from .identity import ElaboratedProgram, ExternCrateRef, SemverCallbacks, resolve_crate_pair
from .launcher import AnalysisDriverLauncher, ExitOutcome

__all__ = [
    "AnalysisDriverLauncher",
    "ElaboratedProgram",
    "ExitOutcome",
    "ExternCrateRef",
    "ReportChannels",
    "SemverCallbacks",
    "resolve_crate_pair",
]
