"""Environment channels carrying report configuration to the analysis driver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

CRATE_VERSION = "RUST_SEMVER_CRATE_VERSION"
VERBOSE = "RUST_SEMVER_VERBOSE"
COMPACT = "RUST_SEMVER_COMPACT"
JSON = "RUST_SEMVER_JSON"
API_GUIDELINES = "RUST_SEMVER_API_GUIDELINES"


def _encode(flag: bool) -> str:
    return "true" if flag else "false"


@dataclass(frozen=True, slots=True)
class ReportChannels:
    stable_version: str = ""
    verbose: bool = False
    compact: bool = False
    json: bool = False
    api_guidelines: bool = False

    def to_environ(self) -> dict[str, str]:
        return {
            CRATE_VERSION: self.stable_version,
            VERBOSE: _encode(self.verbose),
            COMPACT: _encode(self.compact),
            JSON: _encode(self.json),
            API_GUIDELINES: _encode(self.api_guidelines),
        }

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> ReportChannels:
        """Decode the channels on the driver side; only ``"true"`` enables a flag."""
        return cls(
            stable_version=environ.get(CRATE_VERSION, ""),
            verbose=environ.get(VERBOSE) == "true",
            compact=environ.get(COMPACT) == "true",
            json=environ.get(JSON) == "true",
            api_guidelines=environ.get(API_GUIDELINES) == "true",
        )


__all__ = [
    "API_GUIDELINES",
    "COMPACT",
    "CRATE_VERSION",
    "JSON",
    "ReportChannels",
    "VERBOSE",
]
