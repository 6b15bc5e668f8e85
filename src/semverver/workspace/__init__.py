"""Package resolution from local manifests and the registry."""

from .models import PackageNameAndVersion, PackageReference, ResolvedWork
from .registry import RegistryLookup, RegistrySource
from .resolver import PackageResolver, find_root_manifest

__all__ = [
    "PackageNameAndVersion",
    "PackageReference",
    "PackageResolver",
    "RegistryLookup",
    "RegistrySource",
    "ResolvedWork",
    "find_root_manifest",
]
