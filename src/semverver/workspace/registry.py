"""crates.io access: search, sparse index refresh and `.crate` downloads."""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import httpx

from .. import __version__
from ..config import RegistrySettings
from ..errors import ChecksumMismatch, NoMatch, PackageNotFound, RegistryUnavailable
from .models import PackageId, SourceId

_LOGGER = logging.getLogger(__name__)

_PROCESS_CACHE_LOCK = threading.Lock()
_LOCK_FILE_NAME = ".package-cache"


def default_user_agent() -> str:
    return f"rust-semverver {__version__}"


def build_client(settings: RegistrySettings) -> httpx.Client:
    """Create the HTTP client shared by registry lookups and downloads."""

    return httpx.Client(
        headers={"User-Agent": settings.user_agent or default_user_agent()},
        timeout=settings.timeout,
        follow_redirects=True,
    )


@contextmanager
def package_cache_lock(cache_dir: Path) -> Iterator[None]:
    """Serialize registry refreshes across threads and processes.

    The in-process lock covers resolvers sharing this interpreter; the
    ``flock`` on the cache's lock file covers other processes on the machine.
    """

    cache_dir.mkdir(parents=True, exist_ok=True)
    with _PROCESS_CACHE_LOCK:
        with (cache_dir / _LOCK_FILE_NAME).open("a+") as fh:
            _LOGGER.debug("Acquiring package cache lock in %s", cache_dir)
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


def index_path(name: str) -> str:
    """Relative path of a crate's file inside a crates.io-style index."""

    lowered = name.lower()
    if len(lowered) == 1:
        return f"1/{lowered}"
    if len(lowered) == 2:
        return f"2/{lowered}"
    if len(lowered) == 3:
        return f"3/{lowered[0]}/{lowered}"
    return f"{lowered[0:2]}/{lowered[2:4]}/{lowered}"


@dataclass(frozen=True, slots=True)
class IndexEntry:
    name: str
    version: str
    checksum: str
    yanked: bool = False


def parse_index(text: str, *, origin: str) -> list[IndexEntry]:
    """Decode a sparse index file, one JSON record per line."""

    entries: list[IndexEntry] = []
    for number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record: dict[str, Any] = json.loads(line)
            entries.append(
                IndexEntry(
                    name=record["name"],
                    version=record["vers"],
                    checksum=record.get("cksum", ""),
                    yanked=bool(record.get("yanked", False)),
                )
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise RegistryUnavailable(f"{origin} is unreadable at line {number}: {exc!r}") from exc
    return entries


def _is_json_object(content: bytes) -> bool:
    try:
        return isinstance(json.loads(content), dict)
    except ValueError:
        return False


@dataclass(frozen=True, slots=True)
class CrateSummary:
    """One row of a registry search response."""

    name: str
    max_version: str
    description: str | None = None


class RegistryLookup:
    """Find the newest published version of a crate by name."""

    def __init__(self, settings: RegistrySettings, client: httpx.Client, *, offline: bool = False) -> None:
        self._settings = settings
        self._client = client
        self._offline = offline

    def search(self, query: str, limit: int | None = None) -> list[CrateSummary]:
        if self._offline:
            raise RegistryUnavailable("cannot search the registry in offline mode")

        per_page = limit or self._settings.search_window
        url = f"{self._settings.api_url.rstrip('/')}/api/v1/crates"
        try:
            response = self._client.get(url, params={"q": query, "per_page": per_page})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RegistryUnavailable(f"failed to retrieve search results from the registry: {exc}") from exc

        crates = payload.get("crates", []) if isinstance(payload, dict) else None
        if not isinstance(crates, list):
            raise RegistryUnavailable("failed to retrieve search results from the registry: unexpected response shape")
        return [
            CrateSummary(
                name=item["name"],
                max_version=item["max_version"],
                description=item.get("description"),
            )
            for item in crates
            if isinstance(item, dict) and "name" in item and "max_version" in item
        ]

    def find_latest_stable(self, name: str) -> str:
        """Return the registry's ``max_version`` for an exactly named crate."""

        for summary in self.search(name):
            if summary.name == name:
                _LOGGER.debug("Registry reports %s at %s", name, summary.max_version)
                return summary.max_version
        raise NoMatch(f"failed to find a matching crate `{name}`")


class RegistrySource:
    """A sparse-index registry backed by an on-disk package cache.

    Layout of ``cache_dir``::

        index/<prefix>/<name>      cached sparse index files
        index/config.json          cached index configuration
        crates/<name>-<ver>.crate  downloaded packages
    """

    def __init__(self, settings: RegistrySettings, client: httpx.Client, *, offline: bool = False) -> None:
        self._settings = settings
        self._client = client
        self._offline = offline
        self.source_id = SourceId.for_index(settings.index_url)
        self.cache_dir = settings.cache_dir.expanduser()

    @property
    def offline(self) -> bool:
        return self._offline

    @property
    def _index_url(self) -> str:
        return self.source_id.url.rstrip("/")

    def _index_file(self, name: str) -> Path:
        return self.cache_dir / "index" / index_path(name)

    def _config_file(self) -> Path:
        return self.cache_dir / "index" / "config.json"

    def crate_file(self, package_id: PackageId) -> Path:
        return self.cache_dir / "crates" / f"{package_id.name}-{package_id.version}.crate"

    def _fetch(self, url: str) -> httpx.Response:
        try:
            return self._client.get(url)
        except httpx.HTTPError as exc:
            raise RegistryUnavailable(f"failed to fetch `{url}`: {exc}") from exc

    def update(self, name: str) -> None:
        """Refresh the cached index configuration and the entry for ``name``.

        Callers hold :func:`package_cache_lock` while this runs.
        """

        config_response = self._fetch(f"{self._index_url}/config.json")
        if config_response.is_success and _is_json_object(config_response.content):
            self._write(self._config_file(), config_response.content)
        else:
            _LOGGER.debug("Index config.json missing or unreadable (status %s)", config_response.status_code)

        response = self._fetch(f"{self._index_url}/{index_path(name)}")
        if response.status_code in (404, 410, 451):
            raise PackageNotFound(f"crate `{name}` does not exist in registry `{self.source_id}`")
        if not response.is_success:
            raise RegistryUnavailable(
                f"failed to update registry index for `{name}`: HTTP {response.status_code}"
            )
        parse_index(response.text, origin=f"registry index for `{name}`")
        self._write(self._index_file(name), response.content)
        _LOGGER.info("Updated registry index entry for %s", name)

    def index_entries(self, name: str) -> list[IndexEntry] | None:
        """Entries from the cached index file, or ``None`` when nothing is cached."""

        path = self._index_file(name)
        if not path.exists():
            return None
        return parse_index(path.read_text(), origin=f"cached index file `{path}`")

    def download_url(self, package_id: PackageId, checksum: str = "") -> str:
        template = self._settings.download_url
        config_path = self._config_file()
        if config_path.exists():
            try:
                index_config = json.loads(config_path.read_text())
            except ValueError as exc:
                raise RegistryUnavailable(f"cached index configuration `{config_path}` is not valid JSON") from exc
            if isinstance(index_config, dict):
                template = index_config.get("dl", template)

        markers = ("{crate}", "{version}", "{prefix}", "{lowerprefix}", "{sha256-checksum}")
        if any(marker in template for marker in markers):
            prefix = index_path(package_id.name).rsplit("/", 1)[0]
            return (
                template.replace("{crate}", package_id.name)
                .replace("{version}", package_id.version)
                .replace("{prefix}", prefix)
                .replace("{lowerprefix}", prefix.lower())
                .replace("{sha256-checksum}", checksum)
            )
        return f"{template.rstrip('/')}/{package_id.name}/{package_id.version}/download"

    def download_now(self, package_id: PackageId) -> Path:
        """Make the ``.crate`` file for ``package_id`` available on disk."""

        entry = self._find_entry(package_id)
        target = self.crate_file(package_id)

        if target.exists():
            _LOGGER.debug("Using cached package %s", target)
        elif self._offline:
            raise RegistryUnavailable(
                f"package `{package_id}` is not available in the local cache and offline mode is enabled"
            )
        else:
            url = self.download_url(package_id, entry.checksum if entry is not None else "")
            _LOGGER.info("Downloading %s", package_id)
            response = self._fetch(url)
            if response.status_code == 404:
                raise PackageNotFound(f"package `{package_id}` could not be downloaded from `{url}`")
            if not response.is_success:
                raise RegistryUnavailable(f"failed to download `{package_id}`: HTTP {response.status_code}")
            self._write(target, response.content)

        if entry is not None and entry.checksum:
            digest = hashlib.sha256(target.read_bytes()).hexdigest()
            if digest != entry.checksum:
                target.unlink(missing_ok=True)
                raise ChecksumMismatch(
                    f"failed to verify the checksum of `{package_id}` (expected {entry.checksum}, got {digest})"
                )
        return target

    def _find_entry(self, package_id: PackageId) -> IndexEntry | None:
        entries = self.index_entries(package_id.name)
        if entries is None:
            if self._offline:
                return None
            raise PackageNotFound(f"crate `{package_id.name}` is missing from the registry index")
        for entry in entries:
            if entry.version == package_id.version:
                if entry.yanked:
                    _LOGGER.warning("Package %s is yanked", package_id)
                return entry
        if self._offline:
            raise RegistryUnavailable(
                f"cached index does not list `{package_id.name}@{package_id.version}` and offline mode is enabled"
            )
        raise PackageNotFound(f"no version `{package_id.version}` of crate `{package_id.name}` in the registry")

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        tmp.write_bytes(content)
        tmp.replace(path)


__all__ = [
    "CrateSummary",
    "IndexEntry",
    "RegistryLookup",
    "RegistrySource",
    "build_client",
    "index_path",
    "parse_index",
    "package_cache_lock",
]
