"""Shared pytest fixtures for semverver tests."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
import tempfile
import tomllib
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from semverver.compilation.cargo import CargoOutput, CargoShell
from semverver.config import AppConfig, RegistrySettings
from semverver.workspace.registry import index_path


# ============================================================================
# Crate Fixtures
# ============================================================================

def write_crate(
    root: Path,
    name: str = "foo",
    version: str = "0.1.0",
    *,
    lib: bool = True,
    bin: bool = False,
) -> Path:
    """Write a minimal cargo package and return its manifest path."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "src").mkdir(exist_ok=True)
    (root / "Cargo.toml").write_text(
        f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2018"\n\n[dependencies]\n'
    )
    if lib:
        (root / "src" / "lib.rs").write_text("pub fn answer() -> u32 { 42 }\n")
    if bin:
        (root / "src" / "main.rs").write_text("fn main() {}\n")
    return root / "Cargo.toml"


def crate_tarball(name: str, version: str, *, lib: bool = True) -> bytes:
    """Build the bytes of a ``.crate`` archive."""
    files = {
        "Cargo.toml": f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2018"\n',
    }
    if lib:
        files["src/lib.rs"] = "pub fn answer() -> u32 { 41 }\n"
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for relative, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{name}-{version}/{relative}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def cargo_metadata_for(manifest_path: Path) -> dict[str, Any]:
    """Mimic ``cargo metadata --no-deps`` for a package written by ``write_crate``."""
    with manifest_path.open("rb") as fh:
        manifest = tomllib.load(fh)
    package = manifest["package"]
    src = manifest_path.parent / "src"
    targets = []
    if (src / "lib.rs").exists():
        targets.append({"name": package["name"], "kind": ["lib"], "crate_types": ["lib"]})
    if (src / "main.rs").exists():
        targets.append({"name": package["name"], "kind": ["bin"], "crate_types": ["bin"]})
    return {
        "packages": [
            {
                "name": package["name"],
                "version": package["version"],
                "manifest_path": str(manifest_path),
                "targets": targets,
            }
        ],
        "workspace_root": str(manifest_path.parent),
        "target_directory": str(manifest_path.parent / "target"),
        "version": 1,
    }


def build_plan_for(name: str, target_dir: Path, *, target: str | None = None) -> dict[str, Any]:
    """A build plan with a dependency, a build script and the package's library."""
    deps = (target_dir / target if target else target_dir) / "debug" / "deps"
    return {
        "invocations": [
            {
                "package_name": "serde",
                "package_version": "1.0.0",
                "target_kind": ["lib"],
                "outputs": [str(deps / "libserde-0123.rmeta")],
                "program": "rustc",
            },
            {
                "package_name": name,
                "target_kind": ["custom-build"],
                "outputs": [str(target_dir / "debug" / "build" / f"{name}-build" / "build_script_build")],
            },
            {
                "package_name": name,
                "target_kind": ["lib"],
                "outputs": [str(deps / f"lib{name}-abcdef.rmeta")],
                "links": {},
            },
        ],
        "inputs": [],
    }


# ============================================================================
# Cargo Fakes
# ============================================================================

class FakeCargoRunner:
    """Stand-in for :class:`CargoRunner` that never spawns cargo."""

    def __init__(
        self,
        *,
        plan: Callable[[str, Path, str | None], Any] | bytes | None = None,
        plan_status: int = 0,
        run_status: int = 0,
        metadata: Callable[[Path], Any] | None = None,
        metadata_status: int = 0,
    ) -> None:
        self.plan = plan
        self.plan_status = plan_status
        self.run_status = run_status
        self.metadata = metadata or cargo_metadata_for
        self.metadata_status = metadata_status
        self.output_calls: list[list[str]] = []
        self.run_calls: list[tuple[list[str], dict[str, str]]] = []

    def output(self, args, *, env=None, cwd=None) -> CargoOutput:
        args = list(args)
        self.output_calls.append(args)
        if self.metadata_status != 0:
            return CargoOutput(self.metadata_status, b"", b"error: failed to parse manifest")
        manifest = Path(args[args.index("--manifest-path") + 1])
        payload = self.metadata(manifest)
        stdout = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return CargoOutput(0, stdout, b"")

    def run(self, args, *, shell: CargoShell, env=None, cwd=None) -> int:
        args = list(args)
        env = dict(env or {})
        self.run_calls.append((args, env))
        manifest = Path(args[args.index("--manifest-path") + 1])
        with manifest.open("rb") as fh:
            name = tomllib.load(fh)["package"]["name"]
        target_dir = Path(env["CARGO_TARGET_DIR"])
        target = args[args.index("--target") + 1] if "--target" in args else None

        if "--build-plan" in args:
            if self.plan_status != 0:
                shell.write_err(b"error: could not compile\n")
                return self.plan_status
            if isinstance(self.plan, bytes):
                payload = self.plan
            else:
                factory = self.plan or build_plan_for
                payload = json.dumps(factory(name, target_dir, target=target)).encode()
            # cargo writes in several chunks
            for start in range(0, len(payload), 64):
                shell.write_out(payload[start:start + 64])
            return 0

        if self.run_status != 0:
            return self.run_status
        deps = (target_dir / target if target else target_dir) / "debug" / "deps"
        deps.mkdir(parents=True, exist_ok=True)
        (deps / f"lib{name}-abcdef.rmeta").write_bytes(b"rust\x00meta")
        return 0

    @property
    def plan_calls(self) -> list[tuple[list[str], dict[str, str]]]:
        return [call for call in self.run_calls if "--build-plan" in call[0]]

    @property
    def build_calls(self) -> list[tuple[list[str], dict[str, str]]]:
        return [call for call in self.run_calls if "--build-plan" not in call[0]]


class RecordingSink:
    def __init__(self) -> None:
        self.chunks: list[bytes] = []

    def write(self, data: bytes) -> None:
        self.chunks.append(data)

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


@pytest.fixture
def fake_cargo() -> FakeCargoRunner:
    return FakeCargoRunner()


@pytest.fixture
def console_sinks() -> tuple[RecordingSink, RecordingSink]:
    return RecordingSink(), RecordingSink()


@pytest.fixture
def shell(console_sinks: tuple[RecordingSink, RecordingSink]) -> CargoShell:
    out, err = console_sinks
    return CargoShell(out=out, err=err)


# ============================================================================
# Driver Process Fakes
# ============================================================================

class RecordingPipe(io.BytesIO):
    """stdin replacement that remembers what was written before close."""

    captured: bytes | None = None

    def close(self) -> None:
        if not self.closed:
            self.captured = self.getvalue()
        super().close()


class FakeProcess:
    def __init__(self, cmd, env, *, returncode: int, with_stdin: bool, wait_error: OSError | None) -> None:
        self.args = list(cmd)
        self.env = dict(env or {})
        self.stdin = RecordingPipe() if with_stdin else None
        self._returncode = returncode
        self._wait_error = wait_error
        self.killed = False

    def wait(self) -> int:
        if self._wait_error is not None and not self.killed:
            raise self._wait_error
        return self._returncode

    def kill(self) -> None:
        self.killed = True


class FakePopen:
    """Callable replacing :class:`subprocess.Popen` in the launcher."""

    def __init__(
        self,
        *,
        returncode: int = 0,
        with_stdin: bool = True,
        spawn_error: OSError | None = None,
        wait_error: OSError | None = None,
    ) -> None:
        self.returncode = returncode
        self.with_stdin = with_stdin
        self.spawn_error = spawn_error
        self.wait_error = wait_error
        self.processes: list[FakeProcess] = []

    def __call__(self, cmd, stdin=None, env=None) -> FakeProcess:
        if self.spawn_error is not None:
            raise self.spawn_error
        process = FakeProcess(
            cmd,
            env,
            returncode=self.returncode,
            with_stdin=self.with_stdin,
            wait_error=self.wait_error,
        )
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def fake_popen() -> FakePopen:
    return FakePopen()


# ============================================================================
# Registry Fakes
# ============================================================================

class FakeRegistry:
    """In-memory crates.io: search API, sparse index and downloads."""

    api = "https://crates.io"
    index = "https://index.crates.io"
    static = "https://static.crates.io/crates"

    def __init__(self) -> None:
        self.crates: dict[tuple[str, str], bytes] = {}
        self.search_results: list[dict[str, Any]] | None = None
        self.requests: list[httpx.Request] = []
        self.fail_with: Exception | None = None
        self.corrupt: set[tuple[str, str]] = set()

    def publish(self, name: str, version: str, *, lib: bool = True) -> bytes:
        data = crate_tarball(name, version, lib=lib)
        self.crates[(name, version)] = data
        return data

    def _index_lines(self, name: str) -> list[str]:
        lines = []
        for (crate, version), data in sorted(self.crates.items()):
            if crate != name:
                continue
            checksum = hashlib.sha256(data).hexdigest()
            if (crate, version) in self.corrupt:
                checksum = "0" * 64
            lines.append(json.dumps({"name": crate, "vers": version, "deps": [], "cksum": checksum, "yanked": False}))
        return lines

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        url = str(request.url)

        if url.startswith(f"{self.api}/api/v1/crates"):
            query = request.url.params.get("q", "")
            results = self.search_results
            if results is None:
                versions = sorted(v for (n, v) in self.crates if n == query)
                results = [{"name": query, "max_version": versions[-1]}] if versions else []
            return httpx.Response(200, json={"crates": results, "meta": {"total": len(results)}})

        if url == f"{self.index}/config.json":
            return httpx.Response(200, json={"dl": self.static, "api": self.api})

        if url.startswith(f"{self.static}/"):
            _, name, version, _ = url[len(self.static):].split("/")
            data = self.crates.get((name, version))
            return httpx.Response(200, content=data) if data is not None else httpx.Response(404)

        for name in {crate for crate, _ in self.crates}:
            if url == f"{self.index}/{index_path(name)}":
                return httpx.Response(200, text="\n".join(self._index_lines(name)) + "\n")
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def registry_settings(tmp_path: Path) -> RegistrySettings:
    return RegistrySettings(cache_dir=tmp_path / "registry-cache")


@pytest.fixture
def test_config(registry_settings: RegistrySettings) -> AppConfig:
    """Return a configuration whose package cache lives under tmp_path."""
    config = AppConfig()
    config.registry = registry_settings
    return config


@pytest.fixture
def scratch_root(tmp_path: Path, monkeypatch) -> Path:
    """Point tempfile at a directory the test can inspect."""
    root = tmp_path / "scratch"
    root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(root))
    return root
