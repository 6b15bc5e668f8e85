"""Thin wrapper around the ``cargo`` executable.

cargo runs as a subprocess; its stdout and stderr are pumped by two worker
threads into the sinks of a :class:`CargoShell`. The shell is passed
explicitly into every call so the stdout sink can be swapped for a capture
buffer without touching process-wide state.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Iterator, Mapping, Protocol, Sequence

from ..errors import BuildFailed

_LOGGER = logging.getLogger(__name__)


class OutputSink(Protocol):
    def write(self, data: bytes) -> None:
        ...


class StreamSink:
    """Forward bytes to a binary stream such as ``sys.stderr.buffer``."""

    def __init__(self, stream: IO[bytes]) -> None:
        self._stream = stream

    def write(self, data: bytes) -> None:
        self._stream.write(data)
        self._stream.flush()


class NullSink:
    def write(self, data: bytes) -> None:
        return None


class CargoShell:
    """Destination for cargo's console output."""

    def __init__(self, out: OutputSink, err: OutputSink) -> None:
        self._lock = threading.Lock()
        self._out = out
        self._err = err

    @classmethod
    def console(cls, *, quiet: bool = False) -> CargoShell:
        err: OutputSink = NullSink() if quiet else StreamSink(sys.stderr.buffer)
        return cls(out=StreamSink(sys.stdout.buffer), err=err)

    @property
    def out(self) -> OutputSink:
        with self._lock:
            return self._out

    @property
    def err(self) -> OutputSink:
        with self._lock:
            return self._err

    @contextmanager
    def redirect(self, sink: OutputSink) -> Iterator[OutputSink]:
        """Swap in ``sink`` as the stdout destination for the duration of the block."""

        with self._lock:
            previous, self._out = self._out, sink
        try:
            yield sink
        finally:
            with self._lock:
                self._out = previous

    def write_out(self, data: bytes) -> None:
        self.out.write(data)

    def write_err(self, data: bytes) -> None:
        self.err.write(data)


@dataclass(slots=True)
class CargoOutput:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CargoRunner:
    """Run cargo subcommands."""

    def __init__(self, cargo: str = "cargo", toolchain: str | None = None) -> None:
        self._cargo = cargo
        self._toolchain = toolchain

    def command(self, args: Sequence[str]) -> list[str]:
        cmd = [self._cargo]
        if self._toolchain:
            cmd.append(f"+{self._toolchain}")
        cmd.extend(args)
        return cmd

    def output(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CargoOutput:
        """Run cargo to completion and collect its output."""

        cmd = self.command(args)
        _LOGGER.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, env=env, cwd=cwd)
        except OSError as exc:
            raise BuildFailed(f"could not spawn cargo: {exc}") from exc
        return CargoOutput(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)

    def run(
        self,
        args: Sequence[str],
        *,
        shell: CargoShell,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> int:
        """Run cargo, streaming stdout/stderr into ``shell``; returns the exit status."""

        cmd = self.command(args)
        _LOGGER.debug("Running %s", " ".join(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                cwd=cwd,
            )
        except OSError as exc:
            raise BuildFailed(f"could not spawn cargo: {exc}") from exc

        assert process.stdout is not None and process.stderr is not None
        pumps = [
            _Pump(process.stdout, shell.write_out, name="cargo-stdout"),
            _Pump(process.stderr, shell.write_err, name="cargo-stderr"),
        ]
        for pump in pumps:
            pump.start()
        returncode = process.wait()
        for pump in pumps:
            pump.join()
        for pump in pumps:
            if pump.error is not None:
                raise pump.error
        _LOGGER.debug("cargo exited with status %s", returncode)
        return returncode


class _Pump(threading.Thread):
    """Copy a pipe into a sink until EOF.

    A failing sink does not stop the copy: the pipe keeps draining so cargo
    never blocks on a full buffer, and the first error is kept for the caller.
    """

    def __init__(self, stream: IO[bytes], write: Callable[[bytes], None], *, name: str) -> None:
        super().__init__(name=name, daemon=True)
        self._stream = stream
        self._write = write
        self.error: BaseException | None = None

    def run(self) -> None:
        with self._stream:
            for chunk in iter(lambda: self._stream.read1(65536), b""):
                if self.error is not None:
                    continue
                try:
                    self._write(chunk)
                except Exception as exc:
                    self.error = exc


__all__ = [
    "CargoOutput",
    "CargoRunner",
    "CargoShell",
    "NullSink",
    "OutputSink",
    "StreamSink",
]
