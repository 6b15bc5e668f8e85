"""Build plan capture.

cargo prints its build plan (``--build-plan``) on stdout. During the dry
planning pass the shell's stdout sink is replaced by a :class:`CaptureBuffer`
and the captured bytes are decoded into a :class:`BuildPlan` afterwards.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import BuildPlanUnreadable


class CapturePoisoned(OSError):
    """A writer failed while holding the buffer lock; its contents are unusable."""


class CaptureBuffer:
    """Thread-safe in-memory byte sink."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data = bytearray()
        self._poisoned = False

    @contextmanager
    def _guard(self) -> Iterator[None]:
        with self._lock:
            if self._poisoned:
                raise CapturePoisoned("lock poison")
            try:
                yield
            except BaseException:
                self._poisoned = True
                raise

    @property
    def poisoned(self) -> bool:
        with self._lock:
            return self._poisoned

    def write(self, data: bytes) -> None:
        with self._guard():
            self._data.extend(data)

    def read(self) -> bytes:
        with self._guard():
            return bytes(self._data)


class Invocation(BaseModel):
    """One compiler invocation in a build plan; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    package_name: str
    target_kinds: list[str] = Field(alias="target_kind")
    outputs: list[Path] = Field(default_factory=list)


class BuildPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    invocations: list[Invocation]


def decode_build_plan(data: bytes) -> BuildPlan:
    """Decode captured cargo output into a :class:`BuildPlan`."""

    if not data.strip():
        raise BuildPlanUnreadable("Can't read build plan: cargo emitted no output")
    try:
        return BuildPlan.model_validate_json(data)
    except ValidationError as exc:
        raise BuildPlanUnreadable(f"Can't read build plan: {exc.error_count()} error(s) decoding cargo output") from exc


__all__ = [
    "BuildPlan",
    "CaptureBuffer",
    "CapturePoisoned",
    "Invocation",
    "decode_build_plan",
]
