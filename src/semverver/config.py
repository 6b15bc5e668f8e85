"""Configuration loading and modelling."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "default_config.toml"
USER_CONFIG_PATH = Path("~/.config/semverver/config.toml").expanduser()


class RegistrySettings(BaseModel):
    api_url: str = "https://crates.io"
    index_url: str = "https://index.crates.io/"
    download_url: str = "https://static.crates.io/crates"
    user_agent: str | None = None
    search_window: int = Field(default=1, ge=1)
    timeout: float = 30.0
    cache_dir: Path = Field(default=Path("~/.cache/semverver/registry").expanduser())


class BuildSettings(BaseModel):
    cargo: str = "cargo"
    toolchain: str | None = None
    profile_dir: str = "debug"


class DriverSettings(BaseModel):
    semverver: str = "rust-semverver"
    public: str = "rust-semver-public"


class OutputSettings(BaseModel):
    verbosity: str = "normal"


class AppConfig(BaseModel):
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    driver: DriverSettings = Field(default_factory=DriverSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    offline: bool = False
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def verbosity(self) -> str:
        return self.output.verbosity


def _load_toml(path: Path) -> dict[str, Any]:
    import tomllib

    with path.open("rb") as fh:
        return tomllib.load(fh)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from defaults and optional user overrides."""

    load_dotenv()

    data: dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = _merge(data, _load_toml(DEFAULT_CONFIG_PATH))

    resolved_path = config_path
    if resolved_path is None and USER_CONFIG_PATH.exists():
        resolved_path = USER_CONFIG_PATH

    if resolved_path and resolved_path.exists():
        data = _merge(data, _load_toml(resolved_path))

    config = AppConfig(raw=data)

    # Re-bind nested models from merged dict to capture overrides.
    if "registry" in data:
        config.registry = RegistrySettings.model_validate(data["registry"])
    if "build" in data:
        config.build = BuildSettings.model_validate(data["build"])
    if "driver" in data:
        config.driver = DriverSettings.model_validate(data["driver"])
    if "output" in data:
        config.output = OutputSettings.model_validate(data["output"])
    if "offline" in data:
        config.offline = bool(data["offline"])

    # cargo's own offline switch applies to us as well.
    if _env_flag("CARGO_NET_OFFLINE"):
        config.offline = True

    env_cache_dir = os.getenv("SEMVERVER_CACHE_DIR")
    if env_cache_dir:
        config.registry.cache_dir = Path(env_cache_dir).expanduser()

    return config
