"""Environment detection utilities."""

from .detectors import EnvironmentReport, detect_environment

__all__ = ["EnvironmentReport", "detect_environment"]
