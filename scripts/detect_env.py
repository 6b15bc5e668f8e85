#!/usr/bin/env python3
"""Standalone toolchain check script."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path

from semverver.config import load_config
from semverver.environment import detect_environment


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect the semverver toolchain environment")
    parser.add_argument("--config", type=Path, help="Optional config override", default=None)
    parser.add_argument("--json", action="store_true", help="Emit JSON")
    args = parser.parse_args()

    config = load_config(args.config)
    report = detect_environment(config)

    if args.json:
        print(json.dumps(asdict(report), indent=2, default=str))
        return

    print(f"Python: {report.python_version}")
    print(f"Offline: {report.offline}")
    for tool in report.tools:
        status = "ok" if tool.available else "missing"
        detail = tool.version or tool.details or ""
        print(f" - {tool.name}: {status} {detail}")
    for issue in report.issues:
        print(f"ISSUE: {issue}")
    for note in report.notes:
        print(f"note: {note}")


if __name__ == "__main__":
    main()
