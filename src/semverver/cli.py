"""Typer-based CLI for semverver (``cargo semver``)."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .compilation import BuildOptions
from .config import load_config
from .environment import EnvironmentReport, detect_environment
from .errors import SemverError
from .pipeline import CheckRequest, ReportOptions
from .state import build_state

app = typer.Typer(add_completion=False, help="Check a crate for SemVer-breaking API changes.")
console = Console()
err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        console.print(__version__)
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Print version information and exit"
    ),
) -> None:
    """Automatic verification of SemVer adherence in Rust library crates."""


@app.command()
def check(
    current_path: Optional[Path] = typer.Option(None, "--current-path", "-c", help="Use local path as current/new crate"),
    current_pkg: Optional[str] = typer.Option(None, "--current-pkg", "-C", help="Use a `name:version` string as current/new crate"),
    stable_path: Optional[Path] = typer.Option(None, "--stable-path", "-s", help="Use local path as stable/old crate"),
    stable_pkg: Optional[str] = typer.Option(None, "--stable-pkg", "-S", help="Use a `name:version` string as stable/old crate"),
    features: Optional[str] = typer.Option(None, "--features", help="Space-separated list of features to activate"),
    all_features: bool = typer.Option(False, "--all-features", help="Activate all available features"),
    no_default_features: bool = typer.Option(False, "--no-default-features", help="Do not activate the `default` feature"),
    target: Optional[str] = typer.Option(None, "--target", help="Build for the target triple"),
    offline: bool = typer.Option(False, "--offline", help="Run without accessing the network"),
    explain: bool = typer.Option(False, "--explain", "-e", help="Print detailed error explanations"),
    api_guidelines: bool = typer.Option(
        False, "--api-guidelines", "-a", help="Report only changes that are breaking according to the API guidelines"
    ),
    compact: bool = typer.Option(False, "--compact", help="Only output the suggested version on stdout"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output a JSON description of all collected data"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress regular cargo output"),
    show_public: bool = typer.Option(False, "--show-public", help="Print the public types of the current crate and exit"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Print the driver bindings to debug and exit"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config TOML"),
) -> None:
    """Compare the current crate against a stable version."""

    if current_path is not None and current_pkg is not None:
        raise typer.BadParameter("at most one of `-c,--current-path` and `-C,--current-pkg` allowed")
    if stable_path is not None and stable_pkg is not None:
        raise typer.BadParameter("at most one of `-s,--stable-path` and `-S,--stable-pkg` allowed")

    state = build_state(config_path, offline=offline, quiet=quiet)
    request = CheckRequest(
        current_path=current_path,
        current_pkg=current_pkg,
        stable_path=stable_path,
        stable_pkg=stable_pkg,
        build=BuildOptions(
            features=features.split() if features else [],
            all_features=all_features,
            no_default_features=no_default_features,
            target=target,
            offline=state.config.offline,
        ),
        report=ReportOptions(
            explain=explain,
            compact=compact,
            json=json_output,
            api_guidelines=api_guidelines,
        ),
        show_public=show_public,
        debug=debug,
    )

    try:
        result = state.pipeline.run(request)
    except SemverError as exc:
        err_console.print(f"[bold red]error:[/] {exc}", highlight=False)
        raise typer.Exit(code=1)
    finally:
        state.close()

    if result.debug_command is not None:
        console.print(result.debug_command, highlight=False, soft_wrap=True)


@app.command("env")
def env_check(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config TOML"),
) -> None:
    """Run environment diagnostics."""

    config = load_config(config_path)
    _render_env_report(detect_environment(config))


def _render_env_report(report: EnvironmentReport) -> None:
    console.rule("Environment Report")
    table = Table(title="Tooling")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Details")
    for tool in report.tools:
        status = "[green]OK" if tool.available else "[red]Missing"
        table.add_row(tool.name, status, tool.version or tool.details or "")
    console.print(table)

    if report.issues:
        console.print("[red]Blocking issues detected:")
        for issue in report.issues:
            console.print(f"  • {issue}")

    if report.notes:
        console.print("[cyan]Notes:")
        for note in report.notes:
            console.print(f"  • {note}")


def run() -> None:
    # cargo invokes `cargo-semver semver ...` for `cargo semver ...`.
    args = sys.argv[1:]
    if args[:1] == ["semver"]:
        args = args[1:]
    app(args=args)
