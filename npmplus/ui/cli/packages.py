"""
CLI commands for package-manager operations.

Thin wrappers over ``PackageGateway.call``: every command builds the
same parameter mapping a tool call would send.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click

from npmplus.core.models.operation import ManagerIdentity, OperationResult
from npmplus.ui.cli.common import echo_json, get_gateway

_MANAGERS = click.Choice([m.value for m in ManagerIdentity])


def _common_options(fn: Any) -> Any:
    fn = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")(fn)
    fn = click.option(
        "--timeout-ms", type=int, default=None, help="Per-attempt timeout in milliseconds.",
    )(fn)
    fn = click.option("--manager", "-m", type=_MANAGERS, default=None,
                      help="Package manager (default: auto-detect).")(fn)
    fn = click.option(
        "--cwd", type=click.Path(file_okay=False, path_type=Path), default=None,
        help="Project directory (default: current directory).",
    )(fn)
    return fn


def _params(cwd: Path | None, manager: str | None, timeout_ms: int | None, **extra: Any) -> dict:
    params: dict[str, Any] = {"cwd": cwd or Path.cwd(), **extra}
    if manager:
        params["manager"] = manager
    if timeout_ms:
        params["timeoutMs"] = timeout_ms
    return params


def _run(ctx: click.Context, operation: str, params: dict, as_json: bool) -> None:
    result: OperationResult = get_gateway(ctx).call(operation, params)

    if as_json:
        echo_json(result)
        sys.exit(0 if result.success else 1)

    label = f"{result.manager} {result.operation}"
    if result.success:
        click.secho(f"✅ {label} ({result.duration_ms}ms)", fg="green", bold=True)
        if result.installed:
            for spec in result.installed:
                click.echo(f"   + {spec}")
        if result.output and not ctx.obj.get("quiet"):
            click.echo(result.output[:4000])
        return

    click.secho(f"❌ {label} failed", fg="red", bold=True)
    for err in result.errors or []:
        click.echo(f"   {err}")
    if result.attempts > 1:
        click.echo(f"   (after {result.attempts} attempts)")
    sys.exit(1)


@click.group()
def packages() -> None:
    """Packages — detect, install, update, remove, audit, outdated, tree."""


# ── Detect ──────────────────────────────────────────────────────


@packages.command()
@click.option(
    "--cwd", type=click.Path(file_okay=False, path_type=Path), default=None,
    help="Project directory (default: current directory).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def detect(ctx: click.Context, cwd: Path | None, as_json: bool) -> None:
    """Show which package manager governs the project."""
    result = get_gateway(ctx).call("detect", {"cwd": cwd or Path.cwd()})

    if as_json:
        echo_json(result)
        return

    click.secho(f"📦 {result.manager}", fg="cyan", bold=True)
    click.echo(f"   Source:  {result.source}")
    if result.lock_file:
        click.echo(f"   🔒 Lock: {result.lock_file.name}")
    click.echo(f"   Version: {result.version or 'unknown'}")


# ── Act ─────────────────────────────────────────────────────────


@packages.command()
@click.argument("names", nargs=-1)
@click.option("--dev", "-D", is_flag=True, help="Save as a development dependency.")
@click.option("--global", "-g", "global_", is_flag=True, help="Install globally.")
@click.option("--production", is_flag=True, help="Skip dev dependencies (whole-project install).")
@click.option("--exact", "-E", is_flag=True, help="Save the exact version.")
@click.option("--force", is_flag=True, help="Force the install.")
@_common_options
@click.pass_context
def install(
    ctx: click.Context,
    names: tuple[str, ...],
    dev: bool,
    global_: bool,
    production: bool,
    exact: bool,
    force: bool,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Install NAMES, or the whole project when none are given."""
    params = _params(
        cwd, manager, timeout_ms,
        packages=list(names), dev=dev, production=production, exact=exact, force=force,
    )
    params["global"] = global_
    _run(ctx, "install", params, as_json)


@packages.command()
@click.argument("names", nargs=-1)
@click.option("--global", "-g", "global_", is_flag=True, help="Update global packages.")
@_common_options
@click.pass_context
def update(
    ctx: click.Context,
    names: tuple[str, ...],
    global_: bool,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Update NAMES, or everything when none are given."""
    params = _params(cwd, manager, timeout_ms, packages=list(names))
    params["global"] = global_
    _run(ctx, "update", params, as_json)


@packages.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--global", "-g", "global_", is_flag=True, help="Remove global packages.")
@_common_options
@click.pass_context
def remove(
    ctx: click.Context,
    names: tuple[str, ...],
    global_: bool,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Remove NAMES from the project."""
    params = _params(cwd, manager, timeout_ms, packages=list(names))
    params["global"] = global_
    _run(ctx, "remove", params, as_json)


@packages.command("clean-cache")
@_common_options
@click.pass_context
def clean_cache(
    ctx: click.Context,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Clear the package manager's cache."""
    _run(ctx, "cleanCache", _params(cwd, manager, timeout_ms), as_json)


# ── Observe ─────────────────────────────────────────────────────


@packages.command()
@click.option("--fix", is_flag=True, help="Apply available fixes.")
@click.option("--force", is_flag=True, help="Allow breaking fixes (npm).")
@click.option("--production", is_flag=True, help="Only production dependencies.")
@_common_options
@click.pass_context
def audit(
    ctx: click.Context,
    fix: bool,
    force: bool,
    production: bool,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Run a security audit of the project's dependencies."""
    params = _params(cwd, manager, timeout_ms, fix=fix, force=force, production=production)
    _run(ctx, "audit", params, as_json)


@packages.command()
@click.option("--global", "-g", "global_", is_flag=True, help="Check global packages.")
@click.option("--production", is_flag=True, help="Only production dependencies.")
@_common_options
@click.pass_context
def outdated(
    ctx: click.Context,
    global_: bool,
    production: bool,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """List dependencies with newer versions available."""
    params = _params(cwd, manager, timeout_ms, production=production)
    params["global"] = global_
    _run(ctx, "outdated", params, as_json)


@packages.command()
@click.option("--depth", type=click.IntRange(min=0), default=3, show_default=True,
              help="How many levels below the direct dependencies to show.")
@click.option("--production", is_flag=True, help="Only production dependencies.")
@_common_options
@click.pass_context
def tree(
    ctx: click.Context,
    depth: int,
    production: bool,
    cwd: Path | None,
    manager: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Print the installed dependency tree."""
    params = _params(cwd, manager, timeout_ms, depth=depth, production=production)
    _run(ctx, "dependencyTree", params, as_json)
