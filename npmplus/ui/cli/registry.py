"""
CLI commands for registry lookups and license inspection.

Thin wrappers over ``PackageGateway.call``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from npmplus.adapters.registry.http import RegistryError
from npmplus.ui.cli.common import echo_json, fail, get_gateway

_SEVERITY_COLOR = {"critical": "red", "high": "red", "moderate": "yellow", "low": "white", "info": "white"}


def _call(ctx: click.Context, operation: str, params: dict[str, Any]) -> Any:
    try:
        return get_gateway(ctx).call(operation, params)
    except RegistryError as e:
        fail(str(e))


def _ref(name: str, version: str | None) -> dict[str, Any]:
    params: dict[str, Any] = {"name": name}
    if version:
        params["version"] = version
    return params


def _kb(size: int) -> str:
    return f"{size / 1024:.1f} kB"


@click.group()
def registry() -> None:
    """Registry — search, package info, sizes, downloads, advisories, licenses."""


@registry.command()
@click.argument("query")
@click.option("--limit", "-n", type=click.IntRange(1, 250), default=25, help="Maximum results.")
@click.option("--offset", type=click.IntRange(0), default=0, help="Results to skip.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int, offset: int, as_json: bool) -> None:
    """Search the npm registry."""
    results = _call(ctx, "search", {"query": query, "limit": limit, "offset": offset})

    if as_json:
        echo_json(results)
        return

    if not results:
        click.secho(f"No packages match '{query}'", fg="yellow")
        return

    click.secho(f"🔎 {len(results)} result(s) for '{query}':", fg="cyan", bold=True)
    for r in results:
        click.echo(f"   {r.name:<30} {r.version:<12} {r.description[:60]}")


@registry.command()
@click.argument("name")
@click.option("--version", "version", default=None, help="Package version (default: latest).")
@click.option("--no-downloads", is_flag=True, help="Skip download counts.")
@click.option("--no-bundle", is_flag=True, help="Skip bundle size.")
@click.option("--no-security", is_flag=True, help="Skip the vulnerability check.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(
    ctx: click.Context,
    name: str,
    version: str | None,
    no_downloads: bool,
    no_bundle: bool,
    no_security: bool,
    as_json: bool,
) -> None:
    """Show package metadata."""
    params = _ref(name, version)
    params.update(
        includeDownloads=not no_downloads,
        includeBundle=not no_bundle,
        includeSecurity=not no_security,
    )
    pkg = _call(ctx, "packageInfo", params)

    if as_json:
        echo_json(pkg)
        return

    click.secho(f"📦 {pkg.name}@{pkg.version}", fg="cyan", bold=True)
    if pkg.description:
        click.echo(f"   {pkg.description}")
    click.echo(f"   License: {pkg.license or 'Unknown'}")
    if pkg.homepage:
        click.echo(f"   Homepage: {pkg.homepage}")
    click.echo(f"   Dependencies: {len(pkg.dependencies)}")
    if pkg.download_stats:
        click.echo(f"   Weekly downloads: {pkg.download_stats.downloads:,}")
    if pkg.bundle_size and pkg.bundle_size.gzip is not None:
        click.echo(f"   Bundle: {_kb(pkg.bundle_size.size)} ({_kb(pkg.bundle_size.gzip)} gzip)")
    elif pkg.bundle_size:
        click.echo(f"   Unpacked: {_kb(pkg.bundle_size.size)}")
    if pkg.security:
        if pkg.security.has_vulnerabilities:
            click.secho(
                f"   🚨 {len(pkg.security.vulnerabilities)} known vulnerability(ies), "
                f"worst: {pkg.security.severity}",
                fg=_SEVERITY_COLOR[pkg.security.severity],
            )
        else:
            click.secho("   ✅ No known vulnerabilities", fg="green")


@registry.command("bundle-size")
@click.argument("name")
@click.option("--version", "version", default=None, help="Package version (default: latest).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def bundle_size(ctx: click.Context, name: str, version: str | None, as_json: bool) -> None:
    """Show minified and gzipped bundle size (unpacked size as a fallback)."""
    size = _call(ctx, "bundleSize", _ref(name, version))

    if as_json:
        echo_json(size)
        return

    if size.source == "registry":
        click.secho("   Bundlephobia unavailable; showing the registry tarball size", fg="yellow", err=True)
        click.echo(f"   Unpacked: {_kb(size.size)}")
        if size.file_count is not None:
            click.echo(f"   Files:    {size.file_count}")
    else:
        click.echo(f"   Minified: {_kb(size.size)}")
        click.echo(f"   Gzipped:  {_kb(size.gzip or 0)}")
    click.echo(f"   Dependencies: {size.dependency_count}")


@registry.command()
@click.argument("name")
@click.option(
    "--period",
    type=click.Choice(["last-day", "last-week", "last-month", "last-year"]),
    default="last-week",
    help="Counting window.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def downloads(ctx: click.Context, name: str, period: str, as_json: bool) -> None:
    """Show download counts."""
    stats = _call(ctx, "downloadStats", {"name": name, "period": period})

    if as_json:
        echo_json(stats)
        return

    click.echo(f"   {name}: {stats.downloads:,} downloads ({stats.start} → {stats.end})")


@registry.command()
@click.argument("name")
@click.option("--version", "version", default=None, help="Package version (default: any).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def vulns(ctx: click.Context, name: str, version: str | None, as_json: bool) -> None:
    """Check GitHub and OSV advisories for a package."""
    security = _call(ctx, "checkVulnerability", _ref(name, version))

    if as_json:
        echo_json(security)
        return

    if not security.has_vulnerabilities:
        click.secho(f"✅ No known vulnerabilities for {name}", fg="green")
        return

    click.secho(
        f"🚨 {len(security.vulnerabilities)} vulnerability(ies) for {name}",
        fg="red", bold=True,
    )
    for v in security.vulnerabilities:
        click.secho(f"   [{v.severity}] ", fg=_SEVERITY_COLOR[v.severity], nl=False)
        click.echo(f"{v.id} {v.title}")
        if v.recommendation:
            click.echo(f"      {v.recommendation}")


@registry.command()
@click.argument("name")
@click.option("--version", "version", default=None, help="Package version (default: latest).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def license(ctx: click.Context, name: str, version: str | None, as_json: bool) -> None:
    """Show the license a published package declares."""
    entry = _call(ctx, "checkLicense", _ref(name, version))

    if as_json:
        echo_json(entry)
        return

    click.echo(f"   {entry.name}@{entry.version}: {entry.license}")


@registry.command()
@click.option(
    "--cwd", type=click.Path(file_okay=False, path_type=Path), default=None,
    help="Project directory (default: current directory).",
)
@click.option("--production", is_flag=True, help="Skip devDependencies.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def licenses(ctx: click.Context, cwd: Path | None, production: bool, as_json: bool) -> None:
    """List licenses of the project's installed dependencies."""
    try:
        report = get_gateway(ctx).call(
            "listLicenses", {"cwd": cwd or Path.cwd(), "production": production},
        )
    except (FileNotFoundError, ValueError) as e:
        fail(str(e))

    if as_json:
        echo_json(report)
        return

    for lic, pkgs in sorted(report.by_license.items()):
        click.secho(f"📄 {lic} ({len(pkgs)})", fg="cyan", bold=True)
        for spec in pkgs:
            click.echo(f"   {spec}")
    if report.missing:
        click.secho(f"⚠️  Not installed: {', '.join(report.missing)}", fg="yellow")
