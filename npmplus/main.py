"""
npmplus — CLI entrypoint.

Usage:
    npmplus --help
    npmplus config
    npmplus packages detect
    npmplus packages install lodash --dev
    npmplus registry search react --limit 5
"""

from __future__ import annotations

import json
from pathlib import Path

import click
import yaml

from npmplus import __version__
from npmplus.core.observability.logging_config import setup_from_env


@click.group()
@click.version_option(version=__version__, prog_name="npmplus")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Path to npmplus.yml (default: $NPMPLUS_CONFIG, then search upwards).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: Path | None,
) -> None:
    """npmplus — search, install, audit and license tooling for npm, yarn and pnpm."""
    obj = ctx.ensure_object(dict)
    obj.update(verbose=verbose, quiet=quiet, debug=debug, config_path=config_path)
    setup_from_env(debug, verbose, quiet)


@cli.command("config")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show_config(ctx: click.Context, as_json: bool) -> None:
    """Show the effective settings after file and environment overrides."""
    from npmplus.core.config.loader import ConfigError, find_config_file, load_settings
    from npmplus.ui.cli.common import fail

    config_path: Path | None = ctx.obj.get("config_path")
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        fail(str(e), code=2)

    data = settings.model_dump(mode="json")
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    source = config_path or find_config_file()
    click.secho(f"⚙️  {source or 'built-in defaults'}", fg="cyan", bold=True, err=True)
    click.echo(yaml.safe_dump(data, sort_keys=False).rstrip())


# ── Register sub-groups ─────────────────────────────────────────

from npmplus.ui.cli.packages import packages  # noqa: E402
from npmplus.ui.cli.registry import registry  # noqa: E402

cli.add_command(packages)
cli.add_command(registry)


if __name__ == "__main__":
    cli()
