"""
Shared CLI plumbing — gateway construction and result printing.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import BaseModel

from npmplus.core.services.gateway import PackageGateway


def get_gateway(ctx: click.Context) -> PackageGateway:
    """The gateway for this invocation, built on first use."""
    obj = ctx.ensure_object(dict)
    gateway = obj.get("gateway")
    if gateway is not None:
        return gateway

    from npmplus.core.config.loader import ConfigError, load_settings
    from npmplus.core.services.gateway import build_gateway

    config_path: Path | None = obj.get("config_path")
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(2)

    # Short-lived process: no background sweeper
    gateway = build_gateway(settings, start_sweeper=False)
    obj["gateway"] = gateway
    ctx.call_on_close(gateway.close)
    return gateway


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


def echo_json(value: Any) -> None:
    click.echo(json.dumps(to_jsonable(value), indent=2))


def fail(message: str, code: int = 1) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(code)
