"""Command line access to the call-management appliance.

Usage:
    telos-vx operations                               # List the operation catalog
    telos-vx --host 10.0.0.5 --parser mypkg:parse call get_line 1
    telos-vx --host 10.0.0.5 --parser mypkg:parse call call_line 2 '"5551234"'
    telos-vx --host 10.0.0.5 --parser mypkg:parse watch line studio

Connection settings fall back to the ``TELOS_VX_*`` environment variables.
The line parser is loaded from ``--parser`` or ``TELOS_VX_PARSER``.
"""

from __future__ import annotations

import asyncio
import importlib
import json
import os
import sys
from dataclasses import replace
from typing import Any

import click
from pydantic import BaseModel

from .bus import Channel
from .client import VXClient
from .config import ClientConfig
from .log import configure_watchers
from .protocol.catalog import OPERATIONS
from .protocol.messages import LineParser


def parse_value(text: str) -> Any:
    """Parse a command line argument as JSON, falling back to the raw string."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def load_parser(path: str | None) -> LineParser:
    """Import a line parser given as ``module:attribute``."""
    if not path:
        raise click.UsageError("A line parser is required: pass --parser module:attr")

    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"Expected 'module:attr', got '{path}'", param_hint="--parser")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"Cannot import {module_name}: {e}", param_hint="--parser") from e

    parser = getattr(module, attr, None)
    if not callable(parser):
        raise click.BadParameter(f"{path} is not callable", param_hint="--parser")
    return parser


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _echo(value: Any, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(_jsonable(value), ensure_ascii=False, default=str))
    elif isinstance(value, dict):
        for name, item in value.items():
            click.echo(f"{name}: {item}")
    else:
        click.echo(str(_jsonable(value)))


@click.group()
@click.option("--host", default=None, help="Appliance address")
@click.option("--port", type=int, default=None, help="Control port (default 20518)")
@click.option("--studio", "studio_id", type=int, default=None, help="Studio to select (default 1)")
@click.option("--user", "username", default=None, help="Login user name")
@click.option("--password", default=None, help="Login password")
@click.option("--log", default=None, help="Watchers, e.g. error:warning:in:out:trace")
@click.option("--parser", "parser_path", default=None, help="Line parser as module:attr")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def main(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    studio_id: int | None,
    username: str | None,
    password: str | None,
    log: str | None,
    parser_path: str | None,
    as_json: bool,
) -> None:
    """Control a studio call-management appliance over its line protocol."""
    ctx.ensure_object(dict)
    config = ClientConfig.from_env(
        host=host,
        port=port,
        studio_id=studio_id,
        username=username,
        password=password,
        log=log,
    )
    # Log records go to stderr so results on stdout stay machine-readable
    configure_watchers(config.log or "error:warning", stream=sys.stderr)
    ctx.obj["config"] = replace(config, log=None)
    ctx.obj["parser_path"] = parser_path or os.getenv("TELOS_VX_PARSER")
    ctx.obj["json"] = as_json


@main.command("operations")
@click.pass_context
def operations(ctx: click.Context) -> None:
    """List the operation catalog."""
    if ctx.obj["json"]:
        entries = [
            {
                "name": spec.name,
                "verb": spec.verb,
                "namespace": spec.namespace,
                "requires_reply": spec.requires_reply,
                "requires_login": spec.requires_login,
                "requires_studio": spec.requires_studio,
            }
            for spec in OPERATIONS.values()
        ]
        click.echo(json.dumps(entries, indent=2))
        return

    click.echo(f"{'Operation':<18} {'Request':<28} {'Reply':<6} {'Gates':<12}")
    click.echo("-" * 66)
    for spec in OPERATIONS.values():
        gates = []
        if spec.requires_login:
            gates.append("login")
        if spec.requires_studio:
            gates.append("studio")
        request = f"{spec.verb} {spec.namespace}"
        reply = "yes" if spec.requires_reply else "no"
        click.echo(f"{spec.name:<18} {request:<28} {reply:<6} {','.join(gates) or '-':<12}")

    click.echo(f"\nTotal: {len(OPERATIONS)} operation(s)")


@main.command("call")
@click.argument("name", type=click.Choice(list(OPERATIONS)))
@click.argument("args", nargs=-1)
@click.pass_context
def call(ctx: click.Context, name: str, args: tuple[str, ...]) -> None:
    """Run one operation. ARGS are parsed as JSON when possible.

    Examples:

        telos-vx call get_server

        telos-vx call hold_line 3 true

        telos-vx call add_record '{"name": "Studio B", "number": "5551234"}'
    """
    config: ClientConfig = ctx.obj["config"]
    parser = load_parser(ctx.obj["parser_path"])
    values = [parse_value(arg) for arg in args]

    async def run() -> Any:
        spec = OPERATIONS[name]
        async with VXClient(config, parser=parser) as client:
            if not client.is_connected:
                return None
            if spec.requires_login or spec.requires_studio:
                if not await client.cc.login(config.username, config.password):
                    return None
            if spec.requires_studio:
                if not await client.studio.select_studio(config.studio_id):
                    return None
            return await client.call(name, *values)

    result = asyncio.run(run())
    if result is None or result is False:
        click.echo(f"{name} failed", err=True)
        sys.exit(1)
    _echo(result, ctx.obj["json"])


@main.command("watch")
@click.argument("channels", nargs=-1, type=click.Choice([c.value for c in Channel]))
@click.pass_context
def watch(ctx: click.Context, channels: tuple[str, ...]) -> None:
    """Print broadcast events until interrupted (all channels by default)."""
    config: ClientConfig = ctx.obj["config"]
    parser = load_parser(ctx.obj["parser_path"])
    as_json = ctx.obj["json"]

    async def run() -> bool:
        async with VXClient(config, parser=parser) as client:
            if not await client.connect_login_select():
                return False
            click.echo(f"Watching {config.host}:{config.port} (Ctrl+C to stop)", err=True)
            stop = Channel.DISCONNECTED.value
            watched = (*channels, stop) if channels else ()
            async for channel, payload in client.events.stream(*watched):
                if channel == stop:
                    click.echo("Connection closed", err=True)
                    break
                if as_json:
                    _echo({"channel": channel, "payload": _jsonable(payload)}, True)
                else:
                    click.echo(f"[{channel}] {_jsonable(payload)}")
        return True

    try:
        ok = asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)
        return
    if not ok:
        click.echo("Could not connect, log in and select the studio", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
