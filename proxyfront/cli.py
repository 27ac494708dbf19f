"""CLI for proxyfront - deploy, call and administer upgradeable proxies."""

from __future__ import annotations

import functools
import json
import os
from pathlib import Path
from typing import Any

import click

from proxyfront import __version__, abi, slots
from proxyfront.errors import Revert
from proxyfront.proxy import PROXY_KIND, ProxyHandle
from proxyfront.runtime import DB_ENV_VAR, build_host

# Attached value must fit in a uint256
VALUE_RANGE = click.IntRange(min=0, max=abi.MAX_UINT256)


def _coerce(abi_type: str, text: str) -> Any:
    """Convert a command-line string into a value of the given ABI type."""
    if abi_type == "uint256":
        try:
            return int(text, 0)
        except ValueError as e:
            raise click.BadParameter(f"Not an integer: {text}") from e
    if abi_type == "bool":
        if text.lower() not in ("true", "false", "1", "0"):
            raise click.BadParameter(f"Not a bool: {text}")
        return text.lower() in ("true", "1")
    if abi_type == "bytes":
        return abi.parse_hex(text)
    return text


def _format_value(value: Any) -> str:
    if isinstance(value, bytes):
        return abi.to_hex(value)
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _handle(ctx: click.Context, address: str) -> ProxyHandle:
    host = ctx.obj["host"]
    if host.code_kind(address) != PROXY_KIND:
        raise click.ClickException(f"No proxy deployed at {address}")
    return ProxyHandle(host=host, address=address.lower())


@click.group()
@click.version_option(version=__version__, prog_name="proxyfront")
@click.option(
    "--db",
    "db_path",
    envvar=DB_ENV_VAR,
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="State database (defaults to ~/.proxyfront/state.db)",
)
@click.pass_context
def main(ctx: click.Context, db_path: Path | None) -> None:
    """proxyfront - upgradeable proxy fronts over swappable logic.

    A proxy keeps its admin and active logic in fixed storage slots and
    forwards every other call to the logic.
    """
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


def _host_command(func):
    """Give a command a lazily built host and turn reverts into CLI errors."""

    @functools.wraps(func)
    @click.pass_context
    def wrapper(ctx: click.Context, *args: Any, **kwargs: Any) -> Any:
        if "host" not in ctx.obj:
            host = build_host(ctx.obj["db_path"])
            ctx.obj["host"] = host
            ctx.call_on_close(host.state.close)
        try:
            return func(ctx, *args, **kwargs)
        except Revert as e:
            raise click.ClickException(f"{type(e).__name__}: {e}") from e
        except abi.AbiError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


@main.command()
@click.option("--port", default=8000, help="Port to run the broker on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx: click.Context, port: int, host: str, reload: bool) -> None:
    """Start the proxyfront HTTP broker server."""
    import uvicorn

    if ctx.obj["db_path"] is not None:
        os.environ[DB_ENV_VAR] = str(ctx.obj["db_path"])

    click.echo(f"Starting proxyfront broker on {host}:{port}")
    uvicorn.run(
        "proxyfront.broker:app",
        host=host,
        port=port,
        reload=reload,
    )


@main.command("deploy-logic")
@click.argument("kind")
@click.option("--sender", "-s", required=True, help="Deploying account")
@_host_command
def deploy_logic(ctx: click.Context, kind: str, sender: str) -> None:
    """Deploy a registered logic component.

    \b
    Example:
        proxyfront deploy-logic counter-v1 --sender 0x...
    """
    host = ctx.obj["host"]
    if kind == PROXY_KIND or kind not in host.kinds:
        available = ", ".join(k for k in host.kinds if k != PROXY_KIND)
        raise click.ClickException(f"Unknown logic kind '{kind}' (available: {available})")

    address = host.deploy(kind, sender=sender)
    click.echo(address)


@main.command()
@click.argument("logic")
@click.option("--admin", "-a", required=True, help="Initial administrator")
@click.option("--sender", "-s", required=True, help="Deploying account")
@click.option("--setup", default="0x", help="Hex payload delegated once to the logic")
@click.option("--value", default=0, type=VALUE_RANGE, help="Value attached to construction")
@_host_command
def deploy(ctx: click.Context, logic: str, admin: str, sender: str, setup: str, value: int) -> None:
    """Deploy a proxy front in front of LOGIC.

    \b
    Example:
        proxyfront deploy 0xLOGIC --admin 0xADMIN --sender 0xADMIN
    """
    proxy = ProxyHandle.deploy(
        ctx.obj["host"],
        logic,
        admin,
        abi.parse_hex(setup),
        sender=sender,
        value=value,
    )
    click.echo(proxy.address)


@main.command()
@click.argument("proxy")
@click.argument("signature", required=False)
@click.argument("args", nargs=-1)
@click.option("--sender", "-s", required=True, help="Calling account")
@click.option("--value", default=0, type=VALUE_RANGE, help="Attached value")
@click.option("--raw", "raw_payload", default=None, help="Send this hex payload instead of SIGNATURE")
@click.option("--returns", "-r", default="", help="Comma-separated return types to decode")
@click.option("--static", "static", is_flag=True, help="Evaluate read-only")
@_host_command
def call(
    ctx: click.Context,
    proxy: str,
    signature: str | None,
    args: tuple[str, ...],
    sender: str,
    value: int,
    raw_payload: str | None,
    returns: str,
    static: bool,
) -> None:
    """Call PROXY with SIGNATURE and ARGS.

    \b
    Example:
        proxyfront call 0xPROXY "increment()" --sender 0x... --returns uint256
        proxyfront call 0xPROXY "initialize(uint256)" 5 --sender 0x...
    """
    handle = _handle(ctx, proxy)

    if raw_payload is not None:
        payload = abi.parse_hex(raw_payload)
    elif signature:
        _, types = abi.parse_signature(signature)
        if len(types) != len(args):
            raise click.ClickException(f"{signature} takes {len(types)} arguments, got {len(args)}")
        payload = abi.encode_call(signature, *(_coerce(t, a) for t, a in zip(types, args)))
    else:
        raise click.ClickException("Provide a SIGNATURE or --raw payload")

    if static:
        result = handle.static_call(payload, sender=sender)
    else:
        result = handle.call(payload, sender=sender, value=value)

    if returns:
        for item in abi.decode(returns.split(","), result):
            click.echo(_format_value(item))
    else:
        click.echo(abi.to_hex(result))


@main.command()
@click.argument("proxy")
@click.argument("new_logic")
@click.option("--sender", "-s", required=True, help="Admin account")
@click.option("--call", "setup", default=None, help="Hex payload delegated to the new logic")
@click.option("--value", default=0, type=VALUE_RANGE, help="Value attached to the setup call")
@_host_command
def upgrade(ctx: click.Context, proxy: str, new_logic: str, sender: str, setup: str | None, value: int) -> None:
    """Point PROXY at NEW_LOGIC (admin only)."""
    handle = _handle(ctx, proxy)
    if setup is None:
        handle.upgrade_to(new_logic, sender=sender)
    else:
        handle.upgrade_to_and_call(new_logic, abi.parse_hex(setup), sender=sender, value=value)
    click.echo(f"Upgraded {handle.address} to {handle.implementation}")


@main.command("change-admin")
@click.argument("proxy")
@click.argument("new_admin")
@click.option("--sender", "-s", required=True, help="Current admin account")
@_host_command
def change_admin(ctx: click.Context, proxy: str, new_admin: str, sender: str) -> None:
    """Transfer PROXY's administration to NEW_ADMIN (admin only)."""
    handle = _handle(ctx, proxy)
    handle.change_admin(new_admin, sender=sender)
    click.echo(f"Admin of {handle.address} is now {handle.admin}")


@main.command()
@click.argument("proxy")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
@_host_command
def state(ctx: click.Context, proxy: str, as_json: bool) -> None:
    """Show PROXY's implementation and admin."""
    proxy_state = _handle(ctx, proxy).state()
    if as_json:
        click.echo(json.dumps(proxy_state.model_dump(), indent=2))
        return
    click.echo(f"Proxy:          {proxy_state.address}")
    click.echo(f"Implementation: {proxy_state.implementation}")
    click.echo(f"Admin:          {proxy_state.admin}")


@main.command()
@click.option("--emitter", "-e", default=None, help="Only events from this address")
@click.option("--name", "-n", default=None, help="Only events with this name")
@_host_command
def events(ctx: click.Context, emitter: str | None, name: str | None) -> None:
    """List emitted events, oldest first."""
    entries = ctx.obj["host"].events(emitter=emitter, name=name)
    if not entries:
        click.echo("No events found.")
        return
    for entry in entries:
        args = ", ".join(f"{k}={v}" for k, v in entry.args.items())
        click.echo(f"#{entry.seq} {entry.emitter} {entry.name}({args})")


@main.command("slots")
def show_slots() -> None:
    """Print the fixed storage slots reserved by the proxy."""
    click.echo(f"implementation: {slots.IMPLEMENTATION_LABEL}")
    click.echo(f"  0x{slots.IMPLEMENTATION_SLOT:064x}")
    click.echo(f"admin:          {slots.ADMIN_LABEL}")
    click.echo(f"  0x{slots.ADMIN_SLOT:064x}")


if __name__ == "__main__":
    main()
