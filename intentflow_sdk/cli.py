"""
Command line interface for the IntentFlow SDK.

    intentflow status
    intentflow types
    intentflow assets [--owner ADDR] [--remote]
    intentflow mint TYPE OWNER
    intentflow transfer ASSET_ID FROM TO
    intentflow upgrade ASSET_ID OWNER
    intentflow tx HASH
"""
import json
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from .client import IntentClient
from .exceptions import IntentFlowError
from .ledger import ASSET_TYPES, FileLedgerStore
from .models import ConnectionState
from .version import __version__

app = typer.Typer(
    help="Inspect the Anoma endpoint and manage the local Glitch ledger.",
    no_args_is_help=True,
)


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"intentflow {__version__}")
        raise typer.Exit()


@contextmanager
def _session(ctx: typer.Context) -> Iterator[IntentClient]:
    """Open a client for one command, turning SDK errors into exit code 1."""
    try:
        store = FileLedgerStore(ctx.obj["ledger"])
        with IntentClient(rpc_url=ctx.obj["rpc"], ledger_store=store) as client:
            yield client
    except (IntentFlowError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    rpc: Optional[str] = typer.Option(
        None, "--rpc", help="RPC endpoint (default: INTENTFLOW_RPC_ENDPOINT or testnet)"
    ),
    ledger: Optional[str] = typer.Option(
        None, "--ledger", help="Ledger file (default: INTENTFLOW_LEDGER_PATH)"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"rpc": rpc, "ledger": ledger}


@app.command()
def status(ctx: typer.Context):
    """Probe the endpoint."""
    with _session(ctx) as client:
        result = client.connect()
        _echo_json(result.model_dump(mode="json"))
        if result.state is not ConnectionState.CONNECTED:
            raise typer.Exit(code=1)


@app.command()
def types():
    """List mintable Glitch types."""
    _echo_json({type_id: t.model_dump(mode="json") for type_id, t in ASSET_TYPES.items()})


@app.command()
def assets(
    ctx: typer.Context,
    owner: Optional[str] = typer.Option(None, "--owner", help="Only show this owner's Glitches"),
    remote: bool = typer.Option(False, "--remote", help="Refresh the owner's Glitches from the chain first"),
):
    """List Glitches in the local ledger."""
    if remote and not owner:
        typer.echo("--remote requires --owner", err=True)
        raise typer.Exit(code=2)

    with _session(ctx) as client:
        if remote:
            client.connect()
            client.refresh_assets(owner)
        _echo_json([a.model_dump(mode="json") for a in client.list_assets(owner)])


@app.command()
def mint(ctx: typer.Context, type_id: str, owner: str):
    """Mint a Glitch into the local ledger."""
    with _session(ctx) as client:
        asset = client.mint_asset(type_id, owner=owner)
        _echo_json(asset.model_dump(mode="json"))


@app.command()
def transfer(ctx: typer.Context, asset_id: str, from_owner: str, to_owner: str):
    """Transfer a Glitch."""
    with _session(ctx) as client:
        ok = client.transfer_asset(asset_id, to_owner, from_owner=from_owner)
    if not ok:
        typer.echo("not transferred: unknown asset or owner mismatch")
        raise typer.Exit(code=1)
    typer.echo("transferred")


@app.command()
def upgrade(ctx: typer.Context, asset_id: str, owner: str):
    """Upgrade a Glitch by one level."""
    with _session(ctx) as client:
        ok = client.upgrade_asset(asset_id, owner=owner)
    if not ok:
        typer.echo("not upgraded: unknown asset or owner mismatch")
        raise typer.Exit(code=1)
    typer.echo("upgraded")


@app.command()
def tx(ctx: typer.Context, tx_hash: str):
    """Query a transaction's status."""
    with _session(ctx) as client:
        connection = client.connect()
        if connection.state is not ConnectionState.CONNECTED:
            typer.echo(f"Cannot reach endpoint: {connection.error}", err=True)
            raise typer.Exit(code=1)
        result = client.connection.query_status(tx_hash)
        _echo_json(result.model_dump(mode="json"))


if __name__ == "__main__":
    app()
