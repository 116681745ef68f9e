"""
safe-quorum CLI entry point.

Usage:
    safe-quorum [OPTIONS] COMMAND [ARGS]...
"""
from __future__ import annotations

import functools
import logging

import click
from rich.console import Console
from rich.table import Table

from . import __version__, proposals
from .chain import ChainClient, Web3ChainClient
from .config import SafeQuorumSettings, get_settings
from .exceptions import SafeQuorumError
from .logging_config import setup_logging
from .schemas import ProposeRequest, SubmitRequest
from .signatures import split_signatures
from .store import FileProposalStore, ProposalStore
from .tx_files import DEFAULT_BATCH_NAME, load_meta_transactions, write_tx_builder_json

console = Console()
logger = logging.getLogger(__name__)


def handle_errors(f):
    """Print core errors in red and exit with status 1."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except SafeQuorumError as e:
            logger.debug("Command failed", exc_info=True)
            console.print(f"[red]Error: {e.message}[/red]")
            raise click.exceptions.Exit(1) from e

    return wrapper


def _settings(ctx: click.Context) -> SafeQuorumSettings:
    return ctx.obj["settings"]


def _chain(ctx: click.Context) -> ChainClient:
    if ctx.obj.get("chain") is None:
        settings = _settings(ctx)
        ctx.obj["chain"] = Web3ChainClient(
            settings.rpc_url,
            expected_chain_id=settings.chain_id,
            timeout_seconds=settings.http_timeout_seconds,
            receipt_timeout_seconds=settings.receipt_timeout_seconds,
        )
    return ctx.obj["chain"]


def _store(ctx: click.Context) -> ProposalStore:
    if ctx.obj.get("store") is None:
        ctx.obj["store"] = FileProposalStore(_settings(ctx).cache_dir)
    return ctx.obj["store"]


def _multi_send(ctx: click.Context, override: str | None) -> str | None:
    return override or _settings(ctx).multi_send_address or None


def _print_result(result) -> None:
    if result.tx_hash is None:
        console.print("\n[bold blue]execTransaction (not sent)[/bold blue]\n")
        console.print_json(data=result.populated_tx, default=str)
        return
    if result.success:
        console.print(f"[green]✓ Executed in {result.tx_hash}[/green]")
    else:
        console.print(f"[red]Transaction {result.tx_hash} reverted[/red]")
    console.print(f"Block: {result.block_number}  Gas used: {result.gas_used}")


@click.group()
@click.version_option(version=__version__, message="%(prog)s %(version)s")
@click.option("--rpc-url", help="JSON-RPC endpoint (SAFE_QUORUM_RPC_URL)")
@click.option("--private-key", help="Owner/submitter key (SAFE_QUORUM_PRIVATE_KEY)")
@click.option("--cache-dir", help="Proposal cache directory (default: cli_cache)")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
@click.pass_context
def cli(ctx, rpc_url: str | None, private_key: str | None, cache_dir: str | None, verbose: int):
    """safe-quorum - collect owner signatures and execute Safe transactions."""
    ctx.ensure_object(dict)

    settings = get_settings()

    # Override with CLI options
    overrides = {}
    if rpc_url:
        overrides["rpc_url"] = rpc_url
    if private_key:
        overrides["private_key"] = private_key
    if cache_dir:
        overrides["cache_dir"] = cache_dir
    if verbose:
        overrides["log_level"] = "DEBUG" if verbose > 1 else "INFO"
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging(settings.log_level, json_format=settings.log_json)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("safe")
@click.option("--to", required=True, help="Target address")
@click.option("--value", default="0", show_default=True, help="Value in ETH")
@click.option("--data", default="0x", show_default=True, help="Calldata (hex)")
@click.option("--delegatecall", is_flag=True, help="Use a delegate call")
@click.option("--nonce", type=int, help="Nonce (default: current Safe nonce)")
@click.option("--on-chain-hash", is_flag=True, help="Trust only the Safe's getTransactionHash")
@click.pass_context
@handle_errors
def propose(ctx, safe, to, value, data, delegatecall, nonce, on_chain_hash):
    """Create a proposal for a single action."""
    request = ProposeRequest.parse(
        safe=safe,
        to=to,
        value=value,
        data=data,
        delegatecall=delegatecall,
        on_chain_hash=on_chain_hash,
    )
    proposal = proposals.create_proposal(
        _chain(ctx),
        _store(ctx),
        request.safe,
        [request.to_meta_transaction()],
        nonce=nonce,
        on_chain_only=request.on_chain_hash,
    )
    console.print(f"Safe transaction hash: [cyan]{proposal.safe_tx_hash}[/cyan]")


@cli.command("propose-multi")
@click.argument("safe")
@click.argument("tx_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--multi-send", help="MultiSend address override")
@click.option("--call-only", is_flag=True, help="Use MultiSendCallOnly")
@click.option("--nonce", type=int, help="Nonce (default: current Safe nonce)")
@click.option("--export", "export_path", type=click.Path(dir_okay=False),
              help="Write a transaction-builder file instead of proposing")
@click.option("--name", default=DEFAULT_BATCH_NAME, show_default=True, help="Batch name for --export")
@click.option("--description", help="Batch description for --export")
@click.option("--on-chain-hash", is_flag=True, help="Trust only the Safe's getTransactionHash")
@click.pass_context
@handle_errors
def propose_multi(ctx, safe, tx_file, multi_send, call_only, nonce, export_path,
                  name, description, on_chain_hash):
    """Create a proposal for a batch of actions from a JSON file."""
    actions = load_meta_transactions(tx_file)
    chain = _chain(ctx)

    if export_path:
        write_tx_builder_json(export_path, str(chain.chain_id()), actions, name, description)
        console.print(f"[green]✓ Exported {len(actions)} transactions to {export_path}[/green]")
        return

    proposal = proposals.create_proposal(
        chain,
        _store(ctx),
        safe,
        actions,
        nonce=nonce,
        multi_send=_multi_send(ctx, multi_send),
        call_only=call_only,
        on_chain_only=on_chain_hash,
    )
    console.print(f"Safe transaction hash: [cyan]{proposal.safe_tx_hash}[/cyan]")


@cli.command("show-proposal")
@click.argument("safe_tx_hash")
@click.option("--on-chain-hash", is_flag=True, help="Skip the local hash check")
@click.pass_context
@handle_errors
def show_proposal(ctx, safe_tx_hash, on_chain_hash):
    """Show a stored proposal and its signers."""
    status = proposals.show_proposal(
        _chain(ctx), _store(ctx), safe_tx_hash, verify=not on_chain_hash
    )
    proposal = status.proposal
    tx = proposal.tx

    console.print("\n[bold blue]Proposal[/bold blue]\n")
    console.print(f"Safe: [cyan]{proposal.safe}[/cyan]")
    console.print(f"Chain: {proposal.chain_id}")
    console.print(f"Hash: {proposal.safe_tx_hash}")

    table = Table(title="Transaction")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in tx.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)

    if status.signers:
        console.print("Signers:")
        for signer in status.signers:
            console.print(f"  [green]{signer}[/green]")
    else:
        console.print("[dim]No signatures collected[/dim]")

    if status.nonce_used:
        console.print(
            f"[yellow]Warning: nonce {tx.nonce} has already been used "
            f"(Safe nonce is {status.current_nonce})[/yellow]"
        )


@cli.command("sign-proposal")
@click.argument("safe_tx_hash")
@click.option("--typed", is_flag=True, help="Sign the raw hash (v 27/28) instead of eth_sign")
@click.option("--on-chain-hash", is_flag=True, help="Skip the local hash check")
@click.pass_context
@handle_errors
def sign_proposal(ctx, safe_tx_hash, typed, on_chain_hash):
    """Sign a stored proposal with the configured key."""
    signature = proposals.sign_proposal(
        _chain(ctx),
        _store(ctx),
        safe_tx_hash,
        _settings(ctx).private_key,
        typed=typed,
        verify=not on_chain_hash,
    )
    console.print(f"[green]✓ Signed by {signature.signer}[/green]")
    console.print(signature.hex)


@cli.command("submit-proposal")
@click.argument("safe_tx_hash")
@click.option("--signatures", help="Comma separated additional signatures")
@click.option("--gas-price", type=int, help="Gas price in wei")
@click.option("--gas-limit", type=int, help="Gas limit")
@click.option("--build-only", is_flag=True, help="Print the transaction instead of sending it")
@click.option("--on-chain-hash", is_flag=True, help="Skip the local hash check")
@click.pass_context
@handle_errors
def submit_proposal(ctx, safe_tx_hash, signatures, gas_price, gas_limit, build_only,
                    on_chain_hash):
    """Execute a stored proposal once enough owners signed."""
    request = SubmitRequest.parse(
        safe_tx_hash=safe_tx_hash,
        signatures=signatures,
        gas_price=gas_price,
        gas_limit=gas_limit,
        build_only=build_only,
        on_chain_hash=on_chain_hash,
    )
    result = proposals.submit_proposal(
        _chain(ctx), _store(ctx), request, _settings(ctx).private_key
    )
    _print_result(result)


@cli.command("submit-tx")
@click.argument("safe")
@click.option("--to", required=True, help="Target address")
@click.option("--value", default="0", show_default=True, help="Value in ETH")
@click.option("--data", default="0x", show_default=True, help="Calldata (hex)")
@click.option("--delegatecall", is_flag=True, help="Use a delegate call")
@click.option("--signatures", help="Comma separated owner signatures")
@click.option("--gas-price", type=int, help="Gas price in wei")
@click.option("--gas-limit", type=int, help="Gas limit")
@click.option("--build-only", is_flag=True, help="Print the transaction instead of sending it")
@click.option("--on-chain-hash", is_flag=True, help="Trust only the Safe's getTransactionHash")
@click.pass_context
@handle_errors
def submit_tx(ctx, safe, to, value, data, delegatecall, signatures, gas_price, gas_limit,
              build_only, on_chain_hash):
    """Execute a single action directly with the given signatures."""
    request = ProposeRequest.parse(
        safe=safe,
        to=to,
        value=value,
        data=data,
        delegatecall=delegatecall,
        on_chain_hash=on_chain_hash,
    )
    result = proposals.submit_tx(
        _chain(ctx),
        request.safe,
        request.to_meta_transaction(),
        split_signatures(signatures),
        _settings(ctx).private_key,
        on_chain_only=request.on_chain_hash,
        gas_limit=gas_limit,
        gas_price=gas_price,
        build_only=build_only,
    )
    _print_result(result)


@cli.command("execute-custom-proposal")
@click.argument("safe")
@click.argument("tx_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--multi-send", help="MultiSend address override")
@click.option("--gas-price", type=int, help="Gas price in wei")
@click.option("--gas-limit", type=int, help="Gas limit")
@click.option("--on-chain-hash", is_flag=True, help="Trust only the Safe's getTransactionHash")
@click.pass_context
@handle_errors
def execute_custom_proposal(ctx, safe, tx_file, multi_send, gas_price, gas_limit, on_chain_hash):
    """Propose, sign and execute a batch from a JSON file in one step."""
    result = proposals.execute_custom_proposal(
        _chain(ctx),
        _store(ctx),
        safe,
        load_meta_transactions(tx_file),
        _settings(ctx).private_key,
        multi_send=_multi_send(ctx, multi_send),
        on_chain_only=on_chain_hash,
        gas_limit=gas_limit,
        gas_price=gas_price,
    )
    _print_result(result)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
