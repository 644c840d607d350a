"""
CounterLink CLI

Command-line front end for the counter dapp core. The local-key wallet
plays the part of the browser wallet extension: every prompt it would show
is asked with click.confirm (or auto-approved with --yes).

Commands:
  keygen          - Create a local wallet key
  whoami          - Show current wallet address
  info            - Show network / contract configuration
  status          - Show the session snapshot
  count           - Read the counter (no wallet needed)
  increment       - Increment the counter
  receipt         - Look up a transaction receipt
  switch-network  - Switch the wallet to the configured network
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Optional

import click

from .chain.rpc import RpcError
from .config import Settings, load_settings
from .context import DappContext
from .errors import CounterLinkError, ReceiptFailedOnChainError
from .utils import format_address, format_balance, format_tx_hash, is_valid_tx_hash
from .wallet.keys import generate_eoa, get_address, save_private_key
from .wallet.local import LocalKeyWallet


# ============ Constants ============

VERSION = "0.3.0"


# ============ Banner ============


def _print_banner() -> None:
    click.echo(
        click.style("  ◆ ", fg="cyan")
        + click.style("C O U N T E R L I N K", fg="bright_white", bold=True)
        + click.style(f"  v{VERSION}", dim=True)
    )
    click.echo()


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name="counterlink")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--contract",
    envvar="COUNTER_CONTRACT_ADDRESS",
    default=None,
    help="Counter contract address",
)
@click.option(
    "--rpc-url",
    envvar="POLYGON_AMOY_RPC_URL",
    default=None,
    help="Primary RPC URL override",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, contract: Optional[str], rpc_url: Optional[str]) -> None:
    """CounterLink: wallet session and counter transactions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["contract"] = contract
    ctx.obj["rpc_url"] = rpc_url

    if ctx.invoked_subcommand is None:
        _print_banner()
        click.echo(ctx.get_help())


def _settings(ctx: click.Context) -> Settings:
    try:
        settings = load_settings()
    except ValueError as exc:
        raise click.ClickException(str(exc))
    if ctx.obj.get("rpc_url"):
        settings = replace(settings, chain=settings.chain.with_rpc_url(ctx.obj["rpc_url"]))
    if ctx.obj.get("contract"):
        settings = replace(settings, contract_address=ctx.obj["contract"])
    return settings


def _wallet_address(settings: Settings) -> Optional[str]:
    if not settings.private_key:
        return None
    try:
        return get_address(settings.private_key)
    except ValueError:
        return None


def _confirm_prompt(action: str, detail: dict) -> bool:
    """
    Wallet approval prompt on the terminal.

    click.confirm blocks, so the event loop is suspended while the user
    answers. Nothing else runs in a one-shot command meanwhile.
    """
    labels = {
        "connect": "Connect wallet {address} to counterlink?",
        "switch_chain": "Switch wallet to chain {chainId}?",
        "add_chain": "Add network {chainName} ({chainId}) to the wallet?",
        "send_transaction": "Sign and send transaction to {to}?",
    }
    template = labels.get(action, action)
    try:
        question = template.format(**detail)
    except KeyError:
        question = template
    return click.confirm(question, default=True)


@asynccontextmanager
async def _open_dapp(settings: Settings, yes: bool, with_wallet: bool = True) -> AsyncIterator[DappContext]:
    """Initialized DappContext; the local wallet (if any) is closed with it."""
    try:
        abi = settings.load_contract_abi()
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(f"Cannot load contract ABI: {exc}")

    wallet = None
    if with_wallet and _wallet_address(settings):
        wallet = LocalKeyWallet.for_chain(
            settings.private_key,
            settings.chain,
            approve=None if yes else _confirm_prompt,
        )

    dapp = DappContext(
        settings.chain,
        contract_address=settings.contract_address,
        abi=abi,
        wallet=wallet,
        poll_interval=settings.poll_interval,
    )
    try:
        async with dapp:
            yield dapp
    finally:
        if wallet is not None:
            await wallet.aclose()


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except CounterLinkError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)
    except RpcError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)


# ============ Identity ============


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing key")
@click.pass_context
def keygen(ctx: click.Context, force: bool) -> None:
    """Create a local wallet key."""
    address = _wallet_address(_settings(ctx))
    if address and not force:
        click.echo(f"Wallet already exists: {address}")
        click.echo("Use --force to replace it.")
        sys.exit(1)

    private_key, address = generate_eoa()
    env_path = save_private_key(private_key)
    click.secho("Wallet created.", fg="green")
    click.echo(f"  Address: {address}")
    click.echo(f"  Saved:   {env_path}")


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show current wallet identity."""
    address = _wallet_address(_settings(ctx))
    if address is None:
        click.echo("No wallet found.")
        click.echo("Run 'counterlink keygen' to create one.")
        sys.exit(1)
    click.echo(f"Address: {address}")


# ============ Info ============


@cli.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """Show network and contract configuration."""
    settings = _settings(ctx)
    chain = settings.chain
    _print_banner()

    rows = [
        ("Network", f"{chain.chain_name} ({chain.chain_id} / {chain.chain_id_hex})"),
        ("RPC", chain.primary_rpc_url),
        ("Explorer", chain.primary_explorer_url or "(none)"),
        ("Currency", f"{chain.native_currency.name} ({chain.native_currency.symbol})"),
        ("Contract", settings.contract_address or "(not configured)"),
        ("ABI", str(settings.abi_path) if settings.abi_path else "built-in"),
        ("Wallet", _wallet_address(settings) or "not initialized  (run: counterlink keygen)"),
    ]

    for label, value in rows:
        click.echo(click.style(f"  {label + ':':<10} ", dim=True) + value)


# ============ Session ============


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Approve wallet prompts automatically")
@click.pass_context
def status(ctx: click.Context, yes: bool) -> None:
    """Show the current session."""
    settings = _settings(ctx)

    async def _status() -> None:
        async with _open_dapp(settings, yes) as dapp:
            session = dapp.session
            symbol = settings.chain.native_currency.symbol
            click.echo(f"  Wallet:     {'available' if dapp.is_wallet_available() else 'not found (read-only)'}")
            click.echo(f"  Connected:  {session.connected}")
            if session.account:
                balance = await dapp.get_balance()
                click.echo(f"  Account:    {format_address(session.account)}  {dapp.address_url(session.account)}")
                click.echo(f"  Balance:    {format_balance(balance)} {symbol}")
            if session.network is not None:
                marker = "correct" if session.network.is_correct_network else "WRONG"
                click.echo(f"  Network:    {session.network.chain_id} ({marker}, expected {session.network.expected_network})")
            click.echo(f"  Counter:    {session.counter_value}")
            if session.error:
                click.secho(f"  Error:      {session.error}", fg="yellow")

    _run(_status())


@cli.command()
@click.pass_context
def count(ctx: click.Context) -> None:
    """Read the current counter value."""
    settings = _settings(ctx)

    async def _count() -> None:
        async with _open_dapp(settings, yes=True, with_wallet=False) as dapp:
            value = await dapp.provider.read_counter()
            click.echo(f"Counter: {value}")

    _run(_count())


@cli.command()
@click.argument("tx_hash")
@click.pass_context
def receipt(ctx: click.Context, tx_hash: str) -> None:
    """Look up the receipt of TX_HASH."""
    if not is_valid_tx_hash(tx_hash):
        raise click.BadParameter(f"not a transaction hash: {tx_hash}", param_hint="TX_HASH")
    settings = _settings(ctx)

    async def _receipt() -> None:
        async with _open_dapp(settings, yes=True, with_wallet=False) as dapp:
            found = await dapp.get_receipt(tx_hash)
            click.echo(f"  TX:       {format_tx_hash(tx_hash)}")
            if found is None:
                click.secho("  Status:   pending or unknown", fg="yellow")
                return
            if found.success:
                click.secho("  Status:   confirmed", fg="green")
            else:
                click.secho("  Status:   failed", fg="red")
            click.echo(f"  Block:    {found.block_number}")
            click.echo(f"  Gas used: {found.gas_used}")
            if found.new_count is not None:
                click.echo(f"  Counter:  {found.new_count}")
            click.echo(f"  {dapp.transaction_url(tx_hash)}")

    _run(_receipt())


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Approve wallet prompts automatically")
@click.option("--wait/--no-wait", default=True, help="Wait for the receipt")
@click.option("--timeout", default=120.0, type=float, help="Receipt wait limit in seconds")
@click.pass_context
def increment(ctx: click.Context, yes: bool, wait: bool, timeout: float) -> None:
    """Increment the counter from the local wallet."""
    settings = _settings(ctx)

    async def _increment() -> None:
        async with _open_dapp(settings, yes) as dapp:
            if not dapp.session.connected:
                await dapp.connect()
            click.echo(f"  Account: {dapp.session.account}")
            click.echo(f"  Counter: {dapp.session.counter_value}")

            result = await dapp.increment_counter()
            click.echo(f"  TX:      {format_tx_hash(result.tx_hash)}")
            click.echo(f"           {dapp.transaction_url(result.tx_hash)}")
            if not wait:
                return

            try:
                receipt = await asyncio.wait_for(dapp.await_receipt(), timeout=timeout)
            except asyncio.TimeoutError:
                click.secho(f"Still pending after {timeout:.0f}s.", fg="yellow")
                return
            except ReceiptFailedOnChainError:
                click.secho("FAILED: Transaction reverted", fg="red")
                raise

            click.secho("SUCCESS: Transaction confirmed!", fg="green")
            click.echo(f"  Gas used: {receipt.gas_used}")
            click.echo(f"  Counter:  {dapp.session.counter_value}")

    _run(_increment())


@cli.command("switch-network")
@click.option("--yes", "-y", is_flag=True, help="Approve wallet prompts automatically")
@click.pass_context
def switch_network(ctx: click.Context, yes: bool) -> None:
    """Switch the wallet to the configured network."""
    settings = _settings(ctx)

    async def _switch() -> None:
        async with _open_dapp(settings, yes) as dapp:
            await dapp.switch_network()
            click.secho(f"Wallet is on {settings.chain.chain_name}.", fg="green")

    _run(_switch())


# ============ Entry Points ============


def main() -> None:
    """CounterLink CLI entry point."""
    if sys.platform == "win32":
        try:
            sys.stdout.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
            sys.stderr.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
        except (AttributeError, OSError):
            pass
    cli()


if __name__ == "__main__":
    main()
