#!/usr/bin/env python3
"""
Solana Volume Bot CLI
=====================

Usage:
    solana-volume-bot init
    solana-volume-bot makers --mint <MINT> --count 100
    solana-volume-bot volume --mint <MINT> --min-sol 0.01 --max-sol 0.05
    solana-volume-bot swap buy 0.1 --mint <MINT>
    solana-volume-bot balance --mint <MINT>
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from rich import box
from rich.panel import Panel
from rich.table import Table
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from .amm import AMM
from .config import Config, ConfigManager
from .logging_utils import add_json_file_handler, print_metrics_summary
from .session import MakerStats, VolumeStats
from .utils import VolumeBotError, console, format_address, format_sol, setup_logging
from .wallet import SecureKeyManager, keypair_to_base58, validate_secret_key


def print_banner():
    console.print(Panel.fit(
        "[bold cyan]Solana Volume Bot[/bold cyan]\n"
        "[dim]Jupiter routes, Jito bundles[/dim]",
        box=box.DOUBLE
    ))


def get_password(prompt: str = "Enter wallet password:") -> str:
    console.print(f"[yellow]{prompt}[/yellow]")
    return getpass.getpass("> ")


def load_config(args) -> Optional[Config]:
    """Load the YAML config and apply command-line overrides."""
    manager = ConfigManager(Path(args.config))
    try:
        config = manager.load_config()
    except FileNotFoundError:
        console.print(f"[red]Config not found: {args.config}. Run 'init' first.[/red]")
        return None

    if args.rpc:
        config.rpc_url = args.rpc
    if args.key_file:
        config.key_file = args.key_file
    if args.log_level:
        config.log_level = args.log_level
    if args.quiet:
        config.disable_logs = True

    try:
        config.validate()
    except ValueError as e:
        console.print(f"[red]Invalid config: {e}[/red]")
        return None

    secure_logger = setup_logging(config.log_level, config.log_file)
    if args.json_log:
        add_json_file_handler(logging.getLogger(secure_logger.name), args.json_log)
    return config


def load_payer(config: Config) -> Optional[Keypair]:
    key_manager = SecureKeyManager(config.key_file)
    if not key_manager.exists():
        console.print(f"[red]Key file not found: {config.key_file}. Run 'init' first.[/red]")
        return None

    keypair = key_manager.load_keypair(get_password())
    if keypair is None:
        console.print("[red]Failed to decrypt wallet. Wrong password?[/red]")
    return keypair


async def with_amm(config: Config, payer: Keypair, work: Callable[[AMM], Awaitable[Any]]) -> Any:
    """Open RPC and HTTP sessions, run `work` against an orchestrator, close everything."""
    async with AsyncClient(config.rpc_url) as connection:
        async with aiohttp.ClientSession() as http:
            amm = AMM.from_config(connection, payer, config, http_session=http)
            try:
                return await work(amm)
            finally:
                if amm.metrics.total_operations:
                    print_metrics_summary(amm.metrics, console)


def run_async(coro) -> Any:
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]")
    except VolumeBotError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
    return None


def resolve_mint(args, config: Config) -> Optional[str]:
    mint = getattr(args, "mint", None) or config.token_mint
    if not mint:
        console.print("[red]No token mint. Pass --mint or set token_mint in the config.[/red]")
    return mint


def init_command(args):
    """Create the default config and an encrypted funding key."""
    print_banner()

    manager = ConfigManager(Path(args.config))
    if manager.exists():
        console.print(f"[dim]Config already exists: {args.config}[/dim]")
        config = manager.load_config()
    else:
        config = manager.create_default()
        console.print(f"[green]✓ Default config created ({args.config})[/green]")

    if args.key_file:
        config.key_file = args.key_file

    key_manager = SecureKeyManager(config.key_file)
    if key_manager.exists() and not args.force:
        console.print(f"[yellow]Key file already exists: {config.key_file} (use --force to replace)[/yellow]")
        return

    if args.import_key:
        console.print("[yellow]Enter base58 secret key:[/yellow]")
        secret = getpass.getpass("> ").strip()
        if not validate_secret_key(secret):
            console.print("[red]Invalid secret key[/red]")
            return
    else:
        secret = keypair_to_base58(Keypair())

    password = get_password("Create encryption password (min 8 characters):")
    if len(password) < 8:
        console.print("[red]Password must be at least 8 characters![/red]")
        return
    if password != get_password("Confirm password:"):
        console.print("[red]Passwords don't match![/red]")
        return

    if not key_manager.encrypt_and_save(secret, password):
        console.print("[red]Failed to save wallet[/red]")
        return

    console.print("\n[green]✓ Wallet encrypted and saved![/green]")
    console.print(f"\n[bold cyan]Funding Address:[/bold cyan]\n[bold]{key_manager.public_key()}[/bold]")
    console.print("\n[yellow]Fund this address with SOL before running makers or volume.[/yellow]")


def makers_command(args):
    config = load_config(args)
    if config is None:
        return
    mint = resolve_mint(args, config)
    payer = load_payer(config) if mint else None
    if payer is None:
        return

    count = args.count or config.makers_count
    tip = args.tip if args.tip is not None else config.maker_tip_lamports
    dexes = args.dex or config.include_dexes

    console.print(f"[dim]Token: {mint} | Makers: {count} | Tip: {tip} lamports[/dim]")
    stats: Optional[MakerStats] = run_async(with_amm(
        config, payer,
        lambda amm: amm.makers(mint, count, jito_tip_lamports=tip, include_dexes=dexes),
    ))
    if stats is None:
        return

    table = Table(title="Makers", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Makers completed", str(stats.makers_completed))
    table.add_row("Bundles", str(stats.bundle_count))
    table.add_row("Latest bundle", stats.latest_bundle_id or "-")
    table.add_row("SOL balance", format_sol(stats.sol_balance or 0.0))
    console.print(table)


def volume_command(args):
    config = load_config(args)
    if config is None:
        return
    mint = resolve_mint(args, config)
    payer = load_payer(config) if mint else None
    if payer is None:
        return

    min_sol = args.min_sol if args.min_sol is not None else config.min_sol_per_swap
    max_sol = args.max_sol if args.max_sol is not None else config.max_sol_per_swap
    mcap_factor = args.mcap_factor if args.mcap_factor is not None else config.mcap_factor
    speed = args.speed if args.speed is not None else config.speed_factor
    tip = args.tip if args.tip is not None else config.volume_tip_lamports
    dexes = args.dex or config.include_dexes

    console.print(
        f"[dim]Token: {mint} | {min_sol}-{max_sol} SOL per swap | "
        f"mcap factor {mcap_factor} | speed {speed}x[/dim]"
    )
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    stats: Optional[VolumeStats] = run_async(with_amm(
        config, payer,
        lambda amm: amm.volume(
            mint, min_sol, max_sol, mcap_factor, speed,
            jito_tip_lamports=tip, include_dexes=dexes, max_trades=args.max_trades,
        ),
    ))
    if stats is None:
        return

    table = Table(title="Volume", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for key, value in stats.to_dict().items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(table)


def swap_command(args):
    config = load_config(args)
    if config is None:
        return
    mint = resolve_mint(args, config)
    payer = load_payer(config) if mint else None
    if payer is None:
        return

    tip = args.tip if args.tip is not None else config.volume_tip_lamports
    dexes = args.dex or config.include_dexes
    bundle_id = run_async(with_amm(
        config, payer,
        lambda amm: amm.swap(mint, args.direction, args.amount, jito_tip_lamports=tip, include_dexes=dexes),
    ))
    if bundle_id:
        console.print(f"[green]✓ {args.direction.upper()} {args.amount} SOL sent. Bundle ID: {bundle_id}[/green]")


def balance_command(args):
    config = load_config(args)
    if config is None:
        return
    payer = load_payer(config)
    if payer is None:
        return
    mint = getattr(args, "mint", None) or config.token_mint

    async def balances(amm: AMM):
        sol = await amm.get_sol_balance()
        token = await amm.get_token_balance(mint) if mint else None
        return sol, token

    result = run_async(with_amm(config, payer, balances))
    if result is None:
        return
    sol, token = result

    console.print("\n[bold cyan]💰 Wallet Balances[/bold cyan]")
    console.print(f"[dim]Address: {payer.pubkey()}[/dim]\n")

    table = Table(box=box.ROUNDED)
    table.add_column("Asset", style="cyan")
    table.add_column("Balance", style="green")
    table.add_row("SOL", f"{sol:.6f}")
    if token is not None:
        table.add_row(format_address(mint), f"{token:.6f}")
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solana-volume-bot",
        description="Maker and volume generation for Solana tokens via Jito bundles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", default="./bot_config.yaml", help="Path to config file")
    parser.add_argument("--rpc", help="RPC endpoint override")
    parser.add_argument("--key-file", help="Encrypted key file override")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level override")
    parser.add_argument("--json-log", help="Also write JSON logs to this file")
    parser.add_argument("--quiet", action="store_true", help="Disable orchestrator logs")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Create config and encrypted wallet")
    init_parser.add_argument("--import-key", action="store_true", help="Import an existing base58 secret key")
    init_parser.add_argument("--force", action="store_true", help="Replace an existing key file")

    def add_bundle_args(sub):
        sub.add_argument("--mint", help="Token mint (default: token_mint from config)")
        sub.add_argument("--tip", type=int, help="Jito tip in lamports")
        sub.add_argument("--dex", action="append", help="Restrict routing to this DEX (repeatable)")

    makers_parser = subparsers.add_parser("makers", help="Generate maker orders")
    add_bundle_args(makers_parser)
    makers_parser.add_argument("--count", type=int, help="Total makers required")

    volume_parser = subparsers.add_parser("volume", help="Generate trading volume")
    add_bundle_args(volume_parser)
    volume_parser.add_argument("--min-sol", type=float, help="Minimum SOL per buy")
    volume_parser.add_argument("--max-sol", type=float, help="Maximum SOL per buy")
    volume_parser.add_argument("--mcap-factor", type=float, help="Sells take at most net/mcap_factor")
    volume_parser.add_argument("--speed", type=float, help="Speed factor (divides the 5-15s pause)")
    volume_parser.add_argument("--max-trades", type=int, help="Stop after this many trades (default: run forever)")

    swap_parser = subparsers.add_parser("swap", help="Execute a single swap")
    swap_parser.add_argument("direction", choices=["buy", "sell"], help="Swap direction")
    swap_parser.add_argument("amount", type=float, help="Amount in SOL")
    add_bundle_args(swap_parser)

    balance_parser = subparsers.add_parser("balance", help="Check wallet balances")
    balance_parser.add_argument("--mint", help="Also show this token's balance")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "init": init_command,
        "makers": makers_command,
        "volume": volume_command,
        "swap": swap_command,
        "balance": balance_command,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    command(args)


if __name__ == "__main__":
    main()
