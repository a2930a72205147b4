#!/usr/bin/env python3
"""
PERPSIM - Simulated Perpetual Ledger CLI

Thin terminal consumer of PerpExchange. This is a PURE SHELL - it only:
- Parses arguments
- Issues exchange commands
- Prints snapshots

NO ledger logic lives here. Everything goes through perpsim.sim.PerpExchange.

Modes:
  python perp_cli.py simulate --seed 42 --ticks 120 --tick-seconds 60 --close
  python perp_cli.py live --duration 30 --interval 2
"""

import argparse
import json
import sys
import time
from typing import List, Optional

import numpy as np
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from perpsim.config import Config
from perpsim.config.constants import REJECT_LABELS
from perpsim.engine import SimulatedClock, TickScheduler
from perpsim.sim import ExchangeSnapshot, PerpExchange, Side
from perpsim.utils.logger import get_logger, setup_logger

console = Console()


# ==================== Display ====================

def _pnl_style(value: float) -> str:
    return "green" if value >= 0 else "red"


def print_account(snapshot: ExchangeSnapshot) -> None:
    """Account balances and health panel."""
    m = snapshot.metrics
    a = snapshot.account

    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="dim")
    grid.add_column(justify="right")
    grid.add_column(style="dim")
    grid.add_column(justify="right")

    grid.add_row("Price", f"{snapshot.reference_price:,.4f}", "Funding rate", f"{snapshot.funding_rate:.4%}")
    grid.add_row("Deposited", f"${a.deposited:,.2f}", "Next funding", snapshot.next_funding_time.strftime("%Y-%m-%d %H:%M:%S"))
    grid.add_row("Equity", f"${m.equity:,.2f}", "Free margin", f"${m.free_margin:,.2f}")
    grid.add_row(
        "Unrealized PnL", f"[{_pnl_style(m.total_unrealized_pnl)}]${m.total_unrealized_pnl:,.2f}[/]",
        "Realized PnL", f"[{_pnl_style(a.realized_pnl)}]${a.realized_pnl:,.2f}[/]",
    )
    grid.add_row("Initial margin", f"${m.total_initial_margin:,.2f}", "Maint. margin", f"${m.total_maintenance_margin:,.2f}")
    grid.add_row("Margin ratio", f"{m.margin_ratio:.2%}", "Leverage", f"{m.account_leverage:.2f}x")
    grid.add_row("Fees paid", f"${a.total_fees_paid:,.4f}", "Funding paid", f"${a.total_funding_paid:,.4f}")

    console.print(Panel(grid, title=f"[bold cyan]{snapshot.symbol}[/]", border_style="cyan"))


def print_positions(snapshot: ExchangeSnapshot) -> None:
    if not snapshot.positions:
        console.print("[dim]No open positions[/]")
        return

    table = Table(title="Open Positions")
    table.add_column("ID", style="dim")
    table.add_column("Side")
    table.add_column("Notional", justify="right")
    table.add_column("Lev", justify="right")
    table.add_column("Entry", justify="right")
    table.add_column("Mark", justify="right")
    table.add_column("Liq", justify="right")
    table.add_column("uPnL", justify="right")
    table.add_column("Funding", justify="right")

    for p in snapshot.positions:
        side_style = "green" if p.side is Side.LONG else "red"
        table.add_row(
            p.position_id,
            f"[{side_style}]{p.side.value.upper()}[/]",
            f"${p.notional:,.2f}",
            f"{p.leverage:g}x",
            f"{p.entry_price:,.4f}",
            f"{p.mark_price:,.4f}",
            f"{p.liquidation_price:,.4f}",
            f"[{_pnl_style(p.unrealized_pnl)}]{p.unrealized_pnl:,.2f} ({p.unrealized_pnl_percent:+.2f}%)[/]",
            f"{p.realized_funding:,.4f}",
        )
    console.print(table)


def print_history(snapshot: ExchangeSnapshot, limit: int = 10) -> None:
    if snapshot.trade_history:
        table = Table(title="Trade History (newest first)")
        table.add_column("ID", style="dim")
        table.add_column("Side")
        table.add_column("Reason")
        table.add_column("Entry", justify="right")
        table.add_column("Exit", justify="right")
        table.add_column("Gross", justify="right")
        table.add_column("Fees", justify="right")
        table.add_column("Funding", justify="right")
        table.add_column("Net", justify="right")

        for t in snapshot.trade_history[:limit]:
            table.add_row(
                t.position_id,
                t.side.value.upper(),
                "[red]LIQUIDATED[/]" if t.is_liquidation else "close",
                f"{t.entry_price:,.4f}",
                f"{t.exit_price:,.4f}",
                f"{t.gross_pnl:,.2f}",
                f"{t.fees:,.4f}",
                f"{t.funding:,.4f}",
                f"[{_pnl_style(t.net_pnl)}]{t.net_pnl:,.2f}[/]",
            )
        console.print(table)

    if snapshot.funding_history:
        last = snapshot.funding_history[-limit:]
        table = Table(title=f"Funding (last {len(last)} of {len(snapshot.funding_history)})")
        table.add_column("Time")
        table.add_column("Position", style="dim")
        table.add_column("Rate", justify="right")
        table.add_column("Payment", justify="right")
        for f in last:
            table.add_row(
                f.timestamp.strftime("%Y-%m-%d %H:%M"),
                f.position_id,
                f"{f.rate:.5%}",
                f"{f.payment:,.4f}",
            )
        console.print(table)

    for line in snapshot.liquidation_log:
        console.print(f"[bold red]{line}[/]")


def print_reject(action: str, reason) -> None:
    label = REJECT_LABELS.get(reason.value, reason.value)
    console.print(f"[yellow]{action} rejected:[/] {reason.value} - {label}")


# ==================== Commands ====================

def _open_from_args(exchange: PerpExchange, args: argparse.Namespace) -> bool:
    reason = exchange.deposit(args.deposit)
    if reason is not None:
        print_reject("Deposit", reason)
        return False

    if args.collateral <= 0:
        return True

    reason = exchange.open_position(Side(args.side), args.collateral, args.leverage)
    if reason is not None:
        print_reject("Open", reason)
        return False
    return True


def handle_simulate(config: Config, args: argparse.Namespace) -> int:
    """Deterministic run on a simulated clock."""
    seed = args.seed if args.seed is not None else config.scheduler.seed
    clock = SimulatedClock()
    exchange = PerpExchange(
        config.market,
        rng=np.random.default_rng(seed),
        clock=clock,
    )

    get_logger().info("Simulating %d ticks of %.0fs on %s (seed=%s)", args.ticks, args.tick_seconds, exchange.symbol, seed)

    if not _open_from_args(exchange, args):
        return 1

    for _ in range(args.ticks):
        clock.advance_seconds(args.tick_seconds)
        exchange.tick()

    if args.close:
        for position in exchange.positions():
            exchange.close_position(position.position_id)

    snapshot = exchange.snapshot()
    if args.json_output:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return 0

    print_account(snapshot)
    print_positions(snapshot)
    print_history(snapshot)
    return 0


def handle_live(config: Config, args: argparse.Namespace) -> int:
    """Real-time session driven by the tick scheduler."""
    interval = args.interval or config.scheduler.tick_interval_seconds
    exchange = PerpExchange(config.market, rng=np.random.default_rng(config.scheduler.seed))

    if not _open_from_args(exchange, args):
        return 1

    console.print(Panel(config.summary(), title="[bold]Configuration[/]", border_style="dim"))

    deadline = time.monotonic() + args.duration
    with TickScheduler(exchange, interval_seconds=interval) as scheduler:
        try:
            while time.monotonic() < deadline:
                time.sleep(min(interval, max(0.0, deadline - time.monotonic())))
                print_account(exchange.snapshot())
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted[/]")

    snapshot = exchange.snapshot()
    print_positions(snapshot)
    print_history(snapshot)
    console.print(f"[dim]ticks={scheduler.stats.ticks} errors={len(scheduler.stats.errors)}[/]")
    if scheduler.stats.errors:
        get_logger().error("Live session had %d tick errors, last: %s", len(scheduler.stats.errors), scheduler.stats.errors[-1])
    return 0


# ==================== Entry Point ====================

def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for perp_cli."""
    parser = argparse.ArgumentParser(
        description="PERPSIM - Simulated perpetual futures ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python perp_cli.py simulate --seed 7 --deposit 1000 --collateral 100 --leverage 3
  python perp_cli.py simulate --ticks 240 --tick-seconds 60 --close --json
  python perp_cli.py --config market.yaml live --duration 60
        """
    )
    parser.add_argument("--env-file", default=".env", help="Path to .env file (default: .env)")
    parser.add_argument("--config", help="YAML market profile")
    parser.add_argument("--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-dir", help="Override LOG_DIR (empty string = console only)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_order_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--deposit", type=float, default=1000.0, help="Initial deposit (default: 1000)")
        sub.add_argument("--side", choices=[s.value for s in Side], default="long", help="Position side")
        sub.add_argument("--collateral", type=float, default=100.0, help="Position collateral (0 = no position)")
        sub.add_argument("--leverage", type=float, default=3.0, help="Position leverage")

    sim_parser = subparsers.add_parser("simulate", help="Deterministic run on a simulated clock")
    add_order_args(sim_parser)
    sim_parser.add_argument("--seed", type=int, help="RNG seed (default: PERP_SEED)")
    sim_parser.add_argument("--ticks", type=int, default=60, help="Number of ticks (default: 60)")
    sim_parser.add_argument("--tick-seconds", type=float, default=60.0, help="Simulated seconds per tick")
    sim_parser.add_argument("--close", action="store_true", help="Close open positions at the end")
    sim_parser.add_argument("--json", action="store_true", dest="json_output", help="Output snapshot as JSON")

    live_parser = subparsers.add_parser("live", help="Real-time session with background ticks")
    add_order_args(live_parser)
    live_parser.add_argument("--duration", type=float, default=30.0, help="Seconds to run (default: 30)")
    live_parser.add_argument("--interval", type=float, help="Tick interval (default: PERP_TICK_INTERVAL_SECONDS)")

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> Config:
    if args.config:
        config = Config.from_yaml(args.config, env_file=args.env_file)
    else:
        config = Config.from_env(env_file=args.env_file)

    if args.log_level:
        config.log.level = args.log_level
    if args.log_dir is not None:
        config.log.log_dir = args.log_dir or None
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_cli_args(argv)

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        get_logger(log_dir=None).error("Configuration error: %s", e)
        return 2

    setup_logger(config.log.log_dir, config.log.level)

    if args.command == "simulate":
        return handle_simulate(config, args)
    if args.command == "live":
        return handle_live(config, args)

    console.print("[yellow]Usage: perp_cli.py {simulate|live} --help[/]")
    return 1


if __name__ == "__main__":
    sys.exit(main())
