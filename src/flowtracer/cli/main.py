from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

from flowtracer.config import settings
from flowtracer.core.errors import InvalidAddress
from flowtracer.core.models import FilterConfig, TraceConfig, sol_to_lamports
from flowtracer.services.ledger_client import LedgerClient
from flowtracer.services.holder_service import HolderService
from flowtracer.services.tracer_service import TracerService
from flowtracer.io.output_writer import (
    write_address_list,
    write_flows_csv,
    write_holders_json,
    write_trace_json,
    write_trace_summary_md,
)

from flowtracer.adapters.ledger.solana_rpc_adapter import SolanaRpcAdapter
from flowtracer.adapters.ledger.static_ledger_adapter import StaticLedgerAdapter
from flowtracer.adapters.labels.solanafm_label_adapter import SolanaFMLabelAdapter


def _sol_amount(text: str) -> int:
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a SOL amount: {text!r}")
    if not value.is_finite() or value < 0:
        raise argparse.ArgumentTypeError(f"SOL amount must be a non-negative number, got {text!r}")
    return sol_to_lamports(value)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="flowtracer", description="Solana value-flow tracer and common-holder finder")
    p.add_argument("--rpc", action="append", default=None,
                   help="RPC endpoint, repeat for fallbacks (default: SOLANA_RPC_ENDPOINTS)")
    p.add_argument("--use-static", action="store_true", help="Use static adapter (dev/testing)")
    p.add_argument("--out", default="out", help="Output folder")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    t = sub.add_parser("trace", help="Multi-hop inflow/outflow trace of one address")
    t.add_argument("--address", required=True, help="Target address to trace")
    t.add_argument("--hops", type=int, default=settings.TRACE_DEFAULT_HOPS,
                   help=f"Number of hops (1-{settings.TRACE_MAX_HOPS})")
    t.add_argument("--history-limit", type=int, default=settings.TRACE_HISTORY_LIMIT,
                   help="Recent transactions sampled per address")
    t.add_argument("--branching-cap", type=int, default=settings.TRACE_BRANCHING_CAP,
                   help="Counterparties followed per address into the next hop")
    t.add_argument("--workers", type=int, default=1, help="Addresses expanded in parallel per hop")

    h = sub.add_parser("holders", help="Addresses holding every given token mint")
    h.add_argument("--mint", action="append", required=True, help="Token mint address (repeat)")
    h.add_argument("--no-exclude-known", action="store_true", help="Keep exchange/protocol wallets")
    h.add_argument("--no-exclude-dust", action="store_true", help="Keep low-volume wallets")
    h.add_argument("--no-exclude-bots", action="store_true", help="Keep bot-like wallets")
    h.add_argument("--human-heuristic", action="store_true", help="Require irregular transaction timing")
    h.add_argument("--dust-threshold", type=_sol_amount, default="0.1", help="Minimum transfer volume in SOL")
    h.add_argument("--bot-frequency", type=float, default=50.0, help="Max transactions per hour")
    return p


def _short_addr(addr: str) -> str:
    if not addr:
        return ""
    if len(addr) <= 12:
        return addr
    return f"{addr[:6]}...{addr[-4:]}"


def _make_progress_reporter(title: str) -> Callable[[str, dict], None]:
    start_time = time.time()
    last_print = 0.0
    is_tty = sys.stdout.isatty()

    def _ts() -> str:
        return dt.datetime.now().strftime("%H:%M:%S")

    def _print_line(message: str) -> None:
        if is_tty:
            sys.stdout.write("\r" + message.ljust(88))
            sys.stdout.flush()
        else:
            print(message)

    def _clear_line() -> None:
        if is_tty:
            sys.stdout.write("\r" + (" " * 88) + "\r")
            sys.stdout.flush()

    def progress(event: str, data: dict) -> None:
        nonlocal last_print
        now = time.time()
        pct = data.get("progress", 0.0)
        if event == "start":
            print(f"[{_ts()}] {title}")
            return
        if event in ("expand", "classified"):
            if not is_tty:
                return
            if now - last_print < 0.2:
                return
            if event == "expand":
                msg = f"{pct:5.1f}% • hop {data['depth']} • {_short_addr(data['address'])}"
            else:
                msg = f"{pct:5.1f}% • classified {data['done']}/{data['total']}"
            _print_line(msg)
            last_print = now
            return
        if event == "hop_done":
            _clear_line()
            print(f"[{_ts()}] Hop {data['depth']} done • {data['expanded']} expanded • {data['next']} queued")
            return
        if event == "intersected":
            print(f"[{_ts()}] {data['common']} common holder(s), filtering...")
            return
        if event == "error":
            _clear_line()
            print(f"[{_ts()}] Skipped {_short_addr(data.get('address', ''))}: {data.get('message', 'unknown error')}",
                  file=sys.stderr)
            return
        if event == "done":
            _clear_line()
            elapsed = time.time() - start_time
            print(f"[{_ts()}] Done in {elapsed:.1f}s")

    return progress


def _build_client(args: argparse.Namespace) -> LedgerClient:
    if args.use_static:
        return LedgerClient(StaticLedgerAdapter())
    endpoints: List[str] = args.rpc or settings.SOLANA_RPC_ENDPOINTS
    ports = [SolanaRpcAdapter(url) for url in endpoints]
    return LedgerClient(ports, labels=SolanaFMLabelAdapter())


def _run_trace(args: argparse.Namespace, client: LedgerClient) -> int:
    cfg = TraceConfig(
        address=args.address,
        max_hops=args.hops,
        history_limit=args.history_limit,
        branching_cap=args.branching_cap,
    )
    progress = _make_progress_reporter(f"Tracing {cfg.address} • {cfg.max_hops} hop(s)")
    svc = TracerService(client, max_workers=args.workers)
    result = svc.trace(cfg, on_progress=progress)

    print(f"{len(result.inflows)} inflow source(s), {len(result.outflows)} outflow destination(s), "
          f"{len(result.errors)} skipped")
    print("Writing outputs...")
    for path in (
        write_flows_csv(result, args.out),
        write_trace_json(result, args.out),
        write_trace_summary_md(result, args.out),
    ):
        print(f"Wrote: {path}")
    return 0


def _run_holders(args: argparse.Namespace, client: LedgerClient) -> int:
    fc = FilterConfig(
        exclude_known_entities=not args.no_exclude_known,
        exclude_dust=not args.no_exclude_dust,
        exclude_bots=not args.no_exclude_bots,
        use_human_heuristic=args.human_heuristic,
        dust_threshold=args.dust_threshold,
        bot_frequency_threshold=args.bot_frequency,
    )
    progress = _make_progress_reporter(f"Finding common holders of {len(args.mint)} mint(s)")
    result = HolderService(client).find_common_holders(args.mint, fc, on_progress=progress)

    for s in result.per_mint.values():
        extra = f" ({s.error})" if s.error else ""
        print(f"  {s.mint}: {s.status}, {s.holders_found} holder(s){extra}")
    if result.no_data:
        print("No holders found for the provided tokens")
    else:
        print(f"{len(result.addresses)}/{result.common_count} common holder(s) kept")

    print("Writing outputs...")
    for path in (
        write_address_list(result.addresses, args.out),
        write_holders_json(result, args.out),
    ):
        print(f"Wrote: {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    try:
        client = _build_client(args)
        if args.command == "trace":
            return _run_trace(args, client)
        return _run_holders(args, client)
    except (InvalidAddress, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"Error: {exc.__class__.__name__}: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
