from __future__ import annotations

import csv
import json
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List

from flowtracer.core.models import FlowNode, HolderResult, TraceResult, lamports_to_sol
from flowtracer.io.schemas import holders_to_dict, trace_to_dict

FLOW_CSV_HEADER = ["Type", "Address", "Amount", "Transactions", "Hop"]


def _out_path(out_dir: str, filename: str) -> Path:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    return p / filename


def flow_rows(result: TraceResult) -> List[List[str]]:
    rows: List[List[str]] = []
    for label, nodes in (("INFLOW", result.inflows), ("OUTFLOW", result.outflows)):
        for n in nodes:
            rows.append([
                label,
                n.address,
                f"{lamports_to_sol(n.amount):.6f}",
                str(n.event_count),
                str(n.hop),
            ])
    return rows


def write_flows_csv(result: TraceResult, out_dir: str, filename: str = "flows.csv") -> str:
    out_path = _out_path(out_dir, filename)
    with out_path.open("w", encoding="utf-8", newline="") as f:
        w = csv.writer(f)
        w.writerow(FLOW_CSV_HEADER)
        w.writerows(flow_rows(result))
    return str(out_path)


def write_address_list(addresses: Iterable[str], out_dir: str, filename: str = "common_wallets.txt") -> str:
    out_path = _out_path(out_dir, filename)
    with out_path.open("w", encoding="utf-8") as f:
        for a in addresses:
            f.write(f"{a}\n")
    return str(out_path)


def write_trace_json(result: TraceResult, out_dir: str, filename: str = "trace.json") -> str:
    out_path = _out_path(out_dir, filename)
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(trace_to_dict(result), f, indent=2)
    return str(out_path)


def write_holders_json(result: HolderResult, out_dir: str, filename: str = "holders.json") -> str:
    out_path = _out_path(out_dir, filename)
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(holders_to_dict(result), f, indent=2)
    return str(out_path)


def write_trace_summary_md(
    result: TraceResult,
    out_dir: str,
    filename: str = "summary.md",
    top_n: int = 10,
) -> str:
    """
    Minimal, investigator-friendly summary.
    """
    out_path = _out_path(out_dir, filename)

    direct_in = [n for n in result.inflows if n.hop == 0]
    direct_out = [n for n in result.outflows if n.hop == 0]
    total_in = sum((lamports_to_sol(n.total_in) for n in direct_in), Decimal("0"))
    total_out = sum((lamports_to_sol(n.total_out) for n in direct_out), Decimal("0"))

    def fmt_sol(lamports: int) -> str:
        return f"{lamports_to_sol(lamports):.4f}"

    def section(title: str, nodes: List[FlowNode], empty: str) -> List[str]:
        out = [f"## {title}\n\n"]
        if not nodes:
            out.append(f"_{empty}_\n\n")
            return out
        for n in nodes[:top_n]:
            out.append(
                f"- **{fmt_sol(n.amount)} SOL** | {n.address} "
                f"| {n.event_count} tx | hop {n.hop}\n"
            )
        out.append("\n")
        return out

    def interpretation() -> str:
        if not direct_in and not direct_out:
            return "No value movements touched the target in the sampled history."
        uniq_in = len(direct_in)
        uniq_out = len(direct_out)
        if uniq_out >= uniq_in * 2 and total_out > total_in:
            return (
                "This wallet looks like a distributor: many outbound destinations "
                "and higher outflow than inflow in the sample."
            )
        if uniq_in >= uniq_out * 2 and total_in > total_out:
            return (
                "This wallet looks like a collector: many inbound sources and "
                "higher inflow than outflow in the sample."
            )
        return (
            "Flows are mixed without a strong directional skew, which often matches "
            "an active wallet used for routine transfers."
        )

    lines = []
    lines.append("# Trace Summary\n\n")
    lines.append(f"- Target: **{result.target}**\n")
    lines.append(f"- Hops: **{result.max_hops}**\n")
    lines.append(f"- Expanded addresses: **{result.fetch_count}**\n")
    lines.append(f"- Inflow sources: **{len(result.inflows)}**\n")
    lines.append(f"- Outflow destinations: **{len(result.outflows)}**\n")
    if result.cancelled:
        lines.append("- **Cancelled before all hops completed**\n")
    lines.append("\n")

    lines.extend(section(f"Top {top_n} Inflow Sources (by SOL)", result.inflows,
                         "No inbound transfers found."))
    lines.extend(section(f"Top {top_n} Outflow Destinations (by SOL)", result.outflows,
                         "No outbound transfers found."))

    lines.append("## Interpretation\n\n")
    lines.append(f"{interpretation()}\n\n")

    lines.append("## Skipped addresses\n\n")
    if not result.errors:
        lines.append("_None._\n\n")
    else:
        for e in result.errors:
            lines.append(f"- {e.address} ({e.stage}): {e.message}\n")
        lines.append("\n")

    lines.append("## Limitations\n\n")
    lines.append("- Only native SOL transfers (system program) are counted.\n")
    lines.append("- Each address is sampled from its most recent transactions only.\n")
    lines.append("- Counterparties below 0.001 SOL are dropped.\n")

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)
