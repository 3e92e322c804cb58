from __future__ import annotations

from typing import Any, Dict

from flowtracer.core.models import FlowNode, HolderResult, TraceResult, lamports_to_sol


def _sol_str(lamports: int) -> str:
    # keep as string for JSON precision safety
    return format(lamports_to_sol(lamports).normalize(), "f")


def flow_node_to_dict(n: FlowNode) -> Dict[str, Any]:
    return {
        "address": n.address,
        "direction": n.direction,
        "hop": n.hop,
        "via": n.via,
        "total_in_sol": _sol_str(n.total_in),
        "total_out_sol": _sol_str(n.total_out),
        "total_in_lamports": n.total_in,
        "total_out_lamports": n.total_out,
        "transactions": n.event_count,
    }


def trace_to_dict(r: TraceResult) -> Dict[str, Any]:
    return {
        "target": r.target,
        "max_hops": r.max_hops,
        "cancelled": r.cancelled,
        "expanded": list(r.expanded),
        "inflows": [flow_node_to_dict(n) for n in r.inflows],
        "outflows": [flow_node_to_dict(n) for n in r.outflows],
        "errors": [
            {"address": e.address, "stage": e.stage, "message": e.message}
            for e in r.errors
        ],
    }


def holders_to_dict(r: HolderResult) -> Dict[str, Any]:
    return {
        "mints": [
            {
                "mint": s.mint,
                "status": s.status,
                "holders_found": s.holders_found,
                "error": s.error,
            }
            for s in r.per_mint.values()
        ],
        "common_count": r.common_count,
        "no_data": r.no_data,
        "addresses": list(r.addresses),
        "rejected": {
            a: v.failed_stage
            for a, v in sorted(r.verdicts.items())
            if not v.keep
        },
    }
