from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Optional

from rich.console import Console
from rich.table import Table

from ..topology.model import Category, Graph, Placement


def graph_metrics(graph: Graph) -> Dict[str, Any]:
    categories = Counter(n.category.value for n in graph.nodes)
    placements = Counter(n.placement.value for n in graph.nodes)
    kinds = Counter(e.kind.value for e in graph.edges)
    return {
        "nodes": len(graph.nodes),
        "edges": len(graph.edges),
        "counts_by_category": {c.value: categories.get(c.value, 0) for c in Category},
        "counts_by_placement": {p.value: placements.get(p.value, 0) for p in Placement},
        "counts_by_edge_kind": dict(sorted(kinds.items())),
    }


def render_graph_summary_table(
    *,
    enabled: bool,
    metrics: Dict[str, Any],
    source: str,
    outdir: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Topology Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Snapshot", source)
    table.add_row("Nodes", str(metrics.get("nodes", 0)))
    table.add_row("Edges", str(metrics.get("edges", 0)))
    for category, count in metrics.get("counts_by_category", {}).items():
        if count:
            table.add_row(f"Category: {category}", str(count))
    for placement, count in metrics.get("counts_by_placement", {}).items():
        if count:
            table.add_row(f"Placement: {placement}", str(count))
    for kind, count in metrics.get("counts_by_edge_kind", {}).items():
        table.add_row(f"Edges: {kind}", str(count))
    if outdir:
        table.add_row("Output dir", outdir)
    (console or Console()).print(table)
