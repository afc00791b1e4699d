from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, TypedDict


class ResourceRecord(TypedDict, total=False):
    """A resource as the inventory API serialises it (camelCase keys)."""

    id: str
    connectionId: str
    resourceType: str
    resourceId: str
    name: Optional[str]
    region: str
    metadata: Dict[str, Any]
    lastSyncedAt: str


NODE_FIELD_ORDER = [
    "id",
    "category",
    "placement",
    "label",
    "rank",
    "position",
    "resourceType",
    "resourceId",
    "name",
    "region",
    "metadata",
]

EDGE_FIELD_ORDER = [
    "id",
    "source",
    "target",
    "kind",
    "routing",
    "sourceHandle",
    "targetHandle",
]


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    graph_json: Path
    graph_nodes_jsonl: Path
    graph_edges_jsonl: Path
    run_summary_json: Path
    debug_log: Path


def resolve_output_paths(outdir: Path) -> OutputPaths:
    root = outdir
    return OutputPaths(
        root=root,
        graph_json=root / "graph.json",
        graph_nodes_jsonl=root / "graph_nodes.jsonl",
        graph_edges_jsonl=root / "graph_edges.jsonl",
        run_summary_json=root / "run_summary.json",
        debug_log=root / "logs" / "debug.log",
    )
