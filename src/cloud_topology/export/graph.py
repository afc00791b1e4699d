from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ..normalize.schema import EDGE_FIELD_ORDER, NODE_FIELD_ORDER
from ..normalize.transform import canonicalize, stable_json_dumps
from ..topology.model import Edge, Graph, Node
from ..util.errors import ExportError
from ..util.serialization import sanitize_for_json

GRAPH_SCHEMA_VERSION = "1"


def node_to_dict(node: Node) -> Dict[str, Any]:
    r = node.resource
    out: Dict[str, Any] = {
        "id": node.id,
        "category": node.category.value,
        "placement": node.placement.value,
        "label": node.label,
        "rank": node.rank,
        "position": {"x": node.position.x, "y": node.position.y} if node.position else None,
        "resourceType": r.resource_type,
        "resourceId": r.resource_id,
        "name": r.name,
        "region": r.region,
        "metadata": sanitize_for_json(dict(r.metadata)),
    }
    return canonicalize(out, NODE_FIELD_ORDER)


def edge_to_dict(edge: Edge) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "kind": edge.kind.value,
        "routing": edge.routing,
        "sourceHandle": edge.source_handle,
        "targetHandle": edge.target_handle,
    }
    return canonicalize(out, EDGE_FIELD_ORDER)


def graph_to_dict(graph: Graph) -> Dict[str, Any]:
    """Renderer-facing document: nodes and edges in graph order."""
    return {
        "schemaVersion": GRAPH_SCHEMA_VERSION,
        "nodes": [node_to_dict(n) for n in graph.nodes],
        "edges": [edge_to_dict(e) for e in graph.edges],
    }


def filter_edges_with_nodes(graph: Graph) -> Tuple[List[Edge], int]:
    node_ids = {n.id for n in graph.nodes}
    filtered = [e for e in graph.edges if e.source in node_ids and e.target in node_ids]
    return filtered, len(graph.edges) - len(filtered)


def write_graph_json(path: Path, graph: Graph) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(graph_to_dict(graph), f, indent=2, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        raise ExportError(f"Failed to write {path}: {e}") from e
    return path


def write_graph(nodes_path: Path, edges_path: Path, graph: Graph) -> Tuple[Path, Path]:
    try:
        nodes_path.parent.mkdir(parents=True, exist_ok=True)
        edges_path.parent.mkdir(parents=True, exist_ok=True)
        with nodes_path.open("w", encoding="utf-8") as f:
            for node in graph.nodes:
                f.write(stable_json_dumps(node_to_dict(node)))
                f.write("\n")
        with edges_path.open("w", encoding="utf-8") as f:
            for edge in graph.edges:
                f.write(stable_json_dumps(edge_to_dict(edge)))
                f.write("\n")
    except OSError as e:
        raise ExportError(f"Failed to write graph JSONL to {nodes_path.parent}: {e}") from e
    return nodes_path, edges_path
