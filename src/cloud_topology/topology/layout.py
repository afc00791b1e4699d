"""Layered (Sugiyama-style) layout for topology graphs.

Phases:
  1. Rank assignment: longest containment path from a root.
  2. Ordering within ranks: barycenter sweeps, keeping the fewest-crossings order.
  3. Coordinates: center-anchored boxes on a fixed grid, then shifted to the
     top-left anchor the renderer expects.

Nodes without any containment edge are not part of the hierarchy; they form a
pool laid out on the rank-0 line after the hierarchy.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from time import perf_counter
from typing import Dict, List, Optional, Sequence, Set, Tuple

import networkx as nx

from ..logging import get_logger
from ..util.errors import LayoutError
from .model import Edge, Graph, Node, Position

LOG = get_logger(__name__)

DIRECTIONS = ("TB", "LR")
EDGE_ROUTING = "smoothstep"

NODE_WIDTH = 250
NODE_HEIGHT = 80
NODE_SEPARATION = 80
RANK_SEPARATION = 100
MAX_SWEEPS = 24

_HANDLES = {
    "TB": ("bottom", "top"),
    "LR": ("right", "left"),
}


@dataclass(frozen=True)
class LayoutOptions:
    node_width: float = NODE_WIDTH
    node_height: float = NODE_HEIGHT
    node_separation: float = NODE_SEPARATION
    rank_separation: float = RANK_SEPARATION
    pool_separation: Optional[float] = None
    max_sweeps: int = MAX_SWEEPS

    def __post_init__(self) -> None:
        if self.node_width <= 0 or self.node_height <= 0:
            raise ValueError("node_width and node_height must be positive")
        if self.node_separation < 0 or self.rank_separation < 0:
            raise ValueError("node_separation and rank_separation must not be negative")
        if self.pool_separation is not None and self.pool_separation < 0:
            raise ValueError("pool_separation must not be negative")
        if self.max_sweeps < 0:
            raise ValueError("max_sweeps must not be negative")

    @property
    def effective_pool_separation(self) -> float:
        return self.rank_separation if self.pool_separation is None else self.pool_separation


def normalize_direction(direction: str) -> str:
    value = str(direction or "").strip().upper()
    if value not in DIRECTIONS:
        raise LayoutError(f"Layout direction must be one of: {', '.join(DIRECTIONS)} (got {direction!r})")
    return value


def _containment_digraph(graph: Graph, order: Dict[str, int]) -> nx.DiGraph:
    dag = nx.DiGraph()
    for edge in graph.containment_edges():
        if edge.source not in order or edge.target not in order:
            raise LayoutError(f"Edge {edge.id} references a node that is not in the graph")
        dag.add_edge(edge.source, edge.target)
    return dag


def assign_ranks(dag: nx.DiGraph, order: Dict[str, int]) -> Dict[str, int]:
    """Rank = length of the longest path from any root, in deterministic order."""
    if not nx.is_directed_acyclic_graph(dag):
        cycle = nx.find_cycle(dag)
        raise LayoutError(f"Containment edges form a cycle: {cycle}")
    ranks: Dict[str, int] = {}
    for node_id in nx.lexicographical_topological_sort(dag, key=lambda n: order[n]):
        preds = list(dag.predecessors(node_id))
        ranks[node_id] = max((ranks[p] + 1 for p in preds), default=0)
    return ranks


def _sort_and_count(values: List[int]) -> Tuple[List[int], int]:
    """Merge sort that also counts pairs i < j with values[i] > values[j]."""
    if len(values) < 2:
        return list(values), 0
    mid = len(values) // 2
    left, left_count = _sort_and_count(values[:mid])
    right, right_count = _sort_and_count(values[mid:])
    merged: List[int] = []
    count = left_count + right_count
    i = j = 0
    while i < len(left) and j < len(right):
        if left[i] <= right[j]:
            merged.append(left[i])
            i += 1
        else:
            merged.append(right[j])
            count += len(left) - i
            j += 1
    merged.extend(left[i:])
    merged.extend(right[j:])
    return merged, count


def _count_crossings(ordering: Sequence[Sequence[str]], dag: nx.DiGraph) -> int:
    total = 0
    for idx in range(len(ordering) - 1):
        below = {nid: i for i, nid in enumerate(ordering[idx + 1])}
        pairs: List[Tuple[int, int]] = []
        for sp, src in enumerate(ordering[idx]):
            for dst in dag.successors(src):
                if dst in below:
                    pairs.append((sp, below[dst]))
        # Two edges cross when their source order and target order disagree.
        pairs.sort()
        total += _sort_and_count([dp for _, dp in pairs])[1]
    return total


def _barycenter_sort(layer: List[str], neighbours: Dict[str, List[str]], adjacent: Sequence[str]) -> List[str]:
    """
    Reorder ``layer`` by the mean slot of each node's neighbours in ``adjacent``.

    Nodes without neighbours in the adjacent rank stay pinned to their slot;
    the others are sorted among the remaining slots. Ties keep the current order.
    """
    pos = {nid: float(i) for i, nid in enumerate(adjacent)}
    movable: List[Tuple[float, int, str]] = []
    for slot, nid in enumerate(layer):
        weights = [pos[nb] for nb in neighbours.get(nid, ()) if nb in pos]
        if weights:
            movable.append((sum(weights) / len(weights), slot, nid))
    if not movable:
        return list(layer)

    free_slots = [slot for _, slot, _ in movable]
    result = list(layer)
    for slot, (_, _, nid) in zip(free_slots, sorted(movable)):
        result[slot] = nid
    return result


def order_ranks(dag: nx.DiGraph, ranks: Dict[str, int], order: Dict[str, int], max_sweeps: int) -> List[List[str]]:
    """
    Order nodes within each rank to reduce crossings between adjacent ranks.

    Alternates downward and upward barycenter passes. Crossings are counted
    after every pass and the best ordering seen is returned.
    """
    rank_count = (max(ranks.values()) + 1) if ranks else 0
    ordering: List[List[str]] = [[] for _ in range(rank_count)]
    for node_id in sorted(ranks, key=lambda n: order[n]):
        ordering[ranks[node_id]].append(node_id)

    preds = {n: sorted(dag.predecessors(n), key=lambda p: order[p]) for n in dag.nodes}
    succs = {n: sorted(dag.successors(n), key=lambda s: order[s]) for n in dag.nodes}
    passes = (
        (range(1, rank_count), preds, -1),
        (range(rank_count - 2, -1, -1), succs, 1),
    )

    best = [list(layer) for layer in ordering]
    best_crossings = _count_crossings(best, dag)
    for _ in range(max_sweeps):
        if best_crossings == 0:
            break
        improved = False
        for indices, neighbours, step in passes:
            for idx in indices:
                ordering[idx] = _barycenter_sort(ordering[idx], neighbours, ordering[idx + step])
            crossings = _count_crossings(ordering, dag)
            if crossings < best_crossings:
                best = [list(layer) for layer in ordering]
                best_crossings = crossings
                improved = True
            if best_crossings == 0:
                break
        if not improved:
            break
    return best


def _center_positions(
    ordering: Sequence[Sequence[str]],
    pool: Sequence[str],
    options: LayoutOptions,
    direction: str,
) -> Dict[str, Tuple[float, float]]:
    """
    Center-anchored coordinates as (along-rank, across-rank) offsets, mapped to
    (x, y) for the requested direction.
    """
    horizontal = direction == "LR"
    # Box extent along the in-rank axis and along the rank axis.
    slot = options.node_height if horizontal else options.node_width
    depth = options.node_width if horizontal else options.node_height
    step = slot + options.node_separation
    rank_step = depth + options.rank_separation

    def _span(count: int) -> float:
        return count * slot + max(count - 1, 0) * options.node_separation

    hierarchy_span = max((_span(len(layer)) for layer in ordering), default=0.0)

    centers: Dict[str, Tuple[float, float]] = {}
    for rank, layer in enumerate(ordering):
        offset = (hierarchy_span - _span(len(layer))) / 2
        across = rank * rank_step + depth / 2
        for i, node_id in enumerate(layer):
            centers[node_id] = (offset + i * step + slot / 2, across)

    pool_start = hierarchy_span + options.effective_pool_separation if ordering else 0.0
    for i, node_id in enumerate(pool):
        centers[node_id] = (pool_start + i * step + slot / 2, depth / 2)

    if horizontal:
        return {nid: (across, along) for nid, (along, across) in centers.items()}
    return centers


def layout_graph(graph: Graph, direction: str = "TB", options: Optional[LayoutOptions] = None) -> Graph:
    """
    Return a copy of ``graph`` with ranks and top-left anchored positions.

    Deterministic: the same graph (same node and edge order) always yields the
    same coordinates.
    """
    if graph is None:
        raise LayoutError("layout_graph requires a graph, got None")
    rankdir = normalize_direction(direction)
    opts = options or LayoutOptions()
    started = perf_counter()

    order = {node.id: i for i, node in enumerate(graph.nodes)}
    dag = _containment_digraph(graph, order)
    ranks = assign_ranks(dag, order)
    ordering = order_ranks(dag, ranks, order, opts.max_sweeps)

    in_hierarchy: Set[str] = set(dag.nodes)
    pool = [node.id for node in graph.nodes if node.id not in in_hierarchy]
    centers = _center_positions(ordering, pool, opts, rankdir)

    half_w = opts.node_width / 2
    half_h = opts.node_height / 2
    nodes: List[Node] = []
    for node in graph.nodes:
        cx, cy = centers[node.id]
        nodes.append(
            replace(
                node,
                rank=ranks.get(node.id, 0),
                position=Position(x=cx - half_w, y=cy - half_h),
            )
        )

    source_handle, target_handle = _HANDLES[rankdir]
    edges: List[Edge] = [
        replace(edge, routing=EDGE_ROUTING, source_handle=source_handle, target_handle=target_handle)
        for edge in graph.edges
    ]

    LOG.info(
        "Topology graph laid out",
        extra={
            "step": "layout",
            "phase": "complete",
            "duration_ms": int((perf_counter() - started) * 1000),
            "direction": rankdir,
            "ranks": len(ordering),
            "pool": len(pool),
        },
    )
    return Graph(nodes=nodes, edges=edges)
