from __future__ import annotations

from collections.abc import Iterable as IterableABC
from dataclasses import dataclass, field
from time import perf_counter
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ..logging import get_logger
from ..util.errors import DuplicateResourceError, InputContractError
from .metadata import has_relational_key
from .model import Category, Edge, EdgeKind, Graph, Node, Placement, Resource, edge_id
from .resolve import (
    NESTING_CATEGORIES,
    OPTIONAL_NESTING_CATEGORIES,
    ResourceIndex,
    build_resource_index,
    resolve_attachments,
    resolve_parent_indexed,
)

LOG = get_logger(__name__)

DUPLICATE_POLICIES = {"last_write_wins", "reject"}

ResourceLike = Union[Resource, Mapping[str, object]]


@dataclass(frozen=True)
class BuildOptions:
    duplicate_policy: str = "last_write_wins"
    attach_group_members: bool = False
    category_overrides: Dict[str, Category] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(
                f"duplicate_policy must be one of: {', '.join(sorted(DUPLICATE_POLICIES))}"
            )


def _coerce_resources(resources: Iterable[ResourceLike]) -> List[Resource]:
    # Import here to avoid circular import at module load
    from ..normalize.transform import resource_from_record

    out: List[Resource] = []
    for position, item in enumerate(resources):
        if isinstance(item, Resource):
            out.append(item)
            continue
        if isinstance(item, Mapping):
            resource = resource_from_record(item)
            if resource is None:
                LOG.warning("Skipped resource record without id", extra={"position": position})
                continue
            out.append(resource)
            continue
        raise InputContractError(
            f"Resource list item {position} must be a Resource or a mapping, got {type(item).__name__}"
        )
    return out


def _dedupe_resources(resources: List[Resource], policy: str) -> List[Resource]:
    latest: Dict[str, Resource] = {}
    duplicates: List[str] = []
    for r in resources:
        if r.id in latest and r.id not in duplicates:
            duplicates.append(r.id)
        # dict keeps the first insertion slot; the value is replaced
        latest[r.id] = r
    if duplicates:
        if policy == "reject":
            raise DuplicateResourceError(duplicates)
        for rid in duplicates:
            LOG.warning("Duplicate resource id; keeping last occurrence", extra={"resource_id": rid})
    return list(latest.values())


def _placement(category: Category, resource: Resource, has_parent: bool) -> Placement:
    if has_parent:
        return Placement.NESTED
    if category is Category.NETWORK_CONTAINER:
        return Placement.ROOT
    if category in NESTING_CATEGORIES:
        return Placement.ORPHAN
    if category in OPTIONAL_NESTING_CATEGORIES and has_relational_key(resource):
        return Placement.ORPHAN
    return Placement.GLOBAL


def _node_label(resource: Resource) -> str:
    return resource.name or resource.resource_id


def _emit_edges(
    resources: List[Resource],
    parents: Dict[str, Optional[str]],
    index: ResourceIndex,
    options: BuildOptions,
) -> List[Edge]:
    edges: List[Edge] = []
    seen: Set[Tuple[str, str]] = set()
    ids: Set[str] = set()

    def _emit(src: str, dst: str, kind: EdgeKind) -> None:
        key = (src, dst)
        if key in seen:
            return
        seen.add(key)
        eid = edge_id(src, dst)
        # Dashed node ids can spell the same id for different pairs ("a-b"->"c", "a"->"b-c").
        suffix = 2
        while eid in ids:
            eid = f"{edge_id(src, dst)}~{suffix}"
            suffix += 1
        ids.add(eid)
        edges.append(Edge(id=eid, source=src, target=dst, kind=kind))

    for r in resources:
        parent_id = parents.get(r.id)
        if parent_id:
            _emit(parent_id, r.id, EdgeKind.CONTAINMENT)

    for r in resources:
        for target in resolve_attachments(
            r,
            index,
            parent_id=parents.get(r.id),
            attach_group_members=options.attach_group_members,
        ):
            # Attachments point from the shared resource to its dependent, like containment.
            _emit(target, r.id, EdgeKind.ATTACHMENT)

    return edges


def build_graph(resources: Iterable[ResourceLike], options: Optional[BuildOptions] = None) -> Graph:
    """
    Build the topology graph for one resource snapshot.

    One node per distinct resource id, one containment edge per resolved parent,
    plus attachment edges. Unresolvable references never raise; the resource
    becomes an orphan or global node instead.
    """
    if resources is None:
        raise InputContractError("build_graph requires a resource list, got None")
    if isinstance(resources, (str, bytes, Mapping)) or not isinstance(resources, IterableABC):
        raise InputContractError(
            f"build_graph requires an iterable of resources, got {type(resources).__name__}"
        )
    opts = options or BuildOptions()
    started = perf_counter()

    items = _dedupe_resources(_coerce_resources(resources), opts.duplicate_policy)
    index = build_resource_index(items, overrides=opts.category_overrides)

    parents: Dict[str, Optional[str]] = {}
    for r in items:
        parent_id = resolve_parent_indexed(r, index)
        parents[r.id] = parent_id
        if parent_id is None and index.category_of(r) in NESTING_CATEGORIES | OPTIONAL_NESTING_CATEGORIES:
            LOG.debug(
                "No parent resolved",
                extra={"resource_id": r.id, "resource_type": r.resource_type},
            )

    nodes: List[Node] = []
    for r in items:
        category = index.category_of(r)
        nodes.append(
            Node(
                id=r.id,
                category=category,
                label=_node_label(r),
                resource=r,
                placement=_placement(category, r, parents[r.id] is not None),
            )
        )

    edges = _emit_edges(items, parents, index, opts)
    graph = Graph(nodes=nodes, edges=edges)

    LOG.info(
        "Topology graph built",
        extra={
            "step": "build",
            "phase": "complete",
            "duration_ms": int((perf_counter() - started) * 1000),
            "nodes": len(nodes),
            "edges": len(edges),
            "orphans": len(graph.orphans),
            "globals": len(graph.globals),
        },
    )
    return graph
