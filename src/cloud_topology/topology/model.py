from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Mapping, Optional


class Category(str, Enum):
    NETWORK_CONTAINER = "network_container"
    NETWORK_SEGMENT = "network_segment"
    COMPUTE = "compute"
    STORAGE = "storage"
    MANAGED_SERVICE = "managed_service"
    GLOBAL = "global"
    UNKNOWN = "unknown"


class Placement(str, Enum):
    """Presentational bucket for a node; not part of the graph structure."""

    ROOT = "root"
    NESTED = "nested"
    ORPHAN = "orphan"
    GLOBAL = "global"


class EdgeKind(str, Enum):
    CONTAINMENT = "containment"
    ATTACHMENT = "attachment"


@dataclass(frozen=True)
class Resource:
    id: str
    resource_type: str
    resource_id: str = ""
    name: Optional[str] = None
    region: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Snapshots without a separate cloud identifier reference resources by id.
        if not self.resource_id:
            object.__setattr__(self, "resource_id", self.id)


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class Node:
    id: str
    category: Category
    label: str
    resource: Resource
    placement: Placement
    rank: int = 0
    position: Optional[Position] = None


@dataclass(frozen=True)
class Edge:
    id: str
    source: str
    target: str
    kind: EdgeKind = EdgeKind.CONTAINMENT
    routing: Optional[str] = None
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


def edge_id(source: str, target: str) -> str:
    return f"{source}-{target}"


@dataclass(frozen=True)
class Graph:
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)

    def node(self, node_id: str) -> Optional[Node]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def containment_edges(self) -> Iterator[Edge]:
        return (e for e in self.edges if e.kind is EdgeKind.CONTAINMENT)

    @property
    def orphans(self) -> List[Node]:
        return [n for n in self.nodes if n.placement is Placement.ORPHAN]

    @property
    def globals(self) -> List[Node]:
        return [n for n in self.nodes if n.placement is Placement.GLOBAL]
