from __future__ import annotations

from .builder import BuildOptions, build_graph
from .classify import classify
from .layout import LayoutOptions, layout_graph
from .model import Category, Edge, EdgeKind, Graph, Node, Placement, Position, Resource
from .resolve import resolve_parent

__all__ = [
    "BuildOptions",
    "Category",
    "Edge",
    "EdgeKind",
    "Graph",
    "LayoutOptions",
    "Node",
    "Placement",
    "Position",
    "Resource",
    "build_graph",
    "classify",
    "layout_graph",
    "resolve_parent",
]
