from __future__ import annotations

import random
from itertools import combinations

import networkx as nx
import pytest

from cloud_topology.topology import BuildOptions, LayoutOptions, build_graph, layout_graph
from cloud_topology.topology.layout import _barycenter_sort, _count_crossings, assign_ranks, order_ranks
from cloud_topology.topology.model import Category, Edge, EdgeKind, Graph, Node, Placement, Position, Resource
from cloud_topology.util.errors import LayoutError


def _res(rid: str, rtype: str, **metadata) -> Resource:
    return Resource(id=rid, resource_type=rtype, region="us-east-1", metadata=metadata)


def _snapshot() -> list[Resource]:
    return [
        _res("vpc-1", "vpc"),
        _res("vpc-2", "vpc"),
        _res("subnet-1", "subnet", vpcId="vpc-1"),
        _res("subnet-2", "subnet", vpcId="vpc-2"),
        _res("subnet-3", "subnet", vpcId="vpc-1"),
        _res("i-1", "ec2_instance", subnetId="subnet-2"),
        _res("i-2", "ec2_instance", subnetId="subnet-1"),
        _res("i-3", "ec2_instance", subnetId="subnet-3"),
        _res("db-1", "rds_instance", subnetIds=["subnet-2"]),
        _res("b-1", "s3_bucket"),
        _res("u-1", "iam_user"),
        _res("subnet-9", "subnet", vpcId="vpc-missing"),
    ]


def _intervals_overlap(a0: float, a1: float, b0: float, b1: float) -> bool:
    return a0 < b1 and b0 < a1


def test_ranks_follow_containment_depth() -> None:
    graph = layout_graph(build_graph(_snapshot()))
    rank = {n.id: n.rank for n in graph.nodes}

    assert rank["vpc-1"] == rank["vpc-2"] == 0
    assert rank["subnet-1"] == rank["subnet-2"] == rank["subnet-3"] == 1
    assert rank["i-1"] == rank["i-2"] == rank["i-3"] == rank["db-1"] == 2
    assert rank["b-1"] == rank["u-1"] == rank["subnet-9"] == 0


def test_top_left_anchor_is_center_minus_half_box() -> None:
    opts = LayoutOptions(node_width=100, node_height=40, node_separation=10, rank_separation=20)
    graph = layout_graph(build_graph([_res("vpc-1", "vpc"), _res("subnet-1", "subnet", vpcId="vpc-1")]), "TB", opts)

    vpc = graph.node("vpc-1")
    subnet = graph.node("subnet-1")
    # Single-node ranks: centers at x=50, y=20 and y=20+40+20.
    assert vpc.position == Position(x=0, y=0)
    assert subnet.position == Position(x=0, y=60)


def test_same_rank_nodes_do_not_overlap_tb() -> None:
    opts = LayoutOptions()
    graph = layout_graph(build_graph(_snapshot()), "TB", opts)

    for a, b in combinations(graph.nodes, 2):
        if a.rank != b.rank:
            continue
        assert not _intervals_overlap(
            a.position.x,
            a.position.x + opts.node_width + opts.node_separation,
            b.position.x,
            b.position.x + opts.node_width + opts.node_separation,
        ), (a.id, b.id)


def test_same_rank_nodes_do_not_overlap_lr() -> None:
    opts = LayoutOptions()
    graph = layout_graph(build_graph(_snapshot()), "LR", opts)

    for a, b in combinations(graph.nodes, 2):
        if a.rank != b.rank:
            continue
        assert not _intervals_overlap(
            a.position.y,
            a.position.y + opts.node_height + opts.node_separation,
            b.position.y,
            b.position.y + opts.node_height + opts.node_separation,
        ), (a.id, b.id)


def test_lr_places_ranks_along_x() -> None:
    graph = layout_graph(build_graph(_snapshot()), "lr")
    by_id = {n.id: n for n in graph.nodes}

    assert by_id["vpc-1"].position.x < by_id["subnet-1"].position.x < by_id["i-2"].position.x
    assert all(e.source_handle == "right" and e.target_handle == "left" for e in graph.edges)


def test_tb_places_ranks_along_y_and_sets_edge_hints() -> None:
    graph = layout_graph(build_graph(_snapshot()))
    by_id = {n.id: n for n in graph.nodes}

    assert by_id["vpc-1"].position.y < by_id["subnet-1"].position.y < by_id["i-2"].position.y
    assert all(e.routing == "smoothstep" for e in graph.edges)
    assert all(e.source_handle == "bottom" and e.target_handle == "top" for e in graph.edges)


def test_pool_sits_after_hierarchy_on_rank_zero_line() -> None:
    graph = layout_graph(build_graph(_snapshot()))
    hierarchy = [n for n in graph.nodes if n.id not in {"b-1", "u-1", "subnet-9"}]
    pool = [graph.node("b-1"), graph.node("u-1"), graph.node("subnet-9")]

    rightmost = max(n.position.x for n in hierarchy)
    assert all(p.position.x > rightmost for p in pool)
    assert all(p.position.y == graph.node("vpc-1").position.y for p in pool)
    # pool keeps input order
    assert pool[0].position.x < pool[1].position.x < pool[2].position.x


def test_layout_is_deterministic_and_does_not_mutate_input() -> None:
    built = build_graph(_snapshot())

    first = layout_graph(built)
    second = layout_graph(build_graph(_snapshot()))

    assert [(n.id, n.position, n.rank) for n in first.nodes] == [(n.id, n.position, n.rank) for n in second.nodes]
    assert first.edges == second.edges
    assert all(n.position is None for n in built.nodes)
    assert [(e.source, e.target) for e in first.edges] == [(e.source, e.target) for e in built.edges]


def test_ordering_removes_avoidable_crossings() -> None:
    # vpc-2's subnet is listed before vpc-1's, so input order crosses.
    resources = [
        _res("vpc-1", "vpc"),
        _res("vpc-2", "vpc"),
        _res("subnet-2", "subnet", vpcId="vpc-2"),
        _res("subnet-1", "subnet", vpcId="vpc-1"),
    ]
    graph = build_graph(resources)
    order = {n.id: i for i, n in enumerate(graph.nodes)}
    dag = nx.DiGraph([(e.source, e.target) for e in graph.containment_edges()])

    ordering = order_ranks(dag, assign_ranks(dag, order), order, max_sweeps=4)

    assert ordering == [["vpc-1", "vpc-2"], ["subnet-1", "subnet-2"]]


def test_empty_graph_layout() -> None:
    graph = layout_graph(Graph())

    assert graph.nodes == []
    assert graph.edges == []


def test_invalid_direction_raises() -> None:
    with pytest.raises(LayoutError):
        layout_graph(build_graph([_res("vpc-1", "vpc")]), "RL")


def test_containment_cycle_raises() -> None:
    a = Node(id="a", category=Category.NETWORK_CONTAINER, label="a", resource=_res("a", "vpc"), placement=Placement.ROOT)
    b = Node(id="b", category=Category.NETWORK_CONTAINER, label="b", resource=_res("b", "vpc"), placement=Placement.ROOT)
    graph = Graph(
        nodes=[a, b],
        edges=[
            Edge(id="a-b", source="a", target="b", kind=EdgeKind.CONTAINMENT),
            Edge(id="b-a", source="b", target="a", kind=EdgeKind.CONTAINMENT),
        ],
    )

    with pytest.raises(LayoutError):
        layout_graph(graph)


def test_attachment_edges_do_not_affect_ranks() -> None:
    resources = [
        _res("subnet-a", "subnet"),
        _res("subnet-b", "subnet"),
        _res("db-1", "rds_instance", subnetIds=["subnet-a", "subnet-b"]),
    ]
    graph = layout_graph(build_graph(resources, BuildOptions(attach_group_members=True)))
    rank = {n.id: n.rank for n in graph.nodes}

    assert rank == {"subnet-a": 0, "subnet-b": 0, "db-1": 1}


def _ordering_for(resources: list[Resource]) -> tuple[list[list[str]], nx.DiGraph]:
    graph = build_graph(resources)
    order = {n.id: i for i, n in enumerate(graph.nodes)}
    dag = nx.DiGraph([(e.source, e.target) for e in graph.containment_edges()])
    return order_ranks(dag, assign_ranks(dag, order), order, max_sweeps=24), dag


def _random_forest(seed: int) -> list[Resource]:
    rng = random.Random(seed)
    vpcs = [f"vpc{i}" for i in range(rng.randint(2, 4))]
    subnets = [(f"sn{i}", rng.choice(vpcs)) for i in range(rng.randint(3, 8))]
    instances = [(f"i{i}", rng.choice(subnets)[0]) for i in range(rng.randint(2, 10))]
    resources = (
        [_res(v, "vpc") for v in vpcs]
        + [_res(s, "subnet", vpcId=v) for s, v in subnets]
        + [_res(i, "ec2_instance", subnetId=s) for i, s in instances]
    )
    rng.shuffle(resources)
    return resources


@pytest.mark.parametrize("seed", range(60))
def test_containment_forests_are_ordered_without_crossings(seed) -> None:
    ordering, dag = _ordering_for(_random_forest(seed))

    assert _count_crossings(ordering, dag) == 0


def test_leaf_subnets_keep_forest_free_of_crossings() -> None:
    # Only one subnet has an instance, so the upward pass sees leaf subnets with no neighbours.
    resources = [
        _res("vpc1", "vpc"),
        _res("vpc0", "vpc"),
        _res("sn1", "subnet", vpcId="vpc1"),
        _res("sn0", "subnet", vpcId="vpc0"),
        _res("sn2", "subnet", vpcId="vpc1"),
        _res("sn3", "subnet", vpcId="vpc0"),
        _res("i1", "ec2_instance", subnetId="sn3"),
        _res("i0", "ec2_instance", subnetId="sn1"),
    ]

    ordering, dag = _ordering_for(resources)

    assert _count_crossings(ordering, dag) == 0
    assert ordering[0] == ["vpc1", "vpc0"]
    assert ordering[1] == ["sn1", "sn2", "sn0", "sn3"]


def test_count_crossings_counts_disagreeing_edge_pairs() -> None:
    dag = nx.DiGraph([("a", "d"), ("a", "e"), ("b", "c")])

    assert _count_crossings([["a", "b"], ["c", "d", "e"]], dag) == 2
    assert _count_crossings([["a", "b"], ["d", "e", "c"]], dag) == 0
    # Edges sharing a source never cross each other.
    assert _count_crossings([["a"], ["e", "d"]], nx.DiGraph([("a", "d"), ("a", "e")])) == 0


def test_barycenter_sort_pins_nodes_without_neighbours() -> None:
    result = _barycenter_sort(["x", "y", "z"], {"x": ["q"], "z": ["p"]}, ["p", "q"])

    assert result == ["z", "y", "x"]


def test_wide_flat_snapshot_orders_without_crossings() -> None:
    subnets = ["sn0", "sn1", "sn2"]
    resources = [_res("vpc", "vpc")] + [_res(s, "subnet", vpcId="vpc") for s in subnets]
    # Instances interleave across subnets in input order.
    resources += [_res(f"i{n}", "ec2_instance", subnetId=subnets[n % 3]) for n in range(3000)]

    ordering, dag = _ordering_for(resources)

    assert _count_crossings(ordering, dag) == 0
    assert ordering[2][:2] == ["i0", "i3"]
