from __future__ import annotations

import logging

import networkx as nx
import pytest

from cloud_topology.topology import BuildOptions, build_graph
from cloud_topology.topology.model import Category, EdgeKind, Placement, Resource
from cloud_topology.util.errors import DuplicateResourceError, InputContractError


def _res(rid: str, rtype: str, name=None, **metadata) -> Resource:
    return Resource(id=rid, resource_type=rtype, name=name, region="us-east-1", metadata=metadata)


def _mixed_snapshot() -> list[Resource]:
    return [
        _res("vpc-1", "vpc", name="main"),
        _res("vpc-2", "vpc"),
        _res("subnet-1", "subnet", vpcId="vpc-1"),
        _res("subnet-2", "subnet", vpcId="vpc-1"),
        _res("subnet-3", "subnet", vpcId="vpc-2"),
        _res("subnet-9", "subnet", vpcId="vpc-gone"),
        _res("i-1", "ec2_instance", subnetId="subnet-1"),
        _res("i-2", "ec2_instance", subnetId="subnet-3"),
        _res("i-3", "ec2_instance", subnetId="subnet-9"),
        _res("i-4", "ec2_instance", subnetId="subnet-missing"),
        _res("db-1", "rds_instance", subnetIds=["subnet-2", "subnet-1"]),
        _res("sg-1", "security_group", vpcId="vpc-2"),
        _res("b-1", "s3_bucket"),
        _res("u-1", "iam_user"),
        _res("x-1", "mystery_type"),
    ]


def test_scenario_vpc_subnet_instance_chain() -> None:
    resources = [
        _res("vpc-1", "vpc"),
        _res("subnet-1", "subnet", vpcId="vpc-1"),
        _res("i-1", "ec2_instance", subnetId="subnet-1"),
    ]

    graph = build_graph(resources)

    assert len(graph.nodes) == 3
    assert [(e.source, e.target) for e in graph.edges] == [("vpc-1", "subnet-1"), ("subnet-1", "i-1")]
    assert all(e.kind is EdgeKind.CONTAINMENT for e in graph.edges)
    assert graph.node("vpc-1").placement is Placement.ROOT
    assert graph.node("i-1").placement is Placement.NESTED


def test_scenario_bucket_is_global() -> None:
    graph = build_graph([_res("b-1", "s3_bucket")])

    assert len(graph.nodes) == 1
    assert graph.edges == []
    node = graph.nodes[0]
    assert node.category is Category.GLOBAL
    assert node.placement is Placement.GLOBAL
    assert graph.globals == [node]


def test_scenario_subnet_with_missing_vpc_is_orphan() -> None:
    graph = build_graph([_res("subnet-2", "subnet", vpcId="vpc-missing")])

    assert len(graph.nodes) == 1
    assert graph.edges == []
    assert graph.nodes[0].placement is Placement.ORPHAN
    assert graph.orphans == graph.nodes


def test_duplicate_ids_last_write_wins_by_default(caplog) -> None:
    resources = [
        _res("vpc-1", "vpc"),
        _res("subnet-1", "subnet", name="old", vpcId="vpc-missing"),
        _res("i-1", "ec2_instance", subnetId="subnet-1"),
        _res("subnet-1", "subnet", name="new", vpcId="vpc-1"),
    ]

    with caplog.at_level(logging.WARNING):
        graph = build_graph(resources)

    assert [n.id for n in graph.nodes] == ["vpc-1", "subnet-1", "i-1"]
    assert graph.node("subnet-1").label == "new"
    assert ("vpc-1", "subnet-1") in {(e.source, e.target) for e in graph.edges}
    assert "Duplicate resource id" in caplog.text


def test_duplicate_ids_rejected_when_configured() -> None:
    resources = [_res("vpc-1", "vpc"), _res("vpc-1", "vpc"), _res("b-1", "s3_bucket"), _res("b-1", "s3_bucket")]

    with pytest.raises(DuplicateResourceError) as excinfo:
        build_graph(resources, BuildOptions(duplicate_policy="reject"))

    assert excinfo.value.resource_ids == ["vpc-1", "b-1"]


def test_build_graph_rejects_none_and_non_lists() -> None:
    with pytest.raises(InputContractError):
        build_graph(None)  # type: ignore[arg-type]
    with pytest.raises(InputContractError):
        build_graph("vpc-1")  # type: ignore[arg-type]
    with pytest.raises(InputContractError):
        build_graph([_res("vpc-1", "vpc"), 7])  # type: ignore[list-item]


def test_build_graph_empty_snapshot() -> None:
    graph = build_graph([])

    assert graph.nodes == []
    assert graph.edges == []


def test_build_graph_accepts_inventory_records() -> None:
    records = [
        {"id": "r1", "resourceType": "vpc", "resourceId": "vpc-0abc", "region": "eu-west-1", "metadata": {}},
        {"id": "r2", "resourceType": "subnet", "resourceId": "subnet-0def", "metadata": {"vpcId": "vpc-0abc"}},
        {"resourceType": "subnet", "metadata": {}},
    ]

    graph = build_graph(records)

    assert [n.id for n in graph.nodes] == ["r1", "r2"]
    assert graph.node("r2").label == "subnet-0def"
    assert [(e.source, e.target) for e in graph.edges] == [("r1", "r2")]


def test_label_prefers_name_over_resource_id() -> None:
    graph = build_graph([_res("vpc-1", "vpc", name="prod"), _res("vpc-2", "vpc")])

    assert [n.label for n in graph.nodes] == ["prod", "vpc-2"]


def test_mixed_snapshot_invariants() -> None:
    resources = _mixed_snapshot()

    graph = build_graph(resources)

    # node conservation
    assert len(graph.nodes) == len(resources)
    # edge validity
    node_ids = {n.id for n in graph.nodes}
    assert all(e.source in node_ids and e.target in node_ids for e in graph.edges)
    # no duplicate (source, target) pairs
    pairs = [(e.source, e.target) for e in graph.edges]
    assert len(pairs) == len(set(pairs))
    # containment is a forest
    dag = nx.DiGraph([(e.source, e.target) for e in graph.containment_edges()])
    assert nx.is_directed_acyclic_graph(dag)
    assert all(dag.in_degree(n) <= 1 for n in dag.nodes)


def test_mixed_snapshot_placements() -> None:
    graph = build_graph(_mixed_snapshot())
    placement = {n.id: n.placement for n in graph.nodes}

    assert placement["vpc-2"] is Placement.ROOT
    assert placement["subnet-9"] is Placement.ORPHAN
    assert placement["i-3"] is Placement.NESTED
    assert placement["i-4"] is Placement.ORPHAN
    assert placement["db-1"] is Placement.NESTED
    assert placement["sg-1"] is Placement.NESTED
    assert placement["b-1"] is Placement.GLOBAL
    assert placement["u-1"] is Placement.GLOBAL
    assert placement["x-1"] is Placement.GLOBAL
    assert graph.node("x-1").category is Category.UNKNOWN
    assert ("subnet-1", "db-1") in {(e.source, e.target) for e in graph.edges}


def test_attachment_edges_are_opt_in_for_subnet_groups() -> None:
    resources = [
        _res("subnet-a", "subnet"),
        _res("subnet-b", "subnet"),
        _res("db-1", "rds_instance", subnetIds=["subnet-a", "subnet-b"]),
    ]

    default = build_graph(resources)
    attached = build_graph(resources, BuildOptions(attach_group_members=True))

    assert [(e.source, e.target, e.kind) for e in default.edges] == [("subnet-a", "db-1", EdgeKind.CONTAINMENT)]
    assert [(e.source, e.target, e.kind) for e in attached.edges] == [
        ("subnet-a", "db-1", EdgeKind.CONTAINMENT),
        ("subnet-b", "db-1", EdgeKind.ATTACHMENT),
    ]


def test_service_attaches_to_cluster() -> None:
    resources = [
        _res("cluster-1", "ecs_cluster", name="web"),
        _res("svc-1", "ecs_service", clusterName="web"),
    ]

    graph = build_graph(resources)

    assert [(e.id, e.kind) for e in graph.edges] == [("cluster-1-svc-1", EdgeKind.ATTACHMENT)]
    assert graph.node("svc-1").placement is Placement.GLOBAL


def test_build_graph_is_deterministic() -> None:
    first = build_graph(_mixed_snapshot())
    second = build_graph(_mixed_snapshot())

    assert first == second


def test_category_overrides_change_resolution() -> None:
    resources = [_res("net-1", "custom_net"), _res("subnet-1", "subnet", vpcId="net-1")]

    plain = build_graph(resources)
    overridden = build_graph(resources, BuildOptions(category_overrides={"custom_net": Category.NETWORK_CONTAINER}))

    assert plain.edges == []
    assert [(e.source, e.target) for e in overridden.edges] == [("net-1", "subnet-1")]


def test_edge_ids_stay_unique_when_node_ids_contain_dashes() -> None:
    resources = [
        _res("a-b", "vpc"),
        _res("a", "vpc"),
        _res("c", "subnet", vpcId="a-b"),
        _res("b-c", "subnet", vpcId="a"),
    ]

    graph = build_graph(resources)

    assert [(e.source, e.target) for e in graph.edges] == [("a-b", "c"), ("a", "b-c")]
    assert [e.id for e in graph.edges] == ["a-b-c", "a-b-c~2"]
