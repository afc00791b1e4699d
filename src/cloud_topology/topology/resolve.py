from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .classify import classify
from .metadata import (
    instance_subnet_group,
    instance_subnet_id,
    service_cluster_ref,
    service_subnet_id,
    service_vpc_id,
    subnet_vpc_id,
)
from .model import Category, Resource

# Categories whose resources are expected to sit inside a network.
NESTING_CATEGORIES = frozenset({Category.NETWORK_SEGMENT, Category.COMPUTE})
# Categories that nest only when they carry a network reference.
OPTIONAL_NESTING_CATEGORIES = frozenset({Category.STORAGE, Category.MANAGED_SERVICE})


@dataclass(frozen=True)
class ResourceIndex:
    categories: Dict[str, Category]
    containers: Dict[str, Resource]
    segments: Dict[str, Resource]
    segment_order: List[Resource]
    by_resource_id: Dict[str, Resource]
    by_name: Dict[str, Resource]
    overrides: Dict[str, Category] = field(default_factory=dict)

    def category_of(self, resource: Resource) -> Category:
        return self.categories.get(resource.id) or classify(resource.resource_type, self.overrides)


def build_resource_index(
    resources: Iterable[Resource],
    *,
    overrides: Optional[Mapping[str, Category]] = None,
) -> ResourceIndex:
    categories: Dict[str, Category] = {}
    containers: Dict[str, Resource] = {}
    segments: Dict[str, Resource] = {}
    segment_order: List[Resource] = []
    by_resource_id: Dict[str, Resource] = {}
    by_name: Dict[str, Resource] = {}

    for r in resources:
        category = classify(r.resource_type, overrides)
        categories[r.id] = category
        # First occurrence in input order wins for every lookup.
        by_resource_id.setdefault(r.resource_id, r)
        if r.name:
            by_name.setdefault(r.name, r)
        if category is Category.NETWORK_CONTAINER:
            containers.setdefault(r.resource_id, r)
        elif category is Category.NETWORK_SEGMENT:
            segments.setdefault(r.resource_id, r)
            segment_order.append(r)

    return ResourceIndex(
        categories=categories,
        containers=containers,
        segments=segments,
        segment_order=segment_order,
        by_resource_id=by_resource_id,
        by_name=by_name,
        overrides=dict(overrides or {}),
    )


def _first_segment_in_group(group: Sequence[str], index: ResourceIndex) -> Optional[Resource]:
    wanted = set(group)
    for segment in index.segment_order:
        if segment.resource_id in wanted:
            return segment
    return None


def _resolve_compute(resource: Resource, index: ResourceIndex) -> Optional[Resource]:
    subnet_id = instance_subnet_id(resource)
    if subnet_id and subnet_id in index.segments:
        return index.segments[subnet_id]
    group = instance_subnet_group(resource)
    if group:
        return _first_segment_in_group(group, index)
    return None


def _resolve_service(resource: Resource, index: ResourceIndex) -> Optional[Resource]:
    subnet_id = service_subnet_id(resource)
    if subnet_id:
        return index.segments.get(subnet_id)
    group = instance_subnet_group(resource)
    if group:
        return _first_segment_in_group(group, index)
    vpc_id = service_vpc_id(resource)
    if vpc_id:
        return index.containers.get(vpc_id)
    return None


def resolve_parent_indexed(resource: Resource, index: ResourceIndex) -> Optional[str]:
    category = index.category_of(resource)
    parent: Optional[Resource] = None
    if category is Category.NETWORK_SEGMENT:
        vpc_id = subnet_vpc_id(resource)
        parent = index.containers.get(vpc_id) if vpc_id else None
    elif category is Category.COMPUTE:
        parent = _resolve_compute(resource, index)
    elif category in OPTIONAL_NESTING_CATEGORIES:
        parent = _resolve_service(resource, index)
    if parent is None or parent.id == resource.id:
        return None
    return parent.id


def resolve_parent(
    resource: Resource,
    all_resources: Sequence[Resource],
    *,
    overrides: Optional[Mapping[str, Category]] = None,
) -> Optional[str]:
    """
    Return the id of the resource's structural parent, or None.

    References match candidates by exact equality on ``resource_id``. When a
    compute resource lists a group of subnets, the first subnet in
    ``all_resources`` order that belongs to the group is the parent.
    """
    return resolve_parent_indexed(resource, build_resource_index(all_resources, overrides=overrides))


def resolve_attachments(
    resource: Resource,
    index: ResourceIndex,
    *,
    parent_id: Optional[str] = None,
    attach_group_members: bool = False,
) -> List[str]:
    """
    Ids of resources this one attaches to without being contained by them.

    Services attach to the cluster named in their metadata. With
    ``attach_group_members`` a compute resource also attaches to every subnet of
    its group other than the containment parent.
    """
    out: List[str] = []
    category = index.category_of(resource)

    cluster_ref = service_cluster_ref(resource)
    if cluster_ref:
        cluster = index.by_resource_id.get(cluster_ref) or index.by_name.get(cluster_ref)
        if cluster is not None and cluster.id != resource.id:
            out.append(cluster.id)

    if attach_group_members and category is Category.COMPUTE:
        wanted = set(instance_subnet_group(resource))
        for segment in index.segment_order:
            if segment.resource_id in wanted and segment.id != parent_id:
                out.append(segment.id)

    return [target for target in out if target != parent_id]
