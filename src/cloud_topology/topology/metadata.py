"""Typed accessors for the free-form metadata scanners attach to resources.

Every cross-reference the resolver follows is read here. A missing key, a
non-string value and an empty string all mean "no reference".
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from .model import Resource


def _get_meta(metadata: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in metadata:
            return metadata[k]
        # Accept camelCase vs snake_case interchangeably.
        camel = "".join([w[:1].upper() + w[1:] if i > 0 else w for i, w in enumerate(k.split("_"))])
        snake = "".join([("_" + ch.lower()) if ch.isupper() else ch for ch in k]).lstrip("_")
        if camel in metadata:
            return metadata[camel]
        if snake in metadata:
            return metadata[snake]
    return None


def _metadata(resource: Resource) -> Mapping[str, Any]:
    md = resource.metadata
    return md if isinstance(md, Mapping) else {}


def _str_ref(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _collect_ids(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str) and v]
    if isinstance(value, str) and value:
        return [value]
    return []


def subnet_vpc_id(resource: Resource) -> Optional[str]:
    return _str_ref(_get_meta(_metadata(resource), "vpc_id"))


def instance_subnet_id(resource: Resource) -> Optional[str]:
    return _str_ref(_get_meta(_metadata(resource), "subnet_id"))


def instance_subnet_group(resource: Resource) -> List[str]:
    """
    Subnet ids a resource may live in, in the order the scanner reported them.

    Sources: a flat ``subnetIds`` list, an RDS-style ``dbSubnetGroup`` (either a
    list of ids or ``{"subnets": [...]}`` with ``subnetIdentifier`` entries), or a
    Lambda-style ``vpcConfig.subnetIds``.
    """
    md = _metadata(resource)
    out: List[str] = []

    out.extend(_collect_ids(_get_meta(md, "subnet_ids")))

    group = _get_meta(md, "db_subnet_group", "subnet_group")
    if isinstance(group, Mapping):
        group = _get_meta(group, "subnets", "subnet_ids")
    if isinstance(group, (list, tuple)):
        for entry in group:
            if isinstance(entry, Mapping):
                out.extend(_collect_ids(_get_meta(entry, "subnet_identifier", "subnet_id")))
            else:
                out.extend(_collect_ids(entry))

    vpc_config = _get_meta(md, "vpc_config")
    if isinstance(vpc_config, Mapping):
        out.extend(_collect_ids(_get_meta(vpc_config, "subnet_ids")))

    seen = set()
    deduped: List[str] = []
    for sid in out:
        if sid in seen:
            continue
        seen.add(sid)
        deduped.append(sid)
    return deduped


def service_vpc_id(resource: Resource) -> Optional[str]:
    return _str_ref(_get_meta(_metadata(resource), "vpc_id"))


def service_subnet_id(resource: Resource) -> Optional[str]:
    return _str_ref(_get_meta(_metadata(resource), "subnet_id"))


def service_cluster_ref(resource: Resource) -> Optional[str]:
    return _str_ref(_get_meta(_metadata(resource), "cluster_arn", "cluster_name"))


def has_relational_key(resource: Resource) -> bool:
    """True when the resource names a network it should be anchored to."""
    return bool(service_subnet_id(resource) or service_vpc_id(resource) or instance_subnet_group(resource))
