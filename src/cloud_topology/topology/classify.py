from __future__ import annotations

from typing import Dict, Mapping, Optional, Union

from .model import Category

NETWORK_CONTAINER_TYPES = {
    "vpc",
    "vcn",
    "vnet",
    "virtual_network",
    "network",
}
NETWORK_SEGMENT_TYPES = {
    "subnet",
    "subnetwork",
}
COMPUTE_TYPES = {
    "ec2_instance",
    "instance",
    "virtual_machine",
    "rds_instance",
    "rds_cluster",
    "db_instance",
    "lambda_function",
    "ecs_task",
    "eks_nodegroup",
    "autoscaling_group",
}
STORAGE_TYPES = {
    "ebs_volume",
    "efs_file_system",
    "fsx_file_system",
    "block_volume",
    "boot_volume",
}
MANAGED_SERVICE_TYPES = {
    "security_group",
    "load_balancer",
    "elb",
    "alb",
    "nlb",
    "nat_gateway",
    "internet_gateway",
    "vpc_endpoint",
    "ecs_cluster",
    "ecs_service",
    "eks_cluster",
    "elasticache_cluster",
    "dynamodb_table",
    "sqs_queue",
    "sns_topic",
    "apigateway_rest_api",
    "cloudwatch_log_group",
    "amplify_app",
    "kinesis_stream",
    "secrets_manager_secret",
}
GLOBAL_TYPES = {
    "s3_bucket",
    "bucket",
    "iam_user",
    "iam_role",
    "iam_group",
    "iam_policy",
    "cloudfront_distribution",
    "route53_hosted_zone",
    "waf_web_acl",
    "organization_account",
}

_BUILTIN: Dict[str, Category] = {}
for _types, _category in (
    (NETWORK_CONTAINER_TYPES, Category.NETWORK_CONTAINER),
    (NETWORK_SEGMENT_TYPES, Category.NETWORK_SEGMENT),
    (COMPUTE_TYPES, Category.COMPUTE),
    (STORAGE_TYPES, Category.STORAGE),
    (MANAGED_SERVICE_TYPES, Category.MANAGED_SERVICE),
    (GLOBAL_TYPES, Category.GLOBAL),
):
    for _t in _types:
        _BUILTIN[_t] = _category


def _normalize_type(resource_type: object) -> str:
    if not isinstance(resource_type, str):
        return ""
    return resource_type.strip().lower()


def parse_category(value: Union[str, Category]) -> Category:
    """Accept an enum member, its value ("compute") or its name ("COMPUTE")."""
    if isinstance(value, Category):
        return value
    raw = str(value).strip()
    try:
        return Category(raw.lower())
    except ValueError:
        pass
    try:
        return Category[raw.upper()]
    except KeyError:
        raise ValueError(f"Unknown category: {value!r}") from None


def classify(resource_type: str, overrides: Optional[Mapping[str, Category]] = None) -> Category:
    """
    Map a resource type tag to its category.

    Total over all inputs: unrecognised tags (and non-strings) are UNKNOWN.
    """
    key = _normalize_type(resource_type)
    if overrides:
        for tag, category in overrides.items():
            if _normalize_type(tag) == key:
                return category
    return _BUILTIN.get(key, Category.UNKNOWN)


def normalize_overrides(raw: Optional[Mapping[str, Union[str, Category]]]) -> Dict[str, Category]:
    if not raw:
        return {}
    return {_normalize_type(k): parse_category(v) for k, v in raw.items() if _normalize_type(k)}
