from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..logging import get_logger
from ..topology.model import Resource
from ..util.errors import ExportError
from .schema import ResourceRecord

LOG = get_logger(__name__)


def _get(d: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in d:
            return d[k]
    return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resource_from_record(record: Mapping[str, Any]) -> Optional[Resource]:
    """
    Build a Resource from an inventory record.
    Accepts both camelCase and snake_case keys. Returns None when the record has
    no usable id, since such a record cannot become a node.
    """
    rid = _opt_str(_get(record, "id", "resourceId", "resource_id"))
    if rid is None:
        return None
    metadata = _get(record, "metadata")
    return Resource(
        id=rid,
        resource_type=str(_get(record, "resourceType", "resource_type", "type") or ""),
        resource_id=_opt_str(_get(record, "resourceId", "resource_id")) or rid,
        name=_opt_str(_get(record, "name", "displayName", "display_name")),
        region=str(_get(record, "region") or ""),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def _iter_jsonl_records(path: Path) -> Iterable[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ExportError(f"{path.name}: invalid JSON on line {line_no}: {e}") from e


def _records_from_document(doc: Any, path: Path) -> Sequence[Any]:
    if isinstance(doc, list):
        return doc
    if isinstance(doc, dict) and isinstance(doc.get("resources"), list):
        return doc["resources"]
    raise ExportError(f"{path.name}: expected a list of resources or an object with a 'resources' list")


def load_resource_records(path: Path) -> List[ResourceRecord]:
    """
    Read a resource snapshot: a JSON array, an object with a ``resources`` array,
    or JSONL (one record per line).
    """
    if not path.is_file():
        raise ExportError(f"Snapshot file not found: {path}")
    if path.suffix.lower() == ".jsonl":
        raw: Sequence[Any] = list(_iter_jsonl_records(path))
    else:
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ExportError(f"{path.name}: invalid JSON: {e}") from e
        raw = _records_from_document(doc, path)

    records: List[ResourceRecord] = []
    skipped = 0
    for item in raw:
        if isinstance(item, dict):
            records.append(item)
        else:
            skipped += 1
    if skipped:
        LOG.warning("Skipped non-object entries in snapshot", extra={"path": str(path), "skipped": skipped})
    return records


def load_resources(path: Path) -> List[Resource]:
    out: List[Resource] = []
    for record in load_resource_records(path):
        resource = resource_from_record(record)
        if resource is None:
            LOG.warning("Skipped snapshot record without id", extra={"path": str(path)})
            continue
        out.append(resource)
    return out


def canonicalize(obj: Mapping[str, Any], field_order: Sequence[str]) -> Dict[str, Any]:
    """
    Return a shallow copy with fields ordered according to field_order.
    Fields not in the list are appended in sorted order.
    """
    out: Dict[str, Any] = {}
    for k in field_order:
        if k in obj:
            out[k] = obj[k]
    for k in sorted(k for k in obj.keys() if k not in out):
        out[k] = obj[k]
    return out


def stable_json_dumps(obj: Any) -> str:
    """
    Dump JSON with sort_keys=True and separators to ensure stable output.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
