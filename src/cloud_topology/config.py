from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .topology.builder import DUPLICATE_POLICIES, BuildOptions
from .topology.classify import normalize_overrides
from .topology.layout import (
    DIRECTIONS,
    NODE_HEIGHT,
    NODE_SEPARATION,
    NODE_WIDTH,
    RANK_SEPARATION,
    LayoutOptions,
)
from .topology.model import Category
from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_DIRECTION = "TB"
DEFAULT_DUPLICATE_POLICY = "last_write_wins"
COMMANDS = ("build", "summary")
ALLOWED_CONFIG_KEYS = {
    "input",
    "outdir",
    "direction",
    "node_width",
    "node_height",
    "node_separation",
    "rank_separation",
    "pool_separation",
    "duplicate_policy",
    "attach_group_members",
    "category_overrides",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"attach_group_members", "json_logs"}
FLOAT_CONFIG_KEYS = {"node_width", "node_height", "node_separation", "rank_separation", "pool_separation"}
PATH_CONFIG_KEYS = {"input", "outdir"}
STR_CONFIG_KEYS = {"direction", "duplicate_policy", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # IO
    input: Optional[Path] = None
    outdir: Path = Path("out")

    # Layout
    direction: str = DEFAULT_DIRECTION
    node_width: float = NODE_WIDTH
    node_height: float = NODE_HEIGHT
    node_separation: float = NODE_SEPARATION
    rank_separation: float = RANK_SEPARATION
    pool_separation: Optional[float] = None

    # Build
    duplicate_policy: str = DEFAULT_DUPLICATE_POLICY
    attach_group_members: bool = False
    category_overrides: Dict[str, Category] = field(default_factory=dict)

    # Logging
    json_logs: bool = False
    log_level: str = "INFO"


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Config field '{key}' must be a boolean")


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ConfigError(f"Config field '{key}' must be a number")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
            continue
        if key == "category_overrides":
            if not isinstance(value, dict):
                raise ConfigError("Config field 'category_overrides' must be a mapping of type -> category")
            try:
                normalized[key] = normalize_overrides(value)
            except ValueError as e:
                raise ConfigError(f"Config field 'category_overrides': {e}") from e
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in FLOAT_CONFIG_KEYS:
            normalized[key] = _coerce_float(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ConfigError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ConfigError(f"Config field '{key}' must be a string")
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _validate_choices(merged: Dict[str, Any]) -> None:
    direction = str(merged["direction"]).upper()
    if direction not in DIRECTIONS:
        raise ConfigError(f"Config field 'direction' must be one of: {', '.join(DIRECTIONS)}")
    merged["direction"] = direction
    policy = str(merged["duplicate_policy"]).lower()
    if policy not in DUPLICATE_POLICIES:
        raise ConfigError(
            f"Config field 'duplicate_policy' must be one of: {', '.join(sorted(DUPLICATE_POLICIES))}"
        )
    merged["duplicate_policy"] = policy


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloud-topo", description="Cloud resource topology builder")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument("--input", type=Path, default=None, help="Resource snapshot (JSON array or JSONL)")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument(
            "--duplicate-policy",
            default=None,
            choices=sorted(DUPLICATE_POLICIES),
            help=f"How to treat repeated resource ids (default {DEFAULT_DUPLICATE_POLICY})",
        )
        p.add_argument(
            "--attach-group-members",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Add attachment edges to every subnet of a subnet group, not only the first",
        )

    p_build = subparsers.add_parser("build", help="Build and lay out the topology graph")
    add_common(p_build)
    p_build.add_argument("--outdir", type=Path, default=None, help="Output directory (default: out)")
    p_build.add_argument(
        "--direction",
        default=None,
        type=str.upper,
        choices=list(DIRECTIONS),
        help=f"Layout direction (default {DEFAULT_DIRECTION})",
    )
    p_build.add_argument("--node-width", type=float, default=None, help=f"Node box width (default {NODE_WIDTH})")
    p_build.add_argument("--node-height", type=float, default=None, help=f"Node box height (default {NODE_HEIGHT})")
    p_build.add_argument(
        "--node-separation", type=float, default=None, help=f"Gap between nodes of a rank (default {NODE_SEPARATION})"
    )
    p_build.add_argument(
        "--rank-separation", type=float, default=None, help=f"Gap between ranks (default {RANK_SEPARATION})"
    )
    p_build.add_argument(
        "--pool-separation", type=float, default=None, help="Gap before the unconnected pool (default: rank gap)"
    )

    p_summary = subparsers.add_parser("summary", help="Print category and placement counts")
    add_common(p_summary)

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is the subcommand selected: build|summary
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "input": None,
        "outdir": "out",
        "direction": DEFAULT_DIRECTION,
        "node_width": NODE_WIDTH,
        "node_height": NODE_HEIGHT,
        "node_separation": NODE_SEPARATION,
        "rank_separation": RANK_SEPARATION,
        "pool_separation": None,
        "duplicate_policy": DEFAULT_DUPLICATE_POLICY,
        "attach_group_members": False,
        "category_overrides": {},
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "input": _env_str("CLOUD_TOPO_INPUT"),
            "outdir": _env_str("CLOUD_TOPO_OUTDIR"),
            "direction": _env_str("CLOUD_TOPO_DIRECTION"),
            "node_width": _env_float("CLOUD_TOPO_NODE_WIDTH"),
            "node_height": _env_float("CLOUD_TOPO_NODE_HEIGHT"),
            "node_separation": _env_float("CLOUD_TOPO_NODE_SEPARATION"),
            "rank_separation": _env_float("CLOUD_TOPO_RANK_SEPARATION"),
            "pool_separation": _env_float("CLOUD_TOPO_POOL_SEPARATION"),
            "duplicate_policy": _env_str("CLOUD_TOPO_DUPLICATE_POLICY"),
            "attach_group_members": _env_bool("CLOUD_TOPO_ATTACH_GROUP_MEMBERS"),
            "json_logs": _env_bool("CLOUD_TOPO_JSON_LOGS"),
            "log_level": _env_str("CLOUD_TOPO_LOG_LEVEL"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "input": getattr(ns, "input", None),
            "outdir": getattr(ns, "outdir", None),
            "direction": getattr(ns, "direction", None),
            "node_width": getattr(ns, "node_width", None),
            "node_height": getattr(ns, "node_height", None),
            "node_separation": getattr(ns, "node_separation", None),
            "rank_separation": getattr(ns, "rank_separation", None),
            "pool_separation": getattr(ns, "pool_separation", None),
            "duplicate_policy": getattr(ns, "duplicate_policy", None),
            "attach_group_members": getattr(ns, "attach_group_members", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))
    _validate_choices(merged)

    cfg = RunConfig(
        input=Path(merged["input"]) if merged.get("input") else None,
        outdir=Path(merged["outdir"]),
        direction=merged["direction"],
        node_width=float(merged["node_width"]),
        node_height=float(merged["node_height"]),
        node_separation=float(merged["node_separation"]),
        rank_separation=float(merged["rank_separation"]),
        pool_separation=float(merged["pool_separation"]) if merged.get("pool_separation") is not None else None,
        duplicate_policy=merged["duplicate_policy"],
        attach_group_members=bool(merged["attach_group_members"]),
        category_overrides=dict(merged.get("category_overrides") or {}),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
    )
    try:
        build_options(cfg)
        layout_options(cfg)
    except ValueError as e:
        raise ConfigError(str(e)) from e
    return command, cfg


def build_options(cfg: RunConfig) -> BuildOptions:
    return BuildOptions(
        duplicate_policy=cfg.duplicate_policy,
        attach_group_members=cfg.attach_group_members,
        category_overrides=dict(cfg.category_overrides),
    )


def layout_options(cfg: RunConfig) -> LayoutOptions:
    return LayoutOptions(
        node_width=cfg.node_width,
        node_height=cfg.node_height,
        node_separation=cfg.node_separation,
        rank_separation=cfg.rank_separation,
        pool_separation=cfg.pool_separation,
    )


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "input": str(cfg.input) if cfg.input else None,
        "outdir": str(cfg.outdir),
        "direction": cfg.direction,
        "node_width": cfg.node_width,
        "node_height": cfg.node_height,
        "node_separation": cfg.node_separation,
        "rank_separation": cfg.rank_separation,
        "pool_separation": cfg.pool_separation,
        "duplicate_policy": cfg.duplicate_policy,
        "attach_group_members": cfg.attach_group_members,
        "category_overrides": {k: v.value for k, v in sorted(cfg.category_overrides.items())},
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
    }
