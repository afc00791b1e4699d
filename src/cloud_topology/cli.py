from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

from .config import RunConfig, build_options, dump_config, layout_options, load_run_config
from .export.graph import GRAPH_SCHEMA_VERSION, filter_edges_with_nodes, write_graph, write_graph_json
from .logging import LogConfig, get_logger, run_log_file, setup_logging
from .normalize.schema import OutputPaths, resolve_output_paths
from .normalize.transform import load_resources
from .topology import build_graph, layout_graph
from .topology.model import Graph, Resource
from .util.errors import ConfigError, as_exit_code
from .util.rich_summary import graph_metrics, render_graph_summary_table

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> None:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase in {"complete", "error"}:
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _load_snapshot(cfg: RunConfig, timers: _StepTimers) -> List[Resource]:
    if cfg.input is None:
        raise ConfigError("An input snapshot is required (--input or CLOUD_TOPO_INPUT)")
    _log_event(LOG, logging.INFO, "Loading snapshot", step="load", phase="start", timers=timers, input=str(cfg.input))
    resources = load_resources(cfg.input)
    _log_event(
        LOG,
        logging.INFO,
        "Snapshot loaded",
        step="load",
        phase="complete",
        timers=timers,
        resources=len(resources),
    )
    return resources


def _write_run_summary(path: Path, metrics: Dict[str, Any], cfg: RunConfig) -> Path:
    payload = {"schema_version": GRAPH_SCHEMA_VERSION, "config": dump_config(cfg), **metrics}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path


def _build_and_write(cfg: RunConfig, paths: OutputPaths) -> Dict[str, Any]:
    timers = _StepTimers()

    resources = _load_snapshot(cfg, timers)
    graph = build_graph(resources, build_options(cfg))
    laid_out = layout_graph(graph, cfg.direction, layout_options(cfg))

    _, dropped = filter_edges_with_nodes(laid_out)
    if dropped:
        LOG.warning("Edges reference missing nodes", extra={"dropped": dropped})

    _log_event(LOG, logging.INFO, "Writing graph", step="export", phase="start", timers=timers)
    write_graph_json(paths.graph_json, laid_out)
    write_graph(paths.graph_nodes_jsonl, paths.graph_edges_jsonl, laid_out)
    metrics = graph_metrics(laid_out)
    _write_run_summary(paths.run_summary_json, metrics, cfg)
    _log_event(
        LOG,
        logging.INFO,
        "Graph written",
        step="export",
        phase="complete",
        timers=timers,
        outdir=str(paths.root),
    )
    return metrics


def cmd_build(cfg: RunConfig) -> int:
    paths = resolve_output_paths(cfg.outdir)
    with run_log_file(paths.debug_log):
        metrics = _build_and_write(cfg, paths)

    render_graph_summary_table(
        enabled=sys.stdout.isatty(),
        metrics=metrics,
        source=str(cfg.input),
        outdir=str(paths.root),
    )
    return 0


def cmd_summary(cfg: RunConfig) -> int:
    timers = _StepTimers()
    resources = _load_snapshot(cfg, timers)
    graph: Graph = build_graph(resources, build_options(cfg))
    render_graph_summary_table(enabled=True, metrics=graph_metrics(graph), source=str(cfg.input))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "build":
            code = cmd_build(cfg)
        elif command == "summary":
            code = cmd_summary(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
