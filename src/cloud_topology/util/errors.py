from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    INPUT_ERROR = 3
    LAYOUT_ERROR = 4
    RUNTIME_ERROR = 5


class TopologyError(Exception):
    """Base error for the topology pipeline."""


class ConfigError(TopologyError, ValueError):
    """Raised for configuration or argument issues."""


class InputContractError(TopologyError, TypeError):
    """Raised when the caller hands over something that is not a resource list."""


class DuplicateResourceError(TopologyError, ValueError):
    """Raised when duplicate resource ids are rejected by policy."""

    def __init__(self, resource_ids: list[str]) -> None:
        self.resource_ids = list(resource_ids)
        super().__init__(f"Duplicate resource ids in snapshot: {', '.join(self.resource_ids)}")


class LayoutError(TopologyError):
    """Raised when a graph cannot be laid out (bad direction, containment cycle)."""


class ExportError(TopologyError):
    """Raised when reading snapshots or writing artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, ConfigError):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, (InputContractError, DuplicateResourceError)):
        return int(ExitCode.INPUT_ERROR)
    if isinstance(exc, LayoutError):
        return int(ExitCode.LAYOUT_ERROR)
    if isinstance(exc, (ExportError, TopologyError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
