"""Shared enums and value types for the AgriChain launcher."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PipelineStage(str, Enum):
    """Stages of one launcher run, in execution order."""

    IDLE = "idle"
    NETWORK_STARTING = "network_starting"
    DEPLOYING = "deploying"
    PATCHING_CONFIG = "patching_config"
    SEEDING = "seeding"
    SERVER_STARTING = "server_starting"
    RUNNING = "running"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.FAILED, PipelineStage.INTERRUPTED)


class PipelineOutcome(str, Enum):
    """How a launcher run ended.

    A run that reaches Running keeps its services up until interrupted, so it
    always ends as INTERRUPTED or FAILED.
    """

    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def exit_code(self) -> int:
        return 1 if self is PipelineOutcome.FAILED else 0


class HealthStatusType(str, Enum):
    """Health status of a probed endpoint."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class StepResult:
    """Value a process step hands to the next stage.

    ``values`` maps marker names to what they captured. A readiness-only step
    yields an empty mapping.
    """

    label: str
    values: dict[str, Any] = field(default_factory=dict)
    returncode: int | None = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


@dataclass(frozen=True)
class DeploymentInfo:
    """Contract address and network id reported by the deployment tool."""

    contract_address: str
    network_id: str


__all__ = [
    "PipelineStage",
    "PipelineOutcome",
    "HealthStatusType",
    "StepResult",
    "DeploymentInfo",
]
