"""AgriChain launcher CLI package."""

from .config import DevctlConfig, DevctlConfigManager
from .logging import get_cli_logger, get_logger, init_cli_logging
from .main import main
from .process_step import StepSpec, TimedProcessStep, run_step
from .process_tracker import ManagedProcess, ProcessTracker
from .status import (
    StatusDisplay,
    StatusFormatter,
    StatusLevel,
    get_status_display,
    init_status_display,
)
from .supervisor import PipelineState, PipelineSupervisor

__all__ = [
    "main",
    "DevctlConfig",
    "DevctlConfigManager",
    "init_cli_logging",
    "get_cli_logger",
    "get_logger",
    "StatusLevel",
    "StatusFormatter",
    "StatusDisplay",
    "init_status_display",
    "get_status_display",
    "ManagedProcess",
    "ProcessTracker",
    "StepSpec",
    "TimedProcessStep",
    "run_step",
    "PipelineState",
    "PipelineSupervisor",
]
