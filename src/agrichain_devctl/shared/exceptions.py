"""Pipeline exceptions for the AgriChain launcher."""

import signal
from typing import Any


class DevctlError(Exception):
    """Base exception for every failure that aborts a launcher run."""

    pass


class StepError(DevctlError):
    """Base exception for failures of a process step."""

    def __init__(self, label: str, message: str):
        super().__init__(message)
        self.label = label


class ProcessExitedEarlyError(StepError):
    """Raised when a step process closes before its step succeeded."""

    def __init__(self, label: str, returncode: int | None, reason: str = ""):
        self.returncode = returncode
        if returncode is None:
            status = "with an unknown exit status"
        elif returncode < 0:
            status = f"on signal {_signal_name(-returncode)}"
        else:
            status = f"with code {returncode}"
        message = f"{label} exited {status}"
        if reason:
            message += f" ({reason})"
        super().__init__(label, message)


class StartupTimeoutError(StepError):
    """Raised when a step does not report readiness in time."""

    def __init__(self, label: str, timeout: float):
        self.timeout = timeout
        super().__init__(label, f"{label} startup timeout after {timeout:g}s")


class ConfigArtifactUnreadableError(DevctlError):
    """Raised when the server configuration artifact cannot be read or written."""

    def __init__(self, path: Any, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot access configuration artifact {path}: {cause}")


class ConfigPatternNotFoundError(DevctlError):
    """Raised when the declaration to patch is absent from the artifact."""

    def __init__(self, path: Any, pattern: str):
        self.path = path
        self.pattern = pattern
        super().__init__(
            f"Declaration matching {pattern!r} not found in configuration artifact {path}"
        )


class DeploymentArtifactMissingError(DevctlError):
    """Raised when no deployment is recorded for the discovered network."""

    def __init__(self, message: str, network_id: str | None = None):
        self.network_id = network_id
        super().__init__(message)


class CallRejectedError(DevctlError):
    """Raised when the network rejects a state-mutating contract call."""

    def __init__(self, method: str, detail: str, arguments: tuple = ()):
        self.method = method
        self.detail = detail
        self.arguments = arguments
        super().__init__(f"Call {method}{arguments!r} rejected: {detail}")


class RpcError(Exception):
    """Base exception for network RPC errors."""

    pass


class RpcConnectionError(RpcError):
    """Raised when the network or server cannot be reached."""

    pass


class RpcTimeoutError(RpcError):
    """Raised when a network request times out."""

    pass


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


__all__ = [
    "DevctlError",
    "StepError",
    "ProcessExitedEarlyError",
    "StartupTimeoutError",
    "ConfigArtifactUnreadableError",
    "ConfigPatternNotFoundError",
    "DeploymentArtifactMissingError",
    "CallRejectedError",
    "RpcError",
    "RpcConnectionError",
    "RpcTimeoutError",
]
