"""Process tracking utilities for the AgriChain launcher."""

import asyncio
from datetime import datetime, timedelta
from typing import Any

import psutil

from .logging import get_logger


class ManagedProcess:
    """A child process started by the launcher."""

    def __init__(
        self,
        name: str,
        process: asyncio.subprocess.Process,
        command: list[str],
        service_type: str = "unknown",
        metadata: dict[str, Any] | None = None,
    ):
        self.name = name
        self.process = process
        self.command = command
        self.service_type = service_type
        self.started_at = datetime.now()
        self.metadata: dict[str, Any] = dict(metadata or {})
        self.io_tasks: list[asyncio.Task] = []

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    def get_uptime(self) -> timedelta:
        """Get process uptime."""
        return datetime.now() - self.started_at

    def _descendants(self) -> list[psutil.Process]:
        try:
            return psutil.Process(self.pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    def send_terminate(self) -> bool:
        """Send SIGTERM to the process and its descendants.

        Returns False when the process had already exited.
        """
        if not self.is_running:
            return False

        # npx and npm wrap the real node process; signal the whole tree
        for child in self._descendants():
            try:
                child.terminate()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        return True

    async def wait_closed(self, timeout: float) -> bool:
        """Wait for the process to exit; escalate to SIGKILL after ``timeout``."""
        try:
            await asyncio.wait_for(self.process.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            pass

        for child in self._descendants():
            try:
                child.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        try:
            self.process.kill()
        except ProcessLookupError:
            pass
        await self.process.wait()
        return False

    def cancel_io(self) -> None:
        """Stop the tasks that pump this process's output."""
        for task in self.io_tasks:
            task.cancel()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "name": self.name,
            "pid": self.pid,
            "command": self.command,
            "started_at": self.started_at.isoformat(),
            "service_type": self.service_type,
            "uptime_seconds": self.get_uptime().total_seconds(),
            "returncode": self.returncode,
            "metadata": self.metadata,
        }


class ProcessTracker:
    """Live child processes of one launcher run, in start order."""

    def __init__(self):
        self.logger = get_logger("cli.process_tracker")
        self.processes: dict[str, ManagedProcess] = {}

    def track_process(self, managed: ManagedProcess) -> ManagedProcess:
        """Start tracking a process."""
        if managed.name in self.processes:
            raise ValueError(f"Process {managed.name} is already tracked")
        self.processes[managed.name] = managed
        self.logger.info(f"Started tracking process {managed.name} (PID: {managed.pid})")
        return managed

    def untrack_process(self, name: str) -> ManagedProcess | None:
        """Stop tracking a process."""
        managed = self.processes.pop(name, None)
        if managed:
            self.logger.debug(f"Stopped tracking process {name} (PID: {managed.pid})")
        return managed

    def get_process(self, name: str) -> ManagedProcess | None:
        """Get a tracked process by name."""
        return self.processes.get(name)

    def get_all_processes(self) -> list[ManagedProcess]:
        """Get all tracked processes in registration order."""
        return list(self.processes.values())

    def get_running_processes(self) -> list[ManagedProcess]:
        """Get only running processes."""
        return [p for p in self.processes.values() if p.is_running]

    async def terminate_process(self, name: str, timeout: float = 10) -> bool:
        """Terminate and untrack one process.

        Returns True if the process was signalled and exited within ``timeout``.
        """
        managed = self.untrack_process(name)
        if managed is None:
            self.logger.warning(f"Process {name} not found for termination")
            return False

        try:
            if not managed.send_terminate():
                self.logger.info(
                    f"Process {name} already exited (code {managed.returncode})"
                )
                return False

            self.logger.info(f"Terminating {name} (PID: {managed.pid})")
            graceful = await managed.wait_closed(timeout)
            if graceful:
                self.logger.info(f"Process {name} terminated gracefully")
            else:
                self.logger.warning(
                    f"Process {name} ignored SIGTERM for {timeout:g}s and was killed"
                )
            return graceful
        finally:
            managed.cancel_io()

    async def terminate_all_processes(self, timeout: float = 10) -> dict[str, bool]:
        """Terminate every tracked process, in the order they were started."""
        results = {}
        for name in list(self.processes):
            results[name] = await self.terminate_process(name, timeout)
        return results


__all__ = [
    "ManagedProcess",
    "ProcessTracker",
]
