"""Timed process steps: spawn a process and wait for readiness or completion."""

import asyncio
import codecs
import os
from dataclasses import dataclass, field

from ..shared.exceptions import ProcessExitedEarlyError, StartupTimeoutError
from ..shared.types import StepResult
from .logging import get_logger
from .output_matcher import MarkerMatch, OutputMatcher, ReadinessMarker, scan_all
from .process_tracker import ManagedProcess, ProcessTracker

READ_CHUNK_SIZE = 4096


@dataclass
class StepSpec:
    """What to run for one pipeline step and how to tell it succeeded.

    With a ``ready_marker`` the step is a service: it succeeds ``settle_delay``
    seconds after the marker appears and the process keeps running. Without
    one it is a one-shot command: it succeeds when the process exits with code
    0, and ``capture_markers`` are scanned in its complete output.
    """

    label: str
    command: list[str]
    ready_marker: ReadinessMarker | None = None
    capture_markers: tuple[ReadinessMarker, ...] = ()
    timeout: float | None = None
    settle_delay: float = 0.0
    cwd: str | None = None
    env: dict[str, str] | None = None
    service_type: str = "service"
    metadata: dict = field(default_factory=dict)

    @property
    def is_one_shot(self) -> bool:
        return self.ready_marker is None


class TimedProcessStep:
    """Runs one ``StepSpec`` and produces its single outcome.

    Three producers race for the outcome: the readiness marker, the process
    closing and the timeout timer. The first one to claim the step wins and
    disarms the others.
    """

    def __init__(self, spec: StepSpec):
        self.spec = spec
        self.logger = get_logger(f"cli.step.{spec.label}")
        self.output_logger = get_logger(f"cli.output.{spec.label}")
        self._outcome: asyncio.Future | None = None
        self._claimed = False
        self._timer: asyncio.TimerHandle | None = None
        self._matchers: dict[str, OutputMatcher] = {}
        self._settle_task: asyncio.Task | None = None

    async def run(self, tracker: ProcessTracker) -> StepResult:
        """Spawn the process, register it with ``tracker`` and await the outcome."""
        spec = self.spec
        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()

        self.logger.debug(f"Command: {' '.join(spec.command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=spec.cwd,
                env={**os.environ, **spec.env} if spec.env else None,
            )
        except OSError as e:
            raise ProcessExitedEarlyError(
                spec.label, None, f"could not be started: {e}"
            ) from e
        managed = tracker.track_process(
            ManagedProcess(
                name=spec.label,
                process=process,
                command=spec.command,
                service_type=spec.service_type,
                metadata=spec.metadata,
            )
        )

        if spec.timeout is not None:
            self._timer = loop.call_later(spec.timeout, self._on_timeout)

        marker = spec.ready_marker
        self._matchers = {
            "stdout": OutputMatcher(marker or _NEVER),
            "stderr": OutputMatcher(marker or _NEVER),
        }
        pumps = [
            asyncio.create_task(self._pump(process.stdout, "stdout")),
            asyncio.create_task(self._pump(process.stderr, "stderr")),
        ]
        managed.io_tasks.extend(pumps)
        closer = asyncio.create_task(self._watch_close(process, pumps))
        managed.io_tasks.append(closer)

        try:
            return await self._outcome
        finally:
            self._disarm()
            if self._settle_task and not self._settle_task.done():
                self._settle_task.cancel()

    def _claim(self) -> bool:
        """Reserve the outcome for the calling producer."""
        if self._claimed or self._outcome.done():
            return False
        self._claimed = True
        self._disarm()
        return True

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        if self._claim():
            self._outcome.set_exception(
                StartupTimeoutError(self.spec.label, self.spec.timeout)
            )

    def _on_match(self, found: MarkerMatch) -> None:
        if not self._claim():
            return
        self.logger.debug(f"Readiness marker {found.marker!r} seen: {found.text!r}")
        result = StepResult(self.spec.label, {found.marker: found.value})
        self._settle_task = asyncio.create_task(self._settle(result))

    async def _settle(self, result: StepResult) -> None:
        if self.spec.settle_delay > 0:
            self.logger.debug(f"Waiting {self.spec.settle_delay:g}s for startup to settle")
            await asyncio.sleep(self.spec.settle_delay)
        if not self._outcome.done():
            self._outcome.set_result(result)

    async def _pump(self, stream: asyncio.StreamReader, name: str) -> None:
        """Echo a process stream and feed it to its matcher until EOF."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        matcher = self._matchers[name]
        echo = self.output_logger.warning if name == "stderr" else self.output_logger.info
        pending = ""

        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            chunk = decoder.decode(data, final=not data)
            if chunk:
                # Once the step is claimed the output is only echoed
                if not self._claimed:
                    found = matcher.feed(chunk)
                    if found:
                        self._on_match(found)
                *lines, pending = (pending + chunk).split("\n")
                for line in lines:
                    if line.strip():
                        echo(line.rstrip())
            if not data:
                break

        if pending.strip():
            echo(pending.rstrip())
        found = matcher.finish()
        if found and not self.spec.is_one_shot:
            self._on_match(found)

    async def _watch_close(
        self, process: asyncio.subprocess.Process, pumps: list[asyncio.Task]
    ) -> None:
        """Decide the outcome once the process has exited and its output is drained."""
        await asyncio.gather(*pumps, return_exceptions=True)
        returncode = await process.wait()
        self.logger.debug(f"Process closed with code {returncode}")

        if not self._claim():
            return

        label = self.spec.label
        if not self.spec.is_one_shot:
            self._outcome.set_exception(
                ProcessExitedEarlyError(label, returncode, "before reporting readiness")
            )
        elif returncode != 0:
            self._outcome.set_exception(ProcessExitedEarlyError(label, returncode))
        else:
            output = self._matchers["stdout"].text + "\n" + self._matchers["stderr"].text
            values = scan_all(output, self.spec.capture_markers)
            self._outcome.set_result(StepResult(label, values, returncode))


# Placeholder marker for one-shot steps, whose matchers only accumulate output
_NEVER = ReadinessMarker("never", "\0\0never\0\0")


async def run_step(spec: StepSpec, tracker: ProcessTracker) -> StepResult:
    """Run ``spec`` as a ``TimedProcessStep``."""
    return await TimedProcessStep(spec).run(tracker)


__all__ = [
    "StepSpec",
    "TimedProcessStep",
    "run_step",
]
