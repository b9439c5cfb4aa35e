"""Pipeline supervisor: runs the startup sequence and tears it down."""

import asyncio
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from ..shared.exceptions import DeploymentArtifactMissingError, DevctlError
from ..shared.types import DeploymentInfo, PipelineOutcome, PipelineStage, StepResult
from .config import DevctlConfig
from .config_patcher import ConfigPatcher
from .data_seeder import (
    ContractClient,
    DataSeeder,
    DeploymentArtifact,
    SeedReport,
    Web3ContractClient,
    load_seed_records,
)
from .logging import get_logger
from .output_matcher import CONTRACT_ADDRESS, NETWORK_ID, NETWORK_READY, SERVER_READY
from .process_step import StepSpec, run_step
from .process_tracker import ProcessTracker
from .status import StatusDisplay, get_status_display

StepRunner = Callable[[StepSpec, ProcessTracker], Awaitable[StepResult]]


class PipelineState:
    """Mutable state of one supervisor run."""

    def __init__(self):
        self.stage = PipelineStage.IDLE
        self.tracker = ProcessTracker()
        self.outcome: PipelineOutcome | None = None
        self.failure_reason: str | None = None
        self.history: list[PipelineStage] = [PipelineStage.IDLE]

    def enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.history.append(stage)

    def finish(self, outcome: PipelineOutcome, reason: str | None = None) -> None:
        self.outcome = outcome
        self.failure_reason = reason
        if outcome is PipelineOutcome.FAILED:
            self.enter(PipelineStage.FAILED)
        elif outcome is PipelineOutcome.INTERRUPTED:
            self.enter(PipelineStage.INTERRUPTED)


class PipelineSupervisor:
    """Starts network, deployment, config patch, seeding and server in order.

    The first failing stage or an interrupt stops the sequence; every process
    started so far is then terminated in start order.
    """

    def __init__(
        self,
        config: DevctlConfig,
        status_display: StatusDisplay | None = None,
        step_runner: StepRunner = run_step,
        config_patcher: ConfigPatcher | None = None,
        data_seeder: DataSeeder | None = None,
        emit: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.status_display = status_display or get_status_display()
        self.step_runner = step_runner
        self.config_patcher = config_patcher or ConfigPatcher(
            config.resolve_path(config.server_config_path)
        )
        self.data_seeder = data_seeder or DataSeeder(self._connect_contract)
        self.emit = emit or (lambda line: print(line, flush=True))
        self.logger = get_logger("cli.supervisor")

        self.state = PipelineState()
        self.deployment: DeploymentInfo | None = None
        self.seed_report: SeedReport | None = None
        self._interrupt_event = asyncio.Event()
        self._interrupt_signal: int | None = None
        self._teardown_task: asyncio.Future | None = None

    # Step definitions

    def build_network_step(self) -> StepSpec:
        return StepSpec(
            label="network",
            command=self.config.network_command,
            ready_marker=NETWORK_READY,
            timeout=self.config.network_startup_timeout,
            settle_delay=self.config.network_settle_delay,
            cwd=self.config.project_dir,
            service_type="network",
            metadata={"url": self.config.network_url},
        )

    def build_deploy_step(self) -> StepSpec:
        return StepSpec(
            label="deploy",
            command=self.config.deploy_command,
            capture_markers=(CONTRACT_ADDRESS, NETWORK_ID),
            timeout=self.config.deploy_timeout,
            cwd=self.config.project_dir,
            service_type="deployment",
        )

    def build_server_step(self) -> StepSpec:
        return StepSpec(
            label="server",
            command=self.config.server_command,
            ready_marker=SERVER_READY,
            timeout=self.config.server_startup_timeout,
            settle_delay=self.config.server_settle_delay,
            cwd=self.config.project_dir,
            service_type="server",
            metadata={"url": self.config.server_url},
        )

    def _connect_contract(self, abi: list[dict[str, Any]], address: str) -> ContractClient:
        config = self.config
        return Web3ContractClient.connect(
            config.network_url,
            abi,
            address,
            sender=config.actor_address,
            gas=config.call_gas,
            register_method=config.register_method,
            record_method=config.record_method,
            receipt_timeout=config.receipt_timeout,
        )

    # Run

    async def run(self) -> PipelineOutcome:
        """Run the pipeline until it fails or is interrupted."""
        self.emit(self.status_display.show_banner("STARTING AGRICHAIN COMPLETE SETUP"))

        try:
            if await self._until_interrupted(self._run_stages()):
                self.state.enter(PipelineStage.RUNNING)
                self._show_summary()
                await self._interrupt_event.wait()
            reason = f"received {_signal_name(self._interrupt_signal)}"
            self.state.finish(PipelineOutcome.INTERRUPTED, reason)
            self.emit("\n" + self.status_display.show_info("Shutting down processes..."))
        except asyncio.CancelledError:
            self.state.finish(PipelineOutcome.INTERRUPTED, "cancelled")
            await self.teardown()
            raise
        except Exception as e:
            failed_stage = self.state.stage
            if isinstance(e, DevctlError):
                self.logger.error(f"{failed_stage.value} failed: {e}")
            else:
                self.logger.exception(f"Unexpected error during {failed_stage.value}")
            self.state.finish(PipelineOutcome.FAILED, str(e))
            self.emit("\n" + self.status_display.show_error(f"Startup failed: {e}"))

        await self.teardown()
        return self.state.outcome

    async def _until_interrupted(self, coro: Awaitable[None]) -> bool:
        """Await ``coro`` unless an interrupt arrives first.

        Returns False, after cancelling ``coro``, if interrupted. If the caller
        is cancelled, ``coro`` is cancelled and awaited before re-raising.
        """
        work = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self._interrupt_event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if work.done():
            work.result()
            return True

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        return False

    async def _run_stages(self) -> None:
        await self._start_network()
        deployment = await self._deploy()
        await self._patch_config(deployment.network_id)
        await self._seed(deployment.network_id)
        await self._start_server()

    async def _start_network(self) -> None:
        self.state.enter(PipelineStage.NETWORK_STARTING)
        self.emit(self.status_display.show_info("Step 1: Starting blockchain network..."))

        await self.step_runner(self.build_network_step(), self.state.tracker)
        self.emit(
            self.status_display.show_success(
                "Blockchain network ready", {"RPC": self.config.network_url}
            )
        )

    async def _deploy(self) -> DeploymentInfo:
        self.state.enter(PipelineStage.DEPLOYING)
        self.emit(self.status_display.show_info("Step 2: Deploying smart contract..."))

        result = await self.step_runner(self.build_deploy_step(), self.state.tracker)
        # The deployment tool has exited; only long-running services stay tracked
        self.state.tracker.untrack_process("deploy")

        network_id = result.get(NETWORK_ID.name)
        address = result.get(CONTRACT_ADDRESS.name)
        if not network_id:
            raise DeploymentArtifactMissingError(
                "Deployment finished without reporting a network id"
            )
        if not address:
            raise DeploymentArtifactMissingError(
                "Deployment finished without reporting a contract address",
                network_id=network_id,
            )

        self.deployment = DeploymentInfo(contract_address=address, network_id=network_id)
        self.emit(
            self.status_display.show_success(
                f"Contract deployed at: {address}", {"Network ID": network_id}
            )
        )
        return self.deployment

    async def _patch_config(self, network_id: str) -> None:
        self.state.enter(PipelineStage.PATCHING_CONFIG)
        self.emit(self.status_display.show_info("Step 3: Updating server configuration..."))

        self.config_patcher.patch(network_id)
        self.emit(
            self.status_display.show_success(
                f"Server updated with network ID: {network_id}",
                {"File": self.config_patcher.path},
            )
        )

    async def _seed(self, network_id: str) -> None:
        self.state.enter(PipelineStage.SEEDING)
        self.emit(self.status_display.show_info("Step 4: Creating test data..."))

        config = self.config
        artifact = DeploymentArtifact.load(config.resolve_path(config.contract_artifact_path))
        seed_path = config.seed_data_path
        records = load_seed_records(config.resolve_path(seed_path) if seed_path else None)

        self.seed_report = await self.data_seeder.seed(
            artifact, network_id, config.actor_address, records
        )
        if self.deployment and (
            self.seed_report.contract_address.lower()
            != self.deployment.contract_address.lower()
        ):
            self.logger.warning(
                f"Artifact address {self.seed_report.contract_address} differs from "
                f"reported address {self.deployment.contract_address}"
            )
        self.emit(
            self.status_display.show_success(
                f"Test data created successfully ({len(records)} items)"
            )
        )

    async def _start_server(self) -> None:
        self.state.enter(PipelineStage.SERVER_STARTING)
        self.emit(self.status_display.show_info("Step 5: Starting backend server..."))

        await self.step_runner(self.build_server_step(), self.state.tracker)
        self.emit(
            self.status_display.show_success(
                "Backend server ready", {"URL": self.config.server_url}
            )
        )

    def _show_summary(self) -> None:
        display = self.status_display
        items = []
        if self.seed_report:
            items = [
                f"{record.name} (ID: {index})"
                for index, record in enumerate(self.seed_report.records, start=1)
            ]

        self.emit("")
        self.emit(display.show_banner("AGRICHAIN SETUP COMPLETE!"))
        self.emit(
            display.show_success(
                "Services running",
                {
                    "Blockchain": self.config.network_url,
                    "Backend server": self.config.server_url,
                    "Test items": ", ".join(items) or "none",
                },
            )
        )
        self.emit(display.show_info("Start the React frontend with: npm run start:client"))
        self.emit(display.show_info("Track items at: http://localhost:3000"))
        self.emit(display.show_warning("Press Ctrl+C to stop all services"))

    # Shutdown

    def interrupt(self, signum: int | None = None) -> bool:
        """Request shutdown; safe to call more than once.

        Returns False if a shutdown was already requested.
        """
        if self._interrupt_event.is_set() or self._teardown_task is not None:
            self.logger.warning("Shutdown already in progress, ignoring signal")
            return False

        self._interrupt_signal = signum
        self._interrupt_event.set()
        return True

    async def teardown(self) -> dict[str, bool]:
        """Terminate every tracked process once; later calls share the first result."""
        if self._teardown_task is None:
            self._teardown_task = asyncio.ensure_future(self._teardown())
        return await asyncio.shield(self._teardown_task)

    async def _teardown(self) -> dict[str, bool]:
        tracker = self.state.tracker
        processes = tracker.get_all_processes()
        if processes:
            self.logger.info(f"Terminating {len(processes)} tracked processes")
        exited = {managed.name for managed in processes if not managed.is_running}

        results = await tracker.terminate_all_processes(self.config.shutdown_timeout)
        display = self.status_display
        for name, stopped in results.items():
            title = name.capitalize()
            if name in exited:
                self.emit(display.show_info(f"{title} already exited"))
            elif stopped:
                self.emit(display.show_success(f"{title} stopped"))
            else:
                self.emit(display.show_warning(f"{title} killed after shutdown timeout"))
        return results


def _signal_name(signum: int | None) -> str:
    if signum is None:
        return "interrupt"
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


__all__ = [
    "PipelineState",
    "PipelineSupervisor",
]
