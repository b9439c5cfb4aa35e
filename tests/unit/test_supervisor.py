"""Unit tests for the pipeline supervisor with fake process steps."""

import asyncio
import json
import signal

import pytest

from agrichain_devctl.cli.config import DevctlConfig
from agrichain_devctl.cli.data_seeder import ContractClient, DataSeeder
from agrichain_devctl.cli.process_tracker import ManagedProcess
from agrichain_devctl.cli.status import StatusDisplay
from agrichain_devctl.cli.supervisor import PipelineSupervisor
from agrichain_devctl.shared.exceptions import (
    CallRejectedError,
    DeploymentArtifactMissingError,
    ProcessExitedEarlyError,
    StartupTimeoutError,
)
from agrichain_devctl.shared.types import PipelineOutcome, PipelineStage, StepResult

ADDRESS = "0xABCDEF0123456789ABCDEF0123456789ABCDEF01"


class FakeProcess:
    """Stand-in for an asyncio subprocess that exits on SIGTERM."""

    def __init__(self, name, stopped, pid):
        self.name = name
        self.stopped = stopped
        self.pid = pid
        self.returncode = None

    def terminate(self):
        self.stopped.append(self.name)
        self.returncode = -signal.SIGTERM

    def kill(self):
        self.returncode = -signal.SIGKILL

    async def wait(self):
        return self.returncode


class FakeManagedProcess(ManagedProcess):
    def _descendants(self):
        return []


class FakeStepRunner:
    """Records steps and answers them without spawning anything."""

    def __init__(self, deploy_values=None, failures=None, hang=None):
        self.calls = []
        self.stopped = []
        self.deploy_values = (
            {"contract_address": ADDRESS, "network_id": "5777"}
            if deploy_values is None
            else deploy_values
        )
        self.failures = failures or {}
        self.hang = hang
        self.cancelled = False

    async def __call__(self, spec, tracker):
        self.calls.append(spec.label)
        if not spec.is_one_shot:
            process = FakeProcess(spec.label, self.stopped, 1000 + len(self.calls))
            tracker.track_process(
                FakeManagedProcess(spec.label, process, spec.command, spec.service_type)
            )

        if spec.label == self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if spec.label in self.failures:
            raise self.failures[spec.label]

        if spec.is_one_shot:
            return StepResult(spec.label, dict(self.deploy_values), 0)
        return StepResult(spec.label, {spec.ready_marker.name: True})


class RecordingClient(ContractClient):
    def __init__(self, reject=False):
        self.calls = []
        self.reject = reject

    async def register_actor(self, actor):
        self.calls.append(("register", actor))
        if self.reject:
            raise CallRejectedError("addFarmer", "revert", (actor,))

    async def submit_record(self, record):
        self.calls.append(("submit", record.name))


def make_supervisor(project_dir, runner, client=None):
    config = DevctlConfig(project_dir=str(project_dir), shutdown_timeout=1)
    client = client or RecordingClient()
    lines = []
    supervisor = PipelineSupervisor(
        config,
        status_display=StatusDisplay(use_colors=False),
        step_runner=runner,
        data_seeder=DataSeeder(lambda abi, address: client),
        emit=lines.append,
    )
    return supervisor, lines, client


async def wait_for_stage(supervisor, stage, timeout=5):
    async def poll():
        while supervisor.state.stage is not stage:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


class TestPipelineSuccess:
    """Test a run that reaches Running and is then interrupted."""

    @pytest.mark.asyncio
    async def test_full_run_then_interrupt(self, project_dir):
        """Test every stage runs in order and interrupt tears everything down."""
        artifact = project_dir / "build" / "contracts" / "AgriSupplyChain.json"
        artifact.write_text(
            json.dumps({"abi": [], "networks": {"1337": {"address": ADDRESS}}})
        )
        runner = FakeStepRunner(
            deploy_values={"contract_address": ADDRESS, "network_id": "1337"}
        )
        supervisor, lines, client = make_supervisor(project_dir, runner)

        task = asyncio.create_task(supervisor.run())
        await wait_for_stage(supervisor, PipelineStage.RUNNING)

        assert supervisor.interrupt(signal.SIGINT) is True
        outcome = await task

        assert outcome is PipelineOutcome.INTERRUPTED
        assert outcome.exit_code == 0
        assert runner.calls == ["network", "deploy", "server"]
        assert runner.stopped == ["network", "server"]
        assert client.calls == [
            ("register", supervisor.config.actor_address),
            ("submit", "Mango"),
            ("submit", "Rice"),
            ("submit", "Wheat"),
        ]
        server_source = (project_dir / "server" / "index.js").read_text()
        assert "const networkId = '1337';" in server_source
        assert supervisor.state.failure_reason == "received SIGINT"
        assert supervisor.state.history == [
            PipelineStage.IDLE,
            PipelineStage.NETWORK_STARTING,
            PipelineStage.DEPLOYING,
            PipelineStage.PATCHING_CONFIG,
            PipelineStage.SEEDING,
            PipelineStage.SERVER_STARTING,
            PipelineStage.RUNNING,
            PipelineStage.INTERRUPTED,
        ]

        output = "\n".join(lines)
        for step in range(1, 6):
            assert f"Step {step}:" in output
        assert f"Contract deployed at: {ADDRESS}" in output
        assert "Mango (ID: 1), Rice (ID: 2), Wheat (ID: 3)" in output
        assert "http://127.0.0.1:7545" in output
        assert "http://localhost:5000" in output
        assert "Press Ctrl+C to stop all services" in output

    @pytest.mark.asyncio
    async def test_step_definitions(self, project_dir):
        """Test the step specs carry the configured commands and markers."""
        supervisor, _, _ = make_supervisor(project_dir, FakeStepRunner())

        network = supervisor.build_network_step()
        deploy = supervisor.build_deploy_step()
        server = supervisor.build_server_step()

        assert network.ready_marker.pattern == "Listening on"
        assert network.timeout == 30
        assert network.settle_delay == 2
        assert network.cwd == str(project_dir)
        assert deploy.is_one_shot
        assert [m.name for m in deploy.capture_markers] == [
            "contract_address",
            "network_id",
        ]
        assert server.ready_marker.pattern == "Server on port"
        assert server.timeout == 15
        assert server.command == ["npm", "run", "start:server"]


class TestPipelineFailure:
    """Test failures abort the run and tear down what was started."""

    @pytest.mark.asyncio
    async def test_network_timeout(self, project_dir):
        """Test a network that never becomes ready is still terminated."""
        runner = FakeStepRunner(
            failures={"network": StartupTimeoutError("network", 30)}
        )
        supervisor, lines, _ = make_supervisor(project_dir, runner)

        outcome = await supervisor.run()

        assert outcome is PipelineOutcome.FAILED
        assert outcome.exit_code == 1
        assert runner.calls == ["network"]
        assert runner.stopped == ["network"]
        assert "Startup failed: network startup timeout after 30s" in "\n".join(lines)

    @pytest.mark.asyncio
    async def test_deploy_failure(self, project_dir):
        """Test a failed deployment stops the network and skips later stages."""
        runner = FakeStepRunner(failures={"deploy": ProcessExitedEarlyError("deploy", 1)})
        supervisor, _, client = make_supervisor(project_dir, runner)

        outcome = await supervisor.run()

        assert outcome is PipelineOutcome.FAILED
        assert supervisor.state.stage is PipelineStage.FAILED
        assert supervisor.state.stage.is_terminal
        assert runner.calls == ["network", "deploy"]
        assert runner.stopped == ["network"]
        assert client.calls == []
        assert supervisor.state.failure_reason == "deploy exited with code 1"

    @pytest.mark.asyncio
    async def test_deploy_without_network_id(self, project_dir):
        """Test a deployment that reports no network id fails before patching."""
        server_file = project_dir / "server" / "index.js"
        original = server_file.read_bytes()
        runner = FakeStepRunner(deploy_values={"contract_address": ADDRESS})
        supervisor, _, _ = make_supervisor(project_dir, runner)

        outcome = await supervisor.run()

        assert outcome is PipelineOutcome.FAILED
        assert "network id" in supervisor.state.failure_reason
        assert PipelineStage.PATCHING_CONFIG not in supervisor.state.history
        assert server_file.read_bytes() == original

    @pytest.mark.asyncio
    async def test_patch_pattern_missing(self, project_dir):
        """Test a server file without the declaration fails before seeding."""
        (project_dir / "server" / "index.js").write_text("module.exports = {};\n")
        runner = FakeStepRunner()
        supervisor, _, client = make_supervisor(project_dir, runner)

        outcome = await supervisor.run()

        assert outcome is PipelineOutcome.FAILED
        assert client.calls == []
        assert "server" not in runner.calls
        assert runner.stopped == ["network"]

    @pytest.mark.asyncio
    async def test_seeding_rejected(self, project_dir):
        """Test a rejected contract call stops the run before the server starts."""
        runner = FakeStepRunner()
        supervisor, _, client = make_supervisor(
            project_dir, runner, RecordingClient(reject=True)
        )

        outcome = await supervisor.run()

        assert outcome is PipelineOutcome.FAILED
        assert len(client.calls) == 1
        assert runner.calls == ["network", "deploy"]
        assert runner.stopped == ["network"]

    @pytest.mark.asyncio
    async def test_artifact_missing_for_network(self, project_dir):
        """Test a deployment recorded on another network fails seeding."""
        runner = FakeStepRunner(
            deploy_values={"contract_address": ADDRESS, "network_id": "42"}
        )
        supervisor, _, client = make_supervisor(project_dir, runner)

        outcome = await supervisor.run()

        assert outcome is PipelineOutcome.FAILED
        assert client.calls == []
        assert supervisor.state.failure_reason == str(
            DeploymentArtifactMissingError(
                "AgriSupplyChain has no deployment recorded for network 42"
            )
        )


class TestPipelineInterrupt:
    """Test interrupts and teardown."""

    @pytest.mark.asyncio
    async def test_interrupt_during_server_start(self, project_dir):
        """Test an interrupt cancels the running stage and stops every process."""
        runner = FakeStepRunner(hang="server")
        supervisor, _, _ = make_supervisor(project_dir, runner)

        task = asyncio.create_task(supervisor.run())
        await wait_for_stage(supervisor, PipelineStage.SERVER_STARTING)
        await asyncio.sleep(0.05)
        supervisor.interrupt(signal.SIGTERM)
        outcome = await task

        assert outcome is PipelineOutcome.INTERRUPTED
        assert runner.cancelled
        assert runner.stopped == ["network", "server"]
        assert supervisor.state.failure_reason == "received SIGTERM"

    @pytest.mark.asyncio
    async def test_cancel_during_deploy(self, project_dir):
        """Test cancelling the run also cancels the stage still in progress."""
        runner = FakeStepRunner(hang="deploy")
        supervisor, _, _ = make_supervisor(project_dir, runner)

        task = asyncio.create_task(supervisor.run())
        await wait_for_stage(supervisor, PipelineStage.DEPLOYING)
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert runner.cancelled
        assert runner.calls == ["network", "deploy"]
        assert runner.stopped == ["network"]
        assert supervisor.state.outcome is PipelineOutcome.INTERRUPTED
        assert supervisor.state.failure_reason == "cancelled"

    @pytest.mark.asyncio
    async def test_teardown_reports_exited_process(self, project_dir):
        """Test a process that exited on its own is not reported as stopped."""
        runner = FakeStepRunner()
        supervisor, lines, _ = make_supervisor(project_dir, runner)
        tracker = supervisor.state.tracker
        await runner(supervisor.build_network_step(), tracker)
        await runner(supervisor.build_server_step(), tracker)
        tracker.get_process("server").process.returncode = 1

        results = await supervisor.teardown()

        assert results == {"network": True, "server": False}
        assert runner.stopped == ["network"]
        output = "\n".join(lines)
        assert "Network stopped" in output
        assert "Server already exited" in output
        assert "Server stopped" not in output

    @pytest.mark.asyncio
    async def test_repeated_interrupt_ignored(self, project_dir):
        """Test only the first interrupt is acted upon."""
        supervisor, _, _ = make_supervisor(project_dir, FakeStepRunner())

        assert supervisor.interrupt(signal.SIGINT) is True
        assert supervisor.interrupt(signal.SIGTERM) is False

    @pytest.mark.asyncio
    async def test_teardown_runs_once(self, project_dir):
        """Test concurrent teardowns share one termination pass."""
        runner = FakeStepRunner()
        supervisor, _, _ = make_supervisor(project_dir, runner)
        tracker = supervisor.state.tracker
        await runner(supervisor.build_network_step(), tracker)
        await runner(supervisor.build_server_step(), tracker)

        first, second = await asyncio.gather(supervisor.teardown(), supervisor.teardown())
        third = await supervisor.teardown()

        assert first == second == third == {"network": True, "server": True}
        assert runner.stopped == ["network", "server"]

    @pytest.mark.asyncio
    async def test_interrupt_after_teardown_ignored(self, project_dir):
        """Test signals arriving during teardown do not restart it."""
        supervisor, _, _ = make_supervisor(project_dir, FakeStepRunner())

        await supervisor.teardown()

        assert supervisor.interrupt(signal.SIGINT) is False


class TestPipelineOutcome:
    """Test outcomes map to process exit codes."""

    def test_exit_codes(self):
        """Test only a failed run exits non-zero."""
        assert [outcome.value for outcome in PipelineOutcome] == ["failed", "interrupted"]
        assert PipelineOutcome.FAILED.exit_code == 1
        assert PipelineOutcome.INTERRUPTED.exit_code == 0
