"""Unit tests for AgentRunner: job parsing, execution gate and lifecycle."""

import asyncio
from dataclasses import replace

import pytest
from conftest import FakeTransport, FakeTransportFactory, RecordingCheckRunner

from accessibility_agent.agent.credentials import CredentialStore
from accessibility_agent.agent.executor import JobExecutor
from accessibility_agent.agent.runner import AgentRunner, parse_job
from accessibility_agent.errors import ReconnectExhaustedError


class TestParseJob:
    """Tests for job-request parsing."""

    def test_plain_job(self):
        job = parse_job({"id": "j1", "type": "tcp", "payload": {"port": 1}, "metadata": {"k": 1}})

        assert (job.id, job.type) == ("j1", "tcp")
        assert job.payload == {"port": 1}
        assert job.metadata == {"k": 1}

    def test_wrapped_job_and_aliases(self):
        job = parse_job({"job": {"jobId": 7, "command": "ping", "payload": {"host": "a"}}})

        assert (job.id, job.type) == ("7", "ping")

    @pytest.mark.parametrize(
        "message",
        [
            "not an object",
            ["j1", "tcp"],
            {"type": "tcp"},
            {"id": "j1"},
            {"id": "  ", "type": "tcp"},
            {"id": True, "type": "tcp"},
        ],
    )
    def test_malformed_messages_are_rejected(self, message):
        assert parse_job(message) is None


def make_runner(options, transport, check_runner, **kwargs):
    return AgentRunner(
        options,
        executor=JobExecutor(check_runner),
        transport_factory=FakeTransportFactory(transport),
        credential_store=CredentialStore(options.credential_file_path),
        version="test",
        **kwargs,
    )


async def start(runner, transport, eventually):
    task = asyncio.create_task(runner.run())
    await eventually(lambda: transport.events_named("register"))
    return task


async def shut_down(runner, task):
    runner.stop()
    await asyncio.wait_for(task, timeout=2)


class TestJobPipeline:
    """Tests for accepted/result emission."""

    @pytest.mark.asyncio
    async def test_job_emits_accepted_then_result(self, agent_options, eventually):
        transport = FakeTransport()
        runner = make_runner(agent_options, transport, RecordingCheckRunner())
        task = await start(runner, transport, eventually)

        transport.push_event(
            "job-request",
            {"id": "j1", "type": "tcp", "payload": {"host": "h", "port": 1}, "metadata": {"t": 1}},
        )
        await eventually(lambda: transport.events_named("job-result"))

        accepted = transport.events_named("job-accepted")[0]
        result = transport.events_named("job-result")[0]
        assert accepted["jobId"] == "j1"
        assert accepted["type"] == "tcp"
        assert accepted["agent"] == "agent-1"
        assert accepted["metadata"] == {"t": 1}
        assert result["jobId"] == "j1"
        assert result["success"] is True
        assert result["checks"][0]["check"] == "tcp:h:1"
        assert result["metadata"] == {"t": 1}
        assert result["error"] is None

        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_validation_failure_is_reported(self, agent_options, eventually):
        transport = FakeTransport()
        check_runner = RecordingCheckRunner()
        runner = make_runner(agent_options, transport, check_runner)
        task = await start(runner, transport, eventually)

        transport.push_event("job-request", {"id": "j2", "type": "udp", "payload": {"port": 53}})
        await eventually(lambda: transport.events_named("job-result"))

        result = transport.events_named("job-result")[0]
        assert result["success"] is False
        assert result["checks"] == []
        assert result["error"] == "Job 'udp' is missing required property 'host'."
        assert check_runner.calls == []

        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_malformed_request_emits_nothing(self, agent_options, eventually):
        transport = FakeTransport()
        runner = make_runner(agent_options, transport, RecordingCheckRunner())
        task = await start(runner, transport, eventually)

        transport.push_event("job-request", {"payload": {}})
        await asyncio.sleep(0.05)

        assert transport.events_named("job-accepted") == []
        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_second_job_accepted_only_after_first_result(self, agent_options, eventually):
        transport = FakeTransport()
        check_runner = RecordingCheckRunner(delay=0.05)
        runner = make_runner(agent_options, transport, check_runner)
        task = await start(runner, transport, eventually)

        transport.push_event("job-request", {"id": "A", "type": "ping", "payload": {"host": "a"}})
        transport.push_event("job-request", {"id": "B", "type": "ping", "payload": {"host": "b"}})
        await eventually(lambda: len(transport.events_named("job-result")) == 2)

        sequence = [
            (event, data["jobId"])
            for event, data in transport.sent_events
            if event in ("job-accepted", "job-result")
        ]
        assert sequence == [
            ("job-accepted", "A"),
            ("job-result", "A"),
            ("job-accepted", "B"),
            ("job-result", "B"),
        ]
        assert check_runner.max_in_flight == 1

        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_duplicate_job_ids_are_both_executed(self, agent_options, eventually):
        transport = FakeTransport()
        check_runner = RecordingCheckRunner()
        runner = make_runner(agent_options, transport, check_runner)
        task = await start(runner, transport, eventually)

        for _ in range(2):
            transport.push_event("job-request", {"id": "dup", "type": "dns", "payload": {"host": "a"}})
        await eventually(lambda: len(transport.events_named("job-result")) == 2)

        assert len(check_runner.calls) == 2
        await shut_down(runner, task)


class TestCancellation:
    """Tests for job and agent cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_job_reports_job_cancelled(self, agent_options, eventually):
        transport = FakeTransport()
        runner = make_runner(agent_options, transport, RecordingCheckRunner(delay=5))
        task = await start(runner, transport, eventually)

        transport.push_event("job-request", {"id": "slow", "type": "ping", "payload": {"host": "a"}})
        await eventually(lambda: transport.events_named("job-accepted"))
        for job_task in list(runner._job_tasks):
            job_task.cancel()
        await eventually(lambda: transport.events_named("job-result"))

        result = transport.events_named("job-result")[0]
        assert result["jobId"] == "slow"
        assert result["success"] is False
        assert result["error"] == "Job cancelled"

        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_shutdown_cancels_job_without_result(self, agent_options, eventually):
        transport = FakeTransport()
        runner = make_runner(agent_options, transport, RecordingCheckRunner(delay=5))
        task = await start(runner, transport, eventually)

        transport.push_event("job-request", {"id": "slow", "type": "ping", "payload": {"host": "a"}})
        await eventually(lambda: transport.events_named("job-accepted"))
        await shut_down(runner, task)

        assert transport.events_named("job-result") == []
        assert runner.active_jobs == 0
        assert transport.closed is True


class TestLifecycle:
    """Tests for run/stop."""

    @pytest.mark.asyncio
    async def test_external_shutdown_event_stops_run(self, agent_options, eventually):
        transport = FakeTransport()
        runner = make_runner(agent_options, transport, RecordingCheckRunner())
        shutdown = asyncio.Event()

        task = asyncio.create_task(runner.run(shutdown))
        await eventually(lambda: transport.events_named("register"))
        shutdown.set()

        await asyncio.wait_for(task, timeout=2)
        assert runner.is_terminating

    @pytest.mark.asyncio
    async def test_reconnect_exhaustion_propagates(self, agent_options):
        options = replace(agent_options, max_reconnect_attempts=1)
        runner = make_runner(options, FakeTransport(fail_connect=True), RecordingCheckRunner())

        with pytest.raises(ReconnectExhaustedError):
            await asyncio.wait_for(runner.run(), timeout=2)

    @pytest.mark.asyncio
    async def test_registers_again_after_reconnect(self, agent_options, eventually):
        first, second = FakeTransport(), FakeTransport()
        runner = AgentRunner(
            agent_options,
            executor=JobExecutor(RecordingCheckRunner()),
            transport_factory=FakeTransportFactory(first, second),
            version="test",
        )
        task = asyncio.create_task(runner.run())

        await eventually(lambda: first.events_named("register"))
        first.drop()
        await eventually(lambda: second.events_named("register"))

        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_heartbeat_sent_when_enabled(self, agent_options, eventually):
        transport = FakeTransport()
        options = replace(agent_options, heartbeat_interval=0.02)
        runner = make_runner(options, transport, RecordingCheckRunner())
        task = await start(runner, transport, eventually)

        await eventually(lambda: transport.events_named("heartbeat"))

        await shut_down(runner, task)


class TestPendingTokenBootstrap:
    """Tests for an issue-token request the coordinator never answers."""

    @pytest.fixture
    def options(self, agent_options):
        return replace(agent_options, auto_issue_personal_token=True)

    @pytest.mark.asyncio
    async def test_jobs_run_while_bootstrap_is_outstanding(self, options, eventually):
        transport = FakeTransport()
        runner = make_runner(options, transport, RecordingCheckRunner())
        task = await start(runner, transport, eventually)
        await eventually(lambda: transport.sent_invokes)

        transport.push_event("job-request", {"id": "j1", "type": "dns", "payload": {"host": "a"}})
        await eventually(lambda: transport.events_named("job-result"))

        assert transport.events_named("job-result")[0]["success"] is True
        await shut_down(runner, task)

    @pytest.mark.asyncio
    async def test_stop_while_bootstrap_is_outstanding(self, options, eventually):
        transport = FakeTransport()
        runner = make_runner(options, transport, RecordingCheckRunner())
        task = await start(runner, transport, eventually)
        await eventually(lambda: transport.sent_invokes)

        await shut_down(runner, task)

        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_reconnects_after_drop_during_bootstrap(self, options, eventually):
        first, second = FakeTransport(), FakeTransport()
        runner = AgentRunner(
            options,
            executor=JobExecutor(RecordingCheckRunner()),
            transport_factory=FakeTransportFactory(first, second),
            credential_store=CredentialStore(options.credential_file_path),
            version="test",
        )
        task = asyncio.create_task(runner.run())

        await eventually(lambda: first.sent_invokes)
        first.fail()
        await eventually(lambda: second.events_named("register"))

        await shut_down(runner, task)
