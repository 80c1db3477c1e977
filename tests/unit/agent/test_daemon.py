"""Unit tests for daemon PID handling and the agent entry point."""

import os
from unittest.mock import AsyncMock, patch

import pytest

from accessibility_agent.agent import daemon
from accessibility_agent.agent.command import run_agent
from accessibility_agent.errors import ReconnectExhaustedError


@pytest.fixture
def pid_file(tmp_path):
    path = tmp_path / "agent.pid"
    with patch.object(daemon, "PID_FILE", path):
        yield path


class TestIsRunning:
    """Tests for PID file inspection."""

    def test_no_pid_file(self, pid_file):
        assert daemon.is_running() == (False, None)

    def test_live_process(self, pid_file):
        pid_file.write_text(str(os.getpid()))

        assert daemon.is_running() == (True, os.getpid())

    def test_stale_pid_file_is_removed(self, pid_file):
        pid_file.write_text("999999")

        with patch("os.kill", side_effect=ProcessLookupError):
            assert daemon.is_running() == (False, None)

        assert not pid_file.exists()

    def test_garbage_pid_file_is_removed(self, pid_file):
        pid_file.write_text("not-a-pid")

        assert daemon.is_running() == (False, None)
        assert not pid_file.exists()

    def test_stop_when_not_running(self, pid_file, capsys):
        assert daemon.stop_daemon() is False
        assert "Agent is not running." in capsys.readouterr().out


class TestRunAgent:
    """Tests for the blocking agent entry point."""

    def test_clean_shutdown_returns_zero(self, agent_options):
        with patch("accessibility_agent.agent.command.AgentRunner") as runner_class:
            runner_class.return_value.run = AsyncMock(return_value=None)

            assert run_agent(agent_options) == 0

        runner_class.assert_called_once_with(agent_options)

    def test_fatal_error_returns_one(self, agent_options, capsys):
        with patch("accessibility_agent.agent.command.AgentRunner") as runner_class:
            runner_class.return_value.run = AsyncMock(
                side_effect=ReconnectExhaustedError(attempts=3)
            )

            assert run_agent(agent_options) == 1

        assert "Agent terminated with error:" in capsys.readouterr().out
