"""Agent mode.

Connects to a coordinator over a persistent event connection, registers its
capabilities, and executes reachability jobs one at a time.
"""

from .command import run_agent
from .credentials import CredentialStore
from .daemon import is_running, start_daemon, stop_daemon
from .executor import JobExecutor
from .heartbeat import HeartbeatScheduler
from .registrar import Registrar
from .runner import AgentRunner, parse_job
from .session import ConnectionSession, ReconnectPolicy
from .transport import EventTransport, WebSocketTransport
from .types import (
    CAPABILITIES,
    AgentEvents,
    AgentOptions,
    ConnectionState,
    Credentials,
    Job,
    JobResult,
)

__all__ = [
    # Agent execution
    "run_agent",
    "AgentRunner",
    "parse_job",
    # Daemon management
    "start_daemon",
    "stop_daemon",
    "is_running",
    # Core components
    "ConnectionSession",
    "ReconnectPolicy",
    "Registrar",
    "HeartbeatScheduler",
    "JobExecutor",
    "CredentialStore",
    # Transport
    "EventTransport",
    "WebSocketTransport",
    # Types
    "AgentOptions",
    "AgentEvents",
    "ConnectionState",
    "Credentials",
    "Job",
    "JobResult",
    "CAPABILITIES",
]
