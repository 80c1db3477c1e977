"""Type definitions for the agent.

Defines the agent configuration, protocol event names, and the job/result
records exchanged with the coordinator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import urlsplit

from ..checks.models import CheckResult
from ..shared.paths import get_default_credential_path

# Capabilities announced on registration
CAPABILITIES: tuple[str, ...] = ("ping", "dns", "tcp", "udp", "http", "check")

SERVER_URL_SCHEMES = ("http", "https", "ws", "wss")


class AgentEvents:
    """Protocol event and method names."""

    # Outbound events
    REGISTER = "register"
    HEARTBEAT = "heartbeat"
    JOB_ACCEPTED = "job-accepted"
    JOB_RESULT = "job-result"

    # Inbound events
    JOB_REQUEST = "job-request"

    # Request/response methods
    ISSUE_TOKEN = "issue-token"


class ConnectionState(str, Enum):
    """Connection state of the coordinator session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class AgentOptions:
    """Immutable agent configuration, validated on construction.

    Delays and intervals are in seconds. A negative heartbeat interval is
    clamped to zero, which disables heartbeats.

    Raises:
        ValueError: On a server URL that is not an absolute http(s) or ws(s)
            URL, an empty token or agent name, a non-positive reconnect
            delay, a maximum delay below the initial delay, or a maximum
            attempt count below one.
    """

    server_url: str
    token: str
    agent_name: str
    reconnect_delay: float = 2.0
    reconnect_delay_max: float = 30.0
    max_reconnect_attempts: int | None = None
    heartbeat_interval: float = 30.0
    metadata: Mapping[str, str] = field(default_factory=dict)
    credential_file_path: Path | None = None
    auto_issue_personal_token: bool = True

    def __post_init__(self) -> None:
        if not self.server_url or not self.server_url.strip():
            raise ValueError("Server URL cannot be empty.")
        parts = urlsplit(self.server_url.strip())
        if parts.scheme.lower() not in SERVER_URL_SCHEMES or not parts.hostname:
            raise ValueError(f"Invalid server URL '{self.server_url}'.")
        if not self.token or not self.token.strip():
            raise ValueError("Token cannot be empty.")
        if not self.agent_name or not self.agent_name.strip():
            raise ValueError("Agent name cannot be empty.")
        if self.reconnect_delay <= 0:
            raise ValueError("Reconnect delay must be positive.")
        if self.reconnect_delay_max < self.reconnect_delay:
            raise ValueError("Reconnect delay max must be >= reconnect delay.")
        if self.max_reconnect_attempts is not None and self.max_reconnect_attempts < 1:
            raise ValueError("Max reconnect attempts must be at least 1.")

        object.__setattr__(self, "heartbeat_interval", max(0.0, self.heartbeat_interval))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

        path = self.credential_file_path
        if path is None or not str(path).strip():
            path = get_default_credential_path()
        object.__setattr__(self, "credential_file_path", Path(path))


@dataclass
class Credentials:
    """Persisted agent credentials (personal token and identity)."""

    agent_name: str | None = None
    server_url: str | None = None
    token: str | None = None
    issued_at: datetime | None = None
    metadata: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON form (camelCase, None omitted)."""
        data = {
            "agentName": self.agent_name,
            "serverUrl": self.server_url,
            "token": self.token,
            "issuedAt": self.issued_at.isoformat() if self.issued_at else None,
            "metadata": self.metadata,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credentials":
        """Build from the on-disk JSON form, ignoring unknown or ill-typed fields."""

        def _str(key: str) -> str | None:
            value = data.get(key)
            return value if isinstance(value, str) else None

        issued_at = None
        raw_issued = _str("issuedAt")
        if raw_issued:
            try:
                issued_at = datetime.fromisoformat(raw_issued.replace("Z", "+00:00"))
            except ValueError:
                issued_at = None

        metadata = data.get("metadata")
        if isinstance(metadata, dict):
            metadata = {str(k): str(v) for k, v in metadata.items() if v is not None}
        else:
            metadata = None

        return cls(
            agent_name=_str("agentName"),
            server_url=_str("serverUrl"),
            token=_str("token"),
            issued_at=issued_at,
            metadata=metadata,
        )


@dataclass
class Job:
    """A job request received from the coordinator."""

    id: str
    type: str
    payload: Any = None
    metadata: Any = None


@dataclass
class JobResult:
    """Outcome of executing one job."""

    job_id: str
    success: bool
    checks: list[CheckResult] = field(default_factory=list)
    error: str | None = None
    error_details: str | None = None

    @classmethod
    def from_checks(cls, job_id: str, checks: list[CheckResult]) -> "JobResult":
        """Aggregate check results; an empty list counts as success."""
        return cls(job_id=job_id, success=all(c.success for c in checks), checks=list(checks))

    @classmethod
    def failed(cls, job_id: str, error: str, error_details: str | None = None) -> "JobResult":
        """Result for a job that could not be executed."""
        return cls(job_id=job_id, success=False, error=error, error_details=error_details)


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp for outbound payloads."""
    return (moment or datetime.now(timezone.utc)).astimezone(timezone.utc).isoformat()
