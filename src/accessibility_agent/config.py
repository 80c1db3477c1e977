"""Agent configuration resolution.

Agent settings come from several places. Precedence (highest to lowest):
1. CLI flags
2. Environment variables (AA_*)
3. Config file (~/.accessibilityagent/config.yaml)
4. Saved credentials (token, agent name, metadata)
5. Defaults

Values are validated once, when AgentOptions is built.
"""

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .agent.credentials import CredentialStore
from .agent.types import AgentOptions
from .shared.paths import AGENT_DIR

CONFIG_FILE = AGENT_DIR / "config.yaml"

# Defaults (milliseconds)
DEFAULT_RECONNECT_DELAY_MS = 2_000
DEFAULT_RECONNECT_DELAY_MAX_MS = 30_000
DEFAULT_HEARTBEAT_MS = 30_000
MIN_RECONNECT_DELAY_MS = 100

# Environment variable mappings
ENV_VARS = {
    "server_url": "AA_SERVER_URL",
    "token": "AA_AGENT_TOKEN",
    "agent_name": "AA_AGENT_NAME",
    "credential_file": "AA_AGENT_CREDENTIAL_FILE",
}

# Keys accepted in the config file
FILE_KEYS = (
    "server_url",
    "agent_name",
    "reconnect_delay_ms",
    "reconnect_delay_max_ms",
    "reconnect_attempts",
    "heartbeat_ms",
    "metadata",
    "credential_file",
)


@dataclass
class AgentConfig:
    """Agent settings before validation, with the source of each value."""

    server_url: str | None = None
    token: str | None = None
    agent_name: str | None = None
    reconnect_delay_ms: int = DEFAULT_RECONNECT_DELAY_MS
    reconnect_delay_max_ms: int = DEFAULT_RECONNECT_DELAY_MAX_MS
    reconnect_attempts: int | None = None
    heartbeat_ms: int = DEFAULT_HEARTBEAT_MS
    metadata: dict[str, str] = field(default_factory=dict)
    credential_file: Path | None = None
    auto_issue_personal_token: bool = True

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def to_options(self) -> AgentOptions:
        """Validate and convert to AgentOptions.

        Raises:
            ValueError: If a required value is missing or out of range
        """
        if not self.server_url or not self.server_url.strip():
            raise ValueError(
                "Agent mode requires --server option or AA_SERVER_URL environment variable."
            )
        if not self.token or not self.token.strip():
            raise ValueError(
                "Agent mode requires --token (master or personal) or AA_AGENT_TOKEN, "
                "or existing credentials file."
            )

        _check_min(self.reconnect_delay_ms, MIN_RECONNECT_DELAY_MS, "reconnect-delay")
        _check_min(self.reconnect_delay_max_ms, self.reconnect_delay_ms, "reconnect-delay-max")
        if self.reconnect_attempts is not None:
            _check_min(self.reconnect_attempts, 1, "reconnect-attempts")
        _check_min(self.heartbeat_ms, 0, "heartbeat")

        return AgentOptions(
            server_url=self.server_url.strip(),
            token=self.token.strip(),
            agent_name=(self.agent_name or socket.gethostname()).strip(),
            reconnect_delay=self.reconnect_delay_ms / 1000,
            reconnect_delay_max=self.reconnect_delay_max_ms / 1000,
            max_reconnect_attempts=self.reconnect_attempts,
            heartbeat_interval=self.heartbeat_ms / 1000,
            metadata=self.metadata,
            credential_file_path=self.credential_file,
            auto_issue_personal_token=self.auto_issue_personal_token,
        )

    def to_display_dict(self) -> dict[str, Any]:
        """Settings for display, with the token masked."""
        token = self.token
        if token:
            token = token[:4] + "..." if len(token) > 8 else "***"
        return {
            "server_url": self.server_url,
            "token": token,
            "agent_name": self.agent_name,
            "reconnect_delay_ms": self.reconnect_delay_ms,
            "reconnect_delay_max_ms": self.reconnect_delay_max_ms,
            "reconnect_attempts": self.reconnect_attempts,
            "heartbeat_ms": self.heartbeat_ms,
            "metadata": dict(self.metadata),
            "credential_file": str(self.credential_file) if self.credential_file else None,
            "auto_issue_personal_token": self.auto_issue_personal_token,
        }


def _check_min(value: int, minimum: int, option: str) -> None:
    if value < minimum:
        raise ValueError(f"Value '{value}' for option '--{option}' must be >= {minimum}.")


def parse_metadata(entries: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Parse key=value metadata entries.

    Blank entries are skipped. Keys are trimmed and de-duplicated
    case-insensitively (last value wins).

    Raises:
        ValueError: If an entry is not key=value or has an empty key
    """
    metadata: dict[str, str] = {}
    spelling: dict[str, str] = {}

    for raw in entries:
        if not raw or not raw.strip():
            continue

        index = raw.find("=")
        if index <= 0 or index == len(raw) - 1:
            raise ValueError(f"Metadata entry '{raw}' must be in key=value format.")

        key = raw[:index].strip()
        value = raw[index + 1 :].strip()
        if not key:
            raise ValueError(f"Metadata entry '{raw}' contains an empty key.")

        name = spelling.setdefault(key.casefold(), key)
        metadata[name] = value

    return metadata


def load_file_config(path: Path | None = None) -> dict[str, Any]:
    """Load the optional YAML config file.

    Returns:
        Known keys from the file; empty if the file is missing

    Raises:
        ValueError: If the file cannot be parsed
    """
    config_path = path or CONFIG_FILE
    if not config_path.exists():
        return {}

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    return {key: data[key] for key in FILE_KEYS if data.get(key) is not None}


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Config value '{key}' must be an integer, got {value!r}") from None


def load_agent_config(
    server_url: str | None = None,
    token: str | None = None,
    agent_name: str | None = None,
    reconnect_delay_ms: int | None = None,
    reconnect_delay_max_ms: int | None = None,
    reconnect_attempts: int | None = None,
    heartbeat_ms: int | None = None,
    metadata: tuple[str, ...] | list[str] = (),
    credential_file: str | Path | None = None,
    auto_issue_personal_token: bool = True,
    config_path: Path | None = None,
) -> AgentConfig:
    """Merge CLI values, environment, config file and saved credentials.

    Arguments are the CLI flag values; None means "not given".

    Returns:
        AgentConfig with values and sources
    """
    config = AgentConfig(auto_issue_personal_token=auto_issue_personal_token)
    sources: dict[str, str] = {}
    file_config = load_file_config(config_path)

    def pick(key: str, cli_value: Any) -> Any:
        if cli_value is not None:
            sources[key] = "cli"
            return cli_value
        env_name = ENV_VARS.get(key)
        if env_name and os.environ.get(env_name, "").strip():
            sources[key] = "environment"
            return os.environ[env_name]
        if key in file_config:
            sources[key] = "config file"
            return file_config[key]
        return None

    credential_path = pick("credential_file", credential_file)
    config.credential_file = Path(credential_path) if credential_path else None
    saved = CredentialStore(config.credential_file).load()

    config.server_url = pick("server_url", server_url)

    config.token = pick("token", token)
    if not config.token and saved and saved.token:
        config.token = saved.token
        sources["token"] = "credentials"

    config.agent_name = pick("agent_name", agent_name)
    if not config.agent_name and saved and saved.agent_name:
        config.agent_name = saved.agent_name
        sources["agent_name"] = "credentials"
    if not config.agent_name:
        config.agent_name = socket.gethostname()
        sources["agent_name"] = "hostname"

    numeric = {
        "reconnect_delay_ms": reconnect_delay_ms,
        "reconnect_delay_max_ms": reconnect_delay_max_ms,
        "reconnect_attempts": reconnect_attempts,
        "heartbeat_ms": heartbeat_ms,
    }
    for key, cli_value in numeric.items():
        value = pick(key, cli_value)
        if value is not None:
            setattr(config, key, _as_int(value, key))

    parsed = parse_metadata(metadata)
    if parsed:
        config.metadata = parsed
        sources["metadata"] = "cli"
    elif isinstance(file_config.get("metadata"), dict):
        config.metadata = {str(k): str(v) for k, v in file_config["metadata"].items()}
        sources["metadata"] = "config file"
    elif saved and saved.metadata:
        config.metadata = dict(saved.metadata)
        sources["metadata"] = "credentials"

    config._sources = sources
    return config


def resolve_agent_options(**kwargs: Any) -> AgentOptions:
    """Resolve and validate agent options in one step.

    Accepts the same arguments as load_agent_config.

    Raises:
        ValueError: On missing or invalid settings
    """
    return load_agent_config(**kwargs).to_options()
