"""Path management for accessibility-agent.

Manages ~/.accessibilityagent/ (runtime state) and the XDG config location
used for persisted agent credentials.
"""

import os
from pathlib import Path

# Base directory for runtime state (PID file, daemon log)
AGENT_DIR = Path.home() / ".accessibilityagent"

# Agent daemon PID file location
PID_FILE = AGENT_DIR / "agent.pid"

# Log directory (same as base for simplicity)
LOG_DIR = AGENT_DIR


def ensure_dirs() -> None:
    """Create the runtime directory if missing (mode 0o700)."""
    AGENT_DIR.mkdir(mode=0o700, parents=True, exist_ok=True)


def get_log_file(name: str = "agent") -> Path:
    """Get path to a log file.

    Args:
        name: Log file name (without extension)

    Returns:
        Path to the log file
    """
    return LOG_DIR / f"{name}.log"


def get_config_home() -> Path:
    """Get the base configuration directory.

    Returns:
        $XDG_CONFIG_HOME if set, otherwise ~/.config
    """
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home and config_home.strip():
        return Path(config_home)
    return Path.home() / ".config"


def get_default_credential_path() -> Path:
    """Get the default path of the agent credential file.

    Returns:
        Path to accessibilityagent/agent.json in the config directory
    """
    return get_config_home() / "accessibilityagent" / "agent.json"
