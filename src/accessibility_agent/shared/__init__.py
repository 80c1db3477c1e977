"""Shared modules for accessibility-agent.

This module provides functionality used by both the probe commands and the
agent mode:
- Paths (runtime directory, credential file location)
- Logging
"""

from .logging import configure_logging, get_logger
from .paths import (
    AGENT_DIR,
    LOG_DIR,
    PID_FILE,
    ensure_dirs,
    get_default_credential_path,
)

__all__ = [
    # Paths
    "AGENT_DIR",
    "PID_FILE",
    "LOG_DIR",
    "ensure_dirs",
    "get_default_credential_path",
    # Logging
    "configure_logging",
    "get_logger",
]
