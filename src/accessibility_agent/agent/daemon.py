"""Daemon management for the agent.

Handles:
- Double-fork into the background
- PID file management
- Redirecting output to the agent log
- Stopping the daemon (SIGTERM, then SIGKILL)
"""

import os
import signal
import sys
import time
from collections.abc import Callable
from typing import Any

from ..shared.paths import PID_FILE, ensure_dirs, get_log_file

LOG_FILE = get_log_file("agent")

# SIGTERM grace period before SIGKILL (seconds)
STOP_TIMEOUT = 5.0


def is_running() -> tuple[bool, int | None]:
    """Check if the agent daemon is running.

    Returns:
        Tuple of (alive, pid). If not running, pid is None.
    """
    if not PID_FILE.exists():
        return False, None

    try:
        pid = int(PID_FILE.read_text().strip())
    except (ValueError, OSError):
        PID_FILE.unlink(missing_ok=True)
        return False, None

    try:
        os.kill(pid, 0)
        return True, pid
    except ProcessLookupError:
        # Stale PID file
        PID_FILE.unlink(missing_ok=True)
        return False, None
    except PermissionError:
        # Exists, owned by another user
        return True, pid


def start_daemon(run_func: Callable[..., Any], log_level: str = "info", **kwargs: Any) -> int:
    """Detach and run run_func(**kwargs) in a daemon process.

    Returns in the launching process only, with an exit code for the CLI.
    The daemon process itself exits when run_func returns.
    """
    alive, pid = is_running()
    if alive:
        print(f"Agent already running (PID {pid}). Use 'accessibilityagent agent stop' first.")
        return 1

    ensure_dirs()

    pid = os.fork()
    if pid > 0:
        # Parent: give the daemon a moment to write its PID file
        time.sleep(0.5)
        alive, child_pid = is_running()
        if not alive:
            print(f"Agent failed to start. Check {LOG_FILE}.")
            return 1
        print(f"Agent started (PID {child_pid})")
        print(f"Logs: {LOG_FILE}")
        return 0

    os.setsid()

    if os.fork() > 0:
        os._exit(0)

    PID_FILE.write_text(str(os.getpid()))

    log_fd = open(LOG_FILE, "a")
    os.dup2(log_fd.fileno(), sys.stdout.fileno())
    os.dup2(log_fd.fileno(), sys.stderr.fileno())

    from ..shared.logging import configure_logging

    configure_logging(level=log_level, log_file=LOG_FILE, json_output=True)

    exit_code = 1
    try:
        exit_code = run_func(**kwargs)
    finally:
        PID_FILE.unlink(missing_ok=True)
    os._exit(exit_code or 0)


def stop_daemon() -> bool:
    """Stop the daemon via SIGTERM, force-killing after STOP_TIMEOUT.

    Returns:
        True if a daemon was running
    """
    alive, pid = is_running()
    if not alive:
        print("Agent is not running.")
        return False

    os.kill(pid, signal.SIGTERM)

    deadline = time.monotonic() + STOP_TIMEOUT
    while time.monotonic() < deadline:
        time.sleep(0.1)
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            PID_FILE.unlink(missing_ok=True)
            print(f"Agent stopped (was PID {pid}).")
            return True

    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass

    PID_FILE.unlink(missing_ok=True)
    print(f"Agent force-killed (PID {pid}).")
    return True
