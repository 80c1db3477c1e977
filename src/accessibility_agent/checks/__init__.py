"""Reachability checks (ping, dns, tcp, udp, http)."""

from .models import CheckDefaults, CheckResult, build_metadata
from .runner import CheckRunner, NetworkCheckRunner

__all__ = [
    "CheckDefaults",
    "CheckResult",
    "CheckRunner",
    "NetworkCheckRunner",
    "build_metadata",
]
