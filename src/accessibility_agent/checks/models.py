"""Check result model and shared defaults."""

from dataclasses import dataclass
from typing import Any


class CheckDefaults:
    """Default timeouts (milliseconds) used by network checks."""

    PING_TIMEOUT_MS = 4_000
    DNS_TIMEOUT_MS = 4_000
    TCP_TIMEOUT_MS = 3_000
    UDP_TIMEOUT_MS = 2_000
    HTTP_TIMEOUT_MS = 5_000


@dataclass
class CheckResult:
    """Outcome of a single reachability check."""

    check: str
    success: bool
    message: str
    duration_ms: float | None = None
    data: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire/JSON representation."""
        return {
            "check": self.check,
            "success": self.success,
            "message": self.message,
            "durationMs": self.duration_ms,
            "data": self.data,
        }


def build_metadata(*pairs: tuple[str, str | None]) -> dict[str, str] | None:
    """Build a metadata dict from key/value pairs, dropping blank entries.

    Keys are de-duplicated case-insensitively; the last value wins and keeps
    the spelling of the first occurrence.

    Args:
        *pairs: (key, value) tuples; a None or blank value is skipped

    Returns:
        Dict of non-empty entries, or None if nothing remains
    """
    result: dict[str, str] = {}
    canonical: dict[str, str] = {}

    for key, value in pairs:
        if not key or not key.strip() or value is None or not str(value).strip():
            continue
        folded = key.casefold()
        name = canonical.setdefault(folded, key)
        result[name] = str(value)

    return result or None
