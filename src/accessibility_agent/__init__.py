"""AccessibilityAgent - host reachability checker and coordinator agent."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("accessibility-agent")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

__all__ = ["__version__"]
