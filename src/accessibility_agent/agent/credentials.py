"""Credential storage for the agent.

Handles:
- Loading a previously issued personal token at startup
- Persisting a newly issued token after bootstrap
- Owner-only file permissions
"""

import json
import logging
import os
from pathlib import Path

from ..shared.paths import get_default_credential_path
from .types import Credentials

logger = logging.getLogger(__name__)


class CredentialStore:
    """Reads and writes the agent credential file.

    The file is a small JSON document; a missing or unreadable file is
    treated as "no credentials".
    """

    def __init__(self, path: Path | str | None = None):
        """Initialize credential store.

        Args:
            path: Optional custom path for the credential file
        """
        self._path = Path(path) if path else get_default_credential_path()

    @property
    def path(self) -> Path:
        """Get the credential file path."""
        return self._path

    def load(self) -> Credentials | None:
        """Load credentials from file.

        Returns:
            Credentials if the file exists and parses, None otherwise
        """
        if not self._path.exists():
            logger.debug(f"Credential file not found: {self._path}")
            return None

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load credentials: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Credential file {self._path} does not contain an object")
            return None

        logger.debug(f"Loaded credentials from {self._path}")
        return Credentials.from_dict(data)

    def save(self, credentials: Credentials) -> bool:
        """Save credentials to file.

        Returns:
            True if credentials were saved successfully
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)

            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(credentials.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save credentials: {e}")
            return False

        # Owner-only (600); not supported everywhere
        try:
            os.chmod(self._path, 0o600)
        except OSError as e:
            logger.debug(f"Could not restrict permissions on {self._path}: {e}")

        logger.debug(f"Saved credentials to {self._path}")
        return True
