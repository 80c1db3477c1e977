"""Registrar - announces the agent and bootstraps its personal token.

Runs on every successful (re)connect: emits the registration event, then
asks the coordinator for a personal token (when enabled) in the background
while events keep being dispatched. Neither step raises; failures are
logged and the connection stays up.
"""

import logging
import platform
import sys
from datetime import datetime, timezone
from typing import Any

from .credentials import CredentialStore
from .session import ConnectionSession
from .types import CAPABILITIES, AgentEvents, AgentOptions, Credentials, utc_timestamp

logger = logging.getLogger(__name__)

ISSUE_TOKEN_TIMEOUT = 30.0


class Registrar:
    """Handles registration and credential bootstrap for one agent."""

    def __init__(
        self,
        session: ConnectionSession,
        options: AgentOptions,
        credential_store: CredentialStore | None = None,
        version: str = "unknown",
        started_at: datetime | None = None,
    ):
        """Initialize Registrar.

        Args:
            session: Coordinator session used for emit/invoke
            options: Agent configuration
            credential_store: Where a bootstrapped token is saved
            version: Agent version announced on registration
            started_at: Process start time (defaults to now)
        """
        self.session = session
        self.options = options
        self.credential_store = credential_store or CredentialStore(options.credential_file_path)
        self.version = version
        self.started_at = started_at or datetime.now(timezone.utc)

    async def on_connected(self) -> None:
        """Register, then bootstrap the token without blocking event dispatch."""
        await self.register()
        if self.options.auto_issue_personal_token:
            self.session.spawn(self.bootstrap_token())

    def registration_payload(self) -> dict[str, Any]:
        return {
            "agent": self.options.agent_name,
            "version": self.version,
            "capabilities": list(CAPABILITIES),
            "connectedAt": utc_timestamp(),
            "metadata": dict(self.options.metadata) or None,
            "runtime": {
                "python": platform.python_version(),
                "implementation": sys.implementation.name,
                "platform": platform.platform(),
                "processArchitecture": platform.machine(),
                "startedAt": utc_timestamp(self.started_at),
            },
        }

    async def register(self) -> bool:
        """Emit the registration event.

        Returns:
            True if the event was sent
        """
        sent = await self.session.emit(AgentEvents.REGISTER, self.registration_payload())
        if sent:
            logger.info(f"Registered as '{self.options.agent_name}'")
        else:
            logger.warning("Registration was not sent (not connected)")
        return sent

    async def bootstrap_token(self) -> bool:
        """Request a personal token and persist it when it is new.

        Returns:
            True if a new token was saved
        """
        if not self.options.auto_issue_personal_token:
            return False

        try:
            response = await self.session.invoke(
                AgentEvents.ISSUE_TOKEN,
                {"agent": self.options.agent_name},
                timeout=ISSUE_TOKEN_TIMEOUT,
            )
        except Exception as e:
            logger.warning(f"Issuing personal token failed: {e}")
            return False

        if not isinstance(response, dict) or response.get("ok") is not True:
            logger.debug("Coordinator did not issue a personal token")
            return False

        token = response.get("token")
        if not isinstance(token, str) or not token.strip() or token == self.options.token:
            return False

        credentials = Credentials(
            agent_name=self.options.agent_name,
            server_url=self.options.server_url,
            token=token,
            issued_at=datetime.now(timezone.utc),
            metadata=dict(self.options.metadata),
        )
        if not self.credential_store.save(credentials):
            return False

        logger.info(
            f"Personal token saved to '{self.credential_store.path}'. "
            "It will be used on next start."
        )
        return True
