"""Error types for accessibility-agent.

Transport errors are retryable and drive the reconnect policy; validation
errors are local to one job; exhausting the reconnect budget is fatal for a run.
"""

from dataclasses import dataclass

# Error codes
VALIDATION_ERROR = "VALIDATION_ERROR"
TRANSPORT_ERROR = "TRANSPORT_ERROR"
INVOKE_TIMEOUT = "INVOKE_TIMEOUT"
INVOCATION_ERROR = "INVOCATION_ERROR"
RECONNECT_EXHAUSTED = "RECONNECT_EXHAUSTED"


@dataclass
class AgentError(Exception):
    """Base error class for agent errors."""

    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return self.message


@dataclass
class JobValidationError(AgentError):
    """Job payload is malformed or incomplete."""

    code: str = VALIDATION_ERROR
    message: str = "Invalid job payload"
    retryable: bool = False


@dataclass
class TransportError(AgentError):
    """Connection to the coordinator failed or dropped."""

    code: str = TRANSPORT_ERROR
    message: str = "Connection to coordinator failed"
    retryable: bool = True


@dataclass
class InvokeTimeoutError(TransportError):
    """Request/response call did not complete in time."""

    code: str = INVOKE_TIMEOUT
    message: str = "Invocation timed out"
    retryable: bool = True


@dataclass
class ReconnectExhaustedError(AgentError):
    """Configured maximum reconnect attempts were used up."""

    code: str = RECONNECT_EXHAUSTED
    message: str = "Reconnect attempts exhausted"
    retryable: bool = False
    attempts: int = 0


@dataclass
class InvocationError(AgentError):
    """Coordinator reported a failure for a request/response call."""

    code: str = INVOCATION_ERROR
    message: str = "Invocation failed"
    retryable: bool = False
