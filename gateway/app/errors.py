"""Error taxonomy shared by the outbound clients, agents and the HTTP layer.

Clients raise these inside their own retry loops; agents turn them into
``AgentResult`` values so the orchestrator branches on data, not exceptions.
"""
from typing import Any, Optional


class GatewayError(Exception):
    """Base error. ``friendly_message`` is safe to show to an end user."""

    def __init__(self, message: str, friendly_message: Optional[str] = None):
        super().__init__(message)
        self.friendly_message = friendly_message or message


class InvalidInputError(GatewayError):
    """Bad or missing input (empty question, malformed date). Never retried."""


class BackendUnavailable(GatewayError):
    """Timeout, refused connection, DNS failure or 5xx. Retried with backoff."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    DNS = "dns"
    SERVER = "server"

    def __init__(self, message: str, reason: str = CONNECTION, friendly_message: Optional[str] = None):
        super().__init__(message, friendly_message)
        self.reason = reason


class BackendRejected(GatewayError):
    """4xx from a backend. Surfaced immediately with the backend's own text."""

    def __init__(self, message: str, status_code: int, response_data: Any = None,
                 friendly_message: Optional[str] = None):
        super().__init__(message, friendly_message)
        self.status_code = status_code
        self.response_data = response_data


class MalformedResponse(GatewayError):
    """Backend answered with something this gateway cannot interpret."""
