"""Exception types raised by AgentLink."""
from __future__ import annotations


class AgentLinkError(Exception):
    """Base class for AgentLink errors."""


class TransportError(AgentLinkError):
    """A backend call returned a non-success HTTP status."""

    def __init__(self, operation: str, status_code: int, body: str = ""):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(f"{operation} failed: {status_code} - {body}")


class NoActiveSessionError(AgentLinkError):
    """A session-scoped call was made while no task is running."""


class HumanReplySuperseded(AgentLinkError):
    """A pending human reply was replaced by a newer ask before it resolved."""

    def __init__(self, agent: str):
        self.agent = agent
        super().__init__(f"Pending reply for agent '{agent}' was superseded")
