"""AgentLink CLI UI - Rich terminal interface."""

from agentlink.ui.console import AgentLinkConsole

__all__ = ["AgentLinkConsole"]
