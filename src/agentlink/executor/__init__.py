"""AgentLink executor - local execution of delegated tool requests."""

from agentlink.executor.tool_executor import ToolExecutor

__all__ = ["ToolExecutor"]
