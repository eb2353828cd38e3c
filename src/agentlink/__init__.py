"""
AgentLink - local client for remote agent task sessions.

The backend runs the task and streams lifecycle events over SSE. The client
forwards every event to a local observer, answers human-input requests and
executes delegated operations (file I/O, search/replace, listing, shell)
locally, reporting each result back to the backend.

Architecture:
- StreamClient: wire protocol, SSE framing and control calls
- ToolExecutor: local execution of delegated tool requests
- Orchestrator: one task session's lifecycle and dispatch loop

Usage:
    agentlink config --backend-url http://localhost:8000
    agentlink run "add a health check endpoint"
"""

__version__ = "0.1.0"
__author__ = "AgentLink Team"
