"""
Protocol models shared by the stream client, executor and orchestrator.

- AgentStep: every step name the backend can emit
- ChatParams: request body for POST /chat
- ProtocolEvent: one decoded SSE frame ({step, data})
- *Payload: typed views over the data of steps the client acts on
- ToolResult: outcome of a delegated tool call, sent back to the backend
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentStep(str, Enum):
    """SSE step names from the backend."""
    # Lifecycle
    CONFIRMED = "confirmed"
    TO_SUB_TASKS = "to_sub_tasks"
    CREATE_AGENT = "create_agent"
    ASSIGN_TASK = "assign_task"
    ACTIVATE_AGENT = "activate_agent"
    DEACTIVATE_AGENT = "deactivate_agent"
    TASK_STATE = "task_state"
    NEW_TASK_STATE = "new_task_state"
    NOTICE = "notice"
    SEARCH_MCP = "search_mcp"
    DECOMPOSE_TEXT = "decompose_text"
    DECOMPOSE_PROGRESS = "decompose_progress"
    ADD_TASK = "add_task"
    REMOVE_TASK = "remove_task"
    # Terminal
    END = "end"
    ERROR = "error"
    TIMEOUT = "timeout"
    # Human input
    ASK = "ask"
    # Client-delegated tool execution (backend waits for a tool-result call)
    EXECUTE_FILE_WRITE = "execute_file_write"
    EXECUTE_READ_FILE = "execute_read_file"
    EXECUTE_SEARCH_REPLACE = "execute_search_replace"
    EXECUTE_LIST_FILES = "execute_list_files"
    EXECUTE_TERMINAL = "execute_terminal"
    # Legacy one-way notices
    WRITE_FILE = "write_file"
    TERMINAL = "terminal"


TERMINAL_STEPS = frozenset({AgentStep.END, AgentStep.ERROR, AgentStep.TIMEOUT})

DELEGATED_STEPS = frozenset({
    AgentStep.EXECUTE_FILE_WRITE,
    AgentStep.EXECUTE_READ_FILE,
    AgentStep.EXECUTE_SEARCH_REPLACE,
    AgentStep.EXECUTE_LIST_FILES,
    AgentStep.EXECUTE_TERMINAL,
})


class ChatParams(BaseModel):
    """Params for POST /chat. Built once per task start."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    task_id: str
    project_id: str
    question: str
    email: str
    attaches: List[str] = Field(default_factory=list)
    model_platform: str
    model_type: str
    api_key: str
    api_url: Optional[str] = None
    language: str = "en"
    browser_port: int = 9222
    max_retries: int = 3
    allow_local_system: bool = False
    installed_mcp: Dict[str, Any] = Field(default_factory=lambda: {"mcpServers": {}})
    env_path: Optional[str] = None
    # Workspace root the backend should save files under
    file_save_path: Optional[str] = None

    def to_request_body(self) -> Dict[str, Any]:
        """Serialize for the wire; unset top-level optional fields are omitted.

        Nested values (e.g. None inside installed_mcp) are sent as-is.
        """
        body = self.model_dump(mode="json")
        return {key: value for key, value in body.items() if value is not None}


class ProtocolEvent(BaseModel):
    """A parsed SSE event from the backend stream."""
    model_config = ConfigDict(frozen=True)

    step: AgentStep
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.step in TERMINAL_STEPS

    def payload(self) -> BaseModel:
        """Validate ``data`` into the typed payload for this step.

        Steps without a dedicated model get a permissive ``EventPayload``.

        Raises:
            pydantic.ValidationError: If required fields are missing or mistyped
        """
        model = PAYLOAD_MODELS.get(self.step, EventPayload)
        return model.model_validate(self.data)


# =============================================================================
# Typed payloads
# =============================================================================

class EventPayload(BaseModel):
    """Base payload; extra backend fields are kept."""
    model_config = ConfigDict(extra="allow", frozen=True)


class AskPayload(EventPayload):
    """ask: the backend waits for a human reply for ``agent``."""
    agent: str = ""
    question: str = ""

    @field_validator("agent", "question", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ToolRequest(EventPayload):
    """Common part of every execute_* payload."""
    request_id: str


class FileWritePayload(ToolRequest):
    path: str
    content: str = ""


class ReadFilePayload(ToolRequest):
    path: str


class SearchReplacePayload(ToolRequest):
    path: str
    old_string: str
    new_string: str = ""


class ListFilesPayload(ToolRequest):
    pattern: str = ""


class TerminalPayload(ToolRequest):
    command: str
    cwd: Optional[str] = None


PAYLOAD_MODELS: Dict[AgentStep, Type[EventPayload]] = {
    AgentStep.ASK: AskPayload,
    AgentStep.EXECUTE_FILE_WRITE: FileWritePayload,
    AgentStep.EXECUTE_READ_FILE: ReadFilePayload,
    AgentStep.EXECUTE_SEARCH_REPLACE: SearchReplacePayload,
    AgentStep.EXECUTE_LIST_FILES: ListFilesPayload,
    AgentStep.EXECUTE_TERMINAL: TerminalPayload,
}


class ToolResult(BaseModel):
    """Tool execution result sent via POST /chat/{project_id}/tool-result."""
    model_config = ConfigDict(frozen=True)

    success: bool
    content: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, content: str) -> "ToolResult":
        return cls(success=True, content=content)

    @classmethod
    def failure(cls, error: str, content: Optional[str] = None) -> "ToolResult":
        return cls(success=False, content=content, error=error)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
