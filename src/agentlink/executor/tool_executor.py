"""
Tool Executor for client-delegated tool requests.

Executes the operations a backend asks the client to perform:
- execute_file_write: write a file (overwrite)
- execute_read_file: read a file as UTF-8 text
- execute_search_replace: literal search and replace in a file
- execute_list_files: glob against the workspace or walk a directory
- execute_terminal: run a shell command

Every operation returns a ToolResult and never raises. Failures are folded
into ``ToolResult(success=False, error=...)`` so the orchestrator can always
report a result for the request_id it received.
"""
from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import ValidationError

from agentlink.models import (
    AgentStep,
    EventPayload,
    FileWritePayload,
    ListFilesPayload,
    ReadFilePayload,
    SearchReplacePayload,
    TerminalPayload,
    ToolResult,
)

logger = logging.getLogger(__name__)


class ToolExecutor:
    """
    Executes delegated tool requests against the local workspace.

    Usage:
        executor = ToolExecutor(workspace_path="/path/to/project")
        result = await executor.execute(AgentStep.EXECUTE_READ_FILE, {"request_id": "r1", "path": "x.txt"})
    """

    # Cap for both glob matches and directory walks
    MAX_LIST_RESULTS = 200
    LIMIT_MARKER = "(... limit reached)"
    DEFAULT_PATTERN = "**/*"

    # Directories skipped while listing
    IGNORE_PATTERNS = {
        ".git", ".svn", ".hg",
        "node_modules", "venv", ".venv",
        "__pycache__", ".pytest_cache", ".mypy_cache",
        ".idea", ".vscode",
        ".DS_Store",
    }

    def __init__(
        self,
        workspace_path: Optional[str] = None,
        command_timeout: Optional[float] = None,
    ):
        self.workspace_root: Optional[Path] = (
            Path(workspace_path).resolve() if workspace_path else None
        )
        self.command_timeout = command_timeout

        self._tools: Dict[AgentStep, Tuple[Type[EventPayload], Callable[[Any], Awaitable[ToolResult]]]] = {
            AgentStep.EXECUTE_FILE_WRITE: (FileWritePayload, self.execute_file_write),
            AgentStep.EXECUTE_READ_FILE: (ReadFilePayload, self.execute_read_file),
            AgentStep.EXECUTE_SEARCH_REPLACE: (SearchReplacePayload, self.execute_search_replace),
            AgentStep.EXECUTE_LIST_FILES: (ListFilesPayload, self.execute_list_files),
            AgentStep.EXECUTE_TERMINAL: (TerminalPayload, self.execute_terminal),
        }

    async def execute(self, step: AgentStep, data: Dict[str, Any]) -> ToolResult:
        """
        Validate a raw event payload and run the matching tool.

        Args:
            step: One of the execute_* steps
            data: Event payload as received from the backend

        Returns:
            ToolResult (never raises)
        """
        name = getattr(step, "value", step)
        entry = self._tools.get(step)
        if entry is None:
            return ToolResult.failure(f"Unknown tool: {name}")

        model, handler = entry
        try:
            payload = model.model_validate(data)
        except ValidationError as e:
            return ToolResult.failure(f"Invalid arguments for {name}: {e}")

        logger.info(f"[LOCAL] Executing {name} in {self._root()}")
        return await handler(payload)

    def _root(self) -> Path:
        return self.workspace_root or Path.cwd()

    def _resolve_path(self, path: str) -> Path:
        """Relative paths resolve against the workspace; absolute paths are kept."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return (self._root() / candidate).resolve()

    def _relative(self, path: Path) -> str:
        return os.path.relpath(path, self._root())

    def _should_ignore(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.IGNORE_PATTERNS)

    # =========================================================================
    # Tool implementations
    # =========================================================================

    async def execute_file_write(self, payload: FileWritePayload) -> ToolResult:
        try:
            target = self._resolve_path(payload.path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload.content.encode("utf-8"))
            return ToolResult.ok(f"Written to {payload.path}")
        except Exception as e:
            logger.warning(f"File write failed for {payload.path}: {e}")
            return ToolResult.failure(str(e))

    async def execute_read_file(self, payload: ReadFilePayload) -> ToolResult:
        try:
            target = self._resolve_path(payload.path)
            content = target.read_bytes().decode("utf-8", errors="replace")
            return ToolResult.ok(content)
        except Exception as e:
            logger.warning(f"File read failed for {payload.path}: {e}")
            return ToolResult.failure(str(e))

    async def execute_search_replace(self, payload: SearchReplacePayload) -> ToolResult:
        """Replace every literal occurrence of old_string.

        Returns success without touching the file when nothing changed.
        """
        if not payload.old_string:
            return ToolResult.failure("old_string must not be empty")

        try:
            target = self._resolve_path(payload.path)
            content = target.read_bytes().decode("utf-8")
            new_content = content.replace(payload.old_string, payload.new_string)

            if new_content == content:
                return ToolResult.ok("No changes needed (old_string not found)")

            target.write_bytes(new_content.encode("utf-8"))
            return ToolResult.ok("Search and replace completed")
        except Exception as e:
            logger.warning(f"Search/replace failed for {payload.path}: {e}")
            return ToolResult.failure(str(e))

    async def execute_list_files(self, payload: ListFilesPayload) -> ToolResult:
        pattern = payload.pattern or self.DEFAULT_PATTERN
        try:
            if "*" in pattern or "?" in pattern:
                if self.workspace_root is None:
                    return ToolResult.failure("No workspace folder")
                entries = self._glob(pattern)
            else:
                entries = self._walk(self._resolve_path(pattern))
            return ToolResult.ok("\n".join(entries))
        except Exception as e:
            logger.warning(f"List files failed for {pattern}: {e}")
            return ToolResult.failure(str(e))

    def _glob(self, pattern: str) -> List[str]:
        """Files under the workspace matching ``pattern``, capped."""
        matches = []
        for path in self.workspace_root.glob(pattern):
            rel_parts = path.relative_to(self.workspace_root).parts
            if any(self._should_ignore(part) for part in rel_parts):
                continue
            if not path.is_file():
                continue
            matches.append(self._relative(path))
            if len(matches) >= self.MAX_LIST_RESULTS:
                break
        return sorted(matches)

    def _walk(self, directory: Path) -> List[str]:
        """Recursive listing of ``directory``; dirs end with '/'."""
        if not directory.is_dir():
            raise NotADirectoryError(f"Directory not found: {directory}")

        entries = []
        hit_limit = False
        for root, dirs, filenames in os.walk(directory):
            dirs[:] = sorted(d for d in dirs if not self._should_ignore(d))
            names = [f"{d}/" for d in dirs] + sorted(
                f for f in filenames if not self._should_ignore(f)
            )
            for name in names:
                if len(entries) >= self.MAX_LIST_RESULTS:
                    hit_limit = True
                    break
                rel = self._relative(Path(root) / name.rstrip("/"))
                entries.append(f"{rel}/" if name.endswith("/") else rel)
            if hit_limit:
                break

        if hit_limit:
            entries.append(self.LIMIT_MARKER)
        return entries

    async def execute_terminal(self, payload: TerminalPayload) -> ToolResult:
        """Run through the shell; stdout and stderr are combined."""
        try:
            cwd = self._resolve_path(payload.cwd) if payload.cwd else self._root()
            result = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: subprocess.run(
                    payload.command,
                    shell=True,
                    cwd=cwd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    timeout=self.command_timeout,
                ),
            )
        except subprocess.TimeoutExpired as e:
            partial = (e.output or b"").decode("utf-8", errors="replace")
            message = partial or f"Command timed out after {self.command_timeout}s"
            return ToolResult.failure(message, content=message)
        except Exception as e:
            logger.warning(f"Command failed to start: {payload.command}: {e}")
            return ToolResult.failure(str(e), content=str(e))

        output = (result.stdout or b"").decode("utf-8", errors="replace")
        if result.returncode == 0:
            return ToolResult.ok(output)

        message = output or f"Command exited with code {result.returncode}"
        return ToolResult.failure(message, content=message)
