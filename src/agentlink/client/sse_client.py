"""
SSE stream client with REST control calls.

1. Client sends POST /chat with the ChatParams of a new task
2. Backend streams SSE events (confirmed, create_agent, ask, execute_*, end...)
3. For ``ask`` the backend waits for POST /chat/{project}/human-reply
4. For ``execute_*`` it waits for POST /chat/{project}/tool-result
5. The remaining control calls (stop, add/remove/skip task, improve) act on
   the running session

The client owns the wire protocol only. It never retries; a non-success
status raises TransportError and the caller decides what to do.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agentlink.client.framing import FrameParser
from agentlink.errors import TransportError
from agentlink.models import ChatParams, ProtocolEvent, ToolResult

logger = logging.getLogger(__name__)


class StreamClient:
    """
    Client for the agent backend API.

    Usage:
        async with StreamClient("http://localhost:8000", token="...") as client:
            async for event in client.start_session(params):
                if event.step == AgentStep.ASK:
                    await client.send_human_reply(params.project_id, "agent", "yes")
    """

    DEFAULT_BASE_URL = "http://localhost:8000"

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.token = token
        # The event stream can stay quiet for minutes while agents work
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, read=None),
            transport=transport,
        )

    async def __aenter__(self) -> "StreamClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        # No token means local dev; send no auth header at all
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    # =========================================================================
    # Event stream
    # =========================================================================

    async def start_session(self, params: ChatParams) -> AsyncIterator[ProtocolEvent]:
        """
        Start a chat session and yield its events in order.

        Args:
            params: Task descriptor, sent as the request body

        Yields:
            ProtocolEvent for every well-formed frame

        Raises:
            TransportError: If the backend rejects the request
        """
        url = f"{self.base_url}/chat"
        logger.info(f"Starting session for project {params.project_id}")

        async with self._client.stream(
            "POST",
            url,
            json=params.to_request_body(),
            headers=self._headers(),
        ) as response:
            if not response.is_success:
                body = await response.aread()
                raise TransportError(
                    "startSession",
                    response.status_code,
                    body.decode("utf-8", errors="replace"),
                )

            parser = FrameParser()
            async for chunk in response.aiter_bytes():
                for event in parser.feed(chunk):
                    yield event

            for event in parser.flush():
                yield event

        logger.info(f"Event stream closed for project {params.project_id}")

    # =========================================================================
    # Control calls
    # =========================================================================

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        response = await self._client.request(
            method,
            f"{self.base_url}{path}",
            json=body,
            headers=self._headers(),
        )
        # 2xx, including 204 No Content
        if not response.is_success:
            raise TransportError(operation, response.status_code, response.text)
        logger.debug(f"{operation}: {method} {path} -> {response.status_code}")
        return response

    async def stop_session(self, project_id: str) -> None:
        """Stop chat. DELETE /chat/{project_id}"""
        await self._call("stopSession", "DELETE", f"/chat/{project_id}")

    async def send_human_reply(self, project_id: str, agent: str, reply: str) -> None:
        """Send human reply. POST /chat/{project_id}/human-reply"""
        await self._call(
            "humanReply",
            "POST",
            f"/chat/{project_id}/human-reply",
            {"agent": agent, "reply": reply},
        )

    async def send_tool_result(
        self,
        project_id: str,
        request_id: str,
        tool_name: str,
        result: ToolResult,
    ) -> None:
        """Report a delegated tool result. POST /chat/{project_id}/tool-result"""
        await self._call(
            "toolResult",
            "POST",
            f"/chat/{project_id}/tool-result",
            {
                "request_id": request_id,
                "tool_name": tool_name,
                "result": result.to_wire(),
            },
        )

    async def add_task(
        self,
        project_id: str,
        content: str,
        task_id: Optional[str] = None,
        additional_info: Optional[Dict[str, Any]] = None,
        insert_position: Optional[int] = None,
        is_independent: Optional[bool] = None,
    ) -> None:
        """Add task. POST /chat/{project_id}/add-task"""
        body: Dict[str, Any] = {"content": content, "project_id": project_id}
        if task_id is not None:
            body["task_id"] = task_id
        if additional_info is not None:
            body["additional_info"] = additional_info
        if insert_position is not None:
            body["insert_position"] = insert_position
        if is_independent is not None:
            body["is_independent"] = is_independent

        await self._call("addTask", "POST", f"/chat/{project_id}/add-task", body)

    async def remove_task(self, project_id: str, task_id: str) -> None:
        """Remove task. DELETE /chat/{project_id}/remove-task/{task_id}"""
        await self._call("removeTask", "DELETE", f"/chat/{project_id}/remove-task/{task_id}")

    async def skip_task(self, project_id: str) -> None:
        """Skip task. POST /chat/{project_id}/skip-task"""
        await self._call("skipTask", "POST", f"/chat/{project_id}/skip-task")

    async def improve(
        self,
        project_id: str,
        question: str,
        task_id: Optional[str] = None,
        attaches: Optional[List[str]] = None,
    ) -> None:
        """Follow-up question on a running project. POST /chat/{project_id}"""
        body: Dict[str, Any] = {"question": question}
        if task_id is not None:
            body["task_id"] = task_id
        if attaches is not None:
            body["attaches"] = attaches

        await self._call("improve", "POST", f"/chat/{project_id}", body)
