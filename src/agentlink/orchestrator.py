"""
AgentLink Orchestrator - drive one remote task session end to end.

The orchestrator owns the lifecycle of a single task:
- builds ChatParams and opens the event stream
- forwards every event to an observer (UI, logger, test recorder)
- answers ``ask`` events with a human reply supplied from outside
- runs ``execute_*`` requests locally and reports results back
- stops at the first end/error/timeout event, or when aborted

Everything runs in one coroutine. The only suspension points are network
reads and the wait for a human reply, so events are handled strictly in the
order the backend produced them.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from agentlink.client.sse_client import StreamClient
from agentlink.errors import HumanReplySuperseded, NoActiveSessionError
from agentlink.executor.tool_executor import ToolExecutor
from agentlink.models import (
    DELEGATED_STEPS,
    AgentStep,
    ChatParams,
    ProtocolEvent,
)

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    """Lifecycle of a task session."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"


@dataclass
class PendingHumanReply:
    """An outstanding ``ask``; resolved by submit_human_reply or abort."""
    agent: str
    future: asyncio.Future


@dataclass
class TaskSession:
    """Local state of the task in progress."""
    project_id: str = ""
    task_id: str = ""
    aborted: bool = False
    pending_reply: Optional[PendingHumanReply] = None
    stop_request: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return bool(self.project_id)

    def clear(self) -> None:
        self.project_id = ""
        self.task_id = ""
        self.pending_reply = None
        self.stop_request = None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Orchestrator:
    """
    Runs a task against the backend and dispatches its events.

    Usage:
        orchestrator = Orchestrator(
            build_chat_params=lambda q, images: build_chat_params(config, q, images),
            client_factory=lambda: StreamClient(base_url, token=token),
            post_message=console.render_event,
            workspace_path="/path/to/project",
        )
        outcome = await orchestrator.start_task("Add a README")
    """

    def __init__(
        self,
        build_chat_params: Callable[[str, Optional[List[str]]], Any],
        client_factory: Callable[[], StreamClient],
        post_message: Callable[[Dict[str, Any]], Any],
        workspace_path: Optional[str] = None,
        tool_executor: Optional[ToolExecutor] = None,
        on_task_started: Optional[Callable[[], Any]] = None,
        on_task_completed: Optional[Callable[[str], Any]] = None,
        on_task_aborted: Optional[Callable[[], Any]] = None,
        on_task_failed: Optional[Callable[[str], Any]] = None,
    ):
        self._build_chat_params = build_chat_params
        self._client_factory = client_factory
        self._post_message = post_message
        self.workspace_path = workspace_path
        self.tool_executor = tool_executor or ToolExecutor(workspace_path)

        self.on_task_started = on_task_started
        self.on_task_completed = on_task_completed
        self.on_task_aborted = on_task_aborted
        self.on_task_failed = on_task_failed

        self._session = TaskSession()
        self._client: Optional[StreamClient] = None
        self.state = TaskState.IDLE
        self.last_outcome: Optional[TaskState] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def project_id(self) -> str:
        return self._session.project_id

    @property
    def task_id(self) -> str:
        return self._session.task_id

    @property
    def is_running(self) -> bool:
        return self._session.active and not self._session.aborted

    @property
    def pending_agent(self) -> Optional[str]:
        """Agent waiting on a human reply, if any."""
        pending = self._session.pending_reply
        return pending.agent if pending else None

    # =========================================================================
    # Task lifecycle
    # =========================================================================

    async def start_task(self, question: str, images: Optional[List[str]] = None) -> TaskState:
        """
        Run a task until a terminal event, the end of the stream, or abort.

        Args:
            question: The user's task
            images: Optional attachments forwarded in ChatParams

        Returns:
            Final state: COMPLETED, ABORTED or ERRORED
        """
        session = TaskSession()
        self._session = session
        self.state = TaskState.RUNNING
        outcome = TaskState.COMPLETED

        try:
            params: ChatParams = await _maybe_await(self._build_chat_params(question, images))
            session.project_id = params.project_id
            session.task_id = params.task_id

            if session.aborted:
                logger.info(f"Task {params.task_id} aborted before the stream opened")
                outcome = TaskState.ABORTED
                return outcome

            self._client = self._client_factory()
            await self._notify(self.on_task_started)

            async with aclosing(self._client.start_session(params)) as events:
                async for event in events:
                    if session.aborted:
                        break

                    await _maybe_await(self._post_message(self._event_message(event)))
                    await self._dispatch(event)

                    if event.is_terminal:
                        logger.debug(f"Terminal step '{event.step.value}' for task {session.task_id}")
                        break

            if session.aborted:
                outcome = TaskState.ABORTED
            else:
                await self._notify(self.on_task_completed, session.task_id)

        except Exception as e:
            if session.aborted:
                logger.info(f"Ignoring error after abort: {e}")
                outcome = TaskState.ABORTED
            else:
                logger.error(f"Task failed: {e}")
                outcome = TaskState.ERRORED
                await self._report_failure(str(e))

        finally:
            if session.stop_request is not None:
                # Let the stop call finish before the client is closed
                await asyncio.wait([session.stop_request])
            session.clear()
            client, self._client = self._client, None
            if client is not None:
                await client.aclose()
            self.state = TaskState.IDLE
            self.last_outcome = outcome

        return outcome

    async def _report_failure(self, message: str) -> None:
        synthetic = {"type": "event", "step": AgentStep.ERROR.value, "data": {"message": message}}
        try:
            await _maybe_await(self._post_message(synthetic))
        except Exception as e:
            logger.error(f"Observer failed on error event: {e}")
        await self._notify(self.on_task_failed, message)

    async def abort_task(self) -> None:
        """Abort the current task.

        Unblocks a pending human reply with "" and asks the backend to stop.
        A failed stop call is logged, not raised.
        """
        session = self._session
        session.aborted = True

        pending = session.pending_reply
        if pending is not None:
            session.pending_reply = None
            if not pending.future.done():
                pending.future.set_result("")

        if session.active and self._client is not None:
            project_id = session.project_id
            if session.stop_request is None:
                session.stop_request = asyncio.ensure_future(self._client.stop_session(project_id))
            try:
                await asyncio.shield(session.stop_request)
            except Exception as e:
                logger.warning(f"Stop request failed for project {project_id}: {e}")

        await self._notify(self.on_task_aborted)

    def submit_human_reply(self, reply: str) -> None:
        """Resolve the outstanding ask. No-op when nothing is pending."""
        pending = self._session.pending_reply
        if pending is None:
            return

        self._session.pending_reply = None
        if not pending.future.done():
            pending.future.set_result(reply)

    # =========================================================================
    # Dispatch
    # =========================================================================

    @staticmethod
    def _event_message(event: ProtocolEvent) -> Dict[str, Any]:
        return {"type": "event", "step": event.step.value, "data": event.data}

    async def _dispatch(self, event: ProtocolEvent) -> None:
        if event.step == AgentStep.ASK:
            await self._handle_ask(event)
        elif event.step in DELEGATED_STEPS:
            await self._handle_tool_request(event)

    async def _await_human_reply(self, agent: str) -> str:
        session = self._session
        previous = session.pending_reply
        if previous is not None and not previous.future.done():
            logger.warning(f"New ask from '{agent}' supersedes pending reply for '{previous.agent}'")
            previous.future.set_exception(HumanReplySuperseded(previous.agent))

        future = asyncio.get_running_loop().create_future()
        session.pending_reply = PendingHumanReply(agent=agent, future=future)
        try:
            return await future
        except HumanReplySuperseded:
            return ""

    async def _handle_ask(self, event: ProtocolEvent) -> None:
        session = self._session
        if session.aborted:
            return

        agent = event.payload().agent
        reply = await self._await_human_reply(agent)

        if not reply or session.aborted or not session.active:
            return

        await self._client.send_human_reply(session.project_id, agent, reply)

    async def _handle_tool_request(self, event: ProtocolEvent) -> None:
        session = self._session
        request_id = event.data.get("request_id")
        if not isinstance(request_id, str) or not request_id:
            logger.warning(f"Dropping {event.step.value} without request_id")
            return
        if not session.active or self._client is None:
            logger.warning(f"Dropping {event.step.value} {request_id}: no active session")
            return

        result = await self.tool_executor.execute(event.step, event.data)
        logger.debug(f"{event.step.value} {request_id} -> success={result.success}")
        await self._client.send_tool_result(session.project_id, request_id, event.step.value, result)

    async def _notify(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is not None:
            await _maybe_await(callback(*args))

    # =========================================================================
    # Control calls on the running project
    # =========================================================================

    def _require_session(self) -> Tuple[StreamClient, str]:
        if not self._session.active or self._client is None:
            raise NoActiveSessionError("No task is running")
        return self._client, self._session.project_id

    async def add_task(
        self,
        content: str,
        task_id: Optional[str] = None,
        additional_info: Optional[Dict[str, Any]] = None,
        insert_position: Optional[int] = None,
        is_independent: Optional[bool] = None,
    ) -> None:
        client, project_id = self._require_session()
        await client.add_task(
            project_id,
            content,
            task_id=task_id,
            additional_info=additional_info,
            insert_position=insert_position,
            is_independent=is_independent,
        )

    async def remove_task(self, task_id: str) -> None:
        client, project_id = self._require_session()
        await client.remove_task(project_id, task_id)

    async def skip_task(self) -> None:
        client, project_id = self._require_session()
        await client.skip_task(project_id)

    async def improve(
        self,
        question: str,
        task_id: Optional[str] = None,
        attaches: Optional[List[str]] = None,
    ) -> None:
        client, project_id = self._require_session()
        await client.improve(project_id, question, task_id=task_id, attaches=attaches)
