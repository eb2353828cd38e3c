"""
AgentLink CLI - run agent backend tasks from the terminal.

The backend plans and coordinates the agents; the CLI streams its events,
answers questions, and runs delegated file and shell operations locally.

Usage:
    agentlink config --backend-url http://localhost:8000
    agentlink config --provider openrouter --model-api-key sk-or-...
    agentlink run "add a README"         # Run a task in the current project
    agentlink stop PROJECT_ID            # Stop a running project
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import click
import httpx
from dotenv import load_dotenv
from rich.logging import RichHandler

from agentlink import __version__
from agentlink.client import StreamClient
from agentlink.core.chat_params import build_chat_params
from agentlink.core.config import (
    clear_api_key,
    get_api_key,
    get_backend_url,
    load_config,
    set_api_key,
    update_config,
)
from agentlink.errors import AgentLinkError
from agentlink.orchestrator import Orchestrator, TaskState
from agentlink.ui import AgentLinkConsole

logger = logging.getLogger(__name__)

EXIT_CODES = {
    TaskState.COMPLETED: 0,
    TaskState.ABORTED: 130,
    TaskState.ERRORED: 1,
}

# Global console instance
console: Optional[AgentLinkConsole] = None


def get_console(verbose: bool = False) -> AgentLinkConsole:
    """Get or create console instance."""
    global console
    if console is None:
        console = AgentLinkConsole(verbose=verbose)
    return console


def setup_logging(verbose: bool = False):
    """Route log records through rich; DEBUG when verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def make_client(config: Dict[str, Any]) -> StreamClient:
    return StreamClient(get_backend_url(config), token=get_api_key(config))


@click.group()
@click.version_option(version=__version__, prog_name="AgentLink")
def cli():
    """
    AgentLink - run multi-agent backend tasks locally.

    Quick start:
        agentlink config --backend-url http://localhost:8000
        agentlink run "explain the project"
    """
    load_dotenv()


@cli.command()
@click.option("--backend-url", "-u", help="Set the backend URL")
@click.option("--api-key", help="Set the backend bearer token")
@click.option("--model", "-m", help="Set the model name")
@click.option("--provider", type=click.Choice(["openrouter", "openai", "anthropic"]), help="Set the model provider")
@click.option("--model-api-key", "-k", help="Set the model provider API key")
@click.option("--clear-api-key", "clear_token", is_flag=True, help="Remove the saved backend token")
@click.option("--show", is_flag=True, help="Show current configuration")
def config(
    backend_url: Optional[str],
    api_key: Optional[str],
    model: Optional[str],
    provider: Optional[str],
    model_api_key: Optional[str],
    clear_token: bool,
    show: bool,
):
    """
    Configure AgentLink settings (~/.agentlink/config.json).

    Point at a backend and set model credentials:
        agentlink config -u http://localhost:8000 --provider openai -k sk-...

    View current config:
        agentlink config --show
    """
    ui = get_console()

    if show:
        current = load_config()
        ui.console.print("\n[bold]AgentLink Configuration[/] (~/.agentlink/config.json)")
        ui.console.print("─" * 50)
        ui.print_config({"backend_url": get_backend_url(current), **current})
        ui.console.print()
        return

    values = {
        "backend_url": backend_url,
        "model": model,
        "provider": provider,
        "model_api_key": model_api_key,
    }
    values = {k: v for k, v in values.items() if v}
    if values:
        update_config(**values)
        for key in values:
            ui.print_success(f"{key} saved.")

    if api_key:
        set_api_key(api_key)
        ui.print_success("Backend token saved.")

    if clear_token:
        clear_api_key()
        ui.print_success("Backend token cleared.")

    if not values and not api_key and not clear_token:
        ui.print_info("No configuration changes made. Use --help to see options.")


# =============================================================================
# Running a task
# =============================================================================

async def run_task(
    question: str,
    images: Tuple[str, ...],
    project_path: Path,
    ui: AgentLinkConsole,
) -> TaskState:
    """Run one task with the console as observer; Ctrl-C aborts it."""
    settings = load_config()
    loop = asyncio.get_running_loop()
    orchestrator: Optional[Orchestrator] = None
    aborts: List[asyncio.Task] = []

    def ask_user(agent: str):
        reply = ui.prompt_reply(agent)
        if reply is None:
            loop.call_soon_threadsafe(request_abort)
        else:
            loop.call_soon_threadsafe(orchestrator.submit_human_reply, reply)

    def on_event(message: Dict[str, Any]):
        ui.render_event(message)
        if message.get("step") == "ask":
            agent = str(message.get("data", {}).get("agent") or "")
            # Prompt off the event loop so abort and the stream stay live
            threading.Thread(target=ask_user, args=(agent,), daemon=True).start()

    orchestrator = Orchestrator(
        build_chat_params=lambda q, imgs: build_chat_params(settings, q, imgs, str(project_path)),
        client_factory=lambda: make_client(settings),
        post_message=on_event,
        workspace_path=str(project_path),
        on_task_started=lambda: ui.print_info(f"Running in {project_path}"),
        on_task_aborted=lambda: ui.print_warning("Task aborted"),
    )

    def request_abort():
        aborts.append(loop.create_task(orchestrator.abort_task()))

    try:
        loop.add_signal_handler(signal.SIGINT, request_abort)
    except NotImplementedError:
        pass

    try:
        return await orchestrator.start_task(question, list(images) or None)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass
        for abort in aborts:
            try:
                await abort
            except Exception as e:
                logger.error(f"Abort failed: {e}")


@cli.command()
@click.argument("question")
@click.option("--project-dir", "-p", default=".", help="Project directory")
@click.option("--image", "-i", "images", multiple=True, help="Attach an image (repeatable)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def run(question: str, project_dir: str, images: Tuple[str, ...], verbose: bool):
    """
    Run a task against the backend.

    Examples:
        agentlink run "create a hello world script"
        agentlink run "describe this diagram" --image diagram.png
    """
    setup_logging(verbose)
    ui = get_console(verbose)

    project_path = Path(project_dir).resolve()
    if not project_path.is_dir():
        ui.print_error(f"Project directory not found: {project_path}", recoverable=False)
        sys.exit(1)

    try:
        outcome = asyncio.run(run_task(question, images, project_path, ui))
    except KeyboardInterrupt:
        ui.console.print("\n[yellow]Interrupted[/]")
        sys.exit(130)

    sys.exit(EXIT_CODES.get(outcome, 1))


# =============================================================================
# Control calls on a running project
# =============================================================================

def run_control(action: Callable[[StreamClient], Awaitable[None]], success: str):
    """Run a single control call with a fresh client and report the result."""
    setup_logging()
    ui = get_console()
    settings = load_config()

    async def call():
        async with make_client(settings) as client:
            await action(client)

    try:
        asyncio.run(call())
    except (AgentLinkError, httpx.HTTPError) as e:
        ui.print_error(str(e), recoverable=False)
        sys.exit(1)

    ui.print_success(success)


@cli.command()
@click.argument("project_id")
def stop(project_id: str):
    """Stop a running project."""
    run_control(lambda client: client.stop_session(project_id), f"Stop requested for {project_id}")


@cli.command()
@click.argument("project_id")
def skip(project_id: str):
    """Skip the current task of a project."""
    run_control(lambda client: client.skip_task(project_id), "Task skipped")


@cli.command("remove-task")
@click.argument("project_id")
@click.argument("task_id")
def remove_task(project_id: str, task_id: str):
    """Remove a queued task from a project."""
    run_control(lambda client: client.remove_task(project_id, task_id), f"Task {task_id} removed")


@cli.command("add-task")
@click.argument("project_id")
@click.argument("content")
@click.option("--task-id", help="Id for the new task")
@click.option("--insert-position", type=int, help="Position in the task queue")
@click.option("--independent", is_flag=True, help="Task does not depend on others")
def add_task(
    project_id: str,
    content: str,
    task_id: Optional[str],
    insert_position: Optional[int],
    independent: bool,
):
    """Add a task to a running project."""
    run_control(
        lambda client: client.add_task(
            project_id,
            content,
            task_id=task_id,
            insert_position=insert_position,
            is_independent=independent or None,
        ),
        "Task added",
    )


@cli.command()
@click.argument("project_id")
@click.argument("question")
@click.option("--task-id", help="Task to attach the follow-up to")
@click.option("--attach", "attaches", multiple=True, help="Attachment (repeatable)")
def improve(project_id: str, question: str, task_id: Optional[str], attaches: Tuple[str, ...]):
    """Send a follow-up question to a running project."""
    run_control(
        lambda client: client.improve(project_id, question, task_id=task_id, attaches=list(attaches) or None),
        "Follow-up sent",
    )


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
