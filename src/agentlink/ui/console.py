"""Rich console UI for AgentLink CLI."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

# data keys worth showing for steps without a dedicated renderer
SUMMARY_KEYS = ("message", "content", "summary", "result", "state", "agent_name", "agent")


class AgentLinkConsole:
    """Rich console that renders orchestrator events."""

    def __init__(self, verbose: bool = False, console: Optional[Console] = None):
        self.console = console or Console()
        self.verbose = verbose

    # =========================================================================
    # Messages
    # =========================================================================

    def print_message(self, message: str, title: str = "Result"):
        """Print a final answer in a panel with markdown."""
        self.console.print(Panel(Markdown(message), title=f"[bold green]{title}[/]", border_style="green"))

    def print_error(self, error: str, recoverable: bool = True):
        """Print an error message."""
        style = "yellow" if recoverable else "red"
        icon = "⚠" if recoverable else "✗"
        self.console.print(f"[{style}]{icon} {error}[/{style}]")

    def print_success(self, message: str):
        """Print a success message."""
        self.console.print(f"[green]✓ {message}[/green]")

    def print_info(self, message: str):
        """Print an info message."""
        self.console.print(f"[blue]ℹ {message}[/blue]")

    def print_warning(self, message: str):
        """Print a warning message."""
        self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def print_config(self, config: Dict[str, Any]):
        """Print configuration with secrets masked."""
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="dim")
        table.add_column(style="bold")
        for key in sorted(config):
            value = str(config[key])
            if "key" in key and value:
                value = f"{value[:4]}…" if len(value) > 8 else "****"
            table.add_row(f"{key}:", value)
        self.console.print(table)

    # =========================================================================
    # Event rendering
    # =========================================================================

    def render_event(self, message: Dict[str, Any]):
        """Observer sink for Orchestrator.post_message."""
        step = message.get("step", "")
        data = message.get("data") or {}

        if step == "confirmed":
            self.print_info("Task confirmed")
        elif step == "to_sub_tasks":
            self._print_sub_tasks(data)
        elif step == "ask":
            agent = data.get("agent") or "agent"
            self.console.print(Panel(
                str(data.get("question") or ""),
                title=f"[bold cyan]{agent} asks[/]",
                border_style="cyan",
            ))
        elif step.startswith("execute_"):
            target = data.get("path") or data.get("command") or data.get("pattern") or ""
            self.console.print(f"  [dim]→ {step[len('execute_'):]} {target}[/dim]")
        elif step == "end":
            result = self._summary(data)
            if result:
                self.print_message(result)
            self.print_success("Task finished")
        elif step == "error":
            self.print_error(self._summary(data) or "Unknown error", recoverable=False)
        elif step == "timeout":
            self.print_warning("Task timed out")
        elif step == "notice":
            self.print_info(self._summary(data))
        elif self.verbose:
            self.console.print(f"[dim]{step}: {self._summary(data)}[/dim]")

    def _print_sub_tasks(self, data: Dict[str, Any]):
        tasks: List[Any] = data.get("sub_tasks") or data.get("tasks") or []
        if not tasks:
            self.print_info("Task decomposed")
            return

        table = Table(title="Plan", show_header=False, box=None, padding=(0, 1))
        table.add_column(style="dim")
        table.add_column()
        for i, task in enumerate(tasks, 1):
            content = task.get("content", task) if isinstance(task, dict) else task
            table.add_row(f"{i}.", str(content))
        self.console.print(table)

    @staticmethod
    def _summary(data: Dict[str, Any]) -> str:
        for key in SUMMARY_KEYS:
            if data.get(key):
                return str(data[key])
        return ""

    # =========================================================================
    # Input
    # =========================================================================

    def prompt_reply(self, agent: str) -> Optional[str]:
        """Ask the user for a reply to an agent.

        Re-prompts on blank input. Returns None when input is closed or interrupted.
        """
        while True:
            try:
                reply = Prompt.ask(f"[bold cyan]Reply to {agent or 'agent'}[/]", console=self.console)
            except (KeyboardInterrupt, EOFError):
                return None
            if reply.strip():
                return reply
            self.print_warning("A reply is required; press Ctrl-C to abort the task.")
