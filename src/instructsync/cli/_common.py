"""Shared helpers for the CLI command modules.

Provides the Rich console, the interactive prompter, and the factory
that wires settings, store and project into an engine.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.prompt import Confirm, Prompt

from .. import SYNC_HOME
from ..config import load_settings, update_settings
from ..engine import ReconciliationEngine
from ..models import SyncAction, SyncResult, SyncSettings
from ..remote import GistStore

console = Console()
logger = logging.getLogger("instructsync.cli")


class ConsolePrompter:
    """Prompter that asks on the terminal through Rich."""

    def confirm(self, message: str) -> bool:
        try:
            return Confirm.ask(f"  {message}", default=True, console=console)
        except (EOFError, KeyboardInterrupt):
            return False

    def choose(self, message: str, options: Sequence[str]) -> Optional[str]:
        console.print(f"  {message}")
        for index, option in enumerate(options, start=1):
            console.print(f"    [cyan]{index}[/] {option}")
        try:
            picked = Prompt.ask(
                "  Choice",
                choices=[str(i) for i in range(1, len(options) + 1)],
                default=str(len(options)),
                console=console,
            )
        except (EOFError, KeyboardInterrupt):
            return None
        return options[int(picked) - 1]


def build_engine(
    settings: SyncSettings,
    project: Path,
    home: Optional[Path] = None,
    prompter: Optional[ConsolePrompter] = None,
) -> ReconciliationEngine:
    """Wire an engine whose newly created gist IDs are saved to config."""

    def remember_remote(remote_id: str) -> None:
        update_settings(home, remote_id=remote_id)
        logger.info("Saved new remote ID %s", remote_id)

    return ReconciliationEngine(
        settings=settings,
        store=GistStore(settings.remote_token),
        project_root=project,
        prompter=prompter,
        on_remote_created=remember_remote,
    )


def load(home: str) -> tuple[Path, SyncSettings]:
    """Resolve the --home option and load settings from it."""
    home_path = Path(home).expanduser()
    return home_path, load_settings(home_path)


ACTION_STYLE = {
    SyncAction.DOWNLOAD: "green",
    SyncAction.UPLOAD: "green",
    SyncAction.CREATE_TEMPLATE: "green",
    SyncAction.NO_OP: "dim",
    SyncAction.CANCELLED: "yellow",
    SyncAction.SKIPPED: "yellow",
}


def print_result(result: SyncResult) -> None:
    """Render a pass result for humans."""
    if result.error:
        console.print(f"\n  [bold red]Sync failed:[/] {result.error}\n")
        return
    style = ACTION_STYLE.get(result.action, "white")
    label = result.classification.value if result.classification else "-"
    if result.direction:
        label = f"{label}/{result.direction.value}"
    console.print(
        f"\n  [{style}]{result.action.value}[/] [dim]({label})[/] {result.message}"
    )
    if result.remote_url:
        console.print(f"  [dim]Remote: {result.remote_url}[/]")
    if result.remote_updated_at:
        console.print(
            f"  [dim]Remote last updated: {result.remote_updated_at.isoformat()}[/]"
        )
    console.print()

