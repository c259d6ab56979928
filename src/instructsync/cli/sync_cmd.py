"""Sync commands: sync, check."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from ._common import (
    SYNC_HOME,
    ConsolePrompter,
    build_engine,
    console,
    load,
    print_result,
)
from ..coordinator import TriggerCoordinator
from ..errors import SyncError
from ..models import SyncAction, SyncMode, TriggerSource


def register_sync_commands(main: click.Group) -> None:
    """Register the sync and check commands."""

    @main.command("sync")
    @click.option("--project", default=".", type=click.Path(file_okay=False),
                  help="Project directory (default: current directory).")
    @click.option("--home", default=SYNC_HOME, type=click.Path())
    @click.option("--force", is_flag=True,
                  help="Upload even when the gist already holds the same content.")
    @click.option("--json-out", is_flag=True, help="Output the result as JSON.")
    def sync(project: str, home: str, force: bool, json_out: bool):
        """Reconcile the local file with the gist, asking before acting."""
        home_path, settings = load(home)
        project_path = Path(project).expanduser().resolve()

        coordinator = TriggerCoordinator(
            settings,
            lambda s: build_engine(s, project_path, home_path),
        )
        result = coordinator.run_now(
            TriggerSource.MANUAL,
            SyncMode.INTERACTIVE,
            prompter=ConsolePrompter(),
            force=force,
        )

        if json_out:
            click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        else:
            print_result(result)
        if result.error or result.action == SyncAction.SKIPPED:
            sys.exit(1)

    @main.command("check")
    @click.option("--project", default=".", type=click.Path(file_okay=False))
    @click.option("--home", default=SYNC_HOME, type=click.Path())
    @click.option("--json-out", is_flag=True, help="Output the result as JSON.")
    def check(project: str, home: str, json_out: bool):
        """Classify local vs remote without changing either."""
        home_path, settings = load(home)
        project_path = Path(project).expanduser().resolve()
        engine = build_engine(settings, project_path, home_path)

        try:
            result = engine.check()
        except SyncError as exc:
            console.print(f"\n  [bold red]Check failed:[/] {exc}\n")
            sys.exit(1)

        if json_out:
            click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
            return
        print_result(result)
