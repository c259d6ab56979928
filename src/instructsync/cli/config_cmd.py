"""Configuration commands: configure, status, verify-token."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from ._common import SYNC_HOME, console, load
from ..config import config_path, update_settings, validate_remote_id, validate_token
from ..errors import ConfigurationError, TransportError
from ..local import LocalArtifact
from ..models import MAX_INTERVAL_MINUTES, MIN_INTERVAL_MINUTES
from ..remote import GistStore


def _mask(token: str) -> str:
    if not token:
        return "[red]not set[/]"
    return f"{token[:4]}…{token[-4:]}" if len(token) > 12 else "****"


def register_config_commands(main: click.Group) -> None:
    """Register configure, status and verify-token."""

    @main.command("configure")
    @click.option("--home", default=SYNC_HOME, type=click.Path())
    @click.option("--token", default=None, help="GitHub token with gist scope.")
    @click.option("--remote-id", default=None,
                  help="Existing gist ID (empty string clears it).")
    @click.option("--auto-exclude/--no-auto-exclude", default=None,
                  help="Add the file to .gitignore after downloading.")
    @click.option("--auto-check/--no-auto-check", default=None,
                  help="Run a sync check when watching starts.")
    @click.option("--interval-sync/--no-interval-sync", default=None,
                  help="Enable periodic sync.")
    @click.option("--interval-minutes", default=None,
                  type=click.IntRange(MIN_INTERVAL_MINUTES, MAX_INTERVAL_MINUTES),
                  help="Periodic sync interval in minutes.")
    @click.option("--change-sync/--no-change-sync", default=None,
                  help="Sync shortly after the local file changes.")
    @click.option("--notifications/--no-notifications", default=None,
                  help="Print results of background syncs.")
    def configure(
        home: str,
        token: Optional[str],
        remote_id: Optional[str],
        auto_exclude: Optional[bool],
        auto_check: Optional[bool],
        interval_sync: Optional[bool],
        interval_minutes: Optional[int],
        change_sync: Optional[bool],
        notifications: Optional[bool],
    ):
        """Edit sync settings.

        Without options, prompts for the token and gist ID.
        """
        home_path, current = load(home)
        changes = {
            "auto_exclude": auto_exclude,
            "auto_check_on_start": auto_check,
            "interval_sync_enabled": interval_sync,
            "interval_sync_minutes": interval_minutes,
            "change_sync_enabled": change_sync,
            "notifications_enabled": notifications,
        }
        changes = {k: v for k, v in changes.items() if v is not None}

        if token is None and remote_id is None and not changes:
            token = Prompt.ask(
                "  GitHub token (gist scope)", password=True, console=console,
            )
            remote_id = Prompt.ask(
                "  Existing gist ID (empty creates a new gist on first upload)",
                default=current.remote_id or "",
                console=console,
            )

        if token is not None:
            problem = validate_token(token)
            if problem:
                console.print(f"[bold red]{problem}.[/]")
                sys.exit(1)
            changes["remote_token"] = token
        if remote_id is not None:
            problem = validate_remote_id(remote_id)
            if problem:
                console.print(f"[bold red]{problem}.[/]")
                sys.exit(1)
            changes["remote_id"] = remote_id or None

        try:
            update_settings(home_path, **changes)
        except ConfigurationError as exc:
            console.print(f"[bold red]Invalid settings:[/] {exc}")
            sys.exit(1)
        console.print(f"\n  [green]Configuration saved[/] to {config_path(home_path)}\n")

    @main.command("status")
    @click.option("--project", default=".", type=click.Path(file_okay=False))
    @click.option("--home", default=SYNC_HOME, type=click.Path())
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def status(project: str, home: str, json_out: bool):
        """Show settings and where the local file lives."""
        home_path, settings = load(home)
        local = LocalArtifact(Path(project).expanduser().resolve())
        local_path = local.locate()

        if json_out:
            data = settings.model_dump(mode="json")
            data["remote_token"] = bool(settings.remote_token)
            data["local_path"] = str(local_path) if local_path else None
            data["config_file"] = str(config_path(home_path))
            click.echo(json.dumps(data, indent=2))
            return

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_row("Token", _mask(settings.remote_token))
        table.add_row("Gist ID", settings.remote_id or "[dim]none (created on upload)[/]")
        table.add_row("Local file", str(local_path) if local_path else "[yellow]not found[/]")
        table.add_row("Auto .gitignore", "on" if settings.auto_exclude else "off")
        table.add_row("Check on start", "on" if settings.auto_check_on_start else "off")
        table.add_row(
            "Interval sync",
            f"every {settings.interval_sync_minutes} min"
            if settings.interval_sync_enabled else "off",
        )
        table.add_row("Change sync", "on" if settings.change_sync_enabled else "off")
        table.add_row("Notifications", "on" if settings.notifications_enabled else "off")

        console.print()
        console.print(Panel(table, title="instructsync", border_style="bright_blue"))
        console.print(f"  [dim]Config: {config_path(home_path)}[/]\n")

    @main.command("verify-token")
    @click.option("--home", default=SYNC_HOME, type=click.Path())
    def verify_token(home: str):
        """Check the configured token against the GitHub API."""
        _, settings = load(home)
        if not settings.remote_token:
            console.print("[bold red]No token configured.[/] Run instructsync configure.")
            sys.exit(1)
        try:
            login = GistStore(settings.remote_token).verify_token()
        except TransportError as exc:
            console.print(f"\n  [bold red]Token test failed:[/] {exc}\n")
            sys.exit(1)
        console.print(f"\n  [green]Token valid![/] Connected as: [cyan]{login}[/]\n")
