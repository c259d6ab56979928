"""Watch command: run the background triggers in the foreground."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path

import click

from ._common import SYNC_HOME, build_engine, console, load, print_result
from ..config import config_path, load_settings
from ..coordinator import TriggerCoordinator
from ..local import LocalArtifact
from ..models import SyncAction, SyncResult
from ..watcher import ChangeWatcher

LOG_DIR = "logs"
LOG_FILE = "instructsync.log"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(home: Path, verbose: bool) -> Path:
    """Configure file logging (and console logging when verbose)."""
    log_dir = home / LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE

    root = logging.getLogger()
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    if verbose:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(stream)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    return log_file


def register_watch_commands(main: click.Group) -> None:
    """Register the watch command."""

    @main.command("watch")
    @click.option("--project", default=".", type=click.Path(file_okay=False))
    @click.option("--home", default=SYNC_HOME, type=click.Path())
    @click.option("--verbose", "-v", is_flag=True, help="Log to the console too.")
    def watch(project: str, home: str, verbose: bool):
        """Keep syncing in the background until interrupted.

        Checks once at start, then on an interval and whenever the local
        file changes. Edits to the config file take effect immediately.
        """
        home_path, settings = load(home)
        project_path = Path(project).expanduser().resolve()
        log_file = setup_logging(home_path, verbose)

        def notify(result: SyncResult) -> None:
            current = coordinator.settings
            if result.error or (
                current.notifications_enabled
                and result.action not in (SyncAction.NO_OP, SyncAction.SKIPPED)
            ):
                print_result(result)

        coordinator = TriggerCoordinator(
            settings,
            lambda s: build_engine(s, project_path, home_path),
            watch_paths=LocalArtifact(project_path).candidate_paths,
            on_result=notify,
        )

        def reload_settings(_path: Path) -> None:
            coordinator.reconfigure(load_settings(home_path))

        config_watcher = ChangeWatcher([config_path(home_path)], reload_settings)

        stop = threading.Event()

        def handle_signal(signum, frame):
            stop.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, handle_signal)

        console.print(f"\n  [green]Watching[/] [cyan]{project_path}[/]")
        if not settings.is_configured:
            console.print(
                "  [yellow]Token or gist ID missing; background syncs will be "
                "skipped until configured.[/]"
            )
        console.print(f"  [dim]Log: {log_file}  (Ctrl+C to stop)[/]\n")

        coordinator.start()
        config_watcher.start()
        try:
            while not stop.is_set():
                stop.wait(timeout=1)
        finally:
            config_watcher.stop()
            coordinator.stop()
            console.print("\n  [dim]Stopped.[/]\n")
