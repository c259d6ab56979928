"""Notify-on-change source backed by watchfiles."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchfiles import Change, watch

logger = logging.getLogger("instructsync.watcher")

# Events that count as "the file was modified"; deletions are left to
# the interval trigger.
WATCHED_CHANGES = (Change.added, Change.modified)


class ChangeWatcher:
    """Watch a set of files and call back when any of them changes.

    Only the parent directories that exist when the watcher starts are
    watched, non-recursively. The callback runs on the watcher thread
    and should return quickly.

    Args:
        paths: Files to watch. They do not need to exist yet.
        callback: Invoked with the changed path.
        debounce_ms: watchfiles' own batching window.
    """

    def __init__(
        self,
        paths: Iterable[Path],
        callback: Callable[[Path], None],
        debounce_ms: int = 50,
    ):
        self.paths = [Path(p).expanduser().resolve() for p in paths]
        self.callback = callback
        self.debounce_ms = debounce_ms
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _accepts(self, change: Change, path: str) -> bool:
        return change in WATCHED_CHANGES and Path(path).resolve() in self.paths

    def start(self) -> None:
        """Start the watch thread. No-op if already running."""
        if self.running:
            return
        dirs = sorted({str(p.parent) for p in self.paths if p.parent.is_dir()})
        if not dirs:
            logger.info("Nothing to watch: no parent directory exists yet")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop, args=(dirs,), name="instructsync-watch",
            daemon=True,
        )
        self._thread.start()
        logger.info("Watching %s", ", ".join(dirs))

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the watch thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None

    def _watch_loop(self, dirs: list[str]) -> None:
        try:
            for changes in watch(
                *dirs,
                watch_filter=self._accepts,
                debounce=self.debounce_ms,
                stop_event=self._stop_event,
                recursive=False,
                raise_interrupt=False,
            ):
                for _change, path in changes:
                    try:
                        self.callback(Path(path))
                    except Exception as exc:
                        logger.error("Change callback failed for %s: %s", path, exc)
        except OSError as exc:
            logger.error("File watcher stopped: %s", exc)
