"""
Trigger Coordinator -- when reconciliation passes run.

Three independent stimuli feed one intake queue drained by a single
worker thread:

    startup   one shot, shortly after start()
    interval  every N minutes while enabled
    change    local file modified, debounced

A trigger that arrives while a pass is running (or already queued) is
dropped, not queued behind it. Whatever happens inside a pass, the
coordinator returns to IDLE afterwards.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from .engine import Prompter, ReconciliationEngine
from .errors import SyncError
from .models import SyncAction, SyncMode, SyncResult, SyncSettings, TriggerSource
from .watcher import ChangeWatcher

logger = logging.getLogger("instructsync.coordinator")

STARTUP_DELAY = 2.0
DEBOUNCE_WINDOW = 2.0
MAX_ERRORS = 50


class CoordinatorState(str, Enum):
    """Whether a reconciliation pass is in flight."""

    IDLE = "idle"
    SYNC_RUNNING = "sync_running"


@dataclass(frozen=True)
class SyncSession:
    """Token for the one pass allowed to run at a time."""

    trigger: TriggerSource
    started_at: datetime


class CoordinatorStats:
    """Thread-safe counters about passes and triggers.

    All access is lock-protected.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at: Optional[datetime] = None
        self.last_pass: Optional[datetime] = None
        self.last_result: Optional[SyncResult] = None
        self.passes_completed: int = 0
        self.triggers_dropped: int = 0
        self.errors: list[str] = []

    def snapshot(self) -> dict:
        """Return a serializable snapshot of the counters."""
        with self._lock:
            return {
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "last_pass": self.last_pass.isoformat() if self.last_pass else None,
                "last_result": (
                    self.last_result.model_dump(mode="json")
                    if self.last_result else None
                ),
                "passes_completed": self.passes_completed,
                "triggers_dropped": self.triggers_dropped,
                "recent_errors": self.errors[-10:],
            }

    def record_pass(self, result: SyncResult) -> None:
        """Record a finished pass, successful or not."""
        with self._lock:
            self.last_pass = datetime.now(timezone.utc)
            self.last_result = result
            self.passes_completed += 1
            if result.error:
                ts = self.last_pass.isoformat()
                self.errors.append(f"[{ts}] {result.trigger.value}: {result.error}")
                if len(self.errors) > MAX_ERRORS:
                    self.errors = self.errors[-MAX_ERRORS:]

    def record_drop(self) -> None:
        with self._lock:
            self.triggers_dropped += 1


class TriggerCoordinator:
    """Owns the triggers and enforces one pass at a time.

    Args:
        settings: Initial settings; see reconfigure() for changes.
        engine_factory: Builds a fresh engine from settings for each pass.
        watch_paths: Local artifact paths for the change trigger.
        on_result: Called with every finished pass result.
        startup_delay: Seconds between start() and the startup trigger.
        debounce_window: Quiet period before a change triggers a pass.
        interval_seconds: Override for the interval period (tests).
        watcher_factory: Builds the change watcher.
    """

    def __init__(
        self,
        settings: SyncSettings,
        engine_factory: Callable[[SyncSettings], ReconciliationEngine],
        watch_paths: Iterable[Path] = (),
        on_result: Optional[Callable[[SyncResult], Any]] = None,
        startup_delay: float = STARTUP_DELAY,
        debounce_window: float = DEBOUNCE_WINDOW,
        interval_seconds: Optional[float] = None,
        watcher_factory: Callable[..., ChangeWatcher] = ChangeWatcher,
    ):
        self.settings = settings
        self.engine_factory = engine_factory
        self.watch_paths = list(watch_paths)
        self.on_result = on_result
        self.startup_delay = startup_delay
        self.debounce_window = debounce_window
        self.interval_seconds = interval_seconds
        self.watcher_factory = watcher_factory
        self.stats = CoordinatorStats()

        self._lock = threading.Lock()
        self._session: Optional[SyncSession] = None
        self._pending = False
        self._intake: queue.Queue[Optional[TriggerSource]] = queue.Queue()

        self._started = False
        self._worker: Optional[threading.Thread] = None
        self._startup_timer: Optional[threading.Timer] = None
        self._debounce_timer: Optional[threading.Timer] = None
        self._debounce_lock = threading.Lock()
        self._interval_thread: Optional[threading.Thread] = None
        self._interval_stop = threading.Event()
        self._watcher: Optional[ChangeWatcher] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            return (
                CoordinatorState.SYNC_RUNNING
                if self._session else CoordinatorState.IDLE
            )

    @property
    def session(self) -> Optional[SyncSession]:
        with self._lock:
            return self._session

    @property
    def interval_period(self) -> float:
        """Seconds between interval triggers."""
        if self.interval_seconds is not None:
            return self.interval_seconds
        return self.settings.interval_sync_minutes * 60.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker and every enabled trigger. Idempotent."""
        if self._started:
            return
        self._started = True
        self.stats.started_at = datetime.now(timezone.utc)

        # A timer that fired during stop() may have queued behind the sentinel.
        with self._lock:
            self._pending = False
        while True:
            try:
                self._intake.get_nowait()
            except queue.Empty:
                break

        self._worker = threading.Thread(
            target=self._worker_loop, name="instructsync-worker", daemon=True,
        )
        self._worker.start()

        if self.settings.auto_check_on_start:
            self._startup_timer = threading.Timer(
                self.startup_delay, self.submit, args=(TriggerSource.STARTUP,),
            )
            self._startup_timer.daemon = True
            self._startup_timer.start()

        self._start_interval()
        self._start_watcher()
        logger.info(
            "Coordinator started (interval=%s, change=%s, startup=%s)",
            f"{self.settings.interval_sync_minutes}m"
            if self.settings.interval_sync_enabled else "off",
            "on" if self.settings.change_sync_enabled else "off",
            "on" if self.settings.auto_check_on_start else "off",
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel all triggers and stop the worker. Idempotent.

        A pass already in flight runs to completion first.
        """
        if not self._started:
            return
        self._started = False

        if self._startup_timer:
            self._startup_timer.cancel()
            self._startup_timer = None
        self._cancel_debounce()
        self._stop_interval(timeout)
        self._stop_watcher()

        self._intake.put(None)
        if self._worker:
            self._worker.join(timeout=timeout)
            self._worker = None
        logger.info("Coordinator stopped")

    def reconfigure(self, settings: SyncSettings) -> None:
        """Swap in new settings, restarting triggers whose config changed."""
        old = self.settings
        self.settings = settings
        if not self._started:
            return

        if (
            old.interval_sync_enabled != settings.interval_sync_enabled
            or old.interval_sync_minutes != settings.interval_sync_minutes
        ):
            logger.info("Interval settings changed, restarting interval trigger")
            self._stop_interval()
            self._start_interval()

        if old.change_sync_enabled != settings.change_sync_enabled:
            logger.info("Change-sync setting changed, restarting watcher")
            self._stop_watcher()
            self._start_watcher()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def submit(self, trigger: TriggerSource) -> bool:
        """Queue an autonomous pass.

        Returns:
            False if the trigger was dropped because a pass is running
            or already queued.
        """
        with self._lock:
            if self._session is not None or self._pending:
                busy = True
            else:
                busy = False
                self._pending = True
        if busy:
            logger.debug("Pass in progress, dropping %s trigger", trigger.value)
            self.stats.record_drop()
            return False
        self._intake.put(trigger)
        return True

    def notify_change(self, path: Optional[Path] = None) -> None:
        """Report a local modification; restarts the debounce window."""
        with self._debounce_lock:
            if self._debounce_timer:
                self._debounce_timer.cancel()
            self._debounce_timer = threading.Timer(
                self.debounce_window, self.submit, args=(TriggerSource.CHANGE,),
            )
            self._debounce_timer.daemon = True
            self._debounce_timer.start()
        logger.debug("Change noticed%s", f" in {path}" if path else "")

    def run_now(
        self,
        trigger: TriggerSource = TriggerSource.MANUAL,
        mode: SyncMode = SyncMode.INTERACTIVE,
        prompter: Optional[Prompter] = None,
        force: bool = False,
    ) -> SyncResult:
        """Run a pass on the calling thread.

        Returns:
            The pass result, or a SKIPPED result if another pass holds
            the session.
        """
        if not self._begin(trigger):
            self.stats.record_drop()
            return SyncResult(
                trigger=trigger, mode=mode, action=SyncAction.SKIPPED,
                message="Another sync is already running",
            )
        return self._execute(trigger, mode, prompter, force)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self, trigger: TriggerSource, from_queue: bool = False) -> bool:
        with self._lock:
            if from_queue:
                self._pending = False
            if self._session is not None:
                return False
            self._session = SyncSession(trigger, datetime.now(timezone.utc))
            return True

    def _end(self) -> None:
        with self._lock:
            self._session = None

    def _execute(
        self,
        trigger: TriggerSource,
        mode: SyncMode,
        prompter: Optional[Prompter] = None,
        force: bool = False,
    ) -> SyncResult:
        """Run one pass; the caller must hold the session."""
        logger.info("Sync pass started (%s, %s)", trigger.value, mode.value)
        try:
            engine = self.engine_factory(self.settings)
            if prompter is not None:
                engine.prompter = prompter
            result = engine.reconcile(mode=mode, trigger=trigger, force=force)
        except SyncError as exc:
            logger.error("Sync pass failed (%s): %s", trigger.value, exc)
            result = SyncResult(trigger=trigger, mode=mode, error=str(exc))
        finally:
            self._end()

        self.stats.record_pass(result)
        logger.info(
            "Sync pass finished (%s): %s%s",
            trigger.value,
            result.action.value,
            f" [{result.classification.value}]" if result.classification else "",
        )
        if self.on_result:
            try:
                self.on_result(result)
            except Exception as exc:
                logger.warning("Result callback failed: %s", exc)
        return result

    def _worker_loop(self) -> None:
        """Drain the intake queue, one pass at a time."""
        while True:
            trigger = self._intake.get()
            if trigger is None:
                break
            if not self._begin(trigger, from_queue=True):
                logger.debug("Pass in progress, dropping %s trigger", trigger.value)
                self.stats.record_drop()
                continue
            try:
                self._execute(trigger, SyncMode.AUTONOMOUS)
            except Exception as exc:
                # Autonomous passes must never take the worker down.
                logger.exception("Unexpected error in %s pass: %s", trigger.value, exc)
                self.stats.record_pass(
                    SyncResult(trigger=trigger, mode=SyncMode.AUTONOMOUS, error=str(exc))
                )

    def _start_interval(self) -> None:
        if not self.settings.interval_sync_enabled:
            return
        self._interval_stop = threading.Event()
        self._interval_thread = threading.Thread(
            target=self._interval_loop,
            args=(self._interval_stop, self.interval_period),
            name="instructsync-interval",
            daemon=True,
        )
        self._interval_thread.start()

    def _stop_interval(self, timeout: float = 5.0) -> None:
        self._interval_stop.set()
        if self._interval_thread:
            self._interval_thread.join(timeout=timeout)
            self._interval_thread = None

    def _interval_loop(self, stop: threading.Event, period: float) -> None:
        while not stop.wait(timeout=period):
            self.submit(TriggerSource.INTERVAL)

    def _start_watcher(self) -> None:
        if not self.settings.change_sync_enabled or not self.watch_paths:
            return
        self._watcher = self.watcher_factory(self.watch_paths, self.notify_change)
        self._watcher.start()

    def _stop_watcher(self) -> None:
        if self._watcher:
            self._watcher.stop()
            self._watcher = None

    def _cancel_debounce(self) -> None:
        with self._debounce_lock:
            if self._debounce_timer:
                self._debounce_timer.cancel()
                self._debounce_timer = None
