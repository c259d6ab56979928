"""Tests for the trigger coordinator -- single-flight, debounce, interval."""

from __future__ import annotations

import threading
import time
from typing import Optional

import pytest

from instructsync.coordinator import CoordinatorState, TriggerCoordinator
from instructsync.errors import TransportError
from instructsync.models import (
    SyncAction,
    SyncMode,
    SyncResult,
    SyncSettings,
    TriggerSource,
)


class FakeEngine:
    """Engine stand-in that counts passes and can be held open."""

    def __init__(self, recorder: "Recorder"):
        self.recorder = recorder
        self.prompter = None

    def reconcile(self, mode, trigger, force=False) -> SyncResult:
        rec = self.recorder
        with rec.lock:
            rec.active += 1
            rec.max_active = max(rec.max_active, rec.active)
            rec.calls.append((trigger, mode, force, self.prompter))
        try:
            rec.started.set()
            rec.release.wait(timeout=5)
            if rec.fail_with:
                raise rec.fail_with
            return SyncResult(trigger=trigger, mode=mode, action=SyncAction.NO_OP)
        finally:
            with rec.lock:
                rec.active -= 1
            rec.finished.set()


class Recorder:
    def __init__(self):
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.calls: list = []
        self.started = threading.Event()
        self.finished = threading.Event()
        self.release = threading.Event()
        self.release.set()
        self.fail_with: Optional[Exception] = None
        self.settings_seen: list[SyncSettings] = []

    def factory(self, settings: SyncSettings) -> FakeEngine:
        self.settings_seen.append(settings)
        return FakeEngine(self)


class FakeWatcher:
    instances: list["FakeWatcher"] = []

    def __init__(self, paths, callback):
        self.paths = list(paths)
        self.callback = callback
        self.started = False
        self.stopped = False
        FakeWatcher.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def quiet_settings() -> SyncSettings:
    """Configured settings with every automatic trigger off."""
    return SyncSettings(
        remote_token="ghp_testtoken",
        remote_id="abc000",
        auto_check_on_start=False,
        interval_sync_enabled=False,
        change_sync_enabled=False,
    )


@pytest.fixture(autouse=True)
def _reset_watchers():
    FakeWatcher.instances.clear()


def _coordinator(settings, recorder, **kwargs) -> TriggerCoordinator:
    kwargs.setdefault("watcher_factory", FakeWatcher)
    return TriggerCoordinator(settings, recorder.factory, **kwargs)


class TestSingleFlight:
    """At most one pass at a time; extra triggers are dropped."""

    def test_submit_runs_autonomous_pass(self, quiet_settings, recorder):
        results = []
        coord = _coordinator(quiet_settings, recorder, on_result=results.append)
        coord.start()
        try:
            assert coord.submit(TriggerSource.INTERVAL) is True
            assert _wait_for(lambda: results)
        finally:
            coord.stop()

        trigger, mode, force, _ = recorder.calls[0]
        assert trigger == TriggerSource.INTERVAL
        assert mode == SyncMode.AUTONOMOUS
        assert force is False
        assert coord.state == CoordinatorState.IDLE

    def test_triggers_during_pass_are_dropped(self, quiet_settings, recorder):
        recorder.release.clear()
        coord = _coordinator(quiet_settings, recorder)
        coord.start()
        try:
            assert coord.submit(TriggerSource.STARTUP)
            assert recorder.started.wait(timeout=5)
            assert coord.state == CoordinatorState.SYNC_RUNNING
            assert coord.session.trigger == TriggerSource.STARTUP

            assert coord.submit(TriggerSource.INTERVAL) is False
            assert coord.submit(TriggerSource.CHANGE) is False
            skipped = coord.run_now(TriggerSource.MANUAL)
            assert skipped.action == SyncAction.SKIPPED

            recorder.release.set()
            assert _wait_for(lambda: coord.state == CoordinatorState.IDLE)
        finally:
            recorder.release.set()
            coord.stop()

        assert len(recorder.calls) == 1
        assert coord.stats.snapshot()["triggers_dropped"] == 3

    def test_concurrent_submissions_never_overlap(self, quiet_settings, recorder):
        coord = _coordinator(quiet_settings, recorder)
        coord.start()
        try:
            threads = [
                threading.Thread(target=coord.submit, args=(trigger,))
                for trigger in list(TriggerSource)[:3] * 10
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
            assert _wait_for(lambda: coord.state == CoordinatorState.IDLE)
            time.sleep(0.05)
        finally:
            coord.stop()

        assert recorder.max_active == 1
        assert len(recorder.calls) >= 1

    def test_resubmit_after_pass(self, quiet_settings, recorder):
        results = []
        coord = _coordinator(quiet_settings, recorder, on_result=results.append)
        coord.start()
        try:
            coord.submit(TriggerSource.INTERVAL)
            assert _wait_for(lambda: len(results) == 1)
            assert _wait_for(lambda: coord.submit(TriggerSource.INTERVAL))
            assert _wait_for(lambda: len(results) == 2)
        finally:
            coord.stop()


class TestErrors:
    """A failed pass still returns the coordinator to IDLE."""

    def test_sync_error_becomes_result(self, quiet_settings, recorder):
        recorder.fail_with = TransportError("offline")
        results = []
        coord = _coordinator(quiet_settings, recorder, on_result=results.append)
        coord.start()
        try:
            coord.submit(TriggerSource.INTERVAL)
            assert _wait_for(lambda: results)
        finally:
            coord.stop()

        assert results[0].error == "offline"
        assert coord.state == CoordinatorState.IDLE
        snap = coord.stats.snapshot()
        assert snap["passes_completed"] == 1
        assert "offline" in snap["recent_errors"][0]

    def test_unexpected_error_keeps_worker_alive(self, quiet_settings, recorder):
        recorder.fail_with = RuntimeError("bug")
        coord = _coordinator(quiet_settings, recorder)
        coord.start()
        try:
            coord.submit(TriggerSource.INTERVAL)
            assert _wait_for(lambda: coord.stats.passes_completed == 1)
            assert _wait_for(lambda: coord.state == CoordinatorState.IDLE)

            recorder.fail_with = None
            assert _wait_for(lambda: coord.submit(TriggerSource.INTERVAL))
            assert _wait_for(lambda: coord.stats.passes_completed == 2)
        finally:
            coord.stop()

    def test_run_now_error_is_reported(self, quiet_settings, recorder):
        recorder.fail_with = TransportError("offline")
        coord = _coordinator(quiet_settings, recorder)
        result = coord.run_now()
        assert result.error == "offline"
        assert coord.state == CoordinatorState.IDLE

    def test_callback_failure_is_contained(self, quiet_settings, recorder):
        def explode(result):
            raise ValueError("ui gone")

        coord = _coordinator(quiet_settings, recorder, on_result=explode)
        result = coord.run_now()
        assert result.action == SyncAction.NO_OP


class TestRunNow:
    """Manual passes on the calling thread."""

    def test_passes_prompter_and_force(self, quiet_settings, recorder):
        prompter = object()
        coord = _coordinator(quiet_settings, recorder)

        result = coord.run_now(
            TriggerSource.MANUAL, SyncMode.INTERACTIVE, prompter=prompter, force=True,
        )

        assert result.mode == SyncMode.INTERACTIVE
        assert recorder.calls == [
            (TriggerSource.MANUAL, SyncMode.INTERACTIVE, True, prompter)
        ]

    def test_uses_current_settings(self, quiet_settings, recorder):
        coord = _coordinator(quiet_settings, recorder)
        newer = quiet_settings.model_copy(update={"remote_id": "def111"})
        coord.reconfigure(newer)
        coord.run_now()
        assert recorder.settings_seen[-1].remote_id == "def111"


class TestTriggers:
    """Startup, interval and change stimuli."""

    def test_startup_trigger(self, quiet_settings, recorder):
        quiet_settings.auto_check_on_start = True
        results = []
        coord = _coordinator(
            quiet_settings, recorder, on_result=results.append, startup_delay=0.05,
        )
        coord.start()
        try:
            assert _wait_for(lambda: results)
        finally:
            coord.stop()
        assert results[0].trigger == TriggerSource.STARTUP

    def test_startup_disabled(self, quiet_settings, recorder):
        coord = _coordinator(quiet_settings, recorder, startup_delay=0.01)
        coord.start()
        time.sleep(0.1)
        coord.stop()
        assert recorder.calls == []

    def test_stop_cancels_pending_startup(self, quiet_settings, recorder):
        quiet_settings.auto_check_on_start = True
        coord = _coordinator(quiet_settings, recorder, startup_delay=0.2)
        coord.start()
        coord.stop()
        time.sleep(0.3)
        assert recorder.calls == []

    def test_interval_trigger_repeats(self, quiet_settings, recorder):
        quiet_settings.interval_sync_enabled = True
        coord = _coordinator(quiet_settings, recorder, interval_seconds=0.05)
        coord.start()
        try:
            assert _wait_for(lambda: len(recorder.calls) >= 2)
        finally:
            coord.stop()
        assert all(call[0] == TriggerSource.INTERVAL for call in recorder.calls)

    def test_interval_period_from_settings(self, quiet_settings, recorder):
        quiet_settings.interval_sync_minutes = 15
        coord = _coordinator(quiet_settings, recorder)
        assert coord.interval_period == 900.0

    def test_change_notifications_are_debounced(self, quiet_settings, recorder):
        results = []
        coord = _coordinator(
            quiet_settings, recorder, on_result=results.append, debounce_window=0.2,
        )
        coord.start()
        try:
            for _ in range(5):
                coord.notify_change()
                time.sleep(0.02)
            assert _wait_for(lambda: results)
            time.sleep(0.3)
        finally:
            coord.stop()

        assert len(recorder.calls) == 1
        assert recorder.calls[0][0] == TriggerSource.CHANGE

    def test_watcher_feeds_change_trigger(self, quiet_settings, recorder, tmp_path):
        quiet_settings.change_sync_enabled = True
        path = tmp_path / "copilot-instructions.md"
        coord = _coordinator(
            quiet_settings, recorder, watch_paths=[path], debounce_window=0.01,
        )
        coord.start()
        try:
            watcher = FakeWatcher.instances[-1]
            assert watcher.started
            assert watcher.paths == [path]
            watcher.callback(path)
            assert _wait_for(lambda: recorder.calls)
        finally:
            coord.stop()
        assert watcher.stopped


class TestReconfigure:
    """Settings changes restart the affected triggers."""

    def test_enabling_change_sync_starts_watcher(self, quiet_settings, recorder, tmp_path):
        coord = _coordinator(
            quiet_settings, recorder, watch_paths=[tmp_path / "copilot-instructions.md"],
        )
        coord.start()
        try:
            assert FakeWatcher.instances == []
            coord.reconfigure(quiet_settings.model_copy(update={"change_sync_enabled": True}))
            assert len(FakeWatcher.instances) == 1
            assert FakeWatcher.instances[0].started

            coord.reconfigure(quiet_settings.model_copy(update={"change_sync_enabled": False}))
            assert FakeWatcher.instances[0].stopped
        finally:
            coord.stop()

    def test_enabling_interval(self, quiet_settings, recorder):
        coord = _coordinator(quiet_settings, recorder, interval_seconds=0.05)
        coord.start()
        try:
            time.sleep(0.15)
            assert recorder.calls == []
            coord.reconfigure(
                quiet_settings.model_copy(update={"interval_sync_enabled": True})
            )
            assert _wait_for(lambda: recorder.calls)
        finally:
            coord.stop()

    def test_disabling_interval(self, quiet_settings, recorder):
        quiet_settings.interval_sync_enabled = True
        coord = _coordinator(quiet_settings, recorder, interval_seconds=0.05)
        coord.start()
        try:
            assert _wait_for(lambda: recorder.calls)
            coord.reconfigure(
                quiet_settings.model_copy(update={"interval_sync_enabled": False})
            )
            assert _wait_for(lambda: coord.state == CoordinatorState.IDLE)
            time.sleep(0.05)
            seen = len(recorder.calls)
            time.sleep(0.2)
        finally:
            coord.stop()
        assert len(recorder.calls) == seen


class TestLifecycle:
    def test_start_stop_idempotent(self, quiet_settings, recorder):
        coord = _coordinator(quiet_settings, recorder)
        coord.start()
        coord.start()
        coord.stop()
        coord.stop()
        assert coord.stats.snapshot()["started_at"] is not None

    def test_restart_discards_trigger_queued_during_stop(self, quiet_settings, recorder):
        results = []
        coord = _coordinator(quiet_settings, recorder, on_result=results.append)
        coord.start()
        coord.stop()
        # Late debounce timer firing after the worker took its sentinel.
        assert coord.submit(TriggerSource.CHANGE) is True

        coord.start()
        try:
            assert coord.submit(TriggerSource.INTERVAL) is True
            assert _wait_for(lambda: results)
            time.sleep(0.05)
        finally:
            coord.stop()

        assert [call[0] for call in recorder.calls] == [TriggerSource.INTERVAL]
