"""Shared test fixtures for instructsync."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import pytest

from instructsync.errors import TransportError
from instructsync.models import PutResult, RemoteArtifact, SyncSettings
from instructsync.remote import RemoteStore


class MemoryStore(RemoteStore):
    """In-memory remote store that records every call."""

    def __init__(self):
        self.items: dict[str, str] = {}
        self.fetches: list[str] = []
        self.puts: list[tuple[Optional[str], str]] = []
        self.fail_with: Optional[Exception] = None
        self.updated_at: Optional[datetime] = None
        self._next_id = 0

    @property
    def name(self) -> str:
        return "memory"

    def fetch(self, remote_id: str) -> Optional[RemoteArtifact]:
        self.fetches.append(remote_id)
        if self.fail_with:
            raise self.fail_with
        content = self.items.get(remote_id)
        if not content:
            return None
        return RemoteArtifact(
            remote_id=remote_id,
            content=content,
            updated_at=self.updated_at,
            url=f"https://example.test/{remote_id}",
        )

    def put(self, remote_id: Optional[str], content: str) -> PutResult:
        self.puts.append((remote_id, content))
        if self.fail_with:
            raise self.fail_with
        created = remote_id is None
        if created:
            self._next_id += 1
            remote_id = f"abc{self._next_id:03d}"
        elif remote_id not in self.items:
            raise TransportError("gist not found", status_code=404)
        self.items[remote_id] = content
        return PutResult(
            remote_id=remote_id, url=f"https://example.test/{remote_id}", created=created,
        )


class ScriptedPrompter:
    """Prompter that replays canned answers and records the questions."""

    def __init__(self, confirms: Sequence[bool] = (), choices: Sequence[Optional[str]] = ()):
        self.confirms = list(confirms)
        self.choices = list(choices)
        self.questions: list[str] = []
        self.offered: list[list[str]] = []

    def confirm(self, message: str) -> bool:
        self.questions.append(message)
        return self.confirms.pop(0)

    def choose(self, message: str, options: Sequence[str]) -> Optional[str]:
        self.questions.append(message)
        self.offered.append(list(options))
        return self.choices.pop(0)


@pytest.fixture
def store() -> MemoryStore:
    """An empty in-memory remote store."""
    return MemoryStore()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def sync_home(tmp_path: Path) -> Path:
    """A temporary sync home directory."""
    home = tmp_path / ".instructsync"
    home.mkdir()
    return home


@pytest.fixture
def settings() -> SyncSettings:
    """Fully configured settings pointing at remote 'abc000'."""
    return SyncSettings(remote_token="ghp_testtoken", remote_id="abc000")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's environment out of the tests."""
    monkeypatch.delenv("INSTRUCTSYNC_TOKEN", raising=False)
    monkeypatch.delenv("INSTRUCTSYNC_REMOTE_ID", raising=False)


@pytest.fixture
def make_prompter():
    """Factory for scripted prompters."""
    return ScriptedPrompter
