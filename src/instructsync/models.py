"""
Data models for settings, classifications and pass results.

Settings and results are pydantic models so they load from YAML and
dump to JSON without ceremony. Classifications are computed fresh on
every pass and never persisted.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440


class Classification(str, Enum):
    """Relationship between the local and remote replicas."""

    BOTH_ABSENT = "both_absent"
    REMOTE_ONLY = "remote_only"
    LOCAL_ONLY = "local_only"
    IDENTICAL = "identical"
    DIVERGED = "diverged"


class Direction(str, Enum):
    """Which side of a diverged pair carries the newer timestamp."""

    LOCAL_NEWER = "local_newer"
    REMOTE_NEWER = "remote_newer"
    AMBIGUOUS = "ambiguous"


class SyncMode(str, Enum):
    """Autonomous passes never ask; interactive passes always confirm."""

    AUTONOMOUS = "autonomous"
    INTERACTIVE = "interactive"


class SyncAction(str, Enum):
    """What a pass ended up doing."""

    DOWNLOAD = "download"
    UPLOAD = "upload"
    CREATE_TEMPLATE = "create_template"
    NO_OP = "no_op"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class TriggerSource(str, Enum):
    """Stimulus that started a pass."""

    STARTUP = "startup"
    INTERVAL = "interval"
    CHANGE = "change"
    MANUAL = "manual"


class SyncSettings(BaseModel):
    """User-editable configuration, stored in config.yaml."""

    remote_token: str = ""
    remote_id: Optional[str] = None
    auto_exclude: bool = True
    auto_check_on_start: bool = True
    interval_sync_enabled: bool = True
    interval_sync_minutes: int = Field(
        default=30, ge=MIN_INTERVAL_MINUTES, le=MAX_INTERVAL_MINUTES
    )
    change_sync_enabled: bool = True
    notifications_enabled: bool = False

    @property
    def is_configured(self) -> bool:
        """True when both a token and a remote ID are known."""
        return bool(self.remote_token and self.remote_id)


class RemoteArtifact(BaseModel):
    """The remote replica as returned by a fetch."""

    remote_id: str
    content: str
    updated_at: Optional[datetime] = None
    url: Optional[str] = None


class PutResult(BaseModel):
    """Identity of the remote replica after a successful put."""

    remote_id: str
    url: str
    created: bool = False


class SyncResult(BaseModel):
    """Structured outcome of one reconciliation pass."""

    trigger: TriggerSource = TriggerSource.MANUAL
    mode: SyncMode = SyncMode.INTERACTIVE
    classification: Optional[Classification] = None
    direction: Optional[Direction] = None
    action: SyncAction = SyncAction.NO_OP
    path: Optional[Path] = None
    remote_id: Optional[str] = None
    remote_url: Optional[str] = None
    remote_updated_at: Optional[datetime] = None
    message: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True when the pass finished without an error."""
        return self.error is None
