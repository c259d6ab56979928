"""
Settings persistence -- config.yaml under the sync home.

Settings are global to the user, not per project, so one token and one
gist serve every project. Environment variables override the token and
remote ID without touching the file.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from . import SYNC_HOME
from .errors import ConfigurationError
from .local import write_atomic
from .models import SyncSettings

logger = logging.getLogger("instructsync.config")

CONFIG_FILE = "config.yaml"
TOKEN_ENV_VAR = "INSTRUCTSYNC_TOKEN"
REMOTE_ID_ENV_VAR = "INSTRUCTSYNC_REMOTE_ID"
TOKEN_PREFIXES = ("ghp_", "github_pat_")
REMOTE_ID_RE = re.compile(r"^[a-f0-9]+$")


def resolve_home(home: Optional[Path] = None) -> Path:
    """Expand the sync home directory (defaults to ~/.instructsync)."""
    return Path(home or SYNC_HOME).expanduser()


def config_path(home: Optional[Path] = None) -> Path:
    """Location of config.yaml inside the sync home."""
    return resolve_home(home) / CONFIG_FILE


def load_settings(home: Optional[Path] = None, apply_env: bool = True) -> SyncSettings:
    """Load settings from disk.

    A missing or malformed file yields defaults; a malformed file is
    logged rather than raised so background passes keep running.

    Args:
        home: Sync home directory.
        apply_env: Let INSTRUCTSYNC_TOKEN / INSTRUCTSYNC_REMOTE_ID win
            over the file.

    Returns:
        SyncSettings instance.
    """
    settings = SyncSettings()
    config_file = config_path(home)
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            settings = SyncSettings(**data)
        except (yaml.YAMLError, ValidationError, TypeError, OSError) as exc:
            logger.warning("Failed to load %s: %s", config_file, exc)

    if apply_env:
        token = os.environ.get(TOKEN_ENV_VAR)
        if token:
            settings.remote_token = token
        remote_id = os.environ.get(REMOTE_ID_ENV_VAR)
        if remote_id:
            settings.remote_id = remote_id
    return settings


def save_settings(settings: SyncSettings, home: Optional[Path] = None) -> Path:
    """Persist settings to config.yaml.

    Returns:
        Path of the written file.
    """
    config_file = config_path(home)
    data = settings.model_dump(mode="json")
    write_atomic(config_file, yaml.dump(data, default_flow_style=False, sort_keys=True))
    try:
        config_file.chmod(0o600)
    except OSError as exc:
        logger.debug("Could not restrict permissions on %s: %s", config_file, exc)
    return config_file


def update_settings(home: Optional[Path] = None, **changes: Any) -> SyncSettings:
    """Apply changes to the stored settings and save them.

    Environment overrides are not written back to disk.

    Raises:
        ConfigurationError: A change fails validation.
    """
    current = load_settings(home, apply_env=False)
    try:
        updated = SyncSettings(**{**current.model_dump(), **changes})
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
    save_settings(updated, home)
    logger.info("Settings updated: %s", ", ".join(sorted(changes)) or "none")
    return updated


def validate_token(value: str) -> Optional[str]:
    """Return an error message for a malformed token, or None if it looks valid."""
    if not value:
        return "Token is required"
    if not value.startswith(TOKEN_PREFIXES):
        return "Invalid token format"
    return None


def validate_remote_id(value: str) -> Optional[str]:
    """Return an error message for a malformed gist ID, or None.

    An empty value is allowed: the first upload creates a gist.
    """
    if value and not REMOTE_ID_RE.match(value):
        return "Invalid Gist ID format"
    return None
