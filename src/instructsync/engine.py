"""
Reconciliation Engine -- decides which way the artifact flows.

One pass reads both replicas, classifies their relationship and then
either acts on its own (autonomous mode) or asks the user (interactive
mode):

    read local + fetch remote  ->  compare()  ->  policy  ->  action

Autonomous passes never guess: a divergence without a usable timestamp
on both sides is left alone. Loaded content lives only for the
duration of a pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from . import fingerprint, metadata
from .errors import ConfigurationError, TransportError
from .local import LocalArtifact
from .models import (
    Classification,
    Direction,
    RemoteArtifact,
    SyncAction,
    SyncMode,
    SyncResult,
    SyncSettings,
    TriggerSource,
)
from .remote import RemoteStore
from .template import template_content

logger = logging.getLogger("instructsync.engine")

DOWNLOAD = "Download"
UPLOAD = "Upload"
DOWNLOAD_INSTEAD = "Download Remote Instead"
UPLOAD_INSTEAD = "Upload Local Instead"
UPLOAD_LOCAL = "Upload Local"
DOWNLOAD_REMOTE = "Download Remote"
CANCEL = "Cancel"


class Prompter(Protocol):
    """Host UI seam for interactive passes."""

    def confirm(self, message: str) -> bool:
        """Ask a yes/no question."""

    def choose(self, message: str, options: Sequence[str]) -> Optional[str]:
        """Offer options; None means the user dismissed the question."""


@dataclass(frozen=True)
class Comparison:
    """Classification of one local/remote pair."""

    classification: Classification
    direction: Optional[Direction] = None


@dataclass
class PassState:
    """Everything one pass read before deciding."""

    local_path: Optional[Path]
    local_text: Optional[str]
    remote: Optional[RemoteArtifact]
    comparison: Comparison


def compare(local_text: Optional[str], remote_text: Optional[str]) -> Comparison:
    """Classify a local/remote pair.

    Fingerprint equality wins over any timestamp. Differing content is
    ordered by the embedded timestamps; if either is missing, unreadable,
    or both are equal the direction is AMBIGUOUS.
    """
    if local_text is None and remote_text is None:
        return Comparison(Classification.BOTH_ABSENT)
    if local_text is None:
        return Comparison(Classification.REMOTE_ONLY)
    if remote_text is None:
        return Comparison(Classification.LOCAL_ONLY)
    if fingerprint.equal(local_text, remote_text):
        return Comparison(Classification.IDENTICAL)

    local_meta = metadata.extract(local_text)
    remote_meta = metadata.extract(remote_text)
    local_time = local_meta.last_modified if local_meta else None
    remote_time = remote_meta.last_modified if remote_meta else None

    if local_time is None or remote_time is None or local_time == remote_time:
        direction = Direction.AMBIGUOUS
    elif remote_time > local_time:
        direction = Direction.REMOTE_NEWER
    else:
        direction = Direction.LOCAL_NEWER
    return Comparison(Classification.DIVERGED, direction)


class ReconciliationEngine:
    """Runs reconciliation passes for one project against one remote.

    Args:
        settings: Current sync settings.
        store: Remote store adapter.
        project_root: Project directory holding the local artifact.
        prompter: UI used by interactive passes.
        on_remote_created: Called with the new remote ID after an upload
            created a fresh remote identity.
    """

    def __init__(
        self,
        settings: SyncSettings,
        store: RemoteStore,
        project_root: Path,
        prompter: Optional[Prompter] = None,
        on_remote_created: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.store = store
        self.local = LocalArtifact(project_root)
        self.prompter = prompter
        self.on_remote_created = on_remote_created

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def inspect(self) -> PassState:
        """Read both replicas and classify them.

        Raises:
            FilesystemError: The local artifact exists but is unreadable.
            TransportError: The remote could not be fetched.
        """
        local_path, local_text = self.local.load()
        remote = None
        if self.settings.remote_id:
            remote = self.store.fetch(self.settings.remote_id)
        comparison = compare(local_text, remote.content if remote else None)
        logger.debug(
            "Classified %s (local=%s, remote=%s)",
            comparison.classification.value,
            local_path,
            self.settings.remote_id,
        )
        return PassState(local_path, local_text, remote, comparison)

    def check(self, trigger: TriggerSource = TriggerSource.MANUAL) -> SyncResult:
        """Classify without acting."""
        state = self.inspect()
        return self._result(
            state, trigger, SyncMode.INTERACTIVE, SyncAction.NO_OP,
            _describe(state.comparison),
        )

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def reconcile(
        self,
        mode: SyncMode = SyncMode.AUTONOMOUS,
        trigger: TriggerSource = TriggerSource.MANUAL,
        force: bool = False,
    ) -> SyncResult:
        """Run one reconciliation pass.

        Args:
            mode: AUTONOMOUS acts silently, INTERACTIVE asks first.
            trigger: What started the pass (recorded in the result).
            force: Interactive only: re-upload even identical content.

        Returns:
            SyncResult describing the classification and action taken.

        Raises:
            ConfigurationError: Interactive pass without a token or prompter.
            TransportError: Remote unreachable or the put failed.
            FilesystemError: Local read or write failed.
        """
        if mode == SyncMode.AUTONOMOUS:
            if not self.settings.is_configured:
                return SyncResult(
                    trigger=trigger, mode=mode, action=SyncAction.SKIPPED,
                    message="Token or remote ID not configured",
                )
            state = self.inspect()
            return self._autonomous(state, trigger)

        if not self.settings.remote_token:
            raise ConfigurationError(
                "API token not configured. Run 'instructsync configure' first."
            )
        if self.prompter is None:
            raise ConfigurationError("Interactive sync needs a prompter")
        state = self.inspect()
        return self._interactive(state, trigger, force)

    def _autonomous(self, state: PassState, trigger: TriggerSource) -> SyncResult:
        comparison = state.comparison
        mode = SyncMode.AUTONOMOUS
        kind = comparison.classification

        if kind == Classification.REMOTE_ONLY or (
            kind == Classification.DIVERGED
            and comparison.direction == Direction.REMOTE_NEWER
        ):
            return self._download_result(state, trigger, mode)

        if kind == Classification.LOCAL_ONLY or (
            kind == Classification.DIVERGED
            and comparison.direction == Direction.LOCAL_NEWER
        ):
            return self._upload_result(state, trigger, mode, force=False)

        if kind == Classification.DIVERGED:
            logger.warning(
                "Local and remote differ and neither is provably newer; "
                "run 'instructsync sync' to choose a direction"
            )
        return self._result(
            state, trigger, mode, SyncAction.NO_OP, _describe(comparison),
        )

    def _interactive(
        self, state: PassState, trigger: TriggerSource, force: bool,
    ) -> SyncResult:
        comparison = state.comparison
        mode = SyncMode.INTERACTIVE
        kind = comparison.classification
        ask = self.prompter

        if kind == Classification.BOTH_ABSENT:
            if not ask.confirm(
                "No copilot-instructions.md found locally or in the gist. "
                "Create template?"
            ):
                return self._cancelled(state, trigger)
            path = self.create_template()
            if ask.confirm("Template created. Upload it to the gist now?"):
                url = self.upload(path, self.local.read(path), None)
                return self._result(
                    state, trigger, mode, SyncAction.UPLOAD,
                    f"Created template and uploaded it to {url}",
                    path=path, remote_url=url,
                )
            return self._result(
                state, trigger, mode, SyncAction.CREATE_TEMPLATE,
                f"Created template at {path}", path=path,
            )

        if kind == Classification.REMOTE_ONLY:
            if not ask.confirm("Only the gist has instructions. Download them?"):
                return self._cancelled(state, trigger)
            return self._download_result(state, trigger, mode)

        if kind == Classification.LOCAL_ONLY:
            if not ask.confirm("Only the local file exists. Upload it to the gist?"):
                return self._cancelled(state, trigger)
            return self._upload_result(state, trigger, mode, force=False)

        if kind == Classification.IDENTICAL:
            if force:
                return self._upload_result(state, trigger, mode, force=True)
            return self._result(
                state, trigger, mode, SyncAction.NO_OP,
                "Files are already synchronized",
            )

        if comparison.direction == Direction.REMOTE_NEWER:
            question = "Remote file is newer. Download the latest version?"
            options = [DOWNLOAD, UPLOAD_INSTEAD, CANCEL]
        elif comparison.direction == Direction.LOCAL_NEWER:
            question = "Local file is newer. Upload to the gist?"
            options = [UPLOAD, DOWNLOAD_INSTEAD, CANCEL]
        else:
            question = (
                "Local and remote differ and neither is provably newer. "
                "Choose sync direction:"
            )
            options = [UPLOAD_LOCAL, DOWNLOAD_REMOTE, CANCEL]

        choice = ask.choose(question, options)
        if choice in (DOWNLOAD, DOWNLOAD_INSTEAD, DOWNLOAD_REMOTE):
            return self._download_result(state, trigger, mode)
        if choice in (UPLOAD, UPLOAD_INSTEAD, UPLOAD_LOCAL):
            return self._upload_result(state, trigger, mode, force=False)
        return self._cancelled(state, trigger)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def download(
        self, remote: RemoteArtifact, local_path: Optional[Path] = None,
    ) -> Path:
        """Write the remote content verbatim over the local artifact.

        Args:
            remote: Fetched remote replica.
            local_path: Existing local artifact; defaults to the preferred
                location when there is none.

        Returns:
            Path that was written.
        """
        target = local_path or self.local.default_path
        self.local.write(target, remote.content)
        logger.info("Downloaded %s into %s", remote.remote_id, target)
        if self.settings.auto_exclude:
            self.local.ensure_excluded(target)
        return target

    def upload(
        self,
        local_path: Path,
        local_text: str,
        remote: Optional[RemoteArtifact],
        force: bool = False,
    ) -> Optional[str]:
        """Push the local artifact to the remote store.

        Content equal to the remote (markers aside) is not uploaded unless
        forced. Otherwise the version is bumped, the stamped text is
        written back to the local file, and then transmitted.

        Returns:
            URL of the remote replica, or None when nothing was uploaded.
        """
        if remote is not None and not force and fingerprint.equal(
            local_text, remote.content
        ):
            logger.info("Remote already holds this content; skipping upload")
            return None

        stamped = metadata.stamp(local_text)
        if stamped != local_text:
            self.local.write(local_path, stamped)

        remote_id = self.settings.remote_id
        try:
            result = self.store.put(remote_id, stamped)
        except TransportError as exc:
            # The configured gist is gone; start a new one.
            if remote is None and remote_id and exc.status_code == 404:
                logger.warning("Gist %s no longer exists; creating a new one", remote_id)
                result = self.store.put(None, stamped)
            else:
                raise

        if result.remote_id != remote_id:
            self.settings.remote_id = result.remote_id
            if self.on_remote_created:
                self.on_remote_created(result.remote_id)
        logger.info("Uploaded %s to %s", local_path, result.url)
        return result.url

    def create_template(self) -> Path:
        """Write the starter template to the preferred location."""
        path = self.local.default_path
        self.local.write(path, template_content())
        logger.info("Created template at %s", path)
        return path

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _download_result(
        self, state: PassState, trigger: TriggerSource, mode: SyncMode,
    ) -> SyncResult:
        path = self.download(state.remote, state.local_path)
        return self._result(
            state, trigger, mode, SyncAction.DOWNLOAD,
            f"Downloaded remote version to {path}", path=path,
        )

    def _upload_result(
        self,
        state: PassState,
        trigger: TriggerSource,
        mode: SyncMode,
        force: bool,
    ) -> SyncResult:
        url = self.upload(state.local_path, state.local_text, state.remote, force=force)
        if url is None:
            return self._result(
                state, trigger, mode, SyncAction.NO_OP,
                "Remote already holds this content",
            )
        return self._result(
            state, trigger, mode, SyncAction.UPLOAD,
            f"Uploaded local version to {url}", remote_url=url,
        )

    def _cancelled(self, state: PassState, trigger: TriggerSource) -> SyncResult:
        return self._result(
            state, trigger, SyncMode.INTERACTIVE, SyncAction.CANCELLED, "Cancelled",
        )

    def _result(
        self,
        state: PassState,
        trigger: TriggerSource,
        mode: SyncMode,
        action: SyncAction,
        message: str,
        path: Optional[Path] = None,
        remote_url: Optional[str] = None,
    ) -> SyncResult:
        return SyncResult(
            trigger=trigger,
            mode=mode,
            classification=state.comparison.classification,
            direction=state.comparison.direction,
            action=action,
            path=path or state.local_path,
            remote_id=self.settings.remote_id,
            remote_url=remote_url or (state.remote.url if state.remote else None),
            remote_updated_at=state.remote.updated_at if state.remote else None,
            message=message,
        )


def _describe(comparison: Comparison) -> str:
    """One-line human description of a comparison."""
    if comparison.classification == Classification.DIVERGED:
        return {
            Direction.LOCAL_NEWER: "Local file is newer",
            Direction.REMOTE_NEWER: "Remote file is newer",
        }.get(comparison.direction, "Files differ; direction is ambiguous")
    return {
        Classification.BOTH_ABSENT: "No artifact locally or remotely",
        Classification.REMOTE_ONLY: "Only the remote has the artifact",
        Classification.LOCAL_ONLY: "Only the local file exists",
        Classification.IDENTICAL: "Files are already synchronized",
    }[comparison.classification]
