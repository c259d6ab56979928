"""
Local artifact store -- the project's copy of the instructions.

The artifact lives in one of two well-known places inside a project:
.github/copilot-instructions.md (preferred) or copilot-instructions.md
at the root. Writes go through a temp file and an atomic rename, so a
failed pass never leaves a half-written artifact behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from . import ARTIFACT_NAME
from .errors import FilesystemError

logger = logging.getLogger("instructsync.local")

CONFIG_DIR = ".github"
GITIGNORE = ".gitignore"


class LocalArtifact:
    """Filesystem view of the artifact inside one project.

    Args:
        project_root: Project directory that owns the artifact.
        filename: Artifact file name.
    """

    def __init__(self, project_root: Path, filename: str = ARTIFACT_NAME):
        self.project_root = Path(project_root).expanduser()
        self.filename = filename

    @property
    def candidate_paths(self) -> list[Path]:
        """Well-known locations, in order of preference."""
        return [
            self.project_root / CONFIG_DIR / self.filename,
            self.project_root / self.filename,
        ]

    @property
    def default_path(self) -> Path:
        """Where a new artifact is created."""
        return self.candidate_paths[0]

    def locate(self) -> Optional[Path]:
        """Return the first existing candidate path, or None."""
        for path in self.candidate_paths:
            if path.is_file():
                return path
        return None

    def read(self, path: Path) -> Optional[str]:
        """Read the artifact at path.

        Returns:
            The content, or None when the file does not exist.

        Raises:
            FilesystemError: The file exists but cannot be read.
        """
        try:
            # newline="" keeps CRLF line endings as written
            with open(path, encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise FilesystemError(f"Cannot read {path}: {exc}") from exc

    def load(self) -> tuple[Optional[Path], Optional[str]]:
        """Locate and read the artifact in one go."""
        path = self.locate()
        if path is None:
            return None, None
        return path, self.read(path)

    def write(self, path: Path, content: str) -> None:
        """Atomically replace the artifact at path with content."""
        write_atomic(path, content)

    def ensure_excluded(self, path: Path) -> bool:
        """Make sure the artifact is listed in the project's .gitignore.

        An existing entry for the exact path, the bare file name, or the
        whole config directory counts as covered.

        Returns:
            True if .gitignore was created or updated.
        """
        gitignore = self.project_root / GITIGNORE
        try:
            entry = path.relative_to(self.project_root).as_posix()
        except ValueError:
            entry = path.name
        covered = {entry, self.filename, f"{CONFIG_DIR}/", f"{CONFIG_DIR}/*"}

        try:
            existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else None
            if existing is not None:
                lines = {line.strip() for line in existing.splitlines()}
                if lines & covered:
                    logger.debug("%s already covered in %s", entry, gitignore)
                    return False
                separator = "" if not existing or existing.endswith("\n") else "\n"
                new_content = f"{existing}{separator}{entry}\n"
            else:
                new_content = f"{entry}\n"
            write_atomic(gitignore, new_content)
        except (OSError, FilesystemError) as exc:
            logger.warning("Could not update %s: %s", gitignore, exc)
            return False

        logger.info(
            "%s %s with %s",
            "Updated" if existing is not None else "Created",
            gitignore,
            entry,
        )
        return True


def write_atomic(path: Path, content: str) -> None:
    """Write content to path via a sibling temp file and os.replace.

    Missing parent directories are created.

    Raises:
        FilesystemError: Nothing was written to path.
    """
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        # mkstemp creates 0600 files
        mode = path.stat().st_mode & 0o777 if path.exists() else 0o644
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise FilesystemError(f"Cannot write {path}: {exc}") from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
