"""
Version marker codec.

The artifact may carry a single HTML comment that records its version
and the time it was last stamped:

    <!-- VERSION: 1.0.3 LAST_MODIFIED: 2026-10-16T09:30:00.000Z -->

The marker is the wire format shared with content already sitting in
gists, so it must stay byte-compatible. Nothing outside this module
handles raw marker text: callers get a VersionMetadata or None.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NamedTuple, Optional

MARKER_RE = re.compile(
    r"<!--\s*VERSION:\s*([^\s]+)\s*LAST_MODIFIED:\s*([^\s]+)\s*-->"
)
# The marker plus the newline inject() puts after it.
MARKER_LINE_RE = re.compile(MARKER_RE.pattern + r"(?:\r?\n)?")
# Written in place of a timestamp that is not known; reads back as None.
UNKNOWN_TIMESTAMP = "unknown"


class SemVer(NamedTuple):
    """A major.minor.patch triple. Tuple ordering gives version ordering."""

    major: int = 1
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, value: str) -> "SemVer":
        """Parse leniently; unreadable components fall back to 1.0.0 defaults."""
        defaults = cls()
        parts = value.strip().lstrip("vV").split(".")
        numbers = []
        for index, default in enumerate(defaults):
            raw = parts[index] if index < len(parts) else ""
            digits = re.match(r"\d+", raw)
            numbers.append(int(digits.group()) if digits else default)
        return cls(*numbers)

    def bump_patch(self) -> "SemVer":
        return SemVer(self.major, self.minor, self.patch + 1)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class VersionMetadata:
    """Parsed contents of a version marker.

    Attributes:
        version: The embedded version.
        last_modified: Stamp time in UTC, or None when the marker's
            timestamp is missing or unreadable.
    """

    version: SemVer = SemVer()
    last_modified: Optional[datetime] = None


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Returns None instead of raising on anything unreadable.
    """
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way JavaScript's toISOString does.

    Millisecond precision when the value carries whole milliseconds,
    microseconds otherwise, so that parse_timestamp() reads back the
    exact same instant.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    spec = "milliseconds" if value.microsecond % 1000 == 0 else "microseconds"
    return value.replace(tzinfo=None).isoformat(timespec=spec) + "Z"


def utc_now() -> datetime:
    """Current time truncated to milliseconds."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def render(metadata: VersionMetadata) -> str:
    """Build the marker comment for metadata."""
    stamp = (
        format_timestamp(metadata.last_modified)
        if metadata.last_modified else UNKNOWN_TIMESTAMP
    )
    return f"<!-- VERSION: {metadata.version} LAST_MODIFIED: {stamp} -->"


def extract(text: str) -> Optional[VersionMetadata]:
    """Read the marker from text.

    Args:
        text: Artifact content.

    Returns:
        The parsed metadata, or None when no marker is present.
    """
    match = MARKER_RE.search(text or "")
    if not match:
        return None
    return VersionMetadata(
        version=SemVer.parse(match.group(1)),
        last_modified=parse_timestamp(match.group(2)),
    )


def inject(text: str, metadata: VersionMetadata) -> str:
    """Write metadata into text.

    An existing marker is replaced in place; otherwise a new marker line
    is prepended, ending in the line break the text already uses.
    """
    marker = render(metadata)
    if MARKER_RE.search(text):
        return MARKER_RE.sub(lambda _: marker, text, count=1)
    newline = "\r\n" if "\r\n" in text else "\n"
    return f"{marker}{newline}{text}"


def strip(text: str) -> str:
    """Remove the marker line from text, leaving everything else untouched."""
    return MARKER_LINE_RE.sub("", text, count=1)


def next_version(text: Optional[str]) -> SemVer:
    """Version the next upload of text should carry.

    A missing marker counts as 1.0.0, so the first bump yields 1.0.1.
    The result is always strictly greater than the current version.
    """
    current = extract(text or "")
    base = current.version if current else SemVer()
    return base.bump_patch()


def stamp(text: str, now: Optional[datetime] = None) -> str:
    """Bump the version and refresh the timestamp embedded in text."""
    metadata = VersionMetadata(
        version=next_version(text),
        last_modified=now or utc_now(),
    )
    return inject(text, metadata)
