"""
Content fingerprints that ignore the version marker.

Two replicas whose text differs only in the marker are the same
artifact. The fingerprint is the only equality test the engine uses.
"""

from __future__ import annotations

import hashlib

from . import metadata


def normalize(text: str) -> str:
    """Marker-free, whitespace-trimmed text that the digest is taken over."""
    return metadata.strip(text).strip()


def fingerprint(text: str) -> str:
    """Compute the SHA-256 hex digest of the normalized text.

    Args:
        text: Artifact content, with or without a marker.

    Returns:
        Hex-encoded SHA-256 digest.
    """
    return hashlib.sha256(normalize(text).encode("utf-8")).hexdigest()


def equal(text_a: str, text_b: str) -> bool:
    """True when both texts carry the same content, markers aside."""
    return fingerprint(text_a) == fingerprint(text_b)
