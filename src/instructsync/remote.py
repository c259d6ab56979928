"""
Remote store adapters -- where the other replica lives.

A store knows how to fetch the artifact by ID and how to put new
content, either creating a fresh identity or overwriting an existing
one. Reads are all-or-nothing and a failed put leaves the remote as
it was.

Gist: GitHub Gists API. One gist, one named file inside it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from . import ARTIFACT_NAME, __version__
from .errors import (
    RemoteAuthError,
    RemoteRateLimitError,
    RemoteTimeoutError,
    TransportError,
)
from .metadata import parse_timestamp
from .models import PutResult, RemoteArtifact

logger = logging.getLogger("instructsync.remote")

GITHUB_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 30
GIST_DESCRIPTION = "Copilot Instructions"
USER_AGENT = f"instructsync/{__version__}"


class RemoteStore(ABC):
    """Abstract key/value replica store."""

    @abstractmethod
    def fetch(self, remote_id: str) -> Optional[RemoteArtifact]:
        """Fetch the remote replica.

        Args:
            remote_id: Opaque identity of the replica.

        Returns:
            The replica, or None if the store holds no artifact under
            that identity.

        Raises:
            TransportError: The store could not be reached or refused.
        """

    @abstractmethod
    def put(self, remote_id: Optional[str], content: str) -> PutResult:
        """Store content remotely.

        Args:
            remote_id: Identity to overwrite, or None to create one.
            content: Full artifact text.

        Returns:
            PutResult carrying the (possibly new) identity and URL.

        Raises:
            TransportError: The write did not happen.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable store name."""


class GistStore(RemoteStore):
    """GitHub Gist backed store.

    The artifact is the gist file named after ARTIFACT_NAME. A gist
    without that file (or with an empty one) counts as "not found".
    """

    def __init__(
        self,
        token: str,
        filename: str = ARTIFACT_NAME,
        timeout: float = DEFAULT_TIMEOUT,
        api_url: str = GITHUB_API_URL,
    ):
        self._token = token
        self.filename = filename
        self.timeout = timeout
        self.api_url = api_url.rstrip("/")

    @property
    def name(self) -> str:
        return "gist"

    def _api_call(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Optional[dict[str, Any]]:
        """Make an authenticated GitHub API call.

        Args:
            method: HTTP method.
            endpoint: API path, starting with a slash.
            data: JSON request body.
            allow_missing: Return None on 404 instead of raising.

        Returns:
            Parsed JSON response, or None for an allowed 404.

        Raises:
            TransportError: Or one of its subclasses, on any failure.
        """
        if not self._token:
            raise RemoteAuthError("No API token configured")

        url = f"{self.api_url}{endpoint}"
        headers = {
            "Authorization": f"token {self._token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }

        try:
            resp = requests.request(
                method, url, headers=headers, json=data, timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise RemoteTimeoutError(
                f"{method} {endpoint} timed out after {self.timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {endpoint} failed: {exc}") from exc

        if resp.status_code == 404 and allow_missing:
            return None
        if resp.status_code >= 400:
            raise _error_for(method, endpoint, resp)

        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"{method} {endpoint}: malformed JSON response",
                status_code=resp.status_code,
            ) from exc

    def fetch(self, remote_id: str) -> Optional[RemoteArtifact]:
        gist = self._api_call("GET", f"/gists/{remote_id}", allow_missing=True)
        if gist is None:
            logger.info("Gist %s not found", remote_id)
            return None

        files = gist.get("files") or {}
        entry = files.get(self.filename) or {}
        content = entry.get("content")
        if not content:
            logger.info("Gist %s has no %s", remote_id, self.filename)
            return None

        updated = gist.get("updated_at")
        return RemoteArtifact(
            remote_id=gist.get("id", remote_id),
            content=content,
            updated_at=parse_timestamp(updated) if updated else None,
            url=gist.get("html_url"),
        )

    def put(self, remote_id: Optional[str], content: str) -> PutResult:
        body = {
            "description": GIST_DESCRIPTION,
            "files": {self.filename: {"content": content}},
        }
        if remote_id:
            result = self._api_call("PATCH", f"/gists/{remote_id}", data=body)
        else:
            body["public"] = False
            result = self._api_call("POST", "/gists", data=body)

        if not result or "id" not in result:
            raise TransportError("Gist API returned no gist id")

        logger.info(
            "Gist %s %s", result["id"], "updated" if remote_id else "created"
        )
        return PutResult(
            remote_id=result["id"],
            url=result.get("html_url", ""),
            created=not remote_id,
        )

    def verify_token(self) -> str:
        """Check the token against the API.

        Returns:
            The login of the account the token belongs to.
        """
        user = self._api_call("GET", "/user")
        return (user or {}).get("login", "")


def _error_for(method: str, endpoint: str, resp: requests.Response) -> TransportError:
    """Map an HTTP error response onto the transport error taxonomy."""
    detail = f"{method} {endpoint}: {resp.status_code} {resp.reason or ''}".strip()
    body = (resp.text or "")[:200]
    if body:
        detail = f"{detail} - {body}"

    code = resp.status_code
    if code == 429 or (
        code == 403 and resp.headers.get("X-RateLimit-Remaining") == "0"
    ):
        return RemoteRateLimitError(detail, status_code=code)
    if code in (401, 403):
        return RemoteAuthError(detail, status_code=code)
    return TransportError(detail, status_code=code)
