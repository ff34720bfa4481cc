# =============================================================================
# medbuddy_core/offline/remote_adapter.py
# Remote Snapshot File over a Repository Contents API
# =============================================================================
"""
Remote adapter for the single JSON snapshot file kept in a user-owned
repository.

Reads return the decoded snapshot plus the file's blob sha, which is the
revision token. Writes send the sha they expect to replace (or none to
create the file) so the server refuses a write based on a stale read.
"""

from __future__ import annotations
import base64
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from medbuddy_core.config import DEFAULT_REMOTE_API_URL
from medbuddy_core.errors import (
    DataValidationError,
    MalformedRemoteContentError,
    RemoteConflictError,
    RemoteRejectedError,
    RemoteUnavailableError,
)
from medbuddy_core.logging import get_logger
from medbuddy_core.models import Snapshot, SyncConfig

logger = get_logger(__name__)


@dataclass
class FetchResult:
    """Remote content and its revision. content is None when the file does not exist."""
    content: Optional[Snapshot]
    revision: Optional[str]

    @property
    def exists(self) -> bool:
        return self.revision is not None


class RemoteAdapter(ABC):
    """Contract the sync engine relies on."""

    @abstractmethod
    def fetch_snapshot(self) -> FetchResult:
        """Read the remote file. Absent file is not an error."""

    @abstractmethod
    def write_snapshot(self, content: Snapshot, expected_revision: Optional[str]) -> str:
        """
        Replace the remote file if it is still at expected_revision.

        Returns:
            The new revision

        Raises:
            RemoteConflictError: expected_revision is stale
            RemoteRejectedError: credential or permission problem
            RemoteUnavailableError: network failure or timeout
        """

    @property
    def location(self) -> str:
        """Human-readable target, safe to log."""
        return "remote file"

    def test_connection(self) -> Dict[str, Any]:
        """
        Try a read and report the outcome.

        Returns:
            Dict with status and message (plus record counts when the file exists)
        """
        try:
            result = self.fetch_snapshot()
        except (RemoteUnavailableError, RemoteRejectedError, MalformedRemoteContentError) as e:
            return {"status": "error", "message": e.message}

        if not result.exists:
            return {
                "status": "success",
                "message": f"Connected. {self.location} will be created on first sync",
            }
        return {
            "status": "success",
            "message": f"Connected to {self.location}",
            "counts": result.content.counts(),
        }


class GitHubContentsAdapter(RemoteAdapter):
    """
    Snapshot file stored through the GitHub contents API.

    Usage:
        adapter = GitHubContentsAdapter(config, timeout=15)
        result = adapter.fetch_snapshot()
        new_sha = adapter.write_snapshot(snapshot, result.revision)
    """

    API_VERSION = "2022-11-28"
    USER_AGENT = "medbuddy-core"

    def __init__(
        self,
        config: SyncConfig,
        base_url: str = DEFAULT_REMOTE_API_URL,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.config = config.validate()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
            "User-Agent": self.USER_AGENT,
        })
        self._set_auth_header()

    def _set_auth_header(self) -> None:
        self.session.headers["Authorization"] = f"Bearer {self.config.token}"

    @property
    def file_url(self) -> str:
        return (
            f"{self.base_url}/repos/{self.config.repo}/contents/"
            f"{quote(self.config.path, safe='/')}"
        )

    @property
    def location(self) -> str:
        """Human-readable target, safe to log."""
        return f"{self.config.repo}:{self.config.path}"

    # =========================================================================
    # HTTP
    # =========================================================================

    def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Send a request; transport failures become RemoteUnavailableError."""
        try:
            return self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RemoteUnavailableError(
                f"Timed out after {self.timeout}s talking to {self.location}",
                details={"error": str(e)},
            )
        except requests.exceptions.RequestException as e:
            raise RemoteUnavailableError(
                f"Could not reach {self.location}: {e.__class__.__name__}",
                details={"error": str(e)},
            )

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] if response.text else response.reason or ""
        if isinstance(body, dict):
            return str(body.get("message", ""))
        return ""

    def _raise_for_status(self, response: requests.Response, action: str) -> None:
        status = response.status_code
        if status < 400:
            return

        message = self._error_message(response)
        if status in (401, 403) and response.headers.get("X-RateLimit-Remaining") == "0":
            raise RemoteUnavailableError(
                f"Rate limited while trying to {action} {self.location}",
                status_code=status,
            )
        if status in (401, 403, 404):
            raise RemoteRejectedError(
                f"Access denied while trying to {action} {self.location} "
                f"(HTTP {status}). Check the token and repository permissions.",
                status_code=status,
                details={"response": message},
            )
        if status == 409 or (status == 422 and "sha" in message.lower()):
            raise RemoteConflictError(
                f"Remote file {self.location} changed since it was read",
                status_code=status,
                details={"response": message},
            )
        if status == 422:
            raise RemoteRejectedError(
                f"Remote refused to {action} {self.location}: {message}",
                status_code=status,
            )
        raise RemoteUnavailableError(
            f"Remote error while trying to {action} {self.location} (HTTP {status})",
            status_code=status,
            details={"response": message},
        )

    # =========================================================================
    # SNAPSHOT READ / WRITE
    # =========================================================================

    def fetch_snapshot(self) -> FetchResult:
        params = {"ref": self.config.branch} if self.config.branch else None
        response = self._make_request("GET", self.file_url, params=params)

        if response.status_code == 404:
            logger.info(f"Remote file {self.location} does not exist yet")
            return FetchResult(content=None, revision=None)

        self._raise_for_status(response, "read")

        try:
            body = response.json()
        except ValueError:
            raise MalformedRemoteContentError(f"Remote response for {self.location} is not JSON")

        if not isinstance(body, dict) or body.get("type", "file") != "file":
            raise MalformedRemoteContentError(f"{self.location} is not a file")

        revision = body.get("sha")
        if not revision:
            raise MalformedRemoteContentError(f"Remote response for {self.location} has no sha")

        text = self._file_text(body)
        snapshot = self._decode(text)
        logger.debug(f"Fetched {self.location} at {revision}: {snapshot.counts()}")
        return FetchResult(content=snapshot, revision=revision)

    def _file_text(self, body: Dict[str, Any]) -> str:
        encoded = body.get("content")
        if body.get("encoding") == "base64" and encoded is not None:
            try:
                return base64.b64decode(encoded).decode("utf-8")
            except (ValueError, UnicodeDecodeError):
                raise MalformedRemoteContentError(f"{self.location} is not valid UTF-8 base64")

        # Files above the inline size limit only carry a download URL
        download_url = body.get("download_url")
        if not download_url:
            raise MalformedRemoteContentError(f"{self.location} returned no content")
        response = self._make_request("GET", download_url)
        self._raise_for_status(response, "download")
        return response.text

    def _decode(self, text: str) -> Snapshot:
        if not text.strip():
            return Snapshot()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedRemoteContentError(
                f"{self.location} is not valid JSON: {e.msg} (line {e.lineno})"
            )
        try:
            return Snapshot.from_payload(payload)
        except DataValidationError as e:
            raise MalformedRemoteContentError(
                f"{self.location} is not a MedBuddy snapshot: {e.message}",
                details=e.details,
            )

    @staticmethod
    def encode(content: Snapshot) -> str:
        """Serialize a snapshot the way it is stored remotely."""
        text = json.dumps(content.to_dict(), indent=2, ensure_ascii=False)
        return base64.b64encode(text.encode("utf-8")).decode("ascii")

    def write_snapshot(self, content: Snapshot, expected_revision: Optional[str]) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        body: Dict[str, Any] = {
            "message": f"MedBuddy sync {stamp}",
            "content": self.encode(content),
        }
        if expected_revision:
            body["sha"] = expected_revision
        if self.config.branch:
            body["branch"] = self.config.branch

        response = self._make_request("PUT", self.file_url, data=body)
        self._raise_for_status(response, "write")

        try:
            revision = response.json()["content"]["sha"]
        except (ValueError, KeyError, TypeError):
            raise MalformedRemoteContentError(
                f"Write to {self.location} succeeded but returned no revision"
            )
        logger.info(f"Wrote {self.location}: {expected_revision or 'new'} -> {revision}")
        return revision

