# =============================================================================
# tests/unit/test_remote_adapter.py
# Unit Tests for GitHubContentsAdapter
# =============================================================================

import base64
import json

import pytest
import requests

from medbuddy_core.errors import (
    ConfigurationError,
    MalformedRemoteContentError,
    RemoteConflictError,
    RemoteRejectedError,
    RemoteUnavailableError,
)
from medbuddy_core.models import Snapshot, SyncConfig
from medbuddy_core.offline import GitHubContentsAdapter


def _encoded(payload) -> str:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def adapter(sample_config, mock_session):
    return GitHubContentsAdapter(sample_config, base_url="https://api.example.test", timeout=5, session=mock_session)


class TestAdapterSetup:
    """Test construction and request shape"""

    def test_headers_carry_bearer_token(self, adapter, mock_session):
        assert mock_session.headers["Authorization"] == "Bearer ghp_example_secret"
        assert mock_session.headers["Accept"] == "application/vnd.github+json"

    def test_file_url(self, adapter):
        assert adapter.file_url == "https://api.example.test/repos/family/health/contents/medbuddy/data.json"

    def test_location_does_not_contain_token(self, adapter):
        assert "ghp_example_secret" not in adapter.location

    def test_invalid_config_rejected(self, mock_session):
        with pytest.raises(ConfigurationError):
            GitHubContentsAdapter(SyncConfig(token="t", repo="not-a-repo", path="x.json"), session=mock_session)

    def test_branch_sent_as_ref(self, mock_session, make_response):
        config = SyncConfig(token="t", repo="family/health", path="data.json", branch="sync")
        adapter = GitHubContentsAdapter(config, session=mock_session)
        mock_session.request.return_value = make_response(404, {"message": "Not Found"})

        adapter.fetch_snapshot()

        assert mock_session.request.call_args.kwargs["params"] == {"ref": "sync"}
        assert mock_session.request.call_args.kwargs["timeout"] == 15.0


class TestAdapterFetch:
    """Test reading the remote file"""

    def test_missing_file_is_not_an_error(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(404, {"message": "Not Found"})

        result = adapter.fetch_snapshot()

        assert result.content is None
        assert result.revision is None
        assert not result.exists

    def test_decodes_base64_content_and_sha(self, adapter, mock_session, make_response, asha_backup):
        mock_session.request.return_value = make_response(200, {
            "type": "file",
            "encoding": "base64",
            "content": _encoded(asha_backup),
            "sha": "abc123",
        })

        result = adapter.fetch_snapshot()

        assert result.revision == "abc123"
        assert result.content.users[0]["name"] == "Asha"
        assert result.content.fever_logs == []

    def test_empty_file_is_empty_snapshot(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(200, {
            "type": "file", "encoding": "base64", "content": "", "sha": "e1",
        })

        result = adapter.fetch_snapshot()

        assert result.content == Snapshot()
        assert result.exists

    def test_large_file_uses_download_url(self, adapter, mock_session, make_response, asha_backup):
        mock_session.request.side_effect = [
            make_response(200, {"type": "file", "encoding": "none", "sha": "big1",
                                "download_url": "https://raw.example.test/data.json"}),
            make_response(200, text=json.dumps(asha_backup)),
        ]

        result = adapter.fetch_snapshot()

        assert result.content.users[0]["id"] == "u1"
        assert mock_session.request.call_args.kwargs["url"] == "https://raw.example.test/data.json"

    def test_invalid_json_is_malformed(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(200, {
            "type": "file", "encoding": "base64", "content": _encoded("{not json"), "sha": "x",
        })

        with pytest.raises(MalformedRemoteContentError):
            adapter.fetch_snapshot()

    def test_wrong_shape_is_malformed(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(200, {
            "type": "file", "encoding": "base64", "content": _encoded({"users": "nope"}), "sha": "x",
        })

        with pytest.raises(MalformedRemoteContentError):
            adapter.fetch_snapshot()

    def test_directory_is_malformed(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(200, [{"type": "file", "name": "a.json"}])

        with pytest.raises(MalformedRemoteContentError):
            adapter.fetch_snapshot()

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failure_is_rejected(self, adapter, mock_session, make_response, status):
        mock_session.request.return_value = make_response(status, {"message": "Bad credentials"})

        with pytest.raises(RemoteRejectedError) as exc_info:
            adapter.fetch_snapshot()

        assert exc_info.value.status_code == status
        assert "ghp_example_secret" not in str(exc_info.value)

    def test_rate_limit_is_unavailable(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(
            403, {"message": "API rate limit exceeded"}, headers={"X-RateLimit-Remaining": "0"}
        )

        with pytest.raises(RemoteUnavailableError):
            adapter.fetch_snapshot()

    def test_server_error_is_unavailable(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(502, text="Bad Gateway")

        with pytest.raises(RemoteUnavailableError):
            adapter.fetch_snapshot()

    def test_timeout_is_unavailable(self, adapter, mock_session):
        mock_session.request.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(RemoteUnavailableError):
            adapter.fetch_snapshot()

    def test_connection_error_is_unavailable(self, adapter, mock_session):
        mock_session.request.side_effect = requests.exceptions.ConnectionError("offline")

        with pytest.raises(RemoteUnavailableError):
            adapter.fetch_snapshot()


class TestAdapterWrite:
    """Test replacing the remote file"""

    def test_put_sends_expected_sha(self, adapter, mock_session, make_response, household_snapshot):
        mock_session.request.return_value = make_response(200, {"content": {"sha": "new456"}})

        revision = adapter.write_snapshot(household_snapshot, "old123")

        assert revision == "new456"
        kwargs = mock_session.request.call_args.kwargs
        assert kwargs["method"] == "PUT"
        assert kwargs["json"]["sha"] == "old123"
        decoded = json.loads(base64.b64decode(kwargs["json"]["content"]))
        assert decoded == household_snapshot.to_dict()

    def test_create_omits_sha(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(201, {"content": {"sha": "first"}})

        adapter.write_snapshot(Snapshot(), None)

        assert "sha" not in mock_session.request.call_args.kwargs["json"]

    @pytest.mark.parametrize("status,message", [
        (409, "is at abc but expected def"),
        (422, "\"sha\" wasn't supplied."),
    ])
    def test_stale_revision_is_conflict(self, adapter, mock_session, make_response, status, message):
        mock_session.request.return_value = make_response(status, {"message": message})

        with pytest.raises(RemoteConflictError):
            adapter.write_snapshot(Snapshot(), "stale")

    def test_write_permission_denied_is_rejected(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(403, {"message": "Resource not accessible"})

        with pytest.raises(RemoteRejectedError):
            adapter.write_snapshot(Snapshot(), "abc")

    def test_missing_revision_in_reply_is_malformed(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(200, {"commit": {}})

        with pytest.raises(MalformedRemoteContentError):
            adapter.write_snapshot(Snapshot(), "abc")


class TestAdapterConnectionCheck:
    """Test test_connection reporting"""

    def test_reports_missing_file_as_success(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(404, {"message": "Not Found"})

        status = adapter.test_connection()

        assert status["status"] == "success"
        assert "created" in status["message"]

    def test_reports_rejection_as_error(self, adapter, mock_session, make_response):
        mock_session.request.return_value = make_response(401, {"message": "Bad credentials"})

        assert adapter.test_connection()["status"] == "error"
