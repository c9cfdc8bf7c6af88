"""Tests for the ArgoCD and Mattermost REST clients."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from release_tools.errors import ArgoCDError, MattermostError
from release_tools.integrations.argocd_client import ArgoCDClient
from release_tools.integrations.mattermost_client import MattermostClient


def _response(status_code: int, payload=None, json_error: bool = False) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session() -> MagicMock:
    mock = MagicMock()
    mock.headers = {}
    return mock


class TestArgoCDClient:
    """ArgoCD application reads."""

    def test_sets_access_headers(self, session: MagicMock) -> None:
        ArgoCDClient("https://argocd.acme.dev/", "id-1", "secret-1", session=session)
        assert session.headers["CF-Access-Client-Id"] == "id-1"
        assert session.headers["CF-Access-Client-Secret"] == "secret-1"

    def test_parses_application(self, session: MagicMock) -> None:
        session.get.return_value = _response(
            200,
            {
                "metadata": {"name": "api-gateway"},
                "spec": {"source": {"targetRevision": "1.4.0"}},
                "status": {"sync": {"status": "Synced"}, "health": {"status": "Healthy"}},
            },
        )
        client = ArgoCDClient("https://argocd.acme.dev/", session=session, timeout=5)
        app = client.get_application("api-gateway")

        session.get.assert_called_once_with(
            "https://argocd.acme.dev/api/v1/applications/api-gateway", timeout=5
        )
        assert app.name == "api-gateway"
        assert app.current_version == "1.4.0"
        assert app.synced and app.healthy

    def test_missing_sections(self, session: MagicMock) -> None:
        session.get.return_value = _response(200, {})
        app = ArgoCDClient("https://argocd", session=session).get_application("web")
        assert app.name == "web"
        assert app.sync_status == ""
        assert not app.synced

    def test_not_found(self, session: MagicMock) -> None:
        session.get.return_value = _response(404)
        assert ArgoCDClient("https://argocd", session=session).get_application("x") is None

    def test_server_error(self, session: MagicMock) -> None:
        session.get.return_value = _response(500)
        with pytest.raises(ArgoCDError, match="ArgoCD API error: 500"):
            ArgoCDClient("https://argocd", session=session).get_application("x")

    def test_transport_error(self, session: MagicMock) -> None:
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(ArgoCDError, match="request failed"):
            ArgoCDClient("https://argocd", session=session).get_application("x")

    def test_invalid_json(self, session: MagicMock) -> None:
        session.get.return_value = _response(200, json_error=True)
        with pytest.raises(ArgoCDError, match="Invalid ArgoCD response"):
            ArgoCDClient("https://argocd", session=session).get_application("x")

    def test_app_name_is_quoted(self, session: MagicMock) -> None:
        session.get.return_value = _response(404)
        ArgoCDClient("https://argocd", session=session).get_application("team/app")
        url = session.get.call_args[0][0]
        assert url.endswith("/applications/team%2Fapp")


class TestMattermostClient:
    """Posting messages."""

    def test_post_message(self, session: MagicMock) -> None:
        session.post.return_value = _response(201, {"id": "post-1"})
        client = MattermostClient("https://chat.acme.dev/", "tok", session=session)

        assert client.post_message("chan-1", "hello") == "post-1"
        session.post.assert_called_once_with(
            "https://chat.acme.dev/api/v4/posts",
            json={"channel_id": "chan-1", "message": "hello"},
            timeout=30,
        )
        assert session.headers["Authorization"] == "Bearer tok"

    def test_thread_reply(self, session: MagicMock) -> None:
        session.post.return_value = _response(201, {"id": "post-2"})
        MattermostClient("https://chat", "tok", session=session).post_message(
            "chan-1", "reply", root_id="post-1"
        )
        assert session.post.call_args.kwargs["json"]["root_id"] == "post-1"

    def test_error_status(self, session: MagicMock) -> None:
        session.post.return_value = _response(403)
        with pytest.raises(MattermostError, match="403"):
            MattermostClient("https://chat", "tok", session=session).post_message("c", "m")

    def test_transport_error(self, session: MagicMock) -> None:
        session.post.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(MattermostError):
            MattermostClient("https://chat", "tok", session=session).post_message("c", "m")
