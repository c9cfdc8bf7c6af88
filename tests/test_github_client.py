"""Tests for the GitHub client wrapper."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from release_tools.integrations.github_client import GitHubClient


@pytest.fixture
def gh() -> MagicMock:
    with patch("release_tools.integrations.github_client.Github") as github_cls:
        yield github_cls.return_value


@pytest.fixture
def client(gh: MagicMock) -> GitHubClient:
    return GitHubClient("ghp_token")


def _repo(gh: MagicMock) -> MagicMock:
    repo = MagicMock()
    gh.get_repo.return_value = repo
    return repo


class TestGitHubClient:
    """Conversions from PyGithub objects."""

    def test_list_repositories(self, client: GitHubClient, gh: MagicMock) -> None:
        gh.get_organization.return_value.get_repos.return_value = [
            SimpleNamespace(
                name="api",
                archived=False,
                full_name="acme/api",
                html_url="https://github.com/acme/api",
            ),
            SimpleNamespace(name="old", archived=True, full_name="acme/old", html_url=None),
        ]
        repos = client.list_repositories("acme")
        gh.get_organization.assert_called_once_with("acme")
        assert [(r.name, r.archived) for r in repos] == [("api", False), ("old", True)]
        assert repos[0].full_name == "acme/api"
        assert repos[1].html_url == ""

    def test_compare_branches(self, client: GitHubClient, gh: MagicMock) -> None:
        repo = _repo(gh)
        repo.compare.return_value = SimpleNamespace(
            commits=[
                SimpleNamespace(
                    sha="a1",
                    author=SimpleNamespace(login="alice-gh"),
                    commit=SimpleNamespace(message="Add limiter"),
                ),
                SimpleNamespace(sha="b2", author=None, commit=SimpleNamespace(message="Bot")),
            ],
            files=[SimpleNamespace(filename="app.py", additions=3, deletions=1, status="modified")],
            ahead_by=2,
        )

        result = client.compare_branches("acme", "api", "main", "develop")

        gh.get_repo.assert_called_once_with("acme/api")
        repo.compare.assert_called_once_with("main", "develop")
        assert [(c.sha, c.author_login) for c in result.commits] == [("a1", "alice-gh"), ("b2", "")]
        assert result.files[0].additions == 3
        assert result.ahead_by == 2

    def test_find_pull_request(self, client: GitHubClient, gh: MagicMock) -> None:
        repo = _repo(gh)
        repo.get_pulls.return_value = [
            SimpleNamespace(
                number=7,
                html_url="https://github.com/acme/api/pull/7",
                merged=True,
                merge_commit_sha="m7",
                state="closed",
            )
        ]
        pr = client.find_pull_request("acme", "api", "develop", "main")
        repo.get_pulls.assert_called_once_with(state="all", head="acme:develop", base="main")
        assert pr.number == 7
        assert pr.merged is True
        assert pr.merge_commit_sha == "m7"

    def test_no_pull_request(self, client: GitHubClient, gh: MagicMock) -> None:
        _repo(gh).get_pulls.return_value = []
        assert client.find_pull_request("acme", "api", "develop", "main") is None

    def test_open_pull_requests(self, client: GitHubClient, gh: MagicMock) -> None:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        pr = SimpleNamespace(
            number=12,
            title="Add rate limiter",
            html_url="https://github.com/acme/api/pull/12",
            user=SimpleNamespace(login="alice-gh"),
            draft=False,
            created_at=created,
            updated_at=created,
            get_review_requests=lambda: (
                [SimpleNamespace(login="bob-gh")],
                [SimpleNamespace(slug="platform")],
            ),
        )
        repo = _repo(gh)
        repo.get_pulls.return_value = [pr]

        pulls = client.list_open_pull_requests("acme", "api")

        repo.get_pulls.assert_called_once_with(state="open")
        assert pulls[0].number == 12
        assert pulls[0].author == "alice-gh"
        assert pulls[0].updated_at == int(created.timestamp())
        assert pulls[0].requested_reviewers == ["bob-gh"]
        assert pulls[0].requested_teams == ["platform"]

    def test_team_members(self, client: GitHubClient, gh: MagicMock) -> None:
        team = gh.get_organization.return_value.get_team_by_slug.return_value
        team.get_members.return_value = [SimpleNamespace(login="bob-gh")]
        assert client.list_team_members("acme", "platform") == ["bob-gh"]
        gh.get_organization.return_value.get_team_by_slug.assert_called_once_with("platform")

    def test_workflow_runs(self, client: GitHubClient, gh: MagicMock) -> None:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        _repo(gh).get_workflow_runs.return_value = [
            SimpleNamespace(
                id=5,
                run_number=12,
                status="completed",
                conclusion=None,
                html_url="u",
                path=".github/workflows/general.yaml",
                head_sha="m7",
                created_at=created,
                updated_at=None,
            )
        ]
        runs = client.get_workflow_runs("acme", "api", "m7")
        assert runs[0].id == 5
        assert runs[0].conclusion == ""
        assert runs[0].created_at == int(created.timestamp())
        assert runs[0].updated_at == 0

    def test_workflow_jobs(self, client: GitHubClient, gh: MagicMock) -> None:
        run = _repo(gh).get_workflow_run.return_value
        run.jobs.return_value = [
            SimpleNamespace(id=1, name="helm", status="completed", conclusion="success")
        ]
        jobs = client.get_workflow_jobs("acme", "api", 5)
        assert [(j.id, j.name) for j in jobs] == [(1, "helm")]

    def test_job_logs(self, client: GitHubClient) -> None:
        with patch("release_tools.integrations.github_client.requests.get") as get:
            get.return_value.text = "Chart: api 1.0.0"
            assert client.get_job_logs("acme", "api", 9) == "Chart: api 1.0.0"
        url = get.call_args[0][0]
        assert url == "https://api.github.com/repos/acme/api/actions/jobs/9/logs"
        assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer ghp_token"
        get.return_value.raise_for_status.assert_called_once()
