"""Tests for the dashboard data client."""

from __future__ import annotations

import pytest

from release_tools.dashboard.data import (
    ReleaseDataClient,
    build_repo_rows,
    deploy_order_message,
    format_ts,
)
from release_tools.errors import CorruptRecordError
from release_tools.models.release import RepoCIStatus, RepoData, RepoDeploymentStatus


@pytest.fixture
def client(db_path: str) -> ReleaseDataClient:
    return ReleaseDataClient(db_path)


@pytest.fixture
def release_id(client: ReleaseDataClient, sample_repos: list[RepoData]) -> str:
    release = client.service.create_release("develop", "main", "alice")
    client.service.add_repos(release.id, sample_repos)
    return release.id


class TestReleaseDataClient:
    """Reads used by the pages."""

    def test_missing_release(self, client: ReleaseDataClient) -> None:
        assert client.get_release_detail("nope") is None

    def test_corrupt_repo_row(self, client: ReleaseDataClient, release_id: str) -> None:
        repo = client.service.find_repo(release_id, "notification-svc")
        client.service.state.update_repo(repo.id, confirmed_by="[oops")
        with pytest.raises(CorruptRecordError, match="notification-svc"):
            client.get_release_detail(release_id)

    def test_list_and_detail(self, client: ReleaseDataClient, release_id: str) -> None:
        assert [r.id for r in client.list_releases()] == [release_id]
        assert [r.id for r in client.list_releases("approved")] == []
        detail = client.get_release_detail(release_id)
        assert len(detail.repos) == 3

    def test_status_maps(self, client: ReleaseDataClient, release_id: str) -> None:
        service = client.service
        repo = service.find_repo(release_id, "api-gateway")
        service.create_or_update_ci_status(
            RepoCIStatus(release_repo_id=repo.id, status="success", chart_version="1.0.0")
        )
        for env in ("staging", "production"):
            service.create_or_update_deployment_status(
                RepoDeploymentStatus(release_repo_id=repo.id, environment=env)
            )

        assert client.get_ci_statuses(release_id)[repo.id].chart_version == "1.0.0"
        assert len(client.get_deployment_statuses(release_id)[repo.id]) == 2

    def test_refresh_drops_cache(self, client: ReleaseDataClient, release_id: str) -> None:
        assert client.get_ci_statuses(release_id) == {}
        repo = client.service.find_repo(release_id, "auth-service")
        client.service.create_or_update_ci_status(RepoCIStatus(release_repo_id=repo.id))
        assert client.get_ci_statuses(release_id) == {}
        client.refresh()
        assert repo.id in client.get_ci_statuses(release_id)


class TestRows:
    """Table rows for the release detail page."""

    def test_rows_ordered_by_wave(self, client: ReleaseDataClient, release_id: str) -> None:
        service = client.service
        gateway = service.find_repo(release_id, "api-gateway")
        notif = service.find_repo(release_id, "notification-svc")
        service.update_repo(notif.id, depends_on=["api-gateway"])
        service.update_repo(gateway.id, depends_on=["auth-service"])
        service.confirm_repo(gateway.id, "alice-gh")
        service.confirm_repo(gateway.id, "bob-gh")

        detail = client.get_release_detail(release_id)
        ci = {gateway.id: RepoCIStatus(release_repo_id=gateway.id, status="success", chart_version="1.2.0")}
        deployments = {
            gateway.id: [
                RepoDeploymentStatus(gateway.id, "staging", rollout_status="deployed"),
                RepoDeploymentStatus(gateway.id, "production", rollout_status="syncing"),
            ]
        }
        rows = build_repo_rows(detail, ci, deployments)

        assert [(r["wave"], r["repo"]) for r in rows] == [
            (1, "auth-service"),
            (2, "api-gateway"),
            (3, "notification-svc"),
        ]
        gateway_row = rows[1]
        assert gateway_row["changes"] == "+40/-12"
        assert gateway_row["confirmed"] == "2/2"
        assert gateway_row["ready"] is True
        assert gateway_row["ci"] == "success"
        assert gateway_row["chart"] == "1.2.0"
        assert gateway_row["deployments"] == "staging: deployed, production: syncing"
        assert deploy_order_message(detail) == ""

    def test_rows_without_order(self, client: ReleaseDataClient, release_id: str) -> None:
        service = client.service
        a = service.find_repo(release_id, "api-gateway")
        b = service.find_repo(release_id, "auth-service")
        service.update_repo(a.id, depends_on=["auth-service"])
        service.update_repo(b.id, depends_on=["api-gateway"])

        detail = client.get_release_detail(release_id)
        rows = build_repo_rows(detail, {}, {})
        assert all(r["wave"] is None for r in rows)
        assert [r["repo"] for r in rows] == ["api-gateway", "auth-service", "notification-svc"]
        assert deploy_order_message(detail).startswith(
            "cannot compute deploy order: circular dependency detected"
        )

    def test_format_ts(self) -> None:
        assert format_ts(0) == ""
        assert len(format_ts(1_700_000_000)) == len("2023-11-14 22:13")
