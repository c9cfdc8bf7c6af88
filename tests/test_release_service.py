"""Tests for release lifecycle operations."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from release_tools.coordinator.service import ReleaseService, is_repo_confirmed
from release_tools.errors import (
    AlreadyConfirmedError,
    CorruptRecordError,
    CycleError,
    DeployOrderError,
    InvalidApprovalTypeError,
    NotContributorError,
    ParseError,
    ReleaseNotFoundError,
    RepoNotFoundError,
)
from release_tools.models.release import ReleaseRepo, ReleaseStatus, RepoData


@pytest.fixture
def release_id(service: ReleaseService, sample_repos: list[RepoData]) -> str:
    release = service.create_release("develop", "main", "alice", "chan-1")
    service.add_repos(release.id, sample_repos)
    return release.id


def _repo_id(service: ReleaseService, release_id: str, name: str) -> int:
    return service.find_repo(release_id, name).id


class TestCreateAndFetch:
    """Creating and reading releases."""

    def test_create_release(self, service: ReleaseService) -> None:
        release = service.create_release("develop", "main", "alice", "chan-1")
        stored = service.get_release(release.id)
        assert stored.status == ReleaseStatus.PENDING
        assert stored.created_by == "alice"
        assert stored.created_at > 0
        assert [h.action for h in service.get_history(release.id)] == ["created"]

    def test_missing_release(self, service: ReleaseService) -> None:
        with pytest.raises(ReleaseNotFoundError) as exc_info:
            service.get_release("nope")
        assert str(exc_info.value) == "Release not found: nope"

    def test_add_repos_to_missing_release(
        self, service: ReleaseService, sample_repos: list[RepoData]
    ) -> None:
        with pytest.raises(ReleaseNotFoundError):
            service.add_repos("nope", sample_repos)

    def test_release_with_repos(self, service: ReleaseService, release_id: str) -> None:
        result = service.get_release_with_repos(release_id)
        assert result.release.id == release_id
        assert len(result.repos) == 3

    def test_update_release_notes(self, service: ReleaseService, release_id: str) -> None:
        service.update_release(release_id, notes="Quarterly release")
        service.update_release(release_id, breaking_changes="Drops v1 API")
        release = service.get_release(release_id)
        assert release.notes == "Quarterly release"
        assert release.breaking_changes == "Drops v1 API"

    def test_find_repo_missing(self, service: ReleaseService, release_id: str) -> None:
        with pytest.raises(RepoNotFoundError, match="Repo not found: web"):
            service.find_repo(release_id, "web")


class TestReleaseDetail:
    """Deploy order attached to release detail."""

    def test_waves_attached(self, service: ReleaseService, release_id: str) -> None:
        gateway = _repo_id(service, release_id, "api-gateway")
        auth = _repo_id(service, release_id, "auth-service")
        notif = _repo_id(service, release_id, "notification-svc")
        service.update_repo(gateway, depends_on=["auth-service"])
        service.update_repo(notif, depends_on=["api-gateway"])

        detail = service.get_release_detail(release_id)
        assert detail.deploy_order_error is None
        assert detail.deploy_order == {auth: 1, gateway: 2, notif: 3}

        data = detail.to_dict()
        waves = {r["repo_name"]: r["wave"] for r in data["repos"]}
        assert waves == {"api-gateway": 2, "auth-service": 1, "notification-svc": 3}
        json.dumps(data)

    def test_cycle_reported_not_raised(self, service: ReleaseService, release_id: str) -> None:
        service.update_repo(
            _repo_id(service, release_id, "api-gateway"), depends_on=["auth-service"]
        )
        service.update_repo(
            _repo_id(service, release_id, "auth-service"), depends_on=["api-gateway"]
        )
        detail = service.get_release_detail(release_id)
        assert isinstance(detail.deploy_order_error, CycleError)
        assert detail.deploy_order == {}
        assert all(detail.wave_of(repo) is None for repo in detail.repos)
        assert "circular dependency" in detail.to_dict()["deploy_order_error"]

    def test_corrupt_dependencies_reported(
        self, service: ReleaseService, release_id: str
    ) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.state.update_repo(repo_id, depends_on="[not json")
        detail = service.get_release_detail(release_id)
        assert isinstance(detail.deploy_order_error, ParseError)
        assert len(detail.repos) == 3

    def test_corrupt_contributors_not_a_deploy_order_error(
        self, service: ReleaseService, release_id: str
    ) -> None:
        repo_id = _repo_id(service, release_id, "auth-service")
        service.state.update_repo(repo_id, contributors="[broken")
        with pytest.raises(CorruptRecordError, match="auth-service") as exc_info:
            service.get_release_detail(release_id)
        assert not isinstance(exc_info.value, DeployOrderError)

    def test_unresolved_dependencies(self, service: ReleaseService, release_id: str) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.update_repo(repo_id, depends_on=["auth-svc"])
        detail = service.get_release_detail(release_id)
        assert detail.deploy_order[repo_id] == 1
        assert detail.unresolved_dependencies == {repo_id: ["auth-svc"]}


class TestApprovals:
    """Dev and QA approvals."""

    def test_single_approval_stays_pending(
        self, service: ReleaseService, release_id: str
    ) -> None:
        release = service.approve_release(release_id, "dev", "dave")
        assert release.status == ReleaseStatus.PENDING
        assert release.dev_approved_by == "dave"
        assert release.dev_approved_at > 0

    def test_both_approvals_approve_and_notify(
        self, service: ReleaseService, release_id: str
    ) -> None:
        callback = MagicMock()
        service.set_full_approval_callback(callback)
        service.approve_release(release_id, "dev", "dave")
        callback.assert_not_called()

        release = service.approve_release(release_id, "qa", "quinn")
        assert release.status == ReleaseStatus.APPROVED
        assert service.get_release(release_id).status == ReleaseStatus.APPROVED
        callback.assert_called_once()
        assert callback.call_args[0][0].qa_approved_by == "quinn"

    def test_reapproval_does_not_notify_again(
        self, service: ReleaseService, release_id: str
    ) -> None:
        callback = MagicMock()
        service.set_full_approval_callback(callback)
        service.approve_release(release_id, "dev", "dave")
        service.approve_release(release_id, "qa", "quinn")
        service.approve_release(release_id, "qa", "quentin")
        assert callback.call_count == 1

    def test_invalid_type(self, service: ReleaseService, release_id: str) -> None:
        with pytest.raises(InvalidApprovalTypeError, match="invalid approval type: ops"):
            service.approve_release(release_id, "ops", "otto")

    def test_missing_release(self, service: ReleaseService) -> None:
        with pytest.raises(ReleaseNotFoundError):
            service.approve_release("nope", "dev", "dave")

    def test_revoke_returns_to_pending(self, service: ReleaseService, release_id: str) -> None:
        service.approve_release(release_id, "dev", "dave")
        service.approve_release(release_id, "qa", "quinn")
        service.revoke_approval(release_id, "qa", actor="quinn")
        release = service.get_release(release_id)
        assert release.status == ReleaseStatus.PENDING
        assert release.qa_approved_by == ""
        assert release.dev_approved_by == "dave"

    def test_approve_after_revoke_notifies_again(
        self, service: ReleaseService, release_id: str
    ) -> None:
        callback = MagicMock()
        service.set_full_approval_callback(callback)
        service.approve_release(release_id, "dev", "dave")
        service.approve_release(release_id, "qa", "quinn")
        service.revoke_approval(release_id, "qa")
        service.approve_release(release_id, "qa", "quinn")
        assert callback.call_count == 2

    def test_decline_clears_approvals(self, service: ReleaseService, release_id: str) -> None:
        service.approve_release(release_id, "dev", "dave")
        service.decline_release(release_id, "quinn")
        release = service.get_release(release_id)
        assert release.status == ReleaseStatus.DECLINED
        assert release.declined_by == "quinn"
        assert release.dev_approved_by == ""
        assert release.qa_approved_by == ""

    def test_history_recorded(self, service: ReleaseService, release_id: str) -> None:
        service.approve_release(release_id, "dev", "dave")
        service.decline_release(release_id, "quinn")
        actions = [h.action for h in service.get_history(release_id)]
        assert actions[:2] == ["declined", "approved"]


class TestRepoUpdates:
    """Exclusion, dependencies and refresh."""

    def test_exclude(self, service: ReleaseService, release_id: str) -> None:
        repo_id = _repo_id(service, release_id, "auth-service")
        service.update_repo(repo_id, excluded=True, actor="alice")
        assert service.get_repo(repo_id).excluded is True
        entry = service.get_history(release_id)[0]
        assert entry.action == "repo_updated"
        assert entry.details == {"repo": "auth-service", "excluded": True}

    def test_update_missing_repo(self, service: ReleaseService) -> None:
        with pytest.raises(RepoNotFoundError):
            service.update_repo(999, excluded=True)

    def test_refresh_keeps_summary_when_head_unchanged(
        self, service: ReleaseService, release_id: str
    ) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.state.update_repo(repo_id, summary="Adds rate limiting", is_breaking=True)

        service.refresh_repos(
            release_id,
            [RepoData(repo_name="api-gateway", commit_count=3, summary="3 commits", head_sha="head-gw")],
        )
        repo = service.get_repo(repo_id)
        assert repo.summary == "Adds rate limiting"
        assert repo.is_breaking is True

    def test_refresh_replaces_summary_when_head_moves(
        self, service: ReleaseService, release_id: str
    ) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.state.update_repo(repo_id, summary="Adds rate limiting", is_breaking=True)

        service.refresh_repos(
            release_id,
            [RepoData(repo_name="api-gateway", commit_count=4, summary="4 commits", head_sha="head-gw-2")],
        )
        repo = service.get_repo(repo_id)
        assert repo.summary == "4 commits"
        assert repo.is_breaking is False
        assert repo.commit_count == 4

    def test_refresh_adds_and_removes(
        self, service: ReleaseService, release_id: str
    ) -> None:
        service.refresh_repos(
            release_id,
            [
                RepoData(repo_name="api-gateway", head_sha="head-gw"),
                RepoData(repo_name="billing", contributors=["dan-gh"], head_sha="b1"),
            ],
        )
        names = [r.repo_name for r in service.get_repos_by_release_id(release_id)]
        assert names == ["api-gateway", "billing"]
        assert service.get_release(release_id).last_refreshed_at > 0

    def test_refresh_keeps_user_edits(self, service: ReleaseService, release_id: str) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.update_repo(repo_id, excluded=True, depends_on=["auth-service"])
        service.refresh_repos(release_id, [RepoData(repo_name="api-gateway", head_sha="x")])
        repo = service.get_repo(repo_id)
        assert repo.excluded is True
        assert repo.depends_on == ["auth-service"]


class TestConfirmations:
    """Contributor confirmations and pending actions."""

    def test_majority_rule(self) -> None:
        repo = ReleaseRepo(
            id=1, release_id="r", repo_name="x", contributors=["a", "b", "c", "d"]
        )
        repo.confirmed_by = ["a", "b"]
        assert not is_repo_confirmed(repo)
        repo.confirmed_by = ["a", "b", "c"]
        assert is_repo_confirmed(repo)

    def test_no_contributors_never_confirmed(self) -> None:
        assert not is_repo_confirmed(ReleaseRepo(id=1, release_id="r", repo_name="x"))

    def test_confirm(self, service: ReleaseService, release_id: str) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.confirm_repo(repo_id, "alice-gh")
        repo = service.get_repo(repo_id)
        assert repo.confirmed_by == ["alice-gh"]
        assert repo.confirmed_at > 0
        assert not service.is_repo_confirmed(repo)

        service.confirm_repo(repo_id, "bob-gh")
        assert service.is_repo_confirmed(service.get_repo(repo_id))

    def test_confirm_requires_contributor(
        self, service: ReleaseService, release_id: str
    ) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        with pytest.raises(NotContributorError):
            service.confirm_repo(repo_id, "carol-gh")

    def test_confirm_twice(self, service: ReleaseService, release_id: str) -> None:
        repo_id = _repo_id(service, release_id, "api-gateway")
        service.confirm_repo(repo_id, "alice-gh")
        with pytest.raises(AlreadyConfirmedError):
            service.confirm_repo(repo_id, "alice-gh")

    def test_unconfirm(self, service: ReleaseService, release_id: str) -> None:
        repo_id = _repo_id(service, release_id, "auth-service")
        service.confirm_repo(repo_id, "carol-gh")
        service.unconfirm_repo(repo_id, "carol-gh")
        repo = service.get_repo(repo_id)
        assert repo.confirmed_by == []
        assert repo.confirmed_at == 0

    def test_pending_actions(self, service: ReleaseService, release_id: str) -> None:
        service.create_or_update_user("alice@acme.dev", github_user="alice-gh", mattermost_user="alice")
        service.confirm_repo(_repo_id(service, release_id, "auth-service"), "carol-gh")
        service.confirm_repo(_repo_id(service, release_id, "notification-svc"), "alice-gh")

        detail = service.get_release_detail(release_id)
        actions = service.get_pending_actions(detail)
        pairs = [(a.repo_name, a.github_user, a.mattermost_user) for a in actions]
        assert pairs == [
            ("api-gateway", "alice-gh", "alice"),
            ("api-gateway", "bob-gh", ""),
            ("notification-svc", "bob-gh", ""),
            ("notification-svc", "carol-gh", "carol"),
        ]
        assert all(a.action_type == "confirm_repo" for a in actions)

    def test_excluded_repos_need_no_confirmation(
        self, service: ReleaseService, release_id: str
    ) -> None:
        for name in ("api-gateway", "notification-svc"):
            service.update_repo(_repo_id(service, release_id, name), excluded=True)
        detail = service.get_release_with_repos(release_id)
        assert [a.repo_name for a in service.get_pending_actions(detail)] == ["auth-service"]


class TestUsers:
    """User identity records."""

    def test_create_then_fill_in(self, service: ReleaseService) -> None:
        service.create_or_update_user("bob@acme.dev", github_user="bob-gh")
        user = service.create_or_update_user("bob@acme.dev", mattermost_user="bob")
        assert user.github_user == "bob-gh"
        assert user.mattermost_user == "bob"
        stored = service.get_user_by_email("bob@acme.dev")
        assert stored.github_user == "bob-gh"
        assert stored.mattermost_user == "bob"
