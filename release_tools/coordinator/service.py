"""Release lifecycle operations on top of the state store."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Optional, Sequence

from release_tools.config import ReleaseToolsConfig
from release_tools.coordinator.deploy_order import (
    DeployOrderCalculator,
    find_unresolved_dependencies,
    nodes_from_repos,
)
from release_tools.coordinator.state import ReleaseState
from release_tools.errors import (
    AlreadyConfirmedError,
    DeployOrderError,
    InvalidApprovalTypeError,
    NotContributorError,
    ReleaseNotFoundError,
    RepoNotFoundError,
)
from release_tools.models.release import (
    ApprovalType,
    PendingAction,
    Release,
    ReleaseHistory,
    ReleaseRepo,
    ReleaseStatus,
    RepoCIStatus,
    RepoData,
    RepoDeploymentStatus,
    User,
)

logger = logging.getLogger(__name__)

FullApprovalCallback = Callable[[Release], None]


@dataclass
class ReleaseWithRepos:
    """A release and its repositories."""

    release: Release
    repos: list[ReleaseRepo] = field(default_factory=list)


@dataclass
class ReleaseDetail(ReleaseWithRepos):
    """A release with its computed deploy order.

    Exactly one of ``deploy_order`` and ``deploy_order_error`` is meaningful:
    when the order cannot be computed the error is kept and the order is
    left empty.
    """

    deploy_order: dict[Hashable, int] = field(default_factory=dict)
    deploy_order_error: Optional[DeployOrderError] = None
    unresolved_dependencies: dict[Hashable, list[str]] = field(default_factory=dict)

    def wave_of(self, repo: ReleaseRepo) -> Optional[int]:
        """Wave number of a repository, or None when unavailable."""
        return self.deploy_order.get(repo.id)

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dict with ``wave`` attached per repo."""
        repos = []
        for repo in self.repos:
            data = repo.to_dict()
            data["wave"] = self.wave_of(repo)
            repos.append(data)
        return {
            "release": self.release.to_dict(),
            "repos": repos,
            "deploy_order": {str(k): v for k, v in self.deploy_order.items()},
            "deploy_order_error": (
                str(self.deploy_order_error) if self.deploy_order_error else None
            ),
            "unresolved_dependencies": {
                str(k): v for k, v in self.unresolved_dependencies.items()
            },
        }


def is_repo_confirmed(repo: ReleaseRepo) -> bool:
    """A strict majority of contributors has confirmed the repository."""
    if not repo.contributors:
        return False
    return len(repo.confirmed_by) > len(repo.contributors) // 2


class ReleaseService:
    """Coordinates release records, approvals and confirmations."""

    def __init__(
        self,
        state: ReleaseState,
        config: Optional[ReleaseToolsConfig] = None,
        calculator: Optional[DeployOrderCalculator] = None,
    ):
        """Initialize the service.

        Args:
            state: Persistence layer.
            config: Used for ``user_mappings`` fallback lookups.
            calculator: Deploy-order calculator (default limits when omitted).
        """
        self.state = state
        self.config = config
        self.calculator = calculator or DeployOrderCalculator()
        self._on_full_approval: Optional[FullApprovalCallback] = None

    def set_full_approval_callback(self, callback: Optional[FullApprovalCallback]) -> None:
        """Register a function called when a release becomes fully approved."""
        self._on_full_approval = callback

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def create_release(
        self, source_branch: str, dest_branch: str, created_by: str, channel_id: str = ""
    ) -> Release:
        """Create a pending release."""
        release = Release(
            id=str(uuid.uuid4()),
            source_branch=source_branch,
            dest_branch=dest_branch,
            created_by=created_by,
            channel_id=channel_id,
            created_at=int(time.time()),
        )
        self.state.add_release(release)
        self.record_history(
            release.id,
            "created",
            created_by,
            {"source_branch": source_branch, "dest_branch": dest_branch},
        )
        logger.info(f"Created release {release.id} ({source_branch} -> {dest_branch})")
        return release

    def get_release(self, release_id: str) -> Release:
        """Get a release.

        Raises:
            ReleaseNotFoundError: If no release has this ID.
        """
        release = self.state.get_release(release_id)
        if release is None:
            raise ReleaseNotFoundError(release_id)
        return release

    def list_releases(self, status: Optional[str] = None) -> list[Release]:
        """List releases newest first."""
        return self.state.list_releases(status)

    def add_repos(self, release_id: str, repos: Sequence[RepoData]) -> None:
        """Attach repositories to a release."""
        self.get_release(release_id)
        for data in repos:
            self.state.add_repo(release_id, data)

    def get_release_with_repos(self, release_id: str) -> ReleaseWithRepos:
        """Get a release and its repositories."""
        release = self.get_release(release_id)
        return ReleaseWithRepos(release=release, repos=self.state.get_repos(release_id))

    def get_release_detail(self, release_id: str) -> ReleaseDetail:
        """Get a release with its deploy order computed.

        A cycle or corrupt dependency list does not fail the call; the error
        is returned in ``deploy_order_error``.
        """
        base = self.get_release_with_repos(release_id)
        detail = ReleaseDetail(release=base.release, repos=base.repos)
        nodes = nodes_from_repos(detail.repos)
        try:
            detail.deploy_order = self.calculator.compute(nodes)
            detail.unresolved_dependencies = find_unresolved_dependencies(nodes)
        except DeployOrderError as e:
            logger.warning(f"Deploy order unavailable for release {release_id}: {e}")
            detail.deploy_order = {}
            detail.deploy_order_error = e
        return detail

    def update_release(
        self,
        release_id: str,
        notes: Optional[str] = None,
        breaking_changes: Optional[str] = None,
    ) -> None:
        """Update release notes and breaking changes; None leaves a field alone."""
        self.get_release(release_id)
        updates: dict[str, Any] = {}
        if notes is not None:
            updates["notes"] = notes
        if breaking_changes is not None:
            updates["breaking_changes"] = breaking_changes
        if updates:
            self.state.update_release(release_id, **updates)

    def approve_release(self, release_id: str, approval_type: str, user: str) -> Release:
        """Record a dev or QA approval.

        When both approvals are present the release becomes ``approved``
        and the full-approval callback runs.

        Raises:
            InvalidApprovalTypeError: If ``approval_type`` is not dev or qa.
            ReleaseNotFoundError: If the release does not exist.
        """
        kind = self._approval_type(approval_type)
        self.get_release(release_id)

        now = int(time.time())
        self.state.update_release(
            release_id,
            **{f"{kind.value}_approved_by": user, f"{kind.value}_approved_at": now},
        )
        self.record_history(release_id, "approved", user, {"type": kind.value})

        release = self.get_release(release_id)
        if release.fully_approved:
            was_approved = release.status == ReleaseStatus.APPROVED
            self.state.update_release(release_id, status=ReleaseStatus.APPROVED)
            release.status = ReleaseStatus.APPROVED
            if not was_approved:
                logger.info(f"Release {release_id} fully approved")
                if self._on_full_approval is not None:
                    self._on_full_approval(release)
        return release

    def revoke_approval(
        self, release_id: str, approval_type: str, actor: str = ""
    ) -> None:
        """Clear one approval and return the release to pending."""
        kind = self._approval_type(approval_type)
        self.get_release(release_id)
        self.state.update_release(
            release_id,
            **{
                f"{kind.value}_approved_by": "",
                f"{kind.value}_approved_at": 0,
                "status": ReleaseStatus.PENDING,
            },
        )
        self.record_history(release_id, "approval_revoked", actor, {"type": kind.value})

    def decline_release(self, release_id: str, user: str) -> None:
        """Decline a release, clearing both approvals."""
        self.get_release(release_id)
        self.state.update_release(
            release_id,
            status=ReleaseStatus.DECLINED,
            declined_by=user,
            declined_at=int(time.time()),
            dev_approved_by="",
            dev_approved_at=0,
            qa_approved_by="",
            qa_approved_at=0,
        )
        self.record_history(release_id, "declined", user)

    def refresh_release(self, release_id: str) -> None:
        """Stamp the release as refreshed now."""
        self.get_release(release_id)
        self.state.update_release(release_id, last_refreshed_at=int(time.time()))

    def set_mattermost_post_id(self, release_id: str, post_id: str) -> None:
        self.state.update_release(release_id, mattermost_post_id=post_id)

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def get_repo(self, repo_id: int) -> ReleaseRepo:
        """Get a release repository.

        Raises:
            RepoNotFoundError: If no repository has this ID.
        """
        repo = self.state.get_repo(repo_id)
        if repo is None:
            raise RepoNotFoundError(repo_id)
        return repo

    def get_repos_by_release_id(self, release_id: str) -> list[ReleaseRepo]:
        return self.state.get_repos(release_id)

    def find_repo(self, release_id: str, repo_name: str) -> ReleaseRepo:
        """Look up a release repository by name.

        Raises:
            RepoNotFoundError: If the release has no repository with this name.
        """
        for repo in self.state.get_repos(release_id):
            if repo.repo_name == repo_name:
                return repo
        raise RepoNotFoundError(repo_name)

    def update_repo(
        self,
        repo_id: int,
        excluded: Optional[bool] = None,
        depends_on: Optional[Sequence[str]] = None,
        actor: str = "",
    ) -> None:
        """Change a repository's exclusion flag or dependency list.

        ``depends_on`` is encoded to JSON array text before storage.
        """
        repo = self.get_repo(repo_id)
        updates: dict[str, Any] = {}
        if excluded is not None:
            updates["excluded"] = excluded
        if depends_on is not None:
            updates["depends_on"] = list(depends_on)
        if not updates:
            return
        self.state.update_repo(repo_id, **updates)
        self.record_history(
            repo.release_id,
            "repo_updated",
            actor,
            {"repo": repo.repo_name, **updates},
        )

    def refresh_repos(self, release_id: str, repos: Sequence[RepoData]) -> None:
        """Replace a release's repositories with freshly gathered data.

        Existing repositories are updated in place by name, keeping their
        summary and breaking flag when the head SHA did not move. Repositories
        that are no longer present are deleted with their status rows.
        """
        self.get_release(release_id)
        existing_by_name = {r.repo_name: r for r in self.state.get_repos(release_id)}
        incoming = set()

        for data in repos:
            incoming.add(data.repo_name)
            existing = existing_by_name.get(data.repo_name)

            summary = data.summary
            is_breaking = data.is_breaking
            if (
                existing is not None
                and existing.head_sha
                and existing.head_sha == data.head_sha
                and existing.summary
            ):
                summary = existing.summary
                is_breaking = existing.is_breaking

            if existing is None:
                data.summary = summary
                data.is_breaking = is_breaking
                self.state.add_repo(release_id, data)
                continue

            self.state.update_repo(
                existing.id,
                commit_count=data.commit_count,
                additions=data.additions,
                deletions=data.deletions,
                pr_number=data.pr_number,
                pr_url=data.pr_url,
                pr_merged=data.pr_merged,
                summary=summary,
                is_breaking=is_breaking,
                merge_commit_sha=data.merge_commit_sha,
                head_sha=data.head_sha,
                contributors=list(data.contributors),
                infra_changes=list(data.infra_changes),
            )

        for name, existing in existing_by_name.items():
            if name not in incoming:
                logger.info(f"Removing {name} from release {release_id}")
                self.state.delete_repo(existing.id)

        self.state.update_release(release_id, last_refreshed_at=int(time.time()))
        self.record_history(release_id, "refreshed", "", {"repos": len(repos)})

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.state.get_user_by_email(email)

    def create_or_update_user(
        self, email: str, github_user: str = "", mattermost_user: str = ""
    ) -> User:
        """Create a user or fill in their identities.

        Empty values never overwrite stored ones.
        """
        now = int(time.time())
        user = self.state.get_user_by_email(email)
        if user is None:
            return self.state.add_user(
                User(
                    email=email,
                    github_user=github_user,
                    mattermost_user=mattermost_user,
                    created_at=now,
                    updated_at=now,
                )
            )

        updates: dict[str, Any] = {"updated_at": now}
        if github_user:
            updates["github_user"] = github_user
            user.github_user = github_user
        if mattermost_user:
            updates["mattermost_user"] = mattermost_user
            user.mattermost_user = mattermost_user
        self.state.update_user(user.id, **updates)
        user.updated_at = now
        return user

    # ------------------------------------------------------------------
    # Confirmations
    # ------------------------------------------------------------------

    def confirm_repo(self, repo_id: int, github_user: str) -> None:
        """Record a contributor's confirmation of a repository.

        Raises:
            RepoNotFoundError: If the repository does not exist.
            NotContributorError: If the user did not contribute to it.
            AlreadyConfirmedError: If the user already confirmed it.
        """
        repo = self.get_repo(repo_id)
        if github_user not in repo.contributors:
            raise NotContributorError(
                f"{github_user} is not a contributor to {repo.repo_name}"
            )
        if github_user in repo.confirmed_by:
            raise AlreadyConfirmedError(
                f"{github_user} already confirmed {repo.repo_name}"
            )

        self.state.update_repo(
            repo_id,
            confirmed_by=repo.confirmed_by + [github_user],
            confirmed_at=int(time.time()),
        )
        self.record_history(
            repo.release_id, "repo_confirmed", github_user, {"repo": repo.repo_name}
        )

    def unconfirm_repo(self, repo_id: int, github_user: str) -> None:
        """Withdraw a confirmation. Unknown users are ignored."""
        repo = self.get_repo(repo_id)
        remaining = [c for c in repo.confirmed_by if c != github_user]
        self.state.update_repo(
            repo_id,
            confirmed_by=remaining,
            confirmed_at=int(time.time()) if remaining else 0,
        )
        self.record_history(
            repo.release_id, "repo_unconfirmed", github_user, {"repo": repo.repo_name}
        )

    def is_repo_confirmed(self, repo: ReleaseRepo) -> bool:
        return is_repo_confirmed(repo)

    def get_pending_actions(self, detail: ReleaseWithRepos) -> list[PendingAction]:
        """Confirmations still owed by contributors of a release.

        Args:
            detail: Release with repositories (a ReleaseDetail works too).

        Returns:
            One ``confirm_repo`` action per unconfirmed contributor of each
            included repository that lacks a majority.
        """
        github_to_mattermost = {
            u.github_user: u.mattermost_user
            for u in self.state.list_users()
            if u.github_user
        }

        actions = []
        for repo in detail.repos:
            if repo.excluded or is_repo_confirmed(repo):
                continue
            confirmed = set(repo.confirmed_by)
            for contributor in repo.contributors:
                if contributor in confirmed:
                    continue
                actions.append(
                    PendingAction(
                        github_user=contributor,
                        mattermost_user=self._mattermost_user(
                            contributor, github_to_mattermost
                        ),
                        action_type="confirm_repo",
                        repo_name=repo.repo_name,
                    )
                )
        return actions

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def record_history(
        self,
        release_id: str,
        action: str,
        actor: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Append an audit entry for a release."""
        self.state.add_history(
            ReleaseHistory(
                release_id=release_id,
                action=action,
                actor=actor,
                details=details or {},
                created_at=int(time.time()),
            )
        )

    def get_history(self, release_id: str) -> list[ReleaseHistory]:
        """Audit entries of a release, newest first."""
        return self.state.get_history(release_id)

    # ------------------------------------------------------------------
    # CI and deployment records
    # ------------------------------------------------------------------

    def create_or_update_ci_status(self, status: RepoCIStatus) -> RepoCIStatus:
        return self.state.upsert_ci_status(status)

    def get_ci_status_by_repo_id(self, release_repo_id: int) -> Optional[RepoCIStatus]:
        return self.state.get_ci_status(release_repo_id)

    def get_incomplete_ci_statuses(self) -> list[RepoCIStatus]:
        return self.state.get_incomplete_ci_statuses()

    def get_ci_statuses_for_release(self, release_id: str) -> list[RepoCIStatus]:
        return self.state.get_ci_statuses_for_release(release_id)

    def create_or_update_deployment_status(
        self, status: RepoDeploymentStatus
    ) -> RepoDeploymentStatus:
        return self.state.upsert_deployment_status(status)

    def get_deployment_statuses_for_release(
        self, release_id: str
    ) -> list[RepoDeploymentStatus]:
        return self.state.get_deployment_statuses_for_release(release_id)

    def get_deployment_status(
        self, release_repo_id: int, environment: str
    ) -> Optional[RepoDeploymentStatus]:
        return self.state.get_deployment_status(release_repo_id, environment)

    def get_repos_with_successful_ci(self) -> list[ReleaseRepo]:
        return self.state.get_repos_with_successful_ci()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _approval_type(value: str) -> ApprovalType:
        try:
            return ApprovalType(value)
        except ValueError:
            raise InvalidApprovalTypeError(f"invalid approval type: {value}") from None

    def _mattermost_user(self, github_user: str, known: dict[str, str]) -> str:
        if known.get(github_user):
            return known[github_user]
        if self.config is not None:
            return self.config.mattermost_user_for(github_user)
        return ""
