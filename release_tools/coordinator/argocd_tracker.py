"""ArgoCD rollout tracking for repositories whose CI produced a chart."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from release_tools.config import ArgoCDConfig
from release_tools.coordinator.service import ReleaseService
from release_tools.coordinator.status_cache import StatusCache
from release_tools.integrations.argocd_client import AppStatus, ArgoCDClient
from release_tools.logging import release_context
from release_tools.models.release import ReleaseRepo, RepoDeploymentStatus

logger = logging.getLogger(__name__)


def determine_rollout_status(app: Optional[AppStatus], expected_version: str) -> str:
    """Classify an application's state against the CI-built chart version."""
    if app is None:
        return "not_found"
    if app.current_version != expected_version:
        return "pending"
    if not app.synced:
        return "syncing"
    if not app.healthy:
        return "unhealthy"
    return "deployed"


class ArgoCDTracker:
    """Polls ArgoCD environments and records per-repo rollout status."""

    def __init__(
        self,
        service: ReleaseService,
        config: ArgoCDConfig,
        clients: Optional[Dict[str, ArgoCDClient]] = None,
    ):
        """Initialize the tracker.

        Args:
            service: Release service used for persistence.
            config: Environments, app name overrides and timings.
            clients: Per-environment clients; built from ``config`` when omitted.
        """
        self.service = service
        self.config = config
        self.poll_interval = config.poll_interval
        if clients is None:
            clients = {
                name: ArgoCDClient(env.url, env.cf_client_id, env.cf_client_secret)
                for name, env in config.environments.items()
            }
        self.clients = clients
        self._cache = StatusCache(config.cache_ttl)

    def resolve_app_name(self, repo_name: str, environment: str) -> str:
        """ArgoCD application name for a repository in an environment.

        Lookup order: override ``<repo>-<env>``, override ``<repo>``,
        ``<repo><app_suffix>``, then the repository name itself.
        """
        overrides = self.config.overrides
        env_key = f"{repo_name}-{environment}"
        if env_key in overrides:
            return overrides[env_key]
        if repo_name in overrides:
            return overrides[repo_name]

        env = self.config.environments.get(environment)
        if env is not None and env.app_suffix:
            return repo_name + env.app_suffix
        return repo_name

    def check_pending_deployments(self) -> int:
        """Poll every environment for repositories with a successful CI build.

        Returns:
            Number of repositories checked.
        """
        repos = self.service.get_repos_with_successful_ci()
        if not repos:
            return 0

        logger.debug(f"Checking deployments of {len(repos)} repos")
        for repo in repos:
            try:
                self.update_deployment_status(repo)
            except Exception as e:
                logger.error(f"Deployment check failed for {repo.repo_name}: {e}")

        self._cache.clear()
        return len(repos)

    def update_deployment_status(self, repo: ReleaseRepo) -> list[RepoDeploymentStatus]:
        """Read the repository's app in each environment and store the result."""
        with release_context(repo.release_id, repo.repo_name):
            return self._poll_environments(repo)

    def _poll_environments(self, repo: ReleaseRepo) -> list[RepoDeploymentStatus]:
        ci_status = self.service.get_ci_status_by_repo_id(repo.id)
        if ci_status is None or not ci_status.chart_version:
            logger.debug(f"No chart version for {repo.repo_name}")
            return []

        expected = ci_status.chart_version
        stored = []
        for env_name, client in self.clients.items():
            app_name = self.resolve_app_name(repo.repo_name, env_name)
            try:
                app = client.get_application(app_name)
            except Exception as e:
                logger.error(f"Failed to read {app_name} in {env_name}: {e}")
                continue

            status = RepoDeploymentStatus(
                release_repo_id=repo.id,
                environment=env_name,
                app_name=app_name,
                expected_version=expected,
                rollout_status=determine_rollout_status(app, expected),
                last_checked_at=int(time.time()),
            )
            if app is not None:
                status.current_version = app.current_version
                status.sync_status = app.sync_status
                status.health_status = app.health_status

            stored.append(self.service.create_or_update_deployment_status(status))

        if stored and all(s.rollout_status == "deployed" for s in stored):
            logger.debug(f"{repo.repo_name} {expected} deployed everywhere")
        return stored

    def init_deployment_tracking(self, release_id: str) -> list[RepoDeploymentStatus]:
        """Create pending deployment rows for repositories with a built chart."""
        repos = self.service.get_repos_by_release_id(release_id)
        logger.info(f"Initializing deployment tracking for {len(repos)} repos in {release_id}")

        created = []
        for repo in repos:
            if repo.excluded:
                continue
            ci_status = self.service.get_ci_status_by_repo_id(repo.id)
            if ci_status is None or ci_status.status != "success" or not ci_status.chart_version:
                with release_context(release_id, repo.repo_name):
                    logger.debug(f"Skipping {repo.repo_name}: no successful build with a chart")
                continue

            for env_name in self.clients:
                created.append(
                    self.service.create_or_update_deployment_status(
                        RepoDeploymentStatus(
                            release_repo_id=repo.id,
                            environment=env_name,
                            app_name=self.resolve_app_name(repo.repo_name, env_name),
                            expected_version=ci_status.chart_version,
                            rollout_status="pending",
                            last_checked_at=int(time.time()),
                        )
                    )
                )

        self.invalidate_cache(release_id)
        return created

    def get_cached_deployment_statuses(
        self, release_id: str
    ) -> tuple[list[RepoDeploymentStatus], bool]:
        """Deployment statuses of a release and whether any still needs attention."""
        statuses = self._cache.get_or_fetch(
            release_id,
            lambda: self.service.get_deployment_statuses_for_release(release_id),
        )
        return statuses, any(s.pending for s in statuses)

    def invalidate_cache(self, release_id: str) -> None:
        self._cache.invalidate(release_id)
