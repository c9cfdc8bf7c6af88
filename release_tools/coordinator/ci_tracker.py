"""GitHub Actions tracking for merged release repositories."""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from release_tools.coordinator.service import ReleaseService
from release_tools.coordinator.status_cache import StatusCache
from release_tools.integrations.github_client import GitHubClient, WorkflowRun
from release_tools.logging import release_context
from release_tools.models.release import IN_PROGRESS_CI_STATES, ReleaseRepo, RepoCIStatus

logger = logging.getLogger(__name__)

CHART_INFO_RE = re.compile(r"Chart:\s+(\S+)\s+v?(\d+\.\d+\.\d+)")
CHART_VERSION_RE = re.compile(r"CHART_VERSION=(\d+\.\d+\.\d+)")

# Job names worth scanning for chart output
CHART_JOB_KEYWORDS = ("helm", "build", "release")

PREFERRED_WORKFLOW_SUFFIXES = ("general.yaml", "general.yml")


def map_workflow_status(status: str, conclusion: str) -> str:
    """Collapse a GitHub run status/conclusion pair into one CI state."""
    if status in ("queued", "waiting"):
        return "queued"
    if status == "in_progress":
        return "in_progress"
    if status == "completed":
        return conclusion
    return status


def select_workflow_run(runs: list[WorkflowRun]) -> Optional[WorkflowRun]:
    """Prefer the general workflow, else the first run."""
    if not runs:
        return None
    for run in runs:
        if run.path.endswith(PREFERRED_WORKFLOW_SUFFIXES):
            return run
    return runs[0]


def parse_chart_info(logs: str) -> tuple[str, str]:
    """Find ``(chart_name, chart_version)`` in job log text.

    Returns:
        Name and version, ``("", version)`` when only ``CHART_VERSION=`` is
        printed, or ``("", "")`` when neither appears.
    """
    match = CHART_INFO_RE.search(logs)
    if match:
        return match.group(1), match.group(2)
    match = CHART_VERSION_RE.search(logs)
    if match:
        return "", match.group(1)
    return "", ""


class CITracker:
    """Polls workflow runs and records CI status per release repository."""

    def __init__(
        self,
        service: ReleaseService,
        github: GitHubClient,
        org: str,
        poll_interval: float = 30.0,
        cache_ttl: float = 5.0,
    ):
        """Initialize the tracker.

        Args:
            service: Release service used for persistence.
            github: GitHub client.
            org: Organisation owning the repositories.
            poll_interval: Seconds between sweeps when run by the daemon.
            cache_ttl: Seconds release status lists stay cached.
        """
        self.service = service
        self.github = github
        self.org = org
        self.poll_interval = poll_interval
        self._cache = StatusCache(cache_ttl)

    def check_incomplete_statuses(self) -> int:
        """Poll every non-terminal CI status once.

        Returns:
            Number of statuses checked.
        """
        statuses = self.service.get_incomplete_ci_statuses()
        if not statuses:
            return 0

        logger.debug(f"Checking {len(statuses)} incomplete CI statuses")
        for status in statuses:
            try:
                self.update_ci_status(status)
            except Exception as e:
                logger.error(f"CI check failed for repo {status.release_repo_id}: {e}")

        self._cache.clear()
        return len(statuses)

    def update_ci_status(self, status: RepoCIStatus) -> RepoCIStatus:
        """Refresh one status from GitHub and store it."""
        repo = self.service.get_repo(status.release_repo_id)
        with release_context(repo.release_id, repo.repo_name):
            return self._poll_run(status, repo)

    def _poll_run(self, status: RepoCIStatus, repo: ReleaseRepo) -> RepoCIStatus:
        if not status.workflow_run_id:
            self.find_workflow_run(status, repo)
            return status

        run = self.github.get_workflow_run(self.org, repo.repo_name, status.workflow_run_id)
        status.status = map_workflow_status(run.status, run.conclusion)
        status.last_checked_at = int(time.time())

        if run.status == "completed":
            status.completed_at = run.updated_at
            if not status.chart_version:
                status.chart_name, status.chart_version = self.extract_chart_info(
                    repo.repo_name, status.workflow_run_id
                )

        return self.service.create_or_update_ci_status(status)

    def find_workflow_run(self, status: RepoCIStatus, repo: ReleaseRepo) -> bool:
        """Attach the repository's workflow run to ``status``.

        Returns:
            True if a run was found and stored.
        """
        if not repo.merge_commit_sha:
            logger.debug(f"No merge commit SHA for {repo.repo_name}")
            return False

        runs = self.github.get_workflow_runs(self.org, repo.repo_name, repo.merge_commit_sha)
        run = select_workflow_run(runs)
        if run is None:
            logger.debug(f"No workflow runs for {repo.repo_name}@{repo.merge_commit_sha}")
            return False

        status.workflow_run_id = run.id
        status.workflow_run_num = run.run_number
        status.workflow_url = run.html_url
        status.status = map_workflow_status(run.status, run.conclusion)
        status.merge_commit_sha = run.head_sha
        status.started_at = run.created_at
        status.last_checked_at = int(time.time())
        if run.status == "completed":
            status.completed_at = run.updated_at

        self.service.create_or_update_ci_status(status)
        logger.info(
            f"Found workflow run {run.id} ({run.path}) for {repo.repo_name}: {status.status}"
        )
        return True

    def init_ci_tracking(self, release_id: str) -> list[RepoCIStatus]:
        """Create pending CI statuses for a release's included repositories."""
        repos = self.service.get_repos_by_release_id(release_id)
        logger.info(f"Initializing CI tracking for {len(repos)} repos in {release_id}")

        created = []
        for repo in repos:
            if repo.excluded:
                continue
            status = self.service.create_or_update_ci_status(
                RepoCIStatus(
                    release_repo_id=repo.id,
                    status="pending",
                    merge_commit_sha=repo.merge_commit_sha,
                    last_checked_at=int(time.time()),
                )
            )
            created.append(status)

            with release_context(release_id, repo.repo_name):
                if not repo.merge_commit_sha:
                    logger.warning(
                        f"No merge commit SHA for {repo.repo_name}; PR may not be merged"
                    )
                    continue
                try:
                    self.find_workflow_run(status, repo)
                except Exception as e:
                    logger.error(f"Workflow lookup failed for {repo.repo_name}: {e}")

        self.invalidate_cache(release_id)
        return created

    def get_cached_ci_statuses(self, release_id: str) -> tuple[list[RepoCIStatus], bool]:
        """CI statuses of a release and whether any is still running."""
        statuses = self._cache.get_or_fetch(
            release_id, lambda: self.service.get_ci_statuses_for_release(release_id)
        )
        return statuses, any(s.status in IN_PROGRESS_CI_STATES for s in statuses)

    def invalidate_cache(self, release_id: str) -> None:
        self._cache.invalidate(release_id)

    def extract_chart_info(self, repo_name: str, run_id: int) -> tuple[str, str]:
        """Scan chart-building job logs of a run for chart name and version."""
        try:
            jobs = self.github.get_workflow_jobs(self.org, repo_name, run_id)
        except Exception as e:
            logger.error(f"Failed to list jobs of run {run_id} in {repo_name}: {e}")
            return "", ""

        for job in jobs:
            name = job.name.lower()
            if not any(keyword in name for keyword in CHART_JOB_KEYWORDS):
                continue
            try:
                logs = self.github.get_job_logs(self.org, repo_name, job.id)
            except Exception as e:
                logger.debug(f"Failed to fetch logs of job {job.id} in {repo_name}: {e}")
                continue

            chart_name, chart_version = parse_chart_info(logs)
            if chart_version:
                logger.info(f"Chart for {repo_name}: {chart_name or '?'} {chart_version}")
                return chart_name, chart_version

        logger.debug(f"No chart info in run {run_id} of {repo_name}")
        return "", ""

    def refresh_chart_info(self, release_repo_id: int) -> tuple[str, str]:
        """Re-read chart info for a repository whose run has finished.

        Raises:
            RepoNotFoundError: If the repository does not exist.
            ValueError: If no workflow run is recorded for it yet.
        """
        repo = self.service.get_repo(release_repo_id)
        status = self.service.get_ci_status_by_repo_id(release_repo_id)
        if status is None or not status.workflow_run_id:
            raise ValueError(f"No workflow run recorded for {repo.repo_name}")

        chart_name, chart_version = self.extract_chart_info(
            repo.repo_name, status.workflow_run_id
        )
        if chart_version:
            status.chart_name = chart_name
            status.chart_version = chart_version
            self.service.create_or_update_ci_status(status)
            self.invalidate_cache(repo.release_id)
        return chart_name, chart_version
