"""Data client for the release dashboard.

Reads the release SQLite store directly. Status lists are cached briefly
so auto-refresh does not hammer the database.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from release_tools.config import ReleaseToolsConfig
from release_tools.coordinator.deploy_order import describe_deploy_order_error
from release_tools.coordinator.service import ReleaseDetail, ReleaseService, is_repo_confirmed
from release_tools.coordinator.state import ReleaseState
from release_tools.coordinator.status_cache import StatusCache
from release_tools.errors import CorruptRecordError, ReleaseNotFoundError
from release_tools.models.release import (
    PendingAction,
    Release,
    ReleaseHistory,
    RepoCIStatus,
    RepoDeploymentStatus,
)

logger = logging.getLogger(__name__)

# Cache TTL in seconds
STATUS_CACHE_TTL = 5


class ReleaseDataClient:
    """Fetches release data for dashboard pages."""

    def __init__(self, db_path: str, config: Optional[ReleaseToolsConfig] = None):
        """Initialize data client.

        Args:
            db_path: Path to the release SQLite database.
            config: Used for user mapping fallbacks in pending actions.
        """
        self.db_path = db_path
        self._config = config
        self._service: Optional[ReleaseService] = None
        self._ci_cache = StatusCache(STATUS_CACHE_TTL)
        self._deploy_cache = StatusCache(STATUS_CACHE_TTL)

    @property
    def service(self) -> ReleaseService:
        """Lazily open the release store."""
        if self._service is None:
            self._service = ReleaseService(ReleaseState(self.db_path), self._config)
        return self._service

    def list_releases(self, status: Optional[str] = None) -> List[Release]:
        return self.service.list_releases(status)

    def get_release_detail(self, release_id: str) -> Optional[ReleaseDetail]:
        """Release with deploy order, or None when it does not exist.

        Raises:
            CorruptRecordError: If a stored repository row cannot be decoded.
        """
        try:
            return self.service.get_release_detail(release_id)
        except ReleaseNotFoundError:
            logger.debug(f"Release {release_id} not found")
            return None
        except CorruptRecordError as e:
            logger.error(f"Cannot load release {release_id}: {e}")
            raise

    def get_ci_statuses(self, release_id: str) -> Dict[int, RepoCIStatus]:
        """CI status per release repository id."""
        statuses = self._ci_cache.get_or_fetch(
            release_id, lambda: self.service.get_ci_statuses_for_release(release_id)
        )
        return {s.release_repo_id: s for s in statuses}

    def get_deployment_statuses(
        self, release_id: str
    ) -> Dict[int, List[RepoDeploymentStatus]]:
        """Deployment statuses per release repository id."""
        statuses = self._deploy_cache.get_or_fetch(
            release_id,
            lambda: self.service.get_deployment_statuses_for_release(release_id),
        )
        grouped: Dict[int, List[RepoDeploymentStatus]] = {}
        for status in statuses:
            grouped.setdefault(status.release_repo_id, []).append(status)
        return grouped

    def get_pending_actions(self, detail: ReleaseDetail) -> List[PendingAction]:
        return self.service.get_pending_actions(detail)

    def get_history(self, release_id: str) -> List[ReleaseHistory]:
        return self.service.get_history(release_id)

    def refresh(self) -> None:
        """Drop cached status lists."""
        self._ci_cache.clear()
        self._deploy_cache.clear()


def deploy_order_message(detail: ReleaseDetail) -> str:
    """Error banner text, or '' when the order is available."""
    return describe_deploy_order_error(detail.deploy_order_error)


def build_repo_rows(
    detail: ReleaseDetail,
    ci: Dict[int, RepoCIStatus],
    deployments: Dict[int, List[RepoDeploymentStatus]],
) -> List[Dict[str, Any]]:
    """Flatten a release's repositories into table rows ordered by wave.

    ``wave`` is None for every row when the deploy order is unavailable.
    """
    rows = []
    for repo in detail.repos:
        ci_status = ci.get(repo.id)
        rows.append(
            {
                "wave": detail.wave_of(repo),
                "repo": repo.repo_name,
                "excluded": repo.excluded,
                "commits": repo.commit_count,
                "changes": f"+{repo.additions}/-{repo.deletions}",
                "pr": repo.pr_url or "",
                "merged": repo.pr_merged,
                "confirmed": f"{len(repo.confirmed_by)}/{len(repo.contributors)}",
                "ready": is_repo_confirmed(repo),
                "breaking": repo.is_breaking,
                "ci": ci_status.status if ci_status else "",
                "chart": ci_status.chart_version if ci_status else "",
                "deployments": ", ".join(
                    f"{d.environment}: {d.rollout_status}"
                    for d in deployments.get(repo.id, [])
                ),
            }
        )
    rows.sort(key=lambda r: (r["wave"] if r["wave"] is not None else 0, r["repo"]))
    return rows


def format_ts(ts: int) -> str:
    """Unix seconds as a short local time, '' when unset."""
    if not ts:
        return ""
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")
