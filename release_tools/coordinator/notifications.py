"""Chat notifications for release events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from release_tools.errors import MattermostError
from release_tools.models.release import Release

if TYPE_CHECKING:
    from release_tools.coordinator.service import ReleaseService
    from release_tools.integrations.mattermost_client import MattermostClient

logger = logging.getLogger(__name__)


def format_full_approval_message(release: Release, base_url: str = "") -> str:
    """Plain message announcing a release is ready to deploy."""
    lines = [
        "**Release Ready to Deploy**",
        f"`{release.source_branch}` -> `{release.dest_branch}`",
        f"Approved by: Dev ({release.dev_approved_by}), QA ({release.qa_approved_by})",
    ]
    if base_url:
        lines.append(f"[View Details]({base_url.rstrip('/')}/releases/{release.id})")
    return "\n".join(lines)


class ReleaseNotifier:
    """Posts to a release's Mattermost channel when it is fully approved."""

    def __init__(self, client: Optional[MattermostClient] = None, base_url: str = ""):
        """Initialize the notifier.

        Args:
            client: Mattermost client. Without one, notifications are only logged.
            base_url: Dashboard root used for the details link.
        """
        self.client = client
        self.base_url = base_url

    def attach(self, service: ReleaseService) -> None:
        """Register as the service's full-approval callback."""
        service.set_full_approval_callback(self.notify_full_approval)

    def notify_full_approval(self, release: Release) -> bool:
        """Announce a fully approved release.

        Posting failures are logged, never raised, so an approval is not
        undone by a chat outage.

        Returns:
            True if a message was posted.
        """
        if self.client is None or not release.channel_id:
            logger.info(f"Release {release.id} fully approved (no channel to notify)")
            return False

        message = format_full_approval_message(release, self.base_url)
        try:
            self.client.post_message(release.channel_id, message)
        except MattermostError as e:
            logger.error(f"Failed to post approval for release {release.id}: {e}")
            return False

        logger.info(f"Posted full approval for release {release.id}")
        return True
