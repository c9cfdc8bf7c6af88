"""Mattermost REST client for release notifications."""

import logging
from typing import Optional

import requests

from release_tools.errors import MattermostError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class MattermostClient:
    """Posts messages as a Mattermost bot user."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize Mattermost client.

        Args:
            base_url: Mattermost server root.
            token: Bot access token.
            timeout: Request timeout in seconds.
            session: HTTP session (a new one when omitted).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
        )

    def post_message(self, channel_id: str, message: str, root_id: str = "") -> str:
        """Post a message, optionally as a thread reply.

        Args:
            channel_id: Target channel.
            message: Markdown text.
            root_id: Post to reply to, if any.

        Returns:
            ID of the created post.

        Raises:
            MattermostError: On transport failure or non-2xx response.
        """
        payload = {"channel_id": channel_id, "message": message}
        if root_id:
            payload["root_id"] = root_id

        try:
            response = self._session.post(
                f"{self.base_url}/api/v4/posts", json=payload, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise MattermostError(f"Mattermost request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise MattermostError(f"Mattermost API error: {response.status_code}")

        try:
            return str(response.json().get("id", ""))
        except ValueError:
            logger.warning("Mattermost returned a non-JSON post response")
            return ""

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
