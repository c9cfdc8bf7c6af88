"""ArgoCD REST client.

Reads application sync/health state through a Cloudflare Access protected
ArgoCD API.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import requests

from release_tools.errors import ArgoCDError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


@dataclass
class AppStatus:
    """Deployed state of an ArgoCD application."""

    name: str
    sync_status: str = ""
    health_status: str = ""
    current_version: str = ""  # spec.source.targetRevision

    @property
    def synced(self) -> bool:
        return self.sync_status == "Synced"

    @property
    def healthy(self) -> bool:
        return self.health_status == "Healthy"


class ArgoCDClient:
    """Client for one ArgoCD instance."""

    def __init__(
        self,
        base_url: str,
        cf_client_id: str = "",
        cf_client_secret: str = "",
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize ArgoCD client.

        Args:
            base_url: ArgoCD server root, e.g. ``https://argocd.example.com``.
            cf_client_id: Cloudflare Access service token id.
            cf_client_secret: Cloudflare Access service token secret.
            timeout: Request timeout in seconds.
            session: HTTP session (a new one when omitted).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "CF-Access-Client-Id": cf_client_id,
                "CF-Access-Client-Secret": cf_client_secret,
                "Content-Type": "application/json",
            }
        )

    def get_application(self, app_name: str) -> Optional[AppStatus]:
        """Fetch an application's status.

        Args:
            app_name: ArgoCD application name.

        Returns:
            AppStatus, or None if the application does not exist.

        Raises:
            ArgoCDError: On transport failure, unexpected status or bad JSON.
        """
        url = f"{self.base_url}/api/v1/applications/{quote(app_name, safe='')}"
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ArgoCDError(f"ArgoCD request failed for {app_name}: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ArgoCDError(f"ArgoCD API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ArgoCDError(f"Invalid ArgoCD response for {app_name}: {e}") from e

        return self._parse_app_status(data, app_name)

    @staticmethod
    def _parse_app_status(data: dict, app_name: str) -> AppStatus:
        status = data.get("status") or {}
        source = (data.get("spec") or {}).get("source") or {}
        return AppStatus(
            name=(data.get("metadata") or {}).get("name", app_name),
            sync_status=(status.get("sync") or {}).get("status", ""),
            health_status=(status.get("health") or {}).get("status", ""),
            current_version=source.get("targetRevision", ""),
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
