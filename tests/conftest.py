"""Shared fixtures for release-tools tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from release_tools.config import ReleaseToolsConfig
from release_tools.coordinator.service import ReleaseService
from release_tools.coordinator.state import ReleaseState
from release_tools.models.release import RepoData

SAMPLE_CONFIG_YAML = """\
org: acme
github_token: ghp_fromyamltoken
ignore_repos:
  - legacy-monolith
dashboard:
  base_url: https://releases.acme.dev
  sqlite_path: "{db_path}"
ci:
  poll_interval: 15
  cache_ttl: 2
argocd:
  poll_interval: 20
  environments:
    staging:
      url: https://argocd.staging.acme.dev/
      cf_client_id: staging-id
      cf_client_secret: staging-secret
      app_suffix: -stg
    production:
      url: https://argocd.acme.dev
  overrides:
    api-gateway: gateway
    auth-service-production: auth-prod
user_mappings:
  alice-gh: alice
  bob-gh: bob
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment variables out of config loading."""
    for name in (
        "GITHUB_TOKEN",
        "MATTERMOST_URL",
        "MATTERMOST_TOKEN",
        "RELEASE_DB_PATH",
        "RELEASE_TOOLS_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "state" / "releases.db")


@pytest.fixture
def state(db_path: str) -> ReleaseState:
    return ReleaseState(db_path)


@pytest.fixture
def service(state: ReleaseState) -> ReleaseService:
    config = ReleaseToolsConfig(user_mappings={"carol-gh": "carol"})
    return ReleaseService(state, config)


@pytest.fixture
def sample_repos() -> list[RepoData]:
    """Three repositories as the change collector would return them."""
    return [
        RepoData(
            repo_name="api-gateway",
            commit_count=3,
            additions=40,
            deletions=12,
            contributors=["alice-gh", "bob-gh"],
            pr_number=17,
            pr_url="https://github.com/acme/api-gateway/pull/17",
            pr_merged=True,
            summary="3 commits",
            merge_commit_sha="merge-gw",
            head_sha="head-gw",
        ),
        RepoData(
            repo_name="auth-service",
            commit_count=1,
            additions=5,
            deletions=1,
            contributors=["carol-gh"],
            summary="1 commits",
            head_sha="head-auth",
        ),
        RepoData(
            repo_name="notification-svc",
            commit_count=2,
            additions=10,
            deletions=0,
            contributors=["alice-gh", "bob-gh", "carol-gh"],
            summary="2 commits",
            head_sha="head-notif",
        ),
    ]


@pytest.fixture
def sample_config_file(tmp_path: Path) -> Path:
    """Write a full config file whose database lives under tmp_path."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        SAMPLE_CONFIG_YAML.format(db_path=str(tmp_path / "cli" / "releases.db"))
    )
    return config_file
