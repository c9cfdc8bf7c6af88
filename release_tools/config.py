"""Configuration for release-tools.

Values come from a YAML file (``config.yaml`` by default) with environment
variables taking precedence for secrets and paths. A ``.env`` file in the
working directory is loaded first.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

# Load .env from current working directory
load_dotenv(os.path.join(os.getcwd(), ".env"))

DEFAULT_CONFIG_PATH = Path("config.yaml")
DEFAULT_DB_PATH = str(Path.home() / ".release-tools" / "releases.db")


def _env(name: str, fallback: Any = "") -> str:
    """Environment value when set and non-empty, else ``fallback``."""
    value = os.getenv(name)
    return value if value else str(fallback or "")


@dataclass
class GitHubConfig:
    """GitHub integration configuration."""

    token: str = field(default_factory=lambda: os.getenv("GITHUB_TOKEN", ""))
    org: str = ""
    ignore_repos: List[str] = field(default_factory=list)


@dataclass
class MattermostConfig:
    """Mattermost REST configuration."""

    url: str = field(default_factory=lambda: os.getenv("MATTERMOST_URL", ""))
    token: str = field(default_factory=lambda: os.getenv("MATTERMOST_TOKEN", ""))

    @property
    def enabled(self) -> bool:
        """Check if Mattermost posting is configured."""
        return bool(self.url and self.token)


@dataclass
class DashboardConfig:
    """Dashboard and storage configuration."""

    base_url: str = ""
    sqlite_path: str = field(
        default_factory=lambda: os.getenv("RELEASE_DB_PATH", DEFAULT_DB_PATH)
    )


@dataclass
class CIConfig:
    """CI tracker polling configuration (seconds)."""

    poll_interval: float = 30.0
    cache_ttl: float = 5.0


@dataclass
class ArgoCDEnvConfig:
    """One ArgoCD environment (e.g. staging, production)."""

    url: str
    cf_client_id: str = ""
    cf_client_secret: str = ""
    app_suffix: str = ""


@dataclass
class ArgoCDConfig:
    """ArgoCD tracker configuration (durations in seconds)."""

    poll_interval: float = 30.0
    cache_ttl: float = 10.0
    environments: Dict[str, ArgoCDEnvConfig] = field(default_factory=dict)
    overrides: Dict[str, str] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        """Check if any environment is configured."""
        return bool(self.environments)


@dataclass
class ReleaseToolsConfig:
    """Top-level configuration."""

    github: GitHubConfig = field(default_factory=GitHubConfig)
    mattermost: MattermostConfig = field(default_factory=MattermostConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    ci: CIConfig = field(default_factory=CIConfig)
    argocd: ArgoCDConfig = field(default_factory=ArgoCDConfig)
    # GitHub login -> Mattermost username
    user_mappings: Dict[str, str] = field(default_factory=dict)

    def mattermost_user_for(self, github_user: str) -> str:
        """Mapped Mattermost username for a GitHub login, or ''."""
        return self.user_mappings.get(github_user, "")

    def github_user_for(self, mattermost_user: str) -> str:
        """Reverse lookup of ``user_mappings``, or ''."""
        for gh, mm in self.user_mappings.items():
            if mm == mattermost_user:
                return gh
        return ""

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.github.org:
            errors.append("org is required")
        if not self.github.token:
            errors.append("GITHUB_TOKEN is required")
        if bool(self.mattermost.url) != bool(self.mattermost.token):
            errors.append("MATTERMOST_URL and MATTERMOST_TOKEN must be set together")
        if self.ci.poll_interval <= 0:
            errors.append("ci.poll_interval must be positive")
        if self.ci.cache_ttl < 0:
            errors.append("ci.cache_ttl cannot be negative")
        if self.argocd.poll_interval <= 0:
            errors.append("argocd.poll_interval must be positive")
        if self.argocd.cache_ttl < 0:
            errors.append("argocd.cache_ttl cannot be negative")
        for env_name, env_cfg in self.argocd.environments.items():
            if not env_cfg.url:
                errors.append(f"argocd environment '{env_name}': url is required")

        return errors


def load_yaml_config(path: Path) -> dict:
    """Load a YAML config file, returning empty dict if not found.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed dict, or empty dict when the file is missing or empty.

    Raises:
        ValueError: If the file is not valid YAML or not a mapping.
    """
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping")
    return value


def load_config(path: Optional[Path] = None) -> ReleaseToolsConfig:
    """Load configuration from YAML and the environment.

    Args:
        path: Config file. Defaults to ``$RELEASE_TOOLS_CONFIG`` or
            ``config.yaml`` in the working directory.

    Returns:
        Parsed ReleaseToolsConfig.

    Raises:
        ValueError: If the YAML structure is invalid.
    """
    config_path = path or Path(os.getenv("RELEASE_TOOLS_CONFIG", str(DEFAULT_CONFIG_PATH)))
    raw = load_yaml_config(Path(config_path).expanduser())

    ignore_repos = raw.get("ignore_repos") or []
    if not isinstance(ignore_repos, list):
        raise ValueError("'ignore_repos' must be a list")

    github = GitHubConfig(
        token=_env("GITHUB_TOKEN", raw.get("github_token")),
        org=str(raw.get("org") or ""),
        ignore_repos=[str(r) for r in ignore_repos],
    )

    raw_mm = _section(raw, "mattermost")
    mattermost = MattermostConfig(
        url=_env("MATTERMOST_URL", raw_mm.get("url")),
        token=_env("MATTERMOST_TOKEN", raw_mm.get("token")),
    )

    raw_dash = _section(raw, "dashboard")
    dashboard = DashboardConfig(
        base_url=str(raw_dash.get("base_url") or ""),
        sqlite_path=os.path.expanduser(
            _env("RELEASE_DB_PATH", raw_dash.get("sqlite_path") or DEFAULT_DB_PATH)
        ),
    )

    raw_ci = _section(raw, "ci")
    ci = CIConfig(
        poll_interval=float(raw_ci.get("poll_interval", 30.0)),
        cache_ttl=float(raw_ci.get("cache_ttl", 5.0)),
    )

    raw_argo = _section(raw, "argocd")
    environments: Dict[str, ArgoCDEnvConfig] = {}
    raw_envs = raw_argo.get("environments") or {}
    if not isinstance(raw_envs, dict):
        raise ValueError("'argocd.environments' must be a mapping")
    for env_name, env_data in raw_envs.items():
        if not isinstance(env_data, dict):
            raise ValueError(f"ArgoCD environment '{env_name}' must be a mapping")
        environments[str(env_name)] = ArgoCDEnvConfig(
            url=str(env_data.get("url", "")).rstrip("/"),
            cf_client_id=str(env_data.get("cf_client_id", "")),
            cf_client_secret=str(env_data.get("cf_client_secret", "")),
            app_suffix=str(env_data.get("app_suffix", "")),
        )
    raw_overrides = raw_argo.get("overrides") or {}
    if not isinstance(raw_overrides, dict):
        raise ValueError("'argocd.overrides' must be a mapping")
    argocd = ArgoCDConfig(
        poll_interval=float(raw_argo.get("poll_interval", 30.0)),
        cache_ttl=float(raw_argo.get("cache_ttl", 10.0)),
        environments=environments,
        overrides={str(k): str(v) for k, v in raw_overrides.items()},
    )

    raw_mappings = raw.get("user_mappings") or {}
    if not isinstance(raw_mappings, dict):
        raise ValueError("'user_mappings' must be a mapping of GitHub to Mattermost users")

    return ReleaseToolsConfig(
        github=github,
        mattermost=mattermost,
        dashboard=dashboard,
        ci=ci,
        argocd=argocd,
        user_mappings={str(k): str(v) for k, v in raw_mappings.items()},
    )
