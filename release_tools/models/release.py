"""Release data models and the JSON list codec used by the state store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from release_tools.errors import ParseError


class ReleaseStatus(Enum):
    """Lifecycle status of a release."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class ApprovalType(Enum):
    """Kinds of release sign-off."""

    DEV = "dev"
    QA = "qa"


# CI states that will not change on further polling
TERMINAL_CI_STATES = frozenset({"success", "failure", "cancelled", "skipped"})
IN_PROGRESS_CI_STATES = frozenset({"pending", "queued", "in_progress"})

# Rollout states that still need attention
PENDING_ROLLOUT_STATES = frozenset({"pending", "syncing", "unhealthy", "not_found"})


def encode_name_list(values: Optional[Sequence[str]]) -> str:
    """Encode a list of names as JSON array text."""
    return json.dumps(list(values or []))


def decode_name_list(raw: Optional[str], field_name: str = "list") -> list[str]:
    """Decode JSON array text into a list of names.

    Args:
        raw: Stored text. Empty or None decodes to an empty list.
        field_name: Column name used in the error message.

    Returns:
        Decoded list of strings.

    Raises:
        ParseError: If the text is not a JSON array of strings.
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError(field_name, raw, str(e)) from e
    if data is None:
        return []
    if not isinstance(data, list) or not all(isinstance(v, str) for v in data):
        raise ParseError(field_name, raw, "expected a JSON array of strings")
    return data


@dataclass
class Release:
    """A proposed promotion of repository branches from source to destination."""

    id: str
    source_branch: str
    dest_branch: str
    created_by: str
    channel_id: str
    status: ReleaseStatus = ReleaseStatus.PENDING
    notes: str = ""
    breaking_changes: str = ""
    mattermost_post_id: str = ""
    dev_approved_by: str = ""
    dev_approved_at: int = 0
    qa_approved_by: str = ""
    qa_approved_at: int = 0
    declined_by: str = ""
    declined_at: int = 0
    last_refreshed_at: int = 0
    created_at: int = 0

    @property
    def fully_approved(self) -> bool:
        """Both dev and QA have signed off."""
        return bool(self.dev_approved_by and self.qa_approved_by)

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dict."""
        return {
            "id": self.id,
            "source_branch": self.source_branch,
            "dest_branch": self.dest_branch,
            "status": self.status.value,
            "notes": self.notes,
            "breaking_changes": self.breaking_changes,
            "created_by": self.created_by,
            "channel_id": self.channel_id,
            "mattermost_post_id": self.mattermost_post_id,
            "dev_approved_by": self.dev_approved_by,
            "dev_approved_at": self.dev_approved_at,
            "qa_approved_by": self.qa_approved_by,
            "qa_approved_at": self.qa_approved_at,
            "declined_by": self.declined_by,
            "declined_at": self.declined_at,
            "last_refreshed_at": self.last_refreshed_at,
            "created_at": self.created_at,
        }


@dataclass
class ReleaseRepo:
    """One repository participating in a release.

    ``depends_on_raw`` keeps the stored JSON text so that a corrupt
    dependency list only breaks deploy-order computation, not loading.
    """

    id: int
    release_id: str
    repo_name: str
    commit_count: int = 0
    additions: int = 0
    deletions: int = 0
    contributors: list[str] = field(default_factory=list)
    pr_number: int = 0
    pr_url: str = ""
    pr_merged: bool = False
    excluded: bool = False
    depends_on_raw: str = ""
    summary: str = ""
    is_breaking: bool = False
    confirmed_by: list[str] = field(default_factory=list)
    confirmed_at: int = 0
    infra_changes: list[str] = field(default_factory=list)
    merge_commit_sha: str = ""
    head_sha: str = ""

    @property
    def depends_on(self) -> list[str]:
        """Decoded dependency names.

        Raises:
            ParseError: If the stored text is malformed.
        """
        return decode_name_list(self.depends_on_raw, "depends_on")

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dict (dependencies left undecoded)."""
        return {
            "id": self.id,
            "release_id": self.release_id,
            "repo_name": self.repo_name,
            "commit_count": self.commit_count,
            "additions": self.additions,
            "deletions": self.deletions,
            "contributors": list(self.contributors),
            "pr_number": self.pr_number,
            "pr_url": self.pr_url,
            "pr_merged": self.pr_merged,
            "excluded": self.excluded,
            "depends_on": self.depends_on_raw,
            "summary": self.summary,
            "is_breaking": self.is_breaking,
            "confirmed_by": list(self.confirmed_by),
            "confirmed_at": self.confirmed_at,
            "infra_changes": list(self.infra_changes),
            "merge_commit_sha": self.merge_commit_sha,
            "head_sha": self.head_sha,
        }


@dataclass
class RepoData:
    """Change data gathered for a repository before it is stored."""

    repo_name: str
    commit_count: int = 0
    additions: int = 0
    deletions: int = 0
    contributors: list[str] = field(default_factory=list)
    pr_number: int = 0
    pr_url: str = ""
    pr_merged: bool = False
    summary: str = ""
    is_breaking: bool = False
    infra_changes: list[str] = field(default_factory=list)
    merge_commit_sha: str = ""
    head_sha: str = ""


@dataclass
class RepoCIStatus:
    """GitHub Actions state for one release repository."""

    release_repo_id: int
    status: str = "pending"
    id: Optional[int] = None
    workflow_run_id: int = 0
    workflow_run_num: int = 0
    workflow_url: str = ""
    chart_name: str = ""
    chart_version: str = ""
    merge_commit_sha: str = ""
    started_at: int = 0
    completed_at: int = 0
    last_checked_at: int = 0

    @property
    def in_progress(self) -> bool:
        return self.status in IN_PROGRESS_CI_STATES


@dataclass
class RepoDeploymentStatus:
    """ArgoCD rollout state for one release repository in one environment."""

    release_repo_id: int
    environment: str
    id: Optional[int] = None
    app_name: str = ""
    expected_version: str = ""
    current_version: str = ""
    sync_status: str = ""
    health_status: str = ""
    rollout_status: str = "pending"
    last_checked_at: int = 0

    @property
    def pending(self) -> bool:
        return self.rollout_status in PENDING_ROLLOUT_STATES


@dataclass
class ReleaseHistory:
    """Audit entry for an action taken on a release."""

    release_id: str
    action: str
    actor: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    created_at: int = 0
    id: Optional[int] = None


@dataclass
class User:
    """A person known by email, with their chat and GitHub identities."""

    email: str
    mattermost_user: str = ""
    github_user: str = ""
    created_at: int = 0
    updated_at: int = 0
    id: Optional[int] = None


@dataclass
class PendingAction:
    """Something a contributor still has to do before release."""

    github_user: str
    mattermost_user: str
    action_type: str
    repo_name: str
