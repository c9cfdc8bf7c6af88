"""GitHub API client for release operations."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from github import Auth, Github
from github.Repository import Repository

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


@dataclass
class RepositoryInfo:
    """Organisation repository listing entry."""

    name: str
    archived: bool = False
    full_name: str = ""
    html_url: str = ""


@dataclass
class CommitInfo:
    """One commit in a branch comparison."""

    sha: str
    author_login: str = ""
    message: str = ""


@dataclass
class FileChange:
    """One changed file in a branch comparison."""

    filename: str
    additions: int = 0
    deletions: int = 0
    status: str = ""


@dataclass
class CompareResult:
    """Commits and files between two branches."""

    commits: List[CommitInfo] = field(default_factory=list)
    files: List[FileChange] = field(default_factory=list)
    ahead_by: int = 0


@dataclass
class PullRequestInfo:
    """Pull request lookup result."""

    number: int
    url: str
    merged: bool = False
    merge_commit_sha: str = ""
    state: str = ""


@dataclass
class OpenPullRequest:
    """Open pull request with its outstanding review requests."""

    number: int
    title: str
    html_url: str
    author: str
    draft: bool = False
    created_at: int = 0
    updated_at: int = 0
    requested_reviewers: List[str] = field(default_factory=list)
    requested_teams: List[str] = field(default_factory=list)


@dataclass
class WorkflowRun:
    """GitHub Actions workflow run."""

    id: int
    run_number: int
    status: str
    conclusion: str = ""
    html_url: str = ""
    path: str = ""
    head_sha: str = ""
    created_at: int = 0
    updated_at: int = 0


@dataclass
class WorkflowJob:
    """GitHub Actions job within a run."""

    id: int
    name: str
    status: str = ""
    conclusion: str = ""


def _timestamp(value) -> int:
    return int(value.timestamp()) if value is not None else 0


class GitHubClient:
    """Client for GitHub API operations."""

    def __init__(
        self, token: str, timeout: float = 30.0, api_url: str = GITHUB_API_URL
    ):
        """Initialize GitHub client.

        Args:
            token: GitHub personal access token or app token.
            timeout: Timeout for raw log downloads, in seconds.
            api_url: REST API root used for log downloads.
        """
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        auth = Auth.Token(token)
        self._client = Github(auth=auth)

    def get_repo(self, full_name: str) -> Repository:
        """Get a repository by 'owner/name'."""
        return self._client.get_repo(full_name)

    def list_repositories(self, org: str) -> List[RepositoryInfo]:
        """List all repositories of an organisation."""
        logger.info(f"Listing repositories for {org}")
        organization = self._client.get_organization(org)
        return [
            RepositoryInfo(
                name=repo.name,
                archived=bool(repo.archived),
                full_name=repo.full_name or "",
                html_url=repo.html_url or "",
            )
            for repo in organization.get_repos()
        ]

    def compare_branches(self, owner: str, repo: str, base: str, head: str) -> CompareResult:
        """Compare ``base...head``.

        Raises:
            github.GithubException: If the comparison fails (e.g. missing branch).
        """
        comparison = self.get_repo(f"{owner}/{repo}").compare(base, head)

        commits = []
        for commit in comparison.commits:
            author = commit.author
            commits.append(
                CommitInfo(
                    sha=commit.sha,
                    author_login=author.login if author is not None else "",
                    message=commit.commit.message if commit.commit else "",
                )
            )

        files = [
            FileChange(
                filename=f.filename,
                additions=f.additions,
                deletions=f.deletions,
                status=f.status,
            )
            for f in comparison.files
        ]

        return CompareResult(commits=commits, files=files, ahead_by=comparison.ahead_by)

    def find_pull_request(
        self, owner: str, repo: str, head: str, base: str
    ) -> Optional[PullRequestInfo]:
        """Most recent pull request from ``head`` into ``base``, if any."""
        pulls = self.get_repo(f"{owner}/{repo}").get_pulls(
            state="all", head=f"{owner}:{head}", base=base
        )
        for pr in pulls:
            return PullRequestInfo(
                number=pr.number,
                url=pr.html_url,
                merged=bool(pr.merged),
                merge_commit_sha=pr.merge_commit_sha or "",
                state=pr.state,
            )
        return None

    def list_open_pull_requests(self, owner: str, repo: str) -> List[OpenPullRequest]:
        """Open pull requests of a repository, drafts included.

        Requested reviewers and teams are those still pending; GitHub drops
        a reviewer from the request list once they submit a review.
        """
        pulls = self.get_repo(f"{owner}/{repo}").get_pulls(state="open")
        result = []
        for pr in pulls:
            users, teams = pr.get_review_requests()
            result.append(
                OpenPullRequest(
                    number=pr.number,
                    title=pr.title or "",
                    html_url=pr.html_url or "",
                    author=pr.user.login if pr.user is not None else "",
                    draft=bool(pr.draft),
                    created_at=_timestamp(pr.created_at),
                    updated_at=_timestamp(pr.updated_at),
                    requested_reviewers=[u.login for u in users],
                    requested_teams=[t.slug for t in teams],
                )
            )
        return result

    def list_team_members(self, org: str, team_slug: str) -> List[str]:
        """Logins of a team's members."""
        team = self._client.get_organization(org).get_team_by_slug(team_slug)
        return [member.login for member in team.get_members()]

    def get_workflow_runs(self, owner: str, repo: str, head_sha: str) -> List[WorkflowRun]:
        """Workflow runs triggered by a commit."""
        runs = self.get_repo(f"{owner}/{repo}").get_workflow_runs(head_sha=head_sha)
        return [self._to_run(run) for run in runs]

    def get_workflow_run(self, owner: str, repo: str, run_id: int) -> WorkflowRun:
        """A single workflow run by ID."""
        return self._to_run(self.get_repo(f"{owner}/{repo}").get_workflow_run(run_id))

    def get_workflow_jobs(self, owner: str, repo: str, run_id: int) -> List[WorkflowJob]:
        """Jobs of a workflow run."""
        run = self.get_repo(f"{owner}/{repo}").get_workflow_run(run_id)
        return [
            WorkflowJob(
                id=job.id,
                name=job.name,
                status=job.status or "",
                conclusion=job.conclusion or "",
            )
            for job in run.jobs()
        ]

    def get_job_logs(self, owner: str, repo: str, job_id: int) -> str:
        """Plain-text logs of a job.

        Raises:
            requests.HTTPError: If the log download fails.
        """
        response = requests.get(
            f"{self.api_url}/repos/{owner}/{repo}/actions/jobs/{job_id}/logs",
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.text

    def close(self) -> None:
        """Close the GitHub client connection."""
        self._client.close()

    @staticmethod
    def _to_run(run) -> WorkflowRun:
        return WorkflowRun(
            id=run.id,
            run_number=run.run_number,
            status=run.status or "",
            conclusion=run.conclusion or "",
            html_url=run.html_url or "",
            path=run.path or "",
            head_sha=run.head_sha or "",
            created_at=_timestamp(run.created_at),
            updated_at=_timestamp(run.updated_at),
        )
