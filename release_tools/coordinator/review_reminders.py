"""Reminders for pull requests waiting on review across an organisation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from release_tools.integrations.github_client import (
    GitHubClient,
    OpenPullRequest,
    RepositoryInfo,
)

logger = logging.getLogger(__name__)

DAY = 24 * 60 * 60

NO_REVIEWERS = "No reviewers assigned"


@dataclass
class RepoPullRequests:
    """Open, non-draft pull requests of one repository."""

    repo: RepositoryInfo
    pull_requests: List[OpenPullRequest] = field(default_factory=list)


@dataclass
class ReminderMessage:
    """Rendered reminder text and the GitHub logins without a chat mapping."""

    message: str
    unmapped_users: List[str] = field(default_factory=list)


def is_bot(login: str) -> bool:
    return login.endswith("[bot]")


def format_duration(seconds: float) -> str:
    """Whole days, or months once a duration reaches 60 days."""
    days = int(seconds // DAY)
    if days >= 60:
        return f"{days // 30} months"
    if days == 1:
        return "1 day"
    return f"{days} days"


def staleness_marker(seconds: float) -> str:
    """Traffic-light emoji for how long a pull request has been idle."""
    days = int(seconds // DAY)
    if days < 1:
        return "🟢"
    if days < 3:
        return "🟡"
    if days < 7:
        return "🟠"
    return "🔴"


def collect_pending_reviews(
    github: GitHubClient, org: str, ignore_repos: Iterable[str] = ()
) -> List[RepoPullRequests]:
    """Open pull requests per repository, team review requests expanded.

    Archived and ignored repositories and draft pull requests are left out.
    Team members replace the team in ``requested_reviewers``; each team is
    looked up once per call.

    Args:
        github: GitHub client.
        org: Organisation to scan.
        ignore_repos: Repository names to skip.

    Returns:
        Repositories that have at least one pending pull request, sorted by
        name. Repositories whose listing fails are logged and left out.
    """
    ignored = set(ignore_repos)
    team_members: Dict[str, List[str]] = {}
    results: List[RepoPullRequests] = []

    for repo in github.list_repositories(org):
        if repo.archived or repo.name in ignored:
            continue
        try:
            pulls = github.list_open_pull_requests(org, repo.name)
        except Exception as e:
            logger.warning(f"Failed to list pull requests for {repo.name}: {e}")
            continue

        pending = []
        for pr in pulls:
            if pr.draft:
                continue
            for slug in pr.requested_teams:
                if slug not in team_members:
                    team_members[slug] = _team_members(github, org, slug)
                for login in team_members[slug]:
                    if login not in pr.requested_reviewers:
                        pr.requested_reviewers.append(login)
            pending.append(pr)

        if pending:
            logger.debug(f"{repo.name}: {len(pending)} pull requests pending review")
            results.append(RepoPullRequests(repo=repo, pull_requests=pending))

    return sorted(results, key=lambda r: r.repo.name)


def _team_members(github: GitHubClient, org: str, slug: str) -> List[str]:
    try:
        return github.list_team_members(org, slug)
    except Exception as e:
        logger.warning(f"Failed to list members of team {slug}: {e}")
        return []


def waiting_on(
    pr: OpenPullRequest, user_for: Callable[[str], str], unmapped: set[str]
) -> str:
    """'Waiting on ...' line for the pending human reviewers of ``pr``."""
    reviewers = []
    for login in pr.requested_reviewers:
        if is_bot(login):
            continue
        mapped = user_for(login)
        if mapped:
            reviewers.append(f"@{mapped}")
        else:
            reviewers.append(login)
            unmapped.add(login)
    if not reviewers:
        return NO_REVIEWERS
    return "Waiting on " + ", ".join(reviewers)


def format_reminder(
    repo_prs: List[RepoPullRequests],
    user_for: Callable[[str], str],
    now: Optional[float] = None,
) -> ReminderMessage:
    """Render the review reminder as Mattermost markdown.

    Args:
        repo_prs: Output of :func:`collect_pending_reviews`.
        user_for: GitHub login to chat username, '' when unmapped.
        now: Reference time, seconds since the epoch.

    Returns:
        ReminderMessage with sorted unmapped logins. Authors and
        reviewers count as unmapped; bots never do.
    """
    now = time.time() if now is None else now
    unmapped: set[str] = set()
    sections = []

    for rp in repo_prs:
        title = rp.repo.full_name or rp.repo.name
        lines = [f"#### Pending review on [{title}]({rp.repo.html_url})", ""]
        # Stalest first
        for pr in sorted(rp.pull_requests, key=lambda p: p.updated_at):
            if not is_bot(pr.author) and not user_for(pr.author):
                unmapped.add(pr.author)
            idle = now - pr.updated_at
            lines.append(
                f"{staleness_marker(idle)} [#{pr.number}]({pr.html_url}) "
                f"{pr.title} _({pr.author})_"
            )
            lines.append(
                f"   {format_duration(idle)} stale · "
                f"{format_duration(now - pr.created_at)} old · "
                f"{waiting_on(pr, user_for, unmapped)}"
            )
            lines.append("")
        sections.append("\n".join(lines) + "\n")

    message = "\n---\n\n".join(sections)
    unmapped_users = sorted(unmapped)
    if unmapped_users:
        message += f"---\n\n:warning: **Unmapped GitHub users:** {', '.join(unmapped_users)}\n"
    return ReminderMessage(message=message, unmapped_users=unmapped_users)
