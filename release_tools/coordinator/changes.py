"""Branch comparison across an organisation's repositories."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, Optional

from release_tools.integrations.github_client import (
    CompareResult,
    GitHubClient,
    RepositoryInfo,
)
from release_tools.models.release import RepoData

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


def unique_contributors(result: CompareResult) -> list[str]:
    """Commit author logins, first appearance order, without blanks."""
    seen: dict[str, None] = {}
    for commit in result.commits:
        if commit.author_login:
            seen.setdefault(commit.author_login, None)
    return list(seen)


def build_repo_data(
    github: GitHubClient, org: str, repo_name: str, source: str, dest: str
) -> Optional[RepoData]:
    """Compare ``dest...source`` for one repository.

    Returns:
        RepoData, or None when the branches do not differ.
    """
    result = github.compare_branches(org, repo_name, dest, source)
    if not result.commits or not result.files:
        return None

    data = RepoData(
        repo_name=repo_name,
        commit_count=len(result.commits),
        additions=sum(f.additions for f in result.files),
        deletions=sum(f.deletions for f in result.files),
        contributors=unique_contributors(result),
        summary=f"{len(result.commits)} commits",
        head_sha=result.commits[-1].sha,
    )

    pr = github.find_pull_request(org, repo_name, source, dest)
    if pr is not None:
        data.pr_number = pr.number
        data.pr_url = pr.url
        data.pr_merged = pr.merged
        if pr.merged:
            data.merge_commit_sha = pr.merge_commit_sha
    return data


def collect_repo_changes(
    github: GitHubClient,
    org: str,
    source: str,
    dest: str,
    ignore_repos: Iterable[str] = (),
    only_repos: Optional[Iterable[str]] = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[RepoData]:
    """Gather per-repository change data for a release.

    Args:
        github: GitHub client.
        org: Organisation to scan.
        source: Branch being promoted.
        dest: Branch receiving the changes.
        ignore_repos: Repository names to skip.
        only_repos: Check just these repositories instead of listing the org.
        concurrency: Parallel comparisons.

    Returns:
        Repositories with changes, sorted by name. Repositories whose
        comparison fails are logged and left out.
    """
    if only_repos:
        candidates = [RepositoryInfo(name=name) for name in sorted(set(only_repos))]
    else:
        candidates = github.list_repositories(org)

    ignored = set(ignore_repos)
    names = [r.name for r in candidates if not r.archived and r.name not in ignored]
    logger.info(f"Comparing {dest}...{source} across {len(names)} repositories")

    results: list[RepoData] = []
    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        futures = {
            pool.submit(build_repo_data, github, org, name, source, dest): name
            for name in names
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                data = future.result()
            except Exception as e:
                logger.warning(f"Failed to compare branches for {name}: {e}")
                continue
            if data is not None:
                logger.info(f"Found {data.commit_count} commits in {name}")
                results.append(data)

    return sorted(results, key=lambda d: d.repo_name)
