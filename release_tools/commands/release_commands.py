"""CLI commands for release records, approvals and tracking."""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from release_tools.config import ReleaseToolsConfig, load_config
from release_tools.coordinator.argocd_tracker import ArgoCDTracker
from release_tools.coordinator.changes import DEFAULT_CONCURRENCY, collect_repo_changes
from release_tools.coordinator.ci_tracker import CITracker
from release_tools.coordinator.deploy_order import describe_deploy_order_error
from release_tools.coordinator.notifications import ReleaseNotifier
from release_tools.coordinator.service import ReleaseDetail, ReleaseService, is_repo_confirmed
from release_tools.coordinator.state import ReleaseState
from release_tools.errors import ReleaseToolsError
from release_tools.integrations.github_client import GitHubClient
from release_tools.integrations.mattermost_client import MattermostClient
from release_tools.logging import release_context
from release_tools.models.release import RepoData

release_app = typer.Typer(help="Create, review and approve releases.", no_args_is_help=True)
console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "approved": "green",
    "declined": "red",
    "queued": "yellow",
    "in_progress": "cyan",
    "success": "green",
    "failure": "red",
    "cancelled": "dim",
    "skipped": "dim",
    "syncing": "cyan",
    "unhealthy": "red",
    "not_found": "red",
    "deployed": "green",
}


@release_app.command("create")
def create(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Branch being promoted"),
    dest: str = typer.Argument(..., help="Branch receiving the changes"),
    user: str = typer.Option(..., "--user", "-u", help="Who is creating the release"),
    channel: str = typer.Option("", "--channel", help="Mattermost channel ID for updates"),
    repos: Optional[str] = typer.Option(
        None, "--repos", help="Comma-separated repositories (default: whole org)"
    ),
    collect: bool = typer.Option(
        True, "--collect/--no-collect", help="Compare branches on GitHub now"
    ),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency"),
) -> None:
    """Create a release and record the repositories that changed."""
    config = load_settings(ctx)
    service = build_service(config)

    changes: List[RepoData] = []
    if collect:
        github = build_github(config)
        changes = collect_repo_changes(
            github,
            config.github.org,
            source,
            dest,
            ignore_repos=config.github.ignore_repos,
            only_repos=split_csv(repos),
            concurrency=concurrency,
        )

    with user_errors():
        release = service.create_release(source, dest, user, channel)
        service.add_repos(release.id, changes)

    console.print(
        f"[green]Created release {release.id}[/green] "
        f"({source} -> {dest}, {len(changes)} repo(s))"
    )


@release_app.command("list")
def list_releases(
    ctx: typer.Context,
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Filter: pending, approved, declined"
    ),
) -> None:
    """List releases, newest first."""
    service = build_service(load_settings(ctx))
    releases = service.list_releases(status)
    if not releases:
        console.print("[yellow]No releases found.[/yellow]")
        return

    table = Table(title="Releases")
    table.add_column("ID", style="bold")
    table.add_column("Branches")
    table.add_column("Status")
    table.add_column("Dev")
    table.add_column("QA")
    table.add_column("Created")

    for r in releases:
        table.add_row(
            r.id,
            f"{r.source_branch} -> {r.dest_branch}",
            styled(r.status.value),
            r.dev_approved_by or "-",
            r.qa_approved_by or "-",
            format_ts(r.created_at),
        )
    console.print(table)


@release_app.command("show")
def show(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of tables"),
) -> None:
    """Show a release with its repositories in deploy order."""
    service = build_service(load_settings(ctx))
    with user_errors():
        detail = service.get_release_detail(release_id)

    if as_json:
        typer.echo(json.dumps(detail.to_dict(), indent=2))
        return

    ci = {s.release_repo_id: s for s in service.get_ci_statuses_for_release(release_id)}
    deployments: dict[int, list[str]] = {}
    for d in service.get_deployment_statuses_for_release(release_id):
        deployments.setdefault(d.release_repo_id, []).append(
            f"{d.environment}: {styled(d.rollout_status)}"
        )

    _render_release_header(detail)
    _render_repo_table(detail, ci, deployments)

    if detail.deploy_order_error is not None:
        message = describe_deploy_order_error(detail.deploy_order_error)
        console.print(f"[red]{escape(message)}[/red]")

    names = {repo.id: repo.repo_name for repo in detail.repos}
    for repo_id, missing in detail.unresolved_dependencies.items():
        console.print(
            f"[yellow]Warning: {names.get(repo_id, repo_id)} depends on unknown "
            f"repo(s): {', '.join(missing)}[/yellow]"
        )

    actions = service.get_pending_actions(detail)
    if actions:
        console.print("\n[bold]Waiting on confirmations:[/bold]")
        for action in actions:
            who = action.github_user
            if action.mattermost_user:
                who += f" (@{action.mattermost_user})"
            console.print(f"  {who}: {action.repo_name}")


@release_app.command("edit")
def edit(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Release notes"),
    breaking: Optional[str] = typer.Option(
        None, "--breaking", help="Breaking changes description"
    ),
) -> None:
    """Update release notes or breaking changes."""
    service = build_service(load_settings(ctx))
    with user_errors():
        service.update_release(release_id, notes=notes, breaking_changes=breaking)
    console.print(f"[green]Updated release {release_id}[/green]")


@release_app.command("approve")
def approve(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    approval_type: str = typer.Argument(..., help="dev or qa"),
    user: str = typer.Option(..., "--user", "-u", help="Approver"),
) -> None:
    """Record a dev or QA approval."""
    service = build_service(load_settings(ctx))
    with user_errors():
        release = service.approve_release(release_id, approval_type, user)

    console.print(f"[green]{approval_type} approval recorded by {user}[/green]")
    if release.fully_approved:
        console.print("[green bold]Release fully approved.[/green bold]")


@release_app.command("revoke")
def revoke(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    approval_type: str = typer.Argument(..., help="dev or qa"),
    user: str = typer.Option("", "--user", "-u", help="Who is revoking"),
) -> None:
    """Revoke an approval and return the release to pending."""
    service = build_service(load_settings(ctx))
    with user_errors():
        service.revoke_approval(release_id, approval_type, actor=user)
    console.print(f"[yellow]{approval_type} approval revoked[/yellow]")


@release_app.command("decline")
def decline(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    user: str = typer.Option(..., "--user", "-u", help="Who is declining"),
) -> None:
    """Decline a release."""
    service = build_service(load_settings(ctx))
    with user_errors():
        service.decline_release(release_id, user)
    console.print(f"[red]Release {release_id} declined by {user}[/red]")


@release_app.command("exclude")
def exclude(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    repo: str = typer.Argument(..., help="Repository name"),
    user: str = typer.Option("", "--user", "-u"),
) -> None:
    """Leave a repository out of the release."""
    _set_excluded(ctx, release_id, repo, True, user)
    console.print(f"[yellow]Excluded {repo}[/yellow]")


@release_app.command("include")
def include(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    repo: str = typer.Argument(..., help="Repository name"),
    user: str = typer.Option("", "--user", "-u"),
) -> None:
    """Put an excluded repository back into the release."""
    _set_excluded(ctx, release_id, repo, False, user)
    console.print(f"[green]Included {repo}[/green]")


@release_app.command("depends")
def depends(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    repo: str = typer.Argument(..., help="Repository name"),
    dependencies: Optional[List[str]] = typer.Argument(
        None, help="Repositories that must deploy first (none clears the list)"
    ),
    user: str = typer.Option("", "--user", "-u"),
) -> None:
    """Set which repositories must deploy before REPO."""
    service = build_service(load_settings(ctx))
    deps = list(dependencies or [])
    with user_errors():
        target = service.find_repo(release_id, repo)
        service.update_repo(target.id, depends_on=deps, actor=user)
        detail = service.get_release_detail(release_id)

    if deps:
        console.print(f"[green]{repo} now depends on {', '.join(deps)}[/green]")
    else:
        console.print(f"[green]Cleared dependencies of {repo}[/green]")
    if detail.deploy_order_error is not None:
        message = describe_deploy_order_error(detail.deploy_order_error)
        console.print(f"[red]{escape(message)}[/red]")


@release_app.command("confirm")
def confirm(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    repo: str = typer.Argument(..., help="Repository name"),
    user: str = typer.Option(..., "--user", "-u", help="GitHub login of the contributor"),
) -> None:
    """Confirm your changes in a repository are ready to ship."""
    service = build_service(load_settings(ctx))
    with user_errors():
        target = service.find_repo(release_id, repo)
        service.confirm_repo(target.id, user)
        confirmed = is_repo_confirmed(service.get_repo(target.id))

    console.print(f"[green]{user} confirmed {repo}[/green]")
    if confirmed:
        console.print(f"[green]{repo} has a majority of confirmations.[/green]")


@release_app.command("unconfirm")
def unconfirm(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    repo: str = typer.Argument(..., help="Repository name"),
    user: str = typer.Option(..., "--user", "-u", help="GitHub login of the contributor"),
) -> None:
    """Withdraw a confirmation."""
    service = build_service(load_settings(ctx))
    with user_errors():
        target = service.find_repo(release_id, repo)
        service.unconfirm_repo(target.id, user)
    console.print(f"[yellow]{user} withdrew confirmation of {repo}[/yellow]")


@release_app.command("refresh")
def refresh(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency"),
) -> None:
    """Re-compare branches and update the release's repositories."""
    config = load_settings(ctx)
    service = build_service(config)
    with user_errors():
        release = service.get_release(release_id)

    github = build_github(config)
    changes = collect_repo_changes(
        github,
        config.github.org,
        release.source_branch,
        release.dest_branch,
        ignore_repos=config.github.ignore_repos,
        concurrency=concurrency,
    )
    with user_errors():
        service.refresh_repos(release_id, changes)
    console.print(f"[green]Refreshed {release_id}: {len(changes)} repo(s)[/green]")


@release_app.command("history")
def history(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
) -> None:
    """Show the audit trail of a release."""
    service = build_service(load_settings(ctx))
    with user_errors():
        service.get_release(release_id)
    entries = service.get_history(release_id)
    if not entries:
        console.print("[yellow]No history recorded.[/yellow]")
        return

    table = Table(title=f"History of {release_id}")
    table.add_column("When")
    table.add_column("Action", style="bold")
    table.add_column("Actor")
    table.add_column("Details")
    for entry in entries:
        details = ", ".join(f"{k}={v}" for k, v in entry.details.items())
        table.add_row(
            format_ts(entry.created_at), entry.action, entry.actor or "-", details or "-"
        )
    console.print(table)


@release_app.command("track")
def track(
    ctx: typer.Context,
    release_id: str = typer.Argument(..., help="Release ID"),
) -> None:
    """Start CI and deployment tracking for a release."""
    config = load_settings(ctx)
    service = build_service(config)
    with user_errors():
        service.get_release(release_id)

    github = build_github(config)
    ci_tracker = CITracker(
        service,
        github,
        config.github.org,
        poll_interval=config.ci.poll_interval,
        cache_ttl=config.ci.cache_ttl,
    )
    with release_context(release_id):
        ci_statuses = ci_tracker.init_ci_tracking(release_id)
        console.print(f"[green]Tracking CI for {len(ci_statuses)} repo(s)[/green]")

        if config.argocd.enabled:
            argocd_tracker = ArgoCDTracker(service, config.argocd)
            deployments = argocd_tracker.init_deployment_tracking(release_id)
            console.print(
                f"[green]Tracking {len(deployments)} deployment(s) across "
                f"{len(config.argocd.environments)} environment(s)[/green]"
            )


@release_app.command("user")
def user(
    ctx: typer.Context,
    email: str = typer.Argument(..., help="User email"),
    github_user: str = typer.Option("", "--github", help="GitHub login"),
    mattermost_user: str = typer.Option("", "--mattermost", help="Mattermost username"),
) -> None:
    """Record a person's GitHub and Mattermost identities."""
    service = build_service(load_settings(ctx))
    record = service.create_or_update_user(email, github_user, mattermost_user)
    console.print(
        f"[green]{record.email}[/green]: github={record.github_user or '-'} "
        f"mattermost={record.mattermost_user or '-'}"
    )


# --- Rendering ---


def _render_release_header(detail: ReleaseDetail) -> None:
    r = detail.release
    lines = [
        f"[bold]{r.source_branch} -> {r.dest_branch}[/bold]  {styled(r.status.value)}",
        f"Created by {r.created_by} at {format_ts(r.created_at)}",
        f"Dev: {r.dev_approved_by or '-'}   QA: {r.qa_approved_by or '-'}",
    ]
    if r.declined_by:
        lines.append(f"[red]Declined by {r.declined_by} at {format_ts(r.declined_at)}[/red]")
    if r.notes:
        lines.append(f"\n{r.notes}")
    if r.breaking_changes:
        lines.append(f"\n[red]Breaking:[/red] {r.breaking_changes}")
    console.print(Panel("\n".join(lines), title=f"Release {r.id}"))


def _render_repo_table(detail: ReleaseDetail, ci: dict, deployments: dict) -> None:
    table = Table(title="Repositories")
    table.add_column("Wave", justify="right")
    table.add_column("Repo", style="bold")
    table.add_column("Commits", justify="right")
    table.add_column("+/-")
    table.add_column("PR")
    table.add_column("Confirmed")
    table.add_column("CI")
    table.add_column("Deploy")

    def sort_key(repo):
        wave = detail.wave_of(repo)
        return (wave if wave is not None else 0, repo.repo_name)

    for repo in sorted(detail.repos, key=sort_key):
        wave = detail.wave_of(repo)
        name = repo.repo_name
        if repo.excluded:
            name = f"[dim]{name} (excluded)[/dim]"
        if repo.is_breaking:
            name += " [red]![/red]"

        ci_status = ci.get(repo.id)
        ci_str = styled(ci_status.status) if ci_status else "-"
        if ci_status and ci_status.chart_version:
            ci_str += f" {ci_status.chart_version}"

        pr_str = f"#{repo.pr_number}" if repo.pr_number else "-"
        if repo.pr_merged:
            pr_str += " merged"

        table.add_row(
            str(wave) if wave is not None else "?",
            name,
            str(repo.commit_count),
            f"+{repo.additions}/-{repo.deletions}",
            pr_str,
            f"{len(repo.confirmed_by)}/{len(repo.contributors)}",
            ci_str,
            ", ".join(deployments.get(repo.id, [])) or "-",
        )
    console.print(table)


# --- Helpers ---


@contextmanager
def user_errors() -> Iterator[None]:
    """Print release-tools errors in red and exit 1."""
    try:
        yield
    except ReleaseToolsError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def load_settings(ctx: Optional[typer.Context]) -> ReleaseToolsConfig:
    """Load config once per invocation, honouring the root ``--config``."""
    obj = ctx.ensure_object(dict) if ctx is not None else {}
    if "config" in obj:
        return obj["config"]

    path: Optional[Path] = obj.get("config_path")
    try:
        config = load_config(path)
    except ValueError as e:
        console.print(f"[red]Config error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    obj["config"] = config
    return config


def build_service(config: ReleaseToolsConfig) -> ReleaseService:
    """Open the release store and wire approval notifications."""
    service = ReleaseService(ReleaseState(config.dashboard.sqlite_path), config)
    if config.mattermost.enabled:
        client = MattermostClient(config.mattermost.url, config.mattermost.token)
        ReleaseNotifier(client, config.dashboard.base_url).attach(service)
    return service


def build_github(config: ReleaseToolsConfig) -> GitHubClient:
    """GitHub client, or exit when credentials are missing."""
    if not config.github.token or not config.github.org:
        console.print("[red]GITHUB_TOKEN and org must be configured.[/red]")
        raise typer.Exit(1)
    return GitHubClient(config.github.token)


def split_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated option, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def styled(status: str) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status}[/{style}]" if style else status


def format_ts(ts: int) -> str:
    """Unix seconds as local time, '-' when unset."""
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def _set_excluded(
    ctx: typer.Context, release_id: str, repo: str, excluded: bool, user: str
) -> None:
    service = build_service(load_settings(ctx))
    with user_errors():
        target = service.find_repo(release_id, repo)
        service.update_repo(target.id, excluded=excluded, actor=user)
