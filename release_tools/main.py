"""release-tools command line entry point."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from rich.markup import escape
from rich.table import Table

from release_tools.commands.release_commands import (
    build_github,
    build_service,
    console,
    load_settings,
    release_app,
    split_csv,
    user_errors,
)
from release_tools.coordinator.argocd_tracker import ArgoCDTracker
from release_tools.coordinator.changes import DEFAULT_CONCURRENCY, collect_repo_changes
from release_tools.coordinator.ci_tracker import CITracker
from release_tools.coordinator.daemon import ReleaseDaemon
from release_tools.coordinator.deploy_order import (
    RepoNode,
    compute_deploy_order,
    describe_deploy_order_error,
    find_unresolved_dependencies,
    group_by_wave,
)
from release_tools.coordinator.review_reminders import (
    collect_pending_reviews,
    format_duration,
    format_reminder,
    waiting_on,
)
from release_tools.errors import DeployOrderError
from release_tools.integrations.mattermost_client import MattermostClient
from release_tools.logging import configure_logging, new_correlation_id

app = typer.Typer(help="Multi-repository release coordination.", no_args_is_help=True)
app.add_typer(release_app, name="release")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file (default: config.yaml)"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL for this run"
    ),
) -> None:
    """Coordinate releases across an organisation's repositories."""
    obj = ctx.ensure_object(dict)
    obj["config_path"] = config
    new_correlation_id("cli")
    if log_level:
        configure_logging(level=log_level)


@app.command("deploy-order")
def deploy_order(
    file: Path = typer.Argument(..., help="YAML/JSON list of repos with depends_on"),
    strict: bool = typer.Option(
        False, "--strict", help="Fail when a dependency names an unknown repo"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Compute deploy waves for a set of repositories.

    FILE holds either a list of ``{id, name, depends_on}`` entries or a
    mapping of repo name to its dependency list.
    """
    try:
        nodes = load_nodes(file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Cannot read {file}: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    try:
        order = compute_deploy_order(nodes)
        unresolved = find_unresolved_dependencies(nodes)
    except DeployOrderError as e:
        if as_json:
            typer.echo(json.dumps({"deploy_order": None, "error": str(e)}))
        else:
            console.print(f"[red]{escape(describe_deploy_order_error(e))}[/red]")
        raise typer.Exit(1)

    if strict and unresolved:
        for node_id, missing in unresolved.items():
            console.print(
                f"[yellow]Warning: {node_id} depends on unknown repo(s): "
                f"{', '.join(missing)}[/yellow]"
            )

    if as_json:
        typer.echo(
            json.dumps(
                {
                    "deploy_order": {str(k): v for k, v in order.items()},
                    "waves": [[str(i) for i in wave] for wave in group_by_wave(order)],
                },
                indent=2,
            )
        )
    else:
        names = {node.id: node.name for node in nodes}
        table = Table(title="Deploy Order")
        table.add_column("Wave", justify="right")
        table.add_column("Repositories")
        for number, wave in enumerate(group_by_wave(order), start=1):
            table.add_row(str(number), ", ".join(sorted(names[i] for i in wave)))
        console.print(table)

    if strict and unresolved:
        raise typer.Exit(1)


@app.command("changes")
def changes(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Branch being promoted"),
    dest: str = typer.Argument(..., help="Branch receiving the changes"),
    repos: Optional[str] = typer.Option(
        None, "--repos", help="Comma-separated repositories to check"
    ),
    ignore_repos: Optional[str] = typer.Option(
        None, "--ignore-repos", help="Comma-separated repositories to skip (adds to config)"
    ),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Show which repositories differ between two branches."""
    config = load_settings(ctx)
    github = build_github(config)
    found = collect_repo_changes(
        github,
        config.github.org,
        source,
        dest,
        ignore_repos=list(config.github.ignore_repos) + split_csv(ignore_repos),
        only_repos=split_csv(repos),
        concurrency=concurrency,
    )

    if as_json:
        typer.echo(json.dumps([vars(d) for d in found], indent=2))
        return
    if not found:
        console.print("No changes found between branches.")
        return

    table = Table(title=f"{source} -> {dest}")
    table.add_column("Repo", style="bold")
    table.add_column("Commits", justify="right")
    table.add_column("+/-")
    table.add_column("Contributors")
    table.add_column("PR")
    for d in found:
        pr = f"#{d.pr_number}" if d.pr_number else "-"
        if d.pr_merged:
            pr += " merged"
        table.add_row(
            d.repo_name,
            str(d.commit_count),
            f"+{d.additions}/-{d.deletions}",
            ", ".join(d.contributors) or "-",
            pr,
        )
    console.print(table)


@app.command("prs")
def pull_requests(
    ctx: typer.Context,
    ignore_repos: Optional[str] = typer.Option(
        None, "--ignore-repos", help="Comma-separated repositories to skip (adds to config)"
    ),
    channel: Optional[str] = typer.Option(
        None, "--channel", help="Mattermost channel ID to post the reminder to"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print the reminder instead of posting it"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """List open pull requests waiting for review across the organisation."""
    config = load_settings(ctx)
    if channel and not dry_run and not config.mattermost.enabled:
        console.print("[red]MATTERMOST_URL and MATTERMOST_TOKEN must be configured.[/red]")
        raise typer.Exit(1)

    github = build_github(config)
    try:
        found = collect_pending_reviews(
            github,
            config.github.org,
            ignore_repos=list(config.github.ignore_repos) + split_csv(ignore_repos),
        )
    finally:
        github.close()

    if as_json:
        typer.echo(json.dumps([asdict(rp) for rp in found], indent=2))
        return
    if not found:
        console.print("No pending PRs found.")
        return

    now = time.time()
    unmapped: set[str] = set()
    table = Table(title="Pending Review")
    table.add_column("Repo", style="bold")
    table.add_column("PR", justify="right")
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("Stale")
    table.add_column("Age")
    table.add_column("Reviewers")
    for rp in found:
        for pr in sorted(rp.pull_requests, key=lambda p: p.updated_at):
            table.add_row(
                rp.repo.name,
                f"#{pr.number}",
                escape(pr.title),
                escape(pr.author),
                format_duration(now - pr.updated_at),
                format_duration(now - pr.created_at),
                escape(waiting_on(pr, config.mattermost_user_for, unmapped)),
            )
    console.print(table)

    reminder = format_reminder(found, config.mattermost_user_for, now=now)
    if dry_run:
        typer.echo(reminder.message)
        return
    if reminder.unmapped_users:
        console.print(
            f"[yellow]Unmapped GitHub users: {escape(', '.join(reminder.unmapped_users))}"
            "[/yellow]"
        )
    if channel:
        client = MattermostClient(config.mattermost.url, config.mattermost.token)
        try:
            with user_errors():
                client.post_message(channel, reminder.message)
        finally:
            client.close()
        console.print(f"[green]Posted reminder to {escape(channel)}[/green]")


@app.command("daemon")
def daemon(ctx: typer.Context) -> None:
    """Poll CI and ArgoCD until interrupted."""
    config = load_settings(ctx)
    service = build_service(config)

    ci_tracker = None
    if config.github.token and config.github.org:
        ci_tracker = CITracker(
            service,
            build_github(config),
            config.github.org,
            poll_interval=config.ci.poll_interval,
            cache_ttl=config.ci.cache_ttl,
        )
    argocd_tracker = ArgoCDTracker(service, config.argocd) if config.argocd.enabled else None

    if ci_tracker is None and argocd_tracker is None:
        console.print("[red]Neither GitHub nor ArgoCD is configured.[/red]")
        raise typer.Exit(1)

    asyncio.run(ReleaseDaemon(ci_tracker, argocd_tracker).run())


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the effective configuration and any problems with it."""
    config = load_settings(ctx)

    table = Table(title="Configuration")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("org", config.github.org or "-")
    table.add_row("github_token", mask(config.github.token))
    table.add_row("ignore_repos", ", ".join(config.github.ignore_repos) or "-")
    table.add_row("mattermost.url", config.mattermost.url or "-")
    table.add_row("mattermost.token", mask(config.mattermost.token))
    table.add_row("dashboard.base_url", config.dashboard.base_url or "-")
    table.add_row("dashboard.sqlite_path", config.dashboard.sqlite_path)
    table.add_row(
        "ci", f"poll {config.ci.poll_interval:g}s, cache {config.ci.cache_ttl:g}s"
    )
    table.add_row(
        "argocd",
        f"poll {config.argocd.poll_interval:g}s, cache {config.argocd.cache_ttl:g}s, "
        f"envs: {', '.join(config.argocd.environments) or '-'}",
    )
    table.add_row("user_mappings", str(len(config.user_mappings)))
    console.print(table)

    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]- {error}[/red]")
        raise typer.Exit(1)
    console.print("[green]Configuration OK[/green]")


# --- Helpers ---


def load_nodes(path: Path) -> List[RepoNode]:
    """Read calculator input from a YAML or JSON file.

    Raises:
        ValueError: If the document has the wrong shape.
    """
    data: Any = yaml.safe_load(path.read_text())
    if data is None:
        return []

    if isinstance(data, dict):
        for name, deps in data.items():
            if deps is not None and not isinstance(deps, (str, list)):
                raise ValueError(f"depends_on of {name} must be a list or JSON text")
        return [
            RepoNode(id=str(name), name=str(name), depends_on=deps)
            for name, deps in data.items()
        ]

    if not isinstance(data, list):
        raise ValueError("expected a list of repositories or a mapping")

    nodes = []
    for entry in data:
        if not isinstance(entry, dict) or "name" not in entry:
            raise ValueError(f"each repository needs a name: {entry!r}")
        depends_on = entry.get("depends_on")
        if depends_on is not None and not isinstance(depends_on, (str, list)):
            raise ValueError(f"depends_on of {entry['name']} must be a list or JSON text")
        # Ids stay as loaded so numeric ids keep numeric order
        node_id = entry.get("id", entry["name"])
        if isinstance(node_id, bool) or not isinstance(node_id, (str, int)):
            raise ValueError(f"id of {entry['name']} must be a string or integer")
        nodes.append(
            RepoNode(
                id=node_id,
                name=str(entry["name"]),
                depends_on=depends_on,
            )
        )
    return nodes


def mask(secret: str) -> str:
    if not secret:
        return "-"
    return f"{secret[:4]}..." if len(secret) > 8 else "***"


if __name__ == "__main__":
    app()
