"""SQLite state management for releases."""

import json
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, List, Optional

from release_tools.errors import CorruptRecordError, ParseError
from release_tools.models.release import (
    TERMINAL_CI_STATES,
    Release,
    ReleaseHistory,
    ReleaseRepo,
    ReleaseStatus,
    RepoCIStatus,
    RepoData,
    RepoDeploymentStatus,
    User,
    decode_name_list,
    encode_name_list,
)

# Columns callers may change through the generic update helpers
RELEASE_UPDATABLE = frozenset(
    {
        "status",
        "notes",
        "breaking_changes",
        "mattermost_post_id",
        "dev_approved_by",
        "dev_approved_at",
        "qa_approved_by",
        "qa_approved_at",
        "declined_by",
        "declined_at",
        "last_refreshed_at",
    }
)

REPO_UPDATABLE = frozenset(
    {
        "commit_count",
        "additions",
        "deletions",
        "contributors",
        "pr_number",
        "pr_url",
        "pr_merged",
        "excluded",
        "depends_on",
        "summary",
        "is_breaking",
        "confirmed_by",
        "confirmed_at",
        "infra_changes",
        "merge_commit_sha",
        "head_sha",
    }
)

USER_UPDATABLE = frozenset({"mattermost_user", "github_user", "updated_at"})


def _decode_list(row: sqlite3.Row, column: str) -> List[str]:
    """Decode a JSON list column of a release_repos row."""
    try:
        return decode_name_list(row[column], column)
    except ParseError as e:
        raise CorruptRecordError(
            f"release repo {row['id']} ({row['repo_name']}): {e}"
        ) from e


class ReleaseState:
    """Manages persistent release state."""

    def __init__(self, db_path: str):
        """Initialize state manager.

        Args:
            db_path: Path to SQLite database file.
        """
        self.db_path = db_path
        self._ensure_db_directory()
        self._init_db()

    def _ensure_db_directory(self) -> None:
        """Ensure the database directory exists."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS releases (
                    id TEXT PRIMARY KEY,
                    source_branch TEXT NOT NULL,
                    dest_branch TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    notes TEXT NOT NULL DEFAULT '',
                    breaking_changes TEXT NOT NULL DEFAULT '',
                    created_by TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    mattermost_post_id TEXT NOT NULL DEFAULT '',
                    dev_approved_by TEXT NOT NULL DEFAULT '',
                    dev_approved_at INTEGER NOT NULL DEFAULT 0,
                    qa_approved_by TEXT NOT NULL DEFAULT '',
                    qa_approved_at INTEGER NOT NULL DEFAULT 0,
                    declined_by TEXT NOT NULL DEFAULT '',
                    declined_at INTEGER NOT NULL DEFAULT 0,
                    last_refreshed_at INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL
                )
            """
            )

            # List-valued columns hold JSON array text
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS release_repos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    release_id TEXT NOT NULL REFERENCES releases(id),
                    repo_name TEXT NOT NULL,
                    commit_count INTEGER NOT NULL DEFAULT 0,
                    additions INTEGER NOT NULL DEFAULT 0,
                    deletions INTEGER NOT NULL DEFAULT 0,
                    contributors TEXT NOT NULL DEFAULT '',
                    pr_number INTEGER NOT NULL DEFAULT 0,
                    pr_url TEXT NOT NULL DEFAULT '',
                    pr_merged INTEGER NOT NULL DEFAULT 0,
                    excluded INTEGER NOT NULL DEFAULT 0,
                    depends_on TEXT NOT NULL DEFAULT '',
                    summary TEXT NOT NULL DEFAULT '',
                    is_breaking INTEGER NOT NULL DEFAULT 0,
                    confirmed_by TEXT NOT NULL DEFAULT '',
                    confirmed_at INTEGER NOT NULL DEFAULT 0,
                    infra_changes TEXT NOT NULL DEFAULT '',
                    merge_commit_sha TEXT NOT NULL DEFAULT '',
                    head_sha TEXT NOT NULL DEFAULT ''
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS repo_ci_statuses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    release_repo_id INTEGER NOT NULL UNIQUE,
                    workflow_run_id INTEGER NOT NULL DEFAULT 0,
                    workflow_run_num INTEGER NOT NULL DEFAULT 0,
                    workflow_url TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'pending',
                    chart_name TEXT NOT NULL DEFAULT '',
                    chart_version TEXT NOT NULL DEFAULT '',
                    merge_commit_sha TEXT NOT NULL DEFAULT '',
                    started_at INTEGER NOT NULL DEFAULT 0,
                    completed_at INTEGER NOT NULL DEFAULT 0,
                    last_checked_at INTEGER NOT NULL DEFAULT 0
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS repo_deployment_statuses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    release_repo_id INTEGER NOT NULL,
                    environment TEXT NOT NULL,
                    app_name TEXT NOT NULL DEFAULT '',
                    expected_version TEXT NOT NULL DEFAULT '',
                    current_version TEXT NOT NULL DEFAULT '',
                    sync_status TEXT NOT NULL DEFAULT '',
                    health_status TEXT NOT NULL DEFAULT '',
                    rollout_status TEXT NOT NULL DEFAULT 'pending',
                    last_checked_at INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (release_repo_id, environment)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS release_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    release_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    actor TEXT NOT NULL DEFAULT '',
                    details TEXT NOT NULL DEFAULT '',
                    created_at INTEGER NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    mattermost_user TEXT NOT NULL DEFAULT '',
                    github_user TEXT NOT NULL DEFAULT '',
                    created_at INTEGER NOT NULL DEFAULT 0,
                    updated_at INTEGER NOT NULL DEFAULT 0
                )
            """
            )

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_repos_release ON release_repos(release_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_history_release ON release_history(release_id, created_at)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_users_github ON users(github_user)"
            )

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def add_release(self, release: Release) -> None:
        """Insert a new release."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO releases
                (id, source_branch, dest_branch, status, notes, breaking_changes,
                 created_by, channel_id, mattermost_post_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    release.id,
                    release.source_branch,
                    release.dest_branch,
                    release.status.value,
                    release.notes,
                    release.breaking_changes,
                    release.created_by,
                    release.channel_id,
                    release.mattermost_post_id,
                    release.created_at,
                ),
            )

    def get_release(self, release_id: str) -> Optional[Release]:
        """Get a release by ID."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM releases WHERE id = ?", (release_id,)
            ).fetchone()
            return self._row_to_release(row) if row else None

    def list_releases(self, status: Optional[str] = None) -> List[Release]:
        """List releases newest first, optionally filtered by status."""
        query = "SELECT * FROM releases"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, rowid DESC"

        with self._get_connection() as conn:
            return [self._row_to_release(r) for r in conn.execute(query, params)]

    def update_release(self, release_id: str, **fields: Any) -> None:
        """Update selected release columns."""
        self._update("releases", RELEASE_UPDATABLE, release_id, fields)

    # ------------------------------------------------------------------
    # Release repos
    # ------------------------------------------------------------------

    def add_repo(
        self, release_id: str, data: RepoData, depends_on: Optional[List[str]] = None
    ) -> int:
        """Insert a release repository and return its ID."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO release_repos
                (release_id, repo_name, commit_count, additions, deletions,
                 contributors, pr_number, pr_url, pr_merged, depends_on, summary,
                 is_breaking, infra_changes, merge_commit_sha, head_sha)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    release_id,
                    data.repo_name,
                    data.commit_count,
                    data.additions,
                    data.deletions,
                    encode_name_list(data.contributors),
                    data.pr_number,
                    data.pr_url,
                    int(data.pr_merged),
                    encode_name_list(depends_on) if depends_on is not None else "",
                    data.summary,
                    int(data.is_breaking),
                    encode_name_list(data.infra_changes),
                    data.merge_commit_sha,
                    data.head_sha,
                ),
            )
            return int(cursor.lastrowid)

    def get_repo(self, repo_id: int) -> Optional[ReleaseRepo]:
        """Get a release repository by ID."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM release_repos WHERE id = ?", (repo_id,)
            ).fetchone()
            return self._row_to_repo(row) if row else None

    def get_repos(self, release_id: str) -> List[ReleaseRepo]:
        """Get all repositories of a release, ordered by name."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM release_repos WHERE release_id = ? ORDER BY repo_name, id",
                (release_id,),
            ).fetchall()
            return [self._row_to_repo(r) for r in rows]

    def update_repo(self, repo_id: int, **fields: Any) -> None:
        """Update selected repository columns.

        List values for ``contributors``, ``confirmed_by``, ``infra_changes``
        and ``depends_on`` are encoded here.
        """
        encoded = {
            key: encode_name_list(value) if isinstance(value, (list, tuple)) else value
            for key, value in fields.items()
        }
        self._update("release_repos", REPO_UPDATABLE, repo_id, encoded)

    def delete_repo(self, repo_id: int) -> None:
        """Delete a repository and its CI and deployment status rows."""
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM repo_ci_statuses WHERE release_repo_id = ?", (repo_id,)
            )
            conn.execute(
                "DELETE FROM repo_deployment_statuses WHERE release_repo_id = ?",
                (repo_id,),
            )
            conn.execute("DELETE FROM release_repos WHERE id = ?", (repo_id,))

    def get_repos_with_successful_ci(self) -> List[ReleaseRepo]:
        """Non-excluded repositories whose CI succeeded and produced a chart."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT release_repos.* FROM release_repos
                INNER JOIN repo_ci_statuses
                    ON repo_ci_statuses.release_repo_id = release_repos.id
                WHERE repo_ci_statuses.status = 'success'
                  AND repo_ci_statuses.chart_version != ''
                  AND release_repos.excluded = 0
                ORDER BY release_repos.id
            """
            ).fetchall()
            return [self._row_to_repo(r) for r in rows]

    # ------------------------------------------------------------------
    # CI statuses
    # ------------------------------------------------------------------

    def upsert_ci_status(self, status: RepoCIStatus) -> RepoCIStatus:
        """Create or replace the CI status of a repository.

        Returns:
            The status with its row ``id`` filled in.
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO repo_ci_statuses
                (release_repo_id, workflow_run_id, workflow_run_num, workflow_url,
                 status, chart_name, chart_version, merge_commit_sha, started_at,
                 completed_at, last_checked_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(release_repo_id) DO UPDATE SET
                    workflow_run_id = excluded.workflow_run_id,
                    workflow_run_num = excluded.workflow_run_num,
                    workflow_url = excluded.workflow_url,
                    status = excluded.status,
                    chart_name = excluded.chart_name,
                    chart_version = excluded.chart_version,
                    merge_commit_sha = excluded.merge_commit_sha,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at,
                    last_checked_at = excluded.last_checked_at
            """,
                (
                    status.release_repo_id,
                    status.workflow_run_id,
                    status.workflow_run_num,
                    status.workflow_url,
                    status.status,
                    status.chart_name,
                    status.chart_version,
                    status.merge_commit_sha,
                    status.started_at,
                    status.completed_at,
                    status.last_checked_at,
                ),
            )
            row = conn.execute(
                "SELECT id FROM repo_ci_statuses WHERE release_repo_id = ?",
                (status.release_repo_id,),
            ).fetchone()
            status.id = row["id"]
            return status

    def get_ci_status(self, release_repo_id: int) -> Optional[RepoCIStatus]:
        """Get the CI status of a repository."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM repo_ci_statuses WHERE release_repo_id = ?",
                (release_repo_id,),
            ).fetchone()
            return self._row_to_ci_status(row) if row else None

    def get_incomplete_ci_statuses(self) -> List[RepoCIStatus]:
        """CI statuses of existing repositories that are not yet terminal."""
        terminal = sorted(TERMINAL_CI_STATES)
        placeholders = ", ".join("?" for _ in terminal)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT repo_ci_statuses.* FROM repo_ci_statuses
                INNER JOIN release_repos
                    ON release_repos.id = repo_ci_statuses.release_repo_id
                WHERE repo_ci_statuses.status NOT IN ({placeholders})
                ORDER BY repo_ci_statuses.id
            """,
                terminal,
            ).fetchall()
            return [self._row_to_ci_status(r) for r in rows]

    def get_ci_statuses_for_release(self, release_id: str) -> List[RepoCIStatus]:
        """All CI statuses belonging to a release."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT repo_ci_statuses.* FROM repo_ci_statuses
                INNER JOIN release_repos
                    ON release_repos.id = repo_ci_statuses.release_repo_id
                WHERE release_repos.release_id = ?
                ORDER BY repo_ci_statuses.release_repo_id
            """,
                (release_id,),
            ).fetchall()
            return [self._row_to_ci_status(r) for r in rows]

    # ------------------------------------------------------------------
    # Deployment statuses
    # ------------------------------------------------------------------

    def upsert_deployment_status(
        self, status: RepoDeploymentStatus
    ) -> RepoDeploymentStatus:
        """Create or replace a repository's status in one environment."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO repo_deployment_statuses
                (release_repo_id, environment, app_name, expected_version,
                 current_version, sync_status, health_status, rollout_status,
                 last_checked_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(release_repo_id, environment) DO UPDATE SET
                    app_name = excluded.app_name,
                    expected_version = excluded.expected_version,
                    current_version = excluded.current_version,
                    sync_status = excluded.sync_status,
                    health_status = excluded.health_status,
                    rollout_status = excluded.rollout_status,
                    last_checked_at = excluded.last_checked_at
            """,
                (
                    status.release_repo_id,
                    status.environment,
                    status.app_name,
                    status.expected_version,
                    status.current_version,
                    status.sync_status,
                    status.health_status,
                    status.rollout_status,
                    status.last_checked_at,
                ),
            )
            row = conn.execute(
                """
                SELECT id FROM repo_deployment_statuses
                WHERE release_repo_id = ? AND environment = ?
            """,
                (status.release_repo_id, status.environment),
            ).fetchone()
            status.id = row["id"]
            return status

    def get_deployment_status(
        self, release_repo_id: int, environment: str
    ) -> Optional[RepoDeploymentStatus]:
        """Get a repository's status in one environment."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM repo_deployment_statuses
                WHERE release_repo_id = ? AND environment = ?
            """,
                (release_repo_id, environment),
            ).fetchone()
            return self._row_to_deployment_status(row) if row else None

    def get_deployment_statuses_for_release(
        self, release_id: str
    ) -> List[RepoDeploymentStatus]:
        """All deployment statuses belonging to a release."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT repo_deployment_statuses.* FROM repo_deployment_statuses
                INNER JOIN release_repos
                    ON release_repos.id = repo_deployment_statuses.release_repo_id
                WHERE release_repos.release_id = ?
                ORDER BY repo_deployment_statuses.release_repo_id,
                         repo_deployment_statuses.environment
            """,
                (release_id,),
            ).fetchall()
            return [self._row_to_deployment_status(r) for r in rows]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(self, entry: ReleaseHistory) -> None:
        """Append a history entry."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO release_history (release_id, action, actor, details, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    entry.release_id,
                    entry.action,
                    entry.actor,
                    json.dumps(entry.details) if entry.details else "",
                    entry.created_at,
                ),
            )

    def get_history(self, release_id: str, limit: int = 200) -> List[ReleaseHistory]:
        """History of a release, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM release_history WHERE release_id = ?
                ORDER BY created_at DESC, id DESC LIMIT ?
            """,
                (release_id, limit),
            ).fetchall()
            return [
                ReleaseHistory(
                    id=r["id"],
                    release_id=r["release_id"],
                    action=r["action"],
                    actor=r["actor"],
                    details=json.loads(r["details"]) if r["details"] else {},
                    created_at=r["created_at"],
                )
                for r in rows
            ]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> User:
        """Insert a user and return it with its ID."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (email, mattermost_user, github_user, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    user.email,
                    user.mattermost_user,
                    user.github_user,
                    user.created_at,
                    user.updated_at,
                ),
            )
            user.id = int(cursor.lastrowid)
            return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            return self._row_to_user(row) if row else None

    def list_users(self) -> List[User]:
        """All known users."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
            return [self._row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields: Any) -> None:
        """Update selected user columns."""
        self._update("users", USER_UPDATABLE, user_id, fields)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _update(
        self, table: str, allowed: frozenset, row_id: Any, fields: dict
    ) -> None:
        """Run ``UPDATE table SET ... WHERE id = ?`` for whitelisted columns."""
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {', '.join(sorted(unknown))}")
        if not fields:
            return

        updates = []
        params: list = []
        for column, value in fields.items():
            updates.append(f"{column} = ?")
            if isinstance(value, ReleaseStatus):
                value = value.value
            elif isinstance(value, bool):
                value = int(value)
            params.append(value)
        params.append(row_id)

        with self._get_connection() as conn:
            conn.execute(
                f"UPDATE {table} SET {', '.join(updates)} WHERE id = ?",
                params,
            )

    def _row_to_release(self, row: sqlite3.Row) -> Release:
        """Convert a database row to a Release."""
        return Release(
            id=row["id"],
            source_branch=row["source_branch"],
            dest_branch=row["dest_branch"],
            status=ReleaseStatus(row["status"]),
            notes=row["notes"],
            breaking_changes=row["breaking_changes"],
            created_by=row["created_by"],
            channel_id=row["channel_id"],
            mattermost_post_id=row["mattermost_post_id"],
            dev_approved_by=row["dev_approved_by"],
            dev_approved_at=row["dev_approved_at"],
            qa_approved_by=row["qa_approved_by"],
            qa_approved_at=row["qa_approved_at"],
            declined_by=row["declined_by"],
            declined_at=row["declined_at"],
            last_refreshed_at=row["last_refreshed_at"],
            created_at=row["created_at"],
        )

    def _row_to_repo(self, row: sqlite3.Row) -> ReleaseRepo:
        """Convert a database row to a ReleaseRepo.

        Raises:
            CorruptRecordError: If a contributor, confirmation or infra list
                is corrupt. Dependency text is left for the deploy order
                calculator to decode.
        """
        return ReleaseRepo(
            id=row["id"],
            release_id=row["release_id"],
            repo_name=row["repo_name"],
            commit_count=row["commit_count"],
            additions=row["additions"],
            deletions=row["deletions"],
            contributors=_decode_list(row, "contributors"),
            pr_number=row["pr_number"],
            pr_url=row["pr_url"],
            pr_merged=bool(row["pr_merged"]),
            excluded=bool(row["excluded"]),
            depends_on_raw=row["depends_on"],
            summary=row["summary"],
            is_breaking=bool(row["is_breaking"]),
            confirmed_by=_decode_list(row, "confirmed_by"),
            confirmed_at=row["confirmed_at"],
            infra_changes=_decode_list(row, "infra_changes"),
            merge_commit_sha=row["merge_commit_sha"],
            head_sha=row["head_sha"],
        )

    def _row_to_ci_status(self, row: sqlite3.Row) -> RepoCIStatus:
        """Convert a database row to a RepoCIStatus."""
        return RepoCIStatus(
            id=row["id"],
            release_repo_id=row["release_repo_id"],
            workflow_run_id=row["workflow_run_id"],
            workflow_run_num=row["workflow_run_num"],
            workflow_url=row["workflow_url"],
            status=row["status"],
            chart_name=row["chart_name"],
            chart_version=row["chart_version"],
            merge_commit_sha=row["merge_commit_sha"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            last_checked_at=row["last_checked_at"],
        )

    def _row_to_deployment_status(self, row: sqlite3.Row) -> RepoDeploymentStatus:
        """Convert a database row to a RepoDeploymentStatus."""
        return RepoDeploymentStatus(
            id=row["id"],
            release_repo_id=row["release_repo_id"],
            environment=row["environment"],
            app_name=row["app_name"],
            expected_version=row["expected_version"],
            current_version=row["current_version"],
            sync_status=row["sync_status"],
            health_status=row["health_status"],
            rollout_status=row["rollout_status"],
            last_checked_at=row["last_checked_at"],
        )

    def _row_to_user(self, row: sqlite3.Row) -> User:
        """Convert a database row to a User."""
        return User(
            id=row["id"],
            email=row["email"],
            mattermost_user=row["mattermost_user"],
            github_user=row["github_user"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
