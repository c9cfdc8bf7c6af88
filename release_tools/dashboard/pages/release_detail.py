"""Release Detail page - repositories by deploy wave with CI and rollout state."""

import pandas as pd
import streamlit as st

from release_tools.dashboard.data import (
    ReleaseDataClient,
    build_repo_rows,
    deploy_order_message,
    format_ts,
)
from release_tools.errors import CorruptRecordError


def render(client: ReleaseDataClient) -> None:
    """Render the Release Detail page."""
    st.header("Release Detail")

    release_id = st.text_input("Release ID", value=st.session_state.get("release_id", ""))
    if not release_id:
        st.info("Pick a release on the Releases page or paste its ID.")
        return
    st.session_state["release_id"] = release_id

    try:
        detail = client.get_release_detail(release_id)
    except CorruptRecordError as e:
        st.error(f"Release data is damaged: {e}")
        return
    if detail is None:
        st.error(f"Release not found: {release_id}")
        return

    release = detail.release
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Status", release.status.value.title())
    with col2:
        st.metric("Dev", release.dev_approved_by or "-")
    with col3:
        st.metric("QA", release.qa_approved_by or "-")
    with col4:
        st.metric("Repos", len(detail.repos))

    st.caption(
        f"{release.source_branch} -> {release.dest_branch} | created by "
        f"{release.created_by} {format_ts(release.created_at)} | last refreshed "
        f"{format_ts(release.last_refreshed_at) or 'never'}"
    )
    if release.notes:
        st.markdown(release.notes)
    if release.breaking_changes:
        st.warning(f"Breaking changes: {release.breaking_changes}")

    error = deploy_order_message(detail)
    if error:
        st.error(error)

    names = {repo.id: repo.repo_name for repo in detail.repos}
    for repo_id, missing in detail.unresolved_dependencies.items():
        st.warning(
            f"{names.get(repo_id, repo_id)} depends on unknown repo(s): "
            f"{', '.join(missing)}"
        )

    st.divider()

    rows = build_repo_rows(
        detail,
        client.get_ci_statuses(release_id),
        client.get_deployment_statuses(release_id),
    )
    if not rows:
        st.info("No repositories in this release.")
    else:
        st.subheader("Repositories")
        st.dataframe(
            pd.DataFrame(rows),
            use_container_width=True,
            hide_index=True,
            column_config={
                "wave": st.column_config.NumberColumn("Wave", format="%d"),
                "repo": st.column_config.TextColumn("Repository"),
                "excluded": st.column_config.CheckboxColumn("Excluded"),
                "commits": st.column_config.NumberColumn("Commits"),
                "changes": st.column_config.TextColumn("+/-"),
                "pr": st.column_config.LinkColumn("PR"),
                "merged": st.column_config.CheckboxColumn("Merged"),
                "confirmed": st.column_config.TextColumn("Confirmed"),
                "ready": st.column_config.CheckboxColumn("Ready"),
                "breaking": st.column_config.CheckboxColumn("Breaking"),
                "ci": st.column_config.TextColumn("CI"),
                "chart": st.column_config.TextColumn("Chart"),
                "deployments": st.column_config.TextColumn("Deployments"),
            },
        )

    actions = client.get_pending_actions(detail)
    if actions:
        st.subheader("Waiting on Confirmations")
        for action in actions:
            who = action.github_user
            if action.mattermost_user:
                who += f" (@{action.mattermost_user})"
            st.markdown(f"- **{who}**: {action.repo_name}")

    with st.expander("History"):
        for entry in client.get_history(release_id):
            st.markdown(
                f"`{format_ts(entry.created_at)}` **{entry.action}** "
                f"{entry.actor or ''}"
            )
