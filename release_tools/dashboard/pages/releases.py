"""Releases page - filterable list of releases."""

import pandas as pd
import streamlit as st

from release_tools.dashboard.data import ReleaseDataClient, format_ts


def render(client: ReleaseDataClient) -> None:
    """Render the Releases page."""
    st.header("Releases")

    statuses = ["All", "pending", "approved", "declined"]
    selected_status = st.selectbox("Status", statuses)
    status_filter = None if selected_status == "All" else selected_status

    releases = client.list_releases(status_filter)
    if not releases:
        st.info("No releases yet.")
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Releases", len(releases))
    with col2:
        st.metric("Pending", sum(1 for r in releases if r.status.value == "pending"))
    with col3:
        st.metric("Approved", sum(1 for r in releases if r.status.value == "approved"))

    st.divider()

    df = pd.DataFrame(
        [
            {
                "id": r.id,
                "branches": f"{r.source_branch} -> {r.dest_branch}",
                "status": r.status.value,
                "dev": r.dev_approved_by,
                "qa": r.qa_approved_by,
                "created_by": r.created_by,
                "created_at": format_ts(r.created_at),
            }
            for r in releases
        ]
    )
    st.dataframe(
        df,
        use_container_width=True,
        hide_index=True,
        column_config={
            "id": st.column_config.TextColumn("Release"),
            "branches": st.column_config.TextColumn("Branches"),
            "status": st.column_config.TextColumn("Status"),
            "dev": st.column_config.TextColumn("Dev"),
            "qa": st.column_config.TextColumn("QA"),
            "created_by": st.column_config.TextColumn("Created By"),
            "created_at": st.column_config.TextColumn("Created"),
        },
    )

    selected = st.selectbox("Open release", [r.id for r in releases])
    if st.button("View details"):
        st.session_state["release_id"] = selected
        st.session_state["page"] = "Release Detail"
        st.rerun()
