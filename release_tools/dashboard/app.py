"""Release Dashboard - Streamlit entry point.

Run with: streamlit run release_tools/dashboard/app.py
"""

import time

import streamlit as st

from release_tools.config import load_config
from release_tools.dashboard.data import ReleaseDataClient
from release_tools.dashboard.pages import release_detail, releases

# Page configuration
st.set_page_config(
    page_title="Release Dashboard",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Available pages
PAGES = {
    "Releases": releases.render,
    "Release Detail": release_detail.render,
}


def get_client() -> ReleaseDataClient:
    """Get or create a cached ReleaseDataClient."""
    if "config" not in st.session_state:
        st.session_state["config"] = load_config()
    config = st.session_state["config"]

    db_path = st.session_state.get("db_path", config.dashboard.sqlite_path)

    # Cache client in session state
    if "client" not in st.session_state or st.session_state.get("client_key") != db_path:
        st.session_state["client"] = ReleaseDataClient(db_path, config)
        st.session_state["client_key"] = db_path

    return st.session_state["client"]


def sidebar() -> str:
    """Render the sidebar and return the selected page name."""
    with st.sidebar:
        st.title("Releases")

        names = list(PAGES.keys())
        current = st.session_state.get("page", names[0])
        page = st.radio(
            "Navigate",
            names,
            index=names.index(current) if current in names else 0,
            label_visibility="collapsed",
        )
        st.session_state["page"] = page

        st.divider()

        auto_refresh = st.toggle("Auto-refresh", value=True)
        st.session_state["auto_refresh"] = auto_refresh

        if auto_refresh:
            interval = st.slider(
                "Refresh interval (s)", min_value=5, max_value=60, value=10
            )
            st.session_state["refresh_interval"] = interval
        else:
            if st.button("Refresh now"):
                get_client().refresh()
                st.rerun()

        st.divider()

        with st.expander("Settings"):
            db_path = st.text_input(
                "Release DB Path",
                value=st.session_state.get(
                    "db_path", get_client().db_path
                ),
            )
            st.session_state["db_path"] = db_path

    return page


def main() -> None:
    """Main dashboard entry point."""
    page_name = sidebar()
    client = get_client()

    PAGES[page_name](client)

    if st.session_state.get("auto_refresh", True):
        interval = st.session_state.get("refresh_interval", 10)
        time.sleep(interval)
        st.rerun()


if __name__ == "__main__":
    main()
