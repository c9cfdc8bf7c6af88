"""Dashboard page modules."""

from release_tools.dashboard.pages import release_detail, releases

__all__ = ["release_detail", "releases"]
