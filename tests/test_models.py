"""Tests for release models and the stored list codec."""

from __future__ import annotations

import pytest

from release_tools.errors import ParseError
from release_tools.models.release import (
    Release,
    ReleaseRepo,
    RepoCIStatus,
    RepoDeploymentStatus,
    decode_name_list,
    encode_name_list,
)


class TestNameListCodec:
    """JSON array text used for list-valued columns."""

    def test_encode(self) -> None:
        assert encode_name_list(["core", "api"]) == '["core", "api"]'

    def test_encode_none(self) -> None:
        assert encode_name_list(None) == "[]"

    @pytest.mark.parametrize("raw", ["", None, "[]", "null"])
    def test_decode_empty(self, raw) -> None:
        assert decode_name_list(raw) == []

    def test_decode(self) -> None:
        assert decode_name_list('["core", "api"]') == ["core", "api"]

    def test_decode_invalid_json(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            decode_name_list('["core",', "depends_on")
        assert exc_info.value.field == "depends_on"
        assert exc_info.value.raw == '["core",'

    def test_decode_non_string_items(self) -> None:
        with pytest.raises(ParseError, match="array of strings"):
            decode_name_list("[1, 2]")

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            decode_name_list('"core"')


class TestRelease:
    """Release dataclass behavior."""

    def _release(self, **kwargs) -> Release:
        return Release(
            id="rel-1",
            source_branch="develop",
            dest_branch="main",
            created_by="alice",
            channel_id="chan",
            **kwargs,
        )

    def test_fully_approved_needs_both(self) -> None:
        assert not self._release(dev_approved_by="dev").fully_approved
        assert not self._release(qa_approved_by="qa").fully_approved
        assert self._release(dev_approved_by="dev", qa_approved_by="qa").fully_approved

    def test_to_dict_uses_status_value(self) -> None:
        data = self._release().to_dict()
        assert data["status"] == "pending"
        assert data["source_branch"] == "develop"


class TestReleaseRepo:
    """Dependency decoding on stored repositories."""

    def test_depends_on_decodes(self) -> None:
        repo = ReleaseRepo(id=1, release_id="r", repo_name="api", depends_on_raw='["core"]')
        assert repo.depends_on == ["core"]

    def test_corrupt_depends_on_raises_only_on_access(self) -> None:
        repo = ReleaseRepo(id=1, release_id="r", repo_name="api", depends_on_raw="[oops")
        assert repo.to_dict()["depends_on"] == "[oops"
        with pytest.raises(ParseError):
            _ = repo.depends_on


class TestStatusFlags:
    """Convenience flags on CI and rollout statuses."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("pending", True),
            ("queued", True),
            ("in_progress", True),
            ("success", False),
            ("failure", False),
        ],
    )
    def test_ci_in_progress(self, status: str, expected: bool) -> None:
        assert RepoCIStatus(release_repo_id=1, status=status).in_progress is expected

    @pytest.mark.parametrize(
        "rollout,expected",
        [
            ("pending", True),
            ("syncing", True),
            ("unhealthy", True),
            ("not_found", True),
            ("deployed", False),
        ],
    )
    def test_rollout_pending(self, rollout: str, expected: bool) -> None:
        status = RepoDeploymentStatus(
            release_repo_id=1, environment="staging", rollout_status=rollout
        )
        assert status.pending is expected
