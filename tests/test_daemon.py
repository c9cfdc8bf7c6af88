"""Tests for the polling daemon."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

from release_tools.coordinator.daemon import ReleaseDaemon


def _tracker(method: str, interval: float = 0.01) -> MagicMock:
    tracker = MagicMock()
    tracker.poll_interval = interval
    getattr(tracker, method).return_value = 1
    return tracker


async def _run_for(daemon: ReleaseDaemon, seconds: float) -> None:
    task = asyncio.create_task(daemon.run(install_signal_handlers=False))
    await asyncio.sleep(seconds)
    assert daemon.is_running
    daemon.stop()
    await asyncio.wait_for(task, timeout=2)


class TestReleaseDaemon:
    """Loop scheduling and shutdown."""

    def test_runs_both_sweeps(self) -> None:
        ci = _tracker("check_incomplete_statuses")
        argocd = _tracker("check_pending_deployments")
        daemon = ReleaseDaemon(ci, argocd)

        asyncio.run(_run_for(daemon, 0.2))

        assert ci.check_incomplete_statuses.call_count >= 1
        assert argocd.check_pending_deployments.call_count >= 1
        assert not daemon.is_running

    def test_sweep_errors_do_not_stop_loop(self) -> None:
        ci = _tracker("check_incomplete_statuses")
        ci.check_incomplete_statuses.side_effect = RuntimeError("GitHub unavailable")
        daemon = ReleaseDaemon(ci_tracker=ci)

        asyncio.run(_run_for(daemon, 0.2))

        assert ci.check_incomplete_statuses.call_count >= 2

    def test_no_sweep_before_first_interval(self) -> None:
        ci = _tracker("check_incomplete_statuses", interval=60)
        daemon = ReleaseDaemon(ci_tracker=ci)

        asyncio.run(_run_for(daemon, 0.05))

        ci.check_incomplete_statuses.assert_not_called()

    def test_runs_with_nothing_configured(self) -> None:
        daemon = ReleaseDaemon()
        asyncio.run(_run_for(daemon, 0.01))
        assert not daemon.is_running
