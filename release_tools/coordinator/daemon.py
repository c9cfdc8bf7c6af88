"""Background daemon running the CI and ArgoCD polling loops.

Runs as a persistent async process. Each sweep is blocking (HTTP plus
SQLite), so it runs in a worker thread while the loop waits for the next
interval or a shutdown signal.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable, Optional

from release_tools.coordinator.argocd_tracker import ArgoCDTracker
from release_tools.coordinator.ci_tracker import CITracker
from release_tools.logging import new_correlation_id

logger = logging.getLogger(__name__)


class ReleaseDaemon:
    """Persistent polling process for CI and deployment status."""

    def __init__(
        self,
        ci_tracker: Optional[CITracker] = None,
        argocd_tracker: Optional[ArgoCDTracker] = None,
    ):
        """Initialize the daemon.

        Args:
            ci_tracker: CI tracker, or None to skip CI polling.
            argocd_tracker: ArgoCD tracker, or None to skip deployment polling.
        """
        self.ci_tracker = ci_tracker
        self.argocd_tracker = argocd_tracker
        self._shutdown_event = asyncio.Event()
        self._running = False

    async def run(self, install_signal_handlers: bool = True) -> None:
        """Start the polling loops and wait for shutdown."""
        self._running = True
        logger.info(
            f"Release daemon starting (ci={'on' if self.ci_tracker else 'off'}, "
            f"argocd={'on' if self.argocd_tracker else 'off'})"
        )

        if install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._signal_shutdown)

        tasks: list[asyncio.Task] = []
        if self.ci_tracker is not None:
            tasks.append(
                asyncio.create_task(
                    self._poll_loop(
                        "ci",
                        self.ci_tracker.check_incomplete_statuses,
                        self.ci_tracker.poll_interval,
                    )
                )
            )
        if self.argocd_tracker is not None:
            tasks.append(
                asyncio.create_task(
                    self._poll_loop(
                        "argocd",
                        self.argocd_tracker.check_pending_deployments,
                        self.argocd_tracker.poll_interval,
                    )
                )
            )
        if not tasks:
            logger.warning("Nothing to poll: neither GitHub nor ArgoCD is configured")

        await self._shutdown_event.wait()
        logger.info("Shutdown signal received, stopping...")

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._running = False
        logger.info("Release daemon stopped.")

    async def _poll_loop(
        self, name: str, sweep: Callable[[], int], interval: float
    ) -> None:
        """Run ``sweep`` every ``interval`` seconds until shutdown."""
        try:
            while not self._shutdown_event.is_set():
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                    break  # Shutdown was signaled
                except asyncio.TimeoutError:
                    pass

                new_correlation_id(name)
                try:
                    checked = await asyncio.to_thread(sweep)
                    if checked:
                        logger.debug(f"{name} sweep checked {checked} item(s)")
                except Exception:
                    logger.exception(f"{name} sweep failed")
        except asyncio.CancelledError:
            pass

    def stop(self) -> None:
        """Request shutdown (safe to call from the event loop thread)."""
        self._shutdown_event.set()

    def _signal_shutdown(self) -> None:
        """Handle SIGINT/SIGTERM."""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Check if daemon is currently running."""
        return self._running
