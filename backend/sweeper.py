"""Age-based reclamation of sandboxes.

The sweeper wakes up periodically, snapshots the registry and deletes every
sandbox older than the maximum age through the same path the API uses.
A failing or hanging delete is logged and skipped so it cannot stall the
rest of the sweep.
"""

import asyncio
import contextlib
import time
from collections.abc import Callable

import structlog

from sandbox.registry import SandboxNotFoundError, SandboxRegistry
from sandbox_manager import SandboxManager

logger = structlog.get_logger(__name__)


class ReclamationSweeper:
    """Background task that deletes sandboxes past their maximum age.

    Attributes:
        interval: Seconds between sweeps.
        max_age: Sandboxes older than this many seconds are deleted.
        delete_timeout: Bound on a single sandbox delete.
    """

    def __init__(
        self,
        manager: SandboxManager,
        registry: SandboxRegistry,
        *,
        interval: float = 300.0,
        max_age: float = 7200.0,
        delete_timeout: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.manager = manager
        self.registry = registry
        self.interval = interval
        self.max_age = max_age
        self.delete_timeout = delete_timeout
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    def expired(self) -> list[str]:
        """Return ids of sandboxes older than ``max_age`` right now."""
        now = self._clock()
        return [
            record.sandbox_id
            for record in self.registry.list()
            if record.age(now) > self.max_age
        ]

    async def sweep_once(self) -> list[str]:
        """Run one sweep.

        Returns:
            Ids of the sandboxes that were reclaimed.
        """
        reclaimed: list[str] = []
        for sandbox_id in self.expired():
            try:
                await asyncio.wait_for(
                    self.manager.delete(sandbox_id),
                    timeout=self.delete_timeout,
                )
            except SandboxNotFoundError:
                # Deleted through the API since the snapshot was taken
                logger.debug("sweep_sandbox_already_deleted", sandbox_id=sandbox_id)
                continue
            except TimeoutError:
                logger.error(
                    "sweep_delete_timed_out",
                    sandbox_id=sandbox_id,
                    timeout=self.delete_timeout,
                )
                continue
            except Exception as e:
                logger.error(
                    "sweep_delete_failed",
                    sandbox_id=sandbox_id,
                    error=str(e),
                )
                continue

            reclaimed.append(sandbox_id)
            logger.info("sandbox_reclaimed", sandbox_id=sandbox_id)

        if reclaimed:
            logger.info("sweep_complete", reclaimed=len(reclaimed))
        return reclaimed

    def start(self) -> asyncio.Task[None]:
        """Start the periodic sweep in a background task.

        The task runs until cancelled (typically at application shutdown).

        Returns:
            The background asyncio.Task.
        """

        async def _loop() -> None:
            logger.info(
                "sweeper_started",
                interval_seconds=self.interval,
                max_age_seconds=self.max_age,
            )
            while True:
                try:
                    await asyncio.sleep(self.interval)
                    await self.sweep_once()
                except asyncio.CancelledError:
                    logger.info("sweeper_stopped")
                    return
                except Exception as e:
                    logger.error("sweeper_loop_error", error=str(e))

        self._task = asyncio.create_task(_loop(), name="sandbox_sweeper")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
