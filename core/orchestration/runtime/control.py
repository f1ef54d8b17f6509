"""
Run Control - Cooperative pause/abort token for one run.

The coordinator flips the flags; the strategy executor checks them at its
yield points (before each agent, between batches, while retrying). Nothing
here interrupts an agent call that is already in flight.
"""

import asyncio

from orchestration.config import DEFAULT_PAUSE_POLL_INTERVAL


class RunControl:
    """Pause and abort flags shared by a coordinator and one executor."""

    def __init__(self, pause_poll_interval: float = DEFAULT_PAUSE_POLL_INTERVAL):
        self._paused = False
        self._aborted = False
        self._poll_interval = pause_poll_interval

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def aborted(self) -> bool:
        return self._aborted

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def abort(self) -> None:
        self._aborted = True

    async def wait_while_paused(self) -> None:
        """Block, polling, until resumed or aborted."""
        while self._paused and not self._aborted:
            await asyncio.sleep(self._poll_interval)

    async def checkpoint(self) -> bool:
        """
        Gate an executor step.

        Returns:
            True if the executor may proceed, False if the run was aborted
        """
        if self._aborted:
            return False
        await self.wait_while_paused()
        return not self._aborted
