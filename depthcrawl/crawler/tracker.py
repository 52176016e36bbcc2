"""
Outstanding-work counter for a traversal.
"""

import asyncio
import logging


class WorkTracker:
    """
    Counts tasks that are running or owed.

    A spawner calls add() before creating each task and every task calls
    done() exactly once when it finishes. wait() returns once the count is
    back at zero.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self.zero_transitions = 0

    @property
    def outstanding(self) -> int:
        return self._outstanding

    def add(self, count: int = 1):
        """Register count units of work."""
        if count < 0:
            raise ValueError("count must be non-negative")
        if count == 0:
            return
        self._outstanding += count
        self._idle.clear()

    def done(self):
        """Release one unit of work."""
        if self._outstanding <= 0:
            raise ValueError("WorkTracker.done() called with no outstanding work")
        self._outstanding -= 1
        if self._outstanding == 0:
            self.zero_transitions += 1
            self.logger.debug("All outstanding work completed")
            self._idle.set()

    async def wait(self):
        """Suspend until no work is outstanding."""
        await self._idle.wait()
