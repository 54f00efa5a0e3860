"""
Background task behind continuous reading.

The loop runs inside an anyio task group owned by the caller of start().
It keeps going through transient failures (logging and backing off) and ends
only when its cancel scope is cancelled or the transport reports closed.
"""

import logging
from typing import Awaitable, Callable, Optional

import anyio
import anyio.abc

from .models import WeightReading

logger = logging.getLogger(__name__)

ERROR_BACKOFF = 1.0  # seconds to wait after a failed iteration
STOP_GRACE_PERIOD = 2.0  # how long stop() waits for the loop to finish


class ContinuousReader:
    """
    Join-able polling loop: fetch -> publish, with back-off on errors.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Optional[WeightReading]]],
        publish: Callable[[WeightReading], None],
        is_alive: Callable[[], bool] = lambda: True,
        error_backoff: float = ERROR_BACKOFF,
        grace_period: float = STOP_GRACE_PERIOD,
        on_finished: Callable[[], None] = lambda: None,
    ):
        """
        Args:
            name: Device name used in log messages
            fetch: One loop iteration; returns a reading or None
            publish: Called synchronously with every reading, in order
            is_alive: Loop condition, typically "transport is open"
            error_backoff: Delay after a failed iteration
            grace_period: Upper bound for stop() to wait for the loop
            on_finished: Called once when the loop has ended, for any reason
        """
        self.name = name
        self._fetch = fetch
        self._publish = publish
        self._is_alive = is_alive
        self.error_backoff = error_backoff
        self.grace_period = grace_period
        self._on_finished = on_finished

        self._scope: Optional[anyio.CancelScope] = None
        self._done: Optional[anyio.Event] = None
        self.iterations = 0
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._done is not None and not self._done.is_set()

    def start(self, task_group: anyio.abc.TaskGroup) -> None:
        """Launch the loop in task_group. No-op if it is already running."""
        if self.running:
            return
        self._scope = anyio.CancelScope()
        self._done = anyio.Event()
        task_group.start_soon(self._run, name=f"continuous-reading:{self.name}")

    async def stop(self) -> bool:
        """
        Cancel the loop and wait for it, at most grace_period seconds.

        Returns:
            True if the loop finished within the grace period
        """
        if self._scope is not None:
            self._scope.cancel()
        if not self.running:
            return True

        with anyio.move_on_after(self.grace_period):
            await self._done.wait()

        if self.running:
            logger.warning(f"{self.name}: continuous reading loop did not stop within "
                           f"{self.grace_period:.1f}s")
            return False
        return True

    async def _run(self):
        logger.debug(f"{self.name}: continuous reading loop started")
        try:
            with self._scope:
                while self._is_alive():
                    self.iterations += 1
                    try:
                        reading = await self._fetch()
                    except Exception as e:
                        self.errors += 1
                        logger.warning(f"{self.name}: continuous read failed ({e}), "
                                       f"retrying in {self.error_backoff:.1f}s")
                        await anyio.sleep(self.error_backoff)
                        continue

                    if reading is not None:
                        self._publish(reading)
                    else:
                        # Let other tasks run even if fetch never suspends
                        await anyio.sleep(0)
        finally:
            self._done.set()
            logger.debug(f"{self.name}: continuous reading loop stopped")
            self._on_finished()
