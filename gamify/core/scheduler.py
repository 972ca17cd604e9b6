"""Flush scheduling for Gamify.

FlushScheduler decides when BatchDispatcher runs. It is the only place a
flush cycle is started, and it never lets two cycles overlap: a request that
arrives mid-flight sets a flag and is served by one follow-up cycle.

States:
    IDLE: queue empty, no timer armed.
    SCHEDULED: events waiting, timer armed.
    FLUSH_IN_FLIGHT: a cycle is running.
"""

import asyncio
import atexit
import logging
import weakref
from collections.abc import Callable, Sequence
from enum import Enum

from gamify.core.delivery import DeliveryResult
from gamify.core.dispatcher import BatchDispatcher, DeliveryReport
from gamify.core.event import GamifyEvent

logger = logging.getLogger("gamify.scheduler")

Beacon = Callable[[Sequence[GamifyEvent]], DeliveryResult]


class SchedulerState(Enum):
    """Where the scheduler is in its flush cycle."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    FLUSH_IN_FLIGHT = "flush_in_flight"


class FlushScheduler:
    """Timer, size-threshold and explicit flush triggers over one dispatcher.

    Everything runs on the running asyncio loop. Without one, enqueue
    notifications are ignored and events wait for the next explicit flush.

    Args:
        dispatcher: Runs the actual cycles.
        flush_interval: Seconds between a first enqueue and its flush.
        max_batch_size: Queue size that triggers an immediate flush.
        beacon: Blocking sender used once at interpreter exit.
    """

    def __init__(
        self,
        dispatcher: BatchDispatcher,
        flush_interval: float,
        max_batch_size: int,
        beacon: Beacon | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.flush_interval = flush_interval
        self.max_batch_size = max_batch_size
        self._beacon = beacon
        self._state = SchedulerState.IDLE
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[DeliveryReport] | None = None
        self._flush_requested = False
        self._backoff_until: float | None = None
        self._closed = False
        self._teardown_hook: Callable[[], None] | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_backoff(self) -> bool:
        if self._backoff_until is None:
            return False
        try:
            return asyncio.get_running_loop().time() < self._backoff_until
        except RuntimeError:
            return False

    def _running_loop(self) -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _arm(self, loop: asyncio.AbstractEventLoop, delay: float) -> None:
        self._cancel_timer()
        self._timer = loop.call_later(delay, self._on_timer)
        self._state = SchedulerState.SCHEDULED

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self.request_flush()

    def _start(self, loop: asyncio.AbstractEventLoop) -> asyncio.Task[DeliveryReport]:
        self._cancel_timer()
        self._state = SchedulerState.FLUSH_IN_FLIGHT
        self._task = loop.create_task(self._run())
        return self._task

    def notify_enqueued(self) -> None:
        """Called after every enqueue; arms the timer or starts a flush."""
        if self._closed:
            return
        loop = self._running_loop()
        if loop is None:
            logger.debug("No running event loop, event will wait for the next flush")
            return

        threshold_reached = (
            self.dispatcher.queue.size() >= self.max_batch_size and not self.in_backoff
        )
        if self._state is SchedulerState.FLUSH_IN_FLIGHT:
            if threshold_reached:
                self._flush_requested = True
            return
        if threshold_reached:
            self._start(loop)
        elif self._timer is None:
            self._arm(loop, self.flush_interval)

    def request_flush(self) -> None:
        """Start a cycle now, or coalesce into the one already running."""
        if self._closed:
            return
        loop = self._running_loop()
        if loop is None:
            return
        if self._task is not None:
            self._flush_requested = True
            return
        self._start(loop)

    async def flush_now(self) -> DeliveryReport | None:
        """Flush immediately and wait for the cycle to finish.

        Ignores any retry backoff. If a cycle is already running, the request
        is coalesced into a follow-up cycle of that same run.

        Returns:
            The report of the last cycle run, or None after shutdown.
        """
        if self._closed:
            return None
        if self._task is None:
            task = self._start(asyncio.get_running_loop())
        else:
            self._flush_requested = True
            task = self._task
        # Shield: cancelling the caller must not abort a send already in transit
        return await asyncio.shield(task)

    async def _run(self) -> DeliveryReport:
        report = DeliveryReport(result=None)
        try:
            while True:
                self._flush_requested = False
                report = await self.dispatcher.dispatch()
                if self._closed or report.result is None:
                    break
                if report.result is DeliveryResult.FAILED:
                    break
                self._backoff_until = None
                size = self.dispatcher.queue.size()
                if size == 0:
                    break
                if not self._flush_requested and size < self.max_batch_size:
                    break
        except Exception as e:
            logger.error(f"Flush cycle raised exception: {e}", extra={"error": str(e)})
        finally:
            self._task = None
            self._after_cycle(report)
        return report

    def _after_cycle(self, report: DeliveryReport) -> None:
        self._flush_requested = False
        if self._closed or not self.dispatcher.queue.has_pending():
            self._state = SchedulerState.IDLE
            return

        loop = self._running_loop()
        if loop is None:
            self._state = SchedulerState.IDLE
            return
        if report.result is DeliveryResult.FAILED and report.retry_delay is not None:
            self._backoff_until = loop.time() + report.retry_delay
            self._arm(loop, report.retry_delay)
        else:
            self._arm(loop, self.flush_interval)

    async def shutdown(self) -> DeliveryReport | None:
        """Stop scheduling and run one final best-effort cycle.

        A cycle already in flight finishes on its own first. Safe to call
        more than once; later calls return None.
        """
        if self._closed:
            return None
        self._closed = True
        self._cancel_timer()
        self.unregister_teardown()

        if self._task is not None:
            await asyncio.shield(self._task)

        try:
            report = await self.dispatcher.dispatch()
        except Exception as e:
            logger.error(f"Final flush raised exception: {e}", extra={"error": str(e)})
            report = None
        self._state = SchedulerState.IDLE
        return report

    def register_teardown(self) -> None:
        """Beacon-flush the oldest batch at interpreter exit.

        The exit hook holds only a weak reference, so a scheduler that is
        garbage collected simply skips it.
        """
        if self._beacon is None or self._teardown_hook is not None:
            return
        ref = weakref.ref(self)

        def hook() -> None:
            scheduler = ref()
            if scheduler is not None:
                scheduler.teardown()

        atexit.register(hook)
        self._teardown_hook = hook

    def unregister_teardown(self) -> None:
        if self._teardown_hook is not None:
            atexit.unregister(self._teardown_hook)
            self._teardown_hook = None

    def teardown(self) -> None:
        """Synchronous last-chance flush; failures are silent."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        if self._beacon is None:
            return

        queue = self.dispatcher.queue
        batch = queue.peek_batch(self.max_batch_size)
        if not batch:
            return
        try:
            result = self._beacon([item.event for item in batch])
        except Exception as e:
            logger.debug(f"Beacon raised exception: {e}")
            return
        if result is DeliveryResult.DELIVERED:
            queue.remove_by_ids([item.id for item in batch])
