"""Batch dispatcher: one flush cycle from queue to collection API.

The dispatcher reads a batch from EventQueue, hands the payloads to the
DeliveryClient and applies the outcome back to the queue. It keeps no queue
of its own and never decides *when* to run; FlushScheduler does that.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from gamify.core.delivery import DeliveryResult
from gamify.core.event import GamifyEvent
from gamify.core.queue import EventQueue

logger = logging.getLogger("gamify.dispatcher")

DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_RETRY_MAX_DELAY = 60.0


class Sender(Protocol):
    """The part of DeliveryClient the dispatcher depends on."""

    async def send(self, events: Sequence[GamifyEvent]) -> DeliveryResult: ...


@dataclass(frozen=True)
class DeliveryReport:
    """What happened in one flush cycle; handed to the on_report callback.

    Attributes:
        result: Delivery outcome, or None if the queue was empty.
        batch_size: Events sent in this cycle.
        delivered: Events confirmed by the API.
        dropped: Events removed without delivery (rejected or out of attempts).
        retry_delay: Seconds to wait before retrying, set only after FAILED.
        queue_size: Events left in the queue after the cycle.
    """

    result: DeliveryResult | None
    batch_size: int = 0
    delivered: int = 0
    dropped: int = 0
    retry_delay: float | None = None
    queue_size: int = 0


@dataclass
class DispatchStats:
    """Running totals across flush cycles."""

    batches_sent: int = 0
    events_delivered: int = 0
    events_dropped: int = 0
    events_rejected: int = 0
    delivery_failures: int = 0
    results: dict[str, int] = field(default_factory=dict)


def backoff_delay(attempts: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff: min(max_delay, base_delay * 2**attempts)."""
    # Cap the exponent; 2**attempts overflows float range long before it matters
    return min(max_delay, base_delay * (2 ** min(attempts, 32)))


class BatchDispatcher:
    """Runs flush cycles against an EventQueue.

    Args:
        queue: Source of batches; mutated only through its public methods.
        sender: Delivers payloads, normally a DeliveryClient.
        max_batch_size: Events per cycle.
        retry_base_delay: Backoff base in seconds.
        retry_max_delay: Backoff ceiling in seconds.
        on_report: Called with a DeliveryReport after every non-empty cycle.
    """

    def __init__(
        self,
        queue: EventQueue,
        sender: Sender,
        max_batch_size: int = 10,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        on_report: Callable[[DeliveryReport], None] | None = None,
    ) -> None:
        self.queue = queue
        self.sender = sender
        self.max_batch_size = max_batch_size
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.on_report = on_report
        self._stats = DispatchStats()

    def get_stats(self) -> DispatchStats:
        """Return a copy of current statistics.

        Returns a snapshot that is safe to inspect without affecting internal state.
        """
        return DispatchStats(
            batches_sent=self._stats.batches_sent,
            events_delivered=self._stats.events_delivered,
            events_dropped=self._stats.events_dropped,
            events_rejected=self._stats.events_rejected,
            delivery_failures=self._stats.delivery_failures,
            results=dict(self._stats.results),
        )

    async def dispatch(self) -> DeliveryReport:
        """Run one flush cycle.

        Returns:
            A DeliveryReport; result is None when there was nothing to send.
        """
        batch = self.queue.peek_batch(self.max_batch_size)
        if not batch:
            return DeliveryReport(result=None)

        ids = [item.id for item in batch]
        logger.debug(f"Flushing {len(batch)} events", extra={"batch_size": len(batch)})

        try:
            result = await self.sender.send([item.event for item in batch])
        except Exception as e:
            logger.error(
                f"Sender raised exception: {e}",
                extra={"batch_size": len(batch), "error": str(e)},
            )
            result = DeliveryResult.FAILED
        self._stats.batches_sent += 1
        self._stats.results[result.value] = self._stats.results.get(result.value, 0) + 1

        if result is DeliveryResult.DELIVERED:
            removed = self.queue.remove_by_ids(ids)
            self._stats.events_delivered += removed
            report = DeliveryReport(
                result=result,
                batch_size=len(batch),
                delivered=removed,
                queue_size=self.queue.size(),
            )

        elif result is DeliveryResult.REJECTED_PERMANENTLY:
            removed = self.queue.remove_by_ids(ids)
            self._stats.events_rejected += removed
            self._stats.events_dropped += removed
            logger.warning(
                f"Batch rejected by API, dropped {removed} events",
                extra={
                    "batch_size": len(batch),
                    "result": result.value,
                    "event_types": [item.event.type for item in batch],
                },
            )
            report = DeliveryReport(
                result=result,
                batch_size=len(batch),
                dropped=removed,
                queue_size=self.queue.size(),
            )

        else:
            self._stats.delivery_failures += 1
            dropped = self.queue.increment_attempts(ids)
            self._stats.events_dropped += len(dropped)
            for item in dropped:
                logger.warning(
                    f"Dropping event after {item.attempts} failed deliveries",
                    extra={
                        "event_id": item.id,
                        "event_type": item.event.type,
                        "attempts": item.attempts,
                    },
                )

            # Slowest surviving entry sets the pace
            survivors = [q for q in (self.queue.get(i) for i in ids) if q is not None]
            attempts = max((q.attempts for q in survivors), default=0)
            delay = backoff_delay(attempts, self.retry_base_delay, self.retry_max_delay)
            logger.info(
                f"Delivery failed, retrying in {delay}s",
                extra={"batch_size": len(batch), "attempts": attempts, "result": result.value},
            )
            report = DeliveryReport(
                result=result,
                batch_size=len(batch),
                dropped=len(dropped),
                retry_delay=delay,
                queue_size=self.queue.size(),
            )

        self._emit(report)
        return report

    def _emit(self, report: DeliveryReport) -> None:
        if self.on_report is None:
            return
        try:
            self.on_report(report)
        except Exception as e:
            logger.error(f"on_report callback raised: {e}", extra={"error": str(e)})
