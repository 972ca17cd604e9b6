"""Core components of the Gamify event capture engine.

This module exposes the primary types and building blocks:

Types:
    GamifyEvent: Immutable, validated tracked event.
    QueuedEvent: Persistence wrapper with id, attempt count and creation time.
    GamifyConfig: Validated client configuration.

Pipeline:
    EventQueue: Durable, capped list of events awaiting delivery.
    DeliveryClient: Sends one batch over HTTP and classifies the outcome.
    BatchDispatcher: Runs one flush cycle from queue to API.
    FlushScheduler: Decides when flush cycles run.

Results and signals:
    DeliveryResult: DELIVERED, REJECTED_PERMANENTLY or FAILED.
    DeliveryReport: Outcome of one flush cycle.
    DispatchStats: Running delivery totals.

Errors:
    ConfigurationError: Raised at construction for invalid configuration.
"""

from gamify.core.config import ConfigurationError, GamifyConfig
from gamify.core.delivery import DeliveryClient, DeliveryResult
from gamify.core.dispatcher import BatchDispatcher, DeliveryReport, DispatchStats
from gamify.core.event import MAX_PROPERTIES_SIZE, GamifyEvent, QueuedEvent
from gamify.core.queue import EventQueue
from gamify.core.scheduler import FlushScheduler, SchedulerState

__all__ = [
    "GamifyEvent",
    "QueuedEvent",
    "MAX_PROPERTIES_SIZE",
    "GamifyConfig",
    "ConfigurationError",
    "EventQueue",
    "DeliveryClient",
    "DeliveryResult",
    "BatchDispatcher",
    "DeliveryReport",
    "DispatchStats",
    "FlushScheduler",
    "SchedulerState",
]
