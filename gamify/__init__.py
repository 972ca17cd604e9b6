"""Gamify - Buffered, durable event tracking for Python applications."""

from gamify.client import TrackingClient
from gamify.core import (
    BatchDispatcher,
    ConfigurationError,
    DeliveryClient,
    DeliveryReport,
    DeliveryResult,
    DispatchStats,
    EventQueue,
    FlushScheduler,
    GamifyConfig,
    GamifyEvent,
    QueuedEvent,
    SchedulerState,
)
from gamify.storage import (
    FileStorageAdapter,
    MemoryStorageAdapter,
    StorageAdapter,
    create_storage,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "TrackingClient",
    "GamifyConfig",
    "ConfigurationError",
    # Events
    "GamifyEvent",
    "QueuedEvent",
    # Pipeline
    "EventQueue",
    "DeliveryClient",
    "DeliveryResult",
    "BatchDispatcher",
    "DeliveryReport",
    "DispatchStats",
    "FlushScheduler",
    "SchedulerState",
    # Storage
    "StorageAdapter",
    "MemoryStorageAdapter",
    "FileStorageAdapter",
    "create_storage",
    # Meta
    "__version__",
]
