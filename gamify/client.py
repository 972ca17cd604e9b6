"""TrackingClient: the public entry point of the Gamify SDK.

Construct one per application (or per tenant), pass it to whatever needs
to track, and shut it down from the layer that created it:

    async with TrackingClient({"apiKey": "pk_live_..."}) as gamify:
        gamify.identify("user_123", {"plan": "pro"})
        gamify.track("purchase", {"amount": 4999})
"""

import logging
import random
import string
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from gamify.core.config import GamifyConfig
from gamify.core.delivery import DeliveryClient
from gamify.core.dispatcher import BatchDispatcher, DeliveryReport, DispatchStats
from gamify.core.event import GamifyEvent, QueuedEvent
from gamify.core.logging import configure_logger
from gamify.core.queue import EventQueue
from gamify.core.scheduler import FlushScheduler
from gamify.storage import StorageAdapter, create_storage

USER_ID_KEY = "user_id"
ANONYMOUS_ID_KEY = "anon_id"
USER_TRAITS_KEY = "user_traits"
IDENTIFY_EVENT = "$identify"

logger = logging.getLogger("gamify.client")


def generate_anonymous_id() -> str:
    """Anonymous id for users not yet identified: anon_<ms>_<random>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"anon_{int(time.time() * 1000)}_{suffix}"


class TrackingClient:
    """Records events and delivers them in batches.

    track() and identify() only touch the local queue; all network I/O
    happens on the asyncio loop via FlushScheduler. Every public method is
    a safe no-op after shutdown().

    Args:
        config: GamifyConfig, or a mapping of its fields (camelCase or
            snake_case).
        storage: Storage adapter to use instead of the one built from config.
        transport: httpx transport for delivery, mainly for tests.
        on_report: Called with a DeliveryReport after every flush cycle.

    Raises:
        ConfigurationError: If the configuration is invalid, e.g. no apiKey.
    """

    def __init__(
        self,
        config: GamifyConfig | Mapping[str, Any],
        storage: StorageAdapter | None = None,
        transport: httpx.AsyncBaseTransport | httpx.BaseTransport | None = None,
        on_report: Callable[[DeliveryReport], None] | None = None,
    ) -> None:
        self.config = GamifyConfig.load(config)
        configure_logger(self.config.debug)

        if storage is None:
            storage = create_storage(
                self.config.storage_prefix,
                path=self.config.storage_path,
                redis_url=self.config.redis_url,
            )
        self.storage = storage
        self.queue = EventQueue(
            self.storage,
            max_size=self.config.max_queue_size,
            max_attempts=self.config.max_attempts,
        )
        self.delivery = DeliveryClient(
            self.config.endpoint,
            self.config.api_key,
            timeout=self.config.request_timeout / 1000,
            transport=transport,
        )
        self.dispatcher = BatchDispatcher(
            self.queue,
            self.delivery,
            max_batch_size=self.config.max_batch_size,
            retry_base_delay=self.config.retry_base_delay / 1000,
            retry_max_delay=self.config.retry_max_delay / 1000,
            on_report=on_report,
        )
        self.scheduler = FlushScheduler(
            self.dispatcher,
            flush_interval=self.config.flush_interval / 1000,
            max_batch_size=self.config.max_batch_size,
            beacon=self.delivery.send_beacon,
        )
        self.scheduler.register_teardown()

        stored_anonymous_id = self.storage.get(ANONYMOUS_ID_KEY)
        if isinstance(stored_anonymous_id, str) and stored_anonymous_id:
            self._anonymous_id = stored_anonymous_id
        else:
            self._anonymous_id = generate_anonymous_id()
            self.storage.set(ANONYMOUS_ID_KEY, self._anonymous_id)

        stored_user_id = self.storage.get(USER_ID_KEY)
        self._user_id: str | None = stored_user_id if isinstance(stored_user_id, str) else None
        stored_traits = self.storage.get(USER_TRAITS_KEY)
        self._traits: dict[str, Any] | None = (
            stored_traits if isinstance(stored_traits, dict) else None
        )
        self._shutdown = False

        logger.debug(
            "SDK initialized",
            extra={
                "anonymous_id": self._anonymous_id,
                "user_id": self._user_id,
                "storage": type(self.storage).__name__,
                "pending": self.queue.size(),
            },
        )
        if self.queue.has_pending():
            self.scheduler.notify_enqueued()

    async def __aenter__(self) -> "TrackingClient":
        if self.queue.has_pending():
            self.scheduler.notify_enqueued()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def track(
        self, event_type: str, properties: Mapping[str, Any] | None = None
    ) -> QueuedEvent | None:
        """Queue an event for delivery; never blocks and never raises.

        Args:
            event_type: Event name, e.g. "page_view".
            properties: JSON-serializable event properties.

        Returns:
            The queued record, or None if the event was invalid or the client
            is shut down.
        """
        if self._shutdown:
            return None
        if not isinstance(event_type, str) or not event_type.strip():
            logger.warning("Invalid event type provided", extra={"event_type": repr(event_type)})
            return None

        try:
            event = GamifyEvent(
                type=event_type,
                properties=dict(properties or {}),
                user_id=self._user_id,
                anonymous_id=self._anonymous_id,
            )
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(
                f"Invalid event discarded: {e}",
                extra={"event_type": event_type, "error": str(e)},
            )
            return None

        queued = self.queue.enqueue(event)
        logger.debug(
            "Tracking event",
            extra={"event_id": queued.id, "event_type": event.type},
        )
        self.scheduler.notify_enqueued()
        return queued

    def identify(
        self, user_id: str, traits: Mapping[str, Any] | None = None
    ) -> QueuedEvent | None:
        """Attach a user id to this device and record an $identify event.

        Traits are merged into previously stored traits. The user id persists
        across restarts until reset().
        """
        if self._shutdown:
            return None
        if not isinstance(user_id, str) or not user_id:
            logger.warning("Invalid user ID provided")
            return None

        self._user_id = user_id
        self.storage.set(USER_ID_KEY, user_id)
        if traits:
            self._traits = {**(self._traits or {}), **traits}
            self.storage.set(USER_TRAITS_KEY, self._traits)

        return self.track(IDENTIFY_EVENT, {"userId": user_id, "traits": dict(traits or {})})

    def reset(self) -> None:
        """Forget the identified user and start a new anonymous id.

        Pending events are kept and still delivered.
        """
        if self._shutdown:
            return
        self._user_id = None
        self._traits = None
        self.storage.remove(USER_ID_KEY)
        self.storage.remove(USER_TRAITS_KEY)
        self._anonymous_id = generate_anonymous_id()
        self.storage.set(ANONYMOUS_ID_KEY, self._anonymous_id)
        logger.debug("Reset identity", extra={"anonymous_id": self._anonymous_id})

    def get_user_id(self) -> str | None:
        return self._user_id

    def get_anonymous_id(self) -> str:
        return self._anonymous_id

    def get_traits(self) -> dict[str, Any]:
        return dict(self._traits or {})

    def get_pending_count(self) -> int:
        return self.queue.size()

    def stats(self) -> DispatchStats:
        return self.dispatcher.get_stats()

    async def flush_now(self) -> DeliveryReport | None:
        """Deliver queued events now, skipping any retry backoff."""
        if self._shutdown:
            return None
        return await self.scheduler.flush_now()

    flush = flush_now

    async def shutdown(self) -> None:
        """Stop the scheduler and make one final best-effort flush.

        Idempotent. Events that could not be delivered stay in durable
        storage for the next run.
        """
        if self._shutdown:
            return
        self._shutdown = True
        logger.debug("Shutting down SDK", extra={"pending": self.queue.size()})
        await self.scheduler.shutdown()

        close = getattr(self.storage, "close", None)
        if callable(close):
            close()
