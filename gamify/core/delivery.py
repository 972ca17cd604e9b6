"""HTTP delivery of event batches to the collection API."""

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any

import httpx

from gamify.core.event import GamifyEvent

BATCH_PATH = "/events/batch"
USER_AGENT = "gamify-python/0.1.0"

# Seconds; the teardown send runs while the interpreter exits
BEACON_TIMEOUT = 2.0

logger = logging.getLogger("gamify.delivery")


class DeliveryResult(Enum):
    """Outcome of one delivery attempt.

    DELIVERED: 2xx, the batch was accepted.
    REJECTED_PERMANENTLY: 4xx other than 429, retrying will not help.
    FAILED: network error, timeout, 429 or 5xx; worth retrying later.
    """

    DELIVERED = "delivered"
    REJECTED_PERMANENTLY = "rejected_permanently"
    FAILED = "failed"


def classify_status(status_code: int) -> DeliveryResult:
    """Map an HTTP status code to a DeliveryResult."""
    if 200 <= status_code < 300:
        return DeliveryResult.DELIVERED
    if status_code == 429 or status_code >= 500:
        return DeliveryResult.FAILED
    return DeliveryResult.REJECTED_PERMANENTLY


class DeliveryClient:
    """Sends batches of events; holds configuration only, no retry state.

    Every send opens its own httpx client, so calls are independent of each
    other and of any earlier failure.

    Args:
        endpoint: Base URL of the collection API.
        api_key: Sent in the X-API-Key header.
        timeout: Seconds before a send is abandoned and reported FAILED.
        transport: Optional httpx transport, used in place of the network.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | httpx.BaseTransport | None = None,
    ) -> None:
        self.url = f"{endpoint.rstrip('/')}{BATCH_PATH}"
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": self._api_key,
            "User-Agent": USER_AGENT,
        }

    def _classify(self, response: httpx.Response, count: int) -> DeliveryResult:
        result = classify_status(response.status_code)
        if result is DeliveryResult.DELIVERED:
            logger.debug(f"Delivered {count} events", extra={"batch_size": count})
        else:
            logger.debug(
                f"API error: HTTP {response.status_code}: {response.text[:200]}",
                extra={
                    "batch_size": count,
                    "status_code": response.status_code,
                    "result": result.value,
                },
            )
        return result

    async def send(self, events: Sequence[GamifyEvent]) -> DeliveryResult:
        """POST a batch and classify the response.

        Never raises for network or HTTP problems; those come back as
        FAILED or REJECTED_PERMANENTLY.
        """
        if not events:
            return DeliveryResult.DELIVERED

        body = {"events": [event.to_payload() for event in events]}
        logger.debug(f"Sending {len(events)} events", extra={"batch_size": len(events)})

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.debug(f"Request timeout: {e}", extra={"batch_size": len(events)})
            return DeliveryResult.FAILED
        except httpx.HTTPError as e:
            logger.debug(f"Network error: {e}", extra={"batch_size": len(events)})
            return DeliveryResult.FAILED

        return self._classify(response, len(events))

    def send_beacon(self, events: Sequence[GamifyEvent]) -> DeliveryResult:
        """Blocking best-effort send for interpreter teardown.

        The API key also travels in the body, matching what browser beacons
        send. Any error is reported as FAILED and otherwise ignored.
        """
        if not events:
            return DeliveryResult.DELIVERED

        body: dict[str, Any] = {
            "events": [event.to_payload() for event in events],
            "apiKey": self._api_key,
        }
        logger.debug(f"Sending {len(events)} events via beacon", extra={"batch_size": len(events)})

        transport = self._transport if isinstance(self._transport, httpx.BaseTransport) else None
        try:
            with httpx.Client(timeout=BEACON_TIMEOUT, transport=transport) as client:
                response = client.post(self.url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            logger.debug(f"Beacon failed: {e}", extra={"batch_size": len(events)})
            return DeliveryResult.FAILED

        return self._classify(response, len(events))
