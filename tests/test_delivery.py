"""Tests for DeliveryClient over a mocked HTTP transport."""

import httpx
import pytest

from gamify.core.delivery import DeliveryClient, DeliveryResult, classify_status


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, DeliveryResult.DELIVERED),
        (202, DeliveryResult.DELIVERED),
        (204, DeliveryResult.DELIVERED),
        (400, DeliveryResult.REJECTED_PERMANENTLY),
        (401, DeliveryResult.REJECTED_PERMANENTLY),
        (413, DeliveryResult.REJECTED_PERMANENTLY),
        (429, DeliveryResult.FAILED),
        (500, DeliveryResult.FAILED),
        (503, DeliveryResult.FAILED),
        (302, DeliveryResult.REJECTED_PERMANENTLY),
    ],
)
def test_classify_status(status, expected):
    assert classify_status(status) is expected


class TestSend:
    async def test_posts_batch_with_api_key(self, transport_factory, make_event):
        transport = transport_factory(200)
        client = DeliveryClient("https://collect.example.com/", "pk_test", transport=transport)

        result = await client.send([make_event("a", n=1), make_event("b")])

        assert result is DeliveryResult.DELIVERED
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://collect.example.com/events/batch"
        assert request.headers["X-API-Key"] == "pk_test"
        assert request.headers["Content-Type"] == "application/json"
        body = transport.bodies[0]
        assert list(body) == ["events"]
        assert [e["type"] for e in body["events"]] == ["a", "b"]
        assert body["events"][0]["properties"] == {"n": 1}
        assert body["events"][0]["anonymousId"] == "anon_test"

    async def test_empty_batch_sends_nothing(self, transport_factory):
        transport = transport_factory(500)
        client = DeliveryClient("https://collect.example.com", "k", transport=transport)

        assert await client.send([]) is DeliveryResult.DELIVERED
        assert transport.requests == []

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (201, DeliveryResult.DELIVERED),
            (422, DeliveryResult.REJECTED_PERMANENTLY),
            (429, DeliveryResult.FAILED),
            (502, DeliveryResult.FAILED),
        ],
    )
    async def test_maps_status(self, transport_factory, make_event, status, expected):
        client = DeliveryClient(
            "https://collect.example.com", "k", transport=transport_factory(status)
        )

        assert await client.send([make_event()]) is expected

    async def test_network_error_is_failed(self, transport_factory, make_event):
        transport = transport_factory(httpx.ConnectError("connection refused"))
        client = DeliveryClient("https://collect.example.com", "k", transport=transport)

        assert await client.send([make_event()]) is DeliveryResult.FAILED

    async def test_timeout_is_failed(self, transport_factory, make_event):
        transport = transport_factory(httpx.ReadTimeout("too slow"))
        client = DeliveryClient("https://collect.example.com", "k", transport=transport)

        assert await client.send([make_event()]) is DeliveryResult.FAILED

    async def test_calls_are_independent(self, transport_factory, make_event):
        transport = transport_factory(httpx.ConnectError("down"), 200)
        client = DeliveryClient("https://collect.example.com", "k", transport=transport)

        assert await client.send([make_event()]) is DeliveryResult.FAILED
        assert await client.send([make_event()]) is DeliveryResult.DELIVERED
        assert len(transport.requests) == 2


class TestSendBeacon:
    def test_includes_api_key_in_body(self, transport_factory, make_event):
        transport = transport_factory(200)
        client = DeliveryClient("https://collect.example.com", "pk_test", transport=transport)

        result = client.send_beacon([make_event("unload")])

        assert result is DeliveryResult.DELIVERED
        body = transport.bodies[0]
        assert body["apiKey"] == "pk_test"
        assert [e["type"] for e in body["events"]] == ["unload"]

    def test_errors_are_swallowed(self, transport_factory, make_event):
        transport = transport_factory(httpx.ConnectError("down"))
        client = DeliveryClient("https://collect.example.com", "k", transport=transport)

        assert client.send_beacon([make_event()]) is DeliveryResult.FAILED

    def test_empty_batch_sends_nothing(self, transport_factory):
        transport = transport_factory(200)
        client = DeliveryClient("https://collect.example.com", "k", transport=transport)

        assert client.send_beacon([]) is DeliveryResult.DELIVERED
        assert transport.requests == []
