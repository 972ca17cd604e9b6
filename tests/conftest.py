"""Pytest configuration, Hypothesis profiles and shared fixtures."""

import json
import logging
from collections.abc import Callable, Sequence

import httpx
import pytest
from hypothesis import settings

from gamify.core.event import GamifyEvent
from gamify.storage.memory import MemoryStorageAdapter

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")


class RecordingTransport(httpx.MockTransport):
    """Mock transport that records batches and replies from a status script.

    Statuses are consumed in order; the last one repeats. An exception
    instance in the script is raised instead of returning a response.
    """

    def __init__(self, *script: int | Exception) -> None:
        self.script: list[int | Exception] = list(script) or [200]
        self.requests: list[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step, json={"ok": 200 <= step < 300})

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    @property
    def batches(self) -> list[list[str]]:
        """Event types per request, in order."""
        return [[e["type"] for e in body["events"]] for body in self.bodies]


@pytest.fixture
def transport_factory() -> Callable[..., RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def storage() -> MemoryStorageAdapter:
    return MemoryStorageAdapter("gamify_")


@pytest.fixture
def make_event() -> Callable[..., GamifyEvent]:
    def _make(event_type: str = "test_event", **properties) -> GamifyEvent:
        return GamifyEvent(type=event_type, properties=properties, anonymous_id="anon_test")

    return _make


class ScriptedSender:
    """Sender stub for dispatcher and scheduler tests."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list[list[GamifyEvent]] = []

    async def send(self, events: Sequence[GamifyEvent]):
        self.calls.append(list(events))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]

    @property
    def batches(self) -> list[list[str]]:
        return [[e.type for e in call] for call in self.calls]


@pytest.fixture
def sender_factory() -> Callable[..., ScriptedSender]:
    return ScriptedSender


class LogCapture(logging.Handler):
    """Custom handler to capture log records for testing."""

    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def messages(self) -> list[str]:
        return [r.getMessage() for r in self.records]


@pytest.fixture
def log_capture():
    """Capture everything logged under the gamify logger hierarchy."""
    logger = logging.getLogger("gamify")
    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    original_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield handler

    logger.removeHandler(handler)
    logger.setLevel(original_level)
