"""Event models for Gamify."""

import json
import time
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Maximum properties size (1MB)
MAX_PROPERTIES_SIZE = 1_000_000


def _now_ms() -> int:
    return int(time.time() * 1000)


class GamifyEvent(BaseModel):
    """Immutable, validated tracked event.

    Events are what the application records and what the collection
    endpoint receives. They are:
    - Immutable (frozen after creation)
    - Validated (all fields checked on construction)
    - Serializable with camelCase keys via to_payload()

    Attributes:
        type: Non-empty event name, e.g. "page_view" or "purchase".
        properties: JSON-serializable dictionary (max 1MB when serialized).
        timestamp: UTC datetime, set at creation if not provided.
        user_id: Identified user, if any.
        anonymous_id: Stable per-device identifier.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    user_id: str | None = None
    anonymous_id: str

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Ensure type is non-empty after whitespace stripping."""
        v = v.strip()
        if not v:
            raise ValueError("type must not be empty")
        return v

    @field_validator("properties")
    @classmethod
    def validate_properties(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Ensure properties are strictly JSON-serializable and within size limits.

        No default=str fallback: anything json.dumps rejects is rejected here,
        so a persisted queue can always be written back.
        """
        try:
            serialized = json.dumps(v)
        except (TypeError, ValueError) as e:
            raise ValueError(f"properties must be JSON-serializable: {e}") from e

        byte_length = len(serialized.encode("utf-8"))
        if byte_length > MAX_PROPERTIES_SIZE:
            raise ValueError(
                f"properties exceed maximum size of {MAX_PROPERTIES_SIZE} bytes "
                f"(got {byte_length} bytes)"
            )
        return v

    def to_payload(self) -> dict[str, Any]:
        """Wire form: camelCase keys, ISO-8601 timestamp, no null userId."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class QueuedEvent(BaseModel):
    """Persistence wrapper around a GamifyEvent.

    Owned by EventQueue. A failed delivery replaces the record with a copy
    carrying a higher attempt count; the record itself is never mutated.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=lambda: str(uuid4()))
    event: GamifyEvent
    attempts: int = Field(default=0, ge=0)
    created_at: int = Field(default_factory=_now_ms)

    def with_attempt(self) -> "QueuedEvent":
        return self.model_copy(update={"attempts": self.attempts + 1})

    def to_record(self) -> dict[str, Any]:
        """Storage form of this entry."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
