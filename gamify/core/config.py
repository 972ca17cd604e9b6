"""Client configuration for Gamify."""

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_ENDPOINT = "https://api.gamify.io"
DEFAULT_FLUSH_INTERVAL = 10_000
DEFAULT_MAX_BATCH_SIZE = 10
DEFAULT_STORAGE_PREFIX = "gamify_"
DEFAULT_MAX_QUEUE_SIZE = 100
DEFAULT_MAX_ATTEMPTS = 5

# Environment variable -> field name, for GamifyConfig.from_env()
_ENV_FIELDS = {
    "GAMIFY_API_KEY": "api_key",
    "GAMIFY_ENDPOINT": "endpoint",
    "GAMIFY_DEBUG": "debug",
    "GAMIFY_FLUSH_INTERVAL": "flush_interval",
    "GAMIFY_MAX_BATCH_SIZE": "max_batch_size",
    "GAMIFY_STORAGE_PREFIX": "storage_prefix",
    "GAMIFY_STORAGE_PATH": "storage_path",
    "GAMIFY_REDIS_URL": "redis_url",
}


class ConfigurationError(ValueError):
    """Raised when the client configuration is invalid."""

    pass


class GamifyConfig(BaseModel):
    """Validated client configuration.

    Fields accept either their snake_case name or the camelCase alias used
    by the other Gamify SDKs (``apiKey``, ``flushInterval`` ...). Durations
    are milliseconds.

    Attributes:
        api_key: Project API key, sent with every batch. Required.
        endpoint: Base URL of the collection API.
        debug: Emit diagnostic logs at DEBUG level.
        flush_interval: Milliseconds between timer-driven flushes.
        max_batch_size: Events per batch; reaching it triggers a flush.
        storage_prefix: Namespace for every persisted key.
        max_queue_size: Storage cap; oldest events are evicted beyond it.
        max_attempts: Failed deliveries after which an event is dropped.
        retry_base_delay: Backoff base after a failed delivery.
        retry_max_delay: Backoff ceiling.
        request_timeout: HTTP timeout per delivery attempt.
        storage_path: Directory for durable file storage.
        redis_url: Redis URL for durable shared storage.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    api_key: str
    endpoint: str = DEFAULT_ENDPOINT
    debug: bool = False
    flush_interval: int = Field(default=DEFAULT_FLUSH_INTERVAL, gt=0)
    max_batch_size: int = Field(default=DEFAULT_MAX_BATCH_SIZE, gt=0)
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    max_queue_size: int = Field(default=DEFAULT_MAX_QUEUE_SIZE, gt=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, gt=0)
    retry_base_delay: int = Field(default=1_000, ge=0)
    retry_max_delay: int = Field(default=60_000, ge=0)
    request_timeout: int = Field(default=10_000, gt=0)
    storage_path: str | None = None
    redis_url: str | None = None

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("apiKey is required")
        return v

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL, got: {v!r}")
        return v

    @classmethod
    def load(cls, data: "GamifyConfig | Mapping[str, Any]") -> "GamifyConfig":
        """Build a config, reporting any problem as ConfigurationError."""
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"Gamify configuration must be a mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            problems = "\n".join(
                f"  - {'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid Gamify configuration:\n{problems}") from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "GamifyConfig":
        """Build a config from GAMIFY_* environment variables.

        Keyword overrides win over the environment.
        """
        data: dict[str, Any] = {}
        for var, name in _ENV_FIELDS.items():
            value = os.environ.get(var)
            if value is not None and value != "":
                data[name] = value
        data.update(overrides)
        data.setdefault("api_key", "")
        return cls.load(data)
