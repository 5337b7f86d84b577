"""Stream configuration via keyword options or environment variables (RESUMABLE_SSE_ prefix)."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings


class ConfigurationError(ValueError):
    """Raised synchronously when stream options are invalid."""


class StreamConfig(BaseSettings):
    url: str
    with_credentials: bool = False
    retry_strategy: bool = True
    initial_retry_delay_ms: float = 1000
    max_retry_delay_ms: float = 30_000
    max_retries: int | None = None  # None = unbounded
    headers: dict[str, str] = {}
    last_event_id: str | None = None
    reconnect_on_close: bool = True
    request_timeout_s: float | None = None  # connect timeout only; reads never time out

    model_config = {"env_prefix": "RESUMABLE_SSE_", "frozen": True}

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        try:
            parsed = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"invalid SSE URL {value!r}: {exc}") from exc
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"SSE URL must use http or https, got {value!r}")
        if not parsed.host:
            raise ValueError(f"SSE URL has no host: {value!r}")
        return value

    @field_validator("initial_retry_delay_ms")
    @classmethod
    def _check_initial_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("initial_retry_delay_ms must be non-negative")
        return value

    @field_validator("max_retries")
    @classmethod
    def _check_max_retries(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError("max_retries must be non-negative")
        return value

    @field_validator("request_timeout_s")
    @classmethod
    def _check_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("request_timeout_s must be positive")
        return value

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> StreamConfig:
        if self.max_retry_delay_ms < self.initial_retry_delay_ms:
            raise ValueError(
                "max_retry_delay_ms must be greater than or equal to initial_retry_delay_ms"
            )
        return self

    def retries_remaining(self, retry_count: int) -> bool:
        """Whether another reconnect is allowed after ``retry_count`` retries."""
        if not self.retry_strategy:
            return False
        return self.max_retries is None or retry_count < self.max_retries


def load_config(url: str, **options: Any) -> StreamConfig:
    """Build a StreamConfig, raising ConfigurationError on invalid options."""
    try:
        return StreamConfig(url=url, **options)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(problems) from exc
