from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings, read from FLOW_* environment variables.

      FLOW_STREAM_URL        websocket the flows arrive on
      FLOW_API_URL           base url of the history and geoip services
      FLOW_CAPACITY          recent flows kept in memory
      FLOW_ALERT_CAPACITY    recent alerts kept in memory
      FLOW_BACKOFF_BASE      first reconnect delay, seconds
      FLOW_BACKOFF_MAX       reconnect delay ceiling, seconds
      FLOW_SEED_LIMIT        flows pulled from history on seed
      FLOW_REQUEST_TIMEOUT   per request timeout for the http services
      FLOW_LOG_LEVEL         logging level name
    """

    stream_url: str = "ws://127.0.0.1:8888/flows/ws"
    api_url: str = "http://127.0.0.1:8888"
    flow_capacity: int = 1000
    alert_capacity: int = 100
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    seed_limit: int = 100
    request_timeout_seconds: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()

        def read(name: str, default: T, cast: Callable[[str], T]) -> T:
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return cast(raw.strip())
            except ValueError:
                raise ValueError(f"{name} must be a {cast.__name__}, got {raw!r}") from None

        settings = cls(
            stream_url=read("FLOW_STREAM_URL", defaults.stream_url, str),
            api_url=read("FLOW_API_URL", defaults.api_url, str),
            flow_capacity=read("FLOW_CAPACITY", defaults.flow_capacity, int),
            alert_capacity=read("FLOW_ALERT_CAPACITY", defaults.alert_capacity, int),
            backoff_base_seconds=read("FLOW_BACKOFF_BASE", defaults.backoff_base_seconds, float),
            backoff_max_seconds=read("FLOW_BACKOFF_MAX", defaults.backoff_max_seconds, float),
            seed_limit=read("FLOW_SEED_LIMIT", defaults.seed_limit, int),
            request_timeout_seconds=read(
                "FLOW_REQUEST_TIMEOUT", defaults.request_timeout_seconds, float
            ),
            log_level=read("FLOW_LOG_LEVEL", defaults.log_level, str).upper(),
        )

        if settings.flow_capacity <= 0 or settings.alert_capacity <= 0:
            raise ValueError("FLOW_CAPACITY and FLOW_ALERT_CAPACITY must be positive")
        return settings
