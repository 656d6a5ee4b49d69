"""Connection settings for the quote supervisor."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

DEFAULT_BASE_URL = "https://shashwatidr-stocks.hf.space"

BASE_URL_ENV_VAR = "MCXNOW_BASE_URL"
IDLE_TIMEOUT_ENV_VAR = "MCXNOW_IDLE_TIMEOUT"
ALLOW_HTTP_ENV_VAR = "MCXNOW_ALLOW_HTTP"

_TRUTHY = {"1", "true", "yes", "on"}
_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def validate_base_url(url: str, *, allow_http: bool = False) -> None:
    """Check the quote server root that ``/rate`` and ``/events`` get appended to.

    Plain ``http`` is accepted for loopback hosts, and for any host when
    ``allow_http`` is set (``MCXNOW_ALLOW_HTTP`` or ``--allow-http``).
    """
    if "\x00" in url:
        raise ValueError("quote server URL contains a NUL byte")
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"quote server URL must start with http:// or https://, got {url!r}")
    if not parsed.hostname:
        raise ValueError(f"quote server URL has no host: {url!r}")
    if parsed.query or parsed.fragment:
        raise ValueError("quote server URL cannot carry a query or fragment, endpoint paths are appended to it")
    if parsed.scheme == "http" and not allow_http and parsed.hostname.lower() not in _LOOPBACK_HOSTS:
        raise ValueError(f"plain http to {parsed.hostname} needs allow_http (MCXNOW_ALLOW_HTTP=1 or --allow-http)")


@dataclass(frozen=True)
class SupervisorConfig:
    base_url: str = DEFAULT_BASE_URL
    snapshot_path: str = "/rate"
    events_path: str = "/events"
    snapshot_timeout: float = 20.0
    idle_timeout: float = 5.0
    grace_delay: float = 0.4
    backoff_initial: float = 2.0
    backoff_max: float = 30.0
    allow_http: bool = False
    headers: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        validate_base_url(self.base_url, allow_http=self.allow_http)
        for name in ("snapshot_timeout", "idle_timeout", "backoff_initial", "backoff_max"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be greater than 0")
        if self.grace_delay < 0:
            raise ValueError("grace_delay must be non-negative")
        if self.backoff_max < self.backoff_initial:
            raise ValueError("backoff_max must not be lower than backoff_initial")
        for path in (self.snapshot_path, self.events_path):
            if not path.startswith("/"):
                raise ValueError("Path must be absolute and start with '/'")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "SupervisorConfig":
        """Build a config from ``MCXNOW_*`` environment variables, then apply overrides."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        if env.get(BASE_URL_ENV_VAR):
            values["base_url"] = env[BASE_URL_ENV_VAR]
        if env.get(IDLE_TIMEOUT_ENV_VAR):
            try:
                values["idle_timeout"] = float(env[IDLE_TIMEOUT_ENV_VAR])
            except ValueError:
                raise ValueError(f"{IDLE_TIMEOUT_ENV_VAR} must be a number") from None
        if env.get(ALLOW_HTTP_ENV_VAR):
            values["allow_http"] = env[ALLOW_HTTP_ENV_VAR].strip().lower() in _TRUTHY
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]
