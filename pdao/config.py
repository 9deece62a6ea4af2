# SPDX-License-Identifier: Apache-2.0

"""
Field station configuration.

Settings are read from the environment once at start-up and passed
explicitly to the services that need them.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

MINUTE_MS = 60 * 1000


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


@dataclass
class SyncSettings:
    """Cache lifetimes and refresh cadence, in milliseconds."""
    list_ttl_ms: int = 10 * MINUTE_MS
    identity_ttl_ms: int = 30 * MINUTE_MS
    attendance_poll_ms: int = 5 * 1000
    list_poll_ms: int = 5 * MINUTE_MS
    identity_poll_ms: int = 15 * MINUTE_MS

    # camelCase option names accepted by from_mapping
    OPTION_NAMES = {
        "listTtlMs": "list_ttl_ms",
        "identityTtlMs": "identity_ttl_ms",
        "attendancePollMs": "attendance_poll_ms",
        "listPollMs": "list_poll_ms",
        "identityPollMs": "identity_poll_ms",
    }

    def __post_init__(self):
        for name in self.OPTION_NAMES.values():
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "SyncSettings":
        """Build settings from ``{listTtlMs, identityTtlMs, attendancePollMs, ...}``."""
        values = {}
        for key, value in options.items():
            name = cls.OPTION_NAMES.get(key, key)
            if name not in cls.OPTION_NAMES.values():
                raise ValueError(f"Unknown sync option: {key}")
            values[name] = int(value)
        return cls(**values)

    @classmethod
    def from_env(cls) -> "SyncSettings":
        defaults = cls()
        return cls(
            list_ttl_ms=_env_int("PDAO_LIST_TTL_MS", defaults.list_ttl_ms),
            identity_ttl_ms=_env_int("PDAO_IDENTITY_TTL_MS", defaults.identity_ttl_ms),
            attendance_poll_ms=_env_int("PDAO_ATTENDANCE_POLL_MS", defaults.attendance_poll_ms),
            list_poll_ms=_env_int("PDAO_LIST_POLL_MS", defaults.list_poll_ms),
            identity_poll_ms=_env_int("PDAO_IDENTITY_POLL_MS", defaults.identity_poll_ms),
        )


@dataclass
class BackendConfig:
    """PDAO backend connection settings."""
    url: str = "http://localhost:8000/api"
    token: Optional[str] = None
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "BackendConfig":
        return cls(
            url=os.getenv("PDAO_API_URL", cls.url),
            token=os.getenv("PDAO_API_TOKEN") or None,
            timeout=_env_float("PDAO_REQUEST_TIMEOUT", 30.0),
        )


@dataclass
class StationConfig:
    """Everything the field station needs to start."""
    backend: BackendConfig = field(default_factory=BackendConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)
    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379"
    environment: str = "development"
    base_url: str = "http://localhost:5000"
    docs_enabled: bool = True
    port: int = 5000

    def __post_init__(self):
        if self.cache_backend not in ("memory", "redis"):
            raise ValueError(f"Unsupported cache backend: {self.cache_backend}")

    @classmethod
    def from_env(cls) -> "StationConfig":
        environment = os.getenv("ENVIRONMENT", "development")
        return cls(
            backend=BackendConfig.from_env(),
            sync=SyncSettings.from_env(),
            cache_backend=os.getenv("PDAO_CACHE_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            environment=environment,
            base_url=os.getenv("BASE_URL", "http://localhost:5000"),
            docs_enabled=_env_flag("DOCS_ENABLED", "true" if environment != "production" else "false"),
            port=_env_int("PORT", 5000),
        )
