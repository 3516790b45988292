"""
Configuration Management for the Annotation Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from annomesh.core.types import Result, Ok, Err
from annomesh.core import constants as C


@dataclass(frozen=True)
class IndexConfig:
    """Level binning configuration (tile pyramid)."""

    finest_width: int = C.DEFAULT_FINEST_WIDTH
    max_level: int = C.DEFAULT_MAX_LEVEL


@dataclass(frozen=True)
class RedisConfig:
    """Redis backend connection configuration."""

    host: str = "localhost"
    port: int = C.REDIS_DEFAULT_PORT
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = C.REDIS_KEY_PREFIX
    socket_timeout_ms: int = C.REDIS_SOCKET_TIMEOUT_MS

    def get_connection_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for redis.asyncio.Redis."""
        return {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "password": self.password,
            "socket_timeout": self.socket_timeout_ms / 1000,
            "decode_responses": False,
        }


@dataclass(frozen=True)
class BackendConfig:
    """Backing store selection."""

    kind: str = "memory"  # "memory" or "redis"
    redis: RedisConfig = field(default_factory=RedisConfig)


@dataclass(frozen=True)
class FilterSettings:
    """Where the persisted filter tree lives."""

    config_path: Optional[Path] = None


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class AnnomeshConfig:
    """Root configuration for the annotation store."""

    index: IndexConfig = field(default_factory=IndexConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    filters: FilterSettings = field(default_factory=FilterSettings)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[AnnomeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with ANNOMESH_.
        Example: ANNOMESH_MAX_LEVEL, ANNOMESH_BACKEND, ANNOMESH_FILTER_CONFIG
        """
        try:
            index = IndexConfig(
                finest_width=int(os.getenv("ANNOMESH_FINEST_WIDTH", str(C.DEFAULT_FINEST_WIDTH))),
                max_level=int(os.getenv("ANNOMESH_MAX_LEVEL", str(C.DEFAULT_MAX_LEVEL))),
            )

            redis = RedisConfig(
                host=os.getenv("ANNOMESH_REDIS_HOST", "localhost"),
                port=int(os.getenv("ANNOMESH_REDIS_PORT", str(C.REDIS_DEFAULT_PORT))),
                db=int(os.getenv("ANNOMESH_REDIS_DB", "0")),
                password=os.getenv("ANNOMESH_REDIS_PASSWORD") or None,
                key_prefix=os.getenv("ANNOMESH_REDIS_PREFIX", C.REDIS_KEY_PREFIX),
                socket_timeout_ms=int(
                    os.getenv("ANNOMESH_REDIS_SOCKET_TIMEOUT_MS", str(C.REDIS_SOCKET_TIMEOUT_MS))
                ),
            )
            backend = BackendConfig(
                kind=os.getenv("ANNOMESH_BACKEND", "memory"),
                redis=redis,
            )

            filter_path = os.getenv("ANNOMESH_FILTER_CONFIG")
            filters = FilterSettings(
                config_path=Path(filter_path) if filter_path else None,
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("ANNOMESH_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("ANNOMESH_LOG_JSON", "true").lower() in {"1", "true", "yes"},
            )

            return Ok(cls(
                index=index,
                backend=backend,
                filters=filters,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.index.finest_width < 1:
            return Err("finest_width must be >= 1")
        if self.index.max_level < 0:
            return Err("max_level must be >= 0")
        if self.backend.kind not in {"memory", "redis"}:
            return Err(f"Unknown backend kind '{self.backend.kind}'")
        if self.backend.redis.socket_timeout_ms < 1:
            return Err("socket_timeout_ms must be >= 1")
        if self.observability.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return Err(f"Unknown log level '{self.observability.log_level}'")
        return Ok(None)
