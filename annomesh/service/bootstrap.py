"""
Store Bootstrap: Wiring from Configuration

Builds a ready AnnotationStore from an AnnomeshConfig: quantizer,
backend (connected), filter factory and the persisted filter tree.
"""

from __future__ import annotations

from typing import Any, Optional

from annomesh.core.config import AnnomeshConfig
from annomesh.core.errors import ConfigurationError
from annomesh.core.types import Result, Ok, Err
from annomesh.factory.config import FilterConfig
from annomesh.factory.configurable import DefaultResolver
from annomesh.filter.registry import create_filter_factory
from annomesh.index.quantizer import PyramidQuantizer
from annomesh.observability.logging import StructuredLogger
from annomesh.service.store import AnnotationStore
from annomesh.storage.memory import InMemoryAnnotationBackend
from annomesh.storage.redis_store import RedisAnnotationBackend

logger = StructuredLogger("annomesh.store")


async def build_store(
    config: AnnomeshConfig,
    default_resolver: Optional[DefaultResolver] = None,
) -> Result[AnnotationStore[Any], str]:
    """
    Validate config and assemble a store.

    Returns:
        Ok(store): ready to serve; filter diagnostics are on store.diagnostics
        Err(message): invalid settings, unreadable filter file, backend down
    """
    validation = config.validate()
    if validation.is_err():
        return validation

    quantizer = PyramidQuantizer(
        finest_width=config.index.finest_width,
        max_level=config.index.max_level,
    )

    filter_config: Optional[FilterConfig] = None
    if config.filters.config_path is not None:
        try:
            filter_config = FilterConfig.load(config.filters.config_path)
        except ConfigurationError as e:
            return Err(str(e))

    if config.backend.kind == "redis":
        backend = RedisAnnotationBackend(config.backend.redis, quantizer)
        connected = await backend.connect()
        if connected.is_err():
            await backend.close()
            return connected
    else:
        backend = InMemoryAnnotationBackend(quantizer)

    store: AnnotationStore[Any] = AnnotationStore(
        backend,
        quantizer,
        filter_config=filter_config,
        factory=create_filter_factory(default_resolver),
    )
    logger.info(
        "Annotation store ready",
        backend=config.backend.kind,
        max_level=quantizer.max_level,
        filters=len(store.filter_chain),
        diagnostics=len(store.diagnostics),
    )
    return Ok(store)
