#!/usr/bin/env python3
"""
Annotation Store Demo

Builds a store from the environment, writes a handful of annotations
and prints level-binned reads with and without filters.

Usage:
    python -m annomesh

    # With a persisted filter tree and Redis
    ANNOMESH_BACKEND=redis ANNOMESH_FILTER_CONFIG=filters.json python -m annomesh
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Optional

from annomesh.core.config import AnnomeshConfig
from annomesh.core.types import Annotation
from annomesh.factory.config import FilterConfig
from annomesh.observability.logging import LogLevel, setup_logging
from annomesh.service.bootstrap import build_store
from annomesh.service.store import AnnotationStore


async def demo(log_level: Optional[str]) -> int:
    config_result = AnnomeshConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        return 1
    config = config_result.unwrap()

    setup_logging(
        LogLevel.parse(log_level or config.observability.log_level),
        json_output=config.observability.log_json,
    )

    store_result = await build_store(config)
    if store_result.is_err():
        print(f"Store error: {store_result.error}")
        return 1
    store = store_result.unwrap()
    try:
        return await exercise(store)
    finally:
        await store.close()


async def exercise(store: AnnotationStore[Any]) -> int:
    max_level = store.quantizer.max_level
    if max_level < 3:
        print("ANNOMESH_MAX_LEVEL must be >= 3 for the demo")
        return 2
    for diagnostic in store.diagnostics:
        print(f"  filter diagnostic: {diagnostic}")

    annotations = [
        Annotation(coordinate=10, group="survey", payload={"note": "a"}, write_timestamp=1),
        Annotation(coordinate=12, group="survey", payload={"note": "b"}, write_timestamp=2),
        Annotation(coordinate=15, group="alerts", payload={"note": "c"}, write_timestamp=3),
    ]
    written = await store.write_annotations(annotations)
    if written.is_err():
        print(f"Write error: {written.error}")
        return 1

    for level in (max_level - 3, max_level - 2):
        result = await store.read_annotations(10, 15, level=level)
        if result.is_err():
            print(f"Read error: {result.error}")
            return 1
        print(f"\nLevel {level} (bucket width {store.quantizer.width(level)}):")
        for annotation_bin in result.unwrap():
            print(f"  bin {annotation_bin.bin_key}: {len(annotation_bin)} member(s)")

    await store.reconfigure(
        FilterConfig.from_dict({
            "name": "chain",
            "children": [
                {"name": "script", "properties": {"script": 'group == "survey"'}},
                {"name": "group-recency", "properties": {"count": 1}},
            ],
        })
    )
    result = await store.read_annotations(10, 15, level=max_level - 3)
    if result.is_err():
        print(f"Read error: {result.error}")
        return 1
    print("\nFiltered (survey only, newest per group):")
    for annotation_bin in result.unwrap():
        print(f"  bin {annotation_bin.bin_key}: {list(annotation_bin.members)}")

    await store.remove_annotations(annotations)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(prog="annomesh", description="Annotation store demo")
    parser.add_argument("--log-level", default=None, choices=[level.name for level in LogLevel])
    args = parser.parse_args()
    sys.exit(asyncio.run(demo(args.log_level)))


if __name__ == "__main__":
    main()
