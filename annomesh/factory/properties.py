"""
Factory Properties: Declared, Typed Configuration Values

Each property has a name, a description and a default. A default of
None marks the property as required. parse() coerces a configured
value and raises ValueError when it cannot.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class Property:
    """Base declaration; passes values through unchanged."""

    name: str
    description: str
    default: Any = None

    @property
    def required(self) -> bool:
        return self.default is None

    def parse(self, raw: Any) -> Any:
        return raw


@dataclass(frozen=True, slots=True)
class StringProperty(Property):

    def parse(self, raw: Any) -> str:
        if not isinstance(raw, str):
            raise ValueError(f"expected string, got {type(raw).__name__}")
        return raw


@dataclass(frozen=True, slots=True)
class IntegerProperty(Property):
    minimum: Optional[int] = None

    def parse(self, raw: Any) -> int:
        if isinstance(raw, bool):
            raise ValueError("expected integer, got bool")
        if isinstance(raw, str):
            try:
                raw = int(raw.strip())
            except ValueError:
                raise ValueError(f"expected integer, got {raw!r}") from None
        if not isinstance(raw, int):
            raise ValueError(f"expected integer, got {type(raw).__name__}")
        if self.minimum is not None and raw < self.minimum:
            raise ValueError(f"must be >= {self.minimum}, got {raw}")
        return raw


@dataclass(frozen=True, slots=True)
class JSONProperty(Property):
    """Structured value; strings are decoded as JSON documents."""

    def parse(self, raw: Any) -> Any:
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"invalid JSON: {e}") from e
        if not isinstance(raw, (dict, list)):
            raise ValueError(f"expected object or array, got {type(raw).__name__}")
        return raw
