"""
Filter Configuration Tree

A FilterConfig node is purely declarative: a type name, a property
mapping and an ordered list of children. It is usually parsed from a
JSON document such as:

    {
        "name": "chain",
        "children": [
            {"name": "script", "properties": {"script": "group != \\"spam\\""}},
            {"name": "group-recency", "properties": {"count": 5}}
        ]
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Union

from annomesh.core.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class FilterConfig:
    """One node of the declarative filter tree."""

    name: str
    properties: Mapping[str, Any] = field(default_factory=dict)
    children: tuple[FilterConfig, ...] = ()

    def __post_init__(self) -> None:
        # Freeze the mapping so shared configs cannot be patched in place
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
        object.__setattr__(self, "children", tuple(self.children))

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> FilterConfig:
        """
        Build a tree from plain mappings.

        Raises:
            ConfigurationError: node is malformed (path names the node)
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError.invalid("filter node must be an object", path=path)
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError.invalid("filter node needs a non-empty 'name'", path=path)
        properties = data.get("properties", {})
        if not isinstance(properties, Mapping):
            raise ConfigurationError.invalid("'properties' must be an object", path=path)
        children = data.get("children", [])
        if not isinstance(children, list):
            raise ConfigurationError.invalid("'children' must be an array", path=path)
        return cls(
            name=name,
            properties=properties,
            children=tuple(
                cls.from_dict(child, f"{path}.children[{i}]")
                for i, child in enumerate(children)
            ),
        )

    @classmethod
    def from_json(cls, text: str) -> FilterConfig:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError.invalid(f"filter config is not JSON: {e}", cause=e) from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> FilterConfig:
        """Read a filter tree from a JSON file."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError.invalid(
                f"cannot read filter config: {e}", cause=e, path=str(path)
            ) from e
        return cls.from_json(text)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.properties:
            data["properties"] = dict(self.properties)
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data
