"""
Factory module: declarative configuration trees and the registry-driven
builder that turns them into object graphs.
"""

from annomesh.factory.config import FilterConfig
from annomesh.factory.configurable import (
    BuildReport,
    ConfigurableFactory,
    FactoryEntry,
)
from annomesh.factory.properties import (
    Property,
    StringProperty,
    IntegerProperty,
    JSONProperty,
)

__all__ = [
    "FilterConfig",
    "BuildReport",
    "ConfigurableFactory",
    "FactoryEntry",
    "Property",
    "StringProperty",
    "IntegerProperty",
    "JSONProperty",
]
