"""
Configurable Factory: Declarative Tree to Object Graph

Turns a FilterConfig tree into a fully wired product by looking each
node's type name up in a registry of constructors.

Build walk per node:
    1. resolve the registry entry          -> UnknownFilterTypeError
    2. resolve every declared property:
       configured value, then the external default resolver,
       then the declared default           -> MissingPropertyError
    3. parse values, reject undeclared ones -> FilterConstructionError
    4. build children (composite entries only); failed children are
       dropped and their diagnostics kept
    5. invoke the constructor               -> FilterConstructionError

Fail-soft:
    A failing node yields no product and a diagnostic; the walk never
    raises. The caller decides whether diagnostics are fatal.

Usage:
    factory = ConfigurableFactory[AnnotationFilter]("filters")
    factory.register("script", lambda props, children: ScriptableFilter(props["script"]),
                     properties=(StringProperty("script", "boolean expression"),))
    report = factory.build(FilterConfig.from_json(text))
    if report.ok:
        use(report.product)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from annomesh.core.errors import (
    AnnomeshError,
    ConfigurationError,
    FilterConstructionError,
    MissingPropertyError,
    UnknownFilterTypeError,
)
from annomesh.factory.config import FilterConfig
from annomesh.factory.properties import Property
from annomesh.observability.logging import StructuredLogger

P = TypeVar("P")

BuildFn = Callable[[Mapping[str, Any], list], Any]
DefaultResolver = Callable[[str, str], Any]

logger = StructuredLogger("annomesh.factory")


@dataclass(frozen=True, slots=True)
class FactoryEntry:
    """Registered constructor with its declared properties."""

    type_name: str
    build_fn: BuildFn
    properties: tuple[Property, ...] = ()
    composite: bool = False

    def declared(self) -> dict[str, Property]:
        return {prop.name: prop for prop in self.properties}


@dataclass(slots=True)
class BuildReport(Generic[P]):
    """Product of a build walk plus every diagnostic collected on the way."""

    product: Optional[P]
    diagnostics: list[ConfigurationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.product is not None and not self.diagnostics


class ConfigurableFactory(Generic[P]):
    """
    Registry-driven builder for configured objects.

    Last registration for a type name wins. Thread-safe for concurrent
    build() calls once registration is finished.
    """

    __slots__ = ("_name", "_entries", "_default_resolver")

    def __init__(
        self,
        name: str,
        default_resolver: Optional[DefaultResolver] = None,
    ) -> None:
        self._name = name
        self._entries: dict[str, FactoryEntry] = {}
        self._default_resolver = default_resolver

    @property
    def name(self) -> str:
        return self._name

    def register(
        self,
        type_name: str,
        build_fn: BuildFn,
        properties: Iterable[Property] = (),
        composite: bool = False,
    ) -> None:
        """Add or override the constructor for a type name."""
        if type_name in self._entries:
            logger.debug("Overriding factory entry", factory=self._name, type_name=type_name)
        self._entries[type_name] = FactoryEntry(
            type_name=type_name,
            build_fn=build_fn,
            properties=tuple(properties),
            composite=composite,
        )

    def registered(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._entries

    def build(self, config: FilterConfig) -> BuildReport[P]:
        """Build one configured object; never raises."""
        diagnostics: list[ConfigurationError] = []
        product = self._build_node(config, diagnostics, "$")
        return BuildReport(product=product, diagnostics=diagnostics)

    # -------------------------------------------------------------------------
    # TREE WALK
    # -------------------------------------------------------------------------

    def _build_node(
        self,
        config: FilterConfig,
        diagnostics: list[ConfigurationError],
        path: str,
    ) -> Optional[P]:
        entry = self._entries.get(config.name)
        if entry is None:
            return self._fail(
                UnknownFilterTypeError.for_name(config.name, list(self._entries)),
                diagnostics,
                path,
            )

        properties = self._resolve_properties(entry, config)
        if isinstance(properties, ConfigurationError):
            return self._fail(properties, diagnostics, path)

        children: list[P] = []
        if config.children:
            if not entry.composite:
                return self._fail(
                    FilterConstructionError.unexpected_children(entry.type_name, len(config.children)),
                    diagnostics,
                    path,
                )
            for i, child_config in enumerate(config.children):
                child = self._build_node(child_config, diagnostics, f"{path}.children[{i}]")
                if child is not None:
                    children.append(child)

        try:
            product = entry.build_fn(properties, children)
        except AnnomeshError as e:
            error = e if isinstance(e, ConfigurationError) else FilterConstructionError.wrap(entry.type_name, e)
            return self._fail(error, diagnostics, path)
        except Exception as e:
            return self._fail(FilterConstructionError.wrap(entry.type_name, e), diagnostics, path)

        if product is None:
            return self._fail(
                FilterConstructionError.wrap(entry.type_name, ValueError("constructor returned None")),
                diagnostics,
                path,
            )
        return product

    def _resolve_properties(
        self,
        entry: FactoryEntry,
        config: FilterConfig,
    ) -> dict[str, Any] | ConfigurationError:
        declared = entry.declared()

        unknown = sorted(set(config.properties) - set(declared))
        if unknown:
            return FilterConstructionError.invalid_property(
                entry.type_name, unknown[0], "property is not declared"
            )

        values: dict[str, Any] = {}
        for prop in entry.properties:
            # An explicit null counts as absent
            raw = config.properties.get(prop.name)
            if raw is None:
                try:
                    raw = self._resolve_default(entry.type_name, prop)
                except Exception as e:
                    return FilterConstructionError.invalid_property(
                        entry.type_name, prop.name, f"default resolver failed: {e}"
                    )
            if raw is None:
                return MissingPropertyError.for_property(entry.type_name, prop.name)
            try:
                values[prop.name] = prop.parse(raw)
            except ValueError as e:
                return FilterConstructionError.invalid_property(entry.type_name, prop.name, str(e))
        return values

    def _resolve_default(self, type_name: str, prop: Property) -> Any:
        if self._default_resolver is not None:
            resolved = self._default_resolver(type_name, prop.name)
            if resolved is not None:
                return resolved
        return prop.default

    def _fail(
        self,
        error: ConfigurationError,
        diagnostics: list[ConfigurationError],
        path: str,
    ) -> None:
        error = error.with_context(path=path)
        diagnostics.append(error)
        logger.error(
            "Filter node dropped",
            factory=self._name,
            error=error.to_dict(),
        )
        return None
