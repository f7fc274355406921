# hera/urp/core/primitives/base.py
"""
Primitive registry and helpers shared by primitive implementations.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Iterator, Mapping

from hera.urp.contracts.entity import Entity
from hera.urp.contracts.primitive import Primitive
from hera.urp.core.errors import StepConfigError, UnknownPrimitiveError

logger = logging.getLogger(__name__)


class PrimitiveRegistry:
    """
    Registry mapping primitive names (and aliases) to primitive instances.

    Example:
        registry = PrimitiveRegistry()
        registry.register(EntityResolver())

        registry.resolve("entity_resolver")
        registry.resolve("entityResolver")  # alias
    """

    def __init__(self) -> None:
        self._primitives: dict[str, Primitive] = {}
        self._aliases: dict[str, str] = {}

    def register(self, primitive: Primitive) -> None:
        """
        Register a primitive under its name and aliases.

        Re-registering a name replaces the previous primitive.

        Raises:
            TypeError: If the object does not implement the primitive contract
        """
        if not isinstance(primitive, Primitive):
            raise TypeError(
                f"{primitive.__class__.__name__} does not implement the Primitive contract"
            )

        name = primitive.name
        if name in self._primitives:
            logger.warning("Replacing primitive '%s'", name)
        self._primitives[name] = primitive
        for alias in getattr(primitive, "aliases", ()):
            self._aliases[alias] = name
        logger.debug("Registered primitive: %s", name)

    def resolve(self, name: str) -> Primitive:
        """
        Resolve a primitive by name or alias.

        Raises:
            UnknownPrimitiveError: If nothing is registered under the name
        """
        canonical = self._aliases.get(name, name)
        try:
            return self._primitives[canonical]
        except KeyError:
            raise UnknownPrimitiveError(name) from None

    def has(self, name: str) -> bool:
        return self._aliases.get(name, name) in self._primitives

    def names(self) -> list[str]:
        return list(self._primitives)

    def __iter__(self) -> Iterator[Primitive]:
        return iter(self._primitives.values())

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._primitives)


# -- Config helpers ------------------------------------------------------------


def require(config: Mapping[str, Any], key: str, primitive: str) -> Any:
    if config.get(key) is None:
        raise StepConfigError(f"{primitive}: '{key}' is required")
    return config[key]


def choice(
    config: Mapping[str, Any],
    key: str,
    allowed: tuple[str, ...],
    primitive: str,
) -> str:
    """Return ``config[key]`` validated against ``allowed`` (first entry is the default)."""
    value = config.get(key) or allowed[0]
    if value not in allowed:
        raise StepConfigError(
            f"{primitive}: '{key}' must be one of {list(allowed)}, got '{value}'"
        )
    return value


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


# -- Row helpers ---------------------------------------------------------------


def to_row(item: Any) -> dict[str, Any]:
    """Convert an entity, dataclass or mapping into a plain (copied) dict."""
    if isinstance(item, Entity):
        return item.to_row()
    if hasattr(item, "to_row"):
        return item.to_row()
    if is_dataclass(item) and not isinstance(item, type):
        return asdict(item)
    if isinstance(item, Mapping):
        return dict(item)
    raise StepConfigError(f"Cannot use {type(item).__name__} as a row")


def get_path(item: Any, path: str, default: Any = None) -> Any:
    """
    Resolve a dotted path (``metadata.region``) against rows and entities.

    Entities resolve through :meth:`Entity.get`, so dynamic attributes are
    addressable by name.
    """
    current = item
    for part in path.split("."):
        if current is None:
            return default
        if isinstance(current, Entity):
            current = current.get(part, default)
        elif isinstance(current, Mapping):
            current = current.get(part, default)
        else:
            current = getattr(current, part, default)
    return current
