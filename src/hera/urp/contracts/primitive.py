# hera/urp/contracts/primitive.py
from __future__ import annotations

from typing import Any, ClassVar, Mapping, Protocol, runtime_checkable

from hera.urp.core.context import ExecutionContext


@runtime_checkable
class Primitive(Protocol):
    """
    Report primitive contract.

    ``run`` receives the step config with placeholders already bound, so
    outputs of earlier steps arrive as native objects.
    """

    name: ClassVar[str]
    aliases: ClassVar[tuple[str, ...]]

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> Any: ...
