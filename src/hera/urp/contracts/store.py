# hera/urp/contracts/store.py
from abc import ABC, abstractmethod
from typing import Sequence

from hera.urp.contracts.attributes import DynamicAttribute
from hera.urp.contracts.entity import (
    Entity,
    EntityFilter,
    Relationship,
    RelationshipFilter,
    Transaction,
    TransactionFilter,
)


class EntityStoreClient(ABC):
    """
    Core report engine interface to the generic entity store.

    Implementations own query execution and consistency. Errors raised here
    reach the caller of ``ReportEngine.execute_recipe`` unmodified.
    """

    @abstractmethod
    async def query_entities(
        self,
        organization_id: str,
        filter: EntityFilter,
    ) -> list[Entity]: ...

    @abstractmethod
    async def query_dynamic_attributes(
        self,
        entity_ids: Sequence[str],
    ) -> list[DynamicAttribute]: ...

    @abstractmethod
    async def query_relationships(
        self,
        organization_id: str,
        filter: RelationshipFilter,
    ) -> list[Relationship]: ...

    @abstractmethod
    async def query_transactions(
        self,
        organization_id: str,
        filter: TransactionFilter,
    ) -> list[Transaction]: ...
