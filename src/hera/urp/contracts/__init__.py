# hera/urp/contracts/__init__.py
from hera.urp.contracts.attributes import (
    AttributeType,
    AttributeValue,
    BooleanValue,
    DateValue,
    DynamicAttribute,
    JsonValue,
    NumberValue,
    TextValue,
)
from hera.urp.contracts.entity import (
    Entity,
    EntityFilter,
    Relationship,
    RelationshipFilter,
    Transaction,
    TransactionFilter,
    TransactionLine,
)
from hera.urp.contracts.recipe import NEVER_EXPIRE, RecipeDefinition, RecipeStep
from hera.urp.contracts.store import EntityStoreClient

__all__ = [
    "AttributeType",
    "AttributeValue",
    "BooleanValue",
    "DateValue",
    "DynamicAttribute",
    "JsonValue",
    "NumberValue",
    "TextValue",
    "Entity",
    "EntityFilter",
    "Relationship",
    "RelationshipFilter",
    "Transaction",
    "TransactionFilter",
    "TransactionLine",
    "NEVER_EXPIRE",
    "RecipeDefinition",
    "RecipeStep",
    "EntityStoreClient",
]
