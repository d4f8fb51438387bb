from entity_orm.config import DataSourceSettings
from entity_orm.entity import FOREIGN, SOURCE, STRONG, WEAK, Entity, Identity, generated, relation
from entity_orm.errors import (
    ColumnNotFound,
    ConfigurationError,
    IdentityConflict,
    MissingEntityName,
    MissingIdentity,
    TableWithoutIdentity,
    UnsupportedType,
)
from entity_orm.metadata import MetadataRegistry
from entity_orm.storages.sqlalchemy import DataSource, Transaction
from entity_orm.storages.sqlalchemy.filters import and_, asc, desc, eq, gt, gte, in_, lt, lte, ne, or_


__all__ = [
    "ColumnNotFound",
    "ConfigurationError",
    "DataSource",
    "DataSourceSettings",
    "Entity",
    "FOREIGN",
    "IdentityConflict",
    "Identity",
    "MetadataRegistry",
    "MissingEntityName",
    "MissingIdentity",
    "SOURCE",
    "STRONG",
    "TableWithoutIdentity",
    "Transaction",
    "UnsupportedType",
    "WEAK",
    "and_",
    "asc",
    "desc",
    "eq",
    "generated",
    "gt",
    "gte",
    "in_",
    "lt",
    "lte",
    "ne",
    "or_",
    "relation",
]
