from entity_orm.storages.sqlalchemy.query import (
    Query,
    QueryCollection,
    QueryExecutable,
    QueryFind,
    QueryInsert,
    QueryRemove,
    QuerySave,
)
from entity_orm.storages.sqlalchemy.registry import SaMetadataRegistry
from entity_orm.storages.sqlalchemy.source import DataSource, Transaction


__all__ = [
    "DataSource",
    "Query",
    "QueryCollection",
    "QueryExecutable",
    "QueryFind",
    "QueryInsert",
    "QueryRemove",
    "QuerySave",
    "SaMetadataRegistry",
    "Transaction",
]
