import abc
import contextlib
import logging
import typing
from collections.abc import Mapping

import attr

from entity_orm.entity import as_mapping
from entity_orm.entry import Entry, EntryRegistry
from entity_orm.errors import ColumnNotFound, MissingIdentity
from entity_orm.metadata import TableMetadata
from entity_orm.storages.sqlalchemy.executor import Connector
from entity_orm.storages.sqlalchemy.filters import Condition, Ordering, and_, asc, in_
from entity_orm.storages.sqlalchemy.registry import SaMetadataRegistry
from entity_orm.storages.sqlalchemy.unit_of_work import UnitOfWork


logger = logging.getLogger(__name__)


def _to_entities(entries: typing.Iterable[Entry]) -> typing.List[typing.Any]:
    memo: typing.Dict[Entry, typing.Any] = {}
    return [entry.to_entity(memo) for entry in entries]


class Query:
    def __init__(self, connector: Connector, metadata: SaMetadataRegistry, entries: EntryRegistry) -> None:
        self._connector = connector
        self._metadata = metadata
        self._entries = entries

    def from_(self, entity: type) -> "QueryCollection":
        return QueryCollection(self._connector, self._metadata, self._entries, entity)

    @contextlib.asynccontextmanager
    async def _unit_of_work(self) -> typing.AsyncIterator[UnitOfWork]:
        async with self._connector() as executor:
            yield UnitOfWork(executor, self._metadata, self._entries)


class QueryCollection(Query):
    def __init__(
        self, connector: Connector, metadata: SaMetadataRegistry, entries: EntryRegistry, entity: type
    ) -> None:
        super().__init__(connector, metadata, entries)
        self.entity = entity

    @property
    def table(self) -> TableMetadata:
        return self._metadata.get(self.entity)

    def find(self, condition: typing.Optional[Condition] = None) -> "QueryFind":
        return QueryFind(self._connector, self._metadata, self._entries, self.entity, condition=condition)

    def insert(self, *values: typing.Any) -> "QueryInsert":
        return QueryInsert(self._connector, self._metadata, self._entries, self.entity, values)

    def save(self, value: typing.Any) -> "QuerySave":
        return QuerySave(self._connector, self._metadata, self._entries, self.entity, value)

    def remove(self, *values: typing.Any, cascade: bool = False) -> "QueryRemove":
        return QueryRemove(self._connector, self._metadata, self._entries, self.entity, values, cascade=cascade)


class QueryExecutable(QueryCollection, abc.ABC):
    @abc.abstractmethod
    async def run(self) -> typing.List[typing.Any]:
        pass

    @staticmethod
    async def _reload(work: UnitOfWork, table: TableMetadata, entries: typing.List[Entry]) -> typing.List[typing.Any]:
        ids = [entry.id.value for entry in entries if entry.id.value is not None]
        if not ids:
            return []
        # refreshes the same entries through the identity map, relations included
        found = set(await work.find(table, in_(table.id.name, ids)))
        return _to_entities(entry for entry in entries if entry in found)


class QueryFind(QueryExecutable):
    def __init__(
        self,
        connector: Connector,
        metadata: SaMetadataRegistry,
        entries: EntryRegistry,
        entity: type,
        condition: typing.Optional[Condition] = None,
        limit_count: typing.Optional[int] = None,
        offset_count: typing.Optional[int] = None,
        ordering: typing.Tuple[Ordering, ...] = (),
        keys: typing.Tuple[str, ...] = (),
    ) -> None:
        super().__init__(connector, metadata, entries, entity)
        self.condition = condition
        self.limit_count = limit_count
        self.offset_count = offset_count
        self.ordering = ordering
        self.keys = keys

    def _evolve(self, **changes: typing.Any) -> "QueryFind":
        params = dict(
            condition=self.condition,
            limit_count=self.limit_count,
            offset_count=self.offset_count,
            ordering=self.ordering,
            keys=self.keys,
        )
        params.update(changes)
        return QueryFind(self._connector, self._metadata, self._entries, self.entity, **params)

    def select(self, *keys: str) -> "QueryFind":
        """Narrow the read to ``keys``, rows come back as mappings holding only those keys."""
        table = self.table
        # join columns synthesized for relations are not part of the entity
        declared = {field.name for field in table.description.pick(*keys).fields}
        for key in keys:
            if key not in declared:
                raise ColumnNotFound(f'Column "{key}" does not exist within "{table.name}" table')
        return self._evolve(keys=tuple(keys))

    def filter(self, *conditions: Condition) -> "QueryFind":
        if self.condition is not None:
            conditions = (self.condition, *conditions)
        return self._evolve(condition=conditions[0] if len(conditions) == 1 else and_(*conditions))

    def limit(self, count: int) -> "QueryFind":
        return self._evolve(limit_count=count)

    def offset(self, count: int) -> "QueryFind":
        return self._evolve(offset_count=count)

    def order_by(self, *keys: typing.Union[str, Ordering]) -> "QueryFind":
        orderings = tuple(asc(key) if isinstance(key, str) else key for key in keys)
        return self._evolve(ordering=self.ordering + orderings)

    async def run(self) -> typing.List[typing.Any]:
        table = self.table
        async with self._unit_of_work() as work:
            entries = await work.find(
                table, self.condition, self.limit_count, self.offset_count, self.ordering, keys=self.keys
            )
        logger.debug("Found %d %s rows", len(entries), table.name)
        entities = _to_entities(entries)
        if not self.keys:
            return entities
        return [{key: getattr(entity, key) for key in self.keys} for entity in entities]


class QueryInsert(QueryExecutable):
    def __init__(
        self,
        connector: Connector,
        metadata: SaMetadataRegistry,
        entries: EntryRegistry,
        entity: type,
        values: typing.Iterable[typing.Any],
    ) -> None:
        super().__init__(connector, metadata, entries, entity)
        self.values = tuple(values)

    def insert(self, *values: typing.Any) -> "QueryInsert":
        return QueryInsert(self._connector, self._metadata, self._entries, self.entity, self.values + values)

    async def run(self) -> typing.List[typing.Any]:
        table = self.table
        entries = []
        for value in self.values:
            entry = self._entries.create(table)
            entry.value = value
            entries.append(entry)

        async with self._unit_of_work() as work:
            await work.commit(table, entries)
            return await self._reload(work, table, entries)


class QuerySave(QueryExecutable):
    def __init__(
        self, connector: Connector, metadata: SaMetadataRegistry, entries: EntryRegistry, entity: type, value: typing.Any
    ) -> None:
        super().__init__(connector, metadata, entries, entity)
        self.value = value

    async def run(self) -> typing.List[typing.Any]:
        table = self.table
        mapping = as_mapping(self.value)
        if mapping.get(table.id.name) is None:
            raise MissingIdentity(f'Saving into "{table.name}" requires the "{table.id.name}" id property')

        identity = mapping[table.id.name]
        async with self._unit_of_work() as work:
            # stored relations are loaded first, whatever the new value replaces gets unlinked
            if not await work.find(table, in_(table.id.name, [identity])):
                logger.warning("No %s row with id %r to save", table.name, identity)
                return []
            entry = self._entries.find_by_id(table, identity)
            entry.value = mapping
            await work.commit(table, [entry])
            return await self._reload(work, table, [entry])


class QueryRemove(QueryExecutable):
    """Deletes rows by id, values being mappings, entity instances or bare ids."""

    def __init__(
        self,
        connector: Connector,
        metadata: SaMetadataRegistry,
        entries: EntryRegistry,
        entity: type,
        values: typing.Iterable[typing.Any],
        cascade: bool = False,
    ) -> None:
        super().__init__(connector, metadata, entries, entity)
        self.values = tuple(values)
        self.cascade = cascade

    @staticmethod
    def _identity(table: TableMetadata, value: typing.Any) -> typing.Any:
        identity = value
        if isinstance(value, Mapping) or attr.has(type(value)):
            identity = as_mapping(value).get(table.id.name)
        if identity is None:
            raise MissingIdentity(f'Removing from "{table.name}" requires the "{table.id.name}" id property')
        return identity

    async def run(self) -> typing.List[typing.Any]:
        table = self.table
        ids = [self._identity(table, value) for value in self.values]
        if not ids:
            return []

        async with self._unit_of_work() as work:
            entries = await work.find(table, in_(table.id.name, ids))
            removed = _to_entities(entries)
            await work.remove(table, entries, cascade=self.cascade)
        logger.debug("Removed %d %s rows", len(removed), table.name)
        return removed
