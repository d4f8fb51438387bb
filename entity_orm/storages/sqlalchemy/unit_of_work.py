import asyncio
import logging
import typing

from sqlalchemy import delete, insert, select, update

from entity_orm.entity import FOREIGN, SOURCE, STRONG
from entity_orm.entry import Entry, EntryRegistry, unique_entries
from entity_orm.metadata import RelationColumnMetadata, TableMetadata
from entity_orm.storages.sqlalchemy.executor import Executor, Row
from entity_orm.storages.sqlalchemy.filters import Condition, Ordering, build_filter, build_ordering, in_
from entity_orm.storages.sqlalchemy.registry import SaMetadataRegistry


logger = logging.getLogger(__name__)

Resolved = typing.Set[typing.Tuple[RelationColumnMetadata, Entry]]


def _referenced(entries: typing.Iterable[Entry], column: RelationColumnMetadata) -> typing.List[Entry]:
    return unique_entries(foreign for entry in entries for foreign in entry.prop(column).entries)


def _detached(entries: typing.Iterable[Entry], column: RelationColumnMetadata) -> typing.List[Entry]:
    detached = []
    for entry in entries:
        prop = entry.prop(column)
        detached.extend(prop.detached)
        prop.detached = []
    return detached


class UnitOfWork:
    """Reads and cascading writes of one query run, bound to a single connection."""

    def __init__(self, executor: Executor, metadata: SaMetadataRegistry, entries: EntryRegistry) -> None:
        self._executor = executor
        self._metadata = metadata
        self._entries = entries

    async def find(
        self,
        table: TableMetadata,
        condition: typing.Optional[Condition] = None,
        limit: typing.Optional[int] = None,
        offset: typing.Optional[int] = None,
        ordering: typing.Sequence[Ordering] = (),
        keys: typing.Sequence[str] = (),
        resolved: typing.Optional[Resolved] = None,
    ) -> typing.List[Entry]:
        relation_columns = [column for column in table.relation_columns if not keys or column.name in keys]
        base_columns = table.base_columns
        if keys:
            # the id and the join values of the selected relations are always read
            needed = {table.id.name, *keys, *(column.source_column.name for column in relation_columns)}
            base_columns = [column for column in base_columns if column.name in needed]

        sa_table = self._metadata.table(table)
        statement = select(*(sa_table.c[column.name] for column in base_columns))
        if condition is not None:
            statement = statement.where(build_filter(table, sa_table, condition))
        if ordering:
            statement = statement.order_by(*build_ordering(table, sa_table, ordering))
        if limit is not None:
            statement = statement.limit(limit)
        if offset is not None:
            statement = statement.offset(offset)

        rows = await self._executor.fetch(statement)
        entries = unique_entries(self._load(table, row) for row in rows)

        # every relation of an entry is resolved once per read, cyclic graphs terminate
        resolved = set() if resolved is None else resolved
        pending = {}
        for column in relation_columns:
            pending[column] = [entry for entry in entries if (column, entry) not in resolved]
            resolved.update((column, entry) for entry in pending[column])
        await asyncio.gather(
            *(self._resolve(column, pending[column], resolved) for column in relation_columns if pending[column])
        )
        return entries

    def _load(self, table: TableMetadata, row: Row) -> Entry:
        entry = self._entries.instantiate(table, row)
        entry.new = False
        entry.dirty = False
        entry.initialized = True
        return entry

    async def _resolve(self, column: RelationColumnMetadata, entries: typing.List[Entry], resolved: Resolved) -> None:
        lookups = []
        for entry in entries:
            value = entry.prop(column.source_column).value
            if value is not None and value not in lookups:
                lookups.append(value)

        foreign_entries = []
        if lookups:
            foreign_entries = await self.find(
                column.foreign_table, in_(column.foreign_column.name, lookups), resolved=resolved
            )

        for entry in entries:
            value = entry.prop(column.source_column).value
            matches = [
                foreign
                for foreign in foreign_entries
                if value is not None and foreign.prop(column.foreign_column).value == value
            ]
            entry.prop(column).attach(matches)

    async def commit(
        self, table: TableMetadata, entries: typing.Iterable[Entry], visited: typing.Optional[typing.Set[Entry]] = None
    ) -> None:
        visited = set() if visited is None else visited
        pending = [entry for entry in unique_entries(entries) if entry not in visited and not entry.removed]
        if not pending:
            return
        visited.update(pending)
        logger.debug("Committing %d %s entries", len(pending), table.name)

        # tables this one points at must hold their ids before the join column is written
        await self._commit_relations(table, pending, SOURCE, visited)
        for entry in pending:
            entry.bind()
        await asyncio.gather(*(self._write(table, entry) for entry in pending))
        # ids generated above are copied onto the tables pointing back at this one
        for entry in pending:
            entry.bind()
        await self._commit_relations(table, pending, FOREIGN, visited)

    async def _commit_relations(
        self, table: TableMetadata, entries: typing.List[Entry], owner: str, visited: typing.Set[Entry]
    ) -> None:
        await asyncio.gather(
            *(
                self.commit(column.foreign_table, _referenced(entries, column) + _detached(entries, column), visited)
                for column in table.relation_columns
                if column.owner == owner
            )
        )

    async def _write(self, table: TableMetadata, entry: Entry) -> None:
        if entry.removed:
            return
        if entry.new:
            await self._insert(table, entry)
            return

        values = {
            prop.column.name: prop.raw
            for prop in entry.base_properties
            if prop.dirty and not prop.column.id and not prop.column.generated
        }
        if values:
            await self._update(table, entry, values)

    async def _insert(self, table: TableMetadata, entry: Entry) -> None:
        sa_table = self._metadata.table(table)
        values = {
            prop.column.name: prop.raw for prop in entry.base_properties if prop.assigned and not prop.column.generated
        }
        statement = insert(sa_table)
        if values:
            statement = statement.values(values)
        rows = await self._executor.fetch(statement.returning(*sa_table.c))
        self._refresh(entry, rows[0])
        logger.debug("Inserted %s row %r", table.name, entry.id.value)

    async def _update(self, table: TableMetadata, entry: Entry, values: typing.Dict[str, typing.Any]) -> None:
        sa_table = self._metadata.table(table)
        statement = (
            update(sa_table)
            .where(sa_table.c[table.id.name] == entry.id.raw)
            .values(values)
            .returning(*sa_table.c)
        )
        rows = await self._executor.fetch(statement)
        if not rows:
            logger.warning("No %s row with id %r to update", table.name, entry.id.value)
            return
        self._refresh(entry, rows[0])
        logger.debug("Updated %s row %r: %s", table.name, entry.id.value, sorted(values))

    @staticmethod
    def _refresh(entry: Entry, row: Row) -> None:
        entry.raw = row
        entry.new = False
        entry.dirty = False
        entry.initialized = True

    async def remove(
        self,
        table: TableMetadata,
        entries: typing.Iterable[Entry],
        cascade: bool = False,
        visited: typing.Optional[typing.Set[Entry]] = None,
    ) -> None:
        visited = set() if visited is None else visited
        pending = [entry for entry in unique_entries(entries) if entry not in visited]
        if not pending:
            return
        visited.update(pending)
        for entry in pending:
            entry.removed = True
        logger.debug("Removing %d %s entries (cascade=%s)", len(pending), table.name, cascade)

        dependents = [column for column in table.relation_columns if column.owner == FOREIGN]
        dependencies = [
            column for column in table.relation_columns if cascade and column.owner == SOURCE and column.type == STRONG
        ]
        referenced = {column: _referenced(pending, column) for column in dependents + dependencies}

        # rows pointing at the removed ones go first, or lose their join value
        if cascade:
            await asyncio.gather(
                *(self.remove(column.foreign_table, referenced[column], cascade, visited) for column in dependents)
            )
        for entry in pending:
            entry.unlink()
        if not cascade:
            await asyncio.gather(
                *(
                    self._write(column.foreign_table, foreign)
                    for column in dependents
                    for foreign in referenced[column]
                )
            )

        await asyncio.gather(*(self._delete(table, entry) for entry in pending))

        if cascade:
            await asyncio.gather(
                *(self.remove(column.foreign_table, referenced[column], cascade, visited) for column in dependencies)
            )

    async def _delete(self, table: TableMetadata, entry: Entry) -> None:
        if not entry.new:
            sa_table = self._metadata.table(table)
            id_column = sa_table.c[table.id.name]
            rows = await self._executor.fetch(delete(sa_table).where(id_column == entry.id.raw).returning(id_column))
            logger.debug("Deleted %d %s row(s) with id %r", len(rows), table.name, entry.id.value)
        self._entries.discard(entry)
