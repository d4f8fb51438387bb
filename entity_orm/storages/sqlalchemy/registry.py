import logging
import typing

from sqlalchemy import Column, MetaData, Table

from entity_orm.metadata import ColumnMetadata, MetadataRegistry, TableMetadata
from entity_orm.storages.sqlalchemy import native_type_to_column


logger = logging.getLogger(__name__)


class SaMetadataRegistry(MetadataRegistry):
    """Metadata registry that also maps every table onto a typed ``sqlalchemy.Table``."""

    def __init__(self, sa_metadata: typing.Optional[MetaData] = None) -> None:
        super().__init__()
        self.sa_metadata = sa_metadata if sa_metadata is not None else MetaData()
        self._tables: typing.Dict[str, Table] = {}

    def table(self, table: TableMetadata) -> Table:
        sa_table = self._tables.get(table.name)
        if sa_table is None:
            sa_table = self._tables[table.name] = Table(table.name, self.sa_metadata)

        # relations derived later may append join columns to an already mapped table
        for column in table.base_columns:
            if column.name not in sa_table.c:
                sa_table.append_column(self._column(column))
                logger.debug("Mapped column %s.%s", table.name, column.name)
        return sa_table

    def tables_for(self, *entities: typing.Any) -> typing.List[Table]:
        """Tables of the given entities and of every table reachable through their relations."""
        reachable: typing.Dict[str, TableMetadata] = {}
        pending = [self.get(entity) for entity in entities]
        while pending:
            table = pending.pop()
            if table.name not in reachable:
                reachable[table.name] = table
                pending.extend(column.foreign_table for column in table.relation_columns)
        return [self.table(table) for table in reachable.values()]

    @staticmethod
    def _column(column: ColumnMetadata) -> Column:
        return Column(
            column.name,
            native_type_to_column.convert(column.field),
            primary_key=column.id,
            nullable=column.nullable and not column.id,
        )
