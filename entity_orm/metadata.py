import logging
import typing

import attr

from entity_orm.entity import FOREIGN, SOURCE, STRONG, WEAK, entity_name
from entity_orm.errors import ConfigurationError, MissingEntityName, TableWithoutIdentity
from entity_orm.schema import EntitySchema, FieldSchema, describe


logger = logging.getLogger(__name__)

EntityOrSchema = typing.Union[typing.Type, EntitySchema]


@attr.s(auto_attribs=True, eq=False, repr=False)
class ColumnMetadata:
    table: "TableMetadata"
    name: str
    field: FieldSchema
    # False for join columns synthesized from a relation
    declared: bool

    @property
    def id(self) -> bool:
        return self.field.id

    @property
    def generated(self) -> bool:
        return self.field.generated

    @property
    def nullable(self) -> bool:
        return self.field.nullable

    @property
    def collection(self) -> bool:
        return self.field.collection

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.table.name}.{self.name}>"


@attr.s(auto_attribs=True, eq=False, repr=False)
class RelationColumnMetadata(ColumnMetadata):
    owner: str
    source_column: ColumnMetadata
    foreign_column: ColumnMetadata
    type: str

    @property
    def foreign_table(self) -> "TableMetadata":
        return self.foreign_column.table


class TableMetadata:
    def __init__(self, name: str, description: EntitySchema) -> None:
        self.name = name
        self.description = description
        self.base_columns: typing.List[ColumnMetadata] = []
        self.relation_columns: typing.List[RelationColumnMetadata] = []

    def __repr__(self) -> str:
        return f"<TableMetadata {self.name}>"

    @property
    def entity(self) -> typing.Optional[typing.Type]:
        return self.description.type

    @property
    def columns(self) -> typing.List[ColumnMetadata]:
        return [*self.base_columns, *self.relation_columns]

    def column(self, name: str) -> typing.Optional[ColumnMetadata]:
        return next((column for column in self.columns if column.name == name), None)

    def base_column(self, name: str) -> typing.Optional[ColumnMetadata]:
        return next((column for column in self.base_columns if column.name == name), None)

    @property
    def id(self) -> ColumnMetadata:
        for column in self.base_columns:
            if column.id:
                return column
        raise TableWithoutIdentity(f'Table "{self.name}" does not declare an id column')

    def _project(self, columns: typing.Iterable[ColumnMetadata]) -> EntitySchema:
        return attr.evolve(self.description, name=self.name, fields=tuple(column.field for column in columns))

    @property
    def base_schema(self) -> EntitySchema:
        return self._project(self.base_columns)

    @property
    def relation_schema(self) -> EntitySchema:
        return self._project(self.relation_columns)

    @property
    def schema(self) -> EntitySchema:
        return self._project(self.columns)


class MetadataRegistry:
    def __init__(self) -> None:
        self._storage: typing.Dict[str, TableMetadata] = {}

    def tables(self) -> typing.Iterator[TableMetadata]:
        return iter(list(self._storage.values()))

    def get(self, entity: EntityOrSchema) -> TableMetadata:
        name = entity.name if isinstance(entity, EntitySchema) else entity_name(entity)
        if name is None:
            raise MissingEntityName(f'Cannot read "entity" or "table" name from {entity!r}')

        table = self._storage.get(name)
        if table is not None:
            return table

        description = entity if isinstance(entity, EntitySchema) else describe(entity)
        registered = set(self._storage)
        # registered before deriving columns, relations pointing back at this table resolve to it
        table = self._storage[name] = TableMetadata(name, description)
        try:
            self._derive(table)
        except Exception:
            for other in list(self._storage):
                if other not in registered:
                    del self._storage[other]
            raise
        return table

    def _derive(self, table: TableMetadata) -> None:
        for field in table.description.fields:
            if not field.is_relation:
                table.base_columns.append(ColumnMetadata(table, field.name, field, True))

        for field in table.description.fields:
            if field.is_relation:
                table.relation_columns.append(self._relate(table, field))

        logger.debug(
            "Derived table %s: base columns %s, relation columns %s",
            table.name,
            [column.name for column in table.base_columns],
            [column.name for column in table.relation_columns],
        )

    def _relate(self, source_table: TableMetadata, field: FieldSchema) -> RelationColumnMetadata:
        foreign_table = self.get(field.type)

        # a collection can not hold a single join column, the foreign side always owns it
        owner = FOREIGN if field.collection else (field.join_owner or SOURCE)
        if owner not in (SOURCE, FOREIGN):
            raise ConfigurationError(f'Unknown join owner "{owner}" on {source_table.name}.{field.name}')

        reference = field.reference or WEAK
        if reference not in (STRONG, WEAK):
            raise ConfigurationError(f'Unknown reference "{reference}" on {source_table.name}.{field.name}')

        target_table, owner_table = (foreign_table, source_table) if owner == SOURCE else (source_table, foreign_table)
        target_column = target_table.id
        join_name = field.join_name or f"{target_table.name}_{target_column.name}"

        owner_column = owner_table.base_column(join_name)
        if owner_column is None:
            join_field = attr.evolve(
                target_column.field, name=join_name, id=False, generated=False, nullable=field.nullable
            )
            owner_column = ColumnMetadata(owner_table, join_name, join_field, False)
            owner_table.base_columns.append(owner_column)
            logger.debug("Synthesized join column %s.%s", owner_table.name, join_name)

        source_column, foreign_column = (
            (owner_column, target_column) if owner == SOURCE else (target_column, owner_column)
        )
        return RelationColumnMetadata(
            table=source_table,
            name=field.name,
            field=field,
            declared=True,
            owner=owner,
            source_column=source_column,
            foreign_column=foreign_column,
            type=reference,
        )
