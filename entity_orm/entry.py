import abc
import typing

from entity_orm import codec
from entity_orm.entity import SOURCE, STRONG, as_mapping
from entity_orm.errors import ColumnNotFound, IdentityConflict
from entity_orm.metadata import ColumnMetadata, RelationColumnMetadata, TableMetadata
from entity_orm.util.maps import BiMap, MapList, SafeMap


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


def unique_entries(entries: typing.Iterable["Entry"]) -> typing.List["Entry"]:
    seen: typing.Set[int] = set()
    result = []
    for entry in entries:
        if id(entry) not in seen:
            seen.add(id(entry))
            result.append(entry)
    return result


class EntryRegistry:
    """Identity map of one query or transaction scope."""

    def __init__(self) -> None:
        self._entries: MapList[TableMetadata, Entry] = MapList()
        self._identities: SafeMap[TableMetadata, BiMap[typing.Any, Entry]] = SafeMap(lambda _table: BiMap())

    def get(self, table: TableMetadata) -> typing.List["Entry"]:
        return list(self._entries.get(table))

    def find_by_id(self, table: TableMetadata, id: typing.Any) -> "Entry":
        key = codec.decode(table.id.field, id)
        if key is None:
            return self.create(table)

        entry = self._identities.get(table).get(key)
        if entry is None:
            entry = self.create(table, new=False)
            entry.id.value = key
            entry.id.dirty = False
        return entry

    def instantiate(self, table: TableMetadata, row: typing.Mapping[str, typing.Any]) -> "Entry":
        entry = self.find_by_id(table, row.get(table.id.name))
        entry.raw = row
        return entry

    def create(self, table: TableMetadata, new: bool = True) -> "Entry":
        entry = Entry(self, table, new=new)
        self._entries.get(table).append(entry)
        return entry

    def register(self, entry: "Entry", id: typing.Any) -> None:
        identities = self._identities.get(entry.table)
        if id is None:
            identities.unbind_value(entry)
            return
        try:
            identities.bind(id, entry)
        except ValueError as error:
            raise IdentityConflict(f'Table "{entry.table.name}" already holds an entry with id {id!r}') from error

    def discard(self, entry: "Entry") -> None:
        self._identities.get(entry.table).unbind_value(entry)
        entries = self._entries.get(entry.table)
        entries[:] = [other for other in entries if other is not entry]


class Entry:
    def __init__(self, registry: EntryRegistry, table: TableMetadata, new: bool = True) -> None:
        self.registry = registry
        self.table = table
        self.removed = False
        self._new = new
        self._properties: typing.Dict[ColumnMetadata, EntryProperty] = {}
        for column in table.columns:
            self.prop(column)

    def __repr__(self) -> str:
        return f"<Entry {self.table.name} id={self.id.value!r}>"

    def prop(self, column: ColumnMetadata) -> "EntryProperty":
        if column.table is not self.table:
            raise ColumnNotFound(
                f'Column "{column.table.name}"."{column.name}" does not exist within "{self.table.name}" table'
            )

        entry_property = self._properties.get(column)
        if entry_property is None:
            entry_property = self._properties[column] = _create_property(self.registry, self, column)
        return entry_property

    @property
    def properties(self) -> typing.List["EntryProperty"]:
        # relations derived later may append join columns to this table
        return [self.prop(column) for column in self.table.columns]

    @property
    def base_properties(self) -> typing.List["EntryPropertyValue"]:
        return [self.prop(column) for column in self.table.base_columns]

    @property
    def relation_properties(self) -> typing.List["EntryPropertyRelation"]:
        return [self.prop(column) for column in self.table.relation_columns]

    @property
    def id(self) -> "EntryPropertyValue":
        return self.prop(self.table.id)

    @property
    def new(self) -> bool:
        return self._new or self.id.value is None

    @new.setter
    def new(self, value: bool) -> None:
        self._new = value

    @property
    def active(self) -> bool:
        return any(prop.active for prop in self.properties)

    @property
    def initialized(self) -> bool:
        return any(prop.initialized for prop in self.properties)

    @initialized.setter
    def initialized(self, value: bool) -> None:
        for prop in self.properties:
            if prop.active:
                prop.initialized = value

    @property
    def dirty(self) -> bool:
        return any(prop.dirty for prop in self.properties)

    @dirty.setter
    def dirty(self, value: bool) -> None:
        for prop in self.properties:
            if prop.active:
                prop.dirty = value

    @property
    def value(self) -> typing.Dict[str, typing.Any]:
        return {prop.column.name: prop.value for prop in self.properties}

    @value.setter
    def value(self, value: typing.Any) -> None:
        mapping = as_mapping(value)
        for prop in self.properties:
            if prop.column.name in mapping:
                prop.value = mapping[prop.column.name]

    @property
    def raw(self) -> typing.Dict[str, typing.Any]:
        return {prop.column.name: prop.raw for prop in self.base_properties}

    @raw.setter
    def raw(self, value: typing.Mapping[str, typing.Any]) -> None:
        for prop in self.base_properties:
            if prop.column.name in value:
                prop.raw = value[prop.column.name]

    def bind(self) -> None:
        for prop in self.relation_properties:
            prop.bind()

    def unlink(self) -> None:
        for prop in self.relation_properties:
            prop.value = None

    def to_entity(self, memo: typing.Optional[typing.Dict["Entry", typing.Any]] = None) -> typing.Any:
        """Build an entity instance, sharing instances between entries already converted through ``memo``."""
        memo = {} if memo is None else memo
        if self in memo:
            return memo[self]

        values = {column.name: self.prop(column).value for column in self.table.base_columns if column.declared}
        values.update({column.name: [] if column.collection else None for column in self.table.relation_columns})
        instance = memo[self] = self.table.entity(**values)

        for column in self.table.relation_columns:
            related = [entry.to_entity(memo) for entry in self.prop(column).entries]
            setattr(instance, column.name, related if column.collection else next(iter(related), None))
        return instance


class EntryProperty(abc.ABC):
    def __init__(self, registry: EntryRegistry, entry: Entry, column: ColumnMetadata) -> None:
        self.registry = registry
        self.entry = entry
        self.column = column
        # in use, any flag mutation activates it
        self._active = False
        # fetched from the store
        self._initialized = False
        # holds a change not yet persisted
        self._dirty = False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.column.table.name}.{self.column.name} dirty={self._dirty}>"

    @property
    def active(self) -> bool:
        return self._active

    @active.setter
    def active(self, value: bool) -> None:
        self._active = value

    @property
    def initialized(self) -> bool:
        return self._initialized

    @initialized.setter
    def initialized(self, value: bool) -> None:
        self.active = True
        self._initialized = value

    @property
    def dirty(self) -> bool:
        return self._dirty

    @dirty.setter
    def dirty(self, value: bool) -> None:
        self.active = True
        self._dirty = value

    def _touch(self, changed: bool) -> None:
        self.dirty = self._dirty or changed

    @property
    @abc.abstractmethod
    def value(self) -> typing.Any:
        pass


class EntryPropertyValue(EntryProperty):
    def __init__(self, registry: EntryRegistry, entry: Entry, column: ColumnMetadata) -> None:
        super().__init__(registry, entry, column)
        self._data: typing.Any = UNSET

    @property
    def assigned(self) -> bool:
        return self._data is not UNSET

    def _assign(self, data: typing.Any) -> None:
        if self.column.id:
            self.registry.register(self.entry, data)
        self._touch(self._data is UNSET or self._data != data)
        self._data = data

    @property
    def raw(self) -> typing.Any:
        return codec.encode(self.column.field, self.value)

    @raw.setter
    def raw(self, value: typing.Any) -> None:
        self.value = value


class EntryPropertySingleValue(EntryPropertyValue):
    @property
    def value(self) -> typing.Any:
        return None if self._data is UNSET else self._data

    @value.setter
    def value(self, value: typing.Any) -> None:
        self._assign(codec.decode(self.column.field, value))


class EntryPropertyMultiValue(EntryPropertyValue):
    @property
    def value(self) -> typing.Optional[typing.List[typing.Any]]:
        if self._data is UNSET or self._data is None:
            return None
        return list(self._data)

    @value.setter
    def value(self, value: typing.Optional[typing.Iterable[typing.Any]]) -> None:
        # decode returns a fresh list, later mutations of the caller's list go unnoticed otherwise
        self._assign(codec.decode(self.column.field, None if value is None else list(value)))


class EntryPropertyRelation(EntryProperty):
    column: RelationColumnMetadata

    def __init__(self, registry: EntryRegistry, entry: Entry, column: RelationColumnMetadata) -> None:
        super().__init__(registry, entry, column)
        # foreign entries unlinked since the last commit, their cleared join values are still unwritten
        self.detached: typing.List[Entry] = []

    @property
    @abc.abstractmethod
    def entries(self) -> typing.List[Entry]:
        pass

    @abc.abstractmethod
    def attach(self, entries: typing.Sequence[Entry]) -> None:
        """Reference entries loaded from the store, their join values already agree."""

    def bind(self) -> None:
        for foreign in self.entries:
            self._link(foreign)

    def _resolve(self, value: typing.Any) -> Entry:
        foreign_table = self.column.foreign_table
        if isinstance(value, Entry):
            if value.table is not foreign_table:
                raise ColumnNotFound(f'Entry of "{value.table.name}" can not be referenced by {self.column!r}')
            return value

        mapping = as_mapping(value)
        foreign = self.registry.find_by_id(foreign_table, mapping.get(foreign_table.id.name))
        if self.column.type == STRONG or foreign.new:
            foreign.value = mapping
        return foreign

    def _link(self, foreign: Entry) -> None:
        if self.column.owner == SOURCE:
            self.entry.prop(self.column.source_column).value = foreign.prop(self.column.foreign_column).value
        else:
            foreign.prop(self.column.foreign_column).value = self.entry.prop(self.column.source_column).value

    def _unlink(self, foreign: typing.Optional[Entry]) -> None:
        if self.column.owner == SOURCE:
            self.entry.prop(self.column.source_column).value = None
        elif foreign is not None:
            foreign.prop(self.column.foreign_column).value = None
            if all(entry is not foreign for entry in self.detached):
                self.detached.append(foreign)


class EntryPropertySingleRelation(EntryPropertyRelation):
    def __init__(self, registry: EntryRegistry, entry: Entry, column: RelationColumnMetadata) -> None:
        super().__init__(registry, entry, column)
        self._foreign: typing.Optional[Entry] = None

    @property
    def entries(self) -> typing.List[Entry]:
        return [] if self._foreign is None else [self._foreign]

    @property
    def value(self) -> typing.Optional[Entry]:
        return self._foreign

    @value.setter
    def value(self, value: typing.Any) -> None:
        foreign = None if value is None else self._resolve(value)
        previous = self._foreign
        if previous is not None and previous is not foreign:
            self._unlink(previous)
        elif previous is None and foreign is None:
            self._unlink(None)

        self._touch(previous is not foreign)
        self._foreign = foreign
        if foreign is not None:
            self._link(foreign)

    def attach(self, entries: typing.Sequence[Entry]) -> None:
        self._foreign = next(iter(entries), None)
        self.detached = []
        self.initialized = True
        self.dirty = False


class EntryPropertyMultiRelation(EntryPropertyRelation):
    def __init__(self, registry: EntryRegistry, entry: Entry, column: RelationColumnMetadata) -> None:
        super().__init__(registry, entry, column)
        self._foreign: typing.List[Entry] = []

    @property
    def entries(self) -> typing.List[Entry]:
        return list(self._foreign)

    @property
    def value(self) -> typing.List[Entry]:
        return list(self._foreign)

    @value.setter
    def value(self, value: typing.Optional[typing.Iterable[typing.Any]]) -> None:
        foreign = unique_entries(self._resolve(item) for item in (value or ()))
        previous = self._foreign
        kept = {id(entry) for entry in foreign}
        for entry in previous:
            if id(entry) not in kept:
                self._unlink(entry)

        self._touch({id(entry) for entry in previous} != kept)
        self._foreign = foreign
        for entry in foreign:
            self._link(entry)

    def attach(self, entries: typing.Sequence[Entry]) -> None:
        self._foreign = unique_entries(entries)
        self.detached = []
        self.initialized = True
        self.dirty = False


def _create_property(registry: EntryRegistry, entry: Entry, column: ColumnMetadata) -> EntryProperty:
    if isinstance(column, RelationColumnMetadata):
        if column.collection:
            return EntryPropertyMultiRelation(registry, entry, column)
        return EntryPropertySingleRelation(registry, entry, column)
    if column.collection:
        return EntryPropertyMultiValue(registry, entry, column)
    return EntryPropertySingleValue(registry, entry, column)
