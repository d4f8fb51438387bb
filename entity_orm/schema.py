import collections.abc
import types
import typing

import attr

from entity_orm.entity import Identity, entity_name, is_entity
from entity_orm.errors import UnsupportedType


_NONE_TYPE = type(None)
_UNION_TYPES = (typing.Union, types.UnionType)
_COLLECTION_TYPES = (list, tuple, set, frozenset, collections.abc.Sequence)

# aliases accepted in field metadata, first match wins
_GENERATED_KEYS = ("generate", "gen", "generated")
_OWNER_KEYS = ("owner", "join_owner", "joinOwner")
_JOIN_NAME_KEYS = ("join_name", "joinName", "join")


@attr.s(auto_attribs=True, frozen=True)
class FieldSchema:
    name: str
    type: typing.Any
    id: bool = False
    generated: bool = False
    nullable: bool = False
    collection: bool = False
    entity: typing.Optional[str] = None
    join_name: typing.Optional[str] = None
    join_owner: typing.Optional[str] = None
    reference: typing.Optional[str] = None

    @property
    def is_relation(self) -> bool:
        return self.entity is not None or is_entity(self.type)


@attr.s(auto_attribs=True, frozen=True)
class EntitySchema:
    name: typing.Optional[str]
    type: typing.Optional[typing.Type]
    fields: typing.Tuple[FieldSchema, ...] = ()

    def field(self, name: str) -> typing.Optional[FieldSchema]:
        return next((field for field in self.fields if field.name == name), None)

    def pick(self, *names: str) -> "EntitySchema":
        return attr.evolve(self, fields=tuple(field for field in self.fields if field.name in names))

    def named(self, name: str) -> "EntitySchema":
        return attr.evolve(self, name=name)


def _read(metadata: typing.Mapping, keys: typing.Iterable[str], default: typing.Any = None) -> typing.Any:
    for key in keys:
        value = metadata.get(key)
        if value is not None:
            return value
    return default


def _unwrap(field_type: typing.Any) -> typing.Tuple[typing.Any, bool, bool, bool]:
    """Strip Identity, Optional and List wrappers down to the innermost concrete type."""
    is_identity = nullable = collection = False
    while True:
        origin = typing.get_origin(field_type)
        args = typing.get_args(field_type)
        if origin is Identity:
            is_identity = True
            field_type = args[0]
        elif origin in _UNION_TYPES:
            rest = [arg for arg in args if arg is not _NONE_TYPE]
            if len(rest) != 1:
                raise UnsupportedType(f"Unhandled Union type - {field_type}")
            nullable = nullable or len(rest) != len(args)
            field_type = rest[0]
        elif origin in _COLLECTION_TYPES:
            if not args:
                raise UnsupportedType(f"Collection type without item type - {field_type}")
            collection = True
            field_type = args[0]
        else:
            return field_type, is_identity, nullable, collection


def describe_field(field: attr.Attribute, field_type: typing.Any) -> FieldSchema:
    concrete_type, is_identity, nullable, collection = _unwrap(field_type)
    metadata = field.metadata
    return FieldSchema(
        name=field.name,
        type=concrete_type,
        id=bool(metadata.get("id", is_identity)),
        generated=bool(_read(metadata, _GENERATED_KEYS, False)),
        nullable=nullable,
        collection=collection,
        entity=entity_name(concrete_type) if is_entity(concrete_type) else None,
        join_name=_read(metadata, _JOIN_NAME_KEYS),
        join_owner=_read(metadata, _OWNER_KEYS),
        reference=metadata.get("reference"),
    )


def describe(entity_cls: typing.Type) -> EntitySchema:
    # type hints are resolved here rather than at class creation, so entities may reference each other
    hints = typing.get_type_hints(entity_cls)
    fields = tuple(describe_field(field, hints.get(field.name, field.type)) for field in attr.fields(entity_cls))
    return EntitySchema(name=entity_name(entity_cls), type=entity_cls, fields=fields)
