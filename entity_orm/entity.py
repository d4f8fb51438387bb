import abc
import typing

import attr
import inflection


SOURCE = "source"
FOREIGN = "foreign"
STRONG = "strong"
WEAK = "weak"

T = typing.TypeVar("T")


class Identity(typing.Generic[T]):
    @classmethod
    def is_identity(cls, field_type: typing.Any) -> bool:
        return typing.get_origin(field_type) is cls


class EntityMeta(abc.ABCMeta):
    def __new__(
        mcs,
        name: str,
        bases: tuple,
        namespace: dict,
        entity: typing.Union[str, bool, None] = None,
        table: typing.Union[str, bool, None] = None,
    ):
        cls = super().__new__(mcs, name, bases, namespace)
        if name == "Entity" and not bases:
            return cls

        declared = entity if entity is not None else table
        if declared is True:
            cls.__entity__ = inflection.pluralize(inflection.underscore(name))
        elif declared:
            cls.__entity__ = declared

        return attr.s(auto_attribs=True, kw_only=True)(cls)

    def __init__(cls, name: str, bases: tuple, namespace: dict, **kwargs: typing.Any) -> None:
        super().__init__(name, bases, namespace)


class Entity(metaclass=EntityMeta):
    pass


def entity_name(entity_cls: typing.Type) -> typing.Optional[str]:
    # only the class itself may carry a name, subclasses of a named entity do not inherit it
    return entity_cls.__dict__.get("__entity__")


def is_entity(field_type: typing.Any) -> bool:
    return isinstance(field_type, type) and issubclass(field_type, Entity)


def generated(default: typing.Any = None) -> typing.Any:
    return attr.ib(default=default, metadata={"generated": True})


def relation(
    owner: typing.Optional[str] = None,
    name: typing.Optional[str] = None,
    reference: typing.Optional[str] = None,
    default: typing.Any = attr.NOTHING,
) -> typing.Any:
    metadata = {}
    if owner is not None:
        metadata["join_owner"] = owner
    if name is not None:
        metadata["join_name"] = name
    if reference is not None:
        metadata["reference"] = reference
    return attr.ib(default=default, metadata=metadata)


def as_mapping(value: typing.Any) -> typing.Mapping[str, typing.Any]:
    if isinstance(value, typing.Mapping):
        return value
    if attr.has(type(value)):
        return {field.name: getattr(value, field.name) for field in attr.fields(type(value))}
    raise TypeError(f"Cannot read fields of {value!r}")
