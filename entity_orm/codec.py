import enum
import typing
import uuid
from decimal import Decimal
from functools import singledispatch

from entity_orm.schema import FieldSchema


@singledispatch
def to_storage(argument: typing.Any) -> typing.Any:
    return argument


@to_storage.register(uuid.UUID)
def _(argument: uuid.UUID) -> str:
    return str(argument)


@to_storage.register(enum.Enum)
def _(argument: enum.Enum) -> typing.Any:
    return argument.value


mapping = {uuid.UUID: uuid.UUID, Decimal: Decimal}


def from_storage(argument: typing.Any, field_type: typing.Any) -> typing.Any:
    if argument is None or not isinstance(field_type, type) or isinstance(argument, field_type):
        return argument
    if issubclass(field_type, enum.Enum):
        return field_type(argument)
    try:
        return mapping[field_type](argument)
    except KeyError:
        return argument


def encode(field: FieldSchema, value: typing.Any) -> typing.Any:
    if value is None:
        return None
    if field.collection:
        return [to_storage(item) for item in value]
    return to_storage(value)


def decode(field: FieldSchema, value: typing.Any) -> typing.Any:
    if value is None:
        return None
    if field.collection:
        return [from_storage(item, field.type) for item in value]
    return from_storage(value, field.type)
