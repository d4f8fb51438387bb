import enum
import typing
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Integer, Numeric, String

from entity_orm.errors import UnsupportedType
from entity_orm.schema import FieldSchema


mapping = {
    int: Integer,
    str: String(255),
    uuid.UUID: String(36),
    float: Float,
    bool: Boolean,
    Decimal: Numeric,
    datetime: DateTime,
    date: Date,
}

# collections are stored as JSON arrays, items must survive json encoding
json_item_types = (int, str, float, bool, uuid.UUID, enum.Enum)


def _is_enum(arg: typing.Any) -> bool:
    return isinstance(arg, type) and issubclass(arg, enum.Enum)


def convert(field: FieldSchema) -> typing.Any:
    if field.collection:
        if isinstance(field.type, type) and issubclass(field.type, json_item_types):
            return JSON
        raise UnsupportedType(f"Unsupported collection item type - {field.type}")
    if _is_enum(field.type):
        return String(255)
    try:
        return mapping[field.type]
    except KeyError:
        raise UnsupportedType(f"Unsupported type - {field.type}")
