import operator
import typing

import attr
from sqlalchemy import Column, Table, false, true
from sqlalchemy import and_ as sa_and
from sqlalchemy import or_ as sa_or
from sqlalchemy.sql.elements import ColumnElement

from entity_orm import codec
from entity_orm.errors import ColumnNotFound
from entity_orm.metadata import ColumnMetadata, TableMetadata


OPERATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


@attr.s(auto_attribs=True, frozen=True)
class Filter:
    operator: str
    key: str
    value: typing.Any


@attr.s(auto_attribs=True, frozen=True)
class FilterMultiple:
    key: str
    values: typing.Tuple[typing.Any, ...]
    operator: str = "in"


@attr.s(auto_attribs=True, frozen=True)
class FilterGroup:
    operator: str
    conditions: typing.Tuple["Condition", ...]


Condition = typing.Union[Filter, FilterMultiple, FilterGroup]


@attr.s(auto_attribs=True, frozen=True)
class Ordering:
    key: str
    descending: bool = False


def eq(key: str, value: typing.Any) -> Filter:
    return Filter("eq", key, value)


def ne(key: str, value: typing.Any) -> Filter:
    return Filter("ne", key, value)


def gt(key: str, value: typing.Any) -> Filter:
    return Filter("gt", key, value)


def gte(key: str, value: typing.Any) -> Filter:
    return Filter("gte", key, value)


def lt(key: str, value: typing.Any) -> Filter:
    return Filter("lt", key, value)


def lte(key: str, value: typing.Any) -> Filter:
    return Filter("lte", key, value)


def in_(key: str, values: typing.Iterable[typing.Any]) -> FilterMultiple:
    return FilterMultiple(key, tuple(values))


def and_(*conditions: Condition) -> FilterGroup:
    return FilterGroup("and", conditions)


def or_(*conditions: Condition) -> FilterGroup:
    return FilterGroup("or", conditions)


def asc(key: str) -> Ordering:
    return Ordering(key)


def desc(key: str) -> Ordering:
    return Ordering(key, descending=True)


def _column(table: TableMetadata, sa_table: Table, key: str) -> typing.Tuple[ColumnMetadata, Column]:
    column = table.base_column(key)
    if column is None:
        raise ColumnNotFound(f'Column "{key}" is not declared on "{table.name}" table')
    return column, sa_table.c[key]


def build_filter(table: TableMetadata, sa_table: Table, condition: Condition) -> ColumnElement:
    if isinstance(condition, FilterGroup):
        clauses = [build_filter(table, sa_table, inner) for inner in condition.conditions]
        if condition.operator == "and":
            return sa_and(*clauses) if clauses else true()
        if condition.operator == "or":
            return sa_or(*clauses) if clauses else false()
        raise ValueError(f"Unknown filter group operator - {condition.operator}")

    column, sa_column = _column(table, sa_table, condition.key)
    if isinstance(condition, FilterMultiple):
        return sa_column.in_([codec.encode(column.field, value) for value in condition.values])

    try:
        compare = OPERATORS[condition.operator]
    except KeyError:
        raise ValueError(f"Unknown filter operator - {condition.operator}")
    return compare(sa_column, codec.encode(column.field, condition.value))


def build_ordering(
    table: TableMetadata, sa_table: Table, orderings: typing.Iterable[Ordering]
) -> typing.List[ColumnElement]:
    clauses = []
    for ordering in orderings:
        _, sa_column = _column(table, sa_table, ordering.key)
        clauses.append(sa_column.desc() if ordering.descending else sa_column.asc())
    return clauses
