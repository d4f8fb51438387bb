import typing
import uuid

import attr
import pytest

from entity_orm.entity import Entity, Identity, generated, relation
from entity_orm.errors import UnsupportedType
from entity_orm.schema import EntitySchema, FieldSchema, describe


class Tag(Entity, table="tags"):
    id: Identity[int] = generated()
    label: str


class Note(Entity, table="notes"):
    id: Identity[uuid.UUID]
    title: str
    body: typing.Optional[str] = None
    scores: typing.List[int] = attr.Factory(list)
    history: typing.Optional[typing.List[str]] = None
    tag: typing.Optional[Tag] = relation(owner="source", name="tag_ref", reference="strong", default=None)
    tags: typing.List["Tag"] = relation(default=attr.Factory(list))


@pytest.mark.parametrize(
    "name, expected",
    [
        ("id", FieldSchema(name="id", type=uuid.UUID, id=True)),
        ("title", FieldSchema(name="title", type=str)),
        ("body", FieldSchema(name="body", type=str, nullable=True)),
        ("scores", FieldSchema(name="scores", type=int, collection=True)),
        ("history", FieldSchema(name="history", type=str, nullable=True, collection=True)),
        (
            "tag",
            FieldSchema(
                name="tag",
                type=Tag,
                nullable=True,
                entity="tags",
                join_name="tag_ref",
                join_owner="source",
                reference="strong",
            ),
        ),
        ("tags", FieldSchema(name="tags", type=Tag, collection=True, entity="tags")),
    ],
)
def test_describe_unwraps_field_types(name: str, expected: FieldSchema):
    assert describe(Note).field(name) == expected


def test_describe_keeps_field_order_and_name():
    schema = describe(Note)

    assert schema.name == "notes"
    assert schema.type is Note
    assert [field.name for field in schema.fields] == ["id", "title", "body", "scores", "history", "tag", "tags"]


def test_describe_marks_generated_fields():
    assert describe(Tag).field("id") == FieldSchema(name="id", type=int, id=True, generated=True)


@pytest.mark.parametrize(
    "metadata, attribute, expected",
    [
        ({"generate": True}, "generated", True),
        ({"gen": True}, "generated", True),
        ({"generated": True}, "generated", True),
        ({"owner": "foreign"}, "join_owner", "foreign"),
        ({"joinOwner": "foreign"}, "join_owner", "foreign"),
        ({"join_owner": "foreign"}, "join_owner", "foreign"),
        ({"join": "parent_id"}, "join_name", "parent_id"),
        ({"joinName": "parent_id"}, "join_name", "parent_id"),
        ({"join_name": "parent_id"}, "join_name", "parent_id"),
        ({"id": True}, "id", True),
    ],
)
def test_describe_reads_metadata_aliases(metadata: dict, attribute: str, expected: typing.Any):
    class Aliased(Entity, table="aliased"):
        value: int = attr.ib(metadata=metadata)

    assert getattr(describe(Aliased).field("value"), attribute) == expected


def test_describe_rejects_unions_of_many_types():
    class Ambiguous(Entity, table="ambiguous"):
        value: typing.Union[int, str]

    with pytest.raises(UnsupportedType):
        describe(Ambiguous)


def test_describe_rejects_collections_without_item_type():
    class Untyped(Entity, table="untyped"):
        values: typing.List

    with pytest.raises(UnsupportedType):
        describe(Untyped)


def test_describe_accepts_pipe_unions():
    class Piped(Entity, table="piped"):
        value: int | None = None

    assert describe(Piped).field("value") == FieldSchema(name="value", type=int, nullable=True)


def test_schema_pick_and_named_return_new_schemas():
    schema = describe(Note)

    picked = schema.pick("id", "title")
    renamed = schema.named("archived_notes")

    assert [field.name for field in picked.fields] == ["id", "title"]
    assert renamed.name == "archived_notes"
    assert renamed.fields == schema.fields
    assert schema.name == "notes"
    assert schema.field("missing") is None


def test_relation_fields_are_detected():
    schema = describe(Note)

    assert [field.name for field in schema.fields if field.is_relation] == ["tag", "tags"]
    assert isinstance(schema, EntitySchema)
