import typing

import attr
import pytest

from entity_orm.entity import FOREIGN, SOURCE, STRONG, WEAK, Entity, Identity, generated, relation
from entity_orm.errors import ConfigurationError, MissingEntityName, TableWithoutIdentity
from entity_orm.metadata import MetadataRegistry, RelationColumnMetadata
from entity_orm.schema import describe


class Profile(Entity, table="profiles"):
    id: Identity[int] = generated()
    bio: str


class User(Entity, table="users"):
    id: Identity[int] = generated()
    name: str
    profile: typing.Optional[Profile] = relation(default=None)


class Passport(Entity, table="passports"):
    id: Identity[int] = generated()
    number: str


class Citizen(Entity, table="citizens"):
    id: Identity[int] = generated()
    passport: typing.Optional[Passport] = relation(owner=FOREIGN, reference=STRONG, default=None)


class Author(Entity, table=True):
    id: Identity[int] = generated()
    name: str
    books: typing.Optional[typing.List["Book"]] = relation(owner=SOURCE, default=attr.Factory(list))


class Book(Entity, table=True):
    id: Identity[int] = generated()
    title: str
    author: typing.Optional[Author] = relation(default=None)


class Folder(Entity, table="folders"):
    id: Identity[int] = generated()
    parent: typing.Optional["Folder"] = relation(name="parent_folder_id", default=None)


class Anonymous(Entity):
    id: Identity[int]


class Identless(Entity, table="identless"):
    name: str


class Orphan(Entity, table="orphans"):
    id: Identity[int]
    owner: typing.Optional[Identless] = relation(default=None)


class Misowned(Entity, table="misowned"):
    id: Identity[int]
    profile: typing.Optional[Profile] = relation(owner="sideways", default=None)


def column_names(columns: typing.Iterable) -> typing.List[str]:
    return [column.name for column in columns]


@pytest.fixture()
def registry() -> MetadataRegistry:
    return MetadataRegistry()


def test_table_splits_base_and_relation_columns(registry: MetadataRegistry):
    table = registry.get(User)

    assert table.name == "users"
    assert table.entity is User
    assert column_names(table.base_columns) == ["id", "name", "profiles_id"]
    assert column_names(table.relation_columns) == ["profile"]
    assert column_names(table.columns) == ["id", "name", "profiles_id", "profile"]
    assert table.id is table.column("id")


def test_source_owned_relation_synthesizes_join_column_on_own_table(registry: MetadataRegistry):
    users = registry.get(User)
    profiles = registry.get(Profile)
    profile = users.column("profile")

    assert isinstance(profile, RelationColumnMetadata)
    assert profile.owner == SOURCE
    assert profile.type == WEAK
    assert profile.source_column is users.column("profiles_id")
    assert profile.foreign_column is profiles.id
    assert profile.foreign_table is profiles
    assert not users.column("profiles_id").declared
    assert users.column("profiles_id").nullable
    assert users.column("profiles_id").field.type is int
    assert column_names(profiles.base_columns) == ["id", "bio"]


def test_foreign_owned_relation_synthesizes_join_column_on_foreign_table(registry: MetadataRegistry):
    citizens = registry.get(Citizen)
    passports = registry.get(Passport)
    passport = citizens.column("passport")

    assert passport.owner == FOREIGN
    assert passport.type == STRONG
    assert passport.source_column is citizens.id
    assert passport.foreign_column is passports.column("citizens_id")
    assert column_names(citizens.base_columns) == ["id"]
    assert column_names(passports.base_columns) == ["id", "number", "citizens_id"]


def test_collection_relation_is_always_foreign_owned(registry: MetadataRegistry):
    authors = registry.get(Author)
    books_table = registry.get(Book)

    books = authors.column("books")
    author = books_table.column("author")

    assert authors.name == "authors"
    assert books_table.name == "books"
    assert books.owner == FOREIGN
    assert author.owner == SOURCE
    # both sides of the relation share a single join column
    assert books.foreign_column is author.source_column
    assert column_names(books_table.base_columns) == ["id", "title", "authors_id"]


def test_self_relation_uses_declared_join_name(registry: MetadataRegistry):
    folders = registry.get(Folder)
    parent = folders.column("parent")

    assert parent.foreign_table is folders
    assert parent.source_column is folders.column("parent_folder_id")
    assert column_names(folders.base_columns) == ["id", "parent_folder_id"]


def test_registry_returns_cached_tables(registry: MetadataRegistry):
    first = registry.get(User)

    assert registry.get(User) is first
    assert registry.get(describe(User)) is first
    assert {table.name for table in registry.tables()} == {"users", "profiles"}


def test_registry_accepts_renamed_schemas(registry: MetadataRegistry):
    table = registry.get(describe(Profile).named("archived_profiles"))

    assert table.name == "archived_profiles"
    assert table.entity is Profile
    assert registry.get(Profile) is not table


def test_table_projects_schemas(registry: MetadataRegistry):
    table = registry.get(User)

    assert table.base_schema.name == "users"
    assert [field.name for field in table.base_schema.fields] == ["id", "name", "profiles_id"]
    assert [field.name for field in table.relation_schema.fields] == ["profile"]
    assert len(table.schema.fields) == 4


def test_entity_without_name_is_rejected(registry: MetadataRegistry):
    with pytest.raises(MissingEntityName):
        registry.get(Anonymous)


def test_table_without_identity(registry: MetadataRegistry):
    table = registry.get(Identless)

    with pytest.raises(TableWithoutIdentity):
        table.id


def test_relation_to_table_without_identity_is_rejected(registry: MetadataRegistry):
    with pytest.raises(TableWithoutIdentity):
        registry.get(Orphan)


def test_unknown_join_owner_is_rejected(registry: MetadataRegistry):
    with pytest.raises(ConfigurationError):
        registry.get(Misowned)


@pytest.mark.parametrize("entity, error", [(Orphan, TableWithoutIdentity), (Misowned, ConfigurationError)])
def test_failed_derivation_is_not_cached(registry: MetadataRegistry, entity: type, error: type):
    with pytest.raises(error):
        registry.get(entity)

    with pytest.raises(error):
        registry.get(entity)

    assert [table.name for table in registry.tables()] == []
