import typing

import pytest
import pytest_asyncio

from entity_orm.entity import Entity, Identity, generated
from entity_orm.storages.sqlalchemy import DataSource
from entity_orm.storages.sqlalchemy.filters import eq


class Account(Entity, table="accounts"):
    id: Identity[int] = generated()
    owner: str
    balance: int = 0


@pytest_asyncio.fixture()
async def data_source(source: DataSource) -> typing.AsyncIterator[DataSource]:
    await source.drop_tables(Account)
    await source.create_tables(Account)
    yield source
    await source.drop_tables(Account)


@pytest.mark.asyncio
async def test_transaction_commits_on_exit(data_source: DataSource):
    async with data_source.transaction() as transaction:
        await transaction.from_(Account).insert({"owner": "ann", "balance": 10}).run()
        await transaction.from_(Account).save({"id": 1, "balance": 15}).run()

    assert transaction.finished
    assert await data_source.from_(Account).find().run() == [Account(id=1, owner="ann", balance=15)]


@pytest.mark.asyncio
async def test_transaction_sees_its_own_writes(data_source: DataSource):
    async with data_source.transaction() as transaction:
        await transaction.from_(Account).insert(Account(owner="ann")).run()

        found = await transaction.from_(Account).find(eq("owner", "ann")).run()

    assert found == [Account(id=1, owner="ann", balance=0)]


@pytest.mark.asyncio
async def test_explicit_commit(data_source: DataSource):
    async with data_source.transaction() as transaction:
        await transaction.from_(Account).insert(Account(owner="ann")).run()
        await transaction.commit()

    assert len(await data_source.from_(Account).find().run()) == 1


@pytest.mark.asyncio
async def test_explicit_rollback(data_source: DataSource):
    async with data_source.transaction() as transaction:
        await transaction.from_(Account).insert(Account(owner="ann")).run()
        await transaction.rollback()

    assert await data_source.from_(Account).find().run() == []


@pytest.mark.asyncio
async def test_exception_rolls_back(data_source: DataSource):
    with pytest.raises(RuntimeError):
        async with data_source.transaction() as transaction:
            await transaction.from_(Account).insert(Account(owner="ann")).run()
            raise RuntimeError("abort")

    assert await data_source.from_(Account).find().run() == []
