import typing

import pytest_asyncio

from entity_orm.storages.sqlalchemy import DataSource


@pytest_asyncio.fixture()
async def source(database_url: str) -> typing.AsyncIterator[DataSource]:
    data_source = DataSource(url=database_url)
    yield data_source
    await data_source.close()
