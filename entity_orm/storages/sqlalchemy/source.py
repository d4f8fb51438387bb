import contextlib
import logging
import typing

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction, create_async_engine

from entity_orm.config import DataSourceSettings
from entity_orm.entry import EntryRegistry
from entity_orm.storages.sqlalchemy.executor import Executor, engine_connector, shared_connector
from entity_orm.storages.sqlalchemy.query import Query, QueryCollection
from entity_orm.storages.sqlalchemy.registry import SaMetadataRegistry


logger = logging.getLogger(__name__)


class Transaction(Query):
    """Queries sharing one connection, one database transaction and one identity map."""

    def __init__(self, connection: AsyncConnection, transaction: AsyncTransaction, metadata: SaMetadataRegistry) -> None:
        super().__init__(shared_connector(Executor(connection)), metadata, EntryRegistry())
        self._transaction = transaction
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    async def commit(self) -> None:
        self._finished = True
        await self._transaction.commit()
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        self._finished = True
        await self._transaction.rollback()
        logger.debug("Transaction rolled back")


class DataSource:
    def __init__(
        self,
        settings: typing.Optional[DataSourceSettings] = None,
        *,
        url: typing.Optional[str] = None,
        metadata: typing.Optional[SaMetadataRegistry] = None,
    ) -> None:
        if settings is None:
            settings = DataSourceSettings() if url is None else DataSourceSettings(database_url=url)
        self.settings = settings
        self.metadata = metadata if metadata is not None else SaMetadataRegistry()
        self._engine = create_async_engine(settings.database_url, echo=settings.echo)
        logger.info("Created engine for %s", self._engine.url.render_as_string(hide_password=True))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    def query(self) -> Query:
        return Query(engine_connector(self._engine), self.metadata, EntryRegistry())

    def from_(self, entity: type) -> QueryCollection:
        return self.query().from_(entity)

    @contextlib.asynccontextmanager
    async def transaction(self) -> typing.AsyncIterator[Transaction]:
        async with self._engine.connect() as connection:
            transaction = Transaction(connection, await connection.begin(), self.metadata)
            try:
                yield transaction
            except BaseException:
                if not transaction.finished:
                    await transaction.rollback()
                raise
            if not transaction.finished:
                await transaction.commit()

    async def create_tables(self, *entities: type) -> None:
        tables = self.metadata.tables_for(*entities)
        async with self._engine.begin() as connection:
            await connection.run_sync(self.metadata.sa_metadata.create_all, tables=tables)
        logger.info("Created tables %s", ", ".join(table.name for table in tables))

    async def drop_tables(self, *entities: type) -> None:
        tables = self.metadata.tables_for(*entities)
        async with self._engine.begin() as connection:
            await connection.run_sync(self.metadata.sa_metadata.drop_all, tables=tables)
        logger.info("Dropped tables %s", ", ".join(table.name for table in tables))

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Disposed engine")
