import asyncio
import contextlib
import logging
import typing

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Executable


logger = logging.getLogger(__name__)

Row = typing.Dict[str, typing.Any]


class Executor:
    """Runs statements on one connection.

    Fan-out queries are awaited concurrently, a single DBAPI connection however
    accepts one statement at a time, the lock keeps them in line.
    """

    def __init__(self, connection: AsyncConnection) -> None:
        self._connection = connection
        self._lock = asyncio.Lock()

    async def fetch(self, statement: Executable) -> typing.List[Row]:
        async with self._lock:
            logger.debug("Executing %s", statement)
            result = await self._connection.execute(statement)
            return [dict(row) for row in result.mappings().all()]


Connector = typing.Callable[[], typing.AsyncContextManager[Executor]]


def engine_connector(engine: AsyncEngine) -> Connector:
    """Every unit of work gets its own connection inside its own transaction."""

    @contextlib.asynccontextmanager
    async def connect() -> typing.AsyncIterator[Executor]:
        async with engine.begin() as connection:
            yield Executor(connection)

    return connect


def shared_connector(executor: Executor) -> Connector:
    @contextlib.asynccontextmanager
    async def connect() -> typing.AsyncIterator[Executor]:
        yield executor

    return connect
