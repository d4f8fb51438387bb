import pathlib

import pytest
from _pytest.config.argparsing import Parser
from _pytest.fixtures import SubRequest


def pytest_addoption(parser: Parser) -> None:
    parser.addoption("--sqlalchemy-url", action="store", default=None)


@pytest.fixture()
def database_url(request: SubRequest, tmp_path: pathlib.Path) -> str:
    connection_url = request.config.getoption("--sqlalchemy-url")
    return connection_url or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
