import pytest

from entity_orm.config import DataSourceSettings
from entity_orm.storages.sqlalchemy import DataSource


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ENTITY_ORM_DATABASE_URL", raising=False)
    monkeypatch.delenv("ENTITY_ORM_ECHO", raising=False)


def test_defaults_to_in_memory_sqlite():
    settings = DataSourceSettings()

    assert settings.database_url == "sqlite+aiosqlite:///:memory:"
    assert settings.echo is False


def test_reads_prefixed_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENTITY_ORM_DATABASE_URL", "sqlite+aiosqlite:///orm.db")
    monkeypatch.setenv("ENTITY_ORM_ECHO", "true")

    settings = DataSourceSettings()

    assert settings.database_url == "sqlite+aiosqlite:///orm.db"
    assert settings.echo is True


def test_reads_env_file(tmp_path):
    (tmp_path / ".env").write_text("ENTITY_ORM_DATABASE_URL=sqlite+aiosqlite:///from_file.db\nUNRELATED=1\n")

    assert DataSourceSettings().database_url == "sqlite+aiosqlite:///from_file.db"


@pytest.mark.asyncio
async def test_data_source_prefers_explicit_url(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("ENTITY_ORM_DATABASE_URL", "sqlite+aiosqlite:///ignored.db")
    url = f"sqlite+aiosqlite:///{tmp_path / 'explicit.db'}"

    source = DataSource(url=url)

    assert source.settings.database_url == url
    assert source.engine.url.database == str(tmp_path / "explicit.db")
    await source.close()
