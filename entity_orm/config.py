from pydantic_settings import BaseSettings, SettingsConfigDict


class DataSourceSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ENTITY_ORM_", env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///:memory:"
    echo: bool = False
