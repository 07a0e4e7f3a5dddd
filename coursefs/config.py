from pydantic import PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal


class Config(BaseSettings):
    """Application configuration settings loaded from environment variables"""
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # Database settings
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "coursefs"
    postgres_db_test: str = "coursefs_test"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"

    # Storage settings
    resource_backend: Literal["postgres", "memory"] = "postgres"
    storage_path: str = "var/blobs"
    public_base_url: str = "http://localhost:8000/storage"
    upload_concurrency: int = 8

    # Application settings
    log_level: str = "INFO"
    log_file: str | None = None


    @computed_field
    def database_url(self) -> PostgresDsn:
        return PostgresDsn.build(
                scheme="postgresql",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db
            )

    @computed_field
    def sqlalchemy_url(self) -> str:
        # psycopg 3 driver, usable by async engines without asyncpg
        return str(self.database_url).replace("postgresql://", "postgresql+psycopg://", 1)

@lru_cache()
def get_config() -> Config:
    """Get cached application config"""
    return Config()
