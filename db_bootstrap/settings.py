from __future__ import annotations

import sqlalchemy as sa
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_database_url(url: str) -> str:
    # The bootstrap uses a sync driver. Normalize common runtime URLs to psycopg3.
    url = url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
    url = url.replace("postgresql+psycopg2://", "postgresql+psycopg://")
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


class BootstrapSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="forbid")

    # Either a full URL, or the postgres_* parts the container environment provides.
    database_url: str | None = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: SecretStr | None = None

    log_level: str = "info"

    app_role_name: str = "app"
    app_role_password: SecretStr | None = None
    app_role_createdb: bool = True

    default_user_name: str = "default_user"
    default_picture_path: str = "/docker-entrypoint-initdb.d/default-profile.jpg"

    connect_attempts: int = 30
    connect_interval_s: float = 2.0

    def resolved_database_url(self) -> str:
        if self.database_url:
            return normalize_database_url(self.database_url)
        url = sa.engine.URL.create(
            "postgresql+psycopg",
            username=self.postgres_user,
            password=self.postgres_password.get_secret_value() if self.postgres_password else None,
            host=self.postgres_host,
            port=self.postgres_port,
            database=self.postgres_db,
        )
        return url.render_as_string(hide_password=False)
