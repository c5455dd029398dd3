"""Configuration management for renostock."""

from __future__ import annotations

from datetime import datetime, timedelta
from functools import lru_cache
from typing import ClassVar

import structlog
from databricks.sdk import WorkspaceClient
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class CredentialCache:
    """Caches short-lived database credentials minted through Databricks."""

    _instance: ClassVar["CredentialCache | None"] = None
    _token: str | None = None
    _expires_at: datetime | None = None
    _endpoint: str | None = None

    def __new__(cls) -> "CredentialCache":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def get_token(
        self,
        endpoint: str,
        workspace_host: str | None = None,
        force_refresh: bool = False,
    ) -> str | None:
        """Return a database credential for the hosted Postgres endpoint.

        Args:
            endpoint: Hosted Postgres endpoint resource name
            workspace_host: The Databricks workspace host
            force_refresh: Mint a new credential even if the cached one is valid

        Returns:
            Credential string, or None if one could not be minted
        """
        if not endpoint:
            return None

        # 5 minute buffer before expiry
        if (
            not force_refresh
            and self._token
            and self._endpoint == endpoint
            and self._expires_at
            and datetime.now() < self._expires_at - timedelta(minutes=5)
        ):
            return self._token

        try:
            logger.info("generating_db_credential", endpoint=endpoint, workspace=workspace_host)
            w = WorkspaceClient(host=workspace_host) if workspace_host else WorkspaceClient()
            cred = w.postgres.generate_database_credential(endpoint=endpoint)
        except Exception as e:
            logger.error("db_credential_generation_failed", endpoint=endpoint, error=str(e))
            return None

        self._token = cred.token
        self._endpoint = endpoint
        # Credentials live for an hour
        self._expires_at = datetime.now() + timedelta(minutes=55)
        logger.info("db_credential_generated", endpoint=endpoint, expires_at=self._expires_at.isoformat())
        return self._token


_credentials = CredentialCache()


class DatabricksSettings(BaseSettings):
    """Databricks workspace settings, used only to mint DB credentials."""

    model_config = SettingsConfigDict(
        env_prefix="DATABRICKS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = ""


class DatabaseSettings(BaseSettings):
    """Hosted Postgres connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str = ""
    sslmode: str = "prefer"
    # e.g. projects/renostock/branches/main/endpoints/default
    databricks_endpoint: str = ""

    def get_password(self) -> str:
        """Static password if set, otherwise a minted OAuth credential."""
        if self.password or not self.databricks_endpoint:
            return self.password

        token = _credentials.get_token(
            endpoint=self.databricks_endpoint,
            workspace_host=DatabricksSettings().host or None,
        )
        return token or ""

    def connect_kwargs(self) -> dict:
        """Keyword arguments for ``psycopg.connect``."""
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
            "password": self.get_password(),
            "sslmode": self.sslmode,
        }


class SiteSettings(BaseSettings):
    """Settings describing the renovation site."""

    model_config = SettingsConfigDict(
        env_prefix="SITE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = "Table Bay Hotel"
    transfer_history_limit: int = 50


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return DatabaseSettings()

    @property
    def databricks(self) -> DatabricksSettings:
        """Get Databricks settings."""
        return DatabricksSettings()

    @property
    def site(self) -> SiteSettings:
        """Get site settings."""
        return SiteSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
