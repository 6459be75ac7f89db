"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Relay routing configuration. All values come from environment variables."""

    # Persistence backend: "memory" or "sqlite"
    routing_backend: str = Field(default="memory")

    # Database (sqlite backend only)
    database_path: Path = Field(default=Path("data/routing.db"))

    # Connection requests
    reject_requests_without_aggregation: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_routing_backend(self) -> str:
        """Normalise ROUTING_BACKEND to a lowercase backend name."""
        return self.routing_backend.strip().lower() or "memory"


settings = Settings()
