"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Clinisync"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Storage ---
    storage_backend: str = "postgres"  # postgres | memory
    database_url: str = "postgresql://localhost:5432/clinisync"
    db_pool_min_size: int = 2
    db_pool_max_size: int = 20
    db_command_timeout: float = 30.0

    # --- Auth (tokens are issued elsewhere, we only verify them) ---
    auth_enabled: bool = True
    jwt_secret: str = ""
    jwt_algorithms: list[str] = ["HS256"]

    # --- Sync ---
    entity_config_path: str | None = None  # defaults to the bundled sync_entities.yaml
    pull_max_concurrency: int = 4
    push_max_concurrency: int = 1  # 1 = tables applied one after another

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
