from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional, List

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class MongoSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MONGO_", env_file=".env", extra="ignore")

    uri: Optional[SecretStr] = None  # no URI -> the API serves from the snapshot only
    database: str = "media_catalog"
    collection: str = "records"
    pool_size: int = 10
    min_pool_size: int = 2
    server_selection_timeout_ms: int = 5000
    connect_timeout_ms: int = 5000


class CircuitBreakerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CIRCUIT_", env_file=".env", extra="ignore")

    enabled: bool = True
    timeout: float = 10.0  # seconds per call
    error_threshold_percentage: float = 50.0
    reset_timeout: float = 30.0  # seconds spent OPEN before probing
    window_size: int = 10  # calls kept in the rolling window
    half_open_max_calls: int = 1


class Settings(BaseSettings):

    # ---- Data roots ----
    project_root: Path = Path(".").resolve()
    data_root: Path = Path("data")
    snapshot_path: Path = data_root / "records-public.json"

    # ---- app/runtime ----
    env: Literal["dev", "test", "staging", "prod"] = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Unset means strict everywhere except prod
    strict_query_engine: Optional[bool] = None
    fallback_on_open_circuit: bool = True

    # ---- reproducibility (None = unseeded sampling) ----
    random_seed: Optional[int] = None

    # ---- API server configuration ----
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_reload: bool = True
    api_workers: int = 1
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",      # APP_ENV, APP_LOG_LEVEL, etc.
        env_nested_delimiter='__',
        extra="ignore"
    )

    # ---- integrations ----
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)

    @property
    def strict_queries(self) -> bool:
        if self.strict_query_engine is not None:
            return self.strict_query_engine
        return self.env != "prod"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton accessor to avoid reparsing .env on every import."""
    return Settings()
