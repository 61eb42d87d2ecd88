# forgeflow/config.py
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import EnvVar, RuntimeSettings


class Settings(BaseSettings):
    """Service settings, loaded from FORGEFLOW_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="FORGEFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Log level")
    max_steps: int = Field(default=10000, description="Longest node path one walk may follow")
    default_concurrency: int = Field(default=5, description="Parallel foreach chunk size")
    default_max_iterations: int = Field(default=100, description="While loop cap")
    approval_timeout_s: Optional[float] = Field(
        default=None,
        description="Seconds to wait for a manual approval; unset waits forever",
    )
    http_timeout_s: float = Field(default=30.0, description="Timeout for handler HTTP calls")
    debug_mode: bool = False

    # JSON list, e.g. '[{"key": "API_URL", "value": "https://example.com"}]'
    environment_variables: List[EnvVar] = Field(default_factory=list)

    def runtime_settings(self) -> RuntimeSettings:
        return RuntimeSettings(
            environment_variables=self.environment_variables,
            debug_mode=self.debug_mode,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def setup_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # reduce noise from the http client
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
