"""Settings read from RESTSPEC_* environment variables (and an optional .env)."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RESTSPEC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(
        default=Environment.PRODUCTION,
        description="development regenerates metadata on every load",
    )
    log_level: str = Field(default="INFO")

    # Metadata
    metadata_sources: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Controller modules or .py files, comma separated in the environment",
    )
    metadata_path: Path = Field(default=Path(".restspec/metadata.db"))
    disable_metadata_generation: bool = False

    # OpenAPI
    schema_enable: bool = True
    schema_path: str = "/openapi.json"
    openapi_title: str = "REST API"
    openapi_version: str = "1.0.0"

    # Validation
    validate_requests: bool = True
    validate_responses: bool = True
    return_response_errors: bool = False
    response_error_status_code: int = 500

    @field_validator("metadata_sources", mode="before")
    @classmethod
    def split_sources(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @property
    def is_live(self) -> bool:
        return self.environment == Environment.DEVELOPMENT


@lru_cache
def get_settings() -> Settings:
    return Settings()
