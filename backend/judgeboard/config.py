import json
import os
from functools import lru_cache
from typing import Annotated, Any, List, Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    roster: Annotated[List[str], NoDecode] = Field(default_factory=list, alias="JUDGEBOARD_ROSTER")
    cache_ttl_seconds: float = Field(3600.0, gt=0, alias="JUDGEBOARD_CACHE_TTL_SECONDS")
    max_concurrent_requests: int = Field(5, ge=1, alias="JUDGEBOARD_MAX_CONCURRENT_REQUESTS")
    batch_delay_seconds: float = Field(1.0, ge=0, alias="JUDGEBOARD_BATCH_DELAY_SECONDS")
    fetch_max_retries: int = Field(2, ge=0, alias="JUDGEBOARD_FETCH_MAX_RETRIES")
    fetch_retry_delay_seconds: float = Field(1.0, ge=0, alias="JUDGEBOARD_FETCH_RETRY_DELAY_SECONDS")
    fetch_min_delay_seconds: float = Field(0.1, ge=0, alias="JUDGEBOARD_FETCH_MIN_DELAY_SECONDS")
    fetch_timeout_seconds: float = Field(10.0, gt=0, alias="JUDGEBOARD_FETCH_TIMEOUT_SECONDS")
    quick_fetch_count: int = Field(3, ge=1, alias="JUDGEBOARD_QUICK_FETCH_COUNT")
    upstream_url: str = Field("https://leetcode.com/graphql", alias="JUDGEBOARD_UPSTREAM_URL")
    cache_backend: Literal["memory", "file", "database"] = Field("database", alias="JUDGEBOARD_CACHE_BACKEND")
    cache_file: Optional[str] = Field(None, alias="JUDGEBOARD_CACHE_FILE")
    database_url: Optional[str] = Field(None, alias="JUDGEBOARD_DATABASE_URL")
    database_pool_size: int = Field(10, alias="JUDGEBOARD_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="JUDGEBOARD_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="JUDGEBOARD_DATABASE_ECHO")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
        populate_by_name = True

    @field_validator("roster", mode="before")
    @classmethod
    def _split_roster(cls, value: Any) -> Any:
        """Accept a JSON list or a comma-separated string of usernames."""
        if isinstance(value, str):
            raw = value.strip()
            if raw.startswith("["):
                value = json.loads(raw)
            else:
                value = raw.split(",")
        if isinstance(value, (list, tuple)):
            seen: set[str] = set()
            usernames: List[str] = []
            for item in value:
                name = str(item).strip()
                if name and name not in seen:
                    seen.add(name)
                    usernames.append(name)
            return usernames
        return value


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except (ValidationError, ValueError) as exc:
        raise RuntimeError(f"Invalid judgeboard configuration: {exc}") from exc
