"""Runtime settings, read once from the environment (and ``.env``) at import."""

import json
import os
import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]

_TRUTHY = {"1", "true", "yes", "y", "on"}
_PRODUCTION = {"prod", "production"}
_WEAK_SECRETS = {"change-me", "changeme", "secret"}
_LOCAL_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

# Driver prefixes rewritten to the psycopg 3 dialect.
_PG_ALIASES = ("postgres://", "postgresql://", "postgresql+psycopg2://")


def _env_name(info: ValidationInfo) -> str:
    return str(info.data.get("environment") or "dev").strip().lower()


def _clean_origin(raw) -> str:
    origin = str(raw).strip().strip("\"'")
    return origin.rstrip("/")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field(default="CX Desk API", validation_alias="PROJECT_NAME")
    environment: str = "dev"
    build_version: Optional[str] = None

    database_url: str = "sqlite+pysqlite:///./dev-local.db"
    db_connect_timeout_seconds: int = 10
    db_statement_timeout_ms: int = 5000
    db_use_null_pool: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout_seconds: int = 30
    db_pool_recycle_seconds: int = 1800
    run_migrations_on_start: bool = False

    # Router prefix, e.g. "/api".
    api_prefix: str = Field(default="", validation_alias="API_V1_STR")
    enable_docs: bool = Field(default=None, validate_default=True)
    cors_origins: Annotated[List[str], NoDecode] = Field(default=None, validate_default=True)

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    slow_request_ms: int = 2000
    # Most recent sessions of an organization that must be CLOSED before a new one.
    session_history_window: int = Field(default=5, ge=1)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in _PRODUCTION

    @property
    def is_test(self) -> bool:
        return self.environment.strip().lower() == "test"

    @field_validator("enable_docs", mode="before")
    @classmethod
    def default_enable_docs(cls, value, info: ValidationInfo):
        if value is None or value == "":
            return _env_name(info) in {"dev", "development", "test"}
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return bool(value)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value, info: ValidationInfo):
        """Accept a JSON list, a single origin or a comma separated string."""

        if value in (None, ""):
            if _env_name(info) in _PRODUCTION:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
            return list(_LOCAL_ORIGINS)
        if not isinstance(value, str):
            return [_clean_origin(v) for v in value]

        text = value.strip().strip("\"'").strip()
        if text.startswith("["):
            try:
                items = json.loads(text.replace("'", '"'))
            except json.JSONDecodeError:
                items = text.strip("[]").split(",")
        else:
            items = text.split(",")
        return [_clean_origin(v) for v in items if str(v).strip()]

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, value) -> str:
        # MSYS shells expand "/api" into "C:/Program Files/Git/api".
        text = str(value or "").strip().replace("\\", "/")
        if not text:
            return ""
        found = re.search(r"(/api(?:/\S*)?)$", text)
        if found:
            return found.group(1).rstrip("/") or "/api"
        return text if text.startswith("/") else f"/{text}"

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, value) -> str:
        url = str(value or "").strip()
        for alias in _PG_ALIASES:
            if url.startswith(alias):
                return "postgresql+psycopg://" + url[len(alias):]

        # Relative sqlite paths resolve against the project, not the cwd.
        head, sep, path = url.partition(":///")
        if head.startswith("sqlite") and sep and path.startswith(("./", ".\\")):
            return f"{head}{sep}{(PROJECT_ROOT / path[2:]).resolve().as_posix()}"
        return url

    @model_validator(mode="after")
    def check_secrets_and_production(self) -> "Settings":
        if not self.secret_key or self.secret_key.lower() in _WEAK_SECRETS:
            raise ValueError("SECRET_KEY must be set to a strong value")
        if self.is_production:
            if not os.getenv("DATABASE_URL"):
                raise ValueError("DATABASE_URL must be explicitly set in production")
            if self.database_url.startswith("sqlite"):
                raise ValueError("SQLite DATABASE_URL is not allowed in production")
            if "localhost" in self.database_url or "127.0.0.1" in self.database_url:
                raise ValueError("DATABASE_URL must not point to localhost in production")
        return self


settings = Settings()
