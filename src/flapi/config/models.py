"""Pydantic models for the YAML configuration files.

These models sit at the configuration boundary. The catalog converts them to
frozen dataclasses in :mod:`flapi.catalog.definitions` once validated.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

FieldLocation = Literal["path", "query", "header"]
AuthScheme = Literal["bearer", "basic"]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class RequestFieldConfig(_ConfigModel):
    """One request field accepted by an endpoint."""

    field_name: str = Field(alias="field-name")
    field_in: FieldLocation = Field(default="query", alias="field-in")
    description: str = ""
    required: bool = False
    default: str | None = None

    @field_validator("default", mode="before")
    @classmethod
    def _stringify_default(cls, value: object) -> object:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


class AuthUserConfig(_ConfigModel):
    """Credentials accepted by basic authentication."""

    username: str
    password: str


class AuthConfig(_ConfigModel):
    """Authentication policy for an endpoint."""

    enabled: bool = False
    type: AuthScheme = "bearer"
    users: tuple[AuthUserConfig, ...] = ()
    tokens: tuple[str, ...] = ()


class RateLimitConfig(_ConfigModel):
    """Fixed-window rate limit policy for an endpoint."""

    enabled: bool = False
    max: int = Field(default=100, ge=1)
    interval: int = Field(default=60, ge=1, description="Window length in seconds.")


class EndpointConfig(_ConfigModel):
    """One endpoint as written in YAML."""

    url_path: str = Field(alias="url-path")
    method: str = "GET"
    request: tuple[RequestFieldConfig, ...] = ()
    template_source: str | None = Field(default=None, alias="template-source")
    query: str | None = None
    connection: tuple[str, ...] = ()
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig, alias="rate-limit")
    auth: AuthConfig = Field(default_factory=AuthConfig)
    description: str | None = None

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        method = value.strip().upper() or "GET"
        if method not in {"GET", "DELETE"}:
            message = f"Unsupported endpoint method {value!r}; expected GET or DELETE"
            raise ValueError(message)
        return method

    @field_validator("connection", mode="before")
    @classmethod
    def _coerce_connection(cls, value: object) -> object:
        if isinstance(value, str):
            return (value,)
        return value


class ConnectionConfig(_ConfigModel):
    """A named connection whose ``init`` SQL prepares relations for endpoints."""

    init: str | None = None


class TemplateConfig(_ConfigModel):
    """Location of endpoint YAML files and SQL templates."""

    path: Path = Path("sqls")


class DuckDBConfig(_ConfigModel):
    """DuckDB settings for the query engine."""

    db_path: str = ":memory:"
    settings: dict[str, str] = Field(default_factory=dict)

    @field_validator("settings", mode="before")
    @classmethod
    def _stringify_settings(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value


class FlapiConfig(_ConfigModel):
    """Top-level ``flapi.yaml`` document."""

    project_name: str = "flapi"
    project_description: str = ""
    project_version: str = "1.0.0"
    template: TemplateConfig = Field(default_factory=TemplateConfig)
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)
    duckdb: DuckDBConfig = Field(default_factory=DuckDBConfig)
    endpoints: tuple[EndpointConfig, ...] = ()


__all__ = [
    "AuthConfig",
    "AuthScheme",
    "AuthUserConfig",
    "ConnectionConfig",
    "DuckDBConfig",
    "EndpointConfig",
    "FieldLocation",
    "FlapiConfig",
    "RateLimitConfig",
    "RequestFieldConfig",
    "TemplateConfig",
]
