"""Runtime settings for the HTTP surface and CLI."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


DEFAULT_DESCRIBE_TIMEOUT_SECONDS = 10.0


def _float_or_default(value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    return float(value)


class ServingConfig(BaseModel):
    """
    Runtime settings for serving the configured endpoints.

    Values normally come from environment variables; the CLI overrides them
    with its arguments.
    """

    config_path: Path = Field(
        default=Path("flapi.yaml"),
        description="Path to the flapi.yaml project file.",
    )
    host: str = Field(default="127.0.0.1", description="Interface to bind.")
    port: int = Field(default=8080, description="Port to listen on.")
    base_url: str | None = Field(
        default=None,
        description="Server URL advertised in the API document; derived from host/port if unset.",
    )
    default_limit: int = Field(default=100, description="Default page size for endpoint queries.")
    max_rows_per_call: int = Field(default=1000, description="Hard cap on rows in one response.")
    describe_timeout_seconds: float = Field(
        default=DEFAULT_DESCRIBE_TIMEOUT_SECONDS,
        description="Time budget for describing all endpoint queries while building docs.",
    )

    @classmethod
    def from_env(cls) -> ServingConfig:
        """
        Construct a ServingConfig from environment variables.

        Returns
        -------
        ServingConfig
            Validated configuration populated from environment values.
        """
        config_path = Path(os.environ.get("FLAPI_CONFIG", "flapi.yaml")).expanduser()
        return cls(
            config_path=config_path,
            host=os.environ.get("FLAPI_HOST", "127.0.0.1"),
            port=int(os.environ.get("FLAPI_PORT", "8080")),
            base_url=os.environ.get("FLAPI_BASE_URL") or None,
            default_limit=int(os.environ.get("FLAPI_DEFAULT_LIMIT", "100")),
            max_rows_per_call=int(os.environ.get("FLAPI_MAX_ROWS", "1000")),
            describe_timeout_seconds=_float_or_default(
                os.environ.get("FLAPI_DESCRIBE_TIMEOUT_SEC"), DEFAULT_DESCRIBE_TIMEOUT_SECONDS
            ),
        )

    @property
    def server_url(self) -> str:
        """Return the URL advertised in the API document."""
        return self.base_url or f"http://{self.host}:{self.port}"

    @model_validator(mode="after")
    def _validate_limits(self) -> ServingConfig:
        """
        Validate numeric settings.

        Returns
        -------
        ServingConfig
            The validated configuration.

        Raises
        ------
        ValueError
            When limits are out of range.
        """
        if self.default_limit < 0:
            message = "default_limit must be non-negative"
            raise ValueError(message)
        if self.max_rows_per_call <= 0:
            message = "max_rows_per_call must be positive"
            raise ValueError(message)
        if self.describe_timeout_seconds <= 0:
            message = "describe_timeout_seconds must be positive"
            raise ValueError(message)
        return self


__all__ = ["DEFAULT_DESCRIBE_TIMEOUT_SECONDS", "ServingConfig"]
