"""Configuration models and runtime settings.

The YAML loader lives in :mod:`flapi.config.loader`; it depends on the catalog
and is imported from there directly.
"""

from flapi.config.models import (
    AuthConfig,
    ConnectionConfig,
    EndpointConfig,
    FlapiConfig,
    RateLimitConfig,
    RequestFieldConfig,
)
from flapi.config.serving import ServingConfig

__all__ = [
    "AuthConfig",
    "ConnectionConfig",
    "EndpointConfig",
    "FlapiConfig",
    "RateLimitConfig",
    "RequestFieldConfig",
    "ServingConfig",
]
