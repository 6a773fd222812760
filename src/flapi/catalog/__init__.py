"""Endpoint definitions, URL templates and the swappable catalog."""

from flapi.catalog.catalog import CatalogSnapshot, EndpointCatalog, build_snapshot
from flapi.catalog.definitions import (
    AuthPolicy,
    EndpointDefinition,
    ProjectMetadata,
    RateLimitPolicy,
    RequestField,
)
from flapi.catalog.templates import UrlTemplate, parse_url_template, split_request_path

__all__ = [
    "AuthPolicy",
    "CatalogSnapshot",
    "EndpointCatalog",
    "EndpointDefinition",
    "ProjectMetadata",
    "RateLimitPolicy",
    "RequestField",
    "UrlTemplate",
    "build_snapshot",
    "parse_url_template",
    "split_request_path",
]
