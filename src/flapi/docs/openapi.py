"""OpenAPI document synthesis from the endpoint catalog.

Static endpoint metadata (parameters, auth, rate limits) is combined with the
row shape reported by a describe-only schema capability of the query engine.
A describe failure only affects the endpoint it belongs to.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from copy import deepcopy
from typing import Any, Protocol

import yaml

from flapi.catalog.catalog import EndpointCatalog
from flapi.catalog.definitions import EndpointDefinition, RequestField
from flapi.config.serving import DEFAULT_DESCRIBE_TIMEOUT_SECONDS
from flapi.services.errors import SchemaDescriptionError

LOG = logging.getLogger("flapi.docs.openapi")

DocumentNode = dict[str, Any]

OPENAPI_VERSION = "3.0.0"

SECURITY_SCHEMES: Mapping[str, Mapping[str, str]] = {
    "bearerAuth": {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": "JWT Authorization header using the Bearer scheme.",
    },
    "basicAuth": {
        "type": "http",
        "scheme": "basic",
        "description": "Basic HTTP Authentication",
    },
}

_SCHEME_REFERENCE = {"basic": "basicAuth", "bearer": "bearerAuth"}


class SchemaDescriber(Protocol):
    """Report a query's result columns without running it."""

    def describe_query(self, endpoint: EndpointDefinition) -> Mapping[str, Mapping[str, str]]:
        """Return column name to ``{"type": ...}`` schema."""
        ...


def build_parameters(fields: tuple[RequestField, ...]) -> list[DocumentNode]:
    """
    Convert request fields into OpenAPI parameter objects.

    Field types are not inferred; every parameter is a string.

    Returns
    -------
    list[DocumentNode]
        Parameters in configuration order.
    """
    parameters: list[DocumentNode] = []
    for item in fields:
        schema: DocumentNode = {"type": "string"}
        if item.default is not None and item.default != "":
            schema["default"] = item.default
        parameters.append(
            {
                "name": item.name,
                "in": item.location,
                "required": item.required,
                "description": item.description,
                "schema": schema,
            }
        )
    return parameters


def build_response_schema(
    properties: Mapping[str, Mapping[str, str]] | None,
    *,
    error: str | None = None,
) -> DocumentNode:
    """
    Wrap row properties in the paginated response envelope.

    Parameters
    ----------
    properties:
        Described row properties; ignored when ``error`` is set.
    error:
        Describe failure detail recorded as ``x-schema-error``.

    Returns
    -------
    DocumentNode
        ``{data: [row], next, total_count}`` object schema.
    """
    items: DocumentNode = {"type": "object", "properties": {}}
    if error is not None:
        items["x-schema-error"] = error
    elif properties:
        items["properties"] = {name: dict(schema) for name, schema in properties.items()}
    return {
        "type": "object",
        "properties": {
            "data": {"type": "array", "items": items},
            "next": {"type": "string"},
            "total_count": {"type": "integer"},
        },
    }


def build_operation(
    endpoint: EndpointDefinition,
    properties: Mapping[str, Mapping[str, str]] | None,
    *,
    error: str | None = None,
) -> DocumentNode:
    """
    Build the operation object for one endpoint.

    Returns
    -------
    DocumentNode
        OpenAPI operation with parameters, response, rate-limit and security.
    """
    operation: DocumentNode = {
        "summary": f"Endpoint for {endpoint.url_path}",
        "description": endpoint.description or "Description not available",
        "parameters": build_parameters(endpoint.request_fields),
        "responses": {
            "200": {
                "description": "Successful response",
                "content": {
                    "application/json": {
                        "schema": build_response_schema(properties, error=error),
                    }
                },
            }
        },
    }
    if endpoint.rate_limit.enabled:
        operation["x-rate-limit"] = {
            "max": endpoint.rate_limit.max,
            "interval": endpoint.rate_limit.interval_seconds,
        }
    if endpoint.auth.enabled:
        reference = _SCHEME_REFERENCE.get(endpoint.auth.scheme, "bearerAuth")
        operation["security"] = [{reference: []}]
    return operation


class DocSynthesizer:
    """Produce OpenAPI documents for a catalog."""

    def __init__(
        self,
        catalog: EndpointCatalog,
        describer: SchemaDescriber,
        *,
        describe_timeout_seconds: float = DEFAULT_DESCRIBE_TIMEOUT_SECONDS,
        max_workers: int = 4,
    ) -> None:
        self.catalog = catalog
        self.describer = describer
        self.describe_timeout_seconds = describe_timeout_seconds
        self.max_workers = max_workers

    def _describe_one(self, endpoint: EndpointDefinition) -> Mapping[str, Mapping[str, str]]:
        return self.describer.describe_query(endpoint)

    def _describe_all(
        self, endpoints: tuple[EndpointDefinition, ...]
    ) -> list[tuple[Mapping[str, Mapping[str, str]] | None, str | None]]:
        """
        Describe every endpoint, isolating failures and timeouts per endpoint.

        Returns
        -------
        list[tuple[Mapping | None, str | None]]
            ``(properties, error)`` per endpoint, aligned with ``endpoints``.
        """
        if not endpoints:
            return []
        pool = ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(endpoints))),
            thread_name_prefix="flapi-describe",
        )
        try:
            futures: list[Future[Mapping[str, Mapping[str, str]]]] = [
                pool.submit(self._describe_one, endpoint) for endpoint in endpoints
            ]
            wait(futures, timeout=self.describe_timeout_seconds)
            return [
                self._outcome(endpoint, future)
                for endpoint, future in zip(endpoints, futures, strict=True)
            ]
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _outcome(
        self,
        endpoint: EndpointDefinition,
        future: Future[Mapping[str, Mapping[str, str]]],
    ) -> tuple[Mapping[str, Mapping[str, str]] | None, str | None]:
        if not future.done():
            message = f"Schema description for {endpoint.key} timed out"
            LOG.warning(message)
            return None, message
        try:
            return future.result(), None
        except SchemaDescriptionError as exc:
            LOG.warning("Schema description failed for %s: %s", endpoint.key, exc)
            return None, str(exc)
        except Exception as exc:  # noqa: BLE001
            LOG.warning("Schema description raised for %s: %s", endpoint.key, exc)
            return None, f"{type(exc).__name__}: {exc}"

    def synthesize(
        self,
        base_url: str,
        security_schemes: Mapping[str, Mapping[str, str]] = SECURITY_SCHEMES,
    ) -> DocumentNode:
        """
        Build a complete OpenAPI document for one catalog snapshot.

        Parameters
        ----------
        base_url:
            Server URL advertised in ``servers``.
        security_schemes:
            Security scheme declarations emitted under ``components``.

        Returns
        -------
        DocumentNode
            Fresh document tree; identical for identical inputs.
        """
        snap = self.catalog.snapshot()
        project = snap.project
        doc: DocumentNode = {
            "openapi": OPENAPI_VERSION,
            "info": {
                "title": project.name,
                "version": project.version,
                "description": project.description,
            },
            "servers": [{"url": base_url}],
            "components": {"securitySchemes": deepcopy(dict(security_schemes))},
            "paths": {},
        }
        paths: DocumentNode = doc["paths"]
        outcomes = self._describe_all(snap.endpoints)
        for endpoint, (properties, error) in zip(snap.endpoints, outcomes, strict=True):
            path_item = paths.setdefault(endpoint.url_path, {})
            path_item[endpoint.method.lower()] = build_operation(endpoint, properties, error=error)
        LOG.debug(
            "Synthesized document generation=%d paths=%d failures=%d",
            snap.generation,
            len(paths),
            sum(1 for _, error in outcomes if error is not None),
        )
        return doc


def render_json(document: DocumentNode) -> str:
    """
    Serialize a document as indented JSON.

    Returns
    -------
    str
        JSON text preserving key order.
    """
    return json.dumps(document, indent=2)


def render_yaml(document: DocumentNode) -> str:
    """
    Serialize a document as block-style YAML.

    Returns
    -------
    str
        YAML text preserving key order.
    """
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False, allow_unicode=True)


__all__ = [
    "OPENAPI_VERSION",
    "SECURITY_SCHEMES",
    "DocSynthesizer",
    "DocumentNode",
    "SchemaDescriber",
    "build_operation",
    "build_parameters",
    "build_response_schema",
    "render_json",
    "render_yaml",
]
