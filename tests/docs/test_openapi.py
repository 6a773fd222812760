"""OpenAPI document synthesis from catalog snapshots."""

from __future__ import annotations

import json
import threading
from collections.abc import Mapping

import yaml

from flapi.catalog.catalog import EndpointCatalog
from flapi.catalog.definitions import (
    AuthPolicy,
    EndpointDefinition,
    ProjectMetadata,
    RateLimitPolicy,
    RequestField,
)
from flapi.config.serving import DEFAULT_DESCRIBE_TIMEOUT_SECONDS, ServingConfig
from flapi.docs.openapi import DocSynthesizer, render_json, render_yaml
from flapi.services.errors import SchemaDescriptionError
from flapi.storage.gateway import StorageGateway
from flapi.storage.queries import DuckDBSchemaDescriber
from tests._helpers.builders import endpoint
from tests._helpers.expect import expect_equal, expect_in, expect_true


class _FakeDescriber:
    """Return canned schemas; fail or block for selected paths."""

    def __init__(
        self,
        *,
        failing: frozenset[str] = frozenset(),
        blocking: frozenset[str] = frozenset(),
    ) -> None:
        self.failing = failing
        self.blocking = blocking
        self.release = threading.Event()
        self.calls: list[str] = []

    def describe_query(self, endpoint: EndpointDefinition) -> Mapping[str, Mapping[str, str]]:
        self.calls.append(endpoint.url_path)
        if endpoint.url_path in self.failing:
            raise SchemaDescriptionError(endpoint.url_path, f"cannot describe {endpoint.url_path}")
        if endpoint.url_path in self.blocking:
            self.release.wait(timeout=5)
        return {"id": {"type": "integer"}, "name": {"type": "string"}}


def _items(doc: dict, path: str, method: str = "get") -> dict:
    operation = doc["paths"][path][method]
    schema = operation["responses"]["200"]["content"]["application/json"]["schema"]
    return schema["properties"]["data"]["items"]


def _catalog(*defs: EndpointDefinition) -> EndpointCatalog:
    return EndpointCatalog(defs, project=ProjectMetadata(name="shop", version="2.1.0"))


def test_document_skeleton() -> None:
    doc = DocSynthesizer(_catalog(endpoint("/a")), _FakeDescriber()).synthesize(
        "http://localhost:8080"
    )
    expect_equal(doc["openapi"], "3.0.0")
    expect_equal(doc["info"]["title"], "shop")
    expect_equal(doc["info"]["version"], "2.1.0")
    expect_equal(doc["servers"], [{"url": "http://localhost:8080"}])
    expect_equal(set(doc["components"]["securitySchemes"]), {"bearerAuth", "basicAuth"})
    expect_equal(list(doc["paths"]), ["/a"])


def test_empty_catalog_yields_empty_paths() -> None:
    doc = DocSynthesizer(_catalog(), _FakeDescriber()).synthesize("http://x")
    expect_equal(doc["paths"], {})


def test_synthesis_is_deterministic() -> None:
    catalog = _catalog(endpoint("/b"), endpoint("/a"), endpoint("/a", method="DELETE"))
    synth = DocSynthesizer(catalog, _FakeDescriber())
    first = render_json(synth.synthesize("http://x"))
    second = render_json(synth.synthesize("http://x"))
    expect_equal(first, second)
    expect_equal(list(json.loads(first)["paths"]), ["/b", "/a"])
    expect_equal(list(json.loads(first)["paths"]["/a"]), ["get", "delete"])


def test_describe_failure_is_isolated() -> None:
    catalog = _catalog(endpoint("/good"), endpoint("/bad"), endpoint("/also-good"))
    doc = DocSynthesizer(catalog, _FakeDescriber(failing=frozenset({"/bad"}))).synthesize("http://x")
    bad = _items(doc, "/bad")
    expect_equal(bad["properties"], {})
    expect_in("cannot describe /bad", bad["x-schema-error"])
    for path in ("/good", "/also-good"):
        good = _items(doc, path)
        expect_equal(good["properties"]["id"], {"type": "integer"})
        expect_true("x-schema-error" not in good, message=f"{path} should describe cleanly")


def test_describe_timeout_marks_only_slow_endpoint() -> None:
    describer = _FakeDescriber(blocking=frozenset({"/slow"}))
    synth = DocSynthesizer(
        _catalog(endpoint("/fast"), endpoint("/slow")),
        describer,
        describe_timeout_seconds=0.2,
    )
    try:
        doc = synth.synthesize("http://x")
    finally:
        describer.release.set()
    expect_in("timed out", _items(doc, "/slow")["x-schema-error"])
    expect_equal(_items(doc, "/fast")["properties"]["name"], {"type": "string"})


def test_describe_timeout_is_bounded_by_default() -> None:
    synth = DocSynthesizer(_catalog(endpoint("/a")), _FakeDescriber())
    expect_equal(synth.describe_timeout_seconds, DEFAULT_DESCRIBE_TIMEOUT_SECONDS)
    expect_equal(ServingConfig().describe_timeout_seconds, DEFAULT_DESCRIBE_TIMEOUT_SECONDS)
    expect_true(
        0 < DEFAULT_DESCRIBE_TIMEOUT_SECONDS < float("inf"),
        message="a hung describe must not stall the document",
    )


def _customer_endpoint() -> EndpointDefinition:
    return endpoint(
        "/customers/:id",
        fields=(
            RequestField(name="id", location="path", required=True, description="Customer id"),
            RequestField(name="segment", default="retail"),
        ),
        auth=AuthPolicy(enabled=True, scheme="basic", users=(("u", "p"),)),
        rate_limit=RateLimitPolicy(enabled=True, max=10, interval_seconds=60),
        description="One customer",
    )


def test_operation_metadata() -> None:
    doc = DocSynthesizer(_catalog(_customer_endpoint()), _FakeDescriber()).synthesize("http://x")
    operation = doc["paths"]["/customers/:id"]["get"]
    expect_equal(operation["summary"], "Endpoint for /customers/:id")
    expect_equal(operation["description"], "One customer")
    expect_equal(operation["security"], [{"basicAuth": []}])
    expect_equal(operation["x-rate-limit"], {"max": 10, "interval": 60})
    expect_equal(
        operation["parameters"],
        [
            {
                "name": "id",
                "in": "path",
                "required": True,
                "description": "Customer id",
                "schema": {"type": "string"},
            },
            {
                "name": "segment",
                "in": "query",
                "required": False,
                "description": "",
                "schema": {"type": "string", "default": "retail"},
            },
        ],
    )


def test_open_endpoint_has_no_security_or_rate_limit() -> None:
    doc = DocSynthesizer(_catalog(endpoint("/open")), _FakeDescriber()).synthesize("http://x")
    operation = doc["paths"]["/open"]["get"]
    expect_true("security" not in operation, message="open endpoint has no security")
    expect_true("x-rate-limit" not in operation, message="rate limit disabled")
    expect_equal(operation["description"], "Description not available")


def test_json_and_yaml_renderings_agree() -> None:
    doc = DocSynthesizer(_catalog(_customer_endpoint()), _FakeDescriber()).synthesize("http://x")
    for parsed in (json.loads(render_json(doc)), yaml.safe_load(render_yaml(doc))):
        expect_equal(parsed, doc)
        operation = parsed["paths"]["/customers/:id"]["get"]
        expect_equal(
            [(p["name"], p["in"], p["required"]) for p in operation["parameters"]],
            [("id", "path", True), ("segment", "query", False)],
        )
        expect_equal(operation["security"], [{"basicAuth": []}])


def test_duckdb_describer_feeds_document(seeded_gateway: StorageGateway) -> None:
    catalog = _catalog(
        endpoint("/customers", query="SELECT id, name FROM customers"),
        endpoint("/broken", query="SELECT * FROM missing_table"),
    )
    doc = DocSynthesizer(catalog, DuckDBSchemaDescriber(seeded_gateway)).synthesize("http://x")
    expect_equal(
        _items(doc, "/customers")["properties"],
        {"id": {"type": "integer"}, "name": {"type": "string"}},
    )
    expect_in("x-schema-error", _items(doc, "/broken"))
