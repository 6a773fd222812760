"""HTTP surface exercised through the FastAPI test client."""

from __future__ import annotations

import base64
from collections.abc import Iterator
from pathlib import Path
from textwrap import dedent

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient

from flapi.catalog.definitions import (
    AuthPolicy,
    EndpointDefinition,
    ProjectMetadata,
    RateLimitPolicy,
)
from flapi.config.loader import LoadedConfig
from flapi.config.serving import ServingConfig
from flapi.serving.http.app import create_app
from flapi.serving.runtime import AppRuntime, assemble_runtime, build_runtime
from flapi.services.errors import ConfigurationInvalidError
from flapi.storage.gateway import StorageGateway
from tests._helpers.builders import customer_endpoints, endpoint
from tests._helpers.expect import expect_equal, expect_in, expect_true


class _MutableSource:
    """Config source whose next load can be swapped or made to fail."""

    def __init__(self, endpoints: tuple[EndpointDefinition, ...]) -> None:
        self.endpoints = endpoints
        self.error: Exception | None = None

    def load(self) -> LoadedConfig:
        if self.error is not None:
            raise self.error
        return LoadedConfig(
            project=ProjectMetadata(name="shop", description="Demo shop", version="2.1.0"),
            endpoints=self.endpoints,
        )


def _build_app(gateway: StorageGateway, source: _MutableSource) -> FastAPI:
    settings = ServingConfig(base_url="http://testserver")

    def _runtime_factory(cfg: ServingConfig) -> AppRuntime:
        return assemble_runtime(cfg, source, source.load(), gateway, owns_gateway=False)

    return create_app(settings_loader=lambda: settings, runtime_factory=_runtime_factory)


@pytest.fixture
def source() -> _MutableSource:
    secured = (
        endpoint(
            "/secure",
            query="SELECT 1 AS one",
            auth=AuthPolicy(enabled=True, scheme="basic", users=(("admin", "s3cret"),)),
        ),
        endpoint(
            "/limited",
            query="SELECT 1 AS one",
            rate_limit=RateLimitPolicy(enabled=True, max=1, interval_seconds=60),
        ),
    )
    return _MutableSource(customer_endpoints() + secured)


@pytest.fixture
def client(seeded_gateway: StorageGateway, source: _MutableSource) -> Iterator[TestClient]:
    with TestClient(_build_app(seeded_gateway, source)) as test_client:
        yield test_client


def test_banner(client: TestClient) -> None:
    resp = client.get("/")
    expect_equal(resp.status_code, 200)
    expect_in("flAPI", resp.text)


def test_endpoint_returns_paginated_rows(client: TestClient) -> None:
    resp = client.get("/customers", params={"limit": 2})
    expect_equal(resp.status_code, 200)
    payload = resp.json()
    expect_equal(set(payload), {"data", "next", "total_count"})
    expect_equal([row["name"] for row in payload["data"]], ["Ada", "Grace"])
    expect_equal(payload["total_count"], 3)
    follow = client.get(payload["next"]).json()
    expect_equal([row["name"] for row in follow["data"]], ["Linus"])
    expect_equal(follow["next"], "")


def test_path_capture_flows_into_query(client: TestClient) -> None:
    payload = client.get("/customers/1/orders").json()
    expect_equal([row["id"] for row in payload["data"]], [10, 11])
    expect_equal(payload["data"][0]["placed"], "2024-01-03")


def test_unmatched_path_is_plain_not_found(client: TestClient) -> None:
    for method, path in (("GET", "/nope"), ("GET", "/customers/1"), ("DELETE", "/customers")):
        resp = client.request(method, path)
        expect_equal(resp.status_code, 404)
        expect_equal(resp.text, "Not Found")


def test_auth_failure_is_401_with_challenge(client: TestClient) -> None:
    resp = client.get("/secure")
    expect_equal(resp.status_code, 401)
    expect_in("Basic", resp.headers["www-authenticate"])
    expect_equal(resp.json()["code"], "auth.failed")
    token = base64.b64encode(b"admin:s3cret").decode()
    ok = client.get("/secure", headers={"Authorization": f"Basic {token}"})
    expect_equal(ok.status_code, 200)


def test_rate_limit_is_429_with_retry_after(client: TestClient) -> None:
    first = client.get("/limited")
    expect_equal(first.status_code, 200)
    expect_equal(first.headers["x-ratelimit-remaining"], "0")
    second = client.get("/limited")
    expect_equal(second.status_code, 429)
    expect_true(int(second.headers["retry-after"]) >= 1, message="Retry-After must be set")


def test_bad_pagination_is_400(client: TestClient) -> None:
    resp = client.get("/customers", params={"offset": "-1"})
    expect_equal(resp.status_code, 400)
    expect_equal(resp.json()["code"], "request.invalid")


def test_get_config_dumps_catalog(client: TestClient) -> None:
    resp = client.get("/config")
    expect_equal(resp.status_code, 200)
    payload = resp.json()
    expect_equal(payload["flapi"]["project_name"], "shop")
    paths = [item["url-path"] for item in payload["endpoints"]]
    expect_equal(paths[:2], ["/customers", "/customers/<customer_id>/orders"])
    expect_true("s3cret" not in resp.text, message="passwords must not be dumped")


def test_refresh_installs_new_catalog(client: TestClient, source: _MutableSource) -> None:
    source.endpoints = (endpoint("/fresh", query="SELECT 42 AS answer"),)
    resp = client.delete("/config")
    expect_equal(resp.status_code, 200)
    expect_equal(resp.text, "Configuration refreshed successfully")
    expect_equal(client.get("/fresh").json()["data"], [{"answer": 42}])
    expect_equal(client.get("/customers").status_code, 404)


def test_failed_refresh_keeps_previous_catalog(client: TestClient, source: _MutableSource) -> None:
    source.error = ConfigurationInvalidError("broken endpoint file")
    resp = client.delete("/config")
    expect_equal(resp.status_code, 500)
    expect_equal(resp.text, "Failed to refresh configuration: broken endpoint file")
    expect_equal(client.get("/customers").status_code, 200)

    source.error = None
    source.endpoints = (endpoint("/dup/:a"), endpoint("/dup/:b"))
    resp = client.delete("/config")
    expect_equal(resp.status_code, 500)
    expect_equal(client.get("/customers").status_code, 200)


def test_openapi_json_and_yaml(client: TestClient) -> None:
    doc = client.get("/openapi.json").json()
    expect_equal(doc["servers"], [{"url": "http://testserver"}])
    expect_in("/customers/<customer_id>/orders", doc["paths"])
    items = doc["paths"]["/customers"]["get"]["responses"]["200"]["content"]["application/json"][
        "schema"
    ]["properties"]["data"]["items"]
    expect_equal(items["properties"]["id"], {"type": "integer"})
    expect_equal(doc["paths"]["/secure"]["get"]["security"], [{"basicAuth": []}])

    resp = client.get("/openapi.yaml")
    expect_equal(resp.status_code, 200)
    expect_in("application/yaml", resp.headers["content-type"])
    expect_equal(yaml.safe_load(resp.text), doc)


def test_build_runtime_from_yaml_files(tmp_path: Path) -> None:
    (tmp_path / "sqls").mkdir()
    (tmp_path / "flapi.yaml").write_text(
        dedent(
            """
            project_name: files
            connections:
              seed:
                init: CREATE OR REPLACE TABLE numbers AS SELECT range AS n FROM range(5)
            """
        ),
        encoding="utf8",
    )
    (tmp_path / "sqls" / "numbers.yaml").write_text(
        "url-path: /numbers\nquery: SELECT n FROM numbers ORDER BY n\nconnection: seed\n",
        encoding="utf8",
    )
    settings = ServingConfig(config_path=tmp_path / "flapi.yaml")
    app = create_app(settings_loader=lambda: settings, runtime_factory=build_runtime)
    with TestClient(app) as test_client:
        payload = test_client.get("/numbers", params={"limit": 2}).json()
        expect_equal(payload["total_count"], 5)
        expect_equal([row["n"] for row in payload["data"]], [0, 1])
        expect_equal(test_client.get("/config").json()["flapi"]["project_name"], "files")
        expect_equal(test_client.delete("/config").status_code, 200)
        expect_equal(test_client.get("/numbers").json()["total_count"], 5)
