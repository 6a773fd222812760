"""Route resolution against catalog snapshots."""

from __future__ import annotations

import pytest

from flapi.catalog.catalog import EndpointCatalog, build_snapshot
from flapi.routing.dispatcher import RequestDispatcher
from flapi.routing.resolver import NOT_FOUND, ResolvedRoute, RouteResolver, resolve_in_snapshot
from tests._helpers.builders import endpoint
from tests._helpers.expect import expect_equal, expect_true


def _resolved(result: object) -> ResolvedRoute:
    if not isinstance(result, ResolvedRoute):
        pytest.fail(f"Expected a resolved route, got {result!r}")
    return result


def test_customer_orders_capture(customer_catalog: EndpointCatalog) -> None:
    """A concrete path binds the captured customer id."""
    resolver = RouteResolver(customer_catalog)
    route = _resolved(resolver.resolve("GET", "/customers/42/orders"))
    expect_equal(route.endpoint.url_path, "/customers/<customer_id>/orders")
    expect_equal(dict(route.path_params), {"customer_id": "42"})


def test_unmatched_path_is_not_found(customer_catalog: EndpointCatalog) -> None:
    resolver = RouteResolver(customer_catalog)
    unmatched = (
        "/customers/42",
        "/customers/42/invoices",
        "/customers/42/orders/7",
        "/unknown",
        "/",
        "/customers/",
    )
    for path in unmatched:
        result = resolver.resolve("GET", path)
        expect_true(result is NOT_FOUND, message=f"{path} should not resolve")
        expect_true(not result, message="NOT_FOUND is falsy")


def test_method_without_candidates_is_not_found(customer_catalog: EndpointCatalog) -> None:
    result = RouteResolver(customer_catalog).resolve("DELETE", "/customers")
    expect_true(result is NOT_FOUND, message="DELETE has no endpoints")


def test_method_is_case_insensitive(customer_catalog: EndpointCatalog) -> None:
    route = _resolved(RouteResolver(customer_catalog).resolve("get", "/customers"))
    expect_equal(route.endpoint.url_path, "/customers")


@pytest.mark.parametrize(
    ("first", "second", "winner"),
    [
        ("/customers/:id", "/customers/me", "/customers/:id"),
        ("/customers/me", "/customers/:id", "/customers/me"),
    ],
)
def test_first_configured_match_wins(first: str, second: str, winner: str) -> None:
    snapshot = build_snapshot((endpoint(first), endpoint(second)))
    route = _resolved(resolve_in_snapshot(snapshot, "GET", "/customers/me"))
    expect_equal(route.endpoint.url_path, winner)


def test_percent_encoded_segments_are_decoded() -> None:
    snapshot = build_snapshot((endpoint("/files/:name/raw"),))
    route = _resolved(resolve_in_snapshot(snapshot, "GET", "/files/a%2Fb%20c/raw"))
    expect_equal(route.path_params["name"], "a/b c")


def test_resolver_follows_catalog_replacement() -> None:
    catalog = EndpointCatalog((endpoint("/v1"),))
    resolver = RouteResolver(catalog)
    _resolved(resolver.resolve("GET", "/v1"))
    catalog.replace_all((endpoint("/v2"),))
    expect_true(resolver.resolve("GET", "/v1") is NOT_FOUND, message="/v1 was removed")
    _resolved(resolver.resolve("GET", "/v2"))


def test_dispatcher_reports_match_state(customer_catalog: EndpointCatalog) -> None:
    dispatcher = RequestDispatcher(RouteResolver(customer_catalog))
    hit = dispatcher.dispatch("GET", "/customers")
    miss = dispatcher.dispatch("GET", "/nope")
    expect_true(hit.matched, message="expected a match")
    expect_true(not miss.matched and miss.route is None, message="expected no match")
