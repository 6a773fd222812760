"""Execute a resolved route: auth, rate limit, field collection and query."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlencode

from flapi.catalog.definitions import EndpointDefinition
from flapi.routing.resolver import ResolvedRoute
from flapi.services.errors import InvalidRequestError, RateLimitExceededError
from flapi.serving.auth import Authenticator, ConfiguredAuthenticator
from flapi.serving.limits import PageLimits, clamp_limit_value, clamp_offset_value
from flapi.serving.rate_limit import InMemoryRateLimiter, RateLimiter
from flapi.storage.queries import QueryPage

LOG = logging.getLogger("flapi.serving.executor")


class QueryRunner(Protocol):
    """Run an endpoint query for one page of rows."""

    def fetch_page(
        self,
        endpoint: EndpointDefinition,
        params: Mapping[str, str | None],
        *,
        limit: int,
        offset: int,
    ) -> QueryPage:
        """Return one page of rows and the total row count."""
        ...


@dataclass(frozen=True)
class RequestContext:
    """Transport-level inputs the executor needs from the HTTP request."""

    path: str
    query_params: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    client_key: str = "anonymous"


@dataclass(frozen=True)
class ExecutionResult:
    """Paginated endpoint response."""

    data: list[dict[str, Any]]
    next: str
    total_count: int
    principal: str | None = None
    rate_limit_remaining: int = -1

    def to_payload(self) -> dict[str, Any]:
        """
        Return the JSON body returned to clients.

        Returns
        -------
        dict[str, Any]
            ``{"data": [...], "next": "...", "total_count": n}``.
        """
        return {"data": self.data, "next": self.next, "total_count": self.total_count}


def _header(headers: Mapping[str, str], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def collect_fields(route: ResolvedRoute, ctx: RequestContext) -> dict[str, str | None]:
    """
    Gather request-field values from path, query string and headers.

    Captured path values are always included under their capture names.

    Returns
    -------
    dict[str, str | None]
        Field values keyed by field name, defaults applied.

    Raises
    ------
    InvalidRequestError
        If any required field has no value and no default.
    """
    values: dict[str, str | None] = dict(route.path_params)
    missing: list[str] = []
    for spec in route.endpoint.request_fields:
        if spec.location == "path":
            value = route.path_params.get(spec.name)
        elif spec.location == "header":
            value = _header(ctx.headers, spec.name)
        else:
            value = ctx.query_params.get(spec.name)
        if value is None:
            value = spec.default
        if value is None and spec.required:
            missing.append(spec.name)
        values[spec.name] = value
    if missing:
        message = f"Missing required field(s): {', '.join(missing)}"
        raise InvalidRequestError(message, extras={"missing": missing})
    return values


def _parse_int(raw: str | None, name: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        message = f"{name} must be an integer, got {raw!r}"
        raise InvalidRequestError(message, extras={"field": name}) from exc


class RequestExecutor:
    """Run the request-execution pipeline for a resolved route."""

    def __init__(
        self,
        runner: QueryRunner,
        *,
        authenticator: Authenticator | None = None,
        rate_limiter: RateLimiter | None = None,
        limits: PageLimits | None = None,
    ) -> None:
        self.runner = runner
        self.authenticator = authenticator or ConfiguredAuthenticator()
        self.rate_limiter = rate_limiter or InMemoryRateLimiter()
        self.limits = limits or PageLimits()

    def _pagination(self, endpoint: EndpointDefinition, ctx: RequestContext) -> tuple[int, int]:
        declared = {spec.name for spec in endpoint.request_fields}
        raw_limit = None if "limit" in declared else ctx.query_params.get("limit")
        raw_offset = None if "offset" in declared else ctx.query_params.get("offset")
        limit = clamp_limit_value(
            _parse_int(raw_limit, "limit"),
            default=self.limits.default_limit,
            max_limit=self.limits.max_rows_per_call,
        )
        offset = clamp_offset_value(_parse_int(raw_offset, "offset") or 0)
        for result in (limit, offset):
            if result.has_error:
                raise InvalidRequestError("; ".join(result.messages))
            for message in result.messages:
                LOG.info("%s: %s", endpoint.key, message)
        return limit.applied, offset.applied

    def execute(self, route: ResolvedRoute, ctx: RequestContext) -> ExecutionResult:
        """
        Authenticate, rate limit and run the endpoint query for one request.

        Parameters
        ----------
        route:
            Route produced by the resolver.
        ctx:
            Request path, query parameters, headers and client key.

        Returns
        -------
        ExecutionResult
            Rows for the requested page plus pagination fields.

        Raises
        ------
        RateLimitExceededError
            If the client exhausted the endpoint's window. Checked before
            credentials, so rejected credentials still count.
        """
        endpoint = route.endpoint
        decision = self.rate_limiter.check(endpoint, ctx.client_key)
        if not decision.allowed:
            message = f"Rate limit exceeded for {endpoint.key}"
            raise RateLimitExceededError(message, retry_after=decision.retry_after)
        principal = self.authenticator.authenticate(endpoint, ctx.headers)

        values = collect_fields(route, ctx)
        limit, offset = self._pagination(endpoint, ctx)
        page = self.runner.fetch_page(endpoint, values, limit=limit, offset=offset)

        next_url = ""
        if page.has_more and page.rows:
            next_query = {
                **ctx.query_params,
                "limit": str(limit),
                "offset": str(offset + len(page.rows)),
            }
            next_url = f"{ctx.path}?{urlencode(next_query)}"
        return ExecutionResult(
            data=page.rows,
            next=next_url,
            total_count=page.total_count,
            principal=principal,
            rate_limit_remaining=decision.remaining,
        )


__all__ = [
    "ExecutionResult",
    "QueryRunner",
    "RequestContext",
    "RequestExecutor",
    "collect_fields",
]
