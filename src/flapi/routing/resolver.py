"""Resolve concrete request paths to configured endpoints."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Final, Literal

from flapi.catalog.catalog import CatalogSnapshot, EndpointCatalog
from flapi.catalog.definitions import EndpointDefinition
from flapi.catalog.templates import split_request_path


class _NotFound(Enum):
    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = _NotFound.NOT_FOUND
NotFound = Literal[_NotFound.NOT_FOUND]


@dataclass(frozen=True)
class ResolvedRoute:
    """The endpoint matched for one request plus its captured path values."""

    endpoint: EndpointDefinition
    path_params: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


def resolve_in_snapshot(
    snapshot: CatalogSnapshot, method: str, path: str
) -> ResolvedRoute | NotFound:
    """
    Match ``path`` against the snapshot's endpoints for ``method``.

    Candidates are tried in configuration order and the first structural
    match wins; no specificity ranking is applied.

    Parameters
    ----------
    snapshot:
        Catalog snapshot to resolve against.
    method:
        HTTP method of the request.
    path:
        Concrete request path; a query string, if present, is ignored.

    Returns
    -------
    ResolvedRoute | NotFound
        Matched route, or ``NOT_FOUND``.
    """
    candidates = snapshot.candidates(method)
    if not candidates:
        return NOT_FOUND
    segments = split_request_path(path)
    for endpoint in candidates:
        params = endpoint.template.match(segments)
        if params is not None:
            return ResolvedRoute(endpoint=endpoint, path_params=MappingProxyType(params))
    return NOT_FOUND


class RouteResolver:
    """Resolve requests against whatever snapshot is active when called."""

    def __init__(self, catalog: EndpointCatalog) -> None:
        self._catalog = catalog

    def resolve(self, method: str, path: str) -> ResolvedRoute | NotFound:
        """
        Resolve ``method`` and ``path`` to an endpoint.

        Returns
        -------
        ResolvedRoute | NotFound
            Matched route, or ``NOT_FOUND``.
        """
        return resolve_in_snapshot(self._catalog.snapshot(), method, path)


__all__ = ["NOT_FOUND", "NotFound", "ResolvedRoute", "RouteResolver", "resolve_in_snapshot"]
