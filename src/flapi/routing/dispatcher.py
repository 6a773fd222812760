"""Thin orchestration between the HTTP boundary and the route resolver."""

from __future__ import annotations

from dataclasses import dataclass

from flapi.routing.resolver import NOT_FOUND, ResolvedRoute, RouteResolver


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of dispatching a request: a matched route or not found."""

    route: ResolvedRoute | None = None

    @property
    def matched(self) -> bool:
        """Return True when a route was resolved."""
        return self.route is not None


class RequestDispatcher:
    """Resolve method+path; the caller runs the executor on a match."""

    def __init__(self, resolver: RouteResolver) -> None:
        self._resolver = resolver

    def dispatch(self, method: str, path: str) -> DispatchResult:
        """
        Resolve a request.

        Returns
        -------
        DispatchResult
            ``route`` set on match, ``None`` otherwise.
        """
        resolved = self._resolver.resolve(method, path)
        if resolved is NOT_FOUND:
            return DispatchResult()
        return DispatchResult(route=resolved)


__all__ = ["DispatchResult", "RequestDispatcher"]
