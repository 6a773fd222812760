"""Request path resolution and dispatch."""

from flapi.routing.dispatcher import DispatchResult, RequestDispatcher
from flapi.routing.resolver import NOT_FOUND, NotFound, ResolvedRoute, RouteResolver

__all__ = [
    "NOT_FOUND",
    "DispatchResult",
    "NotFound",
    "RequestDispatcher",
    "ResolvedRoute",
    "RouteResolver",
]
