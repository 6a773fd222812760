"""Service-layer helpers shared by the HTTP surface and the CLI."""

from flapi.services.errors import (
    AuthenticationError,
    ConfigurationInvalidError,
    InvalidRequestError,
    ProblemDetail,
    ProblemError,
    QueryExecutionError,
    RateLimitExceededError,
    SchemaDescriptionError,
    log_problem,
    problem,
)

__all__ = [
    "AuthenticationError",
    "ConfigurationInvalidError",
    "InvalidRequestError",
    "ProblemDetail",
    "ProblemError",
    "QueryExecutionError",
    "RateLimitExceededError",
    "SchemaDescriptionError",
    "log_problem",
    "problem",
]
