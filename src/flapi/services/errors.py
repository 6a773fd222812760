"""Shared error taxonomy and Problem Details helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4


def generate_correlation_id() -> str:
    """
    Return a new correlation identifier for tracing errors.

    Returns
    -------
    str
        UUID4 correlation identifier.
    """
    return str(uuid4())


@dataclass(frozen=True)
class ProblemDetail:
    """
    RFC 9457 Problem Details payload.

    Fields mirror the standard shape with optional extras for diagnostics.
    """

    type: str
    title: str
    detail: str
    status: int | None = None
    instance: str = field(default_factory=generate_correlation_id)
    code: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, Any]
            Problem detail payload as a plain dictionary.
        """
        payload: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            "instance": self.instance,
        }
        if self.status is not None:
            payload["status"] = self.status
        if self.code is not None:
            payload["code"] = self.code
        if self.extras:
            payload["extras"] = self.extras
        return payload


def problem(  # noqa: PLR0913
    code: str,
    title: str,
    detail: str,
    *,
    status: int | None = None,
    instance: str | None = None,
    type_uri: str | None = None,
    extras: dict[str, Any] | None = None,
) -> ProblemDetail:
    """
    Create a ProblemDetail with defaults for type/instance.

    Parameters
    ----------
    code
        Stable problem code (e.g., 'config.invalid').
    title
        Human-readable error summary.
    detail
        Detailed description of the error.
    status
        Optional HTTP-style status code.
    instance
        Correlation/trace identifier; defaults to a UUID4.
    type_uri
        URI identifying the problem type; defaults to a flapi namespace.
    extras
        Optional structured context for diagnostics.

    Returns
    -------
    ProblemDetail
        Structured problem payload.
    """
    resolved_instance = instance or generate_correlation_id()
    resolved_type = type_uri or f"https://problems.flapi.dev/{code}"
    return ProblemDetail(
        type=resolved_type,
        title=title,
        detail=detail,
        status=status,
        instance=resolved_instance,
        code=code,
        extras=extras or {},
    )


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as a structured error log."""
    logger.error(json.dumps(detail.to_dict()))


class ProblemError(Exception):
    """Base exception carrying a ProblemDetail payload."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail.detail)
        self.problem_detail = detail


class ConfigurationInvalidError(ProblemError):
    """Configuration could not be loaded or failed catalog validation."""

    def __init__(self, message: str, *, extras: dict[str, Any] | None = None) -> None:
        super().__init__(
            problem(
                "config.invalid",
                "Invalid configuration",
                message,
                status=500,
                extras=extras,
            )
        )


class SchemaDescriptionError(ProblemError):
    """The query engine could not describe an endpoint's result shape."""

    def __init__(self, url_path: str, message: str) -> None:
        super().__init__(
            problem(
                "schema.description_failed",
                "Schema description failed",
                message,
                extras={"url_path": url_path},
            )
        )
        self.url_path = url_path


class InvalidRequestError(ProblemError):
    """Request fields are missing or malformed."""

    def __init__(self, message: str, *, extras: dict[str, Any] | None = None) -> None:
        super().__init__(
            problem("request.invalid", "Invalid request", message, status=400, extras=extras)
        )


class AuthenticationError(ProblemError):
    """Credentials were missing or rejected for a protected endpoint."""

    def __init__(self, message: str, *, scheme: str) -> None:
        super().__init__(
            problem(
                "auth.failed",
                "Authentication required",
                message,
                status=401,
                extras={"scheme": scheme},
            )
        )
        self.scheme = scheme


class RateLimitExceededError(ProblemError):
    """The caller exhausted the endpoint's rate-limit window."""

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(
            problem(
                "rate_limit.exceeded",
                "Too many requests",
                message,
                status=429,
                extras={"retry_after": retry_after},
            )
        )
        self.retry_after = retry_after


class QueryExecutionError(ProblemError):
    """The query engine failed while executing an endpoint query."""

    def __init__(self, url_path: str, message: str) -> None:
        super().__init__(
            problem(
                "query.failed",
                "Query execution failed",
                message,
                status=500,
                extras={"url_path": url_path},
            )
        )
