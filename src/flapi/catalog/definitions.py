"""Immutable endpoint definitions held by the catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flapi.catalog.templates import UrlTemplate, parse_url_template
from flapi.config.models import AuthConfig, EndpointConfig, FlapiConfig, RateLimitConfig


@dataclass(frozen=True)
class RequestField:
    """A request field and where its value comes from."""

    name: str
    location: str = "query"
    required: bool = False
    default: str | None = None
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize using the configuration file's key names.

        Returns
        -------
        dict[str, Any]
            JSON-friendly mapping.
        """
        payload: dict[str, Any] = {
            "field-name": self.name,
            "field-in": self.location,
            "required": self.required,
            "description": self.description,
        }
        if self.default is not None:
            payload["default"] = self.default
        return payload


@dataclass(frozen=True)
class AuthPolicy:
    """Authentication requirements for an endpoint."""

    enabled: bool = False
    scheme: str = "bearer"
    users: tuple[tuple[str, str], ...] = field(default=(), repr=False)
    tokens: tuple[str, ...] = field(default=(), repr=False)

    @classmethod
    def from_config(cls, cfg: AuthConfig) -> AuthPolicy:
        """
        Build a policy from its configuration model.

        Returns
        -------
        AuthPolicy
            Frozen policy.
        """
        return cls(
            enabled=cfg.enabled,
            scheme=cfg.type,
            users=tuple((user.username, user.password) for user in cfg.users),
            tokens=tuple(cfg.tokens),
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize without secrets: usernames only, token count only.

        Returns
        -------
        dict[str, Any]
            JSON-friendly mapping.
        """
        return {
            "enabled": self.enabled,
            "type": self.scheme,
            "users": [username for username, _ in self.users],
            "token_count": len(self.tokens),
        }


@dataclass(frozen=True)
class RateLimitPolicy:
    """Fixed-window rate limit for an endpoint."""

    enabled: bool = False
    max: int = 100
    interval_seconds: int = 60

    @classmethod
    def from_config(cls, cfg: RateLimitConfig) -> RateLimitPolicy:
        """
        Build a policy from its configuration model.

        Returns
        -------
        RateLimitPolicy
            Frozen policy.
        """
        return cls(enabled=cfg.enabled, max=cfg.max, interval_seconds=cfg.interval)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize using the configuration file's key names.

        Returns
        -------
        dict[str, Any]
            JSON-friendly mapping.
        """
        return {"enabled": self.enabled, "max": self.max, "interval": self.interval_seconds}


@dataclass(frozen=True)
class EndpointDefinition:
    """
    One configured API surface: a URL template bound to a single method.

    Instances are created when a configuration snapshot is loaded and are
    never mutated; a refresh builds new instances.
    """

    url_path: str
    method: str = "GET"
    request_fields: tuple[RequestField, ...] = ()
    auth: AuthPolicy = field(default_factory=AuthPolicy)
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    query: str = ""
    connections: tuple[str, ...] = ()
    description: str | None = None
    source: Path | None = None
    template: UrlTemplate = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Normalize the method and compile the URL template."""
        object.__setattr__(self, "method", (self.method or "GET").upper())
        object.__setattr__(self, "template", parse_url_template(self.url_path))

    @classmethod
    def from_config(
        cls,
        cfg: EndpointConfig,
        *,
        query: str,
        source: Path | None = None,
    ) -> EndpointDefinition:
        """
        Convert a validated endpoint configuration into a definition.

        Parameters
        ----------
        cfg:
            Endpoint configuration model.
        query:
            SQL text resolved from ``query`` or ``template-source``.
        source:
            File the endpoint was read from, when any.

        Returns
        -------
        EndpointDefinition
            Frozen definition with a compiled template.
        """
        return cls(
            url_path=cfg.url_path,
            method=cfg.method,
            request_fields=tuple(
                RequestField(
                    name=item.field_name,
                    location=item.field_in,
                    required=item.required,
                    default=item.default,
                    description=item.description,
                )
                for item in cfg.request
            ),
            auth=AuthPolicy.from_config(cfg.auth),
            rate_limit=RateLimitPolicy.from_config(cfg.rate_limit),
            query=query,
            connections=tuple(cfg.connection),
            description=cfg.description,
            source=source,
        )

    @property
    def key(self) -> str:
        """Return ``METHOD /template`` for logs and error messages."""
        return f"{self.method} {self.url_path}"

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize for the configuration dump.

        Returns
        -------
        dict[str, Any]
            JSON-friendly mapping using the configuration file's key names.
        """
        payload: dict[str, Any] = {
            "url-path": self.url_path,
            "method": self.method,
            "request": [item.to_dict() for item in self.request_fields],
            "auth": self.auth.to_dict(),
            "rate-limit": self.rate_limit.to_dict(),
            "connection": list(self.connections),
            "query": self.query,
        }
        if self.description is not None:
            payload["description"] = self.description
        if self.source is not None:
            payload["source"] = str(self.source)
        return payload


@dataclass(frozen=True)
class ProjectMetadata:
    """Project-level metadata surfaced in the config dump and API document."""

    name: str = "flapi"
    description: str = ""
    version: str = "1.0.0"

    @classmethod
    def from_config(cls, cfg: FlapiConfig) -> ProjectMetadata:
        """
        Extract project metadata from the top-level configuration.

        Returns
        -------
        ProjectMetadata
            Frozen metadata.
        """
        return cls(
            name=cfg.project_name,
            description=cfg.project_description,
            version=cfg.project_version,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize using the configuration file's key names.

        Returns
        -------
        dict[str, Any]
            JSON-friendly mapping.
        """
        return {
            "project_name": self.name,
            "project_description": self.description,
            "project_version": self.version,
        }


__all__ = [
    "AuthPolicy",
    "EndpointDefinition",
    "ProjectMetadata",
    "RateLimitPolicy",
    "RequestField",
]
