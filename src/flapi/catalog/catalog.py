"""Endpoint catalog backed by immutable snapshots.

Readers take the current :class:`CatalogSnapshot` once and work against it;
writers validate a complete replacement and install it with a single
reference assignment. Readers never lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from flapi.catalog.definitions import EndpointDefinition, ProjectMetadata
from flapi.services.errors import ConfigurationInvalidError

LOG = logging.getLogger("flapi.catalog")


@dataclass(frozen=True)
class CatalogSnapshot:
    """A fully-formed, immutable set of endpoint definitions."""

    endpoints: tuple[EndpointDefinition, ...] = ()
    project: ProjectMetadata = field(default_factory=ProjectMetadata)
    by_method: MappingProxyType[str, tuple[EndpointDefinition, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    generation: int = 0

    def candidates(self, method: str) -> tuple[EndpointDefinition, ...]:
        """
        Return the endpoints answering ``method`` in configuration order.

        Returns
        -------
        tuple[EndpointDefinition, ...]
            Possibly empty tuple of candidates.
        """
        return self.by_method.get(method.upper(), ())

    def to_dict(self) -> dict[str, Any]:
        """
        Dump the snapshot in the ``GET /config`` shape.

        Returns
        -------
        dict[str, Any]
            ``{"flapi": ..., "endpoints": [...]}`` payload.
        """
        return {
            "flapi": self.project.to_dict(),
            "endpoints": [endpoint.to_dict() for endpoint in self.endpoints],
        }


def validate_definitions(
    definitions: Iterable[EndpointDefinition],
) -> tuple[EndpointDefinition, ...]:
    """
    Check a replacement set for unreachable duplicate routes.

    Two definitions with the same method and the same template shape (same
    literals and capture positions) make the later one unreachable, so the
    whole set is rejected. Other overlaps resolve by configuration order.

    Parameters
    ----------
    definitions:
        Candidate definitions in configuration order.

    Returns
    -------
    tuple[EndpointDefinition, ...]
        Definitions as a tuple, unchanged.

    Raises
    ------
    ConfigurationInvalidError
        If any two definitions collide.
    """
    endpoints = tuple(definitions)
    seen: dict[tuple[str, tuple[str | None, ...]], EndpointDefinition] = {}
    for endpoint in endpoints:
        shape_key = (endpoint.method, endpoint.template.shape)
        previous = seen.get(shape_key)
        if previous is not None:
            message = (
                f"Endpoint {endpoint.key} is ambiguous with {previous.key}; "
                "both match exactly the same paths"
            )
            raise ConfigurationInvalidError(
                message,
                extras={"url_path": endpoint.url_path, "conflicts_with": previous.url_path},
            )
        seen[shape_key] = endpoint
    return endpoints


def build_snapshot(
    definitions: Iterable[EndpointDefinition],
    *,
    project: ProjectMetadata | None = None,
    generation: int = 0,
) -> CatalogSnapshot:
    """
    Validate definitions and index them by method.

    Returns
    -------
    CatalogSnapshot
        New immutable snapshot.
    """
    endpoints = validate_definitions(definitions)
    index: dict[str, list[EndpointDefinition]] = {}
    for endpoint in endpoints:
        index.setdefault(endpoint.method, []).append(endpoint)
    return CatalogSnapshot(
        endpoints=endpoints,
        project=project or ProjectMetadata(),
        by_method=MappingProxyType({method: tuple(items) for method, items in index.items()}),
        generation=generation,
    )


class EndpointCatalog:
    """Holder of the active catalog snapshot."""

    def __init__(
        self,
        definitions: Iterable[EndpointDefinition] = (),
        *,
        project: ProjectMetadata | None = None,
    ) -> None:
        self._write_lock = threading.Lock()
        self._snapshot = build_snapshot(definitions, project=project)

    def snapshot(self) -> CatalogSnapshot:
        """
        Return the active snapshot.

        Returns
        -------
        CatalogSnapshot
            Snapshot that stays valid for the caller even after a replace.
        """
        return self._snapshot

    @property
    def project(self) -> ProjectMetadata:
        """Return the active project metadata."""
        return self._snapshot.project

    def lookup_candidates(self, method: str) -> tuple[EndpointDefinition, ...]:
        """
        Return endpoints answering ``method`` in configuration order.

        Returns
        -------
        tuple[EndpointDefinition, ...]
            Empty when no endpoint is configured for the method.
        """
        return self._snapshot.candidates(method)

    def replace_all(
        self,
        definitions: Iterable[EndpointDefinition],
        *,
        project: ProjectMetadata | None = None,
    ) -> CatalogSnapshot:
        """
        Atomically replace every definition.

        Parameters
        ----------
        definitions:
            Complete replacement set in configuration order.
        project:
            New project metadata; keeps the current metadata when omitted.

        Returns
        -------
        CatalogSnapshot
            The newly installed snapshot.

        Raises
        ------
        ConfigurationInvalidError
            If the replacement set is invalid; the active snapshot is kept.
        """
        with self._write_lock:
            current = self._snapshot
            snapshot = build_snapshot(
                definitions,
                project=project or current.project,
                generation=current.generation + 1,
            )
            self._snapshot = snapshot
        LOG.info(
            "Installed catalog generation=%d endpoints=%d",
            snapshot.generation,
            len(snapshot.endpoints),
        )
        return snapshot


__all__ = ["CatalogSnapshot", "EndpointCatalog", "build_snapshot", "validate_definitions"]
