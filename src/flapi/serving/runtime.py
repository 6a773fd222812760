"""Composition root wiring the catalog, query engine and HTTP collaborators."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flapi.catalog.catalog import CatalogSnapshot, EndpointCatalog, validate_definitions
from flapi.config.loader import ConfigSource, LoadedConfig, YamlConfigSource
from flapi.config.serving import ServingConfig
from flapi.docs.openapi import DocSynthesizer, DocumentNode
from flapi.routing.dispatcher import RequestDispatcher
from flapi.routing.resolver import RouteResolver
from flapi.serving.executor import RequestExecutor
from flapi.serving.limits import PageLimits
from flapi.storage.gateway import StorageConfig, StorageGateway, apply_connections, open_gateway
from flapi.storage.queries import DuckDBQueryRunner, DuckDBSchemaDescriber

LOG = logging.getLogger("flapi.serving.runtime")


@dataclass
class AppRuntime:
    """Everything one running gateway needs, owned explicitly rather than globally."""

    settings: ServingConfig
    source: ConfigSource
    catalog: EndpointCatalog
    gateway: StorageGateway
    dispatcher: RequestDispatcher
    executor: RequestExecutor
    synthesizer: DocSynthesizer
    owns_gateway: bool = field(default=True, repr=False)

    def refresh(self) -> CatalogSnapshot:
        """
        Reload configuration and atomically install the new catalog.

        The new endpoint set is validated before connection init scripts run,
        so a rejected refresh leaves both catalog and database untouched.

        Returns
        -------
        CatalogSnapshot
            The newly installed snapshot.

        Raises
        ------
        ConfigurationInvalidError
            If the new configuration is invalid; the previous catalog stays active.
        """
        loaded = self.source.load()
        validate_definitions(loaded.endpoints)
        with self.gateway.cursor() as cur:
            apply_connections(cur, loaded.flapi.connections)
        return self.catalog.replace_all(loaded.endpoints, project=loaded.project)

    def document(self) -> DocumentNode:
        """
        Synthesize the API document for the active catalog.

        Returns
        -------
        DocumentNode
            OpenAPI document.
        """
        return self.synthesizer.synthesize(self.settings.server_url)

    def close(self) -> None:
        """Release the database connection when this runtime opened it."""
        if self.owns_gateway:
            self.gateway.close()


def assemble_runtime(
    settings: ServingConfig,
    source: ConfigSource,
    loaded: LoadedConfig,
    gateway: StorageGateway,
    *,
    owns_gateway: bool,
) -> AppRuntime:
    """
    Wire collaborators around an already-open gateway.

    Returns
    -------
    AppRuntime
        Runtime ready to serve.
    """
    catalog = EndpointCatalog(loaded.endpoints, project=loaded.project)
    executor = RequestExecutor(
        DuckDBQueryRunner(gateway),
        limits=PageLimits.from_settings(settings),
    )
    synthesizer = DocSynthesizer(
        catalog,
        DuckDBSchemaDescriber(gateway),
        describe_timeout_seconds=settings.describe_timeout_seconds,
    )
    return AppRuntime(
        settings=settings,
        source=source,
        catalog=catalog,
        gateway=gateway,
        dispatcher=RequestDispatcher(RouteResolver(catalog)),
        executor=executor,
        synthesizer=synthesizer,
        owns_gateway=owns_gateway,
    )


def build_runtime(
    settings: ServingConfig,
    *,
    source: ConfigSource | None = None,
    gateway: StorageGateway | None = None,
) -> AppRuntime:
    """
    Load configuration, open DuckDB and wire the runtime.

    Parameters
    ----------
    settings:
        Runtime settings; ``config_path`` is used when ``source`` is omitted.
    source:
        Configuration source; defaults to the YAML files at ``config_path``.
    gateway:
        Pre-opened gateway; connection init scripts are applied to it.

    Returns
    -------
    AppRuntime
        Runtime ready to serve.
    """
    resolved_source = source or YamlConfigSource(settings.config_path)
    loaded = resolved_source.load()
    if gateway is None:
        gateway = open_gateway(StorageConfig.from_flapi_config(loaded.flapi))
        owns_gateway = True
    else:
        apply_connections(gateway.con, loaded.flapi.connections)
        owns_gateway = False
    try:
        runtime = assemble_runtime(
            settings, resolved_source, loaded, gateway, owns_gateway=owns_gateway
        )
    except Exception:
        if owns_gateway:
            gateway.close()
        raise
    LOG.info(
        "Runtime ready project=%s endpoints=%d",
        loaded.project.name,
        len(loaded.endpoints),
    )
    return runtime


__all__ = ["AppRuntime", "assemble_runtime", "build_runtime"]
