"""DuckDB connection ownership for the query engine."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import duckdb

from flapi.config.models import ConnectionConfig, FlapiConfig
from flapi.services.errors import ConfigurationInvalidError

DuckDBConnection = duckdb.DuckDBPyConnection
DuckDBError = duckdb.Error

LOG = logging.getLogger("flapi.storage.gateway")


@dataclass(frozen=True)
class StorageConfig:
    """Define configuration for opening the DuckDB database behind the API."""

    db_path: Path = Path(":memory:")
    settings: Mapping[str, str] = field(default_factory=dict)
    connections: Mapping[str, ConnectionConfig] = field(default_factory=dict)

    @classmethod
    def from_flapi_config(cls, cfg: FlapiConfig) -> StorageConfig:
        """
        Build a storage configuration from the project file.

        Parameters
        ----------
        cfg
            Parsed ``flapi.yaml``.

        Returns
        -------
        StorageConfig
            Storage configuration with connection init blocks attached.
        """
        return cls(
            db_path=Path(cfg.duckdb.db_path),
            settings=dict(cfg.duckdb.settings),
            connections=dict(cfg.connections),
        )


class StorageGateway(Protocol):
    """Expose DuckDB access for endpoint queries."""

    config: StorageConfig

    @property
    def con(self) -> DuckDBConnection:
        """
        Return an open DuckDB connection.

        Returns
        -------
        DuckDBConnection
            Live connection bound to the configured database.
        """
        ...

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        ...

    def cursor(self) -> AbstractContextManager[DuckDBConnection]:
        """Return a per-operation cursor context sharing the underlying database."""
        ...


@dataclass
class _DuckDBGateway:
    """Concrete StorageGateway implementation."""

    config: StorageConfig
    con: DuckDBConnection

    def close(self) -> None:
        """Close the underlying connection."""
        self.con.close()

    @contextmanager
    def cursor(self) -> Iterator[DuckDBConnection]:
        """
        Yield a cursor for one operation.

        DuckDB connections are not safe to share between threads; cursors are.

        Yields
        ------
        DuckDBConnection
            Cursor closed when the block exits.
        """
        cur = self.con.cursor()
        try:
            yield cur
        finally:
            cur.close()


def apply_connections(con: DuckDBConnection, connections: Mapping[str, ConnectionConfig]) -> None:
    """
    Run every connection's ``init`` SQL in declaration order.

    Parameters
    ----------
    con
        Connection to prepare.
    connections
        Named connection blocks from ``flapi.yaml``.

    Raises
    ------
    ConfigurationInvalidError
        If an init script fails.
    """
    for name, connection in connections.items():
        if not connection.init:
            continue
        try:
            con.execute(connection.init)
        except DuckDBError as exc:
            message = f"Connection {name!r} init failed: {exc}"
            raise ConfigurationInvalidError(message, extras={"connection": name}) from exc
        LOG.debug("Applied init SQL for connection %s", name)


def _connect(config: StorageConfig) -> DuckDBConnection:
    """
    Open a DuckDB connection using the provided configuration.

    Returns
    -------
    DuckDBConnection
        Live DuckDB connection.
    """
    if config.db_path != Path(":memory:"):
        config.db_path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(config.db_path), config=dict(config.settings))


def open_gateway(config: StorageConfig) -> StorageGateway:
    """
    Create a StorageGateway bound to a DuckDB database.

    Parameters
    ----------
    config
        Storage configuration describing connection options.

    Returns
    -------
    StorageGateway
        Gateway with connection init scripts applied.
    """
    con = _connect(config)
    try:
        apply_connections(con, config.connections)
    except ConfigurationInvalidError:
        con.close()
        raise
    LOG.info(
        "Opened DuckDB database path=%s connections=%d",
        config.db_path,
        len(config.connections),
    )
    return _DuckDBGateway(config=config, con=con)


def open_memory_gateway(
    *, connections: Mapping[str, ConnectionConfig] | None = None
) -> StorageGateway:
    """
    Create an in-memory StorageGateway for tests.

    Returns
    -------
    StorageGateway
        Gateway backed by an in-memory DuckDB connection.
    """
    return open_gateway(StorageConfig(connections=dict(connections or {})))


__all__ = [
    "DuckDBConnection",
    "DuckDBError",
    "StorageConfig",
    "StorageGateway",
    "apply_connections",
    "open_gateway",
    "open_memory_gateway",
]
