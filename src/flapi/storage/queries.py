"""Endpoint query execution and describe-only schema introspection over DuckDB."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from flapi.catalog.definitions import EndpointDefinition
from flapi.services.errors import QueryExecutionError, SchemaDescriptionError
from flapi.storage.gateway import DuckDBConnection, DuckDBError, StorageGateway

LOG = logging.getLogger("flapi.storage.queries")

RowDict = dict[str, Any]
ColumnSchema = dict[str, str]

_PARAM_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")

_OPENAPI_TYPES: tuple[tuple[tuple[str, ...], ColumnSchema], ...] = (
    (("BOOLEAN",), {"type": "boolean"}),
    (
        ("TINYINT", "SMALLINT", "INTEGER", "BIGINT", "HUGEINT", "UTINYINT", "USMALLINT",
         "UINTEGER", "UBIGINT", "UHUGEINT"),
        {"type": "integer"},
    ),
    (("FLOAT", "DOUBLE", "REAL", "DECIMAL"), {"type": "number"}),
    (("DATE",), {"type": "string", "format": "date"}),
    (("TIMESTAMP",), {"type": "string", "format": "date-time"}),
    (("TIME",), {"type": "string", "format": "time"}),
    (("UUID",), {"type": "string", "format": "uuid"}),
    (("BLOB",), {"type": "string", "format": "byte"}),
    (("STRUCT", "MAP", "JSON"), {"type": "object"}),
)


def query_parameter_names(sql: str) -> tuple[str, ...]:
    """
    Return the ``$name`` parameters referenced by ``sql`` in first-use order.

    Returns
    -------
    tuple[str, ...]
        Distinct parameter names.
    """
    return tuple(dict.fromkeys(_PARAM_PATTERN.findall(sql)))


def _strip_terminator(sql: str) -> str:
    return sql.strip().rstrip(";").strip()


def duckdb_type_to_schema(duckdb_type: str) -> ColumnSchema:
    """
    Map a DuckDB logical type name to an OpenAPI schema fragment.

    Parameters
    ----------
    duckdb_type
        Type as reported by ``DESCRIBE`` (e.g. ``DECIMAL(18,3)``, ``INTEGER[]``).

    Returns
    -------
    ColumnSchema
        Schema such as ``{"type": "integer"}``; unknown types map to string.
    """
    normalized = duckdb_type.strip().upper()
    if normalized.endswith("]") or normalized.startswith("LIST"):
        return {"type": "array"}
    base = re.split(r"[\s(]", normalized, maxsplit=1)[0]
    for names, schema in _OPENAPI_TYPES:
        if base in names:
            return dict(schema)
    if base.startswith("TIMESTAMP"):
        return {"type": "string", "format": "date-time"}
    return {"type": "string"}


@dataclass(frozen=True)
class QueryPage:
    """One page of endpoint rows plus the unpaginated row count."""

    rows: list[RowDict] = field(default_factory=list)
    total_count: int = 0
    limit: int = 0
    offset: int = 0

    @property
    def has_more(self) -> bool:
        """Return True when rows remain after this page."""
        return self.offset + len(self.rows) < self.total_count


def fetch_all_dicts(
    con: DuckDBConnection, sql: str, params: Mapping[str, object] | Sequence[object]
) -> list[RowDict]:
    """
    Execute a query and return all rows as mappings.

    Returns
    -------
    list[RowDict]
        List of rows represented as dictionaries keyed by column name.
    """
    result = con.execute(sql, params if params else None)
    rows = result.fetchall()
    cols = [desc[0] for desc in result.description]
    return [{col: row[idx] for idx, col in enumerate(cols)} for row in rows]


class DuckDBQueryRunner:
    """Run endpoint queries with bound request values and pagination."""

    def __init__(self, gateway: StorageGateway) -> None:
        self.gateway = gateway

    def fetch_page(
        self,
        endpoint: EndpointDefinition,
        params: Mapping[str, str | None],
        *,
        limit: int,
        offset: int,
    ) -> QueryPage:
        """
        Execute the endpoint query for one page of results.

        Parameters
        ----------
        endpoint
            Endpoint whose query runs.
        params
            Collected request values; only names referenced as ``$name`` are bound.
        limit
            Maximum rows to return (already clamped).
        offset
            Rows to skip (already validated).

        Returns
        -------
        QueryPage
            Rows plus total count.

        Raises
        ------
        QueryExecutionError
            If DuckDB rejects or fails the query.
        """
        sql = _strip_terminator(endpoint.query)
        bound = {name: params.get(name) for name in query_parameter_names(sql)}
        page_sql = f"SELECT * FROM ({sql}) AS flapi_page LIMIT {int(limit)} OFFSET {int(offset)}"  # noqa: S608
        count_sql = f"SELECT count(*) FROM ({sql}) AS flapi_count"  # noqa: S608
        try:
            with self.gateway.cursor() as cur:
                rows = fetch_all_dicts(cur, page_sql, bound)
                count_row = cur.execute(count_sql, bound if bound else None).fetchone()
        except DuckDBError as exc:
            raise QueryExecutionError(endpoint.url_path, str(exc)) from exc
        total = int(count_row[0]) if count_row is not None else 0
        LOG.debug(
            "Executed %s rows=%d total=%d limit=%d offset=%d",
            endpoint.key,
            len(rows),
            total,
            limit,
            offset,
        )
        return QueryPage(rows=rows, total_count=total, limit=limit, offset=offset)


class DuckDBSchemaDescriber:
    """Describe an endpoint query's result columns without executing it."""

    def __init__(self, gateway: StorageGateway) -> None:
        self.gateway = gateway

    def describe_query(self, endpoint: EndpointDefinition) -> dict[str, ColumnSchema]:
        """
        Return OpenAPI property schemas for the query's result columns.

        Parameters are replaced by typed NULLs and the statement is bound with
        ``DESCRIBE``, so no rows are produced or scanned.

        Returns
        -------
        dict[str, ColumnSchema]
            Column name to schema, in result order.

        Raises
        ------
        SchemaDescriptionError
            If the query is empty or DuckDB cannot bind it.
        """
        sql = _strip_terminator(endpoint.query)
        if not sql:
            message = f"Endpoint {endpoint.key} has no query to describe"
            raise SchemaDescriptionError(endpoint.url_path, message)
        probe = _PARAM_PATTERN.sub("CAST(NULL AS VARCHAR)", sql)
        try:
            with self.gateway.cursor() as cur:
                described = cur.execute(
                    f"DESCRIBE SELECT * FROM ({probe}) AS flapi_describe"  # noqa: S608
                ).fetchall()
        except DuckDBError as exc:
            message = f"Failed to describe {endpoint.key}: {exc}"
            raise SchemaDescriptionError(endpoint.url_path, message) from exc
        return {str(row[0]): duckdb_type_to_schema(str(row[1])) for row in described}


__all__ = [
    "ColumnSchema",
    "DuckDBQueryRunner",
    "DuckDBSchemaDescriber",
    "QueryPage",
    "RowDict",
    "duckdb_type_to_schema",
    "fetch_all_dicts",
    "query_parameter_names",
]
