"""DuckDB access for endpoint queries and schema description."""
