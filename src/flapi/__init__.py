"""Configuration-driven REST API over DuckDB queries."""

__version__ = "0.1.0"
