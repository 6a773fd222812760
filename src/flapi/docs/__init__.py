"""API documentation synthesis."""

from flapi.docs.openapi import (
    SECURITY_SCHEMES,
    DocSynthesizer,
    DocumentNode,
    SchemaDescriber,
    render_json,
    render_yaml,
)

__all__ = [
    "SECURITY_SCHEMES",
    "DocSynthesizer",
    "DocumentNode",
    "SchemaDescriber",
    "render_json",
    "render_yaml",
]
