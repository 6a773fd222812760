"""Pytest configuration for the flapi test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from flapi.catalog.catalog import EndpointCatalog
from flapi.catalog.definitions import ProjectMetadata
from flapi.storage.gateway import StorageGateway
from tests._helpers.builders import customer_endpoints, open_seeded_gateway


@pytest.fixture
def seeded_gateway() -> Iterator[StorageGateway]:
    """Provide an in-memory gateway seeded with customers and orders.

    Yields
    ------
    StorageGateway
        Gateway closed after the test.
    """
    gateway = open_seeded_gateway()
    try:
        yield gateway
    finally:
        gateway.close()


@pytest.fixture
def customer_catalog() -> EndpointCatalog:
    """Provide a catalog holding the customers/orders endpoints.

    Returns
    -------
    EndpointCatalog
        Catalog at generation 0.
    """
    return EndpointCatalog(
        customer_endpoints(),
        project=ProjectMetadata(name="shop", description="Demo shop", version="2.1.0"),
    )
