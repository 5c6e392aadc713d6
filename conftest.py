"""
Pytest configuration and shared fixtures.

This file contains pytest configuration and fixtures that are available
to all test modules in the project.
"""

import pytest

from tests.fixtures import (  # noqa: F401
    fake_cluster,
    mock_backend,
    proxy_factory,
    resolver,
    route_builder,
    routing_table,
    sample_ingress,
)


def pytest_configure(config):
    """Configure pytest settings."""
    # Register custom markers
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test component interactions"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take longer than 1 second to run"
    )
    config.addinivalue_line(
        "markers", "config: Configuration-related tests"
    )
    config.addinivalue_line(
        "markers", "gateway: Request routing and proxy tests"
    )
    config.addinivalue_line(
        "markers", "cluster: Kubernetes API access and watch tests"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location and content."""
    for item in items:
        # Mark tests based on file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Mark tests based on function name patterns
        if "slow" in item.name or "timeout" in item.name:
            item.add_marker(pytest.mark.slow)

        if "config" in item.name or "settings" in item.name:
            item.add_marker(pytest.mark.config)

        if "proxy" in item.name or "route" in item.name or "routing" in item.name:
            item.add_marker(pytest.mark.gateway)

        if "cluster" in item.name or "watch" in item.name or "ingress" in item.name:
            item.add_marker(pytest.mark.cluster)

