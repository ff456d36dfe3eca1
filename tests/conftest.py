"""Root conftest: shared markers and integration-test skipping."""

from __future__ import annotations

import os

import pytest

_INTEGRATION_MARKERS = {
    "postgres": "SQLGATE_TEST_POSTGRES",
    "mysql": "SQLGATE_TEST_MYSQL",
}


def pytest_configure(config):
    config.addinivalue_line("markers", "postgres: requires a running PostgreSQL server")
    config.addinivalue_line("markers", "mysql: requires a running MySQL or MariaDB server")


def pytest_collection_modifyitems(config, items):
    for marker, env_var in _INTEGRATION_MARKERS.items():
        if os.environ.get(env_var):
            continue
        skip = pytest.mark.skip(reason=f"{marker} not available (set {env_var}=1)")
        for item in items:
            if marker in item.keywords:
                item.add_marker(skip)
