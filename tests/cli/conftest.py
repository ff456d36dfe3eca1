"""CLI test fixtures: isolated connection store and audit log."""

from __future__ import annotations

import sqlite3
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def sqlgate_home(tmp_path):
    """Point the connection store and audit log at a temp directory."""
    home = tmp_path / "home"
    with patch("sqlgate.connections._CONNECTIONS_FILE", home / "connections.toml"), patch(
        "sqlgate.querylog._LOG_ROOT", home / "logs"
    ):
        yield home


@pytest.fixture
def shop_db(tmp_path):
    path = tmp_path / "shop.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
        CREATE VIEW customer_names AS SELECT name FROM customers;
        INSERT INTO customers (id, name) VALUES (1, 'Ada'), (2, 'Bob'), (3, 'Cy');
        """
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def shop_url(shop_db):
    return f"sqlite:path={shop_db}"
