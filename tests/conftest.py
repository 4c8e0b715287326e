"""
Shared fixtures for the Vaultward test suite.

Service-level tests run against FakeStore (tests/fakes.py); SQL-level
tests mock the psycopg2 connection and cursor directly.

test_prefix and clean_env are inherited from the root conftest.py.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tests.fakes import FakeStore, make_envelope
from vaultward.models import VaultKind
from vaultward.vault import registry


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    """An in-memory store wired into every service module."""
    s = FakeStore()
    s.install(monkeypatch)
    return s


@pytest.fixture
def owner(store) -> str:
    return store.seed_principal("owner@example.com")


@pytest.fixture
def alice(store) -> str:
    return store.seed_principal("alice@example.com")


@pytest.fixture
def bob(store) -> str:
    return store.seed_principal("bob@example.com")


@pytest.fixture
def group_vault(store, owner):
    return registry.create_vault(owner, "Team", VaultKind.GROUP, make_envelope())


@pytest.fixture
def mock_cursor():
    cur = MagicMock()
    cur.rowcount = 1
    return cur


@pytest.fixture
def mock_conn(mock_cursor):
    conn = MagicMock()
    conn.closed = 0
    conn.cursor.return_value = mock_cursor
    return conn
