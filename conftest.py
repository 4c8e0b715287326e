"""
Root-level shared test fixtures.

Keeps every test away from the developer's real environment: VAULTWARD_*
variables are cleared and the config singleton is rebuilt per test with a
cheap verifier iteration count.
"""

from __future__ import annotations

import uuid

import pytest

from vaultward.config import reset_config

_ENV_KEYS = [
    "VAULTWARD_DB_HOST",
    "VAULTWARD_DB_PORT",
    "VAULTWARD_DB_NAME",
    "VAULTWARD_DB_USER",
    "VAULTWARD_DB_PASSWORD",
    "VAULTWARD_DB_STATEMENT_TIMEOUT_MS",
    "VAULTWARD_DB_POOL_MIN",
    "VAULTWARD_DB_POOL_MAX",
    "VAULTWARD_SESSION_TTL",
    "VAULTWARD_TOKEN_BYTES",
    "VAULTWARD_VERIFIER_ITERATIONS",
    "VAULTWARD_ENVELOPE_MIN",
    "VAULTWARD_ENVELOPE_MAX",
    "VAULTWARD_AUDIT_DEFAULT_LIMIT",
    "VAULTWARD_AUDIT_MAX_LIMIT",
]


@pytest.fixture
def test_prefix():
    """Unique prefix for test isolation."""
    return f"test_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def clean_env(monkeypatch):
    """Remove VAULTWARD_* env vars that leak between tests."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def fast_config(clean_env, monkeypatch):
    """Fresh config per test with a low PBKDF2 cost."""
    monkeypatch.setenv("VAULTWARD_VERIFIER_ITERATIONS", "1000")
    reset_config()
    yield
    reset_config()
