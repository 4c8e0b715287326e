"""
Centralized configuration for Vaultward.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from vaultward.config import get_config
    cfg = get_config()
    print(cfg.db.name)                # "vaultward"
    print(cfg.envelope.max_length)    # 500
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "vaultward"
    user: str = "vaultward"
    password: str = ""
    statement_timeout_ms: int = 5000
    pool_min: int = 2
    pool_max: int = 20

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        if self.statement_timeout_ms > 0:
            # Timed-out statements raise QueryCanceledError -> TransientError
            d["options"] = f"-c statement_timeout={self.statement_timeout_ms}"
        return d


@dataclass(frozen=True)
class AuthConfig:
    """Session and credential-verifier parameters."""

    session_ttl: int = 7 * 24 * 3600  # seconds
    token_bytes: int = 32
    verifier_iterations: int = 200_000


@dataclass(frozen=True)
class EnvelopeConfig:
    """Sanity bounds for encoded key envelopes."""

    min_length: int = 50
    max_length: int = 500


@dataclass(frozen=True)
class AuditConfig:
    """Audit query pagination bounds."""

    default_limit: int = 50
    max_limit: int = 500


@dataclass(frozen=True)
class Config:
    """Top-level Vaultward configuration."""

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    envelope: EnvelopeConfig = field(default_factory=EnvelopeConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    db = DatabaseConfig(
        host=os.environ.get("VAULTWARD_DB_HOST", ""),
        port=int(os.environ.get("VAULTWARD_DB_PORT", "5432")),
        name=os.environ.get("VAULTWARD_DB_NAME", "vaultward"),
        user=os.environ.get("VAULTWARD_DB_USER", os.environ.get("USER", "vaultward")),
        password=os.environ.get("VAULTWARD_DB_PASSWORD", ""),
        statement_timeout_ms=int(os.environ.get("VAULTWARD_DB_STATEMENT_TIMEOUT_MS", "5000")),
        pool_min=int(os.environ.get("VAULTWARD_DB_POOL_MIN", "2")),
        pool_max=int(os.environ.get("VAULTWARD_DB_POOL_MAX", "20")),
    )

    auth = AuthConfig(
        session_ttl=int(os.environ.get("VAULTWARD_SESSION_TTL", str(7 * 24 * 3600))),
        token_bytes=int(os.environ.get("VAULTWARD_TOKEN_BYTES", "32")),
        verifier_iterations=int(os.environ.get("VAULTWARD_VERIFIER_ITERATIONS", "200000")),
    )

    envelope = EnvelopeConfig(
        min_length=int(os.environ.get("VAULTWARD_ENVELOPE_MIN", "50")),
        max_length=int(os.environ.get("VAULTWARD_ENVELOPE_MAX", "500")),
    )

    audit = AuditConfig(
        default_limit=int(os.environ.get("VAULTWARD_AUDIT_DEFAULT_LIMIT", "50")),
        max_limit=int(os.environ.get("VAULTWARD_AUDIT_MAX_LIMIT", "500")),
    )

    return Config(db=db, auth=auth, envelope=envelope, audit=audit)


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
