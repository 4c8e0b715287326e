"""Database connection management for Vaultward."""

from vaultward.db.connection import close_pool, get_connection, get_pool

__all__ = ["close_pool", "get_connection", "get_pool"]
