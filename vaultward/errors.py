"""
Error taxonomy shared by every Vaultward component.

Each error carries a stable ``kind`` the transport can map to a status code
and a human-readable message. Storage errors and tracebacks never cross
this boundary; they are translated at the transaction scope
(vaultward.db.connection) into TransientError or Conflict.
"""

from __future__ import annotations


class VaultwardError(Exception):
    """Base class for all errors surfaced to callers."""

    kind = "Error"
    retryable = False

    def __init__(self, message: str = "") -> None:
        self.message = message or self.kind
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class Unauthorized(VaultwardError):
    """No valid principal (missing, unknown, expired or revoked credential)."""

    kind = "Unauthorized"


class Forbidden(VaultwardError):
    """Authenticated, existence already implied, but the capability is missing."""

    kind = "Forbidden"


class NotFound(VaultwardError):
    """Resource does not exist, or revealing that it exists would leak information."""

    kind = "NotFound"

    def __init__(self, resource: str = "Resource", message: str = "") -> None:
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class Conflict(VaultwardError):
    """Duplicate membership, role already held, or concurrent write collision."""

    kind = "Conflict"


class ValidationError(VaultwardError):
    """Malformed input: envelope length/encoding, unknown role, bad batch."""

    kind = "ValidationError"


class TransientError(VaultwardError):
    """Store unavailable or timed out. Safe to retry idempotent reads."""

    kind = "TransientError"
    retryable = True
